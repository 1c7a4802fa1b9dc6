#!/usr/bin/env python3
"""Run one reminder sweep in-process. Intended to be called from cron."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from typing import Any, Dict

from queueboard.config import get_settings
from queueboard.dependencies.services import get_backend_client_cached
from queueboard.schemas.reminder import CleanupRequest, ReminderRunRequest
from queueboard.services import QueueEstimator, ReminderService
from queueboard.services.notifier import BackendNotifier, LoggingNotifier


async def run_job(business_id: int | None, now: datetime | None, cleanup: bool) -> Dict[str, Any]:
    settings = get_settings()
    client = get_backend_client_cached()
    notifier = LoggingNotifier() if client.use_mock_data else BackendNotifier(client)
    service = ReminderService(
        client,
        notifier=notifier,
        estimator=QueueEstimator(settings.estimator_config()),
        queue_update_every=settings.queue_update_every,
        retention_days=settings.notification_retention_days,
    )
    request = ReminderRunRequest(business_id=business_id, now=now)
    try:
        results: Dict[str, Any] = {
            "reminders": (await service.run_reminders(request)).model_dump(mode="json"),
            "queue_updates": (await service.run_queue_updates(request)).model_dump(mode="json"),
        }
        if cleanup:
            results["cleanup"] = (
                await service.cleanup_notifications(CleanupRequest())
            ).model_dump(mode="json")
    finally:
        await client.close()
    return results


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Send due booking reminders and queue-position updates."
    )
    parser.add_argument("--business-id", type=int, default=None, help="Limit to one business.")
    parser.add_argument(
        "--now",
        type=datetime.fromisoformat,
        default=None,
        help="Reference time (ISO 8601). Defaults to the current UTC time.",
    )
    parser.add_argument(
        "--cleanup",
        action="store_true",
        help="Also delete notification records older than the retention period.",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    try:
        results = asyncio.run(run_job(args.business_id, args.now, args.cleanup))
    except Exception as exc:  # pragma: no cover - cron entry point
        print(f"Reminder job failed: {exc}", file=sys.stderr)
        return 1

    print(json.dumps(results, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":  # pragma: no cover - cron entry point
    raise SystemExit(main())
