"""Periodic reminder and queue-update sweeps.

A cron job or the ``/tools/reminders`` routes call these once per polling
interval. Each run re-reads the day's bookings, so the sweeps hold no state of
their own; the once-only guarantee for reminders comes from the persisted
``reminder_sent`` flag.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from queueboard.clients.backend import BookingBackendClient
from queueboard.schemas.booking import REMINDABLE_STATUSES, Booking, BookingStatus
from queueboard.schemas.reminder import (
    CleanupRequest,
    CleanupResponse,
    QueueUpdate,
    QueueUpdateRunResponse,
    ReminderOutcome,
    ReminderRunRequest,
    ReminderRunResponse,
)
from queueboard.services.estimator import QueueEstimator, group_by_staff, minutes_until
from queueboard.services.exceptions import NotFoundError, ServiceError, ValidationError
from queueboard.services.mock_store import (
    BookingRepository,
    MasterDataRepository,
    NotificationRepository,
    get_mock_store,
)
from queueboard.services.notifier import LoggingNotifier, Notifier
from queueboard.services.queue_status import parse_bookings

logger = logging.getLogger(__name__)

REMINDER_NOTIFICATION = "REMINDER_30MIN"
QUEUE_UPDATE_NOTIFICATION = "QUEUE_UPDATE"


def _resolve_now(value: Optional[datetime]) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ReminderService:
    """Reminder, queue-update and notification-cleanup sweeps.

    A backend failure while reading one business's bookings is reported in
    the response ``errors`` and the sweep moves on to the next business.
    """

    def __init__(
        self,
        client: BookingBackendClient,
        *,
        notifier: Notifier | None = None,
        estimator: QueueEstimator | None = None,
        master_data: MasterDataRepository | None = None,
        bookings: BookingRepository | None = None,
        notifications: NotificationRepository | None = None,
        queue_update_every: int = 5,
        retention_days: int = 30,
    ) -> None:
        self._client = client
        self._notifier = notifier or LoggingNotifier()
        self._estimator = estimator or QueueEstimator()
        self._master_data = master_data
        self._bookings = bookings
        self._notifications = notifications
        self._queue_update_every = queue_update_every
        self._retention_days = retention_days
        if self._client.use_mock_data:
            store = get_mock_store()
            self._master_data = master_data or store.master_data
            self._bookings = bookings or store.bookings
            self._notifications = notifications or store.notifications

    async def run_reminders(self, request: ReminderRunRequest) -> ReminderRunResponse:
        now = _resolve_now(request.now)
        logger.info("Running reminder sweep at %s (business=%s)", now.isoformat(), request.business_id)

        checked = 0
        outcomes: List[ReminderOutcome] = []
        errors: List[str] = []
        for business_id, day in await self._business_days(request.business_id, now):
            try:
                bookings = await self._fetch_day(business_id, day)
            except ServiceError as exc:
                logger.error("Skipping reminders for business %s: %s", business_id, exc)
                errors.append(f"business {business_id}: {exc}")
                continue
            for booking in bookings:
                if booking.status not in REMINDABLE_STATUSES:
                    continue
                checked += 1
                if not self._estimator.is_reminder_due(booking, now):
                    continue
                outcomes.append(await self._send_reminder(booking, minutes_until(booking, now)))

        sent = sum(1 for outcome in outcomes if outcome.status == "SENT")
        failed = len(outcomes) - sent
        logger.info("Reminder sweep complete: checked %s, sent %s, failed %s", checked, sent, failed)
        return ReminderRunResponse(
            checked=checked,
            reminders_sent=sent,
            failed=failed,
            outcomes=outcomes,
            errors=errors,
        )

    async def _send_reminder(self, booking: Booking, remaining: Optional[int]) -> ReminderOutcome:
        try:
            await self._notifier.send_reminder(booking, remaining)
        except Exception as exc:
            logger.exception("Failed to send reminder for booking %s", booking.id)
            await self._record(booking.id, REMINDER_NOTIFICATION, "FAILED", str(exc))
            return ReminderOutcome(
                booking_id=booking.id,
                minutes_until=remaining,
                status="FAILED",
                error=str(exc),
            )

        await self._mark_reminder_sent(booking.id)
        await self._record(booking.id, REMINDER_NOTIFICATION, "SENT")
        return ReminderOutcome(booking_id=booking.id, minutes_until=remaining, status="SENT")

    async def run_queue_updates(self, request: ReminderRunRequest) -> QueueUpdateRunResponse:
        now = _resolve_now(request.now)
        logger.info("Checking queue status updates (business=%s)", request.business_id)

        checked = 0
        updates: List[QueueUpdate] = []
        errors: List[str] = []
        for business_id, day in await self._business_days(request.business_id, now):
            try:
                bookings = await self._fetch_day(business_id, day)
            except ServiceError as exc:
                logger.error("Skipping queue updates for business %s: %s", business_id, exc)
                errors.append(f"business {business_id}: {exc}")
                continue
            for staff_id, group in group_by_staff(bookings).items():
                try:
                    _, positions = self._estimator.queue_snapshot(group, now)
                except ValidationError as exc:
                    logger.error(
                        "Skipping queue updates for business %s staff %s: %s",
                        business_id,
                        staff_id,
                        exc,
                    )
                    errors.append(f"business {business_id} staff {staff_id}: {exc}")
                    continue

                for booking, position in positions:
                    if booking.status is BookingStatus.IN_PROGRESS:
                        continue
                    checked += 1
                    if not self._should_send_update(booking, position.position):
                        continue
                    try:
                        await self._notifier.send_queue_update(booking, position)
                    except Exception:
                        logger.exception("Failed to send queue update for booking %s", booking.id)
                        continue
                    await self._record(booking.id, QUEUE_UPDATE_NOTIFICATION, "SENT")
                    updates.append(
                        QueueUpdate(
                            booking_id=booking.id,
                            business_id=business_id,
                            staff_id=staff_id,
                            position=position.position,
                            estimated_wait_minutes=round(position.estimated_wait_minutes),
                        )
                    )

        logger.info("Queue update check complete: checked %s, sent %s", checked, len(updates))
        return QueueUpdateRunResponse(
            checked=checked,
            updates_sent=len(updates),
            updates=updates,
            errors=errors,
        )

    def _should_send_update(self, booking: Booking, position: int) -> bool:
        if booking.status is BookingStatus.CHECKED_IN:
            return True
        return position > 0 and position % self._queue_update_every == 0

    async def cleanup_notifications(self, request: CleanupRequest) -> CleanupResponse:
        retention_days = request.retention_days or self._retention_days
        cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
        logger.info("Removing notifications created before %s", cutoff.isoformat())

        if self._client.use_mock_data:
            await self._client.simulate_latency()
            if not self._notifications:
                raise RuntimeError("Mock notification repository not configured")
            deleted = await self._notifications.cleanup(cutoff)
        else:
            data = await self._client.post("/notifications/cleanup", {"before": cutoff.isoformat()})
            deleted = int(data.get("deleted", 0))

        logger.info("Cleaned up %s old notifications", deleted)
        return CleanupResponse(deleted=deleted, cutoff=cutoff.isoformat())

    async def _business_days(
        self, business_id: Optional[int], now: datetime
    ) -> List[Tuple[int, str]]:
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            if not self._master_data:
                raise RuntimeError("Mock master data repository not configured")
            if business_id is not None:
                record = self._master_data.get_business(business_id)
                if not record:
                    raise NotFoundError(f"Business '{business_id}' not found")
                records = [record]
            else:
                records = self._master_data.iter_businesses()
            return [
                (record.business_id, record.local_date(now))
                for record in records
                if record.is_active
            ]

        params = {"business_id": business_id} if business_id is not None else None
        data = await self._client.get("/businesses", params=params)
        days = []
        for item in data.get("items", []):
            if not item.get("is_active", True):
                continue
            offset = item.get("utc_offset") or "+00:00"
            tz = datetime.fromisoformat(f"2000-01-01T00:00:00{offset}").tzinfo
            days.append((int(item["business_id"]), now.astimezone(tz).date().isoformat()))
        return days

    async def _fetch_day(self, business_id: int, day: str) -> List[Booking]:
        if self._client.use_mock_data:
            if not self._bookings:
                raise RuntimeError("Mock booking repository not configured")
            return await self._bookings.list_for_date(business_id, day)

        data = await self._client.get(f"/businesses/{business_id}/bookings", params={"date": day})
        return parse_bookings(data.get("items", []))

    async def _mark_reminder_sent(self, booking_id: str) -> None:
        if self._client.use_mock_data:
            if not await self._bookings.mark_reminder_sent(booking_id):
                logger.warning("Reminder flag for booking %s was already set", booking_id)
            return
        await self._client.patch(f"/bookings/{booking_id}", {"reminder_sent": True})

    async def _record(
        self,
        booking_id: str,
        notification_type: str,
        status: str,
        error: Optional[str] = None,
    ) -> None:
        # The live backend records notifications itself when it dispatches them.
        if self._notifications is None:
            return
        await self._notifications.record(
            booking_id=booking_id,
            notification_type=notification_type,
            status=status,
            error=error,
        )
