from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from queueboard.clients.backend import BookingBackendClient
from queueboard.config import Settings, get_settings
from queueboard.services import QueueEstimator, QueueStatusService, ReminderService
from queueboard.services.notifier import BackendNotifier, LoggingNotifier


@lru_cache(maxsize=1)
def get_backend_client_cached() -> BookingBackendClient:
    settings = get_settings()
    return BookingBackendClient(
        settings.backend_base_url,
        timeout=settings.backend_timeout,
        use_mock_data=settings.use_mock_data,
        token=settings.backend_token,
    )


def get_backend_client(settings: Settings = Depends(get_settings)) -> BookingBackendClient:
    return get_backend_client_cached()


def get_estimator(settings: Settings = Depends(get_settings)) -> QueueEstimator:
    return QueueEstimator(settings.estimator_config())


def get_queue_status_service(
    client: BookingBackendClient = Depends(get_backend_client),
    estimator: QueueEstimator = Depends(get_estimator),
) -> QueueStatusService:
    return QueueStatusService(client, estimator=estimator)


def get_reminder_service(
    client: BookingBackendClient = Depends(get_backend_client),
    estimator: QueueEstimator = Depends(get_estimator),
    settings: Settings = Depends(get_settings),
) -> ReminderService:
    notifier = LoggingNotifier() if client.use_mock_data else BackendNotifier(client)
    return ReminderService(
        client,
        notifier=notifier,
        estimator=estimator,
        queue_update_every=settings.queue_update_every,
        retention_days=settings.notification_retention_days,
    )
