"""Outbound customer notifications triggered by the reminder sweeps."""

from __future__ import annotations

import logging
from typing import Dict, List

from queueboard.clients.backend import BookingBackendClient
from queueboard.schemas.booking import Booking
from queueboard.schemas.queue import QueuePosition

logger = logging.getLogger(__name__)


class Notifier:
    """Dispatch reminder and queue-update messages for a booking."""

    async def send_reminder(self, booking: Booking, minutes_until: int) -> None:
        raise NotImplementedError

    async def send_queue_update(self, booking: Booking, position: QueuePosition) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """Mock-mode notifier that only logs and remembers what it sent."""

    def __init__(self) -> None:
        self.dispatched: List[Dict[str, object]] = []

    async def send_reminder(self, booking: Booking, minutes_until: int) -> None:
        logger.info(
            "Reminder for booking %s (%s): starts in %s minutes",
            booking.id,
            booking.customer_name or "customer",
            minutes_until,
        )
        self.dispatched.append(
            {"type": "reminder", "booking_id": booking.id, "minutes_until": minutes_until}
        )

    async def send_queue_update(self, booking: Booking, position: QueuePosition) -> None:
        logger.info(
            "Queue update for booking %s: position %s, about %s minutes",
            booking.id,
            position.position,
            round(position.estimated_wait_minutes),
        )
        self.dispatched.append(
            {
                "type": "queue_update",
                "booking_id": booking.id,
                "position": position.position,
            }
        )


class BackendNotifier(Notifier):
    """Hand notifications to the backend, which owns the messaging providers."""

    def __init__(self, client: BookingBackendClient) -> None:
        self._client = client

    async def send_reminder(self, booking: Booking, minutes_until: int) -> None:
        await self._client.post(
            "/notifications/reminder",
            {"booking_id": booking.id, "minutes_until": minutes_until},
        )

    async def send_queue_update(self, booking: Booking, position: QueuePosition) -> None:
        await self._client.post(
            "/notifications/queue-update",
            {
                "booking_id": booking.id,
                "position": position.position,
                "estimated_wait_minutes": round(position.estimated_wait_minutes),
            },
        )
