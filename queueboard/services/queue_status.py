from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from queueboard.clients.backend import BookingBackendClient
from queueboard.schemas.booking import Booking
from queueboard.schemas.queue import (
    BusinessSummary,
    QueueItem,
    QueuePositionRequest,
    QueuePositionResponse,
    QueueStatusRequest,
    QueueStatusResponse,
    StaffQueueSummary,
)
from queueboard.services.estimator import QueueEstimator, average_service_time, group_by_staff
from queueboard.services.exceptions import NotFoundError, ServiceError, ValidationError
from queueboard.services.mock_store import (
    BookingRepository,
    MasterDataRepository,
    get_mock_store,
)

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def resolve_target_date(value: Optional[str]) -> str:
    if not value:
        return _utc_now().date().isoformat()
    try:
        return datetime.fromisoformat(value).date().isoformat()
    except ValueError as exc:
        raise ValidationError(["Invalid date format. Expected YYYY-MM-DD."]) from exc


def parse_bookings(items: List[dict]) -> List[Booking]:
    try:
        return [Booking.model_validate(item) for item in items]
    except PydanticValidationError as exc:
        raise ServiceError("Booking backend returned malformed booking data", cause=exc) from exc


class QueueStatusService:
    """Build queue-status views from a fresh booking snapshot."""

    def __init__(
        self,
        client: BookingBackendClient,
        *,
        estimator: QueueEstimator | None = None,
        master_data: MasterDataRepository | None = None,
        bookings: BookingRepository | None = None,
    ) -> None:
        self._client = client
        self._estimator = estimator or QueueEstimator()
        self._master_data = master_data
        self._bookings = bookings
        if self._client.use_mock_data:
            store = get_mock_store()
            self._master_data = master_data or store.master_data
            self._bookings = bookings or store.bookings

    async def status(self, request: QueueStatusRequest) -> QueueStatusResponse:
        """Queue view for one business/date, computed per staff member.

        Sequence positions are only unique within a staff member's queue, so
        every staff group gets its own serving number and wait estimate. The
        top-level ``current_serving``/``next_serving`` are filled only when the
        day holds a single queue; ``estimated_wait_time`` is the longest wait
        across queues.
        """
        logger.info(
            "Computing queue status for business %s (date=%s, staff=%s)",
            request.business_id,
            request.date,
            request.staff_id,
        )
        target_date = resolve_target_date(request.date)
        business = await self._get_business(request.business_id)
        bookings = await self._fetch_bookings(request.business_id, target_date, request.staff_id)

        now = _utc_now()
        queue: List[QueueItem] = []
        staff_queues: List[StaffQueueSummary] = []
        warnings: List[str] = []
        groups = group_by_staff(bookings)
        for staff_id in sorted(groups, key=lambda key: str(key or "")):
            status, positions = self._estimator.queue_snapshot(groups[staff_id], now)
            warnings.extend(status.consistency_warnings)
            staff_queues.append(
                StaffQueueSummary(
                    staff_id=staff_id,
                    current_serving=status.current_serving,
                    next_serving=status.next_serving,
                    total_queue=status.total_queue,
                    average_wait_time=round(status.average_wait_time),
                    estimated_wait_time=round(status.estimated_wait_time),
                )
            )
            queue.extend(
                QueueItem(
                    booking_id=booking.id,
                    staff_id=booking.staff_id,
                    queue_number=booking.sequence_position,
                    customer_name=booking.customer_name,
                    service_name=booking.service_name,
                    status=booking.status,
                    scheduled_time=booking.scheduled_time.isoformat() if booking.scheduled_time else None,
                    position=position.position,
                    estimated_wait_minutes=round(position.estimated_wait_minutes),
                )
                for booking, position in positions
            )

        single = staff_queues[0] if len(staff_queues) == 1 else None
        average = average_service_time(
            bookings, self._estimator.config.default_service_duration_minutes
        )
        return QueueStatusResponse(
            business=business,
            date=target_date,
            current_serving=single.current_serving if single else None,
            next_serving=single.next_serving if single else None,
            total_queue=sum(item.total_queue for item in staff_queues),
            average_wait_time=round(average),
            estimated_wait_time=max((item.estimated_wait_time for item in staff_queues), default=0),
            queue=queue,
            staff_queues=staff_queues,
            warnings=warnings,
            last_updated=now.isoformat(),
        )

    async def position(self, request: QueuePositionRequest) -> QueuePositionResponse:
        logger.info(
            "Estimating queue position for booking %s at business %s",
            request.booking_id,
            request.business_id,
        )
        target_date, staff_id = await self._locate_booking(request.business_id, request.booking_id)
        day = await self._fetch_bookings(request.business_id, target_date, None)
        group = [booking for booking in day if booking.staff_id == staff_id]

        booking = next((item for item in group if item.id == request.booking_id), None)
        if booking is None:
            raise NotFoundError(f"Booking '{request.booking_id}' not found")

        status = self._estimator.compute_status(group, _utc_now())
        estimate = self._estimator.estimate_position(booking, status)
        return QueuePositionResponse(
            booking_id=booking.id,
            queue_number=booking.sequence_position,
            current_serving=status.current_serving,
            position=estimate.position,
            estimated_wait_minutes=round(estimate.estimated_wait_minutes),
        )

    async def _get_business(self, business_id: int) -> BusinessSummary:
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            if not self._master_data:
                raise RuntimeError("Mock master data repository not configured")
            record = self._master_data.get_business(business_id)
            if not record or not record.is_active:
                raise NotFoundError(f"Business '{business_id}' not found or inactive")
            return BusinessSummary(
                business_id=record.business_id,
                name=record.name,
                location=record.location,
            )

        data = await self._client.get(f"/businesses/{business_id}")
        if not data or not data.get("is_active", True):
            raise NotFoundError(f"Business '{business_id}' not found or inactive")
        return BusinessSummary(**{key: data.get(key) for key in ("business_id", "name", "location")})

    async def _fetch_bookings(
        self, business_id: int, target_date: str, staff_id: Optional[str]
    ) -> List[Booking]:
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            if not self._bookings:
                raise RuntimeError("Mock booking repository not configured")
            return await self._bookings.list_for_date(business_id, target_date, staff_id)

        params = {"date": target_date}
        if staff_id:
            params["staff_id"] = staff_id
        data = await self._client.get(f"/businesses/{business_id}/bookings", params=params)
        return parse_bookings(data.get("items", []))

    async def _locate_booking(self, business_id: int, booking_id: str) -> Tuple[str, Optional[str]]:
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            if not self._bookings:
                raise RuntimeError("Mock booking repository not configured")
            record = await self._bookings.get(booking_id)
            if not record or record["business_id"] != business_id:
                raise NotFoundError(f"Booking '{booking_id}' not found")
            return str(record["date"]), record.get("staff_id")

        data = await self._client.get(f"/bookings/{booking_id}")
        if not data or data.get("business_id") != business_id:
            raise NotFoundError(f"Booking '{booking_id}' not found")
        return str(data["date"]), data.get("staff_id")
