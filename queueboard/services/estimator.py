"""Queue position, wait-time and reminder-window calculations.

Everything here is a pure function of the booking snapshot handed in by the
caller. Nothing is fetched or persisted, so the functions are safe to call
from any number of concurrent requests.
"""

from __future__ import annotations

import logging
import math
from collections import Counter, defaultdict
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from queueboard.config import EstimatorConfig
from queueboard.schemas.booking import (
    ACTIVE_STATUSES,
    REMINDABLE_STATUSES,
    Booking,
    BookingStatus,
)
from queueboard.schemas.queue import QueuePosition, QueueStatus
from queueboard.services.exceptions import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = EstimatorConfig()


def _normalize_dt(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _queue_order(booking: Booking) -> Tuple[int, int, datetime]:
    scheduled = (
        _normalize_dt(booking.scheduled_time)
        if booking.scheduled_time
        else datetime.max.replace(tzinfo=timezone.utc)
    )
    if booking.sequence_position is None:
        return (1, 0, scheduled)
    return (0, booking.sequence_position, scheduled)


def validate_bookings(bookings: Sequence[Booking]) -> None:
    """Raise :class:`ValidationError` listing every problem in the snapshot."""

    issues: List[str] = []
    positions: Counter = Counter()
    for booking in bookings:
        if booking.service_duration_minutes <= 0:
            issues.append(
                f"booking {booking.id} has non-positive duration "
                f"{booking.service_duration_minutes}"
            )
        if booking.sequence_position is None:
            continue
        if booking.sequence_position <= 0:
            issues.append(
                f"booking {booking.id} has invalid sequence position "
                f"{booking.sequence_position}"
            )
        positions[(booking.staff_id, booking.sequence_position)] += 1

    for (staff_id, position), count in sorted(
        positions.items(), key=lambda item: (str(item[0][0]), item[0][1])
    ):
        if count > 1:
            scope = f" for staff {staff_id}" if staff_id else ""
            issues.append(f"sequence position {position} used {count} times{scope}")

    if issues:
        raise ValidationError(issues)


def group_by_staff(bookings: Iterable[Booking]) -> Dict[Optional[str], List[Booking]]:
    """Split bookings per staff member, each group in queue order."""

    groups: Dict[Optional[str], List[Booking]] = defaultdict(list)
    for booking in bookings:
        groups[booking.staff_id].append(booking)
    return {staff_id: sorted(items, key=_queue_order) for staff_id, items in groups.items()}


def average_service_time(bookings: Sequence[Booking], default: float) -> float:
    """Mean duration of completed bookings, or ``default`` when none have finished."""

    completed = [
        booking.service_duration_minutes
        for booking in bookings
        if booking.status is BookingStatus.COMPLETED
    ]
    if not completed:
        return float(default)
    return sum(completed) / len(completed)


def compute_queue_status(
    bookings: Sequence[Booking],
    now: datetime,
    config: EstimatorConfig = DEFAULT_CONFIG,
) -> QueueStatus:
    """Summarise a single business/date (optionally staff) booking snapshot.

    More than one ``IN_PROGRESS`` booking for the same staff member is
    reported in ``consistency_warnings`` and resolved by taking the lowest
    sequence position; it is not treated as fatal.
    """
    validate_bookings(bookings)

    active = [booking for booking in bookings if booking.status in ACTIVE_STATUSES]
    warnings: List[str] = []

    in_progress_by_staff: Dict[Optional[str], List[int]] = defaultdict(list)
    for booking in active:
        if booking.status is BookingStatus.IN_PROGRESS and booking.sequence_position is not None:
            in_progress_by_staff[booking.staff_id].append(booking.sequence_position)

    for staff_id, serving in sorted(in_progress_by_staff.items(), key=lambda item: str(item[0])):
        if len(serving) > 1:
            scope = f"staff {staff_id}" if staff_id else "the queue"
            message = (
                f"{len(serving)} bookings in progress for {scope} "
                f"(positions {sorted(serving)}); using {min(serving)}"
            )
            logger.warning("Queue consistency: %s", message)
            warnings.append(message)

    all_serving = [position for serving in in_progress_by_staff.values() for position in serving]
    current_serving = min(all_serving) if all_serving else None

    next_serving: Optional[int] = None
    if current_serving is None:
        waiting_positions = [
            booking.sequence_position
            for booking in active
            if booking.status in REMINDABLE_STATUSES and booking.sequence_position is not None
        ]
        next_serving = min(waiting_positions) if waiting_positions else None

    reference = current_serving or next_serving or 0
    waiting_count = sum(
        1
        for booking in active
        if booking.status in REMINDABLE_STATUSES
        and booking.sequence_position is not None
        and booking.sequence_position > reference
    )

    average = average_service_time(bookings, config.default_service_duration_minutes)

    return QueueStatus(
        current_serving=current_serving,
        next_serving=next_serving,
        total_queue=len(active),
        waiting_count=waiting_count,
        average_wait_time=average,
        estimated_wait_time=waiting_count * average,
        consistency_warnings=warnings,
        computed_at=now,
    )


def estimate_queue_position(
    booking: Booking,
    current_serving: Optional[int],
    average_wait_time: float,
) -> QueuePosition:
    """Estimate how many bookings are ahead and the flat-average wait.

    The wait is ``position * average_wait_time``; the individual durations
    of the bookings ahead are not summed.
    """
    if booking.sequence_position is None:
        raise ValidationError([f"booking {booking.id} has no sequence position"])

    if current_serving is None:
        position = booking.sequence_position
    elif booking.sequence_position <= current_serving:
        position = 0
    else:
        position = booking.sequence_position - current_serving

    position = max(position, 0)
    wait = max(position * average_wait_time, 0.0)
    return QueuePosition(position=position, estimated_wait_minutes=wait)


def minutes_until(booking: Booking, now: datetime) -> Optional[int]:
    """Whole minutes from ``now`` to the booking start, rounded half up."""

    if booking.scheduled_time is None:
        return None
    delta = _normalize_dt(booking.scheduled_time) - _normalize_dt(now)
    return math.floor(delta.total_seconds() / 60 + 0.5)


def is_within_reminder_window(
    booking: Booking,
    now: datetime,
    window_minutes: int = 30,
    tolerance_minutes: int = 5,
) -> bool:
    """True when the booking starts inside the inclusive reminder band.

    The band is ``[window - tolerance, window + tolerance]`` minutes ahead of
    ``now`` so a polling job does not need to fire on the exact minute.
    """
    if booking.reminder_sent or booking.status not in REMINDABLE_STATUSES:
        return False
    remaining = minutes_until(booking, now)
    if remaining is None:
        return False
    return window_minutes - tolerance_minutes <= remaining <= window_minutes + tolerance_minutes


class QueueEstimator:
    """Estimator operations bound to one :class:`EstimatorConfig`."""

    def __init__(self, config: EstimatorConfig | None = None) -> None:
        self.config = config or DEFAULT_CONFIG

    def compute_status(self, bookings: Sequence[Booking], now: datetime) -> QueueStatus:
        return compute_queue_status(bookings, now, self.config)

    def estimate_position(self, booking: Booking, status: QueueStatus) -> QueuePosition:
        return estimate_queue_position(
            booking, status.current_serving, status.average_wait_time
        )

    def is_reminder_due(self, booking: Booking, now: datetime) -> bool:
        return is_within_reminder_window(
            booking,
            now,
            window_minutes=self.config.reminder_window_minutes,
            tolerance_minutes=self.config.reminder_tolerance_minutes,
        )

    def queue_snapshot(
        self, bookings: Sequence[Booking], now: datetime
    ) -> Tuple[QueueStatus, List[Tuple[Booking, QueuePosition]]]:
        """Status plus the position of every active numbered booking, in queue order."""

        status = self.compute_status(bookings, now)
        queued = sorted(
            (
                booking
                for booking in bookings
                if booking.is_active and booking.sequence_position is not None
            ),
            key=_queue_order,
        )
        return status, [(booking, self.estimate_position(booking, status)) for booking in queued]
