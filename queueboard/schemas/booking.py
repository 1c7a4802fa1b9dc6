from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field


class BookingStatus(str, Enum):
    CONFIRMED = "CONFIRMED"
    CHECKED_IN = "CHECKED_IN"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


ACTIVE_STATUSES: FrozenSet[BookingStatus] = frozenset(
    {BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN, BookingStatus.IN_PROGRESS}
)
# Statuses a pre-appointment reminder may target.
REMINDABLE_STATUSES: FrozenSet[BookingStatus] = frozenset(
    {BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN}
)

ALLOWED_TRANSITIONS = {
    BookingStatus.CONFIRMED: frozenset(
        {BookingStatus.CHECKED_IN, BookingStatus.CANCELLED, BookingStatus.NO_SHOW}
    ),
    BookingStatus.CHECKED_IN: frozenset({BookingStatus.IN_PROGRESS, BookingStatus.NO_SHOW}),
    BookingStatus.IN_PROGRESS: frozenset({BookingStatus.COMPLETED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.NO_SHOW: frozenset(),
}


class Booking(BaseModel):
    """Read-only booking snapshot consumed by the queue estimator."""

    model_config = ConfigDict(frozen=True)

    id: str
    sequence_position: Optional[int] = Field(
        None, description="Queue number, null for fixed time-slot bookings"
    )
    scheduled_time: Optional[datetime] = Field(
        None, description="Wall-clock start, null for pure queue-number bookings"
    )
    service_duration_minutes: int
    status: BookingStatus = BookingStatus.CONFIRMED
    reminder_sent: bool = False
    staff_id: Optional[str] = None
    customer_name: Optional[str] = None
    service_name: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


class BookingCreateRequest(BaseModel):
    business_id: int
    customer_name: str
    service_id: int
    date: str = Field(..., description="ISO date (YYYY-MM-DD)")
    time: Optional[str] = Field(None, description="HH:MM for time-slot bookings")
    staff_id: Optional[str] = None

