from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from queueboard.schemas.booking import BookingStatus


class QueueStatus(BaseModel):
    """Derived queue view for one business/date/staff snapshot."""

    current_serving: Optional[int] = None
    next_serving: Optional[int] = None
    total_queue: int = 0
    waiting_count: int = 0
    average_wait_time: float
    estimated_wait_time: float = 0.0
    consistency_warnings: List[str] = Field(default_factory=list)
    computed_at: datetime


class QueuePosition(BaseModel):
    position: int = Field(..., ge=0)
    estimated_wait_minutes: float = Field(..., ge=0)


class BusinessSummary(BaseModel):
    """Lightweight projection of a business."""

    business_id: int
    name: str
    location: Optional[str] = None


class QueueStatusRequest(BaseModel):
    business_id: int = Field(..., description="Target business identifier")
    date: Optional[str] = Field(
        None,
        description="ISO date (YYYY-MM-DD) to report on. Defaults to today in UTC.",
    )
    staff_id: Optional[str] = Field(None, description="Restrict the queue to one staff member")


class QueueItem(BaseModel):
    booking_id: str
    staff_id: Optional[str] = None
    queue_number: Optional[int] = None
    customer_name: Optional[str] = None
    service_name: Optional[str] = None
    status: BookingStatus
    scheduled_time: Optional[str] = None
    position: int
    estimated_wait_minutes: int


class StaffQueueSummary(BaseModel):
    """Headline numbers for one staff member's queue."""

    staff_id: Optional[str] = None
    current_serving: Optional[int] = None
    next_serving: Optional[int] = None
    total_queue: int
    average_wait_time: int
    estimated_wait_time: int


class QueueStatusResponse(BaseModel):
    business: BusinessSummary
    date: str
    current_serving: Optional[int] = None
    next_serving: Optional[int] = None
    total_queue: int
    average_wait_time: int
    estimated_wait_time: int
    queue: List[QueueItem]
    staff_queues: List[StaffQueueSummary] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    last_updated: str


class QueuePositionRequest(BaseModel):
    business_id: int
    booking_id: str


class QueuePositionResponse(BaseModel):
    booking_id: str
    queue_number: int
    current_serving: Optional[int] = None
    position: int
    estimated_wait_minutes: int
