from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


NotificationStatus = Literal["SENT", "FAILED"]


class ReminderRunRequest(BaseModel):
    business_id: Optional[int] = Field(
        None, description="Limit the sweep to one business. All businesses when omitted."
    )
    now: Optional[datetime] = Field(
        None, description="Reference time for the sweep. Defaults to the current UTC time."
    )


class ReminderOutcome(BaseModel):
    booking_id: str
    minutes_until: Optional[int] = None
    status: NotificationStatus
    error: Optional[str] = None


class ReminderRunResponse(BaseModel):
    checked: int
    reminders_sent: int
    failed: int
    outcomes: List[ReminderOutcome] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class QueueUpdate(BaseModel):
    booking_id: str
    business_id: int
    staff_id: Optional[str] = None
    position: int
    estimated_wait_minutes: int


class QueueUpdateRunResponse(BaseModel):
    checked: int
    updates_sent: int
    updates: List[QueueUpdate] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class CleanupRequest(BaseModel):
    retention_days: Optional[int] = Field(None, ge=1)


class CleanupResponse(BaseModel):
    deleted: int
    cutoff: str
