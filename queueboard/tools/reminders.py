from fastapi import APIRouter, Depends

from queueboard.dependencies.services import get_reminder_service
from queueboard.schemas.reminder import (
    CleanupRequest,
    CleanupResponse,
    QueueUpdateRunResponse,
    ReminderRunRequest,
    ReminderRunResponse,
)
from queueboard.services import ReminderService
from queueboard.services.exceptions import ServiceError
from queueboard.tools.errors import to_http_exception

router = APIRouter()


@router.post("/run", response_model=ReminderRunResponse)
async def run_reminders(
    req: ReminderRunRequest,
    service: ReminderService = Depends(get_reminder_service),
):
    try:
        return await service.run_reminders(req)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc


@router.post("/queue-updates", response_model=QueueUpdateRunResponse)
async def run_queue_updates(
    req: ReminderRunRequest,
    service: ReminderService = Depends(get_reminder_service),
):
    try:
        return await service.run_queue_updates(req)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_notifications(
    req: CleanupRequest,
    service: ReminderService = Depends(get_reminder_service),
):
    try:
        return await service.cleanup_notifications(req)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc
