from fastapi import APIRouter, Depends

from queueboard.dependencies.services import get_queue_status_service
from queueboard.schemas.queue import (
    QueuePositionRequest,
    QueuePositionResponse,
    QueueStatusRequest,
    QueueStatusResponse,
)
from queueboard.services import QueueStatusService
from queueboard.services.exceptions import ServiceError
from queueboard.tools.errors import to_http_exception

router = APIRouter()


@router.post("/status", response_model=QueueStatusResponse)
async def queue_status(
    req: QueueStatusRequest,
    service: QueueStatusService = Depends(get_queue_status_service),
):
    try:
        return await service.status(req)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc


@router.post("/position", response_model=QueuePositionResponse)
async def queue_position(
    req: QueuePositionRequest,
    service: QueueStatusService = Depends(get_queue_status_service),
):
    try:
        return await service.position(req)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc
