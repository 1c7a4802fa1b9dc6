# queueboard/mcp_server.py
from __future__ import annotations

import logging
from typing import Optional

from mcp.server.fastmcp import Context, FastMCP
from pydantic import BaseModel, Field

from queueboard.config import get_settings
from queueboard.dependencies.services import get_backend_client_cached
from queueboard.schemas.queue import (
    QueuePositionRequest,
    QueuePositionResponse,
    QueueStatusRequest,
    QueueStatusResponse,
)
from queueboard.services import QueueEstimator, QueueStatusService

log = logging.getLogger("queueboard.mcp")

mcp = FastMCP("queueboard_mcp")


class QueueStatusInput(BaseModel):
    business_id: int = Field(..., description="Business ID, e.g. 1001")
    date: Optional[str] = Field(None, description="ISO date, e.g. '2025-09-05'. Defaults to today.")
    staff_id: Optional[str] = Field(None, description="Restrict to one staff member, e.g. 'STF-1'")


class QueuePositionInput(BaseModel):
    business_id: int
    booking_id: str = Field(..., description="Booking ID, e.g. 'BKG-00005'")


def _service() -> QueueStatusService:
    estimator = QueueEstimator(get_settings().estimator_config())
    return QueueStatusService(get_backend_client_cached(), estimator=estimator)


@mcp.tool(name="queue_status", description="Current serving number, queue length and wait estimate")
async def queue_status(input: QueueStatusInput, ctx: Context) -> QueueStatusResponse:
    log.debug("queue_status input=%s", input.model_dump())
    out = await _service().status(QueueStatusRequest(**input.model_dump()))
    log.debug("queue_status output=%s", out.model_dump())
    return out


@mcp.tool(name="queue_position", description="Queue position and estimated wait for one booking")
async def queue_position(input: QueuePositionInput, ctx: Context) -> QueuePositionResponse:
    log.debug("queue_position input=%s", input.model_dump())
    out = await _service().position(QueuePositionRequest(**input.model_dump()))
    log.debug("queue_position output=%s", out.model_dump())
    return out


@mcp.tool(name="ping", description="Health check")
async def ping(message: str) -> str:
    log.debug("ping %s", message)
    return f"pong: {message}"
