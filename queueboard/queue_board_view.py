"""HTML queue board rendered from the queue-status service."""
from __future__ import annotations

import html
import json
from typing import Any, Dict, Iterable, List, Mapping, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import HTMLResponse

from queueboard.dependencies.services import get_queue_status_service
from queueboard.schemas.queue import QueueStatusRequest, QueueStatusResponse
from queueboard.services import QueueStatusService
from queueboard.services.exceptions import ServiceError
from queueboard.services.mock_store import get_mock_store
from queueboard.tools.errors import to_http_exception

router = APIRouter()


def _stringify(value: Any) -> str:
    """Return a JSON-friendly string representation for table cells."""
    if value is None:
        return ""
    if isinstance(value, (str, int, float, bool)):
        return str(value)
    return json.dumps(value, default=str)


def _build_table(title: str, rows: Iterable[Mapping[str, Any]]) -> str:
    row_list: List[Dict[str, Any]] = [dict(row) for row in rows]
    section_parts = [f"<section><h2>{html.escape(title)}</h2>"]
    if not row_list:
        section_parts.append("<p>No records found.</p></section>")
        return "".join(section_parts)

    columns: List[str] = []
    for row in row_list:
        for key in row.keys():
            if key not in columns:
                columns.append(key)

    header = "".join(f"<th>{html.escape(column)}</th>" for column in columns)
    body_rows: List[str] = []
    for row in row_list:
        cells = [f"<td>{html.escape(_stringify(row.get(column)))}</td>" for column in columns]
        body_rows.append("<tr>" + "".join(cells) + "</tr>")
    section_parts.append(
        "<table><thead><tr>" + header + "</tr></thead><tbody>" + "".join(body_rows) + "</tbody></table>"
    )
    section_parts.append("</section>")
    return "".join(section_parts)


def _summary_rows(status: QueueStatusResponse) -> List[Dict[str, Any]]:
    if not status.staff_queues:
        return [
            {
                "staff_id": None,
                "current_serving": None,
                "next_serving": None,
                "total_queue": 0,
                "average_wait_time": status.average_wait_time,
                "estimated_wait_time": 0,
                "last_updated": status.last_updated,
            }
        ]
    return [
        {**staff_queue.model_dump(mode="json"), "last_updated": status.last_updated}
        for staff_queue in status.staff_queues
    ]


def _render_page(title: str, sections: Iterable[str]) -> HTMLResponse:
    html_content = f"""
    <html>
        <head>
            <title>{html.escape(title)}</title>
            <meta http-equiv="refresh" content="30">
            <style>
                body {{ font-family: Arial, sans-serif; margin: 2rem; }}
                h1 {{ text-align: center; }}
                section {{ margin-bottom: 2rem; }}
                table {{ border-collapse: collapse; width: 100%; }}
                th, td {{ border: 1px solid #ccc; padding: 0.5rem; text-align: left; }}
                th {{ background-color: #f0f0f0; }}
                tbody tr:nth-child(even) {{ background-color: #fafafa; }}
                .warning {{ color: #a15c00; }}
            </style>
        </head>
        <body>
            <h1>{html.escape(title)}</h1>
            {"".join(sections)}
        </body>
    </html>
    """
    return HTMLResponse(content=html_content)


@router.get("/queue-board/{business_id}", response_class=HTMLResponse)
async def view_queue_board(
    business_id: int,
    date: Optional[str] = None,
    staff_id: Optional[str] = None,
    service: QueueStatusService = Depends(get_queue_status_service),
) -> HTMLResponse:
    """Render the live queue for a business; the page refreshes every 30 seconds."""
    try:
        status = await service.status(
            QueueStatusRequest(business_id=business_id, date=date, staff_id=staff_id)
        )
    except ServiceError as exc:
        raise to_http_exception(exc) from exc

    sections = [
        _build_table("Now Serving", _summary_rows(status)),
        _build_table("Queue", (item.model_dump(mode="json") for item in status.queue)),
    ]
    sections.extend(
        f'<p class="warning">{html.escape(warning)}</p>' for warning in status.warnings
    )
    return _render_page(f"{status.business.name} Queue ({status.date})", sections)


@router.get("/mock-data", response_class=HTMLResponse)
async def view_mock_data() -> HTMLResponse:
    """Render the bookings and notifications held by the in-memory store."""
    store = get_mock_store()
    sections = [
        _build_table(
            "Businesses",
            (
                {
                    "business_id": business.business_id,
                    "name": business.name,
                    "location": business.location,
                    "is_active": business.is_active,
                    "staff": [staff.staff_id for staff in business.staff],
                }
                for business in store.master_data.iter_businesses()
            ),
        ),
        _build_table("Bookings", store.bookings.iter_records()),
        _build_table("Notifications", await store.notifications.list()),
    ]
    return _render_page("Mock Data Overview", sections)


@router.delete("/mock-data/bookings/{booking_id}")
async def delete_mock_booking(booking_id: str) -> Dict[str, str]:
    """Remove a booking from the mock store."""

    deleted = await get_mock_store().bookings.delete(booking_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Record not found")
    return {"status": "deleted", "collection": "bookings", "record_id": booking_id}
