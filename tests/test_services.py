import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from queueboard.schemas.booking import BookingCreateRequest, BookingStatus
from queueboard.schemas.queue import QueuePositionRequest, QueueStatusRequest
from queueboard.schemas.reminder import CleanupRequest, ReminderRunRequest
from queueboard.services.exceptions import (
    DownstreamServiceError,
    NotFoundError,
    ServiceError,
    ValidationError,
)
from queueboard.services.mock_store import SEED_DATE, get_mock_store, reset_mock_store
from queueboard.services.notifier import LoggingNotifier, Notifier
from queueboard.services.queue_status import QueueStatusService
from queueboard.services.reminders import ReminderService


SEED_BUSINESS_ID = 1001
EMPTY_BUSINESS_ID = 1002
INACTIVE_BUSINESS_ID = 1003
# 13:30 in Bangkok, half an hour before Sunee's 14:00 slot.
SWEEP_TIME = datetime(2025, 9, 5, 6, 30, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _reset_store() -> None:
    reset_mock_store()
    yield
    reset_mock_store()


class MockLatencyClient:
    """Client stub that records simulate_latency calls."""

    def __init__(self) -> None:
        self.use_mock_data = True
        self.latency_called = False

    async def simulate_latency(self) -> None:
        self.latency_called = True


class FailingNotifier(Notifier):
    async def send_reminder(self, booking, minutes_until):
        raise RuntimeError("LINE push rejected")

    async def send_queue_update(self, booking, position):
        raise RuntimeError("LINE push rejected")


def test_queue_status_for_seeded_day() -> None:
    client = MockLatencyClient()
    service = QueueStatusService(client)

    response = asyncio.run(
        service.status(QueueStatusRequest(business_id=SEED_BUSINESS_ID, date=SEED_DATE))
    )

    assert client.latency_called is True
    assert response.business.name == "Silom Barber House"
    assert response.date == SEED_DATE
    # Two staff queues, so there is no single serving number for the business.
    assert response.current_serving is None
    assert response.next_serving is None
    assert response.total_queue == 5
    assert response.average_wait_time == 25
    assert response.estimated_wait_time == 50
    assert [
        (queue.staff_id, queue.current_serving, queue.total_queue, queue.estimated_wait_time)
        for queue in response.staff_queues
    ] == [("STF-1", 3, 3, 50), ("STF-2", None, 2, 0)]
    assert [(item.queue_number, item.position, item.estimated_wait_minutes) for item in response.queue] == [
        (3, 0, 0),
        (4, 1, 25),
        (5, 2, 50),
    ]
    assert response.warnings == []


def test_queue_status_for_time_slot_staff_has_no_numbered_queue() -> None:
    service = QueueStatusService(MockLatencyClient())

    response = asyncio.run(
        service.status(
            QueueStatusRequest(business_id=SEED_BUSINESS_ID, date=SEED_DATE, staff_id="STF-2")
        )
    )

    assert response.current_serving is None
    assert response.total_queue == 2
    assert response.average_wait_time == 30
    assert response.queue == []


def test_queue_status_for_empty_day() -> None:
    service = QueueStatusService(MockLatencyClient())

    response = asyncio.run(
        service.status(QueueStatusRequest(business_id=EMPTY_BUSINESS_ID, date=SEED_DATE))
    )

    assert response.current_serving is None
    assert response.total_queue == 0
    assert response.queue == []
    assert response.staff_queues == []
    assert response.average_wait_time == 30


@pytest.mark.parametrize("business_id", [INACTIVE_BUSINESS_ID, 9999])
def test_queue_status_unknown_or_inactive_business(business_id: int) -> None:
    service = QueueStatusService(MockLatencyClient())

    with pytest.raises(NotFoundError):
        asyncio.run(service.status(QueueStatusRequest(business_id=business_id, date=SEED_DATE)))


def test_queue_status_rejects_bad_date() -> None:
    service = QueueStatusService(MockLatencyClient())

    with pytest.raises(ValidationError):
        asyncio.run(service.status(QueueStatusRequest(business_id=SEED_BUSINESS_ID, date="05/09/2025")))


def test_queue_status_reports_double_in_progress() -> None:
    store = get_mock_store()
    asyncio.run(store.bookings.update_status("BKG-00004", BookingStatus.IN_PROGRESS))
    service = QueueStatusService(MockLatencyClient())

    response = asyncio.run(
        service.status(
            QueueStatusRequest(business_id=SEED_BUSINESS_ID, date=SEED_DATE, staff_id="STF-1")
        )
    )

    assert response.current_serving == 3
    assert len(response.warnings) == 1


def _open_second_walk_in_queue() -> None:
    """Give Ploy (STF-2) three walk-ins, BKG-00009..11, with the first in the chair."""
    store = get_mock_store()
    for name in ("Lek", "Dao", "Porn"):
        asyncio.run(
            store.bookings.create(
                BookingCreateRequest(
                    business_id=SEED_BUSINESS_ID,
                    customer_name=name,
                    service_id=201,
                    date=SEED_DATE,
                    staff_id="STF-2",
                )
            )
        )
    asyncio.run(store.bookings.update_status("BKG-00009", BookingStatus.CHECKED_IN))
    asyncio.run(store.bookings.update_status("BKG-00009", BookingStatus.IN_PROGRESS))


def test_queue_status_keeps_staff_queues_apart() -> None:
    _open_second_walk_in_queue()
    service = QueueStatusService(MockLatencyClient())

    response = asyncio.run(
        service.status(QueueStatusRequest(business_id=SEED_BUSINESS_ID, date=SEED_DATE))
    )

    assert response.current_serving is None
    assert response.total_queue == 8
    assert response.estimated_wait_time == 60
    assert [
        (queue.staff_id, queue.current_serving, queue.average_wait_time, queue.estimated_wait_time)
        for queue in response.staff_queues
    ] == [("STF-1", 3, 25, 50), ("STF-2", 1, 30, 60)]
    assert [(item.booking_id, item.staff_id, item.position) for item in response.queue] == [
        ("BKG-00003", "STF-1", 0),
        ("BKG-00004", "STF-1", 1),
        ("BKG-00005", "STF-1", 2),
        ("BKG-00009", "STF-2", 0),
        ("BKG-00010", "STF-2", 1),
        ("BKG-00011", "STF-2", 2),
    ]
    assert response.warnings == []


def test_queue_status_items_match_queue_position() -> None:
    _open_second_walk_in_queue()
    service = QueueStatusService(MockLatencyClient())

    response = asyncio.run(
        service.status(QueueStatusRequest(business_id=SEED_BUSINESS_ID, date=SEED_DATE))
    )

    for item in response.queue:
        position = asyncio.run(
            service.position(
                QueuePositionRequest(business_id=SEED_BUSINESS_ID, booking_id=item.booking_id)
            )
        )
        assert (item.position, item.estimated_wait_minutes) == (
            position.position,
            position.estimated_wait_minutes,
        )

    by_id = {item.booking_id: item for item in response.queue}
    assert (by_id["BKG-00005"].position, by_id["BKG-00005"].estimated_wait_minutes) == (2, 50)
    assert (by_id["BKG-00011"].position, by_id["BKG-00011"].estimated_wait_minutes) == (2, 60)


def test_new_walk_in_gets_next_sequence_position() -> None:
    store = get_mock_store()
    booking = asyncio.run(
        store.bookings.create(
            BookingCreateRequest(
                business_id=SEED_BUSINESS_ID,
                customer_name="Nok",
                service_id=202,
                date=SEED_DATE,
                staff_id="STF-1",
            )
        )
    )

    assert booking.sequence_position == 7
    assert booking.service_duration_minutes == 20

    service = QueueStatusService(MockLatencyClient())
    position = asyncio.run(
        service.position(QueuePositionRequest(business_id=SEED_BUSINESS_ID, booking_id=booking.id))
    )
    assert position.position == 4
    assert position.estimated_wait_minutes == 100


def test_queue_position_for_waiting_booking() -> None:
    service = QueueStatusService(MockLatencyClient())

    response = asyncio.run(
        service.position(QueuePositionRequest(business_id=SEED_BUSINESS_ID, booking_id="BKG-00005"))
    )

    assert response.queue_number == 5
    assert response.current_serving == 3
    assert response.position == 2
    assert response.estimated_wait_minutes == 50


def test_queue_position_for_time_slot_booking_is_invalid() -> None:
    service = QueueStatusService(MockLatencyClient())

    with pytest.raises(ValidationError):
        asyncio.run(
            service.position(QueuePositionRequest(business_id=SEED_BUSINESS_ID, booking_id="BKG-00007"))
        )


def test_queue_position_wrong_business() -> None:
    service = QueueStatusService(MockLatencyClient())

    with pytest.raises(NotFoundError):
        asyncio.run(
            service.position(QueuePositionRequest(business_id=EMPTY_BUSINESS_ID, booking_id="BKG-00005"))
        )


def test_status_transitions_follow_booking_lifecycle() -> None:
    store = get_mock_store()

    with pytest.raises(ValidationError):
        asyncio.run(store.bookings.update_status("BKG-00005", BookingStatus.COMPLETED))
    with pytest.raises(ValidationError):
        asyncio.run(store.bookings.update_status("BKG-00001", BookingStatus.CONFIRMED))

    booking = asyncio.run(store.bookings.update_status("BKG-00005", BookingStatus.CHECKED_IN))
    assert booking.status is BookingStatus.CHECKED_IN

    with pytest.raises(NotFoundError):
        asyncio.run(store.bookings.update_status("BKG-99999", BookingStatus.CHECKED_IN))


def test_reminder_sweep_sends_once() -> None:
    notifier = LoggingNotifier()
    service = ReminderService(MockLatencyClient(), notifier=notifier)
    request = ReminderRunRequest(business_id=SEED_BUSINESS_ID, now=SWEEP_TIME)

    first = asyncio.run(service.run_reminders(request))

    assert first.checked == 4
    assert first.reminders_sent == 1
    assert first.failed == 0
    assert first.outcomes[0].booking_id == "BKG-00007"
    assert first.outcomes[0].minutes_until == 30

    store = get_mock_store()
    stored = asyncio.run(store.bookings.get("BKG-00007"))
    assert stored and stored["reminder_sent"] is True
    assert asyncio.run(store.notifications.has_sent("BKG-00007", "REMINDER_30MIN")) is True

    second = asyncio.run(service.run_reminders(request))
    assert second.reminders_sent == 0
    assert len(notifier.dispatched) == 1


def test_reminder_sweep_across_all_businesses_skips_inactive() -> None:
    service = ReminderService(MockLatencyClient())

    response = asyncio.run(service.run_reminders(ReminderRunRequest(now=SWEEP_TIME)))

    assert response.checked == 4
    assert response.reminders_sent == 1


def test_reminder_sweep_outside_window_sends_nothing() -> None:
    service = ReminderService(MockLatencyClient())

    response = asyncio.run(
        service.run_reminders(
            ReminderRunRequest(business_id=SEED_BUSINESS_ID, now=SWEEP_TIME - timedelta(minutes=20))
        )
    )

    assert response.reminders_sent == 0
    assert response.outcomes == []


def test_failed_reminder_is_recorded_and_retried() -> None:
    service = ReminderService(MockLatencyClient(), notifier=FailingNotifier())
    request = ReminderRunRequest(business_id=SEED_BUSINESS_ID, now=SWEEP_TIME)

    response = asyncio.run(service.run_reminders(request))

    assert response.reminders_sent == 0
    assert response.failed == 1
    assert response.outcomes[0].error == "LINE push rejected"

    store = get_mock_store()
    stored = asyncio.run(store.bookings.get("BKG-00007"))
    assert stored and stored["reminder_sent"] is False
    records = asyncio.run(store.notifications.list("BKG-00007"))
    assert [record["status"] for record in records] == ["FAILED"]

    retry = ReminderService(MockLatencyClient(), notifier=LoggingNotifier())
    assert asyncio.run(retry.run_reminders(request)).reminders_sent == 1


def test_queue_updates_for_checked_in_and_every_nth_position() -> None:
    service = ReminderService(MockLatencyClient())
    request = ReminderRunRequest(business_id=SEED_BUSINESS_ID, now=SWEEP_TIME)

    response = asyncio.run(service.run_queue_updates(request))

    assert response.checked == 2
    assert response.updates_sent == 1
    assert response.updates[0].booking_id == "BKG-00004"
    assert response.updates[0].position == 1
    # Ploy's time-slot bookings get the 30-minute reminder instead.
    assert all(update.staff_id == "STF-1" for update in response.updates)

    frequent = ReminderService(MockLatencyClient(), queue_update_every=2)
    response = asyncio.run(frequent.run_queue_updates(request))
    assert {update.booking_id for update in response.updates} == {"BKG-00004", "BKG-00005"}


def test_cleanup_removes_old_notifications() -> None:
    store = get_mock_store()
    asyncio.run(
        store.notifications.record(
            booking_id="BKG-00001",
            notification_type="REMINDER_30MIN",
            status="SENT",
            created_at=datetime.now(timezone.utc) - timedelta(days=40),
        )
    )
    asyncio.run(
        store.notifications.record(
            booking_id="BKG-00002", notification_type="REMINDER_30MIN", status="SENT"
        )
    )
    service = ReminderService(MockLatencyClient())

    response = asyncio.run(service.cleanup_notifications(CleanupRequest()))

    assert response.deleted == 1
    remaining = asyncio.run(store.notifications.list())
    assert [record["booking_id"] for record in remaining] == ["BKG-00002"]


def test_queue_status_real_mode_fetches_from_backend() -> None:
    client = type(
        "ClientStub",
        (),
        {
            "use_mock_data": False,
            "get": AsyncMock(
                side_effect=[
                    {"business_id": 77, "name": "Remote Salon", "location": "Chiang Mai"},
                    {
                        "items": [
                            {
                                "id": "r1",
                                "sequence_position": 1,
                                "service_duration_minutes": 40,
                                "status": "COMPLETED",
                            },
                            {
                                "id": "r2",
                                "sequence_position": 2,
                                "service_duration_minutes": 30,
                                "status": "IN_PROGRESS",
                            },
                            {
                                "id": "r3",
                                "sequence_position": 3,
                                "service_duration_minutes": 30,
                                "status": "CONFIRMED",
                            },
                        ]
                    },
                ]
            ),
        },
    )()
    service = QueueStatusService(client)

    response = asyncio.run(
        service.status(QueueStatusRequest(business_id=77, date="2025-09-05", staff_id="S1"))
    )

    client.get.assert_any_await("/businesses/77")
    client.get.assert_any_await(
        "/businesses/77/bookings", params={"date": "2025-09-05", "staff_id": "S1"}
    )
    assert response.business.name == "Remote Salon"
    assert response.current_serving == 2
    assert response.average_wait_time == 40
    assert response.queue[-1].estimated_wait_minutes == 40


def test_queue_status_real_mode_rejects_malformed_bookings() -> None:
    client = type(
        "ClientStub",
        (),
        {
            "use_mock_data": False,
            "get": AsyncMock(
                side_effect=[
                    {"business_id": 77, "name": "Remote Salon"},
                    {"items": [{"id": "r1", "status": "WAITING"}]},
                ]
            ),
        },
    )()
    service = QueueStatusService(client)

    with pytest.raises(ServiceError, match="malformed"):
        asyncio.run(service.status(QueueStatusRequest(business_id=77, date="2025-09-05")))


def test_reminder_sweep_real_mode_patches_flag() -> None:
    client = type(
        "ClientStub",
        (),
        {
            "use_mock_data": False,
            "get": AsyncMock(
                side_effect=[
                    {"items": [{"business_id": 77, "utc_offset": "+07:00"}]},
                    {
                        "items": [
                            {
                                "id": "r9",
                                "scheduled_time": "2025-09-05T14:00:00+07:00",
                                "service_duration_minutes": 30,
                                "status": "CONFIRMED",
                            }
                        ]
                    },
                ]
            ),
            "post": AsyncMock(return_value={}),
            "patch": AsyncMock(return_value={}),
        },
    )()
    service = ReminderService(client, notifier=LoggingNotifier())

    response = asyncio.run(service.run_reminders(ReminderRunRequest(now=SWEEP_TIME)))

    assert response.reminders_sent == 1
    client.get.assert_any_await("/businesses/77/bookings", params={"date": "2025-09-05"})
    client.patch.assert_awaited_once_with("/bookings/r9", {"reminder_sent": True})


def test_reminder_sweep_records_backend_errors_per_business() -> None:
    client = type(
        "ClientStub",
        (),
        {
            "use_mock_data": False,
            "get": AsyncMock(
                side_effect=[
                    {
                        "items": [
                            {"business_id": 77, "utc_offset": "+07:00"},
                            {"business_id": 78, "utc_offset": "+07:00"},
                        ]
                    },
                    {"items": [{"id": "r1", "status": "WAITING"}]},
                    {
                        "items": [
                            {
                                "id": "r9",
                                "scheduled_time": "2025-09-05T14:00:00+07:00",
                                "service_duration_minutes": 30,
                                "status": "CONFIRMED",
                            }
                        ]
                    },
                ]
            ),
            "patch": AsyncMock(return_value={}),
        },
    )()
    service = ReminderService(client, notifier=LoggingNotifier())

    response = asyncio.run(service.run_reminders(ReminderRunRequest(now=SWEEP_TIME)))

    assert response.errors == ["business 77: Booking backend returned malformed booking data"]
    assert response.reminders_sent == 1
    client.patch.assert_awaited_once_with("/bookings/r9", {"reminder_sent": True})


def test_queue_update_sweep_records_backend_errors() -> None:
    client = type(
        "ClientStub",
        (),
        {
            "use_mock_data": False,
            "get": AsyncMock(
                side_effect=[
                    {"items": [{"business_id": 77}]},
                    DownstreamServiceError("Booking backend returned 503", status_code=503),
                ]
            ),
        },
    )()
    service = ReminderService(client, notifier=LoggingNotifier())

    response = asyncio.run(service.run_queue_updates(ReminderRunRequest(now=SWEEP_TIME)))

    assert response.updates_sent == 0
    assert response.errors == ["business 77: Booking backend returned 503"]
