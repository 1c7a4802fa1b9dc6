from __future__ import annotations

import itertools
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from queueboard.schemas.booking import (
    ALLOWED_TRANSITIONS,
    Booking,
    BookingCreateRequest,
    BookingStatus,
)
from queueboard.services.exceptions import NotFoundError, ValidationError

SEED_DATE = "2025-09-05"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _BaseRepository:
    def __init__(self, prefix: str) -> None:
        self._prefix = prefix
        self._counter = itertools.count(1)

    def _next_id(self) -> str:
        return f"{self._prefix}-{next(self._counter):05d}"


class ServiceRecord:
    def __init__(self, *, service_id: int, name: str, duration_minutes: int) -> None:
        self.service_id = int(service_id)
        self.name = name
        self.duration_minutes = duration_minutes


class StaffRecord:
    def __init__(self, *, staff_id: str, name: str) -> None:
        self.staff_id = staff_id
        self.name = name


class BusinessRecord:
    def __init__(
        self,
        *,
        business_id: int,
        name: str,
        location: str,
        utc_offset: str,
        services: Iterable[ServiceRecord],
        staff: Iterable[StaffRecord] = (),
        is_active: bool = True,
    ) -> None:
        self.business_id = int(business_id)
        self.name = name
        self.location = location
        self.utc_offset = utc_offset
        self.services = list(services)
        self.staff = list(staff)
        self.is_active = is_active

    def local_date(self, moment: datetime) -> str:
        """Calendar date of ``moment`` in the business's own UTC offset."""

        offset = datetime.fromisoformat(f"2000-01-01T00:00:00{self.utc_offset}").tzinfo
        return moment.astimezone(offset).date().isoformat()

    def get_service(self, service_id: int) -> Optional[ServiceRecord]:
        for service in self.services:
            if service.service_id == int(service_id):
                return service
        return None


class MasterDataRepository:
    def __init__(self) -> None:
        self._businesses_by_id: Dict[int, BusinessRecord] = {}
        self._seed_businesses()

    def _seed_businesses(self) -> None:
        self.add_business(
            BusinessRecord(
                business_id=1001,
                name="Silom Barber House",
                location="Silom, Bangkok",
                utc_offset="+07:00",
                services=[
                    ServiceRecord(service_id=201, name="Classic Haircut", duration_minutes=30),
                    ServiceRecord(service_id=202, name="Beard Trim", duration_minutes=20),
                    ServiceRecord(service_id=203, name="Hair Wash", duration_minutes=15),
                    ServiceRecord(service_id=204, name="Hair Colour", duration_minutes=90),
                ],
                staff=[
                    StaffRecord(staff_id="STF-1", name="Niran"),
                    StaffRecord(staff_id="STF-2", name="Ploy"),
                ],
            )
        )
        self.add_business(
            BusinessRecord(
                business_id=1002,
                name="Lotus Nail Studio",
                location="Ari, Bangkok",
                utc_offset="+07:00",
                services=[
                    ServiceRecord(service_id=301, name="Gel Manicure", duration_minutes=45),
                    ServiceRecord(service_id=302, name="Pedicure", duration_minutes=50),
                ],
                staff=[StaffRecord(staff_id="STF-9", name="Mali")],
            )
        )
        self.add_business(
            BusinessRecord(
                business_id=1003,
                name="Closed Cafe Grooming",
                location="Thonglor, Bangkok",
                utc_offset="+07:00",
                services=[ServiceRecord(service_id=401, name="Dog Wash", duration_minutes=40)],
                is_active=False,
            )
        )

    def add_business(self, record: BusinessRecord) -> None:
        self._businesses_by_id[record.business_id] = record

    def iter_businesses(self) -> Iterable[BusinessRecord]:
        return list(self._businesses_by_id.values())

    def get_business(self, business_id: int) -> Optional[BusinessRecord]:
        return self._businesses_by_id.get(int(business_id))


class BookingRepository(_BaseRepository):
    def __init__(self, master_data: MasterDataRepository | None = None) -> None:
        super().__init__("BKG")
        self._master_data = master_data
        self._bookings: Dict[str, Dict[str, object]] = {}
        self._seed_defaults()

    def _seed_defaults(self) -> None:
        if not self._master_data:
            return

        business = self._master_data.get_business(1001)
        if not business:
            return

        # Niran runs a walk-in queue; Ploy takes fixed time slots.
        seeds = [
            ("Somchai", 201, "STF-1", None, BookingStatus.COMPLETED),
            ("Anan", 202, "STF-1", None, BookingStatus.COMPLETED),
            ("Kanya", 201, "STF-1", None, BookingStatus.IN_PROGRESS),
            ("Preecha", 203, "STF-1", None, BookingStatus.CHECKED_IN),
            ("Wichai", 201, "STF-1", None, BookingStatus.CONFIRMED),
            ("Malee", 201, "STF-1", None, BookingStatus.CANCELLED),
            ("Sunee", 201, "STF-2", "14:00", BookingStatus.CONFIRMED),
            ("Chai", 202, "STF-2", "14:30", BookingStatus.CONFIRMED),
        ]
        for customer_name, service_id, staff_id, time, status in seeds:
            record = self._build_record(
                business,
                BookingCreateRequest(
                    business_id=business.business_id,
                    customer_name=customer_name,
                    service_id=service_id,
                    date=SEED_DATE,
                    time=time,
                    staff_id=staff_id,
                ),
            )
            record["status"] = status.value
            self._bookings[str(record["booking_id"])] = record

    def _next_sequence_position(self, business_id: int, date: str, staff_id: Optional[str]) -> int:
        taken = [
            int(record["sequence_position"])
            for record in self._bookings.values()
            if record["business_id"] == business_id
            and record["date"] == date
            and record["staff_id"] == staff_id
            and record["sequence_position"] is not None
        ]
        return max(taken, default=0) + 1

    def _build_record(
        self, business: BusinessRecord, request: BookingCreateRequest
    ) -> Dict[str, object]:
        service = business.get_service(request.service_id)
        if service is None:
            raise NotFoundError(
                f"Service {request.service_id} not offered by business {business.business_id}"
            )
        sequence_position = None
        if not request.time:
            sequence_position = self._next_sequence_position(
                business.business_id, request.date, request.staff_id
            )
        return {
            "booking_id": self._next_id(),
            "business_id": business.business_id,
            "date": request.date,
            "time": request.time,
            "utc_offset": business.utc_offset,
            "staff_id": request.staff_id,
            "customer_name": request.customer_name,
            "service_id": service.service_id,
            "service_name": service.name,
            "duration_minutes": service.duration_minutes,
            "sequence_position": sequence_position,
            "status": BookingStatus.CONFIRMED.value,
            "reminder_sent": False,
            "created_at": _utc_now().isoformat(),
        }

    async def create(self, request: BookingCreateRequest) -> Booking:
        business = self._master_data.get_business(request.business_id) if self._master_data else None
        if not business:
            raise NotFoundError(f"Business '{request.business_id}' not found")
        record = self._build_record(business, request)
        self._bookings[str(record["booking_id"])] = record
        return self.to_booking(record)

    async def list_for_date(
        self,
        business_id: Optional[int],
        date: str,
        staff_id: Optional[str] = None,
    ) -> List[Booking]:
        return [
            self.to_booking(record)
            for record in self._bookings.values()
            if (business_id is None or record["business_id"] == business_id)
            and record["date"] == date
            and (staff_id is None or record["staff_id"] == staff_id)
        ]

    async def get(self, booking_id: str) -> Optional[Dict[str, object]]:
        booking = self._bookings.get(booking_id)
        return dict(booking) if booking is not None else None

    async def update_status(self, booking_id: str, status: BookingStatus) -> Booking:
        record = self._require(booking_id)
        current = BookingStatus(record["status"])
        if status not in ALLOWED_TRANSITIONS[current]:
            raise ValidationError(
                [f"booking {booking_id} cannot move from {current.value} to {status.value}"]
            )
        record["status"] = status.value
        return self.to_booking(record)

    async def mark_reminder_sent(self, booking_id: str) -> bool:
        """Flag the reminder as sent. Returns False if it was already set."""

        record = self._require(booking_id)
        if record["reminder_sent"]:
            return False
        record["reminder_sent"] = True
        return True

    async def delete(self, booking_id: str) -> bool:
        return self._bookings.pop(booking_id, None) is not None

    def iter_records(self) -> List[Dict[str, object]]:
        return [dict(record) for record in self._bookings.values()]

    def _require(self, booking_id: str) -> Dict[str, object]:
        record = self._bookings.get(booking_id)
        if record is None:
            raise NotFoundError(f"Booking '{booking_id}' not found")
        return record

    @staticmethod
    def to_booking(record: Dict[str, object]) -> Booking:
        scheduled_time = None
        if record.get("time"):
            scheduled_time = datetime.fromisoformat(
                f"{record['date']}T{record['time']}:00{record.get('utc_offset') or '+00:00'}"
            )
        return Booking(
            id=str(record["booking_id"]),
            sequence_position=record["sequence_position"],
            scheduled_time=scheduled_time,
            service_duration_minutes=int(record["duration_minutes"]),
            status=BookingStatus(record["status"]),
            reminder_sent=bool(record["reminder_sent"]),
            staff_id=record.get("staff_id"),
            customer_name=record.get("customer_name"),
            service_name=record.get("service_name"),
        )


class NotificationRepository(_BaseRepository):
    def __init__(self) -> None:
        super().__init__("NTF")
        self._notifications: Dict[str, Dict[str, object]] = {}

    async def record(
        self,
        *,
        booking_id: str,
        notification_type: str,
        status: str,
        error: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> Dict[str, object]:
        notification_id = self._next_id()
        record = {
            "notification_id": notification_id,
            "booking_id": booking_id,
            "type": notification_type,
            "status": status,
            "error": error,
            "created_at": (created_at or _utc_now()).isoformat(),
        }
        self._notifications[notification_id] = record
        return dict(record)

    async def list(self, booking_id: Optional[str] = None) -> List[Dict[str, object]]:
        return [
            dict(record)
            for record in self._notifications.values()
            if booking_id is None or record["booking_id"] == booking_id
        ]

    async def has_sent(self, booking_id: str, notification_type: str) -> bool:
        return any(
            record["booking_id"] == booking_id
            and record["type"] == notification_type
            and record["status"] == "SENT"
            for record in self._notifications.values()
        )

    async def cleanup(self, older_than: datetime) -> int:
        expired = [
            notification_id
            for notification_id, record in self._notifications.items()
            if datetime.fromisoformat(str(record["created_at"])) < older_than
        ]
        for notification_id in expired:
            del self._notifications[notification_id]
        return len(expired)


@dataclass
class MockDataStore:
    master_data: MasterDataRepository
    bookings: BookingRepository
    notifications: NotificationRepository


_mock_store: Optional[MockDataStore] = None


def get_mock_store() -> MockDataStore:
    global _mock_store
    if _mock_store is None:
        master_data = MasterDataRepository()
        _mock_store = MockDataStore(
            master_data=master_data,
            bookings=BookingRepository(master_data),
            notifications=NotificationRepository(),
        )
    return _mock_store


def reset_mock_store() -> None:
    global _mock_store
    _mock_store = None
