from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
BOOKING_STATUSES = (STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED)

LAB_OPERATIONAL = "operational"
LAB_MAINTENANCE = "maintenance"
LAB_CLOSED = "closed"
LAB_STATUSES = (LAB_OPERATIONAL, LAB_MAINTENANCE, LAB_CLOSED)

YEAR_GROUPS = (1, 2, 3, 4)
WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def format_clock(value: time) -> str:
    return value.strftime("%H:%M")


@dataclass(frozen=True)
class OpeningHours:
    open: str
    close: str

    def to_dict(self) -> dict[str, str]:
        return {"open": self.open, "close": self.close}


@dataclass(frozen=True)
class LabRecord:
    lab_id: str
    name: str
    building: str
    capacity: int
    created_at: datetime
    updated_at: datetime
    location: str = ""
    description: str = ""
    equipment: tuple[str, ...] = ()
    opening_hours: dict[str, OpeningHours] = field(default_factory=dict)
    status: str = LAB_OPERATIONAL

    def to_dict(self) -> dict[str, Any]:
        return {
            "lab_id": self.lab_id,
            "name": self.name,
            "building": self.building,
            "location": self.location,
            "capacity": self.capacity,
            "description": self.description,
            "equipment": list(self.equipment),
            "opening_hours": {day: hours.to_dict() for day, hours in self.opening_hours.items()},
            "status": self.status,
            "created_at": self.created_at.isoformat(timespec="seconds"),
            "updated_at": self.updated_at.isoformat(timespec="seconds"),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "LabRecord":
        hours = data.get("opening_hours") or {}
        return LabRecord(
            lab_id=str(data["lab_id"]),
            name=str(data["name"]),
            building=str(data["building"]),
            location=str(data.get("location") or ""),
            capacity=int(data["capacity"]),
            description=str(data.get("description") or ""),
            equipment=tuple(str(item) for item in data.get("equipment") or []),
            opening_hours={
                str(day): OpeningHours(open=str(value.get("open", "")), close=str(value.get("close", "")))
                for day, value in hours.items()
                if isinstance(value, dict)
            },
            status=str(data.get("status") or LAB_OPERATIONAL),
            created_at=datetime.fromisoformat(str(data["created_at"])),
            updated_at=datetime.fromisoformat(str(data["updated_at"])),
        )


@dataclass(frozen=True)
class BookingRecord:
    booking_id: str
    lab_id: str
    date: date
    start_time: time
    end_time: time
    title: str
    purpose: str
    user_id: str
    user_name: str
    student_count: int
    year_group: int
    status: str
    created_at: datetime
    updated_at: datetime
    equipment: str | None = None
    is_exam: bool = False

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "booking_id": self.booking_id,
            "lab_id": self.lab_id,
            "date": self.date.isoformat(),
            "start_time": format_clock(self.start_time),
            "end_time": format_clock(self.end_time),
            "title": self.title,
            "purpose": self.purpose,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "student_count": self.student_count,
            "year_group": self.year_group,
            "is_exam": self.is_exam,
            "status": self.status,
            "created_at": self.created_at.isoformat(timespec="seconds"),
            "updated_at": self.updated_at.isoformat(timespec="seconds"),
        }
        if self.equipment is not None:
            payload["equipment"] = self.equipment
        return payload

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "BookingRecord":
        return BookingRecord(
            booking_id=str(data["booking_id"]),
            lab_id=str(data["lab_id"]),
            date=date.fromisoformat(str(data["date"])),
            start_time=time.fromisoformat(str(data["start_time"])),
            end_time=time.fromisoformat(str(data["end_time"])),
            title=str(data["title"]),
            purpose=str(data["purpose"]),
            user_id=str(data["user_id"]),
            user_name=str(data["user_name"]),
            student_count=int(data.get("student_count") or 0),
            year_group=int(data["year_group"]),
            is_exam=bool(data.get("is_exam", False)),
            status=str(data["status"]),
            created_at=datetime.fromisoformat(str(data["created_at"])),
            updated_at=datetime.fromisoformat(str(data["updated_at"])),
            equipment=(str(data.get("equipment")) if data.get("equipment") is not None else None),
        )


@dataclass(frozen=True)
class ExamPeriodRecord:
    exam_period_id: str
    name: str
    start_date: date
    end_date: date
    year_group: int
    affected_labs: tuple[str, ...]
    created_at: datetime
    updated_at: datetime
    is_active: bool = False

    def covers(self, target: date) -> bool:
        return self.start_date <= target <= self.end_date

    def to_dict(self) -> dict[str, Any]:
        return {
            "exam_period_id": self.exam_period_id,
            "name": self.name,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "year_group": self.year_group,
            "affected_labs": list(self.affected_labs),
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat(timespec="seconds"),
            "updated_at": self.updated_at.isoformat(timespec="seconds"),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "ExamPeriodRecord":
        return ExamPeriodRecord(
            exam_period_id=str(data["exam_period_id"]),
            name=str(data["name"]),
            start_date=date.fromisoformat(str(data["start_date"])),
            end_date=date.fromisoformat(str(data["end_date"])),
            year_group=int(data["year_group"]),
            affected_labs=tuple(str(item) for item in data.get("affected_labs") or []),
            is_active=bool(data.get("is_active", False)),
            created_at=datetime.fromisoformat(str(data["created_at"])),
            updated_at=datetime.fromisoformat(str(data["updated_at"])),
        )


@dataclass(frozen=True)
class BookingFilter:
    lab_id: str | None = None
    date: date | None = None
    status: str | None = None
    year_group: int | None = None
    is_exam: bool | None = None
    user_id: str | None = None

    def matches(self, record: BookingRecord) -> bool:
        if self.lab_id is not None and record.lab_id != self.lab_id:
            return False
        if self.date is not None and record.date != self.date:
            return False
        if self.status is not None and record.status != self.status:
            return False
        if self.year_group is not None and record.year_group != self.year_group:
            return False
        if self.is_exam is not None and record.is_exam != self.is_exam:
            return False
        if self.user_id is not None and record.user_id != self.user_id:
            return False
        return True


@dataclass(frozen=True)
class ExamPeriodFilter:
    year_group: int | None = None
    is_active: bool | None = None
    lab_id: str | None = None
    covers_date: date | None = None

    def matches(self, record: ExamPeriodRecord) -> bool:
        if self.year_group is not None and record.year_group != self.year_group:
            return False
        if self.is_active is not None and record.is_active != self.is_active:
            return False
        if self.lab_id is not None and self.lab_id not in record.affected_labs:
            return False
        if self.covers_date is not None and not record.covers(self.covers_date):
            return False
        return True
