from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, time, timedelta
from typing import TYPE_CHECKING, Any, Callable, Mapping
import logging

from .booking import find_conflicts
from .errors import ConflictError, DateRangeError, NotFoundError, ValidationError
from .models import (
    STATUS_APPROVED,
    STATUS_PENDING,
    STATUS_REJECTED,
    BookingFilter,
    BookingRecord,
    format_clock,
)
from .validation import (
    is_blank,
    parse_bool,
    parse_clock,
    parse_date,
    parse_non_negative_int,
    parse_status,
    parse_text,
    parse_year_group,
    require_fields,
)
from .yaml_store import LabBookingYamlRepository, new_record_id

if TYPE_CHECKING:
    from .auth import Principal

logger = logging.getLogger(__name__)

DEFAULT_HORIZON_DAYS = 365
REQUIRED_BOOKING_FIELDS = ("lab_id", "date", "start_time", "end_time", "year_group")
UPDATABLE_BOOKING_FIELDS = frozenset(
    {
        "lab_id",
        "date",
        "start_time",
        "end_time",
        "title",
        "purpose",
        "student_count",
        "equipment",
        "year_group",
        "is_exam",
        "status",
    }
)


class BookingAdmissionWorkflow:
    """Admission control for lab bookings.

    Creation is optimistic: the conflict check and the insert are separate
    steps, so overlapping pending requests may coexist. Approval is
    authoritative: the check and the status write happen under the
    repository lock, and only approved bookings ever act as conflict sources.
    """

    def __init__(
        self,
        repository: LabBookingYamlRepository,
        horizon_days: int = DEFAULT_HORIZON_DAYS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if horizon_days < 0:
            raise ValueError("horizon_days must not be negative")
        self.repository = repository
        self.horizon_days = horizon_days
        self._clock: Callable[[], datetime] = clock or datetime.now

    def create_booking(self, requester: "Principal", fields: Mapping[str, Any]) -> BookingRecord:
        require_fields(fields, REQUIRED_BOOKING_FIELDS)
        if is_blank(fields.get("title")) and is_blank(fields.get("purpose")):
            raise ValidationError("Please fill in all required fields: title or purpose")

        lab_id = str(fields["lab_id"]).strip()
        booking_date = parse_date(fields["date"])
        start = parse_clock(fields["start_time"], "start_time")
        end = parse_clock(fields["end_time"], "end_time")
        _validate_time_range(start, end)
        year_group = parse_year_group(fields["year_group"])
        student_count = parse_non_negative_int(fields.get("student_count"), "student_count")
        is_exam = parse_bool(fields["is_exam"], "is_exam") if not is_blank(fields.get("is_exam")) else False
        purpose = str(fields["title"] if is_blank(fields.get("purpose")) else fields["purpose"]).strip()
        title = purpose if is_blank(fields.get("title")) else str(fields["title"]).strip()
        equipment = None if is_blank(fields.get("equipment")) else str(fields["equipment"]).strip()

        self._require_lab(lab_id)

        now = self._clock()
        self._validate_date_window(booking_date, now.date())
        self._ensure_no_conflict(lab_id, booking_date, start, end)

        record = BookingRecord(
            booking_id=new_record_id(),
            lab_id=lab_id,
            date=booking_date,
            start_time=start,
            end_time=end,
            title=title,
            purpose=purpose,
            user_id=requester.user_id,
            user_name=requester.name,
            student_count=student_count,
            year_group=year_group,
            is_exam=is_exam,
            status=STATUS_PENDING,
            created_at=now,
            updated_at=now,
            equipment=equipment,
        )
        self.repository.insert_booking(record)

        self.repository.log_event("BOOKING_CREATED", _event_payload(record), now)
        logger.info(
            "Booking %s requested by %s for lab %s on %s %s-%s",
            record.booking_id,
            requester.user_id,
            lab_id,
            booking_date.isoformat(),
            format_clock(start),
            format_clock(end),
        )
        return record

    def get_booking(self, booking_id: str) -> BookingRecord:
        record = self.repository.get_booking(booking_id)
        if record is None:
            raise NotFoundError("Booking not found")
        return record

    def list_bookings(self, criteria: BookingFilter | None = None) -> list[BookingRecord]:
        records = self.repository.find_bookings(criteria or BookingFilter())
        return sorted(records, key=lambda record: (record.date, record.start_time, record.created_at))

    def transition_booking(self, booking_id: str, status: Any) -> BookingRecord:
        with self.repository.locked():
            current = self.get_booking(booking_id)
            target = parse_status(status)
            if target == STATUS_PENDING:
                raise ValidationError("A booking cannot be moved back to pending.")

            if target == STATUS_APPROVED:
                self._ensure_no_conflict(
                    current.lab_id,
                    current.date,
                    current.start_time,
                    current.end_time,
                    exclude_id=current.booking_id,
                )

            if current.status == target:
                return current

            now = self._clock()
            updated = replace(current, status=target, updated_at=now)
            self.repository.replace_booking(updated)

        self.repository.log_event(
            "BOOKING_STATUS_CHANGED",
            {"booking_id": booking_id, "from": current.status, "to": target},
            now,
        )
        logger.info("Booking %s moved from %s to %s", booking_id, current.status, target)
        return updated

    def update_booking(self, booking_id: str, changes: Mapping[str, Any]) -> BookingRecord:
        unknown = sorted(set(changes) - UPDATABLE_BOOKING_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown booking fields: {', '.join(unknown)}")

        with self.repository.locked():
            current = self.get_booking(booking_id)
            updated = _merge_booking_changes(current, changes)
            _validate_time_range(updated.start_time, updated.end_time)

            now = self._clock()
            if updated.lab_id != current.lab_id:
                self._require_lab(updated.lab_id)
            if updated.date != current.date:
                self._validate_date_window(updated.date, now.date())

            schedule_changed = (
                updated.lab_id != current.lab_id
                or updated.date != current.date
                or updated.start_time != current.start_time
                or updated.end_time != current.end_time
            )
            becomes_approved = updated.status == STATUS_APPROVED and current.status != STATUS_APPROVED
            if (schedule_changed and updated.status != STATUS_REJECTED) or becomes_approved:
                self._ensure_no_conflict(
                    updated.lab_id,
                    updated.date,
                    updated.start_time,
                    updated.end_time,
                    exclude_id=current.booking_id,
                )

            updated = replace(updated, updated_at=now)
            self.repository.replace_booking(updated)

        self.repository.log_event("BOOKING_UPDATED", _event_payload(updated), now)
        return updated

    def cancel_booking(self, booking_id: str) -> BookingRecord:
        removed = self.repository.delete_booking(booking_id)
        now = self._clock()
        self.repository.log_event("BOOKING_DELETED", _event_payload(removed), now)
        logger.info("Booking %s cancelled", booking_id)
        return removed

    def _require_lab(self, lab_id: str) -> None:
        if self.repository.get_lab(lab_id) is None:
            raise NotFoundError("Lab not found")

    def _validate_date_window(self, booking_date: date, today: date) -> None:
        if booking_date < today:
            raise DateRangeError("Cannot book dates in the past")
        if booking_date > today + timedelta(days=self.horizon_days):
            raise DateRangeError(f"Cannot book more than {self.horizon_days} days in advance")

    def _ensure_no_conflict(
        self,
        lab_id: str,
        booking_date: date,
        start: time,
        end: time,
        exclude_id: str | None = None,
    ) -> None:
        approved = self.repository.scan_bookings(lab_id, booking_date, STATUS_APPROVED)
        conflicts = find_conflicts(lab_id, booking_date, start, end, approved, exclude_id=exclude_id)
        if conflicts:
            blocking = conflicts[0]
            raise ConflictError(
                "This time slot is already booked "
                f"({format_clock(blocking.start_time)}-{format_clock(blocking.end_time)}, {blocking.title})"
            )


def _validate_time_range(start: time, end: time) -> None:
    if start >= end:
        raise ValidationError("start_time must be earlier than end_time.")


def _merge_booking_changes(current: BookingRecord, changes: Mapping[str, Any]) -> BookingRecord:
    values: dict[str, Any] = {}
    if "lab_id" in changes:
        values["lab_id"] = parse_text(changes["lab_id"], "lab_id")
    if "date" in changes:
        if is_blank(changes["date"]):
            raise ValidationError("date must not be empty.")
        values["date"] = parse_date(changes["date"])
    if "start_time" in changes:
        values["start_time"] = parse_clock(changes["start_time"], "start_time")
    if "end_time" in changes:
        values["end_time"] = parse_clock(changes["end_time"], "end_time")
    if "title" in changes:
        values["title"] = parse_text(changes["title"], "title")
    if "purpose" in changes:
        values["purpose"] = parse_text(changes["purpose"], "purpose")
    if "student_count" in changes:
        values["student_count"] = parse_non_negative_int(changes["student_count"], "student_count")
    if "equipment" in changes:
        values["equipment"] = None if is_blank(changes["equipment"]) else str(changes["equipment"]).strip()
    if "year_group" in changes:
        values["year_group"] = parse_year_group(changes["year_group"])
    if "is_exam" in changes:
        values["is_exam"] = parse_bool(changes["is_exam"], "is_exam")
    if "status" in changes:
        values["status"] = parse_status(changes["status"])
    return replace(current, **values)


def _event_payload(record: BookingRecord) -> dict[str, Any]:
    return {
        "booking_id": record.booking_id,
        "lab_id": record.lab_id,
        "date": record.date.isoformat(),
        "start_time": format_clock(record.start_time),
        "end_time": format_clock(record.end_time),
        "status": record.status,
        "user_id": record.user_id,
    }
