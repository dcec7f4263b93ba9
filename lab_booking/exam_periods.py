from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime
from typing import Any, Callable, Mapping
import logging

from .errors import NotFoundError, UnknownLabError, ValidationError
from .models import ExamPeriodFilter, ExamPeriodRecord
from .validation import is_blank, parse_bool, parse_date, parse_text, parse_year_group, require_fields
from .yaml_store import LabBookingYamlRepository, new_record_id

logger = logging.getLogger(__name__)

REQUIRED_EXAM_PERIOD_FIELDS = ("name", "start_date", "end_date", "year_group", "affected_labs")
UPDATABLE_EXAM_PERIOD_FIELDS = frozenset(REQUIRED_EXAM_PERIOD_FIELDS) | {"is_active"}


class ExamPeriodController:
    """Stores exam-period declarations.

    An exam period names a date range, a year group and the labs it affects.
    Activating one is informational: ordinary bookings are neither blocked
    nor rejected by it.
    """

    def __init__(
        self,
        repository: LabBookingYamlRepository,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.repository = repository
        self._clock: Callable[[], datetime] = clock or datetime.now

    def create_exam_period(self, fields: Mapping[str, Any]) -> ExamPeriodRecord:
        require_fields(fields, REQUIRED_EXAM_PERIOD_FIELDS)
        name = parse_text(fields["name"], "name")
        start_date, end_date = _parse_date_range(fields["start_date"], fields["end_date"])
        year_group = parse_year_group(fields["year_group"])
        affected_labs = _parse_lab_ids(fields["affected_labs"])
        self._require_labs(affected_labs)

        now = self._clock()
        record = ExamPeriodRecord(
            exam_period_id=new_record_id(),
            name=name,
            start_date=start_date,
            end_date=end_date,
            year_group=year_group,
            affected_labs=affected_labs,
            is_active=False,
            created_at=now,
            updated_at=now,
        )
        self.repository.insert_exam_period(record)
        self.repository.log_event("EXAM_PERIOD_CREATED", _event_payload(record), now)
        logger.info("Exam period %s created for year group %s", record.exam_period_id, year_group)
        return record

    def get_exam_period(self, exam_period_id: str) -> ExamPeriodRecord:
        record = self.repository.get_exam_period(exam_period_id)
        if record is None:
            raise NotFoundError("Exam period not found")
        return record

    def list_exam_periods(self, criteria: ExamPeriodFilter | None = None) -> list[ExamPeriodRecord]:
        records = self.repository.find_exam_periods(criteria or ExamPeriodFilter())
        return sorted(records, key=lambda record: (record.start_date, record.name))

    def active_periods_for(self, lab_id: str, target: date, year_group: int | None = None) -> list[ExamPeriodRecord]:
        """Active exam periods covering ``target`` for the lab, for display next to a booking."""
        return self.list_exam_periods(
            ExamPeriodFilter(year_group=year_group, is_active=True, lab_id=lab_id, covers_date=target)
        )

    def toggle_active(self, exam_period_id: str, active: Any) -> ExamPeriodRecord:
        is_active = parse_bool(active, "is_active")
        with self.repository.locked():
            current = self.get_exam_period(exam_period_id)
            now = self._clock()
            updated = replace(current, is_active=is_active, updated_at=now)
            self.repository.replace_exam_period(updated)

        self.repository.log_event(
            "EXAM_PERIOD_TOGGLED",
            {"exam_period_id": exam_period_id, "is_active": is_active},
            now,
        )
        logger.info("Exam period %s %s", exam_period_id, "activated" if is_active else "deactivated")
        return updated

    def update_exam_period(self, exam_period_id: str, changes: Mapping[str, Any]) -> ExamPeriodRecord:
        unknown = sorted(set(changes) - UPDATABLE_EXAM_PERIOD_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown exam period fields: {', '.join(unknown)}")

        with self.repository.locked():
            current = self.get_exam_period(exam_period_id)
            values: dict[str, Any] = {}
            if "name" in changes:
                values["name"] = parse_text(changes["name"], "name")
            if "start_date" in changes or "end_date" in changes:
                values["start_date"], values["end_date"] = _parse_date_range(
                    changes.get("start_date", current.start_date),
                    changes.get("end_date", current.end_date),
                )
            if "year_group" in changes:
                values["year_group"] = parse_year_group(changes["year_group"])
            if "affected_labs" in changes:
                values["affected_labs"] = _parse_lab_ids(changes["affected_labs"])
                self._require_labs(values["affected_labs"])
            if "is_active" in changes:
                values["is_active"] = parse_bool(changes["is_active"], "is_active")

            now = self._clock()
            updated = replace(current, **values, updated_at=now)
            self.repository.replace_exam_period(updated)

        self.repository.log_event("EXAM_PERIOD_UPDATED", _event_payload(updated), now)
        return updated

    def delete_exam_period(self, exam_period_id: str) -> ExamPeriodRecord:
        removed = self.repository.delete_exam_period(exam_period_id)
        self.repository.log_event("EXAM_PERIOD_DELETED", {"exam_period_id": exam_period_id}, self._clock())
        logger.info("Exam period %s deleted", exam_period_id)
        return removed

    def _require_labs(self, lab_ids: tuple[str, ...]) -> None:
        for lab_id in lab_ids:
            if self.repository.get_lab(lab_id) is None:
                raise UnknownLabError(f"Lab not found: {lab_id}")


def _parse_date_range(start_value: Any, end_value: Any) -> tuple[date, date]:
    if is_blank(start_value) or is_blank(end_value):
        raise ValidationError("start_date and end_date must not be empty.")
    start_date = parse_date(start_value, "start_date")
    end_date = parse_date(end_value, "end_date")
    if end_date < start_date:
        raise ValidationError("end_date must not be earlier than start_date.")
    return start_date, end_date


def _parse_lab_ids(value: Any) -> tuple[str, ...]:
    # Form submissions send a comma-separated string, JSON clients a list.
    items = value.split(",") if isinstance(value, str) else value
    if not isinstance(items, (list, tuple)):
        raise ValidationError("affected_labs must be a list of lab ids.")
    lab_ids = tuple(dict.fromkeys(str(item).strip() for item in items if not is_blank(item)))
    if not lab_ids:
        raise ValidationError("affected_labs must name at least one lab.")
    return lab_ids


def _event_payload(record: ExamPeriodRecord) -> dict[str, Any]:
    return {
        "exam_period_id": record.exam_period_id,
        "name": record.name,
        "start_date": record.start_date.isoformat(),
        "end_date": record.end_date.isoformat(),
        "year_group": record.year_group,
        "affected_labs": list(record.affected_labs),
        "is_active": record.is_active,
    }
