from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterator
import logging
import shutil
import threading
from uuid import uuid4

import yaml

from .errors import LabBookingStorageError, NotFoundError
from .models import (
    WEEKDAYS,
    BookingFilter,
    BookingRecord,
    ExamPeriodFilter,
    ExamPeriodRecord,
    LabRecord,
    OpeningHours,
)

logger = logging.getLogger(__name__)


class LabBookingYamlRepository:
    def __init__(self, base_dir: str | Path = "data") -> None:
        self.base_dir = Path(base_dir)
        self.labs_file = self.base_dir / "labs.yaml"
        self.bookings_file = self.base_dir / "bookings.yaml"
        self.exam_periods_file = self.base_dir / "exam_periods.yaml"
        self.log_file = self.base_dir / "booking_events.yaml"
        self._lock = threading.RLock()
        self._ensure_files()

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the repository lock across a check-then-write sequence."""
        with self._lock:
            yield

    def _ensure_files(self) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        for path in (self.labs_file, self.bookings_file, self.exam_periods_file, self.log_file):
            if not path.exists():
                path.write_text("[]\n", encoding="utf-8")

    def _read_yaml_list(self, path: Path) -> list[dict[str, Any]]:
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            path.write_text("[]\n", encoding="utf-8")
            return []
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as error:
            self._recover_corrupted_yaml(path, error)
            return []

        if payload is None:
            return []
        if not isinstance(payload, list):
            self._recover_corrupted_yaml(path, ValueError("top-level YAML is not a list"))
            return []

        sanitized: list[dict[str, Any]] = []
        for index, row in enumerate(payload):
            if isinstance(row, dict):
                sanitized.append(row)
            elif path == self.log_file:
                logger.warning("Skipped non-mapping row %d in %s", index, path.name)
            else:
                self.log_event(
                    "YAML_ROW_SKIPPED",
                    {
                        "file": str(path.name),
                        "index": index,
                        "reason": "row is not a mapping",
                    },
                )
        return sanitized

    def _write_yaml_list(self, path: Path, rows: list[dict[str, Any]]) -> None:
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            temp_path.write_text(yaml.safe_dump(rows, allow_unicode=True, sort_keys=False), encoding="utf-8")
            temp_path.replace(path)
        except OSError as error:
            raise LabBookingStorageError(f"Failed to write YAML file: {path}") from error
        finally:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)

    def _recover_corrupted_yaml(self, path: Path, error: Exception) -> None:
        timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
        backup_path = path.with_name(f"{path.stem}.corrupt.{timestamp}{path.suffix}")
        try:
            if path.exists():
                shutil.copy2(path, backup_path)
        except OSError:
            logger.warning("Could not back up corrupted file %s", path, exc_info=True)

        logger.error("Recovered corrupted YAML file %s: %s", path, error)
        path.write_text("[]\n", encoding="utf-8")
        if path != self.log_file:
            self.log_event(
                "YAML_RECOVERED",
                {
                    "file": str(path.name),
                    "backup": str(backup_path.name),
                    "reason": str(error),
                },
            )

    def log_event(self, event_type: str, payload: dict[str, Any], event_time: datetime | None = None) -> None:
        """Append an event to the event log.

        Events are written after the record they describe, so a failed append
        is logged and does not undo or fail the operation.
        """
        timestamp = (event_time or datetime.now()).isoformat(timespec="seconds")
        with self._lock:
            events = self._read_yaml_list(self.log_file)
            events.append({"event_time": timestamp, "event_type": event_type, "payload": payload})
            try:
                self._write_yaml_list(self.log_file, events)
            except LabBookingStorageError:
                logger.exception("Could not record %s event", event_type)

    def get_events(self) -> list[dict[str, Any]]:
        return self._read_yaml_list(self.log_file)

    # Labs

    def get_labs(self) -> list[LabRecord]:
        rows = self._read_yaml_list(self.labs_file)
        return sorted((LabRecord.from_dict(row) for row in rows), key=lambda lab: lab.name)

    def get_lab(self, lab_id: str) -> LabRecord | None:
        for row in self._read_yaml_list(self.labs_file):
            if str(row.get("lab_id")) == lab_id:
                return LabRecord.from_dict(row)
        return None

    def add_lab(self, lab: LabRecord) -> LabRecord:
        with self._lock:
            rows = self._read_yaml_list(self.labs_file)
            rows.append(lab.to_dict())
            self._write_yaml_list(self.labs_file, rows)

        self.log_event("LAB_ADDED", {"lab_id": lab.lab_id, "name": lab.name}, lab.created_at)
        return lab

    def seed_sample_labs(self, now: datetime | None = None, overwrite: bool = True) -> list[LabRecord]:
        effective_now = now or datetime.now()
        generated = generate_sample_labs(effective_now)

        with self._lock:
            rows = [] if overwrite else self._read_yaml_list(self.labs_file)
            rows.extend(lab.to_dict() for lab in generated)
            self._write_yaml_list(self.labs_file, rows)

        self.log_event(
            "SAMPLE_LABS_GENERATED",
            {"count": len(generated), "overwrite": overwrite},
            effective_now,
        )
        return generated

    # Bookings

    def get_bookings(self) -> list[BookingRecord]:
        rows = self._read_yaml_list(self.bookings_file)
        return [BookingRecord.from_dict(row) for row in rows]

    def get_booking(self, booking_id: str) -> BookingRecord | None:
        for row in self._read_yaml_list(self.bookings_file):
            if str(row.get("booking_id")) == booking_id:
                return BookingRecord.from_dict(row)
        return None

    def find_bookings(self, criteria: BookingFilter) -> list[BookingRecord]:
        return [record for record in self.get_bookings() if criteria.matches(record)]

    def scan_bookings(self, lab_id: str, booking_date: date, status: str | None = None) -> list[BookingRecord]:
        return self.find_bookings(BookingFilter(lab_id=lab_id, date=booking_date, status=status))

    def insert_booking(self, record: BookingRecord) -> BookingRecord:
        with self._lock:
            rows = self._read_yaml_list(self.bookings_file)
            rows.append(record.to_dict())
            self._write_yaml_list(self.bookings_file, rows)
        return record

    def replace_booking(self, record: BookingRecord) -> BookingRecord:
        with self._lock:
            rows = self._read_yaml_list(self.bookings_file)
            index = _find_index(rows, "booking_id", record.booking_id)
            if index < 0:
                raise NotFoundError(f"Booking not found: {record.booking_id}")
            rows[index] = record.to_dict()
            self._write_yaml_list(self.bookings_file, rows)
        return record

    def delete_booking(self, booking_id: str) -> BookingRecord:
        with self._lock:
            rows = self._read_yaml_list(self.bookings_file)
            index = _find_index(rows, "booking_id", booking_id)
            if index < 0:
                raise NotFoundError(f"Booking not found: {booking_id}")
            removed = BookingRecord.from_dict(rows.pop(index))
            self._write_yaml_list(self.bookings_file, rows)
        return removed

    # Exam periods

    def get_exam_periods(self) -> list[ExamPeriodRecord]:
        rows = self._read_yaml_list(self.exam_periods_file)
        return [ExamPeriodRecord.from_dict(row) for row in rows]

    def get_exam_period(self, exam_period_id: str) -> ExamPeriodRecord | None:
        for row in self._read_yaml_list(self.exam_periods_file):
            if str(row.get("exam_period_id")) == exam_period_id:
                return ExamPeriodRecord.from_dict(row)
        return None

    def find_exam_periods(self, criteria: ExamPeriodFilter) -> list[ExamPeriodRecord]:
        return [record for record in self.get_exam_periods() if criteria.matches(record)]

    def insert_exam_period(self, record: ExamPeriodRecord) -> ExamPeriodRecord:
        with self._lock:
            rows = self._read_yaml_list(self.exam_periods_file)
            rows.append(record.to_dict())
            self._write_yaml_list(self.exam_periods_file, rows)
        return record

    def replace_exam_period(self, record: ExamPeriodRecord) -> ExamPeriodRecord:
        with self._lock:
            rows = self._read_yaml_list(self.exam_periods_file)
            index = _find_index(rows, "exam_period_id", record.exam_period_id)
            if index < 0:
                raise NotFoundError(f"Exam period not found: {record.exam_period_id}")
            rows[index] = record.to_dict()
            self._write_yaml_list(self.exam_periods_file, rows)
        return record

    def delete_exam_period(self, exam_period_id: str) -> ExamPeriodRecord:
        with self._lock:
            rows = self._read_yaml_list(self.exam_periods_file)
            index = _find_index(rows, "exam_period_id", exam_period_id)
            if index < 0:
                raise NotFoundError(f"Exam period not found: {exam_period_id}")
            removed = ExamPeriodRecord.from_dict(rows.pop(index))
            self._write_yaml_list(self.exam_periods_file, rows)
        return removed


def new_record_id() -> str:
    return uuid4().hex


def generate_sample_labs(now: datetime) -> list[LabRecord]:
    weekday_hours = OpeningHours(open="08:00", close="20:00")
    saturday_hours = OpeningHours(open="09:00", close="13:00")
    closed = OpeningHours(open="", close="")
    opening_hours = {day: weekday_hours for day in WEEKDAYS[:5]}
    opening_hours["saturday"] = saturday_hours
    opening_hours["sunday"] = closed

    lab_rows = [
        ("Computer Lab 1", "Science Block", "Ground floor", 30, ("PCs", "Projector")),
        ("Computer Lab 2", "Science Block", "First floor", 24, ("PCs", "Smart board")),
        ("Chemistry Lab", "Science Block", "Second floor", 20, ("Fume hoods", "Safety showers")),
        ("Physics Lab", "Main Building", "Basement", 25, ("Oscilloscopes", "Power supplies")),
        ("Biology Lab", "Main Building", "First floor", 22, ("Microscopes",)),
    ]
    return [
        LabRecord(
            lab_id=new_record_id(),
            name=name,
            building=building,
            location=location,
            capacity=capacity,
            description=f"{name} in the {building}",
            equipment=equipment,
            opening_hours=dict(opening_hours),
            created_at=now,
            updated_at=now,
        )
        for name, building, location, capacity, equipment in lab_rows
    ]


def _find_index(rows: list[dict[str, Any]], key: str, value: str) -> int:
    for index, row in enumerate(rows):
        if str(row.get(key)) == value:
            return index
    return -1
