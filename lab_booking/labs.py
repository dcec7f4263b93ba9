from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping

from .errors import ValidationError
from .models import LAB_OPERATIONAL, LAB_STATUSES, WEEKDAYS, LabRecord, OpeningHours
from .validation import is_blank, parse_clock, parse_int, parse_text, require_fields
from .yaml_store import LabBookingYamlRepository, new_record_id


def register_lab(repository: LabBookingYamlRepository, fields: Mapping[str, Any], now: datetime) -> LabRecord:
    require_fields(fields, ("name", "building", "capacity"))

    capacity = parse_int(fields["capacity"], "capacity must be a positive integer.")
    if capacity < 1:
        raise ValidationError("capacity must be a positive integer.")

    status = str(fields.get("status") or LAB_OPERATIONAL).strip().lower()
    if status not in LAB_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(LAB_STATUSES)}.")

    equipment = fields.get("equipment") or []
    if not isinstance(equipment, (list, tuple)):
        raise ValidationError("equipment must be a list.")

    lab = LabRecord(
        lab_id=new_record_id(),
        name=parse_text(fields["name"], "name"),
        building=parse_text(fields["building"], "building"),
        location=str(fields.get("location") or "").strip(),
        capacity=capacity,
        description=str(fields.get("description") or "").strip(),
        equipment=tuple(str(item).strip() for item in equipment if not is_blank(item)),
        opening_hours=_parse_opening_hours(fields.get("opening_hours") or {}),
        status=status,
        created_at=now,
        updated_at=now,
    )
    return repository.add_lab(lab)


def _parse_opening_hours(value: Any) -> dict[str, OpeningHours]:
    if not isinstance(value, Mapping):
        raise ValidationError("opening_hours must map weekdays to open/close times.")

    hours: dict[str, OpeningHours] = {}
    for day, entry in value.items():
        weekday = str(day).strip().lower()
        if weekday not in WEEKDAYS or not isinstance(entry, Mapping):
            raise ValidationError(f"Invalid opening hours entry: {day}")
        open_value, close_value = entry.get("open"), entry.get("close")
        if is_blank(open_value) and is_blank(close_value):
            # Closed all day
            hours[weekday] = OpeningHours(open="", close="")
            continue
        opens = parse_clock(open_value, f"{weekday}.open")
        closes = parse_clock(close_value, f"{weekday}.close")
        if opens >= closes:
            raise ValidationError(f"{weekday} must open before it closes.")
        hours[weekday] = OpeningHours(open=opens.strftime("%H:%M"), close=closes.strftime("%H:%M"))
    return hours
