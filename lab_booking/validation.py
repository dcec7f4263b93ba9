from __future__ import annotations

from datetime import date, datetime, time
from typing import Any, Mapping

from .errors import ValidationError
from .models import BOOKING_STATUSES, YEAR_GROUPS


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def require_fields(fields: Mapping[str, Any], names: tuple[str, ...]) -> None:
    missing = [name for name in names if is_blank(fields.get(name))]
    if missing:
        raise ValidationError(f"Please fill in all required fields: {', '.join(missing)}")


def parse_date(value: Any, field: str = "date") -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError as error:
        raise ValidationError(f"{field} must be a date in YYYY-MM-DD format.") from error


def parse_clock(value: Any, field: str) -> time:
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    try:
        return datetime.strptime(str(value).strip(), "%H:%M").time()
    except ValueError as error:
        raise ValidationError(f"{field} must be a time in HH:MM format.") from error


def parse_int(value: Any, message: str) -> int:
    # JSON numbers may arrive as floats; 2.0 is accepted, 2.5 is not.
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError(message)
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError) as error:
        raise ValidationError(message) from error


def parse_year_group(value: Any) -> int:
    year_group = parse_int(value, "year_group must be one of 1, 2, 3, 4.")
    if year_group not in YEAR_GROUPS:
        raise ValidationError("year_group must be one of 1, 2, 3, 4.")
    return year_group


def parse_non_negative_int(value: Any, field: str) -> int:
    if is_blank(value):
        return 0
    number = parse_int(value, f"{field} must be a non-negative integer.")
    if number < 0:
        raise ValidationError(f"{field} must be a non-negative integer.")
    return number


def parse_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "false"}:
        return value.strip().lower() == "true"
    raise ValidationError(f"{field} must be true or false.")


def parse_status(value: Any) -> str:
    status = str(value or "").strip().lower()
    if status not in BOOKING_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(BOOKING_STATUSES)}.")
    return status


def parse_text(value: Any, field: str) -> str:
    if is_blank(value):
        raise ValidationError(f"{field} must not be empty.")
    return str(value).strip()
