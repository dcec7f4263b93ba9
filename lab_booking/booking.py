from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time
from typing import Iterable

from .models import STATUS_APPROVED, BookingRecord


@dataclass(frozen=True)
class Interval:
    start: time
    end: time

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise ValueError("Interval start time must be earlier than end time.")

    def overlaps(self, other: "Interval") -> bool:
        return has_time_overlap(self.start, self.end, other.start, other.end)


def has_time_overlap(new_start: time, new_end: time, exist_start: time, exist_end: time) -> bool:
    """Return True when two wall-clock intervals on the same day overlap.

    Intervals are treated as half-open ranges: [start, end)
    so touching boundaries (e.g. 09:00-10:00 and 10:00-11:00) do not overlap.
    The three clauses cover a candidate starting inside, ending inside, or
    containing the existing interval; together they reduce to
    ``new_start < exist_end and exist_start < new_end``.
    """
    if new_start >= new_end:
        raise ValueError("new_start must be earlier than new_end.")
    if exist_start >= exist_end:
        raise ValueError("exist_start must be earlier than exist_end.")

    return (
        (exist_start <= new_start and exist_end > new_start)
        or (exist_start < new_end and exist_end >= new_end)
        or (exist_start >= new_start and exist_end <= new_end)
    )


def find_conflicts(
    lab_id: str,
    booking_date: date,
    start: time,
    end: time,
    bookings: Iterable[BookingRecord],
    exclude_id: str | None = None,
) -> list[BookingRecord]:
    """Return the approved bookings in the same lab and day that overlap [start, end).

    Pending and rejected bookings are never conflict sources.
    """
    candidate = Interval(start, end)
    return [
        booking
        for booking in bookings
        if booking.status == STATUS_APPROVED
        and booking.lab_id == lab_id
        and booking.date == booking_date
        and booking.booking_id != exclude_id
        and candidate.overlaps(Interval(booking.start_time, booking.end_time))
    ]


def has_conflict(
    lab_id: str,
    booking_date: date,
    start: time,
    end: time,
    bookings: Iterable[BookingRecord],
    exclude_id: str | None = None,
) -> bool:
    return bool(find_conflicts(lab_id, booking_date, start, end, bookings, exclude_id=exclude_id))
