from __future__ import annotations

from datetime import date

from mcp.server.fastmcp import FastMCP

from lab_booking import (
    BookingAdmissionWorkflow,
    BookingFilter,
    ExamPeriodController,
    ExamPeriodFilter,
    LabBookingYamlRepository,
    find_conflicts,
)
from lab_booking.config import settings
from lab_booking.models import STATUS_APPROVED, format_clock
from lab_booking.validation import parse_clock, parse_date, parse_status

mcp = FastMCP(
    "Lab Booking MCP Server",
    instructions="Read lab, booking and exam-period data from the lab_booking project and check slots for conflicts.",
    json_response=True,
)

REPOSITORY = LabBookingYamlRepository(settings.data_dir)
WORKFLOW = BookingAdmissionWorkflow(REPOSITORY, horizon_days=settings.booking_horizon_days)
EXAM_PERIODS = ExamPeriodController(REPOSITORY)


@mcp.resource("lab-booking://labs")
async def list_labs() -> list[dict]:
    """List bookable labs."""
    return [lab.to_dict() for lab in REPOSITORY.get_labs()]


@mcp.tool()
def list_bookings(
    lab_id: str | None = None,
    booking_date: str | None = None,
    status: str | None = None,
) -> list[dict]:
    """Return bookings sorted by date and start time, optionally filtered by lab, date (YYYY-MM-DD) and status."""
    criteria = BookingFilter(
        lab_id=lab_id,
        date=parse_date(booking_date) if booking_date else None,
        status=parse_status(status) if status else None,
    )
    return [record.to_dict() for record in WORKFLOW.list_bookings(criteria)]


@mcp.tool()
def list_exam_periods(active_only: bool = False) -> list[dict]:
    """Return declared exam periods. They are informational and do not block bookings."""
    criteria = ExamPeriodFilter(is_active=True if active_only else None)
    return [record.to_dict() for record in EXAM_PERIODS.list_exam_periods(criteria)]


@mcp.tool()
def check_slot(lab_id: str, booking_date: str, start_time: str, end_time: str) -> dict:
    """Check whether an HH:MM-HH:MM slot in a lab overlaps any approved booking on that date."""
    target_date: date = parse_date(booking_date)
    start = parse_clock(start_time, "start_time")
    end = parse_clock(end_time, "end_time")
    approved = REPOSITORY.scan_bookings(lab_id, target_date, STATUS_APPROVED)
    conflicts = find_conflicts(lab_id, target_date, start, end, approved)
    return {
        "available": not conflicts,
        "conflicts": [
            {
                "booking_id": record.booking_id,
                "title": record.title,
                "start_time": format_clock(record.start_time),
                "end_time": format_clock(record.end_time),
            }
            for record in conflicts
        ],
    }


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
