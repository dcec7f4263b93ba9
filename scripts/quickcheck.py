from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path
import tempfile
import traceback

from lab_booking import BookingAdmissionWorkflow, ConflictError, LabBookingYamlRepository
from lab_booking.auth import ROLE_TEACHER, Principal


def main() -> int:
    print("[INFO] Lab Booking Quick Check")

    with tempfile.TemporaryDirectory() as temp_dir:
        data_dir = Path(temp_dir) / "data"
        repo = LabBookingYamlRepository(data_dir)
        now = datetime.now()
        labs = repo.seed_sample_labs(now=now)
        print(f"[OK] Sample labs generated: {len(labs)}")

        workflow = BookingAdmissionWorkflow(repo, clock=lambda: now)
        teacher = Principal(user_id="quickcheck-teacher", name="Quick Check", role=ROLE_TEACHER)
        lab_id = labs[0].lab_id
        day = (now + timedelta(days=7)).date().isoformat()

        def request(start: str, end: str, year_group: int) -> dict:
            return {
                "lab_id": lab_id,
                "date": day,
                "start_time": start,
                "end_time": end,
                "purpose": f"Practical {start}",
                "year_group": year_group,
            }

        first = workflow.create_booking(teacher, request("09:00", "10:00", 1))
        second = workflow.create_booking(teacher, request("09:30", "10:30", 2))
        print(f"[OK] Overlapping pending requests stored: {first.status}, {second.status}")

        workflow.transition_booking(first.booking_id, "approved")
        try:
            workflow.transition_booking(second.booking_id, "approved")
        except ConflictError as error:
            print(f"[OK] Second approval refused: {error.message}")
        else:
            raise RuntimeError("Second overlapping approval should have been refused.")

        workflow.transition_booking(second.booking_id, "rejected")
        adjacent = workflow.create_booking(teacher, request("10:00", "11:00", 1))
        workflow.transition_booking(adjacent.booking_id, "approved")
        print("[OK] Adjacent booking approved back-to-back")

        print(f"[OK] Bookings stored: {len(repo.get_bookings())}")
        print(f"[OK] Event log entries: {len(repo.get_events())}")

    print("[DONE] Quick check completed successfully.")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except Exception:
        print("[ERROR] Quick check failed.")
        traceback.print_exc()
        raise SystemExit(1)
