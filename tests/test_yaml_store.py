import tempfile
import unittest
from datetime import date, datetime, time
from pathlib import Path
from unittest import mock

from lab_booking import (
    BookingAdmissionWorkflow,
    BookingRecord,
    LabBookingStorageError,
    LabBookingYamlRepository,
    NotFoundError,
    generate_sample_labs,
)
from lab_booking.auth import ROLE_TEACHER, Principal

NOW = datetime(2026, 2, 24, 9, 0)


def _booking(booking_id: str, status: str = "pending") -> BookingRecord:
    return BookingRecord(
        booking_id=booking_id,
        lab_id="lab-1",
        date=date(2026, 3, 2),
        start_time=time(9, 0),
        end_time=time(10, 30),
        title="Titration practical",
        purpose="Chemistry year 2",
        user_id="teacher-1",
        user_name="Teacher One",
        student_count=18,
        year_group=2,
        status=status,
        created_at=NOW,
        updated_at=NOW,
    )


class TestGenerateSampleLabs(unittest.TestCase):
    def test_generates_distinct_labs_with_opening_hours(self) -> None:
        labs = generate_sample_labs(NOW)

        self.assertEqual(len(labs), 5)
        self.assertEqual(len({lab.lab_id for lab in labs}), 5)
        for lab in labs:
            self.assertGreater(lab.capacity, 0)
            self.assertEqual(lab.status, "operational")
            self.assertEqual(lab.opening_hours["monday"].open, "08:00")
            self.assertEqual(lab.opening_hours["sunday"].open, "")


class TestLabBookingYamlRepository(unittest.TestCase):
    def test_creates_data_files(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            data_dir = Path(temp_dir) / "data"
            LabBookingYamlRepository(data_dir)

            for name in ("labs.yaml", "bookings.yaml", "exam_periods.yaml", "booking_events.yaml"):
                self.assertTrue((data_dir / name).exists(), name)

    def test_seed_sample_labs_overwrites(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = LabBookingYamlRepository(Path(temp_dir) / "data")
            repo.seed_sample_labs(now=NOW)
            seeded = repo.seed_sample_labs(now=NOW, overwrite=True)

            labs = repo.get_labs()
            self.assertEqual(len(labs), 5)
            self.assertEqual({lab.lab_id for lab in labs}, {lab.lab_id for lab in seeded})
            self.assertEqual(repo.get_lab(seeded[0].lab_id), seeded[0])
            self.assertIsNone(repo.get_lab("missing"))

    def test_booking_crud_and_scan(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = LabBookingYamlRepository(Path(temp_dir) / "data")
            repo.insert_booking(_booking("a"))
            repo.insert_booking(_booking("b", status="approved"))

            self.assertEqual(repo.get_booking("a"), _booking("a"))
            self.assertEqual(
                [record.booking_id for record in repo.scan_bookings("lab-1", date(2026, 3, 2), "approved")],
                ["b"],
            )
            self.assertEqual(repo.scan_bookings("lab-1", date(2026, 3, 3)), [])

            repo.replace_booking(_booking("a", status="rejected"))
            self.assertEqual(repo.get_booking("a").status, "rejected")

            removed = repo.delete_booking("a")
            self.assertEqual(removed.booking_id, "a")
            self.assertEqual([record.booking_id for record in repo.get_bookings()], ["b"])

            with self.assertRaises(NotFoundError):
                repo.delete_booking("a")
            with self.assertRaises(NotFoundError):
                repo.replace_booking(_booking("missing"))

    def test_logs_booking_lifecycle_events(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = LabBookingYamlRepository(Path(temp_dir) / "data")
            lab = repo.seed_sample_labs(now=NOW)[0]
            workflow = BookingAdmissionWorkflow(repo, clock=lambda: NOW)
            teacher = Principal(user_id="teacher-1", name="Teacher One", role=ROLE_TEACHER)

            created = workflow.create_booking(
                teacher,
                {
                    "lab_id": lab.lab_id,
                    "date": "2026-03-02",
                    "start_time": "09:00",
                    "end_time": "10:00",
                    "purpose": "Practical",
                    "year_group": 1,
                },
            )
            workflow.transition_booking(created.booking_id, "approved")
            workflow.update_booking(created.booking_id, {"title": "Renamed"})
            workflow.cancel_booking(created.booking_id)

            event_types = [event["event_type"] for event in repo.get_events()]
            self.assertIn("BOOKING_CREATED", event_types)
            self.assertIn("BOOKING_STATUS_CHANGED", event_types)
            self.assertIn("BOOKING_UPDATED", event_types)
            self.assertIn("BOOKING_DELETED", event_types)

    def test_corrupted_yaml_is_backed_up_and_reset(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            data_dir = Path(temp_dir) / "data"
            repo = LabBookingYamlRepository(data_dir)
            repo.bookings_file.write_text("- booking_id: [unclosed\n", encoding="utf-8")

            with self.assertLogs("lab_booking.yaml_store", level="ERROR"):
                self.assertEqual(repo.get_bookings(), [])

            self.assertEqual(repo.bookings_file.read_text(encoding="utf-8"), "[]\n")
            self.assertTrue(list(data_dir.glob("bookings.corrupt.*.yaml")))
            self.assertIn("YAML_RECOVERED", [event["event_type"] for event in repo.get_events()])

    def test_non_mapping_rows_are_skipped(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = LabBookingYamlRepository(Path(temp_dir) / "data")
            repo.insert_booking(_booking("a"))
            contents = repo.bookings_file.read_text(encoding="utf-8")
            repo.bookings_file.write_text(contents + "- just a string\n", encoding="utf-8")

            self.assertEqual([record.booking_id for record in repo.get_bookings()], ["a"])
            self.assertIn("YAML_ROW_SKIPPED", [event["event_type"] for event in repo.get_events()])

    def test_non_mapping_row_in_event_log_does_not_fail_writes(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = LabBookingYamlRepository(Path(temp_dir) / "data")
            lab = repo.seed_sample_labs(now=NOW)[0]
            repo.log_file.write_text("- just a string\n", encoding="utf-8")
            workflow = BookingAdmissionWorkflow(repo, clock=lambda: NOW)
            teacher = Principal(user_id="teacher-1", name="Teacher One", role=ROLE_TEACHER)

            with self.assertLogs("lab_booking.yaml_store", level="WARNING"):
                created = workflow.create_booking(
                    teacher,
                    {
                        "lab_id": lab.lab_id,
                        "date": "2026-03-02",
                        "start_time": "09:00",
                        "end_time": "10:00",
                        "purpose": "Practical",
                        "year_group": 1,
                    },
                )

            self.assertEqual(repo.get_booking(created.booking_id), created)
            self.assertEqual([event["event_type"] for event in repo.get_events()], ["BOOKING_CREATED"])

    def test_event_log_write_failure_keeps_the_record(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = LabBookingYamlRepository(Path(temp_dir) / "data")
            write = repo._write_yaml_list

            def failing_log_write(path: Path, rows: list) -> None:
                if path == repo.log_file:
                    raise LabBookingStorageError(f"Failed to write YAML file: {path}")
                write(path, rows)

            with mock.patch.object(repo, "_write_yaml_list", side_effect=failing_log_write):
                with self.assertLogs("lab_booking.yaml_store", level="ERROR"):
                    repo.insert_booking(_booking("a"))
                    repo.log_event("BOOKING_CREATED", {"booking_id": "a"})

            self.assertEqual(repo.get_booking("a"), _booking("a"))
            self.assertEqual(repo.get_events(), [])


if __name__ == "__main__":
    unittest.main()
