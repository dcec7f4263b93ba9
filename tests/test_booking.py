import unittest
from datetime import date, datetime, time

from lab_booking import BookingRecord, Interval, find_conflicts, has_conflict, has_time_overlap


def _booking(booking_id: str, start: time, end: time, status: str = "approved", lab_id: str = "lab-1") -> BookingRecord:
    created = datetime(2026, 2, 20, 12, 0)
    return BookingRecord(
        booking_id=booking_id,
        lab_id=lab_id,
        date=date(2026, 2, 24),
        start_time=start,
        end_time=end,
        title=f"Booking {booking_id}",
        purpose="Practical",
        user_id="user-1",
        user_name="Teacher One",
        student_count=20,
        year_group=1,
        status=status,
        created_at=created,
        updated_at=created,
    )


class TestTimeOverlap(unittest.TestCase):
    def setUp(self) -> None:
        self.exist_start = time(10, 0)
        self.exist_end = time(11, 0)

    def test_non_overlapping_before_passes(self) -> None:
        self.assertFalse(has_time_overlap(time(9, 0), time(9, 59), self.exist_start, self.exist_end))

    def test_non_overlapping_after_passes(self) -> None:
        self.assertFalse(has_time_overlap(time(11, 1), time(12, 0), self.exist_start, self.exist_end))

    def test_exactly_touching_boundary_passes(self) -> None:
        self.assertFalse(has_time_overlap(time(11, 0), time(12, 0), self.exist_start, self.exist_end))
        self.assertFalse(has_time_overlap(time(9, 0), time(10, 0), self.exist_start, self.exist_end))

    def test_candidate_starting_inside_fails(self) -> None:
        self.assertTrue(has_time_overlap(time(10, 30), time(11, 30), self.exist_start, self.exist_end))

    def test_candidate_ending_inside_fails(self) -> None:
        self.assertTrue(has_time_overlap(time(9, 30), time(10, 30), self.exist_start, self.exist_end))

    def test_candidate_containing_existing_fails(self) -> None:
        self.assertTrue(has_time_overlap(time(9, 0), time(12, 0), self.exist_start, self.exist_end))

    def test_fully_contained_fails(self) -> None:
        self.assertTrue(has_time_overlap(time(10, 15), time(10, 45), self.exist_start, self.exist_end))

    def test_identical_interval_fails(self) -> None:
        self.assertTrue(has_time_overlap(time(10, 0), time(11, 0), self.exist_start, self.exist_end))

    def test_inverted_interval_raises(self) -> None:
        with self.assertRaises(ValueError):
            has_time_overlap(time(11, 0), time(10, 0), self.exist_start, self.exist_end)
        with self.assertRaises(ValueError):
            Interval(time(11, 0), time(11, 0))

    def test_matches_simple_half_open_rule(self) -> None:
        slots = [time(hour, minute) for hour in range(8, 13) for minute in (0, 30)]
        for new_start in slots:
            for new_end in slots:
                if new_start >= new_end:
                    continue
                expected = new_start < self.exist_end and self.exist_start < new_end
                self.assertEqual(
                    has_time_overlap(new_start, new_end, self.exist_start, self.exist_end),
                    expected,
                    f"{new_start}-{new_end}",
                )


class TestInterval(unittest.TestCase):
    def test_overlaps_uses_half_open_bounds(self) -> None:
        morning = Interval(time(9, 0), time(10, 0))
        self.assertTrue(morning.overlaps(Interval(time(9, 30), time(10, 30))))
        self.assertFalse(morning.overlaps(Interval(time(10, 0), time(11, 0))))
        self.assertFalse(Interval(time(8, 0), time(9, 0)).overlaps(morning))


class TestHasConflict(unittest.TestCase):
    def test_no_bookings_means_no_conflict(self) -> None:
        self.assertFalse(has_conflict("lab-1", date(2026, 2, 24), time(9, 0), time(10, 0), []))

    def test_only_approved_bookings_are_conflict_sources(self) -> None:
        bookings = [
            _booking("pending", time(9, 0), time(10, 0), status="pending"),
            _booking("rejected", time(9, 0), time(10, 0), status="rejected"),
        ]
        self.assertFalse(has_conflict("lab-1", date(2026, 2, 24), time(9, 0), time(10, 0), bookings))

        bookings.append(_booking("approved", time(9, 30), time(10, 30)))
        self.assertTrue(has_conflict("lab-1", date(2026, 2, 24), time(9, 0), time(10, 0), bookings))

    def test_other_lab_or_date_does_not_conflict(self) -> None:
        other_lab = _booking("other-lab", time(9, 0), time(10, 0), lab_id="lab-2")
        self.assertFalse(has_conflict("lab-1", date(2026, 2, 24), time(9, 0), time(10, 0), [other_lab]))
        self.assertFalse(has_conflict("lab-2", date(2026, 2, 25), time(9, 0), time(10, 0), [other_lab]))

    def test_exclude_id_skips_the_booking_itself(self) -> None:
        own = _booking("own", time(9, 0), time(10, 0))
        self.assertTrue(has_conflict("lab-1", date(2026, 2, 24), time(9, 15), time(10, 15), [own]))
        self.assertFalse(has_conflict("lab-1", date(2026, 2, 24), time(9, 15), time(10, 15), [own], exclude_id="own"))

    def test_inverted_candidate_raises(self) -> None:
        with self.assertRaises(ValueError):
            find_conflicts("lab-1", date(2026, 2, 24), time(10, 0), time(9, 0), [])

    def test_find_conflicts_returns_every_overlapping_booking(self) -> None:
        bookings = [
            _booking("a", time(8, 0), time(9, 0)),
            _booking("b", time(9, 0), time(10, 0)),
            _booking("c", time(10, 0), time(11, 0)),
        ]
        conflicts = find_conflicts("lab-1", date(2026, 2, 24), time(8, 30), time(10, 0), bookings)
        self.assertEqual([record.booking_id for record in conflicts], ["a", "b"])


if __name__ == "__main__":
    unittest.main()
