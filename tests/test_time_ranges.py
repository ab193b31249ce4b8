from __future__ import annotations

import unittest
from datetime import datetime, timezone

from school_inventory.services.time_ranges import TimeRange, range_start


def _utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class RangeStartTests(unittest.TestCase):
    def test_utc_boundaries(self) -> None:
        now = _utc(2025, 3, 12, 15, 0)  # Wednesday
        expected = {
            TimeRange.DAY: _utc(2025, 3, 12),
            TimeRange.WEEK: _utc(2025, 3, 10),
            TimeRange.MONTH: _utc(2025, 3, 1),
            TimeRange.YEAR: _utc(2025, 1, 1),
        }
        for time_range, start in expected.items():
            with self.subTest(time_range=time_range):
                self.assertEqual(range_start(time_range, now=now, tz_name='UTC'), start)

    def test_week_starts_on_monday(self) -> None:
        sunday = _utc(2025, 3, 16, 23, 59)
        monday = _utc(2025, 3, 10, 0, 0)
        self.assertEqual(range_start(TimeRange.WEEK, now=sunday, tz_name='UTC'), monday)
        self.assertEqual(range_start(TimeRange.WEEK, now=monday, tz_name='UTC'), monday)

    def test_local_midnights_in_reporting_timezone(self) -> None:
        # 2025-03-13 02:00 UTC is still the evening of the 12th in New York, after the DST switch.
        now = _utc(2025, 3, 13, 2, 0)
        tz_name = 'America/New_York'
        self.assertEqual(range_start(TimeRange.DAY, now=now, tz_name=tz_name), _utc(2025, 3, 12, 4))
        self.assertEqual(range_start(TimeRange.WEEK, now=now, tz_name=tz_name), _utc(2025, 3, 10, 4))
        self.assertEqual(range_start(TimeRange.MONTH, now=now, tz_name=tz_name), _utc(2025, 3, 1, 5))
        self.assertEqual(range_start(TimeRange.YEAR, now=now, tz_name=tz_name), _utc(2025, 1, 1, 5))

    def test_result_is_utc(self) -> None:
        start = range_start(TimeRange.DAY, now=_utc(2025, 7, 1, 12), tz_name='Asia/Tokyo')
        self.assertEqual(start.utcoffset().total_seconds(), 0)
        self.assertEqual(start, _utc(2025, 6, 30, 15))


if __name__ == '__main__':
    unittest.main()
