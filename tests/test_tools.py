import os
import sys
import datetime
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from tools import MathTools, DateTools, number_sets
from statuses import ScheduledStatus


class MathToolsTestCase(unittest.TestCase):
    def test_epley_1rm(self) -> None:
        self.assertAlmostEqual(MathTools.epley_1rm(100, 30), 200.0)
        self.assertAlmostEqual(MathTools.epley_1rm(100, 0), 100.0)
        self.assertAlmostEqual(MathTools.epley_1rm(90, 6), 90 * 1.2)
        with self.assertRaises(ValueError):
            MathTools.epley_1rm(100, -1)

    def test_volume(self) -> None:
        sets = [(10, 100.0), (5, 150.0)]
        self.assertEqual(MathTools.volume(sets), 10 * 100.0 + 5 * 150.0)
        self.assertEqual(MathTools.volume([]), 0.0)
        self.assertEqual(MathTools.volume([(None, 50.0), (8, None)]), 0.0)

    def test_percentage(self) -> None:
        self.assertEqual(MathTools.percentage(1, 3), 33.3)
        self.assertEqual(MathTools.percentage(2, 3), 66.7)
        self.assertEqual(MathTools.percentage(5, 0), 0.0)


class DateToolsTestCase(unittest.TestCase):
    def test_naive_is_utc(self) -> None:
        value = DateTools.to_utc(datetime.datetime(2024, 1, 1, 10, 0))
        self.assertEqual(value.tzinfo, datetime.timezone.utc)
        self.assertEqual(value.hour, 10)

    def test_aware_is_converted(self) -> None:
        tz = datetime.timezone(datetime.timedelta(hours=2))
        value = DateTools.to_utc(datetime.datetime(2024, 1, 1, 10, 0, tzinfo=tz))
        self.assertEqual(value.hour, 8)

    def test_text_round_trip_is_fixed_width(self) -> None:
        a = DateTools.to_text(datetime.datetime(2024, 1, 1, 10, 0))
        b = DateTools.to_text(datetime.datetime(2024, 1, 1, 10, 0, 0, 5))
        self.assertEqual(len(a), len(b))
        self.assertLess(a, b)
        self.assertEqual(DateTools.parse(a), datetime.datetime(2024, 1, 1, 10, tzinfo=datetime.timezone.utc))
        self.assertIsNone(DateTools.parse(None))

    def test_parse_date(self) -> None:
        self.assertEqual(DateTools.parse_date("2024-02-29"), datetime.date(2024, 2, 29))
        for bad in ("2024/01/01", "01-01-2024", "2024-13-01", ""):
            with self.assertRaises(ValueError):
                DateTools.parse_date(bad)

    def test_iso_week_label(self) -> None:
        self.assertEqual(DateTools.iso_week_label(datetime.date(2024, 1, 1)), "2024-W01")
        self.assertEqual(DateTools.iso_week_label(datetime.date(2021, 1, 3)), "2020-W53")

    def test_ordered(self) -> None:
        self.assertEqual(DateTools.ordered(5, 2), (2, 5))
        self.assertEqual(DateTools.ordered(2, 5), (2, 5))


class NumberSetsTestCase(unittest.TestCase):
    def test_caller_numbering_is_ignored(self) -> None:
        sets = [{"set_number": 7}, {"set_number": 7}, {"set_number": 1}]
        self.assertEqual([n for n, _ in number_sets(sets)], [1, 2, 3])


class ScheduledStatusTestCase(unittest.TestCase):
    def test_parse(self) -> None:
        self.assertEqual(ScheduledStatus.parse("completed"), ScheduledStatus.COMPLETED)
        self.assertEqual(ScheduledStatus.parse("  CoMpLeTeD "), ScheduledStatus.COMPLETED)
        self.assertEqual(ScheduledStatus.parse("done"), ScheduledStatus.PLANNED)
        self.assertEqual(ScheduledStatus.parse(""), ScheduledStatus.PLANNED)
        self.assertEqual(ScheduledStatus.parse(None), ScheduledStatus.PLANNED)


if __name__ == "__main__":
    unittest.main()
