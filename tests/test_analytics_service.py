import os
import sys
import datetime
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from rest_api import WorkoutAPI


def at(day: int, hour: int = 10, month: int = 1) -> datetime.datetime:
    return datetime.datetime(2024, month, day, hour, 0)


class AnalyticsServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_analytics.db"
        self.yaml_path = "test_analytics.yaml"
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)
        self.api = WorkoutAPI(db_path=self.db_path, yaml_path=self.yaml_path)
        self.analytics = self.api.analytics
        self.plan = self.api.plan_service.create(
            "alice", "Bench", [{"name": "Bench", "sets": [{"reps": 10, "weight": 100.0}]}]
        )
        self.days = []
        for day in (1, 2, 3):
            self.days.append(
                self.api.scheduler.create("alice", f"2024-01-0{day}", self.plan["id"])
            )
        for day, scheduled in zip((1, 2), self.days):
            self.api.session_service.quick_complete(
                "alice", scheduled["id"], at(day), at(day, 11)
            )

    def tearDown(self) -> None:
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)

    def _quick(self, date: str, started: datetime.datetime, exercises: list) -> dict:
        scheduled = self.api.scheduler.create(
            "alice", date, self.plan["id"], exercises=exercises
        )
        return self.api.session_service.quick_complete("alice", scheduled["id"], started)

    def test_volume_by_day(self) -> None:
        points = self.analytics.volume("alice", at(1, 0), at(3, 0), "day")
        self.assertEqual(
            points,
            [
                {"period": "2024-01-01", "value": 1000.0},
                {"period": "2024-01-02", "value": 1000.0},
            ],
        )

    def test_volume_range_is_half_open(self) -> None:
        points = self.analytics.volume("alice", at(1, 0), at(2, 10), "day")
        self.assertEqual([p["period"] for p in points], ["2024-01-01"])
        swapped = self.analytics.volume("alice", at(3, 0), at(1, 0))
        self.assertEqual(len(swapped), 2)

    def test_volume_by_week(self) -> None:
        self._quick("2024-01-08", at(8), [])
        points = self.analytics.volume("alice", at(1, 0), at(9, 0), "WEEK")
        self.assertEqual(
            points,
            [
                {"period": "2024-W01", "value": 2000.0},
                {"period": "2024-W02", "value": 1000.0},
            ],
        )

    def test_volume_by_exercise(self) -> None:
        self._quick(
            "2024-01-03",
            at(3),
            [
                {"name": "Row", "sets": [{"reps": 10, "weight": 10.0}]},
                {"name": "Bench", "sets": [{"reps": 5, "weight": 100.0}]},
            ],
        )
        points = self.analytics.volume("alice", at(1, 0), at(4, 0), "exercise")
        self.assertEqual(
            points,
            [
                {"period": "Bench", "exercise_name": "Bench", "value": 2500.0},
                {"period": "Row", "exercise_name": "Row", "value": 100.0},
            ],
        )
        filtered = self.analytics.volume("alice", at(1, 0), at(4, 0), "day", "Row")
        self.assertEqual(filtered, [{"period": "2024-01-03", "value": 100.0}])

    def test_volume_invalid_group(self) -> None:
        with self.assertRaises(ValueError):
            self.analytics.volume("alice", at(1), at(3), "month")

    def test_aborted_sessions_ignored(self) -> None:
        session = self.api.session_service.start("alice", self.days[2]["id"])
        set_id = session["exercises"][0]["sets"][0]["id"]
        self.api.session_service.patch_set(
            "alice", session["id"], set_id, reps_done=10, weight_done=100.0
        )
        self.api.session_service.abort("alice", session["id"])
        now = datetime.datetime.now(datetime.timezone.utc)
        points = self.analytics.volume(
            "alice", at(1, 0), now + datetime.timedelta(days=1), "exercise"
        )
        self.assertEqual(points[0]["value"], 2000.0)

    def test_e1rm(self) -> None:
        self._quick(
            "2024-01-05",
            at(5),
            [
                {
                    "name": "Squat",
                    "sets": [
                        {"reps": 30, "weight": 100.0},
                        {"reps": 1, "weight": 150.0},
                        {"reps": 0, "weight": 300.0},
                    ],
                }
            ],
        )
        self._quick(
            "2024-01-06", at(6), [{"name": "Squat", "sets": [{"reps": 3, "weight": 150.0}]}]
        )
        points = self.analytics.e1rm("alice", "Squat", at(1, 0), at(7, 0))
        self.assertEqual(
            points,
            [
                {"day": "2024-01-05", "e1rm": 200.0, "session_id": None},
                {"day": "2024-01-06", "e1rm": 165.0, "session_id": None},
            ],
        )
        self.assertEqual(self.analytics.e1rm("alice", "Deadlift", at(1, 0), at(7, 0)), [])

    def test_adherence(self) -> None:
        result = self.analytics.adherence(
            "alice", datetime.date(2024, 1, 1), datetime.date(2024, 1, 3)
        )
        self.assertEqual(
            result, {"planned": 3, "completed": 2, "missed": 1, "adherence_pct": 66.7}
        )
        for day in (1, 2, 3):
            self.api.scheduler.create("alice", f"2024-02-0{day}", self.plan["id"])
        feb = self.api.scheduler.by_date("alice", "2024-02-01")[0]
        self.api.session_service.quick_complete("alice", feb["id"], at(1, month=2))
        result = self.analytics.adherence(
            "alice", datetime.date(2024, 2, 3), datetime.date(2024, 2, 1)
        )
        self.assertEqual(
            result, {"planned": 3, "completed": 1, "missed": 2, "adherence_pct": 33.3}
        )
        empty = self.analytics.adherence(
            "alice", datetime.date(2023, 1, 1), datetime.date(2023, 1, 31)
        )
        self.assertEqual(empty["adherence_pct"], 0.0)
        self.assertEqual(empty["missed"], 0)

    def test_overview(self) -> None:
        result = self.analytics.overview("alice", at(1, 0), at(3, 0))
        self.assertEqual(
            result,
            {
                "total_volume": 2000.0,
                "avg_intensity": 100.0,
                "sessions_count": 2,
                "adherence_pct": 100.0,
                "new_prs": 0,
            },
        )
        wide = self.analytics.overview("alice", at(4, 0), at(1, 0))
        self.assertEqual(wide["adherence_pct"], 66.7)

    def test_overview_intensity_skips_empty_sets(self) -> None:
        self._quick(
            "2024-01-04",
            at(4),
            [
                {
                    "name": "Chin Up",
                    "sets": [{"reps": 8, "weight": 0.0}, {"reps": 5, "weight": 20.0}],
                }
            ],
        )
        result = self.analytics.overview("alice", at(4, 0), at(5, 0))
        self.assertEqual(result["total_volume"], 100.0)
        self.assertEqual(result["avg_intensity"], 20.0)
        self.assertEqual(result["sessions_count"], 1)

    def test_plan_vs_actual(self) -> None:
        service = self.api.session_service
        session = service.start("alice", self.days[2]["id"])
        set_id = session["exercises"][0]["sets"][0]["id"]
        service.patch_set("alice", session["id"], set_id, reps_done=8, weight_done=95.0, rpe=9)
        service.add_exercise(
            "alice", session["id"], "Push Up", 0, [{"reps_planned": 20, "weight_planned": 0.0}]
        )
        items = self.analytics.plan_vs_actual("alice", session["id"])
        self.assertEqual(len(items), 2)
        bench, extra = items
        self.assertEqual(bench["exercise_name"], "Bench")
        self.assertEqual(bench["reps_diff"], -2)
        self.assertEqual(bench["weight_diff"], -5.0)
        self.assertEqual(bench["rpe"], 9)
        self.assertFalse(bench["is_extra"])
        self.assertEqual(extra["exercise_name"], "Push Up")
        self.assertTrue(extra["is_extra"])
        self.assertEqual(extra["reps_diff"], -20)
        self.assertIsNone(extra["reps_done"])

    def test_plan_vs_actual_unknown_session(self) -> None:
        self.assertEqual(self.analytics.plan_vs_actual("alice", 9999), [])
        session = self.api.session_service.start("alice", self.days[2]["id"])
        self.assertEqual(self.analytics.plan_vs_actual("bob", session["id"]), [])

    def test_other_users_see_nothing(self) -> None:
        self.assertEqual(self.analytics.volume("bob", at(1, 0), at(3, 0)), [])
        overview = self.analytics.overview("bob", at(1, 0), at(3, 0))
        self.assertEqual(overview["sessions_count"], 0)
        self.assertEqual(overview["total_volume"], 0.0)


if __name__ == "__main__":
    unittest.main()
