import os
import sys
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from rest_api import WorkoutAPI
from errors import NotFoundError


LEGS = [
    {
        "name": "Squat",
        "rest_seconds": 180,
        "sets": [{"reps": 5, "weight": 140.0}, {"reps": 5, "weight": 145.0}],
    },
    {"name": "Lunge", "rest_seconds": 90, "sets": [{"reps": 10, "weight": 20.0}]},
]


class SchedulerServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_scheduler.db"
        self.yaml_path = "test_scheduler.yaml"
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)
        self.api = WorkoutAPI(db_path=self.db_path, yaml_path=self.yaml_path)
        self.scheduler = self.api.scheduler
        self.plan = self.api.plan_service.create("alice", "Legs", LEGS, notes="plan notes")

    def tearDown(self) -> None:
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)

    def test_create_copies_plan(self) -> None:
        item = self.scheduler.create("alice", "2024-03-01", self.plan["id"], time="07:30")
        self.assertEqual(item["plan_name"], "Legs")
        self.assertEqual(item["notes"], "plan notes")
        self.assertEqual(item["status"], "planned")
        self.assertEqual(item["time"], "07:30")
        self.assertFalse(item["visible_to_friends"])
        self.assertEqual([e["name"] for e in item["exercises"]], ["Squat", "Lunge"])
        squat = item["exercises"][0]
        self.assertEqual(
            [(s["set_number"], s["reps"], s["weight"]) for s in squat["sets"]],
            [(1, 5, 140.0), (2, 5, 145.0)],
        )
        self.assertEqual(item["plan_id"], self.plan["id"])

    def test_overrides_and_status(self) -> None:
        item = self.scheduler.create(
            "alice",
            "2024-03-01",
            self.plan["id"],
            plan_name="Leg Day",
            notes="",
            status="  Completed ",
            visible_to_friends=True,
        )
        self.assertEqual(item["plan_name"], "Leg Day")
        self.assertEqual(item["notes"], "")
        self.assertEqual(item["status"], "completed")
        self.assertTrue(item["visible_to_friends"])
        blank = self.scheduler.create(
            "alice", "2024-03-02", self.plan["id"], plan_name="  ", status="finished"
        )
        self.assertEqual(blank["plan_name"], "Legs")
        self.assertEqual(blank["status"], "planned")

    def test_custom_exercises_replace_plan(self) -> None:
        custom = [
            {
                "name": "Leg Press",
                "sets": [
                    {"reps": 12, "weight": 200.0, "set_number": 4},
                    {"reps": 10, "weight": 220.0, "set_number": 4},
                    {"reps": 8, "weight": 240.0, "set_number": 1},
                ],
            }
        ]
        item = self.scheduler.create("alice", "2024-03-01", self.plan["id"], exercises=custom)
        self.assertEqual([e["name"] for e in item["exercises"]], ["Leg Press"])
        self.assertEqual(
            [(s["set_number"], s["reps"]) for s in item["exercises"][0]["sets"]],
            [(1, 12), (2, 10), (3, 8)],
        )

    def test_plan_edits_do_not_propagate(self) -> None:
        item = self.scheduler.create("alice", "2024-03-01", self.plan["id"])
        self.api.plan_service.update(
            "alice", self.plan["id"], "Legs v2", [{"name": "Deadlift", "sets": []}]
        )
        again = self.scheduler.get("alice", item["id"])
        self.assertEqual(again["plan_name"], "Legs")
        self.assertEqual([e["name"] for e in again["exercises"]], ["Squat", "Lunge"])

    def test_update_without_structure_change_keeps_exercises(self) -> None:
        item = self.scheduler.create("alice", "2024-03-01", self.plan["id"])
        updated = self.scheduler.update(
            "alice", item["id"], "2024-03-05", self.plan["id"], time="18:00", notes="moved"
        )
        self.assertEqual(updated["date"], "2024-03-05")
        self.assertEqual(updated["notes"], "moved")
        self.assertEqual(
            [e["id"] for e in updated["exercises"]], [e["id"] for e in item["exercises"]]
        )

    def test_update_rebuilds_on_plan_change(self) -> None:
        other = self.api.plan_service.create(
            "alice", "Arms", [{"name": "Curl", "sets": [{"reps": 10, "weight": 15.0}]}]
        )
        item = self.scheduler.create("alice", "2024-03-01", self.plan["id"])
        updated = self.scheduler.update("alice", item["id"], "2024-03-01", other["id"])
        self.assertEqual(updated["plan_id"], other["id"])
        self.assertEqual(updated["plan_name"], "Arms")
        self.assertEqual([e["name"] for e in updated["exercises"]], ["Curl"])

    def test_update_rebuilds_on_custom_exercises(self) -> None:
        item = self.scheduler.create("alice", "2024-03-01", self.plan["id"])
        updated = self.scheduler.update(
            "alice",
            item["id"],
            "2024-03-01",
            self.plan["id"],
            exercises=[{"name": "Calf Raise", "sets": [{"reps": 15, "weight": 40.0}]}],
        )
        self.assertEqual([e["name"] for e in updated["exercises"]], ["Calf Raise"])

    def test_ownership_guard(self) -> None:
        bob_plan = self.api.plan_service.create("bob", "Bob", [])
        with self.assertRaises(NotFoundError):
            self.scheduler.create("alice", "2024-03-01", bob_plan["id"])
        item = self.scheduler.create("alice", "2024-03-01", self.plan["id"])
        self.assertIsNone(self.scheduler.get("bob", item["id"]))
        with self.assertRaises(NotFoundError):
            self.scheduler.update("bob", item["id"], "2024-03-01", bob_plan["id"])
        with self.assertRaises(NotFoundError):
            self.scheduler.update("alice", item["id"], "2024-03-01", bob_plan["id"])
        with self.assertRaises(NotFoundError):
            self.scheduler.duplicate("bob", item["id"])
        self.assertFalse(self.scheduler.delete("bob", item["id"]))

    def test_duplicate(self) -> None:
        item = self.scheduler.create(
            "alice", "2024-03-01", self.plan["id"], time="06:00",
            status="completed", visible_to_friends=True,
        )
        copy = self.scheduler.duplicate("alice", item["id"])
        self.assertNotEqual(copy["id"], item["id"])
        for key in ("date", "time", "status", "visible_to_friends", "plan_name", "notes"):
            self.assertEqual(copy[key], item[key])
        self.assertEqual(
            [e["name"] for e in copy["exercises"]], [e["name"] for e in item["exercises"]]
        )
        self.assertFalse(
            {e["id"] for e in copy["exercises"]} & {e["id"] for e in item["exercises"]}
        )

    def test_delete_cascades(self) -> None:
        item = self.scheduler.create("alice", "2024-03-01", self.plan["id"])
        self.assertTrue(self.scheduler.delete("alice", item["id"]))
        self.assertFalse(self.scheduler.delete("alice", item["id"]))
        rows = self.api.scheduled_sets.fetch_all("SELECT COUNT(*) FROM scheduled_sets;")
        self.assertEqual(rows[0][0], 0)

    def test_list_and_by_date(self) -> None:
        self.scheduler.create("alice", "2024-03-02", self.plan["id"], time="09:00")
        self.scheduler.create("alice", "2024-03-01", self.plan["id"])
        self.scheduler.create("alice", "2024-03-02", self.plan["id"], time="07:00")
        self.scheduler.create("bob", "2024-03-02", self.api.plan_service.create("bob", "B", [])["id"])
        dates = [(i["date"], i["time"]) for i in self.scheduler.list_all("alice")]
        self.assertEqual(
            dates, [("2024-03-01", None), ("2024-03-02", "07:00"), ("2024-03-02", "09:00")]
        )
        day = self.scheduler.by_date("alice", "2024-03-02")
        self.assertEqual([i["time"] for i in day], ["07:00", "09:00"])
        with self.assertRaises(ValueError):
            self.scheduler.by_date("alice", "03/02/2024")

    def test_invalid_date_rejected(self) -> None:
        with self.assertRaises(ValueError):
            self.scheduler.create("alice", "tomorrow", self.plan["id"])

    def test_plan_delete_keeps_schedule(self) -> None:
        item = self.scheduler.create("alice", "2024-03-01", self.plan["id"])
        self.api.plan_service.delete("alice", self.plan["id"])
        again = self.scheduler.get("alice", item["id"])
        self.assertIsNone(again["plan_id"])
        self.assertEqual(len(again["exercises"]), 2)

    def test_failed_create_persists_nothing(self) -> None:
        broken = [
            {"name": "Squat", "sets": [{"reps": 5, "weight": 100.0}]},
            {"sets": [{"reps": 5, "weight": 100.0}]},
        ]
        with self.assertRaises(KeyError):
            self.scheduler.create("alice", "2024-03-01", self.plan["id"], exercises=broken)
        self.assertEqual(self.scheduler.list_all("alice"), [])
        rows = self.api.scheduled_exercises.fetch_all(
            "SELECT COUNT(*) FROM scheduled_exercises;"
        )
        self.assertEqual(rows[0][0], 0)


if __name__ == "__main__":
    unittest.main()
