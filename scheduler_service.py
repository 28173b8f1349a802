from __future__ import annotations
import logging
from typing import Iterable, Optional

from db import (
    PlanRepository,
    PlanExerciseRepository,
    PlanSetRepository,
    ScheduledWorkoutRepository,
    ScheduledExerciseRepository,
    ScheduledSetRepository,
)
from errors import NotFoundError
from plan_service import validate_sets
from statuses import ScheduledStatus
from tools import DateTools, number_sets

logger = logging.getLogger("workouts.scheduler")


class SchedulerService:
    """Instantiates plans onto calendar dates as scheduled workouts.

    Every scheduled workout owns an independent copy of its exercises and
    sets, taken either from the referenced plan or from a custom list.
    """

    def __init__(
        self,
        plan_repo: PlanRepository,
        plan_exercise_repo: PlanExerciseRepository,
        plan_set_repo: PlanSetRepository,
        scheduled_repo: ScheduledWorkoutRepository,
        scheduled_exercise_repo: ScheduledExerciseRepository,
        scheduled_set_repo: ScheduledSetRepository,
    ) -> None:
        self.plans = plan_repo
        self.plan_exercises = plan_exercise_repo
        self.plan_sets = plan_set_repo
        self.scheduled = scheduled_repo
        self.exercises = scheduled_exercise_repo
        self.sets = scheduled_set_repo

    def _resolve_plan(self, user_id: str, plan_id: int) -> tuple:
        row = self.plans.find(plan_id, user_id)
        if row is None:
            logger.warning("plan %s not resolvable for %s", plan_id, user_id)
            raise NotFoundError("plan not found")
        return row

    def _copy_plan(self, plan_id: int, scheduled_id: int) -> None:
        for ex_id, position, name, rest in self.plan_exercises.fetch_for_plan(plan_id):
            new_ex_id = self.exercises.add(scheduled_id, position, name, rest)
            for _sid, number, reps, weight in self.plan_sets.fetch_for_exercise(ex_id):
                self.sets.add(new_ex_id, number, reps, weight)

    def _add_custom(self, scheduled_id: int, exercises: Iterable[dict]) -> None:
        for position, exercise in enumerate(exercises, start=1):
            sets = list(exercise.get("sets") or [])
            validate_sets(sets)
            ex_id = self.exercises.add(
                scheduled_id,
                position,
                exercise["name"],
                int(exercise.get("rest_seconds") or 0),
            )
            for number, item in number_sets(sets):
                self.sets.add(ex_id, number, int(item["reps"]), float(item["weight"]))

    def _to_dict(self, row: tuple) -> dict:
        (sid, user_id, plan_id, date, time, plan_name, notes, status, visible) = row
        exercises = []
        for ex_id, position, name, rest in self.exercises.fetch_for_workout(sid):
            exercises.append(
                {
                    "id": ex_id,
                    "position": position,
                    "name": name,
                    "rest_seconds": rest,
                    "sets": [
                        {"id": set_id, "set_number": num, "reps": reps, "weight": weight}
                        for set_id, num, reps, weight in self.sets.fetch_for_exercise(ex_id)
                    ],
                }
            )
        return {
            "id": sid,
            "user_id": user_id,
            "plan_id": plan_id,
            "date": date,
            "time": time,
            "plan_name": plan_name,
            "notes": notes,
            "status": status,
            "visible_to_friends": bool(visible),
            "exercises": exercises,
        }

    def create(
        self,
        user_id: str,
        date: str,
        plan_id: int,
        time: str | None = None,
        exercises: Iterable[dict] | None = None,
        plan_name: str | None = None,
        notes: str | None = None,
        status: str | None = None,
        visible_to_friends: bool = False,
    ) -> dict:
        day = DateTools.parse_date(date).isoformat()
        custom = list(exercises or [])
        with self.scheduled.transaction():
            _pid, _uid, name, _ptype, plan_notes = self._resolve_plan(user_id, plan_id)
            scheduled_id = self.scheduled.create(
                user_id,
                day,
                plan_id,
                time,
                plan_name if plan_name and plan_name.strip() else name,
                notes if notes is not None else plan_notes,
                ScheduledStatus.parse(status),
                visible_to_friends,
            )
            if custom:
                self._add_custom(scheduled_id, custom)
            else:
                self._copy_plan(plan_id, scheduled_id)
            result = self._to_dict(self.scheduled.find(scheduled_id, user_id))
        logger.info("scheduled workout %s created from plan %s", scheduled_id, plan_id)
        return result

    def update(
        self,
        user_id: str,
        scheduled_id: int,
        date: str,
        plan_id: int,
        time: str | None = None,
        exercises: Iterable[dict] | None = None,
        plan_name: str | None = None,
        notes: str | None = None,
        status: str | None = None,
        visible_to_friends: bool = False,
    ) -> dict:
        day = DateTools.parse_date(date).isoformat()
        custom = list(exercises or [])
        with self.scheduled.transaction():
            existing = self.scheduled.find(scheduled_id, user_id)
            if existing is None:
                raise NotFoundError("scheduled workout not found")
            _pid, _uid, name, _ptype, plan_notes = self._resolve_plan(user_id, plan_id)
            plan_changed = existing[2] != plan_id
            self.scheduled.update(
                scheduled_id,
                day,
                time,
                plan_id,
                plan_name if plan_name and plan_name.strip() else name,
                notes if notes is not None else plan_notes,
                ScheduledStatus.parse(status),
                visible_to_friends,
            )
            if custom:
                self.exercises.delete_for_workout(scheduled_id)
                self._add_custom(scheduled_id, custom)
            elif plan_changed:
                self.exercises.delete_for_workout(scheduled_id)
                self._copy_plan(plan_id, scheduled_id)
            result = self._to_dict(self.scheduled.find(scheduled_id, user_id))
        logger.info(
            "scheduled workout %s updated (rebuilt=%s)",
            scheduled_id,
            bool(custom) or plan_changed,
        )
        return result

    def duplicate(self, user_id: str, scheduled_id: int) -> dict:
        with self.scheduled.transaction():
            row = self.scheduled.find(scheduled_id, user_id)
            if row is None:
                raise NotFoundError("scheduled workout not found")
            _sid, _uid, plan_id, date, time, plan_name, notes, status, visible = row
            new_id = self.scheduled.create(
                user_id,
                date,
                plan_id,
                time,
                plan_name,
                notes,
                ScheduledStatus(status),
                bool(visible),
            )
            for ex_id, position, name, rest in self.exercises.fetch_for_workout(scheduled_id):
                new_ex_id = self.exercises.add(new_id, position, name, rest)
                for _set_id, number, reps, weight in self.sets.fetch_for_exercise(ex_id):
                    self.sets.add(new_ex_id, number, reps, weight)
            result = self._to_dict(self.scheduled.find(new_id, user_id))
        logger.info("scheduled workout %s duplicated as %s", scheduled_id, new_id)
        return result

    def delete(self, user_id: str, scheduled_id: int) -> bool:
        with self.scheduled.transaction():
            if self.scheduled.find(scheduled_id, user_id) is None:
                return False
            self.scheduled.delete(scheduled_id)
        logger.info("scheduled workout %s deleted", scheduled_id)
        return True

    def get(self, user_id: str, scheduled_id: int) -> Optional[dict]:
        row = self.scheduled.find(scheduled_id, user_id)
        return self._to_dict(row) if row else None

    def list_all(self, user_id: str) -> list[dict]:
        return [self._to_dict(r) for r in self.scheduled.fetch_for_user(user_id)]

    def by_date(self, user_id: str, date: str) -> list[dict]:
        day = DateTools.parse_date(date).isoformat()
        return [
            self._to_dict(r) for r in self.scheduled.fetch_for_user(user_id, day, day)
        ]
