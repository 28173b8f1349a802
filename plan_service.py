from __future__ import annotations
import logging
from typing import Iterable, Optional

from db import (
    PlanRepository,
    PlanExerciseRepository,
    PlanSetRepository,
    SharedPlanRepository,
)
from errors import NotFoundError, ConflictError, InvalidStateError
from statuses import RequestStatus
from tools import DateTools, number_sets

logger = logging.getLogger("workouts.plans")


def validate_sets(sets: Iterable[dict]) -> None:
    for item in sets:
        if int(item.get("reps", 0)) < 0:
            raise ValueError("reps must be non-negative")
        if float(item.get("weight", 0.0)) < 0:
            raise ValueError("weight must be non-negative")


class PlanService:
    """Manages user authored plans and plan sharing."""

    def __init__(
        self,
        plan_repo: PlanRepository,
        exercise_repo: PlanExerciseRepository,
        set_repo: PlanSetRepository,
        shared_repo: SharedPlanRepository | None = None,
    ) -> None:
        self.plans = plan_repo
        self.exercises = exercise_repo
        self.sets = set_repo
        self.shared = shared_repo or SharedPlanRepository(plan_repo._db_path)

    def _add_exercises(self, plan_id: int, exercises: Iterable[dict]) -> None:
        for position, exercise in enumerate(exercises, start=1):
            sets = list(exercise.get("sets") or [])
            validate_sets(sets)
            ex_id = self.exercises.add(
                plan_id,
                position,
                exercise["name"],
                int(exercise.get("rest_seconds") or 0),
            )
            for number, item in number_sets(sets):
                self.sets.add(ex_id, number, int(item["reps"]), float(item["weight"]))

    def _to_dict(self, row: tuple, shared_plan_id: int | None = None) -> dict:
        plan_id, user_id, name, plan_type, notes = row
        exercises = []
        for ex_id, position, ex_name, rest in self.exercises.fetch_for_plan(plan_id):
            exercises.append(
                {
                    "id": ex_id,
                    "position": position,
                    "name": ex_name,
                    "rest_seconds": rest,
                    "sets": [
                        {"id": sid, "set_number": num, "reps": reps, "weight": weight}
                        for sid, num, reps, weight in self.sets.fetch_for_exercise(ex_id)
                    ],
                }
            )
        data = {
            "id": plan_id,
            "user_id": user_id,
            "name": name,
            "plan_type": plan_type,
            "notes": notes,
            "exercises": exercises,
        }
        if shared_plan_id is not None:
            data["shared_plan_id"] = shared_plan_id
        return data

    def _owned(self, user_id: str, plan_id: int) -> tuple:
        row = self.plans.find(plan_id, user_id)
        if row is None:
            raise NotFoundError("plan not found")
        return row

    def create(
        self,
        user_id: str,
        name: str,
        exercises: Iterable[dict] = (),
        plan_type: str | None = None,
        notes: str | None = None,
    ) -> dict:
        with self.plans.transaction():
            plan_id = self.plans.create(user_id, name, plan_type, notes)
            self._add_exercises(plan_id, exercises)
            result = self._to_dict(self._owned(user_id, plan_id))
        logger.info("plan %s created for %s", plan_id, user_id)
        return result

    def list(self, user_id: str, include_shared: bool = False) -> list[dict]:
        result = [self._to_dict(row) for row in self.plans.fetch_for_user(user_id)]
        if include_shared:
            seen = {p["id"] for p in result}
            for shared in self.shared_with_me(user_id):
                if shared["plan_id"] in seen:
                    continue
                seen.add(shared["plan_id"])
                row = self.plans.fetch_detail(shared["plan_id"])
                result.append(self._to_dict(row, shared_plan_id=shared["id"]))
        return result

    def get(self, user_id: str, plan_id: int) -> Optional[dict]:
        row = self.plans.find(plan_id, user_id)
        return self._to_dict(row) if row else None

    def update(
        self,
        user_id: str,
        plan_id: int,
        name: str,
        exercises: Iterable[dict] = (),
        plan_type: str | None = None,
        notes: str | None = None,
    ) -> dict:
        with self.plans.transaction():
            self._owned(user_id, plan_id)
            self.plans.update(plan_id, name, plan_type, notes)
            self.exercises.delete_for_plan(plan_id)
            self._add_exercises(plan_id, exercises)
            result = self._to_dict(self._owned(user_id, plan_id))
        logger.info("plan %s updated", plan_id)
        return result

    def delete(self, user_id: str, plan_id: int) -> bool:
        with self.plans.transaction():
            if self.plans.find(plan_id, user_id) is None:
                return False
            self.plans.delete(plan_id)
        logger.info("plan %s deleted", plan_id)
        return True

    def duplicate(self, user_id: str, plan_id: int) -> dict:
        with self.plans.transaction():
            _pid, _uid, name, plan_type, notes = self._owned(user_id, plan_id)
            new_id = self.plans.create(user_id, f"{name} (Copy)", plan_type, notes)
            for ex_id, position, ex_name, rest in self.exercises.fetch_for_plan(plan_id):
                new_ex_id = self.exercises.add(new_id, position, ex_name, rest)
                for _sid, number, reps, weight in self.sets.fetch_for_exercise(ex_id):
                    self.sets.add(new_ex_id, number, reps, weight)
            result = self._to_dict(self._owned(user_id, new_id))
        logger.info("plan %s duplicated as %s", plan_id, new_id)
        return result

    # plan sharing

    @staticmethod
    def _shared_dict(row: tuple) -> dict:
        sid, plan_id, plan_name, shared_by, shared_with, status, shared_at, responded_at = row
        return {
            "id": sid,
            "plan_id": plan_id,
            "plan_name": plan_name,
            "shared_by": shared_by,
            "shared_with": shared_with,
            "status": status,
            "shared_at": shared_at,
            "responded_at": responded_at,
        }

    def share(self, user_id: str, plan_id: int, target_user_id: str) -> dict:
        if target_user_id == user_id:
            raise ConflictError("cannot share a plan with yourself")
        with self.plans.transaction():
            self._owned(user_id, plan_id)
            if self.shared.exists(plan_id, target_user_id):
                raise ConflictError("plan already shared with this user")
            sid = self.shared.create(
                plan_id,
                user_id,
                target_user_id,
                DateTools.to_text(DateTools.utc_now()),
            )
            row = self.shared.find_for_party(sid, user_id)
        logger.info("plan %s shared as %s", plan_id, sid)
        return self._shared_dict(row)

    def respond_shared(self, user_id: str, shared_id: int, accept: bool) -> dict:
        with self.plans.transaction():
            row = self.shared.find_for_recipient(shared_id, user_id)
            if row is None:
                raise NotFoundError("shared plan not found")
            if row[5] != RequestStatus.PENDING.value:
                raise InvalidStateError("shared plan already answered")
            status = RequestStatus.ACCEPTED if accept else RequestStatus.REJECTED
            self.shared.set_status(
                shared_id, status, DateTools.to_text(DateTools.utc_now())
            )
            row = self.shared.find_for_recipient(shared_id, user_id)
        return self._shared_dict(row)

    def shared_with_me(self, user_id: str) -> list[dict]:
        rows = self.shared.fetch_for_recipient(user_id, RequestStatus.ACCEPTED)
        return [self._shared_dict(r) for r in rows]

    def pending_shared(self, user_id: str) -> list[dict]:
        rows = self.shared.fetch_for_recipient(user_id, RequestStatus.PENDING)
        return [self._shared_dict(r) for r in rows]

    def get_shared_plan(self, user_id: str, shared_id: int) -> dict:
        """Return the full plan behind an accepted share addressed to ``user_id``."""
        row = self.shared.find_for_recipient(shared_id, user_id)
        if row is None or row[5] != RequestStatus.ACCEPTED.value:
            raise NotFoundError("shared plan not found")
        return self._to_dict(self.plans.fetch_detail(row[1]), shared_plan_id=shared_id)

    def delete_shared(
        self, user_id: str, shared_id: int, only_if_pending: bool = False
    ) -> None:
        with self.plans.transaction():
            row = self.shared.find_for_party(shared_id, user_id)
            if row is None:
                raise NotFoundError("shared plan not found")
            if only_if_pending and row[5] != RequestStatus.PENDING.value:
                raise InvalidStateError("shared plan is no longer pending")
            self.shared.delete(shared_id)
