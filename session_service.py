from __future__ import annotations
import datetime
import logging
from typing import Iterable, Optional

from db import (
    ScheduledWorkoutRepository,
    ScheduledExerciseRepository,
    ScheduledSetRepository,
    WorkoutSessionRepository,
    SessionExerciseRepository,
    SessionSetRepository,
    SettingsRepository,
)
from errors import NotFoundError, ConflictError, InvalidStateError
from statuses import ScheduledStatus, SessionStatus
from tools import DateTools, number_sets

logger = logging.getLogger("workouts.sessions")


class SessionService:
    """Runs scheduled workouts as live sessions.

    A session moves from ``in_progress`` to ``completed`` or ``aborted``.
    Quick completion creates a session directly in ``completed`` and marks
    it so that :meth:`reopen` may later discard it. Every mutation runs in a
    single unit of work.
    """

    def __init__(
        self,
        scheduled_repo: ScheduledWorkoutRepository,
        scheduled_exercise_repo: ScheduledExerciseRepository,
        scheduled_set_repo: ScheduledSetRepository,
        session_repo: WorkoutSessionRepository,
        exercise_repo: SessionExerciseRepository,
        set_repo: SessionSetRepository,
        settings_repo: SettingsRepository | None = None,
    ) -> None:
        self.scheduled = scheduled_repo
        self.scheduled_exercises = scheduled_exercise_repo
        self.scheduled_sets = scheduled_set_repo
        self.sessions = session_repo
        self.exercises = exercise_repo
        self.sets = set_repo
        self.settings = settings_repo

    def _scheduled_or_404(self, user_id: str, scheduled_id: int) -> tuple:
        row = self.scheduled.find(scheduled_id, user_id)
        if row is None:
            raise NotFoundError("scheduled workout not found")
        return row

    def _session_or_404(self, user_id: str, session_id: int) -> tuple:
        row = self.sessions.find(session_id, user_id)
        if row is None:
            raise NotFoundError("session not found")
        return row

    def _require_in_progress(self, row: tuple, action: str) -> None:
        if row[6] != SessionStatus.IN_PROGRESS.value:
            logger.warning(
                "cannot %s session %s in status %s", action, row[0], row[6]
            )
            raise InvalidStateError(f"session is not in progress; cannot {action}")

    def _copy_scheduled(
        self,
        scheduled_id: int,
        session_id: int,
        fill_rest: bool = False,
        fill_actuals: bool = False,
    ) -> None:
        rows = self.scheduled_exercises.fetch_for_workout(scheduled_id)
        for position, (ex_id, _pos, name, rest) in enumerate(rows, start=1):
            new_ex_id = self.exercises.add(
                session_id,
                position,
                name,
                rest,
                rest_sec_actual=rest if fill_rest else None,
                scheduled_exercise_id=ex_id,
            )
            for _sid, number, reps, weight in self.scheduled_sets.fetch_for_exercise(ex_id):
                self.sets.add(
                    new_ex_id,
                    number,
                    reps,
                    weight,
                    reps_done=reps if fill_actuals else None,
                    weight_done=weight if fill_actuals else None,
                )

    def _to_dict(self, row: tuple) -> dict:
        (
            sid,
            user_id,
            scheduled_id,
            started_at,
            completed_at,
            duration,
            status,
            notes,
            quick,
        ) = row
        exercises = []
        for ex in self.exercises.fetch_for_session(sid):
            ex_id, position, name, rest_planned, rest_actual, ad_hoc, origin = ex
            sets = []
            for s in self.sets.fetch_for_exercise(ex_id):
                set_id, number, reps_p, weight_p, reps_d, weight_d, rpe, failure = s
                sets.append(
                    {
                        "id": set_id,
                        "set_number": number,
                        "reps_planned": reps_p,
                        "weight_planned": weight_p,
                        "reps_done": reps_d,
                        "weight_done": weight_d,
                        "rpe": rpe,
                        "is_failure": None if failure is None else bool(failure),
                    }
                )
            exercises.append(
                {
                    "id": ex_id,
                    "position": position,
                    "name": name,
                    "rest_sec_planned": rest_planned,
                    "rest_sec_actual": rest_actual,
                    "is_ad_hoc": bool(ad_hoc),
                    "scheduled_exercise_id": origin,
                    "sets": sets,
                }
            )
        return {
            "id": sid,
            "user_id": user_id,
            "scheduled_id": scheduled_id,
            "started_at": started_at,
            "completed_at": completed_at,
            "duration_sec": duration,
            "status": status,
            "session_notes": notes,
            "is_quick_complete": bool(quick),
            "exercises": exercises,
        }

    def start(self, user_id: str, scheduled_id: int) -> dict:
        with self.sessions.transaction():
            self._scheduled_or_404(user_id, scheduled_id)
            if self.sessions.has_blocking(scheduled_id):
                logger.warning("scheduled workout %s already has a session", scheduled_id)
                raise ConflictError("a session already exists for this workout")
            session_id = self.sessions.create(
                user_id, scheduled_id, DateTools.to_text(DateTools.utc_now())
            )
            self._copy_scheduled(scheduled_id, session_id)
            result = self._to_dict(self.sessions.find(session_id, user_id))
        logger.info("session %s started for scheduled workout %s", session_id, scheduled_id)
        return result

    def quick_complete(
        self,
        user_id: str,
        scheduled_id: int,
        started_at: datetime.datetime | None = None,
        completed_at: datetime.datetime | None = None,
        session_notes: str | None = None,
        populate_actuals: bool = True,
    ) -> dict:
        with self.sessions.transaction():
            row = self._scheduled_or_404(user_id, scheduled_id)
            if row[7] == ScheduledStatus.COMPLETED.value:
                logger.warning("scheduled workout %s is already completed", scheduled_id)
                raise ConflictError("scheduled workout is already completed")
            if self.sessions.has_blocking(scheduled_id):
                logger.warning("scheduled workout %s already has a session", scheduled_id)
                raise ConflictError("a session already exists for this workout")
            now = DateTools.utc_now()
            started = DateTools.to_utc(started_at) if started_at else now
            completed = DateTools.to_utc(completed_at) if completed_at else now
            if completed < started:
                completed = started
            session_id = self.sessions.create(
                user_id,
                scheduled_id,
                DateTools.to_text(started),
                status=SessionStatus.COMPLETED,
                completed_at=DateTools.to_text(completed),
                duration_sec=int((completed - started).total_seconds()),
                session_notes=session_notes if session_notes is not None else row[6],
                is_quick_complete=True,
            )
            self._copy_scheduled(
                scheduled_id, session_id, fill_rest=True, fill_actuals=populate_actuals
            )
            self.scheduled.set_status(scheduled_id, ScheduledStatus.COMPLETED)
            result = self._to_dict(self.sessions.find(session_id, user_id))
        logger.info(
            "session %s quick-completed for scheduled workout %s", session_id, scheduled_id
        )
        return result

    def patch_set(
        self,
        user_id: str,
        session_id: int,
        set_id: int,
        reps_done: int | None = None,
        weight_done: float | None = None,
        rpe: float | None = None,
        is_failure: bool | None = None,
    ) -> dict:
        with self.sessions.transaction():
            row = self._session_or_404(user_id, session_id)
            self._require_in_progress(row, "update sets")
            if not self.sets.belongs_to_session(set_id, session_id):
                raise NotFoundError("set not found")
            self.sets.update_actuals(set_id, reps_done, weight_done, rpe, is_failure)
            return self._to_dict(self.sessions.find(session_id, user_id))

    def add_exercise(
        self,
        user_id: str,
        session_id: int,
        name: str,
        rest_seconds: int | None = None,
        sets: Iterable[dict] = (),
    ) -> dict:
        items = list(sets)
        for item in items:
            if int(item.get("reps_planned", 0)) < 0:
                raise ValueError("reps must be non-negative")
            if float(item.get("weight_planned", 0.0)) < 0:
                raise ValueError("weight must be non-negative")
        if rest_seconds is None:
            rest_seconds = (
                self.settings.get_int("default_rest_seconds", 0) if self.settings else 0
            )
        with self.sessions.transaction():
            row = self._session_or_404(user_id, session_id)
            self._require_in_progress(row, "add exercises")
            position = self.exercises.max_position(session_id) + 1
            ex_id = self.exercises.add(
                session_id, position, name, int(rest_seconds), is_ad_hoc=True
            )
            for number, item in number_sets(items):
                self.sets.add(
                    ex_id,
                    number,
                    int(item.get("reps_planned", 0)),
                    float(item.get("weight_planned", 0.0)),
                )
            result = self._to_dict(self.sessions.find(session_id, user_id))
        logger.info("exercise %s added to session %s", ex_id, session_id)
        return result

    def complete(
        self,
        user_id: str,
        session_id: int,
        notes: str | None = None,
        completed_at: datetime.datetime | None = None,
    ) -> dict:
        with self.sessions.transaction():
            row = self._session_or_404(user_id, session_id)
            self._require_in_progress(row, "complete")
            completed = (
                DateTools.to_utc(completed_at) if completed_at else DateTools.utc_now()
            )
            started = DateTools.parse(row[3])
            duration = max(0, int((completed - started).total_seconds()))
            self.sessions.finish(
                session_id,
                SessionStatus.COMPLETED,
                DateTools.to_text(completed),
                duration,
                notes if notes and notes.strip() else row[7],
            )
            scheduled = self.scheduled.find(row[2], user_id)
            if scheduled and scheduled[7] == ScheduledStatus.PLANNED.value:
                self.scheduled.set_status(row[2], ScheduledStatus.COMPLETED)
            result = self._to_dict(self.sessions.find(session_id, user_id))
        logger.info("session %s completed after %ss", session_id, duration)
        return result

    def abort(self, user_id: str, session_id: int, reason: str | None = None) -> dict:
        with self.sessions.transaction():
            row = self._session_or_404(user_id, session_id)
            self._require_in_progress(row, "abort")
            completed = DateTools.utc_now()
            started = DateTools.parse(row[3])
            duration = max(0, int((completed - started).total_seconds()))
            notes = row[7]
            if reason and reason.strip():
                line = f"Aborted: {reason.strip()}"
                notes = f"{notes}\n{line}" if notes else line
            self.sessions.finish(
                session_id,
                SessionStatus.ABORTED,
                DateTools.to_text(completed),
                duration,
                notes,
            )
            result = self._to_dict(self.sessions.find(session_id, user_id))
        logger.info("session %s aborted", session_id)
        return result

    def reopen(self, user_id: str, scheduled_id: int) -> dict:
        """Discard the latest aborted or quick-completed session.

        The scheduled workout returns to ``planned``. A session completed
        through the normal flow cannot be reopened.
        """
        with self.sessions.transaction():
            self._scheduled_or_404(user_id, scheduled_id)
            latest = self.sessions.latest_for_scheduled(scheduled_id, user_id)
            if latest is None:
                logger.warning("reopen of %s rejected: no session", scheduled_id)
                raise InvalidStateError("no session to reopen")
            session_id, status, quick = latest[0], latest[6], bool(latest[8])
            if self.sessions.has_other_in_progress(scheduled_id, session_id):
                logger.warning("reopen of %s rejected: session in progress", scheduled_id)
                raise InvalidStateError("another session is in progress")
            reopenable = status == SessionStatus.ABORTED.value or (
                status == SessionStatus.COMPLETED.value and quick
            )
            if not reopenable:
                logger.warning(
                    "reopen of %s rejected: session %s is %s", scheduled_id, session_id, status
                )
                raise InvalidStateError("only aborted or quick-completed sessions can be reopened")
            self.sessions.delete(session_id)
            self.scheduled.set_status(scheduled_id, ScheduledStatus.PLANNED)
        logger.info("session %s discarded; scheduled workout %s reopened", session_id, scheduled_id)
        return {
            "scheduled_id": scheduled_id,
            "status": ScheduledStatus.PLANNED.value,
            "deleted_session_id": session_id,
        }

    def get(self, user_id: str, session_id: int) -> Optional[dict]:
        row = self.sessions.find(session_id, user_id)
        return self._to_dict(row) if row else None

    def by_range(
        self, user_id: str, start: datetime.datetime, end: datetime.datetime
    ) -> list[dict]:
        start, end = DateTools.ordered(DateTools.to_utc(start), DateTools.to_utc(end))
        rows = self.sessions.fetch_range(
            user_id, DateTools.to_text(start), DateTools.to_text(end)
        )
        return [self._to_dict(r) for r in rows]
