from __future__ import annotations
import datetime
import logging
from typing import List, Dict

from db import ScheduledWorkoutRepository, WorkoutSessionRepository, SessionSetRepository
from statuses import ScheduledStatus
from tools import MathTools, DateTools

logger = logging.getLogger("workouts.analytics")

GROUP_BY_OPTIONS = ("day", "week", "exercise")


class AnalyticsService:
    """Read-only aggregations over a user's completed sessions.

    Instant ranges are half-open ``[start, end)`` on session start time and
    date ranges are inclusive. Inverted bounds are swapped.
    """

    def __init__(
        self,
        session_repo: WorkoutSessionRepository,
        scheduled_repo: ScheduledWorkoutRepository,
        set_repo: SessionSetRepository,
    ) -> None:
        self.sessions = session_repo
        self.scheduled = scheduled_repo
        self.sets = set_repo

    @staticmethod
    def _bounds(
        start: datetime.datetime, end: datetime.datetime
    ) -> tuple[datetime.datetime, datetime.datetime]:
        return DateTools.ordered(DateTools.to_utc(start), DateTools.to_utc(end))

    def _completed_sets(
        self,
        user_id: str,
        start: datetime.datetime,
        end: datetime.datetime,
        exercise: str | None = None,
    ) -> list[tuple]:
        return self.sessions.fetch_completed_sets(
            user_id, DateTools.to_text(start), DateTools.to_text(end), exercise
        )

    def overview(
        self, user_id: str, start: datetime.datetime, end: datetime.datetime
    ) -> Dict[str, float]:
        """Return volume, intensity, session count and adherence for a range."""
        start, end = self._bounds(start, end)
        rows = self._completed_sets(user_id, start, end)
        volume = MathTools.volume((reps, weight) for _sid, _ts, _name, reps, weight in rows)
        weights = [
            float(weight)
            for _sid, _ts, _name, reps, weight in rows
            if weight is not None and reps is not None and weight > 0 and reps > 0
        ]
        intensity = sum(weights) / len(weights) if weights else 0.0
        sessions = self.sessions.count_completed(
            user_id, DateTools.to_text(start), DateTools.to_text(end)
        )
        last_day = (end - datetime.timedelta(microseconds=1)).date()
        adherence = self._adherence_counts(user_id, start.date(), last_day)
        return {
            "total_volume": round(volume, 2),
            "avg_intensity": round(intensity, 2),
            "sessions_count": sessions,
            "adherence_pct": adherence["adherence_pct"],
            "new_prs": 0,
        }

    def volume(
        self,
        user_id: str,
        start: datetime.datetime,
        end: datetime.datetime,
        group_by: str = "day",
        exercise: str | None = None,
    ) -> List[Dict[str, float | str]]:
        group = (group_by or "day").strip().lower()
        if group not in GROUP_BY_OPTIONS:
            raise ValueError("groupBy must be one of: day, week, exercise")
        start, end = self._bounds(start, end)
        rows = self._completed_sets(user_id, start, end, exercise or None)
        if group == "exercise":
            by_name: Dict[str, float] = {}
            for _sid, _ts, name, reps, weight in rows:
                by_name[name] = by_name.get(name, 0.0) + MathTools.volume([(reps, weight)])
            ranked = sorted(by_name.items(), key=lambda item: item[1], reverse=True)
            return [
                {"period": name, "exercise_name": name, "value": round(value, 2)}
                for name, value in ranked
            ]
        by_day: Dict[datetime.date, float] = {}
        for _sid, started_at, _name, reps, weight in rows:
            day = DateTools.parse(started_at).date()
            by_day[day] = by_day.get(day, 0.0) + MathTools.volume([(reps, weight)])
        if group == "day":
            return [
                {"period": day.isoformat(), "value": round(by_day[day], 2)}
                for day in sorted(by_day)
            ]
        by_week: Dict[str, float] = {}
        for day in sorted(by_day):
            label = DateTools.iso_week_label(day)
            by_week[label] = by_week.get(label, 0.0) + by_day[day]
        return [
            {"period": label, "value": round(by_week[label], 2)}
            for label in sorted(by_week)
        ]

    def e1rm(
        self,
        user_id: str,
        exercise: str,
        start: datetime.datetime,
        end: datetime.datetime,
    ) -> List[Dict[str, float | str | None]]:
        """Best estimated one-rep max per day for ``exercise``."""
        start, end = self._bounds(start, end)
        best: Dict[datetime.date, float] = {}
        for _sid, started_at, _name, reps, weight in self._completed_sets(
            user_id, start, end, exercise
        ):
            if reps is None or weight is None or reps <= 0:
                continue
            day = DateTools.parse(started_at).date()
            value = MathTools.epley_1rm(float(weight), int(reps))
            if value > best.get(day, float("-inf")):
                best[day] = value
        return [
            {"day": day.isoformat(), "e1rm": round(best[day], 2), "session_id": None}
            for day in sorted(best)
        ]

    def _adherence_counts(
        self, user_id: str, start: datetime.date, end: datetime.date
    ) -> Dict[str, float]:
        planned = self.scheduled.count_in_range(
            user_id, start.isoformat(), end.isoformat()
        )
        completed = self.scheduled.count_in_range(
            user_id, start.isoformat(), end.isoformat(), ScheduledStatus.COMPLETED
        )
        return {
            "planned": planned,
            "completed": completed,
            "missed": max(0, planned - completed),
            "adherence_pct": MathTools.percentage(completed, planned, 1),
        }

    def adherence(
        self, user_id: str, start: datetime.date, end: datetime.date
    ) -> Dict[str, float]:
        start, end = DateTools.ordered(start, end)
        return self._adherence_counts(user_id, start, end)

    def plan_vs_actual(self, user_id: str, session_id: int) -> List[Dict]:
        if self.sessions.find(session_id, user_id) is None:
            logger.debug("plan vs actual requested for unknown session %s", session_id)
            return []
        result = []
        for row in self.sets.fetch_plan_vs_actual(session_id):
            name, number, reps_p, weight_p, reps_d, weight_d, rpe, failure, ad_hoc = row
            result.append(
                {
                    "exercise_name": name,
                    "set_number": number,
                    "reps_planned": reps_p,
                    "weight_planned": weight_p,
                    "reps_done": reps_d,
                    "weight_done": weight_d,
                    "rpe": rpe,
                    "is_failure": None if failure is None else bool(failure),
                    "reps_diff": (reps_d or 0) - reps_p,
                    "weight_diff": round((weight_d or 0.0) - weight_p, 2),
                    "is_extra": bool(ad_hoc),
                }
            )
        return result
