import datetime
from typing import Iterable, Optional


class MathTools:
    """Provides essential mathematical utilities for workout calculations."""

    EPLEY_DIVISOR: float = 30.0

    @classmethod
    def epley_1rm(cls, weight: float, reps: int) -> float:
        """Return the estimated one-rep max using the Epley formula."""
        if reps < 0:
            raise ValueError("reps must be non-negative")
        return weight * (1 + reps / cls.EPLEY_DIVISOR)

    @staticmethod
    def volume(sets: Iterable[tuple[Optional[int], Optional[float]]]) -> float:
        """Compute training volume as the sum of reps times weight.

        Missing values count as zero.
        """
        vol = 0.0
        for reps, weight in sets:
            vol += (reps or 0) * (weight or 0.0)
        return vol

    @staticmethod
    def percentage(part: int, whole: int, digits: int = 1) -> float:
        """Return ``part`` as a percentage of ``whole`` or 0 when ``whole`` is 0."""
        if whole == 0:
            return 0.0
        return round(part / whole * 100, digits)


class DateTools:
    """Date and timestamp helpers shared by the services."""

    @staticmethod
    def to_utc(value: datetime.datetime) -> datetime.datetime:
        """Return ``value`` as an aware UTC datetime.

        Naive values are taken to already be UTC.
        """
        if value.tzinfo is None:
            return value.replace(tzinfo=datetime.timezone.utc)
        return value.astimezone(datetime.timezone.utc)

    @classmethod
    def utc_now(cls) -> datetime.datetime:
        return datetime.datetime.now(datetime.timezone.utc)

    @classmethod
    def to_text(cls, value: datetime.datetime) -> str:
        """Serialize to the fixed-width storage format."""
        return cls.to_utc(value).isoformat(timespec="microseconds")

    @classmethod
    def parse(cls, text: Optional[str]) -> Optional[datetime.datetime]:
        if text is None:
            return None
        return cls.to_utc(datetime.datetime.fromisoformat(text))

    @staticmethod
    def parse_date(text: str) -> datetime.date:
        """Parse a strict ``yyyy-MM-dd`` date."""
        try:
            return datetime.datetime.strptime(text, "%Y-%m-%d").date()
        except (TypeError, ValueError):
            raise ValueError("Invalid date format. Use yyyy-MM-dd.")

    @staticmethod
    def iso_week_label(day: datetime.date) -> str:
        year, week, _ = day.isocalendar()
        return f"{year:04d}-W{week:02d}"

    @staticmethod
    def ordered(a, b):
        """Return the two bounds in ascending order."""
        return (b, a) if a > b else (a, b)


def number_sets(sets: Iterable[dict]) -> list[tuple[int, dict]]:
    """Assign dense set numbers 1..N in input order.

    Any caller supplied ``set_number`` is ignored.
    """
    return list(enumerate(sets, start=1))
