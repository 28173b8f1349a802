from __future__ import annotations
from enum import Enum


class ScheduledStatus(str, Enum):
    PLANNED = "planned"
    COMPLETED = "completed"

    @classmethod
    def parse(cls, value: str | None) -> "ScheduledStatus":
        """Map a free-form status string to a status.

        Only ``"completed"`` (trimmed, any case) selects COMPLETED; everything
        else, including blank values, is PLANNED.
        """
        if value is None or not value.strip():
            return cls.PLANNED
        if value.strip().lower() == cls.COMPLETED.value:
            return cls.COMPLETED
        return cls.PLANNED


class SessionStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABORTED = "aborted"


class RequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
