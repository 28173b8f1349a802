from __future__ import annotations
import datetime
import logging

from db import (
    FriendshipRepository,
    AsyncFriendshipRepository,
    AsyncScheduledWorkoutRepository,
    AsyncWorkoutSessionRepository,
)
from errors import ConflictError, InvalidStateError, NotFoundError
from statuses import RequestStatus
from tools import DateTools

logger = logging.getLogger("workouts.friends")


def _friendship_dict(row: tuple) -> dict:
    fid, user_a, user_b, requested_by, status = row
    return {
        "id": fid,
        "user_a": user_a,
        "user_b": user_b,
        "requested_by": requested_by,
        "status": status,
    }


class FriendService:
    """Friend request bookkeeping."""

    def __init__(self, repo: FriendshipRepository) -> None:
        self.friendships = repo

    def request(self, user_id: str, target_id: str) -> dict:
        if user_id == target_id:
            raise ConflictError("cannot befriend yourself")
        with self.friendships.transaction():
            if self.friendships.find_pair(user_id, target_id) is not None:
                raise ConflictError("friendship already exists")
            self.friendships.request(user_id, target_id)
            row = self.friendships.find_pair(user_id, target_id)
        logger.info("friend request %s sent", row[0])
        return _friendship_dict(row)

    def respond(self, user_id: str, friendship_id: int, accept: bool) -> dict:
        with self.friendships.transaction():
            row = self.friendships.find_for_responder(friendship_id, user_id)
            if row is None:
                raise NotFoundError("friend request not found")
            if row[4] != RequestStatus.PENDING.value:
                raise InvalidStateError("friend request already answered")
            status = RequestStatus.ACCEPTED if accept else RequestStatus.REJECTED
            self.friendships.set_status(friendship_id, status)
            row = self.friendships.find_for_responder(friendship_id, user_id)
        logger.info("friend request %s %s", friendship_id, status.value)
        return _friendship_dict(row)

    def pending(self, user_id: str) -> list[dict]:
        return [_friendship_dict(r) for r in self.friendships.fetch_pending_for(user_id)]

    def friend_ids(self, user_id: str) -> set[str]:
        return self.friendships.friend_ids(user_id)


class FriendWorkoutService:
    """Asynchronous feed of workouts friends chose to share."""

    def __init__(self, db_path: str = "workout.db") -> None:
        self.friendships = AsyncFriendshipRepository(db_path)
        self.scheduled = AsyncScheduledWorkoutRepository(db_path)
        self.sessions = AsyncWorkoutSessionRepository(db_path)

    async def friends_scheduled(
        self, user_id: str, start: datetime.date, end: datetime.date
    ) -> list[dict]:
        start, end = DateTools.ordered(start, end)
        friends = await self.friendships.friend_ids(user_id)
        rows = await self.scheduled.fetch_visible_for_users(
            sorted(friends), start.isoformat(), end.isoformat()
        )
        return [
            {
                "id": sid,
                "user_id": owner,
                "date": date,
                "time": time,
                "plan_name": plan_name,
                "status": status,
            }
            for sid, owner, date, time, plan_name, status in rows
        ]

    async def friends_sessions(
        self, user_id: str, start: datetime.datetime, end: datetime.datetime
    ) -> list[dict]:
        start, end = DateTools.ordered(DateTools.to_utc(start), DateTools.to_utc(end))
        friends = await self.friendships.friend_ids(user_id)
        rows = await self.sessions.fetch_visible_for_users(
            sorted(friends), DateTools.to_text(start), DateTools.to_text(end)
        )
        return [
            {
                "id": sid,
                "scheduled_id": scheduled_id,
                "user_id": owner,
                "plan_name": plan_name,
                "started_at": started_at,
                "completed_at": completed_at,
                "duration_sec": duration,
                "status": status,
            }
            for sid, scheduled_id, owner, plan_name, started_at, completed_at, duration, status in rows
        ]
