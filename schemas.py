from __future__ import annotations
import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class SetIn(BaseModel):
    reps: int = Field(..., ge=0)
    weight: float = Field(..., ge=0)
    # accepted for compatibility; sets are always renumbered 1..N
    set_number: Optional[int] = None


class ExerciseIn(BaseModel):
    name: str = Field(..., min_length=1)
    rest_seconds: int = Field(0, ge=0)
    sets: List[SetIn] = []


class PlanIn(BaseModel):
    name: str = Field(..., min_length=1)
    plan_type: Optional[str] = None
    notes: Optional[str] = None
    exercises: List[ExerciseIn] = []


class ShareIn(BaseModel):
    target_user_id: str = Field(..., min_length=1)


class RespondIn(BaseModel):
    accept: bool


class ScheduledIn(BaseModel):
    date: str
    plan_id: int
    time: Optional[str] = None
    exercises: Optional[List[ExerciseIn]] = None
    plan_name: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[str] = None
    visible_to_friends: bool = False


class QuickCompleteIn(BaseModel):
    started_at: Optional[datetime.datetime] = None
    completed_at: Optional[datetime.datetime] = None
    session_notes: Optional[str] = None
    populate_actuals: Optional[bool] = None


class StartIn(BaseModel):
    scheduled_id: int


class PatchSetIn(BaseModel):
    reps_done: Optional[int] = Field(None, ge=0)
    weight_done: Optional[float] = Field(None, ge=0)
    rpe: Optional[float] = Field(None, ge=0)
    is_failure: Optional[bool] = None


class SessionSetIn(BaseModel):
    reps_planned: int = Field(0, ge=0)
    weight_planned: float = Field(0.0, ge=0)


class AddExerciseIn(BaseModel):
    name: str = Field(..., min_length=1)
    rest_seconds: Optional[int] = Field(None, ge=0)
    sets: List[SessionSetIn] = []


class CompleteIn(BaseModel):
    notes: Optional[str] = None
    completed_at: Optional[datetime.datetime] = None


class AbortIn(BaseModel):
    reason: Optional[str] = None


class FriendRequestIn(BaseModel):
    target_user_id: str = Field(..., min_length=1)
