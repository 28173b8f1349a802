import datetime
import logging
import time
from typing import Optional

from fastapi import (
    FastAPI,
    HTTPException,
    Response,
    APIRouter,
    Request,
    Header,
    Depends,
    Query,
)
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from db import (
    PlanRepository,
    PlanExerciseRepository,
    PlanSetRepository,
    SharedPlanRepository,
    ScheduledWorkoutRepository,
    ScheduledExerciseRepository,
    ScheduledSetRepository,
    WorkoutSessionRepository,
    SessionExerciseRepository,
    SessionSetRepository,
    FriendshipRepository,
    SettingsRepository,
)
from errors import NotFoundError, ConflictError, InvalidStateError, UnauthorizedError
from plan_service import PlanService
from scheduler_service import SchedulerService
from session_service import SessionService
from analytics_service import AnalyticsService
from friend_service import FriendService, FriendWorkoutService
from schemas import (
    PlanIn,
    ShareIn,
    RespondIn,
    ScheduledIn,
    QuickCompleteIn,
    StartIn,
    PatchSetIn,
    AddExerciseIn,
    CompleteIn,
    AbortIn,
    FriendRequestIn,
)
from tools import DateTools

logger = logging.getLogger("workouts.api")

_STATUS_CODES = (
    (NotFoundError, 404),
    (ConflictError, 409),
    (InvalidStateError, 400),
    (UnauthorizedError, 401),
    (ValueError, 400),
)


class RateLimiter:
    """Simple in-memory rate limiter."""

    def __init__(self, limit: int = 60, window: int = 60) -> None:
        self.limit = limit
        self.window = window
        self.requests: dict[str, list[float]] = {}

    async def __call__(self, request: Request, call_next):
        ip = request.client.host if request.client else "anon"
        now = time.time()
        history = [t for t in self.requests.get(ip, []) if now - t < self.window]
        if len(history) >= self.limit:
            return Response("rate limit exceeded", status_code=429)
        history.append(now)
        self.requests[ip] = history
        return await call_next(request)


class WorkoutAPI:
    """Provides REST endpoints for the plan, schedule and session lifecycle."""

    def __init__(
        self,
        db_path: str = "workout.db",
        yaml_path: str = "settings.yaml",
        *,
        rate_limit: int | None = None,
        rate_window: int = 60,
    ) -> None:
        self.db_path = db_path
        self.settings = SettingsRepository(db_path, yaml_path)
        self.plans = PlanRepository(db_path)
        self.plan_exercises = PlanExerciseRepository(db_path)
        self.plan_sets = PlanSetRepository(db_path)
        self.shared_plans = SharedPlanRepository(db_path)
        self.scheduled = ScheduledWorkoutRepository(db_path)
        self.scheduled_exercises = ScheduledExerciseRepository(db_path)
        self.scheduled_sets = ScheduledSetRepository(db_path)
        self.sessions = WorkoutSessionRepository(db_path)
        self.session_exercises = SessionExerciseRepository(db_path)
        self.session_sets = SessionSetRepository(db_path, self.settings)
        self.friendships = FriendshipRepository(db_path)
        self.plan_service = PlanService(
            self.plans, self.plan_exercises, self.plan_sets, self.shared_plans
        )
        self.scheduler = SchedulerService(
            self.plans,
            self.plan_exercises,
            self.plan_sets,
            self.scheduled,
            self.scheduled_exercises,
            self.scheduled_sets,
        )
        self.session_service = SessionService(
            self.scheduled,
            self.scheduled_exercises,
            self.scheduled_sets,
            self.sessions,
            self.session_exercises,
            self.session_sets,
            self.settings,
        )
        self.analytics = AnalyticsService(self.sessions, self.scheduled, self.session_sets)
        self.friend_service = FriendService(self.friendships)
        self.friend_workouts = FriendWorkoutService(db_path)
        self.app = FastAPI(
            title="Workout Lifecycle API",
            description="Plans, scheduled workouts, live sessions and analytics",
        )
        if rate_limit is not None:
            limiter = RateLimiter(limit=rate_limit, window=rate_window)
            self.app.middleware("http")(limiter)
        self._setup_error_handlers()
        self._setup_routes()

    def current_user_id(
        self,
        x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
        x_gateway_key: Optional[str] = Header(default=None, alias="X-Gateway-Key"),
    ) -> str:
        """Resolve the caller from the identity gateway headers."""
        expected = self.settings.get_text("gateway_key", "")
        if expected and x_gateway_key != expected:
            raise UnauthorizedError("invalid gateway key")
        if x_user_id is None or not x_user_id.strip():
            raise UnauthorizedError("missing user id")
        return x_user_id.strip()

    def _setup_error_handlers(self) -> None:
        def make_handler(status_code: int):
            async def handler(request: Request, exc: Exception):
                logger.info(
                    "%s %s -> %s: %s", request.method, request.url.path, status_code, exc
                )
                return JSONResponse(status_code=status_code, content={"detail": str(exc)})

            return handler

        for exc_class, status_code in _STATUS_CODES:
            self.app.add_exception_handler(exc_class, make_handler(status_code))

        async def validation_handler(request: Request, exc: RequestValidationError):
            return JSONResponse(status_code=400, content={"detail": exc.errors()})

        self.app.add_exception_handler(RequestValidationError, validation_handler)

    def _setup_routes(self) -> None:
        plans_router = APIRouter(prefix="/plans", tags=["Plans"])
        scheduled_router = APIRouter(prefix="/scheduled", tags=["Scheduled"])
        sessions_router = APIRouter(prefix="/sessions", tags=["Sessions"])
        analytics_router = APIRouter(prefix="/analytics", tags=["Analytics"])
        friends_router = APIRouter(prefix="/friends", tags=["Friends"])
        user = Depends(self.current_user_id)

        @self.app.get(
            "/health",
            summary="Health check",
            description="Verify API and database connectivity.",
        )
        def health():
            """Return API and database connection status."""
            self.plans.fetch_all("SELECT 1;")
            return {"status": "ok"}

        # plans

        @plans_router.post("")
        def create_plan(body: PlanIn, user_id: str = user):
            return self.plan_service.create(
                user_id,
                body.name,
                [e.model_dump() for e in body.exercises],
                body.plan_type,
                body.notes,
            )

        @plans_router.get("")
        def list_plans(include_shared: bool = False, user_id: str = user):
            return self.plan_service.list(user_id, include_shared)

        @plans_router.get("/shared/with_me")
        def shared_with_me(user_id: str = user):
            return self.plan_service.shared_with_me(user_id)

        @plans_router.get("/shared/pending")
        def pending_shared(user_id: str = user):
            return self.plan_service.pending_shared(user_id)

        @plans_router.get("/shared/{shared_id}")
        def get_shared_plan(shared_id: int, user_id: str = user):
            return self.plan_service.get_shared_plan(user_id, shared_id)

        @plans_router.post("/shared/{shared_id}/respond")
        def respond_shared(shared_id: int, body: RespondIn, user_id: str = user):
            return self.plan_service.respond_shared(user_id, shared_id, body.accept)

        @plans_router.delete("/shared/{shared_id}")
        def delete_shared(
            shared_id: int, only_if_pending: bool = False, user_id: str = user
        ):
            self.plan_service.delete_shared(user_id, shared_id, only_if_pending)
            return {"status": "deleted"}

        @plans_router.get("/{plan_id}")
        def get_plan(plan_id: int, user_id: str = user):
            plan = self.plan_service.get(user_id, plan_id)
            if plan is None:
                raise HTTPException(status_code=404, detail="plan not found")
            return plan

        @plans_router.put("/{plan_id}")
        def update_plan(plan_id: int, body: PlanIn, user_id: str = user):
            return self.plan_service.update(
                user_id,
                plan_id,
                body.name,
                [e.model_dump() for e in body.exercises],
                body.plan_type,
                body.notes,
            )

        @plans_router.delete("/{plan_id}")
        def delete_plan(plan_id: int, user_id: str = user):
            if not self.plan_service.delete(user_id, plan_id):
                raise HTTPException(status_code=404, detail="plan not found")
            return {"status": "deleted"}

        @plans_router.post("/{plan_id}/duplicate")
        def duplicate_plan(plan_id: int, user_id: str = user):
            return self.plan_service.duplicate(user_id, plan_id)

        @plans_router.post("/{plan_id}/share")
        def share_plan(plan_id: int, body: ShareIn, user_id: str = user):
            return self.plan_service.share(user_id, plan_id, body.target_user_id)

        # scheduled workouts

        def scheduled_kwargs(body: ScheduledIn) -> dict:
            exercises = None
            if body.exercises:
                exercises = [e.model_dump() for e in body.exercises]
            return {
                "date": body.date,
                "plan_id": body.plan_id,
                "time": body.time,
                "exercises": exercises,
                "plan_name": body.plan_name,
                "notes": body.notes,
                "status": body.status,
                "visible_to_friends": body.visible_to_friends,
            }

        @scheduled_router.post("")
        def create_scheduled(body: ScheduledIn, user_id: str = user):
            return self.scheduler.create(user_id, **scheduled_kwargs(body))

        @scheduled_router.get("")
        def list_scheduled(user_id: str = user):
            return self.scheduler.list_all(user_id)

        @scheduled_router.get("/by_date/{date}")
        def scheduled_by_date(date: str, user_id: str = user):
            return self.scheduler.by_date(user_id, date)

        @scheduled_router.get("/{scheduled_id}")
        def get_scheduled(scheduled_id: int, user_id: str = user):
            item = self.scheduler.get(user_id, scheduled_id)
            if item is None:
                raise HTTPException(status_code=404, detail="scheduled workout not found")
            return item

        @scheduled_router.put("/{scheduled_id}")
        def update_scheduled(scheduled_id: int, body: ScheduledIn, user_id: str = user):
            return self.scheduler.update(user_id, scheduled_id, **scheduled_kwargs(body))

        @scheduled_router.delete("/{scheduled_id}")
        def delete_scheduled(scheduled_id: int, user_id: str = user):
            if not self.scheduler.delete(user_id, scheduled_id):
                raise HTTPException(status_code=404, detail="scheduled workout not found")
            return {"status": "deleted"}

        @scheduled_router.post("/{scheduled_id}/duplicate")
        def duplicate_scheduled(scheduled_id: int, user_id: str = user):
            return self.scheduler.duplicate(user_id, scheduled_id)

        @scheduled_router.post("/{scheduled_id}/complete")
        def quick_complete(
            scheduled_id: int,
            body: Optional[QuickCompleteIn] = None,
            user_id: str = user,
        ):
            body = body or QuickCompleteIn()
            populate = body.populate_actuals
            if populate is None:
                populate = self.settings.get_bool("quick_complete_populate_actuals", True)
            return self.session_service.quick_complete(
                user_id,
                scheduled_id,
                body.started_at,
                body.completed_at,
                body.session_notes,
                populate,
            )

        @scheduled_router.post("/{scheduled_id}/reopen")
        def reopen_scheduled(scheduled_id: int, user_id: str = user):
            return self.session_service.reopen(user_id, scheduled_id)

        # sessions

        @sessions_router.post("/start")
        def start_session(body: StartIn, user_id: str = user):
            return self.session_service.start(user_id, body.scheduled_id)

        @sessions_router.get("")
        def sessions_by_range(
            start: datetime.datetime = Query(..., alias="from"),
            end: datetime.datetime = Query(..., alias="to"),
            user_id: str = user,
        ):
            return self.session_service.by_range(user_id, start, end)

        @sessions_router.get("/{session_id}")
        def get_session(session_id: int, user_id: str = user):
            item = self.session_service.get(user_id, session_id)
            if item is None:
                raise HTTPException(status_code=404, detail="session not found")
            return item

        @sessions_router.patch("/{session_id}/sets/{set_id}")
        def patch_set(
            session_id: int, set_id: int, body: PatchSetIn, user_id: str = user
        ):
            return self.session_service.patch_set(
                user_id,
                session_id,
                set_id,
                body.reps_done,
                body.weight_done,
                body.rpe,
                body.is_failure,
            )

        @sessions_router.post("/{session_id}/exercises")
        def add_exercise(session_id: int, body: AddExerciseIn, user_id: str = user):
            return self.session_service.add_exercise(
                user_id,
                session_id,
                body.name,
                body.rest_seconds,
                [s.model_dump() for s in body.sets],
            )

        @sessions_router.post("/{session_id}/complete")
        def complete_session(
            session_id: int,
            body: Optional[CompleteIn] = None,
            user_id: str = user,
        ):
            body = body or CompleteIn()
            return self.session_service.complete(
                user_id, session_id, body.notes, body.completed_at
            )

        @sessions_router.post("/{session_id}/abort")
        def abort_session(
            session_id: int,
            body: Optional[AbortIn] = None,
            user_id: str = user,
        ):
            body = body or AbortIn()
            return self.session_service.abort(user_id, session_id, body.reason)

        # analytics

        @analytics_router.get("/overview")
        def overview(
            start: datetime.datetime = Query(..., alias="from"),
            end: datetime.datetime = Query(..., alias="to"),
            user_id: str = user,
        ):
            return self.analytics.overview(user_id, start, end)

        @analytics_router.get("/volume")
        def volume(
            start: datetime.datetime = Query(..., alias="from"),
            end: datetime.datetime = Query(..., alias="to"),
            group_by: str = Query("day", alias="groupBy"),
            exercise: Optional[str] = None,
            user_id: str = user,
        ):
            return self.analytics.volume(user_id, start, end, group_by, exercise)

        @analytics_router.get("/exercises/{name}/e1rm")
        def e1rm(
            name: str,
            start: datetime.datetime = Query(..., alias="from"),
            end: datetime.datetime = Query(..., alias="to"),
            user_id: str = user,
        ):
            return self.analytics.e1rm(user_id, name, start, end)

        @analytics_router.get("/adherence")
        def adherence(
            start: str = Query(..., alias="from"),
            end: str = Query(..., alias="to"),
            user_id: str = user,
        ):
            return self.analytics.adherence(
                user_id, DateTools.parse_date(start), DateTools.parse_date(end)
            )

        @analytics_router.get("/sessions/{session_id}/plan_vs_actual")
        def plan_vs_actual(session_id: int, user_id: str = user):
            return self.analytics.plan_vs_actual(user_id, session_id)

        # friends

        @friends_router.post("/requests")
        def friend_request(body: FriendRequestIn, user_id: str = user):
            return self.friend_service.request(user_id, body.target_user_id)

        @friends_router.get("/requests")
        def pending_requests(user_id: str = user):
            return self.friend_service.pending(user_id)

        @friends_router.post("/requests/{friendship_id}/respond")
        def respond_request(friendship_id: int, body: RespondIn, user_id: str = user):
            return self.friend_service.respond(user_id, friendship_id, body.accept)

        @friends_router.get("")
        def list_friends(user_id: str = user):
            return sorted(self.friend_service.friend_ids(user_id))

        @friends_router.get("/workouts/scheduled")
        async def friends_scheduled(
            start: str = Query(..., alias="from"),
            end: str = Query(..., alias="to"),
            user_id: str = user,
        ):
            return await self.friend_workouts.friends_scheduled(
                user_id, DateTools.parse_date(start), DateTools.parse_date(end)
            )

        @friends_router.get("/workouts/sessions")
        async def friends_sessions(
            start: datetime.datetime = Query(..., alias="from"),
            end: datetime.datetime = Query(..., alias="to"),
            user_id: str = user,
        ):
            return await self.friend_workouts.friends_sessions(user_id, start, end)

        self.app.include_router(plans_router)
        self.app.include_router(scheduled_router)
        self.app.include_router(sessions_router)
        self.app.include_router(analytics_router)
        self.app.include_router(friends_router)


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(WorkoutAPI().app)
