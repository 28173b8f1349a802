import sqlite3
import aiosqlite
import threading
import logging
from contextlib import contextmanager, asynccontextmanager
from typing import List, Tuple, Optional, Iterable

from config import YamlConfig
from settings_schema import validate_settings
from statuses import ScheduledStatus, SessionStatus, RequestStatus

logger = logging.getLogger("workouts.db")

_local = threading.local()


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "plans": (
            """CREATE TABLE plans (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    plan_type TEXT,
                    notes TEXT
                );""",
            ["id", "user_id", "name", "plan_type", "notes"],
        ),
        "plan_exercises": (
            """CREATE TABLE plan_exercises (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    plan_id INTEGER NOT NULL,
                    position INTEGER NOT NULL DEFAULT 0,
                    name TEXT NOT NULL,
                    rest_seconds INTEGER NOT NULL DEFAULT 0,
                    FOREIGN KEY(plan_id) REFERENCES plans(id) ON DELETE CASCADE
                );""",
            ["id", "plan_id", "position", "name", "rest_seconds"],
        ),
        "plan_sets": (
            """CREATE TABLE plan_sets (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    plan_exercise_id INTEGER NOT NULL,
                    set_number INTEGER NOT NULL,
                    reps INTEGER NOT NULL,
                    weight REAL NOT NULL,
                    FOREIGN KEY(plan_exercise_id) REFERENCES plan_exercises(id) ON DELETE CASCADE
                );""",
            ["id", "plan_exercise_id", "set_number", "reps", "weight"],
        ),
        "shared_plans": (
            """CREATE TABLE shared_plans (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    plan_id INTEGER NOT NULL,
                    shared_by TEXT NOT NULL,
                    shared_with TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    shared_at TEXT NOT NULL,
                    responded_at TEXT,
                    UNIQUE (plan_id, shared_with),
                    FOREIGN KEY(plan_id) REFERENCES plans(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "plan_id",
                "shared_by",
                "shared_with",
                "status",
                "shared_at",
                "responded_at",
            ],
        ),
        "scheduled_workouts": (
            """CREATE TABLE scheduled_workouts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    plan_id INTEGER,
                    date TEXT NOT NULL,
                    time TEXT,
                    plan_name TEXT,
                    notes TEXT,
                    status TEXT NOT NULL DEFAULT 'planned',
                    visible_to_friends INTEGER NOT NULL DEFAULT 0,
                    FOREIGN KEY(plan_id) REFERENCES plans(id) ON DELETE SET NULL
                );""",
            [
                "id",
                "user_id",
                "plan_id",
                "date",
                "time",
                "plan_name",
                "notes",
                "status",
                "visible_to_friends",
            ],
        ),
        "scheduled_exercises": (
            """CREATE TABLE scheduled_exercises (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    scheduled_workout_id INTEGER NOT NULL,
                    position INTEGER NOT NULL DEFAULT 0,
                    name TEXT NOT NULL,
                    rest_seconds INTEGER NOT NULL DEFAULT 0,
                    FOREIGN KEY(scheduled_workout_id) REFERENCES scheduled_workouts(id) ON DELETE CASCADE
                );""",
            ["id", "scheduled_workout_id", "position", "name", "rest_seconds"],
        ),
        "scheduled_sets": (
            """CREATE TABLE scheduled_sets (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    scheduled_exercise_id INTEGER NOT NULL,
                    set_number INTEGER NOT NULL,
                    reps INTEGER NOT NULL,
                    weight REAL NOT NULL,
                    FOREIGN KEY(scheduled_exercise_id) REFERENCES scheduled_exercises(id) ON DELETE CASCADE
                );""",
            ["id", "scheduled_exercise_id", "set_number", "reps", "weight"],
        ),
        "workout_sessions": (
            """CREATE TABLE workout_sessions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    scheduled_id INTEGER NOT NULL,
                    started_at TEXT NOT NULL,
                    completed_at TEXT,
                    duration_sec INTEGER,
                    status TEXT NOT NULL,
                    session_notes TEXT,
                    is_quick_complete INTEGER NOT NULL DEFAULT 0,
                    FOREIGN KEY(scheduled_id) REFERENCES scheduled_workouts(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "user_id",
                "scheduled_id",
                "started_at",
                "completed_at",
                "duration_sec",
                "status",
                "session_notes",
                "is_quick_complete",
            ],
        ),
        "session_exercises": (
            """CREATE TABLE session_exercises (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id INTEGER NOT NULL,
                    position INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    rest_sec_planned INTEGER NOT NULL DEFAULT 0,
                    rest_sec_actual INTEGER,
                    is_ad_hoc INTEGER NOT NULL DEFAULT 0,
                    scheduled_exercise_id INTEGER,
                    FOREIGN KEY(session_id) REFERENCES workout_sessions(id) ON DELETE CASCADE,
                    FOREIGN KEY(scheduled_exercise_id) REFERENCES scheduled_exercises(id) ON DELETE SET NULL
                );""",
            [
                "id",
                "session_id",
                "position",
                "name",
                "rest_sec_planned",
                "rest_sec_actual",
                "is_ad_hoc",
                "scheduled_exercise_id",
            ],
        ),
        "session_sets": (
            """CREATE TABLE session_sets (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_exercise_id INTEGER NOT NULL,
                    set_number INTEGER NOT NULL,
                    reps_planned INTEGER NOT NULL DEFAULT 0,
                    weight_planned REAL NOT NULL DEFAULT 0,
                    reps_done INTEGER,
                    weight_done REAL,
                    rpe REAL,
                    is_failure INTEGER,
                    FOREIGN KEY(session_exercise_id) REFERENCES session_exercises(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "session_exercise_id",
                "set_number",
                "reps_planned",
                "weight_planned",
                "reps_done",
                "weight_done",
                "rpe",
                "is_failure",
            ],
        ),
        "friendships": (
            """CREATE TABLE friendships (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_a TEXT NOT NULL,
                    user_b TEXT NOT NULL,
                    requested_by TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    UNIQUE (user_a, user_b)
                );""",
            ["id", "user_a", "user_b", "requested_by", "status"],
        ),
        "settings": (
            """CREATE TABLE settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );""",
            ["key", "value"],
        ),
    }

    _COLUMN_DEFAULTS = {
        "position": "0",
        "rest_seconds": "0",
        "rest_sec_planned": "0",
        "reps_planned": "0",
        "weight_planned": "0",
        "is_ad_hoc": "0",
        "is_quick_complete": "0",
        "visible_to_friends": "0",
        "status": "'pending'",
    }

    def __init__(self, db_path: str = "workout.db") -> None:
        self._db_path = db_path
        self._ensure_schema()
        self._init_settings()

    @contextmanager
    def _connection(self):
        active = getattr(_local, "connections", {}).get(self._db_path)
        if active is not None:
            yield active
            return
        connection = sqlite3.connect(self._db_path)
        connection.execute("PRAGMA foreign_keys=on;")
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    @contextmanager
    def transaction(self):
        """Run the enclosed repository calls as one unit of work.

        Repositories sharing this database file on the current thread reuse
        the open connection. The write lock is taken up front so a read made
        inside the block cannot be invalidated before the block commits.
        """
        connections = _local.__dict__.setdefault("connections", {})
        if self._db_path in connections:
            yield connections[self._db_path]
            return
        connection = sqlite3.connect(self._db_path, isolation_level=None)
        connection.execute("PRAGMA foreign_keys=on;")
        connection.execute("BEGIN IMMEDIATE;")
        connections[self._db_path] = connection
        try:
            yield connection
            connection.execute("COMMIT;")
        except BaseException:
            connection.execute("ROLLBACK;")
            raise
        finally:
            connections.pop(self._db_path, None)
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("PRAGMA foreign_keys=off;")
            cursor.execute("PRAGMA legacy_alter_table=on;")
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            cursor.execute("PRAGMA legacy_alter_table=off;")
            cursor.execute("PRAGMA foreign_keys=on;")

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        logger.info("Rebuilding table %s to match declared columns", table)
        conn.execute(f"DROP TABLE IF EXISTS {table}_old;")
        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            missing = [c for c in columns if c not in existing_cols]
            if missing:
                defaults = ", ".join(
                    self._COLUMN_DEFAULTS.get(c, "NULL") for c in missing
                )
                conn.execute(
                    f"INSERT INTO {table} ({cols}, {', '.join(missing)}) SELECT {cols}, {defaults} FROM {table}_old;"
                )
            else:
                conn.execute(
                    f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
                )
        conn.execute(f"DROP TABLE {table}_old;")

    def _init_settings(self) -> None:
        defaults = {
            "log_level": "INFO",
            "rpe_scale": "10",
            "default_rest_seconds": "0",
            "quick_complete_populate_actuals": "1",
        }
        with self._connection() as conn:
            for key, value in defaults.items():
                conn.execute(
                    "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?);",
                    (key, value),
                )

    def vacuum(self) -> None:
        """Run SQLite VACUUM to reduce database size."""
        with self._connection() as conn:
            conn.execute("VACUUM;")


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()

    def fetch_one(self, query: str, params: Tuple = ()) -> Optional[Tuple]:
        rows = self.fetch_all(query, params)
        return rows[0] if rows else None


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        conn = await aiosqlite.connect(self._db_path)
        try:
            yield conn
            await conn.commit()
        finally:
            await conn.close()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous variant of BaseRepository using aiosqlite."""

    async def execute(self, query: str, params: Tuple = ()) -> int:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.lastrowid

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return list(rows)


class PlanRepository(BaseRepository):
    """Repository for user authored workout plans."""

    def create(
        self,
        user_id: str,
        name: str,
        plan_type: str | None = None,
        notes: str | None = None,
    ) -> int:
        return self.execute(
            "INSERT INTO plans (user_id, name, plan_type, notes) VALUES (?, ?, ?, ?);",
            (user_id, name, plan_type, notes),
        )

    def find(self, plan_id: int, user_id: str) -> Optional[Tuple[int, str, str, str | None, str | None]]:
        return self.fetch_one(
            "SELECT id, user_id, name, plan_type, notes FROM plans WHERE id = ? AND user_id = ?;",
            (plan_id, user_id),
        )

    def fetch_for_user(self, user_id: str) -> List[Tuple[int, str, str, str | None, str | None]]:
        return self.fetch_all(
            "SELECT id, user_id, name, plan_type, notes FROM plans WHERE user_id = ? ORDER BY id;",
            (user_id,),
        )

    def fetch_detail(self, plan_id: int) -> Tuple[int, str, str, str | None, str | None]:
        row = self.fetch_one(
            "SELECT id, user_id, name, plan_type, notes FROM plans WHERE id = ?;",
            (plan_id,),
        )
        if row is None:
            raise ValueError("plan not found")
        return row

    def update(
        self,
        plan_id: int,
        name: str,
        plan_type: str | None,
        notes: str | None,
    ) -> None:
        self.execute(
            "UPDATE plans SET name = ?, plan_type = ?, notes = ? WHERE id = ?;",
            (name, plan_type, notes, plan_id),
        )

    def delete(self, plan_id: int) -> None:
        self.execute("DELETE FROM plans WHERE id = ?;", (plan_id,))


class PlanExerciseRepository(BaseRepository):
    """Repository for exercises belonging to plans."""

    def add(self, plan_id: int, position: int, name: str, rest_seconds: int) -> int:
        return self.execute(
            "INSERT INTO plan_exercises (plan_id, position, name, rest_seconds) VALUES (?, ?, ?, ?);",
            (plan_id, position, name, rest_seconds),
        )

    def fetch_for_plan(self, plan_id: int) -> List[Tuple[int, int, str, int]]:
        return self.fetch_all(
            "SELECT id, position, name, rest_seconds FROM plan_exercises WHERE plan_id = ? ORDER BY position, id;",
            (plan_id,),
        )

    def delete_for_plan(self, plan_id: int) -> None:
        self.execute("DELETE FROM plan_exercises WHERE plan_id = ?;", (plan_id,))


class PlanSetRepository(BaseRepository):
    """Repository for plan sets."""

    def add(self, exercise_id: int, set_number: int, reps: int, weight: float) -> int:
        return self.execute(
            "INSERT INTO plan_sets (plan_exercise_id, set_number, reps, weight) VALUES (?, ?, ?, ?);",
            (exercise_id, set_number, reps, weight),
        )

    def fetch_for_exercise(self, exercise_id: int) -> List[Tuple[int, int, int, float]]:
        return self.fetch_all(
            "SELECT id, set_number, reps, weight FROM plan_sets WHERE plan_exercise_id = ? ORDER BY set_number, id;",
            (exercise_id,),
        )


class SharedPlanRepository(BaseRepository):
    """Repository for plans shared between users."""

    _COLUMNS = "sp.id, sp.plan_id, p.name, sp.shared_by, sp.shared_with, sp.status, sp.shared_at, sp.responded_at"

    def create(self, plan_id: int, shared_by: str, shared_with: str, shared_at: str) -> int:
        return self.execute(
            "INSERT INTO shared_plans (plan_id, shared_by, shared_with, status, shared_at) VALUES (?, ?, ?, ?, ?);",
            (plan_id, shared_by, shared_with, RequestStatus.PENDING.value, shared_at),
        )

    def exists(self, plan_id: int, shared_with: str) -> bool:
        rows = self.fetch_all(
            "SELECT 1 FROM shared_plans WHERE plan_id = ? AND shared_with = ?;",
            (plan_id, shared_with),
        )
        return bool(rows)

    def find_for_recipient(self, shared_id: int, user_id: str) -> Optional[Tuple]:
        return self.fetch_one(
            f"SELECT {self._COLUMNS} FROM shared_plans sp JOIN plans p ON p.id = sp.plan_id "
            "WHERE sp.id = ? AND sp.shared_with = ?;",
            (shared_id, user_id),
        )

    def find_for_party(self, shared_id: int, user_id: str) -> Optional[Tuple]:
        return self.fetch_one(
            f"SELECT {self._COLUMNS} FROM shared_plans sp JOIN plans p ON p.id = sp.plan_id "
            "WHERE sp.id = ? AND (sp.shared_by = ? OR sp.shared_with = ?);",
            (shared_id, user_id, user_id),
        )

    def fetch_for_recipient(self, user_id: str, status: RequestStatus) -> List[Tuple]:
        return self.fetch_all(
            f"SELECT {self._COLUMNS} FROM shared_plans sp JOIN plans p ON p.id = sp.plan_id "
            "WHERE sp.shared_with = ? AND sp.status = ? ORDER BY sp.shared_at DESC, sp.id DESC;",
            (user_id, status.value),
        )

    def set_status(self, shared_id: int, status: RequestStatus, responded_at: str) -> None:
        self.execute(
            "UPDATE shared_plans SET status = ?, responded_at = ? WHERE id = ?;",
            (status.value, responded_at, shared_id),
        )

    def delete(self, shared_id: int) -> None:
        self.execute("DELETE FROM shared_plans WHERE id = ?;", (shared_id,))


class ScheduledWorkoutRepository(BaseRepository):
    """Repository for scheduled workouts."""

    _COLUMNS = "id, user_id, plan_id, date, time, plan_name, notes, status, visible_to_friends"

    def create(
        self,
        user_id: str,
        date: str,
        plan_id: int | None,
        time: str | None = None,
        plan_name: str | None = None,
        notes: str | None = None,
        status: ScheduledStatus = ScheduledStatus.PLANNED,
        visible_to_friends: bool = False,
    ) -> int:
        return self.execute(
            "INSERT INTO scheduled_workouts (user_id, plan_id, date, time, plan_name, notes, status, visible_to_friends) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?);",
            (
                user_id,
                plan_id,
                date,
                time,
                plan_name,
                notes,
                status.value,
                int(visible_to_friends),
            ),
        )

    def find(self, scheduled_id: int, user_id: str) -> Optional[Tuple]:
        return self.fetch_one(
            f"SELECT {self._COLUMNS} FROM scheduled_workouts WHERE id = ? AND user_id = ?;",
            (scheduled_id, user_id),
        )

    def fetch_for_user(
        self,
        user_id: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> List[Tuple]:
        query = f"SELECT {self._COLUMNS} FROM scheduled_workouts WHERE user_id = ?"
        params: list[str] = [user_id]
        if start_date:
            query += " AND date >= ?"
            params.append(start_date)
        if end_date:
            query += " AND date <= ?"
            params.append(end_date)
        query += " ORDER BY date, time IS NOT NULL, time, id;"
        return self.fetch_all(query, tuple(params))

    def update(
        self,
        scheduled_id: int,
        date: str,
        time: str | None,
        plan_id: int,
        plan_name: str | None,
        notes: str | None,
        status: ScheduledStatus,
        visible_to_friends: bool,
    ) -> None:
        self.execute(
            "UPDATE scheduled_workouts SET date = ?, time = ?, plan_id = ?, plan_name = ?, notes = ?, "
            "status = ?, visible_to_friends = ? WHERE id = ?;",
            (
                date,
                time,
                plan_id,
                plan_name,
                notes,
                status.value,
                int(visible_to_friends),
                scheduled_id,
            ),
        )

    def set_status(self, scheduled_id: int, status: ScheduledStatus) -> None:
        self.execute(
            "UPDATE scheduled_workouts SET status = ? WHERE id = ?;",
            (status.value, scheduled_id),
        )

    def delete(self, scheduled_id: int) -> None:
        self.execute("DELETE FROM scheduled_workouts WHERE id = ?;", (scheduled_id,))

    def count_in_range(
        self,
        user_id: str,
        start_date: str,
        end_date: str,
        status: ScheduledStatus | None = None,
    ) -> int:
        query = "SELECT COUNT(*) FROM scheduled_workouts WHERE user_id = ? AND date >= ? AND date <= ?"
        params: list[str] = [user_id, start_date, end_date]
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        rows = self.fetch_all(query + ";", tuple(params))
        return int(rows[0][0]) if rows else 0


class ScheduledExerciseRepository(BaseRepository):
    """Repository for exercises of scheduled workouts."""

    def add(self, scheduled_id: int, position: int, name: str, rest_seconds: int) -> int:
        return self.execute(
            "INSERT INTO scheduled_exercises (scheduled_workout_id, position, name, rest_seconds) VALUES (?, ?, ?, ?);",
            (scheduled_id, position, name, rest_seconds),
        )

    def fetch_for_workout(self, scheduled_id: int) -> List[Tuple[int, int, str, int]]:
        return self.fetch_all(
            "SELECT id, position, name, rest_seconds FROM scheduled_exercises "
            "WHERE scheduled_workout_id = ? ORDER BY position, id;",
            (scheduled_id,),
        )

    def delete_for_workout(self, scheduled_id: int) -> None:
        self.execute(
            "DELETE FROM scheduled_exercises WHERE scheduled_workout_id = ?;",
            (scheduled_id,),
        )


class ScheduledSetRepository(BaseRepository):
    """Repository for sets of scheduled exercises."""

    def add(self, exercise_id: int, set_number: int, reps: int, weight: float) -> int:
        return self.execute(
            "INSERT INTO scheduled_sets (scheduled_exercise_id, set_number, reps, weight) VALUES (?, ?, ?, ?);",
            (exercise_id, set_number, reps, weight),
        )

    def fetch_for_exercise(self, exercise_id: int) -> List[Tuple[int, int, int, float]]:
        return self.fetch_all(
            "SELECT id, set_number, reps, weight FROM scheduled_sets "
            "WHERE scheduled_exercise_id = ? ORDER BY set_number, id;",
            (exercise_id,),
        )


class WorkoutSessionRepository(BaseRepository):
    """Repository for workout sessions."""

    _COLUMNS = (
        "id, user_id, scheduled_id, started_at, completed_at, duration_sec, "
        "status, session_notes, is_quick_complete"
    )

    def create(
        self,
        user_id: str,
        scheduled_id: int,
        started_at: str,
        status: SessionStatus = SessionStatus.IN_PROGRESS,
        completed_at: str | None = None,
        duration_sec: int | None = None,
        session_notes: str | None = None,
        is_quick_complete: bool = False,
    ) -> int:
        return self.execute(
            "INSERT INTO workout_sessions (user_id, scheduled_id, started_at, completed_at, duration_sec, "
            "status, session_notes, is_quick_complete) VALUES (?, ?, ?, ?, ?, ?, ?, ?);",
            (
                user_id,
                scheduled_id,
                started_at,
                completed_at,
                duration_sec,
                status.value,
                session_notes,
                int(is_quick_complete),
            ),
        )

    def find(self, session_id: int, user_id: str) -> Optional[Tuple]:
        return self.fetch_one(
            f"SELECT {self._COLUMNS} FROM workout_sessions WHERE id = ? AND user_id = ?;",
            (session_id, user_id),
        )

    def has_blocking(self, scheduled_id: int) -> bool:
        """Return True when an in-progress or completed session exists."""
        rows = self.fetch_all(
            "SELECT 1 FROM workout_sessions WHERE scheduled_id = ? AND status != ? LIMIT 1;",
            (scheduled_id, SessionStatus.ABORTED.value),
        )
        return bool(rows)

    def latest_for_scheduled(self, scheduled_id: int, user_id: str) -> Optional[Tuple]:
        return self.fetch_one(
            f"SELECT {self._COLUMNS} FROM workout_sessions WHERE scheduled_id = ? AND user_id = ? "
            "ORDER BY started_at DESC, id DESC LIMIT 1;",
            (scheduled_id, user_id),
        )

    def has_other_in_progress(self, scheduled_id: int, session_id: int) -> bool:
        rows = self.fetch_all(
            "SELECT 1 FROM workout_sessions WHERE scheduled_id = ? AND status = ? AND id != ? LIMIT 1;",
            (scheduled_id, SessionStatus.IN_PROGRESS.value, session_id),
        )
        return bool(rows)

    def finish(
        self,
        session_id: int,
        status: SessionStatus,
        completed_at: str,
        duration_sec: int,
        session_notes: str | None,
    ) -> None:
        self.execute(
            "UPDATE workout_sessions SET status = ?, completed_at = ?, duration_sec = ?, session_notes = ? "
            "WHERE id = ?;",
            (status.value, completed_at, duration_sec, session_notes, session_id),
        )

    def delete(self, session_id: int) -> None:
        self.execute("DELETE FROM workout_sessions WHERE id = ?;", (session_id,))

    def fetch_range(self, user_id: str, start: str, end: str) -> List[Tuple]:
        return self.fetch_all(
            f"SELECT {self._COLUMNS} FROM workout_sessions WHERE user_id = ? AND started_at >= ? AND started_at < ? "
            "ORDER BY started_at DESC, id DESC;",
            (user_id, start, end),
        )

    def count_completed(self, user_id: str, start: str, end: str) -> int:
        rows = self.fetch_all(
            "SELECT COUNT(*) FROM workout_sessions WHERE user_id = ? AND status = ? "
            "AND started_at >= ? AND started_at < ?;",
            (user_id, SessionStatus.COMPLETED.value, start, end),
        )
        return int(rows[0][0]) if rows else 0

    def fetch_completed_sets(
        self,
        user_id: str,
        start: str,
        end: str,
        exercise_name: str | None = None,
    ) -> List[Tuple[int, str, str, Optional[int], Optional[float]]]:
        """Return ``(session_id, started_at, exercise, reps_done, weight_done)`` rows."""
        query = (
            "SELECT ws.id, ws.started_at, se.name, ss.reps_done, ss.weight_done "
            "FROM workout_sessions ws "
            "JOIN session_exercises se ON se.session_id = ws.id "
            "JOIN session_sets ss ON ss.session_exercise_id = se.id "
            "WHERE ws.user_id = ? AND ws.status = ? AND ws.started_at >= ? AND ws.started_at < ?"
        )
        params: list[str] = [user_id, SessionStatus.COMPLETED.value, start, end]
        if exercise_name:
            query += " AND se.name = ?"
            params.append(exercise_name)
        query += " ORDER BY ws.started_at, ws.id, se.position, ss.set_number;"
        return self.fetch_all(query, tuple(params))


class SessionExerciseRepository(BaseRepository):
    """Repository for exercises performed in a session."""

    def add(
        self,
        session_id: int,
        position: int,
        name: str,
        rest_sec_planned: int,
        rest_sec_actual: int | None = None,
        is_ad_hoc: bool = False,
        scheduled_exercise_id: int | None = None,
    ) -> int:
        return self.execute(
            "INSERT INTO session_exercises (session_id, position, name, rest_sec_planned, rest_sec_actual, "
            "is_ad_hoc, scheduled_exercise_id) VALUES (?, ?, ?, ?, ?, ?, ?);",
            (
                session_id,
                position,
                name,
                rest_sec_planned,
                rest_sec_actual,
                int(is_ad_hoc),
                scheduled_exercise_id,
            ),
        )

    def fetch_for_session(self, session_id: int) -> List[Tuple]:
        return self.fetch_all(
            "SELECT id, position, name, rest_sec_planned, rest_sec_actual, is_ad_hoc, scheduled_exercise_id "
            "FROM session_exercises WHERE session_id = ? ORDER BY position, id;",
            (session_id,),
        )

    def max_position(self, session_id: int) -> int:
        rows = self.fetch_all(
            "SELECT COALESCE(MAX(position), 0) FROM session_exercises WHERE session_id = ?;",
            (session_id,),
        )
        return int(rows[0][0]) if rows else 0


class SessionSetRepository(BaseRepository):
    """Repository for sets logged in a session."""

    def __init__(self, db_path: str = "workout.db", settings: Optional["SettingsRepository"] = None) -> None:
        super().__init__(db_path)
        self.settings = settings

    def add(
        self,
        exercise_id: int,
        set_number: int,
        reps_planned: int,
        weight_planned: float,
        reps_done: int | None = None,
        weight_done: float | None = None,
    ) -> int:
        return self.execute(
            "INSERT INTO session_sets (session_exercise_id, set_number, reps_planned, weight_planned, "
            "reps_done, weight_done) VALUES (?, ?, ?, ?, ?, ?);",
            (exercise_id, set_number, reps_planned, weight_planned, reps_done, weight_done),
        )

    def fetch_for_exercise(self, exercise_id: int) -> List[Tuple]:
        return self.fetch_all(
            "SELECT id, set_number, reps_planned, weight_planned, reps_done, weight_done, rpe, is_failure "
            "FROM session_sets WHERE session_exercise_id = ? ORDER BY set_number, id;",
            (exercise_id,),
        )

    def belongs_to_session(self, set_id: int, session_id: int) -> bool:
        rows = self.fetch_all(
            "SELECT 1 FROM session_sets ss JOIN session_exercises se ON se.id = ss.session_exercise_id "
            "WHERE ss.id = ? AND se.session_id = ?;",
            (set_id, session_id),
        )
        return bool(rows)

    def update_actuals(
        self,
        set_id: int,
        reps_done: int | None = None,
        weight_done: float | None = None,
        rpe: float | None = None,
        is_failure: bool | None = None,
    ) -> None:
        """Overwrite each provided field; ``None`` leaves a field untouched."""
        if reps_done is not None and reps_done < 0:
            raise ValueError("reps must be non-negative")
        if weight_done is not None and weight_done < 0:
            raise ValueError("weight must be non-negative")
        if rpe is not None:
            max_rpe = 10
            if self.settings is not None:
                max_rpe = self.settings.get_int("rpe_scale", 10)
            if rpe < 0 or rpe > max_rpe:
                raise ValueError(f"rpe must be between 0 and {max_rpe}")
        updates = {
            "reps_done": reps_done,
            "weight_done": weight_done,
            "rpe": rpe,
            "is_failure": None if is_failure is None else int(is_failure),
        }
        for column, value in updates.items():
            if value is None:
                continue
            self.execute(
                f"UPDATE session_sets SET {column} = ? WHERE id = ?;",
                (value, set_id),
            )

    def fetch_plan_vs_actual(self, session_id: int) -> List[Tuple]:
        return self.fetch_all(
            "SELECT se.name, ss.set_number, ss.reps_planned, ss.weight_planned, ss.reps_done, ss.weight_done, "
            "ss.rpe, ss.is_failure, se.is_ad_hoc "
            "FROM session_exercises se JOIN session_sets ss ON ss.session_exercise_id = se.id "
            "WHERE se.session_id = ? ORDER BY se.position, se.id, ss.set_number, ss.id;",
            (session_id,),
        )


class FriendshipRepository(BaseRepository):
    """Repository for friendships stored as canonical user pairs."""

    @staticmethod
    def canonical(user_id: str, other_id: str) -> Tuple[str, str]:
        return (user_id, other_id) if user_id < other_id else (other_id, user_id)

    def request(self, user_id: str, target_id: str) -> int:
        user_a, user_b = self.canonical(user_id, target_id)
        return self.execute(
            "INSERT INTO friendships (user_a, user_b, requested_by, status) VALUES (?, ?, ?, ?);",
            (user_a, user_b, user_id, RequestStatus.PENDING.value),
        )

    def find_pair(self, user_id: str, other_id: str) -> Optional[Tuple]:
        user_a, user_b = self.canonical(user_id, other_id)
        return self.fetch_one(
            "SELECT id, user_a, user_b, requested_by, status FROM friendships WHERE user_a = ? AND user_b = ?;",
            (user_a, user_b),
        )

    def find_for_responder(self, friendship_id: int, user_id: str) -> Optional[Tuple]:
        return self.fetch_one(
            "SELECT id, user_a, user_b, requested_by, status FROM friendships "
            "WHERE id = ? AND (user_a = ? OR user_b = ?) AND requested_by != ?;",
            (friendship_id, user_id, user_id, user_id),
        )

    def set_status(self, friendship_id: int, status: RequestStatus) -> None:
        self.execute(
            "UPDATE friendships SET status = ? WHERE id = ?;",
            (status.value, friendship_id),
        )

    def fetch_pending_for(self, user_id: str) -> List[Tuple]:
        return self.fetch_all(
            "SELECT id, user_a, user_b, requested_by, status FROM friendships "
            "WHERE (user_a = ? OR user_b = ?) AND requested_by != ? AND status = ? ORDER BY id;",
            (user_id, user_id, user_id, RequestStatus.PENDING.value),
        )

    def friend_ids(self, user_id: str) -> set[str]:
        rows = self.fetch_all(
            "SELECT user_a, user_b FROM friendships WHERE (user_a = ? OR user_b = ?) AND status = ?;",
            (user_id, user_id, RequestStatus.ACCEPTED.value),
        )
        return {b if a == user_id else a for a, b in rows}


class AsyncFriendshipRepository(AsyncBaseRepository):
    """Async read access to accepted friendships."""

    async def friend_ids(self, user_id: str) -> set[str]:
        rows = await self.fetch_all(
            "SELECT user_a, user_b FROM friendships WHERE (user_a = ? OR user_b = ?) AND status = ?;",
            (user_id, user_id, RequestStatus.ACCEPTED.value),
        )
        return {b if a == user_id else a for a, b in rows}


class AsyncScheduledWorkoutRepository(AsyncBaseRepository):
    """Async read access to scheduled workouts shared with friends."""

    async def fetch_visible_for_users(
        self, user_ids: Iterable[str], start_date: str, end_date: str
    ) -> List[Tuple]:
        ids = list(user_ids)
        if not ids:
            return []
        placeholders = ",".join("?" for _ in ids)
        return await self.fetch_all(
            "SELECT id, user_id, date, time, plan_name, status FROM scheduled_workouts "
            f"WHERE user_id IN ({placeholders}) AND visible_to_friends = 1 AND date >= ? AND date <= ? "
            "ORDER BY date, time IS NOT NULL, time, id;",
            (*ids, start_date, end_date),
        )


class AsyncWorkoutSessionRepository(AsyncBaseRepository):
    """Async read access to sessions of visible scheduled workouts."""

    async def fetch_visible_for_users(
        self, user_ids: Iterable[str], start: str, end: str
    ) -> List[Tuple]:
        ids = list(user_ids)
        if not ids:
            return []
        placeholders = ",".join("?" for _ in ids)
        return await self.fetch_all(
            "SELECT ws.id, ws.scheduled_id, ws.user_id, sw.plan_name, ws.started_at, ws.completed_at, "
            "ws.duration_sec, ws.status FROM workout_sessions ws "
            "JOIN scheduled_workouts sw ON sw.id = ws.scheduled_id "
            f"WHERE ws.user_id IN ({placeholders}) AND sw.visible_to_friends = 1 "
            "AND ws.started_at >= ? AND ws.started_at < ? ORDER BY ws.started_at DESC, ws.id DESC;",
            (*ids, start, end),
        )


class SettingsRepository(BaseRepository):
    """Repository for general application settings synchronized with YAML."""

    _BOOL_KEYS = {"quick_complete_populate_actuals"}
    _TEXT_KEYS = {"log_level", "gateway_key"}

    def __init__(
        self, db_path: str = "workout.db", yaml_path: str = "settings.yaml"
    ) -> None:
        super().__init__(db_path)
        self._yaml = YamlConfig(yaml_path)
        self._sync_from_yaml()
        self._sync_to_yaml()

    def _raw_all_settings(self) -> dict:
        rows = self.fetch_all("SELECT key, value FROM settings ORDER BY key;")
        result: dict[str, float | str | bool] = {}
        for k, v in rows:
            if k in self._BOOL_KEYS:
                result[k] = v in {"1", "1.0", "true", "True"}
                continue
            if k in self._TEXT_KEYS:
                result[k] = v
                continue
            try:
                result[k] = int(v)
            except ValueError:
                result[k] = v
        return result

    def _sync_from_yaml(self) -> None:
        data = self._yaml.load()
        if not data:
            return
        validate_settings(data)
        with self._connection() as conn:
            for key, value in data.items():
                val = str(value)
                if key in self._BOOL_KEYS:
                    val = "1" if val in {"1", "1.0", "true", "True"} else "0"
                conn.execute(
                    "INSERT INTO settings (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
                    (key, val),
                )

    def _sync_to_yaml(self) -> None:
        self._yaml.save(self._raw_all_settings())

    def get_text(self, key: str, default: str) -> str:
        self._sync_from_yaml()
        rows = self.fetch_all("SELECT value FROM settings WHERE key = ?;", (key,))
        return rows[0][0] if rows else default

    def get_int(self, key: str, default: int) -> int:
        try:
            return int(float(self.get_text(key, str(default))))
        except ValueError:
            return default

    def get_bool(self, key: str, default: bool) -> bool:
        return self.get_text(key, "1" if default else "0") in {
            "1",
            "true",
            "True",
            "1.0",
        }

    def set_text(self, key: str, value: str) -> None:
        self.execute(
            "INSERT INTO settings (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
            (key, value),
        )
        self._sync_to_yaml()

    def set_int(self, key: str, value: int) -> None:
        self.set_text(key, str(value))

    def set_bool(self, key: str, value: bool) -> None:
        self.set_text(key, "1" if value else "0")

    def all_settings(self) -> dict:
        self._sync_from_yaml()
        data = self._raw_all_settings()
        for k in self._BOOL_KEYS:
            data[k] = bool(data.get(k, False))
        return data
