"""
Task board storage backend (SQLite).

Provides CRUD for tasks, locations, reports, AI messages and users, and
enforces the task lifecycle rules on every write:

  - entering in_progress stamps time_started
  - entering completed stamps time_completed and derives time_spent_minutes
  - leaving completed clears time_completed
"""
import logging
import math
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional

from .errors import ConflictError, NotFoundError, StorageError, ValidationError
from .schema import (
    MAX_INT,
    AIMessage,
    Location,
    LocationType,
    Report,
    ReportType,
    Task,
    TaskStatus,
    User,
    clean_location_input,
    clean_message_input,
    clean_task_input,
    parse_timestamp,
    to_iso,
    utc_now,
)

logger = logging.getLogger(__name__)

TASK_COLUMNS = (
    "title", "description", "status", "priority", "due_date", "category",
    "location_id", "time_spent_minutes", "time_started", "time_completed",
    "photo_url", "is_ai_generated", "source",
)

LOCATION_COLUMNS = (
    "name", "address", "city", "state", "zip", "type", "description", "image_url",
)


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection with WAL mode and dict-like rows."""
    conn = sqlite3.connect(db_path, timeout=10)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


def _to_db(value: Any) -> Any:
    """Convert a native value to its SQLite representation."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, bool):
        return 1 if value else 0
    return value


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes from start to end, rounded half up."""
    return int(math.floor((end - start).total_seconds() / 60 + 0.5))


def apply_lifecycle(
    record: Dict[str, Any],
    previous_status: Optional[TaskStatus],
    supplied: Mapping[str, Any],
    now: datetime,
) -> Dict[str, Any]:
    """
    Derive timestamps and time spent for a task about to be written.

    record holds the full merged column values, supplied the fields the
    caller actually sent (None counts as not sent for time fields).
    Re-completing a task resets time_spent_minutes to the latest interval.
    """
    status = record["status"]
    entered = status != previous_status

    def sent(column: str) -> bool:
        return supplied.get(column) is not None

    if status == TaskStatus.IN_PROGRESS and entered and not sent("time_started"):
        record["time_started"] = now

    if status == TaskStatus.COMPLETED:
        if not sent("time_completed") and (entered or record.get("time_completed") is None):
            record["time_completed"] = now
        times_changed = entered or sent("time_started") or sent("time_completed")
        if times_changed and record.get("time_started") and not sent("time_spent_minutes"):
            record["time_spent_minutes"] = minutes_between(
                record["time_started"], record["time_completed"]
            )
    else:
        if sent("time_completed"):
            raise ValidationError(
                f"timeCompleted can only be set when status is {TaskStatus.COMPLETED.value}"
            )
        if record.get("time_completed") is not None:
            logger.info("Task reopened: %s -> %s",
                        previous_status.value if previous_status else None, status.value)
            record["time_completed"] = None

    started, completed = record.get("time_started"), record.get("time_completed")
    if started and completed and completed < started:
        raise ValidationError("timeCompleted must not be earlier than timeStarted")
    return record


class TaskStore:
    """SQLite-backed store for the task board."""

    def __init__(self, db_path: str = None):
        """Initialize store and create tables if needed."""
        if db_path is None:
            db_path = str(Path.home() / ".local" / "share" / "taskboard" / "taskboard.db")
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """One connection per operation; commit on success, StorageError on failure."""
        conn = None
        try:
            conn = _connect(self.db_path)
            with conn:
                yield conn
        except sqlite3.Error as e:
            logger.error("Database error on %s: %s", self.db_path, e)
            raise StorageError(str(e)) from e
        except OverflowError as e:
            # an integer parameter (usually an id) beyond SQLite's 64-bit range
            raise ValidationError("integer value out of range") from e
        finally:
            if conn is not None:
                conn.close()

    def _init_schema(self):
        """Create tables if they don't exist."""
        with self._transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    username TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    description TEXT,
                    status TEXT NOT NULL DEFAULT 'todo',
                    priority TEXT NOT NULL DEFAULT 'medium',
                    due_date TEXT,          -- YYYY-MM-DD
                    category TEXT,
                    location_id INTEGER,    -- weak reference, no FK
                    time_spent_minutes INTEGER,
                    time_started TEXT,
                    time_completed TEXT,
                    photo_url TEXT,
                    is_ai_generated INTEGER DEFAULT 0,
                    source TEXT,
                    user_id INTEGER,
                    created_at TEXT NOT NULL
                )
            """)
            # Migrate: add time tracking / location columns to older databases
            self._migrate_columns(conn)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS locations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    address TEXT NOT NULL,
                    city TEXT NOT NULL,
                    state TEXT NOT NULL,
                    zip TEXT NOT NULL,
                    type TEXT NOT NULL DEFAULT 'other',
                    description TEXT,
                    image_url TEXT,
                    user_id INTEGER,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS reports (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    type TEXT NOT NULL,
                    start_date TEXT NOT NULL,
                    end_date TEXT NOT NULL,
                    summary TEXT NOT NULL,
                    tasks_summary TEXT,     -- JSON blob
                    user_id INTEGER,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS ai_messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    role TEXT NOT NULL,
                    content TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    user_id INTEGER
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_user_status ON tasks(user_id, status)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_user_due ON tasks(user_id, due_date)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_location ON tasks(location_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_messages_user_ts ON ai_messages(user_id, timestamp)")

    def ping(self) -> bool:
        """True when the database answers a trivial query."""
        try:
            with self._transaction() as conn:
                conn.execute("SELECT 1").fetchone()
            return True
        except StorageError:
            return False

    def _migrate_columns(self, conn):
        """Add new columns to existing databases (safe: ignores if already present)."""
        new_columns = [
            ("location_id", "INTEGER"),
            ("time_spent_minutes", "INTEGER"),
            ("time_started", "TEXT"),
            ("time_completed", "TEXT"),
            ("photo_url", "TEXT"),
        ]
        existing = {row["name"] for row in conn.execute("PRAGMA table_info(tasks)")}
        for col_name, col_type in new_columns:
            if col_name not in existing:
                conn.execute(f"ALTER TABLE tasks ADD COLUMN {col_name} {col_type}")

    # ── Tasks ────────────────────────────────────────────────────────────────

    def create_task(self, owner_id: int, data: Mapping[str, Any]) -> Task:
        """Validate, derive lifecycle fields, and insert a task."""
        fields = clean_task_input(data)
        now = utc_now()
        record = {column: fields.get(column) for column in TASK_COLUMNS}
        record = apply_lifecycle(record, None, fields, now)

        with self._transaction() as conn:
            cur = conn.execute(
                f"INSERT INTO tasks ({', '.join(TASK_COLUMNS)}, user_id, created_at) "
                f"VALUES ({', '.join('?' for _ in TASK_COLUMNS)}, ?, ?)",
                [_to_db(record[c]) for c in TASK_COLUMNS] + [owner_id, to_iso(now)],
            )
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (cur.lastrowid,)).fetchone()
        task = Task.from_row(row)
        logger.debug("Created task %s for user %s", task.id, owner_id)
        return task

    def get_task(self, owner_id: int, task_id: int) -> Task:
        """Retrieve a task; NotFoundError if missing or not owned."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM tasks WHERE id = ? AND user_id = ?", (task_id, owner_id)
            ).fetchone()
        if not row:
            raise NotFoundError("Task not found")
        return Task.from_row(row)

    def update_task(self, owner_id: int, task_id: int, data: Mapping[str, Any]) -> Task:
        """Apply a partial update; lifecycle rules run on status transitions."""
        patch = clean_task_input(data, partial=True)
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM tasks WHERE id = ? AND user_id = ?", (task_id, owner_id)
            ).fetchone()
            if not row:
                raise NotFoundError("Task not found")
            return self._write_task(conn, Task.from_row(row), patch)

    def log_time(self, owner_id: int, task_id: int, minutes: int,
                 started: Any = None) -> Task:
        """Add tracked minutes to a task, stamping time_started if unset."""
        if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes <= 0:
            raise ValidationError("minutes must be a positive integer")
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM tasks WHERE id = ? AND user_id = ?", (task_id, owner_id)
            ).fetchone()
            if not row:
                raise NotFoundError("Task not found")
            current = Task.from_row(row)
            if current.status == TaskStatus.COMPLETED:
                raise ValidationError("cannot log time on a completed task")
            total = (current.time_spent_minutes or 0) + minutes
            if total > MAX_INT:
                raise ValidationError(f"timeSpentMinutes must be <= {MAX_INT}")
            patch: Dict[str, Any] = {"time_spent_minutes": total}
            if current.time_started is None:
                try:
                    patch["time_started"] = parse_timestamp(started) if started else utc_now()
                except (TypeError, ValueError):
                    raise ValidationError("started must be an ISO timestamp")
            return self._write_task(conn, current, patch)

    def _write_task(self, conn: sqlite3.Connection, current: Task,
                    patch: Dict[str, Any]) -> Task:
        record = {column: getattr(current, column) for column in TASK_COLUMNS}
        record.update(patch)
        record = apply_lifecycle(record, current.status, patch, utc_now())
        conn.execute(
            f"UPDATE tasks SET {', '.join(f'{c} = ?' for c in TASK_COLUMNS)} WHERE id = ?",
            [_to_db(record[c]) for c in TASK_COLUMNS] + [current.id],
        )
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (current.id,)).fetchone()
        return Task.from_row(row)

    def delete_task(self, owner_id: int, task_id: int) -> bool:
        """Hard delete. Returns whether a row was removed."""
        with self._transaction() as conn:
            cur = conn.execute(
                "DELETE FROM tasks WHERE id = ? AND user_id = ?", (task_id, owner_id)
            )
            return cur.rowcount > 0

    def list_tasks(
        self,
        owner_id: int,
        status: Optional[TaskStatus] = None,
        location_id: Optional[int] = None,
        due_today: bool = False,
        today: Optional[date] = None,
    ) -> List[Task]:
        """List a user's tasks, optionally filtered (filters combine with AND)."""
        clauses = ["user_id = ?"]
        params: List[Any] = [owner_id]
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        if location_id is not None:
            clauses.append("location_id = ?")
            params.append(location_id)
        if due_today:
            # [today 00:00, tomorrow 00:00) in the server's local calendar
            day = today or date.today()
            clauses.append("due_date >= ? AND due_date < ?")
            params.extend([day.isoformat(), (day + timedelta(days=1)).isoformat()])

        with self._transaction() as conn:
            rows = conn.execute(
                f"SELECT * FROM tasks WHERE {' AND '.join(clauses)} ORDER BY id ASC",
                params,
            ).fetchall()
        return [Task.from_row(row) for row in rows]

    # ── Locations ────────────────────────────────────────────────────────────

    def create_location(self, owner_id: int, data: Mapping[str, Any]) -> Location:
        fields = clean_location_input(data)
        with self._transaction() as conn:
            cur = conn.execute(
                f"INSERT INTO locations ({', '.join(LOCATION_COLUMNS)}, user_id, created_at) "
                f"VALUES ({', '.join('?' for _ in LOCATION_COLUMNS)}, ?, ?)",
                [_to_db(fields.get(c)) for c in LOCATION_COLUMNS] + [owner_id, to_iso(utc_now())],
            )
            row = conn.execute("SELECT * FROM locations WHERE id = ?", (cur.lastrowid,)).fetchone()
        return Location.from_row(row)

    def get_location(self, owner_id: int, location_id: int) -> Location:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM locations WHERE id = ? AND user_id = ?", (location_id, owner_id)
            ).fetchone()
        if not row:
            raise NotFoundError("Location not found")
        return Location.from_row(row)

    def update_location(self, owner_id: int, location_id: int, data: Mapping[str, Any]) -> Location:
        patch = clean_location_input(data, partial=True)
        if not patch:
            return self.get_location(owner_id, location_id)
        columns = [c for c in LOCATION_COLUMNS if c in patch]
        with self._transaction() as conn:
            cur = conn.execute(
                f"UPDATE locations SET {', '.join(f'{c} = ?' for c in columns)} "
                "WHERE id = ? AND user_id = ?",
                [_to_db(patch[c]) for c in columns] + [location_id, owner_id],
            )
            if cur.rowcount == 0:
                raise NotFoundError("Location not found")
            row = conn.execute("SELECT * FROM locations WHERE id = ?", (location_id,)).fetchone()
        return Location.from_row(row)

    def delete_location(self, owner_id: int, location_id: int) -> bool:
        """Delete a location. Tasks keep their (now dangling) location_id."""
        with self._transaction() as conn:
            cur = conn.execute(
                "DELETE FROM locations WHERE id = ? AND user_id = ?", (location_id, owner_id)
            )
            return cur.rowcount > 0

    def list_locations(self, owner_id: int, kind: Optional[LocationType] = None) -> List[Location]:
        sql = "SELECT * FROM locations WHERE user_id = ?"
        params: List[Any] = [owner_id]
        if kind is not None:
            sql += " AND type = ?"
            params.append(kind.value)
        with self._transaction() as conn:
            rows = conn.execute(sql + " ORDER BY id ASC", params).fetchall()
        return [Location.from_row(row) for row in rows]

    # ── Reports ──────────────────────────────────────────────────────────────

    def create_report(
        self,
        owner_id: int,
        title: str,
        kind: ReportType,
        start: datetime,
        end: datetime,
        summary: str,
        tasks_summary: str,
    ) -> Report:
        with self._transaction() as conn:
            cur = conn.execute(
                "INSERT INTO reports (title, type, start_date, end_date, summary, "
                "tasks_summary, user_id, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (title, kind.value, to_iso(start), to_iso(end), summary,
                 tasks_summary, owner_id, to_iso(utc_now())),
            )
            row = conn.execute("SELECT * FROM reports WHERE id = ?", (cur.lastrowid,)).fetchone()
        return Report.from_row(row)

    def get_report(self, owner_id: int, report_id: int) -> Report:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM reports WHERE id = ? AND user_id = ?", (report_id, owner_id)
            ).fetchone()
        if not row:
            raise NotFoundError("Report not found")
        return Report.from_row(row)

    def list_reports(self, owner_id: int, start: Optional[datetime] = None,
                     end: Optional[datetime] = None) -> List[Report]:
        """List reports; with a range, only those whose window lies inside it."""
        sql = "SELECT * FROM reports WHERE user_id = ?"
        params: List[Any] = [owner_id]
        if start is not None:
            sql += " AND start_date >= ?"
            params.append(to_iso(start))
        if end is not None:
            sql += " AND end_date <= ?"
            params.append(to_iso(end))
        with self._transaction() as conn:
            rows = conn.execute(sql + " ORDER BY start_date DESC, id DESC", params).fetchall()
        return [Report.from_row(row) for row in rows]

    def delete_report(self, owner_id: int, report_id: int) -> bool:
        with self._transaction() as conn:
            cur = conn.execute(
                "DELETE FROM reports WHERE id = ? AND user_id = ?", (report_id, owner_id)
            )
            return cur.rowcount > 0

    # ── AI messages ──────────────────────────────────────────────────────────

    def add_message(self, owner_id: int, data: Mapping[str, Any]) -> AIMessage:
        """Append to the conversation log; the timestamp is assigned here."""
        fields = clean_message_input(data)
        with self._transaction() as conn:
            cur = conn.execute(
                "INSERT INTO ai_messages (role, content, timestamp, user_id) VALUES (?, ?, ?, ?)",
                (fields["role"].value, fields["content"], to_iso(utc_now()), owner_id),
            )
            row = conn.execute("SELECT * FROM ai_messages WHERE id = ?", (cur.lastrowid,)).fetchone()
        return AIMessage.from_row(row)

    def list_messages(self, owner_id: int, limit: Optional[int] = None) -> List[AIMessage]:
        """Newest first."""
        if limit is not None and limit <= 0:
            raise ValidationError("limit must be a positive integer")
        sql = "SELECT * FROM ai_messages WHERE user_id = ? ORDER BY timestamp DESC, id DESC"
        params: List[Any] = [owner_id]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        with self._transaction() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [AIMessage.from_row(row) for row in rows]

    # ── Users ────────────────────────────────────────────────────────────────

    def create_user(self, username: str, password_hash: str) -> User:
        username = (username or "").strip()
        if not username:
            raise ValidationError("username is required")
        try:
            with self._transaction() as conn:
                cur = conn.execute(
                    "INSERT INTO users (username, password_hash, created_at) VALUES (?, ?, ?)",
                    (username, password_hash, to_iso(utc_now())),
                )
                row = conn.execute("SELECT * FROM users WHERE id = ?", (cur.lastrowid,)).fetchone()
        except StorageError as e:
            if isinstance(e.__cause__, sqlite3.IntegrityError):
                raise ConflictError("Username already exists") from e
            raise
        return User.from_row(row)

    def get_user(self, user_id: int) -> Optional[User]:
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return User.from_row(row) if row else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM users WHERE username = ?", (username,)).fetchone()
        return User.from_row(row) if row else None
