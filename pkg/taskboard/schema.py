"""
Task board schema: records, enums and input normalization.

Task lifecycle:
  todo → in_progress → completed

Records serialize to camelCase dicts for the JSON API. Input dicts may use
camelCase or snake_case keys; dates may be date/datetime objects or ISO
strings. Everything is normalized here before it reaches SQLite.
"""
from enum import Enum
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional, List, Dict, Any, Mapping
import json

from .errors import ValidationError


class TaskStatus(Enum):
    """Valid task states."""
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @classmethod
    def from_str(cls, value: Any, default: Optional["TaskStatus"] = None) -> Optional["TaskStatus"]:
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return default
        key = value.strip().lower().replace("-", "_").replace(" ", "_")
        try:
            return cls(key)
        except ValueError:
            return default


class TaskPriority(Enum):
    """Task priority; MEDIUM unless stated otherwise."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_str(cls, value: Any, default: Optional["TaskPriority"] = None) -> Optional["TaskPriority"]:
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return default
        try:
            return cls(value.strip().lower())
        except ValueError:
            return default


class LocationType(Enum):
    """Kinds of places a task can be attached to."""
    AIRBNB = "airbnb"
    EVENT_VENUE = "event_venue"
    OFFICE = "office"
    OTHER = "other"

    @classmethod
    def from_str(cls, value: Any, default: Optional["LocationType"] = None) -> Optional["LocationType"]:
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return default
        try:
            return cls(value.strip().lower())
        except ValueError:
            return default


class ReportType(Enum):
    DAILY = "daily"
    WEEKLY = "weekly"


class MessageRole(Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


# ── Date helpers ─────────────────────────────────────────────────────────────


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Serialize an aware datetime with a fixed width so stored strings sort."""
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: Any) -> datetime:
    """
    Normalize a timestamp to an aware UTC datetime.

    Accepts datetime, date (local midnight) or an ISO-8601 string, with or
    without a trailing Z. Naive values are read as server local time.
    Raises ValueError for anything else.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    else:
        raise ValueError(f"not a timestamp: {value!r}")
    # astimezone() treats naive datetimes as local time
    return dt.astimezone(timezone.utc)


def parse_calendar_date(value: Any) -> date:
    """
    Normalize a due date to a calendar date; time of day is dropped as written.

    Accepts date, datetime, "YYYY-MM-DD" or a full ISO datetime string.
    Raises ValueError for anything else.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if len(text) == 10:
            return date.fromisoformat(text)
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        return datetime.fromisoformat(text).date()
    raise ValueError(f"not a date: {value!r}")


def _opt_timestamp(value: Optional[str]) -> Optional[datetime]:
    return parse_timestamp(value) if value else None


def _opt_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


# ── Records ──────────────────────────────────────────────────────────────────


@dataclass
class Task:
    """A user's task."""

    id: int
    title: str
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[date] = None
    category: Optional[str] = None
    location_id: Optional[int] = None

    # Time tracking
    time_spent_minutes: Optional[int] = None
    time_started: Optional[datetime] = None
    time_completed: Optional[datetime] = None

    photo_url: Optional[str] = None

    # Provenance
    is_ai_generated: bool = False
    source: Optional[str] = None

    user_id: Optional[int] = None
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "dueDate": self.due_date.isoformat() if self.due_date else None,
            "category": self.category,
            "locationId": self.location_id,
            "timeSpentMinutes": self.time_spent_minutes,
            "timeStarted": to_iso(self.time_started),
            "timeCompleted": to_iso(self.time_completed),
            "photoUrl": self.photo_url,
            "isAiGenerated": self.is_ai_generated,
            "source": self.source,
            "userId": self.user_id,
            "createdAt": to_iso(self.created_at),
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Task":
        return cls(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            status=TaskStatus(row["status"]),
            priority=TaskPriority(row["priority"]),
            due_date=_opt_date(row["due_date"]),
            category=row["category"],
            location_id=row["location_id"],
            time_spent_minutes=row["time_spent_minutes"],
            time_started=_opt_timestamp(row["time_started"]),
            time_completed=_opt_timestamp(row["time_completed"]),
            photo_url=row["photo_url"],
            is_ai_generated=bool(row["is_ai_generated"]),
            source=row["source"],
            user_id=row["user_id"],
            created_at=parse_timestamp(row["created_at"]),
        )


@dataclass
class Location:
    """A place tasks are attached to (rental, venue, office...)."""

    id: int
    name: str
    address: str
    city: str
    state: str
    zip: str
    type: LocationType = LocationType.OTHER
    description: Optional[str] = None
    image_url: Optional[str] = None
    user_id: Optional[int] = None
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zip": self.zip,
            "type": self.type.value,
            "description": self.description,
            "imageUrl": self.image_url,
            "userId": self.user_id,
            "createdAt": to_iso(self.created_at),
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Location":
        return cls(
            id=row["id"],
            name=row["name"],
            address=row["address"],
            city=row["city"],
            state=row["state"],
            zip=row["zip"],
            type=LocationType.from_str(row["type"], LocationType.OTHER),
            description=row["description"],
            image_url=row["image_url"],
            user_id=row["user_id"],
            created_at=parse_timestamp(row["created_at"]),
        )


@dataclass
class Report:
    """A persisted daily or weekly summary."""

    id: int
    title: str
    type: ReportType
    start_date: datetime
    end_date: datetime
    summary: str
    tasks_summary: str = "{}"  # JSON-encoded detail blob
    user_id: Optional[int] = None
    created_at: datetime = field(default_factory=utc_now)

    @property
    def details(self) -> Dict[str, Any]:
        return json.loads(self.tasks_summary or "{}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "type": self.type.value,
            "startDate": to_iso(self.start_date),
            "endDate": to_iso(self.end_date),
            "summary": self.summary,
            "tasksSummary": self.tasks_summary,
            "userId": self.user_id,
            "createdAt": to_iso(self.created_at),
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Report":
        return cls(
            id=row["id"],
            title=row["title"],
            type=ReportType(row["type"]),
            start_date=parse_timestamp(row["start_date"]),
            end_date=parse_timestamp(row["end_date"]),
            summary=row["summary"],
            tasks_summary=row["tasks_summary"] or "{}",
            user_id=row["user_id"],
            created_at=parse_timestamp(row["created_at"]),
        )


@dataclass
class AIMessage:
    """One entry of the append-only assistant conversation log."""

    id: int
    role: MessageRole
    content: str
    timestamp: datetime = field(default_factory=utc_now)
    user_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "timestamp": to_iso(self.timestamp),
            "userId": self.user_id,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "AIMessage":
        return cls(
            id=row["id"],
            role=MessageRole(row["role"]),
            content=row["content"],
            timestamp=parse_timestamp(row["timestamp"]),
            user_id=row["user_id"],
        )


@dataclass
class User:
    id: int
    username: str
    password_hash: str = field(default="", repr=False)
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        # never expose the hash
        return {"id": self.id, "username": self.username}

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "User":
        return cls(
            id=row["id"],
            username=row["username"],
            password_hash=row["password_hash"],
            created_at=parse_timestamp(row["created_at"]),
        )


@dataclass
class CandidateTask:
    """An unpersisted task proposal coming out of the extraction pipeline."""

    title: str
    description: Optional[str] = None
    due_date: Optional[str] = None  # YYYY-MM-DD
    priority: TaskPriority = TaskPriority.MEDIUM
    category: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"title": self.title, "priority": self.priority.value}
        if self.description is not None:
            data["description"] = self.description
        if self.due_date is not None:
            data["dueDate"] = self.due_date
        if self.category is not None:
            data["category"] = self.category
        return data

    def to_task_input(self) -> Dict[str, Any]:
        """Fields the store needs to create a task from this candidate."""
        return {
            "title": self.title,
            "description": self.description,
            "due_date": self.due_date,
            "priority": self.priority,
            "category": self.category,
        }


# ── Input normalization ──────────────────────────────────────────────────────

# Wire name (camelCase, legacy or snake_case) -> column name
TASK_FIELDS = {
    "title": "title",
    "description": "description",
    "status": "status",
    "priority": "priority",
    "dueDate": "due_date",
    "due_date": "due_date",
    "category": "category",
    "locationId": "location_id",
    "location_id": "location_id",
    "timeSpentMinutes": "time_spent_minutes",
    "time_spent_minutes": "time_spent_minutes",
    "timeSpent": "time_spent_minutes",
    "timeStarted": "time_started",
    "time_started": "time_started",
    "timeCompleted": "time_completed",
    "time_completed": "time_completed",
    "photoUrl": "photo_url",
    "photo_url": "photo_url",
    "isAiGenerated": "is_ai_generated",
    "is_ai_generated": "is_ai_generated",
    "source": "source",
}

# Column name -> wire name, for error messages
_WIRE_NAMES = {
    "due_date": "dueDate",
    "location_id": "locationId",
    "time_spent_minutes": "timeSpentMinutes",
    "time_started": "timeStarted",
    "time_completed": "timeCompleted",
    "photo_url": "photoUrl",
    "is_ai_generated": "isAiGenerated",
    "image_url": "imageUrl",
}

LOCATION_FIELDS = {
    "name": "name",
    "address": "address",
    "city": "city",
    "state": "state",
    "zip": "zip",
    "type": "type",
    "description": "description",
    "imageUrl": "image_url",
    "image_url": "image_url",
}


def _wire(column: str) -> str:
    return _WIRE_NAMES.get(column, column)


def _remap(data: Mapping[str, Any], aliases: Dict[str, str]) -> Dict[str, Any]:
    """Translate known keys to column names; unknown keys are ignored."""
    result = {}
    for key, value in data.items():
        column = aliases.get(key)
        if column:
            result[column] = value
    return result


def _optional_text(column: str, value: Any, errors: List[str]) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        errors.append(f"{_wire(column)} must be a string")
        return None
    value = value.strip()
    return value or None


def _required_text(column: str, value: Any, errors: List[str]) -> Optional[str]:
    if not isinstance(value, str) or not value.strip():
        errors.append(f"{_wire(column)} is required")
        return None
    return value.strip()


# Largest value an SQLite INTEGER column can hold
MAX_INT = 2 ** 63 - 1


def _optional_int(column: str, value: Any, errors: List[str], minimum: int) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        errors.append(f"{_wire(column)} must be an integer")
        return None
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        value = int(value.strip())
    elif isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int):
        errors.append(f"{_wire(column)} must be an integer")
        return None
    if value < minimum:
        errors.append(f"{_wire(column)} must be >= {minimum}")
        return None
    if value > MAX_INT:
        errors.append(f"{_wire(column)} must be <= {MAX_INT}")
        return None
    return value


def clean_task_input(data: Mapping[str, Any], partial: bool = False) -> Dict[str, Any]:
    """
    Validate and coerce task input.

    Returns a dict keyed by column name holding native values (enums, date,
    aware datetimes). With partial=True only the supplied keys are returned
    and nothing is defaulted. Raises ValidationError listing every failing
    field.
    """
    if not isinstance(data, Mapping):
        raise ValidationError("Task data must be a JSON object")

    raw = _remap(data, TASK_FIELDS)
    errors: List[str] = []
    result: Dict[str, Any] = {}

    if "title" in raw or not partial:
        result["title"] = _required_text("title", raw.get("title"), errors)

    for column in ("description", "category", "photo_url", "source"):
        if column in raw:
            result[column] = _optional_text(column, raw[column], errors)

    if "status" in raw:
        status = TaskStatus.from_str(raw["status"])
        if status is None:
            errors.append("status must be one of: " + ", ".join(s.value for s in TaskStatus))
        result["status"] = status
    elif not partial:
        result["status"] = TaskStatus.TODO

    if "priority" in raw:
        priority = TaskPriority.from_str(raw["priority"])
        if priority is None:
            errors.append("priority must be one of: " + ", ".join(p.value for p in TaskPriority))
        result["priority"] = priority
    elif not partial:
        result["priority"] = TaskPriority.MEDIUM

    if "due_date" in raw:
        value = raw["due_date"]
        if value is None or value == "":
            result["due_date"] = None
        else:
            try:
                result["due_date"] = parse_calendar_date(value)
            except (TypeError, ValueError):
                errors.append("dueDate must be an ISO date (YYYY-MM-DD)")

    for column in ("time_started", "time_completed"):
        if column in raw:
            value = raw[column]
            if value is None or value == "":
                result[column] = None
            else:
                try:
                    result[column] = parse_timestamp(value)
                except (TypeError, ValueError):
                    errors.append(f"{_wire(column)} must be an ISO timestamp")

    if "location_id" in raw:
        result["location_id"] = _optional_int("location_id", raw["location_id"], errors, minimum=1)

    if "time_spent_minutes" in raw:
        result["time_spent_minutes"] = _optional_int(
            "time_spent_minutes", raw["time_spent_minutes"], errors, minimum=0
        )

    if "is_ai_generated" in raw:
        value = raw["is_ai_generated"]
        if isinstance(value, bool) or value in (0, 1):
            result["is_ai_generated"] = bool(value)
        else:
            errors.append("isAiGenerated must be a boolean")
    elif not partial:
        result["is_ai_generated"] = False

    if errors:
        raise ValidationError(", ".join(errors))
    return result


def clean_location_input(data: Mapping[str, Any], partial: bool = False) -> Dict[str, Any]:
    """Validate and coerce location input (same contract as clean_task_input)."""
    if not isinstance(data, Mapping):
        raise ValidationError("Location data must be a JSON object")

    raw = _remap(data, LOCATION_FIELDS)
    errors: List[str] = []
    result: Dict[str, Any] = {}

    for column in ("name", "address", "city", "state", "zip"):
        if column in raw or not partial:
            result[column] = _required_text(column, raw.get(column), errors)

    for column in ("description", "image_url"):
        if column in raw:
            result[column] = _optional_text(column, raw[column], errors)

    if "type" in raw:
        kind = LocationType.from_str(raw["type"])
        if kind is None:
            errors.append("type must be one of: " + ", ".join(t.value for t in LocationType))
        result["type"] = kind
    elif not partial:
        result["type"] = LocationType.OTHER

    if errors:
        raise ValidationError(", ".join(errors))
    return result


def clean_message_input(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Validate an AI message write: {role, content}."""
    if not isinstance(data, Mapping):
        raise ValidationError("Message data must be a JSON object")

    errors: List[str] = []
    role = data.get("role")
    try:
        role = MessageRole(role.strip().lower()) if isinstance(role, str) else None
    except ValueError:
        role = None
    if role is None:
        errors.append("role must be one of: " + ", ".join(r.value for r in MessageRole))

    content = data.get("content")
    if not isinstance(content, str) or not content.strip():
        errors.append("content is required")

    if errors:
        raise ValidationError(", ".join(errors))
    return {"role": role, "content": content}
