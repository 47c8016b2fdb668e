"""
Tests for the task board schema: enums, date helpers, input normalization.
"""
from datetime import date, datetime, timezone

import pytest

from pkg.taskboard.errors import ValidationError
from pkg.taskboard.schema import (
    CandidateTask,
    LocationType,
    TaskPriority,
    TaskStatus,
    User,
    clean_location_input,
    clean_message_input,
    clean_task_input,
    parse_calendar_date,
    parse_timestamp,
    to_iso,
)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Enums
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_status_from_str_accepts_loose_spellings():
    assert TaskStatus.from_str("in_progress") == TaskStatus.IN_PROGRESS
    assert TaskStatus.from_str("In-Progress") == TaskStatus.IN_PROGRESS
    assert TaskStatus.from_str(" COMPLETED ") == TaskStatus.COMPLETED
    assert TaskStatus.from_str("done") is None
    assert TaskStatus.from_str(None, TaskStatus.TODO) == TaskStatus.TODO


def test_priority_and_location_type_from_str():
    assert TaskPriority.from_str("HIGH") == TaskPriority.HIGH
    assert TaskPriority.from_str("urgent", TaskPriority.MEDIUM) == TaskPriority.MEDIUM
    assert LocationType.from_str("event_venue") == LocationType.EVENT_VENUE
    assert LocationType.from_str(42) is None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Date helpers
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_parse_timestamp_handles_z_suffix():
    dt = parse_timestamp("2024-06-01T10:30:00Z")
    assert dt == datetime(2024, 6, 1, 10, 30, tzinfo=timezone.utc)


def test_parse_timestamp_converts_offsets_to_utc():
    dt = parse_timestamp("2024-06-01T12:00:00+02:00")
    assert dt.utcoffset().total_seconds() == 0
    assert dt.hour == 10


def test_parse_timestamp_rejects_garbage():
    with pytest.raises(ValueError):
        parse_timestamp("not a date")
    with pytest.raises(ValueError):
        parse_timestamp(12345)


def test_to_iso_is_fixed_width():
    a = to_iso(datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc))
    b = to_iso(datetime(2024, 6, 1, 9, 0, 0, 123, tzinfo=timezone.utc))
    assert len(a) == len(b)
    assert a < b
    assert to_iso(None) is None


def test_parse_calendar_date_drops_time_part():
    assert parse_calendar_date("2024-06-02") == date(2024, 6, 2)
    assert parse_calendar_date("2024-06-02T23:30:00Z") == date(2024, 6, 2)
    assert parse_calendar_date(datetime(2024, 6, 2, 8, 0)) == date(2024, 6, 2)
    with pytest.raises(ValueError):
        parse_calendar_date("next friday")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Input normalization
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_clean_task_input_defaults_on_create():
    fields = clean_task_input({"title": "  Water plants  "})
    assert fields["title"] == "Water plants"
    assert fields["status"] == TaskStatus.TODO
    assert fields["priority"] == TaskPriority.MEDIUM
    assert fields["is_ai_generated"] is False


def test_clean_task_input_accepts_camel_and_snake_case():
    camel = clean_task_input({"title": "A", "dueDate": "2024-06-02", "locationId": "3"})
    snake = clean_task_input({"title": "A", "due_date": "2024-06-02", "location_id": 3})
    assert camel["due_date"] == snake["due_date"] == date(2024, 6, 2)
    assert camel["location_id"] == snake["location_id"] == 3


def test_clean_task_input_maps_legacy_time_spent():
    fields = clean_task_input({"title": "A", "timeSpent": 45})
    assert fields["time_spent_minutes"] == 45


def test_clean_task_input_partial_only_returns_supplied_fields():
    fields = clean_task_input({"status": "completed"}, partial=True)
    assert fields == {"status": TaskStatus.COMPLETED}


def test_clean_task_input_reports_every_failing_field():
    with pytest.raises(ValidationError) as exc:
        clean_task_input({"title": "", "priority": "critical", "timeSpentMinutes": -5})
    detail = exc.value.detail
    assert "title is required" in detail
    assert "priority must be one of" in detail
    assert "timeSpentMinutes must be >= 0" in detail


def test_clean_task_input_rejects_integers_beyond_sqlite_range():
    with pytest.raises(ValidationError) as exc:
        clean_task_input({"title": "A", "timeSpentMinutes": 10 ** 20, "locationId": 2 ** 63})
    assert "timeSpentMinutes must be <=" in exc.value.detail
    assert "locationId must be <=" in exc.value.detail
    assert clean_task_input({"title": "A", "timeSpentMinutes": 2 ** 63 - 1})[
        "time_spent_minutes"] == 2 ** 63 - 1
    assert exc.value.status_code == 400


def test_clean_task_input_rejects_non_object():
    with pytest.raises(ValidationError):
        clean_task_input(["title"])


def test_clean_location_input_requires_address_fields():
    with pytest.raises(ValidationError) as exc:
        clean_location_input({"name": "Beach house"})
    assert "address is required" in exc.value.detail
    assert "zip is required" in exc.value.detail


def test_clean_location_input_defaults_type():
    fields = clean_location_input({
        "name": "HQ", "address": "1 Main St", "city": "Davis", "state": "CA", "zip": "95616",
    })
    assert fields["type"] == LocationType.OTHER


def test_clean_message_input():
    assert clean_message_input({"role": "User", "content": "hi"})["content"] == "hi"
    with pytest.raises(ValidationError):
        clean_message_input({"role": "robot", "content": ""})


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Serialization
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_candidate_to_dict_omits_missing_fields():
    candidate = CandidateTask(title="Buy milk")
    assert candidate.to_dict() == {"title": "Buy milk", "priority": "medium"}


def test_user_to_dict_never_exposes_hash():
    user = User(id=1, username="alice", password_hash="scrypt:secret")
    assert user.to_dict() == {"id": 1, "username": "alice"}
    assert "scrypt" not in repr(user)
