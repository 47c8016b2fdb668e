"""
Read-only task statistics and daily/weekly reports.

Nothing here mutates tasks; generate_report only writes the Report row.
Report windows are half-open [start, end) in the server's local calendar.
"""
import json
import math
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Tuple

from .errors import ValidationError
from .schema import Report, ReportType, Task, TaskStatus, parse_timestamp, to_iso
from .store import TaskStore


def compute_stats(store: TaskStore, owner_id: int) -> Dict[str, int]:
    """Counts per status plus the completion rate (0 when there are no tasks)."""
    tasks = store.list_tasks(owner_id)
    total = len(tasks)
    todo = sum(1 for t in tasks if t.status == TaskStatus.TODO)
    in_progress = sum(1 for t in tasks if t.status == TaskStatus.IN_PROGRESS)
    completed = sum(1 for t in tasks if t.status == TaskStatus.COMPLETED)
    rate = int(math.floor(100 * completed / total + 0.5)) if total else 0
    return {
        "total": total,
        "todo": todo,
        "inProgress": in_progress,
        "completed": completed,
        "completionRate": rate,
    }


def format_duration(minutes: int) -> str:
    hours, mins = divmod(max(0, int(minutes)), 60)
    return f"{hours}h {mins}m"


def _local_midnight(day: date) -> datetime:
    return parse_timestamp(datetime(day.year, day.month, day.day))


def _as_local_date(reference: Any) -> date:
    if reference is None:
        return date.today()
    if isinstance(reference, datetime):
        return reference.astimezone().date() if reference.tzinfo else reference.date()
    if isinstance(reference, date):
        return reference
    if isinstance(reference, str):
        try:
            return date.fromisoformat(reference.strip()[:10])
        except ValueError:
            pass
    raise ValidationError("date must be an ISO date (YYYY-MM-DD)")


def report_window(kind: ReportType, reference: Any = None) -> Tuple[datetime, datetime]:
    """
    Half-open window for a report, as UTC datetimes.

    daily:  the reference day
    weekly: Monday 00:00 of the reference week to the following Monday
    """
    first, last = _window_days(kind, _as_local_date(reference))
    return _local_midnight(first), _local_midnight(last + timedelta(days=1))


def _window_days(kind: ReportType, day: date) -> Tuple[date, date]:
    """First and last calendar day covered by a report."""
    if kind == ReportType.DAILY:
        return day, day
    monday = day - timedelta(days=day.weekday())
    return monday, monday + timedelta(days=6)


def _brief(task: Task) -> Dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "priority": task.priority.value,
        "category": task.category,
        "dueDate": task.due_date.isoformat() if task.due_date else None,
        "timeSpentMinutes": task.time_spent_minutes,
        "timeCompleted": to_iso(task.time_completed),
    }


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" + ("" if count == 1 else "s")


def generate_report(store: TaskStore, owner_id: int, kind: ReportType,
                    reference: Any = None) -> Report:
    """Summarize a window of work and persist it as a Report."""
    day = _as_local_date(reference)
    first, last = _window_days(kind, day)
    start, end = report_window(kind, day)
    tasks = store.list_tasks(owner_id)

    completed = [t for t in tasks
                 if t.time_completed is not None and start <= t.time_completed < end]
    in_progress = [t for t in tasks if t.status == TaskStatus.IN_PROGRESS]
    upcoming: List[Task] = []
    if kind == ReportType.WEEKLY:
        # due during the following week
        next_first, next_last = last + timedelta(days=1), last + timedelta(days=7)
        upcoming = [t for t in tasks
                    if t.status != TaskStatus.COMPLETED
                    and t.due_date is not None and next_first <= t.due_date <= next_last]

    total_minutes = sum(t.time_spent_minutes or 0 for t in completed)

    details = {
        "completed": [_brief(t) for t in completed],
        "inProgress": [_brief(t) for t in in_progress],
        "totalTimeMinutes": total_minutes,
        "totalTime": format_duration(total_minutes),
    }
    parts = [f"{_plural(len(completed), 'task')} completed",
             f"{len(in_progress)} in progress"]
    if kind == ReportType.WEEKLY:
        details["upcoming"] = [_brief(t) for t in upcoming]
        parts.append(f"{len(upcoming)} upcoming")
        title = f"Weekly Report: {first.isoformat()} to {last.isoformat()}"
    else:
        title = f"Daily Report: {first.isoformat()}"
    summary = ", ".join(parts) + f"; {format_duration(total_minutes)} tracked."

    return store.create_report(
        owner_id,
        title=title,
        kind=kind,
        start=start,
        end=end,
        summary=summary,
        tasks_summary=json.dumps(details),
    )
