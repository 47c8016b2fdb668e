"""
Extraction validator: model output -> CandidateTask list.

Model output is untrusted. It is repaired and parsed here, and nothing past
this module ever sees raw provider JSON.

Failure policy:
  - unusable payload (not JSON, no "tasks" list) -> ExtractionFormatError
  - a single bad task (no title)                 -> dropped, batch continues
  - a single bad field (unparsable dueDate)      -> field dropped, task kept
"""
import json
import logging
import re
from typing import Any, List, Optional

from .errors import ExtractionFormatError
from .schema import CandidateTask, TaskPriority, parse_calendar_date

logger = logging.getLogger(__name__)

_CLOSER = re.compile(r"\s*[}\]]")


def _strip_trailing_commas(text: str) -> str:
    """Drop commas that directly precede a closing } or ], outside string literals."""
    out = []
    in_string = escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == ",":
            if _CLOSER.match(text, i + 1):
                continue
        out.append(ch)
    return "".join(out)


def _repair(raw: str) -> str:
    """Strip markdown fences, control characters and trailing commas."""
    cleaned = re.sub(r"^```(?:json)?\s*", "", raw.strip())
    cleaned = re.sub(r"\s*```$", "", cleaned)
    cleaned = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f]", "", cleaned)
    return _strip_trailing_commas(cleaned)


def parse_model_json(raw: Any) -> Any:
    """
    Parse a model response body, repairing common damage.

    Raises ExtractionFormatError if nothing JSON-shaped can be recovered.
    """
    if not isinstance(raw, str) or not raw.strip():
        raise ExtractionFormatError("Malformed response: empty body")

    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        pass

    cleaned = _repair(raw)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    # Prose around the object: take the outermost {...}
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError:
            pass
    raise ExtractionFormatError("Malformed response: body is not valid JSON")


def _optional_text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _due_date(value: Any) -> Optional[str]:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return parse_calendar_date(value).isoformat()
    except ValueError:
        return None


def validate_candidate(item: Any) -> Optional[CandidateTask]:
    """Validate one task object; None if it has no usable title."""
    if not isinstance(item, dict):
        logger.warning("Dropping extracted task: expected object, got %s", type(item).__name__)
        return None

    title = item.get("title")
    if not isinstance(title, str) or not title.strip():
        logger.warning("Dropping extracted task without a title: %r", item)
        return None

    raw_due = item.get("dueDate", item.get("due_date"))
    due_date = _due_date(raw_due)
    if raw_due not in (None, "") and due_date is None:
        logger.warning("Dropping unparsable dueDate %r from task %r", raw_due, title.strip())

    return CandidateTask(
        title=title.strip(),
        description=_optional_text(item.get("description")),
        due_date=due_date,
        priority=TaskPriority.from_str(item.get("priority"), TaskPriority.MEDIUM),
        category=_optional_text(item.get("category")),
    )


def validate(raw_json: str) -> List[CandidateTask]:
    """
    Turn a raw provider response into candidate tasks, in input order.

    An empty list means "no tasks found" and is not an error.
    """
    payload = parse_model_json(raw_json)
    if not isinstance(payload, dict):
        raise ExtractionFormatError("Malformed response: expected a JSON object")
    tasks = payload.get("tasks")
    if not isinstance(tasks, list):
        raise ExtractionFormatError("Malformed response: missing 'tasks' list")

    candidates = []
    for item in tasks:
        candidate = validate_candidate(item)
        if candidate is not None:
            candidates.append(candidate)

    dropped = len(tasks) - len(candidates)
    if dropped:
        logger.warning("Dropped %d of %d extracted tasks", dropped, len(tasks))
    return candidates
