#!/usr/bin/env python3
"""
Taskboard Server
----------------
JSON API for tasks, AI task extraction, time tracking, locations and reports,
backed by the SQLite store in pkg/taskboard/.

Usage:
    python taskboard_server.py --port 3000 --db ./taskboard.db

    # With a YAML config (see config.example.yaml)
    python taskboard_server.py --config taskboard.yaml

API (all under /api, JSON in and out, session cookie auth):
    POST   /auth/register | /auth/login | /auth/logout, GET /auth/user
    GET    /tasks?status=&locationId=&dueToday=    POST /tasks
    GET    /tasks/<id>   PATCH /tasks/<id>   DELETE /tasks/<id>
    POST   /tasks/<id>/time        → { minutes } or { hours, minutes }
    GET    /task-stats
    POST   /extract-tasks          → { text }  returns { tasks: [...] }
    POST   /extract-tasks/accept   → { tasks: [...] }
    GET    /ai-messages?limit=     POST /ai-messages
    GET    /locations?type=        POST /locations
    GET    /locations/<id>  PATCH /locations/<id>  DELETE /locations/<id>
    GET    /reports?startDate=&endDate=   POST /reports → { type, date? }
    GET    /reports/<id>    DELETE /reports/<id>
    GET    /health

Errors:
    { "message": "...", "error": "detail" } with the matching HTTP status.
"""

import logging
import sys
from dataclasses import dataclass
from functools import wraps
from typing import Any, Dict, Optional

from flask import Blueprint, Flask, current_app, jsonify, request, session
from werkzeug.exceptions import HTTPException
from werkzeug.security import check_password_hash, generate_password_hash

from pkg.taskboard.config import Config
from pkg.taskboard.errors import AuthError, TaskboardError, ValidationError
from pkg.taskboard.extraction import ExtractionClient
from pkg.taskboard.providers import build_provider
from pkg.taskboard.reconcile import Reconciler
from pkg.taskboard.schema import (
    MAX_INT,
    LocationType,
    ReportType,
    TaskStatus,
    parse_timestamp,
    parse_calendar_date,
)
from pkg.taskboard.stats import compute_stats, generate_report
from pkg.taskboard.store import TaskStore
from pkg.taskboard.validator import validate, validate_candidate

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [taskboard] %(levelname)s: %(message)s"

api = Blueprint("api", __name__)


@dataclass
class Services:
    store: TaskStore
    extractor: ExtractionClient
    reconciler: Reconciler


def services() -> Services:
    return current_app.extensions["taskboard"]


# ── Auth ─────────────────────────────────────────────────────────────────────

@dataclass
class RequestContext:
    """The authenticated caller, handed explicitly to every protected view."""
    user_id: int
    username: str


def require_login(f):
    """Decorator: reject requests without a logged-in session."""
    @wraps(f)
    def decorated(*args, **kwargs):
        user_id = session.get("user_id")
        if user_id is None:
            return jsonify({"message": "Unauthorized"}), 401
        ctx = RequestContext(user_id=user_id, username=session.get("username", ""))
        return f(ctx, *args, **kwargs)
    return decorated


def _login(user):
    session.clear()
    session["user_id"] = user.id
    session["username"] = user.username


# ── Request helpers ──────────────────────────────────────────────────────────

def _json_body() -> Any:
    data = request.get_json(force=True, silent=True)
    return {} if data is None else data


def _json_object() -> Dict[str, Any]:
    data = _json_body()
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _int_arg(name: str) -> Optional[int]:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")
    if abs(value) > MAX_INT:
        raise ValidationError(f"{name} is out of range")
    return value


def _flag_arg(name: str) -> bool:
    return request.args.get(name, "").strip().lower() in ("1", "true", "yes")


def _timestamp_arg(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return parse_timestamp(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO date or timestamp")


def _whole_number(data: Dict[str, Any], key: str) -> int:
    value = data.get(key, 0)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{key} must be an integer")
        value = int(value)
    if abs(value) > MAX_INT:
        raise ValidationError(f"{key} must be <= {MAX_INT}")
    return value


# ── Auth routes ──────────────────────────────────────────────────────────────

@api.route("/auth/register", methods=["POST"])
def auth_register():
    data = _json_object()
    username = data.get("username")
    password = data.get("password")
    if not isinstance(username, str) or not username.strip():
        raise ValidationError("username is required")
    if not isinstance(password, str) or not password:
        raise ValidationError("password is required")
    user = services().store.create_user(username, generate_password_hash(password))
    _login(user)
    logger.info("Registered user %s", user.username)
    return jsonify(user.to_dict()), 201


@api.route("/auth/login", methods=["POST"])
def auth_login():
    data = _json_object()
    username = data.get("username") or ""
    password = data.get("password") or ""
    user = services().store.get_user_by_username(str(username).strip())
    if not user or not check_password_hash(user.password_hash, str(password)):
        raise AuthError("Invalid username or password")
    _login(user)
    return jsonify(user.to_dict())


@api.route("/auth/logout", methods=["POST"])
def auth_logout():
    session.clear()
    return jsonify({"message": "Logged out"})


@api.route("/auth/user", methods=["GET"])
@require_login
def auth_user(ctx: RequestContext):
    user = services().store.get_user(ctx.user_id)
    if not user:
        session.clear()
        raise AuthError("Session user no longer exists")
    return jsonify(user.to_dict())


# ── Tasks ────────────────────────────────────────────────────────────────────

@api.route("/tasks", methods=["GET"])
@require_login
def list_tasks(ctx: RequestContext):
    status = None
    if request.args.get("status"):
        status = TaskStatus.from_str(request.args["status"])
        if status is None:
            raise ValidationError(
                "status must be one of: " + ", ".join(s.value for s in TaskStatus)
            )
    tasks = services().store.list_tasks(
        ctx.user_id,
        status=status,
        location_id=_int_arg("locationId"),
        due_today=_flag_arg("dueToday"),
    )
    return jsonify([t.to_dict() for t in tasks])


@api.route("/tasks", methods=["POST"])
@require_login
def create_task(ctx: RequestContext):
    task = services().store.create_task(ctx.user_id, _json_object())
    return jsonify(task.to_dict()), 201


@api.route("/tasks/<int:task_id>", methods=["GET"])
@require_login
def get_task(ctx: RequestContext, task_id: int):
    return jsonify(services().store.get_task(ctx.user_id, task_id).to_dict())


@api.route("/tasks/<int:task_id>", methods=["PATCH", "PUT"])
@require_login
def update_task(ctx: RequestContext, task_id: int):
    task = services().store.update_task(ctx.user_id, task_id, _json_object())
    return jsonify(task.to_dict())


@api.route("/tasks/<int:task_id>", methods=["DELETE"])
@require_login
def delete_task(ctx: RequestContext, task_id: int):
    if not services().store.delete_task(ctx.user_id, task_id):
        return jsonify({"message": "Not found", "error": "Task not found"}), 404
    return "", 204


@api.route("/tasks/<int:task_id>/time", methods=["POST"])
@require_login
def log_task_time(ctx: RequestContext, task_id: int):
    """Add tracked time to a task."""
    data = _json_object()
    minutes = _whole_number(data, "hours") * 60 + _whole_number(data, "minutes")
    task = services().store.log_time(ctx.user_id, task_id, minutes, data.get("started"))
    return jsonify(task.to_dict())


@api.route("/task-stats", methods=["GET"])
@require_login
def task_stats(ctx: RequestContext):
    return jsonify(compute_stats(services().store, ctx.user_id))


# ── AI extraction ────────────────────────────────────────────────────────────

@api.route("/extract-tasks", methods=["POST"])
@require_login
def extract_tasks(ctx: RequestContext):
    """Extract candidate tasks from free text. Nothing is persisted."""
    data = _json_object()
    reference = None
    if data.get("referenceDate"):
        try:
            reference = parse_calendar_date(data["referenceDate"])
        except (TypeError, ValueError):
            raise ValidationError("referenceDate must be an ISO date (YYYY-MM-DD)")
    raw = services().extractor.extract(data.get("text"), reference)
    candidates = validate(raw)
    logger.info("Extracted %d candidate task(s) for user %s", len(candidates), ctx.user_id)
    return jsonify({"tasks": [c.to_dict() for c in candidates]})


@api.route("/extract-tasks/accept", methods=["POST"])
@require_login
def accept_extracted_tasks(ctx: RequestContext):
    """Persist accepted candidates; each one succeeds or fails on its own."""
    items = _json_object().get("tasks")
    if not isinstance(items, list):
        raise ValidationError("tasks must be a list")

    results: list = [None] * len(items)
    pending, positions = [], []
    for i, item in enumerate(items):
        candidate = validate_candidate(item)
        if candidate is None:
            results[i] = {"ok": False, "error": "Invalid candidate task: title is required"}
        else:
            pending.append(candidate)
            positions.append(i)

    for i, result in zip(positions, services().reconciler.reconcile_all(pending, ctx.user_id)):
        results[i] = result.to_dict()

    created = sum(1 for r in results if r["ok"])
    return jsonify({"results": results, "created": created, "failed": len(results) - created})


# ── AI messages ──────────────────────────────────────────────────────────────

@api.route("/ai-messages", methods=["GET"])
@require_login
def list_ai_messages(ctx: RequestContext):
    messages = services().store.list_messages(ctx.user_id, _int_arg("limit"))
    return jsonify([m.to_dict() for m in messages])


@api.route("/ai-messages", methods=["POST"])
@require_login
def add_ai_message(ctx: RequestContext):
    message = services().store.add_message(ctx.user_id, _json_object())
    return jsonify(message.to_dict()), 201


# ── Locations ────────────────────────────────────────────────────────────────

@api.route("/locations", methods=["GET"])
@require_login
def list_locations(ctx: RequestContext):
    kind = None
    if request.args.get("type"):
        kind = LocationType.from_str(request.args["type"])
        if kind is None:
            raise ValidationError(
                "type must be one of: " + ", ".join(t.value for t in LocationType)
            )
    locations = services().store.list_locations(ctx.user_id, kind)
    return jsonify([loc.to_dict() for loc in locations])


@api.route("/locations", methods=["POST"])
@require_login
def create_location(ctx: RequestContext):
    location = services().store.create_location(ctx.user_id, _json_object())
    return jsonify(location.to_dict()), 201


@api.route("/locations/<int:location_id>", methods=["GET"])
@require_login
def get_location(ctx: RequestContext, location_id: int):
    return jsonify(services().store.get_location(ctx.user_id, location_id).to_dict())


@api.route("/locations/<int:location_id>", methods=["PATCH", "PUT"])
@require_login
def update_location(ctx: RequestContext, location_id: int):
    location = services().store.update_location(ctx.user_id, location_id, _json_object())
    return jsonify(location.to_dict())


@api.route("/locations/<int:location_id>", methods=["DELETE"])
@require_login
def delete_location(ctx: RequestContext, location_id: int):
    if not services().store.delete_location(ctx.user_id, location_id):
        return jsonify({"message": "Not found", "error": "Location not found"}), 404
    return "", 204


# ── Reports ──────────────────────────────────────────────────────────────────

@api.route("/reports", methods=["GET"])
@require_login
def list_reports(ctx: RequestContext):
    reports = services().store.list_reports(
        ctx.user_id, _timestamp_arg("startDate"), _timestamp_arg("endDate")
    )
    return jsonify([r.to_dict() for r in reports])


@api.route("/reports", methods=["POST"])
@require_login
def create_report(ctx: RequestContext):
    """Generate and store a daily or weekly report."""
    data = _json_object()
    try:
        kind = ReportType(str(data.get("type", "")).strip().lower())
    except ValueError:
        raise ValidationError("type must be one of: daily, weekly")
    report = generate_report(services().store, ctx.user_id, kind, data.get("date") or None)
    return jsonify(report.to_dict()), 201


@api.route("/reports/<int:report_id>", methods=["GET"])
@require_login
def get_report(ctx: RequestContext, report_id: int):
    return jsonify(services().store.get_report(ctx.user_id, report_id).to_dict())


@api.route("/reports/<int:report_id>", methods=["DELETE"])
@require_login
def delete_report(ctx: RequestContext, report_id: int):
    if not services().store.delete_report(ctx.user_id, report_id):
        return jsonify({"message": "Not found", "error": "Report not found"}), 404
    return "", 204


@api.route("/health")
def health():
    store = services().store
    ok = store.ping()
    return jsonify({"status": "ok" if ok else "degraded", "db": store.db_path}), (200 if ok else 503)


# ── App factory ──────────────────────────────────────────────────────────────

def create_app(cfg: Optional[Config] = None, store: Optional[TaskStore] = None,
               provider=None) -> Flask:
    """Build the Flask app; store and provider can be injected for tests."""
    cfg = cfg or Config.load()
    store = store or TaskStore(cfg.db_path)
    provider = provider or build_provider(cfg)

    app = Flask(__name__)
    app.secret_key = cfg.secret_key
    app.json.sort_keys = False
    app.extensions["taskboard"] = Services(
        store=store,
        extractor=ExtractionClient(provider),
        reconciler=Reconciler(store, cfg.ai_source_label, cfg.reconcile_workers),
    )
    app.register_blueprint(api, url_prefix=cfg.api_prefix)
    app.add_url_rule("/health", "health", health)

    @app.errorhandler(TaskboardError)
    def handle_taskboard_error(e: TaskboardError):
        if e.status_code >= 500:
            logger.error("%s on %s %s: %s", e.__class__.__name__,
                         request.method, request.path, e.detail)
        return jsonify({"message": e.message, "error": e.detail}), e.status_code

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        if isinstance(e, HTTPException):
            return jsonify({"message": e.name, "error": e.description}), e.code
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"message": "Internal server error", "error": str(e)}), 500

    return app


# ── Main ─────────────────────────────────────────────────────────────────────

def main(argv=None):
    import argparse

    parser = argparse.ArgumentParser(description="Taskboard Server")
    parser.add_argument("--host", help="Bind address (use 0.0.0.0 to expose on network)")
    parser.add_argument("--port", type=int)
    parser.add_argument("--db", help="Path to taskboard.db (overrides TASKBOARD_DB env var)")
    parser.add_argument("--config", help="Path to a YAML config file")
    args = parser.parse_args(argv)

    cfg = Config.load(args.config)
    if args.host:
        cfg.host = args.host
    if args.port:
        cfg.port = args.port
    if args.db:
        cfg.db_path = args.db
        cfg.resolve()

    logging.basicConfig(
        level=getattr(logging, cfg.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    app = create_app(cfg)
    logger.info("Taskboard listening on http://%s:%s%s", cfg.host, cfg.port, cfg.api_prefix)
    logger.info("DB: %s | model provider: %s", cfg.db_path, cfg.llm_provider)
    app.run(host=cfg.host, port=cfg.port, debug=False, threaded=True)


if __name__ == "__main__":
    main()
