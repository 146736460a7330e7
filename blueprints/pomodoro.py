"""Focus timer routes."""

from __future__ import annotations

from flask import Blueprint, jsonify

from cache_backend import get_cache
from db_stores import PomodoroStoreDB
from errors import ValidationError
from helpers import current_user_id, int_field, json_body, student_required
from pomodoro import DEFAULT_TARGET_MINUTES, TimerService

bp = Blueprint("pomodoro", __name__)


def _service() -> TimerService:
    return TimerService(get_cache())


@bp.route("/api/pomodoro", methods=["POST"])
@student_required
def api_start():
    data = json_body()
    status = _service().start(
        current_user_id(),
        category=str(data.get("category", "")).upper(),
        title=str(data.get("title", "")).strip()[:100],
        target_minutes=int_field(data, "target_minutes", DEFAULT_TARGET_MINUTES),
        is_break=bool(data.get("is_break", False)),
    )
    return jsonify(status), 201


@bp.route("/api/pomodoro")
@student_required
def api_status():
    uid = current_user_id()
    return jsonify({
        "timer": _service().status(uid),
        "recent": PomodoroStoreDB(uid).recent(10),
    })


@bp.route("/api/pomodoro", methods=["PATCH"])
@student_required
def api_update():
    action = json_body().get("action")
    service = _service()
    if action == "complete":
        return jsonify(service.complete(current_user_id()))
    if action == "cancel":
        return jsonify(service.cancel(current_user_id()))
    raise ValidationError("action must be 'complete' or 'cancel'", action=action)
