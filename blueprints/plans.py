"""Daily plan routes: create, edit, check off items, finalize."""

from __future__ import annotations

from datetime import date

from flask import Blueprint, jsonify, request

import gamification
import scoring
from database import transaction
from db_stores import PlanStoreDB
from errors import ValidationError
from helpers import current_user_id, json_body, student_required

bp = Blueprint("plans", __name__)

MAX_PLAN_ITEMS = 20


def _validate_items(raw) -> list[dict]:
    if not isinstance(raw, list) or not raw:
        raise ValidationError("items must be a non-empty list")
    if len(raw) > MAX_PLAN_ITEMS:
        raise ValidationError(f"A plan holds at most {MAX_PLAN_ITEMS} items")
    items = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValidationError("Each item must be an object", index=i)
        title = str(item.get("title", "")).strip()
        category = str(item.get("category", "")).upper()
        target = item.get("target_minutes", 0)
        if not title or len(title) > 100:
            raise ValidationError("Item title is required (max 100 chars)", index=i)
        if category not in scoring.CATEGORIES:
            raise ValidationError("Unknown category", index=i, category=category)
        if isinstance(target, bool) or not isinstance(target, int) \
                or not 0 <= target <= scoring.MAX_ACTIVITY_MINUTES:
            raise ValidationError("target_minutes out of range", index=i)
        items.append({"title": title, "category": category, "target_minutes": target})
    return items


@bp.route("/api/plans", methods=["POST"])
@student_required
def api_create_plan():
    uid = current_user_id()
    items = _validate_items(json_body().get("items"))
    store = PlanStoreDB(uid)
    with transaction():
        plan_id = store.create(date.today().isoformat(), items)
    return jsonify(store.get(plan_id)), 201


@bp.route("/api/plans/<int:plan_id>", methods=["PUT"])
@student_required
def api_update_plan(plan_id):
    store = PlanStoreDB(current_user_id())
    items = _validate_items(json_body().get("items"))
    if store.get(plan_id)["date"] != date.today().isoformat():
        raise ValidationError("Only today's plan can be edited")
    with transaction():
        store.replace_items(plan_id, items)
    return jsonify(store.get(plan_id))


@bp.route("/api/plans/today")
@student_required
def api_today_plan():
    uid = current_user_id()
    plan = PlanStoreDB(uid).for_date(date.today().isoformat())
    return jsonify({"plan": plan})


@bp.route("/api/plans/items/<int:item_id>/toggle", methods=["POST"])
@student_required
def api_toggle_item(item_id):
    uid = current_user_id()
    data = json_body() if request.get_data() else {}
    completed = data.get("completed")
    if completed is None:
        completed = not PlanStoreDB(uid).item_completed(item_id)
    elif not isinstance(completed, bool):
        raise ValidationError("completed must be a boolean")
    return jsonify(gamification.toggle_plan_item(uid, item_id, completed))


@bp.route("/api/plans/<int:plan_id>/finalize", methods=["POST"])
@student_required
def api_finalize_plan(plan_id):
    return jsonify(gamification.finalize_plan(current_user_id(), plan_id))

