"""Activity logging routes."""

from __future__ import annotations

from flask import Blueprint, jsonify
from flask_login import current_user, login_required

import gamification
from db_stores import ActivityLogDB, FeedbackStoreDB
from errors import ForbiddenError, ValidationError
from helpers import (
    current_user_id,
    int_field,
    json_body,
    paginate_args,
    paginated_response,
    student_required,
)

bp = Blueprint("activities", __name__)

MAX_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 1000


@bp.route("/api/activities", methods=["POST"])
@student_required
def api_create_activity():
    data = json_body()
    title = str(data.get("title", "")).strip()
    description = str(data.get("description", "")).strip()
    if len(title) > MAX_TITLE_LENGTH or len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError("Title or description too long")
    plan_item_id = int_field(data, "plan_item_id") if data.get("plan_item_id") is not None else None
    result = gamification.record_activity(
        current_user_id(),
        category=str(data.get("category", "")).upper(),
        minutes=int_field(data, "minutes"),
        activity_date=data.get("date"),
        title=title,
        description=description,
        plan_item_id=plan_item_id,
    )
    return jsonify(result), 201


@bp.route("/api/activities")
@student_required
def api_list_activities():
    page, limit = paginate_args()
    items, total = ActivityLogDB(current_user_id()).page(page, limit)
    return jsonify(paginated_response(items, total, page, limit))


@bp.route("/api/activities/daily-stats")
@student_required
def api_daily_stats():
    return jsonify(gamification.daily_stats(current_user_id()))


@bp.route("/api/activities/<int:activity_id>/feedbacks")
@login_required
def api_activity_feedbacks(activity_id):
    activity = ActivityLogDB.get(activity_id)
    if current_user.role == "student":
        allowed = activity["student_id"] == current_user.id
    elif current_user.role == "teacher":
        allowed = activity["school_id"] is not None and activity["school_id"] == current_user.school_id
    else:
        allowed = True
    if not allowed:
        raise ForbiddenError("You cannot view feedback for this activity")
    return jsonify({"activity_id": activity_id, "feedbacks": FeedbackStoreDB.for_activity(activity_id)})
