"""Teacher routes: same-school students, activity feed and feedback."""

from __future__ import annotations

from flask import Blueprint, jsonify

from audit import log_event
from database import transaction
from db_stores import ActivityLogDB, FeedbackStoreDB, UserStoreDB
from errors import ForbiddenError, ValidationError
from helpers import (
    current_user_id,
    int_field,
    json_body,
    paginate_args,
    paginated_response,
    require_school,
    teacher_required,
)

bp = Blueprint("teacher", __name__)

MAX_FEEDBACK_LENGTH = 500


@bp.route("/api/teacher/students")
@teacher_required
def api_students():
    return jsonify({"students": UserStoreDB.students_in_school(require_school())})


@bp.route("/api/teacher/activities")
@teacher_required
def api_activities():
    school_id = require_school()
    page, limit = paginate_args()
    items, total = UserStoreDB.school_activities(school_id, page, limit)
    return jsonify(paginated_response(items, total, page, limit))


@bp.route("/api/teacher/feedback", methods=["POST"])
@teacher_required
def api_feedback():
    school_id = require_school()
    data = json_body()
    activity_id = int_field(data, "activity_id")
    message = str(data.get("message", "")).strip()
    feedback_type = str(data.get("type", "FEEDBACK")).upper()

    if not message or len(message) > MAX_FEEDBACK_LENGTH:
        raise ValidationError(f"message is required (max {MAX_FEEDBACK_LENGTH} chars)")
    if feedback_type not in FeedbackStoreDB.TYPES:
        raise ValidationError("Unknown feedback type", type=feedback_type,
                              allowed=list(FeedbackStoreDB.TYPES))

    activity = ActivityLogDB.get(activity_id)
    if activity["school_id"] != school_id:
        raise ForbiddenError("Activity belongs to a student of another school")

    uid = current_user_id()
    with transaction():
        feedback_id = FeedbackStoreDB.add(activity_id, uid, activity["student_id"],
                                          message, feedback_type)
    log_event("feedback_created", uid, f"activity={activity_id} student={activity['student_id']}")
    return jsonify({"id": feedback_id, "activity_id": activity_id, "type": feedback_type,
                    "message": message}), 201
