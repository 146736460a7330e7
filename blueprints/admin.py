"""Admin routes: schools, users and profile verification."""

from __future__ import annotations

import re

from flask import Blueprint, jsonify, request

import gamification
from audit import log_event
from database import transaction
from db_stores import SchoolStoreDB, UserStoreDB
from errors import ValidationError
from helpers import (
    admin_required,
    current_user_id,
    json_body,
    paginate_args,
    paginated_response,
)

bp = Blueprint("admin", __name__)

SCHOOL_CODE_RE = re.compile(r"^[A-Za-z0-9_-]{2,32}$")


@bp.route("/api/admin/schools")
@admin_required
def api_schools():
    return jsonify({"schools": SchoolStoreDB.list()})


@bp.route("/api/admin/schools", methods=["POST"])
@admin_required
def api_create_school():
    data = json_body()
    name = str(data.get("name", "")).strip()
    code = str(data.get("code", "")).strip()
    region = str(data.get("region", "")).strip()
    if not name:
        raise ValidationError("name is required")
    if not SCHOOL_CODE_RE.match(code):
        raise ValidationError("code must be 2-32 letters, digits, '-' or '_'", code=code)
    with transaction():
        school_id = SchoolStoreDB.create(name, code, region)
    log_event("school_created", current_user_id(), f"school={school_id} code={code}")
    return jsonify(dict(SchoolStoreDB.get(school_id))), 201


@bp.route("/api/admin/users")
@admin_required
def api_users():
    page, limit = paginate_args()
    role = request.args.get("role") or None
    if role is not None and role not in UserStoreDB.ROLES:
        raise ValidationError("Unknown role", role=role)
    items, total = UserStoreDB.page(page, limit, role)
    return jsonify(paginated_response(items, total, page, limit))


@bp.route("/api/admin/users/<int:user_id>", methods=["PATCH"])
@admin_required
def api_update_user(user_id):
    data = json_body()
    UserStoreDB.get(user_id)

    role = data.get("role")
    if role is not None and role not in UserStoreDB.ROLES:
        raise ValidationError("Unknown role", role=role)

    school_id = None
    clear_school = "school_id" in data and data["school_id"] is None
    if "school_id" in data and data["school_id"] is not None:
        if isinstance(data["school_id"], bool) or not isinstance(data["school_id"], int):
            raise ValidationError("school_id must be an integer or null")
        school_id = SchoolStoreDB.get(data["school_id"])["id"]

    with transaction():
        UserStoreDB.update(user_id, role=role, school_id=school_id, clear_school=clear_school)
    log_event("user_updated", current_user_id(),
              f"user={user_id} role={role} school={school_id if not clear_school else 'none'}")
    row = UserStoreDB.get(user_id)
    return jsonify({"id": row["id"], "name": row["name"], "email": row["email"],
                    "role": row["role"], "school_id": row["school_id"]})


@bp.route("/api/admin/students/<int:user_id>/verify")
@admin_required
def api_verify_student(user_id):
    return jsonify(gamification.verify_totals(user_id))
