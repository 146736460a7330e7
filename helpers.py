"""
Shared helpers used across blueprints.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import request
from flask_login import current_user, login_required

from errors import ForbiddenError, ValidationError


def current_user_id() -> int:
    return current_user.id


def _role_required(*roles: str) -> Callable:
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        @login_required
        def decorated(*args: Any, **kwargs: Any) -> Any:
            if getattr(current_user, "role", "student") not in roles:
                raise ForbiddenError("This action requires role: " + " or ".join(roles))
            return f(*args, **kwargs)
        return decorated
    return decorator


student_required = _role_required("student")
teacher_required = _role_required("teacher", "admin")
admin_required = _role_required("admin")


def require_school() -> int:
    """School id of the current user; teachers and leaderboards need one."""
    school_id = getattr(current_user, "school_id", None)
    if not school_id:
        raise ValidationError("You are not assigned to a school")
    return school_id


def json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Expected a JSON object body")
    return data


def int_field(data: dict, key: str, default: int | None = None) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{key} must be an integer", **{key: value})
    return value


def paginate_args(default_limit: int = 20, max_limit: int = 100) -> tuple[int, int]:
    """Extract page/limit from request.args. Returns (page, limit)."""
    try:
        page = max(1, int(request.args.get("page", 1)))
    except (ValueError, TypeError):
        page = 1
    try:
        limit = min(max_limit, max(1, int(request.args.get("limit", default_limit))))
    except (ValueError, TypeError):
        limit = default_limit
    return page, limit


def paginated_response(items: list, total: int, page: int, limit: int) -> dict:
    """Standard pagination envelope."""
    return {
        "items": items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": max(1, (total + limit - 1) // limit),
        },
    }
