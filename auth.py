"""
User Authentication — Flask-Login blueprint.

Provides JSON register, login, and logout routes.
Uses werkzeug.security for password hashing.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Optional

from flask import Blueprint, current_app, jsonify, request
from flask_login import LoginManager, UserMixin, current_user, login_user, logout_user
from werkzeug.security import check_password_hash, generate_password_hash

from audit import log_event
from database import get_db, transaction
from db_stores import SchoolStoreDB, UserStoreDB
from errors import ForbiddenError, UnauthorizedError, ValidationError
from extensions import LOGIN_LIMIT, limiter

LOCKOUT_THRESHOLD = 5
LOCKOUT_MINUTES = 15

auth_bp = Blueprint("auth", __name__)
login_manager = LoginManager()


class User(UserMixin):
    """Wraps a DB user row for Flask-Login."""

    def __init__(self, id: int, name: str, email: str, role: str = "student",
                 school_id: Optional[int] = None):
        self.id = id
        self.name = name
        self.email = email
        self.role = role
        self.school_id = school_id

    @property
    def is_student(self):
        return self.role == "student"

    @property
    def is_teacher(self):
        return self.role == "teacher"

    @property
    def is_admin(self):
        return self.role == "admin"

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email,
                "role": self.role, "school_id": self.school_id}

    @staticmethod
    def from_row(row) -> "User":
        return User(row["id"], row["name"], row["email"], row["role"], row["school_id"])

    @staticmethod
    def get(user_id: int):
        db = get_db()
        row = db.execute(
            "SELECT id, name, email, role, school_id FROM users WHERE id = ?", (user_id,)
        ).fetchone()
        return User.from_row(row) if row else None


@login_manager.user_loader
def load_user(user_id):
    return User.get(int(user_id))


@login_manager.unauthorized_handler
def _unauthorized():
    raise UnauthorizedError("Authentication required")


def _validate_password(password: str) -> str | None:
    """Return an error message if password is too weak, else None."""
    if len(password) < 8:
        return "Password must be at least 8 characters."
    if not any(c.isupper() for c in password):
        return "Password must contain at least one uppercase letter."
    if not any(c.islower() for c in password):
        return "Password must contain at least one lowercase letter."
    if not any(c.isdigit() for c in password):
        return "Password must contain at least one digit."
    return None


def _payload() -> dict:
    return request.get_json(silent=True) or request.form.to_dict()


@auth_bp.route("/login", methods=["POST"])
@limiter.limit(LOGIN_LIMIT)
def login():
    data = _payload()
    email = str(data.get("email", "")).strip().lower()
    password = str(data.get("password", ""))
    if not email or not password:
        raise ValidationError("Email and password are required.")

    row = UserStoreDB.by_email(email)
    if not row:
        raise UnauthorizedError("Invalid email or password.")

    if row["locked_until"]:
        try:
            remaining = (datetime.fromisoformat(row["locked_until"]) - datetime.now()).total_seconds()
        except ValueError:
            remaining = 0
        if remaining > 0:
            log_event("login_locked", row["id"], f"email={email}")
            raise ForbiddenError(
                f"Account temporarily locked. Try again in {math.ceil(remaining / 60)} minute(s)."
            )

    if not row["password_hash"] or not check_password_hash(row["password_hash"], password):
        attempts = row["login_attempts"] + 1
        locked = ""
        if attempts >= LOCKOUT_THRESHOLD:
            locked = (datetime.now() + timedelta(minutes=LOCKOUT_MINUTES)).isoformat()
        with transaction() as db:
            db.execute(
                "UPDATE users SET login_attempts = ?, locked_until = ? WHERE id = ?",
                (attempts, locked, row["id"]),
            )
        log_event("login_failed", row["id"], f"email={email} attempts={attempts}")
        raise UnauthorizedError("Invalid email or password.")

    with transaction() as db:
        db.execute("UPDATE users SET login_attempts = 0, locked_until = '' WHERE id = ?", (row["id"],))

    user = User.from_row(row)
    login_user(user, remember=True)
    log_event("login_success", user.id)
    return jsonify({"user": user.to_dict()})


@auth_bp.route("/register", methods=["POST"])
@limiter.limit("3 per hour")
def register():
    data = _payload()
    name = str(data.get("name", "")).strip()
    email = str(data.get("email", "")).strip().lower()
    password = str(data.get("password", ""))
    school_code = str(data.get("school_code", "")).strip()

    if not name or not email or not password:
        raise ValidationError("Name, email and password are required.")
    pw_error = _validate_password(password)
    if pw_error:
        raise ValidationError(pw_error)

    school_id = None
    if school_code:
        school = SchoolStoreDB.by_code(school_code)
        if not school:
            raise ValidationError("Invalid school code.", school_code=school_code)
        school_id = school["id"]

    role = "admin" if email in current_app.config.get("ADMIN_EMAILS", []) else "student"
    with transaction():
        user_id = UserStoreDB.create(name, email, generate_password_hash(password), role, school_id)

    log_event("register", user_id, f"email={email} role={role}")
    user = User(user_id, name, email, role, school_id)
    login_user(user, remember=True)
    return jsonify({"user": user.to_dict()}), 201


@auth_bp.route("/logout", methods=["POST"])
def logout():
    uid = current_user.id if current_user.is_authenticated else None
    log_event("logout", uid)
    logout_user()
    return jsonify({"success": True})


@auth_bp.route("/api/me")
def me():
    if not current_user.is_authenticated:
        raise UnauthorizedError("Authentication required")
    return jsonify({"user": current_user.to_dict()})
