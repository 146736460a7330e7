"""
Test fixtures for Study Log.

Provides app, client, student_client, teacher_client, admin_client and db
fixtures with file-based SQLite. Seeded accounts:

    1  student  school 1   student@test.com / StudentPass1
    2  teacher  school 1   teacher@test.com / TeacherPass1
    3  admin    no school  admin@test.com   / AdminPass1
    4  student  school 2   other@test.com   / OtherPass1
    5  teacher  school 2   teacher2@test.com / TeacherPass2
"""

from __future__ import annotations

import contextvars
import sys
from pathlib import Path

import pytest
from flask.testing import FlaskClient
from werkzeug.security import generate_password_hash

sys.path.insert(0, str(Path(__file__).parent.parent))

USERS = [
    (1, "Test Student", "student@test.com", "StudentPass1", "student", 1),
    (2, "Test Teacher", "teacher@test.com", "TeacherPass1", "teacher", 1),
    (3, "Test Admin", "admin@test.com", "AdminPass1", "admin", None),
    (4, "Other Student", "other@test.com", "OtherPass1", "student", 2),
    (5, "Other Teacher", "teacher2@test.com", "TeacherPass2", "teacher", 2),
]

STUDENT_ID = 1
OTHER_STUDENT_ID = 4


class IsolatedClient(FlaskClient):
    """Test client whose requests run outside the fixture's app context.

    The ``app`` fixture keeps an app context pushed for direct store access;
    without isolation every request would reuse its ``flask.g`` (and the
    user Flask-Login caches there), so several logged-in clients in one test
    would all act as whoever logged in last.
    """

    def open(self, *args, **kwargs):
        return contextvars.Context().run(super().open, *args, **kwargs)


@pytest.fixture
def app(tmp_path):
    """Create app with file-based SQLite for testing."""
    from app import create_app

    db_file = str(tmp_path / "test.db")
    app = create_app({
        "TESTING": True,
        "DATABASE": db_file,
        "SECRET_KEY": "test-secret-key",
        "ADMIN_EMAILS": ["boss@test.com"],
    })
    app.test_client_class = IsolatedClient

    with app.app_context():
        from database import init_db, run_migrations, get_db

        init_db()
        run_migrations()

        db = get_db()
        db.execute(
            "INSERT INTO schools (id, name, code, region, created_at) "
            "VALUES (1, 'Test School', 'SCHOOL1', 'Seoul', '2026-01-01')"
        )
        db.execute(
            "INSERT INTO schools (id, name, code, region, created_at) "
            "VALUES (2, 'Other School', 'SCHOOL2', 'Busan', '2026-01-01')"
        )
        for uid, name, email, password, role, school_id in USERS:
            db.execute(
                "INSERT INTO users (id, name, email, password_hash, role, school_id, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, '2026-01-01')",
                (uid, name, email, generate_password_hash(password), role, school_id),
            )
        db.commit()

        yield app


def _login(app, email: str, password: str):
    client = app.test_client()
    resp = client.post("/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.get_json()
    return client


@pytest.fixture
def client(app):
    """Unauthenticated test client."""
    return app.test_client()


@pytest.fixture
def student_client(app):
    return _login(app, "student@test.com", "StudentPass1")


@pytest.fixture
def other_student_client(app):
    return _login(app, "other@test.com", "OtherPass1")


@pytest.fixture
def teacher_client(app):
    return _login(app, "teacher@test.com", "TeacherPass1")


@pytest.fixture
def other_teacher_client(app):
    return _login(app, "teacher2@test.com", "TeacherPass2")


@pytest.fixture
def admin_client(app):
    return _login(app, "admin@test.com", "AdminPass1")


@pytest.fixture
def db(app):
    """Direct database access for store and engine tests."""
    from database import get_db
    yield get_db()
