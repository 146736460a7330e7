"""Tests for the activity and dashboard routes."""

from datetime import date, timedelta

import pytest


def _log(client, **overrides):
    body = {"category": "STUDY", "minutes": 30, "title": "Algebra"}
    body.update(overrides)
    return client.post("/api/activities", json=body)


class TestCreateActivity:
    def test_create(self, student_client):
        resp = _log(student_client)
        assert resp.status_code == 201
        data = resp.get_json()
        assert data["xp_earned"] == 36
        assert data["stat"] == "intelligence"
        assert data["stat_points"] == 3
        assert data["total_xp"] == 36
        assert data["level"] == 1
        assert data["xp_rate"] == "normal"

    def test_lowercase_category_accepted(self, student_client):
        resp = _log(student_client, category="exercise", minutes=60)
        assert resp.status_code == 201
        assert resp.get_json()["stat"] == "strength"

    def test_level_up_reported(self, student_client):
        resp = _log(student_client, minutes=100)
        data = resp.get_json()
        assert data["xp_earned"] == 120
        assert data["level"] == 2
        assert data["new_level"] == 2

    def test_cap_reduces_rate(self, student_client):
        _log(student_client, category="EXERCISE", minutes=100)
        resp = _log(student_client, category="EXERCISE", minutes=60)
        data = resp.get_json()
        assert data["xp_rate"] == "partial"
        assert data["xp_earned"] == 40

    def test_backdated_activity(self, student_client):
        day = (date.today() - timedelta(days=3)).isoformat()
        resp = _log(student_client, date=day)
        assert resp.status_code == 201
        items = student_client.get("/api/activities").get_json()["items"]
        assert items[0]["date"] == day

    @pytest.mark.parametrize("overrides", [
        {"category": "GAMING"},
        {"minutes": 0},
        {"minutes": 721},
        {"minutes": "30"},
        {"minutes": 12.5},
        {"date": "03/02/2026"},
        {"date": (date.today() + timedelta(days=1)).isoformat()},
        {"title": "x" * 101},
    ])
    def test_invalid_input(self, student_client, db, overrides):
        resp = _log(student_client, **overrides)
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "validation_error"
        assert db.execute("SELECT COUNT(*) FROM activities").fetchone()[0] == 0

    def test_non_json_body(self, student_client):
        resp = student_client.post("/api/activities", data="minutes=30")
        assert resp.status_code == 400


class TestListActivities:
    def test_pagination(self, student_client):
        for minutes in (10, 20, 30):
            _log(student_client, minutes=minutes)
        data = student_client.get("/api/activities?limit=2").get_json()
        assert data["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
        assert [a["minutes"] for a in data["items"]] == [30, 20]

    def test_only_own_activities(self, student_client, other_student_client):
        _log(other_student_client)
        assert student_client.get("/api/activities").get_json()["items"] == []

    def test_daily_stats(self, student_client):
        _log(student_client, category="EXERCISE", minutes=120)
        data = student_client.get("/api/activities/daily-stats").get_json()
        exercise = data["categories"]["EXERCISE"]
        assert exercise["is_limit_reached"]
        assert exercise["xp_rate"] == "reduced"
        assert data["categories"]["STUDY"]["remaining_minutes"] == 240


class TestActivityFeedbacks:
    @pytest.fixture
    def activity_id(self, student_client):
        return _log(student_client).get_json()["activity_id"]

    def test_owner_can_view(self, student_client, activity_id):
        resp = student_client.get(f"/api/activities/{activity_id}/feedbacks")
        assert resp.status_code == 200
        assert resp.get_json()["feedbacks"] == []

    def test_same_school_teacher_can_view(self, teacher_client, activity_id):
        assert teacher_client.get(f"/api/activities/{activity_id}/feedbacks").status_code == 200

    def test_other_student_forbidden(self, other_student_client, activity_id):
        resp = other_student_client.get(f"/api/activities/{activity_id}/feedbacks")
        assert resp.status_code == 403

    def test_other_school_teacher_forbidden(self, other_teacher_client, activity_id):
        resp = other_teacher_client.get(f"/api/activities/{activity_id}/feedbacks")
        assert resp.status_code == 403

    def test_admin_can_view(self, admin_client, activity_id):
        assert admin_client.get(f"/api/activities/{activity_id}/feedbacks").status_code == 200

    def test_missing_activity(self, student_client):
        assert student_client.get("/api/activities/999/feedbacks").status_code == 404


class TestDashboard:
    def test_fresh_student(self, student_client):
        data = student_client.get("/api/dashboard").get_json()
        assert data["profile"]["total_xp"] == 0
        assert data["profile"]["stats"]["strength"] == 10
        assert data["level"] == {
            "level": 1, "current_xp": 0, "required_xp": 100, "progress_pct": 0, "stat_cap": 20,
        }
        assert not data["streak_bonus_active"]
        assert data["recent_activities"] == []
        assert all(not b["earned"] for b in data["badges"])

    def test_after_activity(self, student_client):
        _log(student_client, minutes=45)
        data = student_client.get("/api/dashboard").get_json()
        assert data["profile"]["total_xp"] == 48
        assert data["level"]["current_xp"] == 48
        assert data["profile"]["stats"]["intelligence"] == 14
        assert len(data["recent_activities"]) == 1
        assert data["daily"]["categories"]["STUDY"]["total_minutes"] == 45

    def test_teacher_has_no_dashboard(self, teacher_client):
        assert teacher_client.get("/api/dashboard").status_code == 403
