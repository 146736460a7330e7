"""Tests for db_stores.py — CRUD for the DB-backed store classes."""

import pytest

from achievements_data import AchievementDefinition
from db_stores import (
    AchievementStoreDB,
    ActivityLogDB,
    BadgeStoreDB,
    FeedbackStoreDB,
    LeaderboardStoreDB,
    PlanStoreDB,
    SchoolStoreDB,
    StudentProfileDB,
    UserAchievementStoreDB,
    UserStoreDB,
)
from errors import ConflictError, NotFoundError, ValidationError


def _activity(store, day, category="STUDY", minutes=30, xp=36, stat="intelligence"):
    return store.add(category=category, minutes=minutes, activity_date=day, xp_earned=xp,
                     stat=stat, stat_points=xp // 10, xp_rate="normal", title="t")


def _defn(code="TEST_ONE", target=1, check_type="total_activities", **condition):
    return AchievementDefinition(
        code=code, title=code.title(), description="", icon="*", category="general",
        difficulty="easy", xp_reward=50, target=target, check_type=check_type,
        check_condition=condition,
    )


class TestStudentProfileDB:
    def test_ensure_creates_base_stats(self, db):
        row = StudentProfileDB(1).ensure()
        assert row["level"] == 1
        assert row["total_xp"] == 0
        assert row["strength"] == 10
        assert row["vitality"] == 10

    def test_ensure_is_idempotent(self, db):
        store = StudentProfileDB(1)
        store.ensure()
        store.add_totals(xp=40)
        assert store.ensure()["total_xp"] == 40

    def test_missing_profile(self, db):
        assert StudentProfileDB(999).get() is None

    def test_add_totals_is_relative(self, db):
        store = StudentProfileDB(1)
        store.ensure()
        store.add_totals(xp=10, minutes=20, days=1)
        store.add_totals(xp=5, minutes=15)
        row = store.get()
        assert (row["total_xp"], row["total_minutes"], row["total_days"]) == (15, 35, 1)

    def test_add_stat(self, db):
        store = StudentProfileDB(1)
        store.ensure()
        store.add_stat("charisma", 3)
        assert store.get()["charisma"] == 13

    def test_add_unknown_stat(self, db):
        store = StudentProfileDB(1)
        store.ensure()
        with pytest.raises(ValidationError):
            store.add_stat("luck; DROP TABLE users", 1)

    def test_longest_streak_never_shrinks(self, db):
        store = StudentProfileDB(1)
        store.ensure()
        store.set_streak(5, "2026-03-05")
        store.set_streak(0)
        row = store.get()
        assert row["current_streak"] == 0
        assert row["longest_streak"] == 5
        assert row["last_streak_date"] == "2026-03-05"

    def test_to_dict(self, db):
        d = StudentProfileDB.to_dict(StudentProfileDB(1).ensure())
        assert set(d["stats"]) == {"strength", "intelligence", "dexterity", "charisma", "vitality"}


class TestActivityLogDB:
    def test_add_and_get(self, db):
        aid = _activity(ActivityLogDB(1), "2026-03-02")
        row = ActivityLogDB.get(aid)
        assert row["student_name"] == "Test Student"
        assert row["school_id"] == 1

    def test_get_missing(self, db):
        with pytest.raises(NotFoundError):
            ActivityLogDB.get(12345)

    def test_minutes_on(self, db):
        store = ActivityLogDB(1)
        _activity(store, "2026-03-02", minutes=30)
        _activity(store, "2026-03-02", "EXERCISE", 45, 45, "strength")
        _activity(store, "2026-03-03", minutes=60)
        assert store.minutes_on("2026-03-02") == 75
        assert store.minutes_on("2026-03-02", "STUDY") == 30
        assert store.minutes_on("2026-03-04") == 0
        assert store.minutes_by_category_on("2026-03-02") == {"STUDY": 30, "EXERCISE": 45}

    def test_has_date(self, db):
        store = ActivityLogDB(1)
        _activity(store, "2026-03-02")
        assert store.has_date("2026-03-02")
        assert not store.has_date("2026-03-03")
        assert not ActivityLogDB(4).has_date("2026-03-02")

    def test_page_orders_newest_first(self, db):
        store = ActivityLogDB(1)
        for day in ("2026-03-01", "2026-03-03", "2026-03-02"):
            _activity(store, day)
        items, total = store.page(1, 2)
        assert total == 3
        assert [i["date"] for i in items] == ["2026-03-03", "2026-03-02"]
        items, _ = store.page(2, 2)
        assert [i["date"] for i in items] == ["2026-03-01"]

    def test_totals(self, db):
        store = ActivityLogDB(1)
        _activity(store, "2026-03-01", minutes=30, xp=36)
        _activity(store, "2026-03-01", minutes=20, xp=24)
        _activity(store, "2026-03-02", minutes=10, xp=12)
        assert store.totals() == {"xp": 72, "minutes": 60, "days": 2}

    def test_metrics_window(self, db):
        store = ActivityLogDB(1)
        _activity(store, "2026-02-28", minutes=90)
        _activity(store, "2026-03-07", minutes=30)            # Saturday
        _activity(store, "2026-03-07", "EXERCISE", 40, 40, "strength")
        _activity(store, "2026-03-09", "READING", 20, 22, "intelligence")
        m = store.metrics("2026-03-01", "2026-03-31")
        assert m["total_activities"] == 3
        assert m["total_minutes"] == 90
        assert m["single_activity_minutes"] == 40
        assert m["unique_categories"] == 3
        assert m["active_days"] == 2
        assert m["weekend_days"] == 1
        assert m["category_count"] == {"STUDY": 1, "EXERCISE": 1, "READING": 1}
        assert m["daily_minutes"] == 70
        assert m["daily_categories"] == 2

    def test_metrics_empty(self, db):
        m = ActivityLogDB(1).metrics()
        assert m["total_activities"] == 0
        assert m["daily_minutes"] == 0
        assert m["category_minutes"] == {}


class TestPlanStoreDB:
    ITEMS = [
        {"title": "Read", "category": "READING", "target_minutes": 20},
        {"title": "Run", "category": "EXERCISE", "target_minutes": 30},
    ]

    def test_create_and_get(self, db):
        store = PlanStoreDB(1)
        plan_id = store.create("2026-03-02", self.ITEMS)
        plan = store.get(plan_id)
        assert plan["date"] == "2026-03-02"
        assert [i["title"] for i in plan["items"]] == ["Read", "Run"]
        assert not plan["finalized"]

    def test_one_plan_per_date(self, db):
        store = PlanStoreDB(1)
        store.create("2026-03-02", self.ITEMS)
        with pytest.raises(ConflictError):
            store.create("2026-03-02", self.ITEMS)
        PlanStoreDB(4).create("2026-03-02", self.ITEMS)

    def test_other_students_plan_is_not_found(self, db):
        plan_id = PlanStoreDB(1).create("2026-03-02", self.ITEMS)
        with pytest.raises(NotFoundError):
            PlanStoreDB(4).get(plan_id)

    def test_completing_all_items_completes_plan(self, db):
        store = PlanStoreDB(1)
        plan = store.get(store.create("2026-03-02", self.ITEMS))
        first, second = (i["id"] for i in plan["items"])
        assert not store.set_item_completed(first, True)["is_completed"]
        done = store.set_item_completed(second, True)
        assert done["is_completed"]
        assert done["completed_at"]
        assert store.item_counts(plan["id"]) == (2, 2)
        assert not store.set_item_completed(first, False)["is_completed"]
        assert store.item_completed(second)

    def test_toggle_other_students_item(self, db):
        plan = PlanStoreDB(1).get(PlanStoreDB(1).create("2026-03-02", self.ITEMS))
        with pytest.raises(NotFoundError):
            PlanStoreDB(4).set_item_completed(plan["items"][0]["id"], True)

    def test_finalized_plan_is_frozen(self, db):
        store = PlanStoreDB(1)
        plan_id = store.create("2026-03-02", self.ITEMS)
        assert store.mark_finalized(plan_id, True)
        assert not store.mark_finalized(plan_id, False)
        assert store.get(plan_id)["qualified"]
        item_id = store.get(plan_id)["items"][0]["id"]
        with pytest.raises(ConflictError):
            store.set_item_completed(item_id, True)
        with pytest.raises(ConflictError):
            store.replace_items(plan_id, self.ITEMS)

    def test_replace_items(self, db):
        store = PlanStoreDB(1)
        plan_id = store.create("2026-03-02", self.ITEMS)
        store.replace_items(plan_id, [{"title": "Only", "category": "OTHER"}])
        assert [i["title"] for i in store.get(plan_id)["items"]] == ["Only"]

    def test_unfinalized_before(self, db):
        store = PlanStoreDB(1)
        a = store.create("2026-03-01", self.ITEMS)
        b = store.create("2026-03-02", self.ITEMS)
        store.create("2026-03-03", self.ITEMS)
        store.mark_finalized(a, False)
        assert [r["id"] for r in store.unfinalized_before("2026-03-03")] == [b]

    def test_day_ratios_and_perfect_days(self, db):
        store = PlanStoreDB(1)
        p1 = store.get(store.create("2026-03-01", self.ITEMS))
        store.create("2026-03-02", self.ITEMS)
        store.create("2026-03-03", [])
        for item in p1["items"]:
            store.set_item_completed(item["id"], True)
        ratios = store.day_ratios("2026-03-01", "2026-03-31")
        assert ratios == {"2026-03-01": (2, 2), "2026-03-02": (0, 2), "2026-03-03": (0, 0)}
        assert store.perfect_days() == 1
        assert store.count("2026-03-02") == 2
        store.mark_finalized(p1["id"], True)
        assert store.day_ratios(finalized_only=True) == {"2026-03-01": (2, 2)}


class TestAchievementStores:
    def test_insert_definition_ignores_duplicates(self, db):
        AchievementStoreDB.insert_definition(_defn())
        AchievementStoreDB.insert_definition(_defn())
        assert len(AchievementStoreDB.for_month("")) == 1

    def test_same_code_different_month(self, db):
        AchievementStoreDB.insert_definition(_defn("MONTHLY_X"), "2026-03")
        AchievementStoreDB.insert_definition(_defn("MONTHLY_X"), "2026-04")
        rows = AchievementStoreDB.for_month("2026-04")
        assert len(rows) == 1
        assert rows[0]["is_monthly"] == 1

    def test_set_month_active(self, db):
        AchievementStoreDB.insert_definition(_defn("BASE"))
        AchievementStoreDB.insert_definition(_defn("M"), "2026-03")
        AchievementStoreDB.insert_definition(_defn("M"), "2026-04")
        AchievementStoreDB.set_month_active("2026-04")
        active = {(r["code"], r["month_key"]) for r in AchievementStoreDB.active()}
        assert active == {("BASE", ""), ("M", "2026-04")}

    def test_to_dict_parses_condition(self, db):
        AchievementStoreDB.insert_definition(_defn(check_type="category_count", category="STUDY"))
        row = AchievementStoreDB.for_month("")[0]
        assert AchievementStoreDB.to_dict(row)["check_condition"] == {"category": "STUDY"}

    def test_get_missing(self, db):
        with pytest.raises(NotFoundError):
            AchievementStoreDB.get(999)

    def test_progress_never_decreases(self, db):
        AchievementStoreDB.insert_definition(_defn(target=5))
        aid = AchievementStoreDB.for_month("")[0]["id"]
        store = UserAchievementStoreDB(1)
        store.save_progress(aid, 5, True)
        store.save_progress(aid, 2, False)
        row = store.get(aid)
        assert row["progress"] == 5
        assert row["completed"] == 1
        assert row["completed_at"]

    def test_claim_once(self, db):
        AchievementStoreDB.insert_definition(_defn())
        aid = AchievementStoreDB.for_month("")[0]["id"]
        store = UserAchievementStoreDB(1)
        store.save_progress(aid, 0, False)
        assert not store.mark_claimed(aid)
        store.save_progress(aid, 1, True)
        assert store.mark_claimed(aid)
        assert not store.mark_claimed(aid)
        assert store.claimed_reward_total() == 50

    def test_visible_keeps_unclaimed_inactive(self, db):
        AchievementStoreDB.insert_definition(_defn("M"), "2026-03")
        AchievementStoreDB.insert_definition(_defn("N"), "2026-03")
        rows = AchievementStoreDB.for_month("2026-03")
        store = UserAchievementStoreDB(1)
        store.save_progress(rows[0]["id"], 1, True)
        AchievementStoreDB.set_month_active("2026-04")
        visible = store.visible()
        assert [v["code"] for v in visible] == ["M"]
        assert visible[0]["completed"]
        assert not visible[0]["is_active"]


class TestBadgeStoreDB:
    def test_add_once(self, db):
        store = BadgeStoreDB(1)
        assert store.add("STUDY_MASTER", 1)
        assert not store.add("STUDY_MASTER", 1)
        assert store.owned() == {("STUDY_MASTER", 1)}
        assert store.list()[0]["type"] == "STUDY_MASTER"


class TestFeedbackStoreDB:
    def test_add_and_list(self, db):
        aid = _activity(ActivityLogDB(1), "2026-03-02")
        FeedbackStoreDB.add(aid, 2, 1, "Nice work")
        FeedbackStoreDB.add(aid, 2, 1, "Keep going", "ENCOURAGEMENT")
        rows = FeedbackStoreDB.for_activity(aid)
        assert [r["message"] for r in rows] == ["Keep going", "Nice work"]
        assert rows[0]["teacher_name"] == "Test Teacher"


class TestSchoolAndUserStores:
    def test_list_schools_with_member_count(self, db):
        schools = {s["code"]: s for s in SchoolStoreDB.list()}
        assert schools["SCHOOL1"]["member_count"] == 2
        assert schools["SCHOOL2"]["member_count"] == 2

    def test_duplicate_school_code(self, db):
        with pytest.raises(ConflictError):
            SchoolStoreDB.create("Again", "SCHOOL1")

    def test_school_lookup(self, db):
        assert SchoolStoreDB.by_code("SCHOOL2")["id"] == 2
        assert SchoolStoreDB.by_code("NOPE") is None
        with pytest.raises(NotFoundError):
            SchoolStoreDB.get(99)

    def test_duplicate_email(self, db):
        with pytest.raises(ConflictError):
            UserStoreDB.create("Dup", "student@test.com", "x")

    def test_page_by_role(self, db):
        users, total = UserStoreDB.page(1, 10, role="teacher")
        assert total == 2
        assert {u["email"] for u in users} == {"teacher@test.com", "teacher2@test.com"}
        assert "password_hash" not in users[0]

    def test_update_school(self, db):
        UserStoreDB.update(1, school_id=2)
        assert UserStoreDB.get(1)["school_id"] == 2
        UserStoreDB.update(1, clear_school=True)
        assert UserStoreDB.get(1)["school_id"] is None

    def test_students_in_school_without_profile(self, db):
        students = UserStoreDB.students_in_school(1)
        assert [s["id"] for s in students] == [1]
        assert students[0]["level"] == 1

    def test_school_activities_scoped(self, db):
        _activity(ActivityLogDB(1), "2026-03-02")
        _activity(ActivityLogDB(4), "2026-03-02")
        items, total = UserStoreDB.school_activities(1, 1, 20)
        assert total == 1
        assert items[0]["student_name"] == "Test Student"


class TestLeaderboardStoreDB:
    def test_rankings_are_school_and_month_scoped(self, db):
        UserStoreDB.create("Third", "third@test.com", "x", "student", 1)
        third = UserStoreDB.by_email("third@test.com")["id"]
        _activity(ActivityLogDB(1), "2026-03-02", minutes=30, xp=36)
        _activity(ActivityLogDB(third), "2026-03-05", minutes=60, xp=72)
        _activity(ActivityLogDB(1), "2026-02-20", minutes=300, xp=360)
        _activity(ActivityLogDB(4), "2026-03-02", minutes=500, xp=600)

        board = LeaderboardStoreDB(1)
        xp = board.xp_ranking("2026-03-01", "2026-03-31")
        assert [(r["student_id"], r["value"], r["rank"]) for r in xp] == [(third, 72, 1), (1, 36, 2)]
        minutes = board.minutes_ranking("2026-03-01", "2026-03-31", limit=1)
        assert [r["student_id"] for r in minutes] == [third]

    def test_streak_ranking_skips_zero(self, db):
        StudentProfileDB(1).ensure()
        StudentProfileDB(1).set_streak(4, "2026-03-02")
        StudentProfileDB(4).ensure()
        StudentProfileDB(4).set_streak(9, "2026-03-02")
        rows = LeaderboardStoreDB(1).streak_ranking()
        assert [(r["student_id"], r["value"]) for r in rows] == [(1, 4)]
