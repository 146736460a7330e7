"""
DB-backed store classes for Study Log.

Each class wraps the SQL for one table group. Write methods never commit;
callers run them inside ``database.transaction()`` so that every engine
mutation (activity, stat, totals, achievement progress) lands atomically.
Counters are always updated with relative increments.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from typing import Optional

from database import get_db
from errors import ConflictError, NotFoundError, ValidationError
from scoring import BASE_STAT, STATS


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


def _window(column: str, start: Optional[str], end: Optional[str]) -> tuple[str, list]:
    """SQL fragment restricting ``column`` to [start, end] (ISO dates, inclusive)."""
    clause, params = "", []
    if start:
        clause += f" AND {column} >= ?"
        params.append(start)
    if end:
        clause += f" AND {column} <= ?"
        params.append(end)
    return clause, params


# ── Student Profile ──────────────────────────────────────────────────


class StudentProfileDB:
    """Avatar profile: XP, level, five stats, streak and lifetime totals."""

    def __init__(self, user_id: int):
        self.user_id = user_id

    def get(self) -> Optional[sqlite3.Row]:
        db = get_db()
        return db.execute(
            "SELECT * FROM student_profiles WHERE user_id = ?", (self.user_id,)
        ).fetchone()

    def ensure(self) -> sqlite3.Row:
        """Return the profile row, creating it with base stats if missing."""
        db = get_db()
        now = _now()
        db.execute(
            "INSERT OR IGNORE INTO student_profiles "
            "(user_id, strength, intelligence, dexterity, charisma, vitality, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (self.user_id, BASE_STAT, BASE_STAT, BASE_STAT, BASE_STAT, BASE_STAT, now, now),
        )
        return self.get()

    def add_totals(self, xp: int = 0, minutes: int = 0, days: int = 0) -> None:
        get_db().execute(
            "UPDATE student_profiles SET total_xp = total_xp + ?, total_minutes = total_minutes + ?, "
            "total_days = total_days + ?, updated_at = ? WHERE user_id = ?",
            (xp, minutes, days, _now(), self.user_id),
        )

    def add_stat(self, stat: str, amount: int) -> None:
        if stat not in STATS:
            raise ValidationError(f"Unknown stat: {stat}")
        get_db().execute(
            f"UPDATE student_profiles SET {stat} = {stat} + ?, updated_at = ? WHERE user_id = ?",
            (amount, _now(), self.user_id),
        )

    def set_level(self, level: int) -> None:
        get_db().execute(
            "UPDATE student_profiles SET level = ?, updated_at = ? WHERE user_id = ?",
            (level, _now(), self.user_id),
        )

    def set_streak(self, current: int, last_date: Optional[str] = None) -> None:
        """Write the current streak; longest_streak only ever grows."""
        db = get_db()
        if last_date is None:
            db.execute(
                "UPDATE student_profiles SET current_streak = ?, "
                "longest_streak = MAX(longest_streak, ?), updated_at = ? WHERE user_id = ?",
                (current, current, _now(), self.user_id),
            )
        else:
            db.execute(
                "UPDATE student_profiles SET current_streak = ?, last_streak_date = ?, "
                "longest_streak = MAX(longest_streak, ?), updated_at = ? WHERE user_id = ?",
                (current, last_date, current, _now(), self.user_id),
            )

    @staticmethod
    def to_dict(row: sqlite3.Row) -> dict:
        return {
            "user_id": row["user_id"],
            "total_xp": row["total_xp"],
            "level": row["level"],
            "stats": {s: row[s] for s in STATS},
            "current_streak": row["current_streak"],
            "longest_streak": row["longest_streak"],
            "last_streak_date": row["last_streak_date"],
            "total_minutes": row["total_minutes"],
            "total_days": row["total_days"],
        }


# ── Activities ───────────────────────────────────────────────────────


class ActivityLogDB:
    """Immutable activity records and the aggregates computed over them."""

    def __init__(self, student_id: int):
        self.student_id = student_id

    def add(self, *, category: str, minutes: int, activity_date: str, xp_earned: int,
            stat: str, stat_points: int, xp_rate: str, title: str = "",
            description: str = "") -> int:
        cur = get_db().execute(
            "INSERT INTO activities (student_id, title, description, category, minutes, date, "
            "xp_earned, stat, stat_points, xp_rate, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (self.student_id, title, description, category, minutes, activity_date,
             xp_earned, stat, stat_points, xp_rate, _now()),
        )
        return cur.lastrowid

    @staticmethod
    def get(activity_id: int) -> sqlite3.Row:
        row = get_db().execute(
            "SELECT a.*, u.name AS student_name, u.school_id AS school_id FROM activities a "
            "JOIN users u ON u.id = a.student_id WHERE a.id = ?",
            (activity_id,),
        ).fetchone()
        if not row:
            raise NotFoundError("Activity not found", activity_id=activity_id)
        return row

    def minutes_on(self, activity_date: str, category: Optional[str] = None) -> int:
        sql = "SELECT COALESCE(SUM(minutes), 0) AS m FROM activities WHERE student_id = ? AND date = ?"
        params: list = [self.student_id, activity_date]
        if category:
            sql += " AND category = ?"
            params.append(category)
        return get_db().execute(sql, params).fetchone()["m"]

    def minutes_by_category_on(self, activity_date: str) -> dict[str, int]:
        rows = get_db().execute(
            "SELECT category, SUM(minutes) AS m FROM activities "
            "WHERE student_id = ? AND date = ? GROUP BY category",
            (self.student_id, activity_date),
        ).fetchall()
        return {r["category"]: r["m"] for r in rows}

    def has_date(self, activity_date: str) -> bool:
        row = get_db().execute(
            "SELECT 1 FROM activities WHERE student_id = ? AND date = ? LIMIT 1",
            (self.student_id, activity_date),
        ).fetchone()
        return row is not None

    def page(self, page: int, per_page: int) -> tuple[list[dict], int]:
        db = get_db()
        total = db.execute(
            "SELECT COUNT(*) AS c FROM activities WHERE student_id = ?", (self.student_id,)
        ).fetchone()["c"]
        rows = db.execute(
            "SELECT * FROM activities WHERE student_id = ? ORDER BY date DESC, id DESC "
            "LIMIT ? OFFSET ?",
            (self.student_id, per_page, (page - 1) * per_page),
        ).fetchall()
        return [self.to_dict(r) for r in rows], total

    def minutes_by_category(self) -> dict[str, int]:
        rows = get_db().execute(
            "SELECT category, SUM(minutes) AS m FROM activities WHERE student_id = ? GROUP BY category",
            (self.student_id,),
        ).fetchall()
        return {r["category"]: r["m"] for r in rows}

    def stat_point_sums(self) -> dict[str, int]:
        rows = get_db().execute(
            "SELECT stat, SUM(stat_points) AS p FROM activities WHERE student_id = ? GROUP BY stat",
            (self.student_id,),
        ).fetchall()
        return {r["stat"]: r["p"] for r in rows}

    def totals(self) -> dict:
        row = get_db().execute(
            "SELECT COALESCE(SUM(xp_earned), 0) AS xp, COALESCE(SUM(minutes), 0) AS minutes, "
            "COUNT(DISTINCT date) AS days FROM activities WHERE student_id = ?",
            (self.student_id,),
        ).fetchone()
        return {"xp": row["xp"], "minutes": row["minutes"], "days": row["days"]}

    def daily_totals(self, start: str, end: str) -> dict[str, dict]:
        """Per-date XP, minutes and activity count between two ISO dates (inclusive)."""
        rows = get_db().execute(
            "SELECT date, SUM(xp_earned) AS xp, SUM(minutes) AS minutes, COUNT(*) AS n "
            "FROM activities WHERE student_id = ? AND date >= ? AND date <= ? GROUP BY date",
            (self.student_id, start, end),
        ).fetchall()
        return {r["date"]: {"xp": r["xp"], "minutes": r["minutes"], "activities": r["n"]} for r in rows}

    def metrics(self, start: Optional[str] = None, end: Optional[str] = None) -> dict:
        """Activity aggregates used by achievement checks, optionally date-windowed."""
        db = get_db()
        where, extra = _window("date", start, end)
        params = [self.student_id, *extra]

        head = db.execute(
            "SELECT COUNT(*) AS n, COALESCE(SUM(minutes), 0) AS minutes, "
            "COALESCE(MAX(minutes), 0) AS longest, COUNT(DISTINCT category) AS cats, "
            "COUNT(DISTINCT date) AS days, "
            "COUNT(DISTINCT CASE WHEN strftime('%w', date) IN ('0', '6') THEN date END) AS weekend "
            f"FROM activities WHERE student_id = ?{where}",
            params,
        ).fetchone()

        per_cat = db.execute(
            "SELECT category, COUNT(*) AS n, SUM(minutes) AS minutes "
            f"FROM activities WHERE student_id = ?{where} GROUP BY category",
            params,
        ).fetchall()

        daily = db.execute(
            "SELECT MAX(m) AS max_minutes, MAX(x) AS max_xp, MAX(c) AS max_cats FROM ("
            "SELECT SUM(minutes) AS m, SUM(xp_earned) AS x, COUNT(DISTINCT category) AS c "
            f"FROM activities WHERE student_id = ?{where} GROUP BY date)",
            params,
        ).fetchone()

        return {
            "total_activities": head["n"],
            "total_minutes": head["minutes"],
            "single_activity_minutes": head["longest"],
            "unique_categories": head["cats"],
            "active_days": head["days"],
            "weekend_days": head["weekend"],
            "category_count": {r["category"]: r["n"] for r in per_cat},
            "category_minutes": {r["category"]: r["minutes"] for r in per_cat},
            "daily_minutes": daily["max_minutes"] or 0,
            "daily_xp": daily["max_xp"] or 0,
            "daily_categories": daily["max_cats"] or 0,
        }

    @staticmethod
    def to_dict(row: sqlite3.Row) -> dict:
        return {
            "id": row["id"],
            "title": row["title"],
            "description": row["description"],
            "category": row["category"],
            "minutes": row["minutes"],
            "date": row["date"],
            "xp_earned": row["xp_earned"],
            "stat": row["stat"],
            "stat_points": row["stat_points"],
            "xp_rate": row["xp_rate"],
            "created_at": row["created_at"],
        }


# ── Plans ────────────────────────────────────────────────────────────


class PlanStoreDB:
    """Daily plans and their items. One plan per student per date."""

    def __init__(self, student_id: int):
        self.student_id = student_id

    def create(self, plan_date: str, items: list[dict]) -> int:
        db = get_db()
        try:
            cur = db.execute(
                "INSERT INTO plans (student_id, date, created_at) VALUES (?, ?, ?)",
                (self.student_id, plan_date, _now()),
            )
        except sqlite3.IntegrityError:
            raise ConflictError("A plan already exists for this date", date=plan_date)
        self._insert_items(cur.lastrowid, items)
        return cur.lastrowid

    def replace_items(self, plan_id: int, items: list[dict]) -> None:
        plan = self.get(plan_id)
        if plan["finalized"]:
            raise ConflictError("Plan is already finalized", plan_id=plan_id)
        db = get_db()
        db.execute("DELETE FROM plan_items WHERE plan_id = ?", (plan_id,))
        db.execute("UPDATE plans SET is_completed = 0, completed_at = '' WHERE id = ?", (plan_id,))
        self._insert_items(plan_id, items)

    def _insert_items(self, plan_id: int, items: list[dict]) -> None:
        db = get_db()
        for pos, item in enumerate(items):
            db.execute(
                "INSERT INTO plan_items (plan_id, title, category, target_minutes, position) "
                "VALUES (?, ?, ?, ?, ?)",
                (plan_id, item["title"], item["category"], item.get("target_minutes", 0), pos),
            )

    def get(self, plan_id: int) -> dict:
        db = get_db()
        row = db.execute("SELECT * FROM plans WHERE id = ?", (plan_id,)).fetchone()
        if not row or row["student_id"] != self.student_id:
            raise NotFoundError("Plan not found", plan_id=plan_id)
        return self._to_dict(row)

    def for_date(self, plan_date: str) -> Optional[dict]:
        row = get_db().execute(
            "SELECT * FROM plans WHERE student_id = ? AND date = ?",
            (self.student_id, plan_date),
        ).fetchone()
        return self._to_dict(row) if row else None

    def _to_dict(self, row: sqlite3.Row) -> dict:
        items = get_db().execute(
            "SELECT * FROM plan_items WHERE plan_id = ? ORDER BY position, id", (row["id"],)
        ).fetchall()
        return {
            "id": row["id"],
            "date": row["date"],
            "is_completed": bool(row["is_completed"]),
            "finalized": bool(row["finalized"]),
            "qualified": bool(row["qualified"]),
            "completed_at": row["completed_at"],
            "items": [
                {
                    "id": i["id"],
                    "title": i["title"],
                    "category": i["category"],
                    "target_minutes": i["target_minutes"],
                    "actual_minutes": i["actual_minutes"],
                    "is_completed": bool(i["is_completed"]),
                }
                for i in items
            ],
        }

    def set_item_completed(self, item_id: int, completed: bool,
                           actual_minutes: Optional[int] = None) -> dict:
        """Flip one item and refresh the plan's completion flag. Returns the plan."""
        db = get_db()
        row = db.execute(
            "SELECT pi.id, pi.plan_id, p.student_id, p.finalized FROM plan_items pi "
            "JOIN plans p ON p.id = pi.plan_id WHERE pi.id = ?",
            (item_id,),
        ).fetchone()
        if not row or row["student_id"] != self.student_id:
            raise NotFoundError("Plan item not found", item_id=item_id)
        if row["finalized"]:
            raise ConflictError("Plan is already finalized", plan_id=row["plan_id"])
        db.execute("UPDATE plan_items SET is_completed = ? WHERE id = ?", (int(completed), item_id))
        if actual_minutes is not None:
            db.execute("UPDATE plan_items SET actual_minutes = ? WHERE id = ?", (actual_minutes, item_id))
        done, total = self.item_counts(row["plan_id"])
        all_done = total > 0 and done == total
        db.execute(
            "UPDATE plans SET is_completed = ?, completed_at = ? WHERE id = ?",
            (int(all_done), _now() if all_done else "", row["plan_id"]),
        )
        return self.get(row["plan_id"])

    def item_completed(self, item_id: int) -> bool:
        row = get_db().execute(
            "SELECT pi.is_completed FROM plan_items pi JOIN plans p ON p.id = pi.plan_id "
            "WHERE pi.id = ? AND p.student_id = ?",
            (item_id, self.student_id),
        ).fetchone()
        if not row:
            raise NotFoundError("Plan item not found", item_id=item_id)
        return bool(row["is_completed"])

    def item_counts(self, plan_id: int) -> tuple[int, int]:
        row = get_db().execute(
            "SELECT COALESCE(SUM(is_completed), 0) AS done, COUNT(*) AS total "
            "FROM plan_items WHERE plan_id = ?",
            (plan_id,),
        ).fetchone()
        return row["done"], row["total"]

    def mark_finalized(self, plan_id: int, qualified: bool) -> bool:
        """Set the finalized flag once. False when the plan was already finalized."""
        cur = get_db().execute(
            "UPDATE plans SET finalized = 1, qualified = ? WHERE id = ? AND finalized = 0",
            (int(qualified), plan_id),
        )
        return cur.rowcount == 1

    def unfinalized_before(self, plan_date: str) -> list[sqlite3.Row]:
        return get_db().execute(
            "SELECT id, date FROM plans WHERE student_id = ? AND finalized = 0 AND date < ? "
            "ORDER BY date",
            (self.student_id, plan_date),
        ).fetchall()

    def day_ratios(self, start: Optional[str] = None, end: Optional[str] = None,
                   finalized_only: bool = False) -> dict[str, tuple[int, int]]:
        """Map of plan date to (completed items, total items)."""
        where, extra = _window("p.date", start, end)
        if finalized_only:
            where += " AND p.finalized = 1"
        rows = get_db().execute(
            "SELECT p.date, COALESCE(SUM(pi.is_completed), 0) AS done, COUNT(pi.id) AS total "
            "FROM plans p LEFT JOIN plan_items pi ON pi.plan_id = p.id "
            f"WHERE p.student_id = ?{where} GROUP BY p.id ORDER BY p.date",
            [self.student_id, *extra],
        ).fetchall()
        return {r["date"]: (r["done"], r["total"]) for r in rows}

    def count(self, start: Optional[str] = None, end: Optional[str] = None) -> int:
        where, extra = _window("date", start, end)
        return get_db().execute(
            f"SELECT COUNT(*) AS c FROM plans WHERE student_id = ?{where}",
            [self.student_id, *extra],
        ).fetchone()["c"]

    def perfect_days(self, start: Optional[str] = None, end: Optional[str] = None) -> int:
        return sum(
            1 for done, total in self.day_ratios(start, end).values()
            if total > 0 and done == total
        )


# ── Achievements ─────────────────────────────────────────────────────


class AchievementStoreDB:
    """Achievement definitions. Monthly rows are deactivated, never deleted."""

    @staticmethod
    def insert_definition(defn, month_key: str = "") -> None:
        get_db().execute(
            "INSERT OR IGNORE INTO achievements (code, title, description, icon, category, "
            "difficulty, xp_reward, target, check_type, check_condition, is_monthly, month_key, "
            "is_active, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1, ?)",
            (defn.code, defn.title, defn.description, defn.icon, defn.category,
             defn.difficulty, defn.xp_reward, defn.target, defn.check_type,
             json.dumps(defn.check_condition), int(bool(month_key)), month_key, _now()),
        )

    @staticmethod
    def for_month(month_key: str) -> list[sqlite3.Row]:
        return get_db().execute(
            "SELECT * FROM achievements WHERE month_key = ? ORDER BY id", (month_key,)
        ).fetchall()

    @staticmethod
    def set_month_active(month_key: str) -> None:
        """Activate ``month_key``'s rows and deactivate every other month's."""
        db = get_db()
        db.execute(
            "UPDATE achievements SET is_active = 0 WHERE is_monthly = 1 AND month_key != ?",
            (month_key,),
        )
        db.execute("UPDATE achievements SET is_active = 1 WHERE month_key = ?", (month_key,))

    @staticmethod
    def active() -> list[sqlite3.Row]:
        return get_db().execute(
            "SELECT * FROM achievements WHERE is_active = 1 ORDER BY is_monthly, id"
        ).fetchall()

    @staticmethod
    def get(achievement_id: int) -> sqlite3.Row:
        row = get_db().execute(
            "SELECT * FROM achievements WHERE id = ?", (achievement_id,)
        ).fetchone()
        if not row:
            raise NotFoundError("Achievement not found", achievement_id=achievement_id)
        return row

    @staticmethod
    def to_dict(row: sqlite3.Row) -> dict:
        return {
            "id": row["id"],
            "code": row["code"],
            "title": row["title"],
            "description": row["description"],
            "icon": row["icon"],
            "category": row["category"],
            "difficulty": row["difficulty"],
            "xp_reward": row["xp_reward"],
            "target": row["target"],
            "check_type": row["check_type"],
            "check_condition": json.loads(row["check_condition"] or "{}"),
            "is_monthly": bool(row["is_monthly"]),
            "month_key": row["month_key"],
            "is_active": bool(row["is_active"]),
        }


class UserAchievementStoreDB:
    """Per-student achievement progress and reward claims."""

    def __init__(self, student_id: int):
        self.student_id = student_id

    def progress_map(self) -> dict[int, sqlite3.Row]:
        rows = get_db().execute(
            "SELECT * FROM user_achievements WHERE student_id = ?", (self.student_id,)
        ).fetchall()
        return {r["achievement_id"]: r for r in rows}

    def get(self, achievement_id: int) -> Optional[sqlite3.Row]:
        return get_db().execute(
            "SELECT * FROM user_achievements WHERE student_id = ? AND achievement_id = ?",
            (self.student_id, achievement_id),
        ).fetchone()

    def save_progress(self, achievement_id: int, progress: int, completed: bool) -> None:
        """Upsert progress. Progress never decreases and completion is never undone."""
        now = _now()
        get_db().execute(
            "INSERT INTO user_achievements (student_id, achievement_id, progress, completed, "
            "completed_at, updated_at) VALUES (?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(student_id, achievement_id) DO UPDATE SET "
            "progress = MAX(progress, excluded.progress), "
            "completed = MAX(completed, excluded.completed), "
            "completed_at = CASE WHEN completed = 0 AND excluded.completed = 1 "
            "THEN excluded.completed_at ELSE completed_at END, "
            "updated_at = excluded.updated_at",
            (self.student_id, achievement_id, progress, int(completed),
             now if completed else "", now),
        )

    def mark_claimed(self, achievement_id: int) -> bool:
        """Flip the claimed flag once. False unless completed and still unclaimed."""
        cur = get_db().execute(
            "UPDATE user_achievements SET claimed_reward = 1, claimed_at = ? "
            "WHERE student_id = ? AND achievement_id = ? AND completed = 1 AND claimed_reward = 0",
            (_now(), self.student_id, achievement_id),
        )
        return cur.rowcount == 1

    def claimed_reward_total(self) -> int:
        return get_db().execute(
            "SELECT COALESCE(SUM(a.xp_reward), 0) AS xp FROM user_achievements ua "
            "JOIN achievements a ON a.id = ua.achievement_id "
            "WHERE ua.student_id = ? AND ua.claimed_reward = 1",
            (self.student_id,),
        ).fetchone()["xp"]

    def visible(self) -> list[dict]:
        """Active achievements plus inactive ones still holding an unclaimed reward."""
        rows = get_db().execute(
            "SELECT a.*, ua.progress, ua.completed, ua.completed_at, ua.claimed_reward, ua.claimed_at "
            "FROM achievements a LEFT JOIN user_achievements ua "
            "ON ua.achievement_id = a.id AND ua.student_id = ? "
            "WHERE a.is_active = 1 OR (ua.completed = 1 AND ua.claimed_reward = 0) "
            "ORDER BY a.is_monthly, a.id",
            (self.student_id,),
        ).fetchall()
        out = []
        for r in rows:
            d = AchievementStoreDB.to_dict(r)
            d.update({
                "progress": r["progress"] or 0,
                "completed": bool(r["completed"]),
                "completed_at": r["completed_at"] or "",
                "claimed_reward": bool(r["claimed_reward"]),
                "claimed_at": r["claimed_at"] or "",
            })
            out.append(d)
        return out


# ── Badges ───────────────────────────────────────────────────────────


class BadgeStoreDB:
    def __init__(self, student_id: int):
        self.student_id = student_id

    def owned(self) -> set[tuple[str, int]]:
        rows = get_db().execute(
            "SELECT type, tier FROM badges WHERE student_id = ?", (self.student_id,)
        ).fetchall()
        return {(r["type"], r["tier"]) for r in rows}

    def add(self, badge_type: str, tier: int) -> bool:
        cur = get_db().execute(
            "INSERT OR IGNORE INTO badges (student_id, type, tier, earned_at) VALUES (?, ?, ?, ?)",
            (self.student_id, badge_type, tier, _now()),
        )
        return cur.rowcount == 1

    def list(self) -> list[dict]:
        rows = get_db().execute(
            "SELECT type, tier, earned_at FROM badges WHERE student_id = ? ORDER BY earned_at, id",
            (self.student_id,),
        ).fetchall()
        return [dict(r) for r in rows]


# ── Feedback ─────────────────────────────────────────────────────────


class FeedbackStoreDB:
    TYPES = ("FEEDBACK", "ENCOURAGEMENT")

    @staticmethod
    def add(activity_id: int, teacher_id: int, student_id: int, message: str,
            feedback_type: str = "FEEDBACK") -> int:
        cur = get_db().execute(
            "INSERT INTO feedbacks (activity_id, teacher_id, student_id, message, type, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (activity_id, teacher_id, student_id, message, feedback_type, _now()),
        )
        return cur.lastrowid

    @staticmethod
    def for_activity(activity_id: int) -> list[dict]:
        rows = get_db().execute(
            "SELECT f.id, f.message, f.type, f.created_at, f.teacher_id, u.name AS teacher_name "
            "FROM feedbacks f JOIN users u ON u.id = f.teacher_id "
            "WHERE f.activity_id = ? ORDER BY f.created_at DESC, f.id DESC",
            (activity_id,),
        ).fetchall()
        return [dict(r) for r in rows]


# ── Schools & users ──────────────────────────────────────────────────


class SchoolStoreDB:
    @staticmethod
    def list() -> list[dict]:
        rows = get_db().execute(
            "SELECT s.*, (SELECT COUNT(*) FROM users u WHERE u.school_id = s.id) AS member_count "
            "FROM schools s ORDER BY s.name"
        ).fetchall()
        return [dict(r) for r in rows]

    @staticmethod
    def create(name: str, code: str, region: str = "") -> int:
        try:
            cur = get_db().execute(
                "INSERT INTO schools (name, code, region, created_at) VALUES (?, ?, ?, ?)",
                (name, code, region, _now()),
            )
        except sqlite3.IntegrityError:
            raise ConflictError("School code already exists", code=code)
        return cur.lastrowid

    @staticmethod
    def get(school_id: int) -> sqlite3.Row:
        row = get_db().execute("SELECT * FROM schools WHERE id = ?", (school_id,)).fetchone()
        if not row:
            raise NotFoundError("School not found", school_id=school_id)
        return row

    @staticmethod
    def by_code(code: str) -> Optional[sqlite3.Row]:
        return get_db().execute("SELECT * FROM schools WHERE code = ?", (code,)).fetchone()


class UserStoreDB:
    ROLES = ("student", "teacher", "admin")

    @staticmethod
    def get(user_id: int) -> sqlite3.Row:
        row = get_db().execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if not row:
            raise NotFoundError("User not found", user_id=user_id)
        return row

    @staticmethod
    def by_email(email: str) -> Optional[sqlite3.Row]:
        return get_db().execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()

    @staticmethod
    def create(name: str, email: str, password_hash: str, role: str = "student",
               school_id: Optional[int] = None) -> int:
        try:
            cur = get_db().execute(
                "INSERT INTO users (name, email, password_hash, role, school_id, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (name, email, password_hash, role, school_id, _now()),
            )
        except sqlite3.IntegrityError:
            raise ConflictError("An account with this email already exists")
        return cur.lastrowid

    @staticmethod
    def page(page: int, per_page: int, role: Optional[str] = None) -> tuple[list[dict], int]:
        db = get_db()
        where, params = "", []
        if role:
            where, params = " WHERE role = ?", [role]
        total = db.execute(f"SELECT COUNT(*) AS c FROM users{where}", params).fetchone()["c"]
        rows = db.execute(
            f"SELECT id, name, email, role, school_id, created_at FROM users{where} "
            "ORDER BY id LIMIT ? OFFSET ?",
            [*params, per_page, (page - 1) * per_page],
        ).fetchall()
        return [dict(r) for r in rows], total

    @staticmethod
    def update(user_id: int, *, role: Optional[str] = None, school_id: Optional[int] = None,
               clear_school: bool = False) -> None:
        db = get_db()
        if role is not None:
            db.execute("UPDATE users SET role = ? WHERE id = ?", (role, user_id))
        if clear_school:
            db.execute("UPDATE users SET school_id = NULL WHERE id = ?", (user_id,))
        elif school_id is not None:
            db.execute("UPDATE users SET school_id = ? WHERE id = ?", (school_id, user_id))

    @staticmethod
    def students_in_school(school_id: int) -> list[dict]:
        rows = get_db().execute(
            "SELECT u.id, u.name, u.email, COALESCE(p.level, 1) AS level, "
            "COALESCE(p.total_xp, 0) AS total_xp, COALESCE(p.current_streak, 0) AS current_streak, "
            "COALESCE(p.total_minutes, 0) AS total_minutes "
            "FROM users u LEFT JOIN student_profiles p ON p.user_id = u.id "
            "WHERE u.school_id = ? AND u.role = 'student' ORDER BY u.name",
            (school_id,),
        ).fetchall()
        return [dict(r) for r in rows]

    @staticmethod
    def school_activities(school_id: int, page: int, per_page: int) -> tuple[list[dict], int]:
        db = get_db()
        total = db.execute(
            "SELECT COUNT(*) AS c FROM activities a JOIN users u ON u.id = a.student_id "
            "WHERE u.school_id = ?",
            (school_id,),
        ).fetchone()["c"]
        rows = db.execute(
            "SELECT a.*, u.name AS student_name FROM activities a "
            "JOIN users u ON u.id = a.student_id WHERE u.school_id = ? "
            "ORDER BY a.date DESC, a.id DESC LIMIT ? OFFSET ?",
            (school_id, per_page, (page - 1) * per_page),
        ).fetchall()
        items = []
        for r in rows:
            d = ActivityLogDB.to_dict(r)
            d["student_id"] = r["student_id"]
            d["student_name"] = r["student_name"]
            items.append(d)
        return items, total


# ── Leaderboard ──────────────────────────────────────────────────────


class LeaderboardStoreDB:
    """School-scoped monthly rankings."""

    def __init__(self, school_id: int):
        self.school_id = school_id

    def _ranking(self, expr: str, start: str, end: str, limit: int) -> list[dict]:
        rows = get_db().execute(
            f"SELECT u.id AS student_id, u.name, COALESCE(p.level, 1) AS level, {expr} AS value "
            "FROM activities a JOIN users u ON u.id = a.student_id "
            "LEFT JOIN student_profiles p ON p.user_id = u.id "
            "WHERE u.school_id = ? AND u.role = 'student' AND a.date >= ? AND a.date <= ? "
            "GROUP BY u.id ORDER BY value DESC, u.id LIMIT ?",
            (self.school_id, start, end, limit),
        ).fetchall()
        return [dict(r, rank=i) for i, r in enumerate(rows, 1)]

    def xp_ranking(self, start: str, end: str, limit: int = 20) -> list[dict]:
        return self._ranking("SUM(a.xp_earned)", start, end, limit)

    def minutes_ranking(self, start: str, end: str, limit: int = 10) -> list[dict]:
        return self._ranking("SUM(a.minutes)", start, end, limit)

    def streak_ranking(self, limit: int = 10) -> list[dict]:
        rows = get_db().execute(
            "SELECT u.id AS student_id, u.name, p.level, p.current_streak AS value "
            "FROM student_profiles p JOIN users u ON u.id = p.user_id "
            "WHERE u.school_id = ? AND u.role = 'student' AND p.current_streak > 0 "
            "ORDER BY p.current_streak DESC, u.id LIMIT ?",
            (self.school_id, limit),
        ).fetchall()
        return [dict(r, rank=i) for i, r in enumerate(rows, 1)]


# ── Pomodoro ─────────────────────────────────────────────────────────


class PomodoroStoreDB:
    """Focus-timer session history. The live timer itself lives in the cache."""

    def __init__(self, student_id: int):
        self.student_id = student_id

    def start(self, category: str, title: str, target_minutes: int, is_break: bool,
              started_at: str) -> int:
        cur = get_db().execute(
            "INSERT INTO pomodoro_sessions (student_id, category, title, target_minutes, "
            "is_break, status, start_time) VALUES (?, ?, ?, ?, ?, 'active', ?)",
            (self.student_id, category, title, target_minutes, int(is_break), started_at),
        )
        return cur.lastrowid

    def finish(self, session_id: int, status: str, actual_minutes: int,
               activity_id: Optional[int] = None) -> bool:
        cur = get_db().execute(
            "UPDATE pomodoro_sessions SET status = ?, actual_minutes = ?, activity_id = ?, "
            "end_time = ? WHERE id = ? AND student_id = ? AND status = 'active'",
            (status, actual_minutes, activity_id, _now(), session_id, self.student_id),
        )
        return cur.rowcount == 1

    def attach_activity(self, session_id: int, activity_id: int) -> None:
        get_db().execute(
            "UPDATE pomodoro_sessions SET activity_id = ? WHERE id = ? AND student_id = ?",
            (activity_id, session_id, self.student_id),
        )

    def close_stale(self) -> int:
        """Mark every still-active history row as expired."""
        cur = get_db().execute(
            "UPDATE pomodoro_sessions SET status = 'expired', end_time = ? "
            "WHERE student_id = ? AND status = 'active'",
            (_now(), self.student_id),
        )
        return cur.rowcount

    def completed_count(self, start: Optional[str] = None, end: Optional[str] = None) -> int:
        where, extra = _window("substr(start_time, 1, 10)", start, end)
        return get_db().execute(
            "SELECT COUNT(*) AS c FROM pomodoro_sessions "
            f"WHERE student_id = ? AND status = 'completed' AND is_break = 0{where}",
            [self.student_id, *extra],
        ).fetchone()["c"]

    def recent(self, limit: int = 10) -> list[dict]:
        rows = get_db().execute(
            "SELECT * FROM pomodoro_sessions WHERE student_id = ? ORDER BY id DESC LIMIT ?",
            (self.student_id, limit),
        ).fetchall()
        return [dict(r) for r in rows]


