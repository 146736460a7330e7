"""
Scoring engine write path.

Every mutation of a student's profile goes through this module and runs in a
single ``transaction()``: the activity row, the XP/minute/day totals, the stat
increment, the level, badge unlocks and achievement progress either all land
or none do. Pure rule functions live in scoring.py.
"""

from __future__ import annotations

import logging
import re
from datetime import date, timedelta
from typing import Optional, Union

import achievements_data
import scoring
from database import get_db, transaction
from db_stores import (
    AchievementStoreDB,
    ActivityLogDB,
    BadgeStoreDB,
    PlanStoreDB,
    PomodoroStoreDB,
    StudentProfileDB,
    UserAchievementStoreDB,
)
from errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

MONTH_KEY_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")
# month_bounds needs the first day of the following month to exist
MIN_MONTH_YEAR = 1
MAX_MONTH_YEAR = 9998


# ── Input parsing ─────────────────────────────────────────────────────


def parse_day(value: Union[str, date, None], today: date) -> date:
    if value is None or value == "":
        return today
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError("Invalid date, expected YYYY-MM-DD", date=value)


def validate_month_key(month_key: str) -> str:
    if not isinstance(month_key, str) or not MONTH_KEY_RE.match(month_key):
        raise ValidationError("Invalid month, expected YYYY-MM", month=month_key)
    if not MIN_MONTH_YEAR <= int(month_key[:4]) <= MAX_MONTH_YEAR:
        raise ValidationError("Month is out of range", month=month_key)
    return month_key


def month_key_of(day: date) -> str:
    return day.strftime("%Y-%m")


def month_bounds(month_key: str) -> tuple[str, str]:
    year, month = (int(p) for p in validate_month_key(month_key).split("-"))
    first = date(year, month, 1)
    nxt = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return first.isoformat(), (nxt - timedelta(days=1)).isoformat()


def _validate_activity(category: str, minutes) -> None:
    if category not in scoring.CATEGORIES:
        raise ValidationError("Unknown category", category=category,
                              allowed=list(scoring.CATEGORIES))
    if isinstance(minutes, bool) or not isinstance(minutes, int):
        raise ValidationError("Minutes must be an integer", minutes=minutes)
    if not scoring.MIN_ACTIVITY_MINUTES <= minutes <= scoring.MAX_ACTIVITY_MINUTES:
        raise ValidationError(
            f"Minutes must be between {scoring.MIN_ACTIVITY_MINUTES} "
            f"and {scoring.MAX_ACTIVITY_MINUTES}",
            minutes=minutes,
        )


# ── Activities ────────────────────────────────────────────────────────


def record_activity(student_id: int, category: str, minutes: int,
                    activity_date: Union[str, date, None] = None, title: str = "",
                    description: str = "", today: Optional[date] = None,
                    plan_item_id: Optional[int] = None) -> dict:
    """Record one activity and apply its XP, stat points, badges and achievements.

    With ``plan_item_id`` the matching item of one of the student's open plans is
    completed in the same transaction and its ``actual_minutes`` set.
    """
    with transaction():
        return apply_activity(student_id, category, minutes, activity_date,
                              title=title, description=description, today=today,
                              plan_item_id=plan_item_id)


def apply_activity(student_id: int, category: str, minutes: int,
                   activity_date: Union[str, date, None] = None, title: str = "",
                   description: str = "", today: Optional[date] = None,
                   plan_item_id: Optional[int] = None) -> dict:
    """``record_activity`` for callers already inside a transaction."""
    today = today or date.today()
    _validate_activity(category, minutes)
    day = parse_day(activity_date, today)
    if day > today:
        raise ValidationError("Activity date cannot be in the future", date=day.isoformat())

    profiles = StudentProfileDB(student_id)
    activities = ActivityLogDB(student_id)
    profiles.ensure()
    _settle(student_id, today)
    before = profiles.get()
    plan = None
    if plan_item_id is not None:
        plan = PlanStoreDB(student_id).set_item_completed(plan_item_id, True, actual_minutes=minutes)

    logged_today = activities.minutes_on(day.isoformat(), category)
    capped = scoring.calculate_capped_xp(
        minutes, category, logged_today,
        has_streak=scoring.has_streak_bonus(before["current_streak"]),
    )
    new_day = not activities.has_date(day.isoformat())
    profiles.add_totals(xp=capped.xp, minutes=minutes, days=1 if new_day else 0)

    after = profiles.get()
    info = scoring.level_of(after["total_xp"])
    if info.level != after["level"]:
        profiles.set_level(info.level)

    stat = scoring.stat_for(category)
    applied = scoring.clamp_stat_increase(scoring.stat_points(capped.xp), after[stat], info.level)
    if applied:
        profiles.add_stat(stat, applied)

    activity_id = activities.add(
        category=category, minutes=minutes, activity_date=day.isoformat(),
        xp_earned=capped.xp, stat=stat, stat_points=applied, xp_rate=capped.xp_rate,
        title=title, description=description,
    )

    new_badges = award_badges(student_id)
    completed = evaluate_achievements(student_id, today)
    profile = profiles.get()

    logger.info(
        "activity recorded student=%s category=%s minutes=%d xp=%d rate=%s %s+%d level=%d",
        student_id, category, minutes, capped.xp, capped.xp_rate, stat, applied, profile["level"],
    )
    result = {
        "activity_id": activity_id,
        "xp_earned": capped.xp,
        "stat": stat,
        "stat_points": applied,
        "xp_rate": capped.xp_rate,
        "total_xp": profile["total_xp"],
        "level": profile["level"],
        "streak": profile["current_streak"],
        "new_badges": new_badges,
        "completed_achievements": completed,
    }
    if plan is not None:
        result["plan"] = plan
    if profile["level"] > before["level"]:
        result["new_level"] = profile["level"]
    return result


def daily_stats(student_id: int, today: Optional[date] = None) -> dict:
    """Per-category cap status for today."""
    today = today or date.today()
    logged = ActivityLogDB(student_id).minutes_by_category_on(today.isoformat())
    return {
        "date": today.isoformat(),
        "categories": {
            c: scoring.category_cap_status(c, logged.get(c, 0)) for c in scoring.CATEGORIES
        },
    }


# ── Streak ────────────────────────────────────────────────────────────


def _finalize(student_id: int, plan_id: int, plan_date: date) -> dict:
    plans = PlanStoreDB(student_id)
    profiles = StudentProfileDB(student_id)
    done, total = plans.item_counts(plan_id)
    qualified = scoring.qualifies_for_streak(done, total)
    if not plans.mark_finalized(plan_id, qualified):
        raise ConflictError("Plan is already finalized", plan_id=plan_id)

    profile = profiles.get()
    last = date.fromisoformat(profile["last_streak_date"]) if profile["last_streak_date"] else None
    if last is not None and plan_date <= last:
        # Out-of-order plan; the streak already covers this day.
        streak = profile["current_streak"]
    elif qualified:
        streak = scoring.next_streak(profile["current_streak"], last, plan_date, True)
        profiles.set_streak(streak, plan_date.isoformat())
    else:
        streak = 0
        profiles.set_streak(0)
    logger.info("plan finalized student=%s plan=%s ratio=%d/%d qualified=%s streak=%d",
                student_id, plan_id, done, total, qualified, streak)
    return {"plan_id": plan_id, "qualified": qualified, "completed": done, "total": total,
            "streak": streak}


def _finalize_pending(student_id: int, before: date) -> None:
    for row in PlanStoreDB(student_id).unfinalized_before(before.isoformat()):
        _finalize(student_id, row["id"], date.fromisoformat(row["date"]))


def _expire_streak(student_id: int, today: date) -> None:
    profiles = StudentProfileDB(student_id)
    profile = profiles.get()
    if not profile["current_streak"]:
        return
    last = profile["last_streak_date"]
    if not last or date.fromisoformat(last) < today - timedelta(days=1):
        profiles.set_streak(0)
        logger.info("streak expired student=%s last=%s", student_id, last)


def _settle(student_id: int, today: date) -> None:
    _finalize_pending(student_id, today)
    _expire_streak(student_id, today)


def settle_streak(student_id: int, today: Optional[date] = None) -> int:
    """Finalize past plans and expire a lapsed streak. Returns the current streak."""
    today = today or date.today()
    with transaction():
        StudentProfileDB(student_id).ensure()
        _settle(student_id, today)
        return StudentProfileDB(student_id).get()["current_streak"]


def finalize_plan(student_id: int, plan_id: int, today: Optional[date] = None) -> dict:
    today = today or date.today()
    with transaction():
        StudentProfileDB(student_id).ensure()
        plan = PlanStoreDB(student_id).get(plan_id)
        plan_date = date.fromisoformat(plan["date"])
        if plan_date > today:
            raise ValidationError("Cannot finalize a plan dated in the future", date=plan["date"])
        if plan["finalized"]:
            raise ConflictError("Plan is already finalized", plan_id=plan_id)
        _finalize_pending(student_id, plan_date)
        result = _finalize(student_id, plan_id, plan_date)
        _expire_streak(student_id, today)
        result["streak"] = StudentProfileDB(student_id).get()["current_streak"]
        result["new_badges"] = award_badges(student_id)
        result["completed_achievements"] = evaluate_achievements(student_id, today)
        return result


def toggle_plan_item(student_id: int, item_id: int, completed: bool,
                     today: Optional[date] = None) -> dict:
    today = today or date.today()
    with transaction():
        StudentProfileDB(student_id).ensure()
        _settle(student_id, today)
        plan = PlanStoreDB(student_id).set_item_completed(item_id, completed)
        finished = evaluate_achievements(student_id, today)
    return {"plan": plan, "completed_achievements": finished}


# ── Badges ────────────────────────────────────────────────────────────


def award_badges(student_id: int) -> list[dict]:
    badges = BadgeStoreDB(student_id)
    profile = StudentProfileDB(student_id).get()
    earned = scoring.earned_badges(
        ActivityLogDB(student_id).minutes_by_category(),
        profile["level"], profile["current_streak"], badges.owned(),
    )
    new = []
    for c in earned:
        if badges.add(c.type, c.tier):
            logger.info("badge earned student=%s type=%s tier=%d", student_id, c.type, c.tier)
            new.append({"type": c.type, "tier": c.tier, "name": c.name, "icon": c.icon})
    return new


def badge_overview(student_id: int) -> list[dict]:
    owned = {(b["type"], b["tier"]): b["earned_at"] for b in BadgeStoreDB(student_id).list()}
    return [
        {
            "type": c.type,
            "tier": c.tier,
            "name": c.name,
            "description": c.description,
            "icon": c.icon,
            "earned": (c.type, c.tier) in owned,
            "earned_at": owned.get((c.type, c.tier), ""),
        }
        for c in scoring.BADGE_CRITERIA
    ]


# ── Achievements ──────────────────────────────────────────────────────


def sync_base_achievements() -> None:
    db = get_db()
    have = db.execute("SELECT COUNT(*) AS c FROM achievements WHERE month_key = ''").fetchone()["c"]
    if have < len(achievements_data.BASE_ACHIEVEMENTS):
        for defn in achievements_data.BASE_ACHIEVEMENTS:
            AchievementStoreDB.insert_definition(defn)


class _Metrics:
    """Lazily computed metric snapshots, one per date window."""

    def __init__(self, student_id: int):
        self.student_id = student_id
        self._activity: dict[str, dict] = {}
        self._profile = StudentProfileDB(student_id).get()

    def _window(self, month_key: str) -> tuple[Optional[str], Optional[str]]:
        return month_bounds(month_key) if month_key else (None, None)

    def value(self, check_type: str, condition: dict, month_key: str) -> int:
        start, end = self._window(month_key)
        if check_type == "level":
            return self._profile["level"]
        if check_type == "consecutive_days":
            return self._profile["current_streak"]
        if check_type == "plans_created":
            return PlanStoreDB(self.student_id).count(start, end)
        if check_type == "perfect_days":
            return PlanStoreDB(self.student_id).perfect_days(start, end)
        if check_type == "pomodoro_sessions":
            return PomodoroStoreDB(self.student_id).completed_count(start, end)

        if month_key not in self._activity:
            self._activity[month_key] = ActivityLogDB(self.student_id).metrics(start, end)
        snap = self._activity[month_key]
        if check_type in ("category_count", "category_minutes"):
            return snap[check_type].get(condition.get("category", ""), 0)
        if check_type not in snap:
            logger.warning("unknown achievement check_type=%s", check_type)
            return 0
        return snap[check_type]


def evaluate_achievements(student_id: int, today: Optional[date] = None) -> list[dict]:
    """Refresh progress on every active achievement. Returns the newly completed ones.

    Must run inside a transaction.
    """
    sync_base_achievements()
    metrics = _Metrics(student_id)
    progress = UserAchievementStoreDB(student_id)
    existing = progress.progress_map()
    newly_completed = []

    for row in AchievementStoreDB.active():
        prev = existing.get(row["id"])
        if prev is not None and prev["completed"]:
            continue
        defn = AchievementStoreDB.to_dict(row)
        value = metrics.value(defn["check_type"], defn["check_condition"], defn["month_key"])
        new_progress = max(prev["progress"] if prev else 0, min(value, defn["target"]))
        done = new_progress >= defn["target"]
        if prev is None and new_progress == 0:
            continue
        if prev is not None and new_progress == prev["progress"] and not done:
            continue
        progress.save_progress(row["id"], new_progress, done)
        if done:
            logger.info("achievement completed student=%s code=%s month=%s",
                        student_id, defn["code"], defn["month_key"] or "-")
            newly_completed.append({
                "id": defn["id"], "code": defn["code"], "title": defn["title"],
                "xp_reward": defn["xp_reward"],
            })
    return newly_completed


def list_achievements(student_id: int) -> list[dict]:
    with transaction():
        StudentProfileDB(student_id).ensure()
        evaluate_achievements(student_id)
    return UserAchievementStoreDB(student_id).visible()


def claim_achievement(student_id: int, achievement_id: int) -> dict:
    """Grant an achievement's XP reward exactly once."""
    with transaction():
        profiles = StudentProfileDB(student_id)
        profiles.ensure()
        achievement = AchievementStoreDB.get(achievement_id)
        progress = UserAchievementStoreDB(student_id)

        if not progress.mark_claimed(achievement_id):
            row = progress.get(achievement_id)
            if row is not None and row["claimed_reward"]:
                raise ConflictError("Reward already claimed", achievement_id=achievement_id)
            raise ValidationError("Achievement is not completed yet", achievement_id=achievement_id)

        reward = achievement["xp_reward"]
        profiles.add_totals(xp=reward)
        profile = profiles.get()
        info = scoring.level_of(profile["total_xp"])
        if info.level != profile["level"]:
            profiles.set_level(info.level)
        new_badges = award_badges(student_id)
        logger.info("achievement claimed student=%s code=%s reward=%d total_xp=%d",
                    student_id, achievement["code"], reward, profile["total_xp"])
        return {
            "granted": True,
            "achievement_id": achievement_id,
            "xp_reward": reward,
            "total_xp": profile["total_xp"],
            "level": info.level,
            "new_badges": new_badges,
        }


def rotate_achievements(month_key: str) -> list[dict]:
    """Activate ``month_key``'s monthly set, creating it on first use."""
    validate_month_key(month_key)
    with transaction():
        sync_base_achievements()
        rows = AchievementStoreDB.for_month(month_key)
        created = not rows
        if created:
            for defn in achievements_data.select_monthly(month_key):
                AchievementStoreDB.insert_definition(defn, month_key)
        AchievementStoreDB.set_month_active(month_key)
        rows = AchievementStoreDB.for_month(month_key)
    logger.info("achievements rotated month=%s count=%d created=%s", month_key, len(rows), created)
    return [AchievementStoreDB.to_dict(r) for r in rows]


# ── Verification ──────────────────────────────────────────────────────


def verify_totals(student_id: int, today: Optional[date] = None) -> dict:
    """Recompute the profile's derived fields from history and report drift."""
    today = today or date.today()
    profile = StudentProfileDB(student_id).get()
    if profile is None:
        raise NotFoundError("Student profile not found", student_id=student_id)

    activities = ActivityLogDB(student_id)
    totals = activities.totals()
    sums = activities.stat_point_sums()
    claimed = UserAchievementStoreDB(student_id).claimed_reward_total()

    expected = {
        "total_xp": totals["xp"] + claimed,
        "total_minutes": totals["minutes"],
        "total_days": totals["days"],
    }
    expected["level"] = scoring.level_of(expected["total_xp"]).level
    for stat in scoring.STATS:
        expected[stat] = scoring.BASE_STAT + sums.get(stat, 0)

    last = profile["last_streak_date"]
    ratios = {
        date.fromisoformat(d): r
        for d, r in PlanStoreDB(student_id).day_ratios(finalized_only=True).items()
    }
    if last and date.fromisoformat(last) >= today - timedelta(days=1):
        last_day = date.fromisoformat(last)
        if any(d > last_day for d in ratios):
            # a later finalized day failed the ratio
            expected["current_streak"] = 0
        else:
            expected["current_streak"] = scoring.streak_from_history(ratios, last_day)
    else:
        expected["current_streak"] = 0

    drift = {
        key: {"stored": profile[key], "expected": value}
        for key, value in expected.items()
        if profile[key] != value
    }
    if drift:
        logger.warning("profile drift student=%s fields=%s", student_id, sorted(drift))
    return {"student_id": student_id, "ok": not drift, "drift": drift}
