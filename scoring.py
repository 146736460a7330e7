"""
Scoring rules: leveling curve, XP calculator, stat allocator, daily category
cap, streak ratio and badge criteria.

Everything here is pure. The write path that applies these numbers to a
student profile lives in gamification.py.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

# ── Categories & stats ────────────────────────────────────────────────

CATEGORIES = ("STUDY", "EXERCISE", "READING", "HOBBY", "VOLUNTEER", "OTHER")

STATS = ("strength", "intelligence", "dexterity", "charisma", "vitality")

CATEGORY_STAT_MAP = {
    "EXERCISE": "strength",
    "STUDY": "intelligence",
    "READING": "intelligence",
    "HOBBY": "dexterity",
    "VOLUNTEER": "charisma",
    "OTHER": "vitality",
}

CATEGORY_XP_WEIGHT = {
    "STUDY": 1.2,
    "EXERCISE": 1.0,
    "READING": 1.1,
    "HOBBY": 0.9,
    "VOLUNTEER": 1.1,
    "OTHER": 0.8,
}

# Minutes per category per day that earn XP at the full rate.
CATEGORY_DAILY_LIMIT = {
    "STUDY": 240,
    "READING": 180,
    "EXERCISE": 120,
    "HOBBY": 120,
    "VOLUNTEER": 240,
    "OTHER": 60,
}

STAT_DESCRIPTIONS = {
    "strength": {"name": "Strength (STR)", "description": "Physical power built through exercise"},
    "intelligence": {"name": "Intelligence (INT)", "description": "Knowledge from study and reading"},
    "dexterity": {"name": "Dexterity (DEX)", "description": "Craft and agility from hobbies"},
    "charisma": {"name": "Charisma (CHA)", "description": "Leadership grown by volunteering"},
    "vitality": {"name": "Vitality (VIT)", "description": "All-round energy from everything else"},
}

BASE_STAT = 10
MAX_STAT = 100
STAT_CAP_PER_LEVEL = 10
MAX_LEVEL = 100

XP_BUCKET_MINUTES = 10
STREAK_BONUS_MULTIPLIER = 1.2
STREAK_BONUS_MIN_DAYS = 3
REDUCED_XP_RATE = 0.5

MIN_ACTIVITY_MINUTES = 1
MAX_ACTIVITY_MINUTES = 720

# Completion ratio of 7/10 qualifies a day for the streak.
STREAK_RATIO_NUM = 7
STREAK_RATIO_DEN = 10


# ── Leveling curve ────────────────────────────────────────────────────

@dataclass(frozen=True)
class LevelInfo:
    level: int
    current_xp: int
    required_xp: int

    @property
    def progress_pct(self) -> int:
        if self.required_xp <= 0:
            return 100
        return min(100, int(self.current_xp / self.required_xp * 100))


def required_xp(level: int) -> int:
    """XP needed to go from ``level`` to ``level + 1``."""
    return math.floor(100 * 1.05 ** (level - 1))


def level_of(total_xp: int) -> LevelInfo:
    level = 1
    remaining = max(0, total_xp)
    while remaining >= required_xp(level):
        remaining -= required_xp(level)
        level += 1
        if level >= MAX_LEVEL:
            break
    return LevelInfo(level=level, current_xp=remaining, required_xp=required_xp(level))


# ── XP calculator ─────────────────────────────────────────────────────

def bucket_minutes(minutes: int) -> int:
    return (minutes // XP_BUCKET_MINUTES) * XP_BUCKET_MINUTES


def has_streak_bonus(current_streak: int) -> bool:
    return current_streak >= STREAK_BONUS_MIN_DAYS


def calculate_xp(minutes: int, category: str, has_streak: bool = False) -> int:
    base = bucket_minutes(minutes)
    streak = STREAK_BONUS_MULTIPLIER if has_streak else 1.0
    return math.floor(base * CATEGORY_XP_WEIGHT[category] * streak)


@dataclass(frozen=True)
class CappedXP:
    xp: int
    full_minutes: int
    reduced_minutes: int

    @property
    def xp_rate(self) -> str:
        if self.reduced_minutes == 0:
            return "normal"
        if self.full_minutes == 0:
            return "reduced"
        return "partial"


def calculate_capped_xp(minutes: int, category: str, logged_today: int,
                        has_streak: bool = False) -> CappedXP:
    """XP for an activity given the minutes already logged today in its category.

    Minutes are bucketed first, then split at the remaining full-rate
    allowance; the overflow counts at ``REDUCED_XP_RATE``. A single floor is
    applied at the end.
    """
    bucketed = bucket_minutes(minutes)
    allowance = max(0, CATEGORY_DAILY_LIMIT[category] - logged_today)
    full = min(bucketed, allowance)
    over = bucketed - full
    weighted = (full + over * REDUCED_XP_RATE) * CATEGORY_XP_WEIGHT[category]
    if has_streak:
        weighted *= STREAK_BONUS_MULTIPLIER
    return CappedXP(xp=math.floor(weighted), full_minutes=full, reduced_minutes=over)


def category_cap_status(category: str, logged_today: int) -> dict:
    limit = CATEGORY_DAILY_LIMIT[category]
    reached = logged_today >= limit
    return {
        "total_minutes": logged_today,
        "limit": limit,
        "is_limit_reached": reached,
        "remaining_minutes": max(0, limit - logged_today),
        "xp_rate": "reduced" if reached else "normal",
    }


# ── Stat allocator ────────────────────────────────────────────────────

def stat_points(xp: int) -> int:
    return xp // 10


def stat_for(category: str) -> str:
    return CATEGORY_STAT_MAP[category]


def stat_cap(level: int) -> int:
    return min(BASE_STAT + STAT_CAP_PER_LEVEL * level, MAX_STAT)


def clamp_stat_increase(points: int, current: int, level: int) -> int:
    """Portion of ``points`` that fits under the level's stat cap."""
    return max(0, min(points, stat_cap(level) - current))


# ── Streak ratio ──────────────────────────────────────────────────────

def qualifies_for_streak(completed: int, total: int) -> bool:
    if total <= 0:
        return False
    return completed * STREAK_RATIO_DEN >= total * STREAK_RATIO_NUM


def next_streak(current: int, last_date: Optional[date], plan_date: date, qualified: bool) -> int:
    if not qualified:
        return 0
    if last_date is not None and last_date == plan_date - timedelta(days=1):
        return current + 1
    return 1


def streak_from_history(day_ratios: dict[date, tuple[int, int]], end: date) -> int:
    """Backward day-by-day scan ending at ``end``; verifies the incremental counter.

    ``day_ratios`` maps plan date to (completed items, total items). The
    first day without a qualifying plan stops the scan.
    """
    day = end
    count = 0
    while qualifies_for_streak(*day_ratios.get(day, (0, 0))):
        count += 1
        day -= timedelta(days=1)
    return count


# ── Badges ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class BadgeCriteria:
    type: str
    tier: int
    name: str
    description: str
    icon: str
    metric: str
    threshold: int


def _tiers(badge_type: str, metric: str, names: tuple[str, str, str],
           thresholds: tuple[int, int, int], icon: str, unit: str) -> list[BadgeCriteria]:
    out = []
    for tier, (name, threshold) in enumerate(zip(names, thresholds), 1):
        if unit == "minutes":
            description = f"Log {threshold // 60} hours"
        else:
            description = f"Reach {unit} {threshold}"
        out.append(BadgeCriteria(badge_type, tier, name, description, icon, metric, threshold))
    return out


BADGE_CRITERIA: list[BadgeCriteria] = [
    *_tiers("STUDY_MASTER", "minutes:STUDY", ("Study Novice", "Study Adept", "Study Master"),
            (600, 1800, 3000), "book", "minutes"),
    *_tiers("FITNESS_GURU", "minutes:EXERCISE", ("Fitness Novice", "Fitness Adept", "Fitness Guru"),
            (600, 1800, 3000), "run", "minutes"),
    *_tiers("BOOKWORM", "minutes:READING", ("Reading Novice", "Reading Fan", "Bookworm"),
            (600, 1800, 3000), "bookmark", "minutes"),
    *_tiers("HOBBY_EXPERT", "minutes:HOBBY", ("Hobby Novice", "Hobby Fan", "Hobby Expert"),
            (600, 1800, 3000), "palette", "minutes"),
    *_tiers("VOLUNTEER_HERO", "minutes:VOLUNTEER", ("Volunteer Novice", "Volunteer Angel", "Volunteer Hero"),
            (300, 900, 1800), "handshake", "minutes"),
    *_tiers("STREAK_KEEPER", "streak", ("3-Day Streak", "7-Day Streak", "14-Day Streak"),
            (3, 7, 14), "fire", "streak"),
    *_tiers("LEVEL_MILESTONE", "level", ("Level 10", "Level 25", "Level 50"),
            (10, 25, 50), "star", "level"),
]


def badge_metric(criteria: BadgeCriteria, minutes_by_category: dict[str, int],
                 level: int, current_streak: int) -> int:
    if criteria.metric == "level":
        return level
    if criteria.metric == "streak":
        return current_streak
    _, category = criteria.metric.split(":", 1)
    return minutes_by_category.get(category, 0)


def earned_badges(minutes_by_category: dict[str, int], level: int, current_streak: int,
                  owned: set[tuple[str, int]]) -> list[BadgeCriteria]:
    """Badges whose threshold is met and which are not in ``owned``."""
    return [
        c for c in BADGE_CRITERIA
        if (c.type, c.tier) not in owned
        and badge_metric(c, minutes_by_category, level, current_streak) >= c.threshold
    ]
