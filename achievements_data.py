"""
Achievement catalogue and monthly selection.

Three groups of definitions:

- ``BASE_ACHIEVEMENTS`` are always active and measured over a student's whole
  history.
- ``ROTATION_POOL`` holds the candidates drawn for a month's rotation.
- ``MONTHLY_SPECIALS`` are themed goals tied to one calendar month.

Monthly rows (pool draws and specials) are measured only over activity inside
their month. ``select_monthly`` is deterministic for a given month key so that
re-running a rotation always yields the same set.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field

CHECK_TYPES = {
    "total_activities",
    "category_count",
    "total_minutes",
    "category_minutes",
    "daily_minutes",
    "daily_xp",
    "single_activity_minutes",
    "unique_categories",
    "daily_categories",
    "active_days",
    "weekend_days",
    "level",
    "consecutive_days",
    "perfect_days",
    "plans_created",
    "pomodoro_sessions",
}

DIFFICULTIES = ("EASY", "MEDIUM", "HARD", "LEGENDARY")

# Pool draws per difficulty for each month.
MONTHLY_DRAW_COUNTS = {"EASY": 2, "MEDIUM": 3, "HARD": 2}


@dataclass(frozen=True)
class AchievementDefinition:
    code: str
    title: str
    description: str
    icon: str
    category: str
    difficulty: str
    xp_reward: int
    target: int
    check_type: str
    check_condition: dict = field(default_factory=dict)
    month: int = 0


A = AchievementDefinition

BASE_ACHIEVEMENTS: list[AchievementDefinition] = [
    A("first_activity", "First Step", "Log your first activity", "baby",
      "STUDY", "EASY", 10, 1, "total_activities"),
    A("polyglot", "Polyglot", "Log 3 different categories in one day", "globe",
      "STUDY", "MEDIUM", 50, 3, "daily_categories"),
    A("sprinter", "Sprinter", "Log 8 hours in a single day", "run",
      "STUDY", "HARD", 120, 480, "daily_minutes"),
    A("steady_turtle", "Steady Turtle", "Keep a 30-day plan streak", "turtle",
      "STREAK", "LEGENDARY", 200, 30, "consecutive_days"),
    A("combo_master", "Combo Master", "Keep a 5-day plan streak", "burst",
      "STREAK", "HARD", 100, 5, "consecutive_days"),
    A("xp_hunter", "XP Hunter", "Earn 500 XP in one day", "gem",
      "LEVEL", "MEDIUM", 50, 500, "daily_xp"),
    A("level_10", "Level 10", "Reach level 10", "trophy",
      "LEVEL", "HARD", 100, 10, "level"),
    A("marathon_runner", "Marathon Runner", "Log a single activity of 3 hours", "runner",
      "TIME", "HARD", 80, 180, "single_activity_minutes"),
    A("balanced_life", "Balanced Life", "Log every category at least once", "scale",
      "SPECIAL", "MEDIUM", 50, 6, "unique_categories"),
    A("hundred_hours", "100 Hours", "Log 100 hours in total", "clock",
      "TIME", "HARD", 200, 6000, "total_minutes"),
    A("goal_setter", "Goal Setter", "Create 10 daily plans", "target",
      "PLAN", "EASY", 30, 10, "plans_created"),
    A("goal_achiever", "Goal Achiever", "Complete every item of 10 daily plans", "check",
      "PLAN", "HARD", 120, 10, "perfect_days"),
    A("pomodoro_master", "Pomodoro Master", "Complete 25 focus sessions", "tomato",
      "TIME", "MEDIUM", 50, 25, "pomodoro_sessions"),
]

ROTATION_POOL: list[AchievementDefinition] = [
    A("fitness_starter", "Warm Up", "Log an exercise activity", "muscle",
      "FITNESS", "EASY", 15, 1, "category_count", {"category": "EXERCISE"}),
    A("bookworm_beginner", "Bookworm Beginner", "Log 10 reading activities", "books",
      "READING", "EASY", 30, 10, "category_count", {"category": "READING"}),
    A("first_plan", "Planner", "Create 3 daily plans", "calendar",
      "PLAN", "EASY", 20, 3, "plans_created"),
    A("focus_starter", "Focus Starter", "Complete 3 focus sessions", "tomato",
      "TIME", "EASY", 20, 3, "pomodoro_sessions"),
    A("volunteer_hero", "Volunteer Hero", "Log 10 volunteer activities", "hero",
      "SPECIAL", "MEDIUM", 80, 10, "category_count", {"category": "VOLUNTEER"}),
    A("hobby_enthusiast", "Hobby Enthusiast", "Log 20 hobby activities", "palette",
      "SPECIAL", "MEDIUM", 60, 20, "category_count", {"category": "HOBBY"}),
    A("reading_marathon", "Reading Marathon", "Read for 20 hours", "book",
      "READING", "MEDIUM", 80, 1200, "category_minutes", {"category": "READING"}),
    A("week_warrior", "Week Warrior", "Keep a 7-day plan streak", "sword",
      "STREAK", "MEDIUM", 100, 7, "consecutive_days"),
    A("regular", "Regular", "Be active on 15 days", "calendar",
      "TIME", "MEDIUM", 70, 15, "active_days"),
    A("diversity_master", "Diversity Master", "Log 5 categories in one day", "rainbow",
      "SPECIAL", "HARD", 100, 5, "daily_categories"),
    A("fitness_champion", "Fitness Champion", "Log 50 exercise activities", "medal",
      "FITNESS", "HARD", 100, 50, "category_count", {"category": "EXERCISE"}),
    A("study_marathon", "Study Marathon", "Study for 40 hours", "grad",
      "STUDY", "HARD", 150, 2400, "category_minutes", {"category": "STUDY"}),
]

MONTHLY_SPECIALS: list[AchievementDefinition] = [
    A("january_resolution", "Keep the Resolution", "Be active on 25 days in January", "fireworks",
      "MONTHLY", "HARD", 200, 25, "active_days", month=1),
    A("february_focus", "February Focus", "Complete 14 focus sessions", "heart",
      "MONTHLY", "MEDIUM", 100, 14, "pomodoro_sessions", month=2),
    A("march_outdoor", "Outdoor Spirit", "Log 20 exercise activities", "sprout",
      "MONTHLY", "MEDIUM", 80, 20, "category_count", {"category": "EXERCISE"}, month=3),
    A("april_bloom", "Blossom Sprint", "Log 100 hours in April", "blossom",
      "MONTHLY", "LEGENDARY", 300, 6000, "total_minutes", month=4),
    A("may_family", "Weekend Together", "Be active on 8 weekend days", "house",
      "MONTHLY", "MEDIUM", 100, 8, "weekend_days", month=5),
    A("may_gratitude", "Gratitude", "Log 5 volunteer activities", "gift",
      "MONTHLY", "MEDIUM", 80, 5, "category_count", {"category": "VOLUNTEER"}, month=5),
    A("june_consistency", "Power of Consistency", "Be active on 20 days in June", "chart",
      "MONTHLY", "HARD", 150, 20, "active_days", month=6),
    A("july_summer", "Summer Training", "Exercise for 20 hours", "sun",
      "MONTHLY", "HARD", 150, 1200, "category_minutes", {"category": "EXERCISE"}, month=7),
    A("august_reading", "Reading Season", "Read for 30 hours", "book",
      "MONTHLY", "HARD", 180, 1800, "category_minutes", {"category": "READING"}, month=8),
    A("september_return", "Back to School", "Study for 30 hours", "school",
      "MONTHLY", "HARD", 180, 1800, "category_minutes", {"category": "STUDY"}, month=9),
    A("october_harvest", "Harvest", "Complete every item of 10 daily plans", "leaf",
      "MONTHLY", "HARD", 150, 10, "perfect_days", month=10),
    A("november_grit", "Grit", "Keep a 14-day plan streak", "mountain",
      "MONTHLY", "HARD", 150, 14, "consecutive_days", month=11),
    A("december_celebration", "Celebration", "Log 60 activities in December", "party",
      "MONTHLY", "HARD", 200, 60, "total_activities", month=12),
]

del A


def specials_for(month: int) -> list[AchievementDefinition]:
    return [a for a in MONTHLY_SPECIALS if a.month == month]


def select_monthly(month_key: str) -> list[AchievementDefinition]:
    """The month's specials plus a difficulty-balanced draw from the pool.

    ``month_key`` is ``YYYY-MM``; it seeds the draw.
    """
    month = int(month_key.split("-")[1])
    selected = list(specials_for(month))
    rng = random.Random(month_key)
    for difficulty, count in MONTHLY_DRAW_COUNTS.items():
        available = [a for a in ROTATION_POOL if a.difficulty == difficulty]
        selected.extend(rng.sample(available, min(count, len(available))))
    return selected


def all_definitions() -> list[AchievementDefinition]:
    return [*BASE_ACHIEVEMENTS, *ROTATION_POOL, *MONTHLY_SPECIALS]
