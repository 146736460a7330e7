"""Plan execution statistics and activity charts."""

from __future__ import annotations

from datetime import date, timedelta

from flask import Blueprint, jsonify

import gamification
import scoring
from db_stores import ActivityLogDB, PlanStoreDB, StudentProfileDB
from helpers import current_user_id, student_required

bp = Blueprint("stats", __name__)

CHART_DAYS = 30
CHART_WEEKS = 12
CHART_MONTHS = 12


def _pct(done: int, total: int) -> int:
    return round(done * 100 / total) if total else 0


def _summarize(ratios: dict[str, tuple[int, int]]) -> dict:
    done = sum(d for d, _ in ratios.values())
    total = sum(t for _, t in ratios.values())
    best = None
    for day, (d, t) in sorted(ratios.items()):
        if t and (best is None or _pct(d, t) > best["percentage"]):
            best = {"date": day, "percentage": _pct(d, t)}
    return {
        "plans": len(ratios),
        "total_items": total,
        "completed_items": done,
        "percentage": _pct(done, total),
        "qualified_days": sum(1 for d, t in ratios.values() if scoring.qualifies_for_streak(d, t)),
        "best_day": best,
    }


def plan_execution(student_id: int, today: date) -> dict:
    plans = PlanStoreDB(student_id)
    gamification.settle_streak(student_id, today)
    profile = StudentProfileDB(student_id).get()

    done, total = plans.day_ratios(today.isoformat(), today.isoformat()).get(
        today.isoformat(), (0, 0))
    week_start = today - timedelta(days=today.weekday())
    month_start = today.replace(day=1)

    return {
        "daily": {
            "date": today.isoformat(),
            "total_items": total,
            "completed_items": done,
            "percentage": _pct(done, total),
            "qualifies": scoring.qualifies_for_streak(done, total),
            "streak": profile["current_streak"],
        },
        "weekly": {
            "start": week_start.isoformat(),
            **_summarize(plans.day_ratios(week_start.isoformat(), today.isoformat())),
        },
        "monthly": {
            "start": month_start.isoformat(),
            **_summarize(plans.day_ratios(month_start.isoformat(), today.isoformat())),
        },
    }


@bp.route("/api/stats/plan-execution")
@student_required
def api_plan_execution():
    return jsonify(plan_execution(current_user_id(), date.today()))


def _month_starts(today: date, count: int) -> list[date]:
    year, month = today.year, today.month
    starts = []
    for _ in range(count):
        starts.append(date(year, month, 1))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return starts[::-1]


def _bucket(totals: dict[str, dict], start: date, end: date) -> dict:
    lo, hi = start.isoformat(), end.isoformat()
    picked = [t for day, t in totals.items() if lo <= day <= hi]
    return {
        "xp": sum(t["xp"] for t in picked),
        "minutes": sum(t["minutes"] for t in picked),
        "activities": sum(t["activities"] for t in picked),
    }


def chart_data(student_id: int, today: date) -> dict:
    """Daily, weekly and monthly XP/minute series plus category and stat breakdowns."""
    months = _month_starts(today, CHART_MONTHS)
    week_start = today - timedelta(days=today.weekday())
    weeks = [week_start - timedelta(weeks=i) for i in range(CHART_WEEKS - 1, -1, -1)]
    days = [today - timedelta(days=i) for i in range(CHART_DAYS - 1, -1, -1)]

    activities = ActivityLogDB(student_id)
    first = min(months[0], weeks[0], days[0])
    totals = activities.daily_totals(first.isoformat(), today.isoformat())

    monthly = []
    for start in months:
        end = date.fromisoformat(gamification.month_bounds(gamification.month_key_of(start))[1])
        monthly.append({"month": gamification.month_key_of(start), **_bucket(totals, start, end)})

    by_category = activities.minutes_by_category()
    profile = StudentProfileDB(student_id).get()
    return {
        "daily": [{"date": d.isoformat(), **_bucket(totals, d, d)} for d in days],
        "weekly": [
            {"week_start": w.isoformat(), "week": f"W{w.isocalendar()[1]:02d}",
             **_bucket(totals, w, w + timedelta(days=6))}
            for w in weeks
        ],
        "monthly": monthly,
        "category_breakdown": [
            {"category": c, "minutes": by_category[c]} for c in scoring.CATEGORIES if c in by_category
        ],
        "stat_radar": [
            {"stat": s, "value": profile[s] if profile else scoring.BASE_STAT,
             "full_mark": scoring.MAX_STAT}
            for s in scoring.STATS
        ],
    }


@bp.route("/api/stats/charts")
@student_required
def api_charts():
    return jsonify(chart_data(current_user_id(), date.today()))
