"""Student dashboard: avatar, level progress, stats, badges and today's caps."""

from __future__ import annotations

from flask import Blueprint, jsonify

import gamification
import scoring
from db_stores import ActivityLogDB, StudentProfileDB
from helpers import current_user_id, student_required

bp = Blueprint("dashboard", __name__)


@bp.route("/api/dashboard")
@student_required
def api_dashboard():
    uid = current_user_id()
    gamification.settle_streak(uid)
    profile = StudentProfileDB(uid).get()
    info = scoring.level_of(profile["total_xp"])
    recent, _ = ActivityLogDB(uid).page(1, 5)
    return jsonify({
        "profile": StudentProfileDB.to_dict(profile),
        "level": {
            "level": info.level,
            "current_xp": info.current_xp,
            "required_xp": info.required_xp,
            "progress_pct": info.progress_pct,
            "stat_cap": scoring.stat_cap(info.level),
        },
        "stat_descriptions": scoring.STAT_DESCRIPTIONS,
        "streak_bonus_active": scoring.has_streak_bonus(profile["current_streak"]),
        "badges": gamification.badge_overview(uid),
        "daily": gamification.daily_stats(uid),
        "recent_activities": recent,
    })
