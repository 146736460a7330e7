"""School-scoped monthly leaderboard."""

from __future__ import annotations

from datetime import date

from flask import Blueprint, jsonify, request
from flask_login import login_required

import gamification
from db_stores import LeaderboardStoreDB
from helpers import require_school

bp = Blueprint("leaderboard", __name__)

XP_TOP = 20
MINUTES_TOP = 10
STREAK_TOP = 10


@bp.route("/api/leaderboard")
@login_required
def api_leaderboard():
    school_id = require_school()
    current = gamification.month_key_of(date.today())
    period = request.args.get("period", "current")
    month_key = current if period == "current" else gamification.validate_month_key(period)
    start, end = gamification.month_bounds(month_key)

    board = LeaderboardStoreDB(school_id)
    return jsonify({
        "month": month_key,
        "xp": board.xp_ranking(start, end, XP_TOP),
        "minutes": board.minutes_ranking(start, end, MINUTES_TOP),
        # streaks are a live value, only meaningful for the running month
        "streak": board.streak_ranking(STREAK_TOP) if month_key == current else [],
    })
