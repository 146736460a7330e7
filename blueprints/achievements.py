"""Achievement progress, reward claims and monthly rotation."""

from __future__ import annotations

from datetime import date

from flask import Blueprint, jsonify, request

import gamification
from audit import log_event
from extensions import CLAIM_LIMIT, limiter
from helpers import admin_required, current_user_id, student_required

bp = Blueprint("achievements", __name__)


@bp.route("/api/achievements")
@student_required
def api_achievements():
    items = gamification.list_achievements(current_user_id())
    return jsonify({
        "achievements": items,
        "summary": {
            "total": len(items),
            "completed": sum(1 for a in items if a["completed"]),
            "claimable": sum(1 for a in items if a["completed"] and not a["claimed_reward"]),
        },
    })


@bp.route("/api/achievements/<int:achievement_id>/claim", methods=["POST"])
@student_required
@limiter.limit(CLAIM_LIMIT)
def api_claim(achievement_id):
    uid = current_user_id()
    result = gamification.claim_achievement(uid, achievement_id)
    log_event("reward_claimed", uid, f"achievement={achievement_id} xp={result['xp_reward']}")
    return jsonify(result)


@bp.route("/api/achievements/rotate", methods=["POST"])
@admin_required
def api_rotate():
    data = request.get_json(silent=True) or {}
    month_key = data.get("month") or gamification.month_key_of(date.today())
    rows = gamification.rotate_achievements(month_key)
    log_event("achievements_rotated", current_user_id(), f"month={month_key} count={len(rows)}")
    return jsonify({"month": month_key, "achievements": rows})
