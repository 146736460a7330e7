"""
Pomodoro focus timer.

The running timer lives in the injected TTL store under ``timer:<student_id>``
and expires ``target * 60 + 300`` seconds after start; an expired entry means
the session is gone. A completed focus session becomes an ordinary activity,
so XP, the daily cap, stats and achievements apply unchanged.
"""

from __future__ import annotations

import logging
import time
from datetime import date, datetime
from typing import Callable, Optional

import scoring
from cache_backend import CacheBackend
from database import transaction
from db_stores import PomodoroStoreDB
from errors import ConflictError, NotFoundError, ValidationError
from gamification import apply_activity, evaluate_achievements

logger = logging.getLogger(__name__)

DEFAULT_TARGET_MINUTES = 25
MAX_TARGET_MINUTES = 120
EXPIRY_GRACE_SECONDS = 300
COMPLETION_RATIO = 0.9


def timer_key(student_id: int) -> str:
    return f"timer:{student_id}"


class TimerService:
    def __init__(self, cache: CacheBackend, clock: Callable[[], float] = time.time):
        self.cache = cache
        self.clock = clock

    def _entry(self, student_id: int) -> dict:
        entry = self.cache.get(timer_key(student_id))
        if not entry:
            raise NotFoundError("No active focus session")
        return entry

    def _elapsed_minutes(self, entry: dict) -> float:
        return max(0.0, self.clock() - entry["started_at"]) / 60

    def start(self, student_id: int, category: str, title: str = "",
              target_minutes: int = DEFAULT_TARGET_MINUTES, is_break: bool = False) -> dict:
        if category not in scoring.CATEGORIES:
            raise ValidationError("Unknown category", category=category)
        if isinstance(target_minutes, bool) or not isinstance(target_minutes, int) \
                or not 1 <= target_minutes <= MAX_TARGET_MINUTES:
            raise ValidationError(
                f"target_minutes must be between 1 and {MAX_TARGET_MINUTES}",
                target_minutes=target_minutes,
            )

        now = self.clock()
        key = timer_key(student_id)
        ttl = target_minutes * 60 + EXPIRY_GRACE_SECONDS
        entry = {
            "session_id": None,
            "category": category,
            "title": title,
            "target_minutes": target_minutes,
            "is_break": bool(is_break),
            "started_at": now,
        }
        # claim the key before writing history; one running session per student
        if not self.cache.add(key, entry, ttl=ttl):
            raise ConflictError("A focus session is already running")

        store = PomodoroStoreDB(student_id)
        try:
            with transaction():
                store.close_stale()
                session_id = store.start(
                    category, title, target_minutes, is_break,
                    datetime.fromtimestamp(now).isoformat(timespec="seconds"),
                )
        except Exception:
            self.cache.delete(key)
            raise
        entry["session_id"] = session_id
        self.cache.set(key, entry, ttl=ttl)
        logger.info("focus session started student=%s session=%s target=%d break=%s",
                    student_id, session_id, target_minutes, is_break)
        return self._describe(entry)

    def status(self, student_id: int) -> dict:
        entry = self.cache.get(timer_key(student_id))
        if not entry:
            return {"active": False}
        return self._describe(entry)

    def _describe(self, entry: dict) -> dict:
        elapsed = self._elapsed_minutes(entry)
        target = entry["target_minutes"]
        return {
            "active": True,
            "session_id": entry["session_id"],
            "category": entry["category"],
            "title": entry["title"],
            "is_break": entry["is_break"],
            "target_minutes": target,
            "elapsed_seconds": int(elapsed * 60),
            "remaining_seconds": max(0, int((target - elapsed) * 60)),
            "can_complete": elapsed >= target * COMPLETION_RATIO,
        }

    def complete(self, student_id: int, today: Optional[date] = None) -> dict:
        """Close the session; focus sessions past 90% of target are recorded."""
        entry = self._entry(student_id)
        elapsed = self._elapsed_minutes(entry)
        target = entry["target_minutes"]
        if elapsed < target * COMPLETION_RATIO:
            raise ValidationError(
                "Session is not finished yet",
                elapsed_minutes=round(elapsed, 1), required_minutes=round(target * COMPLETION_RATIO, 1),
            )
        minutes = min(target, max(1, int(elapsed)))
        store = PomodoroStoreDB(student_id)
        activity = None
        with transaction():
            if not store.finish(entry["session_id"], "completed", minutes):
                raise ConflictError("Focus session already closed", session_id=entry["session_id"])
            if not entry["is_break"]:
                activity = apply_activity(
                    student_id, entry["category"], minutes,
                    title=entry["title"] or "Focus session", today=today,
                )
                store.attach_activity(entry["session_id"], activity["activity_id"])
            else:
                evaluate_achievements(student_id, today)
        self.cache.delete(timer_key(student_id))
        logger.info("focus session completed student=%s session=%s minutes=%d",
                    student_id, entry["session_id"], minutes)
        return {"session_id": entry["session_id"], "minutes": minutes, "activity": activity}

    def cancel(self, student_id: int) -> dict:
        entry = self._entry(student_id)
        minutes = int(self._elapsed_minutes(entry))
        with transaction():
            PomodoroStoreDB(student_id).finish(entry["session_id"], "cancelled", minutes)
        self.cache.delete(timer_key(student_id))
        logger.info("focus session cancelled student=%s session=%s", student_id, entry["session_id"])
        return {"session_id": entry["session_id"], "minutes": minutes, "cancelled": True}
