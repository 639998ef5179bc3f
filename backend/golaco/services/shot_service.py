"""
backend/golaco/services/shot_service.py

Purpose:
    Shot engine. Decides whether a user may shoot and turns an eligible shot
    into a goal: user counters, match score and the append-only goal record.
    This is the only code path that increments goal counters.

    The user update is a compare-and-swap on the previously observed
    next_allowed_shot_time, so two concurrent shots by the same user can
    never both succeed. The match increment is filtered on the match still
    being active; when it loses that race the user update is reverted.

Dependencies:
    - golaco.database
    - golaco.services.cooldown_service
    - golaco.services.round_service
    - golaco.services.event_bus
"""

import logging
from datetime import datetime
from typing import Optional

from bson import ObjectId
from pymongo import ReturnDocument

import golaco.database as _db
from golaco.errors import (
    ConflictError,
    MatchNotActiveError,
    NoActiveMatchError,
    NotEligibleError,
    NotEligibleYetError,
    NotFoundError,
)
from golaco.models.championship import LifecycleStatus
from golaco.models.user import UserStatus
from golaco.services import round_service
from golaco.services.cooldown_service import cooldown_for_user, seconds_until_next_shot
from golaco.services.event_bus import event_bus
from golaco.services.event_models import GoalScoredEvent
from golaco.utils import ensure_utc, utcnow

logger = logging.getLogger("golaco.shot_service")

_MAX_ATTEMPTS = 2


class _LostRace(Exception):
    """Another request changed the user document between read and write."""


async def _load_user(user_id: str) -> dict:
    user = await _db.db.users.find_one({"_id": user_id})
    if not user:
        raise NotFoundError("User not found.")
    return user


def _team_in_match(team_id, match: dict) -> bool:
    return team_id is not None and team_id in (match.get("team_a_id"), match.get("team_b_id"))


async def can_shoot(user_id: str, *, now: Optional[datetime] = None) -> dict:
    """Eligibility snapshot for the shot button."""
    now = ensure_utc(now) if now else utcnow()
    user = await _load_user(user_id)
    cooldown = cooldown_for_user(user, now)
    remaining = seconds_until_next_shot(user, now)
    match = await round_service.active_match_for_team(user.get("team_defending_id"), now=now)

    reason = None
    if user.get("status") != UserStatus.active.value:
        reason = "account_inactive"
    elif remaining > 0:
        reason = "cooldown_active"
    elif match is None:
        reason = "no_active_match"

    return {
        "can_shoot": reason is None,
        "seconds_remaining": remaining,
        "next_allowed_shot_time": user.get("next_allowed_shot_time"),
        "cooldown_seconds": int(cooldown.total_seconds()),
        "active_match_id": str(match["_id"]) if match else None,
        "reason": reason,
    }


async def _resolve_match(team_id, match_id: Optional[str], now: datetime) -> dict:
    if match_id is None:
        match = await round_service.active_match_for_team(team_id, now=now)
        if match is None:
            raise NoActiveMatchError("Your team has no active match right now.")
        return match

    match_oid = ObjectId(match_id)
    match = await _db.db.matches.find_one({"_id": match_oid})
    if not match:
        raise NotFoundError("Match not found.")
    if not _team_in_match(team_id, match):
        raise NotEligibleError("Your team is not playing in this match.")

    await round_service.apply_due_transitions(now=now, round_id=match["round_id"])
    match = await _db.db.matches.find_one({"_id": match_oid})
    if not match:
        raise NotFoundError("Match not found.")
    return match


async def _revert_user(user_id: str, observed_next, applied_next: datetime) -> None:
    """Undo a counter update whose match increment was rejected."""
    restore = {"$set": {"next_allowed_shot_time": observed_next, "updated_at": utcnow()}}
    result = await _db.db.users.update_one(
        {"_id": user_id, "next_allowed_shot_time": applied_next, "gols_current_round": {"$gt": 0}},
        {**restore, "$inc": {"total_goals": -1, "gols_current_round": -1}},
    )
    if result.modified_count:
        return
    # The round was closed in between and already reset the per-round counter.
    await _db.db.users.update_one(
        {"_id": user_id, "next_allowed_shot_time": applied_next},
        {**restore, "$inc": {"total_goals": -1}},
    )


async def _attempt_shot(user_id: str, match_id: Optional[str], now: datetime) -> dict:
    user = await _load_user(user_id)
    if user.get("status") != UserStatus.active.value:
        raise NotEligibleError("Account is not active.")

    remaining = seconds_until_next_shot(user, now)
    if remaining > 0:
        raise NotEligibleYetError(remaining)

    team_id = user.get("team_defending_id")
    match = await _resolve_match(team_id, match_id, now)
    if match.get("status") != LifecycleStatus.active.value:
        raise MatchNotActiveError("This match is not active.", status=match.get("status"))

    cooldown = cooldown_for_user(user, now)
    observed_next = user.get("next_allowed_shot_time")
    next_allowed = now + cooldown

    updated_user = await _db.db.users.find_one_and_update(
        {
            "_id": user_id,
            "status": UserStatus.active.value,
            "next_allowed_shot_time": observed_next,
        },
        {
            "$set": {"next_allowed_shot_time": next_allowed, "updated_at": now},
            "$inc": {"total_goals": 1, "gols_current_round": 1},
        },
        return_document=ReturnDocument.AFTER,
    )
    if updated_user is None:
        raise _LostRace()

    side = "score_team_a" if team_id == match.get("team_a_id") else "score_team_b"
    updated_match = await _db.db.matches.find_one_and_update(
        {
            "_id": match["_id"],
            "status": LifecycleStatus.active.value,
            "end_time": {"$gt": now},
        },
        {"$inc": {side: 1}, "$set": {"updated_at": now}},
        return_document=ReturnDocument.AFTER,
    )
    if updated_match is None:
        await _revert_user(user_id, observed_next, next_allowed)
        logger.warning("Shot rejected, match closed mid-shot: user=%s match=%s", user_id, match["_id"])
        raise MatchNotActiveError("This match is no longer active.")

    goal_doc = {
        "match_id": updated_match["_id"],
        "round_id": updated_match.get("round_id"),
        "championship_id": updated_match.get("championship_id"),
        "user_id": user_id,
        "user_name": updated_user.get("name"),
        "team_id": team_id,
        "scored_at": now,
    }
    result = await _db.db.goals.insert_one(goal_doc)
    goal_doc["_id"] = result.inserted_id

    logger.info(
        "Goal scored: user=%s team=%s match=%s score=%d-%d",
        user_id, team_id, updated_match["_id"],
        updated_match.get("score_team_a", 0), updated_match.get("score_team_b", 0),
    )
    event_bus.publish(GoalScoredEvent(
        source="shot_service",
        goal_id=str(goal_doc["_id"]),
        match_id=str(updated_match["_id"]),
        championship_id=str(updated_match.get("championship_id") or ""),
        user_id=user_id,
        user_name=updated_user.get("name"),
        team_id=str(team_id),
        score_team_a=int(updated_match.get("score_team_a", 0)),
        score_team_b=int(updated_match.get("score_team_b", 0)),
    ))

    return {
        "goal": goal_doc,
        "match": updated_match,
        "total_goals": int(updated_user.get("total_goals", 0)),
        "gols_current_round": int(updated_user.get("gols_current_round", 0)),
        "next_allowed_shot_time": next_allowed,
        "cooldown_seconds": int(cooldown.total_seconds()),
    }


async def shoot(user_id: str, match_id: Optional[str] = None, *, now: Optional[datetime] = None) -> dict:
    """Convert one shot into a goal for the user's defended team.

    Raises NotEligibleYetError while the cooldown runs, NoActiveMatchError when
    the defended team has nothing to play, MatchNotActiveError when the match
    is (or just became) closed, and ConflictError when the user document kept
    changing under two consecutive attempts.
    """
    now = ensure_utc(now) if now else utcnow()
    for attempt in range(1, _MAX_ATTEMPTS + 1):
        try:
            return await _attempt_shot(user_id, match_id, now)
        except _LostRace:
            logger.warning("Shot lost compare-and-swap: user=%s attempt=%d", user_id, attempt)
    raise ConflictError("Concurrent shot detected, please try again.")
