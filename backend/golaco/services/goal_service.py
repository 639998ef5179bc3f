"""Goal feed and scorer rankings, read straight from the append-only goals collection."""

import logging
from collections import Counter
from typing import Optional

from bson import ObjectId

import golaco.database as _db
from golaco.errors import ValidationError

logger = logging.getLogger("golaco.goal_service")

MAX_FEED_LIMIT = 100


async def list_goals(match_id: str, limit: int = 5) -> list[dict]:
    """Most recent goals of a match first."""
    if limit < 1 or limit > MAX_FEED_LIMIT:
        raise ValidationError(f"limit must be between 1 and {MAX_FEED_LIMIT}.")
    return await _db.db.goals.find(
        {"match_id": ObjectId(match_id)}
    ).sort("scored_at", -1).limit(limit).to_list(length=limit)


async def top_scorers(
    *,
    match_id: Optional[str] = None,
    championship_id: Optional[str] = None,
    limit: int = 10,
) -> list[dict]:
    """Scorer ranking for one match or one championship.

    Ties keep the order in which each scorer first appears, oldest first.
    """
    if (match_id is None) == (championship_id is None):
        raise ValidationError("Pass exactly one of match_id or championship_id.")
    query = {"match_id": ObjectId(match_id)} if match_id else {"championship_id": ObjectId(championship_id)}

    goals = await _db.db.goals.find(
        query, {"user_id": 1, "user_name": 1, "team_id": 1, "scored_at": 1}
    ).sort("scored_at", 1).to_list(length=None)

    counts: Counter = Counter()
    info: dict[str, dict] = {}
    for goal in goals:
        user_id = goal["user_id"]
        counts[user_id] += 1
        info.setdefault(user_id, {"user_name": goal.get("user_name"), "team_id": goal.get("team_id")})

    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)[:limit]
    return [
        {
            "rank": position,
            "user_id": user_id,
            "user_name": info[user_id]["user_name"],
            "team_id": str(info[user_id]["team_id"]) if info[user_id]["team_id"] else None,
            "goals": goals_count,
        }
        for position, (user_id, goals_count) in enumerate(ranked, start=1)
    ]
