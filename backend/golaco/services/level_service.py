"""
backend/golaco/services/level_service.py

Purpose:
    Progression ladder. A user's level is never stored; it is derived from
    total_goals against the levels collection on every read. Admin edits
    keep the ladder free of overlapping goal ranges.

Dependencies:
    - golaco.database
    - golaco.models.level
"""

import logging
from typing import Optional

from bson import ObjectId
from pymongo import ReturnDocument

import golaco.database as _db
from golaco.errors import NotFoundError, ValidationError
from golaco.models.level import DEFAULT_LEVELS
from golaco.utils import utcnow

logger = logging.getLogger("golaco.level_service")


def level_for(total_goals: int, levels: list[dict]) -> dict:
    """Current level, next level and goals still missing to reach it.

    The current level is the highest one whose min_goals has been reached,
    so totals past the top range or inside a gap keep the level earned.
    Below the first range the lowest level applies.
    """
    ordered = sorted(levels, key=lambda lvl: lvl["min_goals"])
    if not ordered:
        return {"level": None, "next_level": None, "goals_to_next_level": None}

    current_index = 0
    for index, level in enumerate(ordered):
        if level["min_goals"] > total_goals:
            break
        current_index = index

    next_level = ordered[current_index + 1] if current_index + 1 < len(ordered) else None
    return {
        "level": ordered[current_index],
        "next_level": next_level,
        "goals_to_next_level": max(0, next_level["min_goals"] - total_goals) if next_level else None,
    }


async def list_levels() -> list[dict]:
    return await _db.db.levels.find({}).sort("level_number", 1).to_list(length=None)


async def seed_default_levels() -> dict:
    """Insert the default ladder when the collection is empty."""
    if await _db.db.levels.count_documents({}) > 0:
        return {"inserted": 0}
    now = utcnow()
    docs = [{**level, "reward_description": None, "created_at": now, "updated_at": now} for level in DEFAULT_LEVELS]
    await _db.db.levels.insert_many(docs)
    return {"inserted": len(docs)}


async def _validate(level_number: int, min_goals: int, max_goals: int, *, exclude_id=None) -> None:
    if min_goals >= max_goals:
        raise ValidationError("min_goals must be lower than max_goals.")

    exclude = {"_id": {"$ne": exclude_id}} if exclude_id is not None else {}
    if await _db.db.levels.find_one({**exclude, "level_number": level_number}, {"_id": 1}):
        raise ValidationError(f"Level {level_number} already exists.")
    clash = await _db.db.levels.find_one(
        {**exclude, "min_goals": {"$lte": max_goals}, "max_goals": {"$gte": min_goals}},
        {"level_number": 1},
    )
    if clash:
        raise ValidationError(f"Goal range overlaps level {clash['level_number']}.")


async def create_level(
    level_number: int,
    name: str,
    min_goals: int,
    max_goals: int,
    reward_description: Optional[str] = None,
) -> dict:
    await _validate(level_number, min_goals, max_goals)
    now = utcnow()
    doc = {
        "level_number": level_number,
        "name": name.strip(),
        "min_goals": min_goals,
        "max_goals": max_goals,
        "reward_description": reward_description,
        "created_at": now,
        "updated_at": now,
    }
    result = await _db.db.levels.insert_one(doc)
    doc["_id"] = result.inserted_id
    logger.info("Level created: number=%d range=%d-%d", level_number, min_goals, max_goals)
    return doc


async def update_level(level_id: str, **changes) -> dict:
    level_oid = ObjectId(level_id)
    current = await _db.db.levels.find_one({"_id": level_oid})
    if not current:
        raise NotFoundError("Level not found.")

    updates = {key: value for key, value in changes.items() if value is not None}
    merged = {**current, **updates}
    await _validate(merged["level_number"], merged["min_goals"], merged["max_goals"], exclude_id=level_oid)

    updates["updated_at"] = utcnow()
    return await _db.db.levels.find_one_and_update(
        {"_id": level_oid},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )


async def delete_level(level_id: str) -> None:
    """Delete a level nobody currently holds."""
    level = await _db.db.levels.find_one({"_id": ObjectId(level_id)})
    if not level:
        raise NotFoundError("Level not found.")
    holders = await _db.db.users.count_documents(
        {"total_goals": {"$gte": level["min_goals"], "$lte": level["max_goals"]}}
    )
    if holders:
        raise ValidationError(
            f"Cannot delete level {level['level_number']} while {holders} user(s) are in its goal range.",
            users=holders,
        )

    result = await _db.db.levels.delete_one({"_id": level["_id"]})
    if not result.deleted_count:
        raise NotFoundError("Level not found.")
    logger.info("Level deleted: number=%s", level["level_number"])
