"""Team registry: admin CRUD with reference guards on delete."""

import logging
from typing import Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

import golaco.database as _db
from golaco.errors import ConflictError, NotFoundError, ValidationError
from golaco.utils import utcnow

logger = logging.getLogger("golaco.team_service")


async def list_teams() -> list[dict]:
    return await _db.db.teams.find({}).sort("name", 1).to_list(length=None)


async def get_team(team_id: str) -> dict:
    team = await _db.db.teams.find_one({"_id": ObjectId(team_id)})
    if not team:
        raise NotFoundError("Team not found.")
    return team


async def create_team(
    name: str,
    primary_color: str = "#000000",
    secondary_color: str = "#FFFFFF",
    shield_url: Optional[str] = None,
) -> dict:
    now = utcnow()
    doc = {
        "name": name.strip(),
        "primary_color": primary_color,
        "secondary_color": secondary_color,
        "shield_url": shield_url,
        "created_at": now,
        "updated_at": now,
    }
    try:
        result = await _db.db.teams.insert_one(doc)
    except DuplicateKeyError as exc:
        raise ConflictError(f"A team named '{doc['name']}' already exists.", store_error=str(exc)) from exc
    doc["_id"] = result.inserted_id
    logger.info("Team created: id=%s name=%s", doc["_id"], doc["name"])
    return doc


async def update_team(team_id: str, **changes) -> dict:
    updates = {key: value for key, value in changes.items() if value is not None}
    if "name" in updates:
        updates["name"] = updates["name"].strip()
    updates["updated_at"] = utcnow()
    try:
        team = await _db.db.teams.find_one_and_update(
            {"_id": ObjectId(team_id)},
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError as exc:
        raise ConflictError("A team with this name already exists.", store_error=str(exc)) from exc
    if not team:
        raise NotFoundError("Team not found.")
    return team


async def delete_team(team_id: str) -> None:
    """Delete a team nobody references any more."""
    team_oid = ObjectId(team_id)
    if not await _db.db.teams.find_one({"_id": team_oid}, {"_id": 1}):
        raise NotFoundError("Team not found.")

    supporters = await _db.db.users.find_one(
        {"$or": [{"team_defending_id": team_oid}, {"team_heart_id": team_oid}]}, {"_id": 1}
    )
    if supporters:
        raise ValidationError("Team is still chosen by at least one user.")
    if await _db.db.championships.find_one({"team_ids": team_oid}, {"_id": 1}):
        raise ValidationError("Team is entered in a championship.")
    if await _db.db.matches.find_one({"$or": [{"team_a_id": team_oid}, {"team_b_id": team_oid}]}, {"_id": 1}):
        raise ValidationError("Team has played or scheduled matches.")

    await _db.db.teams.delete_one({"_id": team_oid})
    logger.info("Team deleted: id=%s", team_oid)
