"""
backend/golaco/services/user_service.py

Purpose:
    Player profiles: registration after the identity provider signs a user
    in, profile reads with the derived level, admin edits, rankings, and
    the outcome of purchases confirmed by the payment provider.

Dependencies:
    - golaco.database
    - golaco.services.level_service
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from bson import ObjectId
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

import golaco.database as _db
from golaco.config import settings
from golaco.errors import ConflictError, NotFoundError, ValidationError
from golaco.models.championship import LifecycleStatus
from golaco.models.user import Plan, Product, UserStatus
from golaco.services import level_service
from golaco.utils import ensure_utc, utcnow

logger = logging.getLogger("golaco.user_service")

RANKING_FIELDS = {
    "general": "total_goals",
    "current_round": "gols_current_round",
}

_PLAN_PRODUCTS = {
    Product.monthly_plan: Plan.monthly,
    Product.annual_plan: Plan.annual,
}


async def _require_team(team_id: str) -> ObjectId:
    team_oid = ObjectId(team_id)
    if not await _db.db.teams.find_one({"_id": team_oid}, {"_id": 1}):
        raise ValidationError("Team does not exist.", team_id=team_id)
    return team_oid


async def get_user(user_id: str) -> dict:
    user = await _db.db.users.find_one({"_id": user_id})
    if not user:
        raise NotFoundError("User not found.")
    return user


async def register_profile(
    user_id: str,
    name: str,
    email: Optional[str],
    team_defending_id: str,
    team_heart_id: Optional[str] = None,
    avatar_url: Optional[str] = None,
) -> dict:
    """Create the game profile of an authenticated user. The heart team defaults to the defended one."""
    defending = await _require_team(team_defending_id)
    heart = await _require_team(team_heart_id) if team_heart_id else defending

    now = utcnow()
    doc = {
        "_id": user_id,
        "name": name.strip(),
        "email": email,
        "avatar_url": avatar_url,
        "plan": Plan.free.value,
        "is_admin": False,
        "status": UserStatus.active.value,
        "team_defending_id": defending,
        "team_heart_id": heart,
        "total_goals": 0,
        "gols_current_round": 0,
        "next_allowed_shot_time": None,
        "boost_expires_at": None,
        "created_at": now,
        "updated_at": now,
    }
    try:
        await _db.db.users.insert_one(doc)
    except DuplicateKeyError as exc:
        raise ConflictError("Profile already exists.", store_error=str(exc)) from exc
    logger.info("Profile registered: user=%s team=%s", user_id, defending)
    return doc


async def get_profile(user_id: str) -> dict:
    """User document enriched with its derived level."""
    user = await get_user(user_id)
    levels = await level_service.list_levels()
    return {**user, **level_service.level_for(int(user.get("total_goals", 0)), levels)}


async def admin_update_user(user_id: str, **changes) -> dict:
    updates = {key: value for key, value in changes.items() if value is not None}
    for key in ("plan", "status"):
        if key in updates and hasattr(updates[key], "value"):
            updates[key] = updates[key].value
    if "team_defending_id" in updates:
        updates["team_defending_id"] = await _require_team(updates["team_defending_id"])
    if "team_heart_id" in updates:
        updates["team_heart_id"] = await _require_team(updates["team_heart_id"])
    if "name" in updates:
        updates["name"] = updates["name"].strip()
    updates["updated_at"] = utcnow()

    user = await _db.db.users.find_one_and_update(
        {"_id": user_id},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    if not user:
        raise NotFoundError("User not found.")
    logger.info("User updated by admin: user=%s fields=%s", user_id, sorted(updates))
    return user


async def delete_user(user_id: str) -> None:
    """Remove a player profile. Refused while the defended team is playing.

    Goals already scored stay in the match history.
    """
    user = await get_user(user_id)
    team_id = user.get("team_defending_id")
    if team_id is not None:
        live = await _db.db.matches.find_one(
            {
                "status": LifecycleStatus.active.value,
                "$or": [{"team_a_id": team_id}, {"team_b_id": team_id}],
            },
            {"_id": 1},
        )
        if live:
            raise ValidationError(
                "Cannot delete a user whose team is playing a match right now.",
                match_id=str(live["_id"]),
            )

    await _db.db.users.delete_one({"_id": user_id})
    logger.info("User deleted by admin: user=%s", user_id)


async def apply_purchase(user_id: str, product: Product | str, *, now: Optional[datetime] = None) -> dict:
    """Apply a purchase the payment provider has confirmed.

    A boost stacks: it runs from the later of now and the current expiry.
    """
    now = ensure_utc(now) if now else utcnow()
    product = Product(product)
    user = await get_user(user_id)

    if product == Product.boost_24h:
        current = user.get("boost_expires_at")
        base = max(now, ensure_utc(current)) if current else now
        updates = {"boost_expires_at": base + timedelta(hours=settings.BOOST_DURATION_HOURS)}
    else:
        updates = {"plan": _PLAN_PRODUCTS[product].value}

    updates["updated_at"] = now
    updated = await _db.db.users.find_one_and_update(
        {"_id": user_id},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    logger.info("Purchase applied: user=%s product=%s", user_id, product.value)
    return updated


async def rankings(scope: str = "general", limit: int = 50) -> list[dict]:
    field = RANKING_FIELDS.get(scope)
    if field is None:
        raise ValidationError(f"Unknown ranking scope '{scope}'.", allowed=sorted(RANKING_FIELDS))
    users = await _db.db.users.find(
        {"status": UserStatus.active.value, field: {"$gt": 0}},
        {"name": 1, "avatar_url": 1, "team_defending_id": 1, field: 1},
    ).sort(field, DESCENDING).limit(limit).to_list(length=limit)
    return [
        {
            "rank": position,
            "user_id": str(user["_id"]),
            "name": user.get("name", ""),
            "avatar_url": user.get("avatar_url"),
            "team_defending_id": str(user["team_defending_id"]) if user.get("team_defending_id") else None,
            "goals": int(user.get(field, 0)),
        }
        for position, user in enumerate(users, start=1)
    ]
