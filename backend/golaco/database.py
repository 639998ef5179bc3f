"""
backend/golaco/database.py

Purpose:
    MongoDB connection bootstrap and index management for all collections.
    Services reach the store through the module-level ``db`` handle, which
    tests replace with an in-memory stand-in.

Dependencies:
    - motor.motor_asyncio
    - pymongo
    - golaco.config
"""

import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError, OperationFailure

from golaco.config import settings

client: AsyncIOMotorClient = None
db: AsyncIOMotorDatabase = None

logger = logging.getLogger("golaco.database")


async def connect_db() -> None:
    global client, db
    client = AsyncIOMotorClient(
        settings.MONGO_URI,
        maxPoolSize=25,
        minPoolSize=5,
        tz_aware=True,
    )
    db = client[settings.MONGO_DB]
    await _ensure_indexes()


async def close_db() -> None:
    global client
    if client:
        client.close()


async def _ensure_indexes() -> None:
    """Create indexes on startup. Idempotent, safe to run repeatedly."""

    # ---- Users ----
    await db.users.create_index("email", unique=True, sparse=True)
    await db.users.create_index([("total_goals", DESCENDING)])
    await db.users.create_index([("gols_current_round", DESCENDING)])
    await db.users.create_index("team_defending_id")
    await db.users.create_index("team_heart_id")

    # ---- Teams ----
    await db.teams.create_index("name", unique=True)

    # ---- Championships ----
    await db.championships.create_index([("status", ASCENDING), ("start_date", ASCENDING)])
    await db.championships.create_index("team_ids")

    # ---- Rounds ----
    # Guards write-once schedule generation against duplicate round sets.
    try:
        await db.rounds.create_index(
            [("championship_id", ASCENDING), ("round_number", ASCENDING)],
            unique=True,
        )
    except (DuplicateKeyError, OperationFailure) as exc:
        logger.warning("Skipped unique rounds index due to duplicate data: %s", exc)
    await db.rounds.create_index(
        [("championship_id", ASCENDING), ("start_time", ASCENDING), ("end_time", ASCENDING)]
    )
    # Sweeper: due activations and due finishes
    await db.rounds.create_index([("status", ASCENDING), ("start_time", ASCENDING)])
    await db.rounds.create_index([("status", ASCENDING), ("end_time", ASCENDING)])
    await db.rounds.create_index([("end_time", DESCENDING)])
    # Finished rounds whose follow-up effects still need applying
    await db.rounds.create_index([("status", ASCENDING), ("settled", ASCENDING)])

    # ---- Matches ----
    await db.matches.create_index("round_id")
    await db.matches.create_index([("championship_id", ASCENDING), ("status", ASCENDING)])
    await db.matches.create_index([("championship_id", ASCENDING), ("match_number", ASCENDING)])
    # Active match lookup for a defended team
    await db.matches.create_index([("status", ASCENDING), ("team_a_id", ASCENDING)])
    await db.matches.create_index([("status", ASCENDING), ("team_b_id", ASCENDING)])

    # ---- Goals (append-only) ----
    await db.goals.create_index([("match_id", ASCENDING), ("scored_at", DESCENDING)])
    await db.goals.create_index([("championship_id", ASCENDING), ("user_id", ASCENDING)])
    await db.goals.create_index("round_id")

    # ---- Levels ----
    await db.levels.create_index("level_number", unique=True)

    # ---- Standings cache (TTL) ----
    await db.standings_cache.create_index("expires_at", expireAfterSeconds=0)

    logger.info("MongoDB indexes ensured")
