"""
backend/golaco/services/event_handlers/websocket_handlers.py

Purpose:
    Event bus subscribers that push goal, round and schedule events to the
    live feed. Round events carry match ids only, so the playing teams are
    looked up here.

Dependencies:
    - golaco.database
    - golaco.services.event_models
    - golaco.services.websocket_manager
"""

from __future__ import annotations

import logging

from bson import ObjectId

import golaco.database as _db
from golaco.config import settings
from golaco.services.event_models import (
    ChampionshipGeneratedEvent,
    GoalScoredEvent,
    RoundFinishedEvent,
    RoundStartedEvent,
)
from golaco.services.websocket_manager import websocket_manager

logger = logging.getLogger("golaco.event_handlers.websocket")


async def _playing_team_ids(match_ids: list[str]) -> list[str]:
    if not match_ids:
        return []
    rows = await _db.db.matches.find(
        {"_id": {"$in": [ObjectId(mid) for mid in match_ids]}},
        {"team_a_id": 1, "team_b_id": 1},
    ).to_list(length=len(match_ids))
    team_ids: set[str] = set()
    for row in rows:
        team_ids.update(str(t) for t in (row.get("team_a_id"), row.get("team_b_id")) if t)
    return sorted(team_ids)


async def handle_goal_scored_ws(event: GoalScoredEvent) -> None:
    if not settings.WS_EVENTS_ENABLED:
        return
    await websocket_manager.goal_scored(event)


async def handle_round_started_ws(event: RoundStartedEvent) -> None:
    if not settings.WS_EVENTS_ENABLED:
        return
    await websocket_manager.round_changed(event, await _playing_team_ids(event.match_ids))


async def handle_round_finished_ws(event: RoundFinishedEvent) -> None:
    if not settings.WS_EVENTS_ENABLED:
        return
    delivered = await websocket_manager.round_changed(event, await _playing_team_ids(event.match_ids))
    logger.debug("Round %d finish pushed to %d sockets", event.round_number, delivered)


async def handle_championship_generated_ws(event: ChampionshipGeneratedEvent) -> None:
    if not settings.WS_EVENTS_ENABLED:
        return
    await websocket_manager.championship_generated(event)
