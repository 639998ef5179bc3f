"""
backend/golaco/routers/admin.py

Purpose:
    Admin endpoints for championships, rounds, matches, teams, levels and
    users. Every mutation goes through the owning service so guards and
    lifecycle rules apply the same way as for automated transitions.

Dependencies:
    - golaco.services.*
    - golaco.services.auth_service
"""

import logging

from fastapi import APIRouter, Depends, status

from golaco.models.championship import (
    ChampionshipCreate,
    ChampionshipResponse,
    ChampionshipUpdate,
    MatchResponse,
    RoundCreate,
    RoundResponse,
    RoundUpdate,
    ScoreCorrection,
)
from golaco.models.level import LevelCreate, LevelResponse, LevelUpdate
from golaco.models.team import TeamCreate, TeamResponse, TeamUpdate
from golaco.models.user import AdminUserUpdate, UserProfileResponse
from golaco.routers.championships import championship_response, match_response, round_response
from golaco.routers.levels import level_response
from golaco.routers.teams import team_response
from golaco.routers.user import profile_response
from golaco.services import (
    level_service,
    round_service,
    team_service,
    tournament_service,
    user_service,
)
from golaco.services.auth_service import get_admin_user
from golaco.services.event_bus import event_bus
from golaco.services.websocket_manager import websocket_manager

logger = logging.getLogger("golaco.admin")

router = APIRouter(prefix="/api/admin", tags=["admin"])


# ---------- Championships ----------

@router.post("/championships", response_model=ChampionshipResponse, status_code=status.HTTP_201_CREATED)
async def create_championship(body: ChampionshipCreate, admin=Depends(get_admin_user)):
    """Create a league or cup and generate its schedule."""
    champ = await tournament_service.create_championship(
        body.name, body.type, body.team_ids, body.start_date,
    )
    logger.info("Admin %s created championship %s", admin["_id"], champ["_id"])
    return championship_response(champ)


@router.patch("/championships/{championship_id}", response_model=ChampionshipResponse)
async def update_championship(championship_id: str, body: ChampionshipUpdate, admin=Depends(get_admin_user)):
    champ = await tournament_service.update_championship(
        championship_id,
        name=body.name,
        championship_type=body.type,
        team_ids=body.team_ids,
        start_date=body.start_date,
    )
    return championship_response(champ)


@router.delete("/championships/{championship_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_championship(championship_id: str, admin=Depends(get_admin_user)):
    await tournament_service.delete_championship(championship_id)
    logger.info("Admin %s deleted championship %s", admin["_id"], championship_id)


# ---------- Rounds & matches ----------

@router.post("/rounds", response_model=RoundResponse, status_code=status.HTTP_201_CREATED)
async def create_round(body: RoundCreate, admin=Depends(get_admin_user)):
    round_doc = await round_service.create_round(
        body.championship_id,
        body.start_time,
        body.end_time,
        [f.model_dump() for f in body.fixtures],
    )
    return round_response(round_doc)


@router.patch("/rounds/{round_id}", response_model=RoundResponse)
async def update_round(round_id: str, body: RoundUpdate, admin=Depends(get_admin_user)):
    return round_response(await round_service.update_round(round_id, body.start_time, body.end_time))


@router.delete("/rounds/{round_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_round(round_id: str, admin=Depends(get_admin_user)):
    await round_service.delete_round(round_id)
    logger.info("Admin %s deleted round %s", admin["_id"], round_id)


@router.post("/rounds/{round_id}/advance")
async def advance_round(round_id: str, admin=Depends(get_admin_user)):
    """End an active round now and start the next one."""
    result = await round_service.advance_round(round_id)
    logger.info("Admin %s advanced round %s", admin["_id"], round_id)
    finished = await round_service.get_round(round_id)
    next_round = result["next_round"]
    return {
        "round": round_response(finished),
        "next_round": round_response(await round_service.get_round(str(next_round["_id"]))) if next_round else None,
    }


@router.patch("/matches/{match_id}/score", response_model=MatchResponse)
async def correct_score(match_id: str, body: ScoreCorrection, admin=Depends(get_admin_user)):
    match = await round_service.correct_match_score(match_id, body.score_team_a, body.score_team_b)
    logger.info("Admin %s corrected score of match %s", admin["_id"], match_id)
    return match_response(match)


# ---------- Teams ----------

@router.post("/teams", response_model=TeamResponse, status_code=status.HTTP_201_CREATED)
async def create_team(body: TeamCreate, admin=Depends(get_admin_user)):
    return team_response(await team_service.create_team(**body.model_dump()))


@router.patch("/teams/{team_id}", response_model=TeamResponse)
async def update_team(team_id: str, body: TeamUpdate, admin=Depends(get_admin_user)):
    return team_response(await team_service.update_team(team_id, **body.model_dump()))


@router.delete("/teams/{team_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_team(team_id: str, admin=Depends(get_admin_user)):
    await team_service.delete_team(team_id)


# ---------- Levels ----------

@router.post("/levels", response_model=LevelResponse, status_code=status.HTTP_201_CREATED)
async def create_level(body: LevelCreate, admin=Depends(get_admin_user)):
    return level_response(await level_service.create_level(**body.model_dump()))


@router.patch("/levels/{level_id}", response_model=LevelResponse)
async def update_level(level_id: str, body: LevelUpdate, admin=Depends(get_admin_user)):
    return level_response(await level_service.update_level(level_id, **body.model_dump()))


@router.delete("/levels/{level_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_level(level_id: str, admin=Depends(get_admin_user)):
    await level_service.delete_level(level_id)


# ---------- Users ----------

@router.patch("/users/{user_id}", response_model=UserProfileResponse)
async def update_user(user_id: str, body: AdminUserUpdate, admin=Depends(get_admin_user)):
    await user_service.admin_update_user(user_id, **body.model_dump())
    return profile_response(await user_service.get_profile(user_id))


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(user_id: str, admin=Depends(get_admin_user)):
    await user_service.delete_user(user_id)


# ---------- Runtime ----------

@router.get("/runtime")
async def runtime_stats(admin=Depends(get_admin_user)):
    """Event bus counters and live feed sockets of this process."""
    return {
        "event_bus": event_bus.stats(),
        "live_feed": {
            "connections": websocket_manager.connection_count,
            "max_connections": websocket_manager.max_connections,
        },
    }
