"""Shot endpoints: eligibility check and the shot itself."""

from typing import Optional

from fastapi import APIRouter, Depends

from golaco.models.goal import ShotRequest, ShotResponse, ShotStatusResponse
from golaco.routers.matches import goal_response
from golaco.services import shot_service
from golaco.services.auth_service import get_current_user_id

router = APIRouter(prefix="/api/shots", tags=["shots"])


@router.get("/status", response_model=ShotStatusResponse)
async def shot_status(user_id: str = Depends(get_current_user_id)):
    return ShotStatusResponse(**await shot_service.can_shoot(user_id))


@router.post("", response_model=ShotResponse)
async def shoot(body: Optional[ShotRequest] = None, user_id: str = Depends(get_current_user_id)):
    """Score one goal for the caller's defended team."""
    result = await shot_service.shoot(user_id, body.match_id if body else None)
    match = result["match"]
    return ShotResponse(
        goal=goal_response(result["goal"]),
        match_id=str(match["_id"]),
        score_team_a=int(match.get("score_team_a", 0)),
        score_team_b=int(match.get("score_team_b", 0)),
        total_goals=result["total_goals"],
        gols_current_round=result["gols_current_round"],
        next_allowed_shot_time=result["next_allowed_shot_time"],
        cooldown_seconds=result["cooldown_seconds"],
    )
