"""Round and match endpoints, including the live goal feed."""

from fastapi import APIRouter, Query

from golaco.models.championship import MatchResponse, RoundResponse
from golaco.models.goal import GoalResponse, ScorerEntry
from golaco.routers.championships import match_response, round_response
from golaco.services import goal_service, round_service

router = APIRouter(prefix="/api", tags=["matches"])


def goal_response(doc: dict) -> GoalResponse:
    return GoalResponse(
        id=str(doc["_id"]),
        match_id=str(doc["match_id"]),
        user_id=str(doc["user_id"]),
        user_name=doc.get("user_name"),
        team_id=str(doc["team_id"]),
        scored_at=doc["scored_at"],
    )


@router.get("/rounds/{round_id}", response_model=RoundResponse)
async def get_round(round_id: str):
    return round_response(await round_service.get_round(round_id))


@router.get("/matches/{match_id}", response_model=MatchResponse)
async def get_match(match_id: str):
    match = await round_service.get_match(match_id)
    await round_service.apply_due_transitions(round_id=match["round_id"])
    return match_response(await round_service.get_match(match_id))


@router.get("/matches/{match_id}/goals", response_model=list[GoalResponse])
async def list_goals(match_id: str, limit: int = Query(5, ge=1, le=goal_service.MAX_FEED_LIMIT)):
    """Latest goals of a match, newest first."""
    return [goal_response(g) for g in await goal_service.list_goals(match_id, limit)]


@router.get("/matches/{match_id}/scorers", response_model=list[ScorerEntry])
async def match_scorers(match_id: str, limit: int = Query(10, ge=1, le=100)):
    return await goal_service.top_scorers(match_id=match_id, limit=limit)


@router.get("/championships/{championship_id}/scorers", response_model=list[ScorerEntry])
async def championship_scorers(championship_id: str, limit: int = Query(10, ge=1, le=100)):
    return await goal_service.top_scorers(championship_id=championship_id, limit=limit)
