from fastapi import APIRouter, Query

from golaco.models.user import RankingEntry
from golaco.services import user_service

router = APIRouter(prefix="/api/rankings", tags=["rankings"])


@router.get("", response_model=list[RankingEntry])
async def get_rankings(
    scope: str = Query("general", pattern="^(general|current_round)$"),
    limit: int = Query(50, ge=1, le=200),
):
    """Top scorers by lifetime goals or by goals in the current round."""
    return await user_service.rankings(scope, limit)
