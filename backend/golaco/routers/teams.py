"""Public team list."""

from fastapi import APIRouter

from golaco.models.team import TeamResponse
from golaco.services import team_service

router = APIRouter(prefix="/api/teams", tags=["teams"])


def team_response(doc: dict) -> TeamResponse:
    return TeamResponse(
        id=str(doc["_id"]),
        name=doc["name"],
        primary_color=doc.get("primary_color", "#000000"),
        secondary_color=doc.get("secondary_color", "#FFFFFF"),
        shield_url=doc.get("shield_url"),
    )


@router.get("", response_model=list[TeamResponse])
async def list_teams():
    return [team_response(t) for t in await team_service.list_teams()]


@router.get("/{team_id}", response_model=TeamResponse)
async def get_team(team_id: str):
    return team_response(await team_service.get_team(team_id))
