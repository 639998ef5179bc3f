"""Championship endpoints: listing, rounds and standings."""

from typing import Optional

from fastapi import APIRouter, Query

from golaco.models.championship import (
    ChampionshipResponse,
    LifecycleStatus,
    MatchResponse,
    RoundResponse,
)
from golaco.services import round_service, standings_service, tournament_service

router = APIRouter(prefix="/api/championships", tags=["championships"])


def _str_or_none(value) -> Optional[str]:
    return str(value) if value is not None else None


def championship_response(doc: dict) -> ChampionshipResponse:
    return ChampionshipResponse(
        id=str(doc["_id"]),
        name=doc["name"],
        type=doc["type"],
        status=doc["status"],
        start_date=doc.get("start_date"),
        current_round=int(doc.get("current_round", 1)),
        total_rounds=int(doc.get("total_rounds", 0)),
        team_ids=[str(t) for t in doc.get("team_ids", [])],
    )


def match_response(doc: dict) -> MatchResponse:
    return MatchResponse(
        id=str(doc["_id"]),
        round_id=str(doc["round_id"]),
        championship_id=str(doc["championship_id"]),
        team_a_id=_str_or_none(doc.get("team_a_id")),
        team_b_id=_str_or_none(doc.get("team_b_id")),
        score_team_a=int(doc.get("score_team_a", 0)),
        score_team_b=int(doc.get("score_team_b", 0)),
        status=doc["status"],
        match_number=doc.get("match_number"),
        start_time=doc.get("start_time"),
        end_time=doc.get("end_time"),
    )


def round_response(doc: dict) -> RoundResponse:
    return RoundResponse(
        id=str(doc["_id"]),
        championship_id=str(doc["championship_id"]),
        round_number=doc["round_number"],
        phase=doc.get("phase"),
        leg=doc.get("leg"),
        start_time=doc["start_time"],
        end_time=doc["end_time"],
        status=doc["status"],
        matches=[match_response(m) for m in doc.get("matches", [])],
    )


@router.get("", response_model=list[ChampionshipResponse])
async def list_championships(status: Optional[LifecycleStatus] = Query(None)):
    await round_service.apply_due_transitions()
    docs = await tournament_service.list_championships(status.value if status else None)
    return [championship_response(d) for d in docs]


@router.get("/{championship_id}", response_model=ChampionshipResponse)
async def get_championship(championship_id: str):
    await round_service.apply_due_transitions(championship_id=championship_id)
    return championship_response(await tournament_service.get_championship(championship_id))


@router.get("/{championship_id}/rounds", response_model=list[RoundResponse])
async def list_rounds(championship_id: str):
    return [round_response(r) for r in await round_service.list_rounds(championship_id)]


@router.get("/{championship_id}/standings")
async def get_standings(championship_id: str):
    """League table or cup bracket, recomputed from finished matches."""
    await tournament_service.get_championship(championship_id)
    await round_service.apply_due_transitions(championship_id=championship_id)
    return await standings_service.compute_standings(championship_id)
