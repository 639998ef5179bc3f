"""
backend/golaco/models/championship.py

Purpose:
    Championship, round and match models shared by the tournament generator,
    the round state machine and the standings calculator.

Dependencies:
    - pydantic
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class ChampionshipType(str, Enum):
    league = "league"
    cup = "cup"


class LifecycleStatus(str, Enum):
    """Shared by championships, rounds and matches. Transitions are linear."""
    scheduled = "scheduled"
    active = "active"
    finished = "finished"


class Leg(str, Enum):
    first = "first"
    second = "second"


class GenerationState(str, Enum):
    pending = "pending"
    running = "running"
    done = "done"


ALLOWED_TEAM_COUNTS: dict[ChampionshipType, tuple[int, ...]] = {
    ChampionshipType.league: (10, 20),
    ChampionshipType.cup: (8, 16),
}


class ChampionshipCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    type: ChampionshipType
    team_ids: list[str]
    start_date: Optional[datetime] = None  # next free slot when omitted


class ChampionshipUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    type: Optional[ChampionshipType] = None
    team_ids: Optional[list[str]] = None
    start_date: Optional[datetime] = None


class Fixture(BaseModel):
    team_a_id: str
    team_b_id: str

    @model_validator(mode="after")
    def _distinct_teams(self) -> "Fixture":
        if self.team_a_id == self.team_b_id:
            raise ValueError("A team cannot play against itself.")
        return self


class RoundCreate(BaseModel):
    """Manual round created by an admin inside an existing championship."""
    championship_id: str
    start_time: datetime
    end_time: datetime
    fixtures: list[Fixture] = Field(min_length=1)


class RoundUpdate(BaseModel):
    start_time: datetime
    end_time: datetime


class ScoreCorrection(BaseModel):
    score_team_a: int = Field(ge=0)
    score_team_b: int = Field(ge=0)


class ChampionshipResponse(BaseModel):
    id: str
    name: str
    type: str
    status: str
    start_date: Optional[datetime] = None
    current_round: int
    total_rounds: int
    team_ids: list[str]


class MatchResponse(BaseModel):
    id: str
    round_id: str
    championship_id: str
    team_a_id: Optional[str] = None
    team_b_id: Optional[str] = None
    score_team_a: int
    score_team_b: int
    status: str
    match_number: Optional[int] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


class RoundResponse(BaseModel):
    id: str
    championship_id: str
    round_number: int
    phase: Optional[int] = None
    leg: Optional[str] = None
    start_time: datetime
    end_time: datetime
    status: str
    matches: list[MatchResponse] = []
