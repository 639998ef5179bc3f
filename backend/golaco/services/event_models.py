"""
backend/golaco/services/event_models.py

Purpose:
    Domain event contracts for in-process reactive workflows. Payloads are
    ID-first so subscribers load whatever extra state they need.

Dependencies:
    - pydantic
    - golaco.utils
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from golaco.utils import ensure_utc, utcnow

EventType = Literal[
    "goal.scored",
    "round.started",
    "round.finished",
    "championship.generated",
]


def make_event_id() -> str:
    return str(uuid.uuid4())


class BaseEvent(BaseModel):
    event_id: str = Field(default_factory=make_event_id)
    event_type: EventType
    occurred_at: datetime = Field(default_factory=utcnow)
    source: str


class GoalScoredEvent(BaseEvent):
    event_type: Literal["goal.scored"] = "goal.scored"
    goal_id: str
    match_id: str
    championship_id: str
    user_id: str
    user_name: str | None = None
    team_id: str
    score_team_a: int
    score_team_b: int


class RoundStartedEvent(BaseEvent):
    event_type: Literal["round.started"] = "round.started"
    round_id: str
    championship_id: str
    round_number: int
    match_ids: list[str] = Field(default_factory=list)


class RoundFinishedEvent(BaseEvent):
    event_type: Literal["round.finished"] = "round.finished"
    round_id: str
    championship_id: str
    round_number: int
    match_ids: list[str] = Field(default_factory=list)
    early: bool = False


class ChampionshipGeneratedEvent(BaseEvent):
    event_type: Literal["championship.generated"] = "championship.generated"
    championship_id: str
    rounds_created: int
    phase: int | None = None


def normalize_event_time(event: BaseEvent) -> BaseEvent:
    event.occurred_at = ensure_utc(event.occurred_at)
    return event
