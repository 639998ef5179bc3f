"""Goal models: append-only scoring events and the shot endpoint payloads."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ShotRequest(BaseModel):
    match_id: Optional[str] = None  # defaults to the defended team's active match


class GoalResponse(BaseModel):
    id: str
    match_id: str
    user_id: str
    user_name: Optional[str] = None
    team_id: str
    scored_at: datetime


class ShotStatusResponse(BaseModel):
    can_shoot: bool
    seconds_remaining: int
    next_allowed_shot_time: Optional[datetime] = None
    cooldown_seconds: int
    active_match_id: Optional[str] = None
    reason: Optional[str] = None


class ShotResponse(BaseModel):
    goal: GoalResponse
    match_id: str
    score_team_a: int
    score_team_b: int
    total_goals: int
    gols_current_round: int
    next_allowed_shot_time: datetime
    cooldown_seconds: int


class ScorerEntry(BaseModel):
    rank: int
    user_id: str
    user_name: Optional[str] = None
    team_id: Optional[str] = None
    goals: int
