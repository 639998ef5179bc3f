"""
backend/golaco/models/user.py

Purpose:
    Player profile models: subscription plan, account status, game counters
    and the request bodies used by profile registration and admin edits.

Dependencies:
    - pydantic
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class Plan(str, Enum):
    free = "free"
    monthly = "monthly"
    annual = "annual"


class UserStatus(str, Enum):
    active = "active"
    suspended = "suspended"
    pending = "pending"


class Product(str, Enum):
    """Purchasable items confirmed by the payment provider callback."""
    boost_24h = "boost_24h"
    monthly_plan = "monthly_plan"
    annual_plan = "annual_plan"


class ProfileCreate(BaseModel):
    """Request body for creating the game profile of an authenticated user."""
    name: str = Field(min_length=1, max_length=80)
    email: Optional[EmailStr] = None
    avatar_url: Optional[str] = None
    team_defending_id: str
    team_heart_id: Optional[str] = None  # defaults to the defended team


class AdminUserUpdate(BaseModel):
    plan: Optional[Plan] = None
    status: Optional[UserStatus] = None
    is_admin: Optional[bool] = None
    team_defending_id: Optional[str] = None
    team_heart_id: Optional[str] = None
    name: Optional[str] = Field(default=None, min_length=1, max_length=80)


class PurchaseCallback(BaseModel):
    """Payment provider outcome for a completed checkout."""
    user_id: str
    product: Product
    reference: Optional[str] = None


class LevelInfo(BaseModel):
    level_number: int
    name: str
    min_goals: int
    max_goals: int
    reward_description: Optional[str] = None


class UserProfileResponse(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    plan: str
    is_admin: bool
    status: str
    team_defending_id: str
    team_heart_id: str
    total_goals: int
    gols_current_round: int
    next_allowed_shot_time: Optional[datetime] = None
    boost_expires_at: Optional[datetime] = None
    level: Optional[LevelInfo] = None
    next_level: Optional[LevelInfo] = None
    goals_to_next_level: Optional[int] = None


class RankingEntry(BaseModel):
    rank: int
    user_id: str
    name: str
    avatar_url: Optional[str] = None
    team_defending_id: Optional[str] = None
    goals: int
