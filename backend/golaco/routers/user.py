"""Profile endpoints for the signed-in user."""

from typing import Optional

from fastapi import APIRouter, Depends, status

from golaco.models.user import LevelInfo, ProfileCreate, UserProfileResponse
from golaco.services import user_service
from golaco.services.auth_service import get_current_user_id

router = APIRouter(prefix="/api/users", tags=["users"])


def _level_info(level: Optional[dict]) -> Optional[LevelInfo]:
    if not level:
        return None
    return LevelInfo(
        level_number=level["level_number"],
        name=level["name"],
        min_goals=level["min_goals"],
        max_goals=level["max_goals"],
        reward_description=level.get("reward_description"),
    )


def profile_response(profile: dict) -> UserProfileResponse:
    return UserProfileResponse(
        id=str(profile["_id"]),
        name=profile["name"],
        email=profile.get("email"),
        avatar_url=profile.get("avatar_url"),
        plan=profile.get("plan", "free"),
        is_admin=bool(profile.get("is_admin", False)),
        status=profile.get("status", "active"),
        team_defending_id=str(profile["team_defending_id"]),
        team_heart_id=str(profile.get("team_heart_id") or profile["team_defending_id"]),
        total_goals=int(profile.get("total_goals", 0)),
        gols_current_round=int(profile.get("gols_current_round", 0)),
        next_allowed_shot_time=profile.get("next_allowed_shot_time"),
        boost_expires_at=profile.get("boost_expires_at"),
        level=_level_info(profile.get("level")),
        next_level=_level_info(profile.get("next_level")),
        goals_to_next_level=profile.get("goals_to_next_level"),
    )


@router.get("/me", response_model=UserProfileResponse)
async def get_me(user_id: str = Depends(get_current_user_id)):
    return profile_response(await user_service.get_profile(user_id))


@router.post("/me", response_model=UserProfileResponse, status_code=status.HTTP_201_CREATED)
async def register_me(body: ProfileCreate, user_id: str = Depends(get_current_user_id)):
    """Create the game profile after the first sign-in."""
    await user_service.register_profile(
        user_id,
        body.name,
        body.email,
        body.team_defending_id,
        body.team_heart_id,
        avatar_url=body.avatar_url,
    )
    return profile_response(await user_service.get_profile(user_id))
