from fastapi import APIRouter

from golaco.models.level import LevelResponse
from golaco.services import level_service

router = APIRouter(prefix="/api/levels", tags=["levels"])


def level_response(doc: dict) -> LevelResponse:
    return LevelResponse(
        id=str(doc["_id"]),
        level_number=doc["level_number"],
        name=doc["name"],
        min_goals=doc["min_goals"],
        max_goals=doc["max_goals"],
        reward_description=doc.get("reward_description"),
    )


@router.get("", response_model=list[LevelResponse])
async def list_levels():
    """The progression ladder, lowest level first."""
    return [level_response(lvl) for lvl in await level_service.list_levels()]
