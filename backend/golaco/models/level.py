"""Level models for the ten-tier progression ladder derived from lifetime goals."""

from typing import Optional

from pydantic import BaseModel, Field


class LevelCreate(BaseModel):
    level_number: int = Field(ge=1)
    name: str = Field(min_length=1, max_length=80)
    min_goals: int = Field(ge=0)
    max_goals: int = Field(ge=0)
    reward_description: Optional[str] = None


class LevelUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=80)
    min_goals: Optional[int] = Field(default=None, ge=0)
    max_goals: Optional[int] = Field(default=None, ge=0)
    reward_description: Optional[str] = None


class LevelResponse(BaseModel):
    id: str
    level_number: int
    name: str
    min_goals: int
    max_goals: int
    reward_description: Optional[str] = None


DEFAULT_LEVELS: list[dict] = [
    {"level_number": 1, "name": "Estreante da Várzea", "min_goals": 0, "max_goals": 9},
    {"level_number": 2, "name": "Matador da Pelada", "min_goals": 10, "max_goals": 19},
    {"level_number": 3, "name": "Craque da Vila", "min_goals": 20, "max_goals": 49},
    {"level_number": 4, "name": "Artilheiro do Bairro", "min_goals": 50, "max_goals": 99},
    {"level_number": 5, "name": "Ídolo Local", "min_goals": 100, "max_goals": 199},
    {"level_number": 6, "name": "Astro Estadual", "min_goals": 200, "max_goals": 399},
    {"level_number": 7, "name": "Maestro Nacional", "min_goals": 400, "max_goals": 699},
    {"level_number": 8, "name": "Bola de Ouro Regional", "min_goals": 700, "max_goals": 999},
    {"level_number": 9, "name": "Lenda do Futebol", "min_goals": 1000, "max_goals": 1499},
    {"level_number": 10, "name": "Imortal das Quatro Linhas", "min_goals": 1500, "max_goals": 999999},
]
