"""Team models, static reference entities edited only by admins."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

_HEX_COLOR_LEN = (4, 7)


def _check_color(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    color = value.strip()
    if not color.startswith("#") or len(color) not in _HEX_COLOR_LEN:
        raise ValueError("Color must be a hex value like #FF0000.")
    int(color[1:], 16)
    return color.upper()


class TeamCreate(BaseModel):
    name: str = Field(min_length=1, max_length=80)
    primary_color: str = "#000000"
    secondary_color: str = "#FFFFFF"
    shield_url: Optional[str] = None

    @field_validator("primary_color", "secondary_color")
    @classmethod
    def _valid_color(cls, v: str) -> str:
        return _check_color(v)


class TeamUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=80)
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None
    shield_url: Optional[str] = None

    @field_validator("primary_color", "secondary_color")
    @classmethod
    def _valid_color(cls, v: Optional[str]) -> Optional[str]:
        return _check_color(v)


class TeamResponse(BaseModel):
    id: str
    name: str
    primary_color: str
    secondary_color: str
    shield_url: Optional[str] = None
