"""
backend/golaco/config.py

Purpose:
    Central settings loading for backend services.

Dependencies:
    - pydantic-settings
    - pathlib
"""

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings

# Prefer backend/.env, fallback to project-root .env.
_BACKEND_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
_ROOT_ENV_FILE = Path(__file__).resolve().parent.parent.parent / ".env"

CupTiebreakFallback = Literal["team_a", "team_b", "coin_toss"]


class Settings(BaseSettings):
    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_DB: str = "golaco"
    # HS256 secret shared with the identity provider that issues access tokens
    JWT_SECRET: str = "dev-only-secret"
    JWT_AUDIENCE: str = ""
    BACKEND_CORS_ORIGINS: str = "http://localhost:5173"

    # Shot cooldowns
    COOLDOWN_FREE_MINUTES: int = 20
    COOLDOWN_PAID_MINUTES: int = 10
    COOLDOWN_BOOST_MINUTES: int = 5
    BOOST_DURATION_HOURS: int = 24

    # Rounds and tournaments
    ROUND_DURATION_HOURS: int = 24
    ROUND_SWEEP_INTERVAL_SECONDS: int = 60
    CUP_TIEBREAK_FALLBACK: CupTiebreakFallback = "team_a"
    STANDINGS_CACHE_TTL_SECONDS: int = 30

    # Payment provider callback (empty disables the endpoint)
    BILLING_CALLBACK_KEY: str = ""

    # Event bus (in-process)
    EVENT_BUS_ENABLED: bool = True
    EVENT_BUS_INGRESS_QUEUE_MAXSIZE: int = 10000
    EVENT_BUS_HANDLER_QUEUE_MAXSIZE: int = 2000
    EVENT_BUS_ERROR_BUFFER_SIZE: int = 200

    # WebSocket live feed
    WS_EVENTS_ENABLED: bool = True
    WS_HEARTBEAT_SECONDS: int = 30
    WS_MAX_CONNECTIONS: int = 500

    model_config = {
        "env_file": (str(_BACKEND_ENV_FILE), str(_ROOT_ENV_FILE)),
        "extra": "ignore",
    }


settings = Settings()
