"""Cooldown resolution: how long a user waits between shots."""

from datetime import datetime, timedelta
from typing import Optional

from golaco.config import settings
from golaco.models.user import Plan
from golaco.utils import ensure_utc, seconds_between

_PAID_PLANS = {Plan.monthly.value, Plan.annual.value}


def boost_active(boost_expires_at: Optional[datetime], now: datetime) -> bool:
    if boost_expires_at is None:
        return False
    return ensure_utc(now) < ensure_utc(boost_expires_at)


def resolve_cooldown(plan: str, boost_expires_at: Optional[datetime], now: datetime) -> timedelta:
    """Cooldown for a user at ``now``.

    An unexpired boost wins over any plan. A boost that expires exactly at
    ``now`` no longer applies.
    """
    if boost_active(boost_expires_at, now):
        return timedelta(minutes=settings.COOLDOWN_BOOST_MINUTES)
    plan_value = plan.value if isinstance(plan, Plan) else str(plan or Plan.free.value)
    if plan_value in _PAID_PLANS:
        return timedelta(minutes=settings.COOLDOWN_PAID_MINUTES)
    return timedelta(minutes=settings.COOLDOWN_FREE_MINUTES)


def cooldown_for_user(user: dict, now: datetime) -> timedelta:
    return resolve_cooldown(user.get("plan", Plan.free.value), user.get("boost_expires_at"), now)


def seconds_until_next_shot(user: dict, now: datetime) -> int:
    """Whole seconds until the user may shoot again; 0 when the cooldown has elapsed."""
    next_allowed = user.get("next_allowed_shot_time")
    if next_allowed is None:
        return 0
    return seconds_between(now, next_allowed)
