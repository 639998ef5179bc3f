"""
backend/tests/test_routers.py

Purpose:
    Router contract tests: billing callback key, error mapping with
    Retry-After, token dependencies, WebSocket token resolution and the
    shot endpoints called directly against the in-memory store.
"""

from __future__ import annotations

import json
import sys
from datetime import timedelta
from types import SimpleNamespace

import jwt
import pytest
from bson import ObjectId
from fastapi import HTTPException
from jwt.exceptions import InvalidTokenError
from starlette.requests import Request

sys.path.insert(0, "backend")

from golaco import main
from golaco.errors import ConflictError, NotEligibleYetError
from golaco.models.user import Product, PurchaseCallback
from golaco.routers import admin as admin_router
from golaco.routers import billing as billing_router
from golaco.routers import shots as shots_router
from golaco.routers import ws as ws_router
from golaco.services import auth_service
from golaco.utils import utcnow
from golaco.workers import round_sweeper


def _request(path: str = "/api/shots", headers: dict | None = None) -> Request:
    return Request({
        "type": "http",
        "method": "POST",
        "path": path,
        "query_string": b"",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
    })


def test_billing_callback_disabled_without_key(monkeypatch):
    monkeypatch.setattr(billing_router.settings, "BILLING_CALLBACK_KEY", "", raising=False)
    with pytest.raises(HTTPException) as exc:
        billing_router._check_key("anything")
    assert exc.value.status_code == 503


def test_billing_callback_rejects_wrong_key(monkeypatch):
    monkeypatch.setattr(billing_router.settings, "BILLING_CALLBACK_KEY", "s3cret", raising=False)
    with pytest.raises(HTTPException) as exc:
        billing_router._check_key("guess")
    assert exc.value.status_code == 401
    with pytest.raises(HTTPException):
        billing_router._check_key(None)


@pytest.mark.asyncio
async def test_billing_callback_applies_purchase(fake_db, monkeypatch):
    monkeypatch.setattr(billing_router.settings, "BILLING_CALLBACK_KEY", "s3cret", raising=False)
    await fake_db.users.insert_one({"_id": "u1", "plan": "free"})

    body = PurchaseCallback(user_id="u1", product=Product.monthly_plan, reference="chk_1")
    result = await billing_router.purchase_callback(body, x_billing_key="s3cret")

    assert result["plan"] == "monthly"
    assert result["reference"] == "chk_1"


@pytest.mark.asyncio
async def test_cooldown_error_maps_to_429_with_retry_after():
    response = await main.game_error_handler(_request(), NotEligibleYetError(42))

    assert response.status_code == 429
    assert response.headers["retry-after"] == "42"
    payload = json.loads(response.body)
    assert payload["code"] == "cooldown_active"
    assert payload["seconds_remaining"] == 42


@pytest.mark.asyncio
async def test_conflict_error_maps_to_409():
    response = await main.game_error_handler(_request(), ConflictError("Concurrent shot detected."))

    assert response.status_code == 409
    assert "retry-after" not in response.headers
    assert json.loads(response.body)["detail"] == "Concurrent shot detected."


@pytest.mark.asyncio
async def test_current_user_id_from_bearer_token():
    token = jwt.encode({"sub": "idp|7"}, auth_service.settings.JWT_SECRET, algorithm=auth_service.ALGORITHM)

    user_id = await auth_service.get_current_user_id(_request(headers={"Authorization": f"Bearer {token}"}))

    assert user_id == "idp|7"


@pytest.mark.asyncio
async def test_current_user_id_rejects_missing_and_forged_tokens():
    with pytest.raises(HTTPException) as missing:
        await auth_service.get_current_user_id(_request())
    assert missing.value.status_code == 401

    forged = jwt.encode({"sub": "idp|7"}, "not-the-secret", algorithm="HS256")
    with pytest.raises(HTTPException) as bad:
        await auth_service.get_current_user_id(_request(headers={"Authorization": f"Bearer {forged}"}))
    assert bad.value.status_code == 401


@pytest.mark.asyncio
async def test_admin_dependency_requires_admin_flag(fake_db):
    await fake_db.users.insert_many([
        {"_id": "admin", "status": "active", "is_admin": True},
        {"_id": "player", "status": "active", "is_admin": False},
    ])

    def _cookie_request(sub: str) -> Request:
        token = jwt.encode({"sub": sub}, auth_service.settings.JWT_SECRET, algorithm=auth_service.ALGORITHM)
        return _request(path="/api/admin/runtime", headers={"Cookie": f"access_token={token}"})

    admin = await auth_service.get_admin_user(_cookie_request("admin"))
    assert admin["_id"] == "admin"

    with pytest.raises(HTTPException) as exc:
        await auth_service.get_admin_user(_cookie_request("player"))
    assert exc.value.status_code == 403


def test_resolve_ws_user_id(monkeypatch):
    monkeypatch.setattr(ws_router, "decode_jwt", lambda token: {"sub": "idp|9"})
    assert ws_router._resolve_ws_user_id("valid") == "idp|9"
    assert ws_router._resolve_ws_user_id(None) is None

    monkeypatch.setattr(ws_router, "decode_jwt", lambda token: (_ for _ in ()).throw(InvalidTokenError("bad")))
    assert ws_router._resolve_ws_user_id("invalid") is None


@pytest.mark.asyncio
async def test_shot_endpoints(fake_db):
    now = utcnow()
    team_a, team_b = ObjectId(), ObjectId()
    champ_id, round_id = ObjectId(), ObjectId()
    window = {"start_time": now - timedelta(hours=1), "end_time": now + timedelta(hours=1)}
    await fake_db.championships.insert_one({"_id": champ_id, "type": "league", "status": "active", "team_ids": [team_a, team_b]})
    await fake_db.rounds.insert_one({"_id": round_id, "championship_id": champ_id, "round_number": 1, "status": "active", **window})
    await fake_db.matches.insert_one({
        "round_id": round_id, "championship_id": champ_id, "team_a_id": team_a, "team_b_id": team_b,
        "score_team_a": 0, "score_team_b": 0, "status": "active", "match_number": 1, **window,
    })
    await fake_db.users.insert_one({
        "_id": "u1", "name": "Ana", "plan": "annual", "status": "active", "team_defending_id": team_b,
        "total_goals": 0, "gols_current_round": 0, "next_allowed_shot_time": None, "boost_expires_at": None,
    })

    before = await shots_router.shot_status(user_id="u1")
    assert before.can_shoot is True

    shot = await shots_router.shoot(body=None, user_id="u1")
    assert (shot.score_team_a, shot.score_team_b) == (0, 1)
    assert shot.cooldown_seconds == 600
    assert shot.goal.team_id == str(team_b)

    after = await shots_router.shot_status(user_id="u1")
    assert after.can_shoot is False
    assert after.reason == "cooldown_active"


@pytest.mark.asyncio
async def test_round_sweeper_applies_due_transitions(fake_db):
    now = utcnow()
    await fake_db.rounds.insert_one({
        "championship_id": ObjectId(),
        "round_number": 1,
        "status": "scheduled",
        "start_time": now - timedelta(minutes=5),
        "end_time": now + timedelta(hours=1),
    })

    result = await round_sweeper.sweep_rounds()

    assert result == {"activated": 1, "finished": 0}
    assert fake_db.rounds.docs[0]["status"] == "active"


@pytest.mark.asyncio
async def test_admin_delete_user_endpoint(fake_db):
    await fake_db.users.insert_one({"_id": "u1", "name": "Ana", "status": "active", "team_defending_id": None})

    await admin_router.delete_user("u1", admin={"_id": "admin", "is_admin": True})

    assert fake_db.users.docs == []
