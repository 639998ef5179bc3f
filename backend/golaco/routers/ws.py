"""
backend/golaco/routers/ws.py

Purpose:
    Live WebSocket endpoint for goal and round events. Anonymous clients
    are welcome; a valid access token only attaches the user id to the
    connection.

Dependencies:
    - golaco.services.websocket_manager
    - golaco.services.auth_service
"""

import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from jwt.exceptions import InvalidTokenError

from golaco.config import settings
from golaco.services.auth_service import decode_jwt
from golaco.services.websocket_manager import Follow, websocket_manager

logger = logging.getLogger("golaco.ws")

router = APIRouter()

_SUBSCRIPTION_COMMANDS = {"subscribe", "unsubscribe", "replace_subscriptions"}


def _token_from_ws(ws: WebSocket) -> Optional[str]:
    return ws.cookies.get("access_token") or ws.query_params.get("token")


def _resolve_ws_user_id(token: Optional[str]) -> Optional[str]:
    if not token:
        return None
    try:
        payload = decode_jwt(token)
    except InvalidTokenError:
        return None
    sub = payload.get("sub")
    return str(sub) if sub else None


@router.websocket("/ws/live")
async def websocket_live(ws: WebSocket):
    if not settings.WS_EVENTS_ENABLED:
        await ws.close(code=4003, reason="Live events disabled")
        return
    if websocket_manager.is_full:
        await ws.close(code=4002, reason="Too many connections")
        return

    user_id = _resolve_ws_user_id(_token_from_ws(ws))
    follow = Follow.from_payload({
        "match_ids": ws.query_params.getlist("match_id"),
        "championship_ids": ws.query_params.getlist("championship_id"),
        "team_ids": ws.query_params.getlist("team_id"),
    })
    try:
        socket_id = await websocket_manager.connect(ws, user_id=user_id, follow=follow)
    except RuntimeError:
        await ws.close(code=4002, reason="Too many connections")
        return

    try:
        while True:
            message = await ws.receive_json()
            command = str(message.get("type") or "") if isinstance(message, dict) else ""
            if command == "ping":
                await ws.send_json({"type": "pong"})
            elif command in _SUBSCRIPTION_COMMANDS:
                following = websocket_manager.change_follow(socket_id, command, message.get("data") or {})
                await ws.send_json({"type": "subscriptions", "data": following})
            else:
                await ws.send_json({"type": "error", "data": {"detail": "Unsupported command."}})
    except WebSocketDisconnect:
        pass
    except ValueError:
        logger.warning("WS client sent malformed payload: socket=%s", socket_id)
    finally:
        websocket_manager.disconnect(socket_id)
