"""
backend/golaco/services/websocket_manager.py

Purpose:
    Live feed sockets. Each socket follows some matches, championships and
    teams; a goal or round event reaches every socket following one of the
    things it concerns. A socket that follows nothing gets the whole feed.

Dependencies:
    - fastapi.WebSocket
    - golaco.config
    - golaco.services.event_models
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from fastapi import WebSocket

from golaco.config import settings
from golaco.services.event_models import (
    BaseEvent,
    ChampionshipGeneratedEvent,
    GoalScoredEvent,
    RoundFinishedEvent,
    RoundStartedEvent,
)
from golaco.utils import ensure_utc, utcnow

logger = logging.getLogger("golaco.websocket_manager")

FOLLOW_KEYS = ("match_ids", "championship_ids", "team_ids")


def _ids(values: Any) -> set[str]:
    if not isinstance(values, (list, tuple, set)):
        return set()
    return {str(v).strip() for v in values if v is not None and str(v).strip()}


@dataclass
class Follow:
    """Matches, championships and teams a socket follows, or an event concerns."""

    match_ids: set[str] = field(default_factory=set)
    championship_ids: set[str] = field(default_factory=set)
    team_ids: set[str] = field(default_factory=set)

    @classmethod
    def from_payload(cls, payload: Any) -> Follow:
        payload = payload if isinstance(payload, dict) else {}
        return cls(**{key: _ids(payload.get(key)) for key in FOLLOW_KEYS})

    def is_empty(self) -> bool:
        return not (self.match_ids or self.championship_ids or self.team_ids)

    def wants(self, about: Follow) -> bool:
        if self.is_empty():
            return True
        return bool(
            self.match_ids & about.match_ids
            or self.championship_ids & about.championship_ids
            or self.team_ids & about.team_ids
        )

    def add(self, other: Follow) -> None:
        self.match_ids |= other.match_ids
        self.championship_ids |= other.championship_ids
        self.team_ids |= other.team_ids

    def remove(self, other: Follow) -> None:
        self.match_ids -= other.match_ids
        self.championship_ids -= other.championship_ids
        self.team_ids -= other.team_ids

    def as_dict(self) -> dict[str, list[str]]:
        return {key: sorted(getattr(self, key)) for key in FOLLOW_KEYS}


@dataclass
class _Socket:
    websocket: WebSocket
    user_id: str | None
    follow: Follow


def _meta(event: BaseEvent) -> dict[str, str]:
    return {
        "event_id": str(event.event_id),
        "source": event.source,
        "occurred_at": ensure_utc(event.occurred_at).isoformat(),
    }


class LiveFeed:
    def __init__(self, *, max_connections: int, heartbeat_seconds: int) -> None:
        self.max_connections = max(1, int(max_connections))
        self.heartbeat_seconds = max(1, int(heartbeat_seconds))
        self._sockets: dict[str, _Socket] = {}
        self._heartbeat: asyncio.Task | None = None

    @property
    def connection_count(self) -> int:
        return len(self._sockets)

    @property
    def is_full(self) -> bool:
        return len(self._sockets) >= self.max_connections

    async def start(self) -> None:
        if self._heartbeat is None:
            self._heartbeat = asyncio.create_task(self._heartbeat_loop(), name="live_feed_heartbeat")
            logger.info("Live feed started")

    async def stop(self) -> None:
        if self._heartbeat is not None:
            self._heartbeat.cancel()
            try:
                await self._heartbeat
            except asyncio.CancelledError:
                pass
            self._heartbeat = None
        self._sockets.clear()
        logger.info("Live feed stopped")

    async def connect(self, websocket: WebSocket, *, user_id: str | None = None, follow: Follow | None = None) -> str:
        if self.is_full:
            raise RuntimeError("max_connections_exceeded")
        await websocket.accept()
        socket_id = uuid.uuid4().hex
        self._sockets[socket_id] = _Socket(websocket=websocket, user_id=user_id, follow=follow or Follow())
        logger.info("Live feed socket connected: user=%s (%d open)", user_id, len(self._sockets))
        return socket_id

    def disconnect(self, socket_id: str) -> None:
        self._sockets.pop(socket_id, None)

    def change_follow(self, socket_id: str, command: str, payload: Any) -> dict[str, list[str]]:
        """Apply a subscribe, unsubscribe or replace_subscriptions command and return what the socket now follows."""
        socket = self._sockets.get(socket_id)
        if socket is None:
            raise RuntimeError("connection_not_found")
        incoming = Follow.from_payload(payload)
        if command == "replace_subscriptions":
            socket.follow = incoming
        elif command == "subscribe":
            socket.follow.add(incoming)
        elif command == "unsubscribe":
            socket.follow.remove(incoming)
        else:
            raise ValueError("unsupported_command")
        return socket.follow.as_dict()

    async def publish(self, message_type: str, data: dict[str, Any], about: Follow, event: BaseEvent | None = None) -> int:
        """Send one message to every socket following ``about``. Returns how many received it."""
        message: dict[str, Any] = {"type": message_type, "data": data}
        if event is not None:
            message["meta"] = _meta(event)
        delivered = 0
        for socket_id, socket in list(self._sockets.items()):
            if socket.follow.wants(about) and await self._send(socket_id, socket, message):
                delivered += 1
        return delivered

    async def goal_scored(self, event: GoalScoredEvent) -> int:
        about = Follow(
            match_ids={event.match_id},
            championship_ids={event.championship_id},
            team_ids={event.team_id},
        )
        return await self.publish(
            event.event_type,
            {
                "goal_id": event.goal_id,
                "match_id": event.match_id,
                "championship_id": event.championship_id,
                "user_id": event.user_id,
                "user_name": event.user_name,
                "team_id": event.team_id,
                "score_team_a": event.score_team_a,
                "score_team_b": event.score_team_b,
            },
            about,
            event,
        )

    async def round_changed(self, event: RoundStartedEvent | RoundFinishedEvent, team_ids: list[str]) -> int:
        """Round started or finished. ``team_ids`` are the teams playing in it."""
        about = Follow(
            match_ids=set(event.match_ids),
            championship_ids={event.championship_id},
            team_ids=set(team_ids),
        )
        return await self.publish(
            event.event_type,
            {
                "round_id": event.round_id,
                "championship_id": event.championship_id,
                "round_number": event.round_number,
                "match_ids": list(event.match_ids),
                "team_ids": sorted(team_ids),
                "early": bool(getattr(event, "early", False)),
            },
            about,
            event,
        )

    async def championship_generated(self, event: ChampionshipGeneratedEvent) -> int:
        return await self.publish(
            event.event_type,
            {
                "championship_id": event.championship_id,
                "rounds_created": event.rounds_created,
                "phase": event.phase,
            },
            Follow(championship_ids={event.championship_id}),
            event,
        )

    async def _send(self, socket_id: str, socket: _Socket, message: dict[str, Any]) -> bool:
        try:
            await socket.websocket.send_json(message)
        except Exception as exc:
            logger.info("Live feed socket dropped: id=%s error=%s", socket_id, exc)
            self.disconnect(socket_id)
            return False
        return True

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_seconds)
            ping = {"type": "ping", "data": {"ts": utcnow().isoformat()}}
            for socket_id, socket in list(self._sockets.items()):
                await self._send(socket_id, socket, ping)


websocket_manager = LiveFeed(
    max_connections=settings.WS_MAX_CONNECTIONS,
    heartbeat_seconds=settings.WS_HEARTBEAT_SECONDS,
)
