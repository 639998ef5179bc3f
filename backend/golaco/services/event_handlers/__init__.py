"""
backend/golaco/services/event_handlers/__init__.py

Purpose:
    Central registration entrypoint for event bus subscribers.

Dependencies:
    - golaco.services.event_bus
    - golaco.services.event_handlers.websocket_handlers
"""

from __future__ import annotations

from golaco.config import settings
from golaco.services.event_bus import InMemoryEventBus
from golaco.services.event_handlers.websocket_handlers import (
    handle_championship_generated_ws,
    handle_goal_scored_ws,
    handle_round_finished_ws,
    handle_round_started_ws,
)


def register_event_handlers(bus: InMemoryEventBus) -> None:
    if settings.WS_EVENTS_ENABLED:
        bus.subscribe("goal.scored", handle_goal_scored_ws, handler_name="ws_goal_scored")
        bus.subscribe("round.started", handle_round_started_ws, handler_name="ws_round_started")
        bus.subscribe("round.finished", handle_round_finished_ws, handler_name="ws_round_finished")
        bus.subscribe(
            "championship.generated",
            handle_championship_generated_ws,
            handler_name="ws_championship_generated",
        )
