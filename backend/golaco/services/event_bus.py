"""
backend/golaco/services/event_bus.py

Purpose:
    Lightweight in-memory event bus for process-local reactive workflows.
    Provides async publish/subscribe with per-handler worker queues. Events
    are notifications only; every state change they describe is already
    persisted when they are published.

Dependencies:
    - asyncio
    - golaco.config
    - golaco.services.event_models
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict, deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from golaco.config import settings
from golaco.services.event_models import BaseEvent, normalize_event_time
from golaco.utils import utcnow

logger = logging.getLogger("golaco.event_bus")

AsyncEventHandler = Callable[[BaseEvent], Awaitable[None]]


@dataclass
class _Subscription:
    event_type: str
    handler_name: str
    handler: AsyncEventHandler
    queue: asyncio.Queue[BaseEvent]
    worker: asyncio.Task | None = None
    handled_total: int = 0
    failed_total: int = 0
    dropped_total: int = 0


class InMemoryEventBus:
    def __init__(
        self,
        *,
        ingress_maxsize: int,
        handler_maxsize: int,
        error_buffer_size: int,
    ) -> None:
        self._ingress_maxsize = max(1, int(ingress_maxsize))
        self._handler_maxsize = max(1, int(handler_maxsize))
        self._ingress: asyncio.Queue[BaseEvent] = asyncio.Queue(maxsize=self._ingress_maxsize)
        self._subscriptions: dict[str, list[_Subscription]] = defaultdict(list)
        self._dispatcher_task: asyncio.Task | None = None
        self._running = False
        self._lock = asyncio.Lock()

        self._published = 0
        self._handled = 0
        self._failed = 0
        self._dropped = 0
        self._errors: deque[dict[str, Any]] = deque(maxlen=max(1, int(error_buffer_size)))

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        async with self._lock:
            if self._running:
                return
            self._running = True
            for subs in self._subscriptions.values():
                for sub in subs:
                    if sub.worker is None:
                        sub.worker = self._spawn_worker(sub)
            self._dispatcher_task = asyncio.create_task(self._dispatch_loop(), name="event_bus_dispatcher")
            logger.info("Event bus started")

    async def stop(self) -> None:
        async with self._lock:
            if not self._running:
                return
            self._running = False
            tasks = [self._dispatcher_task] if self._dispatcher_task else []
            for subs in self._subscriptions.values():
                tasks.extend(sub.worker for sub in subs if sub.worker)
            for task in tasks:
                task.cancel()
            for task in tasks:
                try:
                    await task
                except asyncio.CancelledError:
                    pass
            self._dispatcher_task = None
            for subs in self._subscriptions.values():
                for sub in subs:
                    sub.worker = None
            logger.info("Event bus stopped")

    def subscribe(self, event_type: str, handler: AsyncEventHandler, *, handler_name: str) -> None:
        sub = _Subscription(
            event_type=event_type,
            handler_name=handler_name,
            handler=handler,
            queue=asyncio.Queue(maxsize=self._handler_maxsize),
        )
        self._subscriptions[event_type].append(sub)
        if self._running:
            sub.worker = self._spawn_worker(sub)

    def publish(self, event: BaseEvent) -> None:
        if not self._running:
            # Nothing would drain the queue; keep the publisher non-blocking.
            logger.debug("Event bus not running; skipping event_type=%s", event.event_type)
            return
        normalized = normalize_event_time(event)
        try:
            self._ingress.put_nowait(normalized)
            self._published += 1
        except asyncio.QueueFull:
            self._dropped += 1
            logger.warning("Event bus ingress queue full; dropping event_type=%s", normalized.event_type)

    def stats(self) -> dict[str, Any]:
        per_handler: dict[str, dict[str, Any]] = {}
        for event_type, subs in self._subscriptions.items():
            for sub in subs:
                per_handler[f"{event_type}:{sub.handler_name}"] = {
                    "queue_depth": sub.queue.qsize(),
                    "handled_total": sub.handled_total,
                    "failed_total": sub.failed_total,
                    "dropped_total": sub.dropped_total,
                }
        return {
            "enabled": bool(settings.EVENT_BUS_ENABLED),
            "running": self._running,
            "published_total": self._published,
            "handled_total": self._handled,
            "failed_total": self._failed,
            "dropped_total": self._dropped,
            "ingress_queue_depth": self._ingress.qsize(),
            "per_handler": per_handler,
            "recent_errors": list(self._errors),
        }

    async def _dispatch_loop(self) -> None:
        while self._running:
            event = await self._ingress.get()
            for sub in self._subscriptions.get(event.event_type, []):
                try:
                    sub.queue.put_nowait(event)
                except asyncio.QueueFull:
                    self._dropped += 1
                    sub.dropped_total += 1
                    logger.warning(
                        "Event bus handler queue full; dropping event_type=%s handler=%s",
                        event.event_type,
                        sub.handler_name,
                    )

    def _spawn_worker(self, sub: _Subscription) -> asyncio.Task:
        name = f"event_bus_{sub.event_type}_{sub.handler_name}"
        return asyncio.create_task(self._handler_loop(sub), name=name)

    async def _handler_loop(self, sub: _Subscription) -> None:
        while self._running:
            event = await sub.queue.get()
            try:
                await sub.handler(event)
                self._handled += 1
                sub.handled_total += 1
            except Exception as exc:
                self._failed += 1
                sub.failed_total += 1
                self._errors.append({
                    "event_id": event.event_id,
                    "event_type": event.event_type,
                    "handler_name": sub.handler_name,
                    "ts": utcnow().isoformat(),
                    "error": str(exc),
                })
                logger.error(
                    "Event handler failed event_id=%s event_type=%s handler=%s error=%s",
                    event.event_id,
                    event.event_type,
                    sub.handler_name,
                    str(exc),
                    exc_info=True,
                )


event_bus = InMemoryEventBus(
    ingress_maxsize=settings.EVENT_BUS_INGRESS_QUEUE_MAXSIZE,
    handler_maxsize=settings.EVENT_BUS_HANDLER_QUEUE_MAXSIZE,
    error_buffer_size=settings.EVENT_BUS_ERROR_BUFFER_SIZE,
)
