"""Change notification hook and its WebSocket fan-out listener."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Set

import anyio
from fastapi.websockets import WebSocket, WebSocketDisconnect, WebSocketState

logger = logging.getLogger(__name__)

Listener = Callable[[str, dict[str, Any]], None]


def user_entity(user_id: str) -> str:
    return f"user:{user_id}"


class ChangeNotifier:
    """Calls every registered listener after a successful mutation.

    A failing listener is logged and skipped; it never breaks the mutation
    that triggered it.
    """

    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def notify(self, entity: str, change: dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                listener(entity, change)
            except Exception:
                logger.exception("Change listener failed for %s", entity)


class DestinationEventHub:
    """Tracks WebSocket connections subscribed to a channel or conversation."""

    def __init__(self) -> None:
        self._connections: Dict[str, Set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def connect(self, entity: str, websocket: WebSocket) -> None:
        async with self._lock:
            self._connections[entity].add(websocket)

    async def disconnect(self, entity: str, websocket: WebSocket) -> None:
        async with self._lock:
            sockets = self._connections.get(entity)
            if not sockets:
                return
            sockets.discard(websocket)
            if not sockets:
                self._connections.pop(entity, None)

    def has_subscribers(self, entity: str) -> bool:
        return bool(self._connections.get(entity))

    async def broadcast(self, entity: str, payload: dict[str, Any]) -> None:
        async with self._lock:
            sockets = list(self._connections.get(entity, set()))
        for socket in sockets:
            if socket.application_state != WebSocketState.CONNECTED:
                continue
            try:
                await socket.send_json(payload)
            except (WebSocketDisconnect, RuntimeError):
                continue

    def __call__(self, entity: str, change: dict[str, Any]) -> None:
        """Listener entry point; schedules delivery from sync or async code."""

        if not self.has_subscribers(entity):
            return
        payload = {"entity": entity, **change}

        async def _send() -> None:
            await self.broadcast(entity, payload)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Sync route handlers run in AnyIO worker threads.
            anyio.from_thread.run(_send)
        else:
            loop.create_task(_send())


notifier = ChangeNotifier()
"""Process-wide notifier used by the service layer."""

destination_event_hub = DestinationEventHub()
"""Singleton hub for channel and conversation WebSocket pushes."""

notifier.subscribe(destination_event_hub)


def get_notifier() -> ChangeNotifier:
    return notifier
