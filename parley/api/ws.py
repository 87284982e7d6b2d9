"""WebSocket endpoints that push change notifications for a destination.

Sockets only receive ``{entity, type, message_id}`` notifications; clients
re-query over HTTP.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Dict, TypeVar

from fastapi import APIRouter, Depends, WebSocket, status
from fastapi.websockets import WebSocketDisconnect, WebSocketState
from sqlalchemy.orm import Session, sessionmaker

from parley.config import get_settings
from parley.core.errors import ParleyError
from parley.core.security import user_id_from_token
from parley.database import get_session_factory
from parley.models import Destination
from parley.monitoring.metrics import websocket_connections
from parley.services.access import resolve_access
from parley.services.events import destination_event_hub

router = APIRouter(prefix="/ws", tags=["ws"])

settings = get_settings()

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def iter_keepalive_messages(
    websocket: WebSocket,
    receiver: Callable[[], Awaitable[T]],
    *,
    timeout_seconds: float | int | None,
    ping_interval_seconds: float | int | None,
    ping_payload: Dict[str, Any] | None = None,
) -> AsyncIterator[T]:
    """Yield messages from *receiver* while sending keepalive pings when idle."""

    ping_payload = ping_payload or {"type": "ping"}
    timeout = float(timeout_seconds) if timeout_seconds else 0.0
    interval = float(ping_interval_seconds) if ping_interval_seconds else 0.0
    last_activity = time.monotonic()
    last_ping_sent: float | None = None

    while True:
        try:
            if timeout > 0:
                message = await asyncio.wait_for(receiver(), timeout=timeout)
            else:
                message = await receiver()
        except asyncio.TimeoutError:
            if websocket.application_state != WebSocketState.CONNECTED:
                break
            now = time.monotonic()
            due = interval <= 0 or (
                now - last_activity >= interval
                and (last_ping_sent is None or now - last_ping_sent >= interval)
            )
            if due:
                if not await safe_send_json(websocket, ping_payload):
                    break
                last_ping_sent = now
            continue
        except (RuntimeError, WebSocketDisconnect):
            break
        else:
            last_activity = time.monotonic()
            last_ping_sent = None
            yield message


async def safe_send_json(websocket: WebSocket, data: dict[str, Any]) -> bool:
    if websocket.application_state != WebSocketState.CONNECTED:
        return False
    try:
        await websocket.send_json(data)
    except (RuntimeError, WebSocketDisconnect):
        return False
    return True


def _token_from(websocket: WebSocket) -> str | None:
    token = websocket.query_params.get("token")
    if not token:
        auth_header = websocket.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header.removeprefix("Bearer ").strip()
    return token


async def _authorize(
    websocket: WebSocket,
    destination: Destination,
    session_factory: sessionmaker[Session],
) -> bool:
    """Authenticate the socket and apply the access guard before accepting."""

    try:
        caller = user_id_from_token(_token_from(websocket))
        with session_factory() as db:
            resolve_access(caller, destination, db)
    except ParleyError as exc:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=str(exc.detail))
        return False
    return True


async def _serve(
    websocket: WebSocket,
    destination: Destination,
    session_factory: sessionmaker[Session],
) -> None:
    if not await _authorize(websocket, destination, session_factory):
        return

    entity = destination.key
    scope = destination.kind.value
    await websocket.accept()
    await destination_event_hub.connect(entity, websocket)
    websocket_connections.inc(scope=scope)
    await safe_send_json(websocket, {"type": "subscribed", "entity": entity})
    try:
        async for raw_message in iter_keepalive_messages(
            websocket,
            websocket.receive_text,
            timeout_seconds=settings.websocket_keepalive_timeout_seconds,
            ping_interval_seconds=settings.websocket_keepalive_ping_interval_seconds,
        ):
            try:
                payload = json.loads(raw_message)
            except json.JSONDecodeError:
                continue
            if isinstance(payload, dict) and payload.get("type") == "ping":
                await safe_send_json(websocket, {"type": "pong"})
    finally:
        websocket_connections.dec(scope=scope)
        await destination_event_hub.disconnect(entity, websocket)


@router.websocket("/channels/{channel_id}")
async def websocket_channel(
    websocket: WebSocket,
    channel_id: int,
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
) -> None:
    """Stream change notifications for a channel."""

    await _serve(websocket, Destination.channel(channel_id), session_factory)


@router.websocket("/conversations/{conversation_id}")
async def websocket_conversation(
    websocket: WebSocket,
    conversation_id: int,
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
) -> None:
    """Stream change notifications for a direct conversation."""

    await _serve(websocket, Destination.conversation(conversation_id), session_factory)
