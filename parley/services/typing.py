"""Ephemeral typing indicators.

Expiry is a read-time filter: rows older than ``typing_ttl_ms`` are
ignored, so no background sweep is needed.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from parley.config import get_settings
from parley.models import Destination, TypingIndicator
from parley.models.base import utcnow
from parley.monitoring.metrics import typing_updates_total
from parley.schemas import UserSummary
from parley.services.access import can_access, resolve_access
from parley.services.events import ChangeNotifier, notifier as default_notifier
from parley.services.profiles import load_profiles


def _destination_filter(destination: Destination):
    columns = destination.columns()
    if destination.is_channel:
        return TypingIndicator.channel_id == columns["channel_id"]
    return TypingIndicator.conversation_id == columns["conversation_id"]


def _touch(caller: str, destination: Destination, now: datetime, db: Session) -> int:
    result = db.execute(
        update(TypingIndicator)
        .where(_destination_filter(destination), TypingIndicator.user_id == caller)
        .values(last_typing_at=now)
    )
    return result.rowcount or 0


def set_typing(
    caller: str,
    destination: Destination,
    db: Session,
    *,
    now: datetime | None = None,
    notifier: ChangeNotifier = default_notifier,
) -> None:
    resolve_access(caller, destination, db)
    now = now or utcnow()
    if not _touch(caller, destination, now, db):
        db.add(TypingIndicator(user_id=caller, last_typing_at=now, **destination.columns()))
    try:
        db.commit()
    except IntegrityError:
        # Another tab inserted the row first; refresh it instead.
        db.rollback()
        _touch(caller, destination, now, db)
        db.commit()
    typing_updates_total.inc()
    notifier.notify(destination.key, {"type": "typing", "user_id": caller})


def delete_typing_rows(caller: str, destination: Destination, db: Session) -> int:
    """Remove the caller's indicator without committing."""

    result = db.execute(
        delete(TypingIndicator).where(
            _destination_filter(destination), TypingIndicator.user_id == caller
        )
    )
    return result.rowcount or 0


def clear_typing(
    caller: str,
    destination: Destination,
    db: Session,
    *,
    notifier: ChangeNotifier = default_notifier,
) -> None:
    resolve_access(caller, destination, db)
    removed = delete_typing_rows(caller, destination, db)
    db.commit()
    if removed:
        notifier.notify(destination.key, {"type": "typing_cleared", "user_id": caller})


def get_typing_users(
    caller: str,
    destination: Destination,
    db: Session,
    *,
    now: datetime | None = None,
) -> list[UserSummary]:
    """Users typing within the TTL window, excluding the caller."""

    if not can_access(caller, destination, db):
        return []
    now = now or utcnow()
    threshold = now - timedelta(milliseconds=get_settings().typing_ttl_ms)
    stmt = (
        select(TypingIndicator.user_id, TypingIndicator.last_typing_at)
        .where(_destination_filter(destination), TypingIndicator.user_id != caller)
        .order_by(TypingIndicator.last_typing_at.desc())
    )
    user_ids: list[str] = []
    for user_id, last_typing_at in db.execute(stmt):
        # Strictly inside the window; a row exactly TTL old has expired.
        if last_typing_at > threshold and user_id not in user_ids:
            user_ids.append(user_id)
    profiles = load_profiles(user_ids, db)
    return [profiles[user_id] for user_id in user_ids]
