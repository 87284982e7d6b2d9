"""Per-user read markers for channels and conversations."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from parley.models import ChannelReadStatus, ConversationReadStatus
from parley.models.base import utcnow


def touch_channel_read(channel_id: int, user_id: str, db: Session, at: datetime | None = None) -> None:
    """Upsert ``last_read_at``; the caller commits."""

    at = at or utcnow()
    stmt = select(ChannelReadStatus).where(
        ChannelReadStatus.channel_id == channel_id,
        ChannelReadStatus.user_id == user_id,
    )
    status = db.execute(stmt).scalar_one_or_none()
    if status is None:
        db.add(ChannelReadStatus(channel_id=channel_id, user_id=user_id, last_read_at=at))
    elif status.last_read_at < at:
        status.last_read_at = at


def touch_conversation_read(
    conversation_id: int, user_id: str, db: Session, at: datetime | None = None
) -> None:
    at = at or utcnow()
    stmt = select(ConversationReadStatus).where(
        ConversationReadStatus.conversation_id == conversation_id,
        ConversationReadStatus.user_id == user_id,
    )
    status = db.execute(stmt).scalar_one_or_none()
    if status is None:
        db.add(ConversationReadStatus(conversation_id=conversation_id, user_id=user_id, last_read_at=at))
    elif status.last_read_at < at:
        status.last_read_at = at


def channel_read_times(user_id: str, channel_ids: list[int], db: Session) -> dict[int, datetime]:
    if not channel_ids:
        return {}
    stmt = select(ChannelReadStatus.channel_id, ChannelReadStatus.last_read_at).where(
        ChannelReadStatus.user_id == user_id,
        ChannelReadStatus.channel_id.in_(channel_ids),
    )
    return {channel_id: last_read_at for channel_id, last_read_at in db.execute(stmt)}
