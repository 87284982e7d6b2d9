"""Mention inbox, per-user read markers, muting and unread aggregation."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from parley.core.errors import NotFound
from parley.core.mentions import EVERYONE
from parley.models import (
    MentionReadStatus,
    Message,
    MessageMention,
    MutedChannel,
)
from parley.models.base import utcnow
from parley.schemas import ChannelUnread, MentionItem, UnreadSummary
from parley.services.access import (
    require_membership,
    resolve_access,
    resolve_channel_access,
    resolve_conversation_access,
    visible_channel_ids,
)
from parley.services.conversations import get_unread_conversations
from parley.services.events import ChangeNotifier, notifier as default_notifier, user_entity
from parley.services.history import channel_names, serialize_messages
from parley.services.read_state import (
    channel_read_times,
    touch_channel_read,
    touch_conversation_read,
)

logger = logging.getLogger(__name__)


def _muted_channel_ids(caller: str, db: Session) -> set[int]:
    stmt = select(MutedChannel.channel_id).where(MutedChannel.user_id == caller)
    return set(db.execute(stmt).scalars())


def _mention_channel_ids(caller: str, organization_id: int, db: Session) -> list[int]:
    muted = _muted_channel_ids(caller, db)
    return [
        channel_id
        for channel_id in visible_channel_ids(caller, organization_id, db)
        if channel_id not in muted
    ]


def _mentioned_message_ids(caller: str, channel_ids: Sequence[int]):
    """Messages in ``channel_ids`` that mention the caller directly or via everyone."""

    return (
        select(Message.id)
        .join(MessageMention, MessageMention.message_id == Message.id)
        .where(
            Message.channel_id.in_(channel_ids),
            Message.user_id != caller,
            MessageMention.user_id.in_((caller, EVERYONE)),
        )
        .distinct()
    )


def _read_message_ids(caller: str):
    return select(MentionReadStatus.message_id).where(MentionReadStatus.user_id == caller)


def _unread_mention_ids(caller: str, channel_ids: Sequence[int], db: Session) -> list[int]:
    if not channel_ids:
        return []
    stmt = _mentioned_message_ids(caller, channel_ids).where(
        Message.id.not_in(_read_message_ids(caller))
    )
    return list(db.execute(stmt).scalars())


def unread_mention_count(caller: str, organization_id: int, db: Session) -> int:
    if not caller:
        return 0
    channel_ids = _mention_channel_ids(caller, organization_id, db)
    if not channel_ids:
        return 0
    subquery = (
        _mentioned_message_ids(caller, channel_ids)
        .where(Message.id.not_in(_read_message_ids(caller)))
        .subquery()
    )
    return db.execute(select(func.count()).select_from(subquery)).scalar_one()


def mark_mention_read(
    caller: str,
    message_id: int,
    db: Session,
    *,
    notifier: ChangeNotifier = default_notifier,
) -> bool:
    """Acknowledge a mention. Returns True when it was already read."""

    message = db.get(Message, message_id)
    if message is None:
        raise NotFound("Message not found")
    resolve_access(caller, message.destination, db)

    exists = db.execute(
        select(MentionReadStatus.id).where(
            MentionReadStatus.user_id == caller, MentionReadStatus.message_id == message_id
        )
    ).first()
    if exists is not None:
        return True
    db.add(MentionReadStatus(user_id=caller, message_id=message_id))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return True

    notifier.notify(user_entity(caller), {"type": "mention_read", "message_id": message_id})
    return False


def mark_all_mentions_read(
    caller: str,
    organization_id: int,
    db: Session,
    *,
    notifier: ChangeNotifier = default_notifier,
) -> int:
    """Mark every currently unread mention as read, skipping muted channels."""

    require_membership(organization_id, caller, db)
    message_ids = _unread_mention_ids(caller, _mention_channel_ids(caller, organization_id, db), db)
    if not message_ids:
        return 0
    now = utcnow()
    db.add_all(
        MentionReadStatus(user_id=caller, message_id=message_id, read_at=now)
        for message_id in message_ids
    )
    marked = len(message_ids)
    try:
        db.commit()
    except IntegrityError:
        # A concurrent call acknowledged some of them; retry one by one.
        db.rollback()
        marked = 0
        for message_id in message_ids:
            db.add(MentionReadStatus(user_id=caller, message_id=message_id, read_at=now))
            try:
                db.commit()
                marked += 1
            except IntegrityError:
                db.rollback()

    logger.info("Marked %s mentions read for %s in organization %s", marked, caller, organization_id)
    notifier.notify(user_entity(caller), {"type": "mentions_read", "message_id": None})
    return marked


def list_mentions(
    caller: str,
    organization_id: int,
    db: Session,
    *,
    limit: int = 20,
) -> list[MentionItem]:
    """Mentions of the caller in the organization, newest first."""

    channel_ids = _mention_channel_ids(caller, organization_id, db)
    if not channel_ids:
        return []
    stmt = (
        select(Message)
        .where(Message.id.in_(_mentioned_message_ids(caller, channel_ids)))
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(max(1, limit))
        .options(selectinload(Message.mention_entries), selectinload(Message.reactions))
    )
    messages = list(db.execute(stmt).scalars())
    if not messages:
        return []
    read_ids = set(
        db.execute(
            _read_message_ids(caller).where(
                MentionReadStatus.message_id.in_([message.id for message in messages])
            )
        ).scalars()
    )
    names = channel_names(list({message.channel_id for message in messages}), db)
    return [
        MentionItem(
            message=item,
            channel_id=message.channel_id,
            channel_name=names.get(message.channel_id, ""),
            is_read=message.id in read_ids,
        )
        for message, item in zip(messages, serialize_messages(messages, caller, db))
    ]


def mark_channel_read(
    caller: str,
    channel_id: int,
    db: Session,
    *,
    notifier: ChangeNotifier = default_notifier,
) -> None:
    resolve_channel_access(caller, channel_id, db)
    touch_channel_read(channel_id, caller, db)
    db.commit()
    notifier.notify(user_entity(caller), {"type": "channel_read", "message_id": None, "channel_id": channel_id})


def mark_conversation_read(
    caller: str,
    conversation_id: int,
    db: Session,
    *,
    notifier: ChangeNotifier = default_notifier,
) -> None:
    resolve_conversation_access(caller, conversation_id, db)
    touch_conversation_read(conversation_id, caller, db)
    db.commit()
    notifier.notify(
        user_entity(caller),
        {"type": "conversation_read", "message_id": None, "conversation_id": conversation_id},
    )


def mute_channel(caller: str, channel_id: int, db: Session) -> bool:
    """Mute a channel. Returns False when it was already muted."""

    resolve_channel_access(caller, channel_id, db)
    exists = db.execute(
        select(MutedChannel.id).where(
            MutedChannel.user_id == caller, MutedChannel.channel_id == channel_id
        )
    ).first()
    if exists is not None:
        return False
    db.add(MutedChannel(user_id=caller, channel_id=channel_id))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return False
    return True


def unmute_channel(caller: str, channel_id: int, db: Session) -> bool:
    resolve_channel_access(caller, channel_id, db)
    removed = db.execute(
        delete(MutedChannel).where(
            MutedChannel.user_id == caller, MutedChannel.channel_id == channel_id
        )
    ).rowcount
    db.commit()
    return bool(removed)


def get_unread_summary(caller: str, organization_id: int, db: Session) -> UnreadSummary:
    """Mention count, per-channel new-message flags and DM unread counts."""

    require_membership(organization_id, caller, db)
    channel_ids = visible_channel_ids(caller, organization_id, db)
    names = channel_names(channel_ids, db)
    read_times = channel_read_times(caller, channel_ids, db)

    latest: dict[int, datetime] = {}
    if channel_ids:
        stmt = (
            select(Message.channel_id, func.max(Message.created_at))
            .where(
                Message.channel_id.in_(channel_ids),
                Message.parent_message_id.is_(None),
                Message.user_id != caller,
            )
            .group_by(Message.channel_id)
        )
        latest = {channel_id: created_at for channel_id, created_at in db.execute(stmt)}

    channels = []
    for channel_id in channel_ids:
        newest = latest.get(channel_id)
        last_read = read_times.get(channel_id)
        has_new = newest is not None and (last_read is None or newest > last_read)
        channels.append(ChannelUnread(channel_id=channel_id, name=names[channel_id], has_new=has_new))

    return UnreadSummary(
        organization_id=organization_id,
        mention_count=unread_mention_count(caller, organization_id, db),
        channels=channels,
        conversations=get_unread_conversations(caller, db),
    )

