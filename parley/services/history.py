"""Read side: cursor pagination, thread replies, search and enrichment."""

from __future__ import annotations

import base64
import binascii
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session, selectinload

from parley.config import get_settings
from parley.core import storage
from parley.core.errors import ValidationError
from parley.models import Channel, Conversation, Destination, Message, SavedMessage
from parley.schemas import (
    AttachmentRead,
    ForwardedFrom,
    LinkEmbed,
    MessagePage,
    MessageRead,
    MessageReactionSummary,
    ParentMessagePreview,
    SavedMessageRead,
    ThreadSummary,
    UserSummary,
)
from parley.services.access import can_access, get_channel, visible_channel_ids
from parley.services.profiles import load_profiles

settings = get_settings()

_MESSAGE_LOAD_OPTIONS = (
    selectinload(Message.mention_entries),
    selectinload(Message.reactions),
)


def _destination_filter(destination: Destination):
    if destination.is_channel:
        return Message.channel_id == destination.id
    return Message.conversation_id == destination.id


def encode_cursor(message: Message) -> str:
    payload = f"v1|{message.created_at.isoformat()}|{message.id}"
    return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> tuple[datetime, int]:
    try:
        raw = base64.urlsafe_b64decode(cursor.encode("ascii")).decode("utf-8")
        version, timestamp, message_id = raw.split("|", 2)
        if version != "v1":
            raise ValueError("Unsupported cursor version")
        return datetime.fromisoformat(timestamp), int(message_id)
    except (ValueError, UnicodeError, binascii.Error) as exc:
        raise ValidationError("Invalid cursor") from exc


def _clamp_limit(limit: int | None, default: int) -> int:
    if limit is None:
        return default
    return max(1, min(limit, settings.chat_history_max_limit))


@dataclass(slots=True)
class _ThreadStats:
    count: int = 0
    repliers: list[str] = field(default_factory=list)
    last_reply_at: datetime | None = None


def _collect_thread_stats(messages: Sequence[Message], db: Session) -> dict[int, _ThreadStats]:
    """Reply count and most recent distinct repliers per top-level message."""

    root_ids = [message.id for message in messages if message.parent_message_id is None]
    if not root_ids:
        return {}
    stmt = (
        select(Message.parent_message_id, Message.user_id, Message.created_at)
        .where(Message.parent_message_id.in_(root_ids))
        .order_by(Message.created_at.desc(), Message.id.desc())
    )
    preview = settings.thread_replier_preview_count
    stats: dict[int, _ThreadStats] = defaultdict(_ThreadStats)
    for parent_id, user_id, created_at in db.execute(stmt):
        entry = stats[parent_id]
        entry.count += 1
        if entry.last_reply_at is None:
            entry.last_reply_at = created_at
        if len(entry.repliers) < preview and user_id not in entry.repliers:
            entry.repliers.append(user_id)
    return stats


def _group_reactions(message: Message, caller: str) -> list[MessageReactionSummary]:
    grouped: dict[str, list[str]] = defaultdict(list)
    for reaction in message.reactions:
        grouped[reaction.emoji].append(reaction.user_id)
    return [
        MessageReactionSummary(
            emoji=emoji,
            count=len(user_ids),
            reacted=caller in user_ids,
            user_ids=user_ids,
        )
        for emoji, user_ids in grouped.items()
    ]


def serialize_messages(
    messages: Sequence[Message],
    caller: str,
    db: Session,
    *,
    resolve_parents: bool = True,
) -> list[MessageRead]:
    """Enrich a page of messages with one batch query per concern."""

    if not messages:
        return []

    parents: dict[int, Message] = {}
    if resolve_parents:
        parent_ids = {m.parent_message_id for m in messages if m.parent_message_id is not None}
        if parent_ids:
            rows = db.execute(select(Message).where(Message.id.in_(parent_ids))).scalars()
            parents = {parent.id: parent for parent in rows}

    thread_stats = _collect_thread_stats(messages, db)

    message_ids = [message.id for message in messages]
    saved_ids = set(
        db.execute(
            select(SavedMessage.message_id).where(
                SavedMessage.user_id == caller, SavedMessage.message_id.in_(message_ids)
            )
        ).scalars()
    )

    user_ids = {message.user_id for message in messages}
    user_ids.update(parent.user_id for parent in parents.values())
    for entry in thread_stats.values():
        user_ids.update(entry.repliers)
    profiles = load_profiles(user_ids, db)

    urls = {
        storage_id: storage.url_for(storage_id)
        for message in messages
        for storage_id in message.storage_ids
    }

    serialized: list[MessageRead] = []
    for message in messages:
        parent = parents.get(message.parent_message_id) if message.parent_message_id else None
        stats = thread_stats.get(message.id)
        forwarded = None
        if message.forwarded_from_message_id is not None:
            forwarded = ForwardedFrom(
                message_id=message.forwarded_from_message_id,
                name=message.forwarded_from_name,
                user_name=message.forwarded_from_user_name,
            )
        serialized.append(
            MessageRead(
                id=message.id,
                channel_id=message.channel_id,
                conversation_id=message.conversation_id,
                user_id=message.user_id,
                author=profiles.get(message.user_id) or UserSummary(id=message.user_id),
                content=message.content,
                attachments=[
                    AttachmentRead(**item, url=urls.get(item["storage_id"], ""))
                    for item in message.attachments or []
                ],
                link_embed=LinkEmbed(**message.link_embed) if message.link_embed else None,
                parent_message_id=message.parent_message_id,
                parent_message=(
                    ParentMessagePreview(
                        id=parent.id,
                        content=parent.content,
                        user_id=parent.user_id,
                        user_name=profiles[parent.user_id].name,
                    )
                    if parent is not None
                    else None
                ),
                mentions=message.mentions,
                reactions=_group_reactions(message, caller),
                pinned=message.pinned,
                created_at=message.created_at,
                edited_at=message.edited_at,
                forwarded_from=forwarded,
                thread=(
                    ThreadSummary(
                        reply_count=stats.count,
                        latest_repliers=[profiles[user_id] for user_id in stats.repliers],
                        last_reply_at=stats.last_reply_at,
                    )
                    if stats is not None
                    else None
                ),
                is_own=message.user_id == caller,
                is_saved=message.id in saved_ids,
            )
        )
    return serialized


def get_messages(
    caller: str,
    destination: Destination,
    db: Session,
    *,
    limit: int | None = None,
    cursor: str | None = None,
) -> MessagePage:
    """One page of top-level messages, oldest first, older than ``cursor``.

    Rows are read newest-first with one extra row to detect ``has_more``,
    trimmed, then reversed. Ordering by ``(created_at, id)`` keeps the page
    sequence gap-free.
    """

    if not can_access(caller, destination, db):
        return MessagePage()
    limit = _clamp_limit(limit, settings.chat_history_default_limit)

    stmt = select(Message).where(
        _destination_filter(destination), Message.parent_message_id.is_(None)
    )
    if cursor:
        pivot_time, pivot_id = decode_cursor(cursor)
        stmt = stmt.where(
            or_(
                Message.created_at < pivot_time,
                and_(Message.created_at == pivot_time, Message.id < pivot_id),
            )
        )
    stmt = (
        stmt.order_by(Message.created_at.desc(), Message.id.desc())
        .limit(limit + 1)
        .options(*_MESSAGE_LOAD_OPTIONS)
    )
    rows = list(db.execute(stmt).scalars())
    has_more = len(rows) > limit
    if has_more:
        rows = rows[:-1]
    rows.reverse()

    return MessagePage(
        messages=serialize_messages(rows, caller, db),
        next_cursor=encode_cursor(rows[0]) if has_more and rows else None,
        has_more=has_more,
    )



def get_message(caller: str, message_id: int, db: Session) -> MessageRead | None:
    stmt = select(Message).where(Message.id == message_id).options(*_MESSAGE_LOAD_OPTIONS)
    message = db.execute(stmt).scalar_one_or_none()
    if message is None or not can_access(caller, message.destination, db):
        return None
    return serialize_messages([message], caller, db)[0]


def get_recent_messages(
    caller: str, organization_id: int, db: Session, *, limit: int = 5
) -> list[MessageRead]:
    """The caller's own latest messages across the organization's visible channels."""

    channel_ids = visible_channel_ids(caller, organization_id, db)
    if not channel_ids:
        return []
    stmt = (
        select(Message)
        .where(Message.channel_id.in_(channel_ids), Message.user_id == caller)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(_clamp_limit(limit, 5))
        .options(*_MESSAGE_LOAD_OPTIONS)
    )
    return serialize_messages(list(db.execute(stmt).scalars()), caller, db)

def get_thread_replies(caller: str, parent_id: int, db: Session) -> list[MessageRead]:
    parent = db.get(Message, parent_id)
    if parent is None or not can_access(caller, parent.destination, db):
        return []
    stmt = (
        select(Message)
        .where(Message.parent_message_id == parent_id)
        .order_by(Message.created_at.asc(), Message.id.asc())
        .options(*_MESSAGE_LOAD_OPTIONS)
    )
    return serialize_messages(list(db.execute(stmt).scalars()), caller, db)


def search_messages(
    caller: str,
    destination: Destination,
    query: str,
    db: Session,
    *,
    limit: int | None = None,
) -> list[MessageRead]:
    """Case-insensitive substring match over content, newest first."""

    query = (query or "").strip()
    if not query or not can_access(caller, destination, db):
        return []
    limit = _clamp_limit(limit, settings.search_default_limit)
    stmt = (
        select(Message)
        .where(
            _destination_filter(destination),
            func.lower(Message.content).contains(query.lower(), autoescape=True),
        )
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(limit)
        .options(*_MESSAGE_LOAD_OPTIONS)
    )
    return serialize_messages(list(db.execute(stmt).scalars()), caller, db)


def get_pinned_messages(caller: str, channel_id: int, db: Session) -> list[MessageRead]:
    destination = Destination.channel(channel_id)
    if not can_access(caller, destination, db):
        return []
    stmt = (
        select(Message)
        .where(Message.channel_id == channel_id, Message.pinned.is_(True))
        .order_by(Message.created_at.desc(), Message.id.desc())
        .options(*_MESSAGE_LOAD_OPTIONS)
    )
    return serialize_messages(list(db.execute(stmt).scalars()), caller, db)


def _origin_name(message: Message, caller: str, db: Session) -> str | None:
    if message.channel_id is not None:
        return get_channel(message.channel_id, db).name
    conversation = db.get(Conversation, message.conversation_id)
    if conversation is None:
        return None
    other = conversation.other_participant(caller)
    return load_profiles([other], db)[other].name


def list_saved_messages(caller: str, db: Session, *, limit: int = 50) -> list[SavedMessageRead]:
    """Saved messages, newest save first, skipping ones no longer visible."""

    stmt = (
        select(SavedMessage, Message)
        .join(Message, Message.id == SavedMessage.message_id)
        .where(SavedMessage.user_id == caller)
        .order_by(SavedMessage.saved_at.desc(), SavedMessage.id.desc())
        .options(selectinload(Message.mention_entries), selectinload(Message.reactions))
    )
    visible: dict[Destination, bool] = {}
    picked: list[tuple[SavedMessage, Message]] = []
    for saved, message in db.execute(stmt):
        destination = message.destination
        if destination not in visible:
            visible[destination] = can_access(caller, destination, db)
        if visible[destination]:
            picked.append((saved, message))
        if len(picked) >= limit:
            break

    serialized = serialize_messages([message for _, message in picked], caller, db)
    names: dict[Destination, str | None] = {}
    results: list[SavedMessageRead] = []
    for (saved, message), item in zip(picked, serialized):
        if message.destination not in names:
            names[message.destination] = _origin_name(message, caller, db)
        results.append(
            SavedMessageRead(
                message=item,
                saved_at=saved.saved_at,
                origin_name=names[message.destination],
            )
        )
    return results


def channel_names(channel_ids: Sequence[int], db: Session) -> dict[int, str]:
    if not channel_ids:
        return {}
    stmt = select(Channel.id, Channel.name).where(Channel.id.in_(channel_ids))
    return {channel_id: name for channel_id, name in db.execute(stmt)}
