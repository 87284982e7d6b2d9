"""Message store: every mutation of a message goes through here."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta
from typing import Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from parley.config import get_settings
from parley.core import storage
from parley.core.errors import Forbidden, NotFound, PayloadTooLarge, Unauthenticated, ValidationError
from parley.core.mentions import merge_mentions, parse_mentions
from parley.models import (
    Destination,
    MentionReadStatus,
    Message,
    MessageMention,
    MessageReaction,
    SavedMessage,
)
from parley.models.base import utcnow
from parley.monitoring.metrics import message_mutations_total, messages_sent_total
from parley.schemas import AttachmentPayload, ForwardResult, LinkEmbed
from parley.services.access import DestinationAccess, resolve_access
from parley.services.events import ChangeNotifier, notifier as default_notifier, user_entity
from parley.services.profiles import display_name
from parley.services.read_state import touch_channel_read, touch_conversation_read
from parley.services.typing import delete_typing_rows

logger = logging.getLogger(__name__)

settings = get_settings()

_URL_RE = re.compile(r"https?://[^\s<>)\"']+")

_MESSAGE_LOAD_OPTIONS = (
    selectinload(Message.mention_entries),
    selectinload(Message.reactions),
)


def first_url(content: str) -> str | None:
    match = _URL_RE.search(content or "")
    return match.group(0) if match else None


def get_message(message_id: int, db: Session) -> Message:
    stmt = select(Message).where(Message.id == message_id).options(*_MESSAGE_LOAD_OPTIONS)
    message = db.execute(stmt).scalar_one_or_none()
    if message is None:
        raise NotFound("Message not found")
    return message


def destination_name(access: DestinationAccess, caller: str, db: Session) -> str:
    """Channel name, or the other participant's name for a conversation."""

    if access.channel is not None:
        return access.channel.name
    return display_name(access.conversation.other_participant(caller), db)


def _destination_filter(destination: Destination):
    if destination.is_channel:
        return Message.channel_id == destination.id
    return Message.conversation_id == destination.id


def next_created_at(destination: Destination, db: Session) -> datetime:
    """Strictly increasing timestamp within a destination."""

    now = utcnow()
    latest = db.execute(
        select(Message.created_at)
        .where(_destination_filter(destination))
        .order_by(Message.created_at.desc())
        .limit(1)
    ).scalar_one_or_none()
    if latest is not None and latest >= now:
        return latest + timedelta(microseconds=1)
    return now


def _normalize_content(content: str | None) -> str:
    content = (content or "").strip()
    if len(content) > settings.chat_message_max_length:
        raise PayloadTooLarge(
            f"Message exceeds {settings.chat_message_max_length} characters"
        )
    return content


def _normalize_attachments(attachments: Sequence[AttachmentPayload | dict] | None) -> list[dict]:
    normalized: list[dict] = []
    for item in attachments or []:
        payload = item if isinstance(item, AttachmentPayload) else AttachmentPayload.model_validate(item)
        if payload.size > settings.max_attachment_size:
            raise PayloadTooLarge(f'File "{payload.name}" exceeds the attachment size limit')
        normalized.append(payload.model_dump())
    return normalized


def _set_mentions(message: Message, mentions: Sequence[str]) -> None:
    message.mention_entries = [
        MessageMention(user_id=user_id, position=index) for index, user_id in enumerate(mentions)
    ]


def _insert_message(
    access: DestinationAccess,
    caller: str,
    db: Session,
    *,
    content: str,
    attachments: list[dict],
    link_embed: dict | None,
    parent_message_id: int | None = None,
    mentions: Sequence[str] = (),
    forwarded_from: tuple[int, str | None, str | None] | None = None,
) -> Message:
    destination = access.destination
    created_at = next_created_at(destination, db)
    message = Message(
        user_id=caller,
        content=content,
        attachments=attachments,
        link_embed=link_embed,
        parent_message_id=parent_message_id,
        created_at=created_at,
        **destination.columns(),
    )
    if forwarded_from is not None:
        (
            message.forwarded_from_message_id,
            message.forwarded_from_name,
            message.forwarded_from_user_name,
        ) = forwarded_from
    _set_mentions(message, mentions)
    db.add(message)

    if access.conversation is not None:
        access.conversation.last_message_at = created_at
        touch_conversation_read(access.conversation.id, caller, db, at=created_at)
    else:
        touch_channel_read(access.channel.id, caller, db, at=created_at)
    return message


def send_message(
    caller: str,
    destination: Destination,
    content: str | None,
    db: Session,
    *,
    attachments: Sequence[AttachmentPayload | dict] | None = None,
    parent_message_id: int | None = None,
    link_embed: LinkEmbed | dict | None = None,
    notifier: ChangeNotifier = default_notifier,
) -> Message:
    """Validate and persist a new message, returning it."""

    access = resolve_access(caller, destination, db)
    content = _normalize_content(content)
    normalized_attachments = _normalize_attachments(attachments)
    if not content and not normalized_attachments:
        raise ValidationError("Message must have content or attachments")
    if access.channel is not None and access.channel.is_read_only and not access.is_admin:
        raise Forbidden("Only admins can post in this read-only channel")

    implicit: list[str] = []
    if parent_message_id is not None:
        parent = db.get(Message, parent_message_id)
        if parent is None or parent.destination != destination:
            raise ValidationError("Parent message not found in this destination")
        if parent.parent_message_id is not None:
            raise ValidationError("Cannot reply to a thread reply")
        if parent.user_id != caller:
            implicit.append(parent.user_id)

    if isinstance(link_embed, LinkEmbed):
        link_embed = link_embed.model_dump(exclude_none=True)

    message = _insert_message(
        access,
        caller,
        db,
        content=content,
        attachments=normalized_attachments,
        link_embed=link_embed,
        parent_message_id=parent_message_id,
        mentions=merge_mentions(parse_mentions(content), implicit),
    )
    delete_typing_rows(caller, destination, db)
    db.commit()
    db.refresh(message)

    messages_sent_total.inc(destination=destination.kind.value)
    logger.info("Message %s sent to %s by %s", message.id, destination.key, caller)
    notifier.notify(destination.key, {"type": "message_created", "message_id": message.id})
    return message


def _require_author(message: Message, caller: str, action: str) -> None:
    if message.user_id != caller:
        raise Forbidden(f"Only the author can {action} this message")


def edit_message(
    caller: str,
    message_id: int,
    content: str | None,
    db: Session,
    *,
    notifier: ChangeNotifier = default_notifier,
) -> Message:
    message = get_message(message_id, db)
    resolve_access(caller, message.destination, db)
    _require_author(message, caller, "edit")
    content = _normalize_content(content)
    if not content:
        raise ValidationError("Message content cannot be empty")

    implicit: list[str] = []
    if message.parent_message_id is not None:
        parent = db.get(Message, message.parent_message_id)
        if parent is not None and parent.user_id != caller:
            implicit.append(parent.user_id)

    message.content = content
    message.edited_at = utcnow()
    _set_mentions(message, merge_mentions(parse_mentions(content), implicit))
    db.commit()
    db.refresh(message)

    message_mutations_total.inc(action="edit")
    logger.info("Message %s edited by %s", message.id, caller)
    notifier.notify(message.destination.key, {"type": "message_updated", "message_id": message.id})
    return message


def delete_message(
    caller: str,
    message_id: int,
    db: Session,
    *,
    notifier: ChangeNotifier = default_notifier,
) -> None:
    """Delete a message with its saved references and attachment blobs.

    Blob removal is best-effort: storage errors are logged and the cascade
    continues.
    """

    message = get_message(message_id, db)
    resolve_access(caller, message.destination, db)
    _require_author(message, caller, "delete")
    destination = message.destination

    for storage_id in message.storage_ids:
        try:
            storage.delete(storage_id)
        except Exception:
            logger.warning("Failed to delete blob %s of message %s", storage_id, message_id, exc_info=True)

    db.execute(delete(SavedMessage).where(SavedMessage.message_id == message_id))
    db.execute(delete(MentionReadStatus).where(MentionReadStatus.message_id == message_id))
    # Replies outlive their root as top-level history.
    db.execute(
        update(Message).where(Message.parent_message_id == message_id).values(parent_message_id=None)
    )
    db.delete(message)
    db.commit()

    message_mutations_total.inc(action="delete")
    logger.info("Message %s deleted by %s", message_id, caller)
    notifier.notify(destination.key, {"type": "message_deleted", "message_id": message_id})


def toggle_reaction(
    caller: str,
    message_id: int,
    emoji: str,
    db: Session,
    *,
    notifier: ChangeNotifier = default_notifier,
) -> bool:
    """Remove the caller's reaction if present, else add it.

    Returns whether the reaction is present afterwards. The delete and the
    insert are single statements guarded by the unique constraint, so
    concurrent duplicates settle on one row.
    """

    emoji = (emoji or "").strip()
    if not emoji or len(emoji) > 32:
        raise ValidationError("Invalid emoji")
    message = get_message(message_id, db)
    destination = message.destination
    resolve_access(caller, destination, db)

    removed = db.execute(
        delete(MessageReaction).where(
            MessageReaction.message_id == message_id,
            MessageReaction.user_id == caller,
            MessageReaction.emoji == emoji,
        )
    ).rowcount
    if removed:
        db.commit()
        present = False
    else:
        db.add(MessageReaction(message_id=message_id, user_id=caller, emoji=emoji))
        try:
            db.commit()
        except IntegrityError:
            # A concurrent toggle inserted the same row first.
            db.rollback()
        present = True

    message_mutations_total.inc(action="react")
    notifier.notify(destination.key, {"type": "reaction_toggled", "message_id": message_id})
    return present


def toggle_pin(
    caller: str,
    message_id: int,
    db: Session,
    *,
    notifier: ChangeNotifier = default_notifier,
) -> bool:
    message = get_message(message_id, db)
    if message.channel_id is None:
        raise ValidationError("Only channel messages can be pinned")
    access = resolve_access(caller, message.destination, db)
    if not access.is_admin:
        raise Forbidden("Only admins can pin messages")

    message.pinned = not message.pinned
    db.commit()

    message_mutations_total.inc(action="pin")
    notifier.notify(message.destination.key, {"type": "message_pinned", "message_id": message_id})
    return message.pinned


def save_message(
    caller: str,
    message_id: int,
    db: Session,
    *,
    notifier: ChangeNotifier = default_notifier,
) -> bool:
    """Bookmark a message. Returns False when it was already saved."""

    message = get_message(message_id, db)
    resolve_access(caller, message.destination, db)

    exists = db.execute(
        select(SavedMessage.id).where(
            SavedMessage.user_id == caller, SavedMessage.message_id == message_id
        )
    ).first()
    if exists is not None:
        return False
    db.add(SavedMessage(user_id=caller, message_id=message_id))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return False

    message_mutations_total.inc(action="save")
    notifier.notify(user_entity(caller), {"type": "message_saved", "message_id": message_id})
    return True


def unsave_message(
    caller: str,
    message_id: int,
    db: Session,
    *,
    notifier: ChangeNotifier = default_notifier,
) -> bool:
    """Remove a bookmark. Returns False when nothing was saved.

    The message itself may already be gone; unsaving then is a no-op.
    """

    if not caller:
        raise Unauthenticated()
    removed = db.execute(
        delete(SavedMessage).where(
            SavedMessage.user_id == caller, SavedMessage.message_id == message_id
        )
    ).rowcount
    db.commit()
    if not removed:
        return False

    message_mutations_total.inc(action="unsave")
    notifier.notify(user_entity(caller), {"type": "message_unsaved", "message_id": message_id})
    return True


def forward_message(
    caller: str,
    message_id: int,
    target: Destination,
    db: Session,
    *,
    notifier: ChangeNotifier = default_notifier,
) -> ForwardResult:
    """Copy a message into another destination, stamping its origin."""

    source = get_message(message_id, db)
    source_access = resolve_access(caller, source.destination, db)
    target_access = resolve_access(caller, target, db)
    if source.destination == target:
        raise ValidationError("Cannot forward a message to the same destination")
    if (
        target_access.channel is not None
        and target_access.channel.is_read_only
        and not target_access.is_admin
    ):
        raise Forbidden("Only admins can post in this read-only channel")

    origin = (
        source.id,
        destination_name(source_access, caller, db),
        display_name(source.user_id, db),
    )
    forwarded = _insert_message(
        target_access,
        caller,
        db,
        content=source.content,
        attachments=list(source.attachments or []),
        link_embed=source.link_embed,
        forwarded_from=origin,
    )
    db.commit()

    messages_sent_total.inc(destination=target.kind.value)
    message_mutations_total.inc(action="forward")
    logger.info("Message %s forwarded to %s as %s by %s", source.id, target.key, forwarded.id, caller)
    notifier.notify(target.key, {"type": "message_created", "message_id": forwarded.id})
    return ForwardResult(
        message_id=forwarded.id,
        target_kind=target.kind,
        target_name=destination_name(target_access, caller, db),
    )


def store_link_embed(
    message_id: int,
    embed: LinkEmbed | None,
    session_factory: sessionmaker[Session],
    *,
    notifier: ChangeNotifier = default_notifier,
) -> bool:
    """Attach an unfurled preview to a message if it still has none."""

    if embed is None:
        return False
    with session_factory() as db:
        message = db.get(Message, message_id)
        if message is None or message.link_embed is not None:
            return False
        message.link_embed = embed.model_dump(exclude_none=True)
        db.commit()
        destination = message.destination

    notifier.notify(destination.key, {"type": "message_updated", "message_id": message_id})
    return True
