"""Two-party direct-message conversations."""

from __future__ import annotations

import logging

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from parley.core.errors import NotFound, Unauthenticated, ValidationError
from parley.models import Conversation, ConversationReadStatus, Message, User
from parley.schemas import ConversationRead, ConversationUnread
from parley.services.profiles import load_profiles

logger = logging.getLogger(__name__)

_PREVIEW_LENGTH = 100


def _ordered_pair(first: str, second: str) -> tuple[str, str]:
    return (first, second) if first < second else (second, first)


def _find(pair: tuple[str, str], db: Session) -> Conversation | None:
    stmt = select(Conversation).where(
        Conversation.participant1_id == pair[0],
        Conversation.participant2_id == pair[1],
    )
    return db.execute(stmt).scalar_one_or_none()


def get_or_create_conversation(caller: str, other_user_id: str, db: Session) -> Conversation:
    """Return the canonical conversation between the caller and another user."""

    if not caller:
        raise Unauthenticated()
    if other_user_id == caller:
        raise ValidationError("Cannot start a conversation with yourself")
    if db.get(User, other_user_id) is None:
        raise NotFound("User not found")

    pair = _ordered_pair(caller, other_user_id)
    conversation = _find(pair, db)
    if conversation is not None:
        return conversation

    conversation = Conversation(participant1_id=pair[0], participant2_id=pair[1])
    db.add(conversation)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        conversation = _find(pair, db)
        if conversation is None:
            raise
        return conversation
    db.refresh(conversation)
    logger.info("Conversation %s created between %s and %s", conversation.id, *pair)
    return conversation


def _caller_conversations(caller: str, db: Session) -> list[Conversation]:
    stmt = select(Conversation).where(
        or_(Conversation.participant1_id == caller, Conversation.participant2_id == caller)
    )
    conversations = list(db.execute(stmt).scalars())
    conversations.sort(
        key=lambda item: (item.last_message_at or item.created_at, item.id), reverse=True
    )
    return conversations


def _unread_counts(caller: str, conversations: list[Conversation], db: Session) -> dict[int, int]:
    """Messages from the other participant newer than the caller's read marker."""

    ids = [conversation.id for conversation in conversations]
    if not ids:
        return {}
    stmt = (
        select(Message.conversation_id, func.count(Message.id))
        .outerjoin(
            ConversationReadStatus,
            and_(
                ConversationReadStatus.conversation_id == Message.conversation_id,
                ConversationReadStatus.user_id == caller,
            ),
        )
        .where(
            Message.conversation_id.in_(ids),
            Message.user_id != caller,
            or_(
                ConversationReadStatus.last_read_at.is_(None),
                Message.created_at > ConversationReadStatus.last_read_at,
            ),
        )
        .group_by(Message.conversation_id)
    )
    return {conversation_id: count for conversation_id, count in db.execute(stmt)}


def _last_previews(conversations: list[Conversation], db: Session) -> dict[int, str]:
    ids = [conversation.id for conversation in conversations if conversation.last_message_at is not None]
    if not ids:
        return {}
    # created_at is strictly increasing per conversation, so the max is unique.
    latest = (
        select(Message.conversation_id, func.max(Message.created_at).label("created_at"))
        .where(Message.conversation_id.in_(ids))
        .group_by(Message.conversation_id)
        .subquery()
    )
    stmt = select(Message.conversation_id, Message.content).join(
        latest,
        and_(
            Message.conversation_id == latest.c.conversation_id,
            Message.created_at == latest.c.created_at,
        ),
    )
    return {conversation_id: content[:_PREVIEW_LENGTH] for conversation_id, content in db.execute(stmt)}


def _summaries(caller: str, conversations: list[Conversation], db: Session) -> list[ConversationRead]:
    if not conversations:
        return []
    counts = _unread_counts(caller, conversations, db)
    previews = _last_previews(conversations, db)
    profiles = load_profiles([c.other_participant(caller) for c in conversations], db)
    return [
        ConversationRead(
            id=conversation.id,
            other_user=profiles[conversation.other_participant(caller)],
            created_at=conversation.created_at,
            last_message_at=conversation.last_message_at,
            last_message_preview=previews.get(conversation.id),
            has_unread=counts.get(conversation.id, 0) > 0,
            unread_count=counts.get(conversation.id, 0),
        )
        for conversation in conversations
    ]


def list_conversations(caller: str, db: Session) -> list[ConversationRead]:
    return _summaries(caller, _caller_conversations(caller, db), db)


def get_conversation(caller: str, conversation_id: int, db: Session) -> ConversationRead | None:
    """One conversation with the other participant's profile, if the caller takes part."""

    conversation = db.get(Conversation, conversation_id)
    if conversation is None or not conversation.has_participant(caller):
        return None
    return _summaries(caller, [conversation], db)[0]


def get_unread_conversations(caller: str, db: Session) -> list[ConversationUnread]:
    """Conversations with at least one unread message from the other participant."""

    conversations = _caller_conversations(caller, db)
    counts = _unread_counts(caller, conversations, db)
    unread = [conversation for conversation in conversations if counts.get(conversation.id)]
    profiles = load_profiles([c.other_participant(caller) for c in unread], db)
    return [
        ConversationUnread(
            conversation_id=conversation.id,
            other_user=profiles[conversation.other_participant(caller)],
            unread_count=counts[conversation.id],
        )
        for conversation in unread
    ]
