"""Direct-message conversation endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from parley.api.deps import get_current_user_id
from parley.config import get_settings
from parley.database import get_db
from parley.models import Destination
from parley.schemas import (
    ConversationCreate,
    ConversationRead,
    MessagePage,
    MessageRead,
    TypingUsers,
)
from parley.services import conversations, history, mentions, typing

router = APIRouter(prefix="/conversations", tags=["conversations"])

settings = get_settings()


@router.post("", response_model=ConversationRead)
def get_or_create_conversation(
    payload: ConversationCreate,
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> ConversationRead:
    conversation = conversations.get_or_create_conversation(
        current_user_id, payload.other_user_id, db
    )
    return conversations.get_conversation(current_user_id, conversation.id, db)


@router.get("", response_model=list[ConversationRead])
def list_conversations(
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> list[ConversationRead]:
    return conversations.list_conversations(current_user_id, db)


@router.get("/{conversation_id}", response_model=ConversationRead | None)
def get_conversation(
    conversation_id: int,
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> ConversationRead | None:
    return conversations.get_conversation(current_user_id, conversation_id, db)


@router.get("/{conversation_id}/messages", response_model=MessagePage)
def get_conversation_messages(
    conversation_id: int,
    limit: int = Query(default=settings.chat_history_default_limit, ge=1, le=settings.chat_history_max_limit),
    cursor: str | None = Query(default=None, max_length=256),
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> MessagePage:
    return history.get_messages(
        current_user_id, Destination.conversation(conversation_id), db, limit=limit, cursor=cursor
    )


@router.get("/{conversation_id}/search", response_model=list[MessageRead])
def search_conversation_messages(
    conversation_id: int,
    q: str = Query(..., min_length=1, max_length=256),
    limit: int = Query(default=settings.search_default_limit, ge=1, le=settings.chat_history_max_limit),
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> list[MessageRead]:
    return history.search_messages(
        current_user_id, Destination.conversation(conversation_id), q, db, limit=limit
    )


@router.put("/{conversation_id}/typing", status_code=status.HTTP_204_NO_CONTENT)
def set_typing(
    conversation_id: int,
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> Response:
    typing.set_typing(current_user_id, Destination.conversation(conversation_id), db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{conversation_id}/typing", status_code=status.HTTP_204_NO_CONTENT)
def clear_typing(
    conversation_id: int,
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> Response:
    typing.clear_typing(current_user_id, Destination.conversation(conversation_id), db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{conversation_id}/typing", response_model=TypingUsers)
def get_typing_users(
    conversation_id: int,
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> TypingUsers:
    return TypingUsers(
        users=typing.get_typing_users(
            current_user_id, Destination.conversation(conversation_id), db
        )
    )


@router.post("/{conversation_id}/read", status_code=status.HTTP_204_NO_CONTENT)
def mark_conversation_read(
    conversation_id: int,
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> Response:
    mentions.mark_conversation_read(current_user_id, conversation_id, db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
