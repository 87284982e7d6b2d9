"""HTTP endpoints for creating and mutating chat messages."""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Response, status
from sqlalchemy.orm import Session, sessionmaker

from parley.api.deps import get_current_user_id, to_destination
from parley.config import get_settings
from parley.database import get_db, get_session_factory
from parley.models import Destination
from parley.schemas import (
    ForwardRequest,
    ForwardResult,
    MentionReadResult,
    MessageCreate,
    MessageCreated,
    MessageRead,
    MessageUpdate,
    PinResult,
    ReactionRequest,
)
from parley.services import history, mentions, messages
from parley.services.unfurl import unfurl_message_link

router = APIRouter(prefix="/messages", tags=["messages"])

settings = get_settings()


@router.post("", response_model=MessageCreated, status_code=status.HTTP_201_CREATED)
def send_message(
    payload: MessageCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
    current_user_id: str = Depends(get_current_user_id),
) -> MessageCreated:
    """Post a message to a channel or a conversation."""

    message = messages.send_message(
        current_user_id,
        to_destination(payload.destination),
        payload.content,
        db,
        attachments=payload.attachments,
        parent_message_id=payload.parent_message_id,
        link_embed=payload.link_embed,
    )
    url = messages.first_url(message.content)
    if payload.link_embed is None and url and settings.link_unfurl_enabled:
        background_tasks.add_task(
            unfurl_message_link, current_user_id, message.id, url, session_factory
        )
    return MessageCreated(message_id=message.id)


@router.patch("/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
def edit_message(
    message_id: int,
    payload: MessageUpdate,
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> Response:
    messages.edit_message(current_user_id, message_id, payload.content, db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_message(
    message_id: int,
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> Response:
    messages.delete_message(current_user_id, message_id, db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{message_id}/reactions", status_code=status.HTTP_204_NO_CONTENT)
def toggle_reaction(
    message_id: int,
    payload: ReactionRequest,
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> Response:
    messages.toggle_reaction(current_user_id, message_id, payload.emoji, db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{message_id}/pin", response_model=PinResult)
def toggle_pin(
    message_id: int,
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> PinResult:
    return PinResult(pinned=messages.toggle_pin(current_user_id, message_id, db))


@router.put("/{message_id}/save", status_code=status.HTTP_204_NO_CONTENT)
def save_message(
    message_id: int,
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> Response:
    """Bookmark a message; saving twice is a no-op."""

    messages.save_message(current_user_id, message_id, db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{message_id}/save", status_code=status.HTTP_204_NO_CONTENT)
def unsave_message(
    message_id: int,
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> Response:
    messages.unsave_message(current_user_id, message_id, db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{message_id}/forward", response_model=ForwardResult)
def forward_message(
    message_id: int,
    payload: ForwardRequest,
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> ForwardResult:
    if payload.channel_id is not None:
        target = Destination.channel(payload.channel_id)
    else:
        target = Destination.conversation(payload.conversation_id)
    return messages.forward_message(current_user_id, message_id, target, db)


@router.get("/{message_id}", response_model=MessageRead | None)
def get_message(
    message_id: int,
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> MessageRead | None:
    return history.get_message(current_user_id, message_id, db)


@router.get("/{message_id}/replies", response_model=list[MessageRead])
def get_thread_replies(
    message_id: int,
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> list[MessageRead]:
    return history.get_thread_replies(current_user_id, message_id, db)


@router.post("/{message_id}/mention-read", response_model=MentionReadResult)
def mark_mention_read(
    message_id: int,
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> MentionReadResult:
    return MentionReadResult(
        already_read=mentions.mark_mention_read(current_user_id, message_id, db)
    )
