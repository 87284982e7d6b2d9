"""Channel-scoped read endpoints, typing presence, read markers and muting."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from parley.api.deps import get_current_user_id
from parley.config import get_settings
from parley.database import get_db
from parley.models import Destination
from parley.schemas import MessagePage, MessageRead, TypingUsers
from parley.services import history, mentions, typing

router = APIRouter(prefix="/channels", tags=["channels"])

settings = get_settings()


@router.get("/{channel_id}/messages", response_model=MessagePage)
def get_channel_messages(
    channel_id: int,
    limit: int = Query(default=settings.chat_history_default_limit, ge=1, le=settings.chat_history_max_limit),
    cursor: str | None = Query(default=None, max_length=256),
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> MessagePage:
    """Top-level messages, oldest first, older than ``cursor`` when given."""

    return history.get_messages(
        current_user_id, Destination.channel(channel_id), db, limit=limit, cursor=cursor
    )


@router.get("/{channel_id}/search", response_model=list[MessageRead])
def search_channel_messages(
    channel_id: int,
    q: str = Query(..., min_length=1, max_length=256),
    limit: int = Query(default=settings.search_default_limit, ge=1, le=settings.chat_history_max_limit),
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> list[MessageRead]:
    return history.search_messages(
        current_user_id, Destination.channel(channel_id), q, db, limit=limit
    )


@router.get("/{channel_id}/pins", response_model=list[MessageRead])
def get_channel_pins(
    channel_id: int,
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> list[MessageRead]:
    return history.get_pinned_messages(current_user_id, channel_id, db)


@router.put("/{channel_id}/typing", status_code=status.HTTP_204_NO_CONTENT)
def set_typing(
    channel_id: int,
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> Response:
    typing.set_typing(current_user_id, Destination.channel(channel_id), db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{channel_id}/typing", status_code=status.HTTP_204_NO_CONTENT)
def clear_typing(
    channel_id: int,
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> Response:
    typing.clear_typing(current_user_id, Destination.channel(channel_id), db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{channel_id}/typing", response_model=TypingUsers)
def get_typing_users(
    channel_id: int,
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> TypingUsers:
    return TypingUsers(
        users=typing.get_typing_users(current_user_id, Destination.channel(channel_id), db)
    )


@router.post("/{channel_id}/read", status_code=status.HTTP_204_NO_CONTENT)
def mark_channel_read(
    channel_id: int,
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> Response:
    mentions.mark_channel_read(current_user_id, channel_id, db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{channel_id}/mute", status_code=status.HTTP_204_NO_CONTENT)
def mute_channel(
    channel_id: int,
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> Response:
    mentions.mute_channel(current_user_id, channel_id, db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{channel_id}/mute", status_code=status.HTTP_204_NO_CONTENT)
def unmute_channel(
    channel_id: int,
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> Response:
    mentions.unmute_channel(current_user_id, channel_id, db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
