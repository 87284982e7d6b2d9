"""Schemas for direct-message conversations."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from parley.schemas.messages import UserSummary


class ConversationCreate(BaseModel):
    other_user_id: str = Field(..., min_length=1, max_length=64)


class ConversationRead(BaseModel):
    id: int
    other_user: UserSummary
    created_at: datetime
    last_message_at: datetime | None = None
    last_message_preview: str | None = None
    has_unread: bool = False
    unread_count: int = 0
