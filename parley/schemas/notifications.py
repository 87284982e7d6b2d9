"""Schemas for mentions, unread state and typing presence."""

from __future__ import annotations

from pydantic import BaseModel

from parley.schemas.messages import MessageRead, UserSummary


class MentionReadResult(BaseModel):
    already_read: bool


class MarkAllResult(BaseModel):
    marked_count: int


class MentionItem(BaseModel):
    """Entry of the mention inbox."""

    message: MessageRead
    channel_id: int
    channel_name: str
    is_read: bool


class ChannelUnread(BaseModel):
    channel_id: int
    name: str
    has_new: bool


class ConversationUnread(BaseModel):
    conversation_id: int
    other_user: UserSummary
    unread_count: int


class UnreadSummary(BaseModel):
    organization_id: int
    mention_count: int
    channels: list[ChannelUnread]
    conversations: list[ConversationUnread]


class TypingUsers(BaseModel):
    users: list[UserSummary]
