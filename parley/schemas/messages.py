"""Schemas related to chat messages."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from parley.models.enums import DestinationKind
from parley.schemas.links import LinkEmbed


class UserSummary(BaseModel):
    """Lightweight profile information for displaying messages."""

    id: str
    name: str = "Unknown"
    image_url: str | None = None


class DestinationRef(BaseModel):
    kind: DestinationKind
    id: int = Field(..., ge=1)


class AttachmentPayload(BaseModel):
    """Attachment reference supplied when sending a message."""

    storage_id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=255)
    size: int = Field(..., ge=0)
    type: str | None = Field(default=None, max_length=128)


class AttachmentRead(AttachmentPayload):
    url: str


class MessageReactionSummary(BaseModel):
    """Aggregated reaction information for a message."""

    emoji: str
    count: int = Field(..., ge=0, description="Total reactions with the emoji")
    reacted: bool = Field(
        default=False,
        description="Indicates whether the current user added this reaction",
    )
    user_ids: list[str] = Field(default_factory=list)


class ParentMessagePreview(BaseModel):
    """The message a thread reply answers."""

    id: int
    content: str
    user_id: str
    user_name: str


class ThreadSummary(BaseModel):
    reply_count: int = 0
    latest_repliers: list[UserSummary] = Field(default_factory=list)
    last_reply_at: datetime | None = None


class ForwardedFrom(BaseModel):
    message_id: int
    name: str | None = None
    user_name: str | None = None


class MessageRead(BaseModel):
    """Serialized representation of a chat message."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    channel_id: int | None = None
    conversation_id: int | None = None
    user_id: str
    author: UserSummary
    content: str
    attachments: list[AttachmentRead] = Field(default_factory=list)
    link_embed: LinkEmbed | None = None
    parent_message_id: int | None = None
    parent_message: ParentMessagePreview | None = None
    mentions: list[str] = Field(default_factory=list)
    reactions: list[MessageReactionSummary] = Field(default_factory=list)
    pinned: bool = False
    created_at: datetime
    edited_at: datetime | None = None
    forwarded_from: ForwardedFrom | None = None
    thread: ThreadSummary | None = None
    is_own: bool = False
    is_saved: bool = False


class MessagePage(BaseModel):
    """Chronological page of messages with a cursor to older ones."""

    messages: list[MessageRead] = Field(default_factory=list)
    next_cursor: str | None = None
    has_more: bool = False


class MessageCreate(BaseModel):
    destination: DestinationRef
    content: str = ""
    attachments: list[AttachmentPayload] = Field(default_factory=list)
    parent_message_id: int | None = None
    link_embed: LinkEmbed | None = None


class MessageCreated(BaseModel):
    message_id: int


class MessageUpdate(BaseModel):
    content: str


class ReactionRequest(BaseModel):
    emoji: str = Field(..., min_length=1, max_length=32)


class PinResult(BaseModel):
    pinned: bool


class ForwardRequest(BaseModel):
    """Forward target; exactly one of the two ids."""

    channel_id: int | None = None
    conversation_id: int | None = None

    @model_validator(mode="after")
    def _one_target(self) -> "ForwardRequest":
        if (self.channel_id is None) == (self.conversation_id is None):
            raise ValueError("Provide exactly one of channel_id or conversation_id")
        return self


class ForwardResult(BaseModel):
    message_id: int
    target_kind: DestinationKind
    target_name: str


class SavedMessageRead(BaseModel):
    message: MessageRead
    saved_at: datetime
    origin_name: str | None = None
