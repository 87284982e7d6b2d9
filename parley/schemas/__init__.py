"""Pydantic schemas for API payloads."""

from .conversations import ConversationCreate, ConversationRead
from .links import FileRead, LinkEmbed, UnfurlRequest
from .messages import (
    AttachmentPayload,
    AttachmentRead,
    DestinationRef,
    ForwardedFrom,
    ForwardRequest,
    ForwardResult,
    MessageCreate,
    MessageCreated,
    MessagePage,
    MessageRead,
    MessageReactionSummary,
    MessageUpdate,
    ParentMessagePreview,
    PinResult,
    ReactionRequest,
    SavedMessageRead,
    ThreadSummary,
    UserSummary,
)
from .notifications import (
    ChannelUnread,
    ConversationUnread,
    MarkAllResult,
    MentionItem,
    MentionReadResult,
    TypingUsers,
    UnreadSummary,
)

__all__ = [
    "AttachmentPayload",
    "AttachmentRead",
    "ChannelUnread",
    "ConversationCreate",
    "ConversationRead",
    "ConversationUnread",
    "DestinationRef",
    "FileRead",
    "ForwardedFrom",
    "ForwardRequest",
    "ForwardResult",
    "LinkEmbed",
    "MarkAllResult",
    "MentionItem",
    "MentionReadResult",
    "MessageCreate",
    "MessageCreated",
    "MessagePage",
    "MessageRead",
    "MessageReactionSummary",
    "MessageUpdate",
    "ParentMessagePreview",
    "PinResult",
    "ReactionRequest",
    "SavedMessageRead",
    "ThreadSummary",
    "TypingUsers",
    "UnfurlRequest",
    "UnreadSummary",
    "UserSummary",
]
