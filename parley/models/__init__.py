"""Database models package."""

from .base import Base
from .chat import (
    Channel,
    ChannelCategory,
    ChannelMember,
    ChannelReadStatus,
    Conversation,
    ConversationReadStatus,
    Destination,
    MentionReadStatus,
    Message,
    MessageMention,
    MessageReaction,
    MutedChannel,
    Organization,
    OrganizationMember,
    SavedMessage,
    TypingIndicator,
    User,
)
from .enums import ChannelPermissions, DestinationKind, OrganizationRole

__all__ = [
    "Base",
    "User",
    "Organization",
    "OrganizationMember",
    "ChannelCategory",
    "Channel",
    "ChannelMember",
    "Conversation",
    "Destination",
    "Message",
    "MessageMention",
    "MessageReaction",
    "SavedMessage",
    "MentionReadStatus",
    "TypingIndicator",
    "ChannelReadStatus",
    "ConversationReadStatus",
    "MutedChannel",
    "ChannelPermissions",
    "DestinationKind",
    "OrganizationRole",
]
