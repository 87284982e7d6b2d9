from __future__ import annotations

from enum import Enum


class OrganizationRole(str, Enum):
    """Roles a user can hold inside an organization."""

    ADMIN = "admin"
    MEMBER = "member"


class ChannelPermissions(str, Enum):
    """Posting policy of a channel."""

    OPEN = "open"
    READ_ONLY = "read_only"


class DestinationKind(str, Enum):
    """Where a message lives."""

    CHANNEL = "channel"
    CONVERSATION = "conversation"
