from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from parley.models.base import Base, UTCDateTime, utcnow
from parley.models.enums import ChannelPermissions, DestinationKind, OrganizationRole

# Exactly one destination column is populated.
_ONE_DESTINATION = (
    "(channel_id IS NOT NULL AND conversation_id IS NULL) "
    "OR (channel_id IS NULL AND conversation_id IS NOT NULL)"
)


def _enum(enum_cls, name: str) -> SAEnum:
    return SAEnum(
        enum_cls,
        name=name,
        values_callable=lambda members: [member.value for member in members],
    )


@dataclass(frozen=True)
class Destination:
    """A channel or a direct conversation."""

    kind: DestinationKind
    id: int

    @classmethod
    def channel(cls, channel_id: int) -> "Destination":
        return cls(DestinationKind.CHANNEL, channel_id)

    @classmethod
    def conversation(cls, conversation_id: int) -> "Destination":
        return cls(DestinationKind.CONVERSATION, conversation_id)

    @property
    def is_channel(self) -> bool:
        return self.kind is DestinationKind.CHANNEL

    @property
    def key(self) -> str:
        return f"{self.kind.value}:{self.id}"

    def columns(self) -> dict[str, int | None]:
        """Column values identifying this destination on a row."""

        if self.is_channel:
            return {"channel_id": self.id, "conversation_id": None}
        return {"channel_id": None, "conversation_id": self.id}


class User(Base):
    """Profile mirrored from the identity provider."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(128))
    first_name: Mapped[str | None] = mapped_column(String(64))
    last_name: Mapped[str | None] = mapped_column(String(64))
    image_url: Mapped[str | None] = mapped_column(String(512))
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)

    @property
    def full_name(self) -> str:
        parts = [part for part in (self.first_name, self.last_name) if part]
        if parts:
            return " ".join(parts)
        return self.display_name or "Unknown"


class Organization(Base):
    """Workspace owning categories, channels and memberships."""

    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    slug: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)

    members: Mapped[list["OrganizationMember"]] = relationship(
        back_populates="organization", cascade="all, delete-orphan"
    )
    categories: Mapped[list["ChannelCategory"]] = relationship(
        back_populates="organization", cascade="all, delete-orphan"
    )
    channels: Mapped[list["Channel"]] = relationship(
        back_populates="organization", cascade="all, delete-orphan"
    )


class OrganizationMember(Base):
    """Membership of a user inside an organization."""

    __tablename__ = "organization_members"
    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", name="uq_organization_member"),
        Index("ix_organization_members_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    role: Mapped[OrganizationRole] = mapped_column(
        _enum(OrganizationRole, "organization_role"),
        default=OrganizationRole.MEMBER,
        nullable=False,
    )
    joined_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)

    organization: Mapped[Organization] = relationship(back_populates="members")


class ChannelCategory(Base):
    """Logical grouping for channels inside an organization."""

    __tablename__ = "channel_categories"
    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="uq_category_organization_name"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_private: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    organization: Mapped[Organization] = relationship(back_populates="categories")
    channels: Mapped[list["Channel"]] = relationship(back_populates="category")


class Channel(Base):
    """Organization-scoped conversation with many members."""

    __tablename__ = "channels"
    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="uq_channel_organization_name"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    category_id: Mapped[int] = mapped_column(
        ForeignKey("channel_categories.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(String(512))
    permissions: Mapped[ChannelPermissions] = mapped_column(
        _enum(ChannelPermissions, "channel_permissions"),
        default=ChannelPermissions.OPEN,
        nullable=False,
    )
    is_private: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)

    organization: Mapped[Organization] = relationship(back_populates="channels")
    category: Mapped[ChannelCategory] = relationship(back_populates="channels")
    members: Mapped[list["ChannelMember"]] = relationship(
        back_populates="channel", cascade="all, delete-orphan"
    )

    @property
    def is_read_only(self) -> bool:
        return self.permissions == ChannelPermissions.READ_ONLY


class ChannelMember(Base):
    """Explicit allow-list entry for private channels."""

    __tablename__ = "channel_members"
    __table_args__ = (UniqueConstraint("channel_id", "user_id", name="uq_channel_member"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    channel_id: Mapped[int] = mapped_column(
        ForeignKey("channels.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    added_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)

    channel: Mapped[Channel] = relationship(back_populates="members")


class Conversation(Base):
    """Two-party direct message thread."""

    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint("participant1_id", "participant2_id", name="uq_conversation_pair"),
        CheckConstraint("participant1_id < participant2_id", name="ck_conversation_order"),
        Index("ix_conversations_participant2", "participant2_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    participant1_id: Mapped[str] = mapped_column(String(64), nullable=False)
    participant2_id: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
    last_message_at: Mapped[datetime | None] = mapped_column(UTCDateTime())

    @property
    def participant_ids(self) -> tuple[str, str]:
        return (self.participant1_id, self.participant2_id)

    def has_participant(self, user_id: str) -> bool:
        return user_id in self.participant_ids

    def other_participant(self, user_id: str) -> str:
        if user_id == self.participant1_id:
            return self.participant2_id
        return self.participant1_id


class Message(Base):
    """Message posted to a channel or a conversation."""

    __tablename__ = "messages"
    __table_args__ = (
        CheckConstraint(_ONE_DESTINATION, name="ck_messages_one_destination"),
        Index("ix_messages_channel_created_at", "channel_id", "created_at"),
        Index("ix_messages_conversation_created_at", "conversation_id", "created_at"),
        Index("ix_messages_parent", "parent_message_id", "created_at"),
        Index("ix_messages_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    channel_id: Mapped[int | None] = mapped_column(
        ForeignKey("channels.id", ondelete="CASCADE"), nullable=True
    )
    conversation_id: Mapped[int | None] = mapped_column(
        ForeignKey("conversations.id", ondelete="CASCADE"), nullable=True
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    content: Mapped[str] = mapped_column(Text, default="", nullable=False)
    attachments: Mapped[list[dict]] = mapped_column(JSON, default=list, nullable=False)
    link_embed: Mapped[dict | None] = mapped_column(JSON)
    parent_message_id: Mapped[int | None] = mapped_column(
        ForeignKey("messages.id", ondelete="SET NULL"), nullable=True
    )
    pinned: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
    edited_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    forwarded_from_message_id: Mapped[int | None] = mapped_column(Integer)
    forwarded_from_name: Mapped[str | None] = mapped_column(String(128))
    forwarded_from_user_name: Mapped[str | None] = mapped_column(String(128))

    mention_entries: Mapped[list["MessageMention"]] = relationship(
        back_populates="message",
        cascade="all, delete-orphan",
        order_by="MessageMention.position",
    )
    reactions: Mapped[list["MessageReaction"]] = relationship(
        back_populates="message",
        cascade="all, delete-orphan",
        order_by="MessageReaction.id",
    )

    @property
    def destination(self) -> Destination:
        if self.channel_id is not None:
            return Destination.channel(self.channel_id)
        return Destination.conversation(self.conversation_id)

    @property
    def mentions(self) -> list[str]:
        return [entry.user_id for entry in self.mention_entries]

    @property
    def storage_ids(self) -> list[str]:
        return [item["storage_id"] for item in self.attachments or [] if item.get("storage_id")]


class MessageMention(Base):
    """Mention token stored against a message, in content order."""

    __tablename__ = "message_mentions"
    __table_args__ = (
        UniqueConstraint("message_id", "user_id", name="uq_message_mention"),
        Index("ix_message_mentions_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    message_id: Mapped[int] = mapped_column(
        ForeignKey("messages.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    message: Mapped[Message] = relationship(back_populates="mention_entries")


class MessageReaction(Base):
    """Individual emoji reactions for a message."""

    __tablename__ = "message_reactions"
    __table_args__ = (
        UniqueConstraint("message_id", "user_id", "emoji", name="uq_message_reaction"),
        Index("ix_reactions_message", "message_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    message_id: Mapped[int] = mapped_column(
        ForeignKey("messages.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    emoji: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)

    message: Mapped[Message] = relationship(back_populates="reactions")


class SavedMessage(Base):
    """Personal bookmark of a message."""

    __tablename__ = "saved_messages"
    __table_args__ = (UniqueConstraint("user_id", "message_id", name="uq_saved_message"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    message_id: Mapped[int] = mapped_column(
        ForeignKey("messages.id", ondelete="CASCADE"), nullable=False
    )
    saved_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)


class MentionReadStatus(Base):
    """Acknowledgement of a mention; existence is the only state."""

    __tablename__ = "mention_read_status"
    __table_args__ = (UniqueConstraint("user_id", "message_id", name="uq_mention_read"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    message_id: Mapped[int] = mapped_column(
        ForeignKey("messages.id", ondelete="CASCADE"), nullable=False
    )
    read_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)


class TypingIndicator(Base):
    """Last time a user typed in a destination."""

    __tablename__ = "typing_indicators"
    __table_args__ = (
        CheckConstraint(_ONE_DESTINATION, name="ck_typing_one_destination"),
        UniqueConstraint("channel_id", "user_id", name="uq_typing_channel_user"),
        UniqueConstraint("conversation_id", "user_id", name="uq_typing_conversation_user"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    channel_id: Mapped[int | None] = mapped_column(
        ForeignKey("channels.id", ondelete="CASCADE"), nullable=True
    )
    conversation_id: Mapped[int | None] = mapped_column(
        ForeignKey("conversations.id", ondelete="CASCADE"), nullable=True
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    last_typing_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)


class ChannelReadStatus(Base):
    """When a user last read a channel."""

    __tablename__ = "channel_read_status"
    __table_args__ = (UniqueConstraint("channel_id", "user_id", name="uq_channel_read_status"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    channel_id: Mapped[int] = mapped_column(
        ForeignKey("channels.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    last_read_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)


class ConversationReadStatus(Base):
    """When a user last read a conversation."""

    __tablename__ = "conversation_read_status"
    __table_args__ = (
        UniqueConstraint("conversation_id", "user_id", name="uq_conversation_read_status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    conversation_id: Mapped[int] = mapped_column(
        ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    last_read_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)


class MutedChannel(Base):
    """Channel excluded from a user's mention counts."""

    __tablename__ = "muted_channels"
    __table_args__ = (UniqueConstraint("user_id", "channel_id", name="uq_muted_channel"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    channel_id: Mapped[int] = mapped_column(
        ForeignKey("channels.id", ondelete="CASCADE"), nullable=False
    )
    muted_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
