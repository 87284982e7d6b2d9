"""Access guard for channels and direct conversations."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from parley.core.errors import Forbidden, NotFound, Unauthenticated, ValidationError
from parley.models import (
    Channel,
    ChannelCategory,
    ChannelMember,
    Conversation,
    Destination,
    DestinationKind,
    OrganizationMember,
    OrganizationRole,
)


@dataclass(slots=True)
class DestinationAccess:
    """Result of a successful access check."""

    destination: Destination
    channel: Channel | None = None
    conversation: Conversation | None = None
    role: OrganizationRole | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == OrganizationRole.ADMIN

    @property
    def organization_id(self) -> int | None:
        return self.channel.organization_id if self.channel is not None else None


def _require_caller(caller: str | None) -> str:
    if not caller:
        raise Unauthenticated()
    return caller


def get_channel(channel_id: int, db: Session) -> Channel:
    channel = db.get(Channel, channel_id)
    if channel is None:
        raise NotFound("Channel not found")
    return channel


def get_conversation(conversation_id: int, db: Session) -> Conversation:
    conversation = db.get(Conversation, conversation_id)
    if conversation is None:
        raise NotFound("Conversation not found")
    return conversation


def get_membership(organization_id: int, user_id: str, db: Session) -> OrganizationMember | None:
    """Return membership entry for the given user and organization if it exists."""

    stmt = select(OrganizationMember).where(
        OrganizationMember.organization_id == organization_id,
        OrganizationMember.user_id == user_id,
    )
    return db.execute(stmt).scalar_one_or_none()


def require_membership(organization_id: int, caller: str | None, db: Session) -> OrganizationMember:
    """Ensure the caller belongs to the organization, raising Forbidden otherwise."""

    caller = _require_caller(caller)
    membership = get_membership(organization_id, caller, db)
    if membership is None:
        raise Forbidden("Not an organization member")
    return membership


def is_channel_private(channel: Channel) -> bool:
    return bool(channel.is_private or (channel.category is not None and channel.category.is_private))


def _has_channel_member(channel_id: int, user_id: str, db: Session) -> bool:
    stmt = select(ChannelMember.id).where(
        ChannelMember.channel_id == channel_id,
        ChannelMember.user_id == user_id,
    )
    return db.execute(stmt).first() is not None


def resolve_channel_access(caller: str | None, channel_id: int, db: Session) -> DestinationAccess:
    """Resolve the caller's role in a channel.

    Private channels, or channels in a private category, additionally need
    an explicit ``ChannelMember`` row unless the caller is an organization
    admin.
    """

    caller = _require_caller(caller)
    channel = get_channel(channel_id, db)
    membership = get_membership(channel.organization_id, caller, db)
    if membership is None:
        raise Forbidden("Not an organization member")
    if (
        membership.role != OrganizationRole.ADMIN
        and is_channel_private(channel)
        and not _has_channel_member(channel.id, caller, db)
    ):
        raise Forbidden("Private channel")
    return DestinationAccess(
        destination=Destination.channel(channel.id),
        channel=channel,
        role=membership.role,
    )


def resolve_conversation_access(
    caller: str | None, conversation_id: int, db: Session
) -> DestinationAccess:
    caller = _require_caller(caller)
    conversation = get_conversation(conversation_id, db)
    if not conversation.has_participant(caller):
        raise Forbidden("Not a conversation participant")
    return DestinationAccess(
        destination=Destination.conversation(conversation.id),
        conversation=conversation,
    )


def resolve_access(caller: str | None, destination: Destination, db: Session) -> DestinationAccess:
    """Branch on the destination kind and apply the matching check."""

    if destination.kind is DestinationKind.CHANNEL:
        return resolve_channel_access(caller, destination.id, db)
    if destination.kind is DestinationKind.CONVERSATION:
        return resolve_conversation_access(caller, destination.id, db)
    raise ValidationError("Unknown destination kind")


def can_access(caller: str | None, destination: Destination, db: Session) -> bool:
    """Non-raising variant used by read paths that must not leak existence."""

    _require_caller(caller)
    try:
        resolve_access(caller, destination, db)
    except (NotFound, Forbidden):
        return False
    return True


def visible_channel_ids(caller: str, organization_id: int, db: Session) -> list[int]:
    """Ids of every channel in the organization the caller can read."""

    membership = get_membership(organization_id, caller, db)
    if membership is None:
        return []
    stmt = select(Channel.id).where(Channel.organization_id == organization_id)
    if membership.role != OrganizationRole.ADMIN:
        member_channels = select(ChannelMember.channel_id).where(ChannelMember.user_id == caller)
        stmt = stmt.join(ChannelCategory, Channel.category_id == ChannelCategory.id).where(
            or_(
                (Channel.is_private.is_(False)) & (ChannelCategory.is_private.is_(False)),
                Channel.id.in_(member_channels),
            )
        )
    return list(db.execute(stmt.order_by(Channel.position, Channel.id)).scalars())
