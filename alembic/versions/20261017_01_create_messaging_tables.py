"""create messaging tables

Revision ID: 20261017_01
Revises:
Create Date: 2026-10-17 00:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261017_01"
down_revision = None
branch_labels = None
depends_on = None


ORGANIZATION_ROLE = sa.Enum("admin", "member", name="organization_role")
CHANNEL_PERMISSIONS = sa.Enum("open", "read_only", name="channel_permissions")

ONE_DESTINATION = (
    "(channel_id IS NOT NULL AND conversation_id IS NULL) "
    "OR (channel_id IS NULL AND conversation_id IS NOT NULL)"
)


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=None if nullable else sa.func.now(),
        nullable=nullable,
    )


def _destination_columns() -> list[sa.Column]:
    return [
        sa.Column(
            "channel_id",
            sa.Integer(),
            sa.ForeignKey("channels.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "conversation_id",
            sa.Integer(),
            sa.ForeignKey("conversations.id", ondelete="CASCADE"),
            nullable=True,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("display_name", sa.String(length=128), nullable=True),
        sa.Column("first_name", sa.String(length=64), nullable=True),
        sa.Column("last_name", sa.String(length=64), nullable=True),
        sa.Column("image_url", sa.String(length=512), nullable=True),
        _timestamp("created_at"),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("slug", sa.String(length=64), nullable=False, unique=True),
        _timestamp("created_at"),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "organization_members",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "organization_id",
            sa.Integer(),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("role", ORGANIZATION_ROLE, nullable=False, server_default="member"),
        _timestamp("joined_at"),
        sa.UniqueConstraint("organization_id", "user_id", name="uq_organization_member"),
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_organization_members_user", "organization_members", ["user_id"])

    op.create_table(
        "channel_categories",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "organization_id",
            sa.Integer(),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_private", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("organization_id", "name", name="uq_category_organization_name"),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "channels",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "organization_id",
            sa.Integer(),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("channel_categories.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("description", sa.String(length=512), nullable=True),
        sa.Column("permissions", CHANNEL_PERMISSIONS, nullable=False, server_default="open"),
        sa.Column("is_private", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        _timestamp("created_at"),
        sa.UniqueConstraint("organization_id", "name", name="uq_channel_organization_name"),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "channel_members",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "channel_id",
            sa.Integer(),
            sa.ForeignKey("channels.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        _timestamp("added_at"),
        sa.UniqueConstraint("channel_id", "user_id", name="uq_channel_member"),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "conversations",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("participant1_id", sa.String(length=64), nullable=False),
        sa.Column("participant2_id", sa.String(length=64), nullable=False),
        _timestamp("created_at"),
        _timestamp("last_message_at", nullable=True),
        sa.UniqueConstraint("participant1_id", "participant2_id", name="uq_conversation_pair"),
        sa.CheckConstraint("participant1_id < participant2_id", name="ck_conversation_order"),
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_conversations_participant2", "conversations", ["participant2_id"])

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        *_destination_columns(),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("attachments", sa.JSON(), nullable=False),
        sa.Column("link_embed", sa.JSON(), nullable=True),
        sa.Column(
            "parent_message_id",
            sa.Integer(),
            sa.ForeignKey("messages.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("pinned", sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp("created_at"),
        _timestamp("edited_at", nullable=True),
        sa.Column("forwarded_from_message_id", sa.Integer(), nullable=True),
        sa.Column("forwarded_from_name", sa.String(length=128), nullable=True),
        sa.Column("forwarded_from_user_name", sa.String(length=128), nullable=True),
        sa.CheckConstraint(ONE_DESTINATION, name="ck_messages_one_destination"),
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_messages_channel_created_at", "messages", ["channel_id", "created_at"])
    op.create_index(
        "ix_messages_conversation_created_at", "messages", ["conversation_id", "created_at"]
    )
    op.create_index("ix_messages_parent", "messages", ["parent_message_id", "created_at"])
    op.create_index("ix_messages_user", "messages", ["user_id"])

    op.create_table(
        "message_mentions",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "message_id",
            sa.Integer(),
            sa.ForeignKey("messages.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("message_id", "user_id", name="uq_message_mention"),
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_message_mentions_user", "message_mentions", ["user_id"])

    op.create_table(
        "message_reactions",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "message_id",
            sa.Integer(),
            sa.ForeignKey("messages.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("emoji", sa.String(length=32), nullable=False),
        _timestamp("created_at"),
        sa.UniqueConstraint("message_id", "user_id", "emoji", name="uq_message_reaction"),
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_reactions_message", "message_reactions", ["message_id"])

    op.create_table(
        "saved_messages",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column(
            "message_id",
            sa.Integer(),
            sa.ForeignKey("messages.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _timestamp("saved_at"),
        sa.UniqueConstraint("user_id", "message_id", name="uq_saved_message"),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "mention_read_status",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column(
            "message_id",
            sa.Integer(),
            sa.ForeignKey("messages.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _timestamp("read_at"),
        sa.UniqueConstraint("user_id", "message_id", name="uq_mention_read"),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "typing_indicators",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        *_destination_columns(),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        _timestamp("last_typing_at"),
        sa.CheckConstraint(ONE_DESTINATION, name="ck_typing_one_destination"),
        sa.UniqueConstraint("channel_id", "user_id", name="uq_typing_channel_user"),
        sa.UniqueConstraint("conversation_id", "user_id", name="uq_typing_conversation_user"),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "channel_read_status",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "channel_id",
            sa.Integer(),
            sa.ForeignKey("channels.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        _timestamp("last_read_at"),
        sa.UniqueConstraint("channel_id", "user_id", name="uq_channel_read_status"),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "conversation_read_status",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "conversation_id",
            sa.Integer(),
            sa.ForeignKey("conversations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        _timestamp("last_read_at"),
        sa.UniqueConstraint(
            "conversation_id", "user_id", name="uq_conversation_read_status"
        ),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "muted_channels",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column(
            "channel_id",
            sa.Integer(),
            sa.ForeignKey("channels.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _timestamp("muted_at"),
        sa.UniqueConstraint("user_id", "channel_id", name="uq_muted_channel"),
        mysql_charset="utf8mb4",
    )


def downgrade() -> None:
    op.drop_table("muted_channels")
    op.drop_table("conversation_read_status")
    op.drop_table("channel_read_status")
    op.drop_table("typing_indicators")
    op.drop_table("mention_read_status")
    op.drop_table("saved_messages")
    op.drop_index("ix_reactions_message", table_name="message_reactions")
    op.drop_table("message_reactions")
    op.drop_index("ix_message_mentions_user", table_name="message_mentions")
    op.drop_table("message_mentions")
    op.drop_index("ix_messages_user", table_name="messages")
    op.drop_index("ix_messages_parent", table_name="messages")
    op.drop_index("ix_messages_conversation_created_at", table_name="messages")
    op.drop_index("ix_messages_channel_created_at", table_name="messages")
    op.drop_table("messages")
    op.drop_index("ix_conversations_participant2", table_name="conversations")
    op.drop_table("conversations")
    op.drop_table("channel_members")
    op.drop_table("channels")
    op.drop_table("channel_categories")
    op.drop_index("ix_organization_members_user", table_name="organization_members")
    op.drop_table("organization_members")
    op.drop_table("organizations")
    op.drop_table("users")

    bind = op.get_bind()
    CHANNEL_PERMISSIONS.drop(bind, checkfirst=True)
    ORGANIZATION_ROLE.drop(bind, checkfirst=True)
