"""Unit tests for the channel and conversation access guard."""

from __future__ import annotations

import pytest

from parley.core.errors import Forbidden, NotFound, Unauthenticated
from parley.models import Conversation, Destination
from parley.services.access import (
    can_access,
    resolve_access,
    resolve_channel_access,
    visible_channel_ids,
)


def test_public_channel_is_open_to_members(db_session, workspace):
    access = resolve_channel_access("bob", workspace.general_id, db_session)

    assert access.channel.name == "general"
    assert not access.is_admin
    assert access.organization_id == workspace.organization_id


def test_outsider_is_forbidden(db_session, workspace):
    with pytest.raises(Forbidden):
        resolve_channel_access("dave", workspace.general_id, db_session)


def test_missing_caller_is_unauthenticated(db_session, workspace):
    with pytest.raises(Unauthenticated):
        resolve_channel_access(None, workspace.general_id, db_session)


def test_unknown_channel_is_not_found(db_session, workspace):
    with pytest.raises(NotFound):
        resolve_channel_access("bob", 9999, db_session)


def test_private_channel_needs_allow_list_entry(db_session, workspace):
    with pytest.raises(Forbidden):
        resolve_channel_access("bob", workspace.secret_id, db_session)

    assert resolve_channel_access("carol", workspace.secret_id, db_session).channel.name == "secret"
    assert resolve_channel_access("alice", workspace.secret_id, db_session).is_admin


def test_private_category_makes_channel_private(db_session, workspace):
    destination = Destination.channel(workspace.staff_room_id)

    assert not can_access("bob", destination, db_session)
    assert can_access("alice", destination, db_session)


def test_conversation_requires_participation(db_session, workspace):
    conversation = Conversation(participant1_id="alice", participant2_id="bob")
    db_session.add(conversation)
    db_session.commit()
    destination = Destination.conversation(conversation.id)

    assert resolve_access("bob", destination, db_session).conversation.id == conversation.id
    with pytest.raises(Forbidden):
        resolve_access("carol", destination, db_session)


def test_visible_channel_ids_respect_privacy(db_session, workspace):
    assert visible_channel_ids("bob", workspace.organization_id, db_session) == [
        workspace.general_id,
        workspace.announcements_id,
    ]
    assert set(visible_channel_ids("carol", workspace.organization_id, db_session)) == {
        workspace.general_id,
        workspace.announcements_id,
        workspace.secret_id,
    }
    assert len(visible_channel_ids("alice", workspace.organization_id, db_session)) == 4
    assert visible_channel_ids("dave", workspace.organization_id, db_session) == []
