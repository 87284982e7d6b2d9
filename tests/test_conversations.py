"""Tests for direct conversations."""

from __future__ import annotations

import pytest

from parley.core.errors import NotFound, ValidationError
from parley.models import Destination
from parley.services import conversations, messages


def test_get_or_create_is_canonical(db_session, workspace):
    first = conversations.get_or_create_conversation("bob", "alice", db_session)
    second = conversations.get_or_create_conversation("alice", "bob", db_session)

    assert first.id == second.id
    assert (first.participant1_id, first.participant2_id) == ("alice", "bob")


def test_conversation_with_self_or_unknown_user_is_rejected(db_session, workspace):
    with pytest.raises(ValidationError):
        conversations.get_or_create_conversation("bob", "bob", db_session)
    with pytest.raises(NotFound):
        conversations.get_or_create_conversation("bob", "nobody", db_session)


def test_list_conversations_orders_by_activity(db_session, workspace):
    quiet = conversations.get_or_create_conversation("bob", "dave", db_session)
    busy = conversations.get_or_create_conversation("bob", "carol", db_session)
    messages.send_message("carol", Destination.conversation(busy.id), "x" * 150, db_session)

    listed = conversations.list_conversations("bob", db_session)

    assert [item.id for item in listed] == [busy.id, quiet.id]
    assert listed[0].other_user.name == "Carol"
    assert listed[0].last_message_preview == "x" * 100
    assert (listed[0].has_unread, listed[0].unread_count) == (True, 1)
    assert listed[1].last_message_preview is None
    assert not listed[1].has_unread


def test_sender_has_no_unread_in_own_conversation(db_session, workspace):
    conversation = conversations.get_or_create_conversation("bob", "carol", db_session)
    messages.send_message("bob", Destination.conversation(conversation.id), "hi", db_session)

    assert conversations.get_unread_conversations("bob", db_session) == []
    assert [item.unread_count for item in conversations.get_unread_conversations("carol", db_session)] == [1]


def test_get_conversation_is_limited_to_participants(db_session, workspace):
    conversation = conversations.get_or_create_conversation("bob", "carol", db_session)
    messages.send_message("bob", Destination.conversation(conversation.id), "first", db_session)
    messages.send_message("bob", Destination.conversation(conversation.id), "second", db_session)

    seen_by_carol = conversations.get_conversation("carol", conversation.id, db_session)
    assert seen_by_carol.other_user.name == "Bob"
    assert seen_by_carol.last_message_preview == "second"
    assert seen_by_carol.unread_count == 2

    assert conversations.get_conversation("alice", conversation.id, db_session) is None
    assert conversations.get_conversation("bob", 999_999, db_session) is None
