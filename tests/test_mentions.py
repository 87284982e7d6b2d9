"""Tests for mention parsing, the mention inbox, read markers, muting and unread summaries."""

from __future__ import annotations

import pytest

from parley.core.errors import Forbidden
from parley.core.mentions import merge_mentions, parse_mentions
from parley.models import Destination
from parley.services import conversations, mentions, messages


def test_mention_count_and_acknowledgement(db_session, workspace):
    message = messages.send_message(
        "alice", Destination.channel(workspace.general_id), "hello @bob", db_session
    )

    assert mentions.unread_mention_count("bob", workspace.organization_id, db_session) == 1
    assert mentions.unread_mention_count("carol", workspace.organization_id, db_session) == 0

    assert mentions.mark_mention_read("bob", message.id, db_session) is False
    assert mentions.mark_mention_read("bob", message.id, db_session) is True
    assert mentions.unread_mention_count("bob", workspace.organization_id, db_session) == 0


def test_everyone_counts_for_all_but_the_author(db_session, workspace):
    messages.send_message("alice", Destination.channel(workspace.general_id), "@everyone standup", db_session)

    assert mentions.unread_mention_count("bob", workspace.organization_id, db_session) == 1
    assert mentions.unread_mention_count("carol", workspace.organization_id, db_session) == 1
    assert mentions.unread_mention_count("alice", workspace.organization_id, db_session) == 0


def test_mentions_in_invisible_channels_are_ignored(db_session, workspace):
    messages.send_message("carol", Destination.channel(workspace.secret_id), "@bob secret", db_session)

    assert mentions.unread_mention_count("bob", workspace.organization_id, db_session) == 0
    assert mentions.list_mentions("bob", workspace.organization_id, db_session) == []


def test_muted_channels_are_excluded(db_session, workspace):
    messages.send_message("alice", Destination.channel(workspace.general_id), "@bob ping", db_session)

    assert mentions.mute_channel("bob", workspace.general_id, db_session) is True
    assert mentions.mute_channel("bob", workspace.general_id, db_session) is False
    assert mentions.unread_mention_count("bob", workspace.organization_id, db_session) == 0
    assert mentions.mark_all_mentions_read("bob", workspace.organization_id, db_session) == 0

    assert mentions.unmute_channel("bob", workspace.general_id, db_session) is True
    assert mentions.unread_mention_count("bob", workspace.organization_id, db_session) == 1


def test_list_and_mark_all(db_session, workspace):
    general = Destination.channel(workspace.general_id)
    first = messages.send_message("alice", general, "@bob one", db_session)
    second = messages.send_message("carol", general, "@bob two", db_session)
    mentions.mark_mention_read("bob", first.id, db_session)

    inbox = mentions.list_mentions("bob", workspace.organization_id, db_session)

    assert [(item.message.id, item.is_read) for item in inbox] == [(second.id, False), (first.id, True)]
    assert inbox[0].channel_name == "general"

    assert mentions.mark_all_mentions_read("bob", workspace.organization_id, db_session) == 1
    assert mentions.mark_all_mentions_read("bob", workspace.organization_id, db_session) == 0
    assert mentions.unread_mention_count("bob", workspace.organization_id, db_session) == 0


def test_mark_all_requires_membership(db_session, workspace):
    with pytest.raises(Forbidden):
        mentions.mark_all_mentions_read("dave", workspace.organization_id, db_session)


def test_unread_summary(db_session, workspace):
    messages.send_message("alice", Destination.channel(workspace.general_id), "news for @bob", db_session)
    conversation = conversations.get_or_create_conversation("carol", "bob", db_session)
    messages.send_message("carol", Destination.conversation(conversation.id), "dm 1", db_session)
    messages.send_message("carol", Destination.conversation(conversation.id), "dm 2", db_session)

    summary = mentions.get_unread_summary("bob", workspace.organization_id, db_session)

    assert summary.mention_count == 1
    flags = {channel.name: channel.has_new for channel in summary.channels}
    assert flags == {"general": True, "announcements": False}
    [dm] = summary.conversations
    assert (dm.conversation_id, dm.unread_count, dm.other_user.name) == (conversation.id, 2, "Carol")

    mentions.mark_channel_read("bob", workspace.general_id, db_session)
    mentions.mark_conversation_read("bob", conversation.id, db_session)
    summary = mentions.get_unread_summary("bob", workspace.organization_id, db_session)
    assert not any(channel.has_new for channel in summary.channels)
    assert summary.conversations == []


def test_own_messages_do_not_mark_channel_unread(db_session, workspace):
    messages.send_message("bob", Destination.channel(workspace.general_id), "talking to myself", db_session)

    summary = mentions.get_unread_summary("bob", workspace.organization_id, db_session)

    assert not any(channel.has_new for channel in summary.channels)


def test_parse_mentions_keeps_first_occurrence_order():
    content = "@carol ping @bob, cc @carol and @everyone; not a@b.com or @@x"
    assert parse_mentions(content) == ["carol", "bob", "everyone"]
    assert parse_mentions("") == []


def test_parse_mentions_with_custom_pattern():
    assert parse_mentions("<@U1> and <@U2>", pattern=r"<@(\w+)>") == ["U1", "U2"]


def test_merge_mentions_deduplicates():
    assert merge_mentions(["a", "b"], ["b", "c"], [""]) == ["a", "b", "c"]
