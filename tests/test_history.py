"""Tests for message history pagination, threads, search, pins and saved items."""

from __future__ import annotations

import pytest

from parley.core.errors import Unauthenticated, ValidationError
from parley.models import Destination
from parley.services import history, messages


def _send_many(db_session, destination: Destination, count: int, author: str = "bob") -> list[int]:
    return [
        messages.send_message(author, destination, f"message {index}", db_session).id
        for index in range(count)
    ]


def test_pagination_is_gap_free_and_chronological(db_session, workspace):
    destination = Destination.channel(workspace.general_id)
    sent = _send_many(db_session, destination, 7)

    seen: list[int] = []
    cursor = None
    pages = 0
    while True:
        page = history.get_messages("carol", destination, db_session, limit=3, cursor=cursor)
        pages += 1
        ids = [message.id for message in page.messages]
        assert ids == sorted(ids)
        seen = ids + seen
        if not page.has_more:
            assert page.next_cursor is None
            break
        cursor = page.next_cursor

    assert pages == 3
    assert seen == sent


def test_newest_page_comes_first(db_session, workspace):
    destination = Destination.channel(workspace.general_id)
    sent = _send_many(db_session, destination, 5)

    page = history.get_messages("bob", destination, db_session, limit=2)

    assert [message.id for message in page.messages] == sent[-2:]
    assert page.has_more


def test_thread_replies_stay_out_of_the_main_feed(db_session, workspace):
    destination = Destination.channel(workspace.general_id)
    root = messages.send_message("bob", destination, "root", db_session)
    messages.send_message("carol", destination, "first reply", db_session, parent_message_id=root.id)
    messages.send_message("alice", destination, "second reply", db_session, parent_message_id=root.id)
    messages.send_message("carol", destination, "third reply", db_session, parent_message_id=root.id)

    page = history.get_messages("bob", destination, db_session)

    assert [message.content for message in page.messages] == ["root"]
    thread = page.messages[0].thread
    assert thread.reply_count == 3
    assert [user.id for user in thread.latest_repliers] == ["carol", "alice"]

    replies = history.get_thread_replies("bob", root.id, db_session)
    assert [reply.content for reply in replies] == ["first reply", "second reply", "third reply"]
    assert replies[0].parent_message.user_name == "Bob"


def test_enrichment_marks_own_and_saved_messages(db_session, workspace):
    destination = Destination.channel(workspace.general_id)
    mine = messages.send_message("carol", destination, "mine", db_session)
    theirs = messages.send_message("bob", destination, "theirs", db_session)
    messages.save_message("carol", theirs.id, db_session)
    messages.toggle_reaction("carol", theirs.id, "🎉", db_session)

    page = history.get_messages("carol", destination, db_session)
    by_id = {message.id: message for message in page.messages}

    assert by_id[mine.id].is_own and not by_id[mine.id].is_saved
    assert by_id[theirs.id].is_saved and not by_id[theirs.id].is_own
    assert by_id[theirs.id].author.name == "Bob"
    [reaction] = by_id[theirs.id].reactions
    assert (reaction.emoji, reaction.count, reaction.reacted) == ("🎉", 1, True)


def test_private_channel_history_is_empty_for_outsiders(db_session, workspace):
    destination = Destination.channel(workspace.secret_id)
    _send_many(db_session, destination, 2, author="carol")

    page = history.get_messages("bob", destination, db_session)

    assert page.messages == []
    assert page.has_more is False
    assert history.search_messages("bob", destination, "message", db_session) == []
    assert history.get_messages("unknown", Destination.channel(9999), db_session).messages == []


def test_reads_require_a_caller(db_session, workspace):
    with pytest.raises(Unauthenticated):
        history.get_messages(None, Destination.channel(workspace.general_id), db_session)


def test_invalid_cursor_is_rejected(db_session, workspace):
    with pytest.raises(ValidationError):
        history.get_messages(
            "bob", Destination.channel(workspace.general_id), db_session, cursor="not-a-cursor"
        )


def test_search_is_case_insensitive_and_includes_replies(db_session, workspace):
    destination = Destination.channel(workspace.general_id)
    root = messages.send_message("bob", destination, "Deploy plan", db_session)
    messages.send_message("carol", destination, "unrelated", db_session)
    reply = messages.send_message(
        "carol", destination, "the DEPLOY went fine", db_session, parent_message_id=root.id
    )
    messages.send_message("bob", destination, "100% done_now", db_session)

    results = history.search_messages("alice", destination, "deploy", db_session)

    assert [message.id for message in results] == [reply.id, root.id]
    assert results[0].parent_message.content == "Deploy plan"
    assert [m.content for m in history.search_messages("alice", destination, "%", db_session)] == [
        "100% done_now"
    ]
    assert history.search_messages("alice", destination, "   ", db_session) == []


def test_pinned_messages_listing(db_session, workspace):
    destination = Destination.channel(workspace.general_id)
    first, second, _ = _send_many(db_session, destination, 3)
    messages.toggle_pin("alice", first, db_session)
    messages.toggle_pin("alice", second, db_session)

    pinned = history.get_pinned_messages("bob", workspace.general_id, db_session)

    assert [message.id for message in pinned] == [second, first]
    assert all(message.pinned for message in pinned)


def test_saved_messages_are_listed_with_origin(db_session, workspace):
    general = Destination.channel(workspace.general_id)
    secret = Destination.channel(workspace.secret_id)
    visible = messages.send_message("bob", general, "public note", db_session)
    hidden = messages.send_message("carol", secret, "private note", db_session)
    messages.save_message("carol", visible.id, db_session)
    messages.save_message("carol", hidden.id, db_session)

    saved = history.list_saved_messages("carol", db_session)

    assert [item.message.id for item in saved] == [hidden.id, visible.id]
    assert [item.origin_name for item in saved] == ["secret", "general"]
    assert all(item.message.is_saved for item in saved)


def test_single_message_lookup_respects_access(db_session, workspace):
    public = messages.send_message("bob", Destination.channel(workspace.general_id), "hi all", db_session)
    hidden = messages.send_message("carol", Destination.channel(workspace.secret_id), "hush", db_session)

    found = history.get_message("carol", public.id, db_session)
    assert found.id == public.id
    assert found.author.name == "Bob"
    assert history.get_message("bob", hidden.id, db_session) is None
    assert history.get_message("bob", 999_999, db_session) is None


def test_recent_messages_are_the_callers_own_newest_first(db_session, workspace):
    first = messages.send_message("carol", Destination.channel(workspace.general_id), "one", db_session)
    messages.send_message("bob", Destination.channel(workspace.general_id), "not mine", db_session)
    second = messages.send_message("carol", Destination.channel(workspace.secret_id), "two", db_session)
    third = messages.send_message("carol", Destination.channel(workspace.general_id), "three", db_session)

    recent = history.get_recent_messages("carol", workspace.organization_id, db_session)
    assert [item.id for item in recent] == [third.id, second.id, first.id]

    limited = history.get_recent_messages("carol", workspace.organization_id, db_session, limit=2)
    assert [item.id for item in limited] == [third.id, second.id]
    assert history.get_recent_messages("dave", workspace.organization_id, db_session) == []
