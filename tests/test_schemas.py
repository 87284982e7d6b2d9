"""Unit tests validating Pydantic schema constraints."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from parley.models import DestinationKind
from parley.schemas import ForwardRequest, MessageCreate, ReactionRequest


def test_forward_request_needs_exactly_one_target():
    assert ForwardRequest(channel_id=3).channel_id == 3
    with pytest.raises(ValidationError):
        ForwardRequest()
    with pytest.raises(ValidationError):
        ForwardRequest(channel_id=3, conversation_id=4)


def test_message_create_parses_destination():
    payload = MessageCreate(destination={"kind": "conversation", "id": 7}, content="hi")
    assert payload.destination.kind is DestinationKind.CONVERSATION
    assert payload.attachments == []

    with pytest.raises(ValidationError):
        MessageCreate(destination={"kind": "room", "id": 7})


def test_reaction_request_rejects_blank_emoji():
    with pytest.raises(ValidationError):
        ReactionRequest(emoji="")
