"""Metric definitions for the message service."""

from __future__ import annotations

from .registry import registry

messages_sent_total = registry.counter(
    "messages_sent_total",
    "Messages created by send or forward.",
    label_names=("destination",),
)

message_mutations_total = registry.counter(
    "message_mutations_total",
    "Successful message mutations other than send.",
    label_names=("action",),
)

link_unfurl_total = registry.counter(
    "link_unfurl_total",
    "Link unfurl attempts by outcome.",
    label_names=("outcome",),
)

typing_updates_total = registry.counter(
    "typing_updates_total",
    "Typing indicator upserts.",
)

websocket_connections = registry.gauge(
    "websocket_active_connections",
    "Number of active websocket subscriptions handled locally.",
    label_names=("scope",),
)
