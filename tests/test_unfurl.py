"""Tests for link unfurling and its SSRF guard."""

from __future__ import annotations

import time

import anyio
import httpx
import pytest
from starlette.websockets import WebSocketState

from parley.config import get_settings
from parley.models import Destination, Message
from parley.monitoring.metrics import link_unfurl_total
from parley.services import messages
from parley.services.events import destination_event_hub
from parley.services.unfurl import (
    UnfurlBlocked,
    ensure_public_url,
    extract_metadata,
    fetch_link_metadata,
    is_blocked_address,
    unfurl_message_link,
)

PAGE = """
<html>
  <head>
    <title>  Fallback
      title </title>
    <meta property="og:title" content="Launch notes">
    <meta name="twitter:title" content="Ignored twitter title">
    <meta name="description" content="What shipped this week">
    <meta property="og:image" content="/img/cover.png">
    <meta property="og:site_name" content="Example Blog">
    <link rel="shortcut icon" href="/static/icon.ico">
  </head>
  <body>hello</body>
</html>
"""


def public_resolver(*addresses: str):
    async def resolve(host: str, port: int) -> list[str]:
        return list(addresses) or ["93.184.216.34"]

    return resolve


def html_transport(body: str = PAGE) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "text/html; charset=utf-8"}, text=body)

    return httpx.MockTransport(handler)


@pytest.mark.parametrize(
    "address",
    [
        "127.0.0.1",
        "10.1.2.3",
        "172.16.0.9",
        "192.168.1.1",
        "169.254.169.254",
        "100.64.0.1",
        "0.0.0.0",
        "224.0.0.1",
        "::1",
        "fe80::1",
        "fd00::1",
        "::ffff:10.0.0.1",
        "not-an-ip",
    ],
)
def test_private_and_reserved_addresses_are_blocked(address):
    assert is_blocked_address(address)


@pytest.mark.parametrize("address", ["93.184.216.34", "8.8.8.8", "2606:4700:4700::1111"])
def test_public_addresses_are_allowed(address):
    assert not is_blocked_address(address)


@pytest.mark.anyio
async def test_ensure_public_url_checks_scheme_and_resolution():
    await ensure_public_url("https://example.com/page", public_resolver())

    with pytest.raises(UnfurlBlocked):
        await ensure_public_url("ftp://example.com/file", public_resolver())
    with pytest.raises(UnfurlBlocked):
        await ensure_public_url("http://169.254.169.254/latest/meta-data", public_resolver())
    with pytest.raises(UnfurlBlocked):
        await ensure_public_url("https://internal.example", public_resolver("93.184.216.34", "10.0.0.7"))


def test_extract_metadata_prefers_open_graph():
    embed = extract_metadata(PAGE, "https://blog.example.com/posts/1")

    assert embed.title == "Launch notes"
    assert embed.description == "What shipped this week"
    assert embed.image == "https://blog.example.com/img/cover.png"
    assert embed.site_name == "Example Blog"
    assert embed.favicon == "https://blog.example.com/static/icon.ico"


def test_extract_metadata_falls_back_to_title_and_default_favicon():
    embed = extract_metadata("<title>Plain page</title>", "https://plain.example/a/b")

    assert embed.title == "Plain page"
    assert embed.site_name == "plain.example"
    assert embed.favicon == "https://plain.example/favicon.ico"
    assert embed.image is None


@pytest.mark.anyio
async def test_fetch_link_metadata_returns_embed():
    before = link_unfurl_total.value(outcome="ok")

    embed = await fetch_link_metadata(
        "bob", "https://blog.example.com/posts/1", resolver=public_resolver(), transport=html_transport()
    )

    assert embed is not None
    assert embed.url == "https://blog.example.com/posts/1"
    assert embed.title == "Launch notes"
    assert link_unfurl_total.value(outcome="ok") == before + 1


@pytest.mark.anyio
async def test_non_html_content_yields_hostname_title():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "application/pdf"}, content=b"%PDF-1.7")

    embed = await fetch_link_metadata(
        "bob",
        "https://files.example.com/report.pdf",
        resolver=public_resolver(),
        transport=httpx.MockTransport(handler),
    )

    assert embed.title == "files.example.com"
    assert embed.description is None


@pytest.mark.anyio
async def test_redirect_to_private_address_is_refused():
    requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(str(request.url))
        return httpx.Response(302, headers={"location": "http://127.0.0.1:8080/admin"})

    embed = await fetch_link_metadata(
        "bob",
        "https://short.example/abc",
        resolver=public_resolver(),
        transport=httpx.MockTransport(handler),
    )

    assert embed is None
    assert requested == ["https://short.example/abc"]


@pytest.mark.anyio
async def test_server_errors_and_missing_caller_yield_none():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    assert (
        await fetch_link_metadata(
            "bob", "https://down.example", resolver=public_resolver(), transport=httpx.MockTransport(handler)
        )
        is None
    )
    assert await fetch_link_metadata(None, "https://blog.example.com", transport=html_transport()) is None


@pytest.mark.anyio
async def test_unfurl_message_link_stores_embed(session_factory, workspace):
    with session_factory() as session:
        message = messages.send_message(
            "bob",
            Destination.channel(workspace.general_id),
            "read https://blog.example.com/posts/1",
            session,
        )
        message_id = message.id

    await unfurl_message_link(
        "bob",
        message_id,
        "https://blog.example.com/posts/1",
        session_factory,
        resolver=public_resolver(),
        transport=html_transport(),
    )

    with session_factory() as session:
        stored = session.get(Message, message_id)
        assert stored.link_embed["title"] == "Launch notes"


@pytest.mark.anyio
@pytest.mark.parametrize(
    "url",
    [
        "http://127.0.0.1/admin",
        "http://10.1.2.3/",
        "http://169.254.169.254/latest/meta-data/",
        "file:///etc/passwd",
    ],
)
async def test_internal_targets_return_none(url):
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError(f"unexpected request to {request.url}")

    before = link_unfurl_total.value(outcome="blocked")

    assert await fetch_link_metadata("bob", url, transport=httpx.MockTransport(handler)) is None
    assert link_unfurl_total.value(outcome="blocked") == before + 1


@pytest.mark.anyio
async def test_slow_sites_hit_the_timeout(monkeypatch):
    async def handler(request: httpx.Request) -> httpx.Response:
        await anyio.sleep(5)
        return httpx.Response(200, headers={"content-type": "text/html"}, text=PAGE)

    monkeypatch.setattr(get_settings(), "link_unfurl_timeout_seconds", 0.05)
    before = link_unfurl_total.value(outcome="error")
    started = time.monotonic()

    embed = await fetch_link_metadata(
        "bob", "https://slow.example", resolver=public_resolver(), transport=httpx.MockTransport(handler)
    )

    assert embed is None
    assert time.monotonic() - started < 1
    assert link_unfurl_total.value(outcome="error") == before + 1


class RecordingSocket:
    application_state = WebSocketState.CONNECTED

    def __init__(self) -> None:
        self.sent: list[dict] = []

    async def send_json(self, payload: dict) -> None:
        self.sent.append(payload)


@pytest.mark.anyio
async def test_unfurled_embed_is_pushed_to_subscribers(session_factory, workspace):
    destination = Destination.channel(workspace.general_id)
    with session_factory() as session:
        message_id = messages.send_message("bob", destination, "see https://blog.example.com", session).id

    socket = RecordingSocket()
    await destination_event_hub.connect(destination.key, socket)
    try:
        await unfurl_message_link(
            "bob",
            message_id,
            "https://blog.example.com",
            session_factory,
            resolver=public_resolver(),
            transport=html_transport(),
        )
        await anyio.sleep(0)
    finally:
        await destination_event_hub.disconnect(destination.key, socket)

    assert socket.sent == [
        {"entity": destination.key, "type": "message_updated", "message_id": message_id}
    ]
