"""Link unfurling with an SSRF guard.

``fetch_link_metadata`` never raises: any refusal or failure yields
``None`` so that sending a message is never blocked by a remote site.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import socket
from html.parser import HTMLParser
from typing import Awaitable, Callable
from urllib.parse import urljoin, urlsplit

import anyio
import httpx
from sqlalchemy.orm import Session, sessionmaker

from parley.config import get_settings
from parley.core.errors import ExternalFetchError
from parley.monitoring.metrics import link_unfurl_total
from parley.schemas import LinkEmbed
from parley.services.messages import store_link_embed

logger = logging.getLogger(__name__)

Resolver = Callable[[str, int], Awaitable[list[str]]]

_MAX_REDIRECTS = 3
_HTML_TYPES = ("text/html", "application/xhtml+xml")

_BLOCKED_V6_NETWORKS = tuple(
    ipaddress.ip_network(network)
    for network in ("::/128", "::1/128", "fc00::/7", "fe80::/10", "ff00::/8")
)


class UnfurlBlocked(ExternalFetchError):
    """Target is not a public http(s) address."""


async def system_resolver(host: str, port: int) -> list[str]:
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, port, family=socket.AF_UNSPEC, type=socket.SOCK_STREAM)
    return [sockaddr[0] for _family, _type, _proto, _canonname, sockaddr in infos]


def _blocked_ipv4(address: ipaddress.IPv4Address) -> bool:
    a, b, c, _ = address.packed
    return (
        a in (0, 10, 127)
        or a >= 224  # multicast and reserved, including broadcast
        or (a == 100 and 64 <= b <= 127)
        or (a == 169 and b == 254)
        or (a == 172 and 16 <= b <= 31)
        or (a == 192 and b == 168)
        or (a == 192 and b == 0 and c in (0, 2))
        or (a == 198 and b in (18, 19))
        or (a == 198 and b == 51 and c == 100)
        or (a == 203 and b == 0 and c == 113)
    )


def is_blocked_address(value: str) -> bool:
    """True for private, loopback, link-local, multicast or reserved addresses."""

    try:
        address = ipaddress.ip_address(value.split("%", 1)[0])
    except ValueError:
        return True
    if isinstance(address, ipaddress.IPv6Address):
        mapped = address.ipv4_mapped or address.sixtofour
        if mapped is not None:
            return _blocked_ipv4(mapped)
        if any(address in network for network in _BLOCKED_V6_NETWORKS):
            return True
    elif _blocked_ipv4(address):
        return True
    return (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_multicast
        or address.is_reserved
        or address.is_unspecified
    )


async def ensure_public_url(url: str, resolver: Resolver) -> None:
    """Raise ``UnfurlBlocked`` unless every address of the host is public."""

    parts = urlsplit(url)
    if parts.scheme not in ("http", "https"):
        raise UnfurlBlocked("Unsupported scheme")
    host = parts.hostname
    if not host:
        raise UnfurlBlocked("Missing host")
    try:
        port = parts.port or (443 if parts.scheme == "https" else 80)
    except ValueError as exc:
        raise UnfurlBlocked("Invalid port") from exc

    try:
        literal = ipaddress.ip_address(host)
    except ValueError:
        literal = None
    if literal is not None:
        addresses = [str(literal)]
    else:
        try:
            addresses = await resolver(host, port)
        except OSError as exc:
            raise UnfurlBlocked("Host does not resolve") from exc
    if not addresses or any(is_blocked_address(address) for address in addresses):
        raise UnfurlBlocked(f"{host} resolves to a non-public address")


class _MetaParser(HTMLParser):
    """Collects meta tags, the document title and icon links."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.meta: dict[str, str] = {}
        self.icons: list[str] = []
        self.title: str | None = None
        self._in_title = False
        self._title_parts: list[str] = []

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        values = {name.lower(): (value or "") for name, value in attrs}
        if tag == "meta":
            key = (values.get("property") or values.get("name") or "").strip().lower()
            content = values.get("content", "").strip()
            if key and content and key not in self.meta:
                self.meta[key] = content
        elif tag == "link":
            rel = values.get("rel", "").lower().split()
            href = values.get("href", "").strip()
            if href and "icon" in rel:
                self.icons.append(href)
        elif tag == "title" and self.title is None:
            self._in_title = True

    def handle_endtag(self, tag: str) -> None:
        if tag == "title" and self._in_title:
            self._in_title = False
            self.title = " ".join("".join(self._title_parts).split()) or None

    def handle_data(self, data: str) -> None:
        if self._in_title:
            self._title_parts.append(data)


def _first(meta: dict[str, str], *keys: str) -> str | None:
    for key in keys:
        if meta.get(key):
            return meta[key]
    return None


def extract_metadata(html: str, page_url: str) -> LinkEmbed:
    """Open Graph, then Twitter Card, then generic meta, then ``<title>``."""

    parser = _MetaParser()
    parser.feed(html)
    parser.close()
    meta = parser.meta

    parts = urlsplit(page_url)
    origin = f"{parts.scheme}://{parts.netloc}"
    image = _first(meta, "og:image", "og:image:url", "og:image:secure_url", "twitter:image", "twitter:image:src", "image")
    favicon = parser.icons[0] if parser.icons else None

    return LinkEmbed(
        url=page_url,
        title=_first(meta, "og:title", "twitter:title", "title") or parser.title,
        description=_first(meta, "og:description", "twitter:description", "description"),
        image=urljoin(page_url, image) if image else None,
        site_name=_first(meta, "og:site_name", "application-name") or parts.hostname,
        favicon=urljoin(page_url, favicon) if favicon else f"{origin}/favicon.ico",
    )


async def _fetch(url: str, resolver: Resolver, transport: httpx.AsyncBaseTransport | None) -> LinkEmbed:
    settings = get_settings()
    headers = {"User-Agent": settings.link_unfurl_user_agent, "Accept": "text/html,application/xhtml+xml"}
    async with httpx.AsyncClient(
        timeout=settings.link_unfurl_timeout_seconds,
        follow_redirects=False,
        headers=headers,
        transport=transport,
    ) as client:
        current = url
        for _ in range(_MAX_REDIRECTS + 1):
            await ensure_public_url(current, resolver)
            async with client.stream("GET", current) as response:
                if response.is_redirect:
                    location = response.headers.get("location")
                    if not location:
                        raise ExternalFetchError("Redirect without location")
                    current = urljoin(current, location)
                    continue
                if response.status_code >= 400:
                    raise ExternalFetchError(f"Remote answered {response.status_code}")

                content_type = response.headers.get("content-type", "").lower()
                if not any(kind in content_type for kind in _HTML_TYPES):
                    link_unfurl_total.inc(outcome="non_html")
                    return LinkEmbed(url=current, title=urlsplit(current).hostname)

                body = bytearray()
                async for chunk in response.aiter_bytes():
                    body.extend(chunk)
                    if len(body) >= settings.link_unfurl_max_bytes:
                        del body[settings.link_unfurl_max_bytes:]
                        break
                html = bytes(body).decode(response.charset_encoding or "utf-8", errors="replace")
                link_unfurl_total.inc(outcome="ok")
                return extract_metadata(html, current)
        raise ExternalFetchError("Too many redirects")


async def fetch_link_metadata(
    caller: str | None,
    url: str,
    *,
    resolver: Resolver = system_resolver,
    transport: httpx.AsyncBaseTransport | None = None,
) -> LinkEmbed | None:
    """Fetch preview metadata for ``url`` or return ``None``."""

    if not caller:
        return None
    settings = get_settings()
    try:
        return await asyncio.wait_for(
            _fetch(url.strip(), resolver, transport),
            timeout=settings.link_unfurl_timeout_seconds,
        )
    except UnfurlBlocked as exc:
        link_unfurl_total.inc(outcome="blocked")
        logger.info("Refused to unfurl %s: %s", url, exc.detail)
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        link_unfurl_total.inc(outcome="error")
        logger.debug("Unfurl of %s failed: %r", url, exc)
    return None


async def unfurl_message_link(
    caller: str,
    message_id: int,
    url: str,
    session_factory: sessionmaker[Session],
    *,
    resolver: Resolver = system_resolver,
    transport: httpx.AsyncBaseTransport | None = None,
) -> None:
    """Background task: unfurl ``url`` and attach the result to the message."""

    if not get_settings().link_unfurl_enabled:
        link_unfurl_total.inc(outcome="disabled")
        return
    embed = await fetch_link_metadata(caller, url, resolver=resolver, transport=transport)
    if embed is None:
        return
    # Run in an AnyIO worker so the notifier can reach the event loop.
    await anyio.to_thread.run_sync(store_link_embed, message_id, embed, session_factory)
