"""Schemas for link previews and attachment blobs."""

from __future__ import annotations

from pydantic import BaseModel, Field


class LinkEmbed(BaseModel):
    """Metadata extracted from a web page for a rich preview."""

    url: str
    title: str | None = None
    description: str | None = None
    image: str | None = None
    site_name: str | None = None
    favicon: str | None = None


class UnfurlRequest(BaseModel):
    url: str = Field(..., min_length=1, max_length=2048)


class FileRead(BaseModel):
    """Blob store entry returned after an upload."""

    storage_id: str
    url: str
    name: str
    size: int = Field(..., ge=0)
    type: str | None = None
