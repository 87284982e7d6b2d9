"""Blob store for message attachments."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Final
from uuid import uuid4

from fastapi import UploadFile

from parley.config import get_settings
from parley.core.errors import NotFound, PayloadTooLarge, ValidationError

logger = logging.getLogger(__name__)

settings = get_settings()

_CHUNK_SIZE: Final[int] = 1024 * 1024  # 1 MiB
_STORAGE_ID_RE: Final = re.compile(r"^[0-9a-f]{32}(\.[A-Za-z0-9]{1,16})?$")


@dataclass(slots=True)
class StoredFile:
    """Represents a file persisted by the blob store."""

    storage_id: str
    url: str
    name: str
    size: int
    content_type: str | None

    def as_attachment(self) -> dict:
        return {
            "storage_id": self.storage_id,
            "name": self.name,
            "size": self.size,
            "type": self.content_type,
        }


def _media_root() -> Path:
    root = settings.media_root
    root.mkdir(parents=True, exist_ok=True)
    return root


def _blob_path(storage_id: str) -> Path:
    if not _STORAGE_ID_RE.match(storage_id):
        raise ValidationError("Invalid storage id")
    return _media_root() / storage_id


def url_for(storage_id: str) -> str:
    """Construct the download URL for a stored blob."""

    base = settings.media_base_url.rstrip("/")
    return f"{base}/{storage_id}"


async def store_upload(upload: UploadFile) -> StoredFile:
    """Persist an uploaded file and return its storage metadata."""

    original_name = upload.filename or "upload.bin"
    extension = Path(original_name).suffix
    if extension and not re.fullmatch(r"\.[A-Za-z0-9]{1,16}", extension):
        extension = ""
    storage_id = f"{uuid4().hex}{extension.lower()}"
    absolute_path = _blob_path(storage_id)

    total_size = 0
    try:
        with absolute_path.open("wb") as buffer:
            while True:
                chunk = await upload.read(_CHUNK_SIZE)
                if not chunk:
                    break
                total_size += len(chunk)
                if total_size > settings.max_attachment_size:
                    raise PayloadTooLarge("Attachment exceeds allowed size")
                buffer.write(chunk)
    except PayloadTooLarge:
        if absolute_path.exists():
            absolute_path.unlink()
        raise
    finally:
        await upload.close()

    logger.info("Stored blob %s (%s bytes)", storage_id, total_size)
    return StoredFile(
        storage_id=storage_id,
        url=url_for(storage_id),
        name=original_name,
        size=total_size,
        content_type=upload.content_type,
    )


def resolve_path(storage_id: str) -> Path:
    """Return the absolute path of a stored blob."""

    candidate = _blob_path(storage_id)
    if not candidate.is_file():
        raise NotFound("File not found")
    return candidate


def delete(storage_id: str) -> None:
    """Remove a stored blob. Missing blobs are ignored."""

    _blob_path(storage_id).unlink(missing_ok=True)
