"""Attachment blob upload and download."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, UploadFile, status
from fastapi.responses import FileResponse

from parley.api.deps import get_current_user_id
from parley.core import resolve_path, store_upload
from parley.schemas import FileRead

router = APIRouter(prefix="/files", tags=["files"])

logger = logging.getLogger(__name__)


@router.post("", response_model=FileRead, status_code=status.HTTP_201_CREATED)
async def upload_attachment(
    file: UploadFile = File(...),
    current_user_id: str = Depends(get_current_user_id),
) -> FileRead:
    """Store a file and return the reference to attach to a message."""

    stored = await store_upload(file)
    logger.info("User %s uploaded blob %s", current_user_id, stored.storage_id)
    return FileRead(
        storage_id=stored.storage_id,
        url=stored.url,
        name=stored.name,
        size=stored.size,
        type=stored.content_type,
    )


@router.get("/{storage_id}", response_class=FileResponse)
def download_attachment(
    storage_id: str,
    current_user_id: str = Depends(get_current_user_id),
) -> FileResponse:
    path = resolve_path(storage_id)
    return FileResponse(path)
