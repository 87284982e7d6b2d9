"""On-demand link preview endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from parley.api.deps import get_current_user_id
from parley.schemas import LinkEmbed, UnfurlRequest
from parley.services.unfurl import fetch_link_metadata

router = APIRouter(prefix="/links", tags=["links"])


@router.post("/unfurl", response_model=LinkEmbed | None)
async def unfurl_link(
    payload: UnfurlRequest,
    current_user_id: str = Depends(get_current_user_id),
) -> LinkEmbed | None:
    """Return preview metadata, or ``null`` when the URL cannot be unfurled."""

    return await fetch_link_metadata(current_user_id, payload.url)
