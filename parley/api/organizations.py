"""Organization-wide mention inbox, unread summary, recent messages and saved items."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from parley.api.deps import get_current_user_id
from parley.database import get_db
from parley.schemas import MarkAllResult, MentionItem, MessageRead, SavedMessageRead, UnreadSummary
from parley.services import history, mentions
from parley.services.access import require_membership

router = APIRouter(tags=["notifications"])


@router.get("/organizations/{organization_id}/mentions", response_model=list[MentionItem])
def list_mentions(
    organization_id: int,
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> list[MentionItem]:
    require_membership(organization_id, current_user_id, db)
    return mentions.list_mentions(current_user_id, organization_id, db, limit=limit)


@router.post("/organizations/{organization_id}/mentions/read-all", response_model=MarkAllResult)
def mark_all_mentions_read(
    organization_id: int,
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> MarkAllResult:
    return MarkAllResult(
        marked_count=mentions.mark_all_mentions_read(current_user_id, organization_id, db)
    )


@router.get("/organizations/{organization_id}/unread", response_model=UnreadSummary)
def get_unread_summary(
    organization_id: int,
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> UnreadSummary:
    return mentions.get_unread_summary(current_user_id, organization_id, db)


@router.get("/organizations/{organization_id}/recent-messages", response_model=list[MessageRead])
def get_recent_messages(
    organization_id: int,
    limit: int = Query(default=5, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> list[MessageRead]:
    return history.get_recent_messages(current_user_id, organization_id, db, limit=limit)


@router.get("/saved", response_model=list[SavedMessageRead])
def list_saved_messages(
    limit: int = Query(default=50, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> list[SavedMessageRead]:
    return history.list_saved_messages(current_user_id, db, limit=limit)
