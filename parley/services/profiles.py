"""Batch lookup of user profiles for enrichment."""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from parley.models import User
from parley.schemas import UserSummary


def summarize(user_id: str, user: User | None) -> UserSummary:
    if user is None:
        return UserSummary(id=user_id)
    return UserSummary(id=user.id, name=user.full_name, image_url=user.image_url)


def load_profiles(user_ids: Iterable[str], db: Session) -> dict[str, UserSummary]:
    """Fetch every distinct profile once; unknown ids render as "Unknown"."""

    ids = {user_id for user_id in user_ids if user_id}
    if not ids:
        return {}
    users = {user.id: user for user in db.execute(select(User).where(User.id.in_(ids))).scalars()}
    return {user_id: summarize(user_id, users.get(user_id)) for user_id in ids}


def display_name(user_id: str, db: Session) -> str:
    return summarize(user_id, db.get(User, user_id)).name
