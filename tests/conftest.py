"""Shared pytest fixtures for backend tests."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from parley.core import storage
from parley.database import get_db, get_session_factory
from parley.main import app
from parley.models import (
    Base,
    Channel,
    ChannelCategory,
    ChannelMember,
    ChannelPermissions,
    Organization,
    OrganizationMember,
    OrganizationRole,
    User,
)


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def test_engine() -> Iterator[Engine]:
    """Provide an in-memory SQLite engine for isolated tests."""

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def session_factory(test_engine) -> sessionmaker[Session]:
    """Return a session factory bound to the test engine."""

    return sessionmaker(bind=test_engine, future=True)


@pytest.fixture()
def db_session(session_factory) -> Iterator[Session]:
    """Yield a SQLAlchemy session for unit tests."""

    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def media_root(tmp_path, monkeypatch) -> Path:
    """Keep uploaded blobs inside the test's temporary directory."""

    root = tmp_path / "media"
    monkeypatch.setattr(storage.settings, "media_root", root)
    return root


@dataclass
class Workspace:
    """Identifiers of the seeded organization."""

    organization_id: int
    general_id: int
    announcements_id: int
    secret_id: int
    staff_room_id: int


@pytest.fixture()
def workspace(session_factory) -> Workspace:
    """Seed one organization with public, read-only and private channels.

    ``alice`` is an admin, ``bob`` and ``carol`` are members, ``dave`` exists
    but belongs to no organization. ``carol`` is on the allow-list of the
    private ``secret`` channel; ``staff-room`` sits in a private category.
    """

    with session_factory() as session:
        session.add_all(
            [
                User(id="alice", first_name="Alice", last_name="Admin"),
                User(id="bob", display_name="Bob"),
                User(id="carol", first_name="Carol"),
                User(id="dave", display_name="Dave"),
            ]
        )
        organization = Organization(name="Acme", slug="acme")
        session.add(organization)
        session.flush()
        session.add_all(
            [
                OrganizationMember(
                    organization_id=organization.id,
                    user_id="alice",
                    role=OrganizationRole.ADMIN,
                ),
                OrganizationMember(organization_id=organization.id, user_id="bob"),
                OrganizationMember(organization_id=organization.id, user_id="carol"),
            ]
        )
        public = ChannelCategory(organization_id=organization.id, name="Text", position=0)
        staff = ChannelCategory(
            organization_id=organization.id, name="Staff", position=1, is_private=True
        )
        session.add_all([public, staff])
        session.flush()

        general = Channel(
            organization_id=organization.id, category_id=public.id, name="general", position=0
        )
        announcements = Channel(
            organization_id=organization.id,
            category_id=public.id,
            name="announcements",
            permissions=ChannelPermissions.READ_ONLY,
            position=1,
        )
        secret = Channel(
            organization_id=organization.id,
            category_id=public.id,
            name="secret",
            is_private=True,
            position=2,
        )
        staff_room = Channel(
            organization_id=organization.id, category_id=staff.id, name="staff-room", position=0
        )
        session.add_all([general, announcements, secret, staff_room])
        session.flush()
        session.add(ChannelMember(channel_id=secret.id, user_id="carol"))
        session.commit()

        return Workspace(
            organization_id=organization.id,
            general_id=general.id,
            announcements_id=announcements.id,
            secret_id=secret.id,
            staff_room_id=staff_room.id,
        )


@pytest.fixture()
def client(session_factory) -> Iterator[TestClient]:
    """Yield a FastAPI TestClient with the database dependencies overridden."""

    def override_get_db() -> Iterator[Session]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
