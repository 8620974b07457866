"""Pytest configuration and shared fixtures.

Every test gets its own SQLite database file so sessions opened by audit
sinks and concurrent writers see committed data exactly as they would
against PostgreSQL.
"""

import os

# Must be set before wastetrack.db.session builds its engine.
os.environ.setdefault("DATABASE_URL", "sqlite://")

from typing import List
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from wastetrack.api import deps
from wastetrack.api.main import app
from wastetrack.core.config import Settings, get_settings
from wastetrack.core.lifecycle import ShipmentLifecycleService, TransitionEvent
from wastetrack.core.security import create_access_token
from wastetrack.db import models  # noqa: F401
from wastetrack.db.base import Base

from tests.factories import SYSTEM_ACTOR_ID, SYSTEM_SECRET


class RecordingAuditSink:
    """Audit sink that keeps every event in memory."""

    def __init__(self):
        self.events: List[TransitionEvent] = []

    def emit(self, event: TransitionEvent) -> None:
        self.events.append(event)


@pytest.fixture
def test_settings():
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        secret_key="test-secret-key",
        system_secret=SYSTEM_SECRET,
        system_actor_id=SYSTEM_ACTOR_ID,
        audit_webhook_url=None,
        dwell_config_file=None,
        log_to_file=False,
    )


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'wastetrack.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def audit_sink():
    return RecordingAuditSink()


@pytest.fixture
def lifecycle_service(db_session, audit_sink):
    return ShipmentLifecycleService(db_session, audit_sink=audit_sink)


@pytest.fixture
def actor_id():
    return uuid4()


@pytest.fixture
def client(session_factory, test_settings, audit_sink):
    """TestClient wired to the per-test database and settings."""

    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[deps.get_db] = _get_db
    app.dependency_overrides[deps.get_session_factory] = lambda: session_factory
    app.dependency_overrides[deps.get_audit_sink] = lambda: audit_sink
    app.dependency_overrides[get_settings] = lambda: test_settings

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(test_settings):
    """Build an Authorization header carrying a session token for a user."""

    def _headers(user_id: UUID) -> dict:
        token = create_access_token(user_id, test_settings)
        return {"Authorization": f"Bearer {token}"}

    return _headers
