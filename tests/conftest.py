"""Pytest configuration and shared fixtures.

Settings are cached and the engine is built at import time, so the test
environment must be in place before anything under ``inventory`` is
imported.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BROKER_URL"] = "memory://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["LOG_TO_FILE"] = "false"
os.environ["NOTIFICATION_REPLAY_INTERVAL"] = "0"
os.environ["RUN_NOTIFICATION_CONSUMER"] = "false"

from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import inventory.db.models  # noqa: F401  (registers tables)
from inventory.api.deps import get_db, get_executor, get_publisher, get_session_factory
from inventory.api.main import app
from inventory.core.exceptions import PublishError
from inventory.core.security import create_access_token
from inventory.db.base import Base


class RecordingPublisher:
    """Stands in for EventPublisher; keeps what would have gone to the broker."""

    def __init__(self):
        self.events: List[Any] = []
        self.deferred: List[Any] = []
        self.fail = False

    def publish(self, event, *, strict: bool = False) -> bool:
        if self.fail:
            if strict:
                raise PublishError(f"Broker unavailable for {event.routing_key}")
            self.deferred.append(event)
            return False
        self.events.append(event)
        return True

    @property
    def routing_keys(self) -> List[str]:
        return [e.routing_key for e in self.events]

    def of_type(self, event_type) -> List[Any]:
        return [e for e in self.events if isinstance(e, event_type)]


class StubExecutor:
    """Stands in for ActionExecutor."""

    def __init__(self, result: bool = True, error: Optional[Exception] = None):
        self.result = result
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def execute(self, request_type, action_data, approver_id, approver_name, *, approval_request_id=None):
        self.calls.append({
            "request_type": request_type,
            "action_data": action_data,
            "approver_id": approver_id,
            "approver_name": approver_name,
            "approval_request_id": approval_request_id,
        })
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
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
    session.close()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def executor():
    return StubExecutor()


@pytest.fixture
def api_overrides(session_factory, publisher, executor):
    """Point the app at the test database and the recording publisher."""
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_publisher] = lambda: publisher
    app.dependency_overrides[get_executor] = lambda: executor
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(api_overrides):
    with TestClient(api_overrides) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    def make(user) -> Dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}
    return make
