"""Pytest configuration and fixtures."""

import os
import threading
import time
from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from pushengine.config import Settings
from pushengine.database import Base, get_db
from pushengine.exceptions import ProviderError
from pushengine.main import app
from pushengine.services.push_provider import ProviderResult, get_push_provider

# Use test database - PostgreSQL in Docker, SQLite locally
if os.getenv("DATABASE_URL"):
    # Running in Docker - use PostgreSQL test database
    SQLALCHEMY_DATABASE_URL = os.getenv("DATABASE_URL").replace("/push_engine", "/push_engine_test")
else:
    # Running locally - use SQLite
    SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"

connect_args = {"check_same_thread": False} if "sqlite" in SQLALCHEMY_DATABASE_URL else {}
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args=connect_args)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)


class FakePushProvider:
    """Scripted stand-in for the FCM client.

    Every token succeeds unless listed in token_errors. A batch containing a
    token from raise_for raises ProviderError; one containing a token from
    slow_tokens sleeps for delay seconds first.
    """

    def __init__(self):
        self.calls: list[dict] = []
        self.token_errors: dict[str, str] = {}
        self.raise_for: set[str] = set()
        self.slow_tokens: set[str] = set()
        self.delay = 0.0
        self.short_results = False
        self._lock = threading.Lock()

    def send_multicast(self, title, body, data, tokens, dry_run=False):
        with self._lock:
            self.calls.append(
                {
                    "title": title,
                    "body": body,
                    "data": data,
                    "tokens": list(tokens),
                    "dry_run": dry_run,
                }
            )
        if self.slow_tokens.intersection(tokens):
            time.sleep(self.delay)
        if self.raise_for.intersection(tokens):
            raise ProviderError("FCM multicast failed: service unavailable")

        results = [
            ProviderResult(False, self.token_errors[token])
            if token in self.token_errors
            else ProviderResult(True)
            for token in tokens
        ]
        if self.short_results:
            return results[:-1]
        return results

    @property
    def sent_tokens(self) -> list[str]:
        return [token for call in self.calls if not call["dry_run"] for token in call["tokens"]]


class Clock:
    """Controllable clock for time-dependent services."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create test database schema once at the start of the test session."""
    Base.metadata.create_all(bind=engine)
    yield
    # Don't drop database - just leave it for next run (each test cleans up after itself)


@pytest.fixture(scope="function", autouse=True)
def db():
    """Create a fresh database session for each test with cleanup."""
    session = TestingSessionLocal()

    yield session

    # Clean up all data after test
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.close()


@pytest.fixture
def provider():
    return FakePushProvider()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def settings():
    """Settings with small batches so batching paths run on little data."""
    return Settings(
        multicast_batch_size=500,
        user_batch_size=100,
        max_users_per_request=500,
        broadcast_chunk_size=500,
        dispatch_concurrency=4,
        provider_timeout_seconds=5.0,
    )


@pytest.fixture(scope="function")
def client(db, provider):
    """Create a test client with database and push provider overrides."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_push_provider] = lambda: provider
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def other_session(db):
    """A second, independent session, as a concurrent worker would hold."""
    session = TestingSessionLocal()
    yield session
    session.rollback()
    session.close()
