"""
Pytest configuration and fixtures for all tests.
"""

import asyncio
import os
import sys
from typing import Generator

# Must be set before the application modules read their configuration
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["COOKIE_SECURE"] = "false"
os.environ.setdefault("JWT_SECRET", "test-secret-for-session-tokens")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure coursehub_backend is importable
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(__file__))))

from coursehub_backend.database import get_db
from coursehub_backend.model import Base
from coursehub_backend.permissions.roles import role_permissions
from coursehub_backend.server import app
from coursehub_backend.services.email_service import get_mail_service
from coursehub_backend.services.rate_limit import login_rate_limiter, password_reset_rate_limiter
from coursehub_backend.services.storage_service import get_storage_service
from coursehub_backend.tests.fixtures import FakeMailService, FakeStorageService


@pytest.fixture(scope="function")
def test_db() -> Generator[Session, None, None]:
    """Create a test database session using SQLite in-memory."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def storage() -> FakeStorageService:
    return FakeStorageService()


@pytest.fixture
def mail() -> FakeMailService:
    return FakeMailService()


@pytest.fixture
def client(test_db, storage, mail) -> Generator[TestClient, None, None]:
    """Application client sharing the test session and the in-process fakes."""

    def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage_service] = lambda: storage
    app.dependency_overrides[get_mail_service] = lambda: mail

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_shared_state():
    """Permission grants and rate limit counters are process wide."""
    role_permissions.reset()
    asyncio.run(login_rate_limiter.reset())
    asyncio.run(password_reset_rate_limiter.reset())
    yield
    role_permissions.reset()
