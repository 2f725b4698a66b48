"""
tests/conftest.py -- Shared fixtures for AuthKit unit and integration tests.

This module provides:
  - db: a SQLAlchemy session on a freshly recreated schema with roles seeded
  - admin_user: the seeded admin account (admin / admin123)
  - client: TestClient running the real lifespan, so each test gets its own
    rate limiter and guard config on app.state
  - login_as: log in through the API and return the token response

Design: a temporary SQLite *file* (not :memory:) backs the engine because
TestClient runs sync handlers on worker threads, and each thread opens its own
connection. Environment variables must be set before any authkit import since
the engine and settings are built at import time.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import Generator

_DB_DIR = tempfile.mkdtemp(prefix="authkit-tests-")

# CRITICAL: set before importing authkit; settings and engine read these once.
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'authkit_test.db')}"
os.environ["JWT_SECRET"] = "test-secret-key-for-authkit-tests"
os.environ["REQUEST_LOG_ENABLED"] = "false"
os.environ["RATE_LIMIT_BACKEND"] = "memory"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

import authkit.models  # noqa: F401  register tables
from authkit.db.base import Base
from authkit.db.seeds.seed_admin import seed_admin
from authkit.db.seeds.seed_roles import seed_roles
from authkit.db.session import SessionLocal, engine
from authkit.main import app
from authkit.models.user import User

ADMIN_PASSWORD = "admin123"


@pytest.fixture(autouse=True)
def _reset_schema() -> Generator[None, None, None]:
    """Drop and recreate every table, then seed permissions and roles."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        seed_roles(session)
    finally:
        session.close()
    yield


@pytest.fixture
def db() -> Generator[Session, None, None]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def admin_user(db: Session) -> User:
    seed_admin(db)
    return db.query(User).filter(User.username == "admin").one()


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """TestClient with a fresh limiter and SecurityConfig from the lifespan."""
    with TestClient(app) as c:
        yield c


def _login(client: TestClient, username: str, password: str) -> dict:
    resp = client.post("/api/v1/auth/login", json={"username": username, "password": password})
    assert resp.status_code == 200, f"Login failed for {username}: {resp.status_code} {resp.text}"
    return resp.json()


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(client: TestClient, admin_user: User) -> dict:
    tokens = _login(client, "admin", ADMIN_PASSWORD)
    return auth_headers(tokens["access_token"])


@pytest.fixture
def login_as(client: TestClient):
    """Return a callable logging a user in through the API."""

    def _do(username: str, password: str) -> dict:
        return _login(client, username, password)

    return _do
