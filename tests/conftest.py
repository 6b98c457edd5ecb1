"""Pytest configuration and shared fixtures.

Unit tests run against mocked AsyncSession objects; no database or object
store is needed. API tests drive the app in-process through httpx's ASGI
transport, with the database session, identity provider, notifier and
services replaced through app.dependency_overrides.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from proofpack.api import create_app
from proofpack.api.dependencies import get_db_session, get_identity_client, get_notifier
from proofpack.core.config import Settings
from proofpack.services.access import Actor
from proofpack.services.identity import VerifiedIdentity
from tests.factories import ADMIN_ID, BUYER_ID, OWNER_ID, REVIEWER_ID, create_mock_session

TOKENS = {
    "owner-token": VerifiedIdentity(user_id=OWNER_ID, roles=frozenset({"sme"})),
    "reviewer-token": VerifiedIdentity(user_id=REVIEWER_ID, roles=frozenset({"qa_reviewer"})),
    "buyer-token": VerifiedIdentity(user_id=BUYER_ID, roles=frozenset({"buyer"})),
    "admin-token": VerifiedIdentity(user_id=ADMIN_ID, roles=frozenset({"platform_admin"})),
}


class FakeIdentityClient:
    """Identity client accepting a fixed set of bearer tokens."""

    def __init__(self, tokens: dict[str, VerifiedIdentity]) -> None:
        self._tokens = tokens

    async def verify(self, token: str) -> VerifiedIdentity | None:
        return self._tokens.get(token)

    async def aclose(self) -> None:
        return None


# ---------------------------------------------------------------------------
# Settings and actors
# ---------------------------------------------------------------------------
@pytest.fixture
def settings() -> Settings:
    """Default settings, independent of the cached environment settings."""
    return Settings()


@pytest.fixture
def owner() -> Actor:
    return Actor(user_id=OWNER_ID, roles=frozenset({"sme"}))


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id=ADMIN_ID, roles=frozenset({"platform_admin"}))


@pytest.fixture
def stranger() -> Actor:
    return Actor(user_id="user-stranger", roles=frozenset({"sme"}))


# ---------------------------------------------------------------------------
# API client fixtures (in-process testing via ASGI transport)
# ---------------------------------------------------------------------------
@pytest.fixture
def db_session() -> AsyncMock:
    return create_mock_session()


@pytest.fixture
def notifier() -> AsyncMock:
    dispatcher = AsyncMock()
    dispatcher.emit_all = AsyncMock()
    return dispatcher


@pytest.fixture
def test_app(settings: Settings, db_session: AsyncMock, notifier: AsyncMock):
    """App with the database, identity provider and notifier replaced."""
    app = create_app(settings)

    async def _db() -> AsyncGenerator[AsyncMock, None]:
        yield db_session

    app.dependency_overrides[get_db_session] = _db
    app.dependency_overrides[get_identity_client] = lambda: FakeIdentityClient(TOKENS)
    app.dependency_overrides[get_notifier] = lambda: notifier
    return app


@pytest.fixture
async def api_client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing the API."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def auth(token: str) -> dict[str, str]:
    """Authorization header for one of the TOKENS."""
    return {"Authorization": f"Bearer {token}"}
