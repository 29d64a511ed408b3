from __future__ import annotations

import asyncio
from collections.abc import Coroutine, Iterator
from typing import Any, TypeVar
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from crm.api.dependencies import get_repos
from crm.api.ratelimit import _rate_limiter
from crm.main import app
from crm.models.organization import Membership, Organization
from crm.models.principal import Principal
from crm.models.user import User
from crm.repos.registry import Repos, in_memory_repos
from crm.services import token_service

T = TypeVar("T")


def run(coro: Coroutine[Any, Any, T]) -> T:
    """Drive an async repo or service call from a sync test."""
    return asyncio.run(coro)


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> None:
    """Clear rate limit buckets between tests so limits don't bleed."""
    if hasattr(_rate_limiter, "_buckets"):
        _rate_limiter._buckets.clear()  # type: ignore[union-attr]


@pytest.fixture
def repos() -> Iterator[Repos]:
    """A fresh in-memory store, also served to the app for this test."""
    fresh = in_memory_repos()
    app.dependency_overrides[get_repos] = lambda: fresh
    yield fresh
    app.dependency_overrides.pop(get_repos, None)


@pytest.fixture
def client(repos: Repos) -> TestClient:
    return TestClient(app)


def mint_token(user_id: UUID | str | None = None, email: str | None = None) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(
        sub=str(user_id or uuid4()), email=email
    )


def auth(token: str | None) -> dict[str, str]:
    if token is None:
        return {}
    return {"Authorization": f"Bearer {token}"}


def principal(user_id: UUID | None = None, email: str | None = None) -> Principal:
    return Principal(user_id=user_id or uuid4(), email=email)


# ---------------------------------------------------------------------------
# Org test helpers
# ---------------------------------------------------------------------------


def create_test_org(repos: Repos, slug: str = "test-org") -> Organization:
    """Create and persist an org in the in-memory repo."""
    org = Organization.new(name=slug.replace("-", " ").title(), slug=slug)
    run(repos.organizations.add(org))
    return org


def add_test_member(
    repos: Repos,
    org_id: UUID,
    user_id: UUID,
    role: str = "viewer",
    email: str | None = None,
) -> Membership:
    """Add a membership (and optionally a directory entry) to the repos."""
    m = Membership(organization_id=org_id, user_id=user_id, role=role)
    run(repos.memberships.add(m))
    if email is not None:
        run(repos.users.upsert(User(id=user_id, email=email)))
    return m
