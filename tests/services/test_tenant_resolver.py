"""Active-organization resolution: cache trust, bootstrap, switching."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from crm.models.organization import Membership
from crm.repos.registry import Repos, in_memory_repos
from crm.services.errors import NoMembership, NotAMember
from crm.services.tenant_resolver import TenantResolver, VerifiedHint, parse_hint
from tests.conftest import create_test_org, principal, run

_T0 = datetime(2026, 1, 1, tzinfo=UTC)


class CountingMemberships:
    """Wraps the membership repo and counts reads by user."""

    def __init__(self, inner) -> None:
        self._inner = inner
        self.list_by_user_calls = 0

    def __getattr__(self, name):
        return getattr(self._inner, name)

    async def list_by_user(self, user_id):
        self.list_by_user_calls += 1
        return await self._inner.list_by_user(user_id)


@pytest.fixture
def repos() -> Repos:
    return in_memory_repos()


def _member(repos: Repos, org_id, user_id, role="viewer", offset=0) -> None:
    run(
        repos.memberships.add(
            Membership(
                organization_id=org_id,
                user_id=user_id,
                role=role,
                created_at=_T0 + timedelta(minutes=offset),
            )
        )
    )


def test_parse_hint_ignores_garbage() -> None:
    org_id = uuid4()
    assert parse_hint(str(org_id)) == org_id
    assert parse_hint(f"  {org_id} ") == org_id
    assert parse_hint("not-a-uuid") is None
    assert parse_hint("") is None
    assert parse_hint(None) is None


def test_verified_hint_value_is_always_authoritative() -> None:
    a, b = uuid4(), uuid4()
    assert VerifiedHint(a, a).trusted is True
    assert VerifiedHint(b, a).trusted is False
    assert VerifiedHint(b, a).value == a
    assert VerifiedHint(None, a).trusted is False


def test_bootstrap_picks_earliest_membership(repos: Repos) -> None:
    p = principal(email="first@example.com")
    later = create_test_org(repos, "later")
    earlier = create_test_org(repos, "earlier")
    _member(repos, later.id, p.user_id, offset=5)
    _member(repos, earlier.id, p.user_id, offset=1)

    resolution = run(TenantResolver(repos).resolve(p))

    assert resolution.organization_id == earlier.id
    assert resolution.source == "bootstrap"
    session = run(repos.sessions.get(p.user_id))
    assert session is not None and session.organization_id == earlier.id
    user = run(repos.users.get_by_id(p.user_id))
    assert user is not None and user.email == "first@example.com"


def test_bootstrap_is_idempotent(repos: Repos) -> None:
    p = principal()
    org = create_test_org(repos)
    _member(repos, org.id, p.user_id)
    resolver = TenantResolver(repos)

    first = run(resolver.resolve(p))
    second = run(resolver.resolve(p))

    assert first.organization_id == second.organization_id == org.id
    assert first.source == "bootstrap"
    assert second.source == "session"


def test_matching_cookie_resolves_without_membership_read(repos: Repos) -> None:
    p = principal()
    org = create_test_org(repos)
    _member(repos, org.id, p.user_id)
    run(repos.sessions.upsert(p.user_id, org.id, _T0))

    counting = CountingMemberships(repos.memberships)
    wrapped = Repos(
        users=repos.users,
        organizations=repos.organizations,
        memberships=counting,  # type: ignore[arg-type]
        sessions=repos.sessions,
        invitations=repos.invitations,
        audit=repos.audit,
        companies=repos.companies,
    )

    resolution = run(TenantResolver(wrapped).resolve(p, str(org.id)))

    assert resolution.organization_id == org.id
    assert resolution.source == "cache"
    assert counting.list_by_user_calls == 0


@pytest.mark.parametrize("cookie", ["forged", "other-org"])
def test_session_row_beats_cookie(repos: Repos, cookie: str) -> None:
    p = principal()
    mine = create_test_org(repos, "mine")
    other = create_test_org(repos, "other")
    _member(repos, mine.id, p.user_id)
    run(repos.sessions.upsert(p.user_id, mine.id, _T0))

    hint = str(other.id) if cookie == "other-org" else "forged-value"
    resolution = run(TenantResolver(repos).resolve(p, hint))

    assert resolution.organization_id == mine.id
    assert resolution.source == "session"


def test_no_membership_raises(repos: Repos) -> None:
    with pytest.raises(NoMembership) as exc:
        run(TenantResolver(repos).resolve(principal()))
    assert exc.value.status_code == 403
    assert exc.value.code == "no_membership"


def test_switch_then_resolve_returns_new_org(repos: Repos) -> None:
    p = principal()
    a = create_test_org(repos, "org-a")
    b = create_test_org(repos, "org-b")
    _member(repos, a.id, p.user_id, offset=0)
    _member(repos, b.id, p.user_id, offset=1)
    resolver = TenantResolver(repos, clock=lambda: _T0 + timedelta(hours=1))

    assert run(resolver.resolve(p)).organization_id == a.id

    session = run(resolver.switch(p, b.id))
    assert session.organization_id == b.id
    assert session.last_switched_at == _T0 + timedelta(hours=1)

    # A new request with a fresh resolver sees the switch.
    assert run(TenantResolver(repos).resolve(p)).organization_id == b.id


def test_switch_to_foreign_org_is_refused(repos: Repos) -> None:
    p = principal()
    mine = create_test_org(repos, "mine")
    foreign = create_test_org(repos, "foreign")
    _member(repos, mine.id, p.user_id)
    resolver = TenantResolver(repos)
    run(resolver.resolve(p))

    with pytest.raises(NotAMember):
        run(resolver.switch(p, foreign.id))

    assert run(resolver.resolve(p)).organization_id == mine.id


def test_removed_member_is_rebootstrapped(repos: Repos) -> None:
    p = principal()
    a = create_test_org(repos, "org-a")
    b = create_test_org(repos, "org-b")
    _member(repos, a.id, p.user_id, offset=0)
    _member(repos, b.id, p.user_id, offset=1)
    resolver = TenantResolver(repos)
    run(resolver.switch(p, b.id))

    run(repos.memberships.remove(b.id, p.user_id))
    run(repos.sessions.clear_if_active(p.user_id, b.id))

    resolution = run(resolver.resolve(p, str(b.id)))
    assert resolution.organization_id == a.id
    assert resolution.source == "bootstrap"
