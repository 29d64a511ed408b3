"""Active-organization resolution.

Every organization-scoped request needs one answer: which organization
is this principal acting in?  The answer has three possible sources,
tried in order:

  cache      The client's ``active_organization_id`` cookie, but only
             when it equals the principal's Session row.  The cookie is
             a hint the client can forge or keep stale, so it is never
             trusted on its own.

  session    The Session row (one per user, last switch wins).  When the
             cookie disagrees, the row wins.

  bootstrap  No Session row yet: pick the principal's earliest
             membership, persist it as the Session and use it.
             Idempotent; concurrent first requests converge on the same
             organization because "earliest" is deterministic.

A principal with no memberships at all gets NoMembership, raised before
any endpoint body (and so any tenant data query) runs.

A Session can never name an organization its user has left: removing a
member clears their Session for that organization (and in PostgreSQL
the row has a cascading foreign key to the membership).  The cache and
session paths therefore need no membership read.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Generic, TypeVar
from uuid import UUID

from crm.core.metrics import SESSION_SWITCHES, TENANT_RESOLUTIONS
from crm.models.principal import Principal
from crm.models.session import ActiveSession
from crm.models.tenant import Resolution
from crm.models.user import User, normalize_email
from crm.repos.registry import Repos
from crm.services.errors import NoMembership, NotAMember

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class VerifiedHint(Generic[T]):
    """An untrusted fast-path value checked against the authoritative one.

    ``value`` is always the authoritative answer; ``trusted`` only says
    whether the hint happened to agree with it.
    """

    hint: T | None
    authoritative: T

    @property
    def trusted(self) -> bool:
        return self.hint is not None and self.hint == self.authoritative

    @property
    def value(self) -> T:
        return self.authoritative


def parse_hint(raw: str | UUID | None) -> UUID | None:
    """Cookie value -> UUID; anything unparseable counts as no hint."""
    if raw is None or isinstance(raw, UUID):
        return raw
    try:
        return UUID(raw.strip())
    except ValueError:
        return None


class TenantResolver:
    def __init__(
        self, repos: Repos, *, clock: Callable[[], datetime] = _utcnow
    ) -> None:
        self._repos = repos
        self._clock = clock

    async def resolve(
        self, principal: Principal, cookie_hint: str | UUID | None = None
    ) -> Resolution:
        hint = parse_hint(cookie_hint)
        session = await self._repos.sessions.get(principal.user_id)

        if session is not None:
            verified = VerifiedHint(hint, session.organization_id)
            if hint is not None and not verified.trusted:
                logger.debug(
                    "Ignoring stale organization hint user=%s hint=%s session=%s",
                    principal.user_id,
                    hint,
                    session.organization_id,
                )
            source = "cache" if verified.trusted else "session"
            TENANT_RESOLUTIONS.labels(source=source).inc()
            return Resolution(organization_id=verified.value, source=source)

        memberships = await self._repos.memberships.list_by_user(principal.user_id)
        if not memberships:
            TENANT_RESOLUTIONS.labels(source="no_membership").inc()
            logger.warning("No organization membership user=%s", principal.user_id)
            raise NoMembership()

        organization_id = memberships[0].organization_id
        await self._repos.sessions.upsert(
            principal.user_id, organization_id, self._clock()
        )
        await self._remember_user(principal)
        TENANT_RESOLUTIONS.labels(source="bootstrap").inc()
        logger.info(
            "Bootstrapped active organization user=%s org=%s",
            principal.user_id,
            organization_id,
        )
        return Resolution(organization_id=organization_id, source="bootstrap")

    async def switch(
        self, principal: Principal, organization_id: UUID
    ) -> ActiveSession:
        membership = await self._repos.memberships.get(
            organization_id, principal.user_id
        )
        if membership is None:
            SESSION_SWITCHES.labels(result="not_a_member").inc()
            logger.warning(
                "Switch denied: user=%s not a member of org=%s",
                principal.user_id,
                organization_id,
            )
            raise NotAMember()

        session = await self._repos.sessions.upsert(
            principal.user_id, organization_id, self._clock()
        )
        SESSION_SWITCHES.labels(result="ok").inc()
        logger.info(
            "Switched active organization user=%s org=%s",
            principal.user_id,
            organization_id,
        )
        return session

    async def activate(self, user_id: UUID, organization_id: UUID) -> ActiveSession:
        """Point the Session at an organization without a membership check.

        Only for callers that created the membership in the same unit of
        work (invitation acceptance).
        """
        return await self._repos.sessions.upsert(user_id, organization_id, self._clock())

    async def _remember_user(self, principal: Principal) -> None:
        if principal.email:
            await self._repos.users.upsert(
                User(
                    id=principal.user_id,
                    email=normalize_email(principal.email),
                    name=str(principal.claims.get("name") or ""),
                )
            )
