"""Invitations: issue, look up, accept.

Tokens are ``secrets.token_urlsafe(32)``.  Only the SHA-256 digest is
stored, so a leaked table cannot be replayed.  The raw token goes back
to the inviter once, in the creation response, and to the invitee in the
accept link.

Acceptance validates in a fixed order so a client always gets the most
fundamental problem first::

    InvalidToken -> InvitationExpired -> InvitationAlreadyUsed -> EmailMismatch

then creates the membership, marks the invitation accepted (conditional
on it still being unaccepted) and points the principal's Session at the
new organization.
"""

from __future__ import annotations

import logging
import re
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol
from uuid import UUID

from crm.core.config import SETTINGS
from crm.core.metrics import INVITATIONS
from crm.models.invitation import Invitation, hash_token
from crm.models.organization import Membership, Organization
from crm.models.principal import Principal
from crm.models.user import User, normalize_email
from crm.repos.registry import Repos
from crm.services.errors import (
    AlreadyMember,
    EmailMismatch,
    InsufficientRole,
    InvalidToken,
    InvitationAlreadyUsed,
    InvitationExpired,
    StorageError,
    TenancyError,
)
from crm.services.policy import can_manage_members
from crm.services.tenant_resolver import TenantResolver

logger = logging.getLogger(__name__)

INVITABLE_ROLES = ("admin", "editor", "viewer")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class InvitationNotifier(Protocol):
    async def invitation_created(
        self, invitation: Invitation, organization: Organization, accept_url: str
    ) -> None: ...


class LoggingInvitationNotifier:
    """Stand-in for the mail sender: records that an email would go out.

    The accept URL carries the raw token and is deliberately not logged.
    """

    async def invitation_created(
        self, invitation: Invitation, organization: Organization, accept_url: str
    ) -> None:
        logger.info(
            "Invitation email queued to=%s org=%s role=%s expires_at=%s",
            invitation.email,
            organization.name,
            invitation.role,
            invitation.expires_at.isoformat(),
        )


@dataclass(frozen=True, slots=True)
class IssuedInvitation:
    invitation: Invitation
    token: str
    accept_url: str


@dataclass(frozen=True, slots=True)
class InvitationView:
    """Public projection of an invitation, safe to show before sign-in."""

    id: UUID
    organization_id: UUID
    organization_name: str | None
    email: str
    role: str
    expires_at: datetime
    expired: bool
    accepted: bool


class InvitationService:
    def __init__(
        self,
        repos: Repos,
        tenants: TenantResolver,
        *,
        notifier: InvitationNotifier | None = None,
        clock: Callable[[], datetime] = _utcnow,
        base_url: str | None = None,
    ) -> None:
        self._repos = repos
        self._tenants = tenants
        self._notifier = notifier or LoggingInvitationNotifier()
        self._clock = clock
        self._base_url = base_url or SETTINGS.app_base_url

    def accept_url(self, token: str) -> str:
        return f"{self._base_url}/invite/{token}"

    async def create_invitation(
        self, actor_id: UUID, email: str, organization_id: UUID, role: str
    ) -> IssuedInvitation:
        if role not in INVITABLE_ROLES:
            raise ValueError(f"role must be one of {', '.join(INVITABLE_ROLES)}")

        email = normalize_email(email)
        if not _EMAIL_RE.match(email):
            raise ValueError("Invalid email address")

        actor = await self._repos.memberships.get(organization_id, actor_id)
        if not can_manage_members(actor.role if actor else None):
            logger.warning(
                "Invitation denied: user=%s cannot invite to org=%s",
                actor_id,
                organization_id,
            )
            raise InsufficientRole("Only admins and owners can invite members")

        existing = await self._repos.users.get_by_email(email)
        if existing is not None:
            if await self._repos.memberships.get(organization_id, existing.id):
                raise AlreadyMember()

        token = secrets.token_urlsafe(32)
        invitation = Invitation.new(
            organization_id=organization_id,
            email=email,
            role=role,
            token_hash=hash_token(token),
            invited_by=actor_id,
            now=self._clock(),
        )
        await self._repos.invitations.add(invitation)
        INVITATIONS.labels(event="created").inc()
        logger.info(
            "Invitation created id=%s org=%s role=%s by=%s",
            invitation.id,
            organization_id,
            role,
            actor_id,
        )

        accept_url = self.accept_url(token)
        organization = await self._repos.organizations.get_by_id(organization_id)
        if organization is not None:
            try:
                await self._notifier.invitation_created(
                    invitation, organization, accept_url
                )
            except Exception:
                INVITATIONS.labels(event="notify_failed").inc()
                logger.exception(
                    "Invitation notification failed id=%s; invitation kept",
                    invitation.id,
                )

        return IssuedInvitation(invitation=invitation, token=token, accept_url=accept_url)

    async def get_invitation(self, token: str) -> InvitationView | None:
        invitation = await self._repos.invitations.get_by_token_hash(hash_token(token))
        if invitation is None:
            return None
        organization = await self._repos.organizations.get_by_id(
            invitation.organization_id
        )
        return InvitationView(
            id=invitation.id,
            organization_id=invitation.organization_id,
            organization_name=organization.name if organization else None,
            email=invitation.email,
            role=invitation.role,
            expires_at=invitation.expires_at,
            expired=invitation.is_expired(self._clock()),
            accepted=invitation.is_accepted,
        )

    async def accept_invitation(self, principal: Principal, token: str) -> Membership:
        invitation = await self._repos.invitations.get_by_token_hash(hash_token(token))
        now = self._clock()

        if invitation is None:
            raise self._rejected(InvalidToken(), principal)
        if invitation.is_expired(now):
            raise self._rejected(InvitationExpired(), principal, invitation)
        if invitation.is_accepted:
            raise self._rejected(InvitationAlreadyUsed(), principal, invitation)
        if normalize_email(principal.email or "") != invitation.email:
            raise self._rejected(EmailMismatch(), principal, invitation)

        await self._repos.users.upsert(
            User(
                id=principal.user_id,
                email=invitation.email,
                name=str(principal.claims.get("name") or ""),
            )
        )

        membership = Membership(
            organization_id=invitation.organization_id,
            user_id=principal.user_id,
            role=invitation.role,
            created_at=now,
        )
        try:
            await self._repos.memberships.add(membership)
        except ValueError:
            raise self._rejected(AlreadyMember(), principal, invitation) from None

        try:
            marked = await self._repos.invitations.mark_accepted(invitation.id, now)
        except StorageError:
            # The membership exists; a missing accepted_at is recoverable.
            logger.exception(
                "Could not mark invitation accepted id=%s user=%s",
                invitation.id,
                principal.user_id,
            )
        else:
            if marked is None:
                await self._repos.memberships.remove(
                    invitation.organization_id, principal.user_id
                )
                raise self._rejected(InvitationAlreadyUsed(), principal, invitation)

        await self._tenants.activate(principal.user_id, invitation.organization_id)

        INVITATIONS.labels(event="accepted").inc()
        logger.info(
            "Invitation accepted id=%s org=%s user=%s role=%s",
            invitation.id,
            invitation.organization_id,
            principal.user_id,
            invitation.role,
        )
        return membership

    async def list_pending(
        self, organization_id: UUID, actor_id: UUID
    ) -> list[Invitation]:
        actor = await self._repos.memberships.get(organization_id, actor_id)
        if not can_manage_members(actor.role if actor else None):
            raise InsufficientRole("Only admins and owners can view invitations")
        return await self._repos.invitations.list_pending(organization_id, self._clock())

    def _rejected(
        self,
        error: TenancyError,
        principal: Principal,
        invitation: Invitation | None = None,
    ) -> TenancyError:
        INVITATIONS.labels(event=f"rejected_{error.code}").inc()
        logger.warning(
            "Invitation acceptance rejected reason=%s user=%s invitation=%s",
            error.code,
            principal.user_id,
            invitation.id if invitation else None,
        )
        return error
