"""Role changes and member removal.

Both mutations follow the same shape:

  1. take the organization's membership lock (``MembershipRepo.locked``)
  2. on the snapshot read under that lock, check, in order:
       self-modification, target exists, last owner, actor authority
  3. write, then append an audit entry (best effort)

Checking the owner count and the actor's role on the locked snapshot is
what keeps two concurrent requests from both passing the last-owner
check: the second one waits for the lock and sees the first one's
result.  Two owners demoting each other at the same time therefore end
with exactly one success and one LastOwnerViolation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from crm.core.metrics import MEMBERSHIP_MUTATIONS
from crm.models.organization import ROLES, Membership
from crm.repos.registry import Repos
from crm.services.audit import AuditLogger
from crm.services.errors import (
    InsufficientRole,
    LastOwnerViolation,
    NotAMember,
    SelfModification,
    TenancyError,
)
from crm.services.policy import can_manage_members

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RoleChangeResult:
    """Structured outcome of execute_role_change; never an exception."""

    success: bool
    error: str | None = None
    old_role: str | None = None
    new_role: str | None = None


@dataclass(frozen=True, slots=True)
class MemberView:
    user_id: UUID
    email: str | None
    name: str | None
    role: str
    joined_at: datetime


def _owner_count(members: list[Membership]) -> int:
    return sum(1 for m in members if m.role == "owner")


class MembershipService:
    def __init__(self, repos: Repos, audit: AuditLogger | None = None) -> None:
        self._repos = repos
        self._audit = audit or AuditLogger(repos.audit)

    async def execute_role_change(
        self,
        organization_id: UUID,
        actor_id: UUID,
        target_id: UUID,
        new_role: str,
    ) -> RoleChangeResult:
        if new_role not in ROLES:
            return RoleChangeResult(success=False, error=f"Invalid role: {new_role}")
        try:
            return await self.change_role(
                organization_id, actor_id, target_id, new_role
            )
        except (SelfModification, NotAMember, LastOwnerViolation, InsufficientRole) as e:
            return RoleChangeResult(success=False, error=e.message)

    async def change_role(
        self,
        organization_id: UUID,
        actor_id: UUID,
        target_id: UUID,
        new_role: str,
    ) -> RoleChangeResult:
        """Like execute_role_change, but business-rule failures raise."""
        if new_role not in ROLES:
            raise ValueError(f"Invalid role: {new_role}")
        before, after = await self._change_role(
            organization_id, actor_id, target_id, new_role
        )
        return RoleChangeResult(success=True, old_role=before.role, new_role=after.role)

    async def _change_role(
        self,
        organization_id: UUID,
        actor_id: UUID,
        target_id: UUID,
        new_role: str,
    ) -> tuple[Membership, Membership]:
        try:
            async with self._repos.memberships.locked(organization_id) as members:
                if actor_id == target_id:
                    raise SelfModification("You cannot change your own role")

                by_user = {m.user_id: m for m in members}
                target = by_user.get(target_id)
                if target is None:
                    raise NotAMember("User is not a member of this organization")

                if (
                    target.role == "owner"
                    and new_role != "owner"
                    and _owner_count(members) <= 1
                ):
                    raise LastOwnerViolation(
                        "Cannot demote the last owner of the organization"
                    )

                actor = by_user.get(actor_id)
                actor_role = actor.role if actor else None
                if not can_manage_members(actor_role):
                    raise InsufficientRole(
                        "Only admins and owners can change member roles"
                    )
                if new_role == "owner" and actor_role != "owner":
                    raise InsufficientRole("Only owners can promote members to owner")
                if target.role == "owner" and actor_role != "owner":
                    raise InsufficientRole("Only owners can change another owner's role")

                if target.role == new_role:
                    MEMBERSHIP_MUTATIONS.labels(
                        action="role_changed", result="noop"
                    ).inc()
                    return target, target

                updated = await self._repos.memberships.update_role(
                    organization_id, target_id, new_role
                )
                if updated is None:
                    raise NotAMember("User is not a member of this organization")
        except TenancyError as e:
            self._denied("role_changed", e, organization_id, actor_id, target_id)
            raise

        MEMBERSHIP_MUTATIONS.labels(action="role_changed", result="ok").inc()
        logger.info(
            "Role changed org=%s actor=%s target=%s old=%s new=%s",
            organization_id,
            actor_id,
            target_id,
            target.role,
            new_role,
        )
        await self._audit.record(
            organization_id=organization_id,
            actor_id=actor_id,
            action="role_changed",
            target_user_id=target_id,
            metadata={"old_role": target.role, "new_role": new_role},
        )
        return target, updated

    async def remove_member(
        self, organization_id: UUID, actor_id: UUID, target_id: UUID
    ) -> Membership:
        try:
            async with self._repos.memberships.locked(organization_id) as members:
                if actor_id == target_id:
                    raise SelfModification(
                        "You cannot remove yourself from the organization"
                    )

                by_user = {m.user_id: m for m in members}
                target = by_user.get(target_id)
                if target is None:
                    raise NotAMember("User is not a member of this organization")

                if target.role == "owner" and _owner_count(members) <= 1:
                    raise LastOwnerViolation(
                        "Cannot remove the last owner of the organization"
                    )

                actor = by_user.get(actor_id)
                actor_role = actor.role if actor else None
                if not can_manage_members(actor_role):
                    raise InsufficientRole("Only admins and owners can remove members")
                if target.role == "owner" and actor_role != "owner":
                    raise InsufficientRole("Only owners can remove other owners")

                await self._repos.memberships.remove(organization_id, target_id)
                await self._repos.sessions.clear_if_active(target_id, organization_id)
        except TenancyError as e:
            self._denied("member_removed", e, organization_id, actor_id, target_id)
            raise

        MEMBERSHIP_MUTATIONS.labels(action="member_removed", result="ok").inc()
        logger.info(
            "Member removed org=%s actor=%s target=%s role=%s",
            organization_id,
            actor_id,
            target_id,
            target.role,
        )
        removed_user = await self._repos.users.get_by_id(target_id)
        await self._audit.record(
            organization_id=organization_id,
            actor_id=actor_id,
            action="member_removed",
            target_user_id=target_id,
            metadata={
                "removed_role": target.role,
                "removed_email": removed_user.email if removed_user else None,
            },
        )
        return target

    async def list_members(self, organization_id: UUID) -> list[MemberView]:
        members = await self._repos.memberships.list_by_org(organization_id)
        users = {
            u.id: u
            for u in await self._repos.users.list_by_ids([m.user_id for m in members])
        }
        views = []
        for m in members:
            user = users.get(m.user_id)
            views.append(
                MemberView(
                    user_id=m.user_id,
                    email=user.email if user else None,
                    name=(user.name or None) if user else None,
                    role=m.role,
                    joined_at=m.created_at,
                )
            )
        return views

    def _denied(
        self,
        action: str,
        error: TenancyError,
        organization_id: UUID,
        actor_id: UUID,
        target_id: UUID,
    ) -> None:
        MEMBERSHIP_MUTATIONS.labels(action=action, result=error.code).inc()
        logger.warning(
            "Membership mutation denied action=%s reason=%s org=%s actor=%s target=%s",
            action,
            error.code,
            organization_id,
            actor_id,
            target_id,
        )
