from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Protocol
from uuid import UUID

from crm.models.invitation import Invitation


class InvitationRepo(Protocol):
    async def add(self, invitation: Invitation) -> None: ...
    async def get_by_token_hash(self, token_hash: str) -> Invitation | None: ...
    async def mark_accepted(
        self, invitation_id: UUID, accepted_at: datetime
    ) -> Invitation | None: ...
    async def list_pending(
        self, organization_id: UUID, now: datetime
    ) -> list[Invitation]: ...
    async def remove_organization(self, organization_id: UUID) -> int: ...


class InMemoryInvitationRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Invitation] = {}
        self._by_hash: dict[str, UUID] = {}

    async def add(self, invitation: Invitation) -> None:
        if invitation.token_hash in self._by_hash:
            raise ValueError("token hash already exists")
        self._by_id[invitation.id] = invitation
        self._by_hash[invitation.token_hash] = invitation.id

    async def get_by_token_hash(self, token_hash: str) -> Invitation | None:
        invitation_id = self._by_hash.get(token_hash)
        if invitation_id is None:
            return None
        return self._by_id.get(invitation_id)

    async def mark_accepted(
        self, invitation_id: UUID, accepted_at: datetime
    ) -> Invitation | None:
        """Set accepted_at once. Returns None if missing or already accepted."""
        existing = self._by_id.get(invitation_id)
        if existing is None or existing.accepted_at is not None:
            return None
        updated = replace(existing, accepted_at=accepted_at)
        self._by_id[invitation_id] = updated
        return updated

    async def list_pending(
        self, organization_id: UUID, now: datetime
    ) -> list[Invitation]:
        pending = [
            i
            for i in self._by_id.values()
            if i.organization_id == organization_id
            and i.accepted_at is None
            and not i.is_expired(now)
        ]
        return sorted(pending, key=lambda i: i.created_at, reverse=True)

    async def remove_organization(self, organization_id: UUID) -> int:
        doomed = [i for i in self._by_id.values() if i.organization_id == organization_id]
        for invitation in doomed:
            del self._by_id[invitation.id]
            del self._by_hash[invitation.token_hash]
        return len(doomed)
