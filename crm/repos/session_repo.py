from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from crm.models.session import ActiveSession


class SessionRepo(Protocol):
    """Authoritative active-organization store, keyed by user id.

    Implementations must not cache rows between calls.
    """

    async def get(self, user_id: UUID) -> ActiveSession | None: ...
    async def upsert(
        self, user_id: UUID, organization_id: UUID, switched_at: datetime
    ) -> ActiveSession: ...
    async def clear_if_active(self, user_id: UUID, organization_id: UUID) -> bool: ...
    async def clear_organization(self, organization_id: UUID) -> int: ...


class InMemorySessionRepo:
    def __init__(self) -> None:
        self._store: dict[UUID, ActiveSession] = {}

    async def get(self, user_id: UUID) -> ActiveSession | None:
        return self._store.get(user_id)

    async def upsert(
        self, user_id: UUID, organization_id: UUID, switched_at: datetime
    ) -> ActiveSession:
        session = ActiveSession(
            user_id=user_id,
            organization_id=organization_id,
            last_switched_at=switched_at,
        )
        self._store[user_id] = session
        return session

    async def clear_if_active(self, user_id: UUID, organization_id: UUID) -> bool:
        current = self._store.get(user_id)
        if current is None or current.organization_id != organization_id:
            return False
        del self._store[user_id]
        return True

    async def clear_organization(self, organization_id: UUID) -> int:
        users = [u for u, s in self._store.items() if s.organization_id == organization_id]
        for user_id in users:
            del self._store[user_id]
        return len(users)
