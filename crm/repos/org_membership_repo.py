from __future__ import annotations

import asyncio
import itertools
import weakref
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import replace
from typing import Protocol
from uuid import UUID

from crm.models.organization import Membership


class MembershipRepo(Protocol):
    async def get(self, org_id: UUID, user_id: UUID) -> Membership | None: ...
    async def add(self, membership: Membership) -> None: ...
    async def remove(self, org_id: UUID, user_id: UUID) -> bool: ...
    async def update_role(
        self, org_id: UUID, user_id: UUID, new_role: str
    ) -> Membership | None: ...
    async def list_by_org(self, org_id: UUID) -> list[Membership]: ...
    async def list_by_user(self, user_id: UUID) -> list[Membership]: ...
    async def remove_organization(self, org_id: UUID) -> int: ...

    def locked(
        self, org_id: UUID
    ) -> AbstractAsyncContextManager[list[Membership]]:
        """Serialize membership mutations for one organization.

        Yields the organization's memberships as read while holding the
        lock.  Decisions that depend on the owner count must be made on
        this snapshot, inside the block.
        """
        ...


class InMemoryOrgMembershipRepo:
    """Dict-backed registry; lists come back oldest membership first."""

    def __init__(self) -> None:
        self._store: dict[tuple[UUID, UUID], Membership] = {}
        self._order: dict[tuple[UUID, UUID], int] = {}
        self._seq = itertools.count()
        # asyncio.Lock binds to the loop that first waits on it.
        self._locks: weakref.WeakKeyDictionary[
            asyncio.AbstractEventLoop, dict[UUID, asyncio.Lock]
        ] = weakref.WeakKeyDictionary()

    def _sorted(self, memberships: list[Membership]) -> list[Membership]:
        return sorted(
            memberships,
            key=lambda m: (m.created_at, self._order[(m.organization_id, m.user_id)]),
        )

    async def get(self, org_id: UUID, user_id: UUID) -> Membership | None:
        return self._store.get((org_id, user_id))

    async def add(self, membership: Membership) -> None:
        key = (membership.organization_id, membership.user_id)
        if key in self._store:
            raise ValueError("membership already exists")
        self._store[key] = membership
        self._order[key] = next(self._seq)

    async def remove(self, org_id: UUID, user_id: UUID) -> bool:
        self._order.pop((org_id, user_id), None)
        return self._store.pop((org_id, user_id), None) is not None

    async def update_role(
        self, org_id: UUID, user_id: UUID, new_role: str
    ) -> Membership | None:
        key = (org_id, user_id)
        existing = self._store.get(key)
        if existing is None:
            return None
        updated = replace(existing, role=new_role)
        self._store[key] = updated
        return updated

    async def list_by_org(self, org_id: UUID) -> list[Membership]:
        return self._sorted(
            [m for m in self._store.values() if m.organization_id == org_id]
        )

    async def list_by_user(self, user_id: UUID) -> list[Membership]:
        return self._sorted([m for m in self._store.values() if m.user_id == user_id])

    async def remove_organization(self, org_id: UUID) -> int:
        keys = [k for k in self._store if k[0] == org_id]
        for key in keys:
            del self._store[key]
            del self._order[key]
        for locks in self._locks.values():
            locks.pop(org_id, None)
        return len(keys)

    @asynccontextmanager
    async def locked(self, org_id: UUID) -> AsyncIterator[list[Membership]]:
        loop = asyncio.get_running_loop()
        locks = self._locks.setdefault(loop, {})
        lock = locks.setdefault(org_id, asyncio.Lock())
        async with lock:
            yield await self.list_by_org(org_id)
