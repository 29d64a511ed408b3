from __future__ import annotations

from typing import Protocol
from uuid import UUID

from crm.models.organization import Organization


class OrgRepo(Protocol):
    async def get_by_id(self, org_id: UUID) -> Organization | None: ...
    async def get_by_slug(self, slug: str) -> Organization | None: ...
    async def list_by_ids(self, org_ids: list[UUID]) -> list[Organization]: ...
    async def add(self, org: Organization) -> None: ...
    async def delete(self, org_id: UUID) -> bool: ...


class InMemoryOrgRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Organization] = {}
        self._by_slug: dict[str, Organization] = {}

    async def get_by_id(self, org_id: UUID) -> Organization | None:
        return self._by_id.get(org_id)

    async def get_by_slug(self, slug: str) -> Organization | None:
        return self._by_slug.get(slug)

    async def list_by_ids(self, org_ids: list[UUID]) -> list[Organization]:
        return [self._by_id[i] for i in org_ids if i in self._by_id]

    async def add(self, org: Organization) -> None:
        if org.slug in self._by_slug:
            raise ValueError("slug already exists")
        self._by_id[org.id] = org
        self._by_slug[org.slug] = org

    async def delete(self, org_id: UUID) -> bool:
        org = self._by_id.pop(org_id, None)
        if org is None:
            return False
        self._by_slug.pop(org.slug, None)
        return True
