from __future__ import annotations

from typing import Protocol
from uuid import UUID

from crm.models.company import Company


class CompanyRepo(Protocol):
    async def add(self, company: Company) -> None: ...
    async def list_by_org(self, organization_id: UUID) -> list[Company]: ...
    async def remove_organization(self, organization_id: UUID) -> int: ...


class InMemoryCompanyRepo:
    def __init__(self) -> None:
        self._store: dict[UUID, Company] = {}

    async def add(self, company: Company) -> None:
        self._store[company.id] = company

    async def list_by_org(self, organization_id: UUID) -> list[Company]:
        rows = [c for c in self._store.values() if c.organization_id == organization_id]
        return sorted(rows, key=lambda c: c.created_at)

    async def remove_organization(self, organization_id: UUID) -> int:
        ids = [i for i, c in self._store.items() if c.organization_id == organization_id]
        for company_id in ids:
            del self._store[company_id]
        return len(ids)
