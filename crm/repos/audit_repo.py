from __future__ import annotations

from typing import Protocol
from uuid import UUID

from crm.models.audit import AuditEntry


class AuditRepo(Protocol):
    async def append(self, entry: AuditEntry) -> None: ...
    async def list_by_org(self, organization_id: UUID) -> list[AuditEntry]: ...


class InMemoryAuditRepo:
    def __init__(self) -> None:
        self._entries: list[AuditEntry] = []

    async def append(self, entry: AuditEntry) -> None:
        self._entries.append(entry)

    async def list_by_org(self, organization_id: UUID) -> list[AuditEntry]:
        return [e for e in self._entries if e.organization_id == organization_id]
