"""PostgreSQL implementation of AuditRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.db.errors import storage_errors
from crm.db.rls import rls_bypass
from crm.db.tables import AuditLogRow
from crm.models.audit import AuditEntry


class PgAuditRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(self, entry: AuditEntry) -> None:
        """Insert inside a SAVEPOINT.

        A failed insert rolls back to the savepoint only, leaving the
        surrounding mutation's transaction usable.
        """
        row = AuditLogRow(
            id=entry.id,
            organization_id=entry.organization_id,
            actor_id=entry.actor_id,
            action=entry.action,
            target_user_id=entry.target_user_id,
            details=entry.metadata,
            created_at=entry.created_at,
        )
        with storage_errors("write audit entry"):
            async with self._session.begin_nested():
                async with rls_bypass(self._session):
                    self._session.add(row)
                    await self._session.flush()

    async def list_by_org(self, organization_id: UUID) -> list[AuditEntry]:
        stmt = (
            select(AuditLogRow)
            .where(AuditLogRow.organization_id == organization_id)
            .order_by(AuditLogRow.created_at)
        )
        with storage_errors("list audit entries"):
            rows = (await self._session.execute(stmt)).scalars().all()
        return [
            AuditEntry(
                id=r.id,
                organization_id=r.organization_id,
                actor_id=r.actor_id,
                action=r.action,
                target_user_id=r.target_user_id,
                metadata=dict(r.details or {}),
                created_at=r.created_at,
            )
            for r in rows
        ]
