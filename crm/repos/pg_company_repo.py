"""PostgreSQL implementation of CompanyRepo.

No bypass anywhere: every statement is filtered by the companies policy
(organization_id = get_active_organization_id()) on top of the explicit
organization filter.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.db.errors import storage_errors
from crm.db.tables import CompanyRow
from crm.models.company import Company


class PgCompanyRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, company: Company) -> None:
        row = CompanyRow(
            id=company.id,
            organization_id=company.organization_id,
            business_name=company.business_name,
            created_at=company.created_at,
        )
        with storage_errors("create company"):
            self._session.add(row)
            await self._session.flush()

    async def list_by_org(self, organization_id: UUID) -> list[Company]:
        stmt = (
            select(CompanyRow)
            .where(CompanyRow.organization_id == organization_id)
            .order_by(CompanyRow.created_at)
        )
        with storage_errors("list companies"):
            rows = (await self._session.execute(stmt)).scalars().all()
        return [
            Company(
                id=r.id,
                organization_id=r.organization_id,
                business_name=r.business_name,
                created_at=r.created_at,
            )
            for r in rows
        ]

    async def remove_organization(self, organization_id: UUID) -> int:
        stmt = delete(CompanyRow).where(CompanyRow.organization_id == organization_id)
        with storage_errors("remove organization companies"):
            result = await self._session.execute(stmt)
        return result.rowcount
