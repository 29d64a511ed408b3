"""PostgreSQL implementation of OrgRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from crm.db.errors import storage_errors
from crm.db.rls import rls_bypass
from crm.db.tables import OrganizationRow
from crm.models.organization import Organization


class PgOrgRepo:
    """Satisfies the OrgRepo Protocol using PostgreSQL.

    Listing goes through RLS (a principal sees organizations it belongs
    to).  Everything else runs with the bypass.  The public invitation
    page names an organization its reader has not joined yet; a creator
    is not a member until the owner row is written.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, org_id: UUID) -> Organization | None:
        stmt = select(OrganizationRow).where(OrganizationRow.id == org_id)
        with storage_errors("load organization"):
            async with rls_bypass(self._session):
                row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_org(row) if row is not None else None

    async def get_by_slug(self, slug: str) -> Organization | None:
        stmt = select(OrganizationRow).where(OrganizationRow.slug == slug)
        with storage_errors("load organization by slug"):
            async with rls_bypass(self._session):
                row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_org(row) if row is not None else None

    async def list_by_ids(self, org_ids: list[UUID]) -> list[Organization]:
        if not org_ids:
            return []
        stmt = select(OrganizationRow).where(OrganizationRow.id.in_(org_ids))
        with storage_errors("list organizations"):
            rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_org(r) for r in rows]

    async def add(self, org: Organization) -> None:
        row = OrganizationRow(
            id=org.id, name=org.name, slug=org.slug, created_at=org.created_at
        )
        with storage_errors("create organization"):
            try:
                async with self._session.begin_nested():
                    async with rls_bypass(self._session):
                        self._session.add(row)
                        await self._session.flush()
            except IntegrityError:
                raise ValueError("slug already exists") from None

    async def delete(self, org_id: UUID) -> bool:
        stmt = delete(OrganizationRow).where(OrganizationRow.id == org_id)
        with storage_errors("delete organization"):
            async with rls_bypass(self._session):
                result = await self._session.execute(stmt)
        return result.rowcount > 0


def _row_to_org(row: OrganizationRow) -> Organization:
    return Organization(
        id=row.id, name=row.name, slug=row.slug, created_at=row.created_at
    )
