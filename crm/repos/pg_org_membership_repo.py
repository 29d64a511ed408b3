"""PostgreSQL implementation of MembershipRepo."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from crm.db.errors import storage_errors
from crm.db.rls import rls_bypass
from crm.db.tables import OrganizationMemberRow
from crm.models.organization import Membership

_ORDER = (OrganizationMemberRow.created_at, OrganizationMemberRow.user_id)


class PgOrgMembershipRepo:
    """Satisfies the MembershipRepo Protocol using PostgreSQL.

    Mutations run with the RLS bypass; the membership service has already
    authorized them against rows locked by ``locked()``.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, org_id: UUID, user_id: UUID) -> Membership | None:
        stmt = select(OrganizationMemberRow).where(
            OrganizationMemberRow.organization_id == org_id,
            OrganizationMemberRow.user_id == user_id,
        )
        with storage_errors("load membership"):
            row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_membership(row) if row is not None else None

    async def add(self, membership: Membership) -> None:
        row = OrganizationMemberRow(
            organization_id=membership.organization_id,
            user_id=membership.user_id,
            role=membership.role,
            created_at=membership.created_at,
        )
        with storage_errors("add membership"):
            try:
                async with self._session.begin_nested():
                    async with rls_bypass(self._session):
                        self._session.add(row)
                        await self._session.flush()
            except IntegrityError:
                raise ValueError("membership already exists") from None

    async def remove(self, org_id: UUID, user_id: UUID) -> bool:
        stmt = delete(OrganizationMemberRow).where(
            OrganizationMemberRow.organization_id == org_id,
            OrganizationMemberRow.user_id == user_id,
        )
        with storage_errors("remove membership"):
            async with rls_bypass(self._session):
                result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def update_role(
        self, org_id: UUID, user_id: UUID, new_role: str
    ) -> Membership | None:
        stmt = (
            update(OrganizationMemberRow)
            .where(
                OrganizationMemberRow.organization_id == org_id,
                OrganizationMemberRow.user_id == user_id,
            )
            .values(role=new_role)
            .returning(OrganizationMemberRow)
        )
        with storage_errors("update membership role"):
            async with rls_bypass(self._session):
                row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_membership(row) if row is not None else None

    async def list_by_org(self, org_id: UUID) -> list[Membership]:
        stmt = (
            select(OrganizationMemberRow)
            .where(OrganizationMemberRow.organization_id == org_id)
            .order_by(*_ORDER)
        )
        with storage_errors("list organization members"):
            rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_membership(r) for r in rows]

    async def list_by_user(self, user_id: UUID) -> list[Membership]:
        stmt = (
            select(OrganizationMemberRow)
            .where(OrganizationMemberRow.user_id == user_id)
            .order_by(
                OrganizationMemberRow.created_at, OrganizationMemberRow.organization_id
            )
        )
        with storage_errors("list user memberships"):
            rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_membership(r) for r in rows]

    async def remove_organization(self, org_id: UUID) -> int:
        stmt = delete(OrganizationMemberRow).where(
            OrganizationMemberRow.organization_id == org_id
        )
        with storage_errors("remove organization members"):
            async with rls_bypass(self._session):
                result = await self._session.execute(stmt)
        return result.rowcount

    @asynccontextmanager
    async def locked(self, org_id: UUID) -> AsyncIterator[list[Membership]]:
        """SELECT ... FOR UPDATE every membership row of the organization.

        The locks are held until the request transaction ends, so a
        concurrent role change or removal in the same organization waits
        here and then sees the committed result.
        """
        stmt = (
            select(OrganizationMemberRow)
            .where(OrganizationMemberRow.organization_id == org_id)
            .order_by(*_ORDER)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        with storage_errors("lock organization members"):
            async with rls_bypass(self._session):
                rows = (await self._session.execute(stmt)).scalars().all()
        yield [_row_to_membership(r) for r in rows]


def _row_to_membership(row: OrganizationMemberRow) -> Membership:
    return Membership(
        organization_id=row.organization_id,
        user_id=row.user_id,
        role=row.role,
        created_at=row.created_at,
    )
