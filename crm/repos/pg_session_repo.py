"""PostgreSQL implementation of SessionRepo.

user_sessions is readable and writable only by its owner under RLS.
Clearing another user's row (member removal, organization deletion)
runs with the bypass.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from crm.db.errors import storage_errors
from crm.db.rls import rls_bypass
from crm.db.tables import UserSessionRow
from crm.models.session import ActiveSession


class PgSessionRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: UUID) -> ActiveSession | None:
        stmt = select(UserSessionRow).where(UserSessionRow.user_id == user_id)
        with storage_errors("load active session"):
            row = (
                await self._session.execute(
                    stmt.execution_options(populate_existing=True)
                )
            ).scalar_one_or_none()
        if row is None:
            return None
        return ActiveSession(
            user_id=row.user_id,
            organization_id=row.active_organization_id,
            last_switched_at=row.last_switched_at,
        )

    async def upsert(
        self, user_id: UUID, organization_id: UUID, switched_at: datetime
    ) -> ActiveSession:
        stmt = insert(UserSessionRow).values(
            user_id=user_id,
            active_organization_id=organization_id,
            last_switched_at=switched_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[UserSessionRow.user_id],
            set_={
                "active_organization_id": stmt.excluded.active_organization_id,
                "last_switched_at": stmt.excluded.last_switched_at,
            },
        )
        with storage_errors("save active session"):
            await self._session.execute(stmt)
        return ActiveSession(
            user_id=user_id,
            organization_id=organization_id,
            last_switched_at=switched_at,
        )

    async def clear_if_active(self, user_id: UUID, organization_id: UUID) -> bool:
        stmt = delete(UserSessionRow).where(
            UserSessionRow.user_id == user_id,
            UserSessionRow.active_organization_id == organization_id,
        )
        with storage_errors("clear active session"):
            async with rls_bypass(self._session):
                result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def clear_organization(self, organization_id: UUID) -> int:
        stmt = delete(UserSessionRow).where(
            UserSessionRow.active_organization_id == organization_id
        )
        with storage_errors("clear organization sessions"):
            async with rls_bypass(self._session):
                result = await self._session.execute(stmt)
        return result.rowcount
