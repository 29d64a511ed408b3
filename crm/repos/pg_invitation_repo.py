"""PostgreSQL implementation of InvitationRepo."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from crm.db.errors import storage_errors
from crm.db.rls import rls_bypass
from crm.db.tables import InvitationRow
from crm.models.invitation import Invitation


class PgInvitationRepo:
    """Satisfies the InvitationRepo Protocol using PostgreSQL.

    Token lookup and acceptance happen before the accepting principal is
    a member of the organization, so both bypass RLS.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, invitation: Invitation) -> None:
        row = InvitationRow(
            id=invitation.id,
            organization_id=invitation.organization_id,
            email=invitation.email,
            role=invitation.role,
            token_hash=invitation.token_hash,
            invited_by=invitation.invited_by,
            created_at=invitation.created_at,
            expires_at=invitation.expires_at,
            accepted_at=invitation.accepted_at,
        )
        with storage_errors("create invitation"):
            self._session.add(row)
            await self._session.flush()

    async def get_by_token_hash(self, token_hash: str) -> Invitation | None:
        stmt = select(InvitationRow).where(InvitationRow.token_hash == token_hash)
        with storage_errors("look up invitation"):
            async with rls_bypass(self._session):
                row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_invitation(row) if row is not None else None

    async def mark_accepted(
        self, invitation_id: UUID, accepted_at: datetime
    ) -> Invitation | None:
        """Conditionally set accepted_at. Returns None if another request
        already accepted this invitation (or it no longer exists)."""
        stmt = (
            update(InvitationRow)
            .where(InvitationRow.id == invitation_id)
            .where(InvitationRow.accepted_at.is_(None))
            .values(accepted_at=accepted_at)
            .returning(InvitationRow)
        )
        with storage_errors("mark invitation accepted"):
            async with self._session.begin_nested():
                async with rls_bypass(self._session):
                    row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_invitation(row) if row is not None else None

    async def list_pending(
        self, organization_id: UUID, now: datetime
    ) -> list[Invitation]:
        stmt = (
            select(InvitationRow)
            .where(
                InvitationRow.organization_id == organization_id,
                InvitationRow.accepted_at.is_(None),
                InvitationRow.expires_at >= now,
            )
            .order_by(InvitationRow.created_at.desc())
        )
        with storage_errors("list pending invitations"):
            rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_invitation(r) for r in rows]

    async def remove_organization(self, organization_id: UUID) -> int:
        stmt = delete(InvitationRow).where(
            InvitationRow.organization_id == organization_id
        )
        with storage_errors("remove organization invitations"):
            async with rls_bypass(self._session):
                result = await self._session.execute(stmt)
        return result.rowcount


def _row_to_invitation(row: InvitationRow) -> Invitation:
    return Invitation(
        id=row.id,
        organization_id=row.organization_id,
        email=row.email,
        role=row.role,
        token_hash=row.token_hash,
        invited_by=row.invited_by,
        created_at=row.created_at,
        expires_at=row.expires_at,
        accepted_at=row.accepted_at,
    )
