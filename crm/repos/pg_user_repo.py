"""PostgreSQL implementation of UserRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from crm.db.errors import storage_errors
from crm.db.tables import UserRow
from crm.models.user import User, normalize_email


class PgUserRepo:
    """Satisfies the UserRepo Protocol using PostgreSQL via SQLAlchemy.

    The users table carries no row-level security; it is a directory.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, user_id: UUID) -> User | None:
        stmt = select(UserRow).where(UserRow.id == user_id)
        with storage_errors("load user"):
            row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_user(row) if row is not None else None

    async def get_by_email(self, email: str) -> User | None:
        stmt = select(UserRow).where(UserRow.email == normalize_email(email))
        with storage_errors("look up user by email"):
            row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_user(row) if row is not None else None

    async def list_by_ids(self, user_ids: list[UUID]) -> list[User]:
        if not user_ids:
            return []
        stmt = select(UserRow).where(UserRow.id.in_(user_ids))
        with storage_errors("list users"):
            rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_user(r) for r in rows]

    async def upsert(self, user: User) -> User:
        stmt = insert(UserRow).values(id=user.id, email=user.email, name=user.name)
        update_values: dict = {"email": stmt.excluded.email}
        if user.name:
            update_values["name"] = stmt.excluded.name
        stmt = stmt.on_conflict_do_update(index_elements=[UserRow.id], set_=update_values)
        with storage_errors("upsert user"):
            await self._session.execute(stmt)
        return user


def _row_to_user(row: UserRow) -> User:
    return User(id=row.id, email=row.email, name=row.name or "")
