"""PostgreSQL row-level security context.

The RLS policies created by the migrations read two transaction-local
settings:

    app.current_user_id  the authenticated principal; feeds
                         app_current_user_id() and, through it,
                         get_active_organization_id()
    app.rls_bypass       "on" while the service performs its own
                         cross-tenant work (invitation lookup by token,
                         membership mutations, audit inserts,
                         organization creation)

Both are set with ``set_config(..., true)`` so they vanish at COMMIT or
ROLLBACK and can never leak to the next request on a pooled connection.

Usage::

    await set_current_user(session, principal.user_id)

    async with rls_bypass(session):
        invitation = await invitations.get_by_token_hash(token_hash)
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

_SET = text("SELECT set_config(:name, :value, true)")
_GET = text("SELECT current_setting(:name, true)")


async def _set_config(session: AsyncSession, name: str, value: str) -> None:
    await session.execute(_SET, {"name": name, "value": value})


async def _get_config(session: AsyncSession, name: str) -> str | None:
    value = (await session.execute(_GET, {"name": name})).scalar_one_or_none()
    return value or None


async def set_current_user(session: AsyncSession, user_id: UUID) -> None:
    """Bind the request's principal for the rest of the transaction."""
    await _set_config(session, "app.current_user_id", str(user_id))


@asynccontextmanager
async def rls_bypass(session: AsyncSession) -> AsyncIterator[None]:
    """Temporarily lift tenant policies; restores the previous state.

    Nested use is safe: an inner block leaves bypass on if an outer
    block had already enabled it.
    """
    previous = await _get_config(session, "app.rls_bypass")
    await _set_config(session, "app.rls_bypass", "on")
    aborted = False
    try:
        yield
    except SQLAlchemyError:
        # Rolling back the enclosing savepoint or transaction reverts it.
        aborted = True
        raise
    finally:
        if not aborted:
            await _set_config(session, "app.rls_bypass", previous or "off")
