"""Authorization predicates shared by services and the in-memory path.

In PostgreSQL the same rule is enforced by the RLS policies from the
migrations (organization_id = get_active_organization_id()).  In memory
``is_row_visible`` is the whole enforcement, so every tenant-scoped read
must pass through it.
"""

from __future__ import annotations

from uuid import UUID

from crm.models.organization import MANAGER_ROLES, ROLE_RANK
from crm.models.tenant import TenantContext


def role_at_least(role: str | None, minimum: str) -> bool:
    if role is None or role not in ROLE_RANK:
        return False
    return ROLE_RANK[role] >= ROLE_RANK[minimum]


def can_manage_members(role: str | None) -> bool:
    return role in MANAGER_ROLES


def is_row_visible(tenant: TenantContext, row_organization_id: UUID) -> bool:
    return row_organization_id == tenant.organization_id
