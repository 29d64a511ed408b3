from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class AuditEntry:
    """Append-only record of a membership mutation.

    action is ``role_changed`` or ``member_removed``; metadata carries the
    action-specific detail (old/new role, removed email).
    """

    id: UUID
    organization_id: UUID
    actor_id: UUID
    action: str
    target_user_id: UUID | None
    metadata: dict[str, Any]
    created_at: datetime

    @staticmethod
    def new(
        *,
        organization_id: UUID,
        actor_id: UUID,
        action: str,
        target_user_id: UUID | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AuditEntry:
        return AuditEntry(
            id=uuid4(),
            organization_id=organization_id,
            actor_id=actor_id,
            action=action,
            target_user_id=target_user_id,
            metadata=dict(metadata or {}),
            created_at=datetime.now(UTC),
        )
