from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from crm.core.metrics import AUDIT_WRITE_FAILURES
from crm.models.audit import AuditEntry
from crm.repos.audit_repo import AuditRepo

logger = logging.getLogger(__name__)


class AuditLogger:
    """Best-effort audit trail for membership mutations.

    A failed write is logged and counted, never raised: the mutation it
    describes has already happened.
    """

    def __init__(self, repo: AuditRepo) -> None:
        self._repo = repo

    async def record(
        self,
        *,
        organization_id: UUID,
        actor_id: UUID,
        action: str,
        target_user_id: UUID | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        entry = AuditEntry.new(
            organization_id=organization_id,
            actor_id=actor_id,
            action=action,
            target_user_id=target_user_id,
            metadata=metadata,
        )
        try:
            await self._repo.append(entry)
        except Exception:
            AUDIT_WRITE_FAILURES.inc()
            logger.exception(
                "Audit write failed action=%s org=%s actor=%s target=%s",
                action,
                organization_id,
                actor_id,
                target_user_id,
            )
            return False
        return True
