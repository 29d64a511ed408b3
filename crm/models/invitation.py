from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID, uuid4

INVITATION_TTL = timedelta(days=7)


def hash_token(token: str) -> str:
    """SHA-256 hex digest of a raw invitation token.

    Only the digest is persisted; the raw token leaves the service once,
    in the creation response.
    """
    return hashlib.sha256(token.encode()).hexdigest()


@dataclass(frozen=True, slots=True)
class Invitation:
    id: UUID
    organization_id: UUID
    email: str  # normalized
    role: str  # admin|editor|viewer
    token_hash: str
    invited_by: UUID
    created_at: datetime
    expires_at: datetime
    accepted_at: datetime | None = None

    @staticmethod
    def new(
        *,
        organization_id: UUID,
        email: str,
        role: str,
        token_hash: str,
        invited_by: UUID,
        now: datetime,
    ) -> Invitation:
        return Invitation(
            id=uuid4(),
            organization_id=organization_id,
            email=email,
            role=role,
            token_hash=token_hash,
            invited_by=invited_by,
            created_at=now,
            expires_at=now + INVITATION_TTL,
        )

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now

    @property
    def is_accepted(self) -> bool:
        return self.accepted_at is not None
