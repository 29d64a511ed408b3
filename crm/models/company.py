from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class Company:
    id: UUID
    organization_id: UUID
    business_name: str
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @staticmethod
    def new(*, organization_id: UUID, business_name: str) -> Company:
        return Company(
            id=uuid4(), organization_id=organization_id, business_name=business_name
        )
