from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class ActiveSession:
    """The authoritative record of a principal's active organization.

    At most one per user; last writer wins.
    """

    user_id: UUID
    organization_id: UUID
    last_switched_at: datetime
