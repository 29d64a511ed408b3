from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Literal
from uuid import UUID, uuid4

Role = Literal["viewer", "editor", "admin", "owner"]

ROLES: tuple[Role, ...] = ("viewer", "editor", "admin", "owner")

# Total order used for "at least" checks.
ROLE_RANK: dict[str, int] = {role: rank for rank, role in enumerate(ROLES)}

MANAGER_ROLES = frozenset({"admin", "owner"})


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class Organization:
    id: UUID
    name: str
    slug: str
    created_at: datetime = field(default_factory=_now)

    @staticmethod
    def new(*, name: str, slug: str) -> Organization:
        return Organization(id=uuid4(), name=name, slug=slug)


@dataclass(frozen=True, slots=True)
class Membership:
    organization_id: UUID
    user_id: UUID
    role: str  # viewer|editor|admin|owner
    created_at: datetime = field(default_factory=_now)


@dataclass(frozen=True, slots=True)
class OrganizationSummary:
    """An organization as seen by one of its members."""

    organization: Organization
    role: str
    joined_at: datetime
