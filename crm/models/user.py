from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass(frozen=True, slots=True)
class User:
    """Directory entry mirroring an identity-provider user.

    Populated from verified principals so invitation checks can map an
    email address to an existing member.
    """

    id: UUID
    email: str
    name: str = ""
