from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated identity extracted from a validated JWT.

    Carried through the request via FastAPI's dependency system.

        user_id: the token subject, always a UUID
        email:   the ``email`` claim, used to match invitations
        claims:  the full verified claim set

    The claims bag may contain an ``active_organization_id`` hint minted
    by the identity provider.  It is never trusted: the active
    organization comes from the TenantResolver only.
    """

    user_id: UUID
    email: str | None = None
    claims: dict = field(default_factory=dict, compare=False, hash=False)
