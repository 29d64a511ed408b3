from __future__ import annotations

from dataclasses import dataclass
from typing import Literal
from uuid import UUID

from crm.models.principal import Principal

ResolutionSource = Literal["cache", "session", "bootstrap"]


@dataclass(frozen=True, slots=True)
class Resolution:
    organization_id: UUID
    source: ResolutionSource


@dataclass(frozen=True, slots=True)
class TenantContext:
    """Who is asking, and on behalf of which organization.

    Built once per request by the tenant dependency; every
    organization-scoped operation reads its scope from here and nowhere
    else.
    """

    principal: Principal
    organization_id: UUID
    source: ResolutionSource

    @property
    def user_id(self) -> UUID:
        return self.principal.user_id
