"""Invitation lookup and acceptance (the invitee's side).

The lookup is public: the invitee may not have signed in yet.  Both
routes are rate limited per caller because the token in the path is
the only secret.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from crm.api.dependencies import (
    get_invitation_service,
    get_user_repos,
    require_user,
    set_active_org_cookie,
)
from crm.api.ratelimit import require_rate_limit
from crm.models.principal import Principal
from crm.repos.registry import Repos
from crm.services.errors import InvalidToken
from crm.services.invitation_service import InvitationService
from crm.services.rate_limiter import RateLimitConfig

router = APIRouter(prefix="/v1/invitations", tags=["invitations"])

LOOKUP_LIMIT = RateLimitConfig(capacity=20, refill_rate=0.2)
ACCEPT_LIMIT = RateLimitConfig(capacity=10, refill_rate=0.1)


class InvitationPublicOut(BaseModel):
    organization_id: UUID
    organization_name: str | None
    email: str
    role: str
    expires_at: datetime
    expired: bool
    accepted: bool


class AcceptOut(BaseModel):
    organization_id: UUID
    role: str


@router.get(
    "/{token}",
    response_model=InvitationPublicOut,
    dependencies=[Depends(require_rate_limit(LOOKUP_LIMIT, scope="invitation-lookup"))],
)
async def get_invitation(
    token: str,
    service: Annotated[InvitationService, Depends(get_invitation_service)],
) -> InvitationPublicOut:
    view = await service.get_invitation(token)
    if view is None:
        raise InvalidToken()
    return InvitationPublicOut(
        organization_id=view.organization_id,
        organization_name=view.organization_name,
        email=view.email,
        role=view.role,
        expires_at=view.expires_at,
        expired=view.expired,
        accepted=view.accepted,
    )


@router.post(
    "/{token}/accept",
    response_model=AcceptOut,
    dependencies=[Depends(require_rate_limit(ACCEPT_LIMIT, scope="invitation-accept"))],
)
async def accept_invitation(
    token: str,
    response: Response,
    principal: Annotated[Principal, Depends(require_user)],
    _bound: Annotated[Repos, Depends(get_user_repos)],
    service: Annotated[InvitationService, Depends(get_invitation_service)],
) -> AcceptOut:
    """Join the organization and make it the caller's active one."""
    membership = await service.accept_invitation(principal, token)
    set_active_org_cookie(response, membership.organization_id)
    return AcceptOut(organization_id=membership.organization_id, role=membership.role)
