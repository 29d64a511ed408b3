"""Team management in the active organization: members and invitations.

Every route here is scoped by the tenant dependency; the organization is
never taken from the URL or the body.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from crm.api.dependencies import (
    get_invitation_service,
    get_membership_service,
    require_org_role,
    require_tenant,
)
from crm.models.invitation import Invitation
from crm.models.tenant import TenantContext
from crm.services.invitation_service import InvitationService
from crm.services.membership_service import MembershipService

router = APIRouter(prefix="/v1/team", tags=["team"])

_require_manager = require_org_role({"owner", "admin"})


# --- Pydantic schemas ---


class MemberOut(BaseModel):
    user_id: UUID
    email: str | None
    name: str | None
    role: str
    joined_at: datetime


class RoleChangeIn(BaseModel):
    role: Literal["viewer", "editor", "admin", "owner"]


class RoleChangeOut(BaseModel):
    user_id: UUID
    old_role: str
    new_role: str


class InvitationCreateIn(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    role: Literal["admin", "editor", "viewer"] = "viewer"


class InvitationOut(BaseModel):
    id: UUID
    email: str
    role: str
    invited_by: UUID
    created_at: datetime
    expires_at: datetime


class IssuedInvitationOut(InvitationOut):
    token: str
    accept_url: str


def _invitation_out(invitation: Invitation) -> InvitationOut:
    return InvitationOut(
        id=invitation.id,
        email=invitation.email,
        role=invitation.role,
        invited_by=invitation.invited_by,
        created_at=invitation.created_at,
        expires_at=invitation.expires_at,
    )


# --- Members ---


@router.get("/members", response_model=list[MemberOut])
async def list_members(
    tenant: Annotated[TenantContext, Depends(_require_manager)],
    service: Annotated[MembershipService, Depends(get_membership_service)],
) -> list[MemberOut]:
    members = await service.list_members(tenant.organization_id)
    return [
        MemberOut(
            user_id=m.user_id,
            email=m.email,
            name=m.name,
            role=m.role,
            joined_at=m.joined_at,
        )
        for m in members
    ]


@router.patch("/members/{user_id}", response_model=RoleChangeOut)
async def change_member_role(
    user_id: UUID,
    body: RoleChangeIn,
    tenant: Annotated[TenantContext, Depends(require_tenant)],
    service: Annotated[MembershipService, Depends(get_membership_service)],
) -> RoleChangeOut:
    """Change a member's role. Authorization happens under the membership lock."""
    result = await service.change_role(
        tenant.organization_id, tenant.user_id, user_id, body.role
    )
    return RoleChangeOut(
        user_id=user_id, old_role=result.old_role, new_role=result.new_role
    )


@router.delete("/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(
    user_id: UUID,
    tenant: Annotated[TenantContext, Depends(require_tenant)],
    service: Annotated[MembershipService, Depends(get_membership_service)],
) -> None:
    await service.remove_member(tenant.organization_id, tenant.user_id, user_id)


# --- Invitations ---


@router.get("/invitations", response_model=list[InvitationOut])
async def list_pending_invitations(
    tenant: Annotated[TenantContext, Depends(require_tenant)],
    service: Annotated[InvitationService, Depends(get_invitation_service)],
) -> list[InvitationOut]:
    pending = await service.list_pending(tenant.organization_id, tenant.user_id)
    return [_invitation_out(i) for i in pending]


@router.post(
    "/invitations",
    response_model=IssuedInvitationOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_invitation(
    body: InvitationCreateIn,
    tenant: Annotated[TenantContext, Depends(require_tenant)],
    service: Annotated[InvitationService, Depends(get_invitation_service)],
) -> IssuedInvitationOut:
    """Invite an email address. The raw token is only ever returned here."""
    try:
        issued = await service.create_invitation(
            tenant.user_id, body.email, tenant.organization_id, body.role
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)
        ) from None
    return IssuedInvitationOut(
        **_invitation_out(issued.invitation).model_dump(),
        token=issued.token,
        accept_url=issued.accept_url,
    )
