"""Organization endpoints: list, create, resolve active, switch, delete.

The active organization is server state (the Session row).  The
``active_organization_id`` cookie these endpoints set is a hint that
saves the resolver nothing but a comparison; it never grants access.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import BaseModel, Field

from crm.api.dependencies import (
    ACTIVE_ORG_COOKIE,
    clear_active_org_cookie,
    get_organization_service,
    get_tenant_resolver,
    get_user_repos,
    require_tenant,
    require_user,
    set_active_org_cookie,
)
from crm.models.principal import Principal
from crm.models.tenant import TenantContext
from crm.repos.registry import Repos
from crm.services.organization_service import OrganizationService
from crm.services.tenant_resolver import TenantResolver

router = APIRouter(prefix="/v1/organizations", tags=["organizations"])


# --- Pydantic schemas ---


class OrganizationCreateIn(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    slug: str | None = Field(default=None, pattern=r"^[a-z0-9-]+$", max_length=255)


class OrganizationOut(BaseModel):
    id: UUID
    name: str
    slug: str
    created_at: datetime


class MyOrganizationOut(OrganizationOut):
    role: str
    joined_at: datetime
    active: bool


class ActiveOrganizationOut(BaseModel):
    organization_id: UUID
    name: str | None
    slug: str | None
    role: str
    source: str


class SwitchOut(BaseModel):
    organization_id: UUID
    last_switched_at: datetime


# --- Endpoints ---


@router.get("", response_model=list[MyOrganizationOut])
async def list_my_organizations(
    principal: Annotated[Principal, Depends(require_user)],
    repos: Annotated[Repos, Depends(get_user_repos)],
    service: Annotated[OrganizationService, Depends(get_organization_service)],
) -> list[MyOrganizationOut]:
    """Every organization the caller belongs to, oldest membership first.

    Does not bootstrap a Session; ``active`` is false everywhere until
    the first organization-scoped request.
    """
    summaries = await service.list_for_user(principal.user_id)
    session = await repos.sessions.get(principal.user_id)
    active_id = session.organization_id if session else None
    return [
        MyOrganizationOut(
            id=s.organization.id,
            name=s.organization.name,
            slug=s.organization.slug,
            created_at=s.organization.created_at,
            role=s.role,
            joined_at=s.joined_at,
            active=s.organization.id == active_id,
        )
        for s in summaries
    ]


@router.post("", response_model=OrganizationOut, status_code=status.HTTP_201_CREATED)
async def create_organization(
    body: OrganizationCreateIn,
    principal: Annotated[Principal, Depends(require_user)],
    service: Annotated[OrganizationService, Depends(get_organization_service)],
) -> OrganizationOut:
    """Create an organization. The creator becomes its owner."""
    try:
        org = await service.create_organization(principal, body.name, body.slug)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)
        ) from None
    return OrganizationOut(
        id=org.id, name=org.name, slug=org.slug, created_at=org.created_at
    )


@router.get("/active", response_model=ActiveOrganizationOut)
async def get_active_organization(
    response: Response,
    tenant: Annotated[TenantContext, Depends(require_tenant)],
    repos: Annotated[Repos, Depends(get_user_repos)],
    service: Annotated[OrganizationService, Depends(get_organization_service)],
) -> ActiveOrganizationOut:
    """Resolve the active organization and refresh the cookie hint."""
    role = await service.current_role(tenant.user_id, tenant.organization_id)
    org = await repos.organizations.get_by_id(tenant.organization_id)
    set_active_org_cookie(response, tenant.organization_id)
    return ActiveOrganizationOut(
        organization_id=tenant.organization_id,
        name=org.name if org else None,
        slug=org.slug if org else None,
        role=role,
        source=tenant.source,
    )


@router.post("/{org_id}/switch", response_model=SwitchOut)
async def switch_organization(
    org_id: UUID,
    response: Response,
    principal: Annotated[Principal, Depends(require_user)],
    resolver: Annotated[TenantResolver, Depends(get_tenant_resolver)],
) -> SwitchOut:
    """Make ``org_id`` the caller's active organization (member only)."""
    session = await resolver.switch(principal, org_id)
    set_active_org_cookie(response, session.organization_id)
    return SwitchOut(
        organization_id=session.organization_id,
        last_switched_at=session.last_switched_at,
    )


@router.delete("/{org_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_organization(
    org_id: UUID,
    request: Request,
    principal: Annotated[Principal, Depends(require_user)],
    service: Annotated[OrganizationService, Depends(get_organization_service)],
    confirmation: str = "",
) -> Response:
    """Delete an organization and everything in it.

    Owner only, and the caller must pass ``?confirmation=DELETE``.
    """
    await service.delete_organization(principal.user_id, org_id, confirmation)
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    if request.cookies.get(ACTIVE_ORG_COOKIE) == str(org_id):
        clear_active_org_cookie(response)
    return response
