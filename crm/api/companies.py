"""Companies: the tenant-scoped business table.

Reads and writes are pinned to the request's active organization.  In
PostgreSQL the companies RLS policy applies the same rule a second time.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from crm.api.dependencies import get_user_repos, require_org_role, require_tenant
from crm.models.company import Company
from crm.models.tenant import TenantContext
from crm.repos.registry import Repos
from crm.services.policy import is_row_visible

router = APIRouter(prefix="/v1/companies", tags=["companies"])

_require_editor = require_org_role({"editor", "admin", "owner"})


class CompanyCreateIn(BaseModel):
    business_name: str = Field(min_length=1, max_length=500)


class CompanyOut(BaseModel):
    id: UUID
    organization_id: UUID
    business_name: str
    created_at: datetime


def _out(company: Company) -> CompanyOut:
    return CompanyOut(
        id=company.id,
        organization_id=company.organization_id,
        business_name=company.business_name,
        created_at=company.created_at,
    )


@router.get("", response_model=list[CompanyOut])
async def list_companies(
    tenant: Annotated[TenantContext, Depends(require_tenant)],
    repos: Annotated[Repos, Depends(get_user_repos)],
) -> list[CompanyOut]:
    rows = await repos.companies.list_by_org(tenant.organization_id)
    return [_out(c) for c in rows if is_row_visible(tenant, c.organization_id)]


@router.post("", response_model=CompanyOut, status_code=status.HTTP_201_CREATED)
async def create_company(
    body: CompanyCreateIn,
    tenant: Annotated[TenantContext, Depends(_require_editor)],
    repos: Annotated[Repos, Depends(get_user_repos)],
) -> CompanyOut:
    company = Company.new(
        organization_id=tenant.organization_id, business_name=body.business_name
    )
    await repos.companies.add(company)
    return _out(company)
