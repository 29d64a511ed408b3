"""FastAPI dependencies: who is calling, which organization, which repos.

Dependency graph for an organization-scoped endpoint::

    require_user ──┐
                   ├── get_user_repos ── require_tenant ── require_org_role(...)
    get_repos ─────┘

FastAPI caches each dependency once per request, so the token is
verified once and the active organization is resolved once, however
many dependencies ask for them.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from crm.core.config import SETTINGS
from crm.core.logging import organization_id_var, user_id_var
from crm.db.engine import async_session_factory, session_scope
from crm.db.rls import set_current_user
from crm.models.principal import Principal
from crm.models.tenant import TenantContext
from crm.repos.registry import Repos, in_memory_repos, pg_repos
from crm.services import token_service
from crm.services.errors import InsufficientRole, NotAMember
from crm.services.invitation_service import InvitationService
from crm.services.membership_service import MembershipService
from crm.services.organization_service import OrganizationService
from crm.services.tenant_resolver import TenantResolver

logger = logging.getLogger(__name__)

ACTIVE_ORG_COOKIE = "active_organization_id"
_COOKIE_MAX_AGE = 60 * 60 * 24 * 365

bearer_scheme = HTTPBearer(auto_error=False)

# Shared by every request when no DATABASE_URL is configured.
_memory_repos = in_memory_repos()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def require_user(
    request: Request,
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
) -> Principal:
    """Validate the bearer token and return the Principal, or 401."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise _unauthorized("Not authenticated")

    try:
        claims = token_service.decode_access_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise _unauthorized("Token expired") from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise _unauthorized("Invalid token") from None

    try:
        user_id = UUID(str(claims["sub"]))
    except ValueError:
        logger.warning("Token rejected: non-UUID subject")
        raise _unauthorized("Invalid token subject") from None

    principal = Principal(user_id=user_id, email=claims.get("email"), claims=claims)
    request.state.user_id = user_id
    user_id_var.set(str(user_id))
    logger.debug("Token validated for user=%s", user_id)
    return principal


async def get_repos() -> AsyncGenerator[Repos, None]:
    """Repos for this request: in-memory, or PostgreSQL in one transaction."""
    if async_session_factory is None:
        yield _memory_repos
        return
    async with session_scope() as session:
        yield pg_repos(session)


async def get_user_repos(
    principal: Annotated[Principal, Depends(require_user)],
    repos: Annotated[Repos, Depends(get_repos)],
) -> Repos:
    """Repos with the principal bound for row-level security."""
    if repos.db is not None:
        await set_current_user(repos.db, principal.user_id)
    return repos


def get_tenant_resolver(
    repos: Annotated[Repos, Depends(get_user_repos)],
) -> TenantResolver:
    return TenantResolver(repos)


async def require_tenant(
    request: Request,
    principal: Annotated[Principal, Depends(require_user)],
    resolver: Annotated[TenantResolver, Depends(get_tenant_resolver)],
) -> TenantContext:
    """Resolve the active organization once for this request.

    Raises NoMembership (403) before the endpoint body runs when the
    principal belongs to no organization.
    """
    resolution = await resolver.resolve(
        principal, request.cookies.get(ACTIVE_ORG_COOKIE)
    )
    request.state.organization_id = resolution.organization_id
    organization_id_var.set(str(resolution.organization_id))
    return TenantContext(
        principal=principal,
        organization_id=resolution.organization_id,
        source=resolution.source,
    )


def require_org_role(roles: set[str]):
    """Dependency factory: demand one of ``roles`` in the active organization.

    Usage::

        _require_manager = require_org_role({"owner", "admin"})

        @router.get("/v1/team/members")
        async def list_members(
            tenant: Annotated[TenantContext, Depends(_require_manager)],
        ): ...
    """

    async def _guard(
        tenant: Annotated[TenantContext, Depends(require_tenant)],
        repos: Annotated[Repos, Depends(get_user_repos)],
    ) -> TenantContext:
        membership = await repos.memberships.get(tenant.organization_id, tenant.user_id)
        if membership is None:
            raise NotAMember()
        if membership.role not in roles:
            logger.warning(
                "Access denied: user=%s role=%s required_any=%s org=%s",
                tenant.user_id,
                membership.role,
                sorted(roles),
                tenant.organization_id,
            )
            raise InsufficientRole()
        return tenant

    return _guard


def get_membership_service(
    repos: Annotated[Repos, Depends(get_user_repos)],
) -> MembershipService:
    return MembershipService(repos)


def get_organization_service(
    repos: Annotated[Repos, Depends(get_user_repos)],
) -> OrganizationService:
    return OrganizationService(repos)


def get_invitation_service(
    repos: Annotated[Repos, Depends(get_repos)],
) -> InvitationService:
    """Not bound to a principal: the public lookup has none."""
    return InvitationService(repos, TenantResolver(repos))


def set_active_org_cookie(response: Response, organization_id: UUID) -> None:
    """Refresh the client's hint.  It only ever saves a lookup, never grants access."""
    response.set_cookie(
        key=ACTIVE_ORG_COOKIE,
        value=str(organization_id),
        max_age=_COOKIE_MAX_AGE,
        httponly=True,
        samesite="lax",
        secure=SETTINGS.is_prod,
        path="/",
    )


def clear_active_org_cookie(response: Response) -> None:
    response.delete_cookie(key=ACTIVE_ORG_COOKIE, path="/")
