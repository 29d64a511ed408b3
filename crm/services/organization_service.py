from __future__ import annotations

import logging
import re
import secrets
import string
from uuid import UUID

from crm.models.organization import Membership, Organization, OrganizationSummary
from crm.models.principal import Principal
from crm.models.user import User, normalize_email
from crm.repos.registry import Repos
from crm.services.errors import (
    ConfirmationRequired,
    InsufficientRole,
    NotAMember,
    SlugTaken,
)

logger = logging.getLogger(__name__)

SLUG_PATTERN = re.compile(r"^[a-z0-9-]+$")
DELETE_CONFIRMATION = "DELETE"

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def slugify(name: str) -> str:
    """'Acme Labs!' -> 'acme-labs'."""
    slug = re.sub(r"\s+", "-", name.strip().lower())
    return re.sub(r"[^a-z0-9-]", "", slug)


def _random_suffix() -> str:
    return "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(6))


class OrganizationService:
    def __init__(self, repos: Repos) -> None:
        self._repos = repos

    async def list_for_user(self, user_id: UUID) -> list[OrganizationSummary]:
        memberships = await self._repos.memberships.list_by_user(user_id)
        orgs = {
            o.id: o
            for o in await self._repos.organizations.list_by_ids(
                [m.organization_id for m in memberships]
            )
        }
        return [
            OrganizationSummary(
                organization=orgs[m.organization_id], role=m.role, joined_at=m.created_at
            )
            for m in memberships
            if m.organization_id in orgs
        ]

    async def create_organization(
        self, principal: Principal, name: str, slug: str | None = None
    ) -> Organization:
        """Create an organization with the caller as its first owner.

        Without an explicit slug one is derived from the name.  A taken
        slug gets a random 6-character suffix; if that is taken too the
        call fails with SlugTaken.  The caller's active organization is
        left as it was.
        """
        name = name.strip()
        if len(name) < 2:
            raise ValueError("Organization name must be at least 2 characters")

        slug = (slug or slugify(name)).strip()
        if not SLUG_PATTERN.match(slug):
            raise ValueError(
                "Slug can only contain lowercase letters, numbers, and hyphens"
            )

        if await self._repos.organizations.get_by_slug(slug) is not None:
            slug = f"{slug}-{_random_suffix()}"
        org = Organization.new(name=name, slug=slug)
        try:
            await self._repos.organizations.add(org)
        except ValueError:
            # Lost a race for the slug, or the suffixed one is taken too.
            logger.warning("Organization slug collision slug=%s", slug)
            raise SlugTaken() from None

        if principal.email:
            await self._repos.users.upsert(
                User(
                    id=principal.user_id,
                    email=normalize_email(principal.email),
                    name=str(principal.claims.get("name") or ""),
                )
            )
        await self._repos.memberships.add(
            Membership(organization_id=org.id, user_id=principal.user_id, role="owner")
        )
        logger.info(
            "Organization created id=%s slug=%s owner=%s",
            org.id,
            org.slug,
            principal.user_id,
        )
        return org

    async def delete_organization(
        self, actor_id: UUID, organization_id: UUID, confirmation: str
    ) -> None:
        if confirmation != DELETE_CONFIRMATION:
            raise ConfirmationRequired()

        membership = await self._repos.memberships.get(organization_id, actor_id)
        if membership is None:
            raise NotAMember()
        if membership.role != "owner":
            logger.warning(
                "Delete denied: user=%s role=%s org=%s",
                actor_id,
                membership.role,
                organization_id,
            )
            raise InsufficientRole("Only owners can delete an organization")

        await self._repos.sessions.clear_organization(organization_id)
        await self._repos.invitations.remove_organization(organization_id)
        await self._repos.companies.remove_organization(organization_id)
        await self._repos.memberships.remove_organization(organization_id)
        await self._repos.organizations.delete(organization_id)
        logger.warning("Organization deleted id=%s by=%s", organization_id, actor_id)

    async def current_role(self, user_id: UUID, organization_id: UUID) -> str:
        membership = await self._repos.memberships.get(organization_id, user_id)
        if membership is None:
            raise NotAMember()
        return membership.role
