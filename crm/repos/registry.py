"""Repository bundle handed to services.

Services receive one Repos value instead of seven constructor arguments.
``in_memory_repos()`` backs dev and tests; ``pg_repos(session)`` binds
every PostgreSQL repository to the same request-scoped session so all
of a request's reads and writes share one transaction.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from crm.repos.audit_repo import AuditRepo, InMemoryAuditRepo
from crm.repos.company_repo import CompanyRepo, InMemoryCompanyRepo
from crm.repos.invitation_repo import InMemoryInvitationRepo, InvitationRepo
from crm.repos.org_membership_repo import InMemoryOrgMembershipRepo, MembershipRepo
from crm.repos.org_repo import InMemoryOrgRepo, OrgRepo
from crm.repos.pg_audit_repo import PgAuditRepo
from crm.repos.pg_company_repo import PgCompanyRepo
from crm.repos.pg_invitation_repo import PgInvitationRepo
from crm.repos.pg_org_membership_repo import PgOrgMembershipRepo
from crm.repos.pg_org_repo import PgOrgRepo
from crm.repos.pg_session_repo import PgSessionRepo
from crm.repos.pg_user_repo import PgUserRepo
from crm.repos.session_repo import InMemorySessionRepo, SessionRepo
from crm.repos.user_repo import InMemoryUserRepo, UserRepo


@dataclass(frozen=True)
class Repos:
    users: UserRepo
    organizations: OrgRepo
    memberships: MembershipRepo
    sessions: SessionRepo
    invitations: InvitationRepo
    audit: AuditRepo
    companies: CompanyRepo
    db: AsyncSession | None = None  # set for PostgreSQL-backed bundles


def in_memory_repos() -> Repos:
    return Repos(
        users=InMemoryUserRepo(),
        organizations=InMemoryOrgRepo(),
        memberships=InMemoryOrgMembershipRepo(),
        sessions=InMemorySessionRepo(),
        invitations=InMemoryInvitationRepo(),
        audit=InMemoryAuditRepo(),
        companies=InMemoryCompanyRepo(),
    )


def pg_repos(session: AsyncSession) -> Repos:
    return Repos(
        users=PgUserRepo(session),
        organizations=PgOrgRepo(session),
        memberships=PgOrgMembershipRepo(session),
        sessions=PgSessionRepo(session),
        invitations=PgInvitationRepo(session),
        audit=PgAuditRepo(session),
        companies=PgCompanyRepo(session),
        db=session,
    )
