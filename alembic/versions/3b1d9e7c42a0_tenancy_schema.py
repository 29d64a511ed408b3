"""tenancy schema: organizations, memberships, sessions, invitations, RLS

Revision ID: 3b1d9e7c42a0
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b1d9e7c42a0"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_BYPASS = "current_setting('app.rls_bypass', true) = 'on'"

_TENANT_TABLES = ("organization_invitations", "organization_audit_log", "companies")

_FUNCTIONS = """
CREATE OR REPLACE FUNCTION app_current_user_id() RETURNS uuid
LANGUAGE sql STABLE AS $$
    SELECT NULLIF(current_setting('app.current_user_id', true), '')::uuid
$$;

-- SECURITY DEFINER so the lookups below are not themselves filtered by
-- the policies that call this function.
CREATE OR REPLACE FUNCTION get_active_organization_id() RETURNS uuid
LANGUAGE sql STABLE SECURITY DEFINER SET search_path = public AS $$
    SELECT COALESCE(
        (
            SELECT s.active_organization_id
            FROM user_sessions s
            JOIN organization_members m
              ON m.organization_id = s.active_organization_id
             AND m.user_id = s.user_id
            WHERE s.user_id = app_current_user_id()
        ),
        (
            SELECT m.organization_id
            FROM organization_members m
            WHERE m.user_id = app_current_user_id()
            ORDER BY m.created_at, m.organization_id
            LIMIT 1
        )
    )
$$;
"""


def _enable_rls(table: str, predicate: str) -> None:
    op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
    op.execute(
        f"CREATE POLICY {table}_tenant ON {table} "
        f"USING ({_BYPASS} OR {predicate}) "
        f"WITH CHECK ({_BYPASS} OR {predicate})"
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "organizations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=False, unique=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("slug ~ '^[a-z0-9-]+$'", name="slug_format"),
    )

    op.create_table(
        "organization_members",
        sa.Column(
            "organization_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "role IN ('viewer', 'editor', 'admin', 'owner')", name="member_role"
        ),
    )
    op.create_index(
        "ix_organization_members_user_created",
        "organization_members",
        ["user_id", "created_at"],
    )

    op.create_table(
        "user_sessions",
        sa.Column("user_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "active_organization_id", postgresql.UUID(as_uuid=True), nullable=False
        ),
        sa.Column(
            "last_switched_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.ForeignKeyConstraint(
            ["active_organization_id", "user_id"],
            ["organization_members.organization_id", "organization_members.user_id"],
            ondelete="CASCADE",
            name="user_sessions_membership_fkey",
        ),
    )

    op.create_table(
        "organization_invitations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "organization_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column("token_hash", sa.String(length=64), nullable=False, unique=True),
        sa.Column("invited_by", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("role IN ('viewer', 'editor', 'admin')", name="invite_role"),
    )

    op.create_table(
        "organization_audit_log",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "organization_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("target_user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "metadata",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "companies",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "organization_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("business_name", sa.Text(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.execute(_FUNCTIONS)

    # ENABLE without FORCE: the migration role owns the tables and is not
    # filtered; the application connects as a separate, non-owner role.
    _enable_rls(
        "organizations",
        "EXISTS (SELECT 1 FROM organization_members m "
        "WHERE m.organization_id = organizations.id "
        "AND m.user_id = app_current_user_id())",
    )
    _enable_rls(
        "organization_members",
        "user_id = app_current_user_id() "
        "OR organization_id = get_active_organization_id()",
    )
    _enable_rls("user_sessions", "user_id = app_current_user_id()")
    for table in _TENANT_TABLES:
        _enable_rls(table, "organization_id = get_active_organization_id()")


def downgrade() -> None:
    for table in (
        "companies",
        "organization_audit_log",
        "organization_invitations",
        "user_sessions",
        "organization_members",
        "organizations",
    ):
        op.execute(f"DROP POLICY IF EXISTS {table}_tenant ON {table}")
    op.execute("DROP FUNCTION IF EXISTS get_active_organization_id()")
    op.execute("DROP FUNCTION IF EXISTS app_current_user_id()")
    op.drop_table("companies")
    op.drop_table("organization_audit_log")
    op.drop_table("organization_invitations")
    op.drop_table("user_sessions")
    op.drop_index(
        "ix_organization_members_user_created", table_name="organization_members"
    )
    op.drop_table("organization_members")
    op.drop_table("organizations")
    op.drop_table("users")
