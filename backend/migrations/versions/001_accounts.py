"""Create the accounts table.

Revision ID: 001_accounts
Revises:
Create Date: 2026-10-19

Single identity table for local and external accounts, with the store
constraints the services depend on:
- uq_accounts_email: one account per lower-cased email
- uq_accounts_provider_external_id: one account per external identity
- uq_accounts_single_super_admin: at most one super_admin row
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "001_accounts"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("provider", sa.String(20), nullable=False),
        sa.Column("external_id", sa.String(255), nullable=True),
        sa.Column(
            "email_verified", sa.Boolean(), nullable=False, server_default="false"
        ),
        sa.Column("email_verification_token", sa.String(64), nullable=True),
        sa.Column("reset_password_token", sa.String(64), nullable=True),
        sa.Column(
            "reset_password_expires_at", sa.DateTime(timezone=True), nullable=True
        ),
        sa.Column("role", sa.String(20), nullable=False, server_default="user"),
        sa.Column("avatar", sa.Text(), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("email", name="uq_accounts_email"),
        sa.UniqueConstraint(
            "provider", "external_id", name="uq_accounts_provider_external_id"
        ),
        sa.CheckConstraint(
            "provider IN ('local', 'external')", name="ck_accounts_provider"
        ),
        sa.CheckConstraint(
            "role IN ('user', 'admin', 'super_admin')", name="ck_accounts_role"
        ),
        sa.CheckConstraint(
            "(provider = 'local' AND password_hash IS NOT NULL "
            "AND external_id IS NULL) OR "
            "(provider = 'external' AND password_hash IS NULL "
            "AND external_id IS NOT NULL)",
            name="ck_accounts_credential_shape",
        ),
        sa.CheckConstraint(
            "(reset_password_token IS NULL) = (reset_password_expires_at IS NULL)",
            name="ck_accounts_reset_token_pair",
        ),
        sa.CheckConstraint(
            "email_verification_token IS NULL OR email_verified = false",
            name="ck_accounts_verification_token_unverified",
        ),
    )

    # Partial unique index: only rows with role = 'super_admin' participate,
    # so at most one such row can exist.
    op.create_index(
        "uq_accounts_single_super_admin",
        "accounts",
        ["role"],
        unique=True,
        postgresql_where=sa.text("role = 'super_admin'"),
    )
    op.create_index(
        "ix_accounts_email_verification_token",
        "accounts",
        ["email_verification_token"],
    )
    op.create_index(
        "ix_accounts_reset_password_token",
        "accounts",
        ["reset_password_token"],
    )
    # Maintenance purge scans unverified local accounts by age
    op.create_index(
        "ix_accounts_unverified_created_at",
        "accounts",
        ["created_at"],
        postgresql_where=sa.text("provider = 'local' AND email_verified = false"),
    )


def downgrade() -> None:
    op.drop_index("ix_accounts_unverified_created_at", table_name="accounts")
    op.drop_index("ix_accounts_reset_password_token", table_name="accounts")
    op.drop_index("ix_accounts_email_verification_token", table_name="accounts")
    op.drop_index("uq_accounts_single_super_admin", table_name="accounts")
    op.drop_table("accounts")
