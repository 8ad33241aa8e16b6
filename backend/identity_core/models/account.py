"""Account model - the sole identity record.

One row per identity, either a local (password) account or an external
(third-party provider) account. Token state lives on the row as optional
field pairs: present means live, absent means consumed or never issued.

Store-level constraints close the check-then-act races:
- uq_accounts_email: one account per (lower-cased) email, any provider
- uq_accounts_provider_external_id: one account per external identity
- uq_accounts_single_super_admin: partial unique index, at most one
  row with role = 'super_admin'
"""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    false,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from identity_core.models.base import Base, TimestampMixin


class Provider(str, Enum):
    """How an account authenticates.

    Values:
        LOCAL: Password stored (hashed) by this system.
        EXTERNAL: Third-party identity provider callback.
    """

    LOCAL = "local"
    EXTERNAL = "external"


class Role(str, Enum):
    """Role hierarchy with a total order: user < admin < super_admin."""

    USER = "user"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    def at_least(self, other: "Role") -> bool:
        """True if this role is ``other`` or above it."""
        return self.rank >= other.rank


_ROLE_RANK: dict[Role, int] = {
    Role.USER: 0,
    Role.ADMIN: 1,
    Role.SUPER_ADMIN: 2,
}

_SUPER_ADMIN_PREDICATE = text("role = 'super_admin'")


class Account(Base, TimestampMixin):
    """Identity record.

    Attributes:
        id: UUID primary key, immutable.
        email: Unique email address, stored lower-cased.
        name: Display name.
        password_hash: bcrypt digest. Set only for local accounts.
        provider: "local" or "external". Immutable after creation.
        external_id: Provider's user id. Set only for external accounts.
        email_verified: False for new local accounts, always True for external.
        email_verification_token: Digest of the live verification token.
            Present only while email_verified is False.
        reset_password_token: Digest of the live reset token.
        reset_password_expires_at: Reset token expiry. Set together with
            reset_password_token and cleared together with it.
        role: "user", "admin" or "super_admin".
        avatar: Profile picture URL.
        bio: Free-text profile description.
        created_at: Creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("email", name="uq_accounts_email"),
        UniqueConstraint(
            "provider", "external_id", name="uq_accounts_provider_external_id"
        ),
        Index(
            "uq_accounts_single_super_admin",
            "role",
            unique=True,
            postgresql_where=_SUPER_ADMIN_PREDICATE,
            sqlite_where=_SUPER_ADMIN_PREDICATE,
        ),
        Index("ix_accounts_email_verification_token", "email_verification_token"),
        Index("ix_accounts_reset_password_token", "reset_password_token"),
        Index(
            "ix_accounts_unverified_created_at",
            "created_at",
            postgresql_where=text("provider = 'local' AND email_verified = false"),
        ),
        CheckConstraint(
            "provider IN ('local', 'external')", name="ck_accounts_provider"
        ),
        CheckConstraint(
            "role IN ('user', 'admin', 'super_admin')", name="ck_accounts_role"
        ),
        CheckConstraint(
            "(provider = 'local' AND password_hash IS NOT NULL "
            "AND external_id IS NULL) OR "
            "(provider = 'external' AND password_hash IS NULL "
            "AND external_id IS NOT NULL)",
            name="ck_accounts_credential_shape",
        ),
        CheckConstraint(
            "(reset_password_token IS NULL) = (reset_password_expires_at IS NULL)",
            name="ck_accounts_reset_token_pair",
        ),
        CheckConstraint(
            "email_verification_token IS NULL OR email_verified = false",
            name="ck_accounts_verification_token_unverified",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email_verified: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
    )
    email_verification_token: Mapped[str | None] = mapped_column(
        String(64), nullable=True
    )
    reset_password_token: Mapped[str | None] = mapped_column(
        String(64), nullable=True
    )
    reset_password_expires_at: Mapped[datetime | None] = mapped_column(nullable=True)
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=Role.USER.value,
        server_default=Role.USER.value,
    )
    avatar: Mapped[str | None] = mapped_column(Text(), nullable=True)
    bio: Mapped[str | None] = mapped_column(Text(), nullable=True)

    @property
    def role_enum(self) -> Role:
        return Role(self.role)

    @property
    def is_local(self) -> bool:
        return self.provider == Provider.LOCAL.value
