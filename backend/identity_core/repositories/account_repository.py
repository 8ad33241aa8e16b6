"""Repository for Account operations.

Provides database access for the accounts table. Besides plain CRUD it
holds the conditional single-statement updates the services rely on for
atomicity: token consumption, role transitions, and the maintenance
sweeps all put their guard in the WHERE clause and report affected rows.
"""

import uuid
from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import ColumnElement, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from identity_core.core.tokens import TokenKind
from identity_core.models.account import Account, Provider, Role

# Fields that may be updated via AccountRepository.update().
# Security: Never add 'id', 'email', 'provider', 'external_id', 'role',
# or the timestamps.
# - id / provider / external_id: immutable identity
# - email: unique identity, requires a dedicated flow with re-verification
# - role: only via the conditional role transitions (mass-assignment guard)
_UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "name",
        "avatar",
        "bio",
        "password_hash",
        "email_verified",
        "email_verification_token",
        "reset_password_token",
        "reset_password_expires_at",
    }
)

# Bulk UPDATE/DELETE never touch objects already in the session; callers
# refresh what they hand back.
_NO_SYNC = {"synchronize_session": False}

# Reads overwrite already loaded objects, which the bulk statements leave stale.
_FRESH = {"populate_existing": True}


def normalize_email(email: str) -> str:
    """Canonical form used for every email write and lookup."""
    return email.strip().lower()


class AccountRepository:
    """Stateless repository for Account table operations.

    All methods are static, with no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(db: AsyncSession, account_id: uuid.UUID) -> Account | None:
        """Fetch an account by primary key, bypassing the identity map cache."""
        stmt = (
            select(Account)
            .where(Account.id == account_id)
            .execution_options(**_FRESH)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> Account | None:
        """Fetch an account by email address (case-insensitive).

        Args:
            db: Async database session.
            email: Email address to look up.

        Returns:
            Account if found, None otherwise.
        """
        stmt = (
            select(Account)
            .where(Account.email == normalize_email(email))
            .execution_options(**_FRESH)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_external_id(db: AsyncSession, external_id: str) -> Account | None:
        """Find the external account bound to a provider user id."""
        stmt = (
            select(Account)
            .where(
                Account.provider == Provider.EXTERNAL.value,
                Account.external_id == external_id,
            )
            .execution_options(**_FRESH)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_token(
        db: AsyncSession, kind: TokenKind, token_digest: str
    ) -> Account | None:
        """Find the account holding a token digest.

        Expiry is not checked here; reset tokens are judged by the caller
        or, for consumption, inside the conditional update.
        """
        column = (
            Account.reset_password_token
            if kind is TokenKind.RESET
            else Account.email_verification_token
        )
        stmt = (
            select(Account)
            .where(column == token_digest)
            .execution_options(**_FRESH)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_super_admin(db: AsyncSession) -> Account | None:
        stmt = (
            select(Account)
            .where(Account.role == Role.SUPER_ADMIN.value)
            .execution_options(**_FRESH)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        name: str,
        provider: Provider,
        password_hash: str | None = None,
        external_id: str | None = None,
        email_verified: bool = False,
        email_verification_token: str | None = None,
        avatar: str | None = None,
        role: Role = Role.USER,
    ) -> Account:
        """Create a new account.

        Email is normalized to lowercase before storage.

        Returns:
            Created Account with generated fields populated.

        Raises:
            sqlalchemy.exc.IntegrityError: If the email or external id is
                already taken, or a second super admin would be created.
        """
        account = Account(
            email=normalize_email(email),
            name=name,
            provider=provider.value,
            password_hash=password_hash,
            external_id=external_id,
            email_verified=email_verified,
            email_verification_token=email_verification_token,
            avatar=avatar,
            role=role.value,
        )
        db.add(account)
        await db.flush()
        await db.refresh(account)
        return account

    @staticmethod
    async def update(
        db: AsyncSession,
        account_id: uuid.UUID,
        **kwargs: str | datetime | bool | None,
    ) -> Account | None:
        """Update account fields.

        Only fields in _UPDATABLE_FIELDS are allowed. Unknown field names
        raise ValueError.

        Returns:
            Updated Account if found, None if the account does not exist.

        Raises:
            ValueError: If an unknown field name is passed.
        """
        unknown = set(kwargs) - _UPDATABLE_FIELDS
        if unknown:
            msg = f"Unknown fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        account = await db.get(Account, account_id)
        if account is None:
            return None

        for field, value in kwargs.items():
            setattr(account, field, value)

        await db.flush()
        await db.refresh(account)
        return account

    @staticmethod
    async def delete(db: AsyncSession, account_id: uuid.UUID) -> bool:
        """Delete one account. Returns False if it did not exist."""
        stmt = (
            delete(Account).where(Account.id == account_id).execution_options(**_NO_SYNC)
        )
        result = await db.execute(stmt)
        return bool(result.rowcount)  # type: ignore[attr-defined]

    # -----------------------------------------------------------------------
    # Token state transitions
    # -----------------------------------------------------------------------

    @staticmethod
    async def replace_verification_token(
        db: AsyncSession, account_id: uuid.UUID, token_digest: str
    ) -> bool:
        """Issue a new verification token, superseding the previous one.

        Only applies while the account is still an unverified local
        account. Returns True if a row was updated.
        """
        stmt = (
            update(Account)
            .where(
                Account.id == account_id,
                Account.provider == Provider.LOCAL.value,
                Account.email_verified.is_(False),
            )
            .values(email_verification_token=token_digest)
            .execution_options(**_NO_SYNC)
        )
        result = await db.execute(stmt)
        return bool(result.rowcount)  # type: ignore[attr-defined]

    @staticmethod
    async def consume_verification_token(db: AsyncSession, token_digest: str) -> bool:
        """Mark the holder of a verification token verified, in one statement.

        The token match is the guard: a second concurrent consumer finds
        no row. Returns True if a row was updated.
        """
        stmt = (
            update(Account)
            .where(
                Account.email_verification_token == token_digest,
                Account.email_verified.is_(False),
            )
            .values(email_verified=True, email_verification_token=None)
            .execution_options(**_NO_SYNC)
        )
        result = await db.execute(stmt)
        return bool(result.rowcount)  # type: ignore[attr-defined]

    @staticmethod
    async def set_reset_token(
        db: AsyncSession,
        account_id: uuid.UUID,
        *,
        token_digest: str,
        expires_at: datetime,
    ) -> bool:
        """Open a reset window on a local account (replaces any live one)."""
        stmt = (
            update(Account)
            .where(
                Account.id == account_id,
                Account.provider == Provider.LOCAL.value,
            )
            .values(
                reset_password_token=token_digest,
                reset_password_expires_at=expires_at,
            )
            .execution_options(**_NO_SYNC)
        )
        result = await db.execute(stmt)
        return bool(result.rowcount)  # type: ignore[attr-defined]

    @staticmethod
    async def consume_reset_token(
        db: AsyncSession,
        token_digest: str,
        *,
        password_hash: str,
        now: datetime,
    ) -> bool:
        """Replace the password of the live reset token holder, in one statement.

        A token whose expiry equals ``now`` is already expired. The token
        pair is cleared together with the password change.
        """
        stmt = (
            update(Account)
            .where(
                Account.reset_password_token == token_digest,
                Account.reset_password_expires_at > now,
                Account.provider == Provider.LOCAL.value,
            )
            .values(
                password_hash=password_hash,
                reset_password_token=None,
                reset_password_expires_at=None,
            )
            .execution_options(**_NO_SYNC)
        )
        result = await db.execute(stmt)
        return bool(result.rowcount)  # type: ignore[attr-defined]

    # -----------------------------------------------------------------------
    # Role transitions
    # -----------------------------------------------------------------------

    @staticmethod
    async def transition_role(
        db: AsyncSession,
        account_id: uuid.UUID,
        *,
        from_role: Role,
        to_role: Role,
    ) -> bool:
        """Change a role only if the account still holds ``from_role``.

        Separated from update() to prevent mass-assignment privilege
        escalation. Returns True if a row was updated.

        Raises:
            sqlalchemy.exc.IntegrityError: If the change would create a
                second super admin.
        """
        stmt = (
            update(Account)
            .where(Account.id == account_id, Account.role == from_role.value)
            .values(role=to_role.value)
            .execution_options(**_NO_SYNC)
        )
        result = await db.execute(stmt)
        return bool(result.rowcount)  # type: ignore[attr-defined]

    # -----------------------------------------------------------------------
    # Queries and sweeps
    # -----------------------------------------------------------------------

    @staticmethod
    async def count_where(db: AsyncSession, *predicates: ColumnElement[bool]) -> int:
        """Count accounts matching all predicates (all accounts if none)."""
        stmt = select(func.count()).select_from(Account)
        if predicates:
            stmt = stmt.where(*predicates)
        result = await db.execute(stmt)
        return int(result.scalar_one())

    @staticmethod
    async def find_where(
        db: AsyncSession,
        *predicates: ColumnElement[bool],
        offset: int = 0,
        limit: int | None = None,
    ) -> list[Account]:
        """List accounts matching all predicates, newest first."""
        stmt = select(Account).execution_options(**_FRESH)
        if predicates:
            stmt = stmt.where(*predicates)
        stmt = stmt.order_by(Account.created_at.desc(), Account.id).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def delete_where_returning_emails(
        db: AsyncSession, *predicates: ColumnElement[bool]
    ) -> Sequence[str]:
        """Delete every account matching the predicates in one batch.

        Returns:
            Emails of the deleted rows. Rows that stopped matching before
            the statement ran (e.g. verified meanwhile) are not deleted.
        """
        stmt = (
            delete(Account)
            .where(*predicates)
            .returning(Account.email)
            .execution_options(**_NO_SYNC)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def clear_reset_tokens_expired_by(db: AsyncSession, now: datetime) -> int:
        """Clear reset token pairs whose expiry is at or before ``now``."""
        stmt = (
            update(Account)
            .where(
                Account.reset_password_expires_at.is_not(None),
                Account.reset_password_expires_at <= now,
            )
            .values(reset_password_token=None, reset_password_expires_at=None)
            .execution_options(**_NO_SYNC)
        )
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count
