"""External identity resolution for third-party provider logins.

Rules:
1. If an external account already carries this external id → returning user
2. If the email belongs to any other account → REJECT (no automatic linking)
3. Otherwise → create a new external account, email already verified

Rule 2 applies even when the existing account is local and verified:
merging a provider login into an existing account is never automatic.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from identity_core.core.errors import ConflictError, ValidationError
from identity_core.core.sessions import SessionIssuer
from identity_core.models.account import Account, Provider
from identity_core.repositories.account_repository import (
    AccountRepository,
    normalize_email,
)
from identity_core.schemas.account import AccountPublic, AuthResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExternalIdentity:
    """Identity asserted by a provider callback.

    Attributes:
        external_id: Provider's stable user id.
        email: Email reported by the provider.
        name: Display name from the provider.
        avatar: Profile picture URL, if any.
    """

    external_id: str
    email: str
    name: str | None = None
    avatar: str | None = None


def _email_registered_elsewhere() -> ConflictError:
    return ConflictError(
        code="EMAIL_REGISTERED_WITH_OTHER_PROVIDER",
        message=(
            "Email already registered with a different sign-in method. "
            "Please sign in with your original method."
        ),
    )


async def resolve_external_login(
    *, db: AsyncSession, identity: ExternalIdentity
) -> tuple[Account, bool]:
    """Find or create the account for a provider login.

    A duplicate insert from a concurrent first login is resolved by
    re-reading the external id; if that finds nothing, the email was
    taken by someone else in the meantime.

    Args:
        db: Async database session. Committed when an account is created.
        identity: Provider-asserted identity.

    Returns:
        Tuple of (Account, created) where created is True for a new account.

    Raises:
        ValidationError: Blank external id or email.
        ConflictError: EMAIL_REGISTERED_WITH_OTHER_PROVIDER.
    """
    external_id = identity.external_id.strip()
    email = normalize_email(identity.email)
    if not external_id or not email:
        raise ValidationError("External identity requires an id and an email")

    # Step 1: returning user
    existing = await AccountRepository.get_by_external_id(db, external_id)
    if existing is not None:
        logger.info(
            "Returning external user",
            extra={"account_id": str(existing.id)},
        )
        return existing, False

    # Step 2: email collision with any other account
    if await AccountRepository.get_by_email(db, email) is not None:
        logger.warning("External login rejected: email already registered")
        raise _email_registered_elsewhere()

    # Step 3: new external account
    try:
        account = await AccountRepository.create(
            db,
            email=email,
            name=(identity.name or "").strip() or email,
            provider=Provider.EXTERNAL,
            external_id=external_id,
            email_verified=True,
            avatar=identity.avatar,
        )
    except IntegrityError as exc:
        await db.rollback()
        raced = await AccountRepository.get_by_external_id(db, external_id)
        if raced is not None:
            return raced, False
        raise _email_registered_elsewhere() from exc

    await db.commit()
    logger.info("Created new external user", extra={"account_id": str(account.id)})
    return account, True


async def login_with_external_identity(
    *, db: AsyncSession, identity: ExternalIdentity, sessions: SessionIssuer
) -> AuthResult:
    """Resolve a provider login and issue a session for it."""
    account, _created = await resolve_external_login(db=db, identity=identity)
    return AuthResult(
        account=AccountPublic.model_validate(account),
        session_token=sessions.issue(account.id, account.email),
    )
