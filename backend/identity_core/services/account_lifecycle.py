"""Account lifecycle service: registration, login, verification, reset.

Façade used by the transport layer. Composes the password hasher, the
opaque token issuer, the session issuer and the account repository.

Every mutating operation is one unit of work: it either commits or rolls
back before returning. Token consumption is a single conditional UPDATE,
so a token cannot be spent twice by concurrent requests.

Anti-enumeration: forgot_password, resend_verification and
check_verification_status answer identically for unknown emails, and
login runs a dummy bcrypt comparison when no local credential exists.
Reset and resend emails go out as background tasks so those calls take
the same time whether or not the account exists.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from identity_core.core.clock import Clock, utc_now
from identity_core.core.config import settings
from identity_core.core.email import Notifier
from identity_core.core.errors import (
    ConflictError,
    NotFoundError,
    NotificationDeliveryError,
    UnauthorizedError,
)
from identity_core.core.passwords import PasswordHasher, validate_password_strength
from identity_core.core.sessions import SessionIssuer, build_session_issuer
from identity_core.core.tokens import (
    TokenKind,
    digest_token,
    expiry_for,
    issue_opaque_token,
)
from identity_core.core.validation import clean_display_name
from identity_core.models.account import Account, Provider
from identity_core.repositories.account_repository import (
    AccountRepository,
    normalize_email,
)
from identity_core.schemas.account import (
    AccountPublic,
    AuthResult,
    MessageResult,
    ProfileUpdate,
    VerificationStatus,
)

logger = logging.getLogger(__name__)

_INVALID_CREDENTIALS_MSG = "Invalid email or password"
_FORGOT_PASSWORD_MSG = "If the email exists, a reset link has been sent"
_RESEND_VERIFICATION_MSG = (
    "If the email exists and is not verified, a verification link has been sent"
)
_PASSWORD_RESET_MSG = "Password has been reset successfully"
_EMAIL_VERIFIED_MSG = "Email verified successfully"
_STATUS_VERIFIED_MSG = "Email is verified"
_STATUS_UNVERIFIED_MSG = "Email is not verified yet"

SendEmail = Callable[[str, str], Awaitable[None]]


def _email_taken() -> ConflictError:
    return ConflictError(
        code="EMAIL_ALREADY_EXISTS",
        message="Email already registered",
    )


class AccountLifecycleService:
    """Registration, login, email verification and password reset flows.

    Args:
        db: Async database session. The service commits on success.
        notifier: Outbound email channel.
        hasher: Password hasher. Defaults to the configured cost factor.
        sessions: Session token issuer. Defaults to the configured secret.
        clock: Source of "now" for reset token expiry.
        strict_notifications: Fail registration when the verification
            email cannot be sent. Defaults to the configured posture.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        notifier: Notifier,
        hasher: PasswordHasher | None = None,
        sessions: SessionIssuer | None = None,
        clock: Clock = utc_now,
        strict_notifications: bool | None = None,
    ) -> None:
        self._db = db
        self._notifier = notifier
        self._hasher = hasher or PasswordHasher(settings.bcrypt_rounds)
        self._sessions = sessions or build_session_issuer()
        self._clock = clock
        self._strict = (
            settings.strict_notifications
            if strict_notifications is None
            else strict_notifications
        )
        self._pending: set[asyncio.Task[None]] = set()

    # -----------------------------------------------------------------------
    # Registration and login
    # -----------------------------------------------------------------------

    async def register(self, *, email: str, name: str, password: str) -> AuthResult:
        """Create a local account and start email verification.

        The unique email index is the final arbiter; the lookup before the
        insert only gives a friendlier early answer.

        Args:
            email: Email address (normalized to lowercase).
            name: Display name.
            password: Plain-text password.

        Returns:
            AuthResult with the new account and a session token. The
            account is unverified but can already sign in.

        Raises:
            ValidationError: Weak password or empty name.
            ConflictError: EMAIL_ALREADY_EXISTS.
            NotificationDeliveryError: Strict posture only; the account is
                rolled back.
        """
        validate_password_strength(password)
        name = clean_display_name(name)
        email = normalize_email(email)

        if await AccountRepository.get_by_email(self._db, email) is not None:
            raise _email_taken()

        password_hash = self._hasher.hash(password)
        plain_token = issue_opaque_token()

        try:
            account = await AccountRepository.create(
                self._db,
                email=email,
                name=name,
                provider=Provider.LOCAL,
                password_hash=password_hash,
                email_verification_token=digest_token(plain_token),
            )
        except IntegrityError as exc:
            await self._db.rollback()
            raise _email_taken() from exc

        public = AccountPublic.model_validate(account)

        if self._strict:
            try:
                await self._notifier.send_verification_email(email, plain_token)
            except Exception as exc:
                await self._db.rollback()
                logger.error(
                    "Registration rolled back: verification email failed",
                    extra={"email": email},
                )
                raise NotificationDeliveryError(
                    "Could not send the verification email"
                ) from exc
            await self._db.commit()
        else:
            await self._db.commit()
            await self._notify_quietly(
                self._notifier.send_verification_email,
                email,
                plain_token,
                purpose="verification",
            )

        logger.info("Registered local account", extra={"account_id": str(public.id)})
        return AuthResult(
            account=public,
            session_token=self._sessions.issue(public.id, public.email),
        )

    async def login(self, *, email: str, password: str) -> AuthResult:
        """Authenticate a local account by email and password.

        Email verification is not required to sign in.

        Raises:
            UnauthorizedError: Unknown email, external account, or wrong
                password. All are indistinguishable to the caller.
        """
        account = await AccountRepository.get_by_email(self._db, email)

        if account is None or not account.is_local or account.password_hash is None:
            # Security: always perform a bcrypt comparison so response time
            # does not reveal whether the email exists.
            self._hasher.verify_dummy(password)
            raise UnauthorizedError(_INVALID_CREDENTIALS_MSG)

        if not self._hasher.verify(password, account.password_hash):
            raise UnauthorizedError(_INVALID_CREDENTIALS_MSG)

        logger.info("Account signed in", extra={"account_id": str(account.id)})
        return AuthResult(
            account=AccountPublic.model_validate(account),
            session_token=self._sessions.issue(account.id, account.email),
        )

    async def authenticate(self, session_token: str) -> Account:
        """Resolve a session token to its (still existing) account.

        Raises:
            UnauthorizedError: Invalid or expired token, or the account has
                since been deleted.
        """
        claims = self._sessions.decode(session_token)
        account = await AccountRepository.get_by_id(self._db, claims.account_id)
        if account is None:
            raise UnauthorizedError()
        return account

    # -----------------------------------------------------------------------
    # Password reset
    # -----------------------------------------------------------------------

    async def forgot_password(self, email: str) -> MessageResult:
        """Open a reset window and email the link, if the account exists.

        Always returns the same message. Only local accounts get a reset
        token; the email is sent in the background and its failures are
        logged, never raised.
        """
        # Token generation runs in all paths
        plain_token = issue_opaque_token()
        account = await AccountRepository.get_by_email(self._db, email)

        if account is not None and account.is_local:
            account_id, account_email = account.id, account.email
            expires_at = self._clock() + expiry_for(TokenKind.RESET)
            await AccountRepository.set_reset_token(
                self._db,
                account_id,
                token_digest=digest_token(plain_token),
                expires_at=expires_at,
            )
            await self._db.commit()
            self._send_in_background(
                self._notifier.send_reset_email,
                account_email,
                plain_token,
                purpose="password reset",
            )

        return MessageResult(message=_FORGOT_PASSWORD_MSG)

    async def reset_password(self, *, token: str, new_password: str) -> MessageResult:
        """Replace the password of the live reset token holder.

        Raises:
            ValidationError: Weak new password.
            NotFoundError: Unknown, already used, or expired token. A token
                expiring exactly now is expired.
        """
        validate_password_strength(new_password)
        password_hash = self._hasher.hash(new_password)

        consumed = await AccountRepository.consume_reset_token(
            self._db,
            digest_token(token),
            password_hash=password_hash,
            now=self._clock(),
        )
        if not consumed:
            await self._db.rollback()
            raise NotFoundError("Reset token")

        await self._db.commit()
        logger.info("Password reset completed")
        return MessageResult(message=_PASSWORD_RESET_MSG)

    # -----------------------------------------------------------------------
    # Email verification
    # -----------------------------------------------------------------------

    async def verify_email(self, token: str) -> MessageResult:
        """Consume a verification token.

        Raises:
            NotFoundError: No unverified account holds this exact token.
        """
        consumed = await AccountRepository.consume_verification_token(
            self._db, digest_token(token)
        )
        if not consumed:
            await self._db.rollback()
            raise NotFoundError("Verification token")

        await self._db.commit()
        logger.info("Email verified")
        return MessageResult(message=_EMAIL_VERIFIED_MSG)

    async def resend_verification(self, email: str) -> MessageResult:
        """Issue a fresh verification token, invalidating the previous one.

        Silent no-op (same message) for unknown, external, or already
        verified accounts. The email is sent in the background.
        """
        plain_token = issue_opaque_token()
        account = await AccountRepository.get_by_email(self._db, email)

        if account is not None and account.is_local and not account.email_verified:
            account_id, account_email = account.id, account.email
            replaced = await AccountRepository.replace_verification_token(
                self._db, account_id, digest_token(plain_token)
            )
            await self._db.commit()
            if replaced:
                self._send_in_background(
                    self._notifier.send_verification_email,
                    account_email,
                    plain_token,
                    purpose="verification",
                )

        return MessageResult(message=_RESEND_VERIFICATION_MSG)

    async def check_verification_status(self, email: str) -> VerificationStatus:
        """Report whether an email is verified; unknown emails read as unverified."""
        account = await AccountRepository.get_by_email(self._db, email)
        verified = account is not None and account.email_verified
        return VerificationStatus(
            verified=verified,
            message=_STATUS_VERIFIED_MSG if verified else _STATUS_UNVERIFIED_MSG,
        )

    # -----------------------------------------------------------------------
    # Profile
    # -----------------------------------------------------------------------

    async def get_profile(self, account_id: uuid.UUID) -> AccountPublic:
        """Own account, without secrets.

        Raises:
            NotFoundError: Account no longer exists.
        """
        account = await AccountRepository.get_by_id(self._db, account_id)
        if account is None:
            raise NotFoundError("Account", str(account_id))
        return AccountPublic.model_validate(account)

    async def update_profile(
        self, account_id: uuid.UUID, changes: ProfileUpdate
    ) -> AccountPublic:
        """Edit name, bio or avatar of the own account.

        Raises:
            ValidationError: Blank name.
            NotFoundError: Account no longer exists.
        """
        fields = changes.model_dump(exclude_unset=True)
        if "name" in fields:
            if fields["name"] is None:
                del fields["name"]
            else:
                fields["name"] = clean_display_name(fields["name"])

        if not fields:
            return await self.get_profile(account_id)

        account = await AccountRepository.update(self._db, account_id, **fields)
        if account is None:
            await self._db.rollback()
            raise NotFoundError("Account", str(account_id))

        public = AccountPublic.model_validate(account)
        await self._db.commit()
        return public

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    @staticmethod
    async def _notify_quietly(
        send: SendEmail, email: str, token: str, *, purpose: str
    ) -> None:
        """Deliver an email; failures are logged and swallowed."""
        try:
            await send(email, token)
        except Exception:  # noqa: BLE001
            logger.warning(
                "Failed to send %s email",
                purpose,
                extra={"email": email},
                exc_info=True,
            )

    def _send_in_background(
        self, send: SendEmail, email: str, token: str, *, purpose: str
    ) -> None:
        task = asyncio.create_task(
            self._notify_quietly(send, email, token, purpose=purpose)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain_notifications(self) -> None:
        """Wait for every background email this service has started."""
        if self._pending:
            await asyncio.gather(*list(self._pending))
