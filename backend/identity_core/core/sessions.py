"""Stateless session tokens.

Signed HS256 JWTs asserting the subject's identity. No revocation list:
a session is valid until its own expiry, or moot once the account is
deleted (authenticate() re-loads the subject).
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt

from identity_core.core.clock import Clock, utc_now
from identity_core.core.config import settings
from identity_core.core.errors import UnauthorizedError

logger = logging.getLogger(__name__)

_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ["sub", "exp", "iat", "aud", "iss"]


@dataclass(frozen=True)
class SessionClaims:
    """Decoded session token.

    Attributes:
        account_id: Subject of the session.
        email: Email at issuance time (convenience only; not authoritative).
        issued_at: iat claim.
        expires_at: exp claim.
    """

    account_id: uuid.UUID
    email: str
    issued_at: datetime
    expires_at: datetime


class SessionIssuer:
    """Mints and verifies signed session tokens.

    Args:
        secret: HMAC signing secret (process-wide configuration).
        issuer: iss claim.
        audience: aud claim.
        ttl: Session lifetime.
        clock: Source of the current time.
    """

    def __init__(
        self,
        *,
        secret: str,
        issuer: str = "identity-core",
        audience: str = "identity-core",
        ttl: timedelta = timedelta(hours=1),
        clock: Clock = utc_now,
    ) -> None:
        if not secret:
            msg = "Session signing secret must not be empty"
            raise ValueError(msg)
        self._secret = secret
        self._issuer = issuer
        self._audience = audience
        self._ttl = ttl
        self._clock = clock

    def issue(self, account_id: uuid.UUID, email: str) -> str:
        """Create a signed session token.

        Args:
            account_id: Account UUID for the sub claim.
            email: Account email, carried for convenience.

        Returns:
            Encoded JWT string.
        """
        now = self._clock()
        payload = {
            "sub": str(account_id),
            "email": email,
            "aud": self._audience,
            "iss": self._issuer,
            "iat": now,
            "exp": now + self._ttl,
        }
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def decode(self, token: str) -> SessionClaims:
        """Verify signature and claims of a session token.

        Args:
            token: Encoded JWT.

        Returns:
            SessionClaims for the subject.

        Raises:
            UnauthorizedError: For any invalid, expired, or malformed token.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[_ALGORITHM],
                audience=self._audience,
                issuer=self._issuer,
                options={"require": _REQUIRED_CLAIMS},
            )
            claims = SessionClaims(
                account_id=uuid.UUID(payload["sub"]),
                email=payload.get("email", ""),
                issued_at=datetime.fromtimestamp(payload["iat"], UTC),
                expires_at=datetime.fromtimestamp(payload["exp"], UTC),
            )
        except (jwt.InvalidTokenError, KeyError, ValueError, TypeError) as exc:
            logger.debug("Rejected session token: %s", type(exc).__name__)
            raise UnauthorizedError() from exc
        return claims


def build_session_issuer() -> SessionIssuer:
    """SessionIssuer configured from settings."""
    return SessionIssuer(
        secret=settings.auth_secret.get_secret_value(),
        issuer=settings.auth_issuer,
        audience=settings.auth_audience,
        ttl=timedelta(minutes=settings.session_ttl_minutes),
    )
