"""Opaque single-use tokens for email verification and password reset.

Tokens carry no information. The plain value goes to the user by email;
only its SHA-256 digest is stored on the account, and lookups digest the
presented value first.
"""

import hashlib
import secrets
from datetime import timedelta
from enum import Enum

from identity_core.core.config import settings

# 32 random bytes -> 256 bits of entropy, 43 URL-safe characters
_TOKEN_BYTES = 32


class TokenKind(str, Enum):
    """Purpose of an opaque token.

    Values:
        VERIFICATION: Proves control of the registered email. No expiry;
            superseded when a new one is issued.
        RESET: Authorizes a password change. Expires after the reset TTL.
    """

    VERIFICATION = "verification"
    RESET = "reset"


def issue_opaque_token() -> str:
    """Generate a cryptographically random, URL-safe bearer token."""
    return secrets.token_urlsafe(_TOKEN_BYTES)


def digest_token(token: str) -> str:
    """SHA-256 hex digest of a plain token, as stored in the record."""
    return hashlib.sha256(token.encode()).hexdigest()


def expiry_for(kind: TokenKind) -> timedelta | None:
    """Lifetime of a token kind.

    Args:
        kind: Token purpose.

    Returns:
        None for verification tokens (they never expire), the configured
        reset TTL (1 hour by default) for reset tokens.
    """
    if kind is TokenKind.RESET:
        return timedelta(minutes=settings.reset_token_ttl_minutes)
    return None
