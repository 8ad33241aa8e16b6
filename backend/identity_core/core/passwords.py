"""Password hashing and strength rules for local credentials.

Pipeline:
- validate_password_strength: format rules (sync, no I/O)
- PasswordHasher.hash: bcrypt with a fixed cost factor
- PasswordHasher.verify: bcrypt.checkpw, never a manual comparison
- PasswordHasher.verify_dummy: timing-safe stand-in when no credential exists
"""

from functools import cached_property

import bcrypt

from identity_core.core.errors import ValidationError

# bcrypt silently ignores (or, in recent releases, rejects) bytes past 72
_BCRYPT_MAX_BYTES = 72

_MIN_PASSWORD_LENGTH = 6

# Pre-computed cost-12 hash for timing-safe comparison on account-not-found.
# Security: prevents account enumeration via response time differences.
# Pre-generated to avoid ~300ms bcrypt computation on every startup.
DUMMY_HASH = b"$2b$12$ZP2PVB8yI35X.mkRqcUPUuSzJA1CNRt4dZ7X3cyrfJu.2S3w.Qen2"
_DUMMY_HASH_ROUNDS = 12


def validate_password_strength(password: str) -> None:
    """Validate password meets length requirements.

    6-72 characters, and no more than 72 bytes once UTF-8 encoded.

    Args:
        password: Plain-text password to validate.

    Raises:
        ValidationError: If password doesn't meet requirements.
    """
    if len(password) < _MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {_MIN_PASSWORD_LENGTH} characters"
        )
    if len(password.encode()) > _BCRYPT_MAX_BYTES:
        raise ValidationError(
            f"Password must be at most {_BCRYPT_MAX_BYTES} bytes"
        )


class PasswordHasher:
    """Salted, adaptive one-way hashing with bcrypt.

    Args:
        rounds: bcrypt cost factor. 12 takes a few hundred milliseconds on
            commodity hardware; tests use 4.
    """

    def __init__(self, rounds: int = 12) -> None:
        self._rounds = rounds

    @property
    def rounds(self) -> int:
        return self._rounds

    def hash(self, plaintext: str) -> str:
        """Hash a plain-text password.

        Args:
            plaintext: Password that already passed validate_password_strength.

        Returns:
            bcrypt digest as a str (salt and cost embedded).
        """
        return bcrypt.hashpw(
            plaintext.encode(), bcrypt.gensalt(rounds=self._rounds)
        ).decode()

    def verify(self, plaintext: str, digest: str) -> bool:
        """Check a password against a stored digest.

        Args:
            plaintext: Candidate password.
            digest: Stored bcrypt digest.

        Returns:
            True if the password matches.
        """
        password = plaintext.encode()
        if len(password) > _BCRYPT_MAX_BYTES:
            # Never produced by hash(); still pay the comparison cost.
            self.verify_dummy("")
            return False
        return bcrypt.checkpw(password, digest.encode())

    def verify_dummy(self, plaintext: str) -> None:
        """Burn one comparison when there is no stored credential."""
        bcrypt.checkpw(plaintext.encode()[:_BCRYPT_MAX_BYTES], self._dummy_hash)

    @cached_property
    def _dummy_hash(self) -> bytes:
        if self._rounds == _DUMMY_HASH_ROUNDS:
            return DUMMY_HASH
        return bcrypt.hashpw(b"dummy-password", bcrypt.gensalt(rounds=self._rounds))
