"""Tests for password hashing and strength rules."""

from unittest.mock import patch

import bcrypt
import pytest

from identity_core.core.errors import ValidationError
from identity_core.core.passwords import (
    DUMMY_HASH,
    PasswordHasher,
    validate_password_strength,
)


class TestValidatePasswordStrength:
    """Tests for validate_password_strength()."""

    def test_valid_password_passes(self):
        validate_password_strength("hunter22")

    def test_exactly_six_chars_passes(self):
        validate_password_strength("abcdef")

    def test_too_short_raises(self):
        with pytest.raises(ValidationError, match="at least 6"):
            validate_password_strength("abcde")

    def test_exactly_72_bytes_passes(self):
        validate_password_strength("a" * 72)

    def test_over_72_bytes_raises(self):
        with pytest.raises(ValidationError, match="72 bytes"):
            validate_password_strength("a" * 73)

    def test_multibyte_characters_count_as_bytes(self):
        """37 two-byte characters are 74 bytes, over the bcrypt limit."""
        with pytest.raises(ValidationError):
            validate_password_strength("é" * 37)

    def test_error_is_validation_kind(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_password_strength("")
        assert exc_info.value.code == "VALIDATION_ERROR"
        assert exc_info.value.status_code == 400


class TestPasswordHasher:
    """Tests for PasswordHasher hash/verify."""

    def test_hash_is_bcrypt_with_configured_cost(self):
        digest = PasswordHasher(rounds=4).hash("hunter22")
        assert digest.startswith("$2b$04$")

    def test_hash_never_equals_plaintext(self):
        assert PasswordHasher(rounds=4).hash("hunter22") != "hunter22"

    def test_same_password_hashes_differently(self):
        """Each hash carries its own salt."""
        hasher = PasswordHasher(rounds=4)
        assert hasher.hash("hunter22") != hasher.hash("hunter22")

    def test_verify_accepts_correct_password(self):
        hasher = PasswordHasher(rounds=4)
        assert hasher.verify("hunter22", hasher.hash("hunter22")) is True

    def test_verify_rejects_wrong_password(self):
        hasher = PasswordHasher(rounds=4)
        assert hasher.verify("hunter23", hasher.hash("hunter22")) is False

    def test_verify_rejects_oversized_password_without_error(self):
        hasher = PasswordHasher(rounds=4)
        digest = hasher.hash("a" * 72)
        assert hasher.verify("a" * 73, digest) is False

    def test_oversized_password_still_pays_comparison(self):
        hasher = PasswordHasher(rounds=4)
        digest = hasher.hash("hunter22")
        with patch.object(hasher, "verify_dummy") as dummy:
            hasher.verify("x" * 100, digest)
        dummy.assert_called_once()

    def test_default_cost_is_twelve(self):
        assert PasswordHasher().rounds == 12

    def test_verify_dummy_completes(self):
        PasswordHasher(rounds=4).verify_dummy("anything")


class TestDummyHash:
    """Tests for DUMMY_HASH constant."""

    def test_is_valid_bcrypt_at_production_cost(self):
        assert DUMMY_HASH.startswith(b"$2b$12$")

    def test_comparison_completes_without_error(self):
        """bcrypt.checkpw with DUMMY_HASH returns False without crashing."""
        assert bcrypt.checkpw(b"anything", DUMMY_HASH) is False
