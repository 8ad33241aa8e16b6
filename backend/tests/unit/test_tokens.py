"""Tests for opaque verification and reset tokens."""

import re
from datetime import timedelta

from identity_core.core.config import settings
from identity_core.core.tokens import (
    TokenKind,
    digest_token,
    expiry_for,
    issue_opaque_token,
)

_URLSAFE = re.compile(r"^[A-Za-z0-9_-]+$")


class TestIssueOpaqueToken:
    """Tests for issue_opaque_token()."""

    def test_token_is_urlsafe(self):
        assert _URLSAFE.match(issue_opaque_token())

    def test_token_carries_256_bits(self):
        """32 random bytes encode to 43 base64url characters."""
        assert len(issue_opaque_token()) == 43

    def test_tokens_are_unique(self):
        tokens = {issue_opaque_token() for _ in range(200)}
        assert len(tokens) == 200


class TestDigestToken:
    """Tests for digest_token()."""

    def test_digest_is_sha256_hex(self):
        digest = digest_token("abc")
        assert len(digest) == 64
        assert digest == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"

    def test_digest_is_deterministic(self):
        token = issue_opaque_token()
        assert digest_token(token) == digest_token(token)

    def test_digest_differs_from_token(self):
        token = issue_opaque_token()
        assert digest_token(token) != token


class TestExpiryFor:
    """Tests for expiry_for()."""

    def test_verification_tokens_never_expire(self):
        assert expiry_for(TokenKind.VERIFICATION) is None

    def test_reset_tokens_use_configured_ttl(self):
        assert expiry_for(TokenKind.RESET) == timedelta(
            minutes=settings.reset_token_ttl_minutes
        )

    def test_reset_ttl_defaults_to_one_hour(self, monkeypatch):
        monkeypatch.setattr(settings, "reset_token_ttl_minutes", 60)
        assert expiry_for(TokenKind.RESET) == timedelta(hours=1)
