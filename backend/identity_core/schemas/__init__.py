"""Pydantic schemas returned by the identity services."""

from identity_core.schemas.account import (
    AccountPage,
    AccountPublic,
    AuthResult,
    CleanupResult,
    MessageResult,
    ProfileUpdate,
    VerificationStatus,
)

__all__ = [
    "AccountPage",
    "AccountPublic",
    "AuthResult",
    "CleanupResult",
    "MessageResult",
    "ProfileUpdate",
    "VerificationStatus",
]
