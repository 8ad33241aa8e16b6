"""Account projections returned to callers.

No schema here carries password_hash, verification tokens, or reset
tokens; services convert ORM rows with AccountPublic.model_validate()
before anything leaves the core.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from identity_core.core.validation import MAX_NAME_LENGTH
from identity_core.models.account import Provider, Role


class AccountPublic(BaseModel):
    """Account without secrets."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    name: str
    provider: Provider
    external_id: str | None = None
    avatar: str | None = None
    bio: str | None = None
    email_verified: bool
    role: Role
    created_at: datetime
    updated_at: datetime


class AuthResult(BaseModel):
    """Successful registration or login."""

    account: AccountPublic
    session_token: str


class MessageResult(BaseModel):
    """Generic acknowledgement."""

    message: str


class VerificationStatus(BaseModel):
    """Answer to a verification status check."""

    verified: bool
    message: str


class CleanupResult(BaseModel):
    """Outcome of a manual unverified-account purge."""

    removed_count: int
    emails: list[str]


class AccountPage(BaseModel):
    """One page of the admin account listing."""

    items: list[AccountPublic]
    total: int
    page: int
    per_page: int


class ProfileUpdate(BaseModel):
    """Self-service profile edit. Only these fields are writable."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=MAX_NAME_LENGTH)
    bio: str | None = Field(default=None, max_length=500)
    avatar: str | None = Field(default=None, max_length=2048)
