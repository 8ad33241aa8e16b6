"""Shared fixtures for identity core tests.

Each test gets its own SQLite file database (aiosqlite) built from the
ORM metadata, so the unique constraints, check constraints and the
partial super admin index are exercised for real.
"""

import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from identity_core.core.clock import utc_now
from identity_core.core.errors import NotificationDeliveryError
from identity_core.core.passwords import PasswordHasher
from identity_core.core.sessions import SessionIssuer
from identity_core.models import Account, Base, Provider, Role
from identity_core.services.account_lifecycle import AccountLifecycleService

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow
TEST_PASSWORD = "correct-horse-battery"  # nosec B105

# Fixed "now" for token expiry and purge cutoffs
T0 = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)

# Lowest cost bcrypt accepts; keeps the suite fast
_TEST_BCRYPT_ROUNDS = 4


class FrozenClock:
    """Clock double that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


class RecordingNotifier:
    """Notifier double that records every email and can be made to fail."""

    def __init__(self) -> None:
        self.verification_emails: list[tuple[str, str]] = []
        self.reset_emails: list[tuple[str, str]] = []
        self.fail = False

    async def send_verification_email(self, email: str, token: str) -> None:
        if self.fail:
            raise NotificationDeliveryError()
        self.verification_emails.append((email, token))

    async def send_reset_email(self, email: str, token: str) -> None:
        if self.fail:
            raise NotificationDeliveryError()
        self.reset_emails.append((email, token))

    def last_verification_token(self) -> str:
        return self.verification_emails[-1][1]

    def last_reset_token(self) -> str:
        return self.reset_emails[-1][1]


MakeAccount = Callable[..., Awaitable[Account]]


@pytest.fixture
async def db_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh SQLite database with the accounts schema."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'identity.db'}",
        connect_args={"timeout": 15},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=_TEST_BCRYPT_ROUNDS)


@pytest.fixture
def session_issuer() -> SessionIssuer:
    return SessionIssuer(secret=TEST_AUTH_SECRET)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(T0)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def lifecycle(
    db_session: AsyncSession,
    notifier: RecordingNotifier,
    hasher: PasswordHasher,
    session_issuer: SessionIssuer,
    clock: FrozenClock,
) -> AccountLifecycleService:
    """Lifecycle service in the lenient notification posture."""
    return AccountLifecycleService(
        db_session,
        notifier=notifier,
        hasher=hasher,
        sessions=session_issuer,
        clock=clock,
        strict_notifications=False,
    )


@pytest.fixture
def make_account(db_session: AsyncSession, hasher: PasswordHasher) -> MakeAccount:
    """Factory inserting committed accounts directly, bypassing the services."""
    password_hash = hasher.hash(TEST_PASSWORD)

    async def _make(
        email: str,
        *,
        role: Role = Role.USER,
        provider: Provider = Provider.LOCAL,
        verified: bool = True,
        created_at: datetime | None = None,
        name: str = "Test User",
    ) -> Account:
        is_local = provider is Provider.LOCAL
        account = Account(
            id=uuid.uuid4(),
            email=email.lower(),
            name=name,
            provider=provider.value,
            password_hash=password_hash if is_local else None,
            external_id=None if is_local else f"ext-{uuid.uuid4().hex[:12]}",
            email_verified=verified,
            role=role.value,
            created_at=created_at or utc_now(),
        )
        db_session.add(account)
        await db_session.commit()
        return account

    return _make
