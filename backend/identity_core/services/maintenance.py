"""Scheduled maintenance of stale accounts and tokens.

Three recurring jobs:
- Unverified account purge (daily): local accounts still unverified
  24 hours after creation are deleted
- Expired reset token purge (every 6 hours): reset token pairs whose
  expiry has passed are cleared; accounts are kept
- Account status telemetry (hourly): total / verified / unverified counts

Each purge is a single conditional statement, so an account verified
while a purge runs is never deleted. The scheduler runs one asyncio task
per job; a failing run is logged and never stops the loop.
"""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from identity_core.core.clock import Clock, utc_now
from identity_core.core.config import Settings, settings
from identity_core.models.account import Account, Provider
from identity_core.repositories.account_repository import AccountRepository
from identity_core.schemas.account import CleanupResult

logger = structlog.get_logger()

UNVERIFIED_PURGE_JOB = "purge_unverified_accounts"
RESET_TOKEN_PURGE_JOB = "purge_expired_reset_tokens"
STATUS_LOG_JOB = "log_account_status"


@dataclass(frozen=True)
class PurgeResult:
    """Result of an unverified account purge.

    Attributes:
        removed_count: Number of accounts deleted.
        emails: Emails of the deleted accounts, sorted.
    """

    removed_count: int
    emails: tuple[str, ...]


@dataclass(frozen=True)
class AccountStats:
    """Account counts for status telemetry."""

    total: int
    verified: int
    unverified: int


JobRunner = Callable[[AsyncSession, datetime], Awaitable[None]]


@dataclass(frozen=True)
class MaintenanceJob:
    """A recurring job.

    Attributes:
        name: Unique job name.
        interval_seconds: Seconds between runs.
        description: Human-readable purpose, reported by status().
        run: Coroutine function receiving a session and the current time.
    """

    name: str
    interval_seconds: int
    description: str
    run: JobRunner


@dataclass(frozen=True)
class JobStatus:
    """Snapshot of one scheduled job."""

    name: str
    interval_seconds: int
    description: str
    is_running: bool
    last_run_at: datetime | None


# =============================================================================
# Purges and telemetry
# =============================================================================


async def purge_unverified_accounts(
    db: AsyncSession,
    *,
    now: datetime,
    retention: timedelta | None = None,
) -> PurgeResult:
    """Delete local accounts still unverified after the retention window.

    An account created exactly ``retention`` before ``now`` is retained.
    External accounts are never touched. Does not commit.

    Args:
        db: Database session.
        now: Current time.
        retention: Grace period. Defaults to the configured hours.

    Returns:
        PurgeResult with the deleted emails.
    """
    if retention is None:
        retention = timedelta(hours=settings.unverified_retention_hours)
    cutoff = now - retention

    emails = await AccountRepository.delete_where_returning_emails(
        db,
        Account.provider == Provider.LOCAL.value,
        Account.email_verified.is_(False),
        Account.created_at < cutoff,
    )
    return PurgeResult(removed_count=len(emails), emails=tuple(sorted(emails)))


async def purge_expired_reset_tokens(db: AsyncSession, *, now: datetime) -> int:
    """Clear reset tokens expiring at or before ``now``. Does not commit.

    Returns:
        Number of accounts whose reset token was cleared.
    """
    return await AccountRepository.clear_reset_tokens_expired_by(db, now)


async def collect_account_stats(db: AsyncSession) -> AccountStats:
    total = await AccountRepository.count_where(db)
    verified = await AccountRepository.count_where(db, Account.email_verified.is_(True))
    return AccountStats(total=total, verified=verified, unverified=total - verified)


async def manual_cleanup_unverified_accounts(
    db: AsyncSession, *, clock: Clock = utc_now
) -> CleanupResult:
    """Run the unverified account purge now and report what it removed.

    Same predicate as the scheduled job. Commits.
    """
    result = await purge_unverified_accounts(db, now=clock())
    await db.commit()
    logger.info(
        "Manual unverified account purge",
        removed_count=result.removed_count,
        emails=list(result.emails),
    )
    return CleanupResult(removed_count=result.removed_count, emails=list(result.emails))


# =============================================================================
# Job runners
# =============================================================================


async def _run_unverified_purge(db: AsyncSession, now: datetime) -> None:
    result = await purge_unverified_accounts(db, now=now)
    if result.removed_count:
        logger.info(
            "Purged unverified accounts",
            removed_count=result.removed_count,
            emails=list(result.emails),
        )
    else:
        logger.debug("No unverified accounts to purge")


async def _run_reset_token_purge(db: AsyncSession, now: datetime) -> None:
    cleared = await purge_expired_reset_tokens(db, now=now)
    if cleared:
        logger.info("Cleared expired reset tokens", cleared_count=cleared)
    else:
        logger.debug("No expired reset tokens to clear")


async def _run_status_log(db: AsyncSession, now: datetime) -> None:  # noqa: ARG001
    stats = await collect_account_stats(db)
    logger.info(
        "Account status",
        total=stats.total,
        verified=stats.verified,
        unverified=stats.unverified,
    )


def default_jobs(config: Settings | None = None) -> list[MaintenanceJob]:
    """The three recurring jobs with their configured intervals."""
    config = config or settings
    return [
        MaintenanceJob(
            name=UNVERIFIED_PURGE_JOB,
            interval_seconds=config.purge_unverified_interval_seconds,
            description=(
                f"Delete local accounts unverified after "
                f"{config.unverified_retention_hours} hours"
            ),
            run=_run_unverified_purge,
        ),
        MaintenanceJob(
            name=RESET_TOKEN_PURGE_JOB,
            interval_seconds=config.purge_reset_tokens_interval_seconds,
            description="Clear expired password reset tokens",
            run=_run_reset_token_purge,
        ),
        MaintenanceJob(
            name=STATUS_LOG_JOB,
            interval_seconds=config.status_log_interval_seconds,
            description="Log total, verified and unverified account counts",
            run=_run_status_log,
        ),
    ]


# =============================================================================
# Scheduler
# =============================================================================


class MaintenanceScheduler:
    """Runs maintenance jobs on their intervals as asyncio tasks.

    Lifecycle:
    - start() creates one task per job; each runs immediately, then sleeps.
    - stop() cancels the tasks and waits for them.
    - run_job_once() executes a single run (for testing and operators).

    Args:
        session_factory: Async session factory; every run gets its own session.
        jobs: Jobs to schedule. Defaults to default_jobs().
        clock: Source of "now" passed to each run.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        jobs: list[MaintenanceJob] | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._session_factory = session_factory
        self._jobs = {job.name: job for job in (jobs or default_jobs())}
        self._clock = clock
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._last_run_at: dict[str, datetime] = {}
        self._running = False

    @property
    def is_running(self) -> bool:
        """Whether any job task is currently active."""
        return self._running and any(not t.done() for t in self._tasks.values())

    @property
    def job_names(self) -> list[str]:
        return list(self._jobs)

    def start(self) -> None:
        """Start every job loop.

        No-op if already running. Must be called from an async context
        (running event loop).
        """
        if self.is_running:
            logger.warning("Maintenance scheduler already running")
            return

        self._running = True
        for job in self._jobs.values():
            self._tasks[job.name] = asyncio.create_task(
                self._run_loop(job), name=f"maintenance:{job.name}"
            )
        logger.info("Maintenance scheduler started", jobs=self.job_names)

    async def stop(self) -> None:
        """Cancel every job loop and wait for it to finish."""
        self._running = False
        for task in self._tasks.values():
            if not task.done():
                task.cancel()
        for task in self._tasks.values():
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()
        logger.info("Maintenance scheduler stopped")

    async def run_job_once(self, name: str) -> None:
        """Execute one run of a job in its own committed session.

        Raises:
            KeyError: Unknown job name.
            Exception: Whatever the job raised; the session is rolled back.
        """
        job = self._jobs[name]
        async with self._session_factory() as db:
            await job.run(db, self._clock())
            await db.commit()
        self._last_run_at[name] = self._clock()

    def status(self) -> list[JobStatus]:
        """Describe every job: interval, purpose, and last completed run."""
        return [
            JobStatus(
                name=job.name,
                interval_seconds=job.interval_seconds,
                description=job.description,
                is_running=(
                    self._running
                    and job.name in self._tasks
                    and not self._tasks[job.name].done()
                ),
                last_run_at=self._last_run_at.get(job.name),
            )
            for job in self._jobs.values()
        ]

    async def _run_loop(self, job: MaintenanceJob) -> None:
        """Background loop: run → sleep → repeat."""
        try:
            while self._running:
                try:
                    await self.run_job_once(job.name)
                except Exception:  # noqa: BLE001
                    logger.exception("Maintenance job failed", job=job.name)
                await asyncio.sleep(job.interval_seconds)
        except asyncio.CancelledError:
            logger.debug("Maintenance loop cancelled", job=job.name)
            raise
