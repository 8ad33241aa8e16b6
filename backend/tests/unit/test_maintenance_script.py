"""Tests for the run_maintenance operator script."""

import asyncio
import json
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from identity_core.core.clock import utc_now
from identity_core.services.maintenance import UNVERIFIED_PURGE_JOB
from scripts.run_maintenance import _parse_args, run
from tests.conftest import MakeAccount


class TestParseArgs:
    def test_defaults_to_scheduler_mode(self):
        args = _parse_args([])
        assert args.job is None
        assert args.cleanup_unverified is False
        assert args.status is False

    def test_job_mode(self):
        assert _parse_args(["--job", UNVERIFIED_PURGE_JOB]).job == UNVERIFIED_PURGE_JOB


class TestRun:
    async def test_status_lists_schedule(
        self, session_factory: async_sessionmaker[AsyncSession]
    ):
        report = await run(_parse_args(["--status"]), session_factory)
        names = [job["name"] for job in json.loads(report)]
        assert UNVERIFIED_PURGE_JOB in names

    async def test_cleanup_reports_removed_accounts(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        make_account: MakeAccount,
    ):
        await make_account(
            "old@example.com",
            verified=False,
            created_at=utc_now() - timedelta(days=2),
        )
        await make_account("new@example.com", verified=False)
        report = json.loads(
            await run(_parse_args(["--cleanup-unverified"]), session_factory)
        )
        assert report == {"removed_count": 1, "emails": ["old@example.com"]}

    async def test_single_job_run(
        self, session_factory: async_sessionmaker[AsyncSession]
    ):
        report = await run(_parse_args(["--job", UNVERIFIED_PURGE_JOB]), session_factory)
        assert json.loads(report) == {"job": UNVERIFIED_PURGE_JOB, "status": "completed"}

    async def test_scheduler_mode_stops_on_event(
        self, session_factory: async_sessionmaker[AsyncSession]
    ):
        stop = asyncio.Event()
        task = asyncio.create_task(run(_parse_args([]), session_factory, stop_event=stop))
        await asyncio.sleep(0.2)
        stop.set()
        assert await asyncio.wait_for(task, timeout=5) is None
