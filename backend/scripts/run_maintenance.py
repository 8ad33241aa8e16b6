"""Run the account maintenance jobs.

Standalone process hosting the maintenance scheduler, or a one-off run
of a single job or of the manual unverified account purge.

Usage:
    cd backend && python -m scripts.run_maintenance
    cd backend && python -m scripts.run_maintenance --job purge_expired_reset_tokens
    cd backend && python -m scripts.run_maintenance --cleanup-unverified
    cd backend && python -m scripts.run_maintenance --status
"""

import argparse
import asyncio
import json
import logging
import signal

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from identity_core.services.maintenance import (
    MaintenanceScheduler,
    manual_cleanup_unverified_accounts,
)

logger = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--job", help="Run one job once and exit")
    mode.add_argument(
        "--cleanup-unverified",
        action="store_true",
        help="Purge stale unverified accounts now and print what was removed",
    )
    mode.add_argument(
        "--status",
        action="store_true",
        help="Print the job schedule and exit",
    )
    return parser.parse_args(argv)


async def run(
    args: argparse.Namespace,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    stop_event: asyncio.Event | None = None,
) -> str | None:
    """Execute the selected mode.

    Returns:
        JSON report for one-off modes, None after the scheduler stops.
    """
    scheduler = MaintenanceScheduler(session_factory)

    if args.status:
        return json.dumps(
            [
                {
                    "name": s.name,
                    "interval_seconds": s.interval_seconds,
                    "description": s.description,
                }
                for s in scheduler.status()
            ],
            indent=2,
        )

    if args.job:
        await scheduler.run_job_once(args.job)
        return json.dumps({"job": args.job, "status": "completed"})

    if args.cleanup_unverified:
        async with session_factory() as session:
            result = await manual_cleanup_unverified_accounts(session)
        return result.model_dump_json(indent=2)

    stop_event = stop_event or asyncio.Event()
    scheduler.start()
    try:
        await stop_event.wait()
    finally:
        await scheduler.stop()
    return None


async def main(argv: list[str] | None = None) -> None:
    """CLI entry point: run against the configured database."""
    from identity_core.core.config import settings
    from identity_core.core.database import async_session_factory, engine

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args = _parse_args(argv)

    if not (args.job or args.cleanup_unverified or args.status):
        if not settings.maintenance_enabled:
            logger.warning("Maintenance is disabled (MAINTENANCE_ENABLED=false)")
            return

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        report = await run(args, async_session_factory, stop_event=stop_event)
    finally:
        await engine.dispose()

    if report is not None:
        print(report)  # noqa: T201


if __name__ == "__main__":
    asyncio.run(main())
