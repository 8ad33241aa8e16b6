"""Grant the super admin title to an existing account.

Standalone operator script for a fresh deployment, where no super admin
exists yet to promote anyone. Fails if another account already holds
the title; use the role authority transfer for that.

Usage:
    cd backend && python -m scripts.bootstrap_super_admin admin@example.com
"""

import argparse
import logging

logger = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("email", help="Email of the account to promote")
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    """CLI entry point: promote the account against the configured database."""
    from identity_core.core.database import async_session_factory, engine
    from identity_core.core.errors import IdentityError
    from identity_core.services.role_authority import bootstrap_super_admin

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args = _parse_args(argv)

    try:
        async with async_session_factory() as session:
            account = await bootstrap_super_admin(session, args.email)
    except IdentityError as exc:
        logger.error("Bootstrap failed: %s (%s)", exc.message, exc.code)
        return 1
    finally:
        await engine.dispose()

    logger.info("Super admin is now %s (%s)", account.email, account.id)
    return 0


if __name__ == "__main__":
    import asyncio
    import sys

    sys.exit(asyncio.run(main()))
