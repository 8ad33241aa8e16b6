"""Clock used for every time-dependent decision.

Services take a ``Clock`` so token expiry and purge cutoffs can be pinned
in tests.
"""

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)
