"""Rate limiting configuration using slowapi.

Provides the module-level Limiter. ``SlowAPIMiddleware`` (wired in main.py)
applies ``RATE_LIMIT_DEFAULT`` to every route; the leave write routes carry
their own ``@limiter.limit(write_limit)`` instead.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from leave_ledger.config import settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
)


def write_limit() -> str:
    """Limit for submit/approve/reject/cancel/provision, read per request."""
    return settings.RATE_LIMIT_WRITE
