"""Rate limiting configuration for the census API."""

import os

from slowapi import Limiter
from slowapi.util import get_remote_address

from parish_census.core.config import settings

# Single-process deployment: limits are kept in memory per worker
IS_TESTING = os.getenv("TESTING", "").lower() in ("1", "true", "yes")
DEFAULT_LIMITS = (
    []
    if IS_TESTING or settings.RATE_LIMIT_API <= 0
    else [f"{settings.RATE_LIMIT_API}/minute"]
)

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    default_limits=DEFAULT_LIMITS,
    enabled=not IS_TESTING,
)


def intake_limit() -> str:
    """Per-client limit for one-shot survey submissions."""
    return f"{max(settings.RATE_LIMIT_INTAKE, 1)}/minute"
