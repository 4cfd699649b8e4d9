"""Structured logging helpers (PII-safe)."""

import logging
from typing import Any

from parish_census.core.config import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def configure_logging() -> None:
    """Install the process-wide log format at the configured level."""
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)


def build_log_context(
    *,
    user_id: str | None = None,
    family_id: int | None = None,
    draft_id: str | None = None,
    transaction_ref: str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict (identifiers only, never names or phones)."""
    context: dict[str, Any] = {}
    if user_id:
        context["user_id"] = user_id
    if family_id is not None:
        context["family_id"] = family_id
    if draft_id:
        context["draft_id"] = draft_id
    if transaction_ref:
        context["transaction_ref"] = transaction_ref
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context
