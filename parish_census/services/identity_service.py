"""Temporary identification numbers for members without a national ID.

Candidates look like ``TEMP_1718000000000_3fa85f64a1b2_1``: category tag,
epoch milliseconds, 12 random hex characters and the attempt number. Each
candidate is checked against the person store before it is handed out.
Uniqueness holds at check time only; the unique constraint on
``persons.identification`` has the final word.
"""

import logging
import secrets
import time
from typing import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from parish_census.core.config import settings
from parish_census.db.enums import IdentityCategory
from parish_census.db.models import Person

logger = logging.getLogger(__name__)


class IdentityExhaustedError(Exception):
    """Every candidate collided; the generator is broken, not contended."""

    def __init__(self, category: IdentityCategory, attempts: int):
        self.category = category
        self.attempts = attempts
        super().__init__(
            f"Could not generate a unique {category.value} identification after {attempts} attempts"
        )


def build_candidate(category: IdentityCategory, attempt: int) -> str:
    """Build one identification candidate."""
    timestamp_ms = int(time.time() * 1000)
    return f"{category.value}_{timestamp_ms}_{secrets.token_hex(6)}_{attempt}"


def generate_identity(
    category: IdentityCategory,
    exists: Callable[[str], bool],
    max_attempts: int | None = None,
) -> str:
    """
    Generate an identification not yet present according to `exists`.

    Raises:
        IdentityExhaustedError: All attempts collided
    """
    attempts = max_attempts if max_attempts is not None else settings.IDENTITY_MAX_ATTEMPTS
    for attempt in range(1, attempts + 1):
        candidate = build_candidate(category, attempt)
        if not exists(candidate):
            return candidate
        logger.warning(
            "Identification collision category=%s attempt=%s/%s",
            category.value,
            attempt,
            attempts,
        )
    raise IdentityExhaustedError(category, attempts)


def identification_exists(db: Session) -> Callable[[str], bool]:
    """Existence check backed by the persons table."""

    def _exists(candidate: str) -> bool:
        return (
            db.execute(
                select(Person.id).where(Person.identification == candidate).limit(1)
            ).first()
            is not None
        )

    return _exists


def generate_unique_identification(db: Session, category: IdentityCategory) -> str:
    """Generate an identification confirmed absent from the persons table."""
    return generate_identity(category, identification_exists(db))
