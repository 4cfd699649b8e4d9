"""Family lookups, duplicate guard and shared survey errors."""

import logging
import secrets
import time

from sqlalchemy import select
from sqlalchemy.orm import Session

from parish_census.db.models import Family

logger = logging.getLogger(__name__)


class SurveyServiceError(Exception):
    """Base exception for survey service errors."""

    pass


class SurveyValidationError(SurveyServiceError):
    """Payload is missing data needed to register the household."""

    pass


class DuplicateFamilyError(SurveyServiceError):
    """A family with the same surname, phone and address already exists."""

    def __init__(self, existing: Family):
        self.existing = existing
        super().__init__(
            f"Family already registered (id={existing.id}, code={existing.family_code})"
        )


class SurveyNotFoundError(SurveyServiceError):
    """Survey (family) not found."""

    pass


class SurveyPersistenceError(SurveyServiceError):
    """The aggregate write failed and was rolled back."""

    pass


# =============================================================================
# Duplicate guard
# =============================================================================

def find_duplicate_family(
    db: Session,
    surname: str,
    phone: str,
    address: str,
) -> Family | None:
    """
    Exact match on (surname, phone, address).

    No case or whitespace normalization: variants are not detected, but a hit
    is always a genuine duplicate.
    """
    return db.execute(
        select(Family)
        .where(
            Family.surname == surname,
            Family.phone == phone,
            Family.address == address,
        )
        .limit(1)
    ).scalar_one_or_none()


def ensure_no_duplicate_family(db: Session, surname: str, phone: str, address: str) -> None:
    """
    Raises:
        DuplicateFamilyError: The triple is already registered
    """
    existing = find_duplicate_family(db, surname, phone, address)
    if existing is not None:
        logger.info("Duplicate household rejected existing_family_id=%s", existing.id)
        raise DuplicateFamilyError(existing)


# =============================================================================
# Lookups & codes
# =============================================================================

def get_family(db: Session, family_id: int) -> Family | None:
    return db.get(Family, family_id)


def generate_family_code() -> str:
    """Human-readable family code: FAM_<epoch-ms>_<8 hex>."""
    return f"FAM_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def new_transaction_ref() -> str:
    """Correlation id for one aggregate write or deletion."""
    return f"txn_{int(time.time() * 1000)}_{secrets.token_hex(4)}"
