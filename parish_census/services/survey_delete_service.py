"""Survey deletion: a family and every dependent row, in dependency order."""

import logging

from sqlalchemy import delete, update
from sqlalchemy.exc import OperationalError, ProgrammingError, SQLAlchemyError
from sqlalchemy.orm import Session

from parish_census.db.models import (
    Family,
    FamilyAqueductSystem,
    FamilyHousingType,
    FamilyWasteDisposal,
    FamilyWastewaterSystem,
    Person,
    SurveyDraft,
)
from parish_census.schemas.survey import SurveyDeletionResult
from parish_census.services import family_service
from parish_census.services.family_service import SurveyNotFoundError, SurveyPersistenceError

logger = logging.getLogger(__name__)


# Result field -> association model; deleted in this order
ASSOCIATION_DELETE_ORDER: list[tuple[str, type]] = [
    ("waste_disposals", FamilyWasteDisposal),
    ("aqueduct_systems", FamilyAqueductSystem),
    ("wastewater_systems", FamilyWastewaterSystem),
    ("housing_types", FamilyHousingType),
]


def _delete_associations(db: Session, model: type, family_id: int) -> int:
    """Delete one association table's rows; a missing table counts as zero."""
    try:
        with db.begin_nested():
            return db.execute(delete(model).where(model.family_id == family_id)).rowcount or 0
    except (OperationalError, ProgrammingError) as exc:
        logger.warning(
            "Association table %s unavailable, skipping family_id=%s: %s",
            model.__tablename__,
            family_id,
            exc.orig,
        )
        return 0


def delete_survey(db: Session, family_id: int) -> SurveyDeletionResult:
    """
    Remove a survey in one transaction.

    Raises:
        SurveyNotFoundError: No family row was deleted (nothing is kept)
        SurveyPersistenceError: Deletion failed and was rolled back
    """
    transaction_ref = family_service.new_transaction_ref()
    try:
        persons = db.execute(delete(Person).where(Person.family_id == family_id)).rowcount or 0
        counts = {
            field: _delete_associations(db, model, family_id)
            for field, model in ASSOCIATION_DELETE_ORDER
        }
        drafts_unlinked = db.execute(
            update(SurveyDraft)
            .where(SurveyDraft.family_id == family_id)
            .values(family_id=None)
        ).rowcount or 0
        families = db.execute(delete(Family).where(Family.id == family_id)).rowcount or 0
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Survey deletion rolled back family_id=%s txn=%s", family_id, transaction_ref)
        raise SurveyPersistenceError("Could not delete survey") from exc

    if families == 0:
        db.rollback()
        raise SurveyNotFoundError(f"Survey {family_id} not found")

    db.commit()
    logger.info(
        "Survey deleted family_id=%s persons=%s associations=%s txn=%s",
        family_id,
        persons,
        sum(counts.values()),
        transaction_ref,
    )
    return SurveyDeletionResult(
        family_id=family_id,
        persons=persons,
        drafts_unlinked=drafts_unlinked,
        transaction_ref=transaction_ref,
        **counts,
    )
