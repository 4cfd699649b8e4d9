"""Survey intake, listing, detail and deletion endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from parish_census.core.config import settings
from parish_census.core.deps import (
    get_current_session,
    get_db,
    require_csrf_header,
    require_roles,
)
from parish_census.core.rate_limit import intake_limit, limiter
from parish_census.core.structured_logging import build_log_context
from parish_census.db.enums import ROLES_CAN_DELETE_SURVEYS
from parish_census.schemas.auth import UserSession
from parish_census.schemas.survey import ExistingFamily, SurveyDetail, SurveyIntakeRequest
from parish_census.services import (
    survey_delete_service,
    survey_intake_service,
    survey_read_service,
)
from parish_census.services.family_service import (
    DuplicateFamilyError,
    SurveyNotFoundError,
    SurveyPersistenceError,
    SurveyValidationError,
)
from parish_census.services.identity_service import IdentityExhaustedError
from parish_census.utils.pagination import (
    PaginationParams,
    build_pagination_meta,
    get_pagination,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Error details
# =============================================================================

def duplicate_family_detail(exc: DuplicateFamilyError) -> dict:
    """409 body naming the household that already exists."""
    return {
        "status": "error",
        "message": "A family with this surname, phone and address is already registered",
        "code": "DUPLICATE_FAMILY",
        "data": {
            "existing_family": ExistingFamily.model_validate(exc.existing).model_dump(mode="json"),
        },
    }


def fatal_detail(exc: Exception, fallback: str) -> dict:
    """Fatal errors show their message in dev only."""
    return {
        "status": "error",
        "message": str(exc) if settings.is_dev else fallback,
    }


# =============================================================================
# Endpoints
# =============================================================================

@router.get("", response_model=dict)
def list_surveys(
    sector: str | None = Query(None, description="Sector label"),
    surname: str | None = Query(None, description="Surname contains (case-insensitive)"),
    municipality_id: int | None = Query(None, ge=1),
    pagination: PaginationParams = Depends(get_pagination),
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """List survey summaries, most recently surveyed first."""
    items, total = survey_read_service.list_surveys(
        db,
        pagination,
        sector=sector,
        surname=surname,
        municipality_id=municipality_id,
    )
    return {
        "items": [item.model_dump(mode="json") for item in items],
        "pagination": build_pagination_meta(total, pagination),
    }


@router.post("", status_code=201)
@limiter.limit(intake_limit)
def create_survey(
    request: Request,
    data: SurveyIntakeRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
    _csrf: None = Depends(require_csrf_header),
):
    """
    Save a complete interview in one transaction.

    Members that fail to save are skipped and listed in `skipped_members`;
    the rest of the survey is kept.
    """
    try:
        result = survey_intake_service.create_survey(db, data, user_id=session.user_id)
    except DuplicateFamilyError as e:
        raise HTTPException(status_code=409, detail=duplicate_family_detail(e))
    except SurveyValidationError as e:
        raise HTTPException(status_code=400, detail={"status": "error", "message": str(e)})
    except (SurveyPersistenceError, IdentityExhaustedError) as e:
        logger.error(
            "Survey intake failed: %s",
            e,
            extra=build_log_context(user_id=str(session.user_id), route="/surveys", method="POST"),
        )
        raise HTTPException(status_code=500, detail=fatal_detail(e, "Survey could not be saved"))

    return {
        "status": "success",
        "message": "Survey saved",
        "data": result.model_dump(mode="json"),
    }


@router.get("/{family_id}", response_model=SurveyDetail)
def get_survey(
    family_id: int,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Full denormalized survey for one family."""
    try:
        return survey_read_service.get_survey(db, family_id)
    except SurveyNotFoundError:
        raise HTTPException(status_code=404, detail="Survey not found")


@router.delete("/{family_id}")
def delete_survey(
    family_id: int,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_roles(ROLES_CAN_DELETE_SURVEYS)),
    _csrf: None = Depends(require_csrf_header),
):
    """Delete a family, its members and every utility link. Requires: Admin"""
    try:
        result = survey_delete_service.delete_survey(db, family_id)
    except SurveyNotFoundError:
        raise HTTPException(status_code=404, detail="Survey not found")
    except SurveyPersistenceError as e:
        logger.error(
            "Survey deletion failed: %s",
            e,
            extra=build_log_context(
                user_id=str(session.user_id), family_id=family_id, method="DELETE"
            ),
        )
        raise HTTPException(status_code=500, detail=fatal_detail(e, "Survey could not be deleted"))

    return {
        "status": "success",
        "message": "Survey deleted",
        "data": result.model_dump(mode="json"),
    }
