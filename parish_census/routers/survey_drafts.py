"""Stage-based survey draft endpoints."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from sqlalchemy.orm import Session

from parish_census.core.deps import get_current_session, get_db, require_csrf_header
from parish_census.core.structured_logging import build_log_context
from parish_census.db.enums import SurveyDraftStatus
from parish_census.db.models import SurveyDraft
from parish_census.routers.surveys import duplicate_family_detail, fatal_detail
from parish_census.schemas.auth import UserSession
from parish_census.schemas.survey_draft import (
    AutoSaveRead,
    AutoSaveRequest,
    DraftCancelRequest,
    DraftCompletionResult,
    DraftMemberInput,
    DraftMemberRead,
    DraftStatistics,
    DraftTransitionRequest,
    StageSaveRequest,
    StageSaveResult,
    SurveyDraftCreate,
    SurveyDraftRead,
    SurveyDraftSummary,
)
from parish_census.services import survey_draft_service
from parish_census.services.family_service import (
    DuplicateFamilyError,
    SurveyPersistenceError,
    SurveyValidationError,
)
from parish_census.services.identity_service import IdentityExhaustedError
from parish_census.services.survey_draft_service import (
    DraftMemberNotFoundError,
    IncompleteSurveyError,
    InvalidDraftTransitionError,
    LinkedFamilyNotFoundError,
    SurveyDraftError,
    SurveyDraftNotFoundError,
    VersionConflictError,
)
from parish_census.utils.pagination import (
    PaginationParams,
    build_pagination_meta,
    get_pagination,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _http_error(exc: SurveyDraftError) -> HTTPException:
    if isinstance(
        exc, (SurveyDraftNotFoundError, DraftMemberNotFoundError, LinkedFamilyNotFoundError)
    ):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, VersionConflictError):
        return HTTPException(
            status_code=409,
            detail=f"Version conflict: expected {exc.expected}, got {exc.actual}",
        )
    if isinstance(exc, InvalidDraftTransitionError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, IncompleteSurveyError):
        return HTTPException(
            status_code=400,
            detail={
                "status": "error",
                "message": str(exc),
                "data": {
                    "missing_stages": exc.missing_stages,
                    "completed_stages": exc.completed,
                    "total_stages": exc.total,
                },
            },
        )
    # InvalidStageError and other input problems
    return HTTPException(status_code=400, detail=str(exc))


def _load(db: Session, draft_id: UUID, session: UserSession, *, write: bool = False) -> SurveyDraft:
    try:
        return survey_draft_service.get_draft(
            db, draft_id, session.user_id, session.role, write=write
        )
    except SurveyDraftError as e:
        raise _http_error(e)


def _success(message: str, data) -> dict:
    return {"status": "success", "message": message, "data": data}


# =============================================================================
# Drafts
# =============================================================================

@router.post("/drafts", status_code=201)
def create_draft(
    data: SurveyDraftCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
    _csrf: None = Depends(require_csrf_header),
):
    """Start a new stage-based survey; `family_id` makes it a re-survey."""
    try:
        draft = survey_draft_service.create_draft(db, session.user_id, data)
    except SurveyDraftError as e:
        raise _http_error(e)
    return _success(
        "Survey draft created",
        SurveyDraftRead.model_validate(draft).model_dump(mode="json"),
    )


@router.get("/drafts", response_model=dict)
def list_drafts(
    status: SurveyDraftStatus | None = None,
    sector: str | None = None,
    pagination: PaginationParams = Depends(get_pagination),
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Own drafts; coordinators and admins see every surveyor's."""
    items, total = survey_draft_service.list_drafts(
        db, session.user_id, session.role, pagination, status=status, sector=sector
    )
    return {
        "items": [SurveyDraftSummary.model_validate(d).model_dump(mode="json") for d in items],
        "pagination": build_pagination_meta(total, pagination),
    }


@router.get("/drafts/statistics", response_model=DraftStatistics)
def draft_statistics(
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Draft counts per status and completion rate."""
    return survey_draft_service.draft_statistics(db, session.user_id, session.role)


@router.get("/drafts/{draft_id}", response_model=SurveyDraftRead)
def get_draft(
    draft_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return _load(db, draft_id, session)


# =============================================================================
# Stages & transitions
# =============================================================================

@router.put("/{draft_id}/stages/{stage_number}", response_model=dict)
def save_stage(
    draft_id: UUID,
    data: StageSaveRequest,
    stage_number: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
    _csrf: None = Depends(require_csrf_header),
):
    """Merge data into one stage; returns progress and the new version."""
    draft = _load(db, draft_id, session, write=True)
    try:
        draft = survey_draft_service.save_stage(
            db, draft, stage_number, data.data, session.user_id, data.expected_version
        )
    except SurveyDraftError as e:
        raise _http_error(e)

    result = StageSaveResult(
        draft_id=draft.id,
        stage_number=stage_number,
        status=draft.status,
        current_stage=draft.current_stage,
        progress=draft.progress,
        version=draft.version,
    )
    return _success(f"Stage {stage_number} saved", result.model_dump(mode="json"))


@router.post("/{draft_id}/complete", response_model=dict)
def complete_draft(
    draft_id: UUID,
    data: DraftTransitionRequest | None = None,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
    _csrf: None = Depends(require_csrf_header),
):
    """Finalize the draft into a family and its members."""
    draft = _load(db, draft_id, session, write=True)
    expected_version = data.expected_version if data else None
    try:
        draft, family, created, skipped = survey_draft_service.complete_draft(
            db, draft, session.user_id, expected_version
        )
    except SurveyDraftError as e:
        raise _http_error(e)
    except DuplicateFamilyError as e:
        raise HTTPException(status_code=409, detail=duplicate_family_detail(e))
    except SurveyValidationError as e:
        raise HTTPException(status_code=400, detail={"status": "error", "message": str(e)})
    except (SurveyPersistenceError, IdentityExhaustedError) as e:
        logger.error(
            "Draft completion failed: %s",
            e,
            extra=build_log_context(
                user_id=str(session.user_id), draft_id=str(draft_id), method="POST"
            ),
        )
        raise HTTPException(status_code=500, detail=fatal_detail(e, "Survey could not be completed"))

    result = DraftCompletionResult(
        draft=SurveyDraftRead.model_validate(draft),
        family_id=family.id,
        members_created=created,
        skipped_members=skipped,
    )
    return _success("Survey completed", result.model_dump(mode="json"))


@router.post("/{draft_id}/cancel", response_model=dict)
def cancel_draft(
    draft_id: UUID,
    data: DraftCancelRequest | None = None,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
    _csrf: None = Depends(require_csrf_header),
):
    draft = _load(db, draft_id, session, write=True)
    data = data or DraftCancelRequest()
    try:
        draft = survey_draft_service.cancel_draft(
            db, draft, session.user_id, data.reason, data.expected_version
        )
    except SurveyDraftError as e:
        raise _http_error(e)
    return _success("Survey cancelled", SurveyDraftRead.model_validate(draft).model_dump(mode="json"))


# =============================================================================
# Members
# =============================================================================

@router.post("/{draft_id}/members", status_code=201)
def add_member(
    draft_id: UUID,
    data: DraftMemberInput,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
    _csrf: None = Depends(require_csrf_header),
):
    draft = _load(db, draft_id, session, write=True)
    try:
        member = survey_draft_service.save_member(db, draft, data, session.user_id)
    except SurveyDraftError as e:
        raise _http_error(e)
    return _success(
        "Member added",
        {
            "member": DraftMemberRead.model_validate(member).model_dump(mode="json"),
            "version": draft.version,
        },
    )


@router.put("/{draft_id}/members/{member_id}", response_model=dict)
def update_member(
    draft_id: UUID,
    member_id: UUID,
    data: DraftMemberInput,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
    _csrf: None = Depends(require_csrf_header),
):
    """Replace a member's fields; restores the member if it was removed."""
    draft = _load(db, draft_id, session, write=True)
    try:
        member = survey_draft_service.save_member(
            db, draft, data, session.user_id, member_id=member_id
        )
    except SurveyDraftError as e:
        raise _http_error(e)
    return _success(
        "Member updated",
        {
            "member": DraftMemberRead.model_validate(member).model_dump(mode="json"),
            "version": draft.version,
        },
    )


@router.delete("/{draft_id}/members/{member_id}", response_model=dict)
def delete_member(
    draft_id: UUID,
    member_id: UUID,
    expected_version: int | None = Query(None, description="Optional optimistic locking"),
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
    _csrf: None = Depends(require_csrf_header),
):
    """Soft-delete a member."""
    draft = _load(db, draft_id, session, write=True)
    try:
        draft = survey_draft_service.delete_member(
            db, draft, member_id, session.user_id, expected_version
        )
    except SurveyDraftError as e:
        raise _http_error(e)
    return _success("Member removed", {"member_id": str(member_id), "version": draft.version})


# =============================================================================
# Auto-save
# =============================================================================

@router.post("/{draft_id}/auto-save", response_model=dict)
def auto_save(
    draft_id: UUID,
    data: AutoSaveRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
    _csrf: None = Depends(require_csrf_header),
):
    draft = _load(db, draft_id, session, write=True)
    try:
        saved = survey_draft_service.auto_save(
            db, draft, data.temp_data, session.user_id, data.expected_version
        )
    except SurveyDraftError as e:
        raise _http_error(e)
    return _success("Auto-saved", saved.model_dump(mode="json"))


@router.get("/{draft_id}/auto-save", response_model=AutoSaveRead)
def get_auto_save(
    draft_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    draft = _load(db, draft_id, session)
    return survey_draft_service.get_auto_save(draft)
