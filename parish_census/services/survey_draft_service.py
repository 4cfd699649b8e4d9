"""Stage-based survey drafts: incremental entry, progress, members and completion.

A draft keeps its stage snapshots, active-member cache and version counter on
its own row. Nothing becomes a Family/Person until `complete_draft`.

Every mutation bumps `version` by exactly one. Callers may pass the version
they last read as `expected_version`; a mismatch raises VersionConflictError.
Omitting it means last write wins.
"""

import copy
import logging
import math
import uuid
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from parish_census.core.config import settings
from parish_census.db.enums import (
    ROLES_CAN_SEE_ALL_DRAFTS,
    FamilySurveyStatus,
    Role,
    SurveyAuditAction,
    SurveyDraftStatus,
)
from parish_census.db.models import Family, SurveyDraft, SurveyDraftMember
from parish_census.schemas.survey import LivingMember, SkippedMember
from parish_census.schemas.survey_draft import (
    AutoSaveRead,
    DraftMemberInput,
    DraftStatistics,
    SurveyDraftCreate,
)
from parish_census.services import (
    catalog_resolver,
    family_service,
    survey_audit_service,
    survey_intake_service,
)
from parish_census.services.family_service import (
    SurveyPersistenceError,
    SurveyValidationError,
)
from parish_census.services.identity_service import IdentityExhaustedError
from parish_census.utils.normalization import is_empty_value
from parish_census.utils.pagination import PaginationParams, paginate_query

logger = logging.getLogger(__name__)


class SurveyDraftError(Exception):
    """Base exception for survey draft errors."""

    pass


class SurveyDraftNotFoundError(SurveyDraftError):
    """Draft not found (or not visible to the caller)."""

    pass


class DraftMemberNotFoundError(SurveyDraftError):
    """Draft member not found."""

    pass


class LinkedFamilyNotFoundError(SurveyDraftError):
    """Draft started for a family that does not exist."""

    pass


class InvalidStageError(SurveyDraftError):
    """Stage number outside 1..total_stages."""

    pass


class InvalidDraftTransitionError(SurveyDraftError):
    """Transition not allowed from the draft's current status."""

    pass


class IncompleteSurveyError(SurveyDraftError):
    """Completion attempted while some stages are still empty."""

    def __init__(self, missing_stages: list[int], completed: int, total: int):
        self.missing_stages = missing_stages
        self.completed = completed
        self.total = total
        missing = ", ".join(str(n) for n in missing_stages)
        super().__init__(
            f"Survey incomplete. {completed}/{total} stages completed. Missing stages: {missing}"
        )


class VersionConflictError(SurveyDraftError):
    """Raised when expected_version doesn't match current version."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Version conflict: expected {expected}, got {actual}")


def check_version(draft: SurveyDraft, expected_version: int | None) -> None:
    """
    Raises:
        VersionConflictError: expected_version given and stale
    """
    if expected_version is not None and draft.version != expected_version:
        raise VersionConflictError(expected_version, draft.version)


def _ensure_mutable(draft: SurveyDraft, action: str) -> None:
    if SurveyDraftStatus(draft.status) in SurveyDraftStatus.terminal():
        raise InvalidDraftTransitionError(f"Cannot {action} a {draft.status} survey")


def _now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Stage helpers
# =============================================================================

def _empty_slot(stage_number: int) -> dict[str, Any]:
    return {"stage": stage_number, "data": {}, "saved_at": None}


def _is_filled(slot: Any) -> bool:
    return isinstance(slot, dict) and not is_empty_value(slot.get("data"))


def _filled_stage_count(stages: list, total_stages: int) -> int:
    return sum(1 for slot in stages[:total_stages] if _is_filled(slot))


def _progress(filled: int, total_stages: int) -> int:
    """Percentage of filled stages, rounded half up."""
    if total_stages <= 0:
        return 0
    return min(100, math.floor(filled * 100 / total_stages + 0.5))


def missing_stages(draft: SurveyDraft) -> list[int]:
    stages = draft.stages_data or []
    return [
        n
        for n in range(1, draft.total_stages + 1)
        if n > len(stages) or not _is_filled(stages[n - 1])
    ]


# =============================================================================
# Access
# =============================================================================

def get_draft(
    db: Session,
    draft_id: uuid.UUID,
    user_id: uuid.UUID,
    role: Role,
    *,
    write: bool = False,
) -> SurveyDraft:
    """
    Load a draft the caller may see (or, with write=True, modify).

    Owners always; admins for everything; coordinators read-only. Anything
    else is reported as not found.

    Raises:
        SurveyDraftNotFoundError
    """
    draft = db.get(SurveyDraft, draft_id)
    if draft is None:
        raise SurveyDraftNotFoundError(f"Survey draft {draft_id} not found")
    if draft.user_id == user_id:
        return draft
    allowed = role == Role.ADMIN if write else role in ROLES_CAN_SEE_ALL_DRAFTS
    if not allowed:
        raise SurveyDraftNotFoundError(f"Survey draft {draft_id} not found")
    return draft


def create_draft(
    db: Session,
    user_id: uuid.UUID,
    data: SurveyDraftCreate,
    total_stages: int | None = None,
) -> SurveyDraft:
    """
    Start a new draft at stage 1, version 1.

    A draft started with `family_id` is a re-survey of that family.

    Raises:
        LinkedFamilyNotFoundError: family_id names no registered family
    """
    if data.family_id is not None and family_service.get_family(db, data.family_id) is None:
        raise LinkedFamilyNotFoundError(f"Family {data.family_id} not found")

    draft = SurveyDraft(
        user_id=user_id,
        family_id=data.family_id,
        sector=data.sector.strip(),
        family_head=data.family_head.strip(),
        address=data.address.strip(),
        phone=data.phone.strip() if data.phone else None,
        email=data.email,
        family_size=data.family_size,
        housing_type=data.housing_type,
        observations=data.observations,
        status=SurveyDraftStatus.DRAFT.value,
        current_stage=1,
        last_saved_stage=0,
        total_stages=total_stages or settings.SURVEY_TOTAL_STAGES,
        progress=0,
        version=1,
        stages_data=[],
        family_members=[],
    )
    db.add(draft)
    db.flush()
    survey_audit_service.log_draft_change(
        db, draft.id, user_id, SurveyAuditAction.CREATE,
        new_data={
            "sector": draft.sector,
            "total_stages": draft.total_stages,
            "family_id": draft.family_id,
        },
    )
    db.commit()
    db.refresh(draft)
    logger.info("Survey draft created draft_id=%s", draft.id)
    return draft


def list_drafts(
    db: Session,
    user_id: uuid.UUID,
    role: Role,
    pagination: PaginationParams,
    status: SurveyDraftStatus | None = None,
    sector: str | None = None,
) -> tuple[list[SurveyDraft], int]:
    """Own drafts; admins and coordinators see everyone's."""
    query = db.query(SurveyDraft)
    if role not in ROLES_CAN_SEE_ALL_DRAFTS:
        query = query.filter(SurveyDraft.user_id == user_id)
    if status is not None:
        query = query.filter(SurveyDraft.status == status.value)
    if sector:
        query = query.filter(func.lower(SurveyDraft.sector) == sector.strip().lower())
    query = query.order_by(SurveyDraft.updated_at.desc(), SurveyDraft.created_at.desc())
    return paginate_query(query, pagination)


def draft_statistics(db: Session, user_id: uuid.UUID, role: Role) -> DraftStatistics:
    stmt = select(SurveyDraft.status, func.count(SurveyDraft.id)).group_by(SurveyDraft.status)
    if role not in ROLES_CAN_SEE_ALL_DRAFTS:
        stmt = stmt.where(SurveyDraft.user_id == user_id)
    counts = {status: count for status, count in db.execute(stmt).all()}

    total = sum(counts.values())
    completed = counts.get(SurveyDraftStatus.COMPLETED.value, 0)
    return DraftStatistics(
        total=total,
        draft=counts.get(SurveyDraftStatus.DRAFT.value, 0),
        in_progress=counts.get(SurveyDraftStatus.IN_PROGRESS.value, 0),
        completed=completed,
        cancelled=counts.get(SurveyDraftStatus.CANCELLED.value, 0),
        completion_rate=round(completed * 100 / total, 2) if total else 0.0,
    )


# =============================================================================
# Stage saves
# =============================================================================

def save_stage(
    db: Session,
    draft: SurveyDraft,
    stage_number: int,
    data: dict[str, Any],
    user_id: uuid.UUID,
    expected_version: int | None = None,
) -> SurveyDraft:
    """
    Merge `data` into stage `stage_number`.

    Re-saving the same payload leaves the stage content unchanged; the
    version still moves by exactly one.

    Raises:
        InvalidDraftTransitionError: Draft is completed or cancelled
        InvalidStageError: Stage outside 1..total_stages
        VersionConflictError: Stale expected_version
    """
    _ensure_mutable(draft, "edit")
    if not 1 <= stage_number <= draft.total_stages:
        raise InvalidStageError(
            f"Stage must be between 1 and {draft.total_stages}, got {stage_number}"
        )
    check_version(draft, expected_version)

    stages = copy.deepcopy(draft.stages_data or [])
    while len(stages) < stage_number:
        stages.append(_empty_slot(len(stages) + 1))

    slot = stages[stage_number - 1] if isinstance(stages[stage_number - 1], dict) else {}
    old_content = slot.get("data") if isinstance(slot.get("data"), dict) else {}
    new_content = {**old_content, **copy.deepcopy(data)}
    stages[stage_number - 1] = {
        "stage": stage_number,
        "data": new_content,
        "saved_at": _now().isoformat(),
    }

    draft.stages_data = stages
    draft.progress = _progress(_filled_stage_count(stages, draft.total_stages), draft.total_stages)
    draft.current_stage = max(draft.current_stage, stage_number)
    draft.last_saved_stage = stage_number
    draft.version += 1
    if draft.progress > 0 and draft.status == SurveyDraftStatus.DRAFT.value:
        draft.status = SurveyDraftStatus.IN_PROGRESS.value

    survey_audit_service.log_draft_change(
        db, draft.id, user_id, SurveyAuditAction.STAGE_SAVE,
        stage_number=stage_number,
        old_data={"data": old_content},
        new_data={"data": new_content},
    )
    db.commit()
    db.refresh(draft)
    logger.info(
        "Survey stage saved draft_id=%s stage=%s progress=%s version=%s",
        draft.id,
        stage_number,
        draft.progress,
        draft.version,
    )
    return draft


# =============================================================================
# Members
# =============================================================================

def _member_snapshot(member: SurveyDraftMember) -> dict[str, Any]:
    """JSON-safe member cache entry."""
    return {
        "id": str(member.id),
        "names": member.names,
        "birth_date": member.birth_date.isoformat() if member.birth_date else None,
        "identification_type": member.identification_type,
        "identification_number": member.identification_number,
        "sex": member.sex,
        "civil_status": member.civil_status,
        "relationship_to_head": member.relationship_to_head,
        "phone": member.phone,
        "email": member.email,
        "education": member.education,
        "cultural_community": member.cultural_community,
        "leadership_role": member.leadership_role,
        "health_needs": member.health_needs,
        "sizes": member.sizes,
        "details": member.details,
        "display_order": member.display_order,
    }


def active_members(draft: SurveyDraft) -> list[SurveyDraftMember]:
    return sorted((m for m in draft.members if m.active), key=lambda m: m.display_order)


def _refresh_member_cache(draft: SurveyDraft) -> None:
    draft.family_members = [_member_snapshot(m) for m in active_members(draft)]


def _get_member(draft: SurveyDraft, member_id: uuid.UUID) -> SurveyDraftMember:
    for member in draft.members:
        if member.id == member_id:
            return member
    raise DraftMemberNotFoundError(f"Member {member_id} not found on draft {draft.id}")


MEMBER_FIELDS = (
    "names",
    "birth_date",
    "identification_type",
    "identification_number",
    "sex",
    "civil_status",
    "relationship_to_head",
    "phone",
    "email",
    "education",
    "cultural_community",
    "leadership_role",
    "health_needs",
    "details",
)


def save_member(
    db: Session,
    draft: SurveyDraft,
    data: DraftMemberInput,
    user_id: uuid.UUID,
    member_id: uuid.UUID | None = None,
) -> SurveyDraftMember:
    """
    Create a member, or replace an existing one (restoring it if soft-deleted).

    Raises:
        InvalidDraftTransitionError, DraftMemberNotFoundError, VersionConflictError
    """
    _ensure_mutable(draft, "edit members of")
    check_version(draft, data.expected_version)

    if member_id is None:
        next_order = max((m.display_order for m in draft.members), default=-1) + 1
        member = SurveyDraftMember(draft_id=draft.id, display_order=next_order)
        draft.members.append(member)
        action = SurveyAuditAction.MEMBER_ADD
        old_snapshot = None
    else:
        member = _get_member(draft, member_id)
        action = SurveyAuditAction.MEMBER_UPDATE
        old_snapshot = _member_snapshot(member)

    for field in MEMBER_FIELDS:
        setattr(member, field, getattr(data, field))
    member.sizes = data.sizes.model_dump() if data.sizes else None
    if data.display_order is not None:
        member.display_order = data.display_order
    member.active = True

    db.flush()
    _refresh_member_cache(draft)
    draft.version += 1

    survey_audit_service.log_draft_change(
        db, draft.id, user_id, action,
        old_data=old_snapshot,
        new_data=_member_snapshot(member),
    )
    db.commit()
    db.refresh(member)
    logger.info(
        "Survey draft member saved draft_id=%s member_id=%s action=%s",
        draft.id,
        member.id,
        action.value,
    )
    return member


def delete_member(
    db: Session,
    draft: SurveyDraft,
    member_id: uuid.UUID,
    user_id: uuid.UUID,
    expected_version: int | None = None,
) -> SurveyDraft:
    """Soft-delete a member; it can be restored by saving it again."""
    _ensure_mutable(draft, "edit members of")
    check_version(draft, expected_version)

    member = _get_member(draft, member_id)
    member.active = False
    _refresh_member_cache(draft)
    draft.version += 1

    survey_audit_service.log_draft_change(
        db, draft.id, user_id, SurveyAuditAction.MEMBER_DELETE,
        old_data={"member_id": str(member.id)},
    )
    db.commit()
    db.refresh(draft)
    logger.info("Survey draft member removed draft_id=%s member_id=%s", draft.id, member_id)
    return draft


# =============================================================================
# Auto-save
# =============================================================================

def auto_save(
    db: Session,
    draft: SurveyDraft,
    temp_data: dict[str, Any],
    user_id: uuid.UUID,
    expected_version: int | None = None,
) -> AutoSaveRead:
    """Store opaque client state for resume."""
    _ensure_mutable(draft, "auto-save")
    check_version(draft, expected_version)

    draft.temp_data = copy.deepcopy(temp_data)
    draft.last_auto_save = _now()
    draft.version += 1

    survey_audit_service.log_draft_change(
        db, draft.id, user_id, SurveyAuditAction.AUTO_SAVE,
        new_data={"keys": sorted(temp_data.keys())},
    )
    db.commit()
    db.refresh(draft)
    return get_auto_save(draft)


def get_auto_save(draft: SurveyDraft) -> AutoSaveRead:
    return AutoSaveRead(
        temp_data=draft.temp_data,
        last_auto_save=draft.last_auto_save,
        version=draft.version,
    )


# =============================================================================
# Terminal transitions
# =============================================================================

def _draft_member_payload(member: SurveyDraftMember) -> LivingMember:
    return LivingMember(
        names=member.names,
        birth_date=member.birth_date,
        identification_type=member.identification_type,
        identification_number=member.identification_number,
        sex=member.sex,
        civil_status=member.civil_status,
        relationship_to_head=member.relationship_to_head,
        phone=member.phone,
        email=member.email,
        education=member.education,
        cultural_community=member.cultural_community,
        leadership_role=member.leadership_role,
        health_needs=member.health_needs,
        sizes=member.sizes,
    )


def _family_for_completion(db: Session, draft: SurveyDraft, members: int) -> tuple[Family, bool]:
    """
    Reuse the linked family as a re-survey, or register a new one from the header.

    Returns (family, is_resurvey).
    """
    if draft.family_id is not None:
        family = family_service.get_family(db, draft.family_id)
        if family is not None:
            family.survey_count += 1
            family.last_survey_date = date.today()
            family.survey_status = FamilySurveyStatus.COMPLETED.value
            return family, True
        logger.warning(
            "Linked family_id=%s is gone, registering draft_id=%s as new",
            draft.family_id,
            draft.id,
        )

    if not draft.phone:
        raise SurveyValidationError("A phone number is required to register the family")

    family_service.ensure_no_duplicate_family(db, draft.family_head, draft.phone, draft.address)
    family = survey_intake_service.insert_family(
        db,
        Family(
            family_code=family_service.generate_family_code(),
            surname=draft.family_head,
            address=draft.address,
            phone=draft.phone,
            email=draft.email,
            household_size=draft.family_size if draft.family_size is not None else members,
            housing_type_label=catalog_resolver.housing_type_label(draft.housing_type),
            sector_label=draft.sector,
            survey_status=FamilySurveyStatus.COMPLETED.value,
            survey_count=1,
            last_survey_date=date.today(),
            created_by_user_id=draft.user_id,
        ),
    )
    survey_intake_service.add_family_associations(
        db, family, [("housing_type", catalog_resolver.resolve_housing_type(draft.housing_type))]
    )
    return family, False


def complete_draft(
    db: Session,
    draft: SurveyDraft,
    user_id: uuid.UUID,
    expected_version: int | None = None,
) -> tuple[SurveyDraft, Family, int, list[SkippedMember]]:
    """
    Finalize a draft into Family/Person rows.

    On a re-survey, members the family already holds (same identification,
    or same names and birth date when undocumented) are skipped, not copied.

    Returns (draft, family, members_created, skipped_members).

    Raises:
        InvalidDraftTransitionError: Already completed or cancelled
        VersionConflictError: Stale expected_version
        IncompleteSurveyError: Some stage is still empty
        SurveyValidationError: No phone to register a new family
        DuplicateFamilyError: Household already registered
        SurveyPersistenceError: Database failure (rolled back)
        IdentityExhaustedError: Identification generator exhausted (rolled back)
    """
    _ensure_mutable(draft, "complete")
    check_version(draft, expected_version)

    missing = missing_stages(draft)
    if missing:
        raise IncompleteSurveyError(missing, draft.total_stages - len(missing), draft.total_stages)

    draft_id = draft.id
    members = [_draft_member_payload(m) for m in active_members(draft)]
    skipped: list[SkippedMember] = []
    try:
        family, resurvey = _family_for_completion(db, draft, len(members))
        created = survey_intake_service.add_living_members(db, family, members, skipped)
        if resurvey:
            family.household_size += created

        draft.status = SurveyDraftStatus.COMPLETED.value
        draft.progress = 100
        draft.completed_at = _now()
        draft.family_id = family.id
        draft.version += 1

        survey_audit_service.log_draft_change(
            db, draft.id, user_id, SurveyAuditAction.COMPLETE,
            new_data={
                "family_id": family.id,
                "resurvey": resurvey,
                "members_created": created,
                "members_skipped": len(skipped),
            },
        )
        db.commit()
    except IdentityExhaustedError:
        db.rollback()
        logger.error("Draft completion rolled back draft_id=%s", draft_id)
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Draft completion rolled back draft_id=%s", draft_id)
        raise SurveyPersistenceError("Could not complete survey") from exc

    db.refresh(draft)
    logger.info(
        "Survey draft completed draft_id=%s family_id=%s resurvey=%s members=%s skipped=%s",
        draft.id,
        family.id,
        resurvey,
        created,
        len(skipped),
    )
    return draft, family, created, skipped


def cancel_draft(
    db: Session,
    draft: SurveyDraft,
    user_id: uuid.UUID,
    reason: str | None = None,
    expected_version: int | None = None,
) -> SurveyDraft:
    """
    Cancel a draft, appending the reason to its observations.

    Raises:
        InvalidDraftTransitionError: Already completed or cancelled
        VersionConflictError: Stale expected_version
    """
    _ensure_mutable(draft, "cancel")
    check_version(draft, expected_version)

    note = f"Cancelled: {reason.strip() if reason and reason.strip() else 'No reason provided'}"
    old_status = draft.status
    draft.observations = f"{draft.observations}\n{note}" if draft.observations else note
    draft.status = SurveyDraftStatus.CANCELLED.value
    draft.version += 1

    survey_audit_service.log_draft_change(
        db, draft.id, user_id, SurveyAuditAction.CANCEL,
        old_data={"status": old_status},
        new_data={"status": draft.status, "reason": note},
    )
    db.commit()
    db.refresh(draft)
    logger.info("Survey draft cancelled draft_id=%s", draft.id)
    return draft
