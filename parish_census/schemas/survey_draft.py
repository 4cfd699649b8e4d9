"""Pydantic schemas for stage-based survey drafts."""

from datetime import date, datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from parish_census.db.enums import SurveyDraftStatus
from parish_census.schemas.survey import ClothingSizes, SkippedMember


class SurveyDraftCreate(BaseModel):
    """Header captured when an interview is started."""
    sector: str = Field(..., min_length=1, max_length=100)
    family_id: int | None = Field(None, ge=1)  # Re-survey of a registered family
    family_head: str = Field(..., min_length=1, max_length=200)
    address: str = Field(..., min_length=1, max_length=255)
    phone: str | None = Field(None, max_length=40)
    email: EmailStr | None = None
    family_size: int | None = Field(None, ge=0, le=100)
    housing_type: str | None = Field(None, max_length=100)
    observations: str | None = None

    @field_validator("email", mode="before")
    @classmethod
    def empty_email_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and v.strip() == "":
            return None
        return v


class StageSaveRequest(BaseModel):
    data: dict[str, Any] = Field(default_factory=dict)
    expected_version: int | None = None  # Optional optimistic locking


class DraftTransitionRequest(BaseModel):
    expected_version: int | None = None  # Optional optimistic locking


class DraftCancelRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)
    expected_version: int | None = None  # Optional optimistic locking


class AutoSaveRequest(BaseModel):
    temp_data: dict[str, Any]
    expected_version: int | None = None  # Optional optimistic locking


class DraftMemberInput(BaseModel):
    """Create or replace a household member on a draft."""
    names: str = Field(..., min_length=1, max_length=255)
    birth_date: date | None = None
    identification_type: str | None = Field(None, max_length=20)
    identification_number: str | None = Field(None, max_length=80)
    sex: str | None = Field(None, max_length=30)
    civil_status: str | None = Field(None, max_length=40)
    relationship_to_head: str | None = Field(None, max_length=100)
    phone: str | None = Field(None, max_length=40)
    email: str | None = Field(None, max_length=150)
    education: str | None = None
    cultural_community: str | None = Field(None, max_length=100)
    leadership_role: str | None = None
    health_needs: str | None = None
    sizes: ClothingSizes | None = None
    details: dict[str, Any] | None = None
    display_order: int | None = Field(None, ge=0)
    expected_version: int | None = None  # Optional optimistic locking


class DraftMemberRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    names: str
    birth_date: date | None
    identification_type: str | None
    identification_number: str | None
    sex: str | None
    civil_status: str | None
    relationship_to_head: str | None
    phone: str | None
    email: str | None
    education: str | None
    cultural_community: str | None
    leadership_role: str | None
    health_needs: str | None
    sizes: dict[str, Any] | None
    details: dict[str, Any] | None
    display_order: int
    active: bool


class SurveyDraftRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    family_id: int | None
    sector: str
    family_head: str
    address: str
    phone: str | None
    email: str | None
    family_size: int | None
    housing_type: str | None
    observations: str | None
    status: SurveyDraftStatus
    current_stage: int
    last_saved_stage: int
    total_stages: int
    progress: int
    version: int
    stages_data: list[dict[str, Any]]
    family_members: list[dict[str, Any]]
    completed_at: datetime | None
    last_auto_save: datetime | None
    created_at: datetime
    updated_at: datetime


class SurveyDraftSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    family_id: int | None
    sector: str
    family_head: str
    status: SurveyDraftStatus
    current_stage: int
    progress: int
    version: int
    updated_at: datetime


class StageSaveResult(BaseModel):
    draft_id: UUID
    stage_number: int
    status: SurveyDraftStatus
    current_stage: int
    progress: int
    version: int


class AutoSaveRead(BaseModel):
    temp_data: dict[str, Any] | None
    last_auto_save: datetime | None
    version: int


class DraftStatistics(BaseModel):
    total: int
    draft: int
    in_progress: int
    completed: int
    cancelled: int
    completion_rate: float


class DraftCompletionResult(BaseModel):
    draft: SurveyDraftRead
    family_id: int
    members_created: int
    skipped_members: list[SkippedMember] = Field(default_factory=list)
