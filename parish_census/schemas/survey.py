"""Pydantic schemas for one-shot survey intake and the denormalized survey view."""

from datetime import date
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


# =============================================================================
# Intake payload
# =============================================================================

class CatalogRef(BaseModel):
    """Reference to a catalog item by id and/or display name."""
    model_config = ConfigDict(extra="ignore")

    id: int | None = Field(None, ge=1)
    name: str | None = Field(None, max_length=150)


class GeneralInfo(BaseModel):
    """Household identification and location."""

    surname: str = Field(..., min_length=1, max_length=200)
    address: str = Field(..., min_length=1, max_length=255)
    phone: str = Field(..., min_length=1, max_length=40)
    email: EmailStr | None = None
    survey_date: date | None = None
    utility_contract_number: str | None = Field(None, max_length=60)

    municipality: CatalogRef | None = None
    parish: CatalogRef | None = None
    sector: CatalogRef | None = None
    vereda: CatalogRef | None = None

    @field_validator("surname", "address", "phone")
    @classmethod
    def reject_blank(cls, v: str) -> str:
        # Stored exactly as submitted; duplicate detection is an exact match.
        if not v.strip():
            raise ValueError("must not be blank")
        return v

    @field_validator("email", mode="before")
    @classmethod
    def empty_email_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and v.strip() == "":
            return None
        return v


class Housing(BaseModel):
    housing_type: CatalogRef | None = None
    # Flag name -> checked, e.g. {"collector": true, "burned": false}
    waste_disposal: dict[str, Any] = Field(default_factory=dict)


class WaterServices(BaseModel):
    aqueduct_system: CatalogRef | None = None
    wastewater: str | None = Field(None, max_length=150)
    septic_tank: bool = False
    latrine: bool = False
    open_field: bool = False


class Observations(BaseModel):
    livelihood: str | None = None
    surveyor_notes: str | None = None
    data_authorization: bool = False


class ClothingSizes(BaseModel):
    shirt: str | None = Field(None, max_length=10)
    pants: str | None = Field(None, max_length=10)
    shoes: str | None = Field(None, max_length=10)


class LivingMember(BaseModel):
    """
    A living household member as submitted.

    Every field accepts any JSON value. Members are checked one at a time
    against `LivingMemberRecord` when they are written, so one malformed
    field skips that member instead of rejecting the whole interview.
    """
    model_config = ConfigDict(extra="ignore")

    names: Any
    second_surname: Any = None
    birth_date: Any = None
    identification_type: Any = None
    identification_number: Any = None
    sex: Any = None
    civil_status: Any = None
    relationship_to_head: Any = None
    phone: Any = None
    email: Any = None
    education: Any = None
    cultural_community: Any = None
    leadership_role: Any = None
    health_needs: Any = None
    sizes: Any = None


class LivingMemberRecord(BaseModel):
    """Storable shape of one living member; mirrors the `persons` columns."""
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    names: Any
    second_surname: str | None = Field(None, max_length=100)
    birth_date: Any = None
    identification_type: Any = None
    identification_number: str | None = Field(None, max_length=80)
    sex: Any = None
    civil_status: Any = None
    relationship_to_head: str | None = Field(None, max_length=100)
    phone: str | None = Field(None, max_length=40)
    email: str | None = Field(None, max_length=150)
    education: str | None = None
    cultural_community: str | None = Field(None, max_length=100)
    leadership_role: str | None = None
    health_needs: str | None = None
    sizes: ClothingSizes | None = None


class DeceasedMember(BaseModel):
    """A deceased household member remembered in the interview."""
    model_config = ConfigDict(extra="ignore")

    names: Any
    anniversary_date: Any = None
    sex: Any = None
    was_father: Any = False
    was_mother: Any = False


class DeceasedMemberRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    names: Any
    anniversary_date: Any = None
    sex: Any = None
    was_father: bool = False
    was_mother: bool = False


class SurveyIntakeRequest(BaseModel):
    """Complete interview payload for the one-shot intake path."""

    general_info: GeneralInfo
    housing: Housing
    water_services: WaterServices
    observations: Observations
    family_members: list[LivingMember] = Field(default_factory=list)
    deceased_members: list[DeceasedMember] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Intake result
# =============================================================================

class SkippedMember(BaseModel):
    member_index: int
    kind: Literal["living", "deceased"]
    reason: str


class SkippedAssociation(BaseModel):
    kind: str
    catalog_id: int
    reason: str


class SurveyIntakeResult(BaseModel):
    family_id: int
    family_code: str
    members_created: int
    deceased_created: int
    skipped_members: list[SkippedMember] = Field(default_factory=list)
    skipped_associations: list[SkippedAssociation] = Field(default_factory=list)
    transaction_ref: str


class SurveyDeletionResult(BaseModel):
    family_id: int
    persons: int
    waste_disposals: int
    aqueduct_systems: int
    wastewater_systems: int
    housing_types: int
    drafts_unlinked: int
    transaction_ref: str


class ExistingFamily(BaseModel):
    """Conflicting household named in a 409 response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    family_code: str
    surname: str
    phone: str
    address: str
    last_survey_date: date | None = None


# =============================================================================
# Denormalized survey view
# =============================================================================

class CatalogLabel(BaseModel):
    id: int
    name: str


class SurveyLocation(BaseModel):
    sector: CatalogLabel | None = None
    vereda: CatalogLabel | None = None
    municipality: CatalogLabel | None = None
    parish: CatalogLabel | None = None


class WasteDisposalView(BaseModel):
    flags: dict[str, bool]
    types: list[CatalogLabel]


class SurveyUtilities(BaseModel):
    housing_type: CatalogLabel | None = None
    waste_disposal: WasteDisposalView | None = None
    aqueduct_system: CatalogLabel | None = None
    wastewater_systems: list[CatalogLabel] | None = None


class LivingMemberView(BaseModel):
    id: int
    first_name: str
    middle_name: str | None
    first_surname: str
    second_surname: str | None
    birth_date: date | None
    identification: str
    identification_type: CatalogLabel | None = None
    sex: CatalogLabel | None = None
    civil_status: CatalogLabel | None = None
    phone: str | None
    email: str | None
    relationship_to_head: str | None
    education: str | None
    cultural_community: str | None
    leadership_role: str | None
    health_needs: str | None
    sizes: ClothingSizes


class DeceasedMemberView(BaseModel):
    id: int
    first_name: str
    middle_name: str | None
    first_surname: str
    anniversary_date: date | None
    was_father: bool
    was_mother: bool
    deceased_source: Literal["columns", "legacy_payload", "inferred_from_sex"]


class SurveyDetail(BaseModel):
    family_id: int
    family_code: str
    surname: str
    address: str
    phone: str
    email: str | None
    household_size: int
    housing_type_label: str | None
    sector_label: str | None
    survey_status: str
    survey_count: int
    last_survey_date: date | None
    observations: Observations
    utility_contract_number: str | None
    location: SurveyLocation
    utilities: SurveyUtilities
    members: list[LivingMemberView]
    deceased_members: list[DeceasedMemberView]


class SurveySummary(BaseModel):
    family_id: int
    family_code: str
    surname: str
    address: str
    phone: str
    sector_label: str | None
    municipality_id: int | None
    household_size: int
    survey_status: str
    last_survey_date: date | None
    living_members: int
    deceased_members: int
