"""SQLAlchemy ORM models for users, catalogs, families, persons and survey drafts."""

import uuid
from datetime import date, datetime

from sqlalchemy import (
    JSON, Boolean, Date, ForeignKey, Index, Integer, String, Text,
    UniqueConstraint, Uuid, false, func, true,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from parish_census.db.base import Base
from parish_census.db.enums import DEFAULT_DRAFT_STATUS, FamilySurveyStatus, Role

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JsonType = JSON().with_variant(JSONB(), "postgresql")


# =============================================================================
# Auth
# =============================================================================

class User(Base):
    """A parish staff member or volunteer surveyor."""
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(
        String(30), nullable=False, default=Role.SURVEYOR.value
    )
    is_active: Mapped[bool] = mapped_column(Boolean, server_default=true(), default=True)
    token_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)


# =============================================================================
# Catalogs
# =============================================================================

class CatalogMixin:
    """Shared shape of the lookup tables: integer id plus a unique display name."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(150), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )


class Sex(CatalogMixin, Base):
    __tablename__ = "sexes"


class IdentificationType(CatalogMixin, Base):
    __tablename__ = "identification_types"

    code: Mapped[str] = mapped_column(String(10), unique=True, nullable=False)


class CivilStatus(CatalogMixin, Base):
    __tablename__ = "civil_statuses"


class WasteDisposalType(CatalogMixin, Base):
    __tablename__ = "waste_disposal_types"


class AqueductSystem(CatalogMixin, Base):
    __tablename__ = "aqueduct_systems"


class WastewaterSystem(CatalogMixin, Base):
    __tablename__ = "wastewater_systems"


class HousingType(CatalogMixin, Base):
    __tablename__ = "housing_types"


class Municipality(CatalogMixin, Base):
    __tablename__ = "municipalities"


class Vereda(CatalogMixin, Base):
    """Rural subdivision of a municipality."""
    __tablename__ = "veredas"

    municipality_id: Mapped[int | None] = mapped_column(
        ForeignKey("municipalities.id", ondelete="SET NULL"), nullable=True
    )


class Sector(CatalogMixin, Base):
    __tablename__ = "sectors"

    municipality_id: Mapped[int | None] = mapped_column(
        ForeignKey("municipalities.id", ondelete="SET NULL"), nullable=True
    )


class Parish(CatalogMixin, Base):
    __tablename__ = "parishes"

    municipality_id: Mapped[int | None] = mapped_column(
        ForeignKey("municipalities.id", ondelete="SET NULL"), nullable=True
    )


# =============================================================================
# Families & Persons
# =============================================================================

class Family(Base):
    """
    A surveyed household.

    The (surname, phone, address) triple is unique at the storage layer; the
    application-level duplicate check is only a friendlier pre-check.
    """
    __tablename__ = "families"
    __table_args__ = (
        UniqueConstraint(
            "surname", "phone", "address", name="uq_family_surname_phone_address"
        ),
        Index("idx_families_last_survey", "last_survey_date"),
        Index("idx_families_sector_label", "sector_label"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    family_code: Mapped[str] = mapped_column(String(60), unique=True, nullable=False)

    surname: Mapped[str] = mapped_column(String(200), nullable=False)
    address: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(40), nullable=False)
    email: Mapped[str | None] = mapped_column(String(150), nullable=True)

    household_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    housing_type_label: Mapped[str | None] = mapped_column(String(100), nullable=True)
    sector_label: Mapped[str | None] = mapped_column(String(100), nullable=True)

    survey_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=FamilySurveyStatus.COMPLETED.value
    )
    survey_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    last_survey_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Interview observations
    utility_contract_number: Mapped[str | None] = mapped_column(String(60), nullable=True)
    livelihood: Mapped[str | None] = mapped_column(Text, nullable=True)
    surveyor_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    data_authorization: Mapped[bool] = mapped_column(
        Boolean, server_default=false(), default=False
    )

    # Location chain (each hop optional)
    sector_id: Mapped[int | None] = mapped_column(
        ForeignKey("sectors.id", ondelete="SET NULL"), nullable=True
    )
    vereda_id: Mapped[int | None] = mapped_column(
        ForeignKey("veredas.id", ondelete="SET NULL"), nullable=True
    )
    municipality_id: Mapped[int | None] = mapped_column(
        ForeignKey("municipalities.id", ondelete="SET NULL"), nullable=True
    )
    parish_id: Mapped[int | None] = mapped_column(
        ForeignKey("parishes.id", ondelete="SET NULL"), nullable=True
    )

    created_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

    persons: Mapped[list["Person"]] = relationship(
        back_populates="family", order_by="Person.id"
    )


class Person(Base):
    """
    A household member, living or deceased.

    Deceased members use the first-class deceased columns. Rows written before
    those columns existed carry a FALLECIDO/DECEASED identification prefix and a
    JSON payload in `education`; they are decoded on read only.
    """
    __tablename__ = "persons"
    __table_args__ = (
        UniqueConstraint("identification", name="uq_person_identification"),
        Index("idx_persons_family", "family_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    family_id: Mapped[int] = mapped_column(ForeignKey("families.id"), nullable=False)

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    middle_name: Mapped[str | None] = mapped_column(String(150), nullable=True)
    first_surname: Mapped[str] = mapped_column(String(100), nullable=False)
    second_surname: Mapped[str | None] = mapped_column(String(100), nullable=True)
    birth_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    identification: Mapped[str] = mapped_column(String(80), nullable=False)
    identification_type_id: Mapped[int | None] = mapped_column(
        ForeignKey("identification_types.id", ondelete="SET NULL"), nullable=True
    )
    sex_id: Mapped[int | None] = mapped_column(
        ForeignKey("sexes.id", ondelete="SET NULL"), nullable=True
    )
    civil_status_id: Mapped[int | None] = mapped_column(
        ForeignKey("civil_statuses.id", ondelete="SET NULL"), nullable=True
    )

    phone: Mapped[str | None] = mapped_column(String(40), nullable=True)
    email: Mapped[str | None] = mapped_column(String(150), nullable=True)
    address: Mapped[str | None] = mapped_column(String(255), nullable=True)

    relationship_to_head: Mapped[str | None] = mapped_column(String(100), nullable=True)
    education: Mapped[str | None] = mapped_column(Text, nullable=True)
    cultural_community: Mapped[str | None] = mapped_column(String(100), nullable=True)
    leadership_role: Mapped[str | None] = mapped_column(Text, nullable=True)
    health_needs: Mapped[str | None] = mapped_column(Text, nullable=True)
    shirt_size: Mapped[str | None] = mapped_column(String(10), nullable=True)
    pants_size: Mapped[str | None] = mapped_column(String(10), nullable=True)
    shoe_size: Mapped[str | None] = mapped_column(String(10), nullable=True)

    # Deceased variant
    is_deceased: Mapped[bool] = mapped_column(Boolean, server_default=false(), default=False)
    anniversary_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    was_father: Mapped[bool] = mapped_column(Boolean, server_default=false(), default=False)
    was_mother: Mapped[bool] = mapped_column(Boolean, server_default=false(), default=False)

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

    family: Mapped["Family"] = relationship(back_populates="persons")


# =============================================================================
# Family ↔ catalog associations
# =============================================================================

class FamilyWasteDisposal(Base):
    __tablename__ = "family_waste_disposals"
    __table_args__ = (
        UniqueConstraint(
            "family_id", "waste_disposal_type_id", name="uq_family_waste_disposal"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    family_id: Mapped[int] = mapped_column(ForeignKey("families.id"), nullable=False)
    waste_disposal_type_id: Mapped[int] = mapped_column(
        ForeignKey("waste_disposal_types.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)


class FamilyAqueductSystem(Base):
    __tablename__ = "family_aqueduct_systems"
    __table_args__ = (
        UniqueConstraint("family_id", "aqueduct_system_id", name="uq_family_aqueduct_system"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    family_id: Mapped[int] = mapped_column(ForeignKey("families.id"), nullable=False)
    aqueduct_system_id: Mapped[int] = mapped_column(
        ForeignKey("aqueduct_systems.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)


class FamilyWastewaterSystem(Base):
    __tablename__ = "family_wastewater_systems"
    __table_args__ = (
        UniqueConstraint(
            "family_id", "wastewater_system_id", name="uq_family_wastewater_system"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    family_id: Mapped[int] = mapped_column(ForeignKey("families.id"), nullable=False)
    wastewater_system_id: Mapped[int] = mapped_column(
        ForeignKey("wastewater_systems.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)


class FamilyHousingType(Base):
    __tablename__ = "family_housing_types"
    __table_args__ = (
        UniqueConstraint("family_id", "housing_type_id", name="uq_family_housing_type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    family_id: Mapped[int] = mapped_column(ForeignKey("families.id"), nullable=False)
    housing_type_id: Mapped[int] = mapped_column(
        ForeignKey("housing_types.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)


# =============================================================================
# Stage-based survey drafts
# =============================================================================

class SurveyDraft(Base):
    """
    A survey being filled in over several stage submissions.

    Stage snapshots, the active-member cache and the version counter live on
    this row; members become Person rows only when the draft is completed.
    """
    __tablename__ = "survey_drafts"
    __table_args__ = (
        Index("idx_survey_drafts_user", "user_id"),
        Index("idx_survey_drafts_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    family_id: Mapped[int | None] = mapped_column(
        ForeignKey("families.id", ondelete="SET NULL"), nullable=True
    )

    sector: Mapped[str] = mapped_column(String(100), nullable=False)
    family_head: Mapped[str] = mapped_column(String(200), nullable=False)
    address: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(40), nullable=True)
    email: Mapped[str | None] = mapped_column(String(150), nullable=True)
    family_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    housing_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    observations: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DEFAULT_DRAFT_STATUS.value
    )
    current_stage: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    last_saved_stage: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    total_stages: Mapped[int] = mapped_column(Integer, nullable=False, default=4)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    stages_data: Mapped[list] = mapped_column(JsonType, nullable=False, default=list)
    family_members: Mapped[list] = mapped_column(JsonType, nullable=False, default=list)
    temp_data: Mapped[dict | None] = mapped_column(JsonType, nullable=True)

    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_auto_save: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

    members: Mapped[list["SurveyDraftMember"]] = relationship(
        back_populates="draft",
        cascade="all, delete-orphan",
        order_by="SurveyDraftMember.display_order",
    )


class SurveyDraftMember(Base):
    """Household member attached to a draft; soft-deleted via `active`."""
    __tablename__ = "survey_draft_members"
    __table_args__ = (
        Index("idx_survey_draft_members_draft", "draft_id", "active"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    draft_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("survey_drafts.id", ondelete="CASCADE"), nullable=False
    )

    names: Mapped[str] = mapped_column(String(255), nullable=False)
    birth_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    identification_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    identification_number: Mapped[str | None] = mapped_column(String(80), nullable=True)
    sex: Mapped[str | None] = mapped_column(String(30), nullable=True)
    civil_status: Mapped[str | None] = mapped_column(String(40), nullable=True)
    relationship_to_head: Mapped[str | None] = mapped_column(String(100), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(40), nullable=True)
    email: Mapped[str | None] = mapped_column(String(150), nullable=True)
    education: Mapped[str | None] = mapped_column(Text, nullable=True)
    cultural_community: Mapped[str | None] = mapped_column(String(100), nullable=True)
    leadership_role: Mapped[str | None] = mapped_column(Text, nullable=True)
    health_needs: Mapped[str | None] = mapped_column(Text, nullable=True)
    sizes: Mapped[dict | None] = mapped_column(JsonType, nullable=True)
    details: Mapped[dict | None] = mapped_column(JsonType, nullable=True)

    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    active: Mapped[bool] = mapped_column(Boolean, server_default=true(), default=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

    draft: Mapped["SurveyDraft"] = relationship(back_populates="members")


class SurveyAuditLog(Base):
    """Append-only trail of draft mutations."""
    __tablename__ = "survey_audit_logs"
    __table_args__ = (
        Index("idx_survey_audit_logs_draft", "draft_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    draft_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("survey_drafts.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    action: Mapped[str] = mapped_column(String(30), nullable=False)
    stage_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    old_data: Mapped[dict | None] = mapped_column(JsonType, nullable=True)
    new_data: Mapped[dict | None] = mapped_column(JsonType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
