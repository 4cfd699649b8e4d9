"""Baseline migration - users, catalogs, families, persons and survey drafts

Revision ID: 0001_baseline
Revises:
Create Date: 2026-09-28

Catalog rows are not created here; run `parish-census seed-catalogs`.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JsonType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")

CATALOG_TABLES = (
    "sexes",
    "civil_statuses",
    "waste_disposal_types",
    "aqueduct_systems",
    "wastewater_systems",
    "housing_types",
    "municipalities",
)
LOCATION_TABLES = ("veredas", "sectors", "parishes")
ASSOCIATIONS = (
    ("family_waste_disposals", "waste_disposal_type_id", "waste_disposal_types", "uq_family_waste_disposal"),
    ("family_aqueduct_systems", "aqueduct_system_id", "aqueduct_systems", "uq_family_aqueduct_system"),
    ("family_wastewater_systems", "wastewater_system_id", "wastewater_systems", "uq_family_wastewater_system"),
    ("family_housing_types", "housing_type_id", "housing_types", "uq_family_housing_type"),
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _catalog_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(150), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
    ]


def upgrade() -> None:
    """Create the full schema."""

    # ==========================================================================
    # Users
    # ==========================================================================
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("role", sa.String(30), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("token_version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # ==========================================================================
    # Catalogs
    # ==========================================================================
    for table in CATALOG_TABLES:
        op.create_table(table, *_catalog_columns())

    op.create_table(
        "identification_types",
        *_catalog_columns(),
        sa.Column("code", sa.String(10), nullable=False, unique=True),
    )

    for table in LOCATION_TABLES:
        op.create_table(
            table,
            *_catalog_columns(),
            sa.Column(
                "municipality_id",
                sa.Integer(),
                sa.ForeignKey("municipalities.id", ondelete="SET NULL"),
                nullable=True,
            ),
        )

    # ==========================================================================
    # Families & persons
    # ==========================================================================
    op.create_table(
        "families",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("family_code", sa.String(60), nullable=False, unique=True),
        sa.Column("surname", sa.String(200), nullable=False),
        sa.Column("address", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(40), nullable=False),
        sa.Column("email", sa.String(150), nullable=True),
        sa.Column("household_size", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("housing_type_label", sa.String(100), nullable=True),
        sa.Column("sector_label", sa.String(100), nullable=True),
        sa.Column("survey_status", sa.String(20), nullable=False),
        sa.Column("survey_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("last_survey_date", sa.Date(), nullable=True),
        sa.Column("utility_contract_number", sa.String(60), nullable=True),
        sa.Column("livelihood", sa.Text(), nullable=True),
        sa.Column("surveyor_notes", sa.Text(), nullable=True),
        sa.Column("data_authorization", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("sector_id", sa.Integer(), sa.ForeignKey("sectors.id", ondelete="SET NULL"), nullable=True),
        sa.Column("vereda_id", sa.Integer(), sa.ForeignKey("veredas.id", ondelete="SET NULL"), nullable=True),
        sa.Column(
            "municipality_id", sa.Integer(), sa.ForeignKey("municipalities.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("parish_id", sa.Integer(), sa.ForeignKey("parishes.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_by_user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("surname", "phone", "address", name="uq_family_surname_phone_address"),
    )
    op.create_index("idx_families_last_survey", "families", ["last_survey_date"])
    op.create_index("idx_families_sector_label", "families", ["sector_label"])

    op.create_table(
        "persons",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("family_id", sa.Integer(), sa.ForeignKey("families.id"), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("middle_name", sa.String(150), nullable=True),
        sa.Column("first_surname", sa.String(100), nullable=False),
        sa.Column("second_surname", sa.String(100), nullable=True),
        sa.Column("birth_date", sa.Date(), nullable=True),
        sa.Column("identification", sa.String(80), nullable=False),
        sa.Column(
            "identification_type_id",
            sa.Integer(),
            sa.ForeignKey("identification_types.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("sex_id", sa.Integer(), sa.ForeignKey("sexes.id", ondelete="SET NULL"), nullable=True),
        sa.Column(
            "civil_status_id", sa.Integer(), sa.ForeignKey("civil_statuses.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("phone", sa.String(40), nullable=True),
        sa.Column("email", sa.String(150), nullable=True),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("relationship_to_head", sa.String(100), nullable=True),
        sa.Column("education", sa.Text(), nullable=True),
        sa.Column("cultural_community", sa.String(100), nullable=True),
        sa.Column("leadership_role", sa.Text(), nullable=True),
        sa.Column("health_needs", sa.Text(), nullable=True),
        sa.Column("shirt_size", sa.String(10), nullable=True),
        sa.Column("pants_size", sa.String(10), nullable=True),
        sa.Column("shoe_size", sa.String(10), nullable=True),
        sa.Column("is_deceased", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("anniversary_date", sa.Date(), nullable=True),
        sa.Column("was_father", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("was_mother", sa.Boolean(), server_default=sa.false(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("identification", name="uq_person_identification"),
    )
    op.create_index("idx_persons_family", "persons", ["family_id"])

    for table, column, target, constraint in ASSOCIATIONS:
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("family_id", sa.Integer(), sa.ForeignKey("families.id"), nullable=False),
            sa.Column(column, sa.Integer(), sa.ForeignKey(f"{target}.id"), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.UniqueConstraint("family_id", column, name=constraint),
        )

    # ==========================================================================
    # Survey drafts
    # ==========================================================================
    op.create_table(
        "survey_drafts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("family_id", sa.Integer(), sa.ForeignKey("families.id", ondelete="SET NULL"), nullable=True),
        sa.Column("sector", sa.String(100), nullable=False),
        sa.Column("family_head", sa.String(200), nullable=False),
        sa.Column("address", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(40), nullable=True),
        sa.Column("email", sa.String(150), nullable=True),
        sa.Column("family_size", sa.Integer(), nullable=True),
        sa.Column("housing_type", sa.String(100), nullable=True),
        sa.Column("observations", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("current_stage", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("last_saved_stage", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("total_stages", sa.Integer(), nullable=False, server_default="4"),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("stages_data", JsonType, nullable=False),
        sa.Column("family_members", JsonType, nullable=False),
        sa.Column("temp_data", JsonType, nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_auto_save", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_survey_drafts_user", "survey_drafts", ["user_id"])
    op.create_index("idx_survey_drafts_status", "survey_drafts", ["status"])

    op.create_table(
        "survey_draft_members",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "draft_id", sa.Uuid(), sa.ForeignKey("survey_drafts.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("names", sa.String(255), nullable=False),
        sa.Column("birth_date", sa.Date(), nullable=True),
        sa.Column("identification_type", sa.String(20), nullable=True),
        sa.Column("identification_number", sa.String(80), nullable=True),
        sa.Column("sex", sa.String(30), nullable=True),
        sa.Column("civil_status", sa.String(40), nullable=True),
        sa.Column("relationship_to_head", sa.String(100), nullable=True),
        sa.Column("phone", sa.String(40), nullable=True),
        sa.Column("email", sa.String(150), nullable=True),
        sa.Column("education", sa.Text(), nullable=True),
        sa.Column("cultural_community", sa.String(100), nullable=True),
        sa.Column("leadership_role", sa.Text(), nullable=True),
        sa.Column("health_needs", sa.Text(), nullable=True),
        sa.Column("sizes", JsonType, nullable=True),
        sa.Column("details", JsonType, nullable=True),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("active", sa.Boolean(), server_default=sa.true(), nullable=False),
        *_timestamps(),
    )
    op.create_index("idx_survey_draft_members_draft", "survey_draft_members", ["draft_id", "active"])

    op.create_table(
        "survey_audit_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "draft_id", sa.Uuid(), sa.ForeignKey("survey_drafts.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("action", sa.String(30), nullable=False),
        sa.Column("stage_number", sa.Integer(), nullable=True),
        sa.Column("old_data", JsonType, nullable=True),
        sa.Column("new_data", JsonType, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("idx_survey_audit_logs_draft", "survey_audit_logs", ["draft_id", "created_at"])


def downgrade() -> None:
    op.drop_table("survey_audit_logs")
    op.drop_table("survey_draft_members")
    op.drop_table("survey_drafts")
    for table, *_ in reversed(ASSOCIATIONS):
        op.drop_table(table)
    op.drop_table("persons")
    op.drop_table("families")
    for table in reversed(LOCATION_TABLES):
        op.drop_table(table)
    op.drop_table("identification_types")
    for table in reversed(CATALOG_TABLES):
        op.drop_table(table)
    op.drop_table("users")
