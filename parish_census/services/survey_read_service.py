"""Survey reader: denormalized view of a stored family for display and echo."""

import json
import logging
from typing import Any, Callable, TypeVar

from sqlalchemy import case, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from parish_census.db.enums import LEGACY_DECEASED_PREFIXES
from parish_census.db.models import (
    AqueductSystem,
    CivilStatus,
    Family,
    FamilyAqueductSystem,
    FamilyHousingType,
    FamilyWasteDisposal,
    FamilyWastewaterSystem,
    HousingType,
    IdentificationType,
    Municipality,
    Parish,
    Person,
    Sector,
    Sex,
    Vereda,
    WasteDisposalType,
    WastewaterSystem,
)
from parish_census.schemas.survey import (
    CatalogLabel,
    ClothingSizes,
    DeceasedMemberView,
    LivingMemberView,
    Observations,
    SurveyDetail,
    SurveyLocation,
    SurveySummary,
    SurveyUtilities,
    WasteDisposalView,
)
from parish_census.services.catalog_resolver import WASTE_DISPOSAL_FLAG_NAMES
from parish_census.services.family_service import SurveyNotFoundError
from parish_census.utils.datetime_parsing import coerce_date
from parish_census.utils.normalization import normalize_search_text
from parish_census.utils.pagination import PaginationParams, paginate_query

logger = logging.getLogger(__name__)

T = TypeVar("T")

MALE_LABELS = {"masculino", "hombre", "m"}
FEMALE_LABELS = {"femenino", "mujer", "f"}


def _optional(db: Session, family_id: int, part: str, load: Callable[[], T]) -> T | None:
    """Run one optional read in a savepoint; a failure degrades that part to None."""
    try:
        with db.begin_nested():
            return load()
    except SQLAlchemyError as exc:
        logger.warning("Survey read degraded family_id=%s part=%s: %s", family_id, part, exc)
        return None


def _catalog_label(db: Session, model: type, item_id: int | None) -> CatalogLabel | None:
    if item_id is None:
        return None
    item = db.get(model, item_id)
    if item is None:
        return None
    return CatalogLabel(id=item.id, name=item.name)


def _linked_labels(db: Session, link_model: type, link_column: str, catalog_model: type, family_id: int) -> list[CatalogLabel]:
    rows = db.execute(
        select(catalog_model.id, catalog_model.name)
        .join(link_model, getattr(link_model, link_column) == catalog_model.id)
        .where(link_model.family_id == family_id)
        .order_by(catalog_model.id)
    ).all()
    return [CatalogLabel(id=row.id, name=row.name) for row in rows]


# =============================================================================
# Deceased decoding
# =============================================================================

def is_legacy_deceased(person: Person) -> bool:
    """Rows written before the deceased columns existed carry a reserved prefix."""
    if person.is_deceased:
        return False
    return any(person.identification.startswith(f"{p}_") for p in LEGACY_DECEASED_PREFIXES)


def _parse_legacy_payload(raw: str | None) -> dict[str, Any] | None:
    if not raw:
        return None
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(payload, dict) or not payload.get("es_fallecido"):
        return None
    return payload


def decode_deceased(person: Person, sex_label: str | None) -> DeceasedMemberView:
    """
    Build the deceased view for a person row.

    First-class columns win. Legacy rows are decoded from the packed JSON
    payload; when that is missing or malformed the father/mother role is
    inferred from sex and flagged as such.
    """
    base = {
        "id": person.id,
        "first_name": person.first_name,
        "middle_name": person.middle_name,
        "first_surname": person.first_surname,
    }
    if person.is_deceased:
        return DeceasedMemberView(
            **base,
            anniversary_date=person.anniversary_date,
            was_father=person.was_father,
            was_mother=person.was_mother,
            deceased_source="columns",
        )

    payload = _parse_legacy_payload(person.education)
    if payload is not None:
        try:
            anniversary = coerce_date(payload.get("fecha_aniversario"))
        except ValueError:
            anniversary = None
        return DeceasedMemberView(
            **base,
            anniversary_date=anniversary,
            was_father=bool(payload.get("era_padre")),
            was_mother=bool(payload.get("era_madre")),
            deceased_source="legacy_payload",
        )

    sex_key = normalize_search_text(sex_label)
    logger.info("Deceased role inferred from sex person_id=%s", person.id)
    return DeceasedMemberView(
        **base,
        anniversary_date=None,
        was_father=sex_key in MALE_LABELS,
        was_mother=sex_key in FEMALE_LABELS,
        deceased_source="inferred_from_sex",
    )


def _living_view(db: Session, person: Person, family_id: int) -> LivingMemberView:
    return LivingMemberView(
        id=person.id,
        first_name=person.first_name,
        middle_name=person.middle_name,
        first_surname=person.first_surname,
        second_surname=person.second_surname,
        birth_date=person.birth_date,
        identification=person.identification,
        identification_type=_optional(
            db, family_id, "identification_type",
            lambda: _catalog_label(db, IdentificationType, person.identification_type_id),
        ),
        sex=_optional(db, family_id, "sex", lambda: _catalog_label(db, Sex, person.sex_id)),
        civil_status=_optional(
            db, family_id, "civil_status",
            lambda: _catalog_label(db, CivilStatus, person.civil_status_id),
        ),
        phone=person.phone,
        email=person.email,
        relationship_to_head=person.relationship_to_head,
        education=person.education,
        cultural_community=person.cultural_community,
        leadership_role=person.leadership_role,
        health_needs=person.health_needs,
        sizes=ClothingSizes(
            shirt=person.shirt_size, pants=person.pants_size, shoes=person.shoe_size
        ),
    )


# =============================================================================
# Single survey
# =============================================================================

def _utilities(db: Session, family_id: int) -> SurveyUtilities:
    waste_types = _optional(
        db, family_id, "waste_disposal",
        lambda: _linked_labels(db, FamilyWasteDisposal, "waste_disposal_type_id", WasteDisposalType, family_id),
    )
    waste_view = None
    if waste_types is not None:
        linked_ids = {item.id for item in waste_types}
        waste_view = WasteDisposalView(
            flags={name: type_id in linked_ids for type_id, name in WASTE_DISPOSAL_FLAG_NAMES.items()},
            types=waste_types,
        )

    aqueducts = _optional(
        db, family_id, "aqueduct_system",
        lambda: _linked_labels(db, FamilyAqueductSystem, "aqueduct_system_id", AqueductSystem, family_id),
    )
    housing = _optional(
        db, family_id, "housing_type",
        lambda: _linked_labels(db, FamilyHousingType, "housing_type_id", HousingType, family_id),
    )
    wastewater = _optional(
        db, family_id, "wastewater_system",
        lambda: _linked_labels(db, FamilyWastewaterSystem, "wastewater_system_id", WastewaterSystem, family_id),
    )

    return SurveyUtilities(
        housing_type=housing[0] if housing else None,
        waste_disposal=waste_view,
        aqueduct_system=aqueducts[0] if aqueducts else None,
        wastewater_systems=wastewater,
    )


def get_survey(db: Session, family_id: int) -> SurveyDetail:
    """
    Reconstruct a stored survey.

    Raises:
        SurveyNotFoundError: No family with this id
    """
    family = db.get(Family, family_id)
    if family is None:
        raise SurveyNotFoundError(f"Survey {family_id} not found")

    location = SurveyLocation(
        sector=_optional(db, family_id, "sector", lambda: _catalog_label(db, Sector, family.sector_id)),
        vereda=_optional(db, family_id, "vereda", lambda: _catalog_label(db, Vereda, family.vereda_id)),
        municipality=_optional(
            db, family_id, "municipality",
            lambda: _catalog_label(db, Municipality, family.municipality_id),
        ),
        parish=_optional(db, family_id, "parish", lambda: _catalog_label(db, Parish, family.parish_id)),
    )

    persons = db.execute(
        select(Person).where(Person.family_id == family_id).order_by(Person.id)
    ).scalars().all()

    members: list[LivingMemberView] = []
    deceased: list[DeceasedMemberView] = []
    for person in persons:
        if person.is_deceased or is_legacy_deceased(person):
            sex = _optional(db, family_id, "sex", lambda: _catalog_label(db, Sex, person.sex_id))
            deceased.append(decode_deceased(person, sex.name if sex else None))
        else:
            members.append(_living_view(db, person, family_id))

    return SurveyDetail(
        family_id=family.id,
        family_code=family.family_code,
        surname=family.surname,
        address=family.address,
        phone=family.phone,
        email=family.email,
        household_size=family.household_size,
        housing_type_label=family.housing_type_label,
        sector_label=family.sector_label,
        survey_status=family.survey_status,
        survey_count=family.survey_count,
        last_survey_date=family.last_survey_date,
        observations=Observations(
            livelihood=family.livelihood,
            surveyor_notes=family.surveyor_notes,
            data_authorization=family.data_authorization,
        ),
        utility_contract_number=family.utility_contract_number,
        location=location,
        utilities=_utilities(db, family_id),
        members=members,
        deceased_members=deceased,
    )


# =============================================================================
# Listing
# =============================================================================

def _deceased_condition():
    return or_(
        Person.is_deceased.is_(True),
        *[Person.identification.startswith(f"{prefix}_") for prefix in LEGACY_DECEASED_PREFIXES],
    )


def _member_counts(db: Session, family_ids: list[int]) -> dict[int, tuple[int, int]]:
    """family_id -> (living, deceased)."""
    if not family_ids:
        return {}
    deceased_flag = case((_deceased_condition(), 1), else_=0)
    rows = db.execute(
        select(
            Person.family_id,
            func.count(Person.id),
            func.coalesce(func.sum(deceased_flag), 0),
        )
        .where(Person.family_id.in_(family_ids))
        .group_by(Person.family_id)
    ).all()
    return {family_id: (total - dead, dead) for family_id, total, dead in rows}


def list_surveys(
    db: Session,
    pagination: PaginationParams,
    *,
    sector: str | None = None,
    surname: str | None = None,
    municipality_id: int | None = None,
) -> tuple[list[SurveySummary], int]:
    """List survey summaries, most recently surveyed first."""
    query = db.query(Family)
    if sector:
        query = query.filter(func.lower(Family.sector_label) == sector.strip().lower())
    if surname:
        query = query.filter(Family.surname.ilike(f"%{surname.strip()}%"))
    if municipality_id is not None:
        query = query.filter(Family.municipality_id == municipality_id)
    query = query.order_by(
        Family.last_survey_date.is_(None),
        Family.last_survey_date.desc(),
        Family.id.desc(),
    )

    families, total = paginate_query(query, pagination)
    counts = _member_counts(db, [f.id for f in families])

    summaries = [
        SurveySummary(
            family_id=f.id,
            family_code=f.family_code,
            surname=f.surname,
            address=f.address,
            phone=f.phone,
            sector_label=f.sector_label,
            municipality_id=f.municipality_id,
            household_size=f.household_size,
            survey_status=f.survey_status,
            last_survey_date=f.last_survey_date,
            living_members=counts.get(f.id, (0, 0))[0],
            deceased_members=counts.get(f.id, (0, 0))[1],
        )
        for f in families
    ]
    return summaries, total
