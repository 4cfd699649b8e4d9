"""Survey aggregate writer: one interview payload -> family, members and utility links.

The family row is all-or-nothing. Each member and each association row is
written inside its own SAVEPOINT, so a malformed member is skipped and
reported while the rest of the interview is kept.
"""

import logging
import uuid
from datetime import date
from typing import Any

from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from parish_census.db.enums import FamilySurveyStatus, IdentityCategory
from parish_census.db.models import (
    Family,
    FamilyAqueductSystem,
    FamilyHousingType,
    FamilyWasteDisposal,
    FamilyWastewaterSystem,
    Municipality,
    Parish,
    Person,
    Sector,
    Vereda,
)
from parish_census.schemas.survey import (
    CatalogRef,
    DeceasedMember,
    DeceasedMemberRecord,
    LivingMember,
    LivingMemberRecord,
    SkippedAssociation,
    SkippedMember,
    SurveyIntakeRequest,
    SurveyIntakeResult,
)
from parish_census.services import catalog_resolver, family_service
from parish_census.services.family_service import (
    DuplicateFamilyError,
    SurveyPersistenceError,
)
from parish_census.services.identity_service import (
    IdentityExhaustedError,
    generate_unique_identification,
)
from parish_census.utils.datetime_parsing import coerce_date
from parish_census.utils.normalization import split_given_names

logger = logging.getLogger(__name__)


# Association kind -> (model, catalog column)
ASSOCIATION_TABLES: dict[str, tuple[type, str]] = {
    "waste_disposal": (FamilyWasteDisposal, "waste_disposal_type_id"),
    "aqueduct_system": (FamilyAqueductSystem, "aqueduct_system_id"),
    "wastewater_system": (FamilyWastewaterSystem, "wastewater_system_id"),
    "housing_type": (FamilyHousingType, "housing_type_id"),
}


def _failure_reason(exc: Exception) -> str:
    if isinstance(exc, ValidationError):
        error = exc.errors()[0]
        field = ".".join(str(part) for part in error["loc"])
        return f"{field}: {error['msg']}" if field else error["msg"]
    if isinstance(exc, SQLAlchemyError):
        return str(getattr(exc, "orig", None) or exc.__class__.__name__)
    return str(exc)


# =============================================================================
# Family row
# =============================================================================

def _resolve_location_id(db: Session, model: type, ref: CatalogRef | None) -> int | None:
    """Return the id of an existing location row, or None when it is unknown."""
    if ref is None:
        return None
    if ref.id is not None:
        if db.get(model, ref.id) is not None:
            return ref.id
        logger.warning("Unknown %s id=%s, storing without it", model.__tablename__, ref.id)
        return None
    if ref.name and ref.name.strip():
        return db.execute(
            select(model.id).where(func.lower(model.name) == ref.name.strip().lower())
        ).scalar_one_or_none()
    return None


def _build_family(
    db: Session,
    payload: SurveyIntakeRequest,
    user_id: uuid.UUID | None,
) -> Family:
    general = payload.general_info
    observations = payload.observations
    sector_label = general.sector.name if general.sector and general.sector.name else None

    return Family(
        family_code=family_service.generate_family_code(),
        surname=general.surname,
        address=general.address,
        phone=general.phone,
        email=general.email,
        household_size=len(payload.family_members) + len(payload.deceased_members),
        housing_type_label=catalog_resolver.housing_type_label(payload.housing.housing_type),
        sector_label=sector_label,
        survey_status=FamilySurveyStatus.COMPLETED.value,
        survey_count=1,
        last_survey_date=general.survey_date or date.today(),
        utility_contract_number=general.utility_contract_number,
        livelihood=observations.livelihood,
        surveyor_notes=observations.surveyor_notes,
        data_authorization=observations.data_authorization,
        sector_id=_resolve_location_id(db, Sector, general.sector),
        vereda_id=_resolve_location_id(db, Vereda, general.vereda),
        municipality_id=_resolve_location_id(db, Municipality, general.municipality),
        parish_id=_resolve_location_id(db, Parish, general.parish),
        created_by_user_id=user_id,
    )


# =============================================================================
# Associations
# =============================================================================

def _association_targets(payload: SurveyIntakeRequest) -> list[tuple[str, int]]:
    """Distinct (kind, catalog id) pairs implied by the housing and water sections."""
    targets: list[tuple[str, int]] = []
    for catalog_id in catalog_resolver.resolve_waste_disposal_flags(payload.housing.waste_disposal):
        targets.append(("waste_disposal", catalog_id))

    water = payload.water_services
    aqueduct_id = catalog_resolver.resolve_aqueduct_system(water.aqueduct_system)
    if aqueduct_id is not None:
        targets.append(("aqueduct_system", aqueduct_id))

    wastewater_flags = {
        "septic_tank": water.septic_tank,
        "latrine": water.latrine,
        "open_field": water.open_field,
    }
    for catalog_id in catalog_resolver.resolve_wastewater(water.wastewater, wastewater_flags):
        targets.append(("wastewater_system", catalog_id))

    targets.append(
        ("housing_type", catalog_resolver.resolve_housing_type(payload.housing.housing_type))
    )

    seen: set[tuple[str, int]] = set()
    unique: list[tuple[str, int]] = []
    for target in targets:
        if target not in seen:
            seen.add(target)
            unique.append(target)
    return unique


def add_family_associations(
    db: Session,
    family: Family,
    targets: list[tuple[str, int]],
) -> list[SkippedAssociation]:
    """Insert association rows one savepoint at a time; failures are reported, not raised."""
    skipped: list[SkippedAssociation] = []
    for kind, catalog_id in targets:
        model, column = ASSOCIATION_TABLES[kind]
        try:
            with db.begin_nested():
                db.add(model(family_id=family.id, **{column: catalog_id}))
                db.flush()
        except SQLAlchemyError as exc:
            reason = _failure_reason(exc)
            logger.warning(
                "Association skipped family_id=%s kind=%s catalog_id=%s: %s",
                family.id,
                kind,
                catalog_id,
                reason,
            )
            skipped.append(SkippedAssociation(kind=kind, catalog_id=catalog_id, reason=reason))
    return skipped


# =============================================================================
# Members
# =============================================================================

def _sizes(record: LivingMemberRecord) -> dict[str, Any]:
    if record.sizes is None:
        return {"shirt_size": None, "pants_size": None, "shoe_size": None}
    return {
        "shirt_size": record.sizes.shirt,
        "pants_size": record.sizes.pants,
        "shoe_size": record.sizes.shoes,
    }


def _already_registered(
    db: Session,
    family: Family,
    identification: str | None,
    first_name: str,
    middle_name: str | None,
    birth_date: date | None,
) -> bool:
    """True when the family already holds this living member (re-surveys)."""
    query = select(Person.id).where(Person.family_id == family.id)
    if identification:
        query = query.where(Person.identification == identification)
    else:
        # No document: match on given names and birth date
        query = query.where(
            Person.is_deceased.is_(False),
            Person.first_name == first_name,
            Person.middle_name.is_(None) if middle_name is None else Person.middle_name == middle_name,
            Person.birth_date.is_(None) if birth_date is None else Person.birth_date == birth_date,
        )
    return db.execute(query.limit(1)).first() is not None


def _build_living_person(db: Session, family: Family, member: LivingMember) -> Person:
    record = LivingMemberRecord.model_validate(member.model_dump())
    first_name, middle_name = split_given_names(record.names)
    birth_date = coerce_date(record.birth_date)
    identification = record.identification_number or None
    if _already_registered(db, family, identification, first_name, middle_name, birth_date):
        raise ValueError("Already registered in this family")
    if not identification:
        identification = generate_unique_identification(db, IdentityCategory.TEMP)

    return Person(
        family_id=family.id,
        first_name=first_name,
        middle_name=middle_name,
        first_surname=family.surname,
        second_surname=record.second_surname,
        birth_date=birth_date,
        identification=identification,
        identification_type_id=catalog_resolver.resolve_identification_type(
            record.identification_type
        ),
        sex_id=catalog_resolver.resolve_sex(record.sex),
        civil_status_id=catalog_resolver.resolve_civil_status(record.civil_status),
        phone=record.phone or family.phone,
        email=record.email,
        address=family.address,
        relationship_to_head=record.relationship_to_head,
        education=record.education,
        cultural_community=record.cultural_community,
        leadership_role=record.leadership_role,
        health_needs=record.health_needs,
        **_sizes(record),
    )


def _build_deceased_person(db: Session, family: Family, member: DeceasedMember) -> Person:
    record = DeceasedMemberRecord.model_validate(member.model_dump())
    first_name, middle_name = split_given_names(record.names)
    anniversary = coerce_date(record.anniversary_date)
    if anniversary is not None and anniversary > date.today():
        raise ValueError("Anniversary date cannot be in the future")

    return Person(
        family_id=family.id,
        first_name=first_name,
        middle_name=middle_name,
        first_surname=family.surname,
        identification=generate_unique_identification(db, IdentityCategory.DECEASED),
        sex_id=catalog_resolver.resolve_sex(record.sex),
        address=family.address,
        is_deceased=True,
        anniversary_date=anniversary,
        was_father=record.was_father,
        was_mother=record.was_mother,
    )


def _add_members(
    db: Session,
    family: Family,
    members: list,
    kind: str,
    builder,
    skipped: list[SkippedMember],
) -> int:
    created = 0
    for index, member in enumerate(members):
        try:
            with db.begin_nested():
                db.add(builder(db, family, member))
                db.flush()
        except IdentityExhaustedError:
            raise
        except (ValueError, TypeError, SQLAlchemyError) as exc:
            reason = _failure_reason(exc)
            logger.warning(
                "Member skipped family_id=%s kind=%s index=%s: %s",
                family.id,
                kind,
                index,
                reason,
            )
            skipped.append(SkippedMember(member_index=index, kind=kind, reason=reason))
            continue
        created += 1
    return created


def add_living_members(
    db: Session,
    family: Family,
    members: list[LivingMember],
    skipped: list[SkippedMember],
) -> int:
    """
    Insert living members, isolating each one in a savepoint.

    Returns the number created; failures are appended to `skipped`.

    Raises:
        IdentityExhaustedError: Propagated; the caller must roll back
    """
    return _add_members(db, family, members, "living", _build_living_person, skipped)


def add_deceased_members(
    db: Session,
    family: Family,
    members: list[DeceasedMember],
    skipped: list[SkippedMember],
) -> int:
    """Insert deceased members with the same isolation as living ones."""
    return _add_members(db, family, members, "deceased", _build_deceased_person, skipped)


# =============================================================================
# Aggregate write
# =============================================================================

def insert_family(db: Session, family: Family) -> Family:
    """
    Flush a new family row.

    The (surname, phone, address) unique constraint is the authoritative
    duplicate signal; any other failure rolls back and is fatal.

    Raises:
        DuplicateFamilyError: Another writer registered the same household
        SurveyPersistenceError: The insert failed for any other reason
    """
    surname, phone, address = family.surname, family.phone, family.address
    try:
        db.add(family)
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        existing = family_service.find_duplicate_family(db, surname, phone, address)
        if existing is not None:
            raise DuplicateFamilyError(existing) from exc
        raise SurveyPersistenceError("Could not create family record") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise SurveyPersistenceError("Could not create family record") from exc
    return family


def create_survey(
    db: Session,
    payload: SurveyIntakeRequest,
    *,
    user_id: uuid.UUID | None = None,
) -> SurveyIntakeResult:
    """
    Persist a complete interview in one transaction.

    Raises:
        DuplicateFamilyError: Household already registered (nothing written)
        SurveyPersistenceError: Family insert or commit failed (rolled back)
        IdentityExhaustedError: Identification generator exhausted (rolled back)
    """
    general = payload.general_info
    transaction_ref = family_service.new_transaction_ref()

    family_service.ensure_no_duplicate_family(db, general.surname, general.phone, general.address)

    family = insert_family(db, _build_family(db, payload, user_id))

    skipped_members: list[SkippedMember] = []
    try:
        skipped_associations = add_family_associations(db, family, _association_targets(payload))
        members_created = add_living_members(db, family, payload.family_members, skipped_members)
        deceased_created = add_deceased_members(
            db, family, payload.deceased_members, skipped_members
        )
        db.commit()
    except IdentityExhaustedError:
        db.rollback()
        logger.error("Survey intake rolled back txn=%s: identification generator exhausted", transaction_ref)
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Survey intake rolled back txn=%s", transaction_ref)
        raise SurveyPersistenceError("Could not save survey") from exc

    logger.info(
        "Survey saved family_id=%s members=%s deceased=%s skipped=%s txn=%s",
        family.id,
        members_created,
        deceased_created,
        len(skipped_members),
        transaction_ref,
    )
    return SurveyIntakeResult(
        family_id=family.id,
        family_code=family.family_code,
        members_created=members_created,
        deceased_created=deceased_created,
        skipped_members=skipped_members,
        skipped_associations=skipped_associations,
        transaction_ref=transaction_ref,
    )
