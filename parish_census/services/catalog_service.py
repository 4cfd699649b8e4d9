"""Generic CRUD and default seeding for the lookup catalogs."""

import logging

from sqlalchemy import func, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from parish_census.db.models import (
    AqueductSystem,
    CivilStatus,
    HousingType,
    IdentificationType,
    Municipality,
    Parish,
    Sector,
    Sex,
    Vereda,
    WasteDisposalType,
    WastewaterSystem,
)
from parish_census.schemas.catalog import CatalogItemCreate, CatalogItemUpdate
from parish_census.utils.pagination import PaginationParams, paginate_query

logger = logging.getLogger(__name__)


class CatalogServiceError(Exception):
    """Base exception for catalog service errors."""

    pass


class CatalogNotFoundError(CatalogServiceError):
    """Unknown catalog name."""

    pass


class CatalogItemNotFoundError(CatalogServiceError):
    """Catalog item not found."""

    pass


class DuplicateCatalogItemError(CatalogServiceError):
    """An item with this name (or code) already exists in the catalog."""

    pass


class CatalogItemInUseError(CatalogServiceError):
    """Item is referenced by families or persons and cannot be deleted."""

    pass


class CatalogValidationError(CatalogServiceError):
    """Item data is incomplete for this catalog."""

    pass


# URL name -> model
CATALOGS: dict[str, type] = {
    "sexes": Sex,
    "identification-types": IdentificationType,
    "civil-statuses": CivilStatus,
    "waste-disposal-types": WasteDisposalType,
    "aqueduct-systems": AqueductSystem,
    "wastewater-systems": WastewaterSystem,
    "housing-types": HousingType,
    "municipalities": Municipality,
    "veredas": Vereda,
    "sectors": Sector,
    "parishes": Parish,
}

# Ids are fixed: the catalog resolver maps interview labels onto them.
DEFAULT_CATALOGS: dict[type, list[dict]] = {
    Sex: [
        {"id": 1, "name": "Masculino"},
        {"id": 2, "name": "Femenino"},
        {"id": 3, "name": "Otro"},
    ],
    IdentificationType: [
        {"id": 1, "code": "CC", "name": "Cédula de ciudadanía"},
        {"id": 2, "code": "TI", "name": "Tarjeta de identidad"},
        {"id": 3, "code": "RC", "name": "Registro civil"},
        {"id": 4, "code": "CE", "name": "Cédula de extranjería"},
        {"id": 5, "code": "PP", "name": "Pasaporte"},
    ],
    CivilStatus: [
        {"id": 1, "name": "Soltero(a)"},
        {"id": 2, "name": "Casado(a)"},
        {"id": 3, "name": "Divorciado(a)"},
        {"id": 4, "name": "Viudo(a)"},
        {"id": 5, "name": "Unión libre"},
    ],
    WasteDisposalType: [
        {"id": 1, "name": "Recolección pública"},
        {"id": 2, "name": "Quema"},
        {"id": 3, "name": "Entierro"},
        {"id": 4, "name": "Reciclaje"},
        {"id": 5, "name": "Compostaje"},
        {"id": 6, "name": "Botadero"},
        {"id": 7, "name": "Otro"},
    ],
    AqueductSystem: [
        {"id": 1, "name": "Acueducto público"},
        {"id": 2, "name": "Acueducto veredal"},
        {"id": 3, "name": "Pozo"},
        {"id": 4, "name": "Nacimiento o río"},
        {"id": 5, "name": "Carrotanque"},
    ],
    WastewaterSystem: [
        {"id": 1, "name": "Alcantarillado"},
        {"id": 2, "name": "Pozo séptico"},
        {"id": 3, "name": "Letrina"},
        {"id": 4, "name": "Campo abierto"},
    ],
    HousingType: [
        {"id": 1, "name": "Casa"},
        {"id": 2, "name": "Apartamento"},
        {"id": 3, "name": "Finca"},
        {"id": 4, "name": "Rancho"},
        {"id": 5, "name": "Habitación"},
        {"id": 6, "name": "Otro"},
    ],
}


def get_catalog_model(catalog: str) -> type:
    model = CATALOGS.get(catalog)
    if model is None:
        raise CatalogNotFoundError(f"Unknown catalog '{catalog}'")
    return model


def _has_column(model: type, column: str) -> bool:
    return column in model.__table__.columns


def list_items(
    db: Session,
    catalog: str,
    pagination: PaginationParams,
    search: str | None = None,
) -> tuple[list, int]:
    """List catalog items ordered by id, optionally filtered by name."""
    model = get_catalog_model(catalog)
    query = db.query(model)
    if search and search.strip():
        query = query.filter(model.name.ilike(f"%{search.strip()}%"))
    return paginate_query(query.order_by(model.id), pagination)


def get_item(db: Session, catalog: str, item_id: int):
    model = get_catalog_model(catalog)
    item = db.get(model, item_id)
    if item is None:
        raise CatalogItemNotFoundError(f"{catalog} item {item_id} not found")
    return item


def _ensure_unique_name(db: Session, model: type, name: str, exclude_id: int | None = None) -> None:
    stmt = select(model.id).where(func.lower(model.name) == name.lower())
    if exclude_id is not None:
        stmt = stmt.where(model.id != exclude_id)
    if db.execute(stmt.limit(1)).first() is not None:
        raise DuplicateCatalogItemError(f"'{name}' already exists")


def _apply_optional_columns(model: type, item, data: CatalogItemCreate | CatalogItemUpdate) -> None:
    if _has_column(model, "code") and data.code is not None:
        item.code = data.code.strip().upper()
    if _has_column(model, "municipality_id") and data.municipality_id is not None:
        item.municipality_id = data.municipality_id


def _commit_or_duplicate(db: Session, name: str) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateCatalogItemError(f"'{name}' conflicts with an existing item") from exc


def create_item(db: Session, catalog: str, data: CatalogItemCreate):
    """
    Raises:
        CatalogNotFoundError, DuplicateCatalogItemError, CatalogValidationError
    """
    model = get_catalog_model(catalog)
    name = data.name.strip()
    if _has_column(model, "code") and not data.code:
        raise CatalogValidationError("code is required for identification types")
    _ensure_unique_name(db, model, name)

    item = model(name=name, description=data.description)
    _apply_optional_columns(model, item, data)
    db.add(item)
    _commit_or_duplicate(db, name)
    db.refresh(item)
    logger.info("Catalog item created catalog=%s id=%s", catalog, item.id)
    return item


def update_item(db: Session, catalog: str, item_id: int, data: CatalogItemUpdate):
    model = get_catalog_model(catalog)
    item = get_item(db, catalog, item_id)
    if data.name is not None:
        name = data.name.strip()
        _ensure_unique_name(db, model, name, exclude_id=item.id)
        item.name = name
    if data.description is not None:
        item.description = data.description
    _apply_optional_columns(model, item, data)
    _commit_or_duplicate(db, item.name)
    db.refresh(item)
    return item


def delete_item(db: Session, catalog: str, item_id: int) -> None:
    """
    Raises:
        CatalogItemNotFoundError, CatalogItemInUseError
    """
    item = get_item(db, catalog, item_id)
    db.delete(item)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise CatalogItemInUseError(f"{catalog} item {item_id} is in use") from exc
    logger.info("Catalog item deleted catalog=%s id=%s", catalog, item_id)


def _sync_sequence(db: Session, model: type) -> None:
    """Explicit ids leave PostgreSQL sequences behind; move them past the max id."""
    table = model.__tablename__
    db.execute(
        text(
            f"SELECT setval(pg_get_serial_sequence('{table}', 'id'), "
            f"(SELECT COALESCE(MAX(id), 1) FROM {table}))"
        )
    )


def seed_defaults(db: Session) -> int:
    """Insert any missing default catalog rows. Returns the number inserted."""
    inserted = 0
    for model, rows in DEFAULT_CATALOGS.items():
        existing = set(db.execute(select(model.id)).scalars().all())
        for row in rows:
            if row["id"] in existing:
                continue
            db.add(model(**row))
            inserted += 1
        db.flush()
        if db.get_bind().dialect.name == "postgresql":
            _sync_sequence(db, model)
    db.commit()
    logger.info("Catalog seed complete inserted=%s", inserted)
    return inserted
