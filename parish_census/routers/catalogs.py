"""Lookup catalog CRUD endpoints (sexes, housing types, sectors, ...)."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from parish_census.core.deps import (
    get_current_session,
    get_db,
    require_csrf_header,
    require_roles,
)
from parish_census.db.enums import ROLES_CAN_MANAGE_CATALOGS
from parish_census.schemas.auth import UserSession
from parish_census.schemas.catalog import CatalogItemCreate, CatalogItemRead, CatalogItemUpdate
from parish_census.services import catalog_service
from parish_census.services.catalog_service import (
    CatalogItemInUseError,
    CatalogItemNotFoundError,
    CatalogNotFoundError,
    CatalogServiceError,
    DuplicateCatalogItemError,
)
from parish_census.utils.pagination import (
    PaginationParams,
    build_pagination_meta,
    get_pagination,
)

router = APIRouter()


def _http_error(exc: CatalogServiceError) -> HTTPException:
    if isinstance(exc, (CatalogNotFoundError, CatalogItemNotFoundError)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (DuplicateCatalogItemError, CatalogItemInUseError)):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


@router.get("/{catalog}", response_model=dict)
def list_items(
    catalog: str,
    search: str | None = Query(None, description="Name contains"),
    pagination: PaginationParams = Depends(get_pagination),
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    try:
        items, total = catalog_service.list_items(db, catalog, pagination, search)
    except CatalogServiceError as e:
        raise _http_error(e)
    return {
        "items": [CatalogItemRead.model_validate(i).model_dump(mode="json") for i in items],
        "pagination": build_pagination_meta(total, pagination),
    }


@router.post("/{catalog}", status_code=201)
def create_item(
    catalog: str,
    data: CatalogItemCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_roles(ROLES_CAN_MANAGE_CATALOGS)),
    _csrf: None = Depends(require_csrf_header),
):
    """Requires: Admin"""
    try:
        item = catalog_service.create_item(db, catalog, data)
    except CatalogServiceError as e:
        raise _http_error(e)
    return {
        "status": "success",
        "message": "Catalog item created",
        "data": CatalogItemRead.model_validate(item).model_dump(mode="json"),
    }


@router.get("/{catalog}/{item_id}", response_model=CatalogItemRead)
def get_item(
    catalog: str,
    item_id: int,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    try:
        return catalog_service.get_item(db, catalog, item_id)
    except CatalogServiceError as e:
        raise _http_error(e)


@router.put("/{catalog}/{item_id}")
def update_item(
    catalog: str,
    item_id: int,
    data: CatalogItemUpdate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_roles(ROLES_CAN_MANAGE_CATALOGS)),
    _csrf: None = Depends(require_csrf_header),
):
    """Requires: Admin"""
    try:
        item = catalog_service.update_item(db, catalog, item_id, data)
    except CatalogServiceError as e:
        raise _http_error(e)
    return {
        "status": "success",
        "message": "Catalog item updated",
        "data": CatalogItemRead.model_validate(item).model_dump(mode="json"),
    }


@router.delete("/{catalog}/{item_id}")
def delete_item(
    catalog: str,
    item_id: int,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_roles(ROLES_CAN_MANAGE_CATALOGS)),
    _csrf: None = Depends(require_csrf_header),
):
    """Requires: Admin"""
    try:
        catalog_service.delete_item(db, catalog, item_id)
    except CatalogServiceError as e:
        raise _http_error(e)
    return {"status": "success", "message": "Catalog item deleted", "data": {"id": item_id}}
