"""Pydantic schemas for lookup catalogs."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class CatalogItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    description: str | None = None
    # identification-types only
    code: str | None = Field(None, min_length=1, max_length=10)
    # veredas, sectors and parishes only
    municipality_id: int | None = Field(None, ge=1)


class CatalogItemUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=150)
    description: str | None = None
    code: str | None = Field(None, min_length=1, max_length=10)
    municipality_id: int | None = Field(None, ge=1)


class CatalogItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None
    code: str | None = None
    municipality_id: int | None = None
    created_at: datetime
    updated_at: datetime
