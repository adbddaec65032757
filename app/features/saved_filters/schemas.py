"""Pydantic schemas for saved filters.

Create and rename bodies accept missing or empty values so that the service
can answer them with explicit 400 messages; only malformed types (e.g. an
unparsable date) are rejected by validation with a 422.
"""

import datetime
import uuid

from pydantic import BaseModel, ConfigDict, Field

from app.features.search.schemas import CategoryType

NAME_MAX_LENGTH = 255


class SavedFilterCreate(BaseModel):
    """Body of ``POST /api/saved-filters``."""

    name: str | None = None
    pharmacy_ids: list[str] = Field(default_factory=list)
    product_codes: list[str] = Field(default_factory=list)
    laboratory_names: list[str] = Field(default_factory=list)
    category_names: list[str] = Field(default_factory=list)
    category_types: list[CategoryType] = Field(default_factory=list)
    analysis_date_start: datetime.date | None = None
    analysis_date_end: datetime.date | None = None
    comparison_date_start: datetime.date | None = None
    comparison_date_end: datetime.date | None = None

    @property
    def has_selection(self) -> bool:
        return bool(
            self.product_codes or self.laboratory_names or self.category_names or self.pharmacy_ids
        )


class SavedFilterRename(BaseModel):
    """Body of ``PATCH /api/saved-filters/{id}``."""

    name: str | None = None


class SavedFilterResponse(BaseModel):
    """A saved filter as stored."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    name: str
    pharmacy_ids: list[str]
    product_codes: list[str]
    laboratory_names: list[str]
    category_names: list[str]
    category_types: list[str]
    analysis_date_start: datetime.date
    analysis_date_end: datetime.date
    comparison_date_start: datetime.date | None = None
    comparison_date_end: datetime.date | None = None
    created_at: datetime.datetime
    updated_at: datetime.datetime


class SavedFilterEnvelope(BaseModel):
    filter: SavedFilterResponse


class SavedFilterListResponse(BaseModel):
    filters: list[SavedFilterResponse]


class ResolvedLaboratory(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    product_codes: list[str] = Field(default_factory=list, alias="productCodes")
    product_count: int = Field(0, alias="productCount")


class ResolvedCategory(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    type: CategoryType
    product_codes: list[str] = Field(default_factory=list, alias="productCodes")
    product_count: int = Field(0, alias="productCount")


class ResolvedPharmacy(BaseModel):
    id: uuid.UUID
    name: str
    address: str | None = None
    ca: float | None = None
    area: str | None = None
    employees_count: int | None = None
    id_nat: str | None = None


class LoadedFilterResponse(BaseModel):
    """A saved filter with its laboratories, categories and pharmacies resolved.

    ``resolvedProductCodes`` is the union of the stored product codes and
    every code resolved from laboratories and categories.
    """

    model_config = ConfigDict(populate_by_name=True)

    filter: SavedFilterResponse
    resolved_product_codes: list[str] = Field(
        default_factory=list, alias="resolvedProductCodes"
    )
    resolved_laboratories: list[ResolvedLaboratory] = Field(
        default_factory=list, alias="resolvedLaboratories"
    )
    resolved_categories: list[ResolvedCategory] = Field(
        default_factory=list, alias="resolvedCategories"
    )
    resolved_pharmacies: list[ResolvedPharmacy] = Field(
        default_factory=list, alias="resolvedPharmacies"
    )


class DeleteResponse(BaseModel):
    success: bool = True
