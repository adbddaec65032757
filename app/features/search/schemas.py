"""Pydantic schemas for entity search endpoints."""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.shared.schemas import TimedResponse


class SearchType(str, Enum):
    """How a free-text query was interpreted."""

    KEYWORDS = "keywords"
    CODE_START = "code_start"
    CODE_END = "code_end"


class LaboratorySearchMode(str, Enum):
    """Match laboratory names, or find laboratories through their products."""

    LABORATORY = "laboratory"
    PRODUCT = "product"


class CategorySearchMode(str, Enum):
    CATEGORY = "category"
    PRODUCT = "product"


class LabOrBrandMode(str, Enum):
    LABORATORY = "laboratory"
    BRAND = "brand"


class CategoryType(str, Enum):
    UNIVERSE = "universe"
    CATEGORY = "category"


class MatchingProduct(BaseModel):
    name: str | None = None
    code_13_ref: str


# =============================================================================
# Products (POST /api/products/search)
# =============================================================================


class ProductSearchRequest(BaseModel):
    query: str = Field(
        "", description="Name keywords, an EAN prefix, or `*digits` for an EAN suffix."
    )


class ProductResult(BaseModel):
    name: str | None = None
    code_13_ref: str
    brand_lab: str | None = None
    universe: str | None = None


class ProductSearchResponse(TimedResponse):
    products: list[ProductResult] = Field(default_factory=list)
    count: int = 0
    search_type: SearchType | None = Field(None, alias="searchType")


# =============================================================================
# Laboratories (POST /api/laboratories/search)
# =============================================================================


class LaboratorySearchRequest(BaseModel):
    """Laboratory (or brand) lookup."""

    model_config = ConfigDict(populate_by_name=True)

    query: str = ""
    mode: LaboratorySearchMode = LaboratorySearchMode.LABORATORY
    lab_or_brand_mode: LabOrBrandMode = Field(
        LabOrBrandMode.LABORATORY,
        alias="labOrBrandMode",
        description="Group on `bcb_lab` (laboratory) or `bcb_brand` (brand).",
    )


class LaboratoryResult(BaseModel):
    laboratory_name: str
    product_count: int
    product_codes: list[str] = Field(default_factory=list)
    matching_products: list[MatchingProduct] | None = None
    source_type: LabOrBrandMode


class LaboratorySearchResponse(TimedResponse):
    model_config = ConfigDict(populate_by_name=True)

    laboratories: list[LaboratoryResult] = Field(default_factory=list)
    count: int = 0
    mode: LaboratorySearchMode
    lab_or_brand_mode: LabOrBrandMode = Field(alias="labOrBrandMode")


# =============================================================================
# Categories (POST /api/categories/search)
# =============================================================================


class CategorySearchRequest(BaseModel):
    query: str = ""
    mode: CategorySearchMode = CategorySearchMode.CATEGORY


class CategoryResult(BaseModel):
    category_name: str
    category_type: CategoryType
    product_count: int
    product_codes: list[str] = Field(default_factory=list)
    matching_products: list[MatchingProduct] | None = None


class CategorySearchResponse(TimedResponse):
    categories: list[CategoryResult] = Field(default_factory=list)
    count: int = 0
    mode: CategorySearchMode


# =============================================================================
# Pharmacies (POST /api/search/pharmacies)
# =============================================================================


class PharmacySearchRequest(BaseModel):
    """Pharmacy lookup; every filter is optional but at least one is needed."""

    model_config = ConfigDict(populate_by_name=True)

    query: str | None = Field(None, description="Matched on name and address (2+ characters).")
    ca_min: float | None = Field(None, alias="caMin")
    ca_max: float | None = Field(None, alias="caMax")
    regions: list[str] = Field(default_factory=list)

    @property
    def has_filter(self) -> bool:
        return bool(
            (self.query and self.query.strip())
            or self.ca_min is not None
            or self.ca_max is not None
            or self.regions
        )


class PharmacyResult(BaseModel):
    id: UUID
    name: str | None = None
    address: str | None = None
    ca: float | None = None
    area: str | None = None
    employees_count: int | None = None
    id_nat: str | None = None


class PharmacySearchResponse(TimedResponse):
    pharmacies: list[PharmacyResult] = Field(default_factory=list)
    count: int = 0
