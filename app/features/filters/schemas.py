"""Pydantic schemas for the dashboard filter model.

A :class:`FilterRequest` carries everything the dashboard filter panel can
express: inclusion and exclusion lists per dimension, the operators chaining
filter groups together, product attribute settings and price ranges.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.shared.schemas import DateRange

# =============================================================================
# Enums
# =============================================================================


class FilterOperator(str, Enum):
    """Boolean operator placed between two filter groups."""

    AND = "AND"
    OR = "OR"


class ExclusionMode(str, Enum):
    """How the excluded lists of a request are interpreted.

    - ``exclude``: inclusions apply, excluded items are removed.
    - ``include``: inclusions apply, excluded lists are ignored.
    - ``only``: the excluded lists become the selection itself.
    """

    EXCLUDE = "exclude"
    INCLUDE = "include"
    ONLY = "only"


class ReimbursementStatus(str, Enum):
    """Social-security reimbursement filter."""

    ALL = "ALL"
    REIMBURSED = "REIMBURSED"
    NOT_REIMBURSED = "NOT_REIMBURSED"


class GenericStatus(str, Enum):
    """Generic / brand-name filter."""

    ALL = "ALL"
    GENERIC = "GENERIC"
    PRINCEPS = "PRINCEPS"
    PRINCEPS_GENERIC = "PRINCEPS_GENERIC"


# Values sent by older dashboard builds.
_LEGACY_GENERIC_STATUS = {"YES": GenericStatus.GENERIC, "NO": GenericStatus.PRINCEPS}

CATEGORY_TYPES = (
    "bcb_segment_l0",
    "bcb_segment_l1",
    "bcb_segment_l2",
    "bcb_segment_l3",
    "bcb_segment_l4",
    "bcb_segment_l5",
    "bcb_family",
)


# =============================================================================
# Filter components
# =============================================================================


class CategoryFilter(BaseModel):
    """A category value at a given level of the BCB classification."""

    code: str = Field(..., min_length=1, description="Category label as stored in the catalog.")
    type: str = Field(
        ...,
        description="Classification level: bcb_segment_l0..bcb_segment_l5 or bcb_family. "
        "Unknown levels are ignored when building SQL.",
    )


class ProductGroup(BaseModel):
    """Named set of products selected together (e.g. a generic group)."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., description="Display name of the group.")
    product_codes: list[str] = Field(default_factory=list, alias="productCodes")


class ValueRange(BaseModel):
    """Inclusive numeric range."""

    min: float
    max: float

    @model_validator(mode="after")
    def validate_bounds(self) -> "ValueRange":
        """Ensure min <= max."""
        if self.min > self.max:
            raise ValueError("min must be less than or equal to max")
        return self


# =============================================================================
# Request
# =============================================================================


class FilterRequest(BaseModel):
    """Full dashboard filter state.

    Filter groups are applied in a fixed order (pharmacies, laboratories,
    categories, products, groups, then exclusions). ``filterOperators[i]`` is
    the operator placed after the i-th selected item, so the operator used in
    front of a group depends on how many items were selected before it.
    """

    model_config = ConfigDict(populate_by_name=True)

    date_range: DateRange = Field(..., alias="dateRange")
    comparison_date_range: DateRange | None = Field(None, alias="comparisonDateRange")

    pharmacy_ids: list[str] = Field(default_factory=list, alias="pharmacyIds")
    laboratories: list[str] = Field(default_factory=list)
    categories: list[CategoryFilter] = Field(default_factory=list)
    product_codes: list[str] = Field(default_factory=list, alias="productCodes")
    groups: list[ProductGroup] = Field(default_factory=list)

    excluded_pharmacy_ids: list[str] = Field(default_factory=list, alias="excludedPharmacyIds")
    excluded_laboratories: list[str] = Field(default_factory=list, alias="excludedLaboratories")
    excluded_categories: list[CategoryFilter] = Field(
        default_factory=list, alias="excludedCategories"
    )
    excluded_product_codes: list[str] = Field(default_factory=list, alias="excludedProductCodes")
    exclusion_mode: ExclusionMode = Field(ExclusionMode.EXCLUDE, alias="exclusionMode")

    filter_operators: list[FilterOperator] = Field(default_factory=list, alias="filterOperators")

    tva_rates: list[float] = Field(default_factory=list, alias="tvaRates")
    reimbursement_status: ReimbursementStatus = Field(
        ReimbursementStatus.ALL, alias="reimbursementStatus"
    )
    is_generic: GenericStatus = Field(GenericStatus.ALL, alias="isGeneric")

    purchase_price_net_range: ValueRange | None = Field(None, alias="purchasePriceNetRange")
    purchase_price_gross_range: ValueRange | None = Field(None, alias="purchasePriceGrossRange")
    sell_price_range: ValueRange | None = Field(None, alias="sellPriceRange")
    discount_range: ValueRange | None = Field(None, alias="discountRange")
    margin_range: ValueRange | None = Field(None, alias="marginRange")

    @field_validator("is_generic", mode="before")
    @classmethod
    def map_legacy_generic(cls, v: Any) -> Any:
        """Accept the legacy YES/NO values."""
        if isinstance(v, str) and v.upper() in _LEGACY_GENERIC_STATUS:
            return _LEGACY_GENERIC_STATUS[v.upper()]
        return v

    @property
    def has_latest_price_range(self) -> bool:
        """True when a range targets the latest-price view."""
        return any(
            r is not None
            for r in (
                self.purchase_price_net_range,
                self.sell_price_range,
                self.discount_range,
                self.margin_range,
            )
        )

    def for_period(self, period: DateRange) -> "FilterRequest":
        """Copy of this request over another period, without comparison."""
        return self.model_copy(update={"date_range": period, "comparison_date_range": None})
