"""Shared Pydantic schemas for request bodies and API responses.

Request bodies keep the camelCase keys used by the dashboard front-end
(``dateRange``, ``productCodes``...) as aliases; metric names stay in the
snake_case French vocabulary of the reporting schema (``ca_ttc``,
``quantite_vendue``...).
"""

from datetime import date

from pydantic import BaseModel, ConfigDict, Field, model_validator


class DateRange(BaseModel):
    """Inclusive date interval."""

    start: date = Field(..., description="First day of the period (inclusive). YYYY-MM-DD.")
    end: date = Field(..., description="Last day of the period (inclusive). YYYY-MM-DD.")

    @model_validator(mode="after")
    def validate_order(self) -> "DateRange":
        """Ensure start <= end."""
        if self.start > self.end:
            raise ValueError("start must be on or before end")
        return self

    @property
    def days(self) -> int:
        """Number of days between start and end."""
        return (self.end - self.start).days


class ProductSelection(BaseModel):
    """Date range plus product/pharmacy selection shared by most KPI routes.

    ``laboratoryCodes`` and ``categoryCodes`` are product codes already
    resolved by the front-end from a laboratory or category pick; they are
    merged with ``productCodes`` into a single product filter.
    """

    model_config = ConfigDict(populate_by_name=True)

    date_range: DateRange = Field(..., alias="dateRange", description="Analysis period.")
    comparison_date_range: DateRange | None = Field(
        None,
        alias="comparisonDateRange",
        description="Optional comparison period; adds a `comparison` block to the response.",
    )
    product_codes: list[str] = Field(default_factory=list, alias="productCodes")
    laboratory_codes: list[str] = Field(default_factory=list, alias="laboratoryCodes")
    category_codes: list[str] = Field(default_factory=list, alias="categoryCodes")
    pharmacy_ids: list[str] = Field(
        default_factory=list,
        alias="pharmacyIds",
        description="Admin-only restriction. Ignored for pharmacy users.",
    )


class TimedResponse(BaseModel):
    """Response envelope carrying timing and cache provenance."""

    model_config = ConfigDict(populate_by_name=True)

    query_time: int = Field(0, alias="queryTime", description="Server time in milliseconds.")
    cached: bool = Field(False, description="True when served from the Redis cache.")


class PaginationParams(BaseModel):
    """Pagination query parameters."""

    page: int = Field(1, ge=1, description="Page number (1-indexed)")
    page_size: int = Field(50, ge=1, le=500, description="Items per page")

    @property
    def offset(self) -> int:
        """Calculate SQL offset from page number."""
        return (self.page - 1) * self.page_size

    @property
    def limit(self) -> int:
        """Return page size as SQL limit."""
        return self.page_size


class PaginatedResponse[T](BaseModel):
    """Generic paginated response wrapper."""

    items: list[T] = Field(..., description="Page of items")
    total: int = Field(..., ge=0, description="Total item count")
    page: int = Field(..., ge=1, description="Current page number")
    page_size: int = Field(..., ge=1, description="Items per page")
    pages: int = Field(..., ge=0, description="Total number of pages")
