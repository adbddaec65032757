"""Pydantic schemas for regulatory exports."""

from pydantic import BaseModel, ConfigDict, Field

from app.shared.schemas import DateRange


class BriExportRequest(BaseModel):
    """Body of ``POST /api/declaration-bri/export``."""

    model_config = ConfigDict(populate_by_name=True)

    analysis_date_range: DateRange = Field(..., alias="analysisDateRange")
    pharmacy_ids: list[str] = Field(
        default_factory=list,
        alias="pharmacyIds",
        description="Admin-only restriction. Ignored for pharmacy users.",
    )
    product_codes: list[str] = Field(default_factory=list, alias="productCodes")
