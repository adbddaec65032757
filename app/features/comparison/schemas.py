"""Pydantic schemas for side-by-side entity comparison."""

from datetime import date
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from app.shared.schemas import DateRange, TimedResponse


class EntityType(str, Enum):
    """What the ``sourceIds`` of a compared entity refer to."""

    PRODUCT = "PRODUCT"
    LABORATORY = "LABORATORY"
    CATEGORY = "CATEGORY"


class ComparisonEntity(BaseModel):
    """One column of the comparison table.

    ``sourceIds`` are BCB product ids for products, laboratory names for
    laboratories, and category labels (any classification level) for
    categories.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Client-side identifier echoed back as `entityId`.")
    type: EntityType
    source_ids: list[str] = Field(default_factory=list, alias="sourceIds")


class ComparisonRequest(BaseModel):
    """Body of ``POST /api/comparison/stats`` and ``/evolution``."""

    model_config = ConfigDict(populate_by_name=True)

    entities: list[ComparisonEntity] = Field(default_factory=list)
    date_range: DateRange = Field(..., alias="dateRange")
    pharmacy_id: str | None = Field(
        None,
        alias="pharmacyId",
        description="Admin-only restriction to one pharmacy. Ignored for pharmacy users.",
    )


class EntityStats(BaseModel):
    """Metrics of one entity over the period and the same period a year earlier.

    ``*_evolution`` fields are percent changes, null when the previous value
    was 0; ``margin_rate_evolution`` is a difference in points.
    """

    sales_ht: float = 0.0
    sales_ht_evolution: float | None = None
    margin_eur: float = 0.0
    margin_eur_evolution: float | None = None
    margin_rate: float = 0.0
    margin_rate_evolution: float = 0.0
    qty_sold: float = 0.0
    qty_sold_evolution: float | None = None
    qty_bought: float = 0.0
    qty_bought_evolution: float | None = None
    purchases_ht: float = 0.0
    purchases_ht_evolution: float | None = None
    stock_value: float = 0.0
    stock_quantity: float = 0.0
    days_stock: int | None = Field(
        None, description="round(stock / daily sales over the period); null without sales."
    )
    nb_refs: int = 0


class EntityStatsResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    entity_id: str = Field(..., alias="entityId")
    stats: EntityStats


class ComparisonStatsResponse(TimedResponse):
    results: list[EntityStatsResult]


class EvolutionPoint(BaseModel):
    """Monthly totals of one entity."""

    date: date
    sales_ht: float = 0.0
    margin_eur: float = 0.0
    qty_sold: float = 0.0


class EntityEvolutionResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    entity_id: str = Field(..., alias="entityId")
    evolution: list[EvolutionPoint]


class ComparisonEvolutionResponse(TimedResponse):
    results: list[EntityEvolutionResult]


class GroupMetrics(BaseModel):
    """Sell-in, sell-out, margin and stock of a set of pharmacies.

    The ``*_comparison`` and ``evol_*`` fields are only set when a
    comparison period was requested.
    """

    ca_sell_in: float = 0.0
    ca_sell_in_comparison: float | None = None
    evol_sell_in_pct: float | None = None
    ca_sell_out: float = 0.0
    ca_sell_out_comparison: float | None = None
    evol_sell_out_pct: float | None = None
    marge: float = 0.0
    marge_comparison: float | None = None
    evol_marge_pct: float | None = None
    taux_marge: float = 0.0
    taux_marge_comparison: float | None = None
    stock: float = 0.0
    stock_comparison: float | None = None


class PharmacyGroupComparisonResponse(TimedResponse):
    """Selected pharmacies against the average pharmacy of the network."""

    selected_pharmacies: GroupMetrics = Field(..., alias="selectedPharmacies")
    group_average: GroupMetrics = Field(..., alias="groupAverage")
    pharmacy_count: int = Field(..., alias="pharmacyCount")
    total_pharmacies_in_group: int = Field(..., alias="totalPharmaciesInGroup")
