"""API routes for KPI endpoints.

These endpoints compute dashboard, sales, stock and daily metrics over a
period, optionally against a comparison period, within the caller's
pharmacy scope.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import ResponseCache, get_cache
from app.core.database import get_db
from app.core.exceptions import DatabaseError
from app.core.logging import get_logger
from app.core.security import SecurityContext, enforce_pharmacy_scope, get_security_context
from app.features.filters.schemas import FilterRequest
from app.features.kpis.schemas import (
    AchatsKpiResponse,
    DailyMetricsRequest,
    DailyMetricsResponse,
    DashboardKpiResponse,
    SalesKpiResponse,
    StockMetricsResponse,
    VentesKpiResponse,
)
from app.features.kpis.service import KpiService
from app.shared.schemas import ProductSelection

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["kpis"])


def _database_error(event: str, message: str, e: SQLAlchemyError) -> DatabaseError:
    logger.error(
        event,
        error=str(e),
        error_type=type(e).__name__,
        exc_info=True,
    )
    return DatabaseError(message=message, details={"error": str(e)})


# =============================================================================
# Dashboard KPIs
# =============================================================================


@router.post(
    "/kpis",
    response_model=DashboardKpiResponse,
    summary="Compute dashboard KPIs",
    description="""
Compute the headline dashboard metrics over a period.

**Metrics Computed**:
- `ca_ttc`: Sales turnover incl. tax
- `montant_achat_ht`: Ordered quantities valued at the weighted average cost
- `montant_marge` / `pourcentage_marge`: Margin in value and in percent of `ca_ttc`
- `valeur_stock_ht` / `quantite_stock`: Latest stock snapshot
- `quantite_vendue` / `quantite_achetee`: Units sold and ordered
- `jours_de_stock`: Days of cover (null when nothing was sold or stocked)
- `nb_references_produits` / `nb_pharmacies`

**Selection**:
- `productCodes`, `laboratoryCodes` and `categoryCodes` are merged into one product filter
- `pharmacyIds` is honoured for admins only; pharmacy users always see their own pharmacy

**Comparison**: When `comparisonDateRange` is set, a `comparison` block holds
`ca_ttc`, `montant_achat_ht`, `montant_marge`, `quantite_vendue` and
`quantite_achetee` for that period.

Responses are cached for 12 hours; a cached response carries `cached: true`.
""",
)
async def get_dashboard_kpis(
    request: ProductSelection,
    ctx: SecurityContext = Depends(get_security_context),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
) -> DashboardKpiResponse:
    """Compute dashboard KPIs.

    Args:
        request: Period and selection.
        ctx: Caller security context.
        db: Database session.
        cache: Response cache.

    Returns:
        Dashboard KPIs.

    Raises:
        DatabaseError: If the query fails.
    """
    scope = enforce_pharmacy_scope(request.pharmacy_ids, ctx)
    service = KpiService(cache)
    try:
        return await service.get_dashboard_kpis(db=db, request=request, scope=scope)
    except SQLAlchemyError as e:
        raise _database_error("kpis.dashboard_request_failed", "Failed to compute KPIs", e) from e


# =============================================================================
# Sales KPIs
# =============================================================================


@router.post(
    "/ventes/kpis",
    response_model=SalesKpiResponse,
    summary="Compute sales KPIs",
    description="""
Compute sales metrics for a selection, with market shares against the
scoped pharmacies.

**Routing**: Requests spanning whole calendar months (from 2024-01 on)
without any product filter are answered from the monthly materialized view
`mv_sales_kpi_monthly`; market shares are then 100 and
`nb_references_80pct_ca` is 0. All other requests run on the raw sales
tables. `usedMaterializedView` reports the source used for the main period.

**Metrics Computed**:
- `quantite_vendue`, `ca_ttc`, `montant_marge`, `taux_marge_pct`
- `part_marche_ca_pct` / `part_marche_marge_pct`: Share of the selection in the scoped pharmacies
- `nb_references_selection`: Distinct products sold
- `nb_references_80pct_ca`: Best sellers making up 80% of the turnover
""",
)
async def get_sales_kpis(
    request: ProductSelection,
    ctx: SecurityContext = Depends(get_security_context),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
) -> SalesKpiResponse:
    """Compute sales KPIs with materialized view routing.

    Args:
        request: Period and selection.
        ctx: Caller security context.
        db: Database session.
        cache: Response cache.

    Returns:
        Sales KPIs.

    Raises:
        DatabaseError: If the query fails.
    """
    scope = enforce_pharmacy_scope(request.pharmacy_ids, ctx)
    service = KpiService(cache)
    try:
        return await service.get_sales_kpis(db=db, request=request, scope=scope)
    except SQLAlchemyError as e:
        raise _database_error("kpis.sales_request_failed", "Failed to compute sales KPIs", e) from e


# =============================================================================
# Stock metrics
# =============================================================================


@router.post(
    "/stock-metrics",
    response_model=StockMetricsResponse,
    summary="Compute stock metrics",
    description="""
Compute stock, coverage and order/reception metrics.

**Metrics Computed**:
- `quantite_stock_actuel_total` / `montant_stock_actuel_total`: Latest snapshot per product
- `stock_moyen_12_mois`: Average monthly stock over the last 12 months
- `jours_de_stock_actuels`: Days of cover at the current sales pace
- `quantite_commandee` / `quantite_receptionnee`: Units ordered and received, by delivery date
- `montant_commande_ht` / `montant_receptionne_ht`: Same, valued at the latest cost
""",
)
async def get_stock_metrics(
    request: ProductSelection,
    ctx: SecurityContext = Depends(get_security_context),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
) -> StockMetricsResponse:
    """Compute stock metrics."""
    scope = enforce_pharmacy_scope(request.pharmacy_ids, ctx)
    service = KpiService(cache)
    try:
        return await service.get_stock_metrics(db=db, request=request, scope=scope)
    except SQLAlchemyError as e:
        raise _database_error(
            "kpis.stock_request_failed", "Failed to compute stock metrics", e
        ) from e


# =============================================================================
# Daily metrics
# =============================================================================


@router.post(
    "/daily-metrics",
    response_model=DailyMetricsResponse,
    summary="Compute daily metrics",
    description="""
Compute a per-day series with running totals since the start of the range.

**Constraints**:
- The range cannot exceed 365 days (400 otherwise)
- `pharmacyId` is honoured for admins only; pharmacy users always get their own pharmacy

**Routing**: A single pharmacy without product filter, from 2024-01-01 up to
today, is read from `mv_kpi_daily`; anything else is computed from a
calendar joined to the raw tables.
""",
)
async def get_daily_metrics(
    request: DailyMetricsRequest,
    ctx: SecurityContext = Depends(get_security_context),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
) -> DailyMetricsResponse:
    """Compute the daily series.

    Args:
        request: Period, products and optional pharmacy.
        ctx: Caller security context.
        db: Database session.
        cache: Response cache.

    Returns:
        Daily entries.

    Raises:
        BadRequestError: If the period is too long.
        DatabaseError: If the query fails.
    """
    service = KpiService(cache)
    try:
        return await service.get_daily_metrics(db=db, request=request, ctx=ctx)
    except SQLAlchemyError as e:
        raise _database_error(
            "kpis.daily_request_failed", "Failed to compute daily metrics", e
        ) from e


# =============================================================================
# Filtered aggregates
# =============================================================================


def _scoped_filter(request: FilterRequest, ctx: SecurityContext) -> FilterRequest:
    scope = enforce_pharmacy_scope(request.pharmacy_ids, ctx)
    return request.model_copy(update={"pharmacy_ids": scope.ids})


@router.post(
    "/kpis/ventes",
    response_model=VentesKpiResponse,
    summary="Aggregate sales under the dashboard filter",
    description="""
Sum sold quantities and amounts excl. tax from `mv_sales_enriched` under the
full dashboard filter (laboratories, categories, groups, exclusions, VAT,
reimbursement, generic status and price ranges).

**Evolution**: With `comparisonDateRange`, `evolution_percent` is the change
of `montant_ht` against the comparison period (null when it was 0).
""",
)
async def get_ventes_kpi(
    request: FilterRequest,
    ctx: SecurityContext = Depends(get_security_context),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
) -> VentesKpiResponse:
    """Aggregate sales under the dashboard filter."""
    service = KpiService(cache)
    try:
        return await service.get_ventes_kpi(db=db, request=_scoped_filter(request, ctx))
    except SQLAlchemyError as e:
        raise _database_error(
            "kpis.ventes_request_failed", "Failed to aggregate sales", e
        ) from e


@router.post(
    "/kpis/achats",
    response_model=AchatsKpiResponse,
    summary="Aggregate purchases under the dashboard filter",
    description="""
Sum received quantities by delivery date, valued at the latest weighted
average cost, under the full dashboard filter.

**Evolution**: With `comparisonDateRange`, `evolution_percent` is the change
of `montant_ht` against the comparison period (null when it was 0).
""",
)
async def get_achats_kpi(
    request: FilterRequest,
    ctx: SecurityContext = Depends(get_security_context),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
) -> AchatsKpiResponse:
    """Aggregate purchases under the dashboard filter."""
    service = KpiService(cache)
    try:
        return await service.get_achats_kpi(db=db, request=_scoped_filter(request, ctx))
    except SQLAlchemyError as e:
        raise _database_error(
            "kpis.achats_request_failed", "Failed to aggregate purchases", e
        ) from e
