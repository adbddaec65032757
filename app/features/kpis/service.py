"""Service layer for KPI computations.

Every public method follows the same flow: normalize the request into a cache
payload, try the response cache, run the SQL (once per period when a
comparison is requested), then store the response.
"""

import time
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import ResponseCache, normalize_codes
from app.core.config import get_settings
from app.core.database import fetch_all, fetch_one
from app.core.exceptions import BadRequestError
from app.core.logging import get_logger
from app.core.security import PharmacyScope, SecurityContext, require_pharmacy
from app.features.filters.query_builder import apply_price_ranges, create_builder
from app.features.filters.routing import can_use_daily_view, can_use_materialized_view
from app.features.filters.schemas import FilterRequest
from app.features.filters.selection import Selection
from app.features.kpis import queries
from app.features.kpis.schemas import (
    AchatsAggregate,
    AchatsKpiResponse,
    DailyMetricsEntry,
    DailyMetricsRequest,
    DailyMetricsResponse,
    DashboardKpiComparison,
    DashboardKpiMetrics,
    DashboardKpiResponse,
    SalesKpiMetrics,
    SalesKpiResponse,
    StockMetrics,
    StockMetricsComparison,
    StockMetricsResponse,
    VentesAggregate,
    VentesKpiResponse,
)
from app.shared.schemas import DateRange, ProductSelection
from app.shared.utils import (
    as_float,
    as_int,
    as_optional_float,
    elapsed_ms,
    evolution_percent,
    read_cached_response,
    store_cached_response,
)

logger = get_logger(__name__)


def _period_params(period: DateRange) -> dict[str, Any]:
    return {"date_start": period.start, "date_end": period.end}


def _period_payload(request: ProductSelection) -> dict[str, Any]:
    comparison = request.comparison_date_range
    return {
        "start": request.date_range.start,
        "end": request.date_range.end,
        "comparison": [comparison.start, comparison.end] if comparison else None,
    }


class KpiService:
    """Dashboard, sales, stock and daily KPI computations."""

    def __init__(self, cache: ResponseCache) -> None:
        """Initialize KPI service.

        Args:
            cache: Response cache (no-op when caching is disabled).
        """
        self.settings = get_settings()
        self.cache = cache

    # =========================================================================
    # Dashboard KPIs
    # =========================================================================

    async def get_dashboard_kpis(
        self,
        db: AsyncSession,
        request: ProductSelection,
        scope: PharmacyScope,
    ) -> DashboardKpiResponse:
        """Compute dashboard KPIs for a period and optional comparison.

        Args:
            db: Database session.
            request: Period and product selection.
            scope: Effective pharmacy scope.

        Returns:
            Dashboard KPIs.
        """
        started = time.perf_counter()
        selection = Selection.from_request(request, scope)
        key = self.cache.build_key(
            "kpis", {**_period_payload(request), **selection.cache_payload()}
        )
        cached = await read_cached_response(self.cache, key, DashboardKpiResponse, started)
        if cached is not None:
            return cached

        metrics = await self._dashboard_metrics(db, request.date_range, selection)
        comparison = None
        if request.comparison_date_range is not None:
            previous = await self._dashboard_metrics(db, request.comparison_date_range, selection)
            comparison = DashboardKpiComparison.model_validate(previous.model_dump())

        response = DashboardKpiResponse(
            **metrics.model_dump(),
            comparison=comparison,
            query_time=elapsed_ms(started),
        )

        logger.info(
            "kpis.dashboard_computed",
            start_date=str(request.date_range.start),
            end_date=str(request.date_range.end),
            product_codes=len(selection.product_codes),
            pharmacies=len(scope.ids),
            has_comparison=comparison is not None,
            ca_ttc=response.ca_ttc,
            query_time_ms=response.query_time,
        )

        await store_cached_response(
            self.cache, key, response, self.settings.cache_ttl_default_seconds
        )
        return response

    async def _dashboard_metrics(
        self,
        db: AsyncSession,
        period: DateRange,
        selection: Selection,
    ) -> DashboardKpiMetrics:
        row = await fetch_one(
            db,
            queries.dashboard_kpis_sql(selection),
            {**_period_params(period), **selection.params()},
        )
        if row is None:
            return DashboardKpiMetrics()
        return DashboardKpiMetrics(
            ca_ttc=as_float(row["ca_ttc"]),
            montant_achat_ht=as_float(row["montant_achat_ht"]),
            montant_marge=as_float(row["montant_marge"]),
            pourcentage_marge=as_float(row["pourcentage_marge"]),
            valeur_stock_ht=as_float(row["valeur_stock_ht"]),
            quantite_stock=as_float(row["quantite_stock"]),
            quantite_vendue=as_float(row["quantite_vendue"]),
            quantite_achetee=as_float(row["quantite_achetee"]),
            jours_de_stock=as_optional_float(row["jours_de_stock"]),
            nb_references_produits=as_int(row["nb_references_produits"]),
            nb_pharmacies=as_int(row["nb_pharmacies"]),
        )

    # =========================================================================
    # Sales KPIs
    # =========================================================================

    async def get_sales_kpis(
        self,
        db: AsyncSession,
        request: ProductSelection,
        scope: PharmacyScope,
    ) -> SalesKpiResponse:
        """Compute sales KPIs, routed to the monthly view when possible.

        Args:
            db: Database session.
            request: Period and product selection.
            scope: Effective pharmacy scope.

        Returns:
            Sales KPIs, flagged with the source used for the main period.
        """
        started = time.perf_counter()
        selection = Selection.from_request(request, scope)
        key = self.cache.build_key(
            "ventes_kpis", {**_period_payload(request), **selection.cache_payload()}
        )
        cached = await read_cached_response(self.cache, key, SalesKpiResponse, started)
        if cached is not None:
            return cached

        metrics, used_mv = await self._sales_metrics(db, request.date_range, selection)
        comparison = None
        if request.comparison_date_range is not None:
            comparison, _ = await self._sales_metrics(
                db, request.comparison_date_range, selection
            )

        response = SalesKpiResponse(
            **metrics.model_dump(),
            comparison=comparison,
            used_materialized_view=used_mv,
            query_time=elapsed_ms(started),
        )

        logger.info(
            "kpis.sales_computed",
            start_date=str(request.date_range.start),
            end_date=str(request.date_range.end),
            used_materialized_view=used_mv,
            has_comparison=comparison is not None,
            query_time_ms=response.query_time,
        )

        await store_cached_response(
            self.cache, key, response, self.settings.cache_ttl_default_seconds
        )
        return response

    async def _sales_metrics(
        self,
        db: AsyncSession,
        period: DateRange,
        selection: Selection,
    ) -> tuple[SalesKpiMetrics, bool]:
        use_mv = can_use_materialized_view(
            period, selection.has_product_filter, self.settings.mv_min_date
        )
        sql = (
            queries.sales_kpis_mv_sql(selection)
            if use_mv
            else queries.sales_kpis_raw_sql(selection)
        )
        row = await fetch_one(db, sql, {**_period_params(period), **selection.params()})

        logger.debug(
            "kpis.sales_routed",
            source="materialized_view" if use_mv else "raw_tables",
            start_date=str(period.start),
            end_date=str(period.end),
        )

        if row is None:
            return SalesKpiMetrics(), use_mv
        metrics = SalesKpiMetrics(
            quantite_vendue=as_float(row["quantite_vendue"]),
            ca_ttc=as_float(row["ca_ttc"]),
            part_marche_ca_pct=as_float(row["part_marche_ca_pct"]),
            part_marche_marge_pct=as_float(row["part_marche_marge_pct"]),
            nb_references_selection=as_int(row["nb_references_selection"]),
            nb_references_80pct_ca=as_int(row["nb_references_80pct_ca"]),
            montant_marge=as_float(row["montant_marge"]),
            taux_marge_pct=as_float(row["taux_marge_pct"]),
        )
        return metrics, use_mv

    # =========================================================================
    # Stock metrics
    # =========================================================================

    async def get_stock_metrics(
        self,
        db: AsyncSession,
        request: ProductSelection,
        scope: PharmacyScope,
    ) -> StockMetricsResponse:
        """Compute stock, coverage and order/reception metrics."""
        started = time.perf_counter()
        selection = Selection.from_request(request, scope)
        key = self.cache.build_key(
            "stock_metrics", {**_period_payload(request), **selection.cache_payload()}
        )
        cached = await read_cached_response(self.cache, key, StockMetricsResponse, started)
        if cached is not None:
            return cached

        metrics = await self._stock_metrics(db, request.date_range, selection)
        comparison = None
        if request.comparison_date_range is not None:
            previous = await self._stock_metrics(db, request.comparison_date_range, selection)
            comparison = StockMetricsComparison.model_validate(previous.model_dump())

        response = StockMetricsResponse(
            **metrics.model_dump(),
            comparison=comparison,
            query_time=elapsed_ms(started),
        )

        logger.info(
            "kpis.stock_computed",
            start_date=str(request.date_range.start),
            end_date=str(request.date_range.end),
            quantite_stock=response.quantite_stock_actuel_total,
            has_comparison=comparison is not None,
            query_time_ms=response.query_time,
        )

        await store_cached_response(
            self.cache, key, response, self.settings.cache_ttl_default_seconds
        )
        return response

    async def _stock_metrics(
        self,
        db: AsyncSession,
        period: DateRange,
        selection: Selection,
    ) -> StockMetrics:
        row = await fetch_one(
            db,
            queries.stock_metrics_sql(selection),
            {**_period_params(period), **selection.params()},
        )
        if row is None:
            return StockMetrics()
        return StockMetrics(
            quantite_stock_actuel_total=as_float(row["quantite_stock_actuel_total"]),
            montant_stock_actuel_total=as_float(row["montant_stock_actuel_total"]),
            stock_moyen_12_mois=as_float(row["stock_moyen_12_mois"]),
            jours_de_stock_actuels=as_optional_float(row["jours_de_stock_actuels"]),
            nb_references_produits=as_int(row["nb_references_produits"]),
            nb_pharmacies=as_int(row["nb_pharmacies"]),
            quantite_commandee=as_float(row["quantite_commandee"]),
            quantite_receptionnee=as_float(row["quantite_receptionnee"]),
            montant_commande_ht=as_float(row["montant_commande_ht"]),
            montant_receptionne_ht=as_float(row["montant_receptionne_ht"]),
        )

    # =========================================================================
    # Daily metrics
    # =========================================================================

    def validate_daily_period(self, period: DateRange) -> None:
        """Reject ranges longer than the configured maximum.

        Raises:
            BadRequestError: If the range is too long.
        """
        max_days = self.settings.daily_metrics_max_days
        if period.days > max_days:
            raise BadRequestError(f"Period cannot exceed {max_days} days")

    async def get_daily_metrics(
        self,
        db: AsyncSession,
        request: DailyMetricsRequest,
        ctx: SecurityContext,
    ) -> DailyMetricsResponse:
        """Compute the daily series for one pharmacy (or all, for admins).

        Args:
            db: Database session.
            request: Period, product codes and optional pharmacy.
            ctx: Caller security context.

        Returns:
            One entry per day with running totals.

        Raises:
            BadRequestError: If the period is too long.
            ForbiddenError: If a non-admin user has no pharmacy.
        """
        started = time.perf_counter()
        self.validate_daily_period(request.date_range)

        pharmacy_id = request.pharmacy_id if ctx.is_admin else require_pharmacy(ctx)
        if ctx.is_admin:
            scope = PharmacyScope(is_admin=True, pharmacy_ids=(pharmacy_id,) if pharmacy_id else ())
        else:
            scope = PharmacyScope(is_admin=False, pharmacy_id=pharmacy_id)
        selection = Selection(scope=scope, product_codes=list(request.product_codes))

        key = self.cache.build_key(
            "daily_metrics",
            {
                "start": request.date_range.start,
                "end": request.date_range.end,
                "product_codes": normalize_codes(request.product_codes) or None,
                "pharmacy_id": pharmacy_id,
            },
        )
        cached = await read_cached_response(self.cache, key, DailyMetricsResponse, started)
        if cached is not None:
            return cached

        params = _period_params(request.date_range)
        use_mv = can_use_daily_view(
            request.date_range,
            selection.has_product_filter,
            pharmacy_id,
            self.settings.mv_min_date,
        )
        if use_mv:
            rows = await fetch_all(
                db, queries.DAILY_METRICS_MV_SQL, {**params, "pharmacy_id": pharmacy_id}
            )
        else:
            rows = await fetch_all(
                db, queries.daily_metrics_sql(selection), {**params, **selection.params()}
            )

        entries = [
            DailyMetricsEntry(
                date=row["date"],
                **{
                    name: as_float(row[name])
                    for name in DailyMetricsEntry.model_fields
                    if name != "date"
                },
            )
            for row in rows
        ]

        response = DailyMetricsResponse(
            data=entries,
            used_materialized_view=use_mv,
            query_time=elapsed_ms(started),
        )

        logger.info(
            "kpis.daily_computed",
            start_date=str(request.date_range.start),
            end_date=str(request.date_range.end),
            pharmacy_id=pharmacy_id,
            days=len(entries),
            used_materialized_view=use_mv,
            query_time_ms=response.query_time,
        )

        await store_cached_response(
            self.cache, key, response, self.settings.cache_ttl_default_seconds
        )
        return response

    # =========================================================================
    # Filtered aggregates
    # =========================================================================

    async def get_ventes_kpi(
        self,
        db: AsyncSession,
        request: FilterRequest,
    ) -> VentesKpiResponse:
        """Sold quantity and amount under the full filter, with evolution.

        Args:
            db: Database session.
            request: Filter request, already narrowed to the caller's scope.

        Returns:
            Sales aggregate.
        """
        started = time.perf_counter()
        key = self.cache.build_key("kpis_ventes", request.model_dump(mode="json"))
        cached = await read_cached_response(self.cache, key, VentesKpiResponse, started)
        if cached is not None:
            return cached

        current = await self._ventes_aggregate(db, request)
        comparison = None
        evolution = None
        if request.comparison_date_range is not None:
            comparison = await self._ventes_aggregate(
                db, request.for_period(request.comparison_date_range)
            )
            evolution = evolution_percent(current.montant_ht, comparison.montant_ht)

        response = VentesKpiResponse(
            **current.model_dump(),
            evolution_percent=evolution,
            comparison=comparison,
            query_time=elapsed_ms(started),
        )
        logger.info(
            "kpis.ventes_computed",
            start_date=str(request.date_range.start),
            end_date=str(request.date_range.end),
            laboratories=len(request.laboratories),
            has_price_filters=request.has_latest_price_range,
            montant_ht=response.montant_ht,
            query_time_ms=response.query_time,
        )
        await store_cached_response(
            self.cache, key, response, self.settings.cache_ttl_default_seconds
        )
        return response

    async def _ventes_aggregate(self, db: AsyncSession, request: FilterRequest) -> VentesAggregate:
        builder = create_builder(
            request, _period_params(request.date_range), queries.SALES_MV_MAPPING
        )
        apply_price_ranges(builder, request)
        conditions = builder.conditions()
        sql = queries.ventes_aggregate_sql(
            conditions,
            join_latest_prices="lp." in conditions,
            join_global_product="gp." in conditions,
        )
        row = await fetch_one(db, sql, builder.params())
        if row is None:
            return VentesAggregate()
        return VentesAggregate(
            quantite_vendue=as_float(row["quantite_vendue"]),
            montant_ht=as_float(row["montant_ht"]),
        )

    async def get_achats_kpi(
        self,
        db: AsyncSession,
        request: FilterRequest,
    ) -> AchatsKpiResponse:
        """Received quantity and amount under the full filter, with evolution."""
        started = time.perf_counter()
        key = self.cache.build_key("kpis_achats", request.model_dump(mode="json"))
        cached = await read_cached_response(self.cache, key, AchatsKpiResponse, started)
        if cached is not None:
            return cached

        current = await self._achats_aggregate(db, request)
        comparison = None
        evolution = None
        if request.comparison_date_range is not None:
            comparison = await self._achats_aggregate(
                db, request.for_period(request.comparison_date_range)
            )
            evolution = evolution_percent(current.montant_ht, comparison.montant_ht)

        response = AchatsKpiResponse(
            **current.model_dump(),
            evolution_percent=evolution,
            comparison=comparison,
            query_time=elapsed_ms(started),
        )
        logger.info(
            "kpis.achats_computed",
            start_date=str(request.date_range.start),
            end_date=str(request.date_range.end),
            montant_ht=response.montant_ht,
            query_time_ms=response.query_time,
        )
        await store_cached_response(
            self.cache, key, response, self.settings.cache_ttl_default_seconds
        )
        return response

    async def _achats_aggregate(self, db: AsyncSession, request: FilterRequest) -> AchatsAggregate:
        builder = create_builder(request, _period_params(request.date_range))
        apply_price_ranges(builder, request)
        conditions = builder.conditions()
        sql = queries.achats_aggregate_sql(conditions, join_global_product="gp." in conditions)
        row = await fetch_one(db, sql, builder.params())
        if row is None:
            return AchatsAggregate()
        return AchatsAggregate(
            quantite_achetee=as_float(row["quantite_achetee"]),
            montant_ht=as_float(row["montant_ht"]),
        )

