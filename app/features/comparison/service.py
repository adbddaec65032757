"""Service layer for entity and pharmacy group comparison.

Each entity is queried on its own with the same pharmacy scope. Entities run
one after the other because a session executes one statement at a time.
"""

import time
from datetime import date
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import ResponseCache, normalize_codes
from app.core.config import get_settings
from app.core.database import fetch_all, fetch_one
from app.core.exceptions import BadRequestError
from app.core.logging import get_logger
from app.core.security import PharmacyScope
from app.features.comparison import queries
from app.features.comparison.schemas import (
    ComparisonEntity,
    ComparisonEvolutionResponse,
    ComparisonRequest,
    ComparisonStatsResponse,
    EntityEvolutionResult,
    EntityStats,
    EntityStatsResult,
    EvolutionPoint,
    GroupMetrics,
    PharmacyGroupComparisonResponse,
)
from app.features.filters.query_builder import FilterQueryBuilder
from app.features.filters.selection import Selection
from app.shared.schemas import DateRange, ProductSelection
from app.shared.utils import (
    as_float,
    as_int,
    elapsed_ms,
    evolution_percent,
    read_cached_response,
    store_cached_response,
)

logger = get_logger(__name__)


def previous_year(day: date) -> date:
    """Same day one year earlier; 29 February becomes the 28th."""
    try:
        return day.replace(year=day.year - 1)
    except ValueError:
        return day.replace(year=day.year - 1, day=28)


def margin_rate(margin: float, sales: float) -> float:
    return margin / sales * 100 if sales > 0 else 0.0


def days_of_stock(stock: float, sold: float, period: DateRange) -> int | None:
    """Days the current stock lasts at the period's average daily sales."""
    if stock <= 0 or sold <= 0:
        return None
    return round(stock / (sold / (period.days + 1)))


def validate_entities(entities: list[ComparisonEntity]) -> None:
    """Reject empty comparisons and entities that would match every product.

    Raises:
        BadRequestError: On the first failed rule.
    """
    if not entities:
        raise BadRequestError("No entities provided")
    for entity in entities:
        if not entity.source_ids:
            raise BadRequestError(f"Entity {entity.id} has no source ids")


class ComparisonService:
    """Per-entity metrics and monthly series for the comparison view."""

    def __init__(self, cache: ResponseCache) -> None:
        self.settings = get_settings()
        self.cache = cache

    def _builder(
        self,
        entity: ComparisonEntity,
        pharmacy_ids: list[str],
        params: dict[str, Any],
        alias: str = "mv",
    ) -> FilterQueryBuilder:
        builder = FilterQueryBuilder(params, queries.entity_mapping(alias))
        builder.add_pharmacies(pharmacy_ids)
        queries.add_entity(builder, entity)
        return builder

    def _cache_payload(
        self, request: ComparisonRequest, pharmacy_ids: list[str]
    ) -> dict[str, Any]:
        return {
            "start": request.date_range.start,
            "end": request.date_range.end,
            "entities": [
                [entity.id, entity.type.value, normalize_codes(entity.source_ids)]
                for entity in request.entities
            ],
            "pharmacy_ids": normalize_codes(pharmacy_ids),
        }

    # =========================================================================
    # Stats
    # =========================================================================

    async def get_stats(
        self,
        db: AsyncSession,
        request: ComparisonRequest,
        pharmacy_ids: list[str],
    ) -> ComparisonStatsResponse:
        """Compute every entity's metrics against the previous year.

        Args:
            db: Database session.
            request: Entities and analysis period.
            pharmacy_ids: Effective pharmacy scope (empty for the whole network).

        Returns:
            One result per entity, in request order.

        Raises:
            BadRequestError: If there is no entity or an entity has no source ids.
        """
        started = time.perf_counter()
        validate_entities(request.entities)

        key = self.cache.build_key(
            "comparison_stats", self._cache_payload(request, pharmacy_ids)
        )
        cached = await read_cached_response(self.cache, key, ComparisonStatsResponse, started)
        if cached is not None:
            return cached

        results = [
            EntityStatsResult(
                entity_id=entity.id,
                stats=await self._entity_stats(db, entity, request.date_range, pharmacy_ids),
            )
            for entity in request.entities
        ]
        response = ComparisonStatsResponse(results=results, query_time=elapsed_ms(started))

        logger.info(
            "comparison.stats_computed",
            entities=len(results),
            start_date=str(request.date_range.start),
            end_date=str(request.date_range.end),
            pharmacies=len(pharmacy_ids),
            query_time_ms=response.query_time,
        )
        await store_cached_response(
            self.cache, key, response, self.settings.cache_ttl_default_seconds
        )
        return response

    async def _entity_stats(
        self,
        db: AsyncSession,
        entity: ComparisonEntity,
        period: DateRange,
        pharmacy_ids: list[str],
    ) -> EntityStats:
        sales_builder = self._builder(
            entity,
            pharmacy_ids,
            {
                "date_start": period.start,
                "date_end": period.end,
                "prev_start": previous_year(period.start),
                "prev_end": previous_year(period.end),
            },
        )
        row = await fetch_one(
            db,
            queries.ENTITY_STATS_SQL.format(conditions=sales_builder.conditions()),
            sales_builder.params(),
        )
        stock_builder = self._builder(entity, pharmacy_ids, {"date_end": period.end}, alias="s")
        stock_row = await fetch_one(
            db,
            queries.ENTITY_STOCK_SQL.format(conditions=stock_builder.conditions()),
            stock_builder.params(),
        )

        row = row or {}
        stock_row = stock_row or {}
        current = {
            name: as_float(row.get(name))
            for name in ("sales_ht", "margin_eur", "qty_sold", "qty_bought", "purchases_ht")
        }
        previous = {name: as_float(row.get(f"{name}_prev")) for name in current}
        rate = margin_rate(current["margin_eur"], current["sales_ht"])
        rate_prev = margin_rate(previous["margin_eur"], previous["sales_ht"])
        stock_quantity = as_float(stock_row.get("stock_quantity"))

        return EntityStats(
            **current,
            **{
                f"{name}_evolution": evolution_percent(value, previous[name])
                for name, value in current.items()
            },
            margin_rate=rate,
            margin_rate_evolution=rate - rate_prev,
            stock_value=as_float(stock_row.get("stock_value")),
            stock_quantity=stock_quantity,
            days_stock=days_of_stock(stock_quantity, current["qty_sold"], period),
            nb_refs=as_int(stock_row.get("nb_refs")),
        )

    # =========================================================================
    # Evolution
    # =========================================================================

    async def get_evolution(
        self,
        db: AsyncSession,
        request: ComparisonRequest,
        pharmacy_ids: list[str],
    ) -> ComparisonEvolutionResponse:
        """Monthly sales, margin and volume of every entity over the period.

        Raises:
            BadRequestError: If there is no entity or an entity has no source ids.
        """
        started = time.perf_counter()
        validate_entities(request.entities)

        key = self.cache.build_key(
            "comparison_evolution", self._cache_payload(request, pharmacy_ids)
        )
        cached = await read_cached_response(
            self.cache, key, ComparisonEvolutionResponse, started
        )
        if cached is not None:
            return cached

        results: list[EntityEvolutionResult] = []
        for entity in request.entities:
            builder = self._builder(
                entity,
                pharmacy_ids,
                {"date_start": request.date_range.start, "date_end": request.date_range.end},
            )
            rows = await fetch_all(
                db,
                queries.ENTITY_EVOLUTION_SQL.format(conditions=builder.conditions()),
                builder.params(),
            )
            results.append(
                EntityEvolutionResult(
                    entity_id=entity.id,
                    evolution=[
                        EvolutionPoint(
                            date=row["date"],
                            sales_ht=as_float(row["sales_ht"]),
                            margin_eur=as_float(row["margin_eur"]),
                            qty_sold=as_float(row["qty_sold"]),
                        )
                        for row in rows
                    ],
                )
            )

        response = ComparisonEvolutionResponse(results=results, query_time=elapsed_ms(started))
        logger.info(
            "comparison.evolution_computed",
            entities=len(results),
            months=max((len(r.evolution) for r in results), default=0),
            query_time_ms=response.query_time,
        )
        await store_cached_response(
            self.cache, key, response, self.settings.cache_ttl_default_seconds
        )
        return response

    # =========================================================================
    # Pharmacy group
    # =========================================================================

    async def get_pharmacy_group(
        self,
        db: AsyncSession,
        request: ProductSelection,
    ) -> PharmacyGroupComparisonResponse:
        """Compare selected pharmacies with the average pharmacy of the network.

        The network average divides network totals by the number of
        pharmacies; ``taux_marge`` and the evolutions are network-wide rates.

        Args:
            db: Database session.
            request: Period, optional comparison period, pharmacies and products.

        Returns:
            Selected totals and network average.

        Raises:
            BadRequestError: If no pharmacy is selected.
        """
        started = time.perf_counter()
        if not request.pharmacy_ids:
            raise BadRequestError("At least one pharmacy ID required")

        selected = Selection.from_request(
            request, PharmacyScope(is_admin=True, pharmacy_ids=tuple(request.pharmacy_ids))
        )
        network = Selection(
            scope=PharmacyScope(is_admin=True), product_codes=selected.product_codes
        )
        comparison = request.comparison_date_range

        key = self.cache.build_key(
            "pharmacy_group",
            {
                **selected.cache_payload(),
                "start": request.date_range.start,
                "end": request.date_range.end,
                "comparison": [comparison.start, comparison.end] if comparison else None,
            },
        )
        cached = await read_cached_response(
            self.cache, key, PharmacyGroupComparisonResponse, started
        )
        if cached is not None:
            return cached

        period = request.date_range
        selected_metrics = await self._group_metrics(db, selected, period, comparison)
        network_metrics = await self._group_metrics(db, network, period, comparison)
        count_row = await fetch_one(db, queries.PHARMACY_COUNT_SQL)
        total = as_int(count_row["count"]) if count_row else 0

        response = PharmacyGroupComparisonResponse(
            selected_pharmacies=selected_metrics,
            group_average=average_metrics(network_metrics, total),
            pharmacy_count=len(request.pharmacy_ids),
            total_pharmacies_in_group=total,
            query_time=elapsed_ms(started),
        )
        logger.info(
            "comparison.pharmacy_group_computed",
            pharmacies=len(request.pharmacy_ids),
            total_pharmacies=total,
            products=len(selected.product_codes),
            has_comparison=comparison is not None,
            query_time_ms=response.query_time,
        )
        await store_cached_response(
            self.cache, key, response, self.settings.cache_ttl_default_seconds
        )
        return response

    async def _group_metrics(
        self,
        db: AsyncSession,
        selection: Selection,
        period: DateRange,
        comparison: DateRange | None,
    ) -> GroupMetrics:
        sql = queries.group_metrics_sql(selection)
        current = await self._group_row(db, sql, selection, period)
        if comparison is None:
            return GroupMetrics(**current)

        previous = await self._group_row(db, sql, selection, comparison)
        return GroupMetrics(
            **current,
            ca_sell_in_comparison=previous["ca_sell_in"],
            evol_sell_in_pct=_rounded(
                evolution_percent(current["ca_sell_in"], previous["ca_sell_in"])
            ),
            ca_sell_out_comparison=previous["ca_sell_out"],
            evol_sell_out_pct=_rounded(
                evolution_percent(current["ca_sell_out"], previous["ca_sell_out"])
            ),
            marge_comparison=previous["marge"],
            evol_marge_pct=_rounded(evolution_percent(current["marge"], previous["marge"])),
            taux_marge_comparison=previous["taux_marge"],
            stock_comparison=previous["stock"],
        )

    async def _group_row(
        self,
        db: AsyncSession,
        sql: str,
        selection: Selection,
        period: DateRange,
    ) -> dict[str, float]:
        row = await fetch_one(
            db, sql, {"date_start": period.start, "date_end": period.end, **selection.params()}
        )
        return {name: as_float((row or {}).get(name)) for name in GROUP_METRIC_COLUMNS}


GROUP_METRIC_COLUMNS = ("ca_sell_in", "ca_sell_out", "marge", "taux_marge", "stock")

# Amounts divided by the pharmacy count for the network average; rates are kept.
_AVERAGED_FIELDS = (
    "ca_sell_in",
    "ca_sell_in_comparison",
    "ca_sell_out",
    "ca_sell_out_comparison",
    "marge",
    "marge_comparison",
    "stock",
    "stock_comparison",
)


def _rounded(value: float | None) -> float | None:
    return round(value, 2) if value is not None else None


def average_metrics(totals: GroupMetrics, pharmacy_count: int) -> GroupMetrics:
    """Per-pharmacy average of network totals (zeros for an empty network)."""
    if pharmacy_count <= 0:
        return GroupMetrics()
    averaged = {
        name: value / pharmacy_count
        for name in _AVERAGED_FIELDS
        if (value := getattr(totals, name)) is not None
    }
    return totals.model_copy(update=averaged)
