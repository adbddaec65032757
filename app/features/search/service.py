"""Service layer for entity search.

Searches are not cached: results are small and depend on the caller's
pharmacy. Queries slower than ``SLOW_QUERY_MS`` are logged as warnings.
"""

import json
import time
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import fetch_all
from app.core.exceptions import BadRequestError
from app.core.logging import get_logger
from app.core.security import SecurityContext
from app.features.search import queries
from app.features.search.schemas import (
    CategoryResult,
    CategorySearchMode,
    CategorySearchRequest,
    CategorySearchResponse,
    LabOrBrandMode,
    LaboratoryResult,
    LaboratorySearchMode,
    LaboratorySearchRequest,
    LaboratorySearchResponse,
    PharmacyResult,
    PharmacySearchRequest,
    PharmacySearchResponse,
    ProductResult,
    ProductSearchRequest,
    ProductSearchResponse,
)
from app.shared.utils import as_int, elapsed_ms

logger = get_logger(__name__)

SLOW_QUERY_MS = 500

MIN_PRODUCT_QUERY = 2
MIN_LABORATORY_QUERY = 2
MIN_CATEGORY_QUERY = 3

_GROUP_COLUMNS = {
    LabOrBrandMode.LABORATORY: "bcb_lab",
    LabOrBrandMode.BRAND: "bcb_brand",
}


def _scope_params(ctx: SecurityContext) -> dict[str, Any]:
    """Bind the caller's pharmacy for user-scoped SQL.

    Raises:
        BadRequestError: If a non-admin user has no pharmacy.
    """
    if ctx.is_admin:
        return {}
    if ctx.pharmacy_id is None:
        raise BadRequestError("No pharmacy assigned")
    return {"pharmacy_id": ctx.pharmacy_id}


def _matching_products(value: Any) -> list[dict[str, Any]] | None:
    # JSON_AGG arrives decoded from asyncpg only when a codec is registered.
    if isinstance(value, str):
        return json.loads(value)
    return value


class SearchService:
    """Product, laboratory, category and pharmacy lookups."""

    def __init__(self) -> None:
        self.settings = get_settings()

    async def _run(
        self,
        db: AsyncSession,
        event: str,
        sql: str,
        params: dict[str, Any],
        **log_fields: Any,
    ) -> tuple[list[dict[str, Any]], int]:
        started = time.perf_counter()
        rows = await fetch_all(db, sql, params)
        query_time = elapsed_ms(started)
        if query_time > SLOW_QUERY_MS:
            logger.warning(
                "search.slow_query", event_name=event, query_time_ms=query_time, **log_fields
            )
        logger.info(event, count=len(rows), query_time_ms=query_time, **log_fields)
        return rows, query_time

    async def search_products(
        self,
        db: AsyncSession,
        request: ProductSearchRequest,
        ctx: SecurityContext,
    ) -> ProductSearchResponse:
        """Find products by name keywords or EAN fragment.

        Args:
            db: Database session.
            request: Search query.
            ctx: Caller security context.

        Returns:
            Up to ``search_limit_products`` products; empty for queries under
            two characters.

        Raises:
            BadRequestError: If a non-admin user has no pharmacy.
        """
        query = request.query.strip()
        if len(query) < MIN_PRODUCT_QUERY:
            return ProductSearchResponse()

        params = _scope_params(ctx)
        kind = queries.classify_query(query)
        sql, query_params = queries.product_search_sql(query, kind, ctx.is_admin)
        params.update(query_params, limit=self.settings.search_limit_products)

        rows, query_time = await self._run(
            db,
            "search.products_completed",
            sql,
            params,
            search_type=kind.value,
            is_admin=ctx.is_admin,
        )
        products = [ProductResult.model_validate(row) for row in rows]
        return ProductSearchResponse(
            products=products,
            count=len(products),
            search_type=kind,
            query_time=query_time,
        )

    async def search_laboratories(
        self,
        db: AsyncSession,
        request: LaboratorySearchRequest,
        ctx: SecurityContext,
    ) -> LaboratorySearchResponse:
        """Find laboratories (or brands) by name or through their products.

        In ``laboratory`` mode a query shorter than two characters lists the
        first laboratories alphabetically; in ``product`` mode it returns
        nothing.
        """
        query = request.query.strip()
        column = _GROUP_COLUMNS[request.lab_or_brand_mode]
        response = LaboratorySearchResponse(
            mode=request.mode, lab_or_brand_mode=request.lab_or_brand_mode
        )
        filtered = len(query) >= MIN_LABORATORY_QUERY
        if request.mode == LaboratorySearchMode.PRODUCT and not filtered:
            return response

        params = _scope_params(ctx)
        params["limit"] = self.settings.search_limit_labs
        source = queries.source_for(ctx.is_admin)
        if request.mode == LaboratorySearchMode.LABORATORY:
            sql = queries.group_list_sql(source, column, filtered=filtered)
            if filtered:
                params["pattern"] = f"%{query}%"
        else:
            kind = queries.classify_query(query)
            sql = queries.group_by_product_sql(source, column, kind)
            params["pattern"] = queries.match_pattern(query, kind)

        rows, query_time = await self._run(
            db,
            "search.laboratories_completed",
            queries.ordered(sql),
            params,
            mode=request.mode.value,
            column=column,
        )
        response.laboratories = [
            LaboratoryResult(
                laboratory_name=row["group_name"],
                product_count=as_int(row["product_count"]),
                product_codes=list(row["product_codes"] or []),
                matching_products=_matching_products(row.get("matching_products")),
                source_type=request.lab_or_brand_mode,
            )
            for row in rows
        ]
        response.count = len(response.laboratories)
        response.query_time = query_time
        return response

    async def search_categories(
        self,
        db: AsyncSession,
        request: CategorySearchRequest,
        ctx: SecurityContext,
    ) -> CategorySearchResponse:
        """Find universes and categories by name or through their products."""
        query = request.query.strip()
        response = CategorySearchResponse(mode=request.mode)
        if len(query) < MIN_CATEGORY_QUERY:
            return response

        params = _scope_params(ctx)
        params["limit"] = self.settings.search_limit_categories
        source = queries.source_for(ctx.is_admin)
        if request.mode == CategorySearchMode.CATEGORY:
            params["pattern"] = f"%{query}%"
            sql = queries.category_union_sql(
                queries.group_list_sql(source, "universe", filtered=True),
                queries.group_list_sql(source, "category", filtered=True),
            )
        else:
            kind = queries.classify_query(query)
            params["pattern"] = queries.match_pattern(query, kind)
            sql = queries.category_union_sql(
                queries.group_by_product_sql(source, "universe", kind),
                queries.group_by_product_sql(source, "category", kind),
            )

        rows, query_time = await self._run(
            db, "search.categories_completed", sql, params, mode=request.mode.value
        )
        response.categories = [
            CategoryResult(
                category_name=row["group_name"],
                category_type=row["category_type"],
                product_count=as_int(row["product_count"]),
                product_codes=list(row["product_codes"] or []),
                matching_products=_matching_products(row.get("matching_products")),
            )
            for row in rows
        ]
        response.count = len(response.categories)
        response.query_time = query_time
        return response

    async def search_pharmacies(
        self,
        db: AsyncSession,
        request: PharmacySearchRequest,
    ) -> PharmacySearchResponse:
        """Filter pharmacies on text, turnover range and regions (admin only)."""
        if not request.has_filter:
            return PharmacySearchResponse()

        sql, params = queries.pharmacy_search_sql(
            request.query, request.ca_min, request.ca_max, request.regions
        )
        params["limit"] = self.settings.search_limit_pharmacies
        rows, query_time = await self._run(
            db, "search.pharmacies_completed", sql, params, regions=len(request.regions)
        )
        pharmacies = [PharmacyResult.model_validate(row) for row in rows]
        return PharmacySearchResponse(
            pharmacies=pharmacies,
            count=len(pharmacies),
            query_time=query_time,
        )
