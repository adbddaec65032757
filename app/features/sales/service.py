"""Service layer for the per-product sales table and its CSV export."""

import io
import time
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import ResponseCache
from app.core.config import get_settings
from app.core.database import fetch_all
from app.core.logging import get_logger
from app.core.security import PharmacyScope
from app.features.filters.selection import Selection
from app.features.sales.queries import sales_products_sql
from app.features.sales.schemas import SalesProductRow, SalesProductsResponse, SalesRowType
from app.shared.export import build_csv
from app.shared.schemas import DateRange, ProductSelection
from app.shared.utils import (
    as_float,
    elapsed_ms,
    read_cached_response,
    store_cached_response,
)

logger = get_logger(__name__)

# (header, row key) pairs of the CSV export.
CSV_COLUMNS: list[tuple[str, str]] = [
    ("Produit", "nom"),
    ("Code EAN", "code_ean"),
    ("Laboratoire", "bcb_lab"),
    ("Période", "periode_libelle"),
    ("Type", "type_ligne"),
    ("Qté achetée", "quantity_bought"),
    ("Qté vendue", "quantite_vendue"),
    ("Qté vendue (comparaison)", "quantite_vendue_comparison"),
    ("Qté achetée (comparaison)", "quantity_bought_comparison"),
    ("Prix achat moyen HT", "prix_achat_moyen"),
    ("Prix vente moyen TTC", "prix_vente_moyen"),
    ("Taux marge moyen (%)", "taux_marge_moyen"),
    ("Part quantité (%)", "part_marche_quantite_pct"),
    ("Part marge (%)", "part_marche_marge_pct"),
    ("Montant ventes TTC", "montant_ventes_ttc"),
    ("Montant marge", "montant_marge_total"),
]

_METRIC_FIELDS = (
    "quantity_bought",
    "quantite_vendue",
    "prix_achat_moyen",
    "prix_vente_moyen",
    "taux_marge_moyen",
    "part_marche_quantite_pct",
    "part_marche_marge_pct",
    "montant_ventes_ttc",
    "montant_marge_total",
)


class SalesService:
    """Per-product sales over a period, with optional comparison totals."""

    def __init__(self, cache: ResponseCache) -> None:
        self.settings = get_settings()
        self.cache = cache

    def use_monthly_grouping(self, period: DateRange) -> bool:
        """DETAIL rows switch from days to months for long ranges."""
        return period.days > self.settings.monthly_grouping_threshold_days

    async def get_sales_products(
        self,
        db: AsyncSession,
        request: ProductSelection,
        scope: PharmacyScope,
    ) -> SalesProductsResponse:
        """Build the sales table.

        Only SYNTHESE rows receive comparison quantities; DETAIL rows keep
        null comparison fields since their periods have no counterpart.

        Args:
            db: Database session.
            request: Period and selection.
            scope: Effective pharmacy scope.

        Returns:
            Sales rows with timing and cache flags.
        """
        started = time.perf_counter()
        selection = Selection.from_request(request, scope)
        comparison_range = request.comparison_date_range
        key = self.cache.build_key(
            "sales_products",
            {
                "start": request.date_range.start,
                "end": request.date_range.end,
                "comparison": (
                    [comparison_range.start, comparison_range.end] if comparison_range else None
                ),
                **selection.cache_payload(),
            },
        )
        cached = await read_cached_response(self.cache, key, SalesProductsResponse, started)
        if cached is not None:
            return cached

        rows = await self._fetch_rows(db, request.date_range, selection)

        comparison: dict[str, dict[str, Any]] = {}
        if comparison_range is not None:
            previous = await self._fetch_rows(db, comparison_range, selection)
            comparison = {
                row["code_ean"]: row
                for row in previous
                if row["type_ligne"] == SalesRowType.SYNTHESE.value
            }

        sales_data = [self._to_row(row, comparison) for row in rows]
        response = SalesProductsResponse(
            sales_data=sales_data,
            count=len(sales_data),
            date_range=request.date_range,
            query_time=elapsed_ms(started),
        )

        logger.info(
            "sales.products_computed",
            start_date=str(request.date_range.start),
            end_date=str(request.date_range.end),
            rows=response.count,
            product_codes=len(selection.product_codes),
            has_comparison=comparison_range is not None,
            query_time_ms=response.query_time,
        )

        await store_cached_response(
            self.cache, key, response, self.settings.cache_ttl_sales_seconds
        )
        return response

    async def _fetch_rows(
        self,
        db: AsyncSession,
        period: DateRange,
        selection: Selection,
    ) -> list[dict[str, Any]]:
        monthly = self.use_monthly_grouping(period)
        return await fetch_all(
            db,
            sales_products_sql(selection, monthly=monthly),
            {"date_start": period.start, "date_end": period.end, **selection.params()},
        )

    @staticmethod
    def _to_row(row: dict[str, Any], comparison: dict[str, dict[str, Any]]) -> SalesProductRow:
        previous = None
        if row["type_ligne"] == SalesRowType.SYNTHESE.value:
            previous = comparison.get(row["code_ean"])
        return SalesProductRow(
            nom=row["nom"] or "",
            code_ean=row["code_ean"],
            bcb_lab=row["bcb_lab"],
            periode=str(row["periode"]),
            periode_libelle=str(row["periode_libelle"]).strip(),
            type_ligne=SalesRowType(row["type_ligne"]),
            **{name: as_float(row[name]) for name in _METRIC_FIELDS},
            quantite_vendue_comparison=(
                as_float(previous["quantite_vendue"]) if previous else None
            ),
            quantity_bought_comparison=(
                as_float(previous["quantity_bought"]) if previous else None
            ),
        )

    async def export_sales_products(
        self,
        db: AsyncSession,
        request: ProductSelection,
        scope: PharmacyScope,
    ) -> io.BytesIO:
        """Render the sales table as a semicolon-separated CSV."""
        response = await self.get_sales_products(db, request, scope)
        rows = [row.model_dump(mode="json") for row in response.sales_data]
        buffer = build_csv(
            [header for header, _ in CSV_COLUMNS],
            rows,
            columns=[key for _, key in CSV_COLUMNS],
        )
        logger.info("sales.export_completed", rows=len(rows))
        return buffer
