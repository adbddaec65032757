"""Service layer for the BRI declaration workbook.

The workbook has a ``Total`` sheet (quantities per pharmacy), a ``Produit``
sheet (quantities per product) and one sheet per EAN detailing its sales
per pharmacy.
"""

import io
import time
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import fetch_all
from app.core.logging import get_logger
from app.core.security import PharmacyScope
from app.features.exports import queries
from app.features.exports.schemas import BriExportRequest
from app.features.filters.selection import Selection
from app.shared.export import ExcelExporter
from app.shared.utils import as_float, elapsed_ms

logger = get_logger(__name__)

TOTAL_HEADERS = ["Nom Pharmacie", "IDNAT", "Qté Vendues"]
PRODUCT_HEADERS = ["Code EAN 13", "Nom Produit", "Laboratoire", "Qté Vendue"]
DETAIL_HEADERS = ["Nom Pharmacie", "IDNAT", "Qté Vendue"]


def group_details(rows: list[dict[str, Any]]) -> dict[str, list[dict[str, Any]]]:
    """Group per-pharmacy rows by EAN, keeping query order; rows without an EAN are dropped."""
    grouped: dict[str, list[dict[str, Any]]] = {}
    for row in rows:
        code = row["code_ean"]
        if not code:
            logger.warning("exports.bri_missing_ean", pharmacy=row["pharmacy_name"])
            continue
        grouped.setdefault(code, []).append(row)
    return grouped


class BriExportService:
    """Builds the BRI declaration workbook."""

    async def export_bri(
        self,
        db: AsyncSession,
        request: BriExportRequest,
        scope: PharmacyScope,
    ) -> io.BytesIO:
        """Query sales and render the workbook.

        Args:
            db: Database session.
            request: Period and selection.
            scope: Effective pharmacy scope.

        Returns:
            XLSX buffer positioned at 0.
        """
        started = time.perf_counter()
        selection = Selection(scope=scope, product_codes=list(request.product_codes))
        params = {
            "date_start": request.analysis_date_range.start,
            "date_end": request.analysis_date_range.end,
            **selection.params(),
        }

        pharmacy_totals = await fetch_all(db, queries.pharmacy_totals_sql(selection), params)
        product_totals = await fetch_all(db, queries.product_totals_sql(selection), params)
        details = group_details(
            await fetch_all(db, queries.product_pharmacy_details_sql(selection), params)
        )

        exporter = ExcelExporter()
        exporter.add_sheet(
            "Total",
            TOTAL_HEADERS,
            (
                {
                    "Nom Pharmacie": row["pharmacy_name"],
                    "IDNAT": row["id_nat"],
                    "Qté Vendues": as_float(row["total_quantity_sold"]),
                }
                for row in pharmacy_totals
            ),
        )
        exporter.add_sheet(
            "Produit",
            PRODUCT_HEADERS,
            (
                {
                    "Code EAN 13": row["code_ean"],
                    "Nom Produit": row["product_name"],
                    "Laboratoire": row["laboratory"] or "-",
                    "Qté Vendue": as_float(row["total_quantity_sold"]),
                }
                for row in product_totals
            ),
        )
        for code, rows in details.items():
            exporter.add_sheet(
                code,
                DETAIL_HEADERS,
                (
                    {
                        "Nom Pharmacie": row["pharmacy_name"],
                        "IDNAT": row["id_nat"],
                        "Qté Vendue": as_float(row["quantity_sold"]),
                    }
                    for row in rows
                ),
            )

        buffer = exporter.to_buffer()
        logger.info(
            "exports.bri_completed",
            pharmacies=len(pharmacy_totals),
            products=len(product_totals),
            detail_sheets=len(details),
            size_kb=round(buffer.getbuffer().nbytes / 1024),
            query_time_ms=elapsed_ms(started),
        )
        return buffer
