"""API routes for the per-product sales table."""

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import ResponseCache, get_cache
from app.core.database import get_db
from app.core.exceptions import DatabaseError
from app.core.logging import get_logger
from app.core.security import SecurityContext, enforce_pharmacy_scope, get_security_context
from app.features.sales.schemas import SalesProductsResponse
from app.features.sales.service import SalesService
from app.shared.export import CSV_MIME, export_filename, export_response
from app.shared.schemas import ProductSelection

logger = get_logger(__name__)

router = APIRouter(prefix="/api/sales-products", tags=["sales"])


@router.post(
    "",
    response_model=SalesProductsResponse,
    summary="Per-product sales table",
    description="""
List sales per product for a period.

**Row Types**:
- `DETAIL`: One row per product and period. Periods are days, or months
  when the range is longer than 62 days (`periode` is then `YYYY-MM`)
- `SYNTHESE`: One row per product over the whole range (`periode` = `TOTAL`)

**Metrics**: Units bought and sold, average purchase and sale prices,
average margin rate, share of the selection in quantity and margin, sales
amount incl. tax and total margin.

**Comparison**: With `comparisonDateRange`, SYNTHESE rows receive
`quantite_vendue_comparison` and `quantity_bought_comparison`; DETAIL rows
keep them null.

Responses are cached for 1 hour.
""",
)
async def get_sales_products(
    request: ProductSelection,
    ctx: SecurityContext = Depends(get_security_context),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
) -> SalesProductsResponse:
    """Build the per-product sales table.

    Args:
        request: Period and selection.
        ctx: Caller security context.
        db: Database session.
        cache: Response cache.

    Returns:
        Sales rows.

    Raises:
        DatabaseError: If the query fails.
    """
    scope = enforce_pharmacy_scope(request.pharmacy_ids, ctx)
    service = SalesService(cache)
    try:
        return await service.get_sales_products(db=db, request=request, scope=scope)
    except SQLAlchemyError as e:
        logger.error(
            "sales.products_request_failed",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        raise DatabaseError(
            message="Failed to load sales",
            details={"error": str(e)},
        ) from e


@router.post(
    "/export",
    response_class=StreamingResponse,
    summary="Export the sales table as CSV",
    description="""
Download the same rows as `POST /api/sales-products` as a CSV file.

**Format**: `;` separated, UTF-8 with BOM, decimal comma, DD/MM/YYYY dates.
File name: `ventes_produits_YYYYMMDD_HHMMSS.csv`.
""",
)
async def export_sales_products(
    request: ProductSelection,
    ctx: SecurityContext = Depends(get_security_context),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
) -> StreamingResponse:
    """Export the per-product sales table."""
    scope = enforce_pharmacy_scope(request.pharmacy_ids, ctx)
    service = SalesService(cache)
    try:
        buffer = await service.export_sales_products(db=db, request=request, scope=scope)
    except SQLAlchemyError as e:
        logger.error(
            "sales.export_request_failed",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        raise DatabaseError(
            message="Failed to export sales",
            details={"error": str(e)},
        ) from e

    return export_response(buffer, CSV_MIME, export_filename("ventes_produits", "csv"))
