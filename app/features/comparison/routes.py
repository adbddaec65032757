"""API routes for entity and pharmacy group comparison."""

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import ResponseCache, get_cache
from app.core.database import get_db
from app.core.exceptions import DatabaseError
from app.core.logging import get_logger
from app.core.security import (
    SecurityContext,
    enforce_pharmacy_scope,
    get_security_context,
    require_admin,
)
from app.features.comparison.schemas import (
    ComparisonEvolutionResponse,
    ComparisonRequest,
    ComparisonStatsResponse,
    PharmacyGroupComparisonResponse,
)
from app.features.comparison.service import ComparisonService
from app.shared.schemas import ProductSelection

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["comparison"])


def _pharmacy_ids(request: ComparisonRequest, ctx: SecurityContext) -> list[str]:
    requested = [request.pharmacy_id] if request.pharmacy_id else None
    return enforce_pharmacy_scope(requested, ctx).ids


@router.post(
    "/comparison/stats",
    response_model=ComparisonStatsResponse,
    summary="Compare entities against the previous year",
    description="""
Compute, for each entity, its metrics over `dateRange` and over the same
period one year earlier, from `mv_product_stats_monthly`.

**Entity Types** (`sourceIds` meaning):
- `PRODUCT`: BCB product ids
- `LABORATORY`: Laboratory names
- `CATEGORY`: Category labels, matched at every classification level

**Metrics**: `sales_ht`, `margin_eur`, `margin_rate`, `qty_sold`,
`qty_bought`, `purchases_ht`, each with its `_evolution` (percent, or points
for `margin_rate`), plus the latest stock snapshot (`stock_value`,
`stock_quantity`, `nb_refs`) and `days_stock`.

**Scope**: Pharmacy users always see their own pharmacy; admins may pass
`pharmacyId`.
""",
)
async def compare_stats(
    request: ComparisonRequest,
    ctx: SecurityContext = Depends(get_security_context),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
) -> ComparisonStatsResponse:
    """Compare entities over a period and the previous year.

    Raises:
        BadRequestError: If no entity is given or one has no source ids.
        ForbiddenError: If a pharmacy user has no pharmacy.
        DatabaseError: If a query fails.
    """
    service = ComparisonService(cache)
    try:
        return await service.get_stats(
            db=db, request=request, pharmacy_ids=_pharmacy_ids(request, ctx)
        )
    except SQLAlchemyError as e:
        logger.error(
            "comparison.stats_request_failed",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        raise DatabaseError(
            message="Failed to compute comparison", details={"error": str(e)}
        ) from e


@router.post(
    "/comparison/evolution",
    response_model=ComparisonEvolutionResponse,
    summary="Monthly series of compared entities",
    description="""
Return, for each entity, its monthly `sales_ht`, `margin_eur` and `qty_sold`
over `dateRange`, ordered by month. Months without sales are absent.
""",
)
async def compare_evolution(
    request: ComparisonRequest,
    ctx: SecurityContext = Depends(get_security_context),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
) -> ComparisonEvolutionResponse:
    service = ComparisonService(cache)
    try:
        return await service.get_evolution(
            db=db, request=request, pharmacy_ids=_pharmacy_ids(request, ctx)
        )
    except SQLAlchemyError as e:
        logger.error(
            "comparison.evolution_request_failed",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        raise DatabaseError(
            message="Failed to compute comparison evolution", details={"error": str(e)}
        ) from e


@router.post(
    "/pharmacies/group-comparison",
    response_model=PharmacyGroupComparisonResponse,
    summary="Compare pharmacies with the network average",
    description="""
Admin only. Sum sell-in (received quantities valued at the weighted average
price), sell-out incl. tax, margin excluding tax, margin rate and current
stock value over the `pharmacyIds` selection, then compute the same metrics
for the whole network divided by its pharmacy count.

With `comparisonDateRange`, both blocks add `*_comparison` values and
`evol_*_pct` percent changes. Product, laboratory and category codes
restrict both blocks to the same products.
""",
)
async def compare_pharmacy_group(
    request: ProductSelection,
    _: SecurityContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
) -> PharmacyGroupComparisonResponse:
    """Compare selected pharmacies with the average pharmacy.

    Raises:
        BadRequestError: If `pharmacyIds` is empty.
        ForbiddenError: If the caller is not an admin.
        DatabaseError: If a query fails.
    """
    service = ComparisonService(cache)
    try:
        return await service.get_pharmacy_group(db=db, request=request)
    except SQLAlchemyError as e:
        logger.error(
            "comparison.pharmacy_group_request_failed",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        raise DatabaseError(
            message="Failed to compare pharmacy group", details={"error": str(e)}
        ) from e
