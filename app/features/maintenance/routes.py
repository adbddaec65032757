"""API routes for maintenance jobs."""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import ResponseCache, get_cache
from app.core.database import get_db
from app.core.security import verify_cron_secret
from app.features.maintenance.schemas import RefreshResponse
from app.features.maintenance.service import MaterializedViewRefresher

router = APIRouter(prefix="/api/cron", tags=["maintenance"])


@router.get(
    "/refresh-mvs",
    response_model=RefreshResponse,
    dependencies=[Depends(verify_cron_secret)],
    summary="Refresh materialized views",
    description="""
Refresh the reporting materialized views in dependency order.

**Authentication**: `Authorization: Bearer <CRON_SECRET>`

**Levels**:
1. `mv_sales_enriched`, `mv_latest_product_prices`, `mv_stock_monthly`
2. `mv_lab_stats_daily`, `mv_product_stats_daily`
3. `mv_product_stats_monthly`

Each view is refreshed concurrently first, then with a standard refresh.
The run stops at the first view where both fail and answers 500 with the
logs collected so far. A complete run clears the response cache.
""",
)
async def refresh_materialized_views(
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
) -> RefreshResponse | JSONResponse:
    run = await MaterializedViewRefresher(cache=cache).refresh_all(db)
    response = RefreshResponse(
        success=run.success,
        total_time=f"{run.total_ms}ms",
        logs=run.logs,
        error=run.error,
    )
    if not run.success:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=response.model_dump(by_alias=True),
        )
    return response
