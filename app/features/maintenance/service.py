"""Refresh of the reporting materialized views.

Views are refreshed level by level so that a view is only rebuilt after the
views it reads from. Each view is first refreshed ``CONCURRENTLY`` (readers
are not blocked, but a unique index is required); if that fails, a plain
refresh is attempted. Each attempt runs inside a savepoint so that a failed
statement does not abort the surrounding transaction.
"""

import time
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import ResponseCache
from app.core.database import execute
from app.core.logging import get_logger
from app.shared.utils import elapsed_ms

logger = get_logger(__name__)

REFRESH_LEVELS: tuple[tuple[str, ...], ...] = (
    ("mv_sales_enriched", "mv_latest_product_prices", "mv_stock_monthly"),
    ("mv_lab_stats_daily", "mv_product_stats_daily"),
    ("mv_product_stats_monthly",),
)


class RefreshFailedError(Exception):
    """Both refresh strategies failed for a view."""

    def __init__(self, view: str, cause: SQLAlchemyError) -> None:
        self.view = view
        self.cause = cause
        super().__init__(f"Failed to refresh {view}: {cause}")


@dataclass
class RefreshRun:
    """Result of a refresh run."""

    total_ms: int
    logs: list[str] = field(default_factory=list)
    failed_view: str | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.failed_view is None


class MaterializedViewRefresher:
    """Refreshes every reporting view in dependency order."""

    def __init__(
        self,
        levels: tuple[tuple[str, ...], ...] = REFRESH_LEVELS,
        cache: ResponseCache | None = None,
    ) -> None:
        """Initialize the refresher.

        Args:
            levels: View names grouped by dependency level.
            cache: Response cache cleared once every view is rebuilt.
        """
        self.levels = levels
        self.cache = cache

    async def _attempt(self, db: AsyncSession, sql: str) -> None:
        async with db.begin_nested():
            await execute(db, sql)

    async def refresh_view(self, db: AsyncSession, view: str, logs: list[str]) -> None:
        """Refresh one view, falling back to a blocking refresh.

        Raises:
            RefreshFailedError: If the plain refresh fails too.
        """
        started = time.perf_counter()
        try:
            await self._attempt(db, f"REFRESH MATERIALIZED VIEW CONCURRENTLY {view}")
        except SQLAlchemyError as e:
            logs.append(
                f"Concurrent refresh failed for {view}, trying standard refresh. Error: {e}"
            )
            logger.warning(
                "maintenance.concurrent_refresh_failed",
                view=view,
                error=str(e),
                error_type=type(e).__name__,
            )
            try:
                await self._attempt(db, f"REFRESH MATERIALIZED VIEW {view}")
            except SQLAlchemyError as retry_error:
                logs.append(f"Failed to refresh {view}: {retry_error}")
                raise RefreshFailedError(view, retry_error) from retry_error

        duration = elapsed_ms(started)
        logs.append(f"Refreshed {view} in {duration}ms")
        logger.info("maintenance.view_refreshed", view=view, duration_ms=duration)

    async def refresh_all(self, db: AsyncSession) -> RefreshRun:
        """Refresh every level in order, stopping at the first view that fails.

        Cached responses are dropped only after a complete run.
        """
        started = time.perf_counter()
        logs: list[str] = []
        logger.info("maintenance.refresh_started", levels=len(self.levels))

        for level, views in enumerate(self.levels, start=1):
            logs.append(f"Level {level}: {', '.join(views)}")
            for view in views:
                try:
                    await self.refresh_view(db, view, logs)
                except RefreshFailedError as e:
                    total = elapsed_ms(started)
                    logger.error(
                        "maintenance.refresh_failed",
                        view=e.view,
                        level=level,
                        error=str(e.cause),
                        error_type=type(e.cause).__name__,
                        duration_ms=total,
                    )
                    return RefreshRun(total_ms=total, logs=logs, failed_view=e.view, error=str(e))

        total = elapsed_ms(started)
        logger.info(
            "maintenance.refresh_completed",
            duration_ms=total,
            views=sum(len(views) for views in self.levels),
        )
        if self.cache is not None:
            await self.cache.invalidate()
        return RefreshRun(total_ms=total, logs=logs)
