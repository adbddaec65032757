"""Shared utility functions."""

import math
import time
from decimal import Decimal
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from app.core.cache import ResponseCache
from app.core.logging import get_logger
from app.shared.schemas import PaginatedResponse, PaginationParams, TimedResponse

logger = get_logger(__name__)


def paginate_response[T](
    items: list[T],
    total: int,
    pagination: PaginationParams,
) -> PaginatedResponse[T]:
    """Create a paginated response from items and total count.

    Args:
        items: List of items for the current page.
        total: Total count of all items.
        pagination: Pagination parameters used for the query.

    Returns:
        PaginatedResponse with computed page count.
    """
    pages = math.ceil(total / pagination.page_size) if total > 0 else 0
    return PaginatedResponse[T](
        items=items,
        total=total,
        page=pagination.page,
        page_size=pagination.page_size,
        pages=pages,
    )


def as_float(value: Any) -> float:
    """Coerce a NUMERIC/NULL column to float, treating NULL and NaN as 0."""
    if value is None:
        return 0.0
    result = float(value) if isinstance(value, (Decimal, int, float, str)) else 0.0
    return 0.0 if math.isnan(result) else result


def as_int(value: Any) -> int:
    """Coerce a COUNT/SUM column to int, treating NULL as 0."""
    if value is None:
        return 0
    return int(value)


def as_optional_float(value: Any) -> float | None:
    """Coerce a nullable ratio column, keeping NULL (and 0) as None."""
    if value is None:
        return None
    result = float(value)
    return result if result else None


def elapsed_ms(started: float) -> int:
    """Milliseconds elapsed since a ``time.perf_counter()`` reading."""
    return int((time.perf_counter() - started) * 1000)


def evolution_percent(current: float, previous: float) -> float | None:
    """Relative change from ``previous`` to ``current`` in percent."""
    if not previous:
        return None
    return (current - previous) / previous * 100


# =============================================================================
# Cached responses
# =============================================================================


async def read_cached_response[T: TimedResponse](
    cache: ResponseCache,
    key: str,
    model: type[T],
    started: float,
) -> T | None:
    """Rebuild a cached response, flagged ``cached`` with a fresh queryTime.

    Entries that no longer match the response schema are treated as a miss.
    """
    payload = await cache.get(key)
    if payload is None:
        return None
    try:
        return model.model_validate({**payload, "cached": True, "queryTime": elapsed_ms(started)})
    except PydanticValidationError:
        logger.warning("cache.stale_entry", key=key, model=model.__name__)
        return None


async def store_cached_response(
    cache: ResponseCache,
    key: str,
    response: TimedResponse,
    ttl_seconds: int,
) -> None:
    """Store a response without its timing fields."""
    payload = response.model_dump(mode="json", by_alias=True, exclude={"query_time", "cached"})
    await cache.set(key, payload, ttl_seconds)
