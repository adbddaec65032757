"""Choice between materialized views and raw tables.

Monthly materialized views only hold whole months from ``mv_min_date`` on and
carry no product dimension, so they can answer a request only when it spans
complete calendar months and selects every product.
"""

from collections.abc import Iterable
from datetime import date, timedelta

from app.shared.schemas import DateRange


def is_month_start(day: date) -> bool:
    return day.day == 1


def is_month_end(day: date) -> bool:
    return (day + timedelta(days=1)).day == 1


def can_use_materialized_view(
    date_range: DateRange,
    has_product_filter: bool,
    min_date: date,
) -> bool:
    """Whether a request can be served from a monthly materialized view.

    Args:
        date_range: Requested period.
        has_product_filter: True when any product, laboratory or category
            code restricts the selection.
        min_date: First day covered by the views.

    Returns:
        True only for whole months on or after ``min_date`` with no product filter.
    """
    return (
        is_month_start(date_range.start)
        and is_month_end(date_range.end)
        and date_range.start >= min_date
        and not has_product_filter
    )


def merge_product_codes(*code_lists: Iterable[str] | None) -> list[str]:
    """Union of product code lists, de-duplicated in first-seen order."""
    return list(dict.fromkeys(code for codes in code_lists for code in (codes or [])))


def can_use_daily_view(
    date_range: DateRange,
    has_product_filter: bool,
    pharmacy_id: str | None,
    min_date: date,
    today: date | None = None,
) -> bool:
    """Whether a daily series can be read from ``mv_kpi_daily``.

    The daily view is keyed by pharmacy with no product dimension and is
    refreshed up to the current day.
    """
    today = today or date.today()
    return (
        pharmacy_id is not None
        and not has_product_filter
        and date_range.start >= min_date
        and date_range.end <= today
    )
