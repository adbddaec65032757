"""Dashboard filter model and SQL filter builder."""

from app.features.filters.query_builder import (
    DEFAULT_MAPPING,
    FilterQueryBuilder,
    apply_common_filters,
    apply_price_ranges,
    create_builder,
)
from app.features.filters.routing import (
    can_use_daily_view,
    can_use_materialized_view,
    merge_product_codes,
)
from app.features.filters.schemas import FilterRequest
from app.features.filters.selection import Selection

__all__ = [
    "DEFAULT_MAPPING",
    "FilterQueryBuilder",
    "FilterRequest",
    "Selection",
    "apply_common_filters",
    "apply_price_ranges",
    "can_use_daily_view",
    "can_use_materialized_view",
    "create_builder",
    "merge_product_codes",
]
