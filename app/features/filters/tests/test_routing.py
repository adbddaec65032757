"""Unit tests for materialized-view routing."""

from datetime import date

import pytest

from app.features.filters.routing import (
    can_use_materialized_view,
    is_month_end,
    merge_product_codes,
)
from app.shared.schemas import DateRange

MIN_DATE = date(2024, 1, 1)


class TestCanUseMaterializedView:
    """Tests for can_use_materialized_view."""

    def test_whole_months_without_product_filter(self) -> None:
        """Complete months after the cutoff should be eligible."""
        period = DateRange(start=date(2024, 1, 1), end=date(2024, 3, 31))
        assert can_use_materialized_view(period, False, MIN_DATE) is True

    def test_product_filter_disqualifies(self) -> None:
        """Any product filter should force raw tables."""
        period = DateRange(start=date(2024, 1, 1), end=date(2024, 3, 31))
        assert can_use_materialized_view(period, True, MIN_DATE) is False

    def test_start_not_first_of_month(self) -> None:
        """A partial first month should not be eligible."""
        period = DateRange(start=date(2024, 1, 2), end=date(2024, 3, 31))
        assert can_use_materialized_view(period, False, MIN_DATE) is False

    def test_end_not_last_of_month(self) -> None:
        """A partial last month should not be eligible."""
        period = DateRange(start=date(2024, 1, 1), end=date(2024, 3, 30))
        assert can_use_materialized_view(period, False, MIN_DATE) is False

    def test_before_min_date(self) -> None:
        """Months before the views' first month should not be eligible."""
        period = DateRange(start=date(2023, 12, 1), end=date(2024, 1, 31))
        assert can_use_materialized_view(period, False, MIN_DATE) is False

    def test_leap_february(self) -> None:
        """February 29 should count as a month end in leap years."""
        period = DateRange(start=date(2024, 2, 1), end=date(2024, 2, 29))
        assert can_use_materialized_view(period, False, MIN_DATE) is True


class TestIsMonthEnd:
    """Tests for is_month_end."""

    @pytest.mark.parametrize(
        ("day", "expected"),
        [
            (date(2024, 1, 31), True),
            (date(2024, 4, 30), True),
            (date(2025, 2, 28), True),
            (date(2024, 2, 28), False),
            (date(2024, 12, 31), True),
            (date(2024, 12, 30), False),
        ],
    )
    def test_month_ends(self, day: date, expected: bool) -> None:
        """Should detect the last day of each month."""
        assert is_month_end(day) is expected


class TestMergeProductCodes:
    """Tests for merge_product_codes."""

    def test_union_keeps_first_seen_order(self) -> None:
        """Duplicates across lists should appear once."""
        merged = merge_product_codes(["A", "B"], ["B", "C"], ["A", "D"])
        assert merged == ["A", "B", "C", "D"]

    def test_none_and_empty(self) -> None:
        """Missing lists should be treated as empty."""
        assert merge_product_codes(None, [], None) == []
