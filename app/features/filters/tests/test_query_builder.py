"""Unit tests for FilterQueryBuilder and request helpers."""

import re
from datetime import date

from app.features.filters.query_builder import (
    DEFAULT_MAPPING,
    FilterQueryBuilder,
    apply_common_filters,
    apply_price_ranges,
    create_builder,
)
from app.features.filters.schemas import (
    CategoryFilter,
    ExclusionMode,
    FilterRequest,
    GenericStatus,
    ProductGroup,
    ReimbursementStatus,
    ValueRange,
)

PHARMACY_ID = "6f1c2a9e-0000-4000-8000-000000000001"


def bind_names(sql: str) -> set[str]:
    """Bind names referenced in a SQL fragment."""
    return set(re.findall(r"(?<!:):([a-z_][a-z0-9_]*)", sql))


def generated_params(builder: FilterQueryBuilder) -> set[str]:
    return {name for name in builder.params() if re.fullmatch(r"f\d+", name)}


class TestEmptyBuilder:
    """Tests for a builder with no filters."""

    def test_no_conditions(self) -> None:
        """Should render nothing when no filter was added."""
        qb = FilterQueryBuilder({"date_start": date(2024, 1, 1)})
        assert qb.conditions() == ""

    def test_initial_params_kept(self) -> None:
        """Should return the base query parameters untouched."""
        qb = FilterQueryBuilder({"date_start": date(2024, 1, 1), "date_end": date(2024, 1, 31)})
        assert qb.params() == {"date_start": date(2024, 1, 1), "date_end": date(2024, 1, 31)}

    def test_empty_lists_ignored(self) -> None:
        """Empty selections should add neither SQL nor params."""
        qb = FilterQueryBuilder()
        qb.add_pharmacies([])
        qb.add_laboratories([])
        qb.add_categories([])
        qb.add_groups([])
        qb.add_tva_rates([])
        qb.add_range_filter(None, "lp.price_with_tax")
        assert qb.conditions() == ""
        assert qb.params() == {}


class TestInclusions:
    """Tests for inclusion filters."""

    def test_single_pharmacy_group(self) -> None:
        """Should bind pharmacy ids as one uuid array."""
        qb = FilterQueryBuilder()
        qb.add_pharmacies([PHARMACY_ID])
        assert qb.conditions() == "AND ((ip.pharmacy_id = ANY(CAST(:f0 AS uuid[]))))"
        assert qb.params() == {"f0": [PHARMACY_ID]}

    def test_default_operator_is_and(self) -> None:
        """Groups should be joined with AND when no operator is configured."""
        qb = FilterQueryBuilder()
        qb.add_laboratories(["SANOFI"])
        qb.add_products(["3400930000001"])
        assert qb.conditions() == (
            "AND ((gp.bcb_lab = ANY(CAST(:f0 AS text[]))) "
            "AND (ip.code_13_ref_id = ANY(CAST(:f1 AS text[]))))"
        )

    def test_configured_operator(self) -> None:
        """The first operator should join the first two groups."""
        qb = FilterQueryBuilder(filter_operators=["OR"])
        qb.add_laboratories(["SANOFI"])
        qb.add_products(["3400930000001"])
        assert qb.conditions() == (
            "AND ((gp.bcb_lab = ANY(CAST(:f0 AS text[]))) "
            "OR (ip.code_13_ref_id = ANY(CAST(:f1 AS text[]))))"
        )

    def test_tva_rates_numeric_array(self) -> None:
        """TVA rates should be cast to numeric[]."""
        qb = FilterQueryBuilder()
        qb.add_tva_rates([2.1, 5.5])
        assert "gp.tva_percentage = ANY(CAST(:f0 AS numeric[]))" in qb.conditions()
        assert qb.params()["f0"] == [2.1, 5.5]

    def test_custom_mapping_overrides_default(self) -> None:
        """Overrides should replace only the mapped columns."""
        qb = FilterQueryBuilder(column_mapping={"pharmacy_id": "mv.pharmacy_id"})
        qb.add_pharmacies([PHARMACY_ID])
        qb.add_laboratories(["SANOFI"])
        assert "mv.pharmacy_id" in qb.conditions()
        assert "gp.bcb_lab" in qb.conditions()
        assert DEFAULT_MAPPING["pharmacy_id"] == "ip.pharmacy_id"


class TestCategories:
    """Tests for category filters."""

    def test_grouped_by_type(self) -> None:
        """Codes of the same level should share one parameter."""
        qb = FilterQueryBuilder()
        qb.add_categories(
            [
                CategoryFilter(code="A", type="bcb_segment_l1"),
                CategoryFilter(code="B", type="bcb_segment_l1"),
                CategoryFilter(code="C", type="bcb_family"),
            ]
        )
        assert qb.conditions() == (
            "AND ((gp.bcb_segment_l1 = ANY(CAST(:f0 AS text[])) "
            "OR gp.bcb_family = ANY(CAST(:f1 AS text[]))))"
        )
        assert qb.params() == {"f0": ["A", "B"], "f1": ["C"]}

    def test_unknown_type_skipped(self) -> None:
        """Unknown levels should be dropped without consuming a parameter."""
        qb = FilterQueryBuilder()
        qb.add_categories(
            [
                CategoryFilter(code="X", type="atc_code"),
                CategoryFilter(code="C", type="bcb_family"),
            ]
        )
        assert qb.conditions() == "AND ((gp.bcb_family = ANY(CAST(:f0 AS text[]))))"
        assert qb.params() == {"f0": ["C"]}

    def test_only_unknown_types_adds_nothing(self) -> None:
        """A category list with no known level should add nothing."""
        qb = FilterQueryBuilder(filter_operators=["OR"])
        qb.add_categories([CategoryFilter(code="X", type="atc_code")])
        qb.add_laboratories(["SANOFI"])
        qb.add_products(["3400930000001"])
        # The category list did not advance the operator index.
        assert " OR (ip.code_13_ref_id" in qb.conditions()

    def test_categories_advance_operator_index_by_count(self) -> None:
        """Each category counts as one item when picking the next operator."""
        qb = FilterQueryBuilder(filter_operators=["AND", "OR", "AND"])
        qb.add_categories(
            [
                CategoryFilter(code="A", type="bcb_segment_l1"),
                CategoryFilter(code="B", type="bcb_segment_l2"),
            ]
        )
        qb.add_products(["3400930000001"])
        assert qb.conditions().endswith("OR (ip.code_13_ref_id = ANY(CAST(:f2 AS text[]))))")

    def test_excluded_categories_always_and(self) -> None:
        """Excluded categories should use AND whatever the operators say."""
        qb = FilterQueryBuilder(filter_operators=["OR", "OR"])
        qb.add_laboratories(["SANOFI"])
        qb.add_excluded_categories(
            [
                CategoryFilter(code="V", type="bcb_segment_l2"),
                CategoryFilter(code="W", type="bcb_segment_l3"),
            ]
        )
        assert qb.conditions() == (
            "AND ((gp.bcb_lab = ANY(CAST(:f0 AS text[]))) "
            "AND (gp.bcb_segment_l2 <> ALL(CAST(:f1 AS text[])) "
            "AND gp.bcb_segment_l3 <> ALL(CAST(:f2 AS text[]))))"
        )


class TestExclusions:
    """Tests for exclusion filters."""

    def test_excluded_lists_use_all(self) -> None:
        """Exclusions should render <> ALL(...)."""
        qb = FilterQueryBuilder()
        qb.add_excluded_pharmacies([PHARMACY_ID])
        qb.add_excluded_laboratories(["MYLAN"])
        qb.add_excluded_products(["3400930000009"])
        sql = qb.conditions()
        assert "ip.pharmacy_id <> ALL(CAST(:f0 AS uuid[]))" in sql
        assert "gp.bcb_lab <> ALL(CAST(:f1 AS text[]))" in sql
        assert "ip.code_13_ref_id <> ALL(CAST(:f2 AS text[]))" in sql


class TestProductAttributes:
    """Tests for reimbursement, generic status and range filters."""

    def test_reimbursed_literal(self) -> None:
        """Reimbursement should render a boolean literal with no param."""
        qb = FilterQueryBuilder()
        qb.add_reimbursement_status(ReimbursementStatus.REIMBURSED)
        assert qb.conditions() == "AND ((gp.is_reimbursable = true))"
        assert qb.params() == {}

    def test_not_reimbursed_literal(self) -> None:
        """NOT_REIMBURSED should render = false."""
        qb = FilterQueryBuilder()
        qb.add_reimbursement_status(ReimbursementStatus.NOT_REIMBURSED)
        assert qb.conditions() == "AND ((gp.is_reimbursable = false))"

    def test_reimbursement_all_is_noop(self) -> None:
        """ALL should add nothing."""
        qb = FilterQueryBuilder()
        qb.add_reimbursement_status(ReimbursementStatus.ALL)
        assert qb.conditions() == ""

    def test_generic_status_values(self) -> None:
        """PRINCEPS_GENERIC should list both catalog values."""
        qb = FilterQueryBuilder()
        qb.add_generic_status(GenericStatus.PRINCEPS_GENERIC)
        assert qb.conditions() == "AND ((gp.bcb_generic_status IN ('GÉNÉRIQUE','RÉFÉRENT')))"
        assert qb.params() == {}

    def test_princeps_maps_to_referent(self) -> None:
        """PRINCEPS should match the RÉFÉRENT catalog value."""
        qb = FilterQueryBuilder()
        qb.add_generic_status(GenericStatus.PRINCEPS)
        assert "IN ('RÉFÉRENT')" in qb.conditions()

    def test_range_filter_two_params_one_item(self) -> None:
        """A range binds two params but counts as a single item."""
        qb = FilterQueryBuilder(filter_operators=["OR", "AND"])
        qb.add_range_filter(ValueRange(min=1, max=2), "lp.price_with_tax")
        qb.add_products(["3400930000001"])
        assert qb.conditions() == (
            "AND ((lp.price_with_tax >= :f0 AND lp.price_with_tax <= :f1) "
            "OR (ip.code_13_ref_id = ANY(CAST(:f2 AS text[]))))"
        )
        assert qb.params() == {"f0": 1.0, "f1": 2.0, "f2": ["3400930000001"]}


class TestOrBlocks:
    """Tests for groups and OR blocks."""

    def test_groups_single_block(self) -> None:
        """Groups should be rendered as one OR block."""
        qb = FilterQueryBuilder()
        qb.add_groups(
            [
                ProductGroup(name="G1", product_codes=["A"]),
                ProductGroup(name="G2", product_codes=["B", "C"]),
            ]
        )
        assert qb.conditions() == (
            "AND ((ip.code_13_ref_id = ANY(CAST(:f0 AS text[])) "
            "OR ip.code_13_ref_id = ANY(CAST(:f1 AS text[]))))"
        )
        assert qb.params() == {"f0": ["A"], "f1": ["B", "C"]}

    def test_empty_groups_skipped(self) -> None:
        """Groups without products should be skipped."""
        qb = FilterQueryBuilder()
        qb.add_groups([ProductGroup(name="empty"), ProductGroup(name="G", product_codes=["A"])])
        assert qb.params() == {"f0": ["A"]}


class TestCommonFilters:
    """Tests for apply_common_filters."""

    def test_exclude_mode_applies_everything(self, full_request: FilterRequest) -> None:
        """Default mode should add the selection and the exclusions."""
        qb = FilterQueryBuilder()
        apply_common_filters(qb, full_request)
        sql = qb.conditions()
        assert "ip.pharmacy_id = ANY" in sql
        assert "gp.bcb_lab <> ALL" in sql
        assert "gp.bcb_segment_l2 <> ALL" in sql
        assert "ip.code_13_ref_id <> ALL" in sql
        assert "gp.is_reimbursable = true" in sql
        assert "IN ('GÉNÉRIQUE')" in sql

    def test_placeholders_match_params(self, full_request: FilterRequest) -> None:
        """Every placeholder should have exactly one parameter."""
        qb = FilterQueryBuilder({"date_start": date(2024, 1, 1)})
        apply_common_filters(qb, full_request)
        apply_price_ranges(qb, full_request)
        assert bind_names(qb.conditions()) == generated_params(qb)
        assert qb.params()["date_start"] == date(2024, 1, 1)

    def test_include_mode_skips_exclusions(self, full_request: FilterRequest) -> None:
        """Include mode should ignore every excluded list."""
        request = full_request.model_copy(update={"exclusion_mode": ExclusionMode.INCLUDE})
        qb = FilterQueryBuilder()
        apply_common_filters(qb, request)
        assert "<> ALL" not in qb.conditions()

    def test_only_mode_turns_exclusions_into_selection(self) -> None:
        """Only mode should select the excluded products or laboratories."""
        request = FilterRequest.model_validate(
            {
                "dateRange": {"start": "2024-01-01", "end": "2024-01-31"},
                "pharmacyIds": [PHARMACY_ID],
                "laboratories": ["IGNORED"],
                "excludedProductCodes": ["3400930000009"],
                "excludedLaboratories": ["MYLAN"],
                "exclusionMode": "only",
            }
        )
        qb = FilterQueryBuilder()
        apply_common_filters(qb, request)
        assert qb.conditions() == (
            "AND ((ip.pharmacy_id = ANY(CAST(:f0 AS uuid[]))) "
            "AND (ip.code_13_ref_id = ANY(CAST(:f1 AS text[])) "
            "OR gp.bcb_lab = ANY(CAST(:f2 AS text[]))))"
        )
        assert "IGNORED" not in str(qb.params())

    def test_create_builder_uses_request_operators(self) -> None:
        """create_builder should pick up the request's operators."""
        request = FilterRequest.model_validate(
            {
                "dateRange": {"start": "2024-01-01", "end": "2024-01-31"},
                "laboratories": ["SANOFI"],
                "productCodes": ["3400930000001"],
                "filterOperators": ["OR"],
            }
        )
        qb = create_builder(request, {"date_start": date(2024, 1, 1)})
        assert ") OR (" in qb.conditions()

    def test_price_ranges_columns(self, full_request: FilterRequest) -> None:
        """Sell price range should target the latest-price view."""
        qb = FilterQueryBuilder()
        apply_price_ranges(qb, full_request)
        assert qb.conditions() == "AND ((lp.price_with_tax >= :f0 AND lp.price_with_tax <= :f1))"
