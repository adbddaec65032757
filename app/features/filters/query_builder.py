"""Dynamic WHERE-clause builder for dashboard filters.

The builder accumulates parenthesized condition groups and the bind
parameters they reference. Bind names are generated from a counter
(``:f0``, ``:f1``...), so every placeholder in :meth:`FilterQueryBuilder.conditions`
has exactly one entry in :meth:`FilterQueryBuilder.params`.

Example:
    >>> qb = FilterQueryBuilder({"start": d1, "end": d2}, filter_operators=["OR"])
    >>> qb.add_laboratories(["SANOFI"])
    >>> qb.add_products(["3400930000001"])
    >>> qb.conditions()  # doctest: +NORMALIZE_WHITESPACE
    'AND ((gp.bcb_lab = ANY(CAST(:f0 AS text[])))
    OR (ip.code_13_ref_id = ANY(CAST(:f1 AS text[]))))'
"""

from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

from app.features.filters.schemas import (
    CategoryFilter,
    ExclusionMode,
    FilterOperator,
    FilterRequest,
    GenericStatus,
    ProductGroup,
    ReimbursementStatus,
    ValueRange,
)

SqlGenerator = Callable[[str], str]

DEFAULT_MAPPING: dict[str, str] = {
    "pharmacy_id": "ip.pharmacy_id",
    "laboratory": "gp.bcb_lab",
    "product_code": "ip.code_13_ref_id",
    "tva": "gp.tva_percentage",
    "reimbursable": "gp.is_reimbursable",
    "generic_status": "gp.bcb_generic_status",
    "cat_l0": "gp.bcb_segment_l0",
    "cat_l1": "gp.bcb_segment_l1",
    "cat_l2": "gp.bcb_segment_l2",
    "cat_l3": "gp.bcb_segment_l3",
    "cat_l4": "gp.bcb_segment_l4",
    "cat_l5": "gp.bcb_segment_l5",
    "cat_family": "gp.bcb_family",
}

_CATEGORY_MAPPING_KEYS = {
    "bcb_segment_l0": "cat_l0",
    "bcb_segment_l1": "cat_l1",
    "bcb_segment_l2": "cat_l2",
    "bcb_segment_l3": "cat_l3",
    "bcb_segment_l4": "cat_l4",
    "bcb_segment_l5": "cat_l5",
    "bcb_family": "cat_family",
}

_GENERIC_STATUS_VALUES = {
    GenericStatus.GENERIC: ("GÉNÉRIQUE",),
    GenericStatus.PRINCEPS: ("RÉFÉRENT",),
    GenericStatus.PRINCEPS_GENERIC: ("GÉNÉRIQUE", "RÉFÉRENT"),
}

# Columns targeted by the price range filters, keyed by request field.
PRICE_RANGE_COLUMNS = {
    "purchase_price_net_range": "lp.weighted_average_price",
    "purchase_price_gross_range": "gp.prix_achat_ht_fabricant",
    "sell_price_range": "lp.price_with_tax",
    "discount_range": "lp.discount_percentage",
    "margin_range": "lp.margin_percentage",
}


class FilterQueryBuilder:
    """Parameterized WHERE-clause accumulator.

    Attributes:
        mapping: Logical column name to qualified SQL column.
    """

    def __init__(
        self,
        initial_params: Mapping[str, Any] | None = None,
        column_mapping: Mapping[str, str] | None = None,
        filter_operators: Sequence[FilterOperator | str] | None = None,
        param_prefix: str = "f",
    ) -> None:
        """Initialize the builder.

        Args:
            initial_params: Parameters already referenced by the base query
                (dates, scope...). Their names must not start with ``param_prefix``
                followed by a digit.
            column_mapping: Overrides merged over :data:`DEFAULT_MAPPING`.
            filter_operators: Operators between filter groups.
            param_prefix: Prefix of generated bind names.
        """
        self.mapping: dict[str, str] = {**DEFAULT_MAPPING, **(column_mapping or {})}
        self._params: dict[str, Any] = dict(initial_params or {})
        self._operators = [FilterOperator(op).value for op in (filter_operators or [])]
        self._prefix = param_prefix
        self._index = 0
        self._conditions: list[str] = []
        self._cumulative_item_count = 0

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------

    def conditions(self) -> str:
        """Return ``AND (<groups>)`` or an empty string when nothing was added."""
        if not self._conditions:
            return ""
        return f"AND ({' '.join(self._conditions)})"

    def params(self) -> dict[str, Any]:
        """Return every bind parameter, initial ones included."""
        return dict(self._params)

    # -------------------------------------------------------------------------
    # Core
    # -------------------------------------------------------------------------

    def bind(self, value: Any) -> str:
        """Register a parameter and return its generated name."""
        name = f"{self._prefix}{self._index}"
        self._params[name] = value
        self._index += 1
        return name

    def _next_operator(self) -> str:
        idx = max(0, self._cumulative_item_count - 1)
        return self._operators[idx] if idx < len(self._operators) else FilterOperator.AND.value

    def _append(self, sql: str, operator: str | None = None) -> None:
        if self._conditions:
            self._conditions.append(operator or self._next_operator())
        self._conditions.append(f"({sql})")

    def add_filter_group(
        self,
        items: Sequence[Any],
        generator: SqlGenerator,
        uses_params: bool = True,
    ) -> None:
        """Add one parenthesized group.

        Args:
            items: Selected values; an empty sequence adds nothing.
            generator: Builds the SQL from the bind name reserved for ``items``.
            uses_params: Bind ``items`` as a single list parameter. Generators
                that bind their own values (or none) pass False.
        """
        if not items:
            return

        operator = self._next_operator() if self._conditions else None
        if uses_params:
            sql = generator(self.bind(list(items)))
        else:
            sql = generator(f"{self._prefix}{self._index}")
        self._append(sql, operator)
        self._cumulative_item_count += 1

    # -------------------------------------------------------------------------
    # Inclusions
    # -------------------------------------------------------------------------

    def add_pharmacies(self, pharmacy_ids: Sequence[str]) -> None:
        col = self.mapping["pharmacy_id"]
        self.add_filter_group(pharmacy_ids, lambda p: f"{col} = ANY(CAST(:{p} AS uuid[]))")

    def add_laboratories(self, labs: Sequence[str]) -> None:
        col = self.mapping["laboratory"]
        self.add_filter_group(labs, lambda p: f"{col} = ANY(CAST(:{p} AS text[]))")

    def add_products(self, product_codes: Sequence[str]) -> None:
        col = self.mapping["product_code"]
        self.add_filter_group(product_codes, lambda p: f"{col} = ANY(CAST(:{p} AS text[]))")

    def add_tva_rates(self, rates: Sequence[float]) -> None:
        col = self.mapping["tva"]
        self.add_filter_group(rates, lambda p: f"{col} = ANY(CAST(:{p} AS numeric[]))")

    def add_categories(self, categories: Sequence[CategoryFilter]) -> None:
        """Add categories as one OR block across classification levels."""
        self._add_category_block(categories, "=", "ANY", " OR ", operator=None)

    def add_groups(self, groups: Sequence[ProductGroup]) -> None:
        """Add product groups as one block, a product matching any group."""
        col = self.mapping["product_code"]
        self.add_or_conditions(
            [
                (group.product_codes, lambda p: f"{col} = ANY(CAST(:{p} AS text[]))")
                for group in groups
            ]
        )

    def add_or_conditions(self, conditions: Iterable[tuple[Sequence[Any], SqlGenerator]]) -> None:
        """Add several list conditions joined with OR, counted as one group."""
        pending = [(items, generator) for items, generator in conditions if items]
        if not pending:
            return

        operator = self._next_operator() if self._conditions else None
        parts = [generator(self.bind(list(items))) for items, generator in pending]
        self._append(" OR ".join(parts), operator)
        self._cumulative_item_count += 1

    # -------------------------------------------------------------------------
    # Exclusions
    # -------------------------------------------------------------------------

    def add_excluded_pharmacies(self, pharmacy_ids: Sequence[str]) -> None:
        col = self.mapping["pharmacy_id"]
        self.add_filter_group(pharmacy_ids, lambda p: f"{col} <> ALL(CAST(:{p} AS uuid[]))")

    def add_excluded_laboratories(self, labs: Sequence[str]) -> None:
        col = self.mapping["laboratory"]
        self.add_filter_group(labs, lambda p: f"{col} <> ALL(CAST(:{p} AS text[]))")

    def add_excluded_products(self, product_codes: Sequence[str]) -> None:
        col = self.mapping["product_code"]
        self.add_filter_group(product_codes, lambda p: f"{col} <> ALL(CAST(:{p} AS text[]))")

    def add_excluded_categories(self, categories: Sequence[CategoryFilter]) -> None:
        """Exclude categories; a row must match none of the levels."""
        self._add_category_block(
            categories, "<>", "ALL", " AND ", operator=FilterOperator.AND.value
        )

    def _add_category_block(
        self,
        categories: Sequence[CategoryFilter],
        comparison: str,
        quantifier: str,
        joiner: str,
        operator: str | None,
    ) -> None:
        if not categories:
            return

        codes_by_type: dict[str, list[str]] = {}
        for category in categories:
            codes_by_type.setdefault(category.type, []).append(category.code)

        operator = operator or (self._next_operator() if self._conditions else None)
        parts: list[str] = []
        for category_type, codes in codes_by_type.items():
            mapping_key = _CATEGORY_MAPPING_KEYS.get(category_type)
            if mapping_key is None:
                continue
            name = self.bind(codes)
            parts.append(
                f"{self.mapping[mapping_key]} {comparison} {quantifier}(CAST(:{name} AS text[]))"
            )

        if not parts:
            return

        self._append(joiner.join(parts), operator)
        self._cumulative_item_count += len(categories)

    # -------------------------------------------------------------------------
    # Product attributes
    # -------------------------------------------------------------------------

    def add_reimbursement_status(self, status: ReimbursementStatus | None) -> None:
        if status is None or status == ReimbursementStatus.ALL:
            return
        col = self.mapping["reimbursable"]
        value = "true" if status == ReimbursementStatus.REIMBURSED else "false"
        self.add_filter_group([status], lambda _p: f"{col} = {value}", uses_params=False)

    def add_generic_status(self, status: GenericStatus | None) -> None:
        if status is None or status == GenericStatus.ALL:
            return
        col = self.mapping["generic_status"]
        values = ",".join(f"'{v}'" for v in _GENERIC_STATUS_VALUES[status])
        self.add_filter_group([status], lambda _p: f"{col} IN ({values})", uses_params=False)

    def add_range_filter(self, value_range: ValueRange | None, column: str) -> None:
        """Add ``column BETWEEN min AND max`` (two params, one group)."""
        if value_range is None:
            return

        def generator(_p: str) -> str:
            low = self.bind(value_range.min)
            high = self.bind(value_range.max)
            return f"{column} >= :{low} AND {column} <= :{high}"

        self.add_filter_group([value_range], generator, uses_params=False)


# =============================================================================
# Request helpers
# =============================================================================


def apply_common_filters(builder: FilterQueryBuilder, request: FilterRequest) -> None:
    """Apply the selection, exclusions and product settings of a request.

    In ``only`` mode the regular selection is ignored (pharmacies aside) and
    the excluded products and laboratories become the selection. Excluded
    categories have no ``only`` rendering and are ignored in that mode.
    """
    if request.exclusion_mode == ExclusionMode.ONLY:
        builder.add_pharmacies(request.pharmacy_ids)
        product_col = builder.mapping["product_code"]
        lab_col = builder.mapping["laboratory"]
        builder.add_or_conditions(
            [
                (
                    request.excluded_product_codes,
                    lambda p: f"{product_col} = ANY(CAST(:{p} AS text[]))",
                ),
                (
                    request.excluded_laboratories,
                    lambda p: f"{lab_col} = ANY(CAST(:{p} AS text[]))",
                ),
            ]
        )
    else:
        builder.add_pharmacies(request.pharmacy_ids)
        builder.add_laboratories(request.laboratories)
        builder.add_categories(request.categories)
        builder.add_products(request.product_codes)
        builder.add_groups(request.groups)

        if request.exclusion_mode != ExclusionMode.INCLUDE:
            builder.add_excluded_pharmacies(request.excluded_pharmacy_ids)
            builder.add_excluded_laboratories(request.excluded_laboratories)
            builder.add_excluded_categories(request.excluded_categories)
            builder.add_excluded_products(request.excluded_product_codes)

    builder.add_tva_rates(request.tva_rates)
    builder.add_reimbursement_status(request.reimbursement_status)
    builder.add_generic_status(request.is_generic)


def apply_price_ranges(builder: FilterQueryBuilder, request: FilterRequest) -> None:
    """Apply the price range filters (requires the ``lp``/``gp`` joins)."""
    for field_name, column in PRICE_RANGE_COLUMNS.items():
        builder.add_range_filter(getattr(request, field_name), column)


def create_builder(
    request: FilterRequest,
    initial_params: Mapping[str, Any] | None = None,
    column_mapping: Mapping[str, str] | None = None,
    filter_operators: Sequence[FilterOperator | str] | None = None,
) -> FilterQueryBuilder:
    """Build a query builder with the request's common filters applied.

    Args:
        request: Filter request.
        initial_params: Parameters of the base query.
        column_mapping: Column overrides for the queried relation.
        filter_operators: Operator override (defaults to the request's).

    Returns:
        Populated builder.
    """
    operators = filter_operators if filter_operators is not None else request.filter_operators
    builder = FilterQueryBuilder(initial_params, column_mapping, operators)
    apply_common_filters(builder, request)
    return builder
