"""Product and pharmacy selection shared by the fixed-shape KPI queries.

Unlike :class:`FilterQueryBuilder`, these queries always filter on the same
two dimensions, so the fragments use fixed bind names (``:product_codes``,
``:pharmacy_ids`` / ``:pharmacy_id``) that can be repeated across CTEs.
"""

from dataclasses import dataclass, field
from typing import Any

from app.core.cache import normalize_codes
from app.core.security import PharmacyScope
from app.features.filters.routing import merge_product_codes
from app.shared.schemas import ProductSelection


@dataclass(frozen=True)
class Selection:
    """Resolved product codes plus the caller's pharmacy scope."""

    scope: PharmacyScope
    product_codes: list[str] = field(default_factory=list)

    @classmethod
    def from_request(cls, request: ProductSelection, scope: PharmacyScope) -> "Selection":
        codes = merge_product_codes(
            request.product_codes, request.laboratory_codes, request.category_codes
        )
        return cls(scope=scope, product_codes=codes)

    @property
    def has_product_filter(self) -> bool:
        return bool(self.product_codes)

    def products_sql(self, column: str) -> str:
        if not self.product_codes:
            return ""
        return f"AND {column} = ANY(CAST(:product_codes AS text[]))"

    def pharmacies_sql(self, column: str) -> str:
        return self.scope.sql(column)

    def sql(self, alias: str, pharmacy_alias: str | None = None) -> str:
        """Product and pharmacy predicates for a ``data_internalproduct``-like alias.

        Args:
            alias: Alias carrying ``code_13_ref_id``.
            pharmacy_alias: Alias carrying ``pharmacy_id`` (defaults to ``alias``).
        """
        parts = [
            self.products_sql(f"{alias}.code_13_ref_id"),
            self.pharmacies_sql(f"{pharmacy_alias or alias}.pharmacy_id"),
        ]
        return "\n        ".join(p for p in parts if p)

    def params(self) -> dict[str, Any]:
        params: dict[str, Any] = dict(self.scope.params())
        if self.product_codes:
            params["product_codes"] = self.product_codes
        return params

    def cache_payload(self) -> dict[str, Any]:
        """Normalized description used in cache keys."""
        return {
            "product_codes": normalize_codes(self.product_codes),
            "pharmacy_ids": normalize_codes(self.scope.ids),
            "role": "admin" if self.scope.is_admin else "user",
            "has_product_filter": self.has_product_filter,
        }
