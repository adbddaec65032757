"""SQL builders for entity search.

Admins search the global catalogue (``data_globalproduct``); pharmacy users
search the products referenced by their pharmacy (``data_internalproduct``)
joined to the catalogue. Every builder returns ``(sql, params)`` with named
binds; user-scoped SQL binds ``pharmacy_id``.
"""

import re
import unicodedata
from dataclasses import dataclass
from typing import Any

from app.features.search.schemas import SearchType

_DIGITS = re.compile(r"^\d+$")
_SUFFIX = re.compile(r"^\*\d+$")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")

MIN_KEYWORD_LENGTH = 2


# =============================================================================
# Query interpretation
# =============================================================================


def classify_query(query: str) -> SearchType:
    """Digits are an EAN prefix, ``*digits`` an EAN suffix, anything else keywords."""
    if _SUFFIX.match(query):
        return SearchType.CODE_END
    if _DIGITS.match(query):
        return SearchType.CODE_START
    return SearchType.KEYWORDS


def extract_keywords(query: str) -> list[str]:
    """Lowercase, strip accents and split on anything that is not a letter or digit.

    Example:
        >>> extract_keywords("Doliprane  1000mg Comprimés")
        ['doliprane', '1000mg', 'comprimes']
    """
    decomposed = unicodedata.normalize("NFD", query.lower())
    stripped = "".join(char for char in decomposed if unicodedata.category(char) != "Mn")
    words = _NON_ALNUM.sub(" ", stripped).split()
    return [word for word in words if len(word) >= MIN_KEYWORD_LENGTH]


def code_pattern(query: str, kind: SearchType) -> str:
    """LIKE pattern for an EAN prefix or suffix search."""
    if kind == SearchType.CODE_END:
        return f"%{query.lstrip('*')}"
    return f"{query}%"


# =============================================================================
# Sources
# =============================================================================


@dataclass(frozen=True)
class ProductSource:
    """Where products come from for one caller kind.

    Attributes:
        from_clause: FROM clause (with joins).
        scope: Leading predicate restricting to the caller's pharmacy.
        name: Product name column.
        code: EAN column.
        catalogue: Prefix of catalogue columns (``bcb_lab``, ``universe``...).
    """

    from_clause: str
    scope: str
    name: str
    code: str
    catalogue: str

    def where(self, *conditions: str) -> str:
        return "WHERE " + " AND ".join(c for c in (self.scope, *conditions) if c)


CATALOGUE = ProductSource(
    from_clause="FROM data_globalproduct",
    scope="",
    name="name",
    code="code_13_ref",
    catalogue="",
)

PHARMACY_CATALOGUE = ProductSource(
    from_clause=(
        "FROM data_internalproduct dip\n"
        "      INNER JOIN data_globalproduct dgp ON dip.code_13_ref_id = dgp.code_13_ref"
    ),
    scope="dip.pharmacy_id = CAST(:pharmacy_id AS uuid)",
    name="dip.name",
    code="dip.code_13_ref_id",
    catalogue="dgp.",
)


def source_for(is_admin: bool) -> ProductSource:
    return CATALOGUE if is_admin else PHARMACY_CATALOGUE


def _match_condition(source: ProductSource, kind: SearchType) -> str:
    if kind == SearchType.KEYWORDS:
        return f"LOWER({source.name}) LIKE LOWER(:pattern)"
    return f"{source.code} LIKE :pattern"


def match_pattern(query: str, kind: SearchType) -> str:
    """Single LIKE pattern for grouped searches (whole query for names)."""
    if kind == SearchType.KEYWORDS:
        return f"%{query}%"
    return code_pattern(query, kind)


# =============================================================================
# Products
# =============================================================================


def product_search_sql(
    query: str,
    kind: SearchType,
    is_admin: bool,
) -> tuple[str, dict[str, Any]]:
    """Product lookup by keywords or EAN fragment.

    Admin results are de-duplicated per BCB product (falling back to the
    EAN when the product is not linked), preferring 13-digit codes. Keyword
    results rank names containing the whole query first.

    Args:
        query: Trimmed user query.
        kind: Interpretation of the query.
        is_admin: Search the global catalogue instead of the pharmacy's products.

    Returns:
        SQL and parameters; ``limit`` is left to the caller.
    """
    params: dict[str, Any] = {}
    if kind == SearchType.KEYWORDS:
        keywords = extract_keywords(query)
        name = "name" if is_admin else "dip.name"
        conditions = []
        for index, keyword in enumerate(keywords):
            conditions.append(f"LOWER({name}) LIKE :kw{index}")
            params[f"kw{index}"] = f"%{keyword}%"
        condition = " AND ".join(conditions) or "1=0"
        params["exact"] = f"%{query}%"
        order = f"CASE WHEN LOWER({name}) LIKE LOWER(:exact) THEN 1 ELSE 2 END, {name}"
    else:
        code = "code_13_ref" if is_admin else "dip.code_13_ref_id"
        condition = f"{code} LIKE :pattern"
        params["pattern"] = code_pattern(query, kind)
        order = code

    if is_admin:
        sql = f"""
        WITH ranked_products AS (
          SELECT
            name,
            code_13_ref,
            brand_lab,
            universe,
            ROW_NUMBER() OVER (
              PARTITION BY COALESCE(CAST(bcb_product_id AS text), code_13_ref)
              ORDER BY
                CASE WHEN code_13_ref ~ '^[0-9]{{13}}$' THEN 0 ELSE 1 END,
                code_13_ref
            ) AS rn
          FROM data_globalproduct
          WHERE {condition}
        )
        SELECT name, code_13_ref, brand_lab, universe
        FROM ranked_products
        WHERE rn = 1
        ORDER BY {order}
        LIMIT :limit
        """
    else:
        sql = f"""
        SELECT
          dip.name,
          dip.code_13_ref_id AS code_13_ref,
          dgp.brand_lab,
          dgp.universe
        FROM data_internalproduct dip
        LEFT JOIN data_globalproduct dgp ON dip.code_13_ref_id = dgp.code_13_ref
        WHERE dip.pharmacy_id = CAST(:pharmacy_id AS uuid)
          AND {condition}
        ORDER BY {order}
        LIMIT :limit
        """
    return sql, params


# =============================================================================
# Groupings (laboratories, brands, universes, categories)
# =============================================================================


def group_list_sql(source: ProductSource, column: str, filtered: bool) -> str:
    """Groups matched on their own name, with every product code they hold.

    Args:
        source: Product source for the caller.
        column: Catalogue column to group on (``bcb_lab``, ``universe``...).
        filtered: Add ``LOWER(column) LIKE LOWER(:pattern)``; otherwise list all.

    Returns:
        SELECT yielding ``group_name``, ``product_count``, ``product_codes``.
    """
    group = f"{source.catalogue}{column}"
    conditions = [f"{group} IS NOT NULL"]
    if filtered:
        conditions.append(f"LOWER({group}) LIKE LOWER(:pattern)")
    return f"""
      SELECT
        {group} AS group_name,
        COUNT(*) AS product_count,
        ARRAY_AGG({source.code}) AS product_codes
      {source.from_clause}
      {source.where(*conditions)}
      GROUP BY {group}
    """


def group_by_product_sql(source: ProductSource, column: str, kind: SearchType) -> str:
    """Groups holding products that match the query.

    ``product_count`` counts the matching products only, while
    ``product_codes`` lists every product of the group so that picking the
    group selects all of it.
    """
    group = f"{source.catalogue}{column}"
    return f"""
      WITH matching_products AS (
        SELECT {group} AS group_name, {source.name} AS name, {source.code} AS code_13_ref
        {source.from_clause}
        {source.where(f"{group} IS NOT NULL", _match_condition(source, kind))}
      ),
      group_summary AS (
        SELECT
          group_name,
          COUNT(*) AS matching_count,
          JSON_AGG(JSON_BUILD_OBJECT('name', name, 'code_13_ref', code_13_ref)) AS matching_products
        FROM matching_products
        GROUP BY group_name
      ),
      all_group_products AS (
        SELECT {group} AS group_name, ARRAY_AGG({source.code}) AS product_codes
        {source.from_clause}
        {source.where(f"{group} IN (SELECT group_name FROM matching_products)")}
        GROUP BY {group}
      )
      SELECT
        gs.group_name,
        gs.matching_count AS product_count,
        agp.product_codes,
        gs.matching_products
      FROM group_summary gs
      JOIN all_group_products agp ON gs.group_name = agp.group_name
    """


def ordered(sql: str) -> str:
    return f"{sql}\n    ORDER BY group_name\n    LIMIT :limit"


def category_union_sql(universe_sql: str, category_sql: str) -> str:
    """Universes and categories in one list, tagged with their type."""
    return f"""
    SELECT *, 'universe' AS category_type FROM ({universe_sql}) AS universes
    UNION ALL
    SELECT *, 'category' AS category_type FROM ({category_sql}) AS categories
    ORDER BY group_name
    LIMIT :limit
    """


# =============================================================================
# Pharmacies
# =============================================================================


def pharmacy_search_sql(
    query: str | None,
    ca_min: float | None,
    ca_max: float | None,
    regions: list[str],
) -> tuple[str, dict[str, Any]]:
    """Pharmacies filtered on name/address, turnover range and regions."""
    conditions: list[str] = []
    params: dict[str, Any] = {}

    text = (query or "").strip()
    if len(text) >= MIN_KEYWORD_LENGTH:
        conditions.append("(LOWER(name) LIKE LOWER(:query) OR LOWER(address) LIKE LOWER(:query))")
        params["query"] = f"%{text}%"
    if ca_min is not None:
        conditions.append("ca >= :ca_min")
        params["ca_min"] = ca_min
    if ca_max is not None:
        conditions.append("ca <= :ca_max")
        params["ca_max"] = ca_max
    if regions:
        conditions.append("area = ANY(CAST(:regions AS text[]))")
        params["regions"] = regions

    where = "WHERE " + " AND ".join(conditions) if conditions else ""
    sql = f"""
    SELECT id, name, address, ca, area, employees_count, id_nat
    FROM data_pharmacy
    {where}
    ORDER BY ca DESC, name ASC
    LIMIT :limit
    """
    return sql, params
