"""SQL for entity and pharmacy group comparison.

Entity sales and purchases come from ``mv_product_stats_monthly`` (one row per
product, pharmacy and month); stock is the latest ``mv_stock_monthly``
snapshot of each product on or before the period end. Entity and pharmacy
predicates are rendered by :class:`FilterQueryBuilder` against the aliases
below. The pharmacy group query reads the raw tables through a
:class:`Selection`.
"""

from app.features.comparison.schemas import ComparisonEntity, EntityType
from app.features.filters.query_builder import FilterQueryBuilder
from app.features.filters.selection import Selection

# A category pick does not say which level it came from, so every level is
# searched.
CATEGORY_COLUMNS = (
    "gp.bcb_segment_l0",
    "gp.bcb_segment_l1",
    "gp.bcb_segment_l2",
    "gp.bcb_segment_l3",
    "gp.bcb_segment_l4",
    "gp.bcb_segment_l5",
    "gp.bcb_family",
)


def entity_mapping(alias: str) -> dict[str, str]:
    """Builder column mapping for a stats relation aliased ``alias``."""
    return {
        "pharmacy_id": f"{alias}.pharmacy_id",
        "laboratory": f"{alias}.laboratory_name",
        "product_code": "CAST(gp.bcb_product_id AS text)",
    }


def add_entity(builder: FilterQueryBuilder, entity: ComparisonEntity) -> None:
    """Restrict ``builder`` to the products making up ``entity``."""
    if entity.type == EntityType.PRODUCT:
        builder.add_products(entity.source_ids)
    elif entity.type == EntityType.LABORATORY:
        builder.add_laboratories(entity.source_ids)
    else:
        builder.add_filter_group(
            entity.source_ids,
            lambda p: " OR ".join(
                f"{column} = ANY(CAST(:{p} AS text[]))" for column in CATEGORY_COLUMNS
            ),
        )


ENTITY_STATS_SQL = """
SELECT
  COALESCE(SUM(CASE WHEN mv.month >= CAST(:date_start AS date)
    AND mv.month <= CAST(:date_end AS date) THEN mv.ht_sold ELSE 0 END), 0) AS sales_ht,
  COALESCE(SUM(CASE WHEN mv.month >= CAST(:date_start AS date)
    AND mv.month <= CAST(:date_end AS date) THEN mv.margin_sold ELSE 0 END), 0) AS margin_eur,
  COALESCE(SUM(CASE WHEN mv.month >= CAST(:date_start AS date)
    AND mv.month <= CAST(:date_end AS date) THEN mv.qty_sold ELSE 0 END), 0) AS qty_sold,
  COALESCE(SUM(CASE WHEN mv.month >= CAST(:date_start AS date)
    AND mv.month <= CAST(:date_end AS date) THEN mv.ht_purchased ELSE 0 END), 0)
    AS purchases_ht,
  COALESCE(SUM(CASE WHEN mv.month >= CAST(:date_start AS date)
    AND mv.month <= CAST(:date_end AS date) THEN mv.qty_purchased ELSE 0 END), 0)
    AS qty_bought,
  COALESCE(SUM(CASE WHEN mv.month >= CAST(:prev_start AS date)
    AND mv.month <= CAST(:prev_end AS date) THEN mv.ht_sold ELSE 0 END), 0) AS sales_ht_prev,
  COALESCE(SUM(CASE WHEN mv.month >= CAST(:prev_start AS date)
    AND mv.month <= CAST(:prev_end AS date) THEN mv.margin_sold ELSE 0 END), 0)
    AS margin_eur_prev,
  COALESCE(SUM(CASE WHEN mv.month >= CAST(:prev_start AS date)
    AND mv.month <= CAST(:prev_end AS date) THEN mv.qty_sold ELSE 0 END), 0) AS qty_sold_prev,
  COALESCE(SUM(CASE WHEN mv.month >= CAST(:prev_start AS date)
    AND mv.month <= CAST(:prev_end AS date) THEN mv.ht_purchased ELSE 0 END), 0)
    AS purchases_ht_prev,
  COALESCE(SUM(CASE WHEN mv.month >= CAST(:prev_start AS date)
    AND mv.month <= CAST(:prev_end AS date) THEN mv.qty_purchased ELSE 0 END), 0)
    AS qty_bought_prev
FROM mv_product_stats_monthly mv
JOIN data_internalproduct ip ON mv.product_id = ip.id
JOIN data_globalproduct gp ON ip.code_13_ref_id = gp.code_13_ref
WHERE mv.month >= CAST(:prev_start AS date)
  AND mv.month <= CAST(:date_end AS date)
  {conditions}
"""

ENTITY_STOCK_SQL = """
SELECT
  COALESCE(SUM(t.stock), 0) AS stock_quantity,
  COALESCE(SUM(t.stock_value_ht), 0) AS stock_value,
  COUNT(*) AS nb_refs
FROM (
  SELECT DISTINCT ON (s.product_id)
    s.stock,
    s.stock_value_ht
  FROM mv_stock_monthly s
  JOIN data_internalproduct ip ON s.product_id = ip.id
  JOIN data_globalproduct gp ON ip.code_13_ref_id = gp.code_13_ref
  WHERE s.month_end_date <= CAST(:date_end AS date)
    {conditions}
  ORDER BY s.product_id, s.month_end_date DESC
) t
"""

ENTITY_EVOLUTION_SQL = """
SELECT
  mv.month AS date,
  COALESCE(SUM(mv.ht_sold), 0) AS sales_ht,
  COALESCE(SUM(mv.margin_sold), 0) AS margin_eur,
  COALESCE(SUM(mv.qty_sold), 0) AS qty_sold
FROM mv_product_stats_monthly mv
JOIN data_internalproduct ip ON mv.product_id = ip.id
JOIN data_globalproduct gp ON ip.code_13_ref_id = gp.code_13_ref
WHERE mv.month >= CAST(:date_start AS date)
  AND mv.month <= CAST(:date_end AS date)
  {conditions}
GROUP BY mv.month
ORDER BY mv.month ASC
"""


# =============================================================================
# Pharmacy group comparison (fixed-shape, Selection)
# =============================================================================


def group_metrics_sql(selection: Selection) -> str:
    """Sell-in by delivery, sell-out incl. tax, margin and stock value of a selection.

    Sales without a positive VAT rate are left out since their margin
    cannot be computed excluding tax.
    """
    where = selection.sql("ip")
    return f"""
    WITH period_purchases AS (
      SELECT
        COALESCE(SUM(po.qte_r * COALESCE(closest_snap.weighted_average_price, 0)), 0)
          AS ca_sell_in
      FROM data_productorder po
      INNER JOIN data_order o ON po.order_id = o.id
      INNER JOIN data_internalproduct ip ON po.product_id = ip.id
      LEFT JOIN LATERAL (
        SELECT weighted_average_price
        FROM data_inventorysnapshot ins2
        WHERE ins2.product_id = po.product_id
          AND ins2.weighted_average_price > 0
        ORDER BY ins2.date DESC
        LIMIT 1
      ) closest_snap ON true
      WHERE o.delivery_date >= CAST(:date_start AS date)
        AND o.delivery_date <= CAST(:date_end AS date)
        AND o.delivery_date IS NOT NULL
        AND po.qte_r > 0
        {where}
    ),
    period_sales AS (
      SELECT
        COALESCE(SUM(s.quantity * s.unit_price_ttc), 0) AS ca_sell_out,
        COALESCE(SUM(s.quantity * (
          s.unit_price_ttc / (1 + COALESCE(gp.tva_percentage, gp.bcb_tva_rate, 0) / 100.0)
        )), 0) AS ca_ht,
        COALESCE(SUM(s.quantity * (
          (s.unit_price_ttc / (1 + COALESCE(gp.tva_percentage, gp.bcb_tva_rate, 0) / 100.0))
          - ins.weighted_average_price
        )), 0) AS marge
      FROM data_sales s
      JOIN data_inventorysnapshot ins ON s.product_id = ins.id
      JOIN data_internalproduct ip ON ins.product_id = ip.id
      LEFT JOIN data_globalproduct gp ON ip.code_13_ref_id = gp.code_13_ref
      WHERE s.date >= CAST(:date_start AS date) AND s.date <= CAST(:date_end AS date)
        AND s.unit_price_ttc > 0
        AND ins.weighted_average_price > 0
        AND COALESCE(gp.tva_percentage, gp.bcb_tva_rate, 0) > 0
        {where}
    ),
    current_stock AS (
      SELECT
        COALESCE(SUM(latest_stock.stock * latest_stock.weighted_average_price), 0) AS stock
      FROM data_internalproduct ip
      JOIN LATERAL (
        SELECT DISTINCT ON (ins.product_id)
          ins.stock, ins.weighted_average_price
        FROM data_inventorysnapshot ins
        WHERE ins.product_id = ip.id
        ORDER BY ins.product_id, ins.date DESC
      ) latest_stock ON true
      WHERE 1=1
        {where}
    )
    SELECT
      pp.ca_sell_in,
      ps.ca_sell_out,
      ps.marge,
      CASE WHEN ps.ca_ht > 0 THEN ps.marge / ps.ca_ht * 100 ELSE 0 END AS taux_marge,
      cs.stock
    FROM period_purchases pp
    CROSS JOIN period_sales ps
    CROSS JOIN current_stock cs
    """


PHARMACY_COUNT_SQL = "SELECT COUNT(*) AS count FROM data_pharmacy"
