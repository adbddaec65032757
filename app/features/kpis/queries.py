"""SQL for the KPI endpoints.

Margins are computed per sold unit as the snapshot price excluding tax minus
the weighted average cost: ``price_with_tax / (1 + TVA / 100) - weighted_average_price``.
Snapshots with a zero weighted average cost are ignored.
"""

from app.features.filters.selection import Selection

# =============================================================================
# Dashboard KPIs
# =============================================================================


def dashboard_kpis_sql(selection: Selection) -> str:
    """Sales, purchases and current stock in one round trip."""
    where = selection.sql("ip")
    return f"""
    WITH period_sales AS (
      SELECT
        COUNT(DISTINCT ip.code_13_ref_id) AS nb_references_produits,
        COUNT(DISTINCT ip.pharmacy_id) AS nb_pharmacies,
        SUM(s.quantity) AS total_quantity_sold,
        SUM(s.quantity * ins.price_with_tax) AS ca_ttc_total,
        SUM(s.quantity * (
          (ins.price_with_tax / (1 + COALESCE(ip."TVA", 0) / 100.0)) - ins.weighted_average_price
        )) AS montant_marge_reel
      FROM data_sales s
      JOIN data_inventorysnapshot ins ON s.product_id = ins.id
      JOIN data_internalproduct ip ON ins.product_id = ip.id
      WHERE s.date >= CAST(:date_start AS date) AND s.date <= CAST(:date_end AS date)
        AND ins.weighted_average_price > 0
        {where}
    ),
    period_purchases AS (
      SELECT
        SUM(po.qte) AS total_quantity_bought,
        SUM(po.qte * COALESCE(closest_snap.weighted_average_price, 0)) AS montant_achat_ht_total
      FROM data_productorder po
      INNER JOIN data_order o ON po.order_id = o.id
      INNER JOIN data_internalproduct ip ON po.product_id = ip.id
      LEFT JOIN LATERAL (
        SELECT weighted_average_price
        FROM data_inventorysnapshot ins2
        WHERE ins2.product_id = po.product_id
          AND ins2.date <= CAST(o.created_at AS date)
          AND ins2.weighted_average_price > 0
        ORDER BY ins2.date DESC
        LIMIT 1
      ) closest_snap ON true
      WHERE o.created_at >= CAST(:date_start AS date)
        AND o.created_at < CAST(:date_end AS date) + interval '1 day'
        {where}
    ),
    current_stock AS (
      SELECT
        SUM(latest_stock.stock) AS quantite_stock_total,
        SUM(latest_stock.stock * latest_stock.weighted_average_price) AS valeur_stock_ht_total
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
      COALESCE(ps.ca_ttc_total, 0) AS ca_ttc,
      COALESCE(pp.montant_achat_ht_total, 0) AS montant_achat_ht,
      COALESCE(ps.montant_marge_reel, 0) AS montant_marge,
      CASE
        WHEN COALESCE(ps.ca_ttc_total, 0) > 0
        THEN (COALESCE(ps.montant_marge_reel, 0) / ps.ca_ttc_total) * 100
        ELSE 0
      END AS pourcentage_marge,
      COALESCE(cs.valeur_stock_ht_total, 0) AS valeur_stock_ht,
      COALESCE(cs.quantite_stock_total, 0) AS quantite_stock,
      COALESCE(ps.total_quantity_sold, 0) AS quantite_vendue,
      COALESCE(pp.total_quantity_bought, 0) AS quantite_achetee,
      CASE
        WHEN COALESCE(ps.total_quantity_sold, 0) > 0 AND COALESCE(cs.quantite_stock_total, 0) > 0
        THEN ROUND(
          CAST(cs.quantite_stock_total AS numeric) / (CAST(ps.total_quantity_sold AS numeric) / 365)
        )
        ELSE NULL
      END AS jours_de_stock,
      COALESCE(ps.nb_references_produits, 0) AS nb_references_produits,
      COALESCE(ps.nb_pharmacies, 0) AS nb_pharmacies
    FROM period_sales ps
    LEFT JOIN period_purchases pp ON true
    LEFT JOIN current_stock cs ON true
    """


# =============================================================================
# Sales KPIs
# =============================================================================


def sales_kpis_mv_sql(selection: Selection) -> str:
    """Whole-month sales KPIs from ``mv_sales_kpi_monthly``.

    The view has no product dimension, so market shares are 100% by
    construction and the pareto count is not available.
    """
    return f"""
    SELECT
      SUM(quantite_vendue) AS quantite_vendue,
      SUM(ca_ttc) AS ca_ttc,
      100.0 AS part_marche_ca_pct,
      100.0 AS part_marche_marge_pct,
      SUM(nb_references_selection) AS nb_references_selection,
      0 AS nb_references_80pct_ca,
      SUM(montant_marge) AS montant_marge,
      CASE
        WHEN SUM(ca_ttc) > 0 THEN (SUM(montant_marge) / SUM(ca_ttc)) * 100
        ELSE 0
      END AS taux_marge_pct
    FROM mv_sales_kpi_monthly
    WHERE periode >= DATE_TRUNC('month', CAST(:date_start AS date))
      AND periode <= DATE_TRUNC('month', CAST(:date_end AS date))
      {selection.pharmacies_sql("pharmacy_id")}
    """


_SOLD_UNITS = """
      FROM data_sales s
      JOIN data_inventorysnapshot ins ON s.product_id = ins.id
      JOIN data_internalproduct ip ON ins.product_id = ip.id
      WHERE s.date >= CAST(:date_start AS date) AND s.date <= CAST(:date_end AS date)
        AND ins.weighted_average_price > 0"""

_UNIT_MARGIN = (
    '(ins.price_with_tax / (1 + COALESCE(ip."TVA", 0) / 100.0)) - ins.weighted_average_price'
)


def sales_kpis_raw_sql(selection: Selection) -> str:
    """Sales KPIs from raw tables: selection, scope-wide totals and pareto count."""
    selected = selection.sql("ip")
    scoped = selection.pharmacies_sql("ip.pharmacy_id")
    return f"""
    WITH selection_metrics AS (
      SELECT
        COUNT(DISTINCT ip.code_13_ref_id) AS nb_references_selection,
        SUM(s.quantity) AS quantite_vendue_selection,
        SUM(s.quantity * ins.price_with_tax) AS ca_ttc_selection,
        SUM(s.quantity * ({_UNIT_MARGIN})) AS montant_marge_selection
      {_SOLD_UNITS}
        {selected}
    ),
    global_metrics AS (
      SELECT
        SUM(s.quantity * ins.price_with_tax) AS ca_ttc_global,
        SUM(s.quantity * ({_UNIT_MARGIN})) AS montant_marge_global
      {_SOLD_UNITS}
        {scoped}
    ),
    products_ca_ranking AS (
      SELECT
        ip.code_13_ref_id,
        SUM(s.quantity * ins.price_with_tax) AS ca_ttc_produit
      {_SOLD_UNITS}
        {selected}
      GROUP BY ip.code_13_ref_id
      HAVING SUM(s.quantity * ins.price_with_tax) > 0
    ),
    pareto_80_analysis AS (
      SELECT COUNT(*) AS nb_references_80pct_ca
      FROM (
        SELECT
          SUM(ca_ttc_produit) OVER (ORDER BY ca_ttc_produit DESC ROWS UNBOUNDED PRECEDING)
            AS ca_cumule,
          (SELECT SUM(ca_ttc_produit) FROM products_ca_ranking) AS ca_total
        FROM products_ca_ranking
      ) cumul
      WHERE ca_cumule <= ca_total * 0.8
    )
    SELECT
      COALESCE(sm.quantite_vendue_selection, 0) AS quantite_vendue,
      COALESCE(sm.ca_ttc_selection, 0) AS ca_ttc,
      CASE
        WHEN COALESCE(gm.ca_ttc_global, 0) > 0
        THEN (COALESCE(sm.ca_ttc_selection, 0) / gm.ca_ttc_global) * 100
        ELSE 0
      END AS part_marche_ca_pct,
      CASE
        WHEN COALESCE(gm.montant_marge_global, 0) > 0
        THEN (COALESCE(sm.montant_marge_selection, 0) / gm.montant_marge_global) * 100
        ELSE 0
      END AS part_marche_marge_pct,
      COALESCE(sm.nb_references_selection, 0) AS nb_references_selection,
      COALESCE(p80.nb_references_80pct_ca, 0) AS nb_references_80pct_ca,
      COALESCE(sm.montant_marge_selection, 0) AS montant_marge,
      CASE
        WHEN COALESCE(sm.ca_ttc_selection, 0) > 0
        THEN (COALESCE(sm.montant_marge_selection, 0) / sm.ca_ttc_selection) * 100
        ELSE 0
      END AS taux_marge_pct
    FROM selection_metrics sm
    LEFT JOIN global_metrics gm ON true
    LEFT JOIN pareto_80_analysis p80 ON true
    """


# =============================================================================
# Stock metrics
# =============================================================================

_LATEST_VALUED_SNAPSHOT = """
        SELECT DISTINCT ON (ins.product_id)
          ins.stock, ins.weighted_average_price
        FROM data_inventorysnapshot ins
        WHERE ins.product_id = ip.id
          AND ins.weighted_average_price > 0
        ORDER BY ins.product_id, ins.date DESC"""


def stock_metrics_sql(selection: Selection) -> str:
    """Current stock, 12-month coverage and order/reception totals.

    Orders are filtered on their own ``pharmacy_id`` so that a product moved
    between pharmacies keeps its history with the ordering pharmacy.
    """
    return f"""
    WITH current_stock AS (
      SELECT
        SUM(latest_stock.stock) AS quantite_stock_total,
        SUM(latest_stock.stock * latest_stock.weighted_average_price) AS valeur_stock_ht_total
      FROM data_internalproduct ip
      JOIN LATERAL ({_LATEST_VALUED_SNAPSHOT}
      ) latest_stock ON true
      WHERE 1=1
        {selection.sql("ip")}
    ),
    stock_by_product AS (
      SELECT ip.code_13_ref_id, latest_stock.stock AS quantite_stock_actuel
      FROM data_internalproduct ip
      JOIN LATERAL ({_LATEST_VALUED_SNAPSHOT}
      ) latest_stock ON true
      WHERE 1=1
        {selection.sql("ip")}
    ),
    average_monthly_sales AS (
      SELECT
        ip.code_13_ref_id,
        SUM(COALESCE(sales_data.quantite_vendue, 0)) AS ventes_12_mois_total
      FROM data_internalproduct ip
      LEFT JOIN (
        SELECT ip2.code_13_ref_id, SUM(s.quantity) AS quantite_vendue
        FROM data_sales s
        JOIN data_inventorysnapshot ins ON s.product_id = ins.id
        JOIN data_internalproduct ip2 ON ins.product_id = ip2.id
        WHERE s.date >= CURRENT_DATE - interval '12 months'
          AND s.date <= CURRENT_DATE
          {selection.sql("ip2")}
        GROUP BY ip2.code_13_ref_id
      ) sales_data ON ip.code_13_ref_id = sales_data.code_13_ref_id
      WHERE 1=1
        {selection.sql("ip")}
      GROUP BY ip.code_13_ref_id
    ),
    order_reception_data AS (
      SELECT
        SUM(po.qte) AS quantite_commandee,
        SUM(po.qte_r) AS quantite_receptionnee,
        SUM(po.qte * COALESCE(latest_price.weighted_average_price, 0)) AS montant_commande_ht,
        SUM(po.qte_r * COALESCE(latest_price.weighted_average_price, 0)) AS montant_receptionne_ht
      FROM data_order o
      INNER JOIN data_productorder po ON po.order_id = o.id
      INNER JOIN data_internalproduct ip ON po.product_id = ip.id
      LEFT JOIN LATERAL (
        SELECT weighted_average_price
        FROM data_inventorysnapshot ins
        WHERE ins.product_id = po.product_id
          AND ins.weighted_average_price > 0
        ORDER BY ins.date DESC
        LIMIT 1
      ) latest_price ON true
      WHERE o.delivery_date >= CAST(:date_start AS date)
        AND o.delivery_date <= CAST(:date_end AS date)
        AND o.delivery_date IS NOT NULL
        {selection.sql("ip", pharmacy_alias="o")}
    )
    SELECT
      (SELECT COALESCE(quantite_stock_total, 0) FROM current_stock) AS quantite_stock_actuel_total,
      (SELECT COALESCE(valeur_stock_ht_total, 0) FROM current_stock) AS montant_stock_actuel_total,
      COALESCE(ROUND(AVG(sbp.quantite_stock_actuel), 0), 0) AS stock_moyen_12_mois,
      CASE
        WHEN SUM(ams.ventes_12_mois_total) > 0
        THEN ROUND(
          (SELECT COALESCE(quantite_stock_total, 0) FROM current_stock)
            / (SUM(ams.ventes_12_mois_total) / 365.0),
          1
        )
        ELSE NULL
      END AS jours_de_stock_actuels,
      COUNT(DISTINCT sbp.code_13_ref_id) AS nb_references_produits,
      COUNT(DISTINCT ip_meta.pharmacy_id) AS nb_pharmacies,
      COALESCE((SELECT quantite_commandee FROM order_reception_data), 0) AS quantite_commandee,
      COALESCE((SELECT quantite_receptionnee FROM order_reception_data), 0)
        AS quantite_receptionnee,
      COALESCE((SELECT montant_commande_ht FROM order_reception_data), 0) AS montant_commande_ht,
      COALESCE((SELECT montant_receptionne_ht FROM order_reception_data), 0)
        AS montant_receptionne_ht
    FROM stock_by_product sbp
    LEFT JOIN average_monthly_sales ams ON sbp.code_13_ref_id = ams.code_13_ref_id
    LEFT JOIN data_internalproduct ip_meta ON sbp.code_13_ref_id = ip_meta.code_13_ref_id
    WHERE ip_meta.id IS NOT NULL
      {selection.sql("ip_meta")}
    """


# =============================================================================
# Daily metrics
# =============================================================================

DAILY_METRICS_MV_SQL = """
    SELECT
      date_jour AS date,
      quantite_vendue_jour,
      ca_ttc_jour,
      marge_jour,
      quantite_achat_jour,
      montant_achat_jour,
      stock_jour,
      cumul_quantite_vendue,
      cumul_quantite_achetee,
      cumul_ca_ttc,
      cumul_montant_achat,
      cumul_marge
    FROM mv_kpi_daily
    WHERE pharmacy_id = CAST(:pharmacy_id AS uuid)
      AND date_jour >= CAST(:date_start AS date)
      AND date_jour <= CAST(:date_end AS date)
    ORDER BY date_jour ASC
"""


def daily_metrics_sql(selection: Selection) -> str:
    """One row per calendar day with running totals (window sums)."""
    where = selection.sql("ip")
    return f"""
    WITH calendar_period AS (
      SELECT CAST(generate_series(
        CAST(:date_start AS date), CAST(:date_end AS date), interval '1 day'
      ) AS date) AS date_jour
    ),
    daily_sales AS (
      SELECT
        s.date,
        SUM(s.quantity) AS quantite_vendue_jour,
        SUM(s.quantity * ins.price_with_tax) AS ca_ttc_jour,
        SUM(s.quantity * ({_UNIT_MARGIN})) AS montant_marge_jour
      {_SOLD_UNITS}
        {where}
      GROUP BY s.date
    ),
    daily_purchases AS (
      SELECT
        o.delivery_date AS date_achat,
        SUM(po.qte_r) AS quantite_achetee_jour,
        SUM(po.qte_r * COALESCE(closest_snap.weighted_average_price, 0)) AS montant_achat_ht_jour
      FROM data_productorder po
      JOIN data_order o ON po.order_id = o.id
      JOIN data_internalproduct ip ON po.product_id = ip.id
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
      GROUP BY o.delivery_date
    ),
    daily_stock AS (
      SELECT cal.date_jour, SUM(latest_stock.stock) AS stock_jour
      FROM calendar_period cal
      JOIN data_internalproduct ip ON true
        {where}
      JOIN LATERAL (
        SELECT DISTINCT ON (ins.product_id) ins.stock
        FROM data_inventorysnapshot ins
        WHERE ins.product_id = ip.id
          AND ins.date <= cal.date_jour
        ORDER BY ins.product_id, ins.date DESC
      ) latest_stock ON true
      GROUP BY cal.date_jour
    )
    SELECT
      cal.date_jour AS date,
      COALESCE(ds.quantite_vendue_jour, 0) AS quantite_vendue_jour,
      COALESCE(ds.ca_ttc_jour, 0) AS ca_ttc_jour,
      COALESCE(ds.montant_marge_jour, 0) AS marge_jour,
      COALESCE(dp.quantite_achetee_jour, 0) AS quantite_achat_jour,
      COALESCE(dp.montant_achat_ht_jour, 0) AS montant_achat_jour,
      COALESCE(dst.stock_jour, 0) AS stock_jour,
      SUM(COALESCE(ds.quantite_vendue_jour, 0)) OVER (ORDER BY cal.date_jour)
        AS cumul_quantite_vendue,
      SUM(COALESCE(dp.quantite_achetee_jour, 0)) OVER (ORDER BY cal.date_jour)
        AS cumul_quantite_achetee,
      SUM(COALESCE(ds.ca_ttc_jour, 0)) OVER (ORDER BY cal.date_jour) AS cumul_ca_ttc,
      SUM(COALESCE(dp.montant_achat_ht_jour, 0)) OVER (ORDER BY cal.date_jour)
        AS cumul_montant_achat,
      SUM(COALESCE(ds.montant_marge_jour, 0)) OVER (ORDER BY cal.date_jour) AS cumul_marge
    FROM calendar_period cal
    LEFT JOIN daily_sales ds ON cal.date_jour = ds.date
    LEFT JOIN daily_purchases dp ON cal.date_jour = dp.date_achat
    LEFT JOIN daily_stock dst ON cal.date_jour = dst.date_jour
    ORDER BY cal.date_jour ASC
    """


# =============================================================================
# Filtered aggregates (FilterQueryBuilder)
# =============================================================================

# Column mapping of mv_sales_enriched. Only segment_l1 is denormalized in the
# view; other category levels come from the data_globalproduct join.
SALES_MV_MAPPING = {
    "pharmacy_id": "mv.pharmacy_id",
    "laboratory": "mv.laboratory_name",
    "product_code": "mv.code_13_ref",
    "tva": "mv.tva_rate",
    "reimbursable": "mv.is_reimbursable",
    "generic_status": "mv.bcb_generic_status",
    "cat_l1": "mv.category_name",
}


def ventes_aggregate_sql(
    conditions: str,
    join_latest_prices: bool,
    join_global_product: bool,
) -> str:
    """Sold quantities and amounts excl. tax from the enriched sales view."""
    joins = []
    if join_latest_prices:
        joins.append(
            "LEFT JOIN mv_latest_product_prices lp ON mv.internal_product_id = lp.product_id"
        )
    if join_global_product:
        joins.append("LEFT JOIN data_globalproduct gp ON mv.code_13_ref = gp.code_13_ref")
    join_sql = "\n    ".join(joins)
    return f"""
    SELECT
      COALESCE(SUM(mv.quantity), 0) AS quantite_vendue,
      COALESCE(SUM(mv.montant_ht), 0) AS montant_ht
    FROM mv_sales_enriched mv
    {join_sql}
    WHERE mv.sale_date >= CAST(:date_start AS date)
      AND mv.sale_date <= CAST(:date_end AS date)
      {conditions}
    """


def achats_aggregate_sql(conditions: str, join_global_product: bool) -> str:
    """Received quantities valued at the latest weighted average cost."""
    gp_join = (
        "LEFT JOIN data_globalproduct gp ON ip.code_13_ref_id = gp.code_13_ref"
        if join_global_product
        else ""
    )
    return f"""
    SELECT
      COALESCE(SUM(po.qte_r), 0) AS quantite_achetee,
      COALESCE(SUM(po.qte_r * COALESCE(lp.weighted_average_price, 0)), 0) AS montant_ht
    FROM data_productorder po
    INNER JOIN data_order o ON po.order_id = o.id
    INNER JOIN data_internalproduct ip ON po.product_id = ip.id
    {gp_join}
    LEFT JOIN mv_latest_product_prices lp ON po.product_id = lp.product_id
    WHERE o.delivery_date >= CAST(:date_start AS date)
      AND o.delivery_date <= CAST(:date_end AS date)
      AND o.delivery_date IS NOT NULL
      AND po.qte_r > 0
      {conditions}
    """
