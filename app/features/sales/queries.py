"""SQL for the per-product sales table.

Sales are valued with the sale unit price incl. tax; margin uses the price
excl. tax (VAT from the global product) minus the weighted average cost of
the matching inventory snapshot. Lines without a usable price, cost or VAT
rate are left out.
"""

from app.features.filters.selection import Selection

_DAILY = {
    "sales_period": "s.date",
    "purchase_period": "o.delivery_date",
    "format": "TO_CHAR(ps.periode, 'YYYY-MM-DD')",
    "label": "TO_CHAR(ps.periode, 'DD/MM/YYYY')",
}

_MONTHLY = {
    "sales_period": "DATE_TRUNC('month', s.date)",
    "purchase_period": "DATE_TRUNC('month', o.delivery_date)",
    "format": "TO_CHAR(ps.periode, 'YYYY-MM')",
    "label": "TO_CHAR(ps.periode, 'Month YYYY')",
}

_VAT = "COALESCE(gp.tva_percentage, gp.bcb_tva_rate, 0)"


def sales_products_sql(selection: Selection, monthly: bool) -> str:
    """DETAIL rows per product and period plus one SYNTHESE row per product.

    Args:
        selection: Product codes and pharmacy scope.
        monthly: Group DETAIL rows by calendar month instead of by day.

    Returns:
        SQL binding ``date_start``, ``date_end`` and the selection parameters.
    """
    grouping = _MONTHLY if monthly else _DAILY
    where = selection.sql("ip")
    return f"""
    WITH period_sales AS (
      SELECT
        ip.code_13_ref_id,
        MIN(ip.name) AS product_name,
        MIN(gp.bcb_lab) AS bcb_lab,
        {grouping["sales_period"]} AS periode,
        SUM(s.quantity) AS quantite_vendue_periode,
        AVG(s.unit_price_ttc) AS prix_vente_moyen_periode,
        AVG(ins.weighted_average_price) AS prix_achat_moyen_periode,
        SUM(s.quantity * s.unit_price_ttc) AS montant_ventes_ttc,
        SUM(s.quantity * (
          (s.unit_price_ttc / (1 + {_VAT} / 100.0)) - ins.weighted_average_price
        )) AS montant_marge_total,
        SUM(s.quantity * (s.unit_price_ttc / (1 + {_VAT} / 100.0))) AS montant_ca_ht
      FROM data_sales s
      JOIN data_inventorysnapshot ins ON s.product_id = ins.id
      JOIN data_internalproduct ip ON ins.product_id = ip.id
      LEFT JOIN data_globalproduct gp ON ip.code_13_ref_id = gp.code_13_ref
      WHERE s.date >= CAST(:date_start AS date)
        AND s.date <= CAST(:date_end AS date)
        AND s.unit_price_ttc > 0
        AND ins.weighted_average_price > 0
        AND {_VAT} > 0
        {where}
      GROUP BY ip.code_13_ref_id, {grouping["sales_period"]}
      HAVING SUM(s.quantity) > 0
    ),
    period_purchases AS (
      SELECT
        ip.code_13_ref_id,
        {grouping["purchase_period"]} AS periode_achat,
        SUM(po.qte_r) AS quantite_achetee_periode
      FROM data_productorder po
      JOIN data_order o ON po.order_id = o.id
      JOIN data_internalproduct ip ON po.product_id = ip.id
      WHERE o.delivery_date >= CAST(:date_start AS date)
        AND o.delivery_date <= CAST(:date_end AS date)
        AND o.delivery_date IS NOT NULL
        AND po.qte_r > 0
        {where}
      GROUP BY ip.code_13_ref_id, {grouping["purchase_period"]}
    ),
    product_sales AS (
      SELECT
        code_13_ref_id,
        MIN(product_name) AS product_name,
        MIN(bcb_lab) AS bcb_lab,
        SUM(quantite_vendue_periode) AS quantite_vendue,
        AVG(prix_achat_moyen_periode) AS prix_achat_moyen,
        AVG(prix_vente_moyen_periode) AS prix_vente_moyen,
        SUM(montant_ventes_ttc) AS montant_ventes_ttc,
        SUM(montant_marge_total) AS montant_marge_total,
        SUM(montant_ca_ht) AS montant_ca_ht
      FROM period_sales
      GROUP BY code_13_ref_id
    ),
    product_purchases AS (
      SELECT code_13_ref_id, SUM(quantite_achetee_periode) AS quantity_bought
      FROM period_purchases
      GROUP BY code_13_ref_id
    ),
    selection_totals AS (
      SELECT
        SUM(quantite_vendue_periode) AS total_quantite,
        SUM(montant_marge_total) AS total_marge
      FROM period_sales
    ),
    all_results AS (
      SELECT
        ps.product_name AS nom,
        ps.code_13_ref_id AS code_ean,
        ps.bcb_lab,
        {grouping["format"]} AS periode,
        {grouping["label"]} AS periode_libelle,
        'DETAIL' AS type_ligne,
        COALESCE(pp.quantite_achetee_periode, 0) AS quantity_bought,
        ps.quantite_vendue_periode AS quantite_vendue,
        ROUND(ps.prix_achat_moyen_periode, 2) AS prix_achat_moyen,
        ROUND(ps.prix_vente_moyen_periode, 2) AS prix_vente_moyen,
        CASE WHEN ps.montant_ca_ht > 0
          THEN ROUND(ps.montant_marge_total / ps.montant_ca_ht * 100, 2) ELSE 0
        END AS taux_marge_moyen,
        CASE WHEN st.total_quantite > 0
          THEN ROUND(ps.quantite_vendue_periode * 100.0 / st.total_quantite, 2) ELSE 0
        END AS part_marche_quantite_pct,
        CASE WHEN st.total_marge > 0
          THEN ROUND(ps.montant_marge_total * 100.0 / st.total_marge, 2) ELSE 0
        END AS part_marche_marge_pct,
        ROUND(ps.montant_ventes_ttc, 2) AS montant_ventes_ttc,
        ROUND(ps.montant_marge_total, 2) AS montant_marge_total,
        ps.periode AS sort_periode,
        1 AS sort_order
      FROM period_sales ps
      CROSS JOIN selection_totals st
      LEFT JOIN period_purchases pp ON ps.code_13_ref_id = pp.code_13_ref_id
        AND ps.periode = pp.periode_achat

      UNION ALL

      SELECT
        ps.product_name AS nom,
        ps.code_13_ref_id AS code_ean,
        ps.bcb_lab,
        'TOTAL' AS periode,
        'SYNTHÈSE PÉRIODE' AS periode_libelle,
        'SYNTHESE' AS type_ligne,
        COALESCE(pp.quantity_bought, 0) AS quantity_bought,
        ps.quantite_vendue,
        ROUND(ps.prix_achat_moyen, 2) AS prix_achat_moyen,
        ROUND(ps.prix_vente_moyen, 2) AS prix_vente_moyen,
        CASE WHEN ps.montant_ca_ht > 0
          THEN ROUND(ps.montant_marge_total / ps.montant_ca_ht * 100, 2) ELSE 0
        END AS taux_marge_moyen,
        CASE WHEN st.total_quantite > 0
          THEN ROUND(ps.quantite_vendue * 100.0 / st.total_quantite, 2) ELSE 0
        END AS part_marche_quantite_pct,
        CASE WHEN st.total_marge > 0
          THEN ROUND(ps.montant_marge_total * 100.0 / st.total_marge, 2) ELSE 0
        END AS part_marche_marge_pct,
        ROUND(ps.montant_ventes_ttc, 2) AS montant_ventes_ttc,
        ROUND(ps.montant_marge_total, 2) AS montant_marge_total,
        NULL AS sort_periode,
        0 AS sort_order
      FROM product_sales ps
      CROSS JOIN selection_totals st
      LEFT JOIN product_purchases pp ON ps.code_13_ref_id = pp.code_13_ref_id
    )
    SELECT
      nom, code_ean, bcb_lab, periode, periode_libelle, type_ligne,
      quantity_bought, quantite_vendue, prix_achat_moyen, prix_vente_moyen,
      taux_marge_moyen, part_marche_quantite_pct, part_marche_marge_pct,
      montant_ventes_ttc, montant_marge_total
    FROM all_results
    ORDER BY nom, code_ean, sort_order, sort_periode ASC
    """
