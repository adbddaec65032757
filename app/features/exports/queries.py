"""SQL for the BRI declaration workbook.

All three queries bind ``date_start``/``date_end`` plus the selection
parameters. Sales are joined on the period so that pharmacies without any
sale still appear in the pharmacy totals.
"""

from app.features.filters.selection import Selection


def pharmacy_totals_sql(selection: Selection) -> str:
    return f"""
    SELECT
      p.name AS pharmacy_name,
      p.id_nat,
      COALESCE(SUM(s.quantity), 0) AS total_quantity_sold
    FROM data_pharmacy p
    LEFT JOIN data_internalproduct ip ON ip.pharmacy_id = p.id
    LEFT JOIN data_inventorysnapshot ins ON ins.product_id = ip.id
    LEFT JOIN data_sales s ON s.product_id = ins.id
      AND s.date >= CAST(:date_start AS date)
      AND s.date <= CAST(:date_end AS date)
    WHERE 1=1
      {selection.products_sql("ip.code_13_ref_id")}
      {selection.pharmacies_sql("p.id")}
    GROUP BY p.id, p.name, p.id_nat
    ORDER BY p.name
    """


def product_totals_sql(selection: Selection) -> str:
    return f"""
    SELECT
      gp.code_13_ref AS code_ean,
      gp.name AS product_name,
      gp.bcb_lab AS laboratory,
      COALESCE(SUM(s.quantity), 0) AS total_quantity_sold
    FROM data_globalproduct gp
    LEFT JOIN data_internalproduct ip ON ip.code_13_ref_id = gp.code_13_ref
    LEFT JOIN data_inventorysnapshot ins ON ins.product_id = ip.id
    LEFT JOIN data_sales s ON s.product_id = ins.id
      AND s.date >= CAST(:date_start AS date)
      AND s.date <= CAST(:date_end AS date)
    WHERE 1=1
      {selection.sql("ip")}
    GROUP BY gp.code_13_ref, gp.name, gp.bcb_lab
    HAVING COALESCE(SUM(s.quantity), 0) > 0
    ORDER BY total_quantity_sold DESC
    """


def product_pharmacy_details_sql(selection: Selection) -> str:
    return f"""
    SELECT
      ip.code_13_ref_id AS code_ean,
      p.name AS pharmacy_name,
      p.id_nat,
      COALESCE(SUM(s.quantity), 0) AS quantity_sold
    FROM data_internalproduct ip
    INNER JOIN data_pharmacy p ON p.id = ip.pharmacy_id
    LEFT JOIN data_inventorysnapshot ins ON ins.product_id = ip.id
    LEFT JOIN data_sales s ON s.product_id = ins.id
      AND s.date >= CAST(:date_start AS date)
      AND s.date <= CAST(:date_end AS date)
    WHERE 1=1
      {selection.products_sql("ip.code_13_ref_id")}
      {selection.pharmacies_sql("p.id")}
    GROUP BY ip.code_13_ref_id, p.name, p.id_nat
    HAVING COALESCE(SUM(s.quantity), 0) > 0
    ORDER BY ip.code_13_ref_id, p.name
    """
