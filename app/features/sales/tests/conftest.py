"""Test fixtures for the sales module."""

from typing import Any

import pytest

from app.core.cache import ResponseCache


@pytest.fixture
def disabled_cache() -> ResponseCache:
    return ResponseCache(None, "test", enabled=False)


def make_row(code: str, type_ligne: str, periode: str, **metrics: Any) -> dict[str, Any]:
    row: dict[str, Any] = {
        "nom": f"PRODUIT {code[-3:]}",
        "code_ean": code,
        "bcb_lab": "SANOFI",
        "periode": periode,
        "periode_libelle": "SYNTHÈSE PÉRIODE" if type_ligne == "SYNTHESE" else periode,
        "type_ligne": type_ligne,
        "quantity_bought": 10,
        "quantite_vendue": 8,
        "prix_achat_moyen": 2.5,
        "prix_vente_moyen": 4.9,
        "taux_marge_moyen": 38.2,
        "part_marche_quantite_pct": 100,
        "part_marche_marge_pct": 100,
        "montant_ventes_ttc": 39.2,
        "montant_marge_total": 12.4,
    }
    row.update(metrics)
    return row


@pytest.fixture
def sales_rows() -> list[dict[str, Any]]:
    """One product: SYNTHESE row followed by two DETAIL days."""
    return [
        make_row("3400930000001", "SYNTHESE", "TOTAL", quantite_vendue=8),
        make_row("3400930000001", "DETAIL", "2024-03-01", quantite_vendue=5),
        make_row("3400930000001", "DETAIL", "2024-03-02", quantite_vendue=3),
    ]


@pytest.fixture
def comparison_rows() -> list[dict[str, Any]]:
    return [
        make_row("3400930000001", "SYNTHESE", "TOTAL", quantite_vendue=6, quantity_bought=4),
        make_row("3400930000001", "DETAIL", "2023-03-01", quantite_vendue=6),
    ]
