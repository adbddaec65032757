"""Test fixtures for the exports module."""

from typing import Any

import pytest


def _detail(code_ean: str | None, quantity: int) -> dict[str, Any]:
    return {
        "code_ean": code_ean,
        "pharmacy_name": "Pharmacie du Centre",
        "id_nat": "750000001",
        "quantity_sold": quantity,
    }


@pytest.fixture
def bri_results() -> list[list[dict[str, Any]]]:
    """Pharmacy totals, product totals and per-pharmacy details, in query order."""
    return [
        [
            {
                "pharmacy_name": "Pharmacie du Centre",
                "id_nat": "750000001",
                "total_quantity_sold": 12,
            },
            {
                "pharmacy_name": "Pharmacie du Port",
                "id_nat": "130000002",
                "total_quantity_sold": 0,
            },
        ],
        [
            {
                "code_ean": "3400930000001",
                "product_name": "DOLIPRANE 1000MG",
                "laboratory": "SANOFI",
                "total_quantity_sold": 10,
            },
            {
                "code_ean": "3400930000002",
                "product_name": "PRODUIT SANS LABO",
                "laboratory": None,
                "total_quantity_sold": 2,
            },
        ],
        [
            _detail("3400930000001", 10),
            _detail("3400930000002", 2),
            _detail(None, 1),
        ],
    ]


@pytest.fixture
def bri_body() -> dict[str, Any]:
    return {"analysisDateRange": {"start": "2024-01-01", "end": "2024-12-31"}}
