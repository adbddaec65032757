"""Test fixtures for the KPI module."""

import json
from typing import Any
from unittest.mock import AsyncMock

import pytest

from app.core.cache import ResponseCache


@pytest.fixture
def disabled_cache() -> ResponseCache:
    return ResponseCache(None, "test", enabled=False)


@pytest.fixture
def redis_client() -> AsyncMock:
    """Async Redis double: empty by default, records SETEX calls."""
    client = AsyncMock()
    client.get.return_value = None
    return client


@pytest.fixture
def enabled_cache(redis_client: AsyncMock) -> ResponseCache:
    return ResponseCache(redis_client, "test", enabled=True)


@pytest.fixture
def cached_payload(redis_client: AsyncMock):
    """Prime the Redis double with a JSON document."""

    def prime(payload: dict[str, Any]) -> None:
        redis_client.get.return_value = json.dumps(payload)

    return prime


@pytest.fixture
def dashboard_row() -> dict[str, Any]:
    return {
        "ca_ttc": 1200.5,
        "montant_achat_ht": 800.0,
        "montant_marge": 300.25,
        "pourcentage_marge": 25.01,
        "valeur_stock_ht": 5000.0,
        "quantite_stock": 420,
        "quantite_vendue": 150,
        "quantite_achetee": 90,
        "jours_de_stock": 1022,
        "nb_references_produits": 35,
        "nb_pharmacies": 1,
    }


@pytest.fixture
def sales_row() -> dict[str, Any]:
    return {
        "quantite_vendue": 150,
        "ca_ttc": 1200.5,
        "part_marche_ca_pct": 12.5,
        "part_marche_marge_pct": 10.0,
        "nb_references_selection": 12,
        "nb_references_80pct_ca": 4,
        "montant_marge": 300.25,
        "taux_marge_pct": 25.01,
    }


@pytest.fixture
def stock_row() -> dict[str, Any]:
    return {
        "quantite_stock_actuel_total": 420,
        "montant_stock_actuel_total": 5000.0,
        "stock_moyen_12_mois": 380.5,
        "jours_de_stock_actuels": 61,
        "nb_references_produits": 35,
        "nb_pharmacies": 1,
        "quantite_commandee": 100,
        "quantite_receptionnee": 90,
        "montant_commande_ht": 850.0,
        "montant_receptionne_ht": 800.0,
    }


@pytest.fixture
def selection_body() -> dict[str, Any]:
    return {
        "dateRange": {"start": "2024-03-01", "end": "2024-03-31"},
        "productCodes": [],
    }
