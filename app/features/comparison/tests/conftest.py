"""Test fixtures for the comparison module."""

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
def stats_row() -> dict[str, Any]:
    """Period totals against a previous year with half the sales."""
    return {
        "sales_ht": 2000.0,
        "margin_eur": 500.0,
        "qty_sold": 310,
        "purchases_ht": 1500.0,
        "qty_bought": 300,
        "sales_ht_prev": 1000.0,
        "margin_eur_prev": 200.0,
        "qty_sold_prev": 155,
        "purchases_ht_prev": 0,
        "qty_bought_prev": 0,
    }


@pytest.fixture
def entity_stock_row() -> dict[str, Any]:
    return {"stock_quantity": 100, "stock_value": 450.5, "nb_refs": 4}


@pytest.fixture
def comparison_body() -> dict[str, Any]:
    return {
        "entities": [
            {"id": "lab-1", "type": "LABORATORY", "sourceIds": ["SANOFI"]},
            {"id": "cat-1", "type": "CATEGORY", "sourceIds": ["ANTALGIQUES"]},
        ],
        "dateRange": {"start": "2024-01-01", "end": "2024-01-31"},
    }


@pytest.fixture
def group_body() -> dict[str, Any]:
    return {
        "dateRange": {"start": "2024-01-01", "end": "2024-03-31"},
        "pharmacyIds": [
            "22222222-2222-2222-2222-222222222222",
            "33333333-3333-3333-3333-333333333333",
        ],
    }


@pytest.fixture
def group_row():
    """Build a group metrics row scaled by ``factor``."""

    def build(factor: float = 1.0) -> dict[str, Any]:
        return {
            "ca_sell_in": 1000.0 * factor,
            "ca_sell_out": 1800.0 * factor,
            "marge": 450.0 * factor,
            "taux_marge": 30.0,
            "stock": 2500.0 * factor,
        }

    return build
