"""Fixtures for administration tests."""

import datetime

import pytest


@pytest.fixture
def pharmacy_row(pharmacy_id) -> dict:
    return {
        "id": pharmacy_id,
        "id_nat": "750012345",
        "name": "Pharmacie du Centre",
        "address": "12 rue de la Paix, Paris",
        "area": "Ile-de-France",
        "ca": 2450000.0,
        "employees_count": 9,
        "ca_rank": 3,
        "user_count": 2,
        "created_at": datetime.datetime(2024, 1, 10, 9, 0),
        "updated_at": datetime.datetime(2025, 3, 1, 9, 0),
    }
