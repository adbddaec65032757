"""Test fixtures for the filters module."""

from typing import Any

import pytest

from app.features.filters.schemas import FilterRequest


@pytest.fixture
def base_request_payload() -> dict[str, Any]:
    """Minimal camelCase request body."""
    return {"dateRange": {"start": "2024-01-01", "end": "2024-01-31"}}


@pytest.fixture
def full_request() -> FilterRequest:
    """Request touching every filter dimension."""
    return FilterRequest.model_validate(
        {
            "dateRange": {"start": "2024-01-01", "end": "2024-03-31"},
            "pharmacyIds": ["6f1c2a9e-0000-4000-8000-000000000001"],
            "laboratories": ["SANOFI", "BIOGARAN"],
            "categories": [
                {"code": "ANTALGIQUES", "type": "bcb_segment_l1"},
                {"code": "DOULEUR", "type": "bcb_family"},
            ],
            "productCodes": ["3400930000001"],
            "groups": [{"name": "Paracetamol", "productCodes": ["3400930000002"]}],
            "excludedLaboratories": ["MYLAN"],
            "excludedProductCodes": ["3400930000009"],
            "excludedCategories": [{"code": "VITAMINES", "type": "bcb_segment_l2"}],
            "filterOperators": ["AND", "OR", "AND"],
            "tvaRates": [2.1, 5.5],
            "reimbursementStatus": "REIMBURSED",
            "isGeneric": "GENERIC",
            "sellPriceRange": {"min": 1, "max": 20},
        }
    )
