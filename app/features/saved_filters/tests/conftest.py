"""Test fixtures for the saved filters module."""

import uuid
from datetime import UTC, date, datetime
from typing import Any

import pytest

from app.core.security import SecurityContext
from app.features.saved_filters.models import SavedFilter
from app.features.saved_filters.schemas import SavedFilterResponse


@pytest.fixture
def filter_body() -> dict[str, Any]:
    """A valid create body."""
    return {
        "name": "  Antalgiques Q1  ",
        "product_codes": ["3400930000001"],
        "laboratory_names": [" SANOFI "],
        "category_names": ["ANTALGIQUES"],
        "category_types": ["category"],
        "analysis_date_start": "2024-01-01",
        "analysis_date_end": "2024-03-31",
    }


@pytest.fixture
def stored_filter(pharmacy_id: str) -> SavedFilterResponse:
    now = datetime(2024, 4, 1, 9, 30, tzinfo=UTC)
    return SavedFilterResponse(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        name="Antalgiques Q1",
        pharmacy_ids=[pharmacy_id],
        product_codes=["3400930000001"],
        laboratory_names=["SANOFI"],
        category_names=["ANTALGIQUES", "SOINS"],
        category_types=["category", "universe"],
        analysis_date_start=date(2024, 1, 1),
        analysis_date_end=date(2024, 3, 31),
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def owned_filter(user_ctx: SecurityContext) -> SavedFilter:
    """A persisted filter belonging to the ``user_headers`` user."""
    now = datetime(2024, 4, 1, 9, 30, tzinfo=UTC)
    return SavedFilter(
        id=uuid.UUID("5f0c8a43-4a0e-4a3c-9d3e-0c1f3f7c2b11"),
        user_id=uuid.UUID(user_ctx.user_id),
        name="Antalgiques Q1",
        pharmacy_ids=[],
        product_codes=["3400930000001"],
        laboratory_names=["SANOFI"],
        category_names=[],
        category_types=[],
        analysis_date_start=date(2024, 1, 1),
        analysis_date_end=date(2024, 3, 31),
        created_at=now,
        updated_at=now,
    )
