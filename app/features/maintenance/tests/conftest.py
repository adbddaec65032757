"""Fixtures for maintenance tests."""

import pytest
from sqlalchemy.exc import ProgrammingError

from app.core.config import get_settings

CRON_SECRET = "cron-test-secret"


@pytest.fixture
def cron_headers(monkeypatch) -> dict[str, str]:
    """Configure a cron secret and return the matching header."""
    monkeypatch.setattr(get_settings(), "cron_secret", CRON_SECRET)
    return {"Authorization": f"Bearer {CRON_SECRET}"}


@pytest.fixture
def refresh_error() -> ProgrammingError:
    return ProgrammingError(
        "REFRESH MATERIALIZED VIEW",
        {},
        Exception("cannot refresh materialized view concurrently"),
    )
