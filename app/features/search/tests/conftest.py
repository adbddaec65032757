"""Test fixtures for the search module."""

import pytest


@pytest.fixture
def lab_rows() -> list[dict]:
    return [
        {
            "group_name": "SANOFI",
            "product_count": 2,
            "product_codes": ["3400930000001", "3400930000002", "3400930000003"],
            "matching_products": (
                '[{"name": "DOLIPRANE 500MG", "code_13_ref": "3400930000001"},'
                ' {"name": "DOLIPRANE 1000MG", "code_13_ref": "3400930000002"}]'
            ),
        }
    ]
