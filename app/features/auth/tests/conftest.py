"""Fixtures for authentication tests."""

import pytest

from app.core.security import hash_password

PASSWORD = "correct horse battery staple"


@pytest.fixture(scope="module")
def password_hash() -> str:
    return hash_password(PASSWORD)


@pytest.fixture
def password() -> str:
    return PASSWORD


@pytest.fixture
def user_row(password_hash, pharmacy_id) -> dict:
    return {
        "id": "bbbbbbbb-0000-0000-0000-000000000001",
        "email": "titulaire@pharmacie-centre.fr",
        "name": "Claire Martin",
        "role": "user",
        "pharmacy_id": pharmacy_id,
        "password_hash": password_hash,
        "pharmacy_name": "Pharmacie du Centre",
    }
