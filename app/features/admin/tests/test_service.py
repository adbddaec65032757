"""Tests for pharmacy administration."""

import uuid

import pytest

from app.core.exceptions import BadRequestError, NotFoundError
from app.features.admin.schemas import PharmacyUpdate
from app.features.admin.service import PharmacyAdminService, update_sql
from app.shared.schemas import PaginationParams


class TestUpdateSql:
    def test_only_given_columns(self) -> None:
        sql = update_sql({"name": "X", "ca": 10.0})

        assert "name = :name" in sql
        assert "ca = :ca" in sql
        assert "address" not in sql.split("RETURNING")[0]
        assert "updated_at = NOW()" in sql
        assert "WHERE id = CAST(:id AS uuid)" in sql

    def test_unknown_keys_ignored(self) -> None:
        sql = update_sql({"name": "X", "password_hash": "nope"})

        assert "password_hash" not in sql


class TestListPharmacies:
    async def test_paginates(self, fake_db, pharmacy_row) -> None:
        fake_db.add_result([{"total": 45}], [pharmacy_row])

        page = await PharmacyAdminService().list_pharmacies(
            fake_db, PaginationParams(page=3, page_size=20)
        )

        assert page.total == 45
        assert page.pages == 3
        assert page.items[0].ca == 2450000.0
        assert page.items[0].user_count == 2
        assert fake_db.params[1]["offset"] == 40
        assert "WHERE" not in fake_db.sql[0]

    async def test_search(self, fake_db) -> None:
        fake_db.add_result([{"total": 0}], [])

        page = await PharmacyAdminService().list_pharmacies(
            fake_db, PaginationParams(), search="  centre "
        )

        assert page.items == []
        assert page.pages == 0
        assert fake_db.params[0]["search"] == "%centre%"
        assert "p.name ILIKE :search" in fake_db.sql[1]


class TestUpdatePharmacy:
    async def test_empty_update(self, fake_db, pharmacy_id) -> None:
        with pytest.raises(BadRequestError):
            await PharmacyAdminService().update_pharmacy(
                fake_db, uuid.UUID(pharmacy_id), PharmacyUpdate(), updated_by="admin"
            )

        assert fake_db.statements == []

    async def test_unknown_pharmacy(self, fake_db) -> None:
        fake_db.add_result([])

        with pytest.raises(NotFoundError):
            await PharmacyAdminService().update_pharmacy(
                fake_db, uuid.uuid4(), PharmacyUpdate(name="X"), updated_by="admin"
            )

    async def test_explicit_null_is_written(self, fake_db, pharmacy_id, pharmacy_row) -> None:
        """A field sent as null should be cleared, unlike an absent field."""
        fake_db.add_result([{**pharmacy_row, "address": None}])

        pharmacy = await PharmacyAdminService().update_pharmacy(
            fake_db,
            uuid.UUID(pharmacy_id),
            PharmacyUpdate.model_validate({"address": None}),
            updated_by="admin",
        )

        assert pharmacy.address is None
        assert fake_db.params[0] == {"address": None, "id": pharmacy_id}
