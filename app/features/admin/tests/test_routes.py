"""Route tests for pharmacy administration."""

from sqlalchemy.exc import OperationalError


class TestAdminPharmacyRoutes:
    async def test_requires_admin(self, client, user_headers) -> None:
        response = await client.get("/api/admin/pharmacies", headers=user_headers)

        assert response.status_code == 403

    async def test_requires_token(self, client) -> None:
        response = await client.get("/api/admin/pharmacies")

        assert response.status_code == 401

    async def test_list(self, client, fake_db, admin_headers, pharmacy_row) -> None:
        fake_db.add_result([{"total": 1}], [pharmacy_row])

        response = await client.get(
            "/api/admin/pharmacies",
            params={"search": "centre", "page_size": 10},
            headers=admin_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["page_size"] == 10
        assert data["items"][0]["id_nat"] == "750012345"

    async def test_page_size_limit(self, client, admin_headers) -> None:
        response = await client.get(
            "/api/admin/pharmacies", params={"page_size": 500}, headers=admin_headers
        )

        assert response.status_code == 422

    async def test_update(self, client, fake_db, admin_headers, pharmacy_id, pharmacy_row) -> None:
        fake_db.add_result([{**pharmacy_row, "employees_count": 11}])

        response = await client.patch(
            f"/api/admin/pharmacies/{pharmacy_id}",
            json={"employees_count": 11},
            headers=admin_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["pharmacy"]["employees_count"] == 11
        assert "employees_count = :employees_count" in fake_db.sql[0]

    async def test_update_empty_body(self, client, admin_headers, pharmacy_id) -> None:
        response = await client.patch(
            f"/api/admin/pharmacies/{pharmacy_id}", json={}, headers=admin_headers
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "No fields to update"

    async def test_update_not_found(self, client, fake_db, admin_headers, pharmacy_id) -> None:
        fake_db.add_result([])

        response = await client.patch(
            f"/api/admin/pharmacies/{pharmacy_id}", json={"name": "X"}, headers=admin_headers
        )

        assert response.status_code == 404

    async def test_update_forbidden_for_users(self, client, user_headers, pharmacy_id) -> None:
        response = await client.patch(
            f"/api/admin/pharmacies/{pharmacy_id}", json={"name": "X"}, headers=user_headers
        )

        assert response.status_code == 403

    async def test_update_database_error(
        self, client, fake_db, admin_headers, pharmacy_id
    ) -> None:
        fake_db.add_result(OperationalError("UPDATE", {}, Exception("deadlock")))

        response = await client.patch(
            f"/api/admin/pharmacies/{pharmacy_id}", json={"ca": 1.0}, headers=admin_headers
        )

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to update pharmacy"
