"""Route tests for search endpoints."""


class TestSearchRoutes:
    """Tests for authentication and serialization of search routes."""

    async def test_requires_token(self, client) -> None:
        response = await client.post("/api/products/search", json={"query": "doliprane"})

        assert response.status_code == 401

    async def test_product_search_type(self, client, fake_db, admin_headers) -> None:
        """searchType and queryTime should be serialized in camelCase."""
        response = await client.post(
            "/api/products/search", json={"query": "*0001"}, headers=admin_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert data["searchType"] == "code_end"
        assert data["products"] == []
        assert "queryTime" in data
        assert fake_db.params[0]["pattern"] == "%0001"

    async def test_user_without_pharmacy(self, client, unassigned_headers) -> None:
        response = await client.post(
            "/api/products/search", json={"query": "doliprane"}, headers=unassigned_headers
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "No pharmacy assigned"

    async def test_invalid_lab_mode(self, client, admin_headers) -> None:
        response = await client.post(
            "/api/laboratories/search",
            json={"query": "san", "mode": "unknown"},
            headers=admin_headers,
        )

        assert response.status_code == 422

    async def test_lab_search_echoes_modes(self, client, admin_headers) -> None:
        response = await client.post(
            "/api/laboratories/search",
            json={"query": "san", "mode": "laboratory", "labOrBrandMode": "brand"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["labOrBrandMode"] == "brand"
        assert response.json()["mode"] == "laboratory"

    async def test_pharmacy_search_admin_only(self, client, user_headers) -> None:
        response = await client.post(
            "/api/search/pharmacies", json={"query": "centre"}, headers=user_headers
        )

        assert response.status_code == 403

    async def test_pharmacy_search(self, client, fake_db, admin_headers) -> None:
        response = await client.post(
            "/api/search/pharmacies",
            json={"query": "centre", "regions": ["IDF"]},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["count"] == 0
        assert "ORDER BY ca DESC, name ASC" in fake_db.sql[0]
