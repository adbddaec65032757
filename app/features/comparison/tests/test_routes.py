"""Route tests for the comparison endpoints."""

from sqlalchemy.exc import OperationalError


class TestComparisonRoutes:
    """Tests for authentication, scoping and error mapping."""

    async def test_requires_token(self, client, comparison_body) -> None:
        response = await client.post("/api/comparison/stats", json=comparison_body)

        assert response.status_code == 401

    async def test_stats(
        self, client, fake_db, user_headers, comparison_body, stats_row, entity_stock_row
    ) -> None:
        """Results should follow the entity order with camelCase ids."""
        fake_db.add_result([stats_row], [entity_stock_row])

        response = await client.post(
            "/api/comparison/stats", json=comparison_body, headers=user_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert [r["entityId"] for r in data["results"]] == ["lab-1", "cat-1"]
        assert data["results"][0]["stats"]["sales_ht_evolution"] == 100.0
        assert data["results"][1]["stats"]["sales_ht"] == 0.0
        assert data["cached"] is False
        assert len(fake_db.statements) == 4

    async def test_user_forced_to_own_pharmacy(
        self, client, fake_db, user_headers, comparison_body, pharmacy_id
    ) -> None:
        body = {**comparison_body, "pharmacyId": "22222222-2222-2222-2222-222222222222"}

        response = await client.post("/api/comparison/stats", json=body, headers=user_headers)

        assert response.status_code == 200
        assert all(params["f0"] == [pharmacy_id] for params in fake_db.params)

    async def test_admin_pharmacy_override(
        self, client, fake_db, admin_headers, comparison_body
    ) -> None:
        body = {**comparison_body, "pharmacyId": "22222222-2222-2222-2222-222222222222"}

        response = await client.post(
            "/api/comparison/evolution", json=body, headers=admin_headers
        )

        assert response.status_code == 200
        assert fake_db.params[0]["f0"] == ["22222222-2222-2222-2222-222222222222"]

    async def test_admin_network_wide(
        self, client, fake_db, admin_headers, comparison_body
    ) -> None:
        response = await client.post(
            "/api/comparison/evolution", json=comparison_body, headers=admin_headers
        )

        assert response.status_code == 200
        assert "pharmacy_id" not in fake_db.sql[0]
        assert fake_db.params[0]["f0"] == ["SANOFI"]

    async def test_user_without_pharmacy(
        self, client, fake_db, unassigned_headers, comparison_body
    ) -> None:
        response = await client.post(
            "/api/comparison/stats", json=comparison_body, headers=unassigned_headers
        )

        assert response.status_code == 403
        assert fake_db.statements == []

    async def test_no_entities(self, client, admin_headers, comparison_body) -> None:
        body = {**comparison_body, "entities": []}

        response = await client.post("/api/comparison/stats", json=body, headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "No entities provided"

    async def test_unknown_entity_type(self, client, admin_headers, comparison_body) -> None:
        comparison_body["entities"][0]["type"] = "REGION"

        response = await client.post(
            "/api/comparison/stats", json=comparison_body, headers=admin_headers
        )

        assert response.status_code == 422

    async def test_database_error(self, client, fake_db, admin_headers, comparison_body) -> None:
        fake_db.add_result(OperationalError("SELECT", {}, Exception("connection lost")))

        response = await client.post(
            "/api/comparison/evolution", json=comparison_body, headers=admin_headers
        )

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to compute comparison evolution"


class TestPharmacyGroupRoutes:
    """Tests for POST /api/pharmacies/group-comparison."""

    async def test_group_comparison(
        self, client, fake_db, admin_headers, group_body, group_row
    ) -> None:
        fake_db.add_result([group_row()], [group_row(8)], [{"count": 4}])

        response = await client.post(
            "/api/pharmacies/group-comparison", json=group_body, headers=admin_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert data["selectedPharmacies"]["marge"] == 450.0
        assert data["groupAverage"]["marge"] == 900.0
        assert data["pharmacyCount"] == 2
        assert data["totalPharmaciesInGroup"] == 4

    async def test_admin_only(self, client, fake_db, user_headers, group_body) -> None:
        response = await client.post(
            "/api/pharmacies/group-comparison", json=group_body, headers=user_headers
        )

        assert response.status_code == 403
        assert fake_db.statements == []

    async def test_requires_pharmacies(self, client, admin_headers, group_body) -> None:
        body = {**group_body, "pharmacyIds": []}

        response = await client.post(
            "/api/pharmacies/group-comparison", json=body, headers=admin_headers
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "At least one pharmacy ID required"

    async def test_database_error(self, client, fake_db, admin_headers, group_body) -> None:
        fake_db.add_result(OperationalError("SELECT", {}, Exception("connection lost")))

        response = await client.post(
            "/api/pharmacies/group-comparison", json=group_body, headers=admin_headers
        )

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to compare pharmacy group"
