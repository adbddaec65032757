"""Route tests for the cron refresh endpoint."""

from app.core.config import get_settings


class TestRefreshRoute:
    async def test_rejects_missing_secret(self, client, cron_headers) -> None:
        response = await client.get("/api/cron/refresh-mvs")

        assert response.status_code == 401
        assert response.headers["content-type"].startswith("application/problem+json")

    async def test_rejects_wrong_secret(self, client, cron_headers) -> None:
        response = await client.get(
            "/api/cron/refresh-mvs", headers={"Authorization": "Bearer nope"}
        )

        assert response.status_code == 401

    async def test_rejects_when_unconfigured(self, client, monkeypatch) -> None:
        """Without a configured secret the endpoint should never run."""
        monkeypatch.setattr(get_settings(), "cron_secret", "")

        response = await client.get("/api/cron/refresh-mvs", headers={"Authorization": "Bearer "})

        assert response.status_code == 401

    async def test_user_token_is_not_a_cron_secret(
        self, client, cron_headers, admin_headers
    ) -> None:
        response = await client.get("/api/cron/refresh-mvs", headers=admin_headers)

        assert response.status_code == 401

    async def test_refresh_success(self, client, fake_db, cron_headers) -> None:
        response = await client.get("/api/cron/refresh-mvs", headers=cron_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["totalTime"].endswith("ms")
        assert len(data["logs"]) == 9
        assert len(fake_db.sql) == 6

    async def test_refresh_failure(self, client, fake_db, cron_headers, refresh_error) -> None:
        """Both refreshes failing should answer 500 with the logs so far."""
        fake_db.add_result(refresh_error, refresh_error)

        response = await client.get("/api/cron/refresh-mvs", headers=cron_headers)

        assert response.status_code == 500
        data = response.json()
        assert data["success"] is False
        assert data["error"].startswith("Failed to refresh mv_sales_enriched")
        assert data["logs"][0].startswith("Level 1")
        assert len(data["logs"]) == 3
