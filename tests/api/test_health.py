"""Tests for the health and API root endpoints."""

from fastapi.testclient import TestClient

from src.api.main import _parse_allowed_origins


class TestHealth:
    def test_health_reports_progress_state(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["progress_state"] == "idle"
        assert data["active_run"] is None
        assert data["uptime_seconds"] >= 0
        assert "version" in data

    def test_api_root(self, client: TestClient) -> None:
        data = client.get("/api").json()
        assert data["name"] == "LogiSync API"
        assert data["docs"] == "/docs"


class TestAllowedOrigins:
    def test_unset(self, monkeypatch) -> None:
        monkeypatch.delenv("ALLOWED_ORIGINS", raising=False)
        assert _parse_allowed_origins() == []

    def test_comma_separated(self, monkeypatch) -> None:
        monkeypatch.setenv("ALLOWED_ORIGINS", "http://a.test, http://b.test,")
        assert _parse_allowed_origins() == ["http://a.test", "http://b.test"]
