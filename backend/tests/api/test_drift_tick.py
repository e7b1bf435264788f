"""Tests for the drift tick and settings endpoints."""

from finops_agent.core.exceptions import ConfigurationError
from finops_agent.crud.resource_store import ResourceStore


class TestHealth:
    """Test health and root endpoints."""

    async def test_health(self, async_client):
        """Test that health reports the catalog size."""
        response = await async_client.get("/api/v1/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["scenarios"] == 24

    async def test_root(self, async_client):
        """Test the root endpoint."""
        response = await async_client.get("/")

        assert response.status_code == 200
        assert response.json()["health"] == "/api/v1/health"


class TestDriftTickEndpoint:
    """Test triggering and reading the drift tick."""

    async def test_status(self, async_client):
        """Test the default status read."""
        response = await async_client.get("/api/v1/drift-tick")

        assert response.status_code == 200
        body = response.json()
        assert body["mode"] == "manual"
        assert body["last_updated"] is None
        assert len(body["auto_safe_scenarios"]) == 17
        assert body["auto_safe_scenarios"] == sorted(body["auto_safe_scenarios"])

    async def test_trigger_default_mode(self, async_client, idle_dev_cache):
        """Test a tick with no override runs in the default mode."""
        await idle_dev_cache()

        response = await async_client.post("/api/v1/drift-tick", json={})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["mode"] == "manual"
        assert body["mode_source"] == "default"
        assert body["auto_safe_count"] == 1
        assert body["execution"]["executed"] is False

    async def test_trigger_auto_execute(self, async_client, idle_dev_cache):
        """Test the auto_execute shorthand."""
        await idle_dev_cache()

        response = await async_client.post("/api/v1/drift-tick", json={"auto_execute": True})

        assert response.status_code == 200
        body = response.json()
        assert body["mode"] == "automated"
        assert body["mode_source"] == "override"
        assert body["execution"]["succeeded"] == 1

    async def test_trigger_uses_persisted_mode(self, async_client):
        """Test that a persisted mode is picked up."""
        await async_client.put("/api/v1/settings/execution-mode", json={"mode": "automated"})

        response = await async_client.post("/api/v1/drift-tick", json={})

        assert response.json()["mode"] == "automated"
        assert response.json()["mode_source"] == "settings"

    async def test_unreachable_store(self, async_client, monkeypatch):
        """Test the error envelope when the store is unreachable."""

        async def broken_ping(self):
            raise ConfigurationError("Resource store unreachable: connection refused")

        monkeypatch.setattr(ResourceStore, "ping", broken_ping)

        response = await async_client.post("/api/v1/drift-tick", json={})

        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["error_type"] == "ConfigurationError"
        assert "unreachable" in body["error"]

    async def test_invalid_mode(self, async_client):
        """Test that an unknown mode is rejected."""
        response = await async_client.post("/api/v1/drift-tick", json={"mode": "yolo"})

        assert response.status_code == 422


class TestSettingsEndpoint:
    """Test the execution mode setting."""

    async def test_get_default(self, async_client):
        """Test the mode before anything is persisted."""
        response = await async_client.get("/api/v1/settings/execution-mode")

        assert response.status_code == 200
        assert response.json()["mode"] == "manual"

    async def test_put_then_get(self, async_client):
        """Test that an update is persisted."""
        response = await async_client.put("/api/v1/settings/execution-mode", json={"mode": "automated"})

        assert response.status_code == 200
        assert response.json()["mode"] == "automated"
        assert response.json()["last_updated"] is not None

        response = await async_client.get("/api/v1/settings/execution-mode")
        assert response.json()["mode"] == "automated"

    async def test_put_invalid(self, async_client):
        """Test that an unknown mode is rejected."""
        response = await async_client.put("/api/v1/settings/execution-mode", json={"mode": "sometimes"})

        assert response.status_code == 422
