"""Tests for detection and audit log endpoints."""

from finops_agent.core.exceptions import ConfigurationError
from finops_agent.crud.resource_store import ResourceStore


class TestDetectionsEndpoint:
    """Test on-demand detection."""

    async def test_run_detection(self, async_client, idle_dev_cache, orphaned_eip):
        """Test that detections are returned without mutating anything."""
        await idle_dev_cache()
        await orphaned_eip()

        response = await async_client.post("/api/v1/detections")

        assert response.status_code == 200
        body = response.json()
        assert sorted(d["scenario_id"] for d in body["detections"]) == ["idle_cache", "orphaned_eip"]
        assert body["summary"]["waste_detected"] == 2
        assert body["summary"]["failed_categories"] == {}

        response = await async_client.get("/api/v1/resources/cache_clusters/cache-dev-1/policy")
        assert response.status_code == 200

    async def test_unreachable_store(self, async_client, monkeypatch):
        """Test 503 when the store cannot be reached."""

        async def broken_ping(self):
            raise ConfigurationError("Resource store unreachable")

        monkeypatch.setattr(ResourceStore, "ping", broken_ping)

        response = await async_client.post("/api/v1/detections")

        assert response.status_code == 503

    async def test_list_scenarios(self, async_client):
        """Test the scenario catalog listing."""
        response = await async_client.get("/api/v1/detections/scenarios")

        assert response.status_code == 200
        body = response.json()
        assert body["total_scenarios"] == 24
        assert body["auto_safe_count"] == 17
        assert body["approval_required_count"] == 7
        assert {s["id"] for s in body["scenarios"]} >= {"idle_cache", "idle_rds", "orphaned_eip"}


class TestAuditLogEndpoint:
    """Test the audit log listing."""

    async def test_empty(self, async_client):
        """Test an empty audit log."""
        response = await async_client.get("/api/v1/audit-log/")

        assert response.status_code == 200
        assert response.json() == []

    async def test_lists_tick_executions(self, async_client, orphaned_eip):
        """Test that automated tick actions are audited."""
        await orphaned_eip()
        await async_client.post("/api/v1/drift-tick", json={"mode": "automated"})

        response = await async_client.get("/api/v1/audit-log/", params={"success": True})

        assert response.status_code == 200
        entries = response.json()
        assert len(entries) == 1
        assert entries[0]["action"] == "release_eip"
        assert entries[0]["executed_by"] == "auto-safe-agent"
