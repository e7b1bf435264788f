"""Tests for recommendation endpoints."""

import uuid

import pytest

from finops_agent.crud import recommendation as crud_recommendation
from finops_agent.services.recommendation_workflow import RecommendationWorkflow
from tests.factories import make_detection


@pytest.fixture
async def pending_recommendation(db_session):
    """One pending recommendation for db-prod-1."""
    await RecommendationWorkflow(db_session).create_from_detections([make_detection()])
    rows = await crud_recommendation.list_recommendations(db_session)
    return rows[0]


class TestListRecommendations:
    """Test listing and reading recommendations."""

    async def test_list(self, async_client, pending_recommendation):
        """Test that the open recommendation is listed."""
        response = await async_client.get("/api/v1/recommendations/")

        assert response.status_code == 200
        body = response.json()
        assert len(body) == 1
        assert body[0]["status"] == "pending"
        assert body[0]["title"] == "Stop idle RDS instance"
        assert body[0]["risk_level"] == "high"

    async def test_status_filter(self, async_client, pending_recommendation):
        """Test filtering by status."""
        response = await async_client.get("/api/v1/recommendations/", params={"status": "approved"})

        assert response.status_code == 200
        assert response.json() == []

    async def test_get(self, async_client, pending_recommendation):
        """Test reading by id."""
        response = await async_client.get(f"/api/v1/recommendations/{pending_recommendation.id}")

        assert response.status_code == 200
        assert response.json()["resource_id"] == "db-prod-1"

    async def test_get_missing(self, async_client):
        """Test 404 for an unknown id."""
        response = await async_client.get(f"/api/v1/recommendations/{uuid.uuid4()}")

        assert response.status_code == 404

    async def test_summary(self, async_client, pending_recommendation):
        """Test summary counts."""
        response = await async_client.get("/api/v1/recommendations/summary")

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["by_status"]["pending"] == 1
        assert body["pending_savings"] == 100.0


class TestRecommendationTransitions:
    """Test status changes through the API."""

    async def test_approve(self, async_client, pending_recommendation):
        """Test approval records the actor."""
        response = await async_client.post(
            f"/api/v1/recommendations/{pending_recommendation.id}/approve",
            headers={"X-Actor": "alice"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "approved"
        assert response.json()["actioned_by"] == "alice"

    async def test_double_approve(self, async_client, pending_recommendation):
        """Test that approving twice is refused."""
        url = f"/api/v1/recommendations/{pending_recommendation.id}/approve"
        await async_client.post(url)

        response = await async_client.post(url)

        assert response.status_code == 400

    async def test_approve_missing(self, async_client):
        """Test 404 for an unknown id."""
        response = await async_client.post(f"/api/v1/recommendations/{uuid.uuid4()}/approve")

        assert response.status_code == 404

    async def test_reject(self, async_client, pending_recommendation):
        """Test rejection with a reason."""
        response = await async_client.post(
            f"/api/v1/recommendations/{pending_recommendation.id}/reject",
            json={"reason": "needed for month-end"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "rejected"
        assert response.json()["rejection_reason"] == "needed for month-end"

    async def test_snooze(self, async_client, pending_recommendation):
        """Test snoozing sets snoozed_until."""
        response = await async_client.post(
            f"/api/v1/recommendations/{pending_recommendation.id}/snooze", json={"days": 3}
        )

        assert response.status_code == 200
        assert response.json()["status"] == "snoozed"
        assert response.json()["snoozed_until"] is not None

    async def test_execute_requires_approval(self, async_client, pending_recommendation):
        """Test that a pending recommendation cannot be executed."""
        response = await async_client.post(f"/api/v1/recommendations/{pending_recommendation.id}/execute")

        assert response.status_code == 400
        assert "approved or scheduled" in response.json()["detail"]

    async def test_execute_approved(self, async_client, idle_prod_rds, pending_recommendation):
        """Test that an approved recommendation is executed."""
        await idle_prod_rds()
        base = f"/api/v1/recommendations/{pending_recommendation.id}"
        await async_client.post(f"{base}/approve", headers={"X-Actor": "alice"})

        response = await async_client.post(f"{base}/execute", headers={"X-Actor": "bob"})

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["new_state"] == {"state": "stopped"}

        response = await async_client.get(base)
        assert response.json()["status"] == "executed"

        response = await async_client.get("/api/v1/audit-log/", params={"resource_id": "db-prod-1"})
        assert [e["executed_by"] for e in response.json()] == ["bob"]


class TestRecommendationEdits:
    """Test notes and deletion."""

    async def test_update_notes(self, async_client, pending_recommendation):
        """Test updating user notes."""
        response = await async_client.patch(
            f"/api/v1/recommendations/{pending_recommendation.id}", json={"user_notes": "check with team"}
        )

        assert response.status_code == 200
        assert response.json()["user_notes"] == "check with team"

    async def test_delete(self, async_client, pending_recommendation):
        """Test that a deleted recommendation is gone."""
        url = f"/api/v1/recommendations/{pending_recommendation.id}"

        response = await async_client.delete(url)
        assert response.status_code == 204

        response = await async_client.get(url)
        assert response.status_code == 404
