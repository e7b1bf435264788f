"""Tests for the waste detector."""

import dataclasses
import math

import pytest

from finops_agent.core.exceptions import PartialFetchError
from finops_agent.core.timeutils import utcnow
from finops_agent.crud.resource_store import ResourceStore
from finops_agent.services.detector import WasteDetector, build_detection, summarize
from finops_agent.services.scenario_catalog import CATALOG
from finops_agent.services.waste_rules import Estimate, RuleContext
from tests.factories import make_detection, make_instance_record


class TestDetectAll:
    """Test full detection passes against the Resource Store."""

    async def test_empty_store(self, db_session):
        """Test a pass over an empty store."""
        result = await WasteDetector(ResourceStore(db_session)).detect_all()

        assert result.detections == []
        assert result.summary.total_resources == 0
        assert result.summary.failed_categories == {}

    async def test_detects_orphaned_eip_and_unattached_volume(self, db_session, orphaned_eip, volume):
        """Test detections and summary totals."""
        await orphaned_eip()
        await volume(state="available", attached_instance_id=None)

        result = await WasteDetector(ResourceStore(db_session)).detect_all()

        ids = {d.id for d in result.detections}
        assert ids == {"orphaned_eip-eipalloc-1", "unattached_volume-vol-0001"}
        assert result.summary.waste_detected == 2
        assert result.summary.total_potential_savings == round(
            math.fsum(d.potential_savings for d in result.detections), 2
        )
        assert result.summary.auto_optimizable_savings == result.summary.total_potential_savings
        assert result.summary.resource_counts["elastic_ips"] == 1

    async def test_orphaned_snapshot_uses_live_volumes(self, db_session, volume, snapshot):
        """Test that only snapshots of missing volumes are orphaned."""
        await volume()
        await snapshot()
        await snapshot(id="snap-0002", source_volume_id="vol-gone")

        result = await WasteDetector(ResourceStore(db_session)).detect_all()

        orphaned = {d.resource_id for d in result.detections if d.scenario_id == "orphaned_snapshot"}
        assert orphaned == {"snap-0002"}

    async def test_deleted_volume_is_not_live(self, db_session, volume, snapshot):
        """Test that a volume in deleted state no longer protects its snapshots."""
        await volume(state="deleted")
        await snapshot()

        result = await WasteDetector(ResourceStore(db_session)).detect_all()

        assert "orphaned_snapshot-snap-0001" in {d.id for d in result.detections}

    async def test_failed_category_is_reported(self, db_session, monkeypatch, orphaned_eip):
        """Test that one failing category does not stop the pass."""
        await orphaned_eip()
        store = ResourceStore(db_session)
        real_fetch = store.fetch

        async def flaky_fetch(category):
            if category == "load_balancers":
                raise PartialFetchError("load_balancers", "throttled")
            return await real_fetch(category)

        monkeypatch.setattr(store, "fetch", flaky_fetch)

        result = await WasteDetector(store).detect_all()

        assert result.summary.failed_categories == {"load_balancers": "throttled"}
        assert [d.scenario_id for d in result.detections] == ["orphaned_eip"]

    async def test_snapshots_fail_with_volumes(self, db_session, monkeypatch, snapshot):
        """Test that orphan checks are skipped when volumes cannot be read."""
        await snapshot(source_volume_id="vol-gone")
        store = ResourceStore(db_session)
        real_fetch = store.fetch

        async def flaky_fetch(category):
            if category == "volumes":
                raise PartialFetchError("volumes", "access denied")
            return await real_fetch(category)

        monkeypatch.setattr(store, "fetch", flaky_fetch)

        result = await WasteDetector(store).detect_all()

        assert set(result.summary.failed_categories) == {"snapshots", "volumes"}
        assert "access denied" in result.summary.failed_categories["snapshots"]
        assert result.detections == []


class TestBuildDetection:
    """Test detection construction."""

    def test_id_and_fields(self):
        """Test that the id joins scenario and resource."""
        now = utcnow()
        record = make_instance_record(avg_cpu_7d=1.0)
        detection = build_detection(CATALOG.lookup("idle_instance"), record, RuleContext(now=now))

        assert detection.id == "idle_instance-i-0001"
        assert detection.resource_type == "instances"
        assert detection.action == "stop_instance"
        assert detection.observed_at == now
        assert detection.potential_savings <= detection.current_cost

    def test_confidence_capped(self):
        """Test that confidence never exceeds 100."""
        scenario = dataclasses.replace(
            CATALOG.lookup("idle_instance"),
            base_confidence=95,
            estimate=lambda r, ctx: Estimate(current_cost=10.0, potential_savings=5.0, confidence_boost=20),
        )

        detection = build_detection(scenario, make_instance_record(), RuleContext(now=utcnow()))

        assert detection.confidence == 100

    def test_negative_savings_clamped(self):
        """Test that savings are never negative."""
        scenario = dataclasses.replace(
            CATALOG.lookup("idle_instance"),
            estimate=lambda r, ctx: Estimate(current_cost=10.0, potential_savings=-3.0),
        )

        detection = build_detection(scenario, make_instance_record(), RuleContext(now=utcnow()))

        assert detection.potential_savings == 0.0


class TestSummarize:
    """Test detection aggregation."""

    def test_order_independent(self):
        """Test that input order does not change the summary."""
        detections = [
            make_detection("idle_rds", "db-1", potential_savings=0.1),
            make_detection("idle_rds", "db-2", potential_savings=0.2),
            make_detection("idle_load_balancer", "lb-1", "load_balancers", "delete_lb", potential_savings=0.3),
        ]

        forward = summarize(detections, {"rds_instances": 2}, CATALOG.list_auto_safe_ids())
        backward = summarize(list(reversed(detections)), {"rds_instances": 2}, CATALOG.list_auto_safe_ids())

        assert forward == backward
        assert forward.total_potential_savings == 0.6
        assert forward.by_scenario == {"idle_load_balancer": 1, "idle_rds": 2}

    def test_monthly_cost_counts_resource_once(self):
        """Test that a resource with two detections is costed once at its maximum."""
        detections = [
            make_detection("idle_rds", "db-1", current_cost=100.0),
            make_detection("multi_az_non_prod", "db-1", action="disable_multi_az", current_cost=120.0),
        ]

        summary = summarize(detections, {"rds_instances": 1}, CATALOG.list_auto_safe_ids())

        assert summary.total_monthly_cost == 120.0
        assert summary.auto_optimizable_savings == 100.0

    @pytest.mark.parametrize("failed", [None, {}])
    def test_no_failures(self, failed):
        """Test the empty failure map."""
        assert summarize([], {}, frozenset(), failed).failed_categories == {}
