"""Tests for the drift tick orchestrator."""

import math

import pytest

from finops_agent.core.exceptions import ConfigurationError
from finops_agent.crud import audit_log as crud_audit_log
from finops_agent.crud import recommendation as crud_recommendation
from finops_agent.crud import setting as crud_setting
from finops_agent.crud.resource_store import ResourceStore
from finops_agent.schemas.drift_tick import ExecutionMode, ModeSource
from finops_agent.schemas.execution import ExecutionErrorKind
from finops_agent.services.drift_tick import DriftTickOrchestrator, run_drift_tick, to_action_params
from finops_agent.services.scenario_catalog import CATALOG
from tests.factories import make_detection


class TestResolveContext:
    """Test execution mode resolution."""

    async def test_default(self, db_session):
        """Test the configured default when nothing is persisted."""
        ctx = await DriftTickOrchestrator(db_session).resolve_context()

        assert ctx.mode == ExecutionMode.MANUAL
        assert ctx.mode_source == ModeSource.DEFAULT

    async def test_persisted_setting(self, db_session):
        """Test that the persisted mode beats the default."""
        await crud_setting.set_execution_mode(db_session, ExecutionMode.AUTOMATED)

        ctx = await DriftTickOrchestrator(db_session).resolve_context()

        assert ctx.mode == ExecutionMode.AUTOMATED
        assert ctx.mode_source == ModeSource.SETTINGS

    async def test_override_wins(self, db_session):
        """Test that an explicit override beats the persisted mode."""
        await crud_setting.set_execution_mode(db_session, ExecutionMode.AUTOMATED)

        ctx = await DriftTickOrchestrator(db_session).resolve_context(ExecutionMode.MANUAL)

        assert ctx.mode == ExecutionMode.MANUAL
        assert ctx.mode_source == ModeSource.OVERRIDE


class TestRun:
    """Test full ticks."""

    async def test_manual_mode_mutates_nothing(self, db_session, idle_dev_cache, orphaned_eip):
        """Test that manual mode reports auto-safe savings without executing."""
        await idle_dev_cache()
        await orphaned_eip()

        report = await DriftTickOrchestrator(db_session).run()

        assert report.success is True
        assert report.mode == ExecutionMode.MANUAL
        assert report.execution.executed is False
        assert report.execution.results == []
        assert report.auto_safe_count == 2
        assert report.summary.total_potential_savings == round(math.fsum(d.potential_savings for d in report.detections), 2)
        assert report.auto_safe_savings == round(math.fsum(d.potential_savings for d in report.detections), 2)
        assert report.recommendations.created == 0

        store = ResourceStore(db_session)
        cache = await store.get("cache_clusters", "cache-dev-1")
        assert (cache.node_type, cache.num_cache_nodes) == ("cache.m5.large", 2)
        assert await store.get("elastic_ips", "eipalloc-1") is not None
        assert await crud_audit_log.list_audit_entries(db_session) == []

    async def test_automated_downsizes_idle_cache(self, db_session, idle_dev_cache):
        """Test that an idle dev cache is downsized to one node."""
        await idle_dev_cache()

        report = await DriftTickOrchestrator(db_session).run(ExecutionMode.AUTOMATED)

        assert report.mode_source == ModeSource.OVERRIDE
        assert report.execution.executed is True
        assert report.execution.attempted == 1
        assert report.execution.succeeded == 1
        result = report.execution.results[0]
        assert result.action == "downsize_cache"
        assert result.new_state["num_cache_nodes"] == 1

        cache = await ResourceStore(db_session).get("cache_clusters", "cache-dev-1")
        assert cache.num_cache_nodes == 1
        assert cache.node_type == "cache.t3.medium"

    async def test_prod_rds_becomes_recommendation(self, db_session, idle_prod_rds):
        """Test that an approval-required detection creates a pending recommendation."""
        await idle_prod_rds()

        report = await DriftTickOrchestrator(db_session).run(ExecutionMode.AUTOMATED)

        assert [d.scenario_id for d in report.detections] == ["idle_rds"]
        assert report.auto_safe_count == 0
        assert report.recommendations.created == 1

        rows = await crud_recommendation.list_recommendations(db_session)
        assert len(rows) == 1
        assert rows[0].status == "pending"
        assert rows[0].resource_id == "db-prod-1"
        assert rows[0].risk_level == "high"

    async def test_second_tick_refreshes(self, db_session, idle_prod_rds):
        """Test that the open recommendation is refreshed, not duplicated."""
        await idle_prod_rds()
        orchestrator = DriftTickOrchestrator(db_session)

        await orchestrator.run()
        report = await orchestrator.run()

        assert (report.recommendations.created, report.recommendations.refreshed) == (0, 1)
        assert len(await crud_recommendation.list_recommendations(db_session)) == 1

    async def test_locked_auto_safe_is_routed_for_approval(self, db_session, idle_dev_cache):
        """Test that a prod-locked auto-safe detection fails and becomes a recommendation."""
        await idle_dev_cache(env="prod")

        report = await DriftTickOrchestrator(db_session).run(ExecutionMode.AUTOMATED)

        assert report.execution.failed == 1
        assert report.execution.results[0].error_kind == ExecutionErrorKind.POLICY_VIOLATION
        assert report.recommendations.created == 1

        cache = await ResourceStore(db_session).get("cache_clusters", "cache-dev-1")
        assert cache.num_cache_nodes == 2

    async def test_second_automated_tick_is_noop(self, db_session, idle_dev_cache):
        """Test that a cache downsized by one tick is not shrunk again by the next."""
        await idle_dev_cache()
        orchestrator = DriftTickOrchestrator(db_session)

        first = await orchestrator.run(ExecutionMode.AUTOMATED)
        second = await orchestrator.run(ExecutionMode.AUTOMATED)

        assert first.execution.results[0].noop is False
        assert [d.scenario_id for d in second.detections] == ["idle_cache"]
        result = second.execution.results[0]
        assert result.success is True
        assert result.noop is True

        cache = await ResourceStore(db_session).get("cache_clusters", "cache-dev-1")
        assert (cache.node_type, cache.num_cache_nodes) == ("cache.t3.medium", 1)
        entries = await crud_audit_log.list_audit_entries(db_session, resource_id="cache-dev-1")
        assert sum(1 for e in entries if e.success) == 2

    async def test_results_follow_detection_order(self, db_session, idle_dev_cache, orphaned_eip):
        """Test that locked and executed results keep detection order and the counts add up."""
        await idle_dev_cache()
        await idle_dev_cache(id="cache-prod-1", name="prod-sessions", env="prod")
        await orphaned_eip()
        await orphaned_eip(id="eipalloc-2", public_ip="203.0.113.11", optimization_policy="ignore")

        report = await DriftTickOrchestrator(db_session).run(ExecutionMode.AUTOMATED)

        auto_safe_ids = CATALOG.list_auto_safe_ids()
        expected = [
            d.id for d in report.detections if d.scenario_id in auto_safe_ids and d.resource_id != "eipalloc-2"
        ]
        execution = report.execution
        assert [r.detection_id for r in execution.results] == expected
        assert [r.resource_id for r in execution.results] == ["cache-dev-1", "cache-prod-1", "eipalloc-1"]
        assert execution.results[1].error_kind == ExecutionErrorKind.POLICY_VIOLATION
        assert execution.skipped_ignored == 1
        assert execution.attempted + execution.skipped_ignored == report.auto_safe_count
        assert execution.succeeded + execution.failed == execution.attempted

    async def test_ignore_policy_is_skipped(self, db_session, orphaned_eip):
        """Test that ignore-policy resources are counted and left alone."""
        await orphaned_eip(optimization_policy="ignore")

        report = await DriftTickOrchestrator(db_session).run(ExecutionMode.AUTOMATED)

        assert report.execution.skipped_ignored == 1
        assert report.execution.attempted == 0
        assert await ResourceStore(db_session).get("elastic_ips", "eipalloc-1") is not None

    async def test_unreachable_store(self, db_session, monkeypatch):
        """Test that an unreachable store fails the whole tick."""
        orchestrator = DriftTickOrchestrator(db_session)

        async def broken_ping():
            raise ConfigurationError("Resource store unreachable: connection refused")

        monkeypatch.setattr(orchestrator.store, "ping", broken_ping)

        with pytest.raises(ConfigurationError):
            await orchestrator.run()

    async def test_timing_and_helper(self, db_session):
        """Test timing fields and the module-level helper."""
        report = await run_drift_tick(db_session)

        assert report.completed_at >= report.started_at
        assert report.timing.total_ms >= 0
        assert report.detection_count == 0


class TestToActionParams:
    """Test detection to executor input mapping."""

    def test_fields(self):
        """Test that the detection id and details are carried over."""
        detection = make_detection(recommended_type="m5.large")

        params = to_action_params(detection)

        assert params.detection_id == "idle_rds-db-prod-1"
        assert params.scenario_id == "idle_rds"
        assert params.details == {"recommended_type": "m5.large"}
