"""
Drift tick orchestrator.

One tick: check the Resource Store, detect waste, resolve the execution mode,
execute auto-safe remediations when the mode allows it, and hand everything
that needs a human to the recommendation workflow.
"""

import math
import time
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from finops_agent.core.config import settings
from finops_agent.core.timeutils import utcnow
from finops_agent.crud import setting as crud_setting
from finops_agent.crud.resource_store import ResourceStore
from finops_agent.models.resource import OptimizationPolicy
from finops_agent.schemas.detection import Detection
from finops_agent.schemas.drift_tick import (
    ExecutionBatch,
    ExecutionMode,
    ModeSource,
    RecommendationHandoff,
    TickReport,
    TickTiming,
)
from finops_agent.schemas.execution import (
    ExecuteActionParams,
    ExecutionErrorKind,
    ExecutionResult,
)
from finops_agent.services import policy_lock
from finops_agent.services.detector import WasteDetector
from finops_agent.services.executor import RemediationExecutor
from finops_agent.services.recommendation_workflow import RecommendationWorkflow
from finops_agent.services.scenario_catalog import CATALOG, ScenarioCatalog

logger = structlog.get_logger()


@dataclass(frozen=True)
class TickContext:
    """Values resolved once at the start of a tick."""

    mode: ExecutionMode
    mode_source: ModeSource


def _elapsed_ms(start: float) -> int:
    return round((time.perf_counter() - start) * 1000)


def to_action_params(detection: Detection) -> ExecuteActionParams:
    """Executor input for a detection."""
    return ExecuteActionParams(
        action=detection.action,
        resource_type=detection.resource_type,
        resource_id=detection.resource_id,
        resource_name=detection.resource_name,
        detection_id=detection.id,
        scenario_id=detection.scenario_id,
        details=detection.details,
    )


class DriftTickOrchestrator:
    """Runs the detect, gate, remediate pipeline once per call."""

    def __init__(
        self,
        db: AsyncSession,
        catalog: ScenarioCatalog = CATALOG,
        store: ResourceStore | None = None,
        executor: RemediationExecutor | None = None,
        workflow: RecommendationWorkflow | None = None,
    ):
        self.db = db
        self.catalog = catalog
        self.store = store or ResourceStore(db)
        self.detector = WasteDetector(self.store, catalog)
        self.executor = executor or RemediationExecutor(db, self.store, catalog)
        self.workflow = workflow or RecommendationWorkflow(db, self.executor)

    async def resolve_context(self, mode_override: ExecutionMode | None = None) -> TickContext:
        """Resolve the execution mode: explicit override, then persisted setting, then the configured default."""
        if mode_override is not None:
            return TickContext(mode=ExecutionMode(mode_override), mode_source=ModeSource.OVERRIDE)

        persisted, _ = await crud_setting.get_execution_mode(self.db)
        if persisted is not None:
            return TickContext(mode=persisted, mode_source=ModeSource.SETTINGS)

        return TickContext(mode=ExecutionMode(settings.DEFAULT_EXECUTION_MODE), mode_source=ModeSource.DEFAULT)

    async def run(self, mode_override: ExecutionMode | None = None) -> TickReport:
        """
        Run one drift tick.

        Args:
            mode_override: Execution mode for this tick only

        Returns:
            TickReport

        Raises:
            ConfigurationError: If the Resource Store is unreachable
        """
        started_at = utcnow()
        tick_start = time.perf_counter()

        await self.store.ping()

        phase = time.perf_counter()
        result = await self.detector.detect_all(now=started_at)
        detection_ms = _elapsed_ms(phase)

        ctx = await self.resolve_context(mode_override)
        logger.info(
            "drift_tick.started",
            mode=ctx.mode.value,
            mode_source=ctx.mode_source.value,
            detections=len(result.detections),
        )

        auto_safe_ids = self.catalog.list_auto_safe_ids()
        auto_safe = [d for d in result.detections if d.scenario_id in auto_safe_ids]
        needs_approval = [d for d in result.detections if d.scenario_id not in auto_safe_ids]

        phase = time.perf_counter()
        execution, locked = await self._execute_auto_safe(ctx, auto_safe)
        execution_ms = _elapsed_ms(phase)

        phase = time.perf_counter()
        handoff = await self._hand_off(needs_approval + locked, started_at)
        recommendation_ms = _elapsed_ms(phase)

        report = TickReport(
            success=True,
            mode=ctx.mode,
            mode_source=ctx.mode_source,
            started_at=started_at,
            completed_at=utcnow(),
            detection_count=len(result.detections),
            auto_safe_count=len(auto_safe),
            auto_safe_savings=round(math.fsum(d.potential_savings for d in auto_safe), 2),
            summary=result.summary,
            detections=result.detections,
            execution=execution,
            recommendations=handoff,
            timing=TickTiming(
                detection_ms=detection_ms,
                execution_ms=execution_ms,
                recommendation_ms=recommendation_ms,
                total_ms=_elapsed_ms(tick_start),
            ),
        )

        logger.info(
            "drift_tick.completed",
            mode=ctx.mode.value,
            detections=report.detection_count,
            auto_safe=report.auto_safe_count,
            executed=execution.succeeded,
            failed=execution.failed,
            recommendations_created=handoff.created,
            total_ms=report.timing.total_ms,
        )
        return report

    async def _execute_auto_safe(
        self, ctx: TickContext, auto_safe: list[Detection]
    ) -> tuple[ExecutionBatch, list[Detection]]:
        """
        Gate and execute auto-safe detections.

        Results follow detection order. Ignored detections get no result and
        are only counted in skipped_ignored.

        Returns:
            The batch outcome and the locked detections to route for approval
        """
        batch = ExecutionBatch(mode=ctx.mode, executed=False)
        if ctx.mode == ExecutionMode.MANUAL or not auto_safe:
            return batch, []

        now = utcnow()
        locked: list[Detection] = []
        runnable: list[Detection] = []
        # locked detections get their result now; None marks a slot the executor fills
        slots: list[ExecutionResult | None] = []

        for detection in auto_safe:
            record = await self.store.get(detection.resource_type, detection.resource_id)
            if record is not None and record.optimization_policy == OptimizationPolicy.IGNORE.value:
                batch.skipped_ignored += 1
                continue
            if record is not None and policy_lock.is_policy_locked(record):
                reason = policy_lock.get_lock_reason(record)
                logger.info(
                    "drift_tick.policy_locked",
                    resource_id=detection.resource_id,
                    scenario_id=detection.scenario_id,
                    reason=reason,
                )
                slots.append(
                    ExecutionResult(
                        resource_id=detection.resource_id,
                        resource_type=detection.resource_type,
                        resource_name=detection.resource_name,
                        action=detection.action,
                        scenario_id=detection.scenario_id,
                        detection_id=detection.id,
                        success=False,
                        error_kind=ExecutionErrorKind.POLICY_VIOLATION,
                        message=f"Resource {detection.resource_id} is policy-locked: {reason}",
                        executed_at=now,
                        duration_ms=0,
                    )
                )
                locked.append(detection)
                continue
            runnable.append(detection)
            slots.append(None)

        executed = iter(await self.executor.execute_batch([to_action_params(d) for d in runnable]))
        results = [slot if slot is not None else next(executed) for slot in slots]

        batch.executed = True
        batch.attempted = len(results)
        batch.succeeded = sum(1 for r in results if r.success)
        batch.failed = batch.attempted - batch.succeeded
        batch.results = results
        return batch, locked

    async def _hand_off(self, detections: list[Detection], now: datetime) -> RecommendationHandoff:
        return await self.workflow.create_from_detections(detections, now=now)


async def run_drift_tick(db: AsyncSession, mode_override: ExecutionMode | None = None) -> TickReport:
    """Run one tick with the default collaborators."""
    return await DriftTickOrchestrator(db).run(mode_override)
