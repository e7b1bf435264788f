"""Celery background tasks for the drift tick and recommendation sweeps."""

import asyncio
from typing import Any, Awaitable, Callable

import structlog

from finops_agent.core.database import AsyncSessionLocal
from finops_agent.core.exceptions import ConfigurationError
from finops_agent.crud.resource_store import ResourceStore
from finops_agent.schemas.drift_tick import ExecutionMode
from finops_agent.services import policy_enforcement
from finops_agent.services.drift_tick import DriftTickOrchestrator
from finops_agent.services.recommendation_workflow import RecommendationWorkflow
from finops_agent.workers.celery_app import celery_app

logger = structlog.get_logger()


def _run(coro_factory: Callable[[], Awaitable[dict[str, Any]]]) -> dict[str, Any]:
    """Run a coroutine on the worker's event loop (Celery solo pool safe)."""
    try:
        loop = asyncio.get_event_loop()
        if loop.is_closed():
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)

    return loop.run_until_complete(coro_factory())


@celery_app.task(name="finops_agent.workers.tasks.run_drift_tick")
def run_drift_tick(mode: str | None = None) -> dict[str, Any]:
    """
    Run one scheduled drift tick.

    Args:
        mode: Optional execution mode override ("manual" or "automated")

    Returns:
        Dict with tick counts
    """
    return _run(lambda: _run_drift_tick_async(mode))


async def _run_drift_tick_async(mode: str | None = None) -> dict[str, Any]:
    async with AsyncSessionLocal() as db:
        try:
            report = await DriftTickOrchestrator(db).run(ExecutionMode(mode) if mode else None)
        except ConfigurationError as e:
            logger.error("tasks.drift_tick_configuration_error", error=str(e))
            return {"success": False, "error": str(e), "error_type": type(e).__name__}

    return {
        "success": True,
        "mode": report.mode.value,
        "detections": report.detection_count,
        "auto_safe": report.auto_safe_count,
        "executed": report.execution.succeeded,
        "failed": report.execution.failed,
        "recommendations_created": report.recommendations.created,
        "potential_savings": report.summary.total_potential_savings,
    }


@celery_app.task(name="finops_agent.workers.tasks.wake_snoozed_recommendations")
def wake_snoozed_recommendations() -> dict[str, Any]:
    """Return expired snoozes to pending."""
    return _run(_wake_snoozed_async)


async def _wake_snoozed_async() -> dict[str, Any]:
    async with AsyncSessionLocal() as db:
        woken = await RecommendationWorkflow(db).wake_snoozed()
    return {"woken": woken}


@celery_app.task(name="finops_agent.workers.tasks.execute_scheduled_recommendations")
def execute_scheduled_recommendations() -> dict[str, Any]:
    """Execute scheduled recommendations that are due."""
    return _run(_execute_scheduled_async)


async def _execute_scheduled_async() -> dict[str, Any]:
    async with AsyncSessionLocal() as db:
        results = await RecommendationWorkflow(db).execute_due_scheduled()
    succeeded = sum(1 for r in results if r.success)
    return {"executed": succeeded, "failed": len(results) - succeeded}


@celery_app.task(name="finops_agent.workers.tasks.expire_stale_recommendations")
def expire_stale_recommendations() -> dict[str, Any]:
    """Expire pending recommendations that stopped being detected."""
    return _run(_expire_stale_async)


async def _expire_stale_async() -> dict[str, Any]:
    async with AsyncSessionLocal() as db:
        expired = await RecommendationWorkflow(db).expire_stale()
    return {"expired": expired}


@celery_app.task(name="finops_agent.workers.tasks.enforce_policy_locks")
def enforce_policy_locks() -> dict[str, Any]:
    """Demote locked resources that are still marked auto_safe."""
    return _run(_enforce_policy_locks_async)


async def _enforce_policy_locks_async() -> dict[str, Any]:
    async with AsyncSessionLocal() as db:
        demoted = await policy_enforcement.enforce_policy_locks(ResourceStore(db))
    return {"demoted": demoted, "total": sum(demoted.values())}
