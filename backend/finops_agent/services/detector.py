"""
Waste detector.

Reads every resource category from the Resource Store, evaluates the
catalog's scenarios against each typed record and aggregates the matches.
Detections are recomputed on every call.
"""

import math
from collections import defaultdict
from datetime import datetime

import structlog

from finops_agent.core.exceptions import PartialFetchError
from finops_agent.core.timeutils import utcnow
from finops_agent.crud.resource_store import ResourceStore
from finops_agent.models.resource import ResourceCategory
from finops_agent.schemas.detection import Detection, DetectionResult, DetectionSummary
from finops_agent.schemas.resource import ResourceRecord
from finops_agent.services.scenario_catalog import CATALOG, Scenario, ScenarioCatalog
from finops_agent.services.waste_rules import RuleContext

logger = structlog.get_logger()


def build_detection(scenario: Scenario, record: ResourceRecord, ctx: RuleContext) -> Detection:
    """Evaluate a scenario's estimator and wrap the result as a Detection."""
    estimate = scenario.estimate(record, ctx)
    return Detection(
        id=f"{scenario.id}-{record.id}",
        scenario_id=scenario.id,
        scenario_name=scenario.name,
        resource_id=record.id,
        resource_name=record.name,
        resource_type=record.category,
        account_id=record.account_id,
        region=record.region,
        env=record.env,
        action=scenario.action,
        severity=scenario.severity.value,
        confidence=min(100, scenario.base_confidence + estimate.confidence_boost),
        potential_savings=round(max(0.0, estimate.potential_savings), 2),
        current_cost=round(max(0.0, estimate.current_cost), 2),
        details=estimate.details,
        observed_at=ctx.now,
    )


def summarize(
    detections: list[Detection],
    resource_counts: dict[str, int],
    auto_safe_ids: frozenset[str],
    failed_categories: dict[str, str] | None = None,
) -> DetectionSummary:
    """
    Aggregate detections into a summary.

    Sums use math.fsum over key-sorted inputs, so the result does not depend
    on detection order. Monthly cost counts each resource once, at its most
    expensive detection.

    Args:
        detections: Detections from one pass
        resource_counts: Records read per category
        auto_safe_ids: Scenario ids that may run without approval
        failed_categories: Category -> reason for categories that could not be read

    Returns:
        DetectionSummary
    """
    ordered = sorted(detections, key=lambda d: d.id)

    by_scenario: dict[str, int] = defaultdict(int)
    scenario_savings: dict[str, list[float]] = defaultdict(list)
    by_severity: dict[str, int] = defaultdict(int)
    resource_cost: dict[tuple[str, str], float] = {}

    for detection in ordered:
        by_scenario[detection.scenario_id] += 1
        scenario_savings[detection.scenario_id].append(detection.potential_savings)
        by_severity[detection.severity] += 1
        key = (detection.resource_type, detection.resource_id)
        resource_cost[key] = max(resource_cost.get(key, 0.0), detection.current_cost)

    return DetectionSummary(
        total_resources=sum(resource_counts.values()),
        resource_counts=dict(sorted(resource_counts.items())),
        waste_detected=len(ordered),
        total_monthly_cost=round(math.fsum(resource_cost[k] for k in sorted(resource_cost)), 2),
        total_potential_savings=round(math.fsum(d.potential_savings for d in ordered), 2),
        auto_optimizable_savings=round(
            math.fsum(d.potential_savings for d in ordered if d.scenario_id in auto_safe_ids), 2
        ),
        by_scenario=dict(sorted(by_scenario.items())),
        savings_by_scenario={
            scenario_id: round(math.fsum(values), 2)
            for scenario_id, values in sorted(scenario_savings.items())
        },
        by_severity=dict(sorted(by_severity.items())),
        failed_categories=dict(sorted((failed_categories or {}).items())),
    )


class WasteDetector:
    """Evaluates the scenario catalog against the Resource Store."""

    def __init__(self, store: ResourceStore, catalog: ScenarioCatalog = CATALOG):
        self.store = store
        self.catalog = catalog

    async def detect_all(self, now: datetime | None = None) -> DetectionResult:
        """
        Run every scenario against every resource.

        A category that cannot be read is logged and reported in
        summary.failed_categories; the rest of the pass continues.

        Args:
            now: Evaluation time (defaults to the current UTC time)

        Returns:
            DetectionResult with detections and summary

        Raises:
            ConfigurationError: If the Resource Store is unreachable
        """
        now = now or utcnow()
        categories = self.catalog.categories()

        records: dict[str, list[ResourceRecord]] = {}
        failed: dict[str, str] = {}
        for category in categories:
            try:
                records[category] = await self.store.fetch(category)
            except PartialFetchError as e:
                logger.warning("detector.category_failed", category=category, reason=e.reason)
                failed[category] = e.reason

        volumes = ResourceCategory.VOLUMES.value
        snapshots = ResourceCategory.SNAPSHOTS.value
        live_volume_ids: frozenset[str] = frozenset()
        if snapshots in records and volumes in failed:
            # Orphan checks need the volume list
            logger.warning("detector.category_failed", category=snapshots, reason="volumes unavailable")
            failed[snapshots] = f"depends on {volumes}: {failed[volumes]}"
            records.pop(snapshots)
        elif volumes in records:
            live_volume_ids = frozenset(v.id for v in records[volumes] if v.state != "deleted")
        elif snapshots in records:
            live_volume_ids = await self.store.live_volume_ids()

        ctx = RuleContext(now=now, live_volume_ids=live_volume_ids)

        detections: list[Detection] = []
        for category, category_records in records.items():
            scenarios = self.catalog.for_category(category)
            for record in category_records:
                for scenario in scenarios:
                    if scenario.matches(record, ctx):
                        detections.append(build_detection(scenario, record, ctx))

        summary = summarize(
            detections,
            {category: len(items) for category, items in records.items()},
            self.catalog.list_auto_safe_ids(),
            failed,
        )

        logger.info(
            "detector.completed",
            resources=summary.total_resources,
            detections=summary.waste_detected,
            potential_savings=summary.total_potential_savings,
            failed_categories=len(failed),
        )
        return DetectionResult(detections=detections, summary=summary)
