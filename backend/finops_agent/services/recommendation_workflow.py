"""
Recommendation workflow.

Turns detections that need human approval into Recommendation rows and
moves them through their approval states. Execution of an approved or
scheduled recommendation is delegated to the RemediationExecutor.
"""

import uuid
from datetime import datetime, timedelta

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from finops_agent.core.config import settings
from finops_agent.core.exceptions import InvalidTransitionError
from finops_agent.core.timeutils import as_utc, utcnow
from finops_agent.crud import recommendation as crud_recommendation
from finops_agent.models.recommendation import (
    ImpactLevel,
    Recommendation,
    RecommendationStatus,
    RiskLevel,
)
from finops_agent.schemas.detection import Detection
from finops_agent.schemas.drift_tick import RecommendationHandoff
from finops_agent.schemas.execution import ExecuteActionParams, ExecutionResult
from finops_agent.schemas.recommendation import RecommendationUpdate
from finops_agent.services.executor import RemediationExecutor

logger = structlog.get_logger()

S = RecommendationStatus

ALLOWED_TRANSITIONS: dict[RecommendationStatus, frozenset[RecommendationStatus]] = {
    S.PENDING: frozenset({S.APPROVED, S.REJECTED, S.SNOOZED, S.SCHEDULED, S.EXPIRED}),
    S.SNOOZED: frozenset({S.PENDING, S.REJECTED}),
    S.SCHEDULED: frozenset({S.EXECUTED, S.REJECTED}),
    S.APPROVED: frozenset({S.EXECUTED}),
    S.REJECTED: frozenset(),
    S.EXECUTED: frozenset(),
    S.EXPIRED: frozenset(),
}

EXECUTABLE_STATUSES = frozenset({S.APPROVED, S.SCHEDULED})

DETECTOR_ACTOR = "waste-detector"


def get_impact_level(potential_savings: float) -> ImpactLevel:
    """Bucket monthly savings into an impact level."""
    if potential_savings >= 500:
        return ImpactLevel.CRITICAL
    if potential_savings >= 200:
        return ImpactLevel.HIGH
    if potential_savings >= 50:
        return ImpactLevel.MEDIUM
    return ImpactLevel.LOW


def get_risk_level(resource_type: str, env: str | None) -> RiskLevel:
    """
    Operational risk of remediating a resource.

    Production is always high risk. Databases and caches are medium risk in
    staging; other resources are medium risk in staging and low elsewhere.
    """
    if env in ("prod", "production"):
        return RiskLevel.HIGH
    if resource_type in ("rds_instances", "cache_clusters"):
        return RiskLevel.MEDIUM if env == "staging" else RiskLevel.LOW
    if env == "staging":
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


TITLES = {
    "idle_rds": "Stop idle RDS instance",
    "idle_cache": "Downsize idle cache cluster",
    "idle_load_balancer": "Delete idle load balancer",
    "over_provisioned_lambda": "Rightsize Lambda function",
    "over_provisioned_instance": "Rightsize EC2 instance",
    "over_provisioned_asg": "Scale down ASG",
    "gp2_volume": "Upgrade EBS volume to gp3",
    "unused_lambda": "Delete unused Lambda function",
    "orphaned_snapshot": "Delete orphaned snapshot",
    "static_asg": "Enable dynamic scaling for ASG",
    "multi_az_non_prod": "Disable Multi-AZ for non-prod RDS",
    "empty_load_balancer": "Delete empty load balancer",
    "s3_no_version_expiration": "Add version expiration to S3 bucket",
    "over_configured_lambda_timeout": "Optimize Lambda timeout",
}


def generate_title(detection: Detection) -> str:
    """Human-readable title for a recommendation."""
    prefix = TITLES.get(detection.scenario_id, detection.scenario_name)
    return f"{prefix}: {detection.resource_name}"


def generate_description(detection: Detection) -> str:
    """Describe a recommendation from the detection's own evidence."""
    d = detection.details or {}
    name = detection.resource_name
    parts: list[str] = []

    if detection.scenario_id == "idle_rds":
        parts.append(f'RDS instance "{name}"')
        if d.get("instance_class"):
            parts.append(f"({d['instance_class']})")
        parts.append("detected as idle.")
        if d.get("avg_cpu_7d") is not None:
            parts.append(f"Average CPU: {d['avg_cpu_7d']}%.")
        if d.get("avg_connections_7d") is not None:
            parts.append(f"Average connections: {d['avg_connections_7d']}.")
    elif detection.scenario_id == "idle_cache":
        parts.append(f'Cache cluster "{name}"')
        if d.get("node_type"):
            parts.append(f"({d['node_type']})")
        parts.append("detected as idle.")
        if d.get("avg_cpu_7d") is not None:
            parts.append(f"Average CPU: {d['avg_cpu_7d']}%.")
        if d.get("avg_connections_7d") is not None:
            parts.append(f"Average connections: {d['avg_connections_7d']}.")
    elif detection.scenario_id == "idle_load_balancer":
        parts.append(f'Load balancer "{name}" detected as idle.')
        if d.get("avg_request_count_7d") is not None:
            parts.append(f"Requests (7d avg): {d['avg_request_count_7d']}.")
    elif detection.scenario_id == "over_provisioned_lambda":
        parts.append(f'Lambda function "{name}" is over-provisioned.')
        if d.get("memory_mb"):
            parts.append(f"Current memory: {d['memory_mb']}MB.")
        if d.get("recommended_memory_mb"):
            parts.append(f"Recommended: {d['recommended_memory_mb']}MB.")
    elif detection.scenario_id == "over_provisioned_instance":
        parts.append(f'EC2 instance "{name}" is over-provisioned.')
        if d.get("current_type"):
            parts.append(f"Current type: {d['current_type']}.")
        if d.get("recommended_type"):
            parts.append(f"Recommended: {d['recommended_type']}.")
        if d.get("avg_cpu_7d") is not None:
            parts.append(f"Avg CPU: {d['avg_cpu_7d']}%.")
    elif detection.scenario_id == "static_asg":
        parts.append(f'ASG "{name}" has static scaling (min=max=desired).')
        if d.get("desired_capacity"):
            parts.append(f"Fixed capacity: {d['desired_capacity']} instances.")
        parts.append("Enabling dynamic scaling can reduce costs during low demand periods.")
    elif detection.scenario_id == "empty_load_balancer":
        parts.append(f'Load balancer "{name}" has no healthy registered targets.')
        if d.get("target_count") is not None:
            parts.append(f"Target count: {d['target_count']}.")
    elif detection.scenario_id == "over_configured_lambda_timeout":
        parts.append(f'Lambda function "{name}" has excessive timeout configuration.')
        if d.get("timeout_seconds"):
            parts.append(f"Current timeout: {d['timeout_seconds']}s.")
        if d.get("avg_duration_ms"):
            parts.append(f"Avg duration: {d['avg_duration_ms'] / 1000:.1f}s.")
        if d.get("recommended_timeout_seconds"):
            parts.append(f"Recommended: {d['recommended_timeout_seconds']}s.")
    else:
        parts.append(f'{detection.scenario_name} detected on "{name}".')

    parts.append(f"Potential savings: ${detection.potential_savings:.2f}/month.")
    return " ".join(parts)


def _snapshot(detection: Detection, now: datetime) -> dict:
    """Recommendation columns derived from a detection."""
    return {
        "detection_id": detection.id,
        "scenario_name": detection.scenario_name,
        "resource_type": detection.resource_type,
        "resource_name": detection.resource_name,
        "account_id": detection.account_id,
        "region": detection.region,
        "env": detection.env,
        "action": detection.action,
        "title": generate_title(detection),
        "description": generate_description(detection),
        "impact_level": get_impact_level(detection.potential_savings).value,
        "risk_level": get_risk_level(detection.resource_type, detection.env).value,
        "confidence": float(detection.confidence),
        "current_monthly_cost": detection.current_cost,
        "potential_savings": detection.potential_savings,
        "details": detection.details,
        "last_detected_at": now,
    }


class RecommendationWorkflow:
    """Approval state machine over the recommendations table."""

    def __init__(self, db: AsyncSession, executor: RemediationExecutor | None = None):
        self.db = db
        self.executor = executor or RemediationExecutor(db)

    async def create_from_detections(
        self, detections: list[Detection], now: datetime | None = None
    ) -> RecommendationHandoff:
        """
        Upsert one open recommendation per (resource, scenario).

        An existing open row is refreshed in place with the latest evidence.
        A concurrent insert that wins the unique index is treated the same way.

        Args:
            detections: Detections that need human approval
            now: Detection time

        Returns:
            Counts of created and refreshed recommendations
        """
        now = now or utcnow()
        handoff = RecommendationHandoff()

        for detection in detections:
            values = _snapshot(detection, now)
            existing = await crud_recommendation.get_open_recommendation(
                self.db, detection.resource_id, detection.scenario_id
            )
            if existing:
                await self._refresh(existing, values)
                handoff.refreshed += 1
                continue

            self.db.add(
                Recommendation(
                    resource_id=detection.resource_id,
                    scenario_id=detection.scenario_id,
                    status=S.PENDING.value,
                    created_by=DETECTOR_ACTOR,
                    **values,
                )
            )
            try:
                await self.db.commit()
                handoff.created += 1
            except IntegrityError:
                await self.db.rollback()
                winner = await crud_recommendation.get_open_recommendation(
                    self.db, detection.resource_id, detection.scenario_id
                )
                if winner is None:
                    raise
                logger.info(
                    "recommendations.concurrent_insert",
                    resource_id=detection.resource_id,
                    scenario_id=detection.scenario_id,
                )
                await self._refresh(winner, values)
                handoff.refreshed += 1

        if detections:
            logger.info(
                "recommendations.upserted",
                created=handoff.created,
                refreshed=handoff.refreshed,
            )
        return handoff

    async def _refresh(self, recommendation: Recommendation, values: dict) -> None:
        for field, value in values.items():
            setattr(recommendation, field, value)
        await self.db.commit()

    async def _get(self, recommendation_id: uuid.UUID) -> Recommendation:
        recommendation = await crud_recommendation.get_recommendation_by_id(self.db, recommendation_id)
        if recommendation is None:
            raise LookupError(f"Recommendation {recommendation_id} not found")
        return recommendation

    @staticmethod
    def _check_transition(recommendation: Recommendation, target: RecommendationStatus) -> None:
        current = RecommendationStatus(recommendation.status)
        if target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidTransitionError(
                f"Cannot move recommendation from {current.value} to {target.value}"
            )

    async def _transition(
        self,
        recommendation_id: uuid.UUID,
        target: RecommendationStatus,
        actor: str | None = None,
        **fields,
    ) -> Recommendation:
        recommendation = await self._get(recommendation_id)
        self._check_transition(recommendation, target)

        previous = recommendation.status
        recommendation.status = target.value
        for field, value in fields.items():
            setattr(recommendation, field, value)
        if actor:
            recommendation.actioned_by = actor

        await self.db.commit()
        await self.db.refresh(recommendation)
        logger.info(
            "recommendations.transitioned",
            recommendation_id=str(recommendation_id),
            from_status=previous,
            to_status=target.value,
        )
        return recommendation

    async def approve(self, recommendation_id: uuid.UUID, actor: str | None = None) -> Recommendation:
        """Approve a pending recommendation."""
        return await self._transition(recommendation_id, S.APPROVED, actor)

    async def reject(
        self, recommendation_id: uuid.UUID, reason: str | None = None, actor: str | None = None
    ) -> Recommendation:
        """Reject a recommendation (terminal)."""
        return await self._transition(recommendation_id, S.REJECTED, actor, rejection_reason=reason)

    async def snooze(
        self, recommendation_id: uuid.UUID, days: int, actor: str | None = None
    ) -> Recommendation:
        """
        Hide a pending recommendation for a number of days.

        Raises:
            ValueError: If days is outside 1..MAX_SNOOZE_DAYS
        """
        if not 1 <= days <= settings.MAX_SNOOZE_DAYS:
            raise ValueError(f"Snooze duration must be between 1 and {settings.MAX_SNOOZE_DAYS} days")
        return await self._transition(
            recommendation_id, S.SNOOZED, actor, snoozed_until=utcnow() + timedelta(days=days)
        )

    async def schedule(
        self, recommendation_id: uuid.UUID, when: datetime, actor: str | None = None
    ) -> Recommendation:
        """
        Schedule a pending recommendation for execution.

        Raises:
            ValueError: If the time is not in the future
        """
        when = as_utc(when)
        if when <= utcnow():
            raise ValueError("Scheduled time must be in the future")
        return await self._transition(recommendation_id, S.SCHEDULED, actor, scheduled_for=when)

    async def execute(self, recommendation_id: uuid.UUID, actor: str | None = None) -> ExecutionResult:
        """
        Execute an approved or scheduled recommendation.

        On success the recommendation moves to executed; on failure its status
        is left unchanged and the failed result is stored on the row.

        Raises:
            InvalidTransitionError: If the recommendation is not executable
        """
        recommendation = await self._get(recommendation_id)
        status = RecommendationStatus(recommendation.status)
        if status not in EXECUTABLE_STATUSES:
            raise InvalidTransitionError(
                f"Recommendation must be approved or scheduled to execute. Current status: {status.value}"
            )

        params = ExecuteActionParams(
            action=recommendation.action,
            resource_type=recommendation.resource_type,
            resource_id=recommendation.resource_id,
            resource_name=recommendation.resource_name,
            detection_id=recommendation.detection_id,
            scenario_id=recommendation.scenario_id,
            details=recommendation.details or {},
        )
        result = await self.executor.execute_action(
            params, enforce_policy_lock=False, actor=actor or recommendation.actioned_by
        )

        recommendation = await self._get(recommendation_id)
        recommendation.execution_result = result.model_dump(mode="json")
        if result.success:
            recommendation.status = S.EXECUTED.value
            recommendation.executed_at = result.executed_at
        if actor:
            recommendation.actioned_by = actor
        await self.db.commit()

        logger.info(
            "recommendations.executed",
            recommendation_id=str(recommendation_id),
            success=result.success,
            action=result.action,
        )
        return result

    async def update_notes(self, recommendation_id: uuid.UUID, update: RecommendationUpdate) -> Recommendation:
        """Update free-form fields. Status is never changed here."""
        recommendation = await crud_recommendation.update_recommendation(self.db, recommendation_id, update)
        if recommendation is None:
            raise LookupError(f"Recommendation {recommendation_id} not found")
        return recommendation

    async def delete(self, recommendation_id: uuid.UUID) -> bool:
        """Delete a recommendation. Returns False if it does not exist."""
        return await crud_recommendation.delete_recommendation(self.db, recommendation_id)

    async def get_summary(self) -> dict:
        """Counts and savings across all recommendations."""
        return await crud_recommendation.get_recommendation_statistics(self.db)

    async def wake_snoozed(self, now: datetime | None = None) -> int:
        """Return snoozed recommendations whose snooze has run out to pending."""
        now = now or utcnow()
        woken = 0
        for recommendation in await crud_recommendation.get_expired_snoozes(self.db, now):
            self._check_transition(recommendation, S.PENDING)
            recommendation.status = S.PENDING.value
            recommendation.snoozed_until = None
            woken += 1
        if woken:
            await self.db.commit()
            logger.info("recommendations.snoozes_expired", count=woken)
        return woken

    async def execute_due_scheduled(self, now: datetime | None = None) -> list[ExecutionResult]:
        """Execute scheduled recommendations whose time has come."""
        now = now or utcnow()
        due_ids = [r.id for r in await crud_recommendation.get_due_scheduled(self.db, now)]
        results = []
        for recommendation_id in due_ids:
            results.append(await self.execute(recommendation_id))
        return results

    async def expire_stale(self, now: datetime | None = None, max_age_days: int | None = None) -> int:
        """Expire pending recommendations that have not been re-detected recently."""
        now = now or utcnow()
        cutoff = now - timedelta(days=max_age_days or settings.RECOMMENDATION_EXPIRY_DAYS)
        expired = 0
        for recommendation in await crud_recommendation.get_stale_pending(self.db, cutoff):
            recommendation.status = S.EXPIRED.value
            expired += 1
        if expired:
            await self.db.commit()
            logger.info("recommendations.expired", count=expired)
        return expired
