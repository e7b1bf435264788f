"""CRUD operations for recommendations."""

import uuid
from datetime import datetime

from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from finops_agent.models.recommendation import (
    OPEN_STATUSES,
    Recommendation,
    RecommendationStatus,
)
from finops_agent.schemas.recommendation import RecommendationUpdate

_OPEN_VALUES = [status.value for status in OPEN_STATUSES]


async def get_recommendation_by_id(
    db: AsyncSession, recommendation_id: uuid.UUID
) -> Recommendation | None:
    """
    Get recommendation by ID.

    Args:
        db: Database session
        recommendation_id: Recommendation UUID

    Returns:
        Recommendation or None if not found
    """
    result = await db.execute(
        select(Recommendation)
        .where(Recommendation.id == recommendation_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_open_recommendation(
    db: AsyncSession, resource_id: str, scenario_id: str
) -> Recommendation | None:
    """Get the non-terminal recommendation for a (resource, scenario) pair, if any."""
    result = await db.execute(
        select(Recommendation)
        .where(
            Recommendation.resource_id == resource_id,
            Recommendation.scenario_id == scenario_id,
            Recommendation.status.in_(_OPEN_VALUES),
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_recommendations(
    db: AsyncSession,
    status: RecommendationStatus | None = None,
    resource_type: str | None = None,
    skip: int = 0,
    limit: int = 100,
) -> list[Recommendation]:
    """
    List recommendations, highest savings first.

    Args:
        db: Database session
        status: Optional status filter
        resource_type: Optional resource category filter
        skip: Number of records to skip
        limit: Maximum number of records to return

    Returns:
        List of recommendations
    """
    query = select(Recommendation)

    if status:
        query = query.where(Recommendation.status == status.value)
    if resource_type:
        query = query.where(Recommendation.resource_type == resource_type)

    query = (
        query.order_by(desc(Recommendation.potential_savings), Recommendation.created_at)
        .offset(skip)
        .limit(limit)
    )
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_expired_snoozes(db: AsyncSession, now: datetime) -> list[Recommendation]:
    """Snoozed recommendations whose snooze has run out."""
    result = await db.execute(
        select(Recommendation).where(
            Recommendation.status == RecommendationStatus.SNOOZED.value,
            Recommendation.snoozed_until.is_not(None),
            Recommendation.snoozed_until <= now,
        )
    )
    return list(result.scalars().all())


async def get_due_scheduled(db: AsyncSession, now: datetime) -> list[Recommendation]:
    """Scheduled recommendations whose execution time has arrived, oldest first."""
    result = await db.execute(
        select(Recommendation)
        .where(
            Recommendation.status == RecommendationStatus.SCHEDULED.value,
            Recommendation.scheduled_for.is_not(None),
            Recommendation.scheduled_for <= now,
        )
        .order_by(Recommendation.scheduled_for)
    )
    return list(result.scalars().all())


async def get_stale_pending(db: AsyncSession, cutoff: datetime) -> list[Recommendation]:
    """Pending recommendations not re-detected since the cutoff."""
    result = await db.execute(
        select(Recommendation).where(
            Recommendation.status == RecommendationStatus.PENDING.value,
            Recommendation.last_detected_at < cutoff,
        )
    )
    return list(result.scalars().all())


async def update_recommendation(
    db: AsyncSession, recommendation_id: uuid.UUID, update: RecommendationUpdate
) -> Recommendation | None:
    """
    Update free-form fields on a recommendation.

    Status changes go through the recommendation workflow, not here.

    Returns:
        Updated recommendation or None if not found
    """
    recommendation = await get_recommendation_by_id(db, recommendation_id)
    if not recommendation:
        return None

    for field, value in update.model_dump(exclude_unset=True).items():
        setattr(recommendation, field, value)

    await db.commit()
    await db.refresh(recommendation)
    return recommendation


async def delete_recommendation(db: AsyncSession, recommendation_id: uuid.UUID) -> bool:
    """
    Delete a recommendation.

    Returns:
        True if deleted, False if not found
    """
    recommendation = await get_recommendation_by_id(db, recommendation_id)
    if not recommendation:
        return False

    await db.delete(recommendation)
    await db.commit()
    return True


async def get_recommendation_statistics(db: AsyncSession) -> dict:
    """
    Aggregate recommendation counts and savings.

    Returns:
        Dict with per-status counts and savings breakdowns
    """
    status_result = await db.execute(
        select(Recommendation.status, func.count(Recommendation.id)).group_by(Recommendation.status)
    )
    by_status = {status: count for status, count in status_result.all()}

    total_result = await db.execute(select(func.sum(Recommendation.potential_savings)))
    total_savings = total_result.scalar() or 0.0

    pending_result = await db.execute(
        select(func.sum(Recommendation.potential_savings)).where(
            Recommendation.status == RecommendationStatus.PENDING.value
        )
    )
    pending_savings = pending_result.scalar() or 0.0

    type_result = await db.execute(
        select(Recommendation.resource_type, func.count(Recommendation.id))
        .where(Recommendation.status.in_(_OPEN_VALUES))
        .group_by(Recommendation.resource_type)
    )
    by_resource_type = {resource_type: count for resource_type, count in type_result.all()}

    scenario_result = await db.execute(
        select(Recommendation.scenario_id, func.count(Recommendation.id))
        .where(Recommendation.status.in_(_OPEN_VALUES))
        .group_by(Recommendation.scenario_id)
    )
    by_scenario = {scenario_id: count for scenario_id, count in scenario_result.all()}

    return {
        "total": sum(by_status.values()),
        "by_status": {status.value: by_status.get(status.value, 0) for status in RecommendationStatus},
        "total_potential_savings": round(total_savings, 2),
        "pending_savings": round(pending_savings, 2),
        "by_resource_type": by_resource_type,
        "by_scenario": by_scenario,
    }
