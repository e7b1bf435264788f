"""Recommendation API endpoints."""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from finops_agent.api.deps import get_actor, get_db
from finops_agent.core.exceptions import InvalidTransitionError
from finops_agent.crud import recommendation as crud_recommendation
from finops_agent.models.recommendation import RecommendationStatus
from finops_agent.schemas.execution import ExecutionResult
from finops_agent.schemas.recommendation import (
    Recommendation,
    RecommendationReject,
    RecommendationSchedule,
    RecommendationSnooze,
    RecommendationSummary,
    RecommendationUpdate,
)
from finops_agent.services.recommendation_workflow import RecommendationWorkflow

router = APIRouter()


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="Recommendation not found",
    )


def _bad_request(error: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))


@router.get("/", response_model=list[Recommendation])
async def list_recommendations(
    db: Annotated[AsyncSession, Depends(get_db)],
    status_filter: RecommendationStatus | None = Query(None, alias="status"),
    resource_type: str | None = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=100),
) -> list[Recommendation]:
    """
    List recommendations, highest savings first.

    Can filter by status and resource type.
    """
    return await crud_recommendation.list_recommendations(db, status_filter, resource_type, skip, limit)


@router.get("/summary", response_model=RecommendationSummary)
async def get_recommendation_summary(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> RecommendationSummary:
    """Get recommendation counts and savings."""
    stats = await RecommendationWorkflow(db).get_summary()
    return RecommendationSummary(**stats)


@router.get("/{recommendation_id}", response_model=Recommendation)
async def get_recommendation(
    recommendation_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Recommendation:
    """Get a specific recommendation by ID."""
    recommendation = await crud_recommendation.get_recommendation_by_id(db, recommendation_id)
    if not recommendation:
        raise _not_found()
    return recommendation


@router.post("/{recommendation_id}/approve", response_model=Recommendation)
async def approve_recommendation(
    recommendation_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[str, Depends(get_actor)],
) -> Recommendation:
    """Approve a pending recommendation."""
    try:
        return await RecommendationWorkflow(db).approve(recommendation_id, actor)
    except LookupError:
        raise _not_found() from None
    except InvalidTransitionError as e:
        raise _bad_request(e) from e


@router.post("/{recommendation_id}/reject", response_model=Recommendation)
async def reject_recommendation(
    recommendation_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[str, Depends(get_actor)],
    reject_in: RecommendationReject | None = None,
) -> Recommendation:
    """Reject a recommendation."""
    reason = reject_in.reason if reject_in else None
    try:
        return await RecommendationWorkflow(db).reject(recommendation_id, reason, actor)
    except LookupError:
        raise _not_found() from None
    except InvalidTransitionError as e:
        raise _bad_request(e) from e


@router.post("/{recommendation_id}/snooze", response_model=Recommendation)
async def snooze_recommendation(
    recommendation_id: uuid.UUID,
    snooze_in: RecommendationSnooze,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[str, Depends(get_actor)],
) -> Recommendation:
    """Hide a pending recommendation for a number of days."""
    try:
        return await RecommendationWorkflow(db).snooze(recommendation_id, snooze_in.days, actor)
    except LookupError:
        raise _not_found() from None
    except (InvalidTransitionError, ValueError) as e:
        raise _bad_request(e) from e


@router.post("/{recommendation_id}/schedule", response_model=Recommendation)
async def schedule_recommendation(
    recommendation_id: uuid.UUID,
    schedule_in: RecommendationSchedule,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[str, Depends(get_actor)],
) -> Recommendation:
    """Schedule a pending recommendation for later execution."""
    try:
        return await RecommendationWorkflow(db).schedule(recommendation_id, schedule_in.scheduled_for, actor)
    except LookupError:
        raise _not_found() from None
    except (InvalidTransitionError, ValueError) as e:
        raise _bad_request(e) from e


@router.post("/{recommendation_id}/execute", response_model=ExecutionResult)
async def execute_recommendation(
    recommendation_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[str, Depends(get_actor)],
) -> ExecutionResult:
    """
    Execute an approved or scheduled recommendation.

    A failed remediation is returned as a result with success=false; the
    recommendation keeps its status.
    """
    try:
        return await RecommendationWorkflow(db).execute(recommendation_id, actor)
    except LookupError:
        raise _not_found() from None
    except InvalidTransitionError as e:
        raise _bad_request(e) from e


@router.patch("/{recommendation_id}", response_model=Recommendation)
async def update_recommendation(
    recommendation_id: uuid.UUID,
    update_in: RecommendationUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Recommendation:
    """Update recommendation notes."""
    try:
        return await RecommendationWorkflow(db).update_notes(recommendation_id, update_in)
    except LookupError:
        raise _not_found() from None


@router.delete("/{recommendation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_recommendation(
    recommendation_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Response:
    """Delete a recommendation."""
    deleted = await RecommendationWorkflow(db).delete(recommendation_id)
    if not deleted:
        raise _not_found()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
