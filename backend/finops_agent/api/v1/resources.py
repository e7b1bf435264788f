"""Resource policy API endpoints."""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from finops_agent.api.deps import get_actor, get_db
from finops_agent.crud.resource_store import ResourceStore, parse_category
from finops_agent.models.resource import OptimizationPolicy, ResourceCategory
from finops_agent.schemas.resource import (
    LockUpdate,
    PolicyChange,
    PolicyState,
    PolicyUpdate,
    ResourceRecord,
)
from finops_agent.services import policy_lock

logger = structlog.get_logger()

router = APIRouter()


def _category(resource_type: str) -> ResourceCategory:
    try:
        return parse_category(resource_type)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown resource type: {resource_type}",
        ) from None


async def _get_resource(store: ResourceStore, category: ResourceCategory, resource_id: str) -> ResourceRecord:
    resource = await store.get(category, resource_id)
    if resource is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Resource not found",
        )
    return resource


def _policy_state(resource: ResourceRecord) -> PolicyState:
    return PolicyState(
        resource_id=resource.id,
        resource_type=resource.category,
        policy=resource.optimization_policy,
        label=policy_lock.get_policy_label(resource.optimization_policy),
        description=policy_lock.get_policy_description(resource.optimization_policy),
        locked=policy_lock.is_policy_locked(resource),
        lock_reason=policy_lock.get_lock_reason(resource),
        env=resource.env,
    )


@router.get("/{resource_type}/{resource_id}/policy", response_model=PolicyState)
async def get_resource_policy(
    resource_type: str,
    resource_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> PolicyState:
    """Get a resource's optimization policy and lock state."""
    store = ResourceStore(db)
    resource = await _get_resource(store, _category(resource_type), resource_id)
    return _policy_state(resource)


@router.patch("/{resource_type}/{resource_id}/policy", response_model=PolicyChange)
async def update_resource_policy(
    resource_type: str,
    resource_id: str,
    policy_in: PolicyUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[str, Depends(get_actor)],
) -> PolicyChange:
    """
    Change a resource's optimization policy.

    Moving a locked resource to auto_safe is refused with 403.
    """
    category = _category(resource_type)
    store = ResourceStore(db)
    resource = await _get_resource(store, category, resource_id)

    validation = policy_lock.validate_policy_update(resource, policy_in.policy)
    if not validation.valid:
        logger.warning(
            "resources.policy_update_refused",
            resource_id=resource_id,
            resource_type=category.value,
            requested=policy_in.policy.value,
            actor=actor,
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=validation.error)

    previous = OptimizationPolicy(resource.optimization_policy)
    await store.update(category, resource_id, {"optimization_policy": policy_in.policy.value})
    logger.info(
        "resources.policy_updated",
        resource_id=resource_id,
        resource_type=category.value,
        previous=previous.value,
        new=policy_in.policy.value,
        actor=actor,
    )
    return PolicyChange(
        resource_id=resource_id,
        resource_type=category,
        previous_policy=previous,
        new_policy=policy_in.policy,
    )


@router.put("/{resource_type}/{resource_id}/lock", response_model=PolicyState)
async def set_resource_lock(
    resource_type: str,
    resource_id: str,
    lock_in: LockUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor: Annotated[str, Depends(get_actor)],
) -> PolicyState:
    """
    Set or clear the manual policy lock.

    Locking an auto_safe resource demotes it to recommend_only.
    """
    category = _category(resource_type)
    store = ResourceStore(db)
    resource = await _get_resource(store, category, resource_id)

    fields: dict = {"policy_locked": lock_in.locked}
    if lock_in.locked and resource.optimization_policy == OptimizationPolicy.AUTO_SAFE.value:
        fields["optimization_policy"] = OptimizationPolicy.RECOMMEND_ONLY.value

    updated = await store.update(category, resource_id, fields)
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Resource not found")
    logger.info(
        "resources.lock_updated",
        resource_id=resource_id,
        resource_type=category.value,
        locked=lock_in.locked,
        actor=actor,
    )
    return _policy_state(updated)
