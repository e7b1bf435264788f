"""Re-apply policy locks to stored resources."""

import structlog

from finops_agent.core.exceptions import PartialFetchError
from finops_agent.crud.resource_store import ResourceStore
from finops_agent.models.resource import OptimizationPolicy, ResourceCategory
from finops_agent.services import policy_lock

logger = structlog.get_logger()


async def enforce_policy_locks(store: ResourceStore) -> dict[str, int]:
    """
    Demote locked resources that are still marked auto_safe.

    A resource can become locked after its policy was set (a prod env tag
    added later, a manual lock written directly). Those rows are moved back
    to recommend_only.

    Returns:
        Demoted resource count per category
    """
    demoted: dict[str, int] = {}
    for category in ResourceCategory:
        try:
            records = await store.fetch(category)
        except PartialFetchError as e:
            logger.warning("policy_enforcement.category_failed", category=category.value, reason=e.reason)
            continue

        count = 0
        for record in records:
            if record.optimization_policy != OptimizationPolicy.AUTO_SAFE.value:
                continue
            if not policy_lock.is_policy_locked(record):
                continue
            await store.update(
                category, record.id, {"optimization_policy": OptimizationPolicy.RECOMMEND_ONLY.value}
            )
            count += 1

        if count:
            demoted[category.value] = count

    logger.info("policy_enforcement.completed", demoted=sum(demoted.values()))
    return demoted
