"""
Policy lock evaluation.

Decides whether a resource may be placed into auto-remediation. Pure
functions with no I/O; the drift tick calls them while filtering detections
and the executor calls them again right before mutating.
"""

from dataclasses import dataclass

from finops_agent.models.resource import OptimizationPolicy, ResourceCategory
from finops_agent.schemas.resource import ResourceRecord

# Never auto-remediated in production
PROD_LOCKED_TYPES = frozenset(
    category.value
    for category in (
        ResourceCategory.INSTANCES,
        ResourceCategory.AUTOSCALING_GROUPS,
        ResourceCategory.RDS_INSTANCES,
        ResourceCategory.CACHE_CLUSTERS,
        ResourceCategory.LOAD_BALANCERS,
    )
)

# Non-destructive kinds, toggleable in every environment
ALWAYS_TOGGLEABLE_TYPES = frozenset(
    category.value
    for category in (
        ResourceCategory.S3_BUCKETS,
        ResourceCategory.LOG_GROUPS,
        ResourceCategory.ELASTIC_IPS,
        ResourceCategory.VOLUMES,
        ResourceCategory.SNAPSHOTS,
    )
)

PRODUCTION_ENV = "prod"

MANUAL_LOCK_ERROR = "This resource has been manually locked. Contact an administrator to unlock it."
PRODUCTION_LOCK_ERROR = "Production resources cannot be set to auto_safe. This is enforced for safety."

MANUAL_LOCK_REASON = "Manually locked by administrator"
PRODUCTION_LOCK_REASON = "Production environment protection"

POLICY_LABELS = {
    OptimizationPolicy.AUTO_SAFE: "Auto-Safe",
    OptimizationPolicy.RECOMMEND_ONLY: "Recommend Only",
    OptimizationPolicy.IGNORE: "Ignore",
}

POLICY_DESCRIPTIONS = {
    OptimizationPolicy.AUTO_SAFE: "Agent can automatically optimize this resource",
    OptimizationPolicy.RECOMMEND_ONLY: "Agent will recommend changes but require approval",
    OptimizationPolicy.IGNORE: "Agent will not touch this resource",
}


@dataclass(frozen=True)
class PolicyValidation:
    """Outcome of validating a policy change."""

    valid: bool
    error: str | None = None


def is_always_toggleable(resource_type: str) -> bool:
    """Check whether a resource type is toggleable in every environment."""
    return resource_type in ALWAYS_TOGGLEABLE_TYPES


def is_prod_locked_type(resource_type: str) -> bool:
    """Check whether a resource type is locked when running in production."""
    return resource_type in PROD_LOCKED_TYPES


def _is_production_locked(resource: ResourceRecord) -> bool:
    return resource.env == PRODUCTION_ENV and is_prod_locked_type(resource.category)


def is_policy_locked(resource: ResourceRecord) -> bool:
    """
    Check whether a resource is locked against auto-remediation.

    Precedence: an explicit manual lock always wins; always-toggleable types
    are never locked otherwise; prod-locked types are locked in production.

    Args:
        resource: Resource record

    Returns:
        True if the resource must not be auto-remediated
    """
    if resource.policy_locked:
        return True
    if is_always_toggleable(resource.category):
        return False
    return _is_production_locked(resource)


def get_lock_reason(resource: ResourceRecord) -> str | None:
    """Human-readable lock cause, same precedence as is_policy_locked."""
    if resource.policy_locked:
        return MANUAL_LOCK_REASON
    if is_always_toggleable(resource.category):
        return None
    if _is_production_locked(resource):
        return PRODUCTION_LOCK_REASON
    return None


def validate_policy_update(resource: ResourceRecord, new_policy: OptimizationPolicy | str) -> PolicyValidation:
    """
    Validate a policy change.

    Only a move to auto_safe on a locked resource is rejected. The error
    message distinguishes a manual lock from production protection.

    Args:
        resource: Resource record
        new_policy: Requested optimization policy

    Returns:
        PolicyValidation with valid flag and error message
    """
    if new_policy != OptimizationPolicy.AUTO_SAFE:
        return PolicyValidation(valid=True)

    if resource.policy_locked:
        return PolicyValidation(valid=False, error=MANUAL_LOCK_ERROR)

    if is_policy_locked(resource):
        return PolicyValidation(valid=False, error=PRODUCTION_LOCK_ERROR)

    return PolicyValidation(valid=True)


def can_set_auto_safe(resource: ResourceRecord) -> bool:
    """Check whether auto_safe may be selected for a resource."""
    return not is_policy_locked(resource)


def get_policy_label(policy: OptimizationPolicy | str) -> str:
    """Display label for a policy."""
    return POLICY_LABELS.get(OptimizationPolicy(policy), "Unknown")


def get_policy_description(policy: OptimizationPolicy | str) -> str:
    """One-line description of what a policy lets the agent do."""
    return POLICY_DESCRIPTIONS.get(OptimizationPolicy(policy), "")
