"""
Scenario catalog.

Static registry of waste scenarios: which resource category each one
applies to, the remediation action it proposes, and whether that action may
run without human approval. The catalog is validated once at import time;
an invalid registration stops the process from starting.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable

import structlog

from finops_agent.core.exceptions import CatalogError, UnknownScenarioError
from finops_agent.models.resource import ResourceCategory
from finops_agent.services import waste_rules as rules

logger = structlog.get_logger()


class ActionKind(str, Enum):
    """Structural class of a remediation action."""

    STOP = "stop"
    DELETE = "delete"
    RESIZE = "resize"
    UPDATE_FIELD = "update_field"


class Severity(str, Enum):
    """Scenario severity."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class ActionSpec:
    """Remediation action and the categories it can act on."""

    kind: ActionKind
    resource_types: frozenset[str]


def _action(kind: ActionKind, *categories: ResourceCategory) -> ActionSpec:
    return ActionSpec(kind=kind, resource_types=frozenset(c.value for c in categories))


# Categories with a size dimension (instance type, capacity, node type, memory)
SIZED_CATEGORIES = frozenset(
    c.value
    for c in (
        ResourceCategory.INSTANCES,
        ResourceCategory.AUTOSCALING_GROUPS,
        ResourceCategory.RDS_INSTANCES,
        ResourceCategory.CACHE_CLUSTERS,
        ResourceCategory.LAMBDA_FUNCTIONS,
    )
)

ACTIONS: dict[str, ActionSpec] = {
    "terminate_instance": _action(ActionKind.DELETE, ResourceCategory.INSTANCES),
    "stop_instance": _action(ActionKind.STOP, ResourceCategory.INSTANCES),
    "rightsize_instance": _action(ActionKind.RESIZE, ResourceCategory.INSTANCES),
    "terminate_asg": _action(ActionKind.STOP, ResourceCategory.AUTOSCALING_GROUPS),
    "scale_down_asg": _action(ActionKind.RESIZE, ResourceCategory.AUTOSCALING_GROUPS),
    "enable_asg_scaling": _action(ActionKind.UPDATE_FIELD, ResourceCategory.AUTOSCALING_GROUPS),
    "stop_rds": _action(ActionKind.STOP, ResourceCategory.RDS_INSTANCES),
    "disable_multi_az": _action(ActionKind.UPDATE_FIELD, ResourceCategory.RDS_INSTANCES),
    "downsize_cache": _action(ActionKind.RESIZE, ResourceCategory.CACHE_CLUSTERS),
    "delete_lb": _action(ActionKind.DELETE, ResourceCategory.LOAD_BALANCERS),
    "delete_empty_lb": _action(ActionKind.DELETE, ResourceCategory.LOAD_BALANCERS),
    "rightsize_lambda": _action(ActionKind.RESIZE, ResourceCategory.LAMBDA_FUNCTIONS),
    "delete_lambda": _action(ActionKind.DELETE, ResourceCategory.LAMBDA_FUNCTIONS),
    "optimize_lambda_timeout": _action(ActionKind.UPDATE_FIELD, ResourceCategory.LAMBDA_FUNCTIONS),
    "add_lifecycle_policy": _action(ActionKind.UPDATE_FIELD, ResourceCategory.S3_BUCKETS),
    "add_version_expiration": _action(ActionKind.UPDATE_FIELD, ResourceCategory.S3_BUCKETS),
    "set_retention": _action(ActionKind.UPDATE_FIELD, ResourceCategory.LOG_GROUPS),
    "release_eip": _action(ActionKind.DELETE, ResourceCategory.ELASTIC_IPS),
    "delete_volume": _action(ActionKind.DELETE, ResourceCategory.VOLUMES),
    "upgrade_volume_type": _action(ActionKind.UPDATE_FIELD, ResourceCategory.VOLUMES),
    "delete_snapshot": _action(ActionKind.DELETE, ResourceCategory.SNAPSHOTS),
    "delete_orphaned_snapshot": _action(ActionKind.DELETE, ResourceCategory.SNAPSHOTS),
}


@dataclass(frozen=True)
class Scenario:
    """A named detection rule plus its remediation and risk classification."""

    id: str
    name: str
    description: str
    resource_type: str
    action: str
    auto_safe: bool
    severity: Severity
    base_confidence: int
    predicate: Callable[[Any, rules.RuleContext], bool]
    estimate: Callable[[Any, rules.RuleContext], rules.Estimate]

    def matches(self, record: Any, ctx: rules.RuleContext) -> bool:
        """Evaluate the threshold predicate against a typed record."""
        return self.predicate(record, ctx)


class ScenarioCatalog:
    """Read-only, validated collection of scenarios."""

    def __init__(self, scenarios: Iterable[Scenario]):
        self._scenarios: dict[str, Scenario] = {}
        for scenario in scenarios:
            self._validate(scenario)
            self._scenarios[scenario.id] = scenario
        self._auto_safe_ids = frozenset(s.id for s in self._scenarios.values() if s.auto_safe)

    def _validate(self, scenario: Scenario) -> None:
        if scenario.id in self._scenarios:
            raise CatalogError(f"Duplicate scenario id: {scenario.id}")

        spec = ACTIONS.get(scenario.action)
        if spec is None:
            raise CatalogError(f"Scenario {scenario.id} uses unknown action {scenario.action}")

        if scenario.resource_type not in spec.resource_types:
            raise CatalogError(
                f"Scenario {scenario.id}: action {scenario.action} cannot act on {scenario.resource_type}"
            )

        if spec.kind == ActionKind.RESIZE and scenario.resource_type not in SIZED_CATEGORIES:
            raise CatalogError(
                f"Scenario {scenario.id}: resize action {scenario.action} needs a sized "
                f"resource type, got {scenario.resource_type}"
            )

        if not 0 <= scenario.base_confidence <= 100:
            raise CatalogError(f"Scenario {scenario.id}: base_confidence must be within 0-100")

    def __len__(self) -> int:
        return len(self._scenarios)

    def __iter__(self):
        return iter(self._scenarios.values())

    def __contains__(self, scenario_id: object) -> bool:
        return scenario_id in self._scenarios

    def get(self, scenario_id: str) -> Scenario | None:
        """Return a scenario, or None when unknown."""
        return self._scenarios.get(scenario_id)

    def lookup(self, scenario_id: str) -> Scenario:
        """
        Return a scenario by id.

        Raises:
            UnknownScenarioError: If the id is not registered
        """
        scenario = self._scenarios.get(scenario_id)
        if scenario is None:
            raise UnknownScenarioError(scenario_id)
        return scenario

    def list_auto_safe_ids(self) -> frozenset[str]:
        """Ids of scenarios whose remediation may run without approval."""
        return self._auto_safe_ids

    def for_category(self, category: str) -> tuple[Scenario, ...]:
        """Scenarios that apply to a resource category."""
        return tuple(s for s in self._scenarios.values() if s.resource_type == category)

    def categories(self) -> tuple[str, ...]:
        """Resource categories that have at least one scenario, in enum order."""
        used = {s.resource_type for s in self._scenarios.values()}
        return tuple(c.value for c in ResourceCategory if c.value in used)


def build_catalog(scenarios: Iterable[Scenario]) -> ScenarioCatalog:
    """
    Build and validate a catalog.

    Raises:
        CatalogError: On duplicate ids or action/resource-type mismatches
    """
    catalog = ScenarioCatalog(scenarios)
    logger.debug(
        "scenario_catalog.loaded",
        scenarios=len(catalog),
        auto_safe=len(catalog.list_auto_safe_ids()),
    )
    return catalog


C = ResourceCategory

SCENARIOS: tuple[Scenario, ...] = (
    # Auto-safe: low-risk remediation, no approval needed
    Scenario(
        id="forgotten_preview",
        name="Forgotten Preview Environment",
        description="Preview environment with idle instances that should be cleaned up",
        resource_type=C.AUTOSCALING_GROUPS.value,
        action="terminate_asg",
        auto_safe=True,
        severity=Severity.MEDIUM,
        base_confidence=85,
        predicate=rules.forgotten_preview,
        estimate=rules.estimate_asg_full,
    ),
    Scenario(
        id="over_provisioned_asg",
        name="Over-provisioned Auto Scaling Group",
        description="ASG with more capacity than needed based on utilization",
        resource_type=C.AUTOSCALING_GROUPS.value,
        action="scale_down_asg",
        auto_safe=True,
        severity=Severity.MEDIUM,
        base_confidence=75,
        predicate=rules.over_provisioned_asg,
        estimate=rules.estimate_over_provisioned_asg,
    ),
    Scenario(
        id="idle_ci_runner",
        name="Idle CI Runner",
        description="CI runner that completed its job and is now idle",
        resource_type=C.INSTANCES.value,
        action="terminate_instance",
        auto_safe=True,
        severity=Severity.LOW,
        base_confidence=95,
        predicate=rules.idle_ci_runner,
        estimate=rules.estimate_idle_ci_runner,
    ),
    Scenario(
        id="s3_no_lifecycle",
        name="S3 Bucket Without Lifecycle Policy",
        description="Bucket storing data in expensive Standard tier without tiering",
        resource_type=C.S3_BUCKETS.value,
        action="add_lifecycle_policy",
        auto_safe=True,
        severity=Severity.LOW,
        base_confidence=90,
        predicate=rules.s3_no_lifecycle,
        estimate=rules.estimate_s3_no_lifecycle,
    ),
    Scenario(
        id="log_no_retention",
        name="Log Group Without Retention",
        description="Log group accumulating data indefinitely",
        resource_type=C.LOG_GROUPS.value,
        action="set_retention",
        auto_safe=True,
        severity=Severity.LOW,
        base_confidence=90,
        predicate=rules.log_no_retention,
        estimate=rules.estimate_log_no_retention,
    ),
    Scenario(
        id="off_hours_dev",
        name="Dev Instance Running Off-Hours",
        description="Development instance running during weekends or nights",
        resource_type=C.INSTANCES.value,
        action="stop_instance",
        auto_safe=True,
        severity=Severity.LOW,
        base_confidence=80,
        predicate=rules.off_hours_dev,
        estimate=rules.estimate_off_hours_dev,
    ),
    Scenario(
        id="stale_feature_env",
        name="Stale Feature Branch Environment",
        description="Feature environment older than 7 days with low usage",
        resource_type=C.AUTOSCALING_GROUPS.value,
        action="terminate_asg",
        auto_safe=True,
        severity=Severity.MEDIUM,
        base_confidence=85,
        predicate=rules.stale_feature_env,
        estimate=rules.estimate_asg_full,
    ),
    Scenario(
        id="orphaned_eip",
        name="Orphaned Elastic IP",
        description="Elastic IP not attached to any resource",
        resource_type=C.ELASTIC_IPS.value,
        action="release_eip",
        auto_safe=True,
        severity=Severity.LOW,
        base_confidence=98,
        predicate=rules.orphaned_eip,
        estimate=rules.estimate_orphaned_eip,
    ),
    Scenario(
        id="unattached_volume",
        name="Unattached EBS Volume",
        description="EBS volume not attached to any instance",
        resource_type=C.VOLUMES.value,
        action="delete_volume",
        auto_safe=True,
        severity=Severity.MEDIUM,
        base_confidence=85,
        predicate=rules.unattached_volume,
        estimate=rules.estimate_unattached_volume,
    ),
    Scenario(
        id="old_snapshot",
        name="Old EBS Snapshot",
        description="Snapshot older than 90 days that may no longer be needed",
        resource_type=C.SNAPSHOTS.value,
        action="delete_snapshot",
        auto_safe=True,
        severity=Severity.LOW,
        base_confidence=70,
        predicate=rules.old_snapshot,
        estimate=rules.estimate_old_snapshot,
    ),
    Scenario(
        id="idle_instance",
        name="Idle Instance",
        description="Instance with very low CPU utilization for extended period",
        resource_type=C.INSTANCES.value,
        action="stop_instance",
        auto_safe=True,
        severity=Severity.MEDIUM,
        base_confidence=80,
        predicate=rules.idle_instance,
        estimate=rules.estimate_idle_instance,
    ),
    Scenario(
        id="gp2_volume",
        name="GP2 Volume (Upgrade to GP3)",
        description="EBS volume using older gp2 type; gp3 costs 20% less with better performance",
        resource_type=C.VOLUMES.value,
        action="upgrade_volume_type",
        auto_safe=True,
        severity=Severity.LOW,
        base_confidence=95,
        predicate=rules.gp2_volume,
        estimate=rules.estimate_gp2_volume,
    ),
    Scenario(
        id="unused_lambda",
        name="Unused Lambda Function",
        description="Lambda function with zero invocations in the last 7 days",
        resource_type=C.LAMBDA_FUNCTIONS.value,
        action="delete_lambda",
        auto_safe=True,
        severity=Severity.LOW,
        base_confidence=90,
        predicate=rules.unused_lambda,
        estimate=rules.estimate_unused_lambda,
    ),
    Scenario(
        id="orphaned_snapshot",
        name="Orphaned EBS Snapshot",
        description="Snapshot whose source volume no longer exists",
        resource_type=C.SNAPSHOTS.value,
        action="delete_orphaned_snapshot",
        auto_safe=True,
        severity=Severity.MEDIUM,
        base_confidence=85,
        predicate=rules.orphaned_snapshot,
        estimate=rules.estimate_orphaned_snapshot,
    ),
    Scenario(
        id="multi_az_non_prod",
        name="Multi-AZ on Non-Production RDS",
        description="RDS instance with Multi-AZ enabled in a dev/staging environment",
        resource_type=C.RDS_INSTANCES.value,
        action="disable_multi_az",
        auto_safe=True,
        severity=Severity.MEDIUM,
        base_confidence=90,
        predicate=rules.multi_az_non_prod,
        estimate=rules.estimate_multi_az_non_prod,
    ),
    Scenario(
        id="s3_no_version_expiration",
        name="S3 Bucket Without Version Expiration",
        description="Versioned bucket without noncurrent version expiration",
        resource_type=C.S3_BUCKETS.value,
        action="add_version_expiration",
        auto_safe=True,
        severity=Severity.LOW,
        base_confidence=85,
        predicate=rules.s3_no_version_expiration,
        estimate=rules.estimate_s3_no_version_expiration,
    ),
    Scenario(
        id="idle_cache",
        name="Idle Cache Cluster",
        description="ElastiCache cluster with minimal usage; scaled in to a single smaller node",
        resource_type=C.CACHE_CLUSTERS.value,
        action="downsize_cache",
        auto_safe=True,
        severity=Severity.HIGH,
        base_confidence=70,
        predicate=rules.idle_cache,
        estimate=rules.estimate_idle_cache,
    ),
    # Approval required
    Scenario(
        id="idle_rds",
        name="Idle RDS Instance",
        description="RDS instance with very low CPU and connections",
        resource_type=C.RDS_INSTANCES.value,
        action="stop_rds",
        auto_safe=False,
        severity=Severity.HIGH,
        base_confidence=75,
        predicate=rules.idle_rds,
        estimate=rules.estimate_idle_rds,
    ),
    Scenario(
        id="idle_load_balancer",
        name="Idle Load Balancer",
        description="Load balancer with near-zero traffic",
        resource_type=C.LOAD_BALANCERS.value,
        action="delete_lb",
        auto_safe=False,
        severity=Severity.MEDIUM,
        base_confidence=80,
        predicate=rules.idle_load_balancer,
        estimate=rules.estimate_idle_load_balancer,
    ),
    Scenario(
        id="over_provisioned_lambda",
        name="Over-provisioned Lambda Function",
        description="Lambda with much more memory allocated than used",
        resource_type=C.LAMBDA_FUNCTIONS.value,
        action="rightsize_lambda",
        auto_safe=False,
        severity=Severity.LOW,
        base_confidence=85,
        predicate=rules.over_provisioned_lambda,
        estimate=rules.estimate_over_provisioned_lambda,
    ),
    Scenario(
        id="over_provisioned_instance",
        name="Over-provisioned EC2 Instance",
        description="EC2 instance with much more CPU/memory than utilized",
        resource_type=C.INSTANCES.value,
        action="rightsize_instance",
        auto_safe=False,
        severity=Severity.MEDIUM,
        base_confidence=80,
        predicate=rules.over_provisioned_instance,
        estimate=rules.estimate_over_provisioned_instance,
    ),
    Scenario(
        id="static_asg",
        name="Static Auto Scaling Group",
        description="ASG with min=max=desired capacity that never scales",
        resource_type=C.AUTOSCALING_GROUPS.value,
        action="enable_asg_scaling",
        auto_safe=False,
        severity=Severity.LOW,
        base_confidence=75,
        predicate=rules.static_asg,
        estimate=rules.estimate_static_asg,
    ),
    Scenario(
        id="empty_load_balancer",
        name="Load Balancer with No Targets",
        description="Load balancer with zero registered or healthy targets",
        resource_type=C.LOAD_BALANCERS.value,
        action="delete_empty_lb",
        auto_safe=False,
        severity=Severity.MEDIUM,
        base_confidence=85,
        predicate=rules.empty_load_balancer,
        estimate=rules.estimate_empty_load_balancer,
    ),
    Scenario(
        id="over_configured_lambda_timeout",
        name="Over-Configured Lambda Timeout",
        description="Lambda with timeout much higher than actual execution duration",
        resource_type=C.LAMBDA_FUNCTIONS.value,
        action="optimize_lambda_timeout",
        auto_safe=False,
        severity=Severity.LOW,
        base_confidence=80,
        predicate=rules.over_configured_lambda_timeout,
        estimate=rules.estimate_over_configured_lambda_timeout,
    ),
)

CATALOG = build_catalog(SCENARIOS)
