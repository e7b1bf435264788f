"""
Remediation executor.

Applies catalog actions to the Resource Store. Every attempt is
compare-and-act: the resource is re-read, the policy lock re-checked, and the
detection condition re-evaluated before anything is written, so a batch can
be replayed safely. Resizes leave a ``last_remediation`` marker on the row;
while the row still has the shape the marker records, the same resize is a
no-op. Failures come back as ExecutionResult values and are audited like
successes.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Callable

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from finops_agent.core.config import settings
from finops_agent.core.exceptions import (
    PolicyViolation,
    RemediationError,
    UnknownActionError,
    UnknownScenarioError,
)
from finops_agent.core.timeutils import utcnow
from finops_agent.crud.audit_log import append_audit_entry
from finops_agent.crud.resource_store import ResourceStore
from finops_agent.models.resource import OptimizationPolicy, ResourceCategory
from finops_agent.schemas.execution import (
    ExecuteActionParams,
    ExecutionErrorKind,
    ExecutionResult,
)
from finops_agent.schemas.resource import ResourceRecord
from finops_agent.services import policy_lock
from finops_agent.services.scenario_catalog import ACTIONS, CATALOG, ActionKind, ScenarioCatalog
from finops_agent.services.waste_rules import (
    DEFAULT_LAMBDA_DURATION_MS,
    DEFAULT_LOG_RETENTION_DAYS,
    NONCURRENT_VERSION_EXPIRATION_DAYS,
    RuleContext,
    downsized_cache_shape,
    recommended_lambda_timeout,
)

logger = structlog.get_logger()

INTELLIGENT_TIERING_RULE_ID = "intelligent-tiering"
VERSION_EXPIRATION_RULE_ID = "expire-noncurrent-versions"


@dataclass
class Mutation:
    """What an action will write. ``fields=None`` means delete the row."""

    message: str
    previous_state: dict[str, Any]
    new_state: dict[str, Any]
    fields: dict[str, Any] | None = field(default=None)


# Already-remediated checks: True when the action has nothing left to do


def _lifecycle_rule_ids(record) -> set[str]:
    return {rule.get("id") for rule in record.lifecycle_rules or []}


def _has_noncurrent_expiration(record) -> bool:
    return any(rule.get("noncurrent_version_expiration") for rule in record.lifecycle_rules or [])


def _already_resized(record, action: str) -> bool:
    """True when this action already resized the row and nothing has changed it since."""
    marker = record.last_remediation
    if not marker or marker.get("action") != action:
        return False
    new_state = marker.get("new_state") or {}
    return bool(new_state) and all(getattr(record, key, None) == value for key, value in new_state.items())


def _int_detail(params: ExecuteActionParams, key: str) -> int | None:
    value = params.details.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise RemediationError(f"Invalid {key} in detection details: {value!r}")
    return value


def _str_detail(params: ExecuteActionParams, key: str) -> str | None:
    value = params.details.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not value:
        raise RemediationError(f"Invalid {key} in detection details: {value!r}")
    return value


def _target_instance_type(record, params: ExecuteActionParams) -> str:
    target = _str_detail(params, "recommended_type")
    if not target:
        raise RemediationError("No recommended instance type provided for rightsizing")
    return target


def _target_asg_capacity(record, params: ExecuteActionParams) -> int:
    target = _int_detail(params, "optimal_capacity")
    if target is None:
        target = max(1, record.desired_capacity // 2)
    return target


def _target_cache_shape(record, params: ExecuteActionParams) -> tuple[str, int]:
    node_type = _str_detail(params, "recommended_node_type")
    nodes = _int_detail(params, "recommended_num_cache_nodes")
    if node_type is None or nodes is None:
        return downsized_cache_shape(record)
    return node_type, nodes


def _target_lambda_memory(record, params: ExecuteActionParams) -> int:
    return _int_detail(params, "recommended_memory_mb") or max(128, record.memory_mb // 2)


def _target_lambda_timeout(record, params: ExecuteActionParams) -> int:
    target = _int_detail(params, "recommended_timeout_seconds")
    if target:
        return target
    duration = record.avg_duration_ms if record.avg_duration_ms is not None else DEFAULT_LAMBDA_DURATION_MS
    return recommended_lambda_timeout(duration)


REMEDIATED: dict[str, Callable[[Any, ExecuteActionParams], bool]] = {
    "terminate_instance": lambda r, p: r.state == "terminated",
    "stop_instance": lambda r, p: r.state in ("stopped", "terminated"),
    "rightsize_instance": lambda r, p: r.instance_type == _target_instance_type(r, p),
    "terminate_asg": lambda r, p: r.desired_capacity == 0,
    "scale_down_asg": lambda r, p: r.desired_capacity <= _target_asg_capacity(r, p),
    "enable_asg_scaling": lambda r, p: r.min_size < r.max_size,
    "stop_rds": lambda r, p: r.state == "stopped",
    "disable_multi_az": lambda r, p: not r.multi_az,
    "downsize_cache": lambda r, p: (r.node_type, r.num_cache_nodes) == _target_cache_shape(r, p),
    "rightsize_lambda": lambda r, p: r.memory_mb <= _target_lambda_memory(r, p),
    "optimize_lambda_timeout": lambda r, p: r.timeout_seconds <= _target_lambda_timeout(r, p),
    "add_lifecycle_policy": lambda r, p: INTELLIGENT_TIERING_RULE_ID in _lifecycle_rule_ids(r),
    "add_version_expiration": lambda r, p: _has_noncurrent_expiration(r),
    "set_retention": lambda r, p: r.retention_in_days is not None,
    "delete_volume": lambda r, p: r.state == "deleted",
    "upgrade_volume_type": lambda r, p: r.volume_type != "gp2",
}


# Mutation plans


def _terminate_instance(r, p) -> Mutation:
    return Mutation(
        message=f"Instance {p.resource_name} terminated",
        previous_state={"state": r.state},
        new_state={"state": "terminated"},
        fields={"state": "terminated"},
    )


def _stop_instance(r, p) -> Mutation:
    return Mutation(
        message=f"Instance {p.resource_name} stopped",
        previous_state={"state": r.state},
        new_state={"state": "stopped"},
        fields={"state": "stopped"},
    )


def _rightsize_instance(r, p) -> Mutation:
    target = _target_instance_type(r, p)
    return Mutation(
        message=f"Instance {p.resource_name} rightsized from {r.instance_type} to {target}",
        previous_state={"instance_type": r.instance_type},
        new_state={"instance_type": target},
        fields={"instance_type": target},
    )


def _terminate_asg(r, p) -> Mutation:
    new = {"desired_capacity": 0, "min_size": 0, "max_size": 0}
    return Mutation(
        message=f"ASG {p.resource_name} terminated (capacity set to 0)",
        previous_state={"desired_capacity": r.desired_capacity, "min_size": r.min_size, "max_size": r.max_size},
        new_state=new,
        fields=new,
    )


def _scale_down_asg(r, p) -> Mutation:
    desired = _target_asg_capacity(r, p)
    new = {"desired_capacity": desired, "min_size": min(desired, r.min_size)}
    return Mutation(
        message=f"ASG {p.resource_name} scaled down from {r.desired_capacity} to {desired}",
        previous_state={"desired_capacity": r.desired_capacity, "min_size": r.min_size},
        new_state=new,
        fields=new,
    )


def _enable_asg_scaling(r, p) -> Mutation:
    new = {"min_size": 1, "max_size": max(r.desired_capacity * 2, 4)}
    return Mutation(
        message=f"ASG {p.resource_name} scaling enabled (min: {new['min_size']}, max: {new['max_size']})",
        previous_state={"desired_capacity": r.desired_capacity, "min_size": r.min_size, "max_size": r.max_size},
        new_state=new,
        fields=new,
    )


def _stop_rds(r, p) -> Mutation:
    return Mutation(
        message=f"RDS instance {p.resource_name} stopped",
        previous_state={"state": r.state},
        new_state={"state": "stopped"},
        fields={"state": "stopped"},
    )


def _disable_multi_az(r, p) -> Mutation:
    return Mutation(
        message=f"Multi-AZ disabled for RDS {p.resource_name}",
        previous_state={"multi_az": r.multi_az},
        new_state={"multi_az": False},
        fields={"multi_az": False},
    )


def _downsize_cache(r, p) -> Mutation:
    node_type, nodes = _target_cache_shape(r, p)
    new = {"node_type": node_type, "num_cache_nodes": nodes}
    return Mutation(
        message=(
            f"Cache cluster {p.resource_name} downsized from {r.num_cache_nodes}x {r.node_type} "
            f"to {nodes}x {node_type}"
        ),
        previous_state={"node_type": r.node_type, "num_cache_nodes": r.num_cache_nodes},
        new_state=new,
        fields=new,
    )


def _delete(label: str) -> Callable[[Any, ExecuteActionParams], Mutation]:
    def plan(r, p) -> Mutation:
        return Mutation(
            message=f"{label} {p.resource_name} deleted",
            previous_state=r.model_dump(
                mode="json", exclude={"tags", "created_at", "updated_at", "last_remediation"}
            ),
            new_state={"deleted": True},
        )

    return plan


def _release_eip(r, p) -> Mutation:
    return Mutation(
        message=f"Elastic IP {r.public_ip or p.resource_name} released",
        previous_state={"public_ip": r.public_ip, "associated_instance_id": r.associated_instance_id},
        new_state={"released": True},
    )


def _rightsize_lambda(r, p) -> Mutation:
    memory = _target_lambda_memory(r, p)
    return Mutation(
        message=f"Lambda {p.resource_name} rightsized from {r.memory_mb}MB to {memory}MB",
        previous_state={"memory_mb": r.memory_mb},
        new_state={"memory_mb": memory},
        fields={"memory_mb": memory},
    )


def _optimize_lambda_timeout(r, p) -> Mutation:
    timeout = _target_lambda_timeout(r, p)
    return Mutation(
        message=f"Lambda {p.resource_name} timeout optimized from {r.timeout_seconds}s to {timeout}s",
        previous_state={"timeout_seconds": r.timeout_seconds},
        new_state={"timeout_seconds": timeout},
        fields={"timeout_seconds": timeout},
    )


def _add_lifecycle_policy(r, p) -> Mutation:
    rules = list(r.lifecycle_rules or []) + [
        {
            "id": INTELLIGENT_TIERING_RULE_ID,
            "status": "Enabled",
            "transitions": [
                {"days": 30, "storage_class": "INTELLIGENT_TIERING"},
                {"days": 90, "storage_class": "GLACIER"},
            ],
        }
    ]
    return Mutation(
        message=f"Lifecycle policy added to bucket {p.resource_name}",
        previous_state={"lifecycle_rules": r.lifecycle_rules},
        new_state={"lifecycle_rules": rules},
        fields={"lifecycle_rules": rules},
    )


def _add_version_expiration(r, p) -> Mutation:
    rules = list(r.lifecycle_rules or []) + [
        {
            "id": VERSION_EXPIRATION_RULE_ID,
            "status": "Enabled",
            "noncurrent_version_expiration": {"days": NONCURRENT_VERSION_EXPIRATION_DAYS},
        }
    ]
    return Mutation(
        message=(
            f"Version expiration ({NONCURRENT_VERSION_EXPIRATION_DAYS} days) added to bucket {p.resource_name}"
        ),
        previous_state={"lifecycle_rules": r.lifecycle_rules},
        new_state={"lifecycle_rules": rules},
        fields={"lifecycle_rules": rules},
    )


def _set_retention(r, p) -> Mutation:
    return Mutation(
        message=f"Retention set to {DEFAULT_LOG_RETENTION_DAYS} days on log group {p.resource_name}",
        previous_state={"retention_in_days": r.retention_in_days},
        new_state={"retention_in_days": DEFAULT_LOG_RETENTION_DAYS},
        fields={"retention_in_days": DEFAULT_LOG_RETENTION_DAYS},
    )


def _delete_volume(r, p) -> Mutation:
    return Mutation(
        message=f"Volume {p.resource_name} deleted",
        previous_state={"state": r.state, "size_gb": r.size_gb},
        new_state={"state": "deleted"},
        fields={"state": "deleted"},
    )


def _upgrade_volume_type(r, p) -> Mutation:
    return Mutation(
        message=f"Volume {p.resource_name} upgraded from {r.volume_type} to gp3",
        previous_state={"volume_type": r.volume_type},
        new_state={"volume_type": "gp3"},
        fields={"volume_type": "gp3"},
    )


HANDLERS: dict[str, Callable[[Any, ExecuteActionParams], Mutation]] = {
    "terminate_instance": _terminate_instance,
    "stop_instance": _stop_instance,
    "rightsize_instance": _rightsize_instance,
    "terminate_asg": _terminate_asg,
    "scale_down_asg": _scale_down_asg,
    "enable_asg_scaling": _enable_asg_scaling,
    "stop_rds": _stop_rds,
    "disable_multi_az": _disable_multi_az,
    "downsize_cache": _downsize_cache,
    "delete_lb": _delete("Load balancer"),
    "delete_empty_lb": _delete("Load balancer"),
    "rightsize_lambda": _rightsize_lambda,
    "delete_lambda": _delete("Lambda"),
    "optimize_lambda_timeout": _optimize_lambda_timeout,
    "add_lifecycle_policy": _add_lifecycle_policy,
    "add_version_expiration": _add_version_expiration,
    "set_retention": _set_retention,
    "release_eip": _release_eip,
    "delete_volume": _delete_volume,
    "upgrade_volume_type": _upgrade_volume_type,
    "delete_snapshot": _delete("Snapshot"),
    "delete_orphaned_snapshot": _delete("Snapshot"),
}


class _NotFound(Exception):
    """Target resource is gone and the action is not a delete."""


class RemediationExecutor:
    """
    Executes remediation actions against the Resource Store.

    Args:
        db: Database session shared with the store and the audit log
        store: Resource Store bound to the same session
        catalog: Scenario catalog for predicate re-checks
        timeout_seconds: Upper bound for a single action
        actor: Name written to the audit log
    """

    def __init__(
        self,
        db: AsyncSession,
        store: ResourceStore | None = None,
        catalog: ScenarioCatalog = CATALOG,
        timeout_seconds: float | None = None,
        actor: str | None = None,
    ):
        self.db = db
        self.store = store or ResourceStore(db)
        self.catalog = catalog
        self.timeout_seconds = timeout_seconds or settings.REMEDIATION_TIMEOUT_SECONDS
        self.actor = actor or settings.AUTOMATION_ACTOR

    async def execute_batch(
        self, params_list: list[ExecuteActionParams], enforce_policy_lock: bool = True
    ) -> list[ExecutionResult]:
        """
        Execute actions one after another.

        One failure never stops the batch; the output has one result per input.
        """
        results = []
        for params in params_list:
            results.append(await self.execute_action(params, enforce_policy_lock=enforce_policy_lock))
        return results

    async def execute_action(
        self,
        params: ExecuteActionParams,
        enforce_policy_lock: bool = True,
        actor: str | None = None,
    ) -> ExecutionResult:
        """
        Execute one action. Never raises: errors outside the known kinds come
        back as UNEXPECTED results so a batch keeps going.

        Args:
            params: Action, target resource and detection details
            enforce_policy_lock: Re-check the policy lock before mutating.
                Human-approved recommendations pass False. An ignore
                policy is refused either way.
            actor: Audit actor, defaults to the executor's actor

        Returns:
            ExecutionResult (success, no-op, or failure with error_kind)
        """
        start = time.perf_counter()
        executed_at = utcnow()

        def result(
            success: bool,
            message: str,
            error_kind: ExecutionErrorKind | None = None,
            noop: bool = False,
            mutation: Mutation | None = None,
        ) -> ExecutionResult:
            return ExecutionResult(
                resource_id=params.resource_id,
                resource_type=params.resource_type,
                resource_name=params.resource_name,
                action=params.action,
                scenario_id=params.scenario_id,
                detection_id=params.detection_id,
                success=success,
                noop=noop,
                error_kind=error_kind,
                message=message,
                previous_state=mutation.previous_state if mutation else None,
                new_state=mutation.new_state if mutation else None,
                executed_at=executed_at,
                duration_ms=max(0, round((time.perf_counter() - start) * 1000)),
            )

        logger.info(
            "executor.action_started",
            action=params.action,
            resource_type=params.resource_type,
            resource_id=params.resource_id,
        )

        try:
            outcome = await asyncio.wait_for(
                self._compare_and_act(params, enforce_policy_lock), timeout=self.timeout_seconds
            )
            if isinstance(outcome, Mutation):
                execution = result(True, outcome.message, mutation=outcome)
            else:
                execution = result(True, outcome, noop=True)
        except asyncio.TimeoutError:
            execution = result(
                False,
                f"Action {params.action} timed out after {self.timeout_seconds}s",
                ExecutionErrorKind.TIMEOUT,
            )
        except UnknownActionError as e:
            execution = result(False, str(e), ExecutionErrorKind.UNKNOWN_ACTION)
        except UnknownScenarioError as e:
            execution = result(False, str(e), ExecutionErrorKind.UNKNOWN_SCENARIO)
        except PolicyViolation as e:
            execution = result(False, str(e), ExecutionErrorKind.POLICY_VIOLATION)
        except _NotFound as e:
            execution = result(False, str(e), ExecutionErrorKind.NOT_FOUND)
        except (RemediationError, SQLAlchemyError, ValueError) as e:
            execution = result(False, f"Remediation failed: {e}", ExecutionErrorKind.REMEDIATION_ERROR)
        except Exception as e:
            logger.exception(
                "executor.unexpected_error",
                action=params.action,
                resource_id=params.resource_id,
                error=str(e),
            )
            execution = result(False, f"Unexpected error: {e}", ExecutionErrorKind.UNEXPECTED)

        if execution.success:
            logger.info(
                "executor.action_completed",
                action=params.action,
                resource_id=params.resource_id,
                noop=execution.noop,
                duration_ms=execution.duration_ms,
            )
        else:
            logger.warning(
                "executor.action_failed",
                action=params.action,
                resource_id=params.resource_id,
                error_kind=execution.error_kind.value if execution.error_kind else None,
                error=execution.message,
            )
            await self.db.rollback()

        await self._audit(execution, actor or self.actor)
        return execution

    async def _audit(self, execution: ExecutionResult, actor: str) -> None:
        try:
            await append_audit_entry(self.db, execution, actor)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "executor.audit_failed",
                action=execution.action,
                resource_id=execution.resource_id,
                error=str(e),
            )

    async def _compare_and_act(self, params: ExecuteActionParams, enforce_policy_lock: bool) -> Mutation | str:
        """
        Re-read, re-check and mutate.

        Returns:
            The applied Mutation, or a message when there was nothing to do
        """
        spec = ACTIONS.get(params.action)
        if spec is None or params.action not in HANDLERS:
            raise UnknownActionError(params.action)

        try:
            category = ResourceCategory(params.resource_type)
        except ValueError:
            raise RemediationError(f"Unknown resource type: {params.resource_type}") from None
        if category.value not in spec.resource_types:
            raise RemediationError(f"Action {params.action} cannot act on {params.resource_type}")

        scenario = self.catalog.lookup(params.scenario_id) if params.scenario_id else None

        record = await self.store.get(category, params.resource_id)
        if record is None:
            if spec.kind == ActionKind.DELETE:
                return f"Resource {params.resource_id} already removed"
            raise _NotFound(f"Resource not found: {params.resource_type}/{params.resource_id}")

        self._check_policy(record, enforce_policy_lock)

        if spec.kind == ActionKind.RESIZE and _already_resized(record, params.action):
            return f"Resource {params.resource_id} already remediated"
        remediated = REMEDIATED.get(params.action)
        if remediated is not None and remediated(record, params):
            return f"Resource {params.resource_id} already remediated"

        if scenario is not None and not scenario.matches(record, await self._rule_context(category)):
            return f"Condition for {scenario.id} no longer holds on {params.resource_id}"

        mutation = HANDLERS[params.action](record, params)

        fields = mutation.fields
        if fields is not None and spec.kind == ActionKind.RESIZE:
            fields = {
                **fields,
                "last_remediation": {
                    "action": params.action,
                    "scenario_id": params.scenario_id,
                    "applied_at": utcnow().isoformat(),
                    "new_state": mutation.new_state,
                },
            }

        if fields is None:
            if not await self.store.delete(category, params.resource_id):
                return f"Resource {params.resource_id} already removed"
        elif await self.store.update(category, params.resource_id, fields) is None:
            raise _NotFound(f"Resource not found: {params.resource_type}/{params.resource_id}")

        return mutation

    def _check_policy(self, record: ResourceRecord, enforce_policy_lock: bool) -> None:
        # ignore holds even for approved work; only the lock can be waived
        if record.optimization_policy == OptimizationPolicy.IGNORE.value:
            raise PolicyViolation(record.id, "optimization policy is ignore")
        if enforce_policy_lock and policy_lock.is_policy_locked(record):
            raise PolicyViolation(record.id, policy_lock.get_lock_reason(record))

    async def _rule_context(self, category: ResourceCategory) -> RuleContext:
        live_volume_ids: frozenset[str] = frozenset()
        if category == ResourceCategory.SNAPSHOTS:
            live_volume_ids = await self.store.live_volume_ids()
        return RuleContext(now=utcnow(), live_volume_ids=live_volume_ids)
