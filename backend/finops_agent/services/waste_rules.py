"""
Waste detection rules.

Each scenario has a threshold predicate (does this resource waste money?)
and an estimator (how much, with what evidence). Predicates are also
re-evaluated by the executor right before mutating, so they must stay pure.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from finops_agent.schemas.resource import (
    AutoscalingGroupRecord,
    CacheClusterRecord,
    ElasticIpRecord,
    InstanceRecord,
    LambdaFunctionRecord,
    LoadBalancerRecord,
    LogGroupRecord,
    RdsInstanceRecord,
    S3BucketRecord,
    SnapshotRecord,
    VolumeRecord,
)
from finops_agent.services.cost_calculator import CostCalculator

NON_PROD_ENVS = ("preview", "dev", "staging", "test")
MULTI_AZ_NON_PROD_MARKERS = ("dev", "staging", "test", "preview", "development", "qa")
CI_MARKERS = ("ci", "runner", "jenkins", "gitlab-runner", "github-actions", "build")

OLD_SNAPSHOT_DAYS = 90
STALE_FEATURE_ENV_DAYS = 7
DEFAULT_S3_SIZE_GB = 100.0
DEFAULT_VERSIONED_S3_SIZE_GB = 50.0
DEFAULT_LOG_STORED_GB = 10.0
DEFAULT_LAMBDA_INVOCATIONS = 100_000
DEFAULT_LAMBDA_DURATION_MS = 100.0
DEFAULT_LOG_RETENTION_DAYS = 30
NONCURRENT_VERSION_EXPIRATION_DAYS = 30
UNUSED_LAMBDA_MONTHLY_COST = 0.50


@dataclass(frozen=True)
class RuleContext:
    """Inputs shared by every rule during one evaluation pass."""

    now: datetime
    live_volume_ids: frozenset[str] = frozenset()


@dataclass
class Estimate:
    """Cost evidence for one matched resource."""

    current_cost: float
    potential_savings: float
    confidence_boost: int = 0
    details: dict[str, Any] = field(default_factory=dict)


def days_since(when: datetime | None, now: datetime) -> int | None:
    """Whole days elapsed since a timestamp, or None when unknown."""
    if when is None:
        return None
    return math.floor((now - when).total_seconds() / 86400)


def _cpu(record: InstanceRecord | RdsInstanceRecord | CacheClusterRecord) -> float | None:
    return record.avg_cpu_7d if record.avg_cpu_7d is not None else record.current_cpu


def _env(record) -> str:
    return (record.env or "").lower()


def _is_non_prod(record) -> bool:
    return _env(record) in NON_PROD_ENVS


def _request_count(record: LoadBalancerRecord) -> float | None:
    if record.avg_request_count_7d is not None:
        return record.avg_request_count_7d
    return record.current_request_count


def _has_noncurrent_expiration(rules: list[dict[str, Any]] | None) -> bool:
    return any(rule.get("noncurrent_version_expiration") for rule in rules or [])


def optimal_lambda_memory(avg_used_mb: float) -> int:
    """Memory size giving 50% headroom over average use, in 64 MB steps."""
    return max(128, math.ceil(avg_used_mb * 1.5 / 64) * 64)


def recommended_lambda_timeout(avg_duration_ms: float) -> int:
    """Timeout of twice the average duration, never below 3 seconds."""
    return max(3, math.ceil(avg_duration_ms / 1000 * 2))


def optimal_asg_capacity(record: AutoscalingGroupRecord) -> int:
    """Capacity that brings utilization to roughly 50%."""
    utilization = record.avg_utilization_7d or 0.0
    return max(record.min_size, math.ceil(record.desired_capacity * utilization / 50))


# Instances


def idle_instance(record: InstanceRecord, ctx: RuleContext) -> bool:
    cpu = _cpu(record)
    return record.state == "running" and cpu is not None and cpu < 5


def estimate_idle_instance(record: InstanceRecord, ctx: RuleContext) -> Estimate:
    cost = CostCalculator.calculate_ec2_cost(record.instance_type)
    cpu = _cpu(record)
    boost = (10 if cpu is not None and cpu < 2 else 0) + (5 if _env(record) in ("dev", "staging") else 0)
    return Estimate(
        current_cost=cost,
        potential_savings=cost * 0.9,
        confidence_boost=boost,
        details={"instance_type": record.instance_type, "avg_cpu_7d": cpu, "state": record.state},
    )


def idle_ci_runner(record: InstanceRecord, ctx: RuleContext) -> bool:
    if record.state != "running" or record.avg_cpu_7d is None or record.avg_cpu_7d >= 5:
        return False
    haystack = record.name.lower() + " " + " ".join(
        f"{key}={value}".lower() for key, value in (record.tags or {}).items()
    )
    return any(marker in haystack for marker in CI_MARKERS)


def estimate_idle_ci_runner(record: InstanceRecord, ctx: RuleContext) -> Estimate:
    cost = CostCalculator.calculate_ec2_cost(record.instance_type)
    return Estimate(
        current_cost=cost,
        potential_savings=cost,
        confidence_boost=5 if record.avg_cpu_7d is not None and record.avg_cpu_7d < 2 else 0,
        details={"instance_type": record.instance_type, "avg_cpu_7d": record.avg_cpu_7d},
    )


def _is_off_hours(now: datetime) -> bool:
    return now.weekday() >= 5 or now.hour < 7 or now.hour > 19


def off_hours_dev(record: InstanceRecord, ctx: RuleContext) -> bool:
    return _is_off_hours(ctx.now) and record.state == "running" and _env(record) == "dev"


def estimate_off_hours_dev(record: InstanceRecord, ctx: RuleContext) -> Estimate:
    cost = CostCalculator.calculate_ec2_cost(record.instance_type)
    is_weekend = ctx.now.weekday() >= 5
    boost = (10 if is_weekend else 0) + (5 if record.avg_cpu_7d is not None and record.avg_cpu_7d < 5 else 0)
    return Estimate(
        current_cost=cost,
        potential_savings=cost * 0.6,
        confidence_boost=boost,
        details={"instance_type": record.instance_type, "is_weekend": is_weekend, "hour_utc": ctx.now.hour},
    )


def over_provisioned_instance(record: InstanceRecord, ctx: RuleContext) -> bool:
    cpu = _cpu(record)
    if record.state != "running" or cpu is None or not 5 <= cpu < 30:
        return False
    if record.avg_memory_7d is not None and record.avg_memory_7d >= 40:
        return False
    return CostCalculator.smaller_instance_type(record.instance_type) is not None


def estimate_over_provisioned_instance(record: InstanceRecord, ctx: RuleContext) -> Estimate:
    target = CostCalculator.smaller_instance_type(record.instance_type)
    cost = CostCalculator.calculate_ec2_cost(record.instance_type)
    target_cost = CostCalculator.calculate_ec2_cost(target) if target else cost
    cpu = _cpu(record)
    boost = (10 if cpu is not None and cpu < 15 else 0) + (
        5 if record.avg_memory_7d is not None and record.avg_memory_7d < 25 else 0
    )
    return Estimate(
        current_cost=cost,
        potential_savings=cost - target_cost,
        confidence_boost=boost,
        details={
            "current_type": record.instance_type,
            "recommended_type": target,
            "avg_cpu_7d": cpu,
            "avg_memory_7d": record.avg_memory_7d,
        },
    )


# Auto Scaling groups


def forgotten_preview(record: AutoscalingGroupRecord, ctx: RuleContext) -> bool:
    name = record.name.lower()
    is_preview = "preview" in _env(record) or "preview" in name or "pr-" in name
    utilization = record.avg_utilization_7d
    return record.desired_capacity > 0 and is_preview and (utilization is None or utilization < 10)


def estimate_asg_full(record: AutoscalingGroupRecord, ctx: RuleContext) -> Estimate:
    cost = CostCalculator.calculate_ec2_cost(record.instance_type, record.desired_capacity)
    age = days_since(record.created_at, ctx.now)
    boost = (10 if age is not None and age > 7 else 0) + (5 if age is not None and age > 14 else 0)
    return Estimate(
        current_cost=cost,
        potential_savings=cost,
        confidence_boost=boost,
        details={
            "instance_type": record.instance_type,
            "desired_capacity": record.desired_capacity,
            "avg_utilization_7d": record.avg_utilization_7d,
            "age_days": age,
        },
    )


def over_provisioned_asg(record: AutoscalingGroupRecord, ctx: RuleContext) -> bool:
    utilization = record.avg_utilization_7d
    return (
        record.desired_capacity > 1
        and utilization is not None
        and utilization < 30
        and record.desired_capacity > record.min_size
    )


def estimate_over_provisioned_asg(record: AutoscalingGroupRecord, ctx: RuleContext) -> Estimate:
    optimal = optimal_asg_capacity(record)
    unit_cost = CostCalculator.calculate_ec2_cost(record.instance_type)
    utilization = record.avg_utilization_7d or 0.0
    boost = (10 if utilization < 20 else 0) + (10 if utilization < 10 else 0)
    return Estimate(
        current_cost=unit_cost * record.desired_capacity,
        potential_savings=unit_cost * max(0, record.desired_capacity - optimal),
        confidence_boost=boost,
        details={
            "current_capacity": record.desired_capacity,
            "optimal_capacity": optimal,
            "avg_utilization_7d": record.avg_utilization_7d,
        },
    )


def stale_feature_env(record: AutoscalingGroupRecord, ctx: RuleContext) -> bool:
    name = record.name.lower()
    is_feature = "feature" in _env(record) or "feature" in name or "feat-" in name
    age = days_since(record.created_at, ctx.now)
    utilization = record.avg_utilization_7d
    return (
        record.desired_capacity > 0
        and is_feature
        and age is not None
        and age > STALE_FEATURE_ENV_DAYS
        and (utilization is None or utilization < 20)
    )


def static_asg(record: AutoscalingGroupRecord, ctx: RuleContext) -> bool:
    return (
        record.desired_capacity > 1
        and record.min_size == record.max_size == record.desired_capacity
    )


def estimate_static_asg(record: AutoscalingGroupRecord, ctx: RuleContext) -> Estimate:
    cost = CostCalculator.calculate_ec2_cost(record.instance_type, record.desired_capacity)
    return Estimate(
        current_cost=cost,
        potential_savings=cost * 0.3,
        details={
            "desired_capacity": record.desired_capacity,
            "min_size": record.min_size,
            "max_size": record.max_size,
        },
    )


# RDS


def idle_rds(record: RdsInstanceRecord, ctx: RuleContext) -> bool:
    if record.state != "available":
        return False
    cpu = _cpu(record)
    connections = record.avg_connections_7d
    if cpu is None and connections is None:
        return True
    if cpu is not None and cpu < 15:
        return True
    if connections is not None and connections <= 1:
        return True
    return _is_non_prod(record) and cpu is not None and cpu < 25 and (connections is None or connections < 5)


def estimate_idle_rds(record: RdsInstanceRecord, ctx: RuleContext) -> Estimate:
    cost = CostCalculator.estimate_monthly_cost(record.category, record.instance_class)
    cpu = _cpu(record)
    boost = (10 if cpu is not None and cpu < 1 else 0) + (10 if record.avg_connections_7d == 0 else 0)
    return Estimate(
        current_cost=cost,
        potential_savings=cost * 0.8,
        confidence_boost=boost,
        details={
            "instance_class": record.instance_class,
            "engine": record.engine,
            "avg_cpu_7d": cpu,
            "avg_connections_7d": record.avg_connections_7d,
            "metrics_available": cpu is not None or record.avg_connections_7d is not None,
        },
    )


def multi_az_non_prod(record: RdsInstanceRecord, ctx: RuleContext) -> bool:
    env = _env(record)
    return record.multi_az and any(marker in env for marker in MULTI_AZ_NON_PROD_MARKERS)


def estimate_multi_az_non_prod(record: RdsInstanceRecord, ctx: RuleContext) -> Estimate:
    cost = CostCalculator.estimate_monthly_cost(record.category, record.instance_class)
    return Estimate(
        current_cost=cost,
        potential_savings=cost * 0.5,
        details={"instance_class": record.instance_class, "multi_az": record.multi_az},
    )


# ElastiCache


def idle_cache(record: CacheClusterRecord, ctx: RuleContext) -> bool:
    if record.state != "available":
        return False
    cpu = _cpu(record)
    connections = record.avg_connections_7d
    if cpu is None and connections is None:
        return True
    if cpu is not None and cpu < 15:
        return True
    if connections is not None and connections <= 3:
        return True
    return _is_non_prod(record) and cpu is not None and cpu < 25 and (connections is None or connections < 10)


def downsized_cache_shape(record: CacheClusterRecord) -> tuple[str, int]:
    """Node type and count after scaling an idle cluster in by one step."""
    node_type = CostCalculator.smaller_cache_node_type(record.node_type) or record.node_type
    return node_type, min(record.num_cache_nodes, 1)


def estimate_idle_cache(record: CacheClusterRecord, ctx: RuleContext) -> Estimate:
    cost = CostCalculator.estimate_monthly_cost(record.category, record.node_type, quantity=record.num_cache_nodes)
    target_type, target_nodes = downsized_cache_shape(record)
    target_cost = CostCalculator.estimate_monthly_cost(record.category, target_type, quantity=target_nodes)
    cpu = _cpu(record)
    boost = (15 if cpu is not None and cpu < 1 else 0) + (10 if record.avg_connections_7d == 0 else 0)
    return Estimate(
        current_cost=cost,
        potential_savings=max(0.0, cost - target_cost),
        confidence_boost=boost,
        details={
            "node_type": record.node_type,
            "num_cache_nodes": record.num_cache_nodes,
            "recommended_node_type": target_type,
            "recommended_num_cache_nodes": target_nodes,
            "avg_cpu_7d": cpu,
            "avg_connections_7d": record.avg_connections_7d,
        },
    )


# Load balancers


def idle_load_balancer(record: LoadBalancerRecord, ctx: RuleContext) -> bool:
    requests = _request_count(record)
    return requests is None or requests < 1000


def estimate_idle_load_balancer(record: LoadBalancerRecord, ctx: RuleContext) -> Estimate:
    cost = CostCalculator.estimate_monthly_cost(record.category, utilization=0.1)
    requests = _request_count(record)
    return Estimate(
        current_cost=cost,
        potential_savings=cost,
        confidence_boost=15 if requests is not None and requests < 100 else 0,
        details={"lb_type": record.lb_type, "avg_request_count_7d": requests},
    )


def empty_load_balancer(record: LoadBalancerRecord, ctx: RuleContext) -> bool:
    if record.target_count == 0:
        return True
    return bool(record.target_count) and record.healthy_target_count == 0


def estimate_empty_load_balancer(record: LoadBalancerRecord, ctx: RuleContext) -> Estimate:
    cost = CostCalculator.estimate_monthly_cost(record.category, utilization=0)
    return Estimate(
        current_cost=cost,
        potential_savings=cost,
        details={"target_count": record.target_count, "healthy_target_count": record.healthy_target_count},
    )


# Lambda


def over_provisioned_lambda(record: LambdaFunctionRecord, ctx: RuleContext) -> bool:
    used = record.avg_memory_used_mb_7d
    return used is not None and used / record.memory_mb < 0.5


def _lambda_usage(record: LambdaFunctionRecord) -> tuple[float, int]:
    duration = record.avg_duration_ms if record.avg_duration_ms is not None else DEFAULT_LAMBDA_DURATION_MS
    if record.invocations_7d is None:
        return duration, DEFAULT_LAMBDA_INVOCATIONS
    return duration, round(record.invocations_7d * 30 / 7)


def estimate_over_provisioned_lambda(record: LambdaFunctionRecord, ctx: RuleContext) -> Estimate:
    used = record.avg_memory_used_mb_7d or 0.0
    optimal = optimal_lambda_memory(used)
    duration, invocations = _lambda_usage(record)
    cost = CostCalculator.calculate_lambda_cost(record.memory_mb, duration, invocations)
    optimized = CostCalculator.calculate_lambda_cost(optimal, duration, invocations)
    utilization_pct = used / record.memory_mb * 100
    boost = (10 if utilization_pct < 25 else 0) + (5 if utilization_pct < 10 else 0)
    return Estimate(
        current_cost=cost,
        potential_savings=max(0.0, cost - optimized),
        confidence_boost=boost,
        details={
            "memory_mb": record.memory_mb,
            "avg_memory_used_mb_7d": record.avg_memory_used_mb_7d,
            "recommended_memory_mb": optimal,
            "memory_utilization_pct": round(utilization_pct, 1),
        },
    )


def unused_lambda(record: LambdaFunctionRecord, ctx: RuleContext) -> bool:
    return not record.invocations_7d


def estimate_unused_lambda(record: LambdaFunctionRecord, ctx: RuleContext) -> Estimate:
    return Estimate(
        current_cost=UNUSED_LAMBDA_MONTHLY_COST,
        potential_savings=UNUSED_LAMBDA_MONTHLY_COST,
        details={"invocations_7d": record.invocations_7d, "runtime": record.runtime},
    )


def over_configured_lambda_timeout(record: LambdaFunctionRecord, ctx: RuleContext) -> bool:
    if record.avg_duration_ms is None or record.avg_duration_ms <= 0:
        return False
    avg_seconds = record.avg_duration_ms / 1000
    return record.timeout_seconds >= 10 and record.timeout_seconds >= avg_seconds * 3


def estimate_over_configured_lambda_timeout(record: LambdaFunctionRecord, ctx: RuleContext) -> Estimate:
    duration, invocations = _lambda_usage(record)
    cost = CostCalculator.calculate_lambda_cost(record.memory_mb, duration, invocations)
    return Estimate(
        current_cost=cost,
        potential_savings=cost * 0.1,
        details={
            "timeout_seconds": record.timeout_seconds,
            "avg_duration_ms": record.avg_duration_ms,
            "recommended_timeout_seconds": recommended_lambda_timeout(duration),
        },
    )


# S3


def s3_no_lifecycle(record: S3BucketRecord, ctx: RuleContext) -> bool:
    return not record.lifecycle_rules


def estimate_s3_no_lifecycle(record: S3BucketRecord, ctx: RuleContext) -> Estimate:
    size = record.size_gb if record.size_gb is not None else DEFAULT_S3_SIZE_GB
    cost = CostCalculator.calculate_s3_cost(size, "standard")
    tiered = CostCalculator.calculate_s3_cost(size, "intelligent")
    return Estimate(
        current_cost=cost,
        potential_savings=cost - tiered,
        details={"size_gb": size, "size_estimated": record.size_gb is None},
    )


def s3_no_version_expiration(record: S3BucketRecord, ctx: RuleContext) -> bool:
    return record.versioning_enabled and not _has_noncurrent_expiration(record.lifecycle_rules)


def estimate_s3_no_version_expiration(record: S3BucketRecord, ctx: RuleContext) -> Estimate:
    size = DEFAULT_VERSIONED_S3_SIZE_GB
    cost = CostCalculator.calculate_s3_cost(size, "standard")
    return Estimate(
        current_cost=cost,
        potential_savings=cost * 0.7,
        details={"estimated_version_storage_gb": size, "versioning_enabled": True},
    )


# CloudWatch logs


def log_no_retention(record: LogGroupRecord, ctx: RuleContext) -> bool:
    return record.retention_in_days is None


def estimate_log_no_retention(record: LogGroupRecord, ctx: RuleContext) -> Estimate:
    stored = record.stored_gb if record.stored_gb is not None else DEFAULT_LOG_STORED_GB
    cost = CostCalculator.estimate_monthly_cost(record.category, quantity=stored)
    return Estimate(
        current_cost=cost,
        potential_savings=cost * 0.9,
        details={"stored_gb": stored, "recommended_retention_days": DEFAULT_LOG_RETENTION_DAYS},
    )


# Elastic IPs


def orphaned_eip(record: ElasticIpRecord, ctx: RuleContext) -> bool:
    return record.associated_instance_id is None


def estimate_orphaned_eip(record: ElasticIpRecord, ctx: RuleContext) -> Estimate:
    cost = CostCalculator.estimate_monthly_cost(record.category)
    return Estimate(current_cost=cost, potential_savings=cost, details={"public_ip": record.public_ip})


# Volumes


def unattached_volume(record: VolumeRecord, ctx: RuleContext) -> bool:
    return record.state == "available"


def estimate_unattached_volume(record: VolumeRecord, ctx: RuleContext) -> Estimate:
    cost = CostCalculator.estimate_monthly_cost(record.category, record.volume_type, quantity=record.size_gb)
    age = days_since(record.created_at, ctx.now)
    return Estimate(
        current_cost=cost,
        potential_savings=cost,
        confidence_boost=10 if age is not None and age > 30 else 0,
        details={"volume_type": record.volume_type, "size_gb": record.size_gb, "age_days": age},
    )


def gp2_volume(record: VolumeRecord, ctx: RuleContext) -> bool:
    return record.state != "deleted" and record.volume_type == "gp2"


def estimate_gp2_volume(record: VolumeRecord, ctx: RuleContext) -> Estimate:
    cost = CostCalculator.estimate_monthly_cost(record.category, "gp2", quantity=record.size_gb)
    gp3_cost = CostCalculator.estimate_monthly_cost(record.category, "gp3", quantity=record.size_gb)
    return Estimate(
        current_cost=cost,
        potential_savings=cost - gp3_cost,
        details={"size_gb": record.size_gb, "current_type": "gp2", "recommended_type": "gp3"},
    )


# Snapshots


def old_snapshot(record: SnapshotRecord, ctx: RuleContext) -> bool:
    age = days_since(record.created_at, ctx.now)
    return age is not None and age > OLD_SNAPSHOT_DAYS


def estimate_old_snapshot(record: SnapshotRecord, ctx: RuleContext) -> Estimate:
    cost = CostCalculator.estimate_monthly_cost(record.category, quantity=record.size_gb)
    age = days_since(record.created_at, ctx.now) or 0
    boost = (15 if age > 180 else 0) + (10 if age > 365 else 0)
    return Estimate(
        current_cost=cost,
        potential_savings=cost,
        confidence_boost=boost,
        details={"size_gb": record.size_gb, "age_days": age},
    )


def orphaned_snapshot(record: SnapshotRecord, ctx: RuleContext) -> bool:
    return record.source_volume_id is not None and record.source_volume_id not in ctx.live_volume_ids


def estimate_orphaned_snapshot(record: SnapshotRecord, ctx: RuleContext) -> Estimate:
    cost = CostCalculator.estimate_monthly_cost(record.category, quantity=record.size_gb)
    return Estimate(
        current_cost=cost,
        potential_savings=cost,
        details={"size_gb": record.size_gb, "source_volume_id": record.source_volume_id},
    )
