"""
Typed resource records.

Every Resource Store row is validated into one of these records before any
rule or remediation looks at it. Metrics the store does not have are an
explicit ``None`` ("unknown"); rules must handle that case themselves.
"""

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from finops_agent.core.timeutils import as_utc
from finops_agent.models.resource import OptimizationPolicy, ResourceCategory


class ResourceRecord(BaseModel):
    """Fields shared by every resource category."""

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    category: str
    id: str
    name: str
    account_id: str | None = None
    region: str | None = None
    env: str | None = None
    optimization_policy: OptimizationPolicy = OptimizationPolicy.RECOMMEND_ONLY
    policy_locked: bool = False
    last_remediation: dict[str, Any] | None = None
    tags: dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("created_at", "updated_at")
    @classmethod
    def ensure_utc(cls, v: datetime | None) -> datetime | None:
        """SQLite hands back naive datetimes; treat them as UTC."""
        return as_utc(v)


class InstanceRecord(ResourceRecord):
    category: Literal["instances"] = "instances"
    instance_type: str
    state: str
    avg_cpu_7d: float | None = None
    current_cpu: float | None = None
    avg_memory_7d: float | None = None


class AutoscalingGroupRecord(ResourceRecord):
    category: Literal["autoscaling_groups"] = "autoscaling_groups"
    instance_type: str
    desired_capacity: int = Field(ge=0)
    min_size: int = Field(ge=0)
    max_size: int = Field(ge=0)
    avg_utilization_7d: float | None = None


class RdsInstanceRecord(ResourceRecord):
    category: Literal["rds_instances"] = "rds_instances"
    instance_class: str
    engine: str | None = None
    state: str
    multi_az: bool = False
    allocated_storage_gb: int | None = None
    avg_cpu_7d: float | None = None
    current_cpu: float | None = None
    avg_connections_7d: float | None = None


class CacheClusterRecord(ResourceRecord):
    category: Literal["cache_clusters"] = "cache_clusters"
    node_type: str
    engine: str | None = None
    state: str
    num_cache_nodes: int = Field(ge=0)
    avg_cpu_7d: float | None = None
    current_cpu: float | None = None
    avg_connections_7d: float | None = None


class LoadBalancerRecord(ResourceRecord):
    category: Literal["load_balancers"] = "load_balancers"
    lb_type: str
    avg_request_count_7d: float | None = None
    current_request_count: float | None = None
    target_count: int | None = None
    healthy_target_count: int | None = None


class LambdaFunctionRecord(ResourceRecord):
    category: Literal["lambda_functions"] = "lambda_functions"
    runtime: str | None = None
    memory_mb: int = Field(gt=0)
    timeout_seconds: int = Field(gt=0)
    invocations_7d: int | None = None
    avg_duration_ms: float | None = None
    avg_memory_used_mb_7d: float | None = None


class S3BucketRecord(ResourceRecord):
    category: Literal["s3_buckets"] = "s3_buckets"
    size_gb: float | None = None
    versioning_enabled: bool = False
    lifecycle_rules: list[dict[str, Any]] | None = None


class LogGroupRecord(ResourceRecord):
    category: Literal["log_groups"] = "log_groups"
    stored_gb: float | None = None
    retention_in_days: int | None = None


class ElasticIpRecord(ResourceRecord):
    category: Literal["elastic_ips"] = "elastic_ips"
    public_ip: str | None = None
    associated_instance_id: str | None = None


class VolumeRecord(ResourceRecord):
    category: Literal["volumes"] = "volumes"
    volume_type: str
    size_gb: int = Field(ge=0)
    state: str
    attached_instance_id: str | None = None


class SnapshotRecord(ResourceRecord):
    category: Literal["snapshots"] = "snapshots"
    size_gb: int = Field(ge=0)
    source_volume_id: str | None = None
    state: str


AnyResourceRecord = Annotated[
    Union[
        InstanceRecord,
        AutoscalingGroupRecord,
        RdsInstanceRecord,
        CacheClusterRecord,
        LoadBalancerRecord,
        LambdaFunctionRecord,
        S3BucketRecord,
        LogGroupRecord,
        ElasticIpRecord,
        VolumeRecord,
        SnapshotRecord,
    ],
    Field(discriminator="category"),
]

RECORD_TYPES: dict[ResourceCategory, type[ResourceRecord]] = {
    ResourceCategory.INSTANCES: InstanceRecord,
    ResourceCategory.AUTOSCALING_GROUPS: AutoscalingGroupRecord,
    ResourceCategory.RDS_INSTANCES: RdsInstanceRecord,
    ResourceCategory.CACHE_CLUSTERS: CacheClusterRecord,
    ResourceCategory.LOAD_BALANCERS: LoadBalancerRecord,
    ResourceCategory.LAMBDA_FUNCTIONS: LambdaFunctionRecord,
    ResourceCategory.S3_BUCKETS: S3BucketRecord,
    ResourceCategory.LOG_GROUPS: LogGroupRecord,
    ResourceCategory.ELASTIC_IPS: ElasticIpRecord,
    ResourceCategory.VOLUMES: VolumeRecord,
    ResourceCategory.SNAPSHOTS: SnapshotRecord,
}


class PolicyUpdate(BaseModel):
    """Schema for changing a resource's optimization policy."""

    policy: OptimizationPolicy


class LockUpdate(BaseModel):
    """Schema for setting or clearing a manual policy lock."""

    locked: bool


class PolicyState(BaseModel):
    """Schema for a resource's current policy state."""

    resource_id: str
    resource_type: ResourceCategory
    policy: OptimizationPolicy
    label: str
    description: str
    locked: bool
    lock_reason: str | None
    env: str | None


class PolicyChange(BaseModel):
    """Schema for the result of a policy update."""

    success: bool = True
    resource_id: str
    resource_type: ResourceCategory
    previous_policy: OptimizationPolicy
    new_policy: OptimizationPolicy
