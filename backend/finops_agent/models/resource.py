"""Resource Store tables, one per cloud resource category."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Float, Integer, String
from sqlalchemy.dialects.postgresql import JSON
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from finops_agent.core.database import Base


class ResourceCategory(str, Enum):
    """Resource category, equal to the backing table name."""

    INSTANCES = "instances"
    AUTOSCALING_GROUPS = "autoscaling_groups"
    RDS_INSTANCES = "rds_instances"
    CACHE_CLUSTERS = "cache_clusters"
    LOAD_BALANCERS = "load_balancers"
    LAMBDA_FUNCTIONS = "lambda_functions"
    S3_BUCKETS = "s3_buckets"
    LOG_GROUPS = "log_groups"
    ELASTIC_IPS = "elastic_ips"
    VOLUMES = "volumes"
    SNAPSHOTS = "snapshots"


class OptimizationPolicy(str, Enum):
    """Per-resource optimization policy."""

    AUTO_SAFE = "auto_safe"  # Eligible for autonomous remediation
    RECOMMEND_ONLY = "recommend_only"  # Findings go to the approval queue
    IGNORE = "ignore"  # Findings are reported but never acted on


class ResourceMixin:
    """Columns shared by every resource category."""

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    region: Mapped[str | None] = mapped_column(String(50), nullable=True)
    env: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)

    optimization_policy: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=OptimizationPolicy.RECOMMEND_ONLY.value,
    )
    policy_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Last resize applied by the executor: action, scenario_id, applied_at, new_state
    last_remediation: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    tags: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<{type(self).__name__} {self.id} ({self.env})>"


class Instance(ResourceMixin, Base):
    """EC2 instance."""

    __tablename__ = ResourceCategory.INSTANCES.value

    instance_type: Mapped[str] = mapped_column(String(50), nullable=False)
    state: Mapped[str] = mapped_column(String(30), nullable=False, default="running")
    avg_cpu_7d: Mapped[float | None] = mapped_column(Float, nullable=True)
    current_cpu: Mapped[float | None] = mapped_column(Float, nullable=True)
    avg_memory_7d: Mapped[float | None] = mapped_column(Float, nullable=True)


class AutoscalingGroup(ResourceMixin, Base):
    """Auto Scaling group."""

    __tablename__ = ResourceCategory.AUTOSCALING_GROUPS.value

    instance_type: Mapped[str] = mapped_column(String(50), nullable=False)
    desired_capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    min_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    avg_utilization_7d: Mapped[float | None] = mapped_column(Float, nullable=True)


class RdsInstance(ResourceMixin, Base):
    """RDS database instance."""

    __tablename__ = ResourceCategory.RDS_INSTANCES.value

    instance_class: Mapped[str] = mapped_column(String(50), nullable=False)
    engine: Mapped[str | None] = mapped_column(String(30), nullable=True)
    state: Mapped[str] = mapped_column(String(30), nullable=False, default="available")
    multi_az: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    allocated_storage_gb: Mapped[int | None] = mapped_column(Integer, nullable=True)
    avg_cpu_7d: Mapped[float | None] = mapped_column(Float, nullable=True)
    current_cpu: Mapped[float | None] = mapped_column(Float, nullable=True)
    avg_connections_7d: Mapped[float | None] = mapped_column(Float, nullable=True)


class CacheCluster(ResourceMixin, Base):
    """ElastiCache cluster."""

    __tablename__ = ResourceCategory.CACHE_CLUSTERS.value

    node_type: Mapped[str] = mapped_column(String(50), nullable=False)
    engine: Mapped[str | None] = mapped_column(String(30), nullable=True)
    state: Mapped[str] = mapped_column(String(30), nullable=False, default="available")
    num_cache_nodes: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    avg_cpu_7d: Mapped[float | None] = mapped_column(Float, nullable=True)
    current_cpu: Mapped[float | None] = mapped_column(Float, nullable=True)
    avg_connections_7d: Mapped[float | None] = mapped_column(Float, nullable=True)


class LoadBalancer(ResourceMixin, Base):
    """Application/network load balancer."""

    __tablename__ = ResourceCategory.LOAD_BALANCERS.value

    lb_type: Mapped[str] = mapped_column(String(20), nullable=False, default="application")
    avg_request_count_7d: Mapped[float | None] = mapped_column(Float, nullable=True)
    current_request_count: Mapped[float | None] = mapped_column(Float, nullable=True)
    target_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    healthy_target_count: Mapped[int | None] = mapped_column(Integer, nullable=True)


class LambdaFunction(ResourceMixin, Base):
    """Lambda function."""

    __tablename__ = ResourceCategory.LAMBDA_FUNCTIONS.value

    runtime: Mapped[str | None] = mapped_column(String(30), nullable=True)
    memory_mb: Mapped[int] = mapped_column(Integer, nullable=False, default=128)
    timeout_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    invocations_7d: Mapped[int | None] = mapped_column(Integer, nullable=True)
    avg_duration_ms: Mapped[float | None] = mapped_column(Float, nullable=True)
    avg_memory_used_mb_7d: Mapped[float | None] = mapped_column(Float, nullable=True)


class S3Bucket(ResourceMixin, Base):
    """S3 bucket."""

    __tablename__ = ResourceCategory.S3_BUCKETS.value

    size_gb: Mapped[float | None] = mapped_column(Float, nullable=True)
    versioning_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    lifecycle_rules: Mapped[list | None] = mapped_column(JSON, nullable=True)


class LogGroup(ResourceMixin, Base):
    """CloudWatch log group."""

    __tablename__ = ResourceCategory.LOG_GROUPS.value

    stored_gb: Mapped[float | None] = mapped_column(Float, nullable=True)
    retention_in_days: Mapped[int | None] = mapped_column(Integer, nullable=True)


class ElasticIp(ResourceMixin, Base):
    """Elastic IP address."""

    __tablename__ = ResourceCategory.ELASTIC_IPS.value

    public_ip: Mapped[str | None] = mapped_column(String(45), nullable=True)
    associated_instance_id: Mapped[str | None] = mapped_column(String(128), nullable=True)


class Volume(ResourceMixin, Base):
    """EBS volume."""

    __tablename__ = ResourceCategory.VOLUMES.value

    volume_type: Mapped[str] = mapped_column(String(20), nullable=False, default="gp3")
    size_gb: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    state: Mapped[str] = mapped_column(String(30), nullable=False, default="in-use")
    attached_instance_id: Mapped[str | None] = mapped_column(String(128), nullable=True)


class Snapshot(ResourceMixin, Base):
    """EBS snapshot."""

    __tablename__ = ResourceCategory.SNAPSHOTS.value

    size_gb: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    source_volume_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    state: Mapped[str] = mapped_column(String(30), nullable=False, default="completed")


RESOURCE_MODELS: dict[ResourceCategory, type[ResourceMixin]] = {
    ResourceCategory.INSTANCES: Instance,
    ResourceCategory.AUTOSCALING_GROUPS: AutoscalingGroup,
    ResourceCategory.RDS_INSTANCES: RdsInstance,
    ResourceCategory.CACHE_CLUSTERS: CacheCluster,
    ResourceCategory.LOAD_BALANCERS: LoadBalancer,
    ResourceCategory.LAMBDA_FUNCTIONS: LambdaFunction,
    ResourceCategory.S3_BUCKETS: S3Bucket,
    ResourceCategory.LOG_GROUPS: LogGroup,
    ResourceCategory.ELASTIC_IPS: ElasticIp,
    ResourceCategory.VOLUMES: Volume,
    ResourceCategory.SNAPSHOTS: Snapshot,
}
