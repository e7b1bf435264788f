"""Database models."""

from finops_agent.models.audit_log import ActionAuditLog
from finops_agent.models.recommendation import (
    ImpactLevel,
    Recommendation,
    RecommendationStatus,
    RiskLevel,
)
from finops_agent.models.resource import (
    RESOURCE_MODELS,
    AutoscalingGroup,
    CacheCluster,
    ElasticIp,
    Instance,
    LambdaFunction,
    LoadBalancer,
    LogGroup,
    OptimizationPolicy,
    RdsInstance,
    ResourceCategory,
    S3Bucket,
    Snapshot,
    Volume,
)
from finops_agent.models.setting import Setting

__all__ = [
    "ActionAuditLog",
    "AutoscalingGroup",
    "CacheCluster",
    "ElasticIp",
    "ImpactLevel",
    "Instance",
    "LambdaFunction",
    "LoadBalancer",
    "LogGroup",
    "OptimizationPolicy",
    "RESOURCE_MODELS",
    "RdsInstance",
    "Recommendation",
    "RecommendationStatus",
    "ResourceCategory",
    "RiskLevel",
    "S3Bucket",
    "Setting",
    "Snapshot",
    "Volume",
]
