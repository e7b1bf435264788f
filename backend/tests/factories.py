"""Test data builders that do not need the database."""

from datetime import datetime
from typing import Any

from finops_agent.core.timeutils import utcnow
from finops_agent.schemas.detection import Detection
from finops_agent.schemas.resource import InstanceRecord


def make_detection(
    scenario_id: str = "idle_rds",
    resource_id: str = "db-prod-1",
    resource_type: str = "rds_instances",
    action: str = "stop_rds",
    potential_savings: float = 100.0,
    current_cost: float = 125.0,
    env: str | None = "prod",
    observed_at: datetime | None = None,
    **details: Any,
) -> Detection:
    """Build a Detection without running the detector."""
    return Detection(
        id=f"{scenario_id}-{resource_id}",
        scenario_id=scenario_id,
        scenario_name=scenario_id.replace("_", " ").title(),
        resource_id=resource_id,
        resource_name=f"name-{resource_id}",
        resource_type=resource_type,
        env=env,
        action=action,
        severity="high",
        confidence=80,
        potential_savings=potential_savings,
        current_cost=current_cost,
        details=details,
        observed_at=observed_at or utcnow(),
    )


def make_instance_record(**overrides: Any) -> InstanceRecord:
    """Typed instance record with sensible defaults."""
    fields = {
        "id": "i-0001",
        "name": "api-server",
        "env": "dev",
        "instance_type": "m5.large",
        "state": "running",
        "avg_cpu_7d": 50.0,
    }
    fields.update(overrides)
    return InstanceRecord(**fields)
