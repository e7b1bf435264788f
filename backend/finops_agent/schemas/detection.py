"""Detection Pydantic schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class Detection(BaseModel):
    """A resource matching a waste scenario. Recomputed every tick, never persisted."""

    id: str = Field(description="<scenario_id>-<resource_id>")
    scenario_id: str
    scenario_name: str
    resource_id: str
    resource_name: str
    resource_type: str
    account_id: str | None = None
    region: str | None = None
    env: str | None = None
    action: str
    severity: str
    confidence: int = Field(ge=0, le=100)
    potential_savings: float = Field(ge=0)
    current_cost: float = Field(ge=0)
    details: dict[str, Any] = Field(default_factory=dict)
    observed_at: datetime


class DetectionSummary(BaseModel):
    """Order-independent aggregates over one detection pass."""

    total_resources: int = 0
    resource_counts: dict[str, int] = Field(default_factory=dict)
    waste_detected: int = 0
    total_monthly_cost: float = 0.0
    total_potential_savings: float = 0.0
    auto_optimizable_savings: float = 0.0
    by_scenario: dict[str, int] = Field(default_factory=dict)
    savings_by_scenario: dict[str, float] = Field(default_factory=dict)
    by_severity: dict[str, int] = Field(default_factory=dict)
    failed_categories: dict[str, str] = Field(
        default_factory=dict, description="Category -> reason for categories that could not be read"
    )


class DetectionResult(BaseModel):
    """Detector output."""

    detections: list[Detection]
    summary: DetectionSummary


class ScenarioInfo(BaseModel):
    """Public description of a catalog scenario."""

    id: str
    name: str
    description: str
    resource_type: str
    action: str
    auto_safe: bool
    severity: str
    base_confidence: int


class ScenarioList(BaseModel):
    """Schema for the scenario listing endpoint."""

    total_scenarios: int
    auto_safe_count: int
    approval_required_count: int
    scenarios: list[ScenarioInfo]
