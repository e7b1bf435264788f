"""Drift tick Pydantic schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from finops_agent.schemas.detection import Detection, DetectionSummary
from finops_agent.schemas.execution import ExecutionResult


class ExecutionMode(str, Enum):
    """Whether auto-safe remediations run during a tick."""

    MANUAL = "manual"  # Detect and recommend only
    AUTOMATED = "automated"  # Execute auto-safe remediations


class ModeSource(str, Enum):
    """Where the tick's execution mode came from."""

    OVERRIDE = "override"
    SETTINGS = "settings"
    DEFAULT = "default"


class DriftTickRequest(BaseModel):
    """Schema for triggering a tick. Both fields are optional overrides."""

    mode: ExecutionMode | None = None
    auto_execute: bool | None = Field(
        default=None, description="Shorthand: true = automated, false = manual"
    )

    def mode_override(self) -> ExecutionMode | None:
        """Resolve the explicit override carried by this request, if any."""
        if self.mode is not None:
            return self.mode
        if self.auto_execute is not None:
            return ExecutionMode.AUTOMATED if self.auto_execute else ExecutionMode.MANUAL
        return None


class ExecutionBatch(BaseModel):
    """
    Auto-safe execution outcome for one tick.

    ``results`` holds one entry per attempted detection, in detection order;
    policy-locked detections appear as POLICY_VIOLATION failures. Detections
    on ignore-policy resources are not attempted and only count toward
    ``skipped_ignored``, so when ``executed`` is true
    ``attempted + skipped_ignored`` equals the tick's auto-safe count.
    """

    mode: ExecutionMode
    executed: bool = Field(description="False when execution was skipped entirely")
    attempted: int = Field(default=0, description="Results produced, locked ones included")
    succeeded: int = 0
    failed: int = 0
    skipped_ignored: int = 0
    results: list[ExecutionResult] = Field(default_factory=list)


class RecommendationHandoff(BaseModel):
    """Counts of recommendations created or refreshed by a tick."""

    created: int = 0
    refreshed: int = 0


class TickTiming(BaseModel):
    """Per-phase wall-clock timing in milliseconds."""

    detection_ms: int = 0
    execution_ms: int = 0
    recommendation_ms: int = 0
    total_ms: int = 0


class TickReport(BaseModel):
    """Aggregated output of one drift tick."""

    success: bool = True
    mode: ExecutionMode
    mode_source: ModeSource
    started_at: datetime
    completed_at: datetime
    detection_count: int
    auto_safe_count: int
    auto_safe_savings: float
    summary: DetectionSummary
    detections: list[Detection]
    execution: ExecutionBatch
    recommendations: RecommendationHandoff
    timing: TickTiming


class ExecutionModeState(BaseModel):
    """Schema for the persisted execution mode."""

    mode: ExecutionMode
    last_updated: datetime | None = None


class ExecutionModeUpdate(BaseModel):
    """Schema for changing the persisted execution mode."""

    mode: ExecutionMode


class DriftTickStatus(BaseModel):
    """Schema for the drift tick status read."""

    mode: ExecutionMode
    last_updated: datetime | None = None
    auto_safe_scenarios: list[str]


class ErrorEnvelope(BaseModel):
    """Structured failure body returned by the trigger surface."""

    success: bool = False
    error: str
    error_type: str
