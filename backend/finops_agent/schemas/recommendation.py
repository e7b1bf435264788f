"""Recommendation Pydantic schemas."""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from finops_agent.core.timeutils import as_utc


class RecommendationUpdate(BaseModel):
    """Schema for updating free-form recommendation fields."""

    user_notes: str | None = Field(default=None, max_length=5000)


class RecommendationReject(BaseModel):
    """Schema for rejecting a recommendation."""

    reason: str | None = Field(default=None, max_length=2000)


class RecommendationSnooze(BaseModel):
    """Schema for snoozing a recommendation."""

    days: int = Field(default=7, ge=1, description="Snooze duration in days")


class RecommendationSchedule(BaseModel):
    """Schema for scheduling a recommendation."""

    scheduled_for: datetime = Field(description="When the remediation should run (UTC)")

    @field_validator("scheduled_for")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        """Treat naive datetimes as UTC."""
        return as_utc(v)


class Recommendation(BaseModel):
    """Schema for recommendation response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    detection_id: str
    scenario_id: str
    scenario_name: str
    resource_type: str
    resource_id: str
    resource_name: str
    account_id: str | None
    region: str | None
    env: str | None
    action: str
    title: str
    description: str
    impact_level: str
    risk_level: str
    confidence: float
    current_monthly_cost: float
    potential_savings: float
    details: dict[str, Any] | None
    status: str
    snoozed_until: datetime | None
    scheduled_for: datetime | None
    rejection_reason: str | None
    user_notes: str | None
    executed_at: datetime | None
    execution_result: dict[str, Any] | None
    last_detected_at: datetime
    created_at: datetime
    updated_at: datetime
    created_by: str
    actioned_by: str | None

    @field_validator(
        "snoozed_until",
        "scheduled_for",
        "executed_at",
        "last_detected_at",
        "created_at",
        "updated_at",
    )
    @classmethod
    def ensure_utc(cls, v: datetime | None) -> datetime | None:
        """Normalize timestamps to aware UTC."""
        return as_utc(v)


class RecommendationSummary(BaseModel):
    """Schema for recommendation summary statistics."""

    total: int
    by_status: dict[str, int]
    total_potential_savings: float
    pending_savings: float
    by_resource_type: dict[str, int]
    by_scenario: dict[str, int]
