"""Remediation execution Pydantic schemas."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ExecutionErrorKind(str, Enum):
    """Why a remediation attempt failed."""

    POLICY_VIOLATION = "policy_violation"
    REMEDIATION_ERROR = "remediation_error"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    UNKNOWN_ACTION = "unknown_action"
    UNKNOWN_SCENARIO = "unknown_scenario"
    UNEXPECTED = "unexpected"


class ExecuteActionParams(BaseModel):
    """Inputs for one remediation action."""

    action: str
    resource_type: str
    resource_id: str
    resource_name: str
    detection_id: str | None = None
    scenario_id: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class ExecutionResult(BaseModel):
    """Outcome of one remediation attempt. Never raised, always returned."""

    resource_id: str
    resource_type: str
    resource_name: str | None = None
    action: str
    scenario_id: str | None = None
    detection_id: str | None = None
    success: bool
    noop: bool = False
    error_kind: ExecutionErrorKind | None = None
    message: str
    previous_state: dict[str, Any] | None = None
    new_state: dict[str, Any] | None = None
    executed_at: datetime
    duration_ms: int = Field(ge=0)


class AuditLogEntry(BaseModel):
    """Schema for an audit log response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    action: str
    resource_type: str
    resource_id: str
    resource_name: str | None
    scenario_id: str | None
    detection_id: str | None
    success: bool
    message: str
    previous_state: dict[str, Any] | None
    new_state: dict[str, Any] | None
    executed_at: datetime
    duration_ms: int
    executed_by: str
