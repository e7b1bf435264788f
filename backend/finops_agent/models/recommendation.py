"""Recommendation database model."""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Float, Index, String, Text, text
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from finops_agent.core.database import Base


class RecommendationStatus(str, Enum):
    """Recommendation approval states."""

    PENDING = "pending"  # Awaiting human review
    APPROVED = "approved"  # Approved, not yet executed
    REJECTED = "rejected"  # Declined (terminal)
    SNOOZED = "snoozed"  # Hidden until snoozed_until
    SCHEDULED = "scheduled"  # Will execute at scheduled_for
    EXECUTED = "executed"  # Remediation applied (terminal)
    EXPIRED = "expired"  # Finding disappeared before review (terminal)


TERMINAL_STATUSES = frozenset(
    {
        RecommendationStatus.REJECTED,
        RecommendationStatus.EXECUTED,
        RecommendationStatus.EXPIRED,
    }
)
OPEN_STATUSES = frozenset(set(RecommendationStatus) - TERMINAL_STATUSES)

_OPEN_STATUS_SQL = text("status IN ('pending', 'approved', 'snoozed', 'scheduled')")


class ImpactLevel(str, Enum):
    """Savings impact bucket."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RiskLevel(str, Enum):
    """Operational risk of applying the remediation."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Recommendation(Base):
    """
    Human-reviewable remediation proposal.

    Created from a non-auto-safe detection and refreshed in place on later
    ticks. At most one open recommendation exists per
    (resource_id, scenario_id); the partial unique index enforces this
    against concurrent ticks.
    """

    __tablename__ = "recommendations"
    __table_args__ = (
        Index(
            "uq_recommendations_open_resource_scenario",
            "resource_id",
            "scenario_id",
            unique=True,
            postgresql_where=_OPEN_STATUS_SQL,
            sqlite_where=_OPEN_STATUS_SQL,
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        index=True,
    )

    # Source detection
    detection_id: Mapped[str] = mapped_column(String(300), nullable=False)
    scenario_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    scenario_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Target resource
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    resource_name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    region: Mapped[str | None] = mapped_column(String(50), nullable=True)
    env: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Proposal
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    impact_level: Mapped[str] = mapped_column(String(20), nullable=False)
    risk_level: Mapped[str] = mapped_column(String(20), nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    current_monthly_cost: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    potential_savings: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Workflow
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=RecommendationStatus.PENDING.value,
        index=True,
    )
    snoozed_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    scheduled_for: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    executed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    execution_result: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    last_detected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
    created_by: Mapped[str] = mapped_column(String(100), nullable=False, default="system")
    actioned_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        """String representation."""
        return f"<Recommendation {self.scenario_id} {self.resource_id} ({self.status})>"
