"""Action audit log database model."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from finops_agent.core.database import Base


class ActionAuditLog(Base):
    """
    Append-only record of every remediation attempt.

    Written for failed attempts as well as successful ones.
    """

    __tablename__ = "action_audit_log"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        index=True,
    )

    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    resource_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    scenario_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    detection_id: Mapped[str | None] = mapped_column(String(300), nullable=True)

    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    previous_state: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    new_state: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    executed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    executed_by: Mapped[str] = mapped_column(String(100), nullable=False)

    def __repr__(self) -> str:
        """String representation."""
        outcome = "ok" if self.success else "failed"
        return f"<ActionAuditLog {self.action} {self.resource_id} ({outcome})>"
