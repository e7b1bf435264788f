"""CRUD operations for the action audit log."""

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from finops_agent.models.audit_log import ActionAuditLog
from finops_agent.schemas.execution import ExecutionResult


async def append_audit_entry(
    db: AsyncSession, result: ExecutionResult, executed_by: str
) -> ActionAuditLog:
    """
    Append one remediation attempt to the audit log.

    Args:
        db: Database session
        result: Outcome of the attempt (successful or not)
        executed_by: Actor that triggered the attempt

    Returns:
        Created audit entry
    """
    entry = ActionAuditLog(
        action=result.action,
        resource_type=result.resource_type,
        resource_id=result.resource_id,
        resource_name=result.resource_name,
        scenario_id=result.scenario_id,
        detection_id=result.detection_id,
        success=result.success,
        message=result.message,
        previous_state=result.previous_state,
        new_state=result.new_state,
        executed_at=result.executed_at,
        duration_ms=result.duration_ms,
        executed_by=executed_by,
    )
    db.add(entry)
    await db.commit()
    await db.refresh(entry)
    return entry


async def list_audit_entries(
    db: AsyncSession,
    resource_id: str | None = None,
    success: bool | None = None,
    skip: int = 0,
    limit: int = 100,
) -> list[ActionAuditLog]:
    """
    List audit entries, newest first.

    Args:
        db: Database session
        resource_id: Optional resource filter
        success: Optional outcome filter
        skip: Number of records to skip
        limit: Maximum number of records to return

    Returns:
        List of audit entries
    """
    query = select(ActionAuditLog)

    if resource_id:
        query = query.where(ActionAuditLog.resource_id == resource_id)
    if success is not None:
        query = query.where(ActionAuditLog.success == success)

    query = query.order_by(desc(ActionAuditLog.executed_at)).offset(skip).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())
