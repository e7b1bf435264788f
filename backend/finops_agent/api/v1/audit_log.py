"""Audit log API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from finops_agent.api.deps import get_db
from finops_agent.crud import audit_log as crud_audit_log
from finops_agent.schemas.execution import AuditLogEntry

router = APIRouter()


@router.get("/", response_model=list[AuditLogEntry])
async def list_audit_log(
    db: Annotated[AsyncSession, Depends(get_db)],
    resource_id: str | None = Query(None),
    success: bool | None = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
) -> list[AuditLogEntry]:
    """List remediation attempts, newest first."""
    return await crud_audit_log.list_audit_entries(db, resource_id, success, skip, limit)
