"""Settings API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from finops_agent.api.deps import get_db
from finops_agent.core.config import settings
from finops_agent.core.timeutils import as_utc
from finops_agent.crud import setting as crud_setting
from finops_agent.schemas.drift_tick import (
    ExecutionMode,
    ExecutionModeState,
    ExecutionModeUpdate,
)

router = APIRouter()


@router.get("/execution-mode", response_model=ExecutionModeState)
async def get_execution_mode(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ExecutionModeState:
    """Get the persisted execution mode (manual until set)."""
    mode, last_updated = await crud_setting.get_execution_mode(db)
    return ExecutionModeState(
        mode=mode or ExecutionMode(settings.DEFAULT_EXECUTION_MODE),
        last_updated=last_updated,
    )


@router.put("/execution-mode", response_model=ExecutionModeState)
async def update_execution_mode(
    mode_in: ExecutionModeUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ExecutionModeState:
    """Persist the execution mode used by scheduled ticks."""
    setting = await crud_setting.set_execution_mode(db, mode_in.mode)
    return ExecutionModeState(mode=mode_in.mode, last_updated=as_utc(setting.updated_at))
