"""Drift tick API endpoints."""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from finops_agent.api.deps import get_db
from finops_agent.core.config import settings
from finops_agent.core.exceptions import ConfigurationError
from finops_agent.core.rate_limit import drift_tick_limit
from finops_agent.crud import setting as crud_setting
from finops_agent.schemas.drift_tick import (
    DriftTickRequest,
    DriftTickStatus,
    ErrorEnvelope,
    ExecutionMode,
    TickReport,
)
from finops_agent.services.drift_tick import DriftTickOrchestrator
from finops_agent.services.scenario_catalog import CATALOG

logger = structlog.get_logger()

router = APIRouter()


def _error(status_code: int, error: Exception) -> JSONResponse:
    body = ErrorEnvelope(error=str(error), error_type=type(error).__name__)
    return JSONResponse(status_code=status_code, content=body.model_dump())


@router.post(
    "",
    response_model=TickReport,
    responses={401: {"model": ErrorEnvelope}, 500: {"model": ErrorEnvelope}},
)
@drift_tick_limit
async def trigger_drift_tick(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    tick_in: DriftTickRequest | None = None,
) -> JSONResponse:
    """
    Run one drift tick: detect, gate and remediate.

    The optional body overrides the persisted execution mode for this tick.
    """
    mode_override = tick_in.mode_override() if tick_in else None

    try:
        report = await DriftTickOrchestrator(db).run(mode_override)
    except ConfigurationError as e:
        logger.error("drift_tick.configuration_error", error=str(e))
        return _error(status.HTTP_401_UNAUTHORIZED, e)
    except Exception as e:
        logger.exception("drift_tick.failed", error=str(e))
        await db.rollback()
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, e)

    return JSONResponse(status_code=status.HTTP_200_OK, content=report.model_dump(mode="json"))


@router.get("", response_model=DriftTickStatus)
async def get_drift_tick_status(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> DriftTickStatus:
    """Current execution mode and the scenarios eligible for auto-remediation."""
    mode, last_updated = await crud_setting.get_execution_mode(db)
    return DriftTickStatus(
        mode=mode or ExecutionMode(settings.DEFAULT_EXECUTION_MODE),
        last_updated=last_updated,
        auto_safe_scenarios=sorted(CATALOG.list_auto_safe_ids()),
    )
