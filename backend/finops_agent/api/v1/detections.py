"""Detection API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from finops_agent.api.deps import get_db
from finops_agent.core.exceptions import ConfigurationError
from finops_agent.crud.resource_store import ResourceStore
from finops_agent.schemas.detection import DetectionResult, ScenarioInfo, ScenarioList
from finops_agent.services.detector import WasteDetector
from finops_agent.services.scenario_catalog import CATALOG

router = APIRouter()


@router.post("", response_model=DetectionResult)
async def run_detection(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> DetectionResult:
    """
    Run waste detection without executing anything.

    Categories that cannot be read are listed in summary.failed_categories.
    """
    store = ResourceStore(db)
    try:
        await store.ping()
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e

    return await WasteDetector(store).detect_all()


@router.get("/scenarios", response_model=ScenarioList)
async def list_scenarios() -> ScenarioList:
    """List every registered waste scenario."""
    scenarios = [
        ScenarioInfo(
            id=s.id,
            name=s.name,
            description=s.description,
            resource_type=s.resource_type,
            action=s.action,
            auto_safe=s.auto_safe,
            severity=s.severity.value,
            base_confidence=s.base_confidence,
        )
        for s in CATALOG
    ]
    auto_safe_count = sum(1 for s in scenarios if s.auto_safe)
    return ScenarioList(
        total_scenarios=len(scenarios),
        auto_safe_count=auto_safe_count,
        approval_required_count=len(scenarios) - auto_safe_count,
        scenarios=scenarios,
    )
