"""API v1 router configuration."""

from fastapi import APIRouter

from finops_agent.api.v1 import (
    audit_log,
    detections,
    drift_tick,
    recommendations,
    resources,
    settings,
)

api_router = APIRouter()

api_router.include_router(drift_tick.router, prefix="/drift-tick", tags=["drift-tick"])
api_router.include_router(settings.router, prefix="/settings", tags=["settings"])
api_router.include_router(detections.router, prefix="/detections", tags=["detections"])
api_router.include_router(recommendations.router, prefix="/recommendations", tags=["recommendations"])
api_router.include_router(resources.router, prefix="/resources", tags=["resources"])
api_router.include_router(audit_log.router, prefix="/audit-log", tags=["audit-log"])
