"""Health check endpoints."""

from fastapi import APIRouter

from faultline.health.schemas import HealthResponse

router = APIRouter(prefix="/health", tags=["health"])


@router.get(
    "/live",
    response_model=HealthResponse,
    summary="Liveness probe",
    description="Check if the application is running",
)
async def liveness() -> HealthResponse:
    """Liveness probe - is the application running?"""
    return HealthResponse(status="ok")
