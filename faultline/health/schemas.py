"""Health check response schemas."""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response for liveness probe."""

    status: str = Field(..., description="Health status (ok, error)")
