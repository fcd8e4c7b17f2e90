"""Health check endpoints."""

from datetime import datetime, timezone
from typing import Literal

from fastapi import APIRouter
from pydantic import BaseModel

from cloud_run_mcp import __version__
from cloud_run_mcp.api.deps import EnvironmentDep
from cloud_run_mcp.config import settings

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    version: str
    environment: str
    mode: Literal["local", "remote"]
    project: str | None = None
    region: str | None = None
    timestamp: datetime


@router.get("/health", response_model=HealthResponse)
async def health_check(environment: EnvironmentDep) -> HealthResponse:
    """Report liveness and whether the server pins a host project."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        environment=settings.app_env,
        mode="remote" if environment else "local",
        project=environment.project if environment else None,
        region=environment.region if environment else None,
        timestamp=datetime.now(timezone.utc),
    )
