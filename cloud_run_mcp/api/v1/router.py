"""Main router for API v1."""

from fastapi import APIRouter

from cloud_run_mcp.api.v1 import health

router = APIRouter(prefix="/v1")

router.include_router(health.router, tags=["health"])
