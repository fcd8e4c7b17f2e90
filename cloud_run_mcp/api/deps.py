"""Dependency injection for API endpoints."""

from typing import Annotated

from fastapi import Depends, Request

from cloud_run_mcp.models.project import GcpEnvironment


async def get_environment(request: Request) -> GcpEnvironment | None:
    """The hosting environment detected at startup, if any."""
    return getattr(request.app.state, "environment", None)


EnvironmentDep = Annotated[GcpEnvironment | None, Depends(get_environment)]
