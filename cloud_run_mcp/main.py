"""Application entry point.

Runs the MCP server over stdio, or serves it over streamable HTTP inside a
FastAPI application.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from mcp.server.fastmcp import FastMCP

from cloud_run_mcp import __version__
from cloud_run_mcp.api.middleware import RequestLoggingMiddleware
from cloud_run_mcp.api.server import create_mcp_server
from cloud_run_mcp.api.v1.router import router as v1_router
from cloud_run_mcp.config import settings
from cloud_run_mcp.core.exceptions import CloudRunMcpError, InvalidInputError
from cloud_run_mcp.models.project import GcpEnvironment
from cloud_run_mcp.services.metadata import check_gcp
from cloud_run_mcp.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


async def detect_environment() -> GcpEnvironment | None:
    """Resolve the hosting environment: settings first, then the metadata server."""
    if settings.gcp_project:
        return GcpEnvironment(project=settings.gcp_project, region=settings.gcp_region)
    if settings.skip_metadata_probe:
        return None
    return await check_gcp()


def create_app(
    mcp_server: FastMCP,
    environment: GcpEnvironment | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler."""
        configure_logging()
        logger.info(
            "application.starting",
            version=__version__,
            environment=settings.app_env,
            mode="remote" if environment else "local",
        )
        async with mcp_server.session_manager.run():
            yield
        logger.info("application.shutdown")

    app = FastAPI(
        title="Cloud Run MCP",
        description="MCP tools that deploy applications to Google Cloud Run",
        version=__version__,
        docs_url="/docs" if settings.app_debug else None,
        redoc_url="/redoc" if settings.app_debug else None,
        lifespan=lifespan,
    )
    app.state.environment = environment

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    @app.exception_handler(CloudRunMcpError)
    async def cloud_run_mcp_error_handler(
        request: Request, exc: CloudRunMcpError
    ) -> JSONResponse:
        """Handle application-specific errors."""
        code = (
            status.HTTP_400_BAD_REQUEST
            if isinstance(exc, InvalidInputError)
            else status.HTTP_500_INTERNAL_SERVER_ERROR
        )
        return JSONResponse(
            status_code=code,
            content={
                "error": {
                    "code": type(exc).__name__.upper(),
                    "message": exc.message,
                    "details": exc.details,
                }
            },
        )

    app.include_router(v1_router)
    # Mounted last at the root so the MCP app serves its own /mcp route
    app.mount("/", mcp_server.streamable_http_app())

    return app


def main() -> None:
    """Console entry point for ``cloud-run-mcp``."""
    configure_logging()
    environment = asyncio.run(detect_environment())
    mcp_server = create_mcp_server(environment)

    if settings.mcp_transport == "stdio":
        logger.info("application.starting", version=__version__, transport="stdio")
        mcp_server.run(transport="stdio")
        return

    import uvicorn

    uvicorn.run(
        create_app(mcp_server, environment),
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
