"""Data models for Cloud Run MCP."""

from cloud_run_mcp.models.deployment import (
    BuildResult,
    BuildStrategy,
    DeployedService,
    DeploymentRequest,
    FileInput,
    InlineFile,
    coerce_file_input,
)
from cloud_run_mcp.models.project import (
    BillingAccount,
    GcpEnvironment,
    ProjectCreationResult,
    ProjectInfo,
)
from cloud_run_mcp.models.service import ServiceDetails, ServiceSummary

__all__ = [
    # Deployment models
    "BuildResult",
    "BuildStrategy",
    "DeployedService",
    "DeploymentRequest",
    "FileInput",
    "InlineFile",
    "coerce_file_input",
    # Project models
    "BillingAccount",
    "GcpEnvironment",
    "ProjectCreationResult",
    "ProjectInfo",
    # Service models
    "ServiceDetails",
    "ServiceSummary",
]
