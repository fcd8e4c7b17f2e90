"""Core functionality for Cloud Run MCP."""

from cloud_run_mcp.core.events import (
    ContextSink,
    NullSink,
    ProgressEvent,
    ProgressReporter,
    ProgressSink,
    RecordingSink,
)
from cloud_run_mcp.core.exceptions import (
    BuildFailedError,
    CloudRunMcpError,
    DeploymentError,
    ForbiddenRoleError,
    InvalidInputError,
    NotFoundError,
    ProvisioningError,
)

__all__ = [
    "BuildFailedError",
    "CloudRunMcpError",
    "DeploymentError",
    "ForbiddenRoleError",
    "InvalidInputError",
    "NotFoundError",
    "ProvisioningError",
    "ContextSink",
    "NullSink",
    "ProgressEvent",
    "ProgressReporter",
    "ProgressSink",
    "RecordingSink",
]
