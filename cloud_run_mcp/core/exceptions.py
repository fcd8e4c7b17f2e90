"""Custom exceptions for Cloud Run MCP."""

from typing import Any


class CloudRunMcpError(Exception):
    """Base exception for Cloud Run MCP."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class InvalidInputError(CloudRunMcpError):
    """Malformed or missing request fields."""

    pass


class NotFoundError(CloudRunMcpError):
    """A looked-up resource does not exist."""

    def __init__(self, resource: str, name: str):
        super().__init__(
            f"{resource} not found: {name}",
            {"resource": resource, "name": name},
        )
        self.resource = resource
        self.name = name


class ProvisioningError(CloudRunMcpError):
    """A remote call failed while ensuring a resource exists."""

    def __init__(self, resource: str, message: str):
        super().__init__(
            f"Failed to provision {resource}: {message}",
            {"resource": resource},
        )
        self.resource = resource


class BuildFailedError(CloudRunMcpError):
    """Cloud Build finished in a non-success terminal state."""

    def __init__(self, build_id: str, status: str, log_url: str | None = None):
        message = f"Cloud Build job {build_id} failed with status: {status}"
        if log_url:
            message += f" (logs: {log_url})"
        super().__init__(
            message,
            {"build_id": build_id, "status": status, "log_url": log_url},
        )
        self.build_id = build_id
        self.status = status
        self.log_url = log_url


class DeploymentError(CloudRunMcpError):
    """The deployment pipeline aborted."""

    def __init__(self, step: str, message: str):
        super().__init__(
            f"Deployment failed at step '{step}': {message}",
            {"step": step},
        )
        self.step = step


class ForbiddenRoleError(CloudRunMcpError):
    """Refused to grant one or more denylisted IAM roles."""

    def __init__(self, roles: list[str]):
        quoted = ", ".join(f'"{role}"' for role in roles)
        super().__init__(
            f"Adding the role(s) {quoted} is not allowed. These roles are too "
            "permissive and can lead to significant security issues. Please "
            "choose more restrictive roles that adhere to the principle of "
            "least privilege.",
            {"roles": roles},
        )
        self.roles = roles
