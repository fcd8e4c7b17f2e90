"""Google Cloud services used by the Cloud Run MCP tools."""

from cloud_run_mcp.services.clients import ClientFactory, GcpClients, default_client_factory

__all__ = [
    "ClientFactory",
    "GcpClients",
    "default_client_factory",
]
