"""Utility functions for Cloud Run MCP."""

from cloud_run_mcp.utils.logging import configure_logging, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
]
