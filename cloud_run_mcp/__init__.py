"""Cloud Run MCP: deploy source code to Cloud Run from an MCP client."""

__version__ = "0.1.0"
