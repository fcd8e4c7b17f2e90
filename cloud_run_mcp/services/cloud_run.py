"""Read-only Cloud Run queries: services and their logs."""

import asyncio
import json
from typing import Any

from google.api_core import exceptions as google_exceptions
from google.cloud import logging as cloud_logging

from cloud_run_mcp.models.service import ServiceDetails, ServiceSummary
from cloud_run_mcp.services.clients import GcpClients
from cloud_run_mcp.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_LOG_PAGE_SIZE = 100


async def list_services(clients: GcpClients, project_id: str, region: str) -> list[ServiceSummary]:
    """List Cloud Run services in one region."""
    parent = f"projects/{project_id}/locations/{region}"
    logger.info("cloud_run.list_services", project_id=project_id, region=region)
    pager = await asyncio.to_thread(clients.run.list_services, parent=parent)
    return await asyncio.to_thread(
        lambda: [
            ServiceSummary(name=service.name.rsplit("/", 1)[-1], uri=service.uri)
            for service in pager
        ]
    )


async def get_service(
    clients: GcpClients, project_id: str, region: str, service_id: str
) -> ServiceDetails | None:
    """Describe one service, or return ``None`` if it does not exist."""
    name = f"projects/{project_id}/locations/{region}/services/{service_id}"
    logger.info("cloud_run.get_service", service=name)
    try:
        service = await asyncio.to_thread(clients.run.get_service, name=name)
    except google_exceptions.NotFound:
        logger.info("cloud_run.service_not_found", service=name)
        return None
    return ServiceDetails(
        name=service_id,
        uri=service.uri,
        last_modifier=service.last_modifier,
    )


def _format_payload(payload: Any) -> str:
    if payload is None:
        return ""
    if isinstance(payload, dict):
        if "methodName" in payload:
            # Audit log entry
            status = (payload.get("status") or {}).get("message", "")
            principal = (payload.get("authenticationInfo") or {}).get("principalEmail", "")
            return f"{payload['methodName']}: {status}{principal}"
        return json.dumps(payload, default=str)
    return str(payload)


def format_log_entry(entry: Any) -> str:
    """Render one log entry as a single line."""
    timestamp = entry.timestamp.isoformat() if entry.timestamp else "N/A"
    severity = entry.severity or "N/A"

    request_text = ""
    http_request = entry.http_request
    if http_request:
        request_text = (
            f"HTTP Request: {http_request.get('requestMethod')} "
            f"StatusCode: {http_request.get('status')} "
            f"ResponseSize: {http_request.get('responseSize')} Byte - "
            f"{http_request.get('requestUrl')}"
        )

    return f"[{timestamp}] [{severity}] {request_text} {_format_payload(entry.payload)}"


async def get_service_logs(
    clients: GcpClients,
    project_id: str,
    region: str,
    service_id: str,
    page_size: int = DEFAULT_LOG_PAGE_SIZE,
) -> str:
    """Fetch every log line of a service, newest first."""
    log_filter = (
        'resource.type="cloud_run_revision" '
        f'resource.labels.service_name="{service_id}" '
        f'resource.labels.location="{region}" '
        "severity>=DEFAULT"
    )
    logger.info("cloud_run.get_logs", project_id=project_id, service=service_id)

    def fetch() -> list[str]:
        entries = clients.logging.list_entries(
            resource_names=[f"projects/{project_id}"],
            filter_=log_filter,
            order_by=cloud_logging.DESCENDING,
            page_size=page_size,
        )
        return [format_log_entry(entry) for entry in entries]

    lines = await asyncio.to_thread(fetch)
    return "\n".join(lines)
