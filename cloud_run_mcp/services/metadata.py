"""Detect whether the server runs on Google Cloud via the metadata server."""

import httpx

from cloud_run_mcp.models.project import GcpEnvironment
from cloud_run_mcp.utils.logging import get_logger

logger = get_logger(__name__)

METADATA_BASE_URL = "http://metadata.google.internal"
PROJECT_ID_PATH = "/computeMetadata/v1/project/project-id"
# Value looks like projects/PROJECT_NUMBER/regions/REGION
REGION_PATH = "/computeMetadata/v1/instance/region"
METADATA_HEADERS = {"Metadata-Flavor": "Google"}
PROBE_TIMEOUT = 2.0


async def check_gcp(transport: httpx.AsyncBaseTransport | None = None) -> GcpEnvironment | None:
    """Return the host project and region, or ``None`` off Google Cloud."""
    try:
        async with httpx.AsyncClient(
            base_url=METADATA_BASE_URL,
            headers=METADATA_HEADERS,
            timeout=PROBE_TIMEOUT,
            transport=transport,
        ) as client:
            project_response = await client.get(PROJECT_ID_PATH)
            project_response.raise_for_status()
            region_response = await client.get(REGION_PATH)
            region_response.raise_for_status()
    except httpx.HTTPError as e:
        logger.debug("metadata.unavailable", error=str(e))
        return None

    project = project_response.text.strip()
    region_path = region_response.text.strip()
    if not project or not region_path:
        return None

    environment = GcpEnvironment(project=project, region=region_path.rsplit("/", 1)[-1])
    logger.info("metadata.detected", project=environment.project, region=environment.region)
    return environment
