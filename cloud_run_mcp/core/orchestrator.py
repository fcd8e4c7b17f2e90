"""Deployment Orchestrator.

Runs the source-to-Cloud-Run pipeline for one request, step by step, and
reports progress to a sink.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from cloud_run_mcp.config import settings
from cloud_run_mcp.core.archive import build_archive, detect_build_strategy, validate_inputs
from cloud_run_mcp.core.events import ProgressReporter, ProgressSink
from cloud_run_mcp.core.exceptions import CloudRunMcpError, DeploymentError
from cloud_run_mcp.core.poller import BuildPoller, Sleep, trigger_build
from cloud_run_mcp.models.deployment import DeployedService, DeploymentRequest
from cloud_run_mcp.services.clients import ClientFactory, default_client_factory
from cloud_run_mcp.services.projects import ensure_project
from cloud_run_mcp.services.provisioning import (
    deploy_service,
    ensure_apis_enabled,
    ensure_registry_repo,
    ensure_storage_bucket,
    upload_archive,
)
from cloud_run_mcp.utils.logging import get_logger

# Shared by every service deployed to a project
REPO_NAME = "mcp-cloud-run-deployments"
SOURCE_OBJECT_NAME = "source.zip"
IMAGE_TAG = "latest"

REQUIRED_APIS = [
    "iam.googleapis.com",
    "storage.googleapis.com",
    "cloudbuild.googleapis.com",
    "artifactregistry.googleapis.com",
    "run.googleapis.com",
]
# Needed only once a project was created on the fly
BILLING_API = "cloudbilling.googleapis.com"


def bucket_name_for(project_id: str) -> str:
    return f"{project_id}-source-bucket"


def image_url_for(project_id: str, region: str, service_name: str) -> str:
    return f"{region}-docker.pkg.dev/{project_id}/{REPO_NAME}/{service_name}:{IMAGE_TAG}"


class DeploymentOrchestrator:
    """Orchestrates one deployment.

    Pipeline steps:
    1. project - use the given project or bootstrap a new one
    2. apis - enable required APIs
    3. names - derive bucket and image names
    4. strategy - Dockerfile or buildpacks
    5. source - ensure bucket, zip and upload the source
    6. registry - ensure the Artifact Registry repository
    7. build - run Cloud Build and wait for it
    8. service - create or update the Cloud Run service
    9. result - report the deployed service

    Steps run strictly in order. A failure aborts the run and nothing is
    rolled back.
    """

    def __init__(
        self,
        client_factory: ClientFactory = default_client_factory,
        poll_interval: float | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.client_factory = client_factory
        self.poll_interval = (
            poll_interval if poll_interval is not None else settings.build_poll_interval_seconds
        )
        self.sleep = sleep
        self.logger = get_logger("orchestrator")

    @asynccontextmanager
    async def _step(self, name: str, progress: ProgressReporter) -> AsyncIterator[None]:
        """Bracket one step with progress events and wrap its failures."""
        await progress.info(f"Starting step: {name}", step=name)
        try:
            yield
        except CloudRunMcpError as e:
            await progress.error(f"Step {name} failed: {e.message}", step=name)
            raise DeploymentError(name, e.message) from e
        except Exception as e:
            await progress.error(f"Step {name} failed: {e}", step=name)
            raise DeploymentError(name, str(e)) from e
        await progress.info(f"Completed step: {name}", step=name)

    async def deploy(
        self,
        request: DeploymentRequest,
        sink: ProgressSink | None = None,
    ) -> DeployedService:
        """Deploy the request's files to Cloud Run.

        Args:
            request: What to deploy and where
            sink: Receives progress events; dropped when ``None``

        Returns:
            The deployed service

        Raises:
            InvalidInputError: If a ``files`` element is malformed
            FileNotFoundError: If a path does not exist
            DeploymentError: If any step after validation fails
        """
        # Pre-flight, before any remote call
        files = validate_inputs(request.files)

        progress = ProgressReporter(sink, self.logger)
        self.logger.info(
            "orchestrator.deploy.started",
            project_id=request.project_id,
            service=request.service_name,
            region=request.region,
        )

        region = request.region
        service_name = request.service_name
        clients = self.client_factory(request.project_id)

        async with self._step("project", progress):
            project = await ensure_project(clients, request.project_id, progress)
            project_id = project.project_id
            if project.bootstrapped:
                clients = self.client_factory(project_id)

        async with self._step("apis", progress):
            apis = list(REQUIRED_APIS)
            if project.bootstrapped:
                apis.append(BILLING_API)
            await ensure_apis_enabled(clients, project_id, apis, progress)

        async with self._step("names", progress):
            bucket_name = bucket_name_for(project_id)
            image_url = image_url_for(project_id, region, service_name)
            await progress.debug(f"Bucket: {bucket_name}, image: {image_url}")

        async with self._step("strategy", progress):
            strategy = detect_build_strategy(files)
            await progress.info(f"Using {strategy.value} build strategy.")

        async with self._step("source", progress):
            bucket = await ensure_storage_bucket(clients, bucket_name, region, progress)
            await progress.info("Creating source archive...")
            archive = await asyncio.to_thread(build_archive, files)
            await upload_archive(bucket, archive, SOURCE_OBJECT_NAME, progress)

        async with self._step("registry", progress):
            await ensure_registry_repo(clients, project_id, region, REPO_NAME, progress)

        async with self._step("build", progress):
            build_id = await trigger_build(
                clients.cloud_build,
                project_id,
                bucket_name,
                SOURCE_OBJECT_NAME,
                image_url,
                strategy,
                progress,
            )
            poller = BuildPoller(
                clients.cloud_build, project_id, interval=self.poll_interval, sleep=self.sleep
            )
            build = await poller.wait(build_id, progress)

        async with self._step("service", progress):
            service = await deploy_service(
                clients, project_id, region, service_name, build.image, progress
            )

        async with self._step("result", progress):
            if project.billing_message:
                service = service.model_copy(update={"billing_message": project.billing_message})
            await progress.info(f"Service {service.name} is available at {service.url}")

        self.logger.info(
            "orchestrator.deploy.completed",
            project_id=project_id,
            service=service_name,
            url=service.url,
        )
        return service


def get_orchestrator() -> DeploymentOrchestrator:
    """Get a deployment orchestrator instance."""
    return DeploymentOrchestrator()
