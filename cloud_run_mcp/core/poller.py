"""Cloud Build job creation and polling."""

import asyncio
from typing import Any, Awaitable, Callable

from google.api_core import exceptions as google_exceptions
from google.cloud.devtools import cloudbuild_v1

from cloud_run_mcp.core.events import ProgressReporter
from cloud_run_mcp.core.exceptions import BuildFailedError, ProvisioningError
from cloud_run_mcp.models.deployment import BuildResult, BuildStrategy

DOCKER_BUILDER = "gcr.io/cloud-builders/docker"
PACK_BUILDER = "gcr.io/k8s-skaffold/pack"
BUILDPACKS_BUILDER_IMAGE = "gcr.io/buildpacks/builder:latest"

DEFAULT_POLL_INTERVAL = 5.0

TERMINAL_STATUSES = frozenset(
    {"SUCCESS", "FAILURE", "INTERNAL_ERROR", "TIMEOUT", "CANCELLED", "EXPIRED"}
)

Sleep = Callable[[float], Awaitable[Any]]


def status_name(status: Any) -> str:
    """Return the enum name of a build status (``"WORKING"``...)."""
    return getattr(status, "name", None) or str(status)


def select_build_steps(
    strategy: BuildStrategy, image_url: str
) -> list[cloudbuild_v1.BuildStep]:
    """Build steps for a Dockerfile build or a buildpacks build."""
    if strategy == BuildStrategy.DOCKERFILE:
        return [
            cloudbuild_v1.BuildStep(
                name=DOCKER_BUILDER,
                args=["build", "-t", image_url, "."],
                dir="/workspace",
            )
        ]
    return [
        cloudbuild_v1.BuildStep(
            name=PACK_BUILDER,
            entrypoint="pack",
            args=["build", image_url, "--builder", BUILDPACKS_BUILDER_IMAGE],
            dir="/workspace",
        )
    ]


async def trigger_build(
    client: Any,
    project_id: str,
    bucket_name: str,
    object_name: str,
    image_url: str,
    strategy: BuildStrategy,
    progress: ProgressReporter,
) -> str:
    """Start a Cloud Build job for the uploaded source and return its id."""
    build = cloudbuild_v1.Build(
        source=cloudbuild_v1.Source(
            storage_source=cloudbuild_v1.StorageSource(
                bucket=bucket_name,
                object_=object_name,
            )
        ),
        steps=select_build_steps(strategy, image_url),
        images=[image_url],
    )

    await progress.info(
        f"Initiating Cloud Build for gs://{bucket_name}/{object_name} "
        f"using {strategy.value} strategy..."
    )
    try:
        operation = await asyncio.to_thread(
            client.create_build, project_id=project_id, build=build
        )
    except google_exceptions.GoogleAPICallError as e:
        raise ProvisioningError("Cloud Build job", e.message or str(e)) from e

    build_id = operation.metadata.build.id
    await progress.info(f"Cloud Build job {build_id} started...")
    return build_id


class BuildPoller:
    """Polls a Cloud Build job until it reaches a terminal status.

    There is no overall time limit. Callers that need one can wrap
    ``wait()`` in ``asyncio.wait_for``; ``sleep`` is injectable so tests
    do not wait for real.
    """

    def __init__(
        self,
        client: Any,
        project_id: str,
        interval: float = DEFAULT_POLL_INTERVAL,
        sleep: Sleep = asyncio.sleep,
    ):
        self.client = client
        self.project_id = project_id
        self.interval = interval
        self.sleep = sleep

    async def _get_build(self, build_id: str) -> Any:
        try:
            return await asyncio.to_thread(
                self.client.get_build, project_id=self.project_id, id=build_id
            )
        except google_exceptions.GoogleAPICallError as e:
            raise ProvisioningError("Cloud Build job", e.message or str(e)) from e

    async def wait(self, build_id: str, progress: ProgressReporter) -> BuildResult:
        """Poll until terminal.

        Raises:
            BuildFailedError: On any terminal status other than ``SUCCESS``.
        """
        while True:
            build = await self._get_build(build_id)
            status = status_name(build.status)
            if status in TERMINAL_STATUSES:
                break
            await progress.debug(f"Build status: {status}. Waiting...")
            await self.sleep(self.interval)

        log_url = getattr(build, "log_url", None) or None
        if status != "SUCCESS":
            await progress.error(f"Cloud Build job {build_id} failed with status: {status}")
            if log_url:
                await progress.info(f"Build logs: {log_url}")
            raise BuildFailedError(build_id, status, log_url)

        image = build.results.images[0].name
        await progress.info(f"Cloud Build job {build_id} completed successfully.")
        await progress.info(f"Image built: {image}")
        return BuildResult(build_id=build_id, status=status, image=image, log_url=log_url)
