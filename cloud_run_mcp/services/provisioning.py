"""Idempotent "ensure" steps over Google Cloud resources.

Each step looks a resource up by its deterministic name, creates it when
the lookup reports ``NotFound`` and reuses it otherwise. Any other API
error aborts the step with ``ProvisioningError``; steps never retry.
"""

import asyncio
import time
from typing import Any

from google.api_core import exceptions as google_exceptions
from google.cloud import artifactregistry_v1
from google.cloud import run_v2
from google.cloud import service_usage_v1

from cloud_run_mcp.core.events import ProgressReporter
from cloud_run_mcp.core.exceptions import ProvisioningError
from cloud_run_mcp.models.deployment import DeployedService
from cloud_run_mcp.services.clients import GcpClients

SERVICE_LABELS = {"created-by": "cloud-run-mcp"}


def _error_text(error: Exception) -> str:
    if isinstance(error, google_exceptions.GoogleAPICallError):
        return error.message or str(error)
    return str(error)


# ---------------------------------------------------------------------------
# APIs
# ---------------------------------------------------------------------------


async def ensure_apis_enabled(
    clients: GcpClients,
    project_id: str,
    apis: list[str],
    progress: ProgressReporter,
) -> None:
    """Enable every API in ``apis`` that is not enabled yet.

    APIs are handled one by one; the first failure aborts and leaves the
    ones already enabled in place.
    """
    client = clients.service_usage
    await progress.info("Checking and enabling required APIs...")

    for api in apis:
        name = f"projects/{project_id}/services/{api}"
        try:
            service = await asyncio.to_thread(client.get_service, request={"name": name})
            if service.state != service_usage_v1.State.ENABLED:
                await progress.info(f"API [{api}] is not enabled. Enabling...")
                operation = await asyncio.to_thread(
                    client.enable_service, request={"name": name}
                )
                await asyncio.to_thread(operation.result)
        except google_exceptions.GoogleAPICallError as e:
            await progress.error(
                f"Failed to ensure API [{api}] is enabled. Please check manually."
            )
            raise ProvisioningError(f"API {api}", _error_text(e)) from e

    await progress.info("All required APIs are enabled.")


# ---------------------------------------------------------------------------
# Cloud Storage
# ---------------------------------------------------------------------------


async def ensure_storage_bucket(
    clients: GcpClients,
    bucket_name: str,
    region: str,
    progress: ProgressReporter,
) -> Any:
    """Return the bucket, creating it in ``region`` when missing."""
    client = clients.storage
    try:
        bucket = await asyncio.to_thread(client.lookup_bucket, bucket_name)
        if bucket is not None:
            await progress.info(f"Bucket {bucket_name} already exists.")
            return bucket

        await progress.info(
            f"Bucket {bucket_name} does not exist. Creating in location {region}..."
        )
        bucket = await asyncio.to_thread(client.create_bucket, bucket_name, location=region)
    except google_exceptions.GoogleAPICallError as e:
        await progress.error(f"Error checking/creating bucket {bucket_name}: {_error_text(e)}")
        raise ProvisioningError(f"bucket {bucket_name}", _error_text(e)) from e

    await progress.info(f"Storage bucket {bucket_name} created successfully in {region}.")
    return bucket


async def upload_archive(
    bucket: Any,
    data: bytes,
    object_name: str,
    progress: ProgressReporter,
) -> None:
    """Write ``data`` to ``object_name``, replacing any previous upload."""
    target = f"gs://{bucket.name}/{object_name}"
    await progress.info(f"Uploading source archive to {target}...")
    try:
        blob = bucket.blob(object_name)
        await asyncio.to_thread(
            blob.upload_from_string, data, content_type="application/zip"
        )
    except google_exceptions.GoogleAPICallError as e:
        await progress.error(f"Error uploading source archive: {_error_text(e)}")
        raise ProvisioningError(f"object {target}", _error_text(e)) from e
    await progress.info(f"File {object_name} uploaded successfully to {target}.")


# ---------------------------------------------------------------------------
# Artifact Registry
# ---------------------------------------------------------------------------


async def ensure_registry_repo(
    clients: GcpClients,
    project_id: str,
    region: str,
    repo_id: str,
    progress: ProgressReporter,
    format: artifactregistry_v1.Repository.Format = artifactregistry_v1.Repository.Format.DOCKER,
) -> Any:
    """Return the repository, creating it when missing.

    The repository is shared by every service of a project, so a
    concurrent create surfacing as ``AlreadyExists`` counts as success.
    """
    client = clients.artifact_registry
    parent = f"projects/{project_id}/locations/{region}"
    path = f"{parent}/repositories/{repo_id}"

    try:
        repository = await asyncio.to_thread(client.get_repository, name=path)
        await progress.info(f"Repository {repo_id} already exists in {region}.")
        return repository
    except google_exceptions.NotFound:
        await progress.info(f"Repository {repo_id} does not exist in {region}. Creating...")
    except google_exceptions.GoogleAPICallError as e:
        await progress.error(f"Error checking repository {repo_id}: {_error_text(e)}")
        raise ProvisioningError(f"repository {repo_id}", _error_text(e)) from e

    try:
        operation = await asyncio.to_thread(
            client.create_repository,
            parent=parent,
            repository=artifactregistry_v1.Repository(format_=format),
            repository_id=repo_id,
        )
        repository = await asyncio.to_thread(operation.result)
    except google_exceptions.AlreadyExists:
        await progress.info(f"Repository {repo_id} was created concurrently; reusing it.")
        try:
            return await asyncio.to_thread(client.get_repository, name=path)
        except google_exceptions.GoogleAPICallError as e:
            await progress.error(
                f"Failed to read Artifact Registry repository {repo_id}: {_error_text(e)}"
            )
            raise ProvisioningError(f"repository {repo_id}", _error_text(e)) from e
    except google_exceptions.GoogleAPICallError as e:
        await progress.error(
            f"Failed to create Artifact Registry repository {repo_id}: {_error_text(e)}"
        )
        raise ProvisioningError(f"repository {repo_id}", _error_text(e)) from e

    await progress.info(f"Artifact Registry repository {repo_id} created successfully.")
    return repository


# ---------------------------------------------------------------------------
# Cloud Run
# ---------------------------------------------------------------------------


def is_invoker_iam_unsupported(error: Exception) -> bool:
    """Guess whether a dry-run rejected only the public-access setting.

    The API gives no structured signal for this, so the message is
    inspected. Keep every variant of the heuristic in this function.
    """
    text = _error_text(error).lower()
    if "invokeriamdisabled" in text or "invoker_iam_disabled" in text:
        return True
    if "iam policy violation" in text:
        return True
    if isinstance(error, google_exceptions.InvalidArgument):
        return "invoker" in text and "iam" in text
    return False


def build_service_config(
    image_url: str,
    revision: str,
    public: bool = True,
    name: str = "",
) -> run_v2.Service:
    """The Service resource sent on create and update."""
    service = run_v2.Service(
        name=name,
        template=run_v2.RevisionTemplate(
            revision=revision,
            containers=[run_v2.Container(image=image_url)],
        ),
        labels=dict(SERVICE_LABELS),
    )
    if public:
        service.invoker_iam_disabled = True
    return service


async def service_exists(
    clients: GcpClients,
    service_path: str,
    service_id: str,
    progress: ProgressReporter,
) -> bool:
    try:
        await asyncio.to_thread(clients.run.get_service, name=service_path)
    except google_exceptions.NotFound:
        await progress.info(f"Cloud Run service {service_id} does not exist.")
        return False
    except google_exceptions.GoogleAPICallError as e:
        await progress.error(f"Error checking Cloud Run service {service_id}: {_error_text(e)}")
        raise ProvisioningError(f"service {service_id}", _error_text(e)) from e
    await progress.info(f"Cloud Run service {service_id} already exists.")
    return True


async def _submit(
    clients: GcpClients,
    parent: str,
    service_id: str,
    service: run_v2.Service,
    exists: bool,
    validate_only: bool = False,
) -> Any:
    if exists:
        request = run_v2.UpdateServiceRequest(service=service, validate_only=validate_only)
        return await asyncio.to_thread(clients.run.update_service, request=request)
    request = run_v2.CreateServiceRequest(
        parent=parent,
        service=service,
        service_id=service_id,
        validate_only=validate_only,
    )
    return await asyncio.to_thread(clients.run.create_service, request=request)


async def deploy_service(
    clients: GcpClients,
    project_id: str,
    region: str,
    service_id: str,
    image_url: str,
    progress: ProgressReporter,
) -> DeployedService:
    """Create or update a Cloud Run service running ``image_url``.

    New services are public by default. A dry-run validates the config
    first; when it rejects only the public-access setting, the deploy goes
    ahead once without it and the service requires authentication.
    """
    parent = f"projects/{project_id}/locations/{region}"
    service_path = f"{parent}/services/{service_id}"
    revision = f"{service_id}-{int(time.time() * 1000)}"

    exists = await service_exists(clients, service_path, service_id, progress)
    public = True

    await progress.debug(f"Performing dry run for service {service_id}...")
    try:
        await _submit(
            clients,
            parent,
            service_id,
            build_service_config(image_url, revision, public, service_path if exists else ""),
            exists,
            validate_only=True,
        )
        await progress.debug(f"Dry run successful for {service_id} with current configuration.")
    except google_exceptions.GoogleAPICallError as e:
        await progress.warning(f"Dry run for {service_id} failed: {_error_text(e)}")
        if not is_invoker_iam_unsupported(e):
            message = f"Dry run validation failed for service {service_id}: {_error_text(e)}"
            await progress.error(message)
            raise ProvisioningError(f"service {service_id}", message) from e
        await progress.warning(
            "Dry run suggests 'invokerIamDisabled' is not allowed. Deploying without "
            "public access; the service will require authentication."
        )
        public = False

    service = build_service_config(image_url, revision, public, service_path if exists else "")
    if exists:
        await progress.info(f"Updating existing service {service_id}...")
    else:
        await progress.info(f"Creating new service {service_id}...")

    try:
        operation = await _submit(clients, parent, service_id, service, exists)
        await progress.info(f"Deploying {service_id} to Cloud Run...")
        response = await asyncio.to_thread(operation.result)
    except google_exceptions.GoogleAPICallError as e:
        await progress.error(f"Error deploying/updating service {service_id}: {_error_text(e)}")
        raise ProvisioningError(f"service {service_id}", _error_text(e)) from e

    await progress.info(f"Service deployed/updated successfully: {response.uri}")

    latest = getattr(response, "latest_ready_revision", "") or ""
    return DeployedService(
        name=service_id,
        region=region,
        project=project_id,
        url=response.uri,
        last_modifier=getattr(response, "last_modifier", None) or None,
        revision=latest.rsplit("/", 1)[-1] if latest else revision,
    )
