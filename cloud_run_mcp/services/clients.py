"""Scoped Google Cloud API clients.

A ``GcpClients`` instance is created per request and builds each client on
first use. Nothing is shared between instances, so two deployments never
see each other's client state.
"""

from functools import cached_property
from typing import Callable

from google.api_core.client_options import ClientOptions
from google.cloud import artifactregistry_v1
from google.cloud import billing_v1
from google.cloud import logging as cloud_logging
from google.cloud import resourcemanager_v3
from google.cloud import run_v2
from google.cloud import service_usage_v1
from google.cloud import storage
from google.cloud.devtools import cloudbuild_v1


class GcpClients:
    """Lazily constructed API clients bound to one project."""

    def __init__(self, project_id: str | None = None):
        self.project_id = project_id

    @property
    def _client_options(self) -> ClientOptions | None:
        if not self.project_id:
            return None
        return ClientOptions(quota_project_id=self.project_id)

    @cached_property
    def service_usage(self) -> service_usage_v1.ServiceUsageClient:
        return service_usage_v1.ServiceUsageClient(client_options=self._client_options)

    @cached_property
    def storage(self) -> storage.Client:
        return storage.Client(project=self.project_id)

    @cached_property
    def cloud_build(self) -> cloudbuild_v1.CloudBuildClient:
        return cloudbuild_v1.CloudBuildClient(client_options=self._client_options)

    @cached_property
    def artifact_registry(self) -> artifactregistry_v1.ArtifactRegistryClient:
        return artifactregistry_v1.ArtifactRegistryClient(client_options=self._client_options)

    @cached_property
    def run(self) -> run_v2.ServicesClient:
        return run_v2.ServicesClient(client_options=self._client_options)

    @cached_property
    def projects(self) -> resourcemanager_v3.ProjectsClient:
        return resourcemanager_v3.ProjectsClient()

    @cached_property
    def billing(self) -> billing_v1.CloudBillingClient:
        return billing_v1.CloudBillingClient()

    @cached_property
    def logging(self) -> cloud_logging.Client:
        return cloud_logging.Client(project=self.project_id)


# Builds the client set for one request
ClientFactory = Callable[[str | None], GcpClients]


def default_client_factory(project_id: str | None = None) -> GcpClients:
    return GcpClients(project_id)
