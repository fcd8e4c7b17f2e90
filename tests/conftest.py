"""Pytest configuration and fixtures.

Google Cloud clients are replaced with in-memory fakes that keep just
enough state to exercise the ensure/create paths.
"""

from types import SimpleNamespace
from typing import Any

import pytest
from google.api_core import exceptions as google_exceptions
from google.cloud import service_usage_v1
from google.cloud.devtools import cloudbuild_v1
from google.iam.v1 import policy_pb2

from cloud_run_mcp.core.events import ProgressReporter, RecordingSink


class FakeOperation:
    """Long-running operation that is already done."""

    def __init__(self, value: Any = None, metadata: Any = None):
        self.value = value
        self.metadata = metadata

    def result(self, timeout: float | None = None) -> Any:
        return self.value


class FakeServiceUsage:
    def __init__(self, enabled: set[str] | None = None):
        self.enabled = set(enabled or ())
        self.enable_calls: list[str] = []
        self.error: Exception | None = None

    def get_service(self, request: dict) -> Any:
        if self.error is not None:
            raise self.error
        api = request["name"].rsplit("/", 1)[-1]
        state = (
            service_usage_v1.State.ENABLED
            if api in self.enabled
            else service_usage_v1.State.DISABLED
        )
        return SimpleNamespace(name=request["name"], state=state)

    def enable_service(self, request: dict) -> FakeOperation:
        api = request["name"].rsplit("/", 1)[-1]
        self.enable_calls.append(api)
        self.enabled.add(api)
        return FakeOperation()


class FakeBlob:
    def __init__(self, bucket: "FakeBucket", name: str):
        self.bucket = bucket
        self.name = name

    def upload_from_string(self, data: bytes, content_type: str | None = None) -> None:
        self.bucket.objects[self.name] = data
        self.bucket.content_types[self.name] = content_type


class FakeBucket:
    def __init__(self, name: str, location: str | None = None):
        self.name = name
        self.location = location
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str | None] = {}

    def blob(self, name: str) -> FakeBlob:
        return FakeBlob(self, name)


class FakeStorage:
    def __init__(self):
        self.buckets: dict[str, FakeBucket] = {}
        self.create_calls: list[str] = []
        self.error: Exception | None = None

    def lookup_bucket(self, name: str) -> FakeBucket | None:
        if self.error is not None:
            raise self.error
        return self.buckets.get(name)

    def create_bucket(self, name: str, location: str | None = None) -> FakeBucket:
        self.create_calls.append(name)
        bucket = FakeBucket(name, location)
        self.buckets[name] = bucket
        return bucket


class FakeCloudBuild:
    """Replays a scripted list of build statuses, one per ``get_build``."""

    def __init__(
        self,
        statuses: list[str] | None = None,
        image: str = "europe-west1-docker.pkg.dev/demo/repo/app:latest",
    ):
        self.statuses = list(statuses or ["QUEUED", "WORKING", "SUCCESS"])
        self.image = image
        self.builds: list[cloudbuild_v1.Build] = []
        self.get_calls = 0
        self.log_url = "https://console.cloud.google.com/cloud-build/builds/build-1"

    def create_build(self, project_id: str, build: cloudbuild_v1.Build) -> FakeOperation:
        self.builds.append(build)
        metadata = SimpleNamespace(build=SimpleNamespace(id=f"build-{len(self.builds)}"))
        return FakeOperation(metadata=metadata)

    def get_build(self, project_id: str, id: str) -> Any:
        status = self.statuses[min(self.get_calls, len(self.statuses) - 1)]
        self.get_calls += 1
        return SimpleNamespace(
            id=id,
            status=cloudbuild_v1.Build.Status[status],
            log_url=self.log_url,
            results=SimpleNamespace(images=[SimpleNamespace(name=self.image)]),
        )


class FakeArtifactRegistry:
    def __init__(self):
        self.repositories: dict[str, Any] = {}
        self.create_calls: list[str] = []
        self.create_error: Exception | None = None

    def get_repository(self, name: str) -> Any:
        if name not in self.repositories:
            raise google_exceptions.NotFound(f"Repository {name} not found")
        return self.repositories[name]

    def create_repository(self, parent: str, repository: Any, repository_id: str) -> FakeOperation:
        self.create_calls.append(repository_id)
        if self.create_error is not None:
            raise self.create_error
        name = f"{parent}/repositories/{repository_id}"
        repo = SimpleNamespace(name=name, format_=repository.format_)
        self.repositories[name] = repo
        return FakeOperation(repo)


class FakeRun:
    """Cloud Run services keyed by full resource name."""

    def __init__(self):
        self.services: dict[str, Any] = {}
        self.created: list[Any] = []
        self.updated: list[Any] = []
        self.dry_runs: list[Any] = []
        self.dry_run_error: Exception | None = None

    def _store(self, name: str, service: Any) -> Any:
        service_id = name.rsplit("/", 1)[-1]
        stored = SimpleNamespace(
            name=name,
            uri=f"https://{service_id}-3kq7x2ab4c-ew.a.run.app",
            last_modifier="dev@example.com",
            latest_ready_revision=f"{name}/revisions/{service.template.revision}",
            invoker_iam_disabled=service.invoker_iam_disabled,
            image=service.template.containers[0].image,
        )
        self.services[name] = stored
        return stored

    def get_service(self, name: str) -> Any:
        if name not in self.services:
            raise google_exceptions.NotFound(f"Service {name} not found")
        return self.services[name]

    def list_services(self, parent: str) -> list[Any]:
        return [s for name, s in self.services.items() if name.startswith(f"{parent}/")]

    def create_service(self, request: Any) -> FakeOperation:
        if request.validate_only:
            self.dry_runs.append(request)
            if self.dry_run_error is not None:
                raise self.dry_run_error
            return FakeOperation()
        self.created.append(request)
        name = f"{request.parent}/services/{request.service_id}"
        return FakeOperation(self._store(name, request.service))

    def update_service(self, request: Any) -> FakeOperation:
        if request.validate_only:
            self.dry_runs.append(request)
            if self.dry_run_error is not None:
                raise self.dry_run_error
            return FakeOperation()
        self.updated.append(request)
        return FakeOperation(self._store(request.service.name, request.service))


class FakeProjects:
    def __init__(self, project_ids: list[str] | None = None):
        self.project_ids = list(project_ids or [])
        self.create_error: Exception | None = None
        self.policy = policy_pb2.Policy()
        self.set_policy_calls: list[policy_pb2.Policy] = []
        self.iam_error: Exception | None = None

    def search_projects(self) -> list[Any]:
        return [SimpleNamespace(project_id=p) for p in self.project_ids]

    def create_project(self, project: Any) -> FakeOperation:
        if self.create_error is not None:
            raise self.create_error
        self.project_ids.append(project.project_id)
        return FakeOperation(SimpleNamespace(project_id=project.project_id))

    def get_iam_policy(self, resource: str) -> policy_pb2.Policy:
        if self.iam_error is not None:
            raise self.iam_error
        policy = policy_pb2.Policy()
        policy.CopyFrom(self.policy)
        return policy

    def set_iam_policy(self, request: dict) -> policy_pb2.Policy:
        self.set_policy_calls.append(request["policy"])
        self.policy.CopyFrom(request["policy"])
        return self.policy


class FakeBilling:
    def __init__(self, accounts: list[Any] | None = None, billing_enabled: bool = True):
        self.accounts = list(accounts or [])
        self.billing_enabled = billing_enabled
        self.attached: list[tuple[str, str]] = []
        self.error: Exception | None = None

    def list_billing_accounts(self) -> list[Any]:
        if self.error is not None:
            raise self.error
        return self.accounts

    def update_project_billing_info(self, name: str, project_billing_info: Any) -> Any:
        self.attached.append((name, project_billing_info.billing_account_name))
        return SimpleNamespace(billing_enabled=self.billing_enabled)


class FakeLogging:
    def __init__(self, entries: list[Any] | None = None):
        self.entries = list(entries or [])
        self.calls: list[dict[str, Any]] = []

    def list_entries(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        return iter(self.entries)


class FakeClients:
    """Stands in for ``GcpClients``."""

    def __init__(self, project_id: str | None = None):
        self.project_id = project_id
        self.service_usage = FakeServiceUsage()
        self.storage = FakeStorage()
        self.cloud_build = FakeCloudBuild()
        self.artifact_registry = FakeArtifactRegistry()
        self.run = FakeRun()
        self.projects = FakeProjects()
        self.billing = FakeBilling()
        self.logging = FakeLogging()


@pytest.fixture
def fake_clients() -> FakeClients:
    """A fresh set of fake Google clients."""
    return FakeClients()


@pytest.fixture
def client_factory(fake_clients: FakeClients):
    """Client factory returning ``fake_clients`` and recording project ids."""

    def factory(project_id: str | None = None) -> FakeClients:
        factory.calls.append(project_id)
        fake_clients.project_id = project_id
        return fake_clients

    factory.calls = []
    return factory


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def progress(sink: RecordingSink) -> ProgressReporter:
    return ProgressReporter(sink)


@pytest.fixture
def no_sleep():
    """Sleep replacement recording requested delays."""

    async def sleep(seconds: float) -> None:
        sleep.delays.append(seconds)

    sleep.delays = []
    return sleep


@pytest.fixture
def source_dir(tmp_path):
    """A small Go service with a Dockerfile."""
    (tmp_path / "main.go").write_text("package main\n\nfunc main() {}\n")
    (tmp_path / "go.mod").write_text("module demo\n\ngo 1.22\n")
    (tmp_path / "Dockerfile").write_text("FROM golang:1.22\nCOPY . .\nRUN go build -o /app\n")
    return tmp_path
