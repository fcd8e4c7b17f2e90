"""Unit tests for data models."""

import pytest

from cloud_run_mcp.core.exceptions import InvalidInputError
from cloud_run_mcp.models.deployment import (
    BuildStrategy,
    DeployedService,
    DeploymentRequest,
    InlineFile,
    coerce_file_input,
)
from cloud_run_mcp.models.project import GcpEnvironment, ProjectCreationResult


class TestFileInput:
    """Tests for file input coercion."""

    def test_path_string_is_kept(self):
        assert coerce_file_input("/src/main.go") == "/src/main.go"

    def test_mapping_becomes_inline_file(self):
        item = coerce_file_input({"filename": "index.js", "content": "console.log(1)"})

        assert isinstance(item, InlineFile)
        assert item.filename == "index.js"
        assert item.content_bytes() == b"console.log(1)"

    def test_bytes_content_is_kept_as_is(self):
        item = InlineFile(filename="logo.png", content=b"\x89PNG")
        assert item.content_bytes() == b"\x89PNG"

    @pytest.mark.parametrize(
        "item",
        [
            "",
            "   ",
            42,
            None,
            {"filename": "a.txt"},
            {"content": "x"},
            {"filename": "", "content": "x"},
            {"filename": "a.txt", "content": 7},
        ],
    )
    def test_invalid_items_are_rejected(self, item):
        with pytest.raises(InvalidInputError):
            coerce_file_input(item)


class TestDeploymentRequest:
    """Tests for DeploymentRequest validation."""

    def test_defaults(self):
        request = DeploymentRequest(files=["/src"])

        assert request.project_id is None
        assert request.service_name == "app"
        assert request.region == "europe-west1"
        assert request.files == ["/src"]

    def test_mixed_files(self):
        request = DeploymentRequest(
            project_id="demo",
            files=["/src/main.go", {"filename": "Dockerfile", "content": "FROM scratch"}],
        )

        assert request.files[0] == "/src/main.go"
        assert isinstance(request.files[1], InlineFile)

    def test_empty_files_rejected(self):
        with pytest.raises(InvalidInputError, match="No files specified"):
            DeploymentRequest(files=[])

    def test_non_list_files_rejected(self):
        with pytest.raises(InvalidInputError, match="must be specified as a list"):
            DeploymentRequest(files="/src/main.go")

    def test_malformed_element_raises_invalid_input(self):
        with pytest.raises(InvalidInputError, match="Invalid file format"):
            DeploymentRequest(files=[{"name": "a.txt"}])


class TestDeployedService:
    """Tests for DeployedService."""

    def test_console_url(self):
        service = DeployedService(
            name="demo",
            region="europe-west1",
            project="my-project",
            url="https://demo-abc-ew.a.run.app",
        )

        assert service.console_url == (
            "https://console.cloud.google.com/run/detail/europe-west1/demo?project=my-project"
        )

    def test_build_strategy_values(self):
        assert BuildStrategy.DOCKERFILE.value == "dockerfile"
        assert BuildStrategy.BUILDPACK.value == "buildpack"


class TestProjectModels:
    """Tests for project models."""

    def test_creation_result_defaults(self):
        result = ProjectCreationResult(project_id="mcp-bax-tol")

        assert result.billing_message == ""
        assert result.billing_enabled is False
        assert result.bootstrapped is False

    def test_environment_region_optional(self):
        assert GcpEnvironment(project="host").region is None
