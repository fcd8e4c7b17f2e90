"""Deployment data models."""

from collections.abc import Mapping
from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, Field, field_validator

from cloud_run_mcp.core.exceptions import InvalidInputError


class InlineFile(BaseModel):
    """A file supplied by content rather than by path."""

    filename: str = Field(..., min_length=1)
    content: str | bytes

    def content_bytes(self) -> bytes:
        if isinstance(self.content, bytes):
            return self.content
        return self.content.encode("utf-8")


# A filesystem path (file or directory) or an inline file
FileInput = Union[str, InlineFile]


def coerce_file_input(item: Any) -> FileInput:
    """Normalize one raw ``files`` element.

    Raises:
        InvalidInputError: If the element is neither a path string nor a
            ``{filename, content}`` pair.
    """
    if isinstance(item, InlineFile):
        return item
    if isinstance(item, str):
        if not item.strip():
            raise InvalidInputError("File path must be a non-empty string")
        return item
    if isinstance(item, Mapping) and "filename" in item and "content" in item:
        filename = item["filename"]
        content = item["content"]
        if isinstance(filename, str) and filename and isinstance(content, (str, bytes)):
            return InlineFile(filename=filename, content=content)
    raise InvalidInputError(
        f"Invalid file format: {item!r}",
        {"item": repr(item)},
    )


class BuildStrategy(str, Enum):
    """How Cloud Build turns the source into an image."""

    DOCKERFILE = "dockerfile"
    BUILDPACK = "buildpack"


class DeploymentRequest(BaseModel):
    """Input for a deployment."""

    project_id: str | None = None
    service_name: str = Field(default="app", min_length=1)
    region: str = Field(default="europe-west1", min_length=1)
    files: list[FileInput]

    @field_validator("files", mode="before")
    @classmethod
    def _coerce_files(cls, value: Any) -> list[FileInput]:
        if not isinstance(value, (list, tuple)) or isinstance(value, (str, bytes)):
            raise InvalidInputError("Files must be specified as a list")
        if not value:
            raise InvalidInputError("No files specified for deployment")
        return [coerce_file_input(item) for item in value]


class BuildResult(BaseModel):
    """Outcome of a successful Cloud Build job."""

    build_id: str
    status: str
    image: str
    log_url: str | None = None


class DeployedService(BaseModel):
    """A Cloud Run service after a create or update."""

    name: str
    region: str
    project: str
    url: str
    last_modifier: str | None = None
    revision: str | None = None
    billing_message: str | None = None

    @property
    def console_url(self) -> str:
        return (
            f"https://console.cloud.google.com/run/detail/"
            f"{self.region}/{self.name}?project={self.project}"
        )
