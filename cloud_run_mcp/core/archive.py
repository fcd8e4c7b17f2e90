"""In-memory source archive for Cloud Build."""

import io
import os
import zipfile
from pathlib import Path
from typing import Iterable

from cloud_run_mcp.models.deployment import (
    BuildStrategy,
    FileInput,
    InlineFile,
    coerce_file_input,
)
from cloud_run_mcp.utils.logging import get_logger

logger = get_logger(__name__)

DOCKERFILE_NAME = "dockerfile"


def rewrite_drive_prefix(path: str) -> str:
    """Map ``/c/...`` to ``/mnt/c/...``.

    Agents running under WSL tend to send Windows drive paths in the
    former shape.
    """
    if path == "/c" or path.startswith("/c/"):
        return f"/mnt{path}"
    return path


def resolve_path(path: str) -> Path:
    """Resolve a caller-supplied path to an existing absolute path.

    Raises:
        FileNotFoundError: If nothing exists at the resolved path.
    """
    resolved = Path(rewrite_drive_prefix(path)).resolve()
    if not resolved.exists():
        raise FileNotFoundError(f"File or directory not found: {resolved}")
    return resolved


def validate_inputs(files: Iterable[object]) -> list[FileInput]:
    """Check shapes and path existence without building anything."""
    inputs = [coerce_file_input(item) for item in files]
    for item in inputs:
        if isinstance(item, str):
            resolve_path(item)
    return inputs


def _walk_sorted(root: Path) -> Iterable[Path]:
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for filename in sorted(filenames):
            yield Path(dirpath) / filename


def build_archive(files: Iterable[object]) -> bytes:
    """Zip paths and inline files into a single in-memory archive.

    Directories are added recursively with their contents at the archive
    root; single files are added by base name; inline files are written
    under their given relative path.

    Raises:
        FileNotFoundError: If a path does not exist.
        InvalidInputError: If an element is neither a path nor an inline file.
    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(
        buffer, mode="w", compression=zipfile.ZIP_DEFLATED, compresslevel=9
    ) as archive:
        for item in files:
            entry = coerce_file_input(item)
            if isinstance(entry, InlineFile):
                archive.writestr(entry.filename, entry.content_bytes())
                continue

            path = resolve_path(entry)
            if path.is_dir():
                for file_path in _walk_sorted(path):
                    archive.write(file_path, arcname=file_path.relative_to(path).as_posix())
            else:
                archive.write(path, arcname=path.name)

    data = buffer.getvalue()
    logger.debug("archive.built", size_bytes=len(data))
    return data


def _is_dockerfile(name: str) -> bool:
    return os.path.basename(name.rstrip("/")).lower() == DOCKERFILE_NAME


def detect_build_strategy(files: Iterable[FileInput]) -> BuildStrategy:
    """Pick a Dockerfile build when the source carries a Dockerfile.

    A path or inline file whose base name is ``Dockerfile`` (any case)
    counts, as does a ``Dockerfile`` at the top of a directory input.
    """
    for item in files:
        if isinstance(item, InlineFile):
            if _is_dockerfile(item.filename):
                return BuildStrategy.DOCKERFILE
            continue

        if _is_dockerfile(item):
            return BuildStrategy.DOCKERFILE
        candidate = Path(rewrite_drive_prefix(item))
        if candidate.is_dir() and any(
            child.is_file() and child.name.lower() == DOCKERFILE_NAME
            for child in candidate.iterdir()
        ):
            return BuildStrategy.DOCKERFILE

    return BuildStrategy.BUILDPACK
