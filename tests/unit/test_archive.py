"""Unit tests for the source archive builder."""

import io
import zipfile
from pathlib import Path

import pytest

from cloud_run_mcp.core.archive import (
    build_archive,
    detect_build_strategy,
    resolve_path,
    rewrite_drive_prefix,
    validate_inputs,
)
from cloud_run_mcp.core.exceptions import InvalidInputError
from cloud_run_mcp.models.deployment import BuildStrategy, InlineFile


def read_zip(data: bytes) -> dict[str, bytes]:
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        return {name: archive.read(name) for name in archive.namelist()}


class TestDrivePrefix:
    """Tests for WSL drive path rewriting."""

    @pytest.mark.parametrize(
        "path, expected",
        [
            ("/c", "/mnt/c"),
            ("/c/Users/dev/app", "/mnt/c/Users/dev/app"),
            ("/code/app", "/code/app"),
            ("/home/dev/app", "/home/dev/app"),
        ],
    )
    def test_rewrite(self, path, expected):
        assert rewrite_drive_prefix(path) == expected

    def test_missing_path_raises(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            resolve_path(str(tmp_path / "missing"))


class TestBuildArchive:
    """Tests for build_archive."""

    def test_inline_file(self):
        entries = read_zip(build_archive([{"filename": "a.txt", "content": "x"}]))
        assert entries == {"a.txt": b"x"}

    def test_inline_files_never_touch_filesystem(self, monkeypatch):
        def fail(*args, **kwargs):
            raise AssertionError("filesystem accessed")

        monkeypatch.setattr("cloud_run_mcp.core.archive.resolve_path", fail)
        entries = read_zip(
            build_archive(
                [
                    InlineFile(filename="src/index.js", content="console.log(1)"),
                    {"filename": "package.json", "content": "{}"},
                ]
            )
        )

        assert entries == {"src/index.js": b"console.log(1)", "package.json": b"{}"}

    def test_directory_contents_at_archive_root(self, source_dir: Path):
        (source_dir / "pkg").mkdir()
        (source_dir / "pkg" / "util.go").write_text("package pkg\n")

        entries = read_zip(build_archive([str(source_dir)]))

        assert sorted(entries) == ["Dockerfile", "go.mod", "main.go", "pkg/util.go"]
        assert entries["pkg/util.go"] == b"package pkg\n"

    def test_single_file_by_base_name(self, source_dir: Path):
        entries = read_zip(build_archive([str(source_dir / "main.go")]))
        assert list(entries) == ["main.go"]

    def test_missing_path_fails(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            build_archive([{"filename": "a.txt", "content": "x"}, str(tmp_path / "nope")])

    def test_output_is_reproducible_order(self, source_dir: Path):
        first = build_archive([str(source_dir)])
        with zipfile.ZipFile(io.BytesIO(first)) as archive:
            names = archive.namelist()
            compression = {info.compress_type for info in archive.infolist()}

        assert names == ["Dockerfile", "go.mod", "main.go"]
        assert compression == {zipfile.ZIP_DEFLATED}


class TestValidateInputs:
    """Tests for pre-flight validation."""

    def test_valid_inputs_are_coerced(self, source_dir: Path):
        inputs = validate_inputs([str(source_dir), {"filename": "a.txt", "content": "x"}])

        assert inputs[0] == str(source_dir)
        assert isinstance(inputs[1], InlineFile)

    def test_missing_path(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            validate_inputs([str(tmp_path / "missing.txt")])

    def test_malformed_item(self):
        with pytest.raises(InvalidInputError):
            validate_inputs([{"path": "a.txt"}])


class TestDetectBuildStrategy:
    """Tests for Dockerfile detection."""

    def test_dockerfile_path(self):
        assert detect_build_strategy(["app/Dockerfile", "app/main.go"]) == BuildStrategy.DOCKERFILE

    def test_no_dockerfile(self):
        assert detect_build_strategy(["app/main.go", "app/go.mod"]) == BuildStrategy.BUILDPACK

    def test_case_insensitive(self):
        assert detect_build_strategy(["/src/DOCKERFILE"]) == BuildStrategy.DOCKERFILE

    def test_inline_dockerfile(self):
        files = [InlineFile(filename="Dockerfile", content="FROM python:3.12")]
        assert detect_build_strategy(files) == BuildStrategy.DOCKERFILE

    def test_directory_with_dockerfile(self, source_dir: Path):
        assert detect_build_strategy([str(source_dir)]) == BuildStrategy.DOCKERFILE

    def test_directory_without_dockerfile(self, source_dir: Path):
        (source_dir / "Dockerfile").unlink()
        assert detect_build_strategy([str(source_dir)]) == BuildStrategy.BUILDPACK

    def test_dockerfile_name_as_suffix_does_not_count(self):
        assert detect_build_strategy(["/src/Dockerfile.dev"]) == BuildStrategy.BUILDPACK
