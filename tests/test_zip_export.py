"""Tests for the zip export functionality."""

import hashlib
import zipfile
from pathlib import Path

import pytest
from rich.progress import Progress

from syd.core.zip_export import ZipExporter


@pytest.fixture
def snapshot_dir(tmp_path: Path) -> Path:
    """Create a work tree laid out like a backup repository."""
    source_dir = tmp_path / "snapshot"
    (source_dir / "home" / ".config").mkdir(parents=True)
    (source_dir / "home" / ".zshrc").write_text("export EDITOR=nvim\n")
    (source_dir / "home" / ".config" / "starship.toml").write_text("add_newline = false\n")
    (source_dir / "root" / "etc").mkdir(parents=True)
    (source_dir / "root" / "etc" / "hosts").write_text("127.0.0.1 localhost\n")
    (source_dir / "syd-manifest.yaml").write_text("version: 1\n")
    (source_dir / ".git" / "objects").mkdir(parents=True)
    (source_dir / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
    return source_dir


def test_zip_export_creates_valid_archive(snapshot_dir: Path, tmp_path: Path) -> None:
    """Test that ZipExporter mirrors the repository layout without git metadata."""
    output_path = tmp_path / "out" / "dotfiles.zip"
    ZipExporter(snapshot_dir, output_path).export()

    assert output_path.exists()
    with zipfile.ZipFile(output_path) as zf:
        assert sorted(zf.namelist()) == [
            "home/.config/starship.toml",
            "home/.zshrc",
            "root/etc/hosts",
            "syd-manifest.yaml",
        ]
        assert zf.read("home/.zshrc").decode() == "export EDITOR=nvim\n"


def test_zip_export_checksum(snapshot_dir: Path, tmp_path: Path) -> None:
    """Test that the returned digest matches the archive and its checksum file."""
    output_path = tmp_path / "dotfiles.zip"
    digest = ZipExporter(snapshot_dir, output_path).export()

    assert digest == hashlib.sha256(output_path.read_bytes()).hexdigest()
    checksum = (tmp_path / "dotfiles.zip.sha256").read_text()
    assert checksum == f"{digest}  dotfiles.zip\n"


def test_zip_export_with_progress(snapshot_dir: Path, tmp_path: Path) -> None:
    """Test that ZipExporter works with progress tracking."""
    output_path = tmp_path / "dotfiles.zip"
    exporter = ZipExporter(snapshot_dir, output_path)

    with Progress(disable=True) as progress:
        exporter.export(progress)
        task = progress.tasks[0]
        assert task.total == 4
        assert task.completed == 4


def test_zip_export_missing_source(tmp_path: Path) -> None:
    """Test exporting from a directory that does not exist."""
    exporter = ZipExporter(tmp_path / "missing", tmp_path / "out.zip")
    with pytest.raises(ValueError, match="does not exist"):
        exporter.export()
    assert not (tmp_path / "out.zip").exists()


def test_zip_export_nested_git_dirs_are_kept(tmp_path: Path) -> None:
    """Test that only the top-level .git directory is excluded."""
    source_dir = tmp_path / "snapshot"
    (source_dir / "home" / "project" / ".git").mkdir(parents=True)
    (source_dir / "home" / "project" / ".git" / "config").write_text("[core]\n")

    exporter = ZipExporter(source_dir, tmp_path / "out.zip")
    assert exporter.files() == [source_dir / "home" / "project" / ".git" / "config"]
