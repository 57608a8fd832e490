"""Helpers shared by the test modules."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from syd.core import backup
from syd.core.config import Config

TRACKED = ["~/.zshrc", "~/.config/nvim", "~/bin/hello"]


def make_config(
    folder: Path,
    paths: List[str],
    remote: Optional[Path] = None,
    **repository: Any,
) -> Config:
    """Build a Config the way a loaded syd.conf would."""
    config = Config()
    data: Dict[str, Any] = {
        "files": {
            "paths": paths,
            "folder": str(folder),
            "ignore_patterns": ["*.swp"],
        },
        "repository": {"branch": "main", **repository},
    }
    if remote is not None:
        data["repository"]["remote"] = str(remote)
    config.load_from_dict(data)
    return config


def write_config(path: Path, folder: Path, paths: List[str], remote: Optional[Path] = None) -> Path:
    """Write a syd.conf file and return its path."""
    quoted = ", ".join(f'"{p}"' for p in paths)
    lines = [
        "[files]",
        f"paths = [{quoted}]",
        f'folder = "{folder}"',
        'ignore_patterns = ["*.swp"]',
        "",
        "[repository]",
        'branch = "main"',
    ]
    if remote is not None:
        lines.append(f'remote = "{remote}"')
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines) + "\n")
    return path


def git(repo: Path, *args: str) -> str:
    """Run git in ``repo`` and return stdout."""
    result = subprocess.run(
        ["git", *args], cwd=repo, check=True, capture_output=True, text=True
    )
    return result.stdout.strip()


def make_unreadable(monkeypatch: pytest.MonkeyPatch, source: Path) -> None:
    """Make hashing ``source`` fail the way an unreadable file does."""
    real_digest = backup.file_digest

    def digest(path: Path) -> str:
        if Path(path) == source:
            raise PermissionError(13, "Permission denied", str(path))
        return real_digest(path)

    monkeypatch.setattr(backup, "file_digest", digest)
