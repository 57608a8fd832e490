"""Test configuration."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Dict, List

import pytest

from helpers import TRACKED, make_config
from syd.core.config import Config


def pytest_collection_modifyitems(config: pytest.Config, items: List[pytest.Item]) -> None:
    if shutil.which("git") is not None:
        return
    skip_git = pytest.mark.skip(reason="git is not installed")
    for item in items:
        if "git" in item.keywords:
            item.add_marker(skip_git)


@pytest.fixture(autouse=True)
def home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point HOME at an empty directory and give git an identity."""
    home_dir = tmp_path / "home"
    home_dir.mkdir()
    monkeypatch.setenv("HOME", str(home_dir))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test User")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test User")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")
    monkeypatch.delenv("SYD_CONFIG", raising=False)
    return home_dir


@pytest.fixture
def dotfiles(home: Path) -> Dict[str, Path]:
    """Create a few dotfiles in the temporary home."""
    zshrc = home / ".zshrc"
    zshrc.write_text("export EDITOR=nvim\n")

    nvim = home / ".config" / "nvim"
    (nvim / "lua").mkdir(parents=True)
    (nvim / "init.lua").write_text("require('plugins')\n")
    (nvim / "lua" / "plugins.lua").write_text("return {}\n")
    (nvim / ".DS_Store").write_text("junk")
    (nvim / "init.lua.swp").write_text("swap")

    script = home / "bin" / "hello"
    script.parent.mkdir()
    script.write_text("#!/bin/sh\necho hello\n")
    script.chmod(0o755)

    return {"zshrc": zshrc, "nvim": nvim, "script": script}


@pytest.fixture
def remote(tmp_path: Path) -> Path:
    """Create an empty bare repository acting as the remote."""
    remote_dir = tmp_path / "remote.git"
    subprocess.run(["git", "init", "--bare", str(remote_dir)], check=True, capture_output=True)
    subprocess.run(
        ["git", "symbolic-ref", "HEAD", "refs/heads/main"],
        cwd=remote_dir,
        check=True,
        capture_output=True,
    )
    return remote_dir


@pytest.fixture
def config(tmp_path: Path, dotfiles: Dict[str, Path]) -> Config:
    """Configuration tracking the test dotfiles, without a remote."""
    return make_config(tmp_path / "repo", TRACKED)


@pytest.fixture
def remote_config(tmp_path: Path, dotfiles: Dict[str, Path], remote: Path) -> Config:
    """Configuration tracking the test dotfiles and pushing to a bare remote."""
    return make_config(tmp_path / "repo", TRACKED, remote=remote)

