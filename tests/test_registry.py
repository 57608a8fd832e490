"""Tests for the path-tracking registry."""

from pathlib import Path
from typing import Dict

import pytest

from syd.core.errors import PathExpansionError, RegistryError
from syd.core.registry import (
    Registry,
    contract_path,
    expand_path,
    from_repo_path,
    is_tracked_repo_path,
    to_repo_path,
)


def test_expand_path(home: Path) -> None:
    """Test tilde and relative path expansion."""
    assert expand_path("~", home) == home
    assert expand_path("~/.zshrc", home) == home / ".zshrc"
    assert expand_path(".vimrc", home) == home / ".vimrc"
    assert expand_path("/etc/hosts", home) == Path("/etc/hosts")
    assert expand_path("~/a/../b", home) == home / "b"


def test_expand_unknown_user(home: Path) -> None:
    """Test that an unresolvable ~user is an error."""
    with pytest.raises(PathExpansionError):
        expand_path("~no-such-user-for-syd/.zshrc", home)


def test_repo_path_mapping(home: Path) -> None:
    """Test mapping between source paths and repository paths."""
    assert to_repo_path(home / ".zshrc", home) == "home/.zshrc"
    assert to_repo_path(home / ".config" / "nvim" / "init.lua", home) == (
        "home/.config/nvim/init.lua"
    )
    assert to_repo_path(Path("/etc/hosts"), home) == "root/etc/hosts"

    assert from_repo_path("home/.zshrc", home) == home / ".zshrc"
    assert from_repo_path("root/etc/hosts", home) == Path("/etc/hosts")

    assert contract_path(home / ".zshrc", home) == "~/.zshrc"
    assert contract_path(Path("/etc/hosts"), home) == "/etc/hosts"


@pytest.mark.parametrize("repo_path", ["syd-manifest.yaml", "home", "other/file", "home/../x"])
def test_from_repo_path_rejects(home: Path, repo_path: str) -> None:
    """Test that paths outside the tracked prefixes are rejected."""
    with pytest.raises(RegistryError):
        from_repo_path(repo_path, home)


def test_is_tracked_repo_path() -> None:
    """Test the tracked prefix check."""
    assert is_tracked_repo_path("home/.zshrc")
    assert is_tracked_repo_path("root/etc/hosts")
    assert not is_tracked_repo_path("syd-manifest.yaml")
    assert not is_tracked_repo_path("README.md")


def test_resolve(home: Path, dotfiles: Dict[str, Path]) -> None:
    """Test resolving files, directories and exclusions."""
    registry = Registry(["~/.zshrc", "~/.config/nvim", "~/.missing"], ["*.swp"], home)
    tracked, missing = registry.resolve()

    assert [t.repo_path for t in tracked] == [
        "home/.config/nvim/init.lua",
        "home/.config/nvim/lua/plugins.lua",
        "home/.zshrc",
    ]
    assert missing == ["~/.missing"]
    by_path = {t.repo_path: t for t in tracked}
    assert by_path["home/.zshrc"].source == dotfiles["zshrc"]
    assert by_path["home/.config/nvim/init.lua"].origin == "~/.config/nvim"


def test_resolve_glob(home: Path, dotfiles: Dict[str, Path]) -> None:
    """Test glob tracked paths."""
    registry = Registry(["~/.config/nvim/**/*.lua"], [], home)
    tracked, missing = registry.resolve()
    assert missing == []
    assert {t.repo_path for t in tracked} == {
        "home/.config/nvim/init.lua",
        "home/.config/nvim/lua/plugins.lua",
    }


def test_resolve_first_tracked_path_wins(home: Path, dotfiles: Dict[str, Path]) -> None:
    """Test that overlapping tracked paths produce one file."""
    registry = Registry(["~/.config/nvim/init.lua", "~/.config"], ["*.swp"], home)
    tracked, _ = registry.resolve()
    init = [t for t in tracked if t.repo_path == "home/.config/nvim/init.lua"]
    assert len(init) == 1
    assert init[0].origin == "~/.config/nvim/init.lua"


def test_is_excluded(home: Path) -> None:
    """Test built-in exclusions and ignore patterns."""
    registry = Registry([], ["*.swp", "home/.cache/*"], home)
    assert registry.is_excluded("home/.config/.DS_Store")
    assert registry.is_excluded("home/project/__pycache__/mod.pyc")
    assert registry.is_excluded("home/.vimrc.swp")
    assert registry.is_excluded("home/.cache/thing")
    assert not registry.is_excluded("home/.vimrc")


def test_matches(home: Path) -> None:
    """Test matching repository paths against tracked path selectors."""
    registry = Registry([], [], home)
    assert registry.matches("home/.config/nvim/init.lua", ["~/.config/nvim"])
    assert registry.matches("home/.zshrc", ["~/.zshrc"])
    assert registry.matches("home/.config/nvim/init.lua", ["~/.config/*/init.lua"])
    assert not registry.matches("home/.config/nvimrc", ["~/.config/nvim"])
    assert not registry.matches("home/.bashrc", ["~/.zshrc"])
