"""Tests for configuration loading."""

import logging
from pathlib import Path

import pytest

from syd.core.config import Config, default_config_path, render_config
from syd.core.errors import ConfigError


def test_defaults() -> None:
    """Test configuration defaults."""
    config = Config()
    assert config.paths == []
    assert config.folder == Path("~/.local/share/syd/repo").expanduser()
    assert config.remote is None
    assert config.branch == "main"
    assert config.commit_message == "Update dotfiles"
    assert config.auto_push is True
    assert config.validate() == []


def test_load_config_file(tmp_path: Path) -> None:
    """Test loading the canonical schema from a TOML file."""
    config_file = tmp_path / "syd.conf"
    config_file.write_text(
        """
[files]
paths = ["~/.zshrc", "/etc/hosts"]
folder = "~/dotfiles"
ignore_patterns = ["*.bak"]

[repository]
remote = "git@example.com:me/dotfiles.git"
branch = "trunk"
auto_push = false
"""
    )

    config = Config(config_file)
    assert config.config_path == config_file
    assert config.paths == ["~/.zshrc", "/etc/hosts"]
    assert config.folder == Path.home() / "dotfiles"
    assert config.ignore_patterns == ["*.bak"]
    assert config.remote == "git@example.com:me/dotfiles.git"
    assert config.branch == "trunk"
    assert config.auto_push is False
    assert config.get("repository.branch") == "trunk"
    assert config.get("repository.missing", "x") == "x"


def test_legacy_keys(tmp_path: Path) -> None:
    """Test that older spellings are folded into the canonical schema."""
    config_file = tmp_path / "syd.conf"
    config_file.write_text(
        """
[paths]
files = ["~/.vimrc"]

[files]
backup_dir = "~/old-backup"

[git]
repository = "https://example.com/dotfiles.git"
branch = "master"
commit_message = "Sync"
"""
    )

    config = Config(config_file)
    assert config.paths == ["~/.vimrc"]
    assert config.folder == Path.home() / "old-backup"
    assert config.remote == "https://example.com/dotfiles.git"
    assert config.branch == "master"
    assert config.commit_message == "Sync"


def test_canonical_keys_win_over_legacy() -> None:
    """Test precedence when both spellings are present."""
    config = Config()
    config.load_from_dict(
        {
            "files": {"folder": "~/new", "backup_dir": "~/old"},
            "git": {"repository": "legacy-url"},
            "repository": {"remote": "canonical-url"},
        }
    )
    assert config.folder == Path.home() / "new"
    assert config.remote == "canonical-url"


def test_missing_config_file(tmp_path: Path) -> None:
    """Test loading a configuration file that does not exist."""
    with pytest.raises(ConfigError, match="Config file not found"):
        Config(tmp_path / "nope.conf")


def test_invalid_toml(tmp_path: Path) -> None:
    """Test loading a file that is not TOML."""
    config_file = tmp_path / "syd.conf"
    config_file.write_text("[files\npaths = ")
    with pytest.raises(ConfigError, match="Failed to parse config"):
        Config(config_file)


def test_wrong_types() -> None:
    """Test that badly typed values are rejected."""
    with pytest.raises(ConfigError, match="paths must be a list"):
        Config().load_from_dict({"files": {"paths": "~/.zshrc"}})
    with pytest.raises(ConfigError, match="must be a table"):
        Config().load_from_dict({"files": "oops"})


def test_validate() -> None:
    """Test validation errors."""
    config = Config()
    config.load_from_dict(
        {
            "files": {"paths": ["~/.zshrc", ""]},
            "repository": {"branch": "my branch", "commit_message": " "},
        }
    )
    errors = config.validate()
    assert len(errors) == 3
    with pytest.raises(ConfigError, match="Invalid configuration"):
        config.ensure_valid()


def test_unknown_keys_warn(caplog: pytest.LogCaptureFixture) -> None:
    """Test that unknown keys are ignored with a warning."""
    config = Config()
    with caplog.at_level(logging.WARNING):
        config.load_from_dict({"files": {"colour": "blue"}, "extras": {"a": 1}})
    assert "colour" in caplog.text
    assert "[extras].a" in caplog.text
    assert config.get("files.colour") is None


def test_default_config_path(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Test the default location and the environment override."""
    assert default_config_path() == Path.home() / ".config" / "syd" / "syd.conf"
    monkeypatch.setenv("SYD_CONFIG", str(tmp_path / "custom.conf"))
    assert default_config_path() == tmp_path / "custom.conf"
    with pytest.raises(ConfigError):
        Config.load()


def test_render_config(tmp_path: Path) -> None:
    """Test that the generated configuration loads back."""
    config_file = tmp_path / "syd.conf"
    config_file.write_text(
        render_config(paths=["~/.zshrc", '~/odd "name"'], folder=str(tmp_path / "repo"))
    )

    config = Config(config_file)
    assert config.paths == ["~/.zshrc", '~/odd "name"']
    assert config.folder == tmp_path / "repo"
    assert config.remote is None
    assert "*.swp" in config.ignore_patterns
