"""Configuration management for syd."""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "SYD_CONFIG"
DEFAULT_CONFIG_DIR = "~/.config/syd"
DEFAULT_CONFIG_FILE = "syd.conf"

DEFAULT_CONFIG: Dict[str, Any] = {
    "files": {
        "paths": [],
        "folder": "~/.local/share/syd/repo",
        "ignore_patterns": [],
    },
    "repository": {
        "remote": None,
        "branch": "main",
        "commit_message": "Update dotfiles",
        "auto_push": True,
    },
}

# Alternative spellings found in older configuration files, mapped onto
# (section, key) of the canonical schema.
LEGACY_KEYS: Dict[str, Dict[str, tuple]] = {
    "paths": {"files": ("files", "paths")},
    "files": {"backup_dir": ("files", "folder")},
    "git": {
        "repository": ("repository", "remote"),
        "branch": ("repository", "branch"),
        "commit_message": ("repository", "commit_message"),
    },
}

CONFIG_TEMPLATE = """\
# syd configuration
#
# Paths may point at files or directories and may use ~ and glob patterns.

[files]
paths = [{paths}]
folder = {folder}
ignore_patterns = ["*.swp", "*~"]

[repository]
{remote_line}
branch = {branch}
commit_message = "Update dotfiles"
auto_push = true
"""


def default_config_path() -> Path:
    """Return the configuration file path, honouring ``$SYD_CONFIG``."""
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path(DEFAULT_CONFIG_DIR).expanduser() / DEFAULT_CONFIG_FILE


def _toml_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def render_config(
    paths: Optional[List[str]] = None,
    folder: Optional[str] = None,
    remote: Optional[str] = None,
    branch: Optional[str] = None,
) -> str:
    """Render a commented configuration file for ``syd init``."""
    defaults = DEFAULT_CONFIG["repository"]
    return CONFIG_TEMPLATE.format(
        paths=", ".join(_toml_string(p) for p in (paths or [])),
        folder=_toml_string(folder or DEFAULT_CONFIG["files"]["folder"]),
        remote_line=(
            f"remote = {_toml_string(remote)}"
            if remote
            else '# remote = "git@github.com:you/dotfiles.git"'
        ),
        branch=_toml_string(branch or defaults["branch"]),
    )


class Config:
    """Configuration class for syd.

    Attributes:
        paths: Tracked paths as written in the configuration.
        folder: Backup folder holding the local git repository.
        ignore_patterns: fnmatch patterns excluded from backups.
        remote: Remote repository URL, if any.
        branch: Branch snapshots are committed to.
        commit_message: Message used for snapshot commits.
        auto_push: Whether ``backup`` pushes after committing.
        config_path: File the configuration was loaded from, if any.
    """

    def __init__(self, config_file: Optional[Path] = None) -> None:
        """Initialize configuration, loading ``config_file`` when given."""
        self.config: Dict[str, Dict[str, Any]] = {}
        self.paths: List[str] = []
        self.folder: Path = Path()
        self.ignore_patterns: List[str] = []
        self.remote: Optional[str] = None
        self.branch: str = "main"
        self.commit_message: str = "Update dotfiles"
        self.auto_push: bool = True
        self.config_path: Optional[Path] = None

        self._merge_config(DEFAULT_CONFIG)
        if config_file is not None:
            self.load_config(config_file)

    @classmethod
    def load(cls, config_file: Optional[Path] = None) -> "Config":
        """Load configuration from ``config_file`` or the default location."""
        return cls(config_file or default_config_path())

    def load_config(self, config_file: Path) -> None:
        """Load configuration from a TOML file.

        Raises:
            ConfigError: If the file does not exist or is not valid TOML.
        """
        config_file = Path(config_file).expanduser()
        if not config_file.exists():
            raise ConfigError(f"Config file not found: {config_file}")

        try:
            with open(config_file, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Failed to parse config {config_file}: {e}") from e

        self.config_path = config_file
        self._merge_config(self._normalize(data))
        logger.debug("Loaded configuration from %s", config_file)

    def load_from_dict(self, config_data: Dict[str, Any]) -> None:
        """Merge configuration from a dictionary using the file schema.

        Example:
            ```python
            config = Config()
            config.load_from_dict({
                "files": {"paths": ["~/.zshrc"], "folder": "~/dotfiles"},
                "repository": {"branch": "main"},
            })
            ```
        """
        self._merge_config(self._normalize(config_data))

    @staticmethod
    def _normalize(data: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
        """Fold legacy spellings into the canonical ``[files]``/``[repository]`` schema."""
        normalized: Dict[str, Dict[str, Any]] = {}
        legacy: Dict[str, Dict[str, Any]] = {}

        for section, values in data.items():
            if not isinstance(values, dict):
                raise ConfigError(f"[{section}] must be a table")
            aliases = LEGACY_KEYS.get(section, {})
            for key, value in values.items():
                if key in aliases:
                    target_section, target_key = aliases[key]
                    legacy.setdefault(target_section, {})[target_key] = value
                elif section in DEFAULT_CONFIG:
                    normalized.setdefault(section, {})[key] = value
                else:
                    logger.warning("Unknown config key [%s].%s. Ignoring.", section, key)

        # Canonical keys win over legacy ones.
        for section, values in legacy.items():
            for key, value in values.items():
                normalized.setdefault(section, {}).setdefault(key, value)
        return normalized

    def _merge_config(self, config: Dict[str, Dict[str, Any]]) -> None:
        """Merge configuration with current configuration."""
        if not isinstance(config, dict):
            raise ConfigError("Configuration must be a dictionary")

        for section, values in config.items():
            known = DEFAULT_CONFIG.get(section, {})
            unknown = set(values) - set(known)
            if unknown:
                logger.warning(
                    "Unknown config keys in [%s]: %s. Ignoring.",
                    section,
                    ", ".join(sorted(unknown)),
                )
            current = self.config.setdefault(section, {})
            current.update({k: v for k, v in values.items() if k in known})

        files = config.get("files", {})
        if "paths" in files:
            if not isinstance(files["paths"], list):
                raise ConfigError("[files].paths must be a list")
            self.paths = list(files["paths"])
        if "folder" in files:
            if not isinstance(files["folder"], str):
                raise ConfigError("[files].folder must be a string")
            self.folder = Path(files["folder"]).expanduser()
        if "ignore_patterns" in files:
            if not isinstance(files["ignore_patterns"], list):
                raise ConfigError("[files].ignore_patterns must be a list")
            self.ignore_patterns = list(files["ignore_patterns"])

        repository = config.get("repository", {})
        if "remote" in repository:
            self.remote = repository["remote"] or None
        if "branch" in repository:
            self.branch = repository["branch"]
        if "commit_message" in repository:
            self.commit_message = repository["commit_message"]
        if "auto_push" in repository:
            self.auto_push = repository["auto_push"]

    def validate(self) -> List[str]:
        """Validate configuration."""
        errors = []

        for path in self.paths:
            if not isinstance(path, str) or not path.strip():
                errors.append(f"tracked path {path!r} must be a non-empty string")

        for pattern in self.ignore_patterns:
            if not isinstance(pattern, str):
                errors.append(f"ignore pattern {pattern!r} must be a string")

        if not isinstance(self.branch, str) or not self.branch or any(
            c.isspace() for c in self.branch
        ):
            errors.append(f"branch {self.branch!r} must be a non-empty name without whitespace")

        if self.remote is not None and not isinstance(self.remote, str):
            errors.append("remote must be a string")

        if not isinstance(self.commit_message, str) or not self.commit_message.strip():
            errors.append("commit_message must be a non-empty string")

        if not isinstance(self.auto_push, bool):
            errors.append("auto_push must be true or false")

        return errors

    def ensure_valid(self) -> None:
        """Raise :class:`ConfigError` listing every validation error."""
        errors = self.validate()
        if errors:
            raise ConfigError("Invalid configuration: " + "; ".join(errors))

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by ``section.key``.

        Args:
            key: Dotted key such as ``"repository.branch"``.
            default: Value returned when the key is not set.
        """
        section, _, name = key.partition(".")
        return self.config.get(section, {}).get(name, default)
