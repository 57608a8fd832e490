"""Path-tracking registry.

Maps tracked filesystem paths to repository-relative paths and back. Files
under the home directory live below ``home/`` in the repository, every other
absolute path below ``root/``, so two sources can never collide.
"""

from __future__ import annotations

import fnmatch
import glob
import logging
import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional, Tuple

from .errors import PathExpansionError, RegistryError

logger = logging.getLogger(__name__)

HOME_PREFIX = "home"
ROOT_PREFIX = "root"

# Names never copied into the repository
EXCLUDED_FILES = [".DS_Store", "Thumbs.db", "desktop.ini", "__pycache__", ".git"]

GLOB_CHARS = ("*", "?", "[")


@dataclass(frozen=True)
class TrackedFile:
    """A single file selected by a tracked path.

    Attributes:
        source: Absolute path of the file on this machine.
        repo_path: POSIX path of the copy, relative to the repository root.
        origin: The configured tracked path that produced this file.
    """

    source: Path
    repo_path: str
    origin: str


def expand_path(path: str, home: Optional[Path] = None) -> Path:
    """Expand ``~`` and make ``path`` absolute.

    Relative paths are taken relative to the home directory, matching how
    dotfiles are usually written (``.zshrc`` means ``~/.zshrc``).

    Raises:
        PathExpansionError: If ``~user`` cannot be resolved.
    """
    home = home or Path.home()
    if path == "~" or path.startswith("~/") or path.startswith("~" + os.sep):
        expanded = home / path[2:] if len(path) > 1 else home
    elif path.startswith("~"):
        expanded = Path(os.path.expanduser(path))
        if str(expanded).startswith("~"):
            raise PathExpansionError(f"Failed to expand tilde: {path}")
    else:
        expanded = Path(path)

    if not expanded.is_absolute():
        expanded = home / expanded
    return Path(os.path.normpath(expanded))


def contract_path(path: Path, home: Optional[Path] = None) -> str:
    """Return ``path`` with the home directory replaced by ``~``."""
    home = home or Path.home()
    try:
        rel = path.relative_to(home)
    except ValueError:
        return str(path)
    return "~" if rel == Path(".") else f"~/{rel.as_posix()}"


def to_repo_path(source: Path, home: Optional[Path] = None) -> str:
    """Map an absolute source path to its repository-relative path."""
    home = home or Path.home()
    try:
        rel = source.relative_to(home)
        return str(PurePosixPath(HOME_PREFIX, *rel.parts))
    except ValueError:
        pass

    parts: List[str] = []
    if source.drive:
        parts.append(source.drive.rstrip(":\\/").lstrip("\\/") or "unc")
    parts.extend(source.parts[1:])
    return str(PurePosixPath(ROOT_PREFIX, *parts))


def from_repo_path(repo_path: str, home: Optional[Path] = None) -> Path:
    """Map a repository-relative path back to its location on this machine.

    Raises:
        RegistryError: If the path is outside ``home/`` and ``root/``.
    """
    home = home or Path.home()
    parts = PurePosixPath(repo_path).parts
    if len(parts) < 2 or ".." in parts:
        raise RegistryError(f"Not a tracked repository path: {repo_path}")

    prefix, rest = parts[0], parts[1:]
    if prefix == HOME_PREFIX:
        return home.joinpath(*rest)
    if prefix == ROOT_PREFIX:
        if os.name == "nt":
            return Path(f"{rest[0]}:\\").joinpath(*rest[1:])
        return Path("/").joinpath(*rest)
    raise RegistryError(f"Not a tracked repository path: {repo_path}")


def is_tracked_repo_path(repo_path: str) -> bool:
    """Whether ``repo_path`` lives under one of the tracked prefixes."""
    parts = PurePosixPath(repo_path).parts
    return len(parts) >= 2 and parts[0] in (HOME_PREFIX, ROOT_PREFIX)


class Registry:
    """Resolves configured tracked paths into concrete files.

    Attributes:
        paths: Tracked paths as configured.
        ignore_patterns: Extra fnmatch patterns to exclude.
        home: Home directory used for ``~`` expansion and ``home/`` mapping.
    """

    def __init__(
        self,
        paths: Iterable[str],
        ignore_patterns: Optional[Iterable[str]] = None,
        home: Optional[Path] = None,
    ) -> None:
        self.paths = list(paths)
        self.ignore_patterns = list(ignore_patterns or [])
        self.home = home or Path.home()

    def is_excluded(self, repo_path: str) -> bool:
        """Check a repository path against the built-in exclusions and ignore patterns."""
        parts = PurePosixPath(repo_path).parts
        if any(part in EXCLUDED_FILES for part in parts):
            return True
        return any(
            fnmatch.fnmatch(parts[-1], pattern) or fnmatch.fnmatch(repo_path, pattern)
            for pattern in self.ignore_patterns
        )

    def _files_under(self, path: Path) -> List[Path]:
        if path.is_file():
            return [path]
        if path.is_dir():
            return sorted(p for p in path.rglob("*") if p.is_file())
        return []

    def expand(self, tracked: str) -> List[Path]:
        """Return every existing file selected by one tracked path."""
        expanded = expand_path(tracked, self.home)
        if any(c in str(expanded) for c in GLOB_CHARS):
            matches = [Path(m) for m in sorted(glob.glob(str(expanded), recursive=True))]
        else:
            matches = [expanded] if expanded.exists() else []

        files: List[Path] = []
        for match in matches:
            files.extend(self._files_under(match))
        return files

    def resolve(self) -> Tuple[List[TrackedFile], List[str]]:
        """Resolve all tracked paths.

        Returns:
            Tuple of (tracked files sorted by repository path, tracked paths
            that matched nothing). When two tracked paths select the same
            file, the first one listed wins.
        """
        seen = {}
        missing: List[str] = []

        for tracked in self.paths:
            files = self.expand(tracked)
            if not files:
                logger.warning("Tracked path %s does not exist", tracked)
                missing.append(tracked)
                continue

            for source in files:
                repo_path = to_repo_path(source, self.home)
                if self.is_excluded(repo_path):
                    logger.debug("Excluding %s", source)
                    continue
                seen.setdefault(repo_path, TrackedFile(source, repo_path, tracked))

        return [seen[k] for k in sorted(seen)], missing

    def matches(self, repo_path: str, selectors: Iterable[str]) -> bool:
        """Whether ``repo_path`` is selected by any of the given tracked paths.

        A selector matches its own repository path and everything below it.
        Glob selectors are matched with fnmatch.
        """
        for selector in selectors:
            target = to_repo_path(expand_path(selector, self.home), self.home)
            if any(c in target for c in GLOB_CHARS):
                if fnmatch.fnmatch(repo_path, target):
                    return True
            elif repo_path == target or repo_path.startswith(target + "/"):
                return True
        return False
