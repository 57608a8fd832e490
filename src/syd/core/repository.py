"""Repository functionality for syd."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

from .errors import GitConfigError, GitError

logger = logging.getLogger(__name__)


class GitRepository:
    """Represents the git repository that holds the dotfile snapshots.

    This class wraps the ``git`` command-line client. Network transport and
    credentials are left entirely to git (ssh-agent, credential helpers).

    Attributes:
        path (Path): Path to the repository work tree.
    """

    def __init__(self, path: Path):
        """Initialize repository."""
        self.path = Path(path).expanduser().resolve()
        self.name = self.path.name

    def __str__(self) -> str:
        """Return string representation."""
        return f"GitRepository({self.path})"

    def __repr__(self) -> str:
        """Return string representation."""
        return self.__str__()

    def exists(self) -> bool:
        """Check if the work tree exists and is the top of a git repository."""
        if not (self.path / ".git").exists():
            return False
        try:
            self._run_git("rev-parse", "--git-dir")
            return True
        except GitError:
            return False

    def _run_git(
        self, *args: str, cwd: Optional[Path] = None, strip: bool = True
    ) -> str:
        """Run a Git command and return its output."""
        logger.debug("git %s", " ".join(args))
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=cwd or self.path,
                capture_output=True,
                text=True,
                check=True,
            )
        except FileNotFoundError as e:
            raise GitError("git executable not found on PATH") from e
        except subprocess.CalledProcessError as e:
            if e.stderr:
                raise GitError(f"Git command failed: {e.stderr.strip()}") from e
            if e.stdout:
                raise GitError(f"Git command failed: {e.stdout.strip()}") from e
            raise GitError("Git command failed with no output") from e
        return result.stdout.strip() if strip else result.stdout

    def init(self, branch: str = "main") -> None:
        """Initialize a new repository whose first commit will land on ``branch``.

        Raises:
            GitError: If Git operations fail during initialization.
        """
        self.path.mkdir(parents=True, exist_ok=True)
        self._run_git("init")
        self.set_head(branch)
        logger.info("Git repository initialized in %s", self.path)

    def set_head(self, branch: str) -> None:
        """Point HEAD at ``branch`` without touching the work tree."""
        self._run_git("symbolic-ref", "HEAD", f"refs/heads/{branch}")

    def checkout_tracking(self, remote: str, branch: str) -> None:
        """Check out ``branch`` as a local branch tracking ``remote/branch``."""
        self._run_git("checkout", "-B", branch, "--track", f"{remote}/{branch}")

    @classmethod
    def clone(cls, url: str, path: Path, branch: Optional[str] = None) -> "GitRepository":
        """Clone ``url`` into ``path`` and return the repository."""
        path = Path(path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        repo = cls(path)
        args = ["clone"]
        if branch:
            args.extend(["--branch", branch])
        args.extend([url, str(repo.path)])
        repo._run_git(*args, cwd=path.parent)
        logger.info("Repository cloned into %s", repo.path)
        return repo

    def add_all(self) -> None:
        """Stage all changes, including deletions."""
        self._run_git("add", "--all")

    def commit(self, message: str) -> bool:
        """Commit staged changes.

        Returns:
            bool: False if there was nothing to commit.
        """
        if not self.status_porcelain():
            return False
        try:
            self._run_git("commit", "-m", message)
        except GitError as e:
            if "nothing to commit" in str(e):
                return False
            raise
        return True

    def status_porcelain(self) -> List[str]:
        """Return ``git status --porcelain`` lines."""
        output = self._run_git("status", "--porcelain", strip=False)
        return [line for line in output.splitlines() if line.strip()]

    def has_changes(self) -> bool:
        """Check if there are uncommitted changes, untracked files included."""
        return bool(self.status_porcelain())

    def get_current_branch(self) -> str:
        """Get the current branch name, also for a branch with no commits yet."""
        return self._run_git("symbolic-ref", "--short", "HEAD")

    def has_commits(self) -> bool:
        """Whether HEAD points at a commit."""
        return self.head_commit() is not None

    def head_commit(self, rev: str = "HEAD") -> Optional[str]:
        """Resolve ``rev`` to a commit hash, or None if it does not exist."""
        try:
            return self._run_git("rev-parse", "--verify", "--quiet", f"{rev}^{{commit}}")
        except GitError:
            return None

    def config_get(self, key: str) -> Optional[str]:
        """Read a git config value, or None if unset."""
        try:
            return self._run_git("config", "--get", key) or None
        except GitError:
            return None

    def ensure_identity(self) -> None:
        """Make sure commits can be authored.

        Raises:
            GitConfigError: If neither git config nor the environment provides
                a name and email.
        """
        env = os.environ
        if not (self.config_get("user.name") or env.get("GIT_AUTHOR_NAME")):
            raise GitConfigError("Git user.name not configured")
        if not (self.config_get("user.email") or env.get("GIT_AUTHOR_EMAIL")):
            raise GitConfigError("Git user.email not configured")

    def get_remote_url(self, name: str = "origin") -> Optional[str]:
        """Return the URL of remote ``name``, or None if it does not exist."""
        return self.config_get(f"remote.{name}.url")

    def set_remote(self, name: str, url: str) -> None:
        """Add remote ``name`` or point it at ``url`` if it already exists."""
        current = self.get_remote_url(name)
        if current == url:
            return
        if current is None:
            self._run_git("remote", "add", name, url)
        else:
            self._run_git("remote", "set-url", name, url)
        logger.debug("Remote %s set to %s", name, url)

    def remote_has_branch(self, remote: str, branch: str) -> bool:
        """Whether ``branch`` exists on ``remote``."""
        output = self._run_git("ls-remote", "--heads", remote, f"refs/heads/{branch}")
        return bool(output)

    def fetch(self, remote: str, branch: str) -> str:
        """Fetch ``branch`` from ``remote`` and return the fetched commit."""
        self._run_git("fetch", remote, branch)
        return self._run_git("rev-parse", "FETCH_HEAD")

    def merge_ff_only(self, rev: str) -> None:
        """Fast-forward the current branch to ``rev``."""
        self._run_git("merge", "--ff-only", rev)

    def reset_hard(self, rev: str) -> None:
        """Point the current branch and work tree at ``rev``."""
        self._run_git("reset", "--hard", rev)

    def checkout_file(self, path: str, rev: str = "HEAD") -> None:
        """Reset ``path`` in the work tree and index to its content at ``rev``."""
        self._run_git("checkout", rev, "--", path)

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        """Whether ``ancestor`` is reachable from ``descendant``."""
        try:
            self._run_git("merge-base", "--is-ancestor", ancestor, descendant)
            return True
        except GitError:
            return False

    def push(self, remote: str, branch: str) -> None:
        """Push ``branch`` to ``remote`` and set it as upstream."""
        self._run_git("push", "--set-upstream", remote, f"refs/heads/{branch}:refs/heads/{branch}")

    def show_file(self, rev: str, path: str) -> bytes:
        """Return the raw content of ``path`` at ``rev``."""
        logger.debug("git show %s:%s", rev, path)
        try:
            result = subprocess.run(
                ["git", "show", f"{rev}:{path}"],
                cwd=self.path,
                capture_output=True,
                check=True,
            )
        except subprocess.CalledProcessError as e:
            stderr = e.stderr.decode(errors="replace").strip()
            raise GitError(f"Git command failed: {stderr}") from e
        return result.stdout

    def list_tree(self, rev: str = "HEAD") -> List[str]:
        """List every file path in the tree of ``rev``."""
        output = self._run_git("ls-tree", "-r", "--name-only", "-z", rev, strip=False)
        return [p for p in output.split("\0") if p]

    def log(self, limit: int = 10) -> List[Dict[str, str]]:
        """Return recent commits as dicts with ``hash``, ``date`` and ``message``."""
        if not self.has_commits():
            return []
        output = self._run_git(
            "log", f"-n{limit}", "--format=%H%x1f%cI%x1f%s%x1e", strip=False
        )
        commits = []
        for record in output.split("\x1e"):
            record = record.strip()
            if not record:
                continue
            commit_hash, date, message = record.split("\x1f", 2)
            commits.append({"hash": commit_hash, "date": date, "message": message})
        return commits
