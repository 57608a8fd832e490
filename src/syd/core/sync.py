"""Remote synchronisation for the backup repository."""

from __future__ import annotations

import logging
from typing import Optional

from .config import Config
from .errors import GitError, SyncError
from .repository import GitRepository

logger = logging.getLogger(__name__)

REMOTE_NAME = "origin"


class RemoteSync:
    """Keeps the backup repository in step with its configured remote.

    Merges are fast-forward only: if local and remote snapshots have diverged
    the user has to reconcile them with git directly.
    """

    def __init__(self, config: Config, repo: Optional[GitRepository] = None) -> None:
        self.config = config
        self.repo = repo or GitRepository(config.folder)

    @property
    def enabled(self) -> bool:
        """Whether a remote is configured."""
        return bool(self.config.remote)

    def ensure_remote(self) -> None:
        """Point ``origin`` at the configured remote URL."""
        if not self.enabled:
            raise SyncError("No remote repository configured")
        self.repo.set_remote(REMOTE_NAME, self.config.remote)

    def push(self) -> None:
        """Push the configured branch to the remote.

        Raises:
            SyncError: If no remote is configured or the push is rejected.
        """
        self.ensure_remote()
        branch = self.config.branch
        try:
            self.repo.push(REMOTE_NAME, branch)
        except GitError as e:
            raise SyncError(f"Failed to push {branch} to {self.config.remote}: {e}") from e
        logger.info("Changes pushed to %s (%s)", self.config.remote, branch)

    def pull(self) -> bool:
        """Bring the local branch up to date with the remote.

        Returns:
            bool: True if the local branch moved.

        Raises:
            SyncError: If histories have diverged or the fetch fails.
        """
        self.ensure_remote()
        branch = self.config.branch

        try:
            if not self.repo.remote_has_branch(REMOTE_NAME, branch):
                logger.info("Remote has no branch %s yet, nothing to pull", branch)
                return False
            fetched = self.repo.fetch(REMOTE_NAME, branch)
        except GitError as e:
            raise SyncError(f"Failed to fetch from {self.config.remote}: {e}") from e

        local = self.repo.head_commit()
        if local is None:
            self.repo.reset_hard(fetched)
            logger.info("Checked out %s from remote", branch)
            return True

        if local == fetched or self.repo.is_ancestor(fetched, local):
            logger.info("Already up to date with remote")
            return False

        if not self.repo.is_ancestor(local, fetched):
            raise SyncError(
                f"Local branch {branch} and {REMOTE_NAME}/{branch} have diverged; "
                f"reconcile them with git in {self.repo.path}"
            )

        self.repo.merge_ff_only(fetched)
        logger.info("Successfully pulled latest changes from remote")
        return True

    def clone_or_pull(self) -> Optional[GitRepository]:
        """Clone the remote if there is no local repository, otherwise pull.

        Returns the repository, or None when neither a remote nor a local
        repository exists.
        """
        if self.repo.exists():
            if self.enabled:
                self.pull()
            return self.repo

        if not self.enabled:
            return None

        if self.repo.path.exists() and any(self.repo.path.iterdir()):
            raise SyncError(f"Backup folder {self.repo.path} exists and is not a git repository")

        logger.info("Cloning repository from %s", self.config.remote)
        try:
            self.repo = GitRepository.clone(self.config.remote, self.repo.path)
        except GitError as e:
            raise SyncError(f"Failed to clone {self.config.remote}: {e}") from e

        branch = self.config.branch
        if self.repo.remote_has_branch(REMOTE_NAME, branch):
            # The remote HEAD may name another (or a nonexistent) branch.
            if not self.repo.has_commits() or self.repo.get_current_branch() != branch:
                self.repo.checkout_tracking(REMOTE_NAME, branch)
        elif self.repo.has_commits():
            raise SyncError(f"Remote {self.config.remote} has no branch {branch}")
        else:
            # Empty remote: the first snapshot will create the branch.
            self.repo.set_head(branch)
        return self.repo
