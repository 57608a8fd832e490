"""Restore functionality for dotfiles."""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import Config
from .errors import GitError, ManifestError, RegistryError, SyncError, VerificationError
from .manifest import MANIFEST_NAME, Manifest, ManifestEntry, bytes_digest, file_digest
from .registry import Registry, contract_path, from_repo_path, is_tracked_repo_path
from .repository import GitRepository
from .sync import RemoteSync

logger = logging.getLogger(__name__)


class RestoreStatus(str, Enum):
    """Outcome of restoring a single file."""

    RESTORED = "restored"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    MISSING = "missing"
    MISMATCH = "mismatch"


@dataclass
class RestoreAction:
    """A file considered for restore and what happened to it."""

    entry: ManifestEntry
    target: Path
    status: RestoreStatus
    digest: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class RestoreResult:
    """Outcome of a restore run."""

    actions: List[RestoreAction] = field(default_factory=list)
    revision: Optional[str] = None

    def by_status(self, status: RestoreStatus) -> List[RestoreAction]:
        return [a for a in self.actions if a.status == status]

    @property
    def restored(self) -> List[RestoreAction]:
        return self.by_status(RestoreStatus.RESTORED)

    @property
    def skipped(self) -> List[RestoreAction]:
        return self.by_status(RestoreStatus.SKIPPED)

    @property
    def unchanged(self) -> List[RestoreAction]:
        return self.by_status(RestoreStatus.UNCHANGED)

    @property
    def missing(self) -> List[RestoreAction]:
        return self.by_status(RestoreStatus.MISSING)

    @property
    def mismatched(self) -> List[RestoreAction]:
        return self.by_status(RestoreStatus.MISMATCH)


class RestoreManager:
    """Restore dotfiles from the backup repository to their original locations."""

    def __init__(
        self,
        config: Config,
        console: Optional[Console] = None,
        home: Optional[Path] = None,
    ) -> None:
        """Initialize restore manager.

        Args:
            config: Loaded configuration.
            console: Rich console for output.
            home: Home directory override, mainly for tests.
        """
        self.config = config
        self.console = console or Console()
        self.home = home or Path.home()
        self.repo = GitRepository(config.folder)
        self.registry = Registry(config.paths, config.ignore_patterns, self.home)
        logger.debug("RestoreManager initialized with backup directory: %s", self.repo.path)

    def _read(self, repo_path: str, revision: Optional[str]) -> Optional[bytes]:
        """Read a file from the snapshot, or None if it is not there."""
        if revision:
            try:
                return self.repo.show_file(revision, repo_path)
            except GitError as e:
                logger.debug("%s not in %s: %s", repo_path, revision, e)
                return None
        path = self.repo.path / repo_path
        return path.read_bytes() if path.is_file() else None

    def _snapshot_files(self, revision: Optional[str]) -> List[str]:
        if revision:
            return self.repo.list_tree(revision)
        return [
            p.relative_to(self.repo.path).as_posix()
            for p in self.repo.path.rglob("*")
            if p.is_file() and ".git" not in p.relative_to(self.repo.path).parts
        ]

    def load_manifest(self, revision: Optional[str] = None) -> Manifest:
        """Load the manifest of the work tree or of ``revision``.

        Snapshots without a manifest are indexed from their ``home/`` and
        ``root/`` trees.

        Raises:
            ManifestError: If the manifest cannot be parsed.
        """
        raw = self._read(MANIFEST_NAME, revision)
        if raw is not None:
            return Manifest.loads(raw.decode("utf-8"))

        logger.warning("Snapshot has no %s, indexing files directly", MANIFEST_NAME)
        manifest = Manifest()
        for repo_path in sorted(self._snapshot_files(revision)):
            if not is_tracked_repo_path(repo_path):
                continue
            data = self._read(repo_path, revision)
            if data is None:
                continue
            manifest.add(
                ManifestEntry(
                    path=repo_path,
                    source=contract_path(from_repo_path(repo_path, self.home), self.home),
                    origin=repo_path,
                    sha256=bytes_digest(data),
                    size=len(data),
                )
            )
        return manifest

    def select_entries(
        self, manifest: Manifest, paths: Optional[Iterable[str]] = None
    ) -> List[ManifestEntry]:
        """Entries to restore, optionally limited to the given tracked paths."""
        entries = manifest.sorted_entries()
        if not paths:
            return entries
        selectors = list(paths)
        return [
            e
            for e in entries
            if self.registry.matches(e.path, selectors) or e.origin in selectors
        ]

    def _write(self, target: Path, data: bytes, mode: int) -> None:
        """Write ``data`` to ``target`` atomically and apply ``mode``."""
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.chmod(tmp_name, mode)
            os.replace(tmp_name, target)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def restore_entry(
        self,
        entry: ManifestEntry,
        revision: Optional[str] = None,
        force: bool = False,
        dry_run: bool = False,
    ) -> RestoreAction:
        """Restore a single manifest entry."""
        target = from_repo_path(entry.path, self.home)
        data = self._read(entry.path, revision)
        if data is None:
            logger.warning("Backup file %s not found", entry.path)
            return RestoreAction(entry, target, RestoreStatus.MISSING, reason="not in snapshot")

        digest = bytes_digest(data)
        if digest != entry.sha256:
            logger.error("%s does not match its manifest hash", entry.path)
            self.console.print(
                f"[red]Not restoring {escape(entry.path)}: content does not match the manifest"
            )
            return RestoreAction(
                entry, target, RestoreStatus.MISMATCH, digest, "content does not match manifest"
            )

        if target.is_dir():
            return RestoreAction(
                entry, target, RestoreStatus.SKIPPED, digest, "target is a directory"
            )

        if target.exists():
            if file_digest(target) == digest:
                return RestoreAction(entry, target, RestoreStatus.UNCHANGED, digest)
            if not force:
                logger.debug("Skipping existing file: %s (use --force to overwrite)", target)
                self.console.print(
                    f"[yellow]Skipping existing file: {escape(str(target))} "
                    "(use --force to overwrite)"
                )
                return RestoreAction(
                    entry, target, RestoreStatus.SKIPPED, digest, "local file differs"
                )

        if dry_run:
            self.console.print(f"Would restore file: {escape(entry.path)} -> {escape(str(target))}")
        else:
            self._write(target, data, entry.mode)
            logger.info("Restored %s", target)
            self.console.print(f"[green]Restored: {escape(entry.path)} -> {escape(str(target))}")
        return RestoreAction(entry, target, RestoreStatus.RESTORED, digest)

    def prepare_repository(self, pull: bool = True) -> GitRepository:
        """Make sure an up-to-date backup repository is available locally.

        Raises:
            SyncError: If there is neither a local repository nor a remote.
        """
        sync = RemoteSync(self.config, self.repo)
        if pull:
            with self.console.status("Fetching snapshots from remote..."):
                repo = sync.clone_or_pull()
            if repo is not None:
                self.repo = repo
        if not self.repo.exists():
            raise SyncError(
                f"No backup repository at {self.repo.path} and no remote configured"
            )
        return self.repo

    def validate_restore(self, actions: List[RestoreAction]) -> List[RestoreAction]:
        """Return restored actions whose target does not match the manifest hash."""
        failed = []
        for action in actions:
            if action.status != RestoreStatus.RESTORED:
                continue
            if not action.target.is_file() or file_digest(action.target) != action.entry.sha256:
                logger.error("File content mismatch after restore: %s", action.target)
                failed.append(action)
        return failed

    def display_results(self, result: RestoreResult) -> None:
        """Display a restore summary in a table."""
        table = Table(title="Restore Results")
        table.add_column("Status", style="cyan")
        table.add_column("Files", justify="right")
        table.add_column("Details", style="yellow")

        counts: Dict[RestoreStatus, List[RestoreAction]] = {
            status: result.by_status(status) for status in RestoreStatus
        }
        for status, actions in counts.items():
            details = ", ".join(escape(str(a.target)) for a in actions[:3])
            if len(actions) > 3:
                details += ", ..."
            table.add_row(status.value, str(len(actions)), details)

        self.console.print(table)

    def restore(
        self,
        paths: Optional[Iterable[str]] = None,
        revision: Optional[str] = None,
        force: bool = False,
        dry_run: bool = False,
        pull: bool = True,
    ) -> RestoreResult:
        """Restore dotfiles from the latest snapshot or from ``revision``.

        Args:
            paths: Optional tracked paths limiting what is restored.
            revision: Commit, tag or branch to restore from instead of the work tree.
            force: Overwrite local files that differ from the snapshot.
            dry_run: Only show what would be restored.
            pull: Clone or pull from the remote first.

        Returns:
            RestoreResult: Per-file outcomes.

        Raises:
            SyncError: If the repository cannot be obtained.
            ManifestError: If the snapshot manifest is unreadable.
            VerificationError: If snapshot content or a restored file does not match
                the manifest.
        """
        self.prepare_repository(pull=pull)

        if revision:
            resolved = self.repo.head_commit(revision)
            if resolved is None:
                raise ManifestError(f"Unknown revision: {revision}")
            revision = resolved

        manifest = self.load_manifest(revision)
        entries = self.select_entries(manifest, paths)
        result = RestoreResult(revision=revision)
        if not entries:
            self.console.print("[yellow]No files found in backup to restore")
            return result

        logger.info("Restoring %d files from %s", len(entries), self.repo.path)
        for entry in entries:
            try:
                result.actions.append(self.restore_entry(entry, revision, force, dry_run))
            except RegistryError as e:
                logger.warning("Skipping %s: %s", entry.path, e)

        if dry_run:
            return result

        self.display_results(result)
        failed = result.mismatched + self.validate_restore(result.actions)
        if failed:
            raise VerificationError(
                "Files do not match the snapshot manifest: "
                + ", ".join(str(a.target) for a in failed)
            )
        if result.restored:
            self.console.print("[green]All files restored successfully!")
        return result
