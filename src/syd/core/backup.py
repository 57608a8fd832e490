"""Backup functionality for dotfiles.

This module diffs the tracked files against the backup repository, copies new
and changed files into it, verifies the copies, and records the result as a
git commit (a *snapshot*) which is then pushed to the configured remote.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn

from .config import Config
from .errors import GitError, VerificationError
from .manifest import Manifest, ManifestEntry, file_digest
from .registry import HOME_PREFIX, ROOT_PREFIX, Registry, TrackedFile, contract_path
from .repository import GitRepository
from .sync import RemoteSync
from .zip_export import ZipExporter

logger = logging.getLogger(__name__)


class ChangeStatus(str, Enum):
    """How a tracked file compares with the repository copy."""

    ADDED = "added"
    MODIFIED = "modified"
    UNCHANGED = "unchanged"
    REMOVED = "removed"
    MISSING = "missing"
    UNREADABLE = "unreadable"


@dataclass
class FileChange:
    """A planned change for a single repository path.

    ``tracked`` is None for removed and missing entries; ``digest`` is the
    SHA-256 of the source for added, modified and unchanged entries. ``error``
    says why an unreadable source could not be hashed.
    """

    repo_path: str
    status: ChangeStatus
    tracked: Optional[TrackedFile] = None
    digest: Optional[str] = None
    mode: Optional[int] = None
    error: Optional[str] = None

    @property
    def pending(self) -> bool:
        return self.status in (ChangeStatus.ADDED, ChangeStatus.MODIFIED, ChangeStatus.REMOVED)


@dataclass
class BackupResult:
    """Outcome of a backup run."""

    changes: List[FileChange] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    committed: bool = False
    pushed: bool = False
    commit: Optional[str] = None
    archive: Optional[Path] = None

    def count(self, status: ChangeStatus) -> int:
        return sum(1 for c in self.changes if c.status == status)


class BackupManager:
    """Manages snapshots of tracked dotfiles.

    This class handles the backup process, including:
    - Resolving tracked paths into files
    - Diffing them against the backup repository by content hash
    - Copying files while preserving metadata, and verifying each copy
    - Pruning files that are no longer tracked
    - Committing the snapshot and pushing it to the remote

    Attributes:
        config (Config): Configuration object containing backup settings
        console (Console): Rich console for output formatting
        repo (GitRepository): The backup repository
        registry (Registry): Resolves tracked paths to files
    """

    def __init__(
        self,
        config: Config,
        console: Optional[Console] = None,
        home: Optional[Path] = None,
    ):
        """Initialize the backup manager.

        Args:
            config (Config): Configuration object containing backup settings
            console (Optional[Console]): Rich console for output. If None, creates
                                      a new console.
            home (Optional[Path]): Home directory override, mainly for tests.
        """
        self.config = config
        self.console = console or Console()
        self.home = home or Path.home()
        self.repo = GitRepository(config.folder)
        self.registry = Registry(config.paths, config.ignore_patterns, self.home)

    @property
    def backup_dir(self) -> Path:
        """Work tree of the backup repository."""
        return self.repo.path

    def create_backup_folder(self) -> None:
        """Create the backup folder if needed."""
        if not self.backup_dir.exists():
            self.backup_dir.mkdir(parents=True)
            logger.info("Folder %s created.", self.backup_dir)
        else:
            logger.debug("Backup folder %s already exists", self.backup_dir)

    def init_repository(self) -> GitRepository:
        """Ensure the backup folder holds a git repository wired to the remote."""
        self.create_backup_folder()
        if not self.repo.exists():
            self.repo.init(self.config.branch)
        else:
            logger.debug("Git repository already exists")
        if self.config.remote:
            RemoteSync(self.config, self.repo).ensure_remote()
        return self.repo

    def _stored_paths(self, manifest: Manifest) -> List[str]:
        """Repository paths currently holding backed-up files."""
        stored = set(manifest.entries)
        for prefix in (HOME_PREFIX, ROOT_PREFIX):
            base = self.backup_dir / prefix
            if base.is_dir():
                stored.update(
                    p.relative_to(self.backup_dir).as_posix()
                    for p in base.rglob("*")
                    if p.is_file()
                )
        return sorted(stored)

    def plan(self) -> List[FileChange]:
        """Compare tracked files against the repository work tree.

        Returns:
            List[FileChange]: One change per repository path, sorted, followed
            by one MISSING change per tracked path that matched nothing.
        """
        manifest = Manifest.load(self.backup_dir)
        tracked_files, missing = self.registry.resolve()
        changes: List[FileChange] = []
        tracked_paths = set()

        for tracked in tracked_files:
            tracked_paths.add(tracked.repo_path)
            try:
                digest = file_digest(tracked.source)
                mode = tracked.source.stat().st_mode & 0o777
            except OSError as e:
                logger.error("Cannot read %s: %s", tracked.source, e)
                changes.append(
                    FileChange(tracked.repo_path, ChangeStatus.UNREADABLE, tracked, error=str(e))
                )
                continue

            dest = self.backup_dir / tracked.repo_path
            entry = manifest.get(tracked.repo_path)
            if not dest.is_file():
                status = ChangeStatus.ADDED
            elif file_digest(dest) != digest or entry is None or entry.mode != mode:
                status = ChangeStatus.MODIFIED
            else:
                status = ChangeStatus.UNCHANGED
            changes.append(FileChange(tracked.repo_path, status, tracked, digest, mode))

        for repo_path in self._stored_paths(manifest):
            if repo_path in tracked_paths:
                continue
            # Files of a tracked path that vanished entirely are kept, not pruned.
            entry = manifest.get(repo_path)
            if (entry and entry.origin in missing) or self.registry.matches(repo_path, missing):
                continue
            changes.append(FileChange(repo_path, ChangeStatus.REMOVED))

        changes.sort(key=lambda c: c.repo_path)
        changes.extend(FileChange(path, ChangeStatus.MISSING) for path in missing)
        return changes

    def verify_backup(self, source: Path, dest: Path, digest: str) -> None:
        """Check that ``dest`` is a faithful copy of ``source``.

        Raises:
            VerificationError: If the copy is missing or differs.
        """
        if not dest.exists():
            raise VerificationError(f"Destination file not created: {dest}")
        if source.stat().st_size != dest.stat().st_size:
            raise VerificationError(f"File sizes don't match: {source} -> {dest}")
        if file_digest(dest) != digest:
            raise VerificationError(f"File contents don't match: {source} -> {dest}")

    def _copy(self, change: FileChange) -> None:
        if change.tracked is None or change.digest is None:
            raise ValueError(f"Nothing to copy for {change.status.value} path {change.repo_path}")
        source = change.tracked.source
        dest = self.backup_dir / change.repo_path
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, dest)
        self.verify_backup(source, dest, change.digest)

    def _discard_partial(self, repo_path: str) -> None:
        """Put back the last committed copy of ``repo_path`` after a failed copy."""
        if self.repo.has_commits():
            try:
                self.repo.checkout_file(repo_path)
                return
            except GitError:
                logger.debug("%s is not in the last snapshot", repo_path)
        (self.backup_dir / repo_path).unlink(missing_ok=True)

    def _prune(self, repo_path: str) -> None:
        path = self.backup_dir / repo_path
        if path.exists():
            path.unlink()
        parent = path.parent
        while parent != self.backup_dir and parent.exists() and not any(parent.iterdir()):
            parent.rmdir()
            parent = parent.parent

    def _build_manifest(
        self, changes: List[FileChange], previous: Manifest, prune: bool, failed: List[str]
    ) -> Manifest:
        manifest = Manifest()
        for change in changes:
            if change.repo_path in failed:
                if change.repo_path in previous:
                    manifest.add(previous.entries[change.repo_path])
                continue
            if change.tracked is not None and change.digest is not None:
                manifest.add(
                    ManifestEntry(
                        path=change.repo_path,
                        source=contract_path(change.tracked.source, self.home),
                        origin=change.tracked.origin,
                        sha256=change.digest,
                        size=change.tracked.source.stat().st_size,
                        mode=change.mode if change.mode is not None else 0o644,
                    )
                )
            elif change.status == ChangeStatus.REMOVED and not prune:
                if change.repo_path in previous:
                    manifest.add(previous.entries[change.repo_path])

        # Entries kept because their tracked path is currently missing
        planned = {c.repo_path for c in changes}
        for repo_path, entry in previous.entries.items():
            if repo_path not in planned and (self.backup_dir / repo_path).is_file():
                manifest.add(entry)
        return manifest

    def backup(
        self,
        dry_run: bool = False,
        push: Optional[bool] = None,
        message: Optional[str] = None,
        prune: bool = True,
        zip_export: Optional[Path] = None,
    ) -> BackupResult:
        """Take a snapshot of all tracked files.

        Args:
            dry_run (bool): If True, only show what would be backed up
            push (Optional[bool]): Push after committing. Defaults to the
                                 ``auto_push`` setting.
            message (Optional[str]): Commit message override
            prune (bool): Delete files that are no longer tracked
            zip_export (Optional[Path]): Also write the snapshot to this zip file

        Returns:
            BackupResult: What changed and whether a commit was made.

        Raises:
            VerificationError: If a copied file does not match its source.
            GitConfigError: If git has no author identity configured.
            SyncError: If pushing to the remote fails.
        """
        if not dry_run:
            self.init_repository()

        changes = self.plan()
        result = BackupResult(changes=changes)
        for change in changes:
            if change.status == ChangeStatus.MISSING:
                self.console.print(
                    f"[yellow]Warning: tracked path {escape(change.repo_path)} not found"
                )
            elif change.status == ChangeStatus.UNREADABLE:
                self.console.print(
                    f"[red]Cannot read {escape(change.repo_path)}: {escape(change.error or '')}"
                )
                result.failed.append(change.repo_path)

        pending = [c for c in changes if c.pending and (prune or c.status != ChangeStatus.REMOVED)]
        if not pending:
            if not result.failed:
                logger.info("All files are up to date, no backup needed.")
                self.console.print("[green]All files are up to date, no backup needed.")
            return result

        if dry_run:
            for change in pending:
                verb = "remove" if change.status == ChangeStatus.REMOVED else "back up"
                self.console.print(
                    f"[blue]Would {verb} ({change.status.value}): {escape(change.repo_path)}"
                )
            return result

        self.repo.ensure_identity()
        previous = Manifest.load(self.backup_dir)

        with Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=self.console,
            transient=True,
        ) as progress:
            for change in progress.track(pending, description="Backing up dotfiles..."):
                if change.status == ChangeStatus.REMOVED:
                    self._prune(change.repo_path)
                    self.console.print(f"[red]Removed: {escape(change.repo_path)}")
                    continue
                try:
                    self._copy(change)
                except (OSError, VerificationError) as e:
                    logger.error("Error backing up %s: %s", change.repo_path, e)
                    self._discard_partial(change.repo_path)
                    result.failed.append(change.repo_path)
                    continue
                self.console.print(
                    f"[green]Backed up ({change.status.value}): {escape(change.repo_path)}"
                )

        manifest = self._build_manifest(changes, previous, prune, result.failed)
        # A rewritten manifest would differ by its timestamp alone.
        if manifest.entries != previous.entries:
            manifest.save(self.backup_dir)

        self.repo.add_all()
        result.committed = self.repo.commit(message or self.config.commit_message)
        if result.committed:
            result.commit = self.repo.head_commit()
            logger.info("Snapshot committed: %s", result.commit)
        else:
            logger.info("All up to date. Nothing to commit.")

        if zip_export:
            result.archive = self._export(zip_export)

        should_push = self.config.auto_push if push is None else push
        if result.committed and should_push and self.config.remote:
            RemoteSync(self.config, self.repo).push()
            result.pushed = True

        return result

    def _export(self, zip_path: Path) -> Optional[Path]:
        self.console.print(f"\n[bold]Creating zip archive: {escape(str(zip_path))}")
        try:
            with Progress(
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                MofNCompleteColumn(),
                console=self.console,
                transient=True,
            ) as progress:
                digest = ZipExporter(self.backup_dir, zip_path).export(progress)
        except (OSError, ValueError) as e:
            self.console.print(f"[red]Error creating zip archive: {escape(str(e))}")
            self.console.print("[yellow]Backup was successful but zip creation failed")
            return None
        self.console.print(
            f"[green]Successfully created zip archive: {escape(str(zip_path))} (sha256 {digest})"
        )
        return Path(zip_path)

    def summary(self, changes: List[FileChange]) -> Dict[str, int]:
        """Count changes per status."""
        counts: Dict[str, int] = {status.value: 0 for status in ChangeStatus}
        for change in changes:
            counts[change.status.value] += 1
        return counts
