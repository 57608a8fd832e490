"""
Zip export of a snapshot.

The archive mirrors the repository layout (``home/...``, ``root/...`` and the
manifest) so it can be unpacked anywhere and restored by hand. Git metadata is
left out. A ``<archive>.sha256`` file is written next to the archive in the
format ``sha256sum -c`` understands.
"""

import hashlib
import os
import zipfile
from pathlib import Path
from typing import Iterable, List, Optional

from rich.progress import Progress, TaskID

DEFAULT_EXCLUDES = (".git",)


class ZipExporter:
    """Writes the work tree of the backup repository to a zip archive."""

    def __init__(
        self,
        source_dir: Path,
        output_path: Path,
        exclude: Iterable[str] = DEFAULT_EXCLUDES,
    ):
        """
        Args:
            source_dir: Work tree of the backup repository
            output_path: Archive to create; ``~`` is expanded
            exclude: Names skipped at the top level of the work tree
        """
        self.source_dir = Path(source_dir)
        self.output_path = Path(output_path).expanduser()
        self.exclude = set(exclude)

    @property
    def checksum_path(self) -> Path:
        return self.output_path.with_name(self.output_path.name + ".sha256")

    def files(self) -> List[Path]:
        """Sorted files that go into the archive."""
        selected = []
        for root, dirnames, filenames in os.walk(self.source_dir):
            root_path = Path(root)
            if root_path == self.source_dir:
                dirnames[:] = [d for d in dirnames if d not in self.exclude]
                filenames = [f for f in filenames if f not in self.exclude]
            selected.extend(root_path / name for name in filenames)
        return sorted(selected)

    def export(self, progress: Optional[Progress] = None) -> str:
        """
        Write the archive and its checksum file.

        Args:
            progress: Progress display to report per-file advancement on

        Returns:
            SHA-256 hex digest of the archive

        Raises:
            ValueError: If the work tree does not exist
            OSError: If the archive cannot be written; a partial archive is removed
        """
        if not self.source_dir.is_dir():
            raise ValueError(f"Source directory {self.source_dir} does not exist")

        members = self.files()
        task_id: Optional[TaskID] = None
        if progress is not None:
            task_id = progress.add_task(
                f"Exporting snapshot to {self.output_path.name}", total=len(members)
            )

        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._write_archive(members, progress, task_id)
        except OSError as e:
            self.output_path.unlink(missing_ok=True)
            raise OSError(f"Failed to create zip archive {self.output_path}: {e}") from e

        return self._write_checksum()

    def _write_archive(
        self, members: List[Path], progress: Optional[Progress], task_id: Optional[TaskID]
    ) -> None:
        with zipfile.ZipFile(self.output_path, "w", zipfile.ZIP_DEFLATED) as archive:
            for member in members:
                archive.write(member, member.relative_to(self.source_dir).as_posix())
                if progress is not None and task_id is not None:
                    progress.advance(task_id)

    def _write_checksum(self) -> str:
        digest = hashlib.sha256()
        with open(self.output_path, "rb") as f:
            for chunk in iter(lambda: f.read(64 * 1024), b""):
                digest.update(chunk)
        hexdigest = digest.hexdigest()
        self.checksum_path.write_text(f"{hexdigest}  {self.output_path.name}\n")
        return hexdigest
