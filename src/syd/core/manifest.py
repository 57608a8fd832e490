"""Snapshot manifest.

The manifest is a YAML index stored at the repository root. It records, for
every backed-up file, where it came from and the hash and mode it had when the
snapshot was taken. Restore reads it back to know what to put where.
"""

from __future__ import annotations

import hashlib
import socket
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import yaml

from .errors import ManifestError

MANIFEST_NAME = "syd-manifest.yaml"
MANIFEST_VERSION = 1

_CHUNK_SIZE = 64 * 1024


def file_digest(path: Path) -> str:
    """Return the SHA-256 hex digest of a file."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def bytes_digest(data: bytes) -> str:
    """Return the SHA-256 hex digest of in-memory content."""
    return hashlib.sha256(data).hexdigest()


@dataclass
class ManifestEntry:
    """One file in a snapshot."""

    path: str
    source: str
    origin: str
    sha256: str
    size: int
    mode: int = 0o644


@dataclass
class Manifest:
    """Index of the files contained in a snapshot."""

    entries: Dict[str, ManifestEntry] = field(default_factory=dict)
    created: Optional[str] = None
    hostname: Optional[str] = None
    version: int = MANIFEST_VERSION

    def __contains__(self, repo_path: str) -> bool:
        return repo_path in self.entries

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, repo_path: str) -> Optional[ManifestEntry]:
        return self.entries.get(repo_path)

    def add(self, entry: ManifestEntry) -> None:
        self.entries[entry.path] = entry

    def remove(self, repo_path: str) -> None:
        self.entries.pop(repo_path, None)

    def sorted_entries(self) -> List[ManifestEntry]:
        return [self.entries[k] for k in sorted(self.entries)]

    @classmethod
    def from_entries(cls, entries: Iterable[ManifestEntry]) -> "Manifest":
        manifest = cls()
        for entry in entries:
            manifest.add(entry)
        return manifest

    @classmethod
    def loads(cls, text: str) -> "Manifest":
        """Parse a manifest from YAML text.

        Raises:
            ManifestError: If the text is not a valid manifest.
        """
        try:
            data = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise ManifestError(f"Invalid manifest: {e}") from e

        if not isinstance(data, dict):
            raise ManifestError("Invalid manifest: expected a mapping")

        version = data.get("version", MANIFEST_VERSION)
        if version != MANIFEST_VERSION:
            raise ManifestError(f"Unsupported manifest version: {version}")

        manifest = cls(
            created=data.get("created"),
            hostname=data.get("hostname"),
            version=version,
        )
        for raw in data.get("entries") or []:
            try:
                manifest.add(ManifestEntry(**raw))
            except TypeError as e:
                raise ManifestError(f"Invalid manifest entry {raw!r}: {e}") from e
        return manifest

    @classmethod
    def load(cls, repo_root: Path) -> "Manifest":
        """Load the manifest from a work tree, or an empty one if absent."""
        path = repo_root / MANIFEST_NAME
        if not path.exists():
            return cls()
        return cls.loads(path.read_text(encoding="utf-8"))

    def dumps(self) -> str:
        data = {
            "version": self.version,
            "created": self.created,
            "hostname": self.hostname,
            "entries": [asdict(e) for e in self.sorted_entries()],
        }
        return yaml.safe_dump(data, sort_keys=False, default_flow_style=False)

    def save(self, repo_root: Path) -> Path:
        """Write the manifest into a work tree, stamping creation time and host."""
        self.created = datetime.now().isoformat(timespec="seconds")
        self.hostname = socket.gethostname()
        path = repo_root / MANIFEST_NAME
        path.write_text(self.dumps(), encoding="utf-8")
        return path
