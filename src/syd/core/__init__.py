"""Core functionality for syd."""

from .backup import BackupManager
from .config import Config
from .registry import Registry
from .repository import GitRepository
from .restore import RestoreManager
from .sync import RemoteSync

__all__ = [
    "BackupManager",
    "Config",
    "GitRepository",
    "Registry",
    "RemoteSync",
    "RestoreManager",
]
