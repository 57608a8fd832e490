"""Exception types raised by syd.

Every error a command can surface to the user derives from :class:`SydError`,
so the CLI can report failures with a single ``except`` clause.
"""


class SydError(Exception):
    """Base class for all syd errors."""


class ConfigError(SydError):
    """Configuration file is missing, unparsable, or invalid."""


class PathExpansionError(SydError):
    """A tracked path could not be expanded (e.g. ``~unknownuser``)."""


class RegistryError(SydError):
    """A repository-relative path does not map back to the filesystem."""


class ManifestError(SydError):
    """The snapshot manifest could not be read."""


class GitError(SydError, RuntimeError):
    """A git command failed."""


class GitConfigError(SydError):
    """Git identity (user.name / user.email) is not configured."""


class SyncError(SydError):
    """Synchronisation with the remote repository failed."""


class VerificationError(SydError):
    """A copied file does not match its source."""
