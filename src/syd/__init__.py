"""syd: back up dotfiles to a git repository and restore them on demand."""

__version__ = "0.1.0"
