"""Logging setup for the syd command line.

Diagnostics go through the standard ``logging`` module. The console handler
renders them with rich on the same console the commands print to, so log lines
and command output interleave cleanly. ``--log-file`` adds a plain-text
handler that records everything at DEBUG, including every git invocation.

Example:
    ```python
    from syd.core.logging import setup_logging

    setup_logging(debug=True, log_file="~/.local/state/syd/syd.log")
    ```
"""

import logging
import sys
from pathlib import Path
from types import TracebackType
from typing import Optional, Type

from rich.console import Console
from rich.logging import RichHandler

# Shared console for command output and log rendering
console = Console()

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _console_handler(debug: bool) -> logging.Handler:
    # markup stays off: messages carry paths and config keys such as [files]
    handler = RichHandler(
        console=console,
        show_path=debug,
        enable_link_path=debug,
        markup=False,
        rich_tracebacks=True,
        tracebacks_show_locals=debug,
    )
    handler.setLevel(logging.DEBUG if debug else logging.INFO)
    return handler


def _file_handler(log_file: str, log_format: str) -> logging.Handler:
    log_path = Path(log_file).expanduser()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(log_format))
    return handler


def _install_excepthook(logger: logging.Logger) -> None:
    def handle_exception(
        exc_type: Type[BaseException],
        exc_value: BaseException,
        exc_traceback: Optional[TracebackType],
    ) -> None:
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        logger.critical("Uncaught exception", exc_info=(exc_type, exc_value, exc_traceback))

    sys.excepthook = handle_exception


def setup_logging(
    debug: bool = False,
    log_file: Optional[str] = None,
    log_format: str = LOG_FORMAT,
) -> None:
    """Configure the root logger for one syd invocation.

    Calling it again replaces the handlers installed by the previous call.

    Args:
        debug: Show DEBUG messages (and source locations) on the console.
        log_file: Also write every message, at DEBUG, to this file. ``~`` is
                 expanded and missing parent directories are created.
        log_format: Format string for the log file.
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(logging.DEBUG if (debug or log_file) else logging.INFO)
    root_logger.addHandler(_console_handler(debug))
    if log_file:
        root_logger.addHandler(_file_handler(log_file, log_format))

    logger = logging.getLogger(__name__)
    logger.debug("Logging initialized (debug=%s, log_file=%s)", debug, log_file)
    _install_excepthook(logger)
