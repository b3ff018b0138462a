# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Centralized logging configuration and the diagnostics log.

Usage:
    # In entry points (CLI)
    from pismo.logging import configure_logging
    configure_logging(level=logging.INFO)

    # Crash/diagnostic file, explicitly started and closed
    with DiagnosticsLog(Path("pismo-crash.log"), data_dir=base) as diag:
        ...

    # In library modules
    import logging
    logger = logging.getLogger(__name__)
    logger.info("Processing file: %s", filename)
"""

from __future__ import annotations

import logging
import platform
import sys
import threading
import traceback
from datetime import datetime
from pathlib import Path
from types import TracebackType
from typing import Any


DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

#: Diagnostics lines carry a wall-clock time with milliseconds.
DIAGNOSTICS_FORMAT = (
    "[%(asctime)s.%(msecs)03d] %(levelname)s %(name)s: %(message)s"
)
DIAGNOSTICS_DATEFMT = "%H:%M:%S"


def configure_logging(
    level: int = logging.INFO,
    format_string: str | None = None,
) -> None:
    """Configure logging for the application.

    Sets up the root logger with a single stream handler.

    Args:
        level: The logging level (e.g., logging.INFO, logging.DEBUG).
        format_string: Custom format string. If None, uses default format.
    """
    if format_string is None:
        format_string = DEFAULT_FORMAT

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(format_string))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for existing_handler in root_logger.handlers[:]:
        root_logger.removeHandler(existing_handler)

    root_logger.addHandler(handler)


class DiagnosticsLog:
    """File-backed diagnostics log with uncaught-exception capture.

    Constructed explicitly and owned by the entry point.  While started,
    every record reaching the root logger is also written to the file,
    and uncaught exceptions (main thread or worker threads) are recorded
    with their traceback before the previous hooks run.

    Writing to the diagnostics file never raises into the caller.

    Attributes:
        path: Location of the log file.
    """

    def __init__(
        self,
        path: Path,
        *,
        data_dir: Path | None = None,
        level: int = logging.DEBUG,
    ) -> None:
        self.path = path
        self._data_dir = data_dir
        self._level = level
        self._handler: logging.FileHandler | None = None
        self._logger = logging.getLogger("pismo.diagnostics")
        self._prev_excepthook: Any = None
        self._prev_threading_hook: Any = None

    @property
    def started(self) -> bool:
        return self._handler is not None

    def start(self) -> None:
        """Truncate the file, write the banner and install hooks."""
        if self._handler is not None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(self.path, mode="w", encoding="utf-8")
        handler.setLevel(self._level)
        handler.setFormatter(
            logging.Formatter(DIAGNOSTICS_FORMAT, DIAGNOSTICS_DATEFMT)
        )
        # Report handler errors to stderr instead of raising.
        handler.handleError = self._handle_error  # type: ignore[method-assign]
        root = logging.getLogger()
        root.addHandler(handler)
        if root.level > self._level or root.level == logging.NOTSET:
            root.setLevel(self._level)
        self._handler = handler

        self._prev_excepthook = sys.excepthook
        self._prev_threading_hook = threading.excepthook
        sys.excepthook = self._excepthook
        threading.excepthook = self._threading_excepthook

        self._write_banner()
        self._logger.info("Diagnostics log initialized")

    def close(self) -> None:
        """Restore hooks and detach the file handler."""
        if self._handler is None:
            return
        if sys.excepthook == self._excepthook:
            sys.excepthook = self._prev_excepthook
        if threading.excepthook == self._threading_excepthook:
            threading.excepthook = self._prev_threading_hook
        logging.getLogger().removeHandler(self._handler)
        try:
            self._handler.close()
        except (OSError, ValueError) as e:
            sys.stderr.write(f"Diagnostics log close failed: {e}\n")
        self._handler = None

    def log(self, message: str) -> None:
        """Append a plain message."""
        self._logger.info("%s", message)

    def log_exception(
        self,
        exc: BaseException,
        *,
        thread_name: str | None = None,
    ) -> None:
        """Append an exception with its traceback."""
        if thread_name is not None:
            self._logger.error("!!! UNCAUGHT EXCEPTION !!!")
            self._logger.error("Thread: %s", thread_name)
        formatted = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )
        self._logger.error(
            "EXCEPTION: %s: %s\n%s", type(exc).__name__, exc, formatted
        )

    def _write_banner(self) -> None:
        self._logger.info("=== Pismo Terminal Started ===")
        self._logger.info("Time: %s", datetime.now().isoformat())
        self._logger.info("Host: %s", platform.node())
        self._logger.info(
            "Platform: %s %s (%s)",
            platform.system(),
            platform.release(),
            platform.machine(),
        )
        if self._data_dir is not None:
            self._logger.info("App data dir: %s", self._data_dir)

    def _excepthook(
        self,
        exc_type: type[BaseException],
        exc: BaseException,
        tb: TracebackType | None,
    ) -> None:
        self.log_exception(exc, thread_name=threading.current_thread().name)
        if self._prev_excepthook is not None:
            self._prev_excepthook(exc_type, exc, tb)

    def _threading_excepthook(self, args: threading.ExceptHookArgs) -> None:
        if args.exc_value is not None:
            name = args.thread.name if args.thread is not None else "?"
            self.log_exception(args.exc_value, thread_name=name)
        if self._prev_threading_hook is not None:
            self._prev_threading_hook(args)

    @staticmethod
    def _handle_error(record: logging.LogRecord) -> None:
        sys.stderr.write(
            f"Diagnostics log write failed: {record.msg!r}\n"
        )

    def __enter__(self) -> DiagnosticsLog:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

