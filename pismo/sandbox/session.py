# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""A running sandboxed shell attached to a pseudo-terminal.

Lifecycle::

    session = SandboxSession(layout)   # validate, spawn, start watcher
    session.write(b"ls\\n")
    output = session.read()

    # Exit is reported once, from the watcher thread:
    event = session.events.get()

    session.finish()                   # SIGHUP the process group

Construction either returns a running session or raises; no partially
started session is ever returned.  The child always runs through the
generated launcher script, never the raw sandbox binary.
"""

from __future__ import annotations

import logging
import os
import queue
import signal
import subprocess
import threading
from collections.abc import Callable
from pathlib import Path

from pismo.sandbox._launcher import build_launcher_spec
from pismo.sandbox.errors import SpawnError, ValidationError
from pismo.sandbox.terminal import InteractiveSession, make_controlling_tty
from pismo.sandbox.types import (
    LauncherSpec,
    RootLayout,
    SessionEvent,
    SessionState,
)
from pismo.sandbox.validator import validate_environment


logger = logging.getLogger(__name__)

ExitCallback = Callable[[SessionEvent], None]


class SandboxSession:
    """Owns one sandboxed process and its terminal.

    Thread Safety: the watcher thread only waits on the pid and reports
    the exit; all other state changes happen on the owner's thread.
    finish() may be called at any time and more than once.
    """

    def __init__(
        self,
        layout: RootLayout,
        *,
        on_exit: ExitCallback | None = None,
    ) -> None:
        """Validate the environment and start the sandboxed shell.

        Args:
            layout: Paths of a provisioned sandbox.
            on_exit: Called from the watcher thread after the exit event
                has been queued.

        Raises:
            ValidationError: If the environment is not usable.
            SpawnError: If the process cannot be started.
        """
        self._layout = layout
        self._on_exit = on_exit
        self._state = SessionState.UNSTARTED
        self._process: subprocess.Popen[bytes] | None = None
        self._exit_code: int | None = None
        self._exited = threading.Event()
        self._state_lock = threading.Lock()
        self._watcher: threading.Thread | None = None
        self.events: queue.Queue[SessionEvent] = queue.Queue()

        self._state = SessionState.SPAWNING
        self._terminal = InteractiveSession()
        try:
            error = validate_environment(layout)
            if error is not None:
                logger.error("Linux environment validation failed: %s", error)
                raise ValidationError(f"Linux environment invalid: {error}")

            spec = build_launcher_spec(layout)
            logger.info("Shell command: %s", list(spec.argv))
            logger.debug("Environment: %s", spec.env_list())
            self._process = self._spawn(spec)
        except BaseException:
            self._terminal.finish()
            self._state = SessionState.TORN_DOWN
            raise

        self._terminal.release_slave()
        self._state = SessionState.RUNNING
        logger.info("Created subprocess with PID: %d", self.pid)
        self._start_watcher()

    # -- properties --------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def pid(self) -> int:
        """Process id of the sandboxed shell (0 if not started)."""
        return self._process.pid if self._process is not None else 0

    @property
    def exit_code(self) -> int | None:
        """Exit status once the process has exited, else None."""
        return self._exit_code

    @property
    def terminal(self) -> InteractiveSession:
        return self._terminal

    @property
    def layout(self) -> RootLayout:
        return self._layout

    # -- terminal I/O ------------------------------------------------

    def read(self, size: int = 4096) -> bytes:
        return self._terminal.read(size)

    def write(self, data: bytes) -> int:
        return self._terminal.write(data)

    def resize(self, rows: int, columns: int) -> None:
        self._terminal.resize(rows, columns)

    def fileno(self) -> int:
        return self._terminal.fileno()

    # -- lifecycle ---------------------------------------------------

    def wait_for_exit(self, timeout: float | None = None) -> int | None:
        """Block until the watcher observed the exit.

        Returns:
            The exit code, or None on timeout.
        """
        if not self._exited.wait(timeout):
            return None
        return self._exit_code

    def finish(self) -> None:
        """Hang up the process group and release the terminal."""
        with self._state_lock:
            if self._state is SessionState.TORN_DOWN:
                return
            # An exit caused by the hangup below is not reported.
            self._state = SessionState.TORN_DOWN
        logger.info("Finishing sandbox session")
        self.hangup_process_group()
        self._terminal.finish()

    def hangup_process_group(self) -> None:
        """Send SIGHUP to every process in the shell's process group.

        The sandbox tool forks descendants; signalling the negated pid
        reaches all of them.  A group that no longer exists is ignored.
        """
        pid = self.pid
        if pid <= 0:
            return
        logger.info("Sending SIGHUP to process group: %d", -pid)
        try:
            os.kill(-pid, signal.SIGHUP)
        except ProcessLookupError:
            logger.debug("Process group %d already gone", pid)
        except PermissionError as e:
            logger.warning("Cannot signal process group %d: %s", pid, e)

    # -- internals ---------------------------------------------------

    def _spawn(self, spec: LauncherSpec) -> subprocess.Popen[bytes]:
        executable = Path(spec.executable)
        logger.info("Starting launcher: %s", executable)
        if not executable.exists():
            raise SpawnError(f"Launcher not found: {executable}")
        if not os.access(executable, os.X_OK):
            raise SpawnError(f"Launcher not executable: {executable}")

        slave = self._terminal.slave_fd
        try:
            return subprocess.Popen(
                list(spec.argv),
                stdin=slave,
                stdout=slave,
                stderr=slave,
                env=spec.env,
                cwd=str(self._layout.base),
                start_new_session=True,
                preexec_fn=make_controlling_tty,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.error("Subprocess creation failed: %s", e)
            raise SpawnError(f"Failed to create subprocess: {e}") from e

    def _start_watcher(self) -> None:
        process = self._process
        assert process is not None

        def _watch() -> None:
            logger.info("Waiting for proot process: %d", process.pid)
            code = process.wait()
            logger.info("Proot process exited with code: %d", code)
            self._handle_exit(SessionEvent(pid=process.pid, exit_code=code))

        self._watcher = threading.Thread(
            target=_watch,
            daemon=True,
            name=f"Proot watcher {process.pid}",
        )
        self._watcher.start()

    def _handle_exit(self, event: SessionEvent) -> None:
        self._exit_code = event.exit_code
        try:
            with self._state_lock:
                report = self._state is SessionState.RUNNING
                if report:
                    self._state = SessionState.EXITED
            if not report:
                logger.debug(
                    "Ignoring exit of %d in state %s", event.pid, self._state
                )
                return
            self.events.put(event)
            if self._on_exit is not None:
                try:
                    self._on_exit(event)
                except Exception:
                    logger.exception(
                        "Exit callback failed for process %d", event.pid
                    )
        finally:
            self._exited.set()
