# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Generic interactive terminal session.

An ``InteractiveSession`` owns one pseudo-terminal pair.  The master side
is the session's read/write stream; the slave side is handed to a child
process as its controlling terminal.  Sandbox sessions wrap one of these
rather than extending it.
"""

from __future__ import annotations

import errno
import fcntl
import logging
import os
import struct
import termios
from types import TracebackType


logger = logging.getLogger(__name__)


def make_controlling_tty() -> None:
    """Make stdin the controlling terminal of the calling process.

    Runs in the child between fork and exec, after ``setsid()``.
    """
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


class InteractiveSession:
    """A pseudo-terminal pair with stream access to the master side.

    Thread Safety: read() and write() may be used from different
    threads.  finish() is idempotent.
    """

    def __init__(self) -> None:
        self._master_fd, self._slave_fd = os.openpty()
        self._finished = False
        logger.debug(
            "Opened pty master=%d slave=%d", self._master_fd, self._slave_fd
        )

    @property
    def master_fd(self) -> int:
        return self._master_fd

    @property
    def slave_fd(self) -> int | None:
        """Slave descriptor, or None once released to a child."""
        return None if self._slave_fd < 0 else self._slave_fd

    @property
    def finished(self) -> bool:
        return self._finished

    def fileno(self) -> int:
        return self._master_fd

    def read(self, size: int = 4096) -> bytes:
        """Read terminal output.

        Returns:
            Up to *size* bytes, or empty bytes once the slave side has
            closed (the child exited).
        """
        try:
            return os.read(self._master_fd, size)
        except OSError as e:
            # Linux reports a hung-up slave as EIO on the master.
            if e.errno == errno.EIO:
                return b""
            raise

    def write(self, data: bytes) -> int:
        """Write *data* as terminal input, retrying short writes."""
        view = memoryview(data)
        written = 0
        while written < len(view):
            written += os.write(self._master_fd, view[written:])
        return written

    def resize(self, rows: int, columns: int) -> None:
        """Set the terminal window size seen by the child."""
        winsize = struct.pack("HHHH", rows, columns, 0, 0)
        fcntl.ioctl(self._master_fd, termios.TIOCSWINSZ, winsize)

    def release_slave(self) -> None:
        """Close the parent's copy of the slave descriptor.

        Called after the child has inherited it, so that the master sees
        end-of-file when the child exits.
        """
        if self._slave_fd >= 0:
            os.close(self._slave_fd)
            self._slave_fd = -1

    def finish(self) -> None:
        """Release both descriptors."""
        if self._finished:
            return
        self._finished = True
        self.release_slave()
        try:
            os.close(self._master_fd)
        except OSError as e:
            logger.debug("Closing pty master failed: %s", e)
        logger.debug("Interactive session finished")

    def __enter__(self) -> InteractiveSession:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.finish()
