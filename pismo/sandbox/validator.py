# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Readiness checks for a provisioned sandbox.

``validate_environment`` only reads, except that it restores a missing
execute bit on the sandbox binary or launcher script once and creates
the tmp directory when absent.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pismo.sandbox._extract import make_executable
from pismo.sandbox.types import RootLayout


logger = logging.getLogger(__name__)


def is_setup_complete(layout: RootLayout) -> bool:
    """Return True if a completed setup is present.

    No version or checksum is consulted: sentinel plus files is the
    whole predicate.
    """
    return (
        layout.setup_marker.exists()
        and layout.rootfs.exists()
        and layout.sandbox_binary.exists()
        and layout.launcher_script.exists()
    )


def _is_executable(path: Path) -> bool:
    return os.access(path, os.X_OK)


def _ensure_executable(path: Path) -> bool:
    """Return True if *path* is executable, setting the bit once if not."""
    if _is_executable(path):
        return True
    logger.info("Restoring execute permission on %s", path)
    try:
        make_executable(path)
    except OSError as e:
        logger.warning("Cannot chmod %s: %s", path, e)
    return _is_executable(path)


def validate_environment(layout: RootLayout) -> str | None:
    """Check that the sandbox at *layout* can be started.

    Checks run in order and stop at the first failure.

    Returns:
        None if valid, otherwise a message describing the first problem.
    """
    logger.info("Validating Linux environment at %s", layout.base)

    required = [
        ("Base directory", layout.base),
        ("Rootfs directory", layout.rootfs),
        ("Proot binary", layout.sandbox_binary),
        ("Launcher script", layout.launcher_script),
    ]
    for label, path in required:
        exists = path.exists()
        logger.debug("%s: %s exists=%s", label, path, exists)
        if not exists:
            return f"{label} does not exist: {path}"

    for label, path in (
        ("Proot binary", layout.sandbox_binary),
        ("Launcher script", layout.launcher_script),
    ):
        if not _ensure_executable(path):
            return f"{label} is not executable: {path}"

    shell = layout.rootfs / "bin" / "sh"
    busybox = layout.rootfs / "bin" / "busybox"
    if not shell.exists() and not busybox.exists():
        return "No shell found in rootfs (neither /bin/sh nor /bin/busybox)"

    if not layout.tmp_dir.exists():
        layout.tmp_dir.mkdir(parents=True, exist_ok=True)

    logger.info("Linux environment validation passed")
    return None
