# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Unpack a tar stream into a root filesystem directory.

Only directories and regular files are materialized.  Symlinks and
hardlinks are skipped, so an untrusted archive can never redirect a
later write outside the destination.  Files under the usual binary
directories are marked executable.

Extraction is not transactional: a failure partway through leaves a
partially populated destination.  The provisioner wipes the whole tree
before every run instead.
"""

from __future__ import annotations

import logging
import shutil
import threading
from dataclasses import dataclass
from pathlib import Path

from pismo.sandbox.errors import ProvisionCancelled
from pismo.sandbox.tar import EntryType, TarStreamReader, has_parent_segment


logger = logging.getLogger(__name__)

#: Path prefixes (relative to the rootfs) whose files become executable.
EXECUTABLE_PREFIXES = ("bin/", "sbin/", "usr/bin/", "usr/sbin/")


@dataclass
class ExtractionStats:
    """Counters for one extraction run."""

    files: int = 0
    directories: int = 0
    skipped: int = 0
    bytes_written: int = 0


def make_executable(path: Path) -> None:
    """Add execute permission for owner, group and others."""
    mode = path.stat().st_mode
    path.chmod(mode | 0o111)


def is_executable_path(name: str) -> bool:
    return name.startswith(EXECUTABLE_PREFIXES)


def extract(
    reader: TarStreamReader,
    dest_root: Path,
    *,
    cancel: threading.Event | None = None,
) -> ExtractionStats:
    """Extract every safe entry from *reader* into *dest_root*.

    Args:
        reader: Reader positioned at the start of the archive.
        dest_root: Destination directory (created if missing).
        cancel: Optional event; when set, extraction stops before the
            next entry.

    Returns:
        Counters describing what was written.

    Raises:
        ProvisionCancelled: If *cancel* was set.
        OSError: On any filesystem or stream failure.
    """
    dest_root.mkdir(parents=True, exist_ok=True)
    stats = ExtractionStats()

    for entry in reader:
        if cancel is not None and cancel.is_set():
            raise ProvisionCancelled("Setup cancelled")

        name = entry.name
        if not name or has_parent_segment(name):
            stats.skipped += 1
            continue

        target = dest_root / name
        if entry.is_dir:
            target.mkdir(parents=True, exist_ok=True)
            stats.directories += 1
        elif entry.is_link:
            logger.debug("Skipping link %s -> %s", name, entry.link_target)
            stats.skipped += 1
        elif entry.type is EntryType.REGULAR:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "wb") as out:
                stats.bytes_written += reader.copy_to(out)
            if is_executable_path(name):
                make_executable(target)
            stats.files += 1
        else:
            logger.debug("Skipping unsupported entry type: %s", name)
            stats.skipped += 1

    ensure_shell(dest_root)

    logger.info(
        "Extracted %d files, %d directories (%d skipped, %d bytes)",
        stats.files,
        stats.directories,
        stats.skipped,
        stats.bytes_written,
    )
    return stats


def ensure_shell(rootfs: Path) -> None:
    """Provide ``bin/sh`` as a copy of ``bin/busybox`` when missing.

    Busybox dispatches on its invocation name, so a copy named ``sh``
    behaves as a shell.
    """
    busybox = rootfs / "bin" / "busybox"
    if not busybox.is_file():
        return
    make_executable(busybox)

    sh = rootfs / "bin" / "sh"
    if sh.exists() or sh.is_symlink():
        return
    shutil.copyfile(busybox, sh)
    make_executable(sh)
    logger.info("Created bin/sh from bin/busybox")
