# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Access to bundled sandbox assets.

Assets are addressed by logical, slash-separated names:

- ``bin/proot-aarch64`` / ``bin/proot-arm``: sandbox tool binaries
- ``scripts/setup-alpine.sh``: first-boot script copied into the rootfs

The default reader looks in an optional override directory first and
then in the ``pismo._bundled`` package data.
"""

from __future__ import annotations

import logging
import platform
import shutil
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import BinaryIO, Protocol

from pismo.sandbox.errors import AssetError


logger = logging.getLogger(__name__)

SETUP_SCRIPT_ASSET = "scripts/setup-alpine.sh"

_TOOL_ASSETS = {
    "aarch64": "bin/proot-aarch64",
    "arm": "bin/proot-arm",
}


class AssetReader(Protocol):
    """Read-only access to bundled assets by logical name."""

    def open(self, name: str) -> BinaryIO: ...


def select_tool_asset(arch: str) -> str:
    """Map an instruction-set architecture string to a tool asset name.

    Accepts both kernel names (``aarch64``, ``armv7l``) and Android ABI
    names (``arm64-v8a``, ``armeabi-v7a``).

    Raises:
        AssetError: If the architecture is not supported.
    """
    normalized = arch.strip().lower()
    if "arm64" in normalized or "aarch64" in normalized:
        return _TOOL_ASSETS["aarch64"]
    if normalized.startswith("arm"):
        return _TOOL_ASSETS["arm"]
    raise AssetError(f"Unsupported architecture: {arch or '(unknown)'}")


def host_architecture() -> str:
    return platform.machine()


class BundledAssetReader:
    """Reads assets from an override directory or the package data.

    Attributes:
        override_dir: Directory searched before the bundled data, or
            None to use bundled data only.
    """

    def __init__(self, override_dir: Path | None = None) -> None:
        self.override_dir = override_dir

    def _locate(self, name: str) -> Traversable | Path:
        if self.override_dir is not None:
            candidate = self.override_dir / name
            if candidate.is_file():
                return candidate
        bundled = resources.files("pismo._bundled").joinpath(name)
        if bundled.is_file():
            return bundled
        raise AssetError(f"Bundled asset not found: {name}")

    def open(self, name: str) -> BinaryIO:
        """Open asset *name* for binary reading.

        Raises:
            AssetError: If the asset does not exist or cannot be opened.
        """
        location = self._locate(name)
        try:
            return location.open("rb")
        except OSError as e:
            raise AssetError(f"Cannot read asset {name}: {e}") from e


def copy_asset(reader: AssetReader, name: str, dest: Path) -> None:
    """Copy asset *name* to *dest*, replacing any existing file.

    Raises:
        AssetError: If the asset cannot be read.
        OSError: If *dest* cannot be written.
    """
    with reader.open(name) as src, open(dest, "wb") as out:
        shutil.copyfileobj(src, out)
    logger.debug("Installed asset %s -> %s", name, dest)
