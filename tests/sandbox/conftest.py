# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Shared pytest fixtures for sandbox tests."""

import gzip
import io
import tarfile
from collections.abc import Callable
from pathlib import Path
from typing import BinaryIO

import pytest

from pismo.sandbox.errors import AssetError
from pismo.sandbox.tar import BLOCK_SIZE
from pismo.sandbox.types import RootLayout


#: (name, payload) for a regular file, (name, None) for a directory.
TarSpec = list[tuple[str, bytes | None]]


def build_tar(
    entries: TarSpec,
    *,
    symlinks: dict[str, str] | None = None,
) -> bytes:
    """Build an uncompressed ustar archive in memory."""
    buf = io.BytesIO()
    with tarfile.open(
        fileobj=buf, mode="w", format=tarfile.USTAR_FORMAT
    ) as tar:
        for name, payload in entries:
            info = tarfile.TarInfo(name)
            if payload is None:
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                tar.addfile(info)
            else:
                info.size = len(payload)
                info.mode = 0o644
                tar.addfile(info, io.BytesIO(payload))
        for name, target in (symlinks or {}).items():
            info = tarfile.TarInfo(name)
            info.type = tarfile.SYMTYPE
            info.linkname = target
            tar.addfile(info)
    return buf.getvalue()


def raw_header(
    name: str,
    *,
    size_field: bytes = b"00000000000\0",
    typeflag: bytes = b"0",
) -> bytes:
    """Build a single header block with arbitrary field contents."""
    header = bytearray(BLOCK_SIZE)
    encoded = name.encode()
    header[0 : len(encoded)] = encoded
    header[124 : 124 + len(size_field)] = size_field
    header[156:157] = typeflag
    return bytes(header)


class FakeAssets:
    """In-memory AssetReader."""

    def __init__(self, assets: dict[str, bytes]) -> None:
        self.assets = assets
        self.opened: list[str] = []

    def open(self, name: str) -> BinaryIO:
        self.opened.append(name)
        if name not in self.assets:
            raise AssetError(f"Bundled asset not found: {name}")
        return io.BytesIO(self.assets[name])


@pytest.fixture
def layout(tmp_path: Path) -> RootLayout:
    """Layout rooted at a not-yet-existing directory."""
    return RootLayout.from_base(tmp_path / "linux")


@pytest.fixture
def fake_assets() -> FakeAssets:
    """Assets for both supported architectures plus the setup script."""
    return FakeAssets(
        {
            "bin/proot-aarch64": b"\x7fELF aarch64 proot",
            "bin/proot-arm": b"\x7fELF arm proot",
            "scripts/setup-alpine.sh": b"#!/bin/sh\necho setup\n",
        }
    )


@pytest.fixture
def rootfs_archive() -> bytes:
    """A gzip-compressed minimal Alpine-like rootfs."""
    tar = build_tar(
        [
            ("./", None),
            ("./bin/", None),
            ("./bin/busybox", b"busybox binary"),
            ("./etc/", None),
            ("./etc/os-release", b"NAME=Alpine\n"),
            ("./usr/bin/", None),
            ("./usr/bin/env", b"env binary"),
        ],
        symlinks={"./bin/ls": "/bin/busybox"},
    )
    return gzip.compress(tar)


@pytest.fixture
def ready_layout(
    layout: RootLayout,
) -> Callable[[str], RootLayout]:
    """Factory for a provisioned layout whose launcher runs *script*.

    The launcher is a host ``/bin/sh`` script, so sessions started
    from it run without the real sandbox tool.
    """

    def _make(script: str = "exit 0") -> RootLayout:
        (layout.rootfs / "bin").mkdir(parents=True)
        (layout.rootfs / "bin" / "sh").write_bytes(b"")
        layout.bin_dir.mkdir(parents=True)
        layout.sandbox_binary.write_bytes(b"proot")
        layout.sandbox_binary.chmod(0o755)
        layout.launcher_script.write_text(f"#!/bin/sh\n{script}\n")
        layout.launcher_script.chmod(0o755)
        layout.setup_marker.write_text("url=test\n")
        return layout

    return _make
