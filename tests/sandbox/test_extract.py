# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for pismo/sandbox/_extract.py -- rootfs extraction."""

import io
import os
import stat
import threading
from pathlib import Path

import pytest

from pismo.sandbox._extract import ensure_shell, extract, is_executable_path
from pismo.sandbox.errors import ProvisionCancelled
from pismo.sandbox.tar import BLOCK_SIZE, TarStreamReader
from tests.sandbox.conftest import build_tar, raw_header


def _extract(data: bytes, dest: Path, **kwargs):
    return extract(TarStreamReader(io.BytesIO(data)), dest, **kwargs)


def _is_exec(path: Path) -> bool:
    return bool(path.stat().st_mode & stat.S_IXUSR)


class TestExtract:
    """Tests for extract()."""

    def test_files_and_directories(self, tmp_path: Path) -> None:
        """Directories are created and regular files written."""
        data = build_tar(
            [
                ("./etc/", None),
                ("./etc/hostname", b"pismo\n"),
                ("./var/lib/apk/world", b"busybox\n"),
            ]
        )
        stats = _extract(data, tmp_path / "rootfs")

        rootfs = tmp_path / "rootfs"
        assert (rootfs / "etc").is_dir()
        assert (rootfs / "etc" / "hostname").read_bytes() == b"pismo\n"
        # Parents are created for files without directory entries.
        assert (rootfs / "var" / "lib" / "apk" / "world").exists()
        assert stats.files == 2
        assert stats.directories == 1
        assert stats.bytes_written == len(b"pismo\n") + len(b"busybox\n")

    @pytest.mark.parametrize(
        "name", ["bin/tool", "sbin/init", "usr/bin/env", "usr/sbin/crond"]
    )
    def test_binaries_become_executable(
        self, tmp_path: Path, name: str
    ) -> None:
        """Files under the binary directories get execute permission."""
        _extract(build_tar([(name, b"x")]), tmp_path)
        assert _is_exec(tmp_path / name)

    def test_other_files_not_executable(self, tmp_path: Path) -> None:
        """Files elsewhere keep their default mode."""
        _extract(build_tar([("etc/motd", b"hi")]), tmp_path)
        assert not _is_exec(tmp_path / "etc" / "motd")

    def test_links_skipped(self, tmp_path: Path) -> None:
        """Symlinks are never created."""
        data = build_tar(
            [("bin/busybox", b"bb")],
            symlinks={"bin/ls": "/bin/busybox", "escape": "/etc"},
        )
        stats = _extract(data, tmp_path)

        assert not (tmp_path / "bin" / "ls").exists()
        assert not (tmp_path / "bin" / "ls").is_symlink()
        assert not (tmp_path / "escape").is_symlink()
        assert stats.skipped == 2

    def test_other_entry_types_skipped(self, tmp_path: Path) -> None:
        """Device nodes and FIFOs are skipped."""
        data = raw_header("dev/null", typeflag=b"3") + raw_header(
            "run/fifo", typeflag=b"6"
        )
        stats = _extract(data, tmp_path)

        assert not (tmp_path / "dev" / "null").exists()
        assert stats.skipped == 2

    def test_root_entry_ignored(self, tmp_path: Path) -> None:
        """The './' entry maps to an empty name and is skipped."""
        stats = _extract(build_tar([("./", None)]), tmp_path)
        assert stats.directories == 0
        assert stats.skipped == 1

    def test_nothing_written_outside_destination(self, tmp_path: Path) -> None:
        """Traversal and absolute names stay inside the destination."""
        dest = tmp_path / "rootfs"
        data = (
            raw_header("../outside", size_field=b"00000000003\0")
            + b"bad".ljust(BLOCK_SIZE, b"\0")
            + raw_header("/abs", size_field=b"00000000002\0")
            + b"ok".ljust(BLOCK_SIZE, b"\0")
        )
        _extract(data, dest)

        assert not (tmp_path / "outside").exists()
        assert (dest / "abs").read_bytes() == b"ok"
        assert sorted(os.listdir(tmp_path)) == ["rootfs"]

    def test_cancel_stops_extraction(self, tmp_path: Path) -> None:
        """A set cancel event aborts before the next entry."""
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(ProvisionCancelled):
            _extract(build_tar([("a", b"1")]), tmp_path, cancel=cancel)
        assert not (tmp_path / "a").exists()


class TestEnsureShell:
    """Tests for the busybox shell fallback."""

    def test_copies_busybox_to_sh(self, tmp_path: Path) -> None:
        """bin/sh is created from bin/busybox when missing."""
        _extract(build_tar([("bin/busybox", b"BB")]), tmp_path)

        sh = tmp_path / "bin" / "sh"
        assert sh.read_bytes() == b"BB"
        assert not sh.is_symlink()
        assert _is_exec(sh)

    def test_existing_sh_untouched(self, tmp_path: Path) -> None:
        """An archive-provided bin/sh is kept."""
        _extract(
            build_tar([("bin/busybox", b"BB"), ("bin/sh", b"SH")]), tmp_path
        )
        assert (tmp_path / "bin" / "sh").read_bytes() == b"SH"

    def test_no_busybox_no_sh(self, tmp_path: Path) -> None:
        """Without busybox nothing is created."""
        ensure_shell(tmp_path)
        assert not (tmp_path / "bin" / "sh").exists()


class TestIsExecutablePath:
    """Tests for executable path prefixes."""

    def test_prefixes(self) -> None:
        """Only the binary directories match."""
        assert is_executable_path("usr/bin/python3")
        assert not is_executable_path("usr/lib/libc.so")
        assert not is_executable_path("binary")
