# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for pismo/sandbox/assets.py -- bundled asset access."""

from pathlib import Path

import pytest

from pismo.sandbox.assets import (
    SETUP_SCRIPT_ASSET,
    BundledAssetReader,
    copy_asset,
    select_tool_asset,
)
from pismo.sandbox.errors import AssetError


class TestSelectToolAsset:
    """Tests for architecture selection."""

    @pytest.mark.parametrize("arch", ["aarch64", "arm64-v8a", "ARM64"])
    def test_64_bit(self, arch: str) -> None:
        """64-bit ARM names select the aarch64 binary."""
        assert select_tool_asset(arch) == "bin/proot-aarch64"

    @pytest.mark.parametrize("arch", ["armv7l", "armeabi-v7a", "arm"])
    def test_32_bit(self, arch: str) -> None:
        """Other ARM names select the 32-bit binary."""
        assert select_tool_asset(arch) == "bin/proot-arm"

    @pytest.mark.parametrize("arch", ["x86_64", "riscv64", ""])
    def test_unsupported(self, arch: str) -> None:
        """Anything else is an error, not a wrong binary."""
        with pytest.raises(AssetError, match="Unsupported architecture"):
            select_tool_asset(arch)


class TestBundledAssetReader:
    """Tests for BundledAssetReader."""

    def test_setup_script_bundled(self) -> None:
        """The first-boot script ships with the package."""
        with BundledAssetReader().open(SETUP_SCRIPT_ASSET) as f:
            content = f.read()
        assert content.startswith(b"#!/bin/sh")
        assert b"apk" in content

    def test_override_dir_wins(self, tmp_path: Path) -> None:
        """Files in the override directory shadow bundled ones."""
        (tmp_path / "scripts").mkdir()
        (tmp_path / "scripts" / "setup-alpine.sh").write_bytes(b"custom")

        with BundledAssetReader(tmp_path).open(SETUP_SCRIPT_ASSET) as f:
            assert f.read() == b"custom"

    def test_override_falls_back_to_bundled(self, tmp_path: Path) -> None:
        """Assets absent from the override come from the package."""
        with BundledAssetReader(tmp_path).open(SETUP_SCRIPT_ASSET) as f:
            assert f.read().startswith(b"#!/bin/sh")

    def test_missing_asset(self, tmp_path: Path) -> None:
        """Unknown assets raise AssetError."""
        with pytest.raises(AssetError, match="Bundled asset not found"):
            BundledAssetReader(tmp_path).open("bin/proot-mips")


class TestCopyAsset:
    """Tests for copy_asset()."""

    def test_copies_and_replaces(self, tmp_path: Path) -> None:
        """The destination is overwritten with the asset bytes."""
        (tmp_path / "bin").mkdir()
        (tmp_path / "bin" / "proot-arm").write_bytes(b"new")
        dest = tmp_path / "proot"
        dest.write_bytes(b"old contents")

        copy_asset(BundledAssetReader(tmp_path), "bin/proot-arm", dest)
        assert dest.read_bytes() == b"new"
