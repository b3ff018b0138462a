# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for pismo/sandbox/validator.py -- readiness checks."""

import shutil
from collections.abc import Callable
from unittest.mock import patch

from pismo.sandbox.types import RootLayout
from pismo.sandbox.validator import is_setup_complete, validate_environment


class TestIsSetupComplete:
    """Tests for is_setup_complete()."""

    def test_complete(self, ready_layout: Callable[..., RootLayout]) -> None:
        """Sentinel plus files means complete."""
        assert is_setup_complete(ready_layout())

    def test_fresh_layout(self, layout: RootLayout) -> None:
        """Nothing provisioned means not complete."""
        assert not is_setup_complete(layout)

    def test_missing_sentinel(
        self, ready_layout: Callable[..., RootLayout]
    ) -> None:
        """Without the sentinel setup is incomplete."""
        layout = ready_layout()
        layout.setup_marker.unlink()
        assert not is_setup_complete(layout)

    def test_missing_launcher(
        self, ready_layout: Callable[..., RootLayout]
    ) -> None:
        """A sentinel alone is not enough."""
        layout = ready_layout()
        layout.launcher_script.unlink()
        assert not is_setup_complete(layout)


class TestValidateEnvironment:
    """Tests for validate_environment()."""

    def test_valid(self, ready_layout: Callable[..., RootLayout]) -> None:
        """A complete layout validates and gets a tmp directory."""
        layout = ready_layout()
        assert not layout.tmp_dir.exists()

        assert validate_environment(layout) is None
        assert layout.tmp_dir.is_dir()

    def test_missing_base(self, layout: RootLayout) -> None:
        """The base directory is checked first."""
        assert validate_environment(layout) == (
            f"Base directory does not exist: {layout.base}"
        )

    def test_missing_rootfs(
        self, ready_layout: Callable[..., RootLayout]
    ) -> None:
        """A missing rootfs is reported."""
        layout = ready_layout()
        shutil.rmtree(layout.rootfs)
        assert validate_environment(layout) == (
            f"Rootfs directory does not exist: {layout.rootfs}"
        )

    def test_missing_binary(
        self, ready_layout: Callable[..., RootLayout]
    ) -> None:
        """A missing sandbox binary is reported."""
        layout = ready_layout()
        layout.sandbox_binary.unlink()
        assert validate_environment(layout) == (
            f"Proot binary does not exist: {layout.sandbox_binary}"
        )

    def test_missing_launcher(
        self, ready_layout: Callable[..., RootLayout]
    ) -> None:
        """A missing launcher is reported."""
        layout = ready_layout()
        layout.launcher_script.unlink()
        assert validate_environment(layout) == (
            f"Launcher script does not exist: {layout.launcher_script}"
        )

    def test_restores_execute_bit(
        self, ready_layout: Callable[..., RootLayout]
    ) -> None:
        """A lost execute bit is restored once."""
        layout = ready_layout()
        layout.sandbox_binary.chmod(0o644)
        layout.launcher_script.chmod(0o644)

        assert validate_environment(layout) is None
        assert layout.sandbox_binary.stat().st_mode & 0o111
        assert layout.launcher_script.stat().st_mode & 0o111

    def test_not_executable_after_chmod(
        self, ready_layout: Callable[..., RootLayout]
    ) -> None:
        """If the bit cannot be restored, the binary is reported."""
        layout = ready_layout()
        with patch(
            "pismo.sandbox.validator._is_executable", return_value=False
        ):
            assert validate_environment(layout) == (
                f"Proot binary is not executable: {layout.sandbox_binary}"
            )

    def test_launcher_not_executable(
        self, ready_layout: Callable[..., RootLayout]
    ) -> None:
        """Launcher executability is checked after the binary."""
        layout = ready_layout()
        launcher = layout.launcher_script

        def fake_access(path) -> bool:
            return path != launcher

        with patch(
            "pismo.sandbox.validator._is_executable", side_effect=fake_access
        ):
            assert validate_environment(layout) == (
                f"Launcher script is not executable: {launcher}"
            )

    def test_busybox_counts_as_shell(
        self, ready_layout: Callable[..., RootLayout]
    ) -> None:
        """bin/busybox alone satisfies the shell check."""
        layout = ready_layout()
        (layout.rootfs / "bin" / "sh").unlink()
        (layout.rootfs / "bin" / "busybox").write_bytes(b"")
        assert validate_environment(layout) is None

    def test_no_shell(self, ready_layout: Callable[..., RootLayout]) -> None:
        """A rootfs without any shell is rejected."""
        layout = ready_layout()
        (layout.rootfs / "bin" / "sh").unlink()
        assert validate_environment(layout) == (
            "No shell found in rootfs (neither /bin/sh nor /bin/busybox)"
        )

    def test_validator_does_not_mutate_valid_tree(
        self, ready_layout: Callable[..., RootLayout]
    ) -> None:
        """Validation is repeatable."""
        layout = ready_layout()
        assert validate_environment(layout) is None
        assert validate_environment(layout) is None
        assert is_setup_complete(layout)
