# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Spawn interface for terminal front ends.

``LinuxEnvironment`` ties a configuration to its sandbox layout and
answers the questions a terminal front end asks before opening a
session: is the sandbox ready, what command starts a shell, and with
which environment.
"""

from __future__ import annotations

import logging
from pathlib import Path

import httpx

from pismo.config import PismoConfig
from pismo.sandbox import (
    BundledAssetReader,
    RootLayout,
    SandboxProvisioner,
    SandboxSession,
    build_direct_spec,
    is_setup_complete,
    sandbox_environment,
    validate_environment,
)
from pismo.sandbox.session import ExitCallback


logger = logging.getLogger(__name__)


class LinuxEnvironment:
    """Facade over one sandbox installation."""

    def __init__(self, config: PismoConfig | None = None) -> None:
        self._config = config or PismoConfig()
        self._layout = self._config.layout

    @property
    def config(self) -> PismoConfig:
        return self._config

    @property
    def layout(self) -> RootLayout:
        return self._layout

    @property
    def launcher_script(self) -> Path:
        return self._layout.launcher_script

    def is_setup_complete(self) -> bool:
        return is_setup_complete(self._layout)

    def validate(self) -> str | None:
        """Check the installation; return the first problem or None."""
        return validate_environment(self._layout)

    def get_shell_command(self) -> list[str]:
        """Command a terminal should run.

        The launcher script once setup is complete, otherwise the host
        shell so the user still gets a prompt.
        """
        if self.is_setup_complete():
            return [str(self._layout.launcher_script)]
        logger.warning(
            "Linux environment not set up, falling back to %s",
            self._config.sandbox.host_shell,
        )
        return [self._config.sandbox.host_shell]

    def get_proot_command(self) -> list[str]:
        """Argv that runs the sandbox binary directly.

        Equivalent to the launcher script for callers that spawn with
        ``get_environment()`` and so inherit no loader overrides.
        """
        sandbox = self._config.sandbox
        spec = build_direct_spec(
            self._layout,
            shared_storage=sandbox.shared_storage,
            app_data_dir=sandbox.resolve_app_data_dir(self._layout),
        )
        return list(spec.argv)

    def get_environment(self) -> list[str]:
        """Environment for the sandboxed shell as ``KEY=VALUE`` strings."""
        env = sandbox_environment(self._layout)
        return [f"{key}={value}" for key, value in env.items()]

    def provisioner(
        self, *, http_client: httpx.Client | None = None
    ) -> SandboxProvisioner:
        """Create a provisioner for this installation."""
        return SandboxProvisioner(
            self._layout,
            BundledAssetReader(self._config.assets_dir),
            self._config.sandbox,
            http_client=http_client,
        )

    def create_session(
        self, *, on_exit: ExitCallback | None = None
    ) -> SandboxSession:
        """Validate the installation and start a sandboxed shell.

        Raises:
            ValidationError: If the installation is not usable.
            SpawnError: If the shell cannot be started.
        """
        return SandboxSession(self._layout, on_exit=on_exit)
