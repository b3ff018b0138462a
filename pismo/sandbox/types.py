# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Type definitions for the sandbox library.

Provides the core types used throughout the sandbox: RootLayout,
ProvisionProgress, ProvisionResult, LauncherSpec and the session
lifecycle states.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


#: Name of the sandbox tool binary inside ``bin/``.
SANDBOX_TOOL_NAME = "proot"

#: Name of the generated launcher script inside ``bin/``.
LAUNCHER_NAME = "launch-proot.sh"

#: Completion sentinel written as the last provisioning step.
SETUP_COMPLETE_NAME = ".setup_complete"


@dataclass(frozen=True)
class RootLayout:
    """Absolute paths of one provisioned sandbox, derived from ``base``.

    ``base`` is wholly owned by the sandbox and is safe to delete and
    recreate.  Every other path is a subpath of it.

    Attributes:
        base: Root directory of the sandbox installation.
    """

    base: Path

    @classmethod
    def from_base(cls, base: Path | str) -> RootLayout:
        """Build a layout from a (possibly relative) base directory."""
        return cls(base=Path(base).expanduser().absolute())

    @property
    def rootfs(self) -> Path:
        return self.base / "rootfs"

    @property
    def bin_dir(self) -> Path:
        return self.base / "bin"

    @property
    def sandbox_binary(self) -> Path:
        return self.bin_dir / SANDBOX_TOOL_NAME

    @property
    def launcher_script(self) -> Path:
        return self.bin_dir / LAUNCHER_NAME

    @property
    def tmp_dir(self) -> Path:
        return self.base / "tmp"

    @property
    def l2s_dir(self) -> Path:
        """Scratch directory for the sandbox tool's link2symlink feature."""
        return self.base / ".proot_l2s"

    @property
    def setup_marker(self) -> Path:
        return self.base / SETUP_COMPLETE_NAME

    @property
    def archive_path(self) -> Path:
        """Temporary location of the downloaded rootfs archive."""
        return self.base / "alpine.tar.gz"


#: Default rootfs image: Alpine Linux minirootfs for aarch64.
ALPINE_URL = (
    "https://dl-cdn.alpinelinux.org/alpine/v3.20/releases/aarch64/"
    "alpine-minirootfs-3.20.3-aarch64.tar.gz"
)


@dataclass(frozen=True)
class SandboxConfig:
    """Construction-time configuration for provisioning and launching.

    Attributes:
        rootfs_url: URL of the gzip-compressed rootfs tar archive.
        rootfs_sha256: Expected SHA-256 hex digest of the archive, or
            None to skip verification.
        connect_timeout: Download connect timeout in seconds.
        read_timeout: Download read timeout in seconds.
        shared_storage: Host shared storage path, bound at the same path.
        app_data_dir: Host directory bound at ``/android``; None means
            the parent of the layout's base directory.
        host_shell: Host shell for the launcher shebang and the
            fallback command when setup is incomplete.
        nameservers: DNS servers written to ``etc/resolv.conf``.
        arch: Instruction-set architecture override; None means the
            host's reported architecture.
    """

    rootfs_url: str = ALPINE_URL
    rootfs_sha256: str | None = None
    connect_timeout: float = 60.0
    read_timeout: float = 120.0
    shared_storage: str = "/sdcard"
    app_data_dir: Path | None = None
    host_shell: str = "/system/bin/sh"
    nameservers: tuple[str, ...] = ("8.8.8.8", "8.8.4.4")
    arch: str | None = None

    def resolve_app_data_dir(self, layout: RootLayout) -> Path:
        if self.app_data_dir is not None:
            return self.app_data_dir
        return layout.base.parent


class Stage(Enum):
    """Named provisioning stages, in execution order."""

    CLEAN = "clean"
    LAYOUT = "layout"
    INSTALL_TOOL = "install-tool"
    DOWNLOAD = "download"
    EXTRACT = "extract"
    CONFIGURE = "configure"
    LAUNCHER = "launcher"
    FINALIZE = "finalize"


@dataclass(frozen=True)
class ProvisionProgress:
    """A single progress update emitted during setup.

    Attributes:
        message: Human-readable stage description.
        percent: Completion percentage (0-100), non-decreasing per run.
    """

    message: str
    percent: int


@dataclass(frozen=True)
class ProvisionResult:
    """Terminal outcome of one setup invocation.

    Attributes:
        success: Whether every stage completed.
        error: Human-readable cause when ``success`` is False.
        stage: Stage that failed, if any.
        exception: The exception that aborted the run, if any.
    """

    success: bool
    error: str | None = None
    stage: Stage | None = None
    exception: BaseException | None = field(
        default=None, compare=False, repr=False
    )

    @classmethod
    def ok(cls) -> ProvisionResult:
        return cls(success=True)

    @classmethod
    def failed(
        cls,
        error: str,
        *,
        stage: Stage | None = None,
        exception: BaseException | None = None,
    ) -> ProvisionResult:
        return cls(
            success=False, error=error, stage=stage, exception=exception
        )


@dataclass(frozen=True)
class LauncherSpec:
    """Argv and environment needed to run the sandbox tool.

    Derived deterministically from a RootLayout and host settings.

    Attributes:
        argv: Command line, ``argv[0]`` being the executable.
        env: Environment variables for the spawned process.
    """

    argv: tuple[str, ...]
    env: dict[str, str] = field(default_factory=dict)

    @property
    def executable(self) -> str:
        return self.argv[0]

    def env_list(self) -> list[str]:
        """Environment as ``NAME=value`` strings, in insertion order."""
        return [f"{name}={value}" for name, value in self.env.items()]


class SessionState(Enum):
    """Lifecycle of a SandboxSession."""

    UNSTARTED = "unstarted"
    SPAWNING = "spawning"
    RUNNING = "running"
    EXITED = "exited"
    TORN_DOWN = "torn_down"


@dataclass(frozen=True)
class SessionEvent:
    """Event delivered from the watcher thread to the owning session.

    Attributes:
        pid: Process id the watcher waited on.
        exit_code: Exit status; negative values are terminating signals.
    """

    pid: int
    exit_code: int
