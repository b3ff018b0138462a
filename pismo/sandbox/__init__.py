# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Sandbox library for running a Linux userland under proot.

The sandbox owns provisioning (download, unpack, launcher generation),
readiness validation and the lifecycle of sandboxed shell sessions.
Callers decide where the sandbox lives and how its terminal is shown;
the sandbox handles how it is built and run.
"""

from pismo.sandbox._extract import ExtractionStats, ensure_shell, extract
from pismo.sandbox._launcher import (
    build_direct_spec,
    build_launcher_spec,
    get_launcher_content,
    sandbox_environment,
)
from pismo.sandbox.assets import (
    AssetReader,
    BundledAssetReader,
    select_tool_asset,
)
from pismo.sandbox.errors import (
    AssetError,
    ProvisionCancelled,
    ProvisionError,
    SandboxError,
    SpawnError,
    ValidationError,
)
from pismo.sandbox.provisioner import (
    ProvisionRun,
    SandboxProvisioner,
    download_percent,
)
from pismo.sandbox.session import SandboxSession
from pismo.sandbox.tar import EntryType, TarEntry, TarStreamReader
from pismo.sandbox.terminal import InteractiveSession
from pismo.sandbox.types import (
    LauncherSpec,
    ProvisionProgress,
    ProvisionResult,
    RootLayout,
    SandboxConfig,
    SessionEvent,
    SessionState,
    Stage,
)
from pismo.sandbox.validator import is_setup_complete, validate_environment


__all__ = [
    # provisioner
    "SandboxProvisioner",
    "ProvisionRun",
    "download_percent",
    # session
    "SandboxSession",
    "InteractiveSession",
    # validator
    "is_setup_complete",
    "validate_environment",
    # launcher
    "build_direct_spec",
    "build_launcher_spec",
    "get_launcher_content",
    "sandbox_environment",
    # archive
    "EntryType",
    "TarEntry",
    "TarStreamReader",
    "ExtractionStats",
    "ensure_shell",
    "extract",
    # assets
    "AssetReader",
    "BundledAssetReader",
    "select_tool_asset",
    # types
    "LauncherSpec",
    "ProvisionProgress",
    "ProvisionResult",
    "RootLayout",
    "SandboxConfig",
    "SessionEvent",
    "SessionState",
    "Stage",
    # errors
    "AssetError",
    "ProvisionCancelled",
    "ProvisionError",
    "SandboxError",
    "SpawnError",
    "ValidationError",
]
