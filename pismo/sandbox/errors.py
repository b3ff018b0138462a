# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Exceptions raised by the sandbox library.

Every exception carries a human-readable message suitable for showing
to the user as-is.
"""

from __future__ import annotations

from pismo.sandbox.types import Stage


class SandboxError(Exception):
    """Base exception for sandbox infrastructure failures."""


class AssetError(SandboxError):
    """Raised when a bundled asset is missing or unreadable.

    Also raised when no sandbox tool binary exists for the host
    architecture.
    """


class ProvisionError(SandboxError):
    """Raised when a provisioning stage fails.

    Attributes:
        stage: The stage that was running when the failure occurred.
    """

    def __init__(self, message: str, *, stage: Stage) -> None:
        super().__init__(message)
        self.stage = stage


class ProvisionCancelled(SandboxError):
    """Raised inside the pipeline when cancellation has been requested."""


class ValidationError(SandboxError):
    """Raised when the environment fails validation before a spawn."""


class SpawnError(SandboxError):
    """Raised when the sandboxed process cannot be started."""
