# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Configuration for the Pismo sandbox.

Configuration is loaded from an optional YAML file.  The default location
follows the XDG Base Directory Specification:

    ``$XDG_CONFIG_HOME/pismo/pismo.yaml``
    (typically ``~/.config/pismo/pismo.yaml``)

A missing file means every setting takes its default.  ``!env`` tags
resolve values from environment variables, after ``.env`` files have
been loaded (see ``pismo.dotenv_loader``).

Example::

    base_dir: ~/pismo/linux
    rootfs:
      url: https://example.com/alpine-minirootfs.tar.gz
      sha256: !env PISMO_ROOTFS_SHA256
    download:
      connect_timeout: 60
      read_timeout: 120
    host:
      shared_storage: /sdcard
      shell: /system/bin/sh
    dns:
      nameservers: [1.1.1.1]
    logging:
      diagnostics_file: ~/pismo/crash.log
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar, overload

import yaml
from platformdirs import user_config_path, user_data_path

from pismo.dotenv_loader import load_dotenv_once
from pismo.sandbox.types import ALPINE_URL, RootLayout, SandboxConfig


logger = logging.getLogger(__name__)

#: Application name for XDG path resolution.
_APP_NAME = "pismo"

_SHA256_RE = re.compile(r"^[0-9a-f]{64}$")


def get_config_path() -> Path:
    """Return the default config file path.

    Uses XDG: ``$XDG_CONFIG_HOME/pismo/pismo.yaml`` (typically
    ``~/.config/pismo/pismo.yaml``).

    Returns:
        Path to the config file.
    """
    return user_config_path(_APP_NAME) / "pismo.yaml"


def get_dotenv_path() -> Path:
    """Return the ``.env`` file path inside the XDG config directory."""
    return user_config_path(_APP_NAME) / ".env"


def get_data_dir() -> Path:
    """Return the default sandbox base directory.

    Uses XDG: ``$XDG_DATA_HOME/pismo/linux`` (typically
    ``~/.local/share/pismo/linux``).
    """
    return user_data_path(_APP_NAME) / "linux"


class ConfigError(Exception):
    """Base exception for configuration errors."""


# ---------------------------------------------------------------------------
# YAML loading and value resolution
# ---------------------------------------------------------------------------


class _EnvVar:
    """Placeholder for an unresolved ``!env VAR_NAME`` tag."""

    def __init__(self, var_name: str) -> None:
        self.var_name = var_name


def _env_constructor(loader: yaml.SafeLoader, node: yaml.Node) -> _EnvVar:
    """Handle ``!env VAR_NAME`` in YAML."""
    value = loader.construct_scalar(node)  # type: ignore[arg-type]
    return _EnvVar(str(value))


def _make_loader() -> type[yaml.SafeLoader]:
    """Create a YAML loader that understands ``!env``."""

    class EnvLoader(yaml.SafeLoader):
        pass

    EnvLoader.add_constructor("!env", _env_constructor)
    return EnvLoader


def _raw_resolve(value: object) -> str | None:
    """Resolve an ``_EnvVar`` to its string value, or stringify literals.

    Returns None if the value is None or the env var is not set.
    """
    if isinstance(value, _EnvVar):
        return os.environ.get(value.var_name)
    if value is None:
        return None
    return str(value)


_MISSING = object()

_T = TypeVar("_T")


@overload
def _resolve(
    value: object, coerce: type[_T], *, key: str, default: _T
) -> _T: ...


@overload
def _resolve(value: object, coerce: type[_T], *, key: str) -> _T | None: ...


def _resolve(
    value: object,
    coerce: type[Any],
    *,
    key: str,
    default: object = _MISSING,
) -> Any:
    """Resolve a YAML value, handling ``!env`` tags and type coercion.

    Args:
        value: Raw value from YAML (may be ``_EnvVar``, None, or a
            literal already parsed by PyYAML).
        coerce: Target type (``str``, ``float`` or ``Path``).
        key: Dotted config key, used in error messages.
        default: Default when value is absent or the env var is unset.

    Returns:
        The resolved, coerced value, or None when absent without default.

    Raises:
        ConfigError: If the value cannot be coerced.
    """
    if isinstance(value, coerce):
        return value

    resolved = _raw_resolve(value)
    if resolved is None or resolved == "":
        return None if default is _MISSING else default

    try:
        if coerce is Path:
            return Path(resolved).expanduser()
        return coerce(resolved)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for '{key}': {resolved!r}") from e


def _section(raw: dict, name: str) -> dict:
    """Return a nested mapping, treating absence as empty."""
    value = raw.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' must be a YAML mapping")
    return value


def _resolve_string_list(value: object, *, key: str) -> list[str]:
    """Resolve a list of strings, handling ``!env`` for each element."""
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError(
            f"Config '{key}' must be a list, got {type(value).__name__}"
        )
    result: list[str] = []
    for item in value:
        resolved = _raw_resolve(item)
        if resolved:
            result.append(resolved)
    return result


# ---------------------------------------------------------------------------
# Pismo configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PismoConfig:
    """Complete Pismo configuration.

    Attributes:
        base_dir: Root directory of the sandbox installation.
        sandbox: Provisioning and launch settings.
        assets_dir: Directory that overrides the bundled assets.
        diagnostics_file: Where the diagnostics log is written; None
            disables it.
    """

    base_dir: Path = field(default_factory=get_data_dir)
    sandbox: SandboxConfig = field(default_factory=SandboxConfig)
    assets_dir: Path | None = None
    diagnostics_file: Path | None = None

    def __post_init__(self) -> None:
        """Validate cross-field constraints."""
        sha = self.sandbox.rootfs_sha256
        if sha is not None and not _SHA256_RE.match(sha):
            raise ConfigError(
                "Invalid value for 'rootfs.sha256': "
                "expected 64 lowercase hex characters"
            )
        if self.sandbox.connect_timeout <= 0:
            raise ConfigError("'download.connect_timeout' must be positive")
        if self.sandbox.read_timeout <= 0:
            raise ConfigError("'download.read_timeout' must be positive")
        if not self.sandbox.nameservers:
            raise ConfigError("'dns.nameservers' must not be empty")

    @property
    def layout(self) -> RootLayout:
        return RootLayout.from_base(self.base_dir)

    @classmethod
    def from_yaml(cls, config_path: Path | None = None) -> "PismoConfig":
        """Load configuration from a YAML file.

        Values tagged with ``!env VAR_NAME`` are resolved from the
        environment at load time.  A ``.env`` file is loaded first if
        present.

        Args:
            config_path: Path to YAML config file.  Defaults to
                ``~/.config/pismo/pismo.yaml`` (XDG).

        Returns:
            PismoConfig instance; all defaults when the file is missing.

        Raises:
            ConfigError: If the file is malformed or a value is invalid.
        """
        load_dotenv_once()

        if config_path is None:
            config_path = get_config_path()

        if not config_path.exists():
            logger.debug("No config file at %s, using defaults", config_path)
            return cls._from_raw({})

        try:
            with open(config_path) as f:
                raw = yaml.load(f, Loader=_make_loader())
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ConfigError(
                f"Config file must be a YAML mapping: {config_path}"
            )

        config = cls._from_raw(raw)
        logger.info("Config loaded from %s", config_path)
        return config

    @classmethod
    def _from_raw(cls, raw: dict) -> "PismoConfig":
        """Build config from parsed (but unresolved) YAML dict."""
        rootfs = _section(raw, "rootfs")
        download = _section(raw, "download")
        host = _section(raw, "host")
        dns = _section(raw, "dns")
        logging_section = _section(raw, "logging")

        nameservers = _resolve_string_list(
            dns.get("nameservers"), key="dns.nameservers"
        )
        if "nameservers" not in dns:
            nameservers = list(SandboxConfig().nameservers)

        sha256 = _resolve(rootfs.get("sha256"), str, key="rootfs.sha256")

        sandbox = SandboxConfig(
            rootfs_url=_resolve(
                rootfs.get("url"), str, key="rootfs.url", default=ALPINE_URL
            ),
            rootfs_sha256=sha256.lower() if sha256 else None,
            connect_timeout=_resolve(
                download.get("connect_timeout"),
                float,
                key="download.connect_timeout",
                default=60.0,
            ),
            read_timeout=_resolve(
                download.get("read_timeout"),
                float,
                key="download.read_timeout",
                default=120.0,
            ),
            shared_storage=_resolve(
                host.get("shared_storage"),
                str,
                key="host.shared_storage",
                default="/sdcard",
            ),
            app_data_dir=_resolve(
                host.get("app_data_dir"), Path, key="host.app_data_dir"
            ),
            host_shell=_resolve(
                host.get("shell"),
                str,
                key="host.shell",
                default="/system/bin/sh",
            ),
            nameservers=tuple(nameservers),
            arch=_resolve(host.get("arch"), str, key="host.arch"),
        )

        return cls(
            base_dir=_resolve(
                raw.get("base_dir"),
                Path,
                key="base_dir",
                default=get_data_dir(),
            ),
            sandbox=sandbox,
            assets_dir=_resolve(raw.get("assets_dir"), Path, key="assets_dir"),
            diagnostics_file=_resolve(
                logging_section.get("diagnostics_file"),
                Path,
                key="logging.diagnostics_file",
            ),
        )
