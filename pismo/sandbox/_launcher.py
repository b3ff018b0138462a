# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Sandbox tool command and launcher script generation.

The launcher script is generated in code rather than shipped as a
file.  It is the only supported way to start the sandbox: the host
shell may inject loader overrides (``LD_PRELOAD``, ``LD_LIBRARY_PATH``)
that break the sandbox tool, and the script removes them before
``exec``-ing the tool.

The direct argv built by ``build_direct_spec`` runs the same command
with the same environment, for callers that spawn with a clean
environment and so have nothing to scrub.
"""

from __future__ import annotations

import shlex
from pathlib import Path

from pismo.sandbox.types import LauncherSpec, RootLayout


#: Loader overrides removed before the sandbox tool starts.
SCRUBBED_VARS = ("LD_PRELOAD", "LD_LIBRARY_PATH")

#: Mount point of the host application's private storage in the sandbox.
APP_DATA_MOUNT = "/android"

GUEST_PATH = "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"


def proot_args(
    layout: RootLayout,
    *,
    shared_storage: str,
    app_data_dir: Path,
) -> list[str]:
    """Sandbox tool arguments (everything after the binary path)."""
    return [
        "--link2symlink",
        "-0",
        "-r",
        str(layout.rootfs),
        "-b",
        "/dev",
        "-b",
        "/proc",
        "-b",
        "/sys",
        "-b",
        f"{shared_storage}:{shared_storage}",
        "-b",
        f"{app_data_dir}:{APP_DATA_MOUNT}",
        "-w",
        "/root",
        "/bin/sh",
        "-l",
    ]


def tool_environment(layout: RootLayout) -> dict[str, str]:
    """Variables read by the sandbox tool itself."""
    return {
        "PROOT_L2S_DIR": str(layout.l2s_dir),
        "PROOT_TMP_DIR": str(layout.tmp_dir),
        "PROOT_NO_SECCOMP": "1",
    }


def sandbox_environment(layout: RootLayout) -> dict[str, str]:
    """Full environment for a sandboxed login shell."""
    env = {
        "HOME": "/root",
        "USER": "root",
        "TERM": "xterm-256color",
        "LANG": "C.UTF-8",
        "PATH": GUEST_PATH,
    }
    env.update(tool_environment(layout))
    return env


def build_direct_spec(
    layout: RootLayout,
    *,
    shared_storage: str,
    app_data_dir: Path,
) -> LauncherSpec:
    """Argv and environment that invoke the sandbox binary directly."""
    argv = [str(layout.sandbox_binary)]
    argv.extend(
        proot_args(
            layout, shared_storage=shared_storage, app_data_dir=app_data_dir
        )
    )
    return LauncherSpec(argv=tuple(argv), env=sandbox_environment(layout))


def build_launcher_spec(layout: RootLayout) -> LauncherSpec:
    """Argv and environment that run the generated launcher script."""
    return LauncherSpec(
        argv=(str(layout.launcher_script),),
        env=sandbox_environment(layout),
    )


def get_launcher_content(
    layout: RootLayout,
    *,
    shared_storage: str,
    app_data_dir: Path,
    interpreter: str = "/system/bin/sh",
) -> str:
    """Render the launcher script.

    Args:
        layout: Paths of the provisioned sandbox.
        shared_storage: Host shared storage, bound at the same path.
        app_data_dir: Host directory bound at ``/android``.
        interpreter: Host shell used in the shebang line.

    Returns:
        Script text.
    """
    lines = [
        f"#!{interpreter}",
        "# Pismo Terminal - proot launcher script",
        "# Configures the environment before running proot",
        "",
    ]
    lines.extend(f"unset {name}" for name in SCRUBBED_VARS)
    lines.append("")
    lines.extend(
        f"export {name}={shlex.quote(value)}"
        for name, value in tool_environment(layout).items()
    )
    lines.append("")

    args = proot_args(
        layout, shared_storage=shared_storage, app_data_dir=app_data_dir
    )
    # Options and their values share a line: "-b /dev", "-r <rootfs>".
    parts: list[str] = []
    i = 0
    while i < len(args):
        arg = args[i]
        if arg in ("-r", "-b", "-w") and i + 1 < len(args):
            parts.append(f"{arg} {shlex.quote(args[i + 1])}")
            i += 2
        elif arg == "/bin/sh":
            parts.append(" ".join(shlex.quote(a) for a in args[i:]))
            break
        else:
            parts.append(shlex.quote(arg))
            i += 1

    lines.append(f"exec {shlex.quote(str(layout.sandbox_binary))} \\")
    for part in parts[:-1]:
        lines.append(f"    {part} \\")
    lines.append(f"    {parts[-1]}")
    return "\n".join(lines) + "\n"
