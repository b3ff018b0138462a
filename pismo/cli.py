# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Pismo CLI: multi-command entry point.

Provides ``pismo <command>`` with subcommands for provisioning the
sandbox, checking it, and opening a sandboxed shell.  Running ``pismo``
with no arguments prints version and usage information.

Subcommands:

* ``setup``: download and build the sandbox
* ``check``: validate the installation and report readiness
* ``shell``: open a sandboxed login shell in this terminal
* ``info``: print the layout and the commands a terminal would run
"""

from __future__ import annotations

import argparse
import contextlib
import logging
import os
import select
import shutil
import signal
import sys
import termios
import tty
from collections.abc import Iterator
from pathlib import Path

from pismo import __version__
from pismo.config import ConfigError, PismoConfig, get_config_path
from pismo.dotenv_loader import load_dotenv_once
from pismo.environment import LinuxEnvironment
from pismo.logging import DiagnosticsLog, configure_logging
from pismo.sandbox import SandboxError, SandboxSession


logger = logging.getLogger(__name__)

# Known subcommand names.
_SUBCOMMANDS = frozenset({"setup", "check", "shell", "info"})

_USAGE = """\
usage: pismo <command> [args]

commands:
  setup   Download and build the Linux environment
  check   Validate the installation and report readiness
  shell   Open a sandboxed login shell in this terminal
  info    Show the layout and the shell command

Run 'pismo <command> --help' for command-specific help.\
"""


# ── Terminal colors ─────────────────────────────────────────────────


def _use_color() -> bool:
    """Determine whether to use ANSI color codes in output.

    Returns True when stdout is a TTY and the ``NO_COLOR`` environment
    variable is not set.  ``TERM=dumb`` also disables color.
    """
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("TERM") == "dumb":
        return False
    return sys.stdout.isatty()


class _Style:
    """ANSI escape helpers.  All methods return plain text when color is off."""

    def __init__(self, color: bool) -> None:
        self._on = color

    def _wrap(self, code: str, text: str) -> str:
        if not self._on:
            return text
        return f"\033[{code}m{text}\033[0m"

    def bold(self, text: str) -> str:
        return self._wrap("1", text)

    def green(self, text: str) -> str:
        return self._wrap("32", text)

    def red(self, text: str) -> str:
        return self._wrap("31", text)

    def yellow(self, text: str) -> str:
        return self._wrap("33", text)

    def dim(self, text: str) -> str:
        return self._wrap("2", text)

    def cyan(self, text: str) -> str:
        return self._wrap("36", text)


# ── Shared plumbing ─────────────────────────────────────────────────


def _parser(command: str, description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=f"pismo {command}", description=description
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        metavar="PATH",
        help="Path to pismo.yaml (default: ~/.config/pismo/pismo.yaml)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def _load_environment(args: argparse.Namespace) -> LinuxEnvironment | None:
    """Configure logging and load the config; None on config errors."""
    configure_logging(level=logging.DEBUG if args.debug else logging.WARNING)
    try:
        config = PismoConfig.from_yaml(args.config)
    except ConfigError as e:
        print(f"pismo: configuration error: {e}", file=sys.stderr)
        return None
    return LinuxEnvironment(config)


@contextlib.contextmanager
def _diagnostics(env: LinuxEnvironment) -> Iterator[None]:
    """Keep the diagnostics log open for the command, if configured."""
    path = env.config.diagnostics_file
    if path is None:
        yield
        return
    with DiagnosticsLog(path, data_dir=env.layout.base):
        yield


# ── setup subcommand ────────────────────────────────────────────────


def cmd_setup(argv: list[str]) -> int:
    """Provision the Linux environment, rendering progress.

    Ctrl-C requests cancellation; the partially built tree is removed
    by the next run.

    Args:
        argv: Subcommand arguments.

    Returns:
        0 on success, 1 on failure.
    """
    parser = _parser("setup", "Download and build the Linux environment")
    args = parser.parse_args(argv)
    env = _load_environment(args)
    if env is None:
        return 1

    s = _Style(_use_color())
    print(s.bold(f"Setting up Linux environment in {env.layout.base}"))

    with _diagnostics(env):
        run = env.provisioner().start()
        try:
            for update in run.progress():
                print(f"  [{update.percent:3d}%] {update.message}")
        except KeyboardInterrupt:
            print(s.yellow("Cancelling..."))
            run.cancel()
        result = run.wait()

    if result.success:
        print(s.green("Setup complete."))
        return 0
    print(f"{s.red('Setup failed:')} {result.error}")
    return 1


# ── check subcommand ────────────────────────────────────────────────


def cmd_check(argv: list[str]) -> int:
    """Validate the installation and report readiness.

    Args:
        argv: Subcommand arguments.

    Returns:
        0 if the environment is ready, 1 otherwise.
    """
    parser = _parser("check", "Validate the installation")
    args = parser.parse_args(argv)
    s = _Style(_use_color())

    print(s.bold("Configuration"))
    config_path = args.config or get_config_path()
    print(f"  Config file: {s.dim(str(config_path))}")
    if not config_path.exists():
        print(f"  Status:      {s.yellow('not found')} (using defaults)")

    env = _load_environment(args)
    if env is None:
        print(f"  Status:      {s.red('error')}")
        return 1
    for env_file in load_dotenv_once():
        print(f"  Env file:    {s.dim(str(env_file))}")
    print(f"  Base dir:    {s.dim(str(env.layout.base))}")
    print()

    print(s.bold("Linux environment"))
    all_ok = True
    if env.is_setup_complete():
        print(f"  {s.green('✓')} setup complete")
    else:
        print(f"  {s.red('✗')} setup not complete")
        print(f"  Run {s.cyan('pismo setup')} to install.")
        all_ok = False

    error = env.validate()
    if error is None:
        print(f"  {s.green('✓')} environment valid")
    else:
        print(f"  {s.red('✗')} {error}")
        all_ok = False
    print()

    if all_ok:
        print(s.green("All checks passed."))
    else:
        print(s.red("Some checks failed."))
    return 0 if all_ok else 1


# ── shell subcommand ────────────────────────────────────────────────


def _sync_size(session: SandboxSession) -> None:
    size = shutil.get_terminal_size()
    session.resize(size.lines, size.columns)


def _bridge(session: SandboxSession, stdin_fd: int, stdout_fd: int) -> None:
    """Copy bytes between the local terminal and the session."""
    session_fd = session.fileno()
    while True:
        readable, _, _ = select.select([stdin_fd, session_fd], [], [], 0.5)
        if session_fd in readable:
            data = session.read()
            if not data:
                return
            os.write(stdout_fd, data)
        if stdin_fd in readable:
            data = os.read(stdin_fd, 1024)
            if not data:
                return
            session.write(data)
        if not readable and session.exit_code is not None:
            return


def cmd_shell(argv: list[str]) -> int:
    """Open a sandboxed login shell attached to this terminal.

    Args:
        argv: Subcommand arguments.

    Returns:
        The shell's exit code, or 1 if it could not be started.
    """
    parser = _parser("shell", "Open a sandboxed login shell")
    args = parser.parse_args(argv)
    env = _load_environment(args)
    if env is None:
        return 1

    if not env.is_setup_complete():
        print(
            "pismo: Linux environment not set up; run 'pismo setup'",
            file=sys.stderr,
        )
        return 1

    with _diagnostics(env):
        try:
            session = env.create_session()
        except SandboxError as e:
            print(f"pismo: {e}", file=sys.stderr)
            return 1

        stdin_fd = sys.stdin.fileno()
        stdout_fd = sys.stdout.fileno()
        interactive = os.isatty(stdin_fd)
        saved = termios.tcgetattr(stdin_fd) if interactive else None
        previous_winch = None
        try:
            if interactive:
                _sync_size(session)
                previous_winch = signal.signal(
                    signal.SIGWINCH, lambda *_: _sync_size(session)
                )
                tty.setraw(stdin_fd)
            _bridge(session, stdin_fd, stdout_fd)
        finally:
            if saved is not None:
                termios.tcsetattr(stdin_fd, termios.TCSADRAIN, saved)
            if previous_winch is not None:
                signal.signal(signal.SIGWINCH, previous_winch)
            session.finish()

    code = session.wait_for_exit(timeout=5.0)
    return code if code is not None else 1


# ── info subcommand ─────────────────────────────────────────────────


def cmd_info(argv: list[str]) -> int:
    """Print the layout and the command a terminal would run.

    Args:
        argv: Subcommand arguments.

    Returns:
        0, or 1 on configuration errors.
    """
    parser = _parser("info", "Show the layout and the shell command")
    args = parser.parse_args(argv)
    env = _load_environment(args)
    if env is None:
        return 1

    s = _Style(_use_color())
    layout = env.layout
    print(s.bold("Layout"))
    print(f"  Base:     {layout.base}")
    print(f"  Rootfs:   {layout.rootfs}")
    print(f"  Binary:   {layout.sandbox_binary}")
    print(f"  Launcher: {layout.launcher_script}")
    print()
    print(s.bold("Shell command"))
    print(f"  {' '.join(env.get_shell_command())}")
    print()
    print(s.bold("Direct command"))
    print(f"  {' '.join(env.get_proot_command())}")
    print()
    print(s.bold("Environment"))
    for entry in env.get_environment():
        print(f"  {entry}")
    return 0


# ── CLI plumbing ────────────────────────────────────────────────────


_DISPATCH: dict[str, str] = {
    "setup": "cmd_setup",
    "check": "cmd_check",
    "shell": "cmd_shell",
    "info": "cmd_info",
}


def _print_info() -> None:
    """Print version information and available commands."""
    s = _Style(_use_color())
    print(s.bold(f"Pismo {__version__}"))
    print()
    print(_USAGE)


def cli() -> None:
    """Entry point for ``pismo``.

    When no arguments are given, prints version and usage information.
    """
    argv = sys.argv[1:]

    if not argv or argv[0] == "--help":
        _print_info()
        sys.exit(0)

    if argv[0] not in _SUBCOMMANDS:
        print(f"pismo: unknown command '{argv[0]}'", file=sys.stderr)
        print(_USAGE, file=sys.stderr)
        sys.exit(2)

    command = argv[0]
    rest = argv[1:]

    # Look up handler by name so tests can mock individual commands.
    import pismo.cli as _self

    handler = getattr(_self, _DISPATCH[command])
    sys.exit(handler(rest))
