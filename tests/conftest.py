# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Shared pytest fixtures used across multiple test packages."""

import logging
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest

from pismo.dotenv_loader import reset_dotenv_state


@pytest.fixture(autouse=True)
def _isolate_xdg(tmp_path: Path) -> Iterator[Path]:
    """Redirect XDG config and data directories into ``tmp_path``.

    Also resets the dotenv loader so each test sees its own ``.env``.

    Yields:
        The redirected XDG root.
    """
    xdg = tmp_path / "xdg"
    config_root = xdg / "config" / "pismo"
    data_root = xdg / "data" / "pismo"
    reset_dotenv_state()
    with (
        patch("pismo.config.user_config_path", return_value=config_root),
        patch("pismo.config.user_data_path", return_value=data_root),
    ):
        yield xdg
    reset_dotenv_state()


@pytest.fixture(autouse=True)
def _restore_root_logger() -> Iterator[None]:
    """Undo logging configuration done by entry points under test."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
