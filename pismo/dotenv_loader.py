# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Loads ``.env`` files that back ``!env`` values in ``pismo.yaml``.

Search order is the XDG config directory (next to ``pismo.yaml``), then
the working directory.  Files never override variables that are already
set, so the real environment wins over both files and the XDG file wins
over the working directory's.
"""

import logging
from pathlib import Path

from dotenv import load_dotenv


logger = logging.getLogger(__name__)

# Files loaded by the first call; None until then.
_loaded: list[Path] | None = None


def dotenv_search_paths() -> list[Path]:
    from pismo.config import get_dotenv_path

    return [get_dotenv_path(), Path.cwd() / ".env"]


def load_dotenv_once() -> list[Path]:
    """Load the ``.env`` files on first use.

    Returns:
        The files loaded by the first call, in load order.  Later calls
        load nothing and return the same list.
    """
    global _loaded
    if _loaded is None:
        _loaded = []
        for path in dotenv_search_paths():
            if not path.is_file():
                continue
            load_dotenv(path)
            logger.debug("Loaded .env from %s", path)
            _loaded.append(path)
    return list(_loaded)


def reset_dotenv_state() -> None:
    """Forget earlier loads. For testing only."""
    global _loaded
    _loaded = None
