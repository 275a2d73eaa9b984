"""
Auto-detection of the game install directory.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

GAME_FOLDER_NAME = "Jaden Williams' The Stalking Stairs"

_log = logging.getLogger(__name__)


def candidate_game_dirs(environ: Mapping[str, str] | None = None) -> list[Path]:
    """Default Steam library locations, most likely first."""
    env = os.environ if environ is None else environ
    roots: list[Path] = []
    for var, fallback in (
        ("ProgramFiles(x86)", r"C:\Program Files (x86)"),
        ("ProgramFiles", r"C:\Program Files"),
    ):
        roots.append(Path(env.get(var) or fallback) / "Steam")

    home = Path(env.get("HOME") or os.path.expanduser("~"))
    roots.append(home / ".steam" / "steam")
    roots.append(home / ".local" / "share" / "Steam")

    return [root / "steamapps" / "common" / GAME_FOLDER_NAME for root in roots]


def detect_game_dir(environ: Mapping[str, str] | None = None) -> Path | None:
    for candidate in candidate_game_dirs(environ):
        if candidate.is_dir():
            _log.info("Auto-detected game path: %s", candidate)
            return candidate
    _log.info("Game path not found in default Steam locations")
    return None
