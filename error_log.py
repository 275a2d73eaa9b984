"""
Error log and manifest diagnostics for Stalking Stairs Mod Manager.

``ErrorLog.record`` appends a readable block to ``errors.log`` so users can
attach it to bug reports; ``ErrorLog.save_manifest`` keeps a timestamped copy
of every downloaded manifest. Neither ever raises: both return a path or a
sentinel string.
"""

from __future__ import annotations

import logging
import os
import traceback
from datetime import datetime, timezone
from pathlib import Path

_log = logging.getLogger(__name__)

ERROR_LOG_FILENAME = "errors.log"
LOG_WRITE_FAILED = "Unable to write log file"
MANIFEST_WRITE_FAILED = "Unable to write raw manifest to log folder"


def default_log_dir() -> Path:
    base = os.environ.get("LOCALAPPDATA") or os.path.expanduser("~")
    return Path(base) / "StalkingStairsModManager" / "logs"


class ErrorLog:
    def __init__(self, log_dir: str | Path | None = None, fallback_dir: str | Path = "."):
        self.log_dir = Path(log_dir) if log_dir is not None else default_log_dir()
        self.fallback_dir = Path(fallback_dir)

    def record(self, context: str, error: BaseException) -> str:
        """Append ``context`` and the formatted ``error`` to errors.log.

        Returns the path written to, or ``LOG_WRITE_FAILED``.
        """
        _log.error("%s: %s", context, error)
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%SZ")
        details = "".join(
            traceback.format_exception(type(error), error, error.__traceback__)
        )
        block = f"{'-' * 60}\n{stamp}\n{context}\n\n{details}\n"

        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            path = self.log_dir / ERROR_LOG_FILENAME
            with path.open("a", encoding="utf-8") as fh:
                fh.write(block)
            return str(path)
        except OSError as exc:
            _log.warning("Could not write %s: %s", self.log_dir / ERROR_LOG_FILENAME, exc)

        try:
            fallback = self.fallback_dir / ERROR_LOG_FILENAME
            with fallback.open("a", encoding="utf-8") as fh:
                fh.write(f"{stamp} {context} - {error}\n")
            return str(fallback)
        except OSError:
            return LOG_WRITE_FAILED

    def save_manifest(self, text: str) -> str:
        """Persist the raw manifest text as manifest_<utc timestamp>.json."""
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
            path = self.log_dir / f"manifest_{stamp}.json"
            path.write_text(text or "", encoding="utf-8")
            return str(path)
        except OSError as exc:
            _log.warning("Could not save raw manifest: %s", exc)
            return MANIFEST_WRITE_FAILED
