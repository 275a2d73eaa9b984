"""
Persistent settings for Stalking Stairs Mod Manager.

Values come from, in order of precedence: command-line overrides, the
``SSMM_GAME_DIR`` / ``SSMM_MANIFEST_URL`` environment variables, and the
stored QSettings (registry on Windows, ini/plist elsewhere).
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from PySide6.QtCore import QSettings

from manifest_fetcher import MANIFEST_URL

SETTINGS_ORG = "StalkingStairsModManager"
SETTINGS_APP = "StalkingStairsModManager"

GAME_DIR_KEY = "game_dir"
MANIFEST_URL_KEY = "manifest_url"
ENV_VARS = {
    GAME_DIR_KEY: "SSMM_GAME_DIR",
    MANIFEST_URL_KEY: "SSMM_MANIFEST_URL",
}

_log = logging.getLogger(__name__)


class AppSettings:
    def __init__(
        self,
        qsettings: QSettings | None = None,
        *,
        settings_org: str = SETTINGS_ORG,
        settings_app: str = SETTINGS_APP,
        persist: bool = True,
        environ: Mapping[str, str] | None = None,
    ):
        self.settings = qsettings if qsettings is not None else QSettings(settings_org, settings_app)
        self.persist = persist
        self._environ = os.environ if environ is None else environ
        self._overrides: dict[str, str] = {}

    def override(self, key: str, value: str | None):
        """Session-only value that beats env and stored settings."""
        if value:
            self._overrides[key] = value

    def _value(self, key: str, default: str = "") -> str:
        if key in self._overrides:
            return self._overrides[key]
        env_value = self._environ.get(ENV_VARS[key], "")
        if env_value:
            return env_value
        return self.settings.value(key, default, type=str) or default

    def _store(self, key: str, value: str):
        self._overrides[key] = value
        if not self.persist:
            return
        self.settings.setValue(key, value)
        self.settings.sync()
        _log.debug("Stored setting %s=%s", key, value)

    @property
    def game_dir(self) -> Path | None:
        value = self._value(GAME_DIR_KEY)
        return Path(value) if value else None

    def set_game_dir(self, path: str | Path):
        self._store(GAME_DIR_KEY, str(path))

    @property
    def manifest_url(self) -> str:
        return self._value(MANIFEST_URL_KEY, MANIFEST_URL)

    def set_manifest_url(self, url: str):
        self._store(MANIFEST_URL_KEY, url)
