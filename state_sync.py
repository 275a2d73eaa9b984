"""
Enable/disable reconciliation.

A mod's ``enabled`` flag is the user's intent; the files under the game
directory are the truth. ``StateSync.request`` turns a toggle into an install
or uninstall and puts the flag back when that fails, so the list never shows
a mod as enabled that is not on disk.

    DISABLED --enable--> INSTALLING --ok--> ENABLED
                             |
                             +--InstallFailed--> (previous state)

    ENABLED --disable--> UNINSTALLING --> DISABLED

Requests for the same mod are serialized; different mods run in parallel.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from error_log import ErrorLog
from errors import ConfigurationError, InstallFailed, ModManagerError, OperationNotAllowed
from manifest_schema import ModEntry
from mod_installer import ModInstaller

_log = logging.getLogger(__name__)


class ModState(str, Enum):
    DISABLED = "disabled"
    INSTALLING = "installing"
    ENABLED = "enabled"
    UNINSTALLING = "uninstalling"


@dataclass
class ToggleResult:
    mod: ModEntry
    state: ModState
    error: ModManagerError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def log_path(self) -> str | None:
        return self.error.log_path if self.error is not None else None


class StateSync:
    def __init__(self, installer: ModInstaller, error_log: ErrorLog | None = None):
        self.installer = installer
        self.error_log = error_log or ErrorLog()
        self._states: dict[str, ModState] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @staticmethod
    def _key(mod: ModEntry) -> str:
        return mod.name.lower()

    def track(self, mods: list[ModEntry]):
        """Forget previous states and seed them from each mod's ``enabled``."""
        self._states = {
            self._key(m): ModState.ENABLED if m.enabled else ModState.DISABLED for m in mods
        }

    def state_of(self, mod: ModEntry) -> ModState:
        return self._states.get(
            self._key(mod), ModState.ENABLED if mod.enabled else ModState.DISABLED
        )

    def _settle(self, mod: ModEntry, enabled: bool) -> ModState:
        mod.enabled = enabled
        state = ModState.ENABLED if enabled else ModState.DISABLED
        self._states[self._key(mod)] = state
        return state

    async def request(
        self, mod: ModEntry, enabled: bool, game_dir: str | Path | None
    ) -> ToggleResult:
        """Apply a user toggle of ``mod`` to ``enabled``."""
        lock = self._locks.setdefault(self._key(mod), asyncio.Lock())
        async with lock:
            previous = self.state_of(mod) == ModState.ENABLED
            mod.enabled = enabled

            if not game_dir:
                state = self._settle(mod, previous)
                error = ConfigurationError(
                    "Game path not set. Select or auto-detect a game path before installing mods."
                )
                _log.warning("%s: %s", mod.name, error)
                return ToggleResult(mod, state, error)

            if not mod.is_toggleable and not enabled:
                state = self._settle(mod, True)
                _log.info("%s is required and cannot be disabled", mod.name)
                return ToggleResult(
                    mod, state, OperationNotAllowed(f"{mod.name} is required and cannot be disabled.")
                )

            if enabled:
                return await self._enable(mod, previous, Path(game_dir))
            return await self._disable(mod, Path(game_dir))

    async def _enable(self, mod: ModEntry, previous: bool, game_dir: Path) -> ToggleResult:
        self._states[self._key(mod)] = ModState.INSTALLING
        _log.info("Installing %s...", mod.display_name)
        try:
            await self.installer.install(mod, game_dir)
        except InstallFailed as exc:
            exc.log_path = self.error_log.record(f"Error installing {mod.name}", exc)
            state = self._settle(mod, previous)
            return ToggleResult(mod, state, exc)
        return ToggleResult(mod, self._settle(mod, True))

    async def _disable(self, mod: ModEntry, game_dir: Path) -> ToggleResult:
        self._states[self._key(mod)] = ModState.UNINSTALLING
        _log.info("Uninstalling %s...", mod.name)
        await self.installer.uninstall(mod, game_dir)
        return ToggleResult(mod, self._settle(mod, False))
