"""
Stalking Stairs Mod Manager - Core Logic

Loads the remote mod list, keeps BepInEx forced on, and applies the user's
enable/disable choices to the game directory.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional

import httpx

from error_log import ErrorLog
from errors import ConfigurationError, ManifestMalformed, ManifestUnavailable, RemovalFailed
from forced_dependency import enforce_forced_dependency
from manifest_fetcher import MANIFEST_URL, RETRY_BACKOFF, ManifestFetcher
from manifest_schema import ModEntry, parse_manifest
from mod_installer import ModInstaller
from release_resolver import ReleaseResolver
from state_sync import StateSync, ToggleResult

_log = logging.getLogger(__name__)


class ModManager:
    """
    Main mod manager controller.

    Workflow:
        1. load_mods() to fetch the manifest, resolve GitHub releases and
           force the BepInEx entry
        2. set_enabled() whenever the user ticks or unticks a mod
        3. install_all() / remove_all_mods() for the bulk actions
    """

    def __init__(
        self,
        game_dir: str | Path | None = None,
        *,
        manifest_url: str = MANIFEST_URL,
        client: httpx.AsyncClient | None = None,
        error_log: ErrorLog | None = None,
        log_callback: Optional[Callable[[str], None]] = None,
        fetch_backoff: float = RETRY_BACKOFF,
        temp_dir: str | Path | None = None,
    ):
        self.game_dir = Path(game_dir) if game_dir else None
        self.manifest_url = manifest_url
        self._owns_client = client is None
        self.client = client if client is not None else httpx.AsyncClient()
        self.error_log = error_log or ErrorLog()
        self._log_cb = log_callback

        self.fetcher = ManifestFetcher(self.client, self.error_log, backoff=fetch_backoff)
        self.resolver = ReleaseResolver(self.client)
        self.installer = ModInstaller(self.client, temp_dir)
        self.sync = StateSync(self.installer, self.error_log)

        # Runtime state
        self.mods: list[ModEntry] = []

    async def __aenter__(self) -> ModManager:
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        if self._owns_client:
            await self.client.aclose()

    # ── Logging ───────────────────────────────────────────────────────

    def log(self, msg: str):
        _log.info(msg)
        if self._log_cb is not None:
            self._log_cb(msg)

    # ── Manifest ──────────────────────────────────────────────────────

    async def load_mods(self) -> list[ModEntry]:
        """Fetch, parse, resolve and enforce the manifest.

        On a fetch or parse failure the error is recorded, given a
        ``log_path`` and re-raised; the previously loaded list is kept.
        """
        self.log("Loading mods...")
        try:
            text = await self.fetcher.fetch(self.manifest_url)
            mods = parse_manifest(text, self.fetcher.raw_path)
        except (ManifestUnavailable, ManifestMalformed) as exc:
            exc.log_path = self.error_log.record("Failed to load mods", exc)
            self.log(f"Failed to load mods (see {exc.log_path})")
            raise

        await self.resolver.resolve_all(mods)
        enforce_forced_dependency(mods)

        # Only BepInEx starts enabled; nothing is installed until asked
        for mod in mods:
            mod.enabled = mod.is_forced

        self.mods = mods
        self.sync.track(mods)
        self.log(f"Loaded {len(mods)} mods")
        return mods

    def find(self, name: str) -> ModEntry | None:
        key = name.strip().lower()
        for mod in self.mods:
            if mod.name.lower() == key:
                return mod
        return None

    def grouped(self) -> dict[str, list[ModEntry]]:
        groups: dict[str, list[ModEntry]] = {}
        for mod in self.mods:
            groups.setdefault(mod.group, []).append(mod)
        return groups

    # ── Toggle ────────────────────────────────────────────────────────

    async def set_enabled(self, mod: ModEntry, enabled: bool) -> ToggleResult:
        result = await self.sync.request(mod, enabled, self.game_dir)
        if result.ok:
            self.log(f"Installed {mod.display_name}" if enabled else f"Uninstalled {mod.name}")
        elif result.log_path:
            action = "install" if enabled else "uninstall"
            self.log(f"Failed to {action} {mod.name}. See log: {result.log_path}")
        else:
            self.log(str(result.error))
        return result

    # ── Bulk actions ──────────────────────────────────────────────────

    def _require_game_dir(self) -> Path:
        if self.game_dir is None:
            raise ConfigurationError("Game path not set.")
        return self.game_dir

    def plugins_dir(self) -> Path:
        """The BepInEx plugins folder, created if missing."""
        path = self.installer.plugins_dir(self._require_game_dir())
        path.mkdir(parents=True, exist_ok=True)
        return path

    async def install_all(self) -> list[ToggleResult]:
        """Install/update BepInEx, then every other enabled mod.

        A failing mod is reported in its result and does not stop the rest.
        """
        self._require_game_dir()
        results: list[ToggleResult] = []

        runtime = next((m for m in self.mods if m.is_forced), None)
        if runtime is not None:
            self.log("Installing/updating BepInEx...")
            results.append(await self.set_enabled(runtime, True))

        pending = [m for m in self.mods if m.enabled and not m.is_forced]
        results.extend(await asyncio.gather(*(self.set_enabled(m, True) for m in pending)))

        installed = sum(1 for r in results if r.ok and not r.mod.is_forced)
        self.log(f"Installed {installed} mods")
        return results

    async def remove_all_mods(self) -> bool:
        """Delete the BepInEx folder. Returns False if it was not there.

        A partial deletion is recorded, given a ``log_path`` and re-raised.
        """
        try:
            removed = await self.installer.remove_all(self._require_game_dir())
        except RemovalFailed as exc:
            exc.log_path = self.error_log.record("Failed to remove mods", exc)
            self.log(f"Failed to remove mods (see {exc.log_path})")
            raise
        if not removed:
            self.log("No BepInEx installation found")
            return False
        for mod in self.mods:
            if not mod.is_forced:
                mod.enabled = False
        self.sync.track(self.mods)
        self.log("Mods removed")
        return True
