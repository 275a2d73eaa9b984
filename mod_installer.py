"""
Stalking Stairs Mod Manager - mod installation.

Layout produced under the game directory:

    <game>/BepInEx/...                  <- BepInEx runtime (forced entry)
    <game>/BepInEx/plugins/Foo.dll      <- single-file mods (and unknown types)
    <game>/BepInEx/plugins/<Mod Name>/  <- archive mods, extracted

Installing is idempotent: a single file is replaced, an archive mod's folder
is re-extracted beside the old one and swapped in once complete, and the
runtime archive is unpacked over the game directory. Uninstalling is
best-effort and never raises.
"""

from __future__ import annotations

import asyncio
import logging
import re
import shutil
import tempfile
import uuid
import zipfile
from pathlib import Path
from urllib.parse import unquote, urlparse

import httpx
import py7zr
import rarfile

from errors import InstallFailed, InstallFailure, RemovalFailed
from manifest_fetcher import TRANSPORT_ERRORS, USER_AGENT
from manifest_schema import ModEntry

RUNTIME_DIR_NAME = "BepInEx"
PLUGINS_DIR_NAME = "plugins"
ARCHIVE_EXTENSIONS = {".zip", ".7z", ".rar"}

_INVALID_NAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_ARCHIVE_ERRORS = (zipfile.BadZipFile, py7zr.Bad7zFile, rarfile.Error)

_log = logging.getLogger(__name__)


def safe_name(name: str) -> str:
    """Replace characters Windows forbids in file names with ``_`` and trim."""
    return _INVALID_NAME_CHARS.sub("_", name).strip()


def url_filename(url: str) -> str:
    """Last path component of ``url``, percent-decoded ('' if there is none)."""
    path = unquote(urlparse(url).path)
    return path.rstrip("/").rsplit("/", 1)[-1]


def _extract_archive(filepath: Path, dest: Path):
    ext = filepath.suffix.lower()
    dest.mkdir(parents=True, exist_ok=True)
    if ext == ".zip":
        with zipfile.ZipFile(filepath, "r") as zf:
            zf.extractall(dest)
    elif ext == ".7z":
        with py7zr.SevenZipFile(filepath, "r") as sz:
            sz.extractall(dest)
    elif ext == ".rar":
        with rarfile.RarFile(filepath, "r") as rf:
            rf.extractall(dest)
    else:
        raise ValueError(f"Unsupported archive format: {ext}")


class ModInstaller:
    def __init__(self, client: httpx.AsyncClient, temp_dir: str | Path | None = None):
        self.client = client
        self.temp_dir = Path(temp_dir) if temp_dir is not None else Path(tempfile.gettempdir())

    # ── Paths ─────────────────────────────────────────────────────────

    @staticmethod
    def runtime_dir(game_dir: str | Path) -> Path:
        return Path(game_dir) / RUNTIME_DIR_NAME

    @staticmethod
    def plugins_dir(game_dir: str | Path) -> Path:
        return Path(game_dir) / RUNTIME_DIR_NAME / PLUGINS_DIR_NAME

    def extract_dir(self, mod: ModEntry, game_dir: str | Path) -> Path:
        # Blank or dot-only names must never resolve to plugins/ or above it
        name = safe_name(mod.name)
        if not name.strip("."):
            name = safe_name(Path(url_filename(mod.download_url)).stem)
        if not name.strip("."):
            name = "mod"
        return self.plugins_dir(game_dir) / name

    @staticmethod
    def _owned_by_plugins(path: Path, plugins: Path) -> bool:
        return path.resolve().parent == plugins.resolve()

    def _temp_archive_path(self, ext: str) -> Path:
        return self.temp_dir / f"mod_{uuid.uuid4().hex}{ext}"

    # ── Download ──────────────────────────────────────────────────────

    async def _download(self, mod: ModEntry, url: str, dest: Path):
        try:
            async with self.client.stream(
                "GET", url, headers={"User-Agent": USER_AGENT}, follow_redirects=True
            ) as response:
                response.raise_for_status()
                with dest.open("wb") as fh:
                    async for chunk in response.aiter_bytes():
                        fh.write(chunk)
        except TRANSPORT_ERRORS as exc:
            dest.unlink(missing_ok=True)
            raise InstallFailed(InstallFailure.DOWNLOAD_FAILED, mod.name, url, str(exc)) from exc
        except OSError as exc:
            dest.unlink(missing_ok=True)
            raise InstallFailed(InstallFailure.FILESYSTEM_ERROR, mod.name, url, str(exc)) from exc

    @staticmethod
    def _discard(path: Path):
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            _log.warning("Could not delete temporary file %s: %s", path, exc)

    # ── Install ───────────────────────────────────────────────────────

    async def install(self, mod: ModEntry, game_dir: str | Path):
        """Download ``mod`` and place it under the game directory.

        Raises ``InstallFailed`` on a missing URL, a failed download, a
        broken archive or a filesystem error.
        """
        url = mod.download_url.strip()
        if not url:
            raise InstallFailed(InstallFailure.NO_DOWNLOAD_URL, mod.name)

        game_dir = Path(game_dir)
        if mod.is_forced:
            await self._install_runtime(mod, url, game_dir)
            return

        plugins = self.plugins_dir(game_dir)
        try:
            plugins.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise InstallFailed(InstallFailure.FILESYSTEM_ERROR, mod.name, url, str(exc)) from exc

        filename = url_filename(url) or f"{safe_name(mod.name)}.bin"
        ext = Path(filename).suffix.lower()
        if ext in ARCHIVE_EXTENSIONS:
            target = self.extract_dir(mod, game_dir)
        else:
            # .dll and anything unrecognized are dropped into plugins/ as-is
            target = plugins / filename
        if not self._owned_by_plugins(target, plugins):
            raise InstallFailed(
                InstallFailure.FILESYSTEM_ERROR, mod.name, url, f"{target} is outside {plugins}"
            )

        if ext in ARCHIVE_EXTENSIONS:
            await self._install_archive(mod, url, ext, target)
        else:
            await self._install_file(mod, url, target)

    async def _install_file(self, mod: ModEntry, url: str, target: Path):
        part = target.with_name(target.name + ".part")
        await self._download(mod, url, part)
        try:
            part.replace(target)
        except OSError as exc:
            self._discard(part)
            raise InstallFailed(InstallFailure.FILESYSTEM_ERROR, mod.name, url, str(exc)) from exc
        _log.info("Installed %s -> %s", mod.display_name, target)

    async def _install_archive(self, mod: ModEntry, url: str, ext: str, extract_dir: Path):
        temp = self._temp_archive_path(ext)
        try:
            await self._download(mod, url, temp)
            await asyncio.to_thread(self._replace_extracted, mod, url, temp, extract_dir)
        finally:
            self._discard(temp)
        _log.info("Installed %s -> %s", mod.display_name, extract_dir)

    @staticmethod
    def _replace_extracted(mod: ModEntry, url: str, archive: Path, extract_dir: Path):
        # The previous install stays in place until the new one is fully unpacked
        staging = extract_dir.with_name(f".{extract_dir.name}.new")
        try:
            if staging.exists():
                shutil.rmtree(staging)
            _extract_archive(archive, staging)
            if extract_dir.exists():
                shutil.rmtree(extract_dir)
            staging.rename(extract_dir)
        except _ARCHIVE_ERRORS as exc:
            shutil.rmtree(staging, ignore_errors=True)
            raise InstallFailed(InstallFailure.BAD_ARCHIVE, mod.name, url, str(exc)) from exc
        except OSError as exc:
            shutil.rmtree(staging, ignore_errors=True)
            raise InstallFailed(InstallFailure.FILESYSTEM_ERROR, mod.name, url, str(exc)) from exc

    async def _install_runtime(self, mod: ModEntry, url: str, game_dir: Path):
        ext = Path(url_filename(url)).suffix.lower() or ".zip"
        temp = self._temp_archive_path(ext)
        try:
            await self._download(mod, url, temp)
            await asyncio.to_thread(self._extract_runtime, mod, url, temp, game_dir)
        finally:
            self._discard(temp)
        _log.info("Installed %s into %s", mod.display_name, game_dir)

    @staticmethod
    def _extract_runtime(mod: ModEntry, url: str, archive: Path, game_dir: Path):
        try:
            _extract_archive(archive, game_dir)
        except (*_ARCHIVE_ERRORS, ValueError) as exc:
            raise InstallFailed(InstallFailure.BAD_ARCHIVE, mod.name, url, str(exc)) from exc
        except OSError as exc:
            raise InstallFailed(InstallFailure.FILESYSTEM_ERROR, mod.name, url, str(exc)) from exc

    # ── Uninstall ─────────────────────────────────────────────────────

    async def uninstall(self, mod: ModEntry, game_dir: str | Path):
        """Remove whatever ``install`` put in plugins/ for ``mod``.

        Best-effort: failures are logged and never raised, so a disable
        request always completes.
        """
        await asyncio.to_thread(self._remove_artifacts, mod, Path(game_dir))

    def _remove_artifacts(self, mod: ModEntry, game_dir: Path):
        plugins = self.plugins_dir(game_dir)
        if not plugins.is_dir():
            return
        try:
            extract_dir = self.extract_dir(mod, game_dir)
            if extract_dir.is_dir() and self._owned_by_plugins(extract_dir, plugins):
                shutil.rmtree(extract_dir)
                _log.info("Uninstalled %s (removed %s)", mod.name, extract_dir)
                return

            if mod.download_url.strip():
                filename = url_filename(mod.download_url.strip())
                candidate = plugins / filename
                if (
                    filename
                    and candidate.is_file()
                    and self._owned_by_plugins(candidate, plugins)
                ):
                    candidate.unlink()
                    _log.info("Uninstalled %s (removed %s)", mod.name, candidate)
        except Exception as exc:
            _log.warning("Uninstall of %s incomplete: %s", mod.name, exc)

    async def remove_all(self, game_dir: str | Path) -> bool:
        """Delete the whole BepInEx tree (runtime and every mod).

        Raises ``RemovalFailed`` when part of the tree cannot be deleted,
        typically a file the running game still holds open.
        """
        runtime = self.runtime_dir(game_dir)
        if not runtime.is_dir():
            return False
        try:
            await asyncio.to_thread(shutil.rmtree, runtime)
        except OSError as exc:
            raise RemovalFailed(f"Could not remove {runtime}: {exc}") from exc
        _log.info("Removed %s", runtime)
        return True
