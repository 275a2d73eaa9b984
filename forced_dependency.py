"""
BepInEx is the mod loader every other mod needs, so it is always in the list,
always enabled, and pinned to a known-good build whatever the manifest says.
"""

from __future__ import annotations

import logging

from manifest_schema import FORCED_DEPENDENCY_NAME, ModEntry

FORCED_DEPENDENCY_AUTHOR = "BepInEx"
FORCED_DEPENDENCY_VERSION = "5.4.23.2"
FORCED_DEPENDENCY_URL = (
    "https://github.com/BepInEx/BepInEx/releases/download/"
    "v5.4.23.2/BepInEx_win_x64_5.4.23.2.zip"
)
FORCED_DEPENDENCY_DESCRIPTION = "BepInEx runtime (forced)"
FORCED_DEPENDENCY_GROUP = "Runtime"

_log = logging.getLogger(__name__)


def make_forced_entry() -> ModEntry:
    return ModEntry(
        name=FORCED_DEPENDENCY_NAME,
        author=FORCED_DEPENDENCY_AUTHOR,
        version=FORCED_DEPENDENCY_VERSION,
        download_url=FORCED_DEPENDENCY_URL,
        description=FORCED_DEPENDENCY_DESCRIPTION,
        group=FORCED_DEPENDENCY_GROUP,
        enabled=True,
    )


def find_forced_entry(mods: list[ModEntry]) -> ModEntry | None:
    """Locate the manifest's BepInEx entry.

    Manifest authors either name the entry ``BepInEx`` or only reference it
    through its asset URL, so both are checked, name first.
    """
    key = FORCED_DEPENDENCY_NAME.lower()
    for mod in mods:
        if mod.name.lower() == key:
            return mod
    for mod in mods:
        if key in mod.download_url.lower():
            return mod
    return None


def enforce_forced_dependency(mods: list[ModEntry]) -> list[ModEntry]:
    """Make sure exactly one pinned, enabled BepInEx entry is in ``mods``.

    Mutates and returns ``mods``.
    """
    forced = find_forced_entry(mods)
    if forced is None:
        forced = make_forced_entry()
        mods.insert(0, forced)
        _log.info("Manifest has no %s entry, added the pinned one", FORCED_DEPENDENCY_NAME)
    else:
        if not forced.is_forced:
            _log.info("Treating %r as %s (matched by URL)", forced.name, FORCED_DEPENDENCY_NAME)
            forced.name = FORCED_DEPENDENCY_NAME
        forced.enabled = True
        forced.download_url = FORCED_DEPENDENCY_URL
        forced.version = FORCED_DEPENDENCY_VERSION

    duplicates = [m for m in mods if m.is_forced and m is not forced]
    if duplicates:
        mods[:] = [m for m in mods if not m.is_forced or m is forced]
        _log.warning("Dropped %d duplicate %s entr(ies)", len(duplicates), FORCED_DEPENDENCY_NAME)
    return mods
