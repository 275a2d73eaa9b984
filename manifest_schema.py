"""
Manifest schema for Stalking Stairs Mod Manager.

The remote manifest (``mods.json``) lists every installable mod. Two root
shapes are accepted:

    [ {"name": "Foo", ...}, ... ]

    {"mods": [ {"name": "Foo", ...}, ... ]}

Record fields
-------------
Field names are matched case-insensitively, and underscores are ignored, so
``downloadUrl``, ``DownloadURL`` and ``download_url`` all land in the same
field. Unknown fields are ignored.

{
    "name": "Foo",
    "author": "someone",
    "version": "1.0",
    "downloadUrl": "https://github.com/ex/foo/releases/download/v1.0/foo.zip",
    "gitPath": "ex/foo",
    "releaseId": 123456,
    "description": "Does foo things",
    "group": "Gameplay",
    "enabled": false
}

``gitPath`` is only consulted when ``downloadUrl`` is blank. It may be a full
URL or ``owner/repo`` shorthand on GitHub.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import BaseModel, ValidationError, field_validator, model_validator

from errors import ManifestMalformed

FORCED_DEPENDENCY_NAME = "BepInEx"
GITHUB_WEB_URL = "https://github.com"

_log = logging.getLogger(__name__)


def _fold_key(key: str) -> str:
    return key.replace("_", "").lower()


class ModEntry(BaseModel):
    """One installable mod as described by the manifest."""

    name: str = ""
    author: str = ""
    description: str = ""
    version: str = ""
    release_id: int | None = None
    download_url: str = ""
    git_path: str = ""
    enabled: bool = False
    group: str = ""

    @model_validator(mode="before")
    @classmethod
    def _match_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        fields = {_fold_key(name): name for name in cls.model_fields}
        matched: dict[str, Any] = {}
        for key, value in data.items():
            field_name = fields.get(_fold_key(str(key)))
            if field_name is not None:
                matched[field_name] = value
        return matched

    @field_validator(
        "name", "author", "description", "version", "download_url", "git_path", "group",
        mode="before",
    )
    @classmethod
    def _null_to_empty(cls, v: Any) -> Any:
        if v is None:
            return ""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("enabled", mode="before")
    @classmethod
    def _null_to_false(cls, v: Any) -> Any:
        return False if v is None else v

    @model_validator(mode="after")
    def _download_url_from_git_path(self) -> ModEntry:
        if not self.download_url.strip() and self.git_path.strip():
            self.download_url = git_path_to_url(self.git_path)
        return self

    @property
    def display_name(self) -> str:
        if self.version.strip():
            return f"{self.name} - {self.version}"
        return self.name

    @property
    def is_forced(self) -> bool:
        return self.name.lower() == FORCED_DEPENDENCY_NAME.lower()

    @property
    def is_toggleable(self) -> bool:
        return not self.is_forced


def git_path_to_url(git_path: str) -> str:
    """Turn ``owner/repo`` (or an already-complete URL) into a GitHub web URL."""
    path = git_path.strip()
    if path.lower().startswith(("http://", "https://")):
        return path
    return f"{GITHUB_WEB_URL}/{path.strip('/')}"


def parse_manifest(text: str | bytes, raw_path: str | None = None) -> list[ModEntry]:
    """Parse the manifest payload into ModEntry objects.

    ``raw_path`` is where the diagnostics copy was saved; it is only used in
    error messages. Raises ``ManifestMalformed`` for invalid JSON, an
    unrecognized root shape, or a record that fails validation.
    """
    saved = f" Raw saved to: {raw_path}" if raw_path else ""

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ManifestMalformed(f"Failed to parse the mods manifest.{saved}") from exc

    if isinstance(data, list):
        records = data
    elif isinstance(data, dict) and isinstance(data.get("mods"), list):
        records = data["mods"]
    else:
        raise ManifestMalformed(
            f"Mods manifest does not contain an array at root or a 'mods' array.{saved}"
        )

    try:
        mods = [ModEntry.model_validate(record) for record in records]
    except ValidationError as exc:
        raise ManifestMalformed(f"Failed to read mod records from the manifest.{saved}") from exc

    _log.debug("Parsed %d mod record(s) from manifest", len(mods))
    return mods
