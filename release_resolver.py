"""
GitHub release resolution.

Manifest entries usually point at a GitHub project (or an old release asset
on it). Before presenting the list, each such entry is resolved against the
release API so the installer downloads the current asset:

    GET https://api.github.com/repos/{owner}/{repo}/releases/latest
    GET https://api.github.com/repos/{owner}/{repo}/releases/{release_id}

``tag_name`` (minus a leading ``v``) becomes the entry version, and the first
``.zip`` asset (or else the first asset) becomes its download URL. Any
failure leaves the entry exactly as it was. Results are not cached; every
load asks GitHub again.
"""

from __future__ import annotations

import asyncio
import logging
from urllib.parse import urlparse

import httpx
from pydantic import BaseModel, Field, ValidationError

from errors import ReleaseResolutionFailed
from manifest_fetcher import TRANSPORT_ERRORS, USER_AGENT
from manifest_schema import ModEntry

GITHUB_API_URL = "https://api.github.com"
GITHUB_WEB_HOSTS = ("github.com", "www.github.com")
PREFERRED_ASSET_EXTENSION = ".zip"

_log = logging.getLogger(__name__)


class ReleaseAsset(BaseModel):
    browser_download_url: str | None = None


class ReleaseInfo(BaseModel):
    tag_name: str | None = None
    assets: list[ReleaseAsset] = Field(default_factory=list)


def github_owner_repo(url: str) -> tuple[str, str] | None:
    """Return (owner, repo) for a github.com web URL, else None."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    if (parsed.hostname or "").lower() not in GITHUB_WEB_HOSTS:
        return None
    segments = [s for s in parsed.path.split("/") if s]
    if len(segments) < 2:
        return None
    return segments[0], segments[1]


def pick_asset_url(assets: list[ReleaseAsset]) -> str | None:
    """First asset ending in .zip; otherwise the first asset with a URL."""
    chosen = None
    for asset in assets:
        url = asset.browser_download_url
        if not url:
            continue
        if url.lower().endswith(PREFERRED_ASSET_EXTENSION):
            return url
        if chosen is None:
            chosen = url
    return chosen


class ReleaseResolver:
    def __init__(self, client: httpx.AsyncClient, api_url: str = GITHUB_API_URL):
        self.client = client
        self.api_url = api_url.rstrip("/")

    def release_url(self, owner: str, repo: str, release_id: int | None = None) -> str:
        base = f"{self.api_url}/repos/{owner}/{repo}/releases"
        if release_id is not None and release_id > 0:
            return f"{base}/{release_id}"
        return f"{base}/latest"

    async def _fetch_release(self, url: str) -> ReleaseInfo:
        try:
            response = await self.client.get(
                url,
                headers={
                    "User-Agent": USER_AGENT,
                    "Accept": "application/vnd.github+json",
                },
            )
        except TRANSPORT_ERRORS as exc:
            raise ReleaseResolutionFailed(f"{url}: {exc}") from exc
        if not response.is_success:
            raise ReleaseResolutionFailed(f"{url}: HTTP {response.status_code}")
        try:
            return ReleaseInfo.model_validate_json(response.content)
        except ValidationError as exc:
            raise ReleaseResolutionFailed(f"{url}: unexpected release payload") from exc

    async def resolve(self, mod: ModEntry) -> ModEntry:
        """Point ``mod`` at its GitHub release asset, in place.

        Non-GitHub entries are returned untouched, as are entries whose
        lookup fails for any reason.
        """
        if not mod.download_url.strip():
            return mod
        owner_repo = github_owner_repo(mod.download_url)
        if owner_repo is None:
            return mod

        url = self.release_url(*owner_repo, release_id=mod.release_id)
        try:
            release = await self._fetch_release(url)
        except ReleaseResolutionFailed as exc:
            _log.debug("Release lookup for %s skipped: %s", mod.name, exc)
            return mod

        version = mod.version
        if release.tag_name is not None:
            version = release.tag_name.lstrip("v")
        download_url = pick_asset_url(release.assets) or mod.download_url

        mod.version = version
        mod.download_url = download_url
        _log.debug("Resolved %s -> %s (%s)", mod.name, download_url, version)
        return mod

    async def resolve_all(self, mods: list[ModEntry]) -> list[ModEntry]:
        results = await asyncio.gather(
            *(self.resolve(mod) for mod in mods), return_exceptions=True
        )
        for mod, result in zip(mods, results):
            if isinstance(result, Exception):
                _log.warning("Release resolution for %s failed: %s", mod.name, result)
        return mods
