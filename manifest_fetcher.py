"""
Manifest download with retry and truncation detection.

raw.githubusercontent.com occasionally drops connections or serves a cut-off
body, so the fetch is retried a few times and a payload that does not end in
``]`` or ``}`` is downloaded once more. The check is a weak signal (a valid
payload can only end in one of those characters, but a truncated one may
too) and is kept as a best-effort retry only.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from error_log import ErrorLog
from errors import ManifestUnavailable

MANIFEST_URL = (
    "https://raw.githubusercontent.com/SpeedRunnerVilska/"
    "Stalking-Stairs-Mod-Manager/main/mods.json"
)
USER_AGENT = "StalkingStairsModManager/1.0"
TRANSPORT_ERRORS = (httpx.HTTPError, httpx.InvalidURL)
MAX_ATTEMPTS = 3
RETRY_BACKOFF = 1.0  # seconds

_log = logging.getLogger(__name__)


def looks_truncated(text: str) -> bool:
    return not text.rstrip().endswith(("]", "}"))


class ManifestFetcher:
    def __init__(
        self,
        client: httpx.AsyncClient,
        error_log: ErrorLog | None = None,
        *,
        max_attempts: int = MAX_ATTEMPTS,
        backoff: float = RETRY_BACKOFF,
    ):
        self.client = client
        self.error_log = error_log
        self.max_attempts = max_attempts
        self.backoff = backoff
        self.raw_path: str | None = None

    async def _get_text(self, url: str) -> str:
        response = await self.client.get(url, headers={"User-Agent": USER_AGENT})
        response.raise_for_status()
        return response.text

    async def fetch(self, url: str = MANIFEST_URL) -> str:
        """Download the manifest text.

        Raises ``ManifestUnavailable`` once every attempt has failed, or if
        the final text is empty.
        """
        self.raw_path = None
        text = ""
        for attempt in range(1, self.max_attempts + 1):
            try:
                text = await self._get_text(url)
                break
            except TRANSPORT_ERRORS as exc:
                if attempt >= self.max_attempts:
                    raise ManifestUnavailable(
                        f"Failed to download mods manifest from {url}: {exc}"
                    ) from exc
                _log.warning(
                    "Manifest download attempt %d/%d failed: %s",
                    attempt, self.max_attempts, exc,
                )
                await asyncio.sleep(self.backoff)

        if looks_truncated(text):
            _log.warning("Manifest looks truncated, downloading once more")
            try:
                text = await self._get_text(url)
            except TRANSPORT_ERRORS as exc:
                _log.warning("Repeat manifest download failed, keeping first copy: %s", exc)

        if self.error_log is not None:
            self.raw_path = self.error_log.save_manifest(text)

        if not text.strip():
            raise ManifestUnavailable(f"Mods manifest from {url} is empty")

        _log.info("Fetched mods manifest (%d chars)", len(text))
        return text
