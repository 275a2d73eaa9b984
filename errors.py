"""
Error taxonomy for Stalking Stairs Mod Manager.

Load-time errors (``ManifestUnavailable``, ``ManifestMalformed``) abort a
manifest load. ``RemovalFailed`` aborts a remove-all. Per-mod errors
(``InstallFailed``, ``OperationNotAllowed``,
``ConfigurationError``) are reported for that mod only.
``ReleaseResolutionFailed`` never leaves the resolver.
"""

from __future__ import annotations

from enum import Enum


class ModManagerError(Exception):
    """Base class for every error the mod manager reports."""

    def __init__(self, message: str, *, log_path: str | None = None):
        super().__init__(message)
        self.log_path = log_path


class ManifestUnavailable(ModManagerError):
    """The manifest could not be downloaded, or came back empty."""


class ManifestMalformed(ModManagerError):
    """The manifest payload has an unrecognized shape or is not valid JSON."""


class ReleaseResolutionFailed(ModManagerError):
    """A GitHub release lookup failed. Recovered inside the resolver."""


class InstallFailure(str, Enum):
    NO_DOWNLOAD_URL = "no_download_url"
    DOWNLOAD_FAILED = "download_failed"
    BAD_ARCHIVE = "bad_archive"
    FILESYSTEM_ERROR = "filesystem_error"


class InstallFailed(ModManagerError):
    def __init__(
        self,
        reason: InstallFailure,
        mod_name: str,
        url: str | None = None,
        detail: str | None = None,
    ):
        message = f"Failed to install {mod_name!r} ({reason.value})"
        if url:
            message += f" from {url}"
        if detail:
            message += f": {detail}"
        super().__init__(message)
        self.reason = reason
        self.mod_name = mod_name
        self.url = url


class OperationNotAllowed(ModManagerError):
    """The requested toggle is rejected (e.g. disabling the forced runtime)."""


class ConfigurationError(ModManagerError):
    """A required setting (the game directory) is missing."""


class RemovalFailed(ModManagerError):
    """The BepInEx folder could not be deleted completely."""
