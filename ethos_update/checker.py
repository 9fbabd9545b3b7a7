"""
Cached update check.

A fresh cache entry answers without touching the network, so the release
index is queried at most once per TTL window per machine.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .common import now_ms
from .release_source import ReleaseSource
from .state_store import DEFAULT_CACHE_TTL_MS, VersionCache, VersionStore, is_cache_valid
from .versioning import is_newer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpdateInfo:
    """
    Outcome of an update check.

    Attributes:
        current_version: Version of the running CLI
        latest_version: Latest known version (current version if unknown)
        update_available: Whether latest_version is newer
        download_url: Archive URL for this platform, if any
        used_cache: Whether the answer came from the cache
    """
    current_version: str
    latest_version: str
    update_available: bool
    download_url: str | None = None
    used_cache: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "current_version": self.current_version,
            "latest_version": self.latest_version,
            "update_available": self.update_available,
            "download_url": self.download_url,
            "used_cache": self.used_cache,
        }


def check_for_update(
    store: VersionStore,
    source: ReleaseSource,
    current_version: str,
    now: int | None = None,
    ttl_ms: int = DEFAULT_CACHE_TTL_MS,
    force: bool = False,
) -> UpdateInfo:
    """
    Determine whether a newer release exists.

    Args:
        store: Version cache owner
        source: Release index client
        current_version: Version of the running CLI
        now: Current time in milliseconds (defaults to the clock)
        ttl_ms: Cache time-to-live in milliseconds
        force: Ignore the cache and query the release index

    Returns:
        UpdateInfo; a failed lookup reports no update
    """
    now = now_ms() if now is None else now

    cache = None if force else store.load_cache()
    if cache is not None and is_cache_valid(cache, now, ttl_ms):
        logger.debug(f"Using cached latest version {cache.latest_version}")
        return UpdateInfo(
            current_version=current_version,
            latest_version=cache.latest_version,
            update_available=is_newer(cache.latest_version, current_version),
            download_url=cache.download_url,
            used_cache=True,
        )

    release = source.fetch_latest()
    if release is None:
        latest_version = current_version
        download_url = None
    else:
        latest_version = release.version
        download_url = source.download_url_for(release)

    # Failed lookups are cached too: at most one query per TTL window
    try:
        store.save_cache(VersionCache(
            latest_version=latest_version,
            checked_at=now,
            download_url=download_url,
        ))
    except OSError as e:
        logger.debug(f"Could not write version cache: {e}")

    return UpdateInfo(
        current_version=current_version,
        latest_version=latest_version,
        update_available=is_newer(latest_version, current_version),
        download_url=download_url,
    )
