"""
Persistent updater state: the version cache and the pending-update marker.

Both documents live under ``ETHOS_HOME/updates`` as JSON. Storage goes through
the small ``StateStore`` repository interface so that tests can swap in an
in-memory double.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from .layout import InstallationLayout

logger = logging.getLogger(__name__)

CACHE_KEY = "version-cache"
PENDING_KEY = "pending"

# Trust a release lookup for 24 hours
DEFAULT_CACHE_TTL_MS = 24 * 60 * 60 * 1000


class StateStore(Protocol):
    """Key/value repository of JSON documents."""

    def load(self, name: str) -> dict[str, Any] | None:
        ...

    def save(self, name: str, data: dict[str, Any]) -> None:
        ...

    def delete(self, name: str) -> None:
        ...


class FileStateStore:
    """
    StateStore backed by ``<directory>/<name>.json`` files.

    Writes go to a temp file that is renamed over the target, so concurrent
    readers see either the old or the new document.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def path_for(self, name: str) -> Path:
        return self.directory / f"{name}.json"

    def load(self, name: str) -> dict[str, Any] | None:
        path = self.path_for(name)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.debug(f"Ignoring unreadable state file {path}: {e}")
            return None
        return data if isinstance(data, dict) else None

    def save(self, name: str, data: dict[str, Any]) -> None:
        path = self.path_for(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        # Per-process temp name: racing writers must not share a temp file
        temp_path = path.with_name(f".{path.name}.{os.getpid()}.tmp")
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            temp_path.replace(path)
        except OSError:
            temp_path.unlink(missing_ok=True)
            raise

    def delete(self, name: str) -> None:
        self.path_for(name).unlink(missing_ok=True)


@dataclass(frozen=True)
class VersionCache:
    """
    Result of the last release lookup.

    Attributes:
        latest_version: Latest published version (without "v")
        checked_at: Lookup time, milliseconds since the epoch
        download_url: Archive URL for this platform, if the release has one
    """
    latest_version: str
    checked_at: int
    download_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the on-disk JSON document."""
        data: dict[str, Any] = {
            "latestVersion": self.latest_version,
            "checkedAt": self.checked_at,
        }
        if self.download_url:
            data["downloadUrl"] = self.download_url
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VersionCache | None:
        """Create from the on-disk document; None when required fields are missing."""
        latest = data.get("latestVersion")
        checked_at = data.get("checkedAt")
        if not isinstance(latest, str) or isinstance(checked_at, bool):
            return None
        if not isinstance(checked_at, (int, float)):
            return None
        url = data.get("downloadUrl")
        return cls(
            latest_version=latest,
            checked_at=int(checked_at),
            download_url=url if isinstance(url, str) and url else None,
        )


@dataclass(frozen=True)
class PendingUpdate:
    """
    A release that is downloaded and extracted but not yet active.

    Attributes:
        version: Staged version
        path: Absolute path of the extracted release directory
    """
    version: str
    path: str

    def to_dict(self) -> dict[str, str]:
        return {"version": self.version, "path": self.path}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PendingUpdate | None:
        version = data.get("version")
        path = data.get("path")
        if not isinstance(version, str) or not isinstance(path, str) or not path:
            return None
        return cls(version=version, path=path)


def is_cache_valid(cache: VersionCache | None, now: int, ttl_ms: int = DEFAULT_CACHE_TTL_MS) -> bool:
    """
    Check whether a cache entry may answer a lookup at time ``now``.

    Args:
        cache: Cache entry (None counts as invalid)
        now: Current time in milliseconds
        ttl_ms: Time-to-live in milliseconds

    Returns:
        True while ``now - checked_at < ttl_ms``
    """
    if cache is None:
        return False
    return now - cache.checked_at < ttl_ms


class VersionStore:
    """
    Owner of the version cache and pending-update marker.

    No locking: every write is idempotent, and racing invocations accept
    whichever document lands last.
    """

    def __init__(self, store: StateStore):
        self.store = store

    @classmethod
    def for_layout(cls, layout: InstallationLayout) -> VersionStore:
        return cls(FileStateStore(layout.updates_dir))

    def load_cache(self) -> VersionCache | None:
        data = self.store.load(CACHE_KEY)
        if data is None:
            return None
        return VersionCache.from_dict(data)

    def save_cache(self, cache: VersionCache) -> None:
        self.store.save(CACHE_KEY, cache.to_dict())

    def clear_cache(self) -> None:
        self.store.delete(CACHE_KEY)

    def load_pending(self) -> PendingUpdate | None:
        """
        Load the pending marker.

        A marker that cannot be parsed, or whose directory has disappeared,
        is stale: it is deleted and reported as absent.
        """
        data = self.store.load(PENDING_KEY)
        if data is None:
            return None

        pending = PendingUpdate.from_dict(data)
        if pending is None or not os.path.isdir(pending.path):
            logger.debug(f"Discarding stale pending marker: {data}")
            self.clear_pending()
            return None
        return pending

    def save_pending(self, pending: PendingUpdate) -> None:
        self.store.save(PENDING_KEY, pending.to_dict())

    def clear_pending(self) -> None:
        self.store.delete(PENDING_KEY)

    def clear_all(self) -> None:
        """Forget the cached lookup and any staged update."""
        self.clear_cache()
        self.clear_pending()
