"""
Latest-release lookup against the GitHub releases API.

``ReleaseSource.fetch_latest`` never raises: network failures, error statuses
and malformed documents all read as "no release information".
"""

from __future__ import annotations

import json
import logging
import platform
import sys
import urllib.request
from dataclasses import dataclass
from typing import Any

from .common import UpdateError
from .config import DEFAULT_RELEASE_URL

logger = logging.getLogger(__name__)

USER_AGENT = "ethos-cli"
ARCHIVE_SUFFIX = ".tar.gz"

_OS_NAMES = {
    "darwin": "darwin",
    "linux": "linux",
    "win32": "win32",
    "cygwin": "win32",
}

_ARCH_NAMES = {
    "x86_64": "x64",
    "amd64": "x64",
    "x64": "x64",
    "arm64": "arm64",
    "aarch64": "arm64",
}


class ReleaseError(UpdateError):
    """Raised when release information cannot be obtained."""
    pass


class NetworkError(ReleaseError):
    """Raised when the release request fails."""
    pass


class ParseError(ReleaseError):
    """Raised when the release document is malformed."""
    pass


@dataclass(frozen=True)
class ReleaseAsset:
    """A downloadable file attached to a release."""
    name: str
    url: str


@dataclass(frozen=True)
class Release:
    """
    Latest published release.

    Attributes:
        tag_name: Raw tag (e.g. "v1.2.3")
        version: Tag without the "v" prefix
        assets: Downloadable files
    """
    tag_name: str
    version: str
    assets: tuple[ReleaseAsset, ...] = ()

    def asset_for(self, target: str) -> ReleaseAsset | None:
        """Pick the archive built for ``target`` (e.g. "linux-x64")."""
        for asset in self.assets:
            if target in asset.name and asset.name.endswith(ARCHIVE_SUFFIX):
                return asset
        return None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Release:
        """
        Parse a GitHub release document.

        Raises:
            ParseError: If the tag is missing or empty
        """
        tag = data.get("tag_name")
        if not isinstance(tag, str) or not tag.strip():
            raise ParseError("Release document has no tag_name")
        tag = tag.strip()
        # Any tag is accepted; ordering is left to compare_versions
        version = tag[1:] if tag[:1] in ("v", "V") else tag
        if not version:
            raise ParseError(f"Release tag has no version: {tag}")

        assets = []
        raw_assets = data.get("assets")
        if isinstance(raw_assets, list):
            for raw in raw_assets:
                if not isinstance(raw, dict):
                    continue
                name = raw.get("name")
                url = raw.get("browser_download_url")
                if isinstance(name, str) and isinstance(url, str) and url:
                    assets.append(ReleaseAsset(name=name, url=url))

        return cls(tag_name=tag, version=version, assets=tuple(assets))


def get_platform_target(system: str | None = None, machine: str | None = None) -> str:
    """
    Platform tag used in release asset names.

    Args:
        system: OS name as in ``sys.platform`` (detected if None)
        machine: CPU name as in ``platform.machine()`` (detected if None)

    Returns:
        Target such as "darwin-arm64" or "linux-x64"; unknown combinations
        fall back to "<os>-<arch>"
    """
    system = system if system is not None else sys.platform
    machine = machine if machine is not None else platform.machine()

    os_name = _OS_NAMES.get(system, system)
    if os_name.startswith("linux"):
        os_name = "linux"
    arch = _ARCH_NAMES.get(machine.lower(), machine.lower())
    return f"{os_name}-{arch}"


def http_get(url: str, timeout: float = 10, headers: dict[str, str] | None = None) -> bytes:
    """Perform HTTP GET request.

    Args:
        url: URL to fetch
        timeout: Timeout in seconds
        headers: Optional HTTP headers

    Returns:
        Response body as bytes

    Raises:
        NetworkError: If request fails or returns an error status
    """
    try:
        default_headers = {"User-Agent": USER_AGENT}
        if headers:
            default_headers.update(headers)

        req = urllib.request.Request(url, headers=default_headers)
        with urllib.request.urlopen(req, timeout=timeout) as response:
            return response.read()
    except Exception as e:
        raise NetworkError(f"Failed to fetch {url}: {e}") from e


class ReleaseSource:
    """
    Queries the release index for the latest version.

    Attributes:
        url: Release endpoint
        timeout: Request timeout in seconds
        platform_target: Asset platform tag (detected if None)
    """

    def __init__(
        self,
        url: str = DEFAULT_RELEASE_URL,
        timeout: float = 10,
        platform_target: str | None = None,
    ):
        self.url = url
        self.timeout = timeout
        self.platform_target = platform_target or get_platform_target()

    def fetch_latest(self) -> Release | None:
        """
        Fetch the latest release.

        Returns:
            Release, or None when the lookup failed for any reason
        """
        try:
            body = http_get(
                self.url,
                timeout=self.timeout,
                headers={"Accept": "application/vnd.github.v3+json"},
            )
            try:
                data = json.loads(body)
            except ValueError as e:
                raise ParseError(f"Release document is not JSON: {e}") from e
            if not isinstance(data, dict):
                raise ParseError("Release document is not an object")
            release = Release.from_dict(data)
        except ReleaseError as e:
            logger.debug(f"Release lookup failed: {e}")
            return None

        logger.debug(f"Latest release: {release.tag_name} ({len(release.assets)} assets)")
        return release

    def download_url_for(self, release: Release) -> str | None:
        """Archive URL for this platform, or None if the release has none."""
        asset = release.asset_for(self.platform_target)
        if asset is None:
            logger.debug(f"No {self.platform_target} asset in {release.tag_name}")
            return None
        return asset.url
