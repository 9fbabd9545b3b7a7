"""
Version comparison for release tags.

Total ordering over loose "x.y.z" strings: an optional leading "v" is
ignored, missing components count as zero and components that are not
plain integers also count as zero. Never raises.
"""

from __future__ import annotations

from itertools import zip_longest


def _version_parts(version: str) -> list[int]:
    version = (version or "").strip()
    if version[:1] in ("v", "V"):
        version = version[1:]
    parts: list[int] = []
    for chunk in version.split("."):
        chunk = chunk.strip()
        parts.append(int(chunk) if chunk.isascii() and chunk.isdigit() else 0)
    return parts


def compare_versions(v1: str, v2: str) -> int:
    """
    Compare two version strings.

    Args:
        v1: First version
        v2: Second version

    Returns:
        -1 if v1 < v2, 0 if v1 == v2, 1 if v1 > v2
    """
    for a, b in zip_longest(_version_parts(v1), _version_parts(v2), fillvalue=0):
        if a > b:
            return 1
        if a < b:
            return -1
    return 0


def is_newer(candidate: str, current: str) -> bool:
    """Return True if ``candidate`` is strictly newer than ``current``."""
    return compare_versions(candidate, current) > 0
