"""
Shared fixtures for ethos_update tests.
"""

from __future__ import annotations

import copy
import io
import os
import tarfile
from pathlib import Path
from typing import Any

import pytest

from ethos_update.layout import InstallationLayout
from ethos_update.state_store import VersionStore


class MemoryStateStore:
    """In-memory StateStore double."""

    def __init__(self):
        self.documents: dict[str, dict[str, Any]] = {}

    def load(self, name: str) -> dict[str, Any] | None:
        data = self.documents.get(name)
        return copy.deepcopy(data) if data is not None else None

    def save(self, name: str, data: dict[str, Any]) -> None:
        self.documents[name] = copy.deepcopy(data)

    def delete(self, name: str) -> None:
        self.documents.pop(name, None)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """Keep the real environment and user config out of every test."""
    for var in ("ETHOS_SKIP_UPDATE_CHECK", "ETHOS_HOME", "ETHOS_DEBUG", "ETHOS_CONFIG"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr("ethos_update.config.CONFIG_LOCATIONS", [])


@pytest.fixture
def layout(tmp_path) -> InstallationLayout:
    return InstallationLayout(home=tmp_path / "ethos")


@pytest.fixture
def memory_store() -> MemoryStateStore:
    return MemoryStateStore()


@pytest.fixture
def version_store(memory_store) -> VersionStore:
    return VersionStore(memory_store)


def make_release_dir(layout: InstallationLayout, version: str) -> Path:
    """Create an extracted release with an executable under versions/."""
    release = layout.version_dir(version)
    (release / "bin").mkdir(parents=True, exist_ok=True)
    exe = release / "bin" / layout.binary_name
    exe.write_text(f"#!/bin/sh\necho {version}\n")
    os.chmod(exe, 0o755)
    return release


def activate(layout: InstallationLayout, release: Path) -> None:
    """Point current and bin/ethos at an existing release."""
    layout.home.mkdir(parents=True, exist_ok=True)
    os.symlink(release, layout.current_link)
    layout.bin_dir.mkdir(parents=True, exist_ok=True)
    os.symlink(layout.current_executable, layout.bin_link)


def make_tarball(version: str, binary_name: str = "ethos", extra: dict[str, bytes] | None = None) -> bytes:
    """Build a release .tar.gz with a top-level ``ethos/`` directory."""
    files = {f"ethos/bin/{binary_name}": f"#!/bin/sh\necho {version}\n".encode()}
    files.update(extra or {})

    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tf:
        top = tarfile.TarInfo(name="ethos")
        top.type = tarfile.DIRTYPE
        top.mode = 0o755
        tf.addfile(top)
        for name, payload in files.items():
            info = tarfile.TarInfo(name=name)
            info.size = len(payload)
            info.mode = 0o755
            tf.addfile(info, io.BytesIO(payload))
    return buf.getvalue()
