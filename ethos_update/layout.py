"""
Installation layout shared by every part of the updater.

ETHOS_HOME/
  versions/v<version>/...          one directory per extracted release
  current -> versions/v<version>   the active release
  bin/ethos -> ETHOS_HOME/current/bin/ethos
  updates/version-cache.json
  updates/pending.json
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path


HOME_ENV = "ETHOS_HOME"
DEFAULT_HOME_DIRNAME = ".ethos"
BINARY_NAME = "ethos.exe" if sys.platform == "win32" else "ethos"


@dataclass(frozen=True)
class InstallationLayout:
    """
    Directory convention of a self-managed installation.

    Attributes:
        home: Installation root (ETHOS_HOME)
        binary_name: File name of the executable inside a release
    """
    home: Path
    binary_name: str = BINARY_NAME

    @classmethod
    def from_env(cls, home: str | os.PathLike[str] | None = None) -> InstallationLayout:
        """
        Build the layout from an explicit root, $ETHOS_HOME or ~/.ethos.

        Args:
            home: Explicit installation root (takes priority over environment)

        Returns:
            InstallationLayout rooted at an absolute path
        """
        root = home or os.environ.get(HOME_ENV) or os.path.join(
            os.path.expanduser("~"), DEFAULT_HOME_DIRNAME
        )
        return cls(home=Path(os.path.abspath(os.path.expanduser(str(root)))))

    @property
    def versions_dir(self) -> Path:
        return self.home / "versions"

    @property
    def current_link(self) -> Path:
        return self.home / "current"

    @property
    def bin_dir(self) -> Path:
        return self.home / "bin"

    @property
    def bin_link(self) -> Path:
        return self.bin_dir / self.binary_name

    @property
    def current_executable(self) -> Path:
        """Executable path as seen through the ``current`` link."""
        return self.current_link / "bin" / self.binary_name

    @property
    def updates_dir(self) -> Path:
        return self.home / "updates"

    @property
    def cache_file(self) -> Path:
        return self.updates_dir / "version-cache.json"

    @property
    def pending_file(self) -> Path:
        return self.updates_dir / "pending.json"

    @property
    def fetch_log(self) -> Path:
        return self.updates_dir / "fetch.log"

    def version_dir(self, version: str) -> Path:
        """Final directory of an extracted release."""
        return self.versions_dir / f"v{version.lstrip('vV')}"

    def archive_path(self, version: str, owner: int | None = None) -> Path:
        """Temporary download location of a release archive, optionally per process."""
        suffix = f".{owner}" if owner is not None else ""
        return self.updates_dir / f"ethos-v{version.lstrip('vV')}{suffix}.tar.gz"

    def staging_dir(self, version: str, owner: int) -> Path:
        """Hidden directory a release is extracted into before it is renamed into place."""
        return self.versions_dir / f".{self.version_dir(version).name}.partial-{owner}"

    def contains(self, path: str | os.PathLike[str]) -> bool:
        """
        Check whether ``path`` lies inside the installation root.

        Both the literal and the symlink-resolved forms are compared, so a
        binary reached through ``bin/ethos`` and one resolved into
        ``versions/`` both count.
        """
        roots = {str(self.home), os.path.realpath(self.home)}
        candidates = {os.path.abspath(path), os.path.realpath(path)}
        for root in roots:
            prefix = root.rstrip(os.sep) + os.sep
            for candidate in candidates:
                if candidate == root or candidate.startswith(prefix):
                    return True
        return False
