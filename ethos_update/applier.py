"""
Activation of a staged release.

Runs once at the start of every invocation. A pending release is activated
by repointing the ``current`` symlink (temp link + rename, so readers see the
old or the new target, never a mix), refreshing ``bin/ethos``, deleting the
marker and pruning every other release directory.

States: NO_PENDING -> PENDING -> APPLYING -> APPLIED | REJECTED
"""

from __future__ import annotations

import enum
import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from .common import SKIP_UPDATE_ENV, UpdateError
from .install_method import InstallInfo, detect_install_method
from .layout import InstallationLayout
from .state_store import VersionStore

logger = logging.getLogger(__name__)


class SwapError(UpdateError):
    """Raised when the active release cannot be switched."""
    pass


class ApplyState(enum.Enum):
    NO_PENDING = "no_pending"
    PENDING = "pending"
    APPLYING = "applying"
    APPLIED = "applied"
    REJECTED = "rejected"


@dataclass(frozen=True)
class ApplyResult:
    """
    Outcome of a pending-update check.

    Attributes:
        state: Final state (NO_PENDING, APPLIED or REJECTED)
        version: Version of the pending release, if there was one
        path: Release directory of the pending release
        reason: Why the update was rejected
    """
    state: ApplyState
    version: str | None = None
    path: str | None = None
    reason: str | None = None

    @property
    def applied(self) -> bool:
        return self.state is ApplyState.APPLIED


def repoint_symlink(link: Path, target: Path) -> None:
    """
    Atomically make ``link`` a symlink to ``target``.

    A temporary link is created next to ``link`` and renamed over it. An
    existing real directory at ``link`` is not replaced.

    Raises:
        SwapError: If the link cannot be replaced
    """
    link.parent.mkdir(parents=True, exist_ok=True)
    if link.exists() and not link.is_symlink() and link.is_dir():
        raise SwapError(f"{link} is a directory, not a symlink")

    temp_link = link.with_name(f".{link.name}.{os.getpid()}.tmp")
    try:
        temp_link.unlink(missing_ok=True)
        os.symlink(target, temp_link)
        os.replace(temp_link, link)
    except OSError as e:
        try:
            temp_link.unlink(missing_ok=True)
        except OSError:
            pass
        raise SwapError(f"Could not point {link} at {target}: {e}") from e


def refresh_bin_symlink(layout: InstallationLayout) -> None:
    """Point ``bin/ethos`` at the executable inside ``current``."""
    repoint_symlink(layout.bin_link, layout.current_executable)


def prune_versions(layout: InstallationLayout, keep: Path) -> list[str]:
    """
    Delete every entry of ``versions/`` except ``keep``.

    Hidden entries are in-flight staging directories of a concurrent fetch
    worker and are left alone. A release that worker has already renamed
    into place but not yet marked pending can still be removed here; its
    marker then points at a missing directory, which the next apply rejects,
    and the release is fetched again on a later check.

    Returns:
        Names of the removed entries
    """
    removed: list[str] = []
    if not layout.versions_dir.is_dir():
        return removed

    for entry in layout.versions_dir.iterdir():
        if entry.name == keep.name or entry.name.startswith("."):
            continue
        try:
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()
            removed.append(entry.name)
        except OSError as e:
            logger.debug(f"Could not remove old release {entry}: {e}")

    if removed:
        logger.debug(f"Pruned old releases: {', '.join(sorted(removed))}")
    return removed


def apply_pending_update(
    layout: InstallationLayout,
    store: VersionStore | None = None,
    install_info: InstallInfo | None = None,
) -> ApplyResult:
    """
    Activate a staged release if there is one and this install may be swapped.

    The marker is deleted in every outcome except NO_PENDING, so a release
    that cannot be applied is not retried on every run.

    Args:
        layout: Installation layout
        store: Version store (defaults to the layout's state files)
        install_info: Installation method of the running binary (detected if None)

    Returns:
        ApplyResult describing what happened
    """
    store = store or VersionStore.for_layout(layout)

    pending = store.load_pending()
    if pending is None:
        return ApplyResult(ApplyState.NO_PENDING)

    logger.debug(f"{ApplyState.PENDING.name}: v{pending.version} at {pending.path}")
    info = install_info or detect_install_method(layout=layout)

    def reject(reason: str) -> ApplyResult:
        logger.debug(f"{ApplyState.REJECTED.name}: {reason}")
        store.clear_pending()
        return ApplyResult(ApplyState.REJECTED, pending.version, pending.path, reason)

    if not info.supports_auto_update:
        return reject(f"install method '{info.method}' is not self-managed")

    release_dir = Path(pending.path)
    if release_dir.parent.resolve() != layout.versions_dir.resolve() or not release_dir.is_dir():
        return reject(f"{release_dir} is not a release directory of {layout.home}")

    logger.debug(f"{ApplyState.APPLYING.name}: v{pending.version}")
    try:
        # bin/ethos always targets current/bin/ethos; `current` moves last
        refresh_bin_symlink(layout)
        repoint_symlink(layout.current_link, release_dir)
    except SwapError as e:
        return reject(e.message)

    store.clear_pending()
    prune_versions(layout, keep=release_dir)
    logger.info(f"Activated v{pending.version}")
    return ApplyResult(ApplyState.APPLIED, pending.version, pending.path)


def reexec(argv: Sequence[str], layout: InstallationLayout) -> int | None:
    """
    Run the original command again under the newly activated executable.

    The guard variable is set so that the child does not check for updates
    again. Stdio is inherited.

    Args:
        argv: Original command line (argv[0] is replaced)
        layout: Installation layout

    Returns:
        The child's exit code, or None if it could not be started
    """
    env = dict(os.environ)
    env[SKIP_UPDATE_ENV] = "1"
    command = [str(layout.bin_link), *argv[1:]]
    try:
        completed = subprocess.run(command, env=env, check=False)
    except OSError as e:
        logger.debug(f"Could not re-run under the new version: {e}")
        return None
    return completed.returncode
