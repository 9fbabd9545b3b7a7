"""
Startup hook run before any ethos command.

1. Activate a staged release and re-run the command under it.
2. Otherwise check for a newer release (cached) and either start a
   background download (self-managed installs) or print a notice.

Nothing here may fail the command the user actually ran.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Sequence

from . import __version__
from .applier import apply_pending_update, reexec
from .checker import UpdateInfo, check_for_update
from .common import is_update_check_disabled
from .config import Config, load_config
from .fetcher import spawn_background_fetch
from .install_method import InstallInfo, detect_install_method
from .layout import HOME_ENV, InstallationLayout
from .release_source import ReleaseSource
from .state_store import VersionStore

logger = logging.getLogger(__name__)

MANUAL_UPDATE_COMMAND = "ethos update"


def resolve_layout(config: Config) -> InstallationLayout:
    """Installation root: $ETHOS_HOME, then the config's ``home``, then ~/.ethos."""
    return InstallationLayout.from_env(os.environ.get(HOME_ENV) or config.home or None)


def notice(message: str) -> None:
    """Print a user-facing updater message to stderr."""
    print(message, file=sys.stderr)


def format_update_available(info: UpdateInfo) -> str:
    return f"Update available: v{info.current_version} → v{info.latest_version}"


def run_startup(
    argv: Sequence[str] | None = None,
    *,
    layout: InstallationLayout | None = None,
    config: Config | None = None,
    store: VersionStore | None = None,
    source: ReleaseSource | None = None,
    install_info: InstallInfo | None = None,
    current_version: str = __version__,
    check: bool = True,
) -> UpdateInfo | None:
    """
    Apply a pending update or look for a new one.

    Exits the process (with the re-run command's exit code) only when a
    staged release was activated.

    Args:
        argv: Original command line (defaults to sys.argv)
        layout: Installation layout (resolved from config/environment if None)
        config: Updater configuration (loaded if None)
        store: Version store (defaults to the layout's state files)
        source: Release index client (built from config if None)
        install_info: Installation method (detected if None)
        current_version: Version of the running CLI
        check: Whether to look for a new release after the apply step

    Returns:
        UpdateInfo from the check, or None if no check ran
    """
    if is_update_check_disabled():
        return None

    argv = list(sys.argv if argv is None else argv)
    config = config or load_config()
    layout = layout or resolve_layout(config)
    store = store or VersionStore.for_layout(layout)
    info = install_info or detect_install_method(layout=layout)

    try:
        result = apply_pending_update(layout, store, info)
    except OSError as e:
        logger.debug(f"Pending update check failed: {e}")
        result = None

    if result is not None and result.applied:
        notice(f"Updated to v{result.version}")
        code = reexec(argv, layout)
        # Swap is complete even when the re-run could not start
        sys.exit(code if code is not None else 0)

    if not check or not config.update.check:
        return None

    try:
        return _check_and_stage(config, layout, store, source, info, current_version)
    except Exception as e:
        logger.debug(f"Update check failed: {e}")
        return None


def _check_and_stage(
    config: Config,
    layout: InstallationLayout,
    store: VersionStore,
    source: ReleaseSource | None,
    info: InstallInfo,
    current_version: str,
) -> UpdateInfo:
    prefs = config.update
    source = source or ReleaseSource(prefs.release_url, timeout=prefs.timeout_seconds)

    update = check_for_update(store, source, current_version, ttl_ms=prefs.cache_ttl_ms)
    if not update.update_available:
        return update

    if info.supports_auto_update and update.download_url and prefs.auto_update:
        spawn_background_fetch(update.download_url, update.latest_version, layout, store)
        return update

    if info.method == "dev" or not prefs.notify:
        return update

    command = MANUAL_UPDATE_COMMAND if info.supports_auto_update else info.update_command
    notice("")
    notice(format_update_available(update))
    notice(f"Run: {command}")
    notice("")
    return update
