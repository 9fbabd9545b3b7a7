"""
ethos self-update subsystem.

Core Modules:
- Layout and State: installation tree, version cache, pending-update marker
- Discovery: release lookup, version comparison, install-method detection
- Staging: detached background download and extraction
- Activation: atomic symlink swap, pruning and re-exec at startup
"""

__version__ = "0.4.0"
__author__ = "Ethos CLI Contributors"

# Version info for backward compatibility
VERSION = __version__

# Layout and State
from .layout import InstallationLayout
from .state_store import (
    StateStore,
    FileStateStore,
    VersionStore,
    VersionCache,
    PendingUpdate,
    is_cache_valid,
)

# Discovery
from .versioning import compare_versions, is_newer
from .release_source import (
    Release,
    ReleaseAsset,
    ReleaseSource,
    ReleaseError,
    get_platform_target,
)
from .checker import UpdateInfo, check_for_update
from .install_method import InstallInfo, detect_install_method

# Staging
from .fetcher import DownloadError, ExtractError, run_fetch, spawn_background_fetch

# Activation
from .applier import ApplyResult, ApplyState, SwapError, apply_pending_update, reexec
from .hook import run_startup

# Foundation
from .common import UpdateError
from .config import Config, ConfigError, UpdatePreferences, load_config
from .logging_config import setup_logging, get_logger

__all__ = [
    # Version
    "__version__",
    "VERSION",
    # Layout and State
    "InstallationLayout",
    "StateStore",
    "FileStateStore",
    "VersionStore",
    "VersionCache",
    "PendingUpdate",
    "is_cache_valid",
    # Discovery
    "compare_versions",
    "is_newer",
    "Release",
    "ReleaseAsset",
    "ReleaseSource",
    "ReleaseError",
    "get_platform_target",
    "UpdateInfo",
    "check_for_update",
    "InstallInfo",
    "detect_install_method",
    # Staging
    "DownloadError",
    "ExtractError",
    "run_fetch",
    "spawn_background_fetch",
    # Activation
    "ApplyResult",
    "ApplyState",
    "SwapError",
    "apply_pending_update",
    "reexec",
    "run_startup",
    # Foundation
    "UpdateError",
    "Config",
    "ConfigError",
    "UpdatePreferences",
    "load_config",
    # Logging
    "setup_logging",
    "get_logger",
]
