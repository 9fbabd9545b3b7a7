"""
Common utilities shared across ethos_update modules.
"""

from __future__ import annotations

import os
import sys
import time


# Guard variable: set on re-exec and on the fetch worker so they never re-enter the updater
SKIP_UPDATE_ENV = "ETHOS_SKIP_UPDATE_CHECK"
DEBUG_ENV = "ETHOS_DEBUG"

_TRUTHY = {"1", "true", "yes", "on"}


class UpdateError(Exception):
    """
    Base exception for self-update failures.

    These never reach the user: each component catches them at its edge and
    degrades to "no update".

    Attributes:
        message: Human-readable error message
        remediation: Suggested fix for the error
    """
    def __init__(self, message: str, remediation: str | None = None):
        self.message = message
        self.remediation = remediation
        super().__init__(message)


def is_truthy(value: str | None) -> bool:
    """Return True for the usual truthy environment spellings."""
    return (value or "").strip().lower() in _TRUTHY


def is_update_check_disabled() -> bool:
    """Check whether the guard variable disables the updater for this process."""
    return is_truthy(os.environ.get(SKIP_UPDATE_ENV))


def is_debug_enabled() -> bool:
    return os.environ.get(DEBUG_ENV, "0") == "1"


def get_executable_path() -> str:
    """
    Absolute path of the running executable.

    For a frozen build this is the ethos binary itself; otherwise it is the
    Python interpreter running the package.
    """
    return os.path.abspath(sys.executable or sys.argv[0])


def now_ms() -> int:
    """Current time in milliseconds since the epoch (the on-disk cache unit)."""
    return int(time.time() * 1000)


def vlog(msg: str, verbose: bool = False) -> None:
    """
    Log a verbose message through the package logger.

    Args:
        msg: Message to log
        verbose: Whether verbose mode is enabled
    """
    if verbose or is_debug_enabled():
        from .logging_config import get_logger
        get_logger().info(msg)
