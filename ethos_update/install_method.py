"""
Installation method detection.

Classifies how the running binary was installed from its path alone:
- curl: self-managed tree under ETHOS_HOME (auto-update supported)
- dev: running from a source checkout through the Python interpreter
- homebrew / npm: owned by a package manager
- unknown: anything else
"""

from __future__ import annotations

from dataclasses import dataclass

from .common import get_executable_path
from .layout import InstallationLayout


DEV_MARKERS = ("python",)
HOMEBREW_MARKERS = ("/homebrew/", "/linuxbrew/", "/Cellar/")
NPM_MARKERS = ("node_modules", "npm", "npx")

# Editable installs from a source tree update through git instead
SOURCE_CHECKOUT_COMMAND = "git pull && pip install -e ."

UPDATE_COMMANDS = {
    "curl": "Updates automatically",
    "dev": "pip install --upgrade ethos-update",
    "homebrew": "brew upgrade ethos",
    "npm": "npm update -g @trust-ethos/cli",
    "unknown": "Visit https://github.com/trust-ethos/ethos-cli for update instructions",
}


@dataclass(frozen=True)
class InstallInfo:
    """
    How the running binary was installed.

    Attributes:
        method: One of curl, homebrew, npm, dev, unknown
        supports_auto_update: Whether the updater may replace the binary itself
        update_command: What the user should run to update
        executable: Path that was classified
    """
    method: str
    supports_auto_update: bool
    update_command: str
    executable: str = ""

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "method": self.method,
            "supports_auto_update": self.supports_auto_update,
            "update_command": self.update_command,
            "executable": self.executable,
        }


def _info(method: str, executable: str) -> InstallInfo:
    return InstallInfo(
        method=method,
        supports_auto_update=method == "curl",
        update_command=UPDATE_COMMANDS[method],
        executable=executable,
    )


def detect_install_method(
    executable: str | None = None,
    layout: InstallationLayout | None = None,
) -> InstallInfo:
    """
    Classify the installation method of the running executable.

    Detection priority (first match wins):
    1. Inside the self-managed root -> curl
    2. Interpreter in path -> dev
    3. Homebrew prefix/cellar in path -> homebrew
    4. Node package manager in path -> npm
    5. Otherwise -> unknown

    The self-managed check runs first because a path under ETHOS_HOME may
    still contain one of the other markers.

    Args:
        executable: Path to classify (defaults to the running executable)
        layout: Installation layout (defaults to ETHOS_HOME)

    Returns:
        InstallInfo for the executable
    """
    executable = executable or get_executable_path()
    layout = layout or InstallationLayout.from_env()

    if layout.contains(executable):
        return _info("curl", executable)

    if any(marker in executable for marker in DEV_MARKERS):
        return _info("dev", executable)

    if any(marker in executable for marker in HOMEBREW_MARKERS):
        return _info("homebrew", executable)

    if any(marker in executable for marker in NPM_MARKERS):
        return _info("npm", executable)

    return _info("unknown", executable)
