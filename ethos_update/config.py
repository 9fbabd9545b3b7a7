"""
Configuration file parsing for the updater.

Supports YAML configuration files with a JSON fallback. The first file found
wins; the CLI's own ``config.json`` is read too, ignoring keys that do
not belong to the updater.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any

import yaml

from .common import UpdateError, vlog


CONFIG_ENV = "ETHOS_CONFIG"

# Configuration file locations (in priority order)
CONFIG_LOCATIONS = [
    os.path.expanduser("~/.config/ethos/config.yml"),
    os.path.expanduser("~/.config/ethos/config.yaml"),
    os.path.expanduser("~/.config/ethos/config.json"),
]

DEFAULT_RELEASE_URL = "https://api.github.com/repos/trust-ethos/ethos-cli/releases/latest"


class ConfigError(UpdateError):
    """Raised when an explicitly requested config file cannot be used."""


@dataclass(frozen=True)
class UpdatePreferences:
    """
    Self-update preferences.

    Attributes:
        check: Whether to look for new releases at startup
        auto_update: Whether self-managed installs download updates in the background
        notify: Whether to print "update available" notices
        cache_ttl_seconds: How long a release lookup is trusted
        timeout_seconds: Timeout for release queries and downloads
        max_redirects: Redirects followed when downloading an archive
        release_url: Release index endpoint
    """
    check: bool = True
    auto_update: bool = True
    notify: bool = True
    cache_ttl_seconds: int = 86400
    timeout_seconds: int = 10
    max_redirects: int = 5
    release_url: str = DEFAULT_RELEASE_URL

    def __post_init__(self):
        """Validate preferences after initialization."""
        if self.cache_ttl_seconds < 60 or self.cache_ttl_seconds > 604800:
            raise ValueError(
                f"Invalid cache_ttl_seconds: {self.cache_ttl_seconds}. "
                "Must be between 60 and 604800 (1 minute to 7 days)"
            )

        if self.timeout_seconds < 1 or self.timeout_seconds > 60:
            raise ValueError(
                f"Invalid timeout_seconds: {self.timeout_seconds}. "
                "Must be between 1 and 60"
            )

        if self.max_redirects < 0 or self.max_redirects > 20:
            raise ValueError(
                f"Invalid max_redirects: {self.max_redirects}. "
                "Must be between 0 and 20"
            )

        if not self.release_url.startswith("https://"):
            raise ValueError(f"Invalid release_url: {self.release_url}. Must use https")

    @property
    def cache_ttl_ms(self) -> int:
        return self.cache_ttl_seconds * 1000

    @staticmethod
    def from_dict(data: dict[str, Any]) -> UpdatePreferences:
        """Create UpdatePreferences from dictionary."""
        return UpdatePreferences(
            check=data.get("check", True),
            auto_update=data.get("auto_update", True),
            notify=data.get("notify", True),
            cache_ttl_seconds=data.get("cache_ttl_seconds", 86400),
            timeout_seconds=data.get("timeout_seconds", 10),
            max_redirects=data.get("max_redirects", 5),
            release_url=data.get("release_url", DEFAULT_RELEASE_URL),
        )


@dataclass(frozen=True)
class Config:
    """
    Complete updater configuration.

    Attributes:
        version: Config schema version
        home: Installation root override ("" means $ETHOS_HOME or ~/.ethos)
        update: Self-update preferences
        source: Path to the configuration file that was loaded
    """
    version: int = 1
    home: str = ""
    update: UpdatePreferences = field(default_factory=UpdatePreferences)
    source: str = ""

    def __post_init__(self):
        """Validate config after initialization."""
        if self.version != 1:
            raise ValueError(f"Unsupported config version: {self.version}. Expected version 1")

    @staticmethod
    def from_dict(data: dict[str, Any], source: str = "") -> Config:
        """Create Config from dictionary."""
        update_data = data.get("update") or {}
        if not isinstance(update_data, dict):
            raise TypeError("'update' section must be a mapping")

        return Config(
            version=data.get("version", 1),
            home=data.get("home", "") or "",
            update=UpdatePreferences.from_dict(update_data),
            source=source,
        )


def _load_yaml(file_path: str) -> dict[str, Any] | None:
    """
    Load YAML configuration file.

    Args:
        file_path: Path to YAML file

    Returns:
        Parsed configuration dictionary, or None if file invalid
    """
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except (OSError, yaml.YAMLError):
        return None


def _load_json(file_path: str) -> dict[str, Any] | None:
    """
    Load JSON configuration file.

    Args:
        file_path: Path to JSON file

    Returns:
        Parsed configuration dictionary, or None if file invalid
    """
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)
            return data if isinstance(data, dict) else {}
    except (OSError, json.JSONDecodeError):
        return None


def load_config_file(file_path: str, verbose: bool = False) -> Config | None:
    """
    Load configuration from a single file.

    Args:
        file_path: Path to configuration file (.yml, .yaml or .json)
        verbose: Enable verbose logging

    Returns:
        Config object, or None if file cannot be loaded
    """
    if not os.path.exists(file_path):
        return None

    vlog(f"Loading config from: {file_path}", verbose)

    if file_path.endswith(".json"):
        data = _load_json(file_path)
    else:
        data = _load_yaml(file_path)

    if data is None:
        vlog(f"Invalid config file: {file_path}", verbose)
        return None

    try:
        config = Config.from_dict(data, source=file_path)
        vlog(f"Loaded config successfully: {file_path}", verbose)
        return config
    except (ValueError, TypeError) as e:
        vlog(f"Config validation failed for {file_path}: {e}", verbose)
        return None


def load_config(
    custom_path: str | None = None,
    verbose: bool = False,
) -> Config:
    """
    Load the updater configuration.

    Precedence: custom path, $ETHOS_CONFIG, then CONFIG_LOCATIONS. The first
    loadable file wins.

    Args:
        custom_path: Optional path to custom configuration file
        verbose: Enable verbose logging

    Returns:
        Config object (never None, returns defaults if no config found)

    Raises:
        ConfigError: If custom_path is provided but file cannot be loaded
    """
    if custom_path:
        config = load_config_file(custom_path, verbose)
        if config is None:
            raise ConfigError(
                f"Could not load config from specified path: {custom_path}",
                remediation="Check that the file exists and contains valid YAML or JSON",
            )
        return config

    locations = list(CONFIG_LOCATIONS)
    env_path = os.environ.get(CONFIG_ENV)
    if env_path:
        locations.insert(0, env_path)

    for location in locations:
        config = load_config_file(location, verbose)
        if config is not None:
            vlog(f"Using config at: {location}", verbose)
            return config

    vlog("No config files found, using defaults", verbose)
    return Config()
