"""
Tests for the installation layout (ethos_update/layout.py).
"""

import os
from pathlib import Path

import pytest

from ethos_update.common import is_truthy, is_update_check_disabled
from ethos_update.layout import InstallationLayout


class TestInstallationLayout:
    """Tests for InstallationLayout paths."""

    def test_paths(self, tmp_path):
        """Test the directory convention under ETHOS_HOME."""
        layout = InstallationLayout(home=tmp_path, binary_name="ethos")
        assert layout.versions_dir == tmp_path / "versions"
        assert layout.current_link == tmp_path / "current"
        assert layout.bin_link == tmp_path / "bin" / "ethos"
        assert layout.current_executable == tmp_path / "current" / "bin" / "ethos"
        assert layout.cache_file == tmp_path / "updates" / "version-cache.json"
        assert layout.pending_file == tmp_path / "updates" / "pending.json"

    def test_version_dir_prefix(self, tmp_path):
        """Test release directories are named v<version> either way."""
        layout = InstallationLayout(home=tmp_path)
        assert layout.version_dir("1.2.3") == tmp_path / "versions" / "v1.2.3"
        assert layout.version_dir("v1.2.3") == tmp_path / "versions" / "v1.2.3"

    def test_per_process_paths(self, tmp_path):
        """Test archive and staging paths are distinct per owner."""
        layout = InstallationLayout(home=tmp_path)
        assert layout.archive_path("1.0.0", owner=1) != layout.archive_path("1.0.0", owner=2)
        assert layout.staging_dir("1.0.0", 42).name == ".v1.0.0.partial-42"
        assert layout.staging_dir("1.0.0", 42).parent == layout.versions_dir

    def test_from_env_default(self, monkeypatch, tmp_path):
        """Test ~/.ethos is used without ETHOS_HOME."""
        monkeypatch.setenv("HOME", str(tmp_path))
        assert InstallationLayout.from_env().home == tmp_path / ".ethos"

    def test_from_env_variable(self, monkeypatch, tmp_path):
        """Test ETHOS_HOME overrides the default."""
        monkeypatch.setenv("ETHOS_HOME", str(tmp_path / "custom"))
        assert InstallationLayout.from_env().home == tmp_path / "custom"

    def test_from_env_explicit(self, monkeypatch, tmp_path):
        """Test an explicit root beats ETHOS_HOME and is made absolute."""
        monkeypatch.setenv("ETHOS_HOME", str(tmp_path / "custom"))
        monkeypatch.chdir(tmp_path)
        layout = InstallationLayout.from_env("relative")
        assert layout.home == Path(os.path.abspath(tmp_path / "relative"))

    def test_contains(self, tmp_path):
        """Test literal and resolved paths inside the root."""
        real_home = tmp_path / "real"
        (real_home / "bin").mkdir(parents=True)
        os.symlink(real_home, tmp_path / "alias")
        layout = InstallationLayout(home=tmp_path / "alias")

        assert layout.contains(tmp_path / "alias" / "bin" / "ethos")
        assert layout.contains(real_home / "bin" / "ethos")
        assert not layout.contains(tmp_path / "aliased" / "ethos")
        assert not layout.contains("/usr/local/bin/ethos")


class TestGuardVariable:
    """Tests for the re-entry guard helpers."""

    @pytest.mark.parametrize("value, expected", [
        ("1", True), ("true", True), ("Yes", True), (" on ", True),
        ("0", False), ("", False), ("false", False), (None, False),
    ])
    def test_is_truthy(self, value, expected):
        """Test accepted truthy spellings."""
        assert is_truthy(value) is expected

    def test_guard_from_environment(self, monkeypatch):
        """Test the guard is read from ETHOS_SKIP_UPDATE_CHECK."""
        assert is_update_check_disabled() is False
        monkeypatch.setenv("ETHOS_SKIP_UPDATE_CHECK", "1")
        assert is_update_check_disabled() is True
