"""
Tests for the startup hook (ethos_update/hook.py).
"""

from unittest.mock import MagicMock, patch

import pytest

from ethos_update.common import now_ms
from ethos_update.config import Config, UpdatePreferences
from ethos_update.hook import resolve_layout, run_startup
from ethos_update.install_method import InstallInfo, UPDATE_COMMANDS
from ethos_update.release_source import Release, ReleaseAsset, ReleaseSource
from ethos_update.state_store import PENDING_KEY, PendingUpdate, VersionCache

from conftest import activate, make_release_dir

URL = "https://example.com/dl/ethos-linux-x64.tar.gz"
CURL = InstallInfo("curl", True, UPDATE_COMMANDS["curl"])
NPM = InstallInfo("npm", False, UPDATE_COMMANDS["npm"])
DEV = InstallInfo("dev", False, UPDATE_COMMANDS["dev"])


def fake_source(version="3.0.0"):
    source = ReleaseSource(platform_target="linux-x64")
    release = Release(f"v{version}", version, (ReleaseAsset("ethos-linux-x64.tar.gz", URL),))
    source.fetch_latest = MagicMock(return_value=release)
    return source


@pytest.fixture
def startup(layout, version_store):
    """Call run_startup with test doubles for everything but the flow."""
    def _run(install_info=CURL, config=None, source=None, argv=("ethos", "status"), **kwargs):
        return run_startup(
            list(argv),
            layout=layout,
            config=config or Config(),
            store=version_store,
            source=source or fake_source(),
            install_info=install_info,
            current_version="2.5.0",
            **kwargs,
        )
    return _run


class TestGuard:
    """Tests for the re-entry guard."""

    @pytest.mark.parametrize("value", ["1", "true", "YES", "on"])
    def test_guard_disables_everything(self, startup, layout, version_store, monkeypatch, value):
        """Test the guard variable skips both apply and check."""
        monkeypatch.setenv("ETHOS_SKIP_UPDATE_CHECK", value)
        release = make_release_dir(layout, "3.0.0")
        version_store.save_pending(PendingUpdate("3.0.0", str(release)))
        source = fake_source()

        assert startup(source=source) is None

        source.fetch_latest.assert_not_called()
        assert version_store.load_pending() is not None

    def test_guard_falsy_value(self, startup, monkeypatch):
        """Test a falsy guard value does not disable the updater."""
        monkeypatch.setenv("ETHOS_SKIP_UPDATE_CHECK", "0")
        with patch("ethos_update.hook.spawn_background_fetch"):
            assert startup() is not None


class TestApplyOnStartup:
    """Tests for the apply-and-re-exec path."""

    @patch("ethos_update.hook.reexec", return_value=7)
    def test_applied_reexecs(self, mock_reexec, startup, layout, version_store, capsys):
        """Test an activated release re-runs the command and exits with its code."""
        activate(layout, make_release_dir(layout, "2.5.0"))
        release = make_release_dir(layout, "3.0.0")
        version_store.save_pending(PendingUpdate("3.0.0", str(release)))

        with pytest.raises(SystemExit) as exc:
            startup(argv=("ethos", "status", "--json"))

        assert exc.value.code == 7
        mock_reexec.assert_called_once_with(["ethos", "status", "--json"], layout)
        assert "Updated to v3.0.0" in capsys.readouterr().err

    @patch("ethos_update.hook.reexec", return_value=None)
    def test_reexec_failure_exits_zero(self, mock_reexec, startup, layout, version_store):
        """Test a re-run that cannot start still ends the process successfully."""
        release = make_release_dir(layout, "3.0.0")
        version_store.save_pending(PendingUpdate("3.0.0", str(release)))

        with pytest.raises(SystemExit) as exc:
            startup()
        assert exc.value.code == 0

    @patch("ethos_update.hook.reexec")
    def test_rejected_continues(self, mock_reexec, startup, layout, version_store, memory_store):
        """Test a package-manager install drops the marker and carries on."""
        release = make_release_dir(layout, "3.0.0")
        version_store.save_pending(PendingUpdate("3.0.0", str(release)))

        info = startup(install_info=NPM)

        mock_reexec.assert_not_called()
        assert PENDING_KEY not in memory_store.documents
        assert info.update_available is True


class TestCheckOnStartup:
    """Tests for the check-and-stage path."""

    @patch("ethos_update.hook.spawn_background_fetch")
    def test_self_managed_spawns_fetch(self, mock_spawn, startup, layout, version_store, capsys):
        """Test a curl install starts a background download silently."""
        info = startup()

        assert info.update_available is True
        mock_spawn.assert_called_once_with(URL, "3.0.0", layout, version_store)
        assert capsys.readouterr().err == ""

    @patch("ethos_update.hook.spawn_background_fetch")
    def test_package_manager_notice(self, mock_spawn, startup, capsys):
        """Test an npm install is told how to update."""
        startup(install_info=NPM)

        mock_spawn.assert_not_called()
        err = capsys.readouterr().err
        assert "Update available: v2.5.0 → v3.0.0" in err
        assert "Run: npm update -g @trust-ethos/cli" in err

    @patch("ethos_update.hook.spawn_background_fetch")
    def test_dev_install_silent(self, mock_spawn, startup, capsys):
        """Test a development install gets no notice."""
        startup(install_info=DEV)

        mock_spawn.assert_not_called()
        assert capsys.readouterr().err == ""

    @patch("ethos_update.hook.spawn_background_fetch")
    def test_curl_without_asset_notice(self, mock_spawn, startup, capsys):
        """Test a curl install with no platform archive is pointed at ethos update."""
        source = ReleaseSource(platform_target="linux-x64")
        source.fetch_latest = MagicMock(return_value=Release("v3.0.0", "3.0.0", ()))

        startup(source=source)

        mock_spawn.assert_not_called()
        assert "Run: ethos update" in capsys.readouterr().err

    @patch("ethos_update.hook.spawn_background_fetch")
    def test_auto_update_disabled(self, mock_spawn, startup, capsys):
        """Test auto_update: false falls back to a notice."""
        config = Config(update=UpdatePreferences(auto_update=False))

        startup(config=config)

        mock_spawn.assert_not_called()
        assert "Update available" in capsys.readouterr().err

    @patch("ethos_update.hook.spawn_background_fetch")
    def test_notify_disabled(self, mock_spawn, startup, capsys):
        """Test notify: false suppresses the notice."""
        startup(install_info=NPM, config=Config(update=UpdatePreferences(notify=False)))
        assert capsys.readouterr().err == ""

    def test_check_disabled_in_config(self, startup):
        """Test check: false skips the lookup."""
        source = fake_source()
        assert startup(source=source, config=Config(update=UpdatePreferences(check=False))) is None
        source.fetch_latest.assert_not_called()

    def test_check_argument_false(self, startup):
        """Test callers can run only the apply step."""
        source = fake_source()
        assert startup(source=source, check=False) is None
        source.fetch_latest.assert_not_called()

    @patch("ethos_update.hook.spawn_background_fetch")
    def test_up_to_date(self, mock_spawn, startup, version_store, capsys):
        """Test nothing happens when already on the latest version."""
        version_store.save_cache(VersionCache("2.5.0", now_ms()))

        info = startup()

        assert info.update_available is False
        mock_spawn.assert_not_called()
        assert capsys.readouterr().err == ""

    @patch("ethos_update.hook.check_for_update", side_effect=RuntimeError("boom"))
    def test_errors_swallowed(self, mock_check, startup):
        """Test a failing check never fails the command."""
        assert startup() is None


class TestResolveLayout:
    """Tests for resolve_layout."""

    def test_environment_wins(self, tmp_path, monkeypatch):
        """Test ETHOS_HOME takes priority over the config."""
        monkeypatch.setenv("ETHOS_HOME", str(tmp_path / "env"))
        layout = resolve_layout(Config(home=str(tmp_path / "cfg")))
        assert layout.home == tmp_path / "env"

    def test_config_home(self, tmp_path):
        """Test the config's home is used without ETHOS_HOME."""
        layout = resolve_layout(Config(home=str(tmp_path / "cfg")))
        assert layout.home == tmp_path / "cfg"
