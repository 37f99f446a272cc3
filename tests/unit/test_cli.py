"""
Unit tests for the nodeswitch command line.

Backends are replaced with mocks so no fnm or nvm installation is needed.
"""

from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest

from nodeswitch import cli
from nodeswitch.backends import BackendKind
from nodeswitch.cache import load_cache
from nodeswitch.exceptions import VersionNotFoundError
from nodeswitch.models import (
    AppUpdate,
    BackendDetection,
    DetectionStatus,
    InstalledVersion,
    InstallPhase,
    InstallProgress,
    NodeVersion,
    ReleaseLine,
    ReleaseSchedule,
    RemoteVersion,
)
from nodeswitch.write_queue import shutdown_writers


@pytest.fixture
def provider(mocker, temp_data_dir):
    """A detected provider returned by every create_backend() call."""
    backend = MagicMock()
    backend.name = "fnm"
    backend.DISPLAY_NAME = "fnm (Fast Node Manager)"
    backend.detect = AsyncMock(
        return_value=BackendDetection(DetectionStatus.FOUND, path="/opt/fnm", version="1.37.1")
    )
    backend.detect_in_wsl = AsyncMock(
        return_value=BackendDetection(
            DetectionStatus.FOUND_IN_WSL, path="/home/me/fnm", distro="Ubuntu"
        )
    )
    backend.bind.return_value = backend
    mocker.patch("nodeswitch.cli.create_backend", return_value=backend)
    return backend


@pytest.mark.unit
class TestQueries:
    """Tests for read-only commands."""

    def test_list(self, provider, capsys):
        provider.list_installed = AsyncMock(
            return_value=[
                InstalledVersion(NodeVersion(18, 19, 0)),
                InstalledVersion(NodeVersion(20, 11, 0), is_default=True),
            ]
        )

        assert cli.main(["list"]) == 0

        out = capsys.readouterr().out.splitlines()
        assert out == ["Node 20.x", "  v20.11.0 (default)", "Node 18.x", "  v18.19.0"]

    def test_list_empty(self, provider, capsys):
        provider.list_installed = AsyncMock(return_value=[])
        assert cli.main(["list"]) == 0
        assert "No Node versions installed" in capsys.readouterr().out

    def test_list_remote_caches(self, provider, capsys, temp_data_dir):
        """A full remote listing is shown per major and saved to the cache."""
        provider.list_remote = AsyncMock(
            return_value=[
                RemoteVersion(NodeVersion(20, 11, 0), lts_codename="Iron", is_lts=True),
                RemoteVersion(NodeVersion(20, 10, 0), lts_codename="Iron", is_lts=True),
                RemoteVersion(NodeVersion(21, 6, 1)),
            ]
        )

        assert cli.main(["list-remote", "--limit", "1"]) == 0

        assert capsys.readouterr().out.splitlines() == ["Node 21.x: v21.6.1"]
        shutdown_writers()
        cached = load_cache()
        assert cached.backend == "fnm"
        assert len(cached.remote_versions) == 3

    def test_current(self, provider, capsys):
        provider.current_version = AsyncMock(return_value=None)
        provider.default_version = AsyncMock(return_value=NodeVersion(20, 11, 0))

        assert cli.main(["current"]) == 0
        assert capsys.readouterr().out.splitlines() == ["current: none", "default: v20.11.0"]

    def test_detect(self, provider, capsys):
        assert cli.main(["detect"]) == 0
        out = capsys.readouterr().out
        assert "fnm (Fast Node Manager): /opt/fnm" in out
        assert "version:  1.37.1" in out


@pytest.mark.unit
class TestMutations:
    """Tests for commands that change state."""

    def test_install_prints_progress(self, provider, capsys):
        async def install(version):
            yield InstallProgress(InstallPhase.DOWNLOADING, percent=42.0)
            yield InstallProgress(
                InstallPhase.DONE,
                percent=100.0,
                installed=InstalledVersion(NodeVersion(20, 11, 0)),
            )

        provider.install = install

        assert cli.main(["install", "20.11.0"]) == 0
        assert capsys.readouterr().out.splitlines() == ["[downloading] 42%", "Installed v20.11.0"]

    def test_default_missing_version(self, provider, capsys):
        """Domain errors print a message and exit 1."""
        provider.set_active = AsyncMock(side_effect=VersionNotFoundError("v16.0.0", "fnm"))

        assert cli.main(["default", "16.0.0"]) == 1

        assert "error: [fnm] Version not found: v16.0.0" in capsys.readouterr().err
        provider.set_active.assert_awaited_once_with(NodeVersion(16, 0, 0))

    def test_invalid_version_argument(self, provider, capsys):
        assert cli.main(["uninstall", "20.x"]) == 1
        assert "Expected X.Y.Z format" in capsys.readouterr().err


@pytest.mark.unit
class TestGlobalOptions:
    """Tests for --backend, --wsl and backend resolution."""

    def test_backend_override(self, provider):
        provider.list_installed = AsyncMock(return_value=[])
        cli.main(["--backend", "nvm", "list"])
        assert cli.create_backend.call_args[0][0] is BackendKind.NVM

    def test_wsl_uses_distro_detection(self, provider):
        provider.list_installed = AsyncMock(return_value=[])

        assert cli.main(["--wsl", "Ubuntu", "list"]) == 0

        provider.detect_in_wsl.assert_awaited_once_with("Ubuntu")
        provider.detect.assert_not_called()

    def test_backend_not_installed(self, provider, capsys):
        provider.detect = AsyncMock(return_value=BackendDetection.not_found())

        assert cli.main(["list"]) == 1
        assert "fnm (Fast Node Manager) is not installed" in capsys.readouterr().err

    def test_version_flag(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--version"])
        assert exc_info.value.code == 0
        assert "nodeswitch" in capsys.readouterr().out


@pytest.mark.unit
class TestShellInit:
    """shell-init uses the real fnm backend; no process is spawned."""

    def test_bash(self, temp_data_dir, capsys):
        assert cli.main(["shell-init", "bash"]) == 0
        assert capsys.readouterr().out.strip() == 'eval "$(fnm env --use-on-cd --resolve-engines)"'

    def test_unsupported_shell(self, temp_data_dir, capsys):
        assert cli.main(["shell-init", "tcsh"]) == 1


@pytest.mark.unit
class TestNetworkCommands:
    """check-update and schedule with the network layer patched out."""

    def test_check_update(self, provider, mocker, capsys):
        mocker.patch(
            "nodeswitch.cli.check_for_app_update",
            AsyncMock(
                return_value=AppUpdate(
                    current_version="0.1.0",
                    latest_version="0.2.0",
                    release_url="https://example.invalid/v0.2.0",
                )
            ),
        )
        provider.check_for_update = AsyncMock(return_value=None)

        assert cli.main(["check-update"]) == 0

        out = capsys.readouterr().out.splitlines()
        assert out == [
            "nodeswitch 0.2.0 is available: https://example.invalid/v0.2.0",
            "fnm 1.37.1 is up to date",
        ]
        assert provider.check_for_update.await_args[0][1] == "1.37.1"

    def test_schedule_skips_end_of_life(self, provider, mocker, capsys, temp_data_dir):
        schedule = ReleaseSchedule(
            lines={
                16: ReleaseLine(major=16, start=date(2021, 4, 20), end=date(2023, 9, 11)),
                98: ReleaseLine(
                    major=98,
                    start=date(2000, 1, 1),
                    lts=date(2000, 6, 1),
                    end=date(2999, 1, 1),
                    codename="Far",
                ),
                99: ReleaseLine(major=99, start=date(2000, 1, 1), end=date(2999, 1, 1)),
            }
        )
        mocker.patch("nodeswitch.cli.fetch_release_schedule", AsyncMock(return_value=schedule))

        assert cli.main(["schedule"]) == 0

        assert capsys.readouterr().out.splitlines() == [
            "Node 99: current, end of life 2999-01-01",
            "Node 98 (Far): LTS, end of life 2999-01-01",
        ]
        shutdown_writers()
        assert load_cache().release_schedule.lines[98].codename == "Far"
