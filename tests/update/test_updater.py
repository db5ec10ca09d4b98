"""Tests for the version guard, installers and the update sequence."""

import logging
import subprocess
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from update.downloader import DownloadError, PackageDownloader
from update.guard import VersionGuard
from update.installer import CommandInstaller, InstallError, LoggingInstaller
from update.updater import Updater


def package_file(tmp_path, size=150_000):
    path = tmp_path / "update-1.apk"
    path.write_bytes(b"x" * size)
    return path


class TestVersionGuard:
    """Tests for VersionGuard."""

    def test_claims_new_version_once(self):
        """Test that a version is claimed only once."""
        guard = VersionGuard("2.0")

        assert guard.claim("2.1")
        assert not guard.claim("2.1")
        assert guard.last_handled == "2.1"

    def test_running_version_rejected(self):
        """Test that the running version is never downloaded."""
        assert not VersionGuard("2.0").claim("2.0")

    def test_empty_version_rejected(self):
        """Test that a blank version is ignored."""
        assert not VersionGuard("2.0").claim("")

    def test_release_allows_retry(self):
        """Test that a released version can be claimed again."""
        guard = VersionGuard("2.0")
        guard.claim("2.1")
        guard.release("2.1")

        assert guard.last_handled is None
        assert guard.claim("2.1")


class TestUpdater:
    """Tests for Updater.handle."""

    def test_successful_update(self, tmp_path):
        """Test download followed by a single install."""
        path = package_file(tmp_path)
        downloader = Mock()
        downloader.download.return_value = path
        installer = Mock()
        remote_log = Mock()

        updater = Updater(VersionGuard("2.0"), downloader, installer, remote_log=remote_log)
        result = updater.handle("2.1", "https://example.com/kds.apk")

        assert result == path
        downloader.download.assert_called_once_with("https://example.com/kds.apk")
        installer.install.assert_called_once_with(path, "2.1")
        assert remote_log.call_count == 3

    def test_duplicate_notification_ignored(self, tmp_path):
        """Test that the same version is downloaded once."""
        downloader = Mock()
        downloader.download.return_value = package_file(tmp_path)
        installer = Mock()
        updater = Updater(VersionGuard("2.0"), downloader, installer)

        updater.handle("2.1", "https://example.com/kds.apk")
        assert updater.handle("2.1", "https://example.com/kds.apk") is None

        downloader.download.assert_called_once()
        installer.install.assert_called_once()

    def test_running_version_skipped(self):
        """Test that the running version triggers nothing."""
        downloader = Mock()
        updater = Updater(VersionGuard("2.0"), downloader, Mock())

        assert updater.handle("2.0", "https://example.com/kds.apk") is None
        downloader.download.assert_not_called()

    def test_missing_url_skipped(self):
        """Test that a version without URL triggers nothing and claims nothing."""
        guard = VersionGuard("2.0")
        updater = Updater(guard, Mock(), Mock())

        assert updater.handle("2.1", "") is None
        assert guard.last_handled is None

    def test_download_failure_clears_guard(self):
        """Test that a failed download allows a later retry and installs nothing."""
        guard = VersionGuard("2.0")
        downloader = Mock()
        downloader.download.side_effect = DownloadError("Download failed: HTTP 404")
        installer = Mock()
        updater = Updater(guard, downloader, installer)

        assert updater.handle("2.1", "https://example.com/kds.apk") is None

        installer.install.assert_not_called()
        assert guard.last_handled is None

    def test_install_failure_keeps_guard(self, tmp_path):
        """Test that an installer rejection does not retrigger the download."""
        guard = VersionGuard("2.0")
        downloader = Mock()
        downloader.download.return_value = package_file(tmp_path)
        installer = Mock()
        installer.install.side_effect = InstallError("rejected")
        updater = Updater(guard, downloader, installer)

        assert updater.handle("2.1", "https://example.com/kds.apk") is None
        assert guard.last_handled == "2.1"

    def test_remote_log_failure_ignored(self, tmp_path):
        """Test that the best-effort remote log never breaks the update."""
        downloader = Mock()
        downloader.download.return_value = package_file(tmp_path)
        updater = Updater(VersionGuard("2.0"), downloader, Mock(), remote_log=Mock(side_effect=RuntimeError("x")))

        assert updater.handle("2.1", "https://example.com/kds.apk") is not None

    def test_redirected_download_end_to_end(self, tmp_path):
        """Test three redirects and a 150,000-byte body with the real downloader."""
        responses = [
            Mock(status_code=302, headers={"Location": f"https://cdn.example.com/{i}"}) for i in range(3)
        ]
        final = Mock(status_code=200, headers={})
        final.iter_content.return_value = iter([b"x" * 75_000, b"x" * 75_000])
        session = Mock()
        session.get.side_effect = responses + [final]
        installer = Mock()

        updater = Updater(VersionGuard("2.0"), PackageDownloader(tmp_path, session=session), installer)
        path = updater.handle("2.1", "https://example.com/kds.apk")

        assert path.stat().st_size == 150_000
        installer.install.assert_called_once_with(path, "2.1")

    def test_not_found_end_to_end(self, tmp_path):
        """Test that a 404 hands nothing off and clears the guard."""
        session = Mock()
        session.get.return_value = Mock(status_code=404, headers={})
        guard = VersionGuard("2.0")
        installer = Mock()

        updater = Updater(guard, PackageDownloader(tmp_path, session=session), installer)

        assert updater.handle("2.1", "https://example.com/kds.apk") is None
        installer.install.assert_not_called()
        assert guard.last_handled is None

    def test_unwritable_update_dir_clears_guard(self, tmp_path):
        """Test that a local write failure allows a later retry."""
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("x")
        final = Mock(status_code=200, headers={})
        final.iter_content.return_value = iter([b"x" * 150_000])
        session = Mock()
        session.get.return_value = final
        guard = VersionGuard("2.0")
        installer = Mock()

        updater = Updater(guard, PackageDownloader(blocker / "updates", session=session), installer)

        assert updater.handle("2.1", "https://example.com/kds.apk") is None
        installer.install.assert_not_called()
        assert guard.last_handled is None


class TestInstallers:
    """Tests for installer implementations."""

    def test_logging_installer(self, tmp_path, caplog):
        """Test that the logging installer records the package path."""
        with caplog.at_level(logging.INFO):
            LoggingInstaller().install(tmp_path / "update.apk", "2.1")

        assert "update.apk" in caplog.text

    @patch("update.installer.subprocess.run")
    def test_command_installer_substitutes_path(self, mock_run):
        """Test that {path} is replaced in the command template."""
        mock_run.return_value = subprocess.CompletedProcess(args=[], returncode=0, stdout="Success", stderr="")

        CommandInstaller("adb install -r {path}").install(Path("/tmp/update-1.apk"), "2.1")

        assert mock_run.call_args.args[0] == ["adb", "install", "-r", "/tmp/update-1.apk"]

    @patch("update.installer.subprocess.run")
    def test_command_installer_nonzero_exit(self, mock_run):
        """Test that a failing command raises InstallError."""
        mock_run.return_value = subprocess.CompletedProcess(args=[], returncode=1, stdout="", stderr="INSTALL_FAILED")

        with pytest.raises(InstallError, match="INSTALL_FAILED"):
            CommandInstaller("adb install -r {path}").install(Path("/tmp/x.apk"), "2.1")

    @patch("update.installer.subprocess.run")
    def test_command_installer_missing_binary(self, mock_run):
        """Test that a missing installer binary raises InstallError."""
        mock_run.side_effect = FileNotFoundError("adb")

        with pytest.raises(InstallError):
            CommandInstaller("adb install {path}").install(Path("/tmp/x.apk"), "2.1")
