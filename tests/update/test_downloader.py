"""Tests for package download and verification."""

from unittest.mock import Mock

import pytest
import requests

from update.downloader import DownloadError, PackageDownloader


def redirect(location, status_code=302):
    return Mock(status_code=status_code, headers={"Location": location})


def payload(size, status_code=200, chunk=50_000):
    response = Mock(status_code=status_code, headers={})
    chunks = [b"x" * min(chunk, size - offset) for offset in range(0, size, chunk)]
    response.iter_content.return_value = iter(chunks)
    return response


def make_session(*responses):
    session = Mock()
    session.get.side_effect = list(responses)
    return session


class TestPackageDownloader:
    """Tests for PackageDownloader.download."""

    def test_follows_redirects(self, tmp_path):
        """Test three redirects ending in a 150,000-byte package."""
        session = make_session(
            redirect("https://cdn.example.com/a"),
            redirect("/b", status_code=301),
            redirect("https://objects.example.com/kds.apk", status_code=307),
            payload(150_000),
        )

        path = PackageDownloader(tmp_path, session=session).download("https://example.com/releases/kds.apk")

        assert path.stat().st_size == 150_000
        assert path.parent == tmp_path
        assert path.suffix == ".apk"

        urls = [call.args[0] for call in session.get.call_args_list]
        assert urls == [
            "https://example.com/releases/kds.apk",
            "https://cdn.example.com/a",
            "https://cdn.example.com/b",
            "https://objects.example.com/kds.apk",
        ]
        for call in session.get.call_args_list:
            assert call.kwargs["allow_redirects"] is False
            assert call.kwargs["stream"] is True

    def test_too_many_redirects(self, tmp_path):
        """Test that redirect loops are bounded."""
        session = make_session(*[redirect(f"https://example.com/{i}") for i in range(10)])

        with pytest.raises(DownloadError, match="Too many redirects"):
            PackageDownloader(tmp_path, session=session, max_redirects=5).download("https://example.com/start")

        assert session.get.call_count == 6

    def test_redirect_without_location(self, tmp_path):
        """Test that a redirect without a target fails."""
        session = make_session(Mock(status_code=302, headers={}))

        with pytest.raises(DownloadError, match="Location"):
            PackageDownloader(tmp_path, session=session).download("https://example.com/kds.apk")

    def test_http_error(self, tmp_path):
        """Test that a 404 fails without writing a file."""
        session = make_session(Mock(status_code=404, headers={}))

        with pytest.raises(DownloadError, match="404"):
            PackageDownloader(tmp_path, session=session).download("https://example.com/kds.apk")

        assert list(tmp_path.iterdir()) == []

    def test_too_small_file_removed(self, tmp_path):
        """Test that an implausibly small package is deleted."""
        session = make_session(payload(99_999))

        with pytest.raises(DownloadError, match="too small"):
            PackageDownloader(tmp_path, session=session).download("https://example.com/kds.apk")

        assert list(tmp_path.iterdir()) == []

    def test_minimum_size_accepted(self, tmp_path):
        """Test that exactly the minimum size passes."""
        session = make_session(payload(100_000))

        path = PackageDownloader(tmp_path, session=session).download("https://example.com/kds.apk")

        assert path.stat().st_size == 100_000

    def test_transport_failure(self, tmp_path):
        """Test that a connection error becomes DownloadError."""
        session = Mock()
        session.get.side_effect = requests.exceptions.ConnectionError("offline")

        with pytest.raises(DownloadError, match="offline"):
            PackageDownloader(tmp_path, session=session).download("https://example.com/kds.apk")

    def test_interrupted_body_removed(self, tmp_path):
        """Test that a failed body read leaves no partial file."""
        response = Mock(status_code=200, headers={})

        def broken_body(chunk_size):
            yield b"x" * 1000
            raise requests.exceptions.ChunkedEncodingError("reset")

        response.iter_content.side_effect = broken_body
        session = make_session(response)

        with pytest.raises(DownloadError, match="interrupted"):
            PackageDownloader(tmp_path, session=session).download("https://example.com/kds.apk")

        assert list(tmp_path.iterdir()) == []

    def test_unwritable_destination(self, tmp_path):
        """Test that a destination that cannot be created fails cleanly."""
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("x")
        session = make_session(payload(150_000))

        with pytest.raises(DownloadError, match="Cannot write package"):
            PackageDownloader(blocker / "updates", session=session).download("https://example.com/kds.apk")

    def test_write_failure_removes_partial_file(self, tmp_path):
        """Test that a local write error leaves no partial file."""
        response = Mock(status_code=200, headers={})

        def disk_full(chunk_size):
            yield b"x" * 1000
            raise OSError(28, "No space left on device")

        response.iter_content.side_effect = disk_full
        session = make_session(response)

        with pytest.raises(DownloadError, match="No space left"):
            PackageDownloader(tmp_path, session=session).download("https://example.com/kds.apk")

        assert list(tmp_path.iterdir()) == []
        response.close.assert_called_once()

    def test_creates_destination(self, tmp_path):
        """Test that a missing destination directory is created."""
        dest = tmp_path / "updates"
        session = make_session(payload(120_000))

        path = PackageDownloader(dest, session=session).download("https://example.com/kds.apk")

        assert path.parent == dest
