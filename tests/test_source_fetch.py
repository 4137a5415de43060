"""Tests for source ISO acquisition.

These tests use mocked HTTP responses; no network access is needed.
"""

import hashlib

import httpx
import pytest
import respx

from ubuntu_preseed_iso.errors import DownloadError
from ubuntu_preseed_iso.releases.catalog import resolve_release
from ubuntu_preseed_iso.source.fetch import (
    DownloadResult,
    SourceIso,
    compute_file_sha256,
    default_iso_path,
    download_file,
    resolve_source_iso,
)


class TestComputeFileSha256:
    """Tests for compute_file_sha256 function."""

    def test_compute_checksum(self, tmp_path):
        """Should compute correct SHA256 checksum."""
        test_file = tmp_path / "test.bin"
        content = b"test content for hashing"
        test_file.write_bytes(content)

        assert compute_file_sha256(test_file) == hashlib.sha256(content).hexdigest()

    def test_small_chunks(self, tmp_path):
        """Chunk size must not change the digest."""
        test_file = tmp_path / "test.bin"
        content = bytes(range(256)) * 10
        test_file.write_bytes(content)

        assert compute_file_sha256(test_file, chunk_size=7) == (
            hashlib.sha256(content).hexdigest()
        )


class TestDownloadFile:
    """Tests for download_file function."""

    @respx.mock
    def test_successful_download(self, tmp_path):
        """Should download file and compute checksum."""
        content = b"fake iso content"
        respx.get("https://example.com/test.iso").mock(
            return_value=httpx.Response(200, content=content)
        )

        dest = tmp_path / "test.iso"
        with httpx.Client() as client:
            result = download_file(client, "https://example.com/test.iso", dest)

        assert isinstance(result, DownloadResult)
        assert result.path == dest
        assert result.size_bytes == len(content)
        assert result.checksum == hashlib.sha256(content).hexdigest()
        assert dest.read_bytes() == content
        assert not (tmp_path / "test.iso.part").exists()

    @respx.mock
    def test_creates_parent_dirs(self, tmp_path):
        """Should create the destination directory."""
        respx.get("https://example.com/test.iso").mock(
            return_value=httpx.Response(200, content=b"data")
        )

        dest = tmp_path / "a" / "b" / "test.iso"
        with httpx.Client() as client:
            download_file(client, "https://example.com/test.iso", dest)

        assert dest.exists()

    @respx.mock
    def test_http_error(self, tmp_path):
        """Should raise DownloadError on HTTP error."""
        respx.get("https://example.com/missing.iso").mock(
            return_value=httpx.Response(404)
        )

        dest = tmp_path / "missing.iso"
        with httpx.Client() as client:
            with pytest.raises(DownloadError) as exc_info:
                download_file(client, "https://example.com/missing.iso", dest)

        assert exc_info.value.code == "http_error"
        assert "404" in exc_info.value.message
        assert not dest.exists()

    @respx.mock
    def test_network_error(self, tmp_path):
        """Should raise DownloadError on connection failures."""
        respx.get("https://example.com/test.iso").mock(
            side_effect=httpx.ConnectError("connection refused")
        )

        with httpx.Client() as client:
            with pytest.raises(DownloadError) as exc_info:
                download_file(client, "https://example.com/test.iso", tmp_path / "t.iso")

        assert exc_info.value.code == "network_error"

    @respx.mock
    def test_timeout(self, tmp_path):
        """Should raise DownloadError with a timeout code."""
        respx.get("https://example.com/test.iso").mock(
            side_effect=httpx.ReadTimeout("too slow")
        )

        with httpx.Client() as client:
            with pytest.raises(DownloadError) as exc_info:
                download_file(client, "https://example.com/test.iso", tmp_path / "t.iso")

        assert exc_info.value.code == "timeout"

    @respx.mock
    def test_failed_download_keeps_previous_file(self, tmp_path):
        """A failed download must not clobber an existing file."""
        respx.get("https://example.com/SHA256SUMS").mock(
            return_value=httpx.Response(500)
        )

        dest = tmp_path / "SHA256SUMS"
        dest.write_text("old manifest")
        with httpx.Client() as client:
            with pytest.raises(DownloadError):
                download_file(client, "https://example.com/SHA256SUMS", dest)

        assert dest.read_text() == "old manifest"
        assert not (tmp_path / "SHA256SUMS.part").exists()


class TestResolveSourceIso:
    """Tests for resolve_source_iso function."""

    def test_explicit_existing_path(self, tmp_path):
        """An existing --source file is used without any network access."""
        iso = tmp_path / "my.iso"
        iso.write_bytes(b"iso")
        release = resolve_release("JAMMY")

        with httpx.Client() as client:
            source = resolve_source_iso(client, release, tmp_path / "cache", explicit_path=iso)

        assert source == SourceIso(path=iso.absolute(), downloaded=False)

    def test_reuses_cached_default(self, tmp_path):
        """The cached release ISO is reused."""
        release = resolve_release("JAMMY")
        cached = default_iso_path(release, tmp_path)
        cached.write_bytes(b"cached iso")

        with httpx.Client() as client:
            source = resolve_source_iso(client, release, tmp_path)

        assert source.path == cached
        assert source.downloaded is False

    @respx.mock
    def test_downloads_missing_default(self, tmp_path):
        """The release ISO is downloaded when no cached copy exists."""
        release = resolve_release("FOCAL", prefer_arm=True)
        route = respx.get(release.download_url).mock(
            return_value=httpx.Response(200, content=b"arm iso")
        )

        with httpx.Client() as client:
            source = resolve_source_iso(client, release, tmp_path)

        assert route.called
        assert source.downloaded is True
        assert source.path == (tmp_path / "focal-original-ARM.iso").absolute()
        assert source.path.read_bytes() == b"arm iso"

    @respx.mock
    def test_missing_explicit_path_falls_back(self, tmp_path, caplog):
        """A missing --source path falls back to the release default."""
        release = resolve_release("JAMMY")
        respx.get(release.download_url).mock(
            return_value=httpx.Response(200, content=b"jammy iso")
        )

        with httpx.Client() as client, caplog.at_level("WARNING"):
            source = resolve_source_iso(
                client, release, tmp_path, explicit_path=tmp_path / "nope.iso"
            )

        assert source.path == default_iso_path(release, tmp_path)
        assert source.downloaded is True
        assert "does not exist" in caplog.text

    @respx.mock
    def test_download_failure_leaves_no_iso(self, tmp_path):
        """A failed download leaves nothing under the default path."""
        release = resolve_release("JAMMY")
        respx.get(release.download_url).mock(return_value=httpx.Response(503))

        with httpx.Client() as client:
            with pytest.raises(DownloadError):
                resolve_source_iso(client, release, tmp_path)

        assert not default_iso_path(release, tmp_path).exists()
