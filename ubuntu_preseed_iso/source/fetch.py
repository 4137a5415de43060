"""Source ISO acquisition.

This module handles:
- Streaming downloads with on-the-fly SHA-256 computation
- Resolving which local ISO file the pipeline works from
- Downloading the release ISO when no cached copy exists
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path

import httpx

from ubuntu_preseed_iso.errors import DownloadError
from ubuntu_preseed_iso.releases.catalog import ResolvedRelease

logger = logging.getLogger(__name__)

# Timeout for ISO downloads (seconds)
DOWNLOAD_TIMEOUT = 3600

# Chunk size for downloads and hashing (bytes)
DOWNLOAD_CHUNK_SIZE = 1024 * 1024  # 1 MiB


@dataclass
class DownloadResult:
    """Result of a file download."""

    path: Path
    checksum: str
    size_bytes: int


@dataclass
class SourceIso:
    """The ISO the pipeline will remaster.

    Attributes:
        path: Absolute path to the ISO file.
        downloaded: True when the file was downloaded during this run.
    """

    path: Path
    downloaded: bool = False


def compute_file_sha256(file_path: Path, chunk_size: int = DOWNLOAD_CHUNK_SIZE) -> str:
    """Compute SHA256 checksum of a file.

    Args:
        file_path: Path to the file.
        chunk_size: Size of chunks to read.

    Returns:
        SHA256 hex digest.
    """
    sha256 = hashlib.sha256()
    with file_path.open("rb") as f:
        while chunk := f.read(chunk_size):
            sha256.update(chunk)
    return sha256.hexdigest()


def download_file(
    client: httpx.Client,
    url: str,
    dest_path: Path,
    timeout: float | None = DOWNLOAD_TIMEOUT,
    chunk_size: int = DOWNLOAD_CHUNK_SIZE,
) -> DownloadResult:
    """Download a file, replacing ``dest_path`` only once it is complete.

    The body is streamed to ``<dest_path>.part`` and renamed into place
    after the last chunk, so an interrupted transfer never leaves a
    truncated file under the final name.

    Args:
        client: HTTPX client instance.
        url: URL to download from.
        dest_path: Destination path for the downloaded file.
        timeout: Download timeout in seconds.
        chunk_size: Size of chunks to download.

    Returns:
        DownloadResult with path, checksum, and size.

    Raises:
        DownloadError: If download fails.
    """
    logger.debug("Downloading %s to %s", url, dest_path)
    part_path = dest_path.with_name(dest_path.name + ".part")

    try:
        with client.stream("GET", url, timeout=timeout) as response:
            response.raise_for_status()

            total_bytes = 0
            sha256 = hashlib.sha256()

            dest_path.parent.mkdir(parents=True, exist_ok=True)

            with part_path.open("wb") as f:
                for chunk in response.iter_bytes(chunk_size):
                    f.write(chunk)
                    sha256.update(chunk)
                    total_bytes += len(chunk)

        part_path.replace(dest_path)

    except httpx.HTTPStatusError as e:
        raise DownloadError(
            f"HTTP error downloading {url}: {e.response.status_code} {e.response.reason_phrase}",
            code="http_error",
        ) from e
    except httpx.TimeoutException as e:
        raise DownloadError(
            f"Timeout downloading {url}",
            code="timeout",
        ) from e
    except httpx.RequestError as e:
        raise DownloadError(
            f"Network error downloading {url}: {e}",
            code="network_error",
        ) from e
    except OSError as e:
        raise DownloadError(
            f"Could not write {dest_path}: {e}",
            code="os_error",
        ) from e
    finally:
        part_path.unlink(missing_ok=True)

    checksum = sha256.hexdigest()
    logger.debug(
        "Downloaded %s (%d bytes, checksum: %s)",
        dest_path.name,
        total_bytes,
        checksum[:16] + "...",
    )
    return DownloadResult(path=dest_path, checksum=checksum, size_bytes=total_bytes)


def default_iso_path(release: ResolvedRelease, cache_dir: Path) -> Path:
    """Return where the release ISO is cached when no source is given."""
    return (cache_dir / release.iso_filename).absolute()


def resolve_source_iso(
    client: httpx.Client,
    release: ResolvedRelease,
    cache_dir: Path,
    explicit_path: Path | None = None,
    timeout: float | None = DOWNLOAD_TIMEOUT,
) -> SourceIso:
    """Find or download the ISO to remaster.

    An explicit, existing path is used unchanged. Otherwise the release's
    cached ISO is reused if present, or downloaded from the catalog URL.

    Args:
        client: HTTPX client instance.
        release: Resolved release and architecture.
        cache_dir: Directory holding cached ISOs.
        explicit_path: ISO path given on the command line, if any.
        timeout: Download timeout in seconds.

    Returns:
        SourceIso describing the local file.

    Raises:
        DownloadError: If the download fails.
    """
    if explicit_path is not None:
        if explicit_path.is_file():
            logger.info("Using existing %s file.", explicit_path)
            return SourceIso(path=explicit_path.absolute())
        logger.warning(
            "Source ISO %s does not exist; falling back to the %s default",
            explicit_path,
            release.profile.name,
        )

    iso_path = default_iso_path(release, cache_dir)
    if iso_path.is_file():
        logger.info("Using existing %s file.", iso_path)
        return SourceIso(path=iso_path)

    logger.info(
        "Downloading ISO image for %s (%s)",
        release.profile.name,
        release.architecture.value,
    )
    download_file(client, release.download_url, iso_path, timeout=timeout)
    logger.info("Downloaded and saved to %s", iso_path)
    return SourceIso(path=iso_path, downloaded=True)


__all__ = [
    "DOWNLOAD_CHUNK_SIZE",
    "DownloadResult",
    "SourceIso",
    "compute_file_sha256",
    "default_iso_path",
    "download_file",
    "resolve_source_iso",
]
