"""Source ISO integrity verification.

This module handles:
- Downloading the release's SHA256SUMS manifest and detached signature
- Fetching the Ubuntu signing key into a dedicated keyring (once)
- Checking the manifest signature with gpg
- Checking the ISO's SHA-256 digest against the manifest
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import httpx

from ubuntu_preseed_iso.errors import DownloadError, VerificationError
from ubuntu_preseed_iso.releases.catalog import ResolvedRelease
from ubuntu_preseed_iso.source.fetch import (
    SourceIso,
    compute_file_sha256,
    download_file,
)
from ubuntu_preseed_iso.tools import describe_failure, run_command
from ubuntu_preseed_iso.types import VerificationFailure

logger = logging.getLogger(__name__)

DEFAULT_KEYSERVER = "hkp://keyserver.ubuntu.com"

# Timeout for manifest and signature downloads (seconds)
REQUEST_TIMEOUT = 60


@dataclass
class VerificationArtifacts:
    """On-disk files used to verify a release ISO.

    Attributes:
        manifest_path: Downloaded SHA256SUMS.
        signature_path: Downloaded detached signature of the manifest.
        keyring_path: GPG keyring holding the signing key.
    """

    manifest_path: Path
    signature_path: Path
    keyring_path: Path


def artifact_paths(release: ResolvedRelease, cache_dir: Path) -> VerificationArtifacts:
    """Return where verification files for a release are stored."""
    cache_dir = cache_dir.absolute()
    prefix = release.profile.name.lower()
    return VerificationArtifacts(
        manifest_path=cache_dir / f"{prefix}-{release.profile.checksum_manifest}",
        signature_path=cache_dir / f"{prefix}-{release.profile.checksum_signature}",
        keyring_path=cache_dir / f"{release.profile.gpg_key_id}.keyring",
    )


def fetch_manifest(
    client: httpx.Client,
    release: ResolvedRelease,
    artifacts: VerificationArtifacts,
    timeout: float = REQUEST_TIMEOUT,
) -> None:
    """Download a fresh checksum manifest and its signature.

    The manifest is always re-downloaded: daily images are replaced in
    place, so an older manifest cannot describe today's ISO.

    Raises:
        DownloadError: If either download fails.
    """
    logger.info(
        "Downloading %s & %s files...",
        release.profile.checksum_manifest,
        release.profile.checksum_signature,
    )
    download_file(client, release.manifest_url, artifacts.manifest_path, timeout=timeout)
    download_file(client, release.signature_url, artifacts.signature_path, timeout=timeout)


def ensure_keyring(
    keyring_path: Path,
    key_id: str,
    keyserver: str = DEFAULT_KEYSERVER,
) -> bool:
    """Make sure the keyring holding the signing key exists.

    Args:
        keyring_path: Keyring file to create or reuse.
        key_id: Fingerprint of the signing key.
        keyserver: Keyserver to fetch the key from.

    Returns:
        True if the key was fetched, False if an existing keyring was reused.

    Raises:
        DownloadError: If the key cannot be fetched.
    """
    if keyring_path.is_file():
        logger.info("Using existing Ubuntu signing key saved in %s", keyring_path)
        return False

    logger.info("Downloading and saving Ubuntu signing key...")
    keyring_path.parent.mkdir(parents=True, exist_ok=True)
    cmd = [
        "gpg",
        "-q",
        "--no-default-keyring",
        "--keyring",
        str(keyring_path),
        "--keyserver",
        keyserver,
        "--recv-keys",
        key_id,
    ]
    try:
        result = run_command(cmd)
    except OSError as e:
        raise DownloadError(f"Failed to run gpg: {e}", code="execution_error") from e

    if result.returncode != 0:
        # A keyring without the key must not be reused
        keyring_path.unlink(missing_ok=True)
        raise DownloadError(
            f"Could not fetch signing key {key_id} from {keyserver}: "
            f"{describe_failure(result)}",
            code="keyserver_error",
        )

    logger.info("Downloaded and saved to %s", keyring_path)
    return True


def verify_signature(artifacts: VerificationArtifacts) -> None:
    """Check the manifest's detached signature against the keyring.

    Raises:
        VerificationError: If gpg rejects the signature for any reason.
    """
    cmd = [
        "gpg",
        "-q",
        "--no-default-keyring",
        "--keyring",
        str(artifacts.keyring_path),
        "--verify",
        str(artifacts.signature_path),
        str(artifacts.manifest_path),
    ]
    try:
        result = run_command(cmd)
    except OSError as e:
        raise VerificationError(
            VerificationFailure.SIGNATURE, f"Failed to run gpg: {e}"
        ) from e
    finally:
        artifacts.keyring_path.with_name(artifacts.keyring_path.name + "~").unlink(
            missing_ok=True
        )

    if result.returncode != 0:
        logger.debug("gpg --verify: %s", describe_failure(result))
        raise VerificationError(
            VerificationFailure.SIGNATURE,
            f"Verification of {artifacts.manifest_path.name} signature failed.",
        )


def verify_digest(iso_path: Path, manifest_path: Path) -> str:
    """Check that the ISO's SHA-256 digest is listed in the manifest.

    Args:
        iso_path: ISO file to hash.
        manifest_path: Verified SHA256SUMS file.

    Returns:
        The ISO's hex digest.

    Raises:
        VerificationError: If the digest does not appear in the manifest.
    """
    digest = compute_file_sha256(iso_path)
    manifest = manifest_path.read_text(encoding="utf-8", errors="replace")
    if digest not in manifest.lower():
        raise VerificationError(
            VerificationFailure.DIGEST,
            f"Verification of ISO digest failed: {digest} is not listed in "
            f"{manifest_path.name}.",
        )
    return digest


def verify_source_iso(
    client: httpx.Client,
    source: SourceIso,
    release: ResolvedRelease,
    cache_dir: Path,
    keyserver: str = DEFAULT_KEYSERVER,
    timeout: float = REQUEST_TIMEOUT,
) -> VerificationArtifacts:
    """Verify a source ISO's authenticity and integrity.

    Args:
        client: HTTPX client instance.
        source: ISO to verify.
        release: Resolved release the ISO belongs to.
        cache_dir: Directory holding the manifest and keyring.
        keyserver: Keyserver for the signing key.
        timeout: Timeout for the manifest downloads.

    Returns:
        The verification artifacts, left on disk for reuse.

    Raises:
        DownloadError: If the manifest or key cannot be fetched.
        VerificationError: If the signature or digest check fails.
    """
    if not source.downloaded:
        logger.warning(
            "Automatic GPG verification is enabled. If the source ISO file is "
            "not the latest daily image, verification will fail!"
        )

    artifacts = artifact_paths(release, cache_dir)
    fetch_manifest(client, release, artifacts, timeout=timeout)
    ensure_keyring(artifacts.keyring_path, release.profile.gpg_key_id, keyserver)

    logger.info("Verifying %s integrity and authenticity...", source.path)
    verify_signature(artifacts)
    verify_digest(source.path, artifacts.manifest_path)
    logger.info("Verification succeeded.")
    return artifacts


__all__ = [
    "DEFAULT_KEYSERVER",
    "VerificationArtifacts",
    "artifact_paths",
    "ensure_keyring",
    "fetch_manifest",
    "verify_digest",
    "verify_signature",
    "verify_source_iso",
]
