"""Source ISO module.

This module handles:
- Resolving or downloading the stock release ISO
- Verifying it against the signed SHA256SUMS manifest
"""

from ubuntu_preseed_iso.source.fetch import (
    SourceIso,
    compute_file_sha256,
    download_file,
    resolve_source_iso,
)
from ubuntu_preseed_iso.source.verify import (
    VerificationArtifacts,
    verify_source_iso,
)

__all__ = [
    "SourceIso",
    "VerificationArtifacts",
    "compute_file_sha256",
    "download_file",
    "resolve_source_iso",
    "verify_source_iso",
]
