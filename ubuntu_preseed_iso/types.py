"""Shared type definitions for ubuntu_preseed_iso.

This module contains enums shared across subpackages to avoid circular
imports.
"""

from enum import Enum


class Architecture(str, Enum):
    """CPU architecture of a release image."""

    X86 = "X86"
    ARM = "ARM"


class RepackStrategy(str, Enum):
    """Recipe used to turn the modified tree back into a bootable ISO."""

    SIMPLE_HYBRID = "simple-hybrid"
    MBR_EFI_PARTITION_SPLIT = "mbr-efi-partition-split"
    MINIMAL = "minimal"


class VerificationFailure(str, Enum):
    """Which integrity check rejected the source ISO."""

    SIGNATURE = "signature"
    DIGEST = "digest"


__all__ = [
    "Architecture",
    "RepackStrategy",
    "VerificationFailure",
]
