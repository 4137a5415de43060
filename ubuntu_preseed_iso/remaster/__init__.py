"""Remastering module.

This module handles:
- Scratch workspace lifecycle and signal-safe cleanup
- Extracting the source ISO
- Injecting the preseed file and automated-install boot parameters
- Repackaging the tree with a release-specific xorriso recipe
"""

from ubuntu_preseed_iso.remaster.extract import extract_iso
from ubuntu_preseed_iso.remaster.inject import inject_preseed
from ubuntu_preseed_iso.remaster.repack import default_volume_id, repackage_iso
from ubuntu_preseed_iso.remaster.workspace import ScratchWorkspace

__all__ = [
    "ScratchWorkspace",
    "default_volume_id",
    "extract_iso",
    "inject_preseed",
    "repackage_iso",
]
