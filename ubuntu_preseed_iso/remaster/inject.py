"""Preseed injection into an extracted ISO tree.

This module handles:
- Rewriting GRUB (UEFI) boot entries to load the injected seed file with
  automated-install kernel parameters
- Replacing the isolinux (BIOS) text menu on releases that have one
- Copying the preseed file into the tree
- Regenerating md5sum.txt for the edited boot configuration

Only these files are touched. md5sum.txt lists just the GRUB configs, not
the whole tree; casper re-checks every listed file at boot.
"""

from __future__ import annotations

import hashlib
import logging
import shutil
from pathlib import Path

from ubuntu_preseed_iso.errors import InvalidArgumentsError, PatchNotAppliedError
from ubuntu_preseed_iso.releases.models import (
    AUTOMATED_INSTALL_PARAMETERS,
    PRESEED_SEED_PATH,
    GrubPatch,
    ReleaseProfile,
)

logger = logging.getLogger(__name__)

HASH_MANIFEST = "md5sum.txt"

ISOLINUX_MENU = f"""default live-install
label live-install
menu label ^Install Ubuntu
kernel /casper/vmlinuz
append  file=/cdrom/{PRESEED_SEED_PATH} auto=true priority=critical boot=casper automatic-ubiquity initrd=/casper/initrd quiet splash noprompt noshell ---
"""


def patch_grub_config(
    tree: Path,
    patch: GrubPatch,
    replacement: str = AUTOMATED_INSTALL_PARAMETERS,
) -> int:
    """Replace the stock kernel parameters in one GRUB config.

    Running this on an already patched file is a no-op.

    Args:
        tree: Extracted ISO root.
        patch: Config path and stock parameter text.
        replacement: Parameters to substitute.

    Returns:
        Number of lines rewritten (0 if the file was already patched).

    Raises:
        PatchNotAppliedError: If the file is missing or contains neither the
            stock nor the replacement parameters.
    """
    config_path = tree / patch.path
    try:
        content = config_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise PatchNotAppliedError(patch.path, patch.stock_parameters) from None

    count = content.count(patch.stock_parameters)
    if count == 0:
        if replacement in content:
            logger.debug("%s already carries the preseed parameters", patch.path)
            return 0
        raise PatchNotAppliedError(patch.path, patch.stock_parameters)

    config_path.write_text(
        content.replace(patch.stock_parameters, replacement), encoding="utf-8"
    )
    logger.debug("Rewrote %d boot parameter line(s) in %s", count, patch.path)
    return count


def write_isolinux_menu(tree: Path, menu_path: str) -> Path:
    """Replace the isolinux text menu with a single unattended entry."""
    path = tree / menu_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(ISOLINUX_MENU, encoding="utf-8")
    return path


def install_preseed(tree: Path, preseed_file: Path) -> Path:
    """Copy the preseed file to its boot-time location in the tree.

    Raises:
        InvalidArgumentsError: If the preseed file cannot be read.
    """
    dest = tree / PRESEED_SEED_PATH
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(preseed_file, dest)
    except OSError as e:
        raise InvalidArgumentsError(
            f"Could not copy preseed file {preseed_file}: {e}"
        ) from e
    return dest


def compute_file_md5(file_path: Path, chunk_size: int = 64 * 1024) -> str:
    """Compute MD5 hex digest of a file."""
    md5 = hashlib.md5()
    with file_path.open("rb") as f:
        while chunk := f.read(chunk_size):
            md5.update(chunk)
    return md5.hexdigest()


def write_hash_manifest(tree: Path, relative_paths: list[str]) -> Path:
    """Write md5sum.txt covering exactly ``relative_paths``.

    Lines use the ``<md5>  ./<path>`` format of the stock manifest.
    """
    lines = [
        f"{compute_file_md5(tree / rel)}  ./{rel}\n" for rel in relative_paths
    ]
    manifest = tree / HASH_MANIFEST
    manifest.write_text("".join(lines), encoding="utf-8")
    return manifest


def inject_preseed(tree: Path, preseed_file: Path, profile: ReleaseProfile) -> None:
    """Make an extracted tree install unattended from ``preseed_file``.

    Args:
        tree: Extracted ISO root.
        preseed_file: Preseed configuration to embed.
        profile: Release whose boot configuration is being patched.

    Raises:
        PatchNotAppliedError: If a stock boot entry was not found.
        InvalidArgumentsError: If the preseed file cannot be read.
    """
    logger.info("Adding preseed parameters to kernel command line...")
    for patch in profile.grub_patches:
        patch_grub_config(tree, patch)

    if profile.isolinux_menu:
        write_isolinux_menu(tree, profile.isolinux_menu)
        logger.info("Added parameters to UEFI and BIOS kernel command lines.")
    else:
        logger.info("Added parameters to UEFI kernel command lines.")

    logger.info("Adding preseed configuration file...")
    install_preseed(tree, preseed_file)
    logger.info("Added preseed file")

    logger.info("Updating %s with hashes of modified files...", tree / HASH_MANIFEST)
    write_hash_manifest(tree, [patch.path for patch in profile.grub_patches])
    logger.info("Updated hashes.")


__all__ = [
    "HASH_MANIFEST",
    "ISOLINUX_MENU",
    "compute_file_md5",
    "inject_preseed",
    "install_preseed",
    "patch_grub_config",
    "write_hash_manifest",
    "write_isolinux_menu",
]
