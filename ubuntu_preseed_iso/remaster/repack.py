"""Repackaging of the edited tree into a bootable ISO.

Each release needs a different xorriso recipe:

- simple-hybrid: isolinux El Torito image plus the tree's EFI image, with
  the system isolinux MBR template (20.04).
- mbr-efi-partition-split: the MBR boot code and the EFI system partition
  are carved out of the source ISO and re-attached as a GPT partition with
  its own boot catalog entry (21.10).
- minimal: plain Rock Ridge image; the tree already carries its boot
  metadata (22.04).
"""

from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import dataclass
from datetime import date
from pathlib import Path

from ubuntu_preseed_iso.errors import RepackagingError
from ubuntu_preseed_iso.releases.models import ReleaseProfile
from ubuntu_preseed_iso.tools import describe_failure, find_tool, run_command
from ubuntu_preseed_iso.types import RepackStrategy

logger = logging.getLogger(__name__)

SECTOR_SIZE = 512

# Boot code area of the MBR, before the partition table
MBR_TEMPLATE_SIZE = 446

# fdisk names the EFI partition of an Ubuntu hybrid ISO "<image>.iso2"
EFI_PARTITION_SUFFIX = ".iso2"

COPY_CHUNK_SIZE = 1024 * 1024


@dataclass
class PartitionExtent:
    """Location of a partition inside a disk image, in 512-byte sectors."""

    start_sector: int
    sector_count: int

    @property
    def offset(self) -> int:
        return self.start_sector * SECTOR_SIZE

    @property
    def size_bytes(self) -> int:
        return self.sector_count * SECTOR_SIZE


@dataclass
class BootImages:
    """Boot blobs carved out of the source ISO."""

    mbr_path: Path
    efi_path: Path


def default_volume_id(today: date | None = None) -> str:
    """Return the ISO volume label, e.g. ``ubuntu-preseed-2022-04-21``."""
    return f"ubuntu-preseed-{(today or date.today()).isoformat()}"


def compose_simple_hybrid_command(
    volume_id: str, destination: Path, isohybrid_mbr: Path
) -> list[str]:
    return [
        "xorriso", "-as", "mkisofs",
        "-r",
        "-V", volume_id,
        "-J",
        "-b", "isolinux/isolinux.bin",
        "-c", "isolinux/boot.cat",
        "-no-emul-boot",
        "-boot-load-size", "4",
        "-isohybrid-mbr", str(isohybrid_mbr),
        "-boot-info-table",
        "-input-charset", "utf-8",
        "-eltorito-alt-boot",
        "-e", "boot/grub/efi.img",
        "-no-emul-boot",
        "-isohybrid-gpt-basdat",
        "-o", str(destination),
        ".",
    ]  # fmt: skip


def compose_partition_split_command(
    volume_id: str, destination: Path, boot_images: BootImages
) -> list[str]:
    return [
        "xorriso", "-as", "mkisofs",
        "-r",
        "-V", volume_id,
        "-iso-level", "3",
        "-partition_offset", "16",
        "--grub2-mbr", str(boot_images.mbr_path),
        "--mbr-force-bootable",
        "-append_partition", "2", "0xEF", str(boot_images.efi_path),
        "-appended_part_as_gpt",
        "-c", "/boot.catalog",
        "-b", "/boot/grub/i386-pc/eltorito.img",
        "-no-emul-boot",
        "-boot-load-size", "4",
        "-boot-info-table",
        "--grub2-boot-info",
        "-eltorito-alt-boot",
        "-e", "--interval:appended_partition_2:all::",
        "-no-emul-boot",
        "-o", str(destination),
        ".",
    ]  # fmt: skip


def compose_minimal_command(volume_id: str, destination: Path) -> list[str]:
    return ["xorriso", "-as", "mkisofs", "-r", "-V", volume_id, "-o", str(destination), "."]


_FDISK_ROW = re.compile(
    r"^(?P<device>\S.*?)\s+(?:\*\s+)?(?P<start>\d+)\s+(?P<end>\d+)\s+(?P<sectors>\d+)\s+"
    r"(?P<rest>.*)$"
)


def parse_fdisk_partition(
    fdisk_output: str, suffix: str = EFI_PARTITION_SUFFIX
) -> PartitionExtent:
    """Find the EFI system partition's extent in ``fdisk -l`` output.

    The row whose device name ends in ``suffix`` wins. fdisk derives device
    names from the image filename, so when none matches the first row typed
    as EFI (``EFI System`` on GPT, ``ef`` on DOS labels) is used instead.

    Args:
        fdisk_output: Output of ``fdisk -l <image>``.
        suffix: Device name suffix identifying the partition.

    Returns:
        The partition's start sector and sector count.

    Raises:
        RepackagingError: If no matching partition row exists.
    """
    by_type: PartitionExtent | None = None
    for line in fdisk_output.splitlines():
        match = _FDISK_ROW.match(line.strip())
        if not match:
            continue
        extent = PartitionExtent(
            start_sector=int(match.group("start")),
            sector_count=int(match.group("sectors")),
        )
        if match.group("device").endswith(suffix):
            return extent
        if by_type is None and "EFI" in match.group("rest"):
            by_type = extent
    if by_type is not None:
        return by_type
    raise RepackagingError(
        f"No EFI partition (or partition ending in {suffix!r}) in the source ISO "
        "partition table",
        code="efi_partition_not_found",
    )


def read_efi_partition(iso_path: Path) -> PartitionExtent:
    """Locate the EFI system partition of a hybrid ISO with fdisk."""
    try:
        result = run_command([find_tool("fdisk") or "fdisk", "-l", str(iso_path)])
    except OSError as e:
        raise RepackagingError(f"Failed to run fdisk: {e}", code="execution_error") from e
    if result.returncode != 0:
        raise RepackagingError(
            f"Could not read the partition table of {iso_path}: {describe_failure(result)}",
            code="fdisk_error",
        )
    return parse_fdisk_partition(result.stdout)


def copy_byte_range(
    source: Path,
    dest: Path,
    offset: int,
    length: int,
    chunk_size: int = COPY_CHUNK_SIZE,
) -> int:
    """Copy ``length`` bytes starting at ``offset`` from one file to another.

    Returns:
        Number of bytes copied (less than ``length`` if the source is short).
    """
    copied = 0
    with source.open("rb") as src, dest.open("wb") as dst:
        src.seek(offset)
        while copied < length:
            chunk = src.read(min(chunk_size, length - copied))
            if not chunk:
                break
            dst.write(chunk)
            copied += len(chunk)
    return copied


def extract_boot_images(iso_path: Path, work_dir: Path, name: str) -> BootImages:
    """Carve the MBR template and EFI partition image out of a source ISO.

    Args:
        iso_path: Original release ISO.
        work_dir: Directory for the blobs (outside the tree being packed).
        name: Base filename for the blobs.

    Returns:
        Paths to the MBR template and EFI image.

    Raises:
        RepackagingError: If the partition table cannot be read or the ISO
            is shorter than the partition it declares.
    """
    boot_images = BootImages(
        mbr_path=work_dir / f"{name}.mbr",
        efi_path=work_dir / f"{name}.efi",
    )
    extent = read_efi_partition(iso_path)
    logger.debug(
        "EFI partition of %s: start sector %d, %d sectors",
        iso_path.name,
        extent.start_sector,
        extent.sector_count,
    )

    try:
        copy_byte_range(iso_path, boot_images.mbr_path, 0, MBR_TEMPLATE_SIZE)
        copied = copy_byte_range(
            iso_path, boot_images.efi_path, extent.offset, extent.size_bytes
        )
    except OSError as e:
        raise RepackagingError(
            f"Failed to extract boot images from {iso_path}: {e}", code="os_error"
        ) from e

    if copied != extent.size_bytes:
        raise RepackagingError(
            f"{iso_path} ends inside its EFI partition "
            f"({copied} of {extent.size_bytes} bytes)",
            code="truncated_image",
        )
    return boot_images


def compose_repack_command(
    profile: ReleaseProfile,
    destination: Path,
    volume_id: str,
    source_iso: Path,
    work_dir: Path,
    isohybrid_mbr: Path,
) -> list[str]:
    """Compose the xorriso command for a release's repack strategy."""
    strategy = profile.repack_strategy
    if strategy is RepackStrategy.SIMPLE_HYBRID:
        return compose_simple_hybrid_command(volume_id, destination, isohybrid_mbr)
    if strategy is RepackStrategy.MBR_EFI_PARTITION_SPLIT:
        boot_images = extract_boot_images(source_iso, work_dir, profile.name)
        return compose_partition_split_command(volume_id, destination, boot_images)
    return compose_minimal_command(volume_id, destination)


def repackage_iso(
    tree: Path,
    destination: Path,
    profile: ReleaseProfile,
    source_iso: Path,
    work_dir: Path,
    isohybrid_mbr: Path,
    volume_id: str | None = None,
) -> Path:
    """Build a bootable ISO from an edited tree.

    Args:
        tree: Edited ISO root; used as xorriso's working directory.
        destination: Output ISO path (overwritten if present).
        profile: Release being repackaged.
        source_iso: Original ISO, needed by the partition-split recipe.
        work_dir: Scratch directory for intermediate boot images.
        isohybrid_mbr: MBR template for the simple-hybrid recipe.
        volume_id: ISO volume label (dated default if None).

    Returns:
        The destination path.

    Raises:
        RepackagingError: If xorriso fails; no destination file is left.
    """
    logger.info("Repackaging extracted files into an ISO image...")
    destination = destination.absolute()
    cmd = compose_repack_command(
        profile,
        destination,
        volume_id or default_volume_id(),
        source_iso,
        work_dir,
        isohybrid_mbr,
    )

    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        result: subprocess.CompletedProcess[str] = run_command(cmd, cwd=tree)
    except OSError as e:
        destination.unlink(missing_ok=True)
        raise RepackagingError(f"Failed to run xorriso: {e}", code="execution_error") from e
    except BaseException:
        # Interrupted (Ctrl-C, SIGTERM/SIGHUP as SystemExit): drop the partial image
        destination.unlink(missing_ok=True)
        raise

    if result.returncode != 0:
        destination.unlink(missing_ok=True)
        raise RepackagingError(
            f"Failed to build {destination}: {describe_failure(result)}",
            code="xorriso_error",
        )

    logger.info("Repackaged into %s", destination)
    return destination


__all__ = [
    "BootImages",
    "PartitionExtent",
    "compose_minimal_command",
    "compose_partition_split_command",
    "compose_repack_command",
    "compose_simple_hybrid_command",
    "copy_byte_range",
    "default_volume_id",
    "extract_boot_images",
    "parse_fdisk_partition",
    "read_efi_partition",
    "repackage_iso",
]
