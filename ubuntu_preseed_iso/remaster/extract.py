"""ISO extraction.

Unpacks the source ISO with xorriso's osirrox mode into the workspace tree
and prepares the tree for editing.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from ubuntu_preseed_iso.errors import ExtractionError
from ubuntu_preseed_iso.remaster.workspace import make_writable
from ubuntu_preseed_iso.tools import describe_failure, run_command

logger = logging.getLogger(__name__)

# Synthesized by xorriso for the El Torito boot catalog; not a real directory
BOOT_CATALOG_ARTIFACT = "[BOOT]"


def compose_extract_command(iso_path: Path, dest_dir: Path) -> list[str]:
    """Compose the xorriso command that copies the whole ISO to ``dest_dir``."""
    return [
        "xorriso",
        "-osirrox",
        "on",
        "-indev",
        str(iso_path),
        "-extract",
        "/",
        str(dest_dir),
    ]


def remove_boot_catalog_artifact(tree: Path) -> bool:
    """Delete a top-level ``[BOOT]`` entry from an extracted tree.

    Returns:
        True if something was removed.
    """
    artifact = tree / BOOT_CATALOG_ARTIFACT
    if artifact.is_dir() and not artifact.is_symlink():
        shutil.rmtree(artifact)
    elif artifact.exists() or artifact.is_symlink():
        artifact.unlink()
    else:
        return False
    logger.debug("Removed %s", artifact)
    return True


def extract_iso(iso_path: Path, dest_dir: Path) -> Path:
    """Extract an ISO image into an empty directory.

    Args:
        iso_path: ISO file to unpack.
        dest_dir: Target directory; created if missing, must be empty.

    Returns:
        The extracted tree root (``dest_dir``).

    Raises:
        ExtractionError: If xorriso fails or the tree cannot be prepared.
    """
    logger.info("Extracting ISO image...")

    try:
        dest_dir.mkdir(parents=True, exist_ok=True)
        if any(dest_dir.iterdir()):
            raise ExtractionError(
                f"Extraction directory {dest_dir} is not empty",
                code="dest_not_empty",
            )
        result = run_command(compose_extract_command(iso_path, dest_dir))
    except OSError as e:
        raise ExtractionError(
            f"Failed to run xorriso: {e}", code="execution_error"
        ) from e

    if result.returncode != 0:
        raise ExtractionError(
            f"Failed to extract {iso_path}: {describe_failure(result)}",
            code="xorriso_error",
        )

    try:
        make_writable(dest_dir)
        remove_boot_catalog_artifact(dest_dir)
    except OSError as e:
        raise ExtractionError(
            f"OS error preparing {dest_dir}: {e}", code="os_error"
        ) from e

    logger.info("Extracted to %s", dest_dir)
    return dest_dir


__all__ = [
    "BOOT_CATALOG_ARTIFACT",
    "compose_extract_command",
    "extract_iso",
    "remove_boot_catalog_artifact",
]
