"""End-to-end pipeline orchestration.

Stages run strictly in order and every failure aborts the run:

    release catalog -> acquisition -> verification -> extraction
        -> preseed injection -> repackaging

The scratch workspace spans all stages and is removed on every exit path.
The destination ISO is written only by the final stage.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import date
from pathlib import Path

import httpx

from ubuntu_preseed_iso.config import Settings
from ubuntu_preseed_iso.errors import InvalidArgumentsError
from ubuntu_preseed_iso.releases.catalog import (
    ResolvedRelease,
    build_catalog,
    resolve_release,
)
from ubuntu_preseed_iso.releases.models import ReleaseProfile
from ubuntu_preseed_iso.remaster.extract import extract_iso
from ubuntu_preseed_iso.remaster.inject import inject_preseed
from ubuntu_preseed_iso.remaster.repack import default_volume_id, repackage_iso
from ubuntu_preseed_iso.remaster.workspace import ScratchWorkspace
from ubuntu_preseed_iso.source.fetch import resolve_source_iso
from ubuntu_preseed_iso.source.verify import verify_source_iso
from ubuntu_preseed_iso.tools import check_prerequisites

logger = logging.getLogger(__name__)


@dataclass
class PipelineContext:
    """Mutable state of one pipeline run.

    Attributes:
        release: Selected release and architecture.
        preseed_file: Preseed configuration to embed.
        destination: Output ISO path.
        source_iso: Explicit source ISO before acquisition, the resolved
            ISO afterwards.
        verify: Whether to verify the source ISO.
        scratch_dir: Workspace root while the pipeline runs.
    """

    release: ResolvedRelease
    preseed_file: Path
    destination: Path
    source_iso: Path | None = None
    verify: bool = True
    scratch_dir: Path | None = None


@dataclass
class PipelineResult:
    """Outcome of a successful run."""

    destination: Path
    source_iso: Path
    verified: bool


def default_destination(output_dir: Path, today: date | None = None) -> Path:
    """Return the dated default output path."""
    return (output_dir / f"ubuntu-preseed-{(today or date.today()).isoformat()}.iso").absolute()


def validate_preseed_file(preseed_file: Path) -> Path:
    """Check that the preseed file exists and is readable.

    Raises:
        InvalidArgumentsError: If it is missing, not a file, or unreadable.
    """
    if not preseed_file.exists():
        raise InvalidArgumentsError(f"Preseed file could not be found: {preseed_file}")
    if not preseed_file.is_file():
        raise InvalidArgumentsError(f"Preseed path is not a file: {preseed_file}")
    if not os.access(preseed_file, os.R_OK):
        raise InvalidArgumentsError(f"Preseed file is not readable: {preseed_file}")
    return preseed_file.absolute()


def build_context(
    release_name: str,
    preseed_file: Path,
    settings: Settings,
    source: Path | None = None,
    destination: Path | None = None,
    prefer_arm: bool = False,
    verify: bool = True,
    catalog: dict[str, ReleaseProfile] | None = None,
) -> PipelineContext:
    """Validate command-line input and create the run context.

    Raises:
        InvalidArgumentsError: If the preseed file is unusable.
        UnknownReleaseError: If the release is not in the catalog.
    """
    preseed_path = validate_preseed_file(preseed_file)
    if catalog is None:
        catalog = build_catalog(settings.catalog_file)
    release = resolve_release(release_name, prefer_arm=prefer_arm, catalog=catalog)

    return PipelineContext(
        release=release,
        preseed_file=preseed_path,
        destination=(destination or default_destination(settings.output_dir)).absolute(),
        source_iso=source,
        verify=verify,
    )


def run_pipeline(
    context: PipelineContext,
    settings: Settings,
    client: httpx.Client | None = None,
) -> PipelineResult:
    """Produce an unattended-install ISO.

    Args:
        context: Validated run context.
        settings: Effective settings.
        client: HTTPX client (a new one is created and closed if None).

    Returns:
        PipelineResult describing the produced ISO.

    Raises:
        PreseedIsoError: Any pipeline failure; the scratch directory has
            been removed and no destination file is left behind.
    """
    profile = context.release.profile
    check_prerequisites(profile.repack_strategy, context.verify, settings.isohybrid_mbr)

    owns_client = client is None
    if client is None:
        client = httpx.Client(follow_redirects=True)

    try:
        with ScratchWorkspace(settings.tmp_dir) as workspace:
            context.scratch_dir = workspace.root

            source = resolve_source_iso(
                client,
                context.release,
                settings.cache_dir,
                explicit_path=context.source_iso,
                timeout=settings.download_timeout,
            )
            context.source_iso = source.path

            if context.verify:
                verify_source_iso(
                    client,
                    source,
                    context.release,
                    settings.cache_dir,
                    keyserver=settings.keyserver,
                    timeout=settings.request_timeout,
                )
            else:
                logger.warning("Skipping verification of source ISO.")

            extract_iso(source.path, workspace.tree)
            inject_preseed(workspace.tree, context.preseed_file, profile)
            repackage_iso(
                workspace.tree,
                context.destination,
                profile,
                source.path,
                workspace.root,
                settings.isohybrid_mbr,
                volume_id=default_volume_id(),
            )
    finally:
        context.scratch_dir = None
        if owns_client:
            client.close()

    return PipelineResult(
        destination=context.destination,
        source_iso=source.path,
        verified=context.verify,
    )


__all__ = [
    "PipelineContext",
    "PipelineResult",
    "build_context",
    "default_destination",
    "run_pipeline",
    "validate_preseed_file",
]
