"""Release catalog.

This module handles:
- The built-in FOCAL/IMPISH/JAMMY release profiles
- Loading catalog overrides from a YAML file
- Resolving a release identifier and architecture preference to the image
  that will be downloaded
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from ubuntu_preseed_iso.errors import InvalidArgumentsError, UnknownReleaseError
from ubuntu_preseed_iso.releases.models import ReleaseImage, ReleaseProfile
from ubuntu_preseed_iso.types import Architecture, RepackStrategy

logger = logging.getLogger(__name__)

CDIMAGE_BASE = "https://cdimage.ubuntu.com"

BUILTIN_RELEASES: tuple[ReleaseProfile, ...] = (
    ReleaseProfile(
        name="FOCAL",
        version="20.04",
        description="Ubuntu 20.04 LTS (Focal Fossa)",
        images={
            Architecture.X86: ReleaseImage(
                base_url=f"{CDIMAGE_BASE}/focal/daily-live/current",
                filename="focal-desktop-amd64.iso",
            ),
            Architecture.ARM: ReleaseImage(
                base_url=f"{CDIMAGE_BASE}/focal/daily-live/current",
                filename="focal-desktop-arm64.iso",
            ),
        },
        isolinux_menu="isolinux/txt.cfg",
        repack_strategy=RepackStrategy.SIMPLE_HYBRID,
    ),
    ReleaseProfile(
        name="IMPISH",
        version="21.10",
        description="Ubuntu 21.10 (Impish Indri)",
        images={
            Architecture.X86: ReleaseImage(
                base_url=f"{CDIMAGE_BASE}/impish/daily-live/current",
                filename="impish-desktop-amd64.iso",
            ),
        },
        repack_strategy=RepackStrategy.MBR_EFI_PARTITION_SPLIT,
    ),
    ReleaseProfile(
        name="JAMMY",
        version="22.04",
        description="Ubuntu 22.04 LTS (Jammy Jellyfish)",
        images={
            Architecture.X86: ReleaseImage(
                base_url=f"{CDIMAGE_BASE}/jammy/daily-live/current",
                filename="jammy-desktop-amd64.iso",
            ),
            Architecture.ARM: ReleaseImage(
                base_url=f"{CDIMAGE_BASE}/jammy/daily-live/current",
                filename="jammy-desktop-arm64.iso",
            ),
        },
        repack_strategy=RepackStrategy.MINIMAL,
    ),
)


@dataclass
class ResolvedRelease:
    """A release profile narrowed down to one architecture.

    Attributes:
        profile: The selected release profile.
        architecture: Architecture that will actually be used.
        image: Published image for that architecture.
    """

    profile: ReleaseProfile
    architecture: Architecture
    image: ReleaseImage

    @property
    def download_url(self) -> str:
        return self.image.url

    @property
    def iso_filename(self) -> str:
        return self.profile.default_iso_filename(self.architecture)

    @property
    def repack_strategy(self) -> RepackStrategy:
        return self.profile.repack_strategy

    @property
    def manifest_url(self) -> str:
        return self.image.url_for(self.profile.checksum_manifest)

    @property
    def signature_url(self) -> str:
        return self.image.url_for(self.profile.checksum_signature)


def load_catalog_file(path: Path) -> list[ReleaseProfile]:
    """Load release profiles from a YAML catalog file.

    The file is a mapping of release name to profile fields; the ``name``
    field defaults to the mapping key.

    Args:
        path: Path to the YAML file.

    Returns:
        Validated release profiles.

    Raises:
        InvalidArgumentsError: If the file is missing, not YAML, or does not
            match the profile schema.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise InvalidArgumentsError(f"Cannot read release catalog {path}: {e}") from e
    except yaml.YAMLError as e:
        raise InvalidArgumentsError(f"Release catalog {path} is not valid YAML: {e}") from e

    if data is None:
        return []
    if not isinstance(data, dict):
        raise InvalidArgumentsError(
            f"Release catalog {path} must be a mapping, got {type(data).__name__}"
        )

    profiles: list[ReleaseProfile] = []
    for name, fields in data.items():
        entry: dict[str, Any] = {"name": str(name), **(fields or {})}
        try:
            profiles.append(ReleaseProfile.model_validate(entry))
        except ValidationError as e:
            raise InvalidArgumentsError(
                f"Invalid release {name!r} in {path}: {e}"
            ) from e
    return profiles


def build_catalog(catalog_file: Path | None = None) -> dict[str, ReleaseProfile]:
    """Return the release catalog keyed by release name.

    Args:
        catalog_file: Optional YAML file whose entries replace or extend the
            built-in releases.

    Returns:
        Mapping of release name to profile.
    """
    catalog = {profile.name: profile for profile in BUILTIN_RELEASES}
    if catalog_file is not None:
        for profile in load_catalog_file(catalog_file):
            action = "Overriding" if profile.name in catalog else "Adding"
            logger.debug("%s release %s from %s", action, profile.name, catalog_file)
            catalog[profile.name] = profile
    return catalog


def list_releases(catalog: dict[str, ReleaseProfile] | None = None) -> list[ReleaseProfile]:
    """List catalog releases ordered by version."""
    if catalog is None:
        catalog = build_catalog()
    return sorted(catalog.values(), key=lambda p: p.version)


def get_release(
    name: str,
    catalog: dict[str, ReleaseProfile] | None = None,
) -> ReleaseProfile:
    """Look up a release profile by name (case-insensitive).

    Raises:
        UnknownReleaseError: If the release is not in the catalog.
    """
    if catalog is None:
        catalog = build_catalog()
    profile = catalog.get(name.strip().upper())
    if profile is None:
        raise UnknownReleaseError(name, sorted(catalog))
    return profile


def resolve_release(
    name: str,
    prefer_arm: bool = False,
    catalog: dict[str, ReleaseProfile] | None = None,
) -> ResolvedRelease:
    """Resolve a release identifier and architecture preference.

    Args:
        name: Release identifier (e.g. 'JAMMY').
        prefer_arm: Use the ARM image where the release publishes one.
        catalog: Catalog to search; defaults to the built-in releases.

    Returns:
        ResolvedRelease with the download URL, cache filename and recipe.

    Raises:
        UnknownReleaseError: If the release is not in the catalog.
    """
    profile = get_release(name, catalog)

    architecture = Architecture.X86
    if prefer_arm:
        if profile.supports_arm:
            architecture = Architecture.ARM
        else:
            logger.warning("No ARM build for %s. Using X86", profile.name)

    return ResolvedRelease(
        profile=profile,
        architecture=architecture,
        image=profile.images[architecture],
    )


__all__ = [
    "BUILTIN_RELEASES",
    "ResolvedRelease",
    "build_catalog",
    "get_release",
    "list_releases",
    "load_catalog_file",
    "resolve_release",
]
