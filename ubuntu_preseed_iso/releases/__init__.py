"""Release catalog module.

This module handles:
- Immutable per-release metadata (download locations, signing key,
  boot configuration patches, repack recipe)
- Built-in and YAML-provided catalog entries
- Resolving a release and architecture preference to a concrete image
"""

from ubuntu_preseed_iso.releases.catalog import (
    BUILTIN_RELEASES,
    ResolvedRelease,
    build_catalog,
    get_release,
    list_releases,
    load_catalog_file,
    resolve_release,
)
from ubuntu_preseed_iso.releases.models import (
    AUTOMATED_INSTALL_PARAMETERS,
    PRESEED_SEED_PATH,
    GrubPatch,
    ReleaseImage,
    ReleaseProfile,
)

__all__ = [
    "AUTOMATED_INSTALL_PARAMETERS",
    "BUILTIN_RELEASES",
    "GrubPatch",
    "PRESEED_SEED_PATH",
    "ReleaseImage",
    "ReleaseProfile",
    "ResolvedRelease",
    "build_catalog",
    "get_release",
    "list_releases",
    "load_catalog_file",
    "resolve_release",
]
