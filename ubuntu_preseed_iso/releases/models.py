"""Pydantic models describing Ubuntu releases.

A ``ReleaseProfile`` holds everything that differs between releases:
where the ISO is published for each architecture, which key signs the
checksum manifest, which boot configuration lines must be rewritten and
which recipe rebuilds the image. Profiles are immutable once loaded.
"""

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ubuntu_preseed_iso.types import Architecture, RepackStrategy

RELEASE_NAME_PATTERN = re.compile(r"^[A-Z][A-Z0-9_]*$")
GPG_KEY_ID_PATTERN = re.compile(r"^[0-9A-F]{16,40}$")

# Kernel parameters that make the desktop installer run unattended
PRESEED_SEED_PATH = "preseed/custom.seed"
AUTOMATED_INSTALL_PARAMETERS = (
    f"file=/cdrom/{PRESEED_SEED_PATH} auto=true priority=critical boot=casper "
    "automatic-ubiquity quiet splash noprompt noshell"
)


class ReleaseImage(BaseModel):
    """Location of one architecture's ISO image.

    Attributes:
        base_url: Directory URL holding the ISO and its SHA256SUMS files.
        filename: ISO filename inside ``base_url``.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    base_url: str = Field(description="Directory URL of the published image")
    filename: str = Field(description="ISO filename", min_length=1)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Require an http(s) URL and drop any trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be an http(s) URL, got '{v}'")
        return v.rstrip("/")

    def url_for(self, name: str) -> str:
        """Return the URL of a file published next to the image."""
        return f"{self.base_url}/{name}"

    @property
    def url(self) -> str:
        return self.url_for(self.filename)


class GrubPatch(BaseModel):
    """A GRUB configuration line to rewrite.

    Attributes:
        path: Config path relative to the ISO root.
        stock_parameters: Kernel parameters as shipped by the release; they
            are replaced verbatim with the automated-install parameters.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    path: str = Field(description="Path relative to the ISO root")
    stock_parameters: str = Field(min_length=1)

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Keep paths relative to the ISO root."""
        v = v.lstrip("/")
        if not v or ".." in v.split("/"):
            raise ValueError(f"path must stay inside the ISO tree, got '{v}'")
        return v


def _default_grub_patches() -> list[GrubPatch]:
    return [
        GrubPatch(
            path="boot/grub/grub.cfg",
            stock_parameters="file=/cdrom/preseed/ubuntu.seed maybe-ubiquity quiet splash",
        ),
        GrubPatch(
            path="boot/grub/loopback.cfg",
            stock_parameters=(
                "file=/cdrom/preseed/ubuntu.seed maybe-ubiquity "
                "iso-scan/filename=${iso_path} quiet splash"
            ),
        ),
    ]


class ReleaseProfile(BaseModel):
    """Static metadata for one Ubuntu release.

    Attributes:
        name: Catalog identifier (e.g. 'JAMMY').
        version: Ubuntu version number (e.g. '22.04').
        description: Human-readable name.
        images: Published ISO per supported architecture.
        gpg_key_id: Fingerprint of the key that signs SHA256SUMS.
        grub_patches: UEFI boot menu lines to rewrite.
        isolinux_menu: Legacy BIOS menu file, or None when the release only
            boots through GRUB.
        repack_strategy: Recipe for rebuilding the ISO.
        checksum_manifest: Name of the checksum manifest next to the image.
        checksum_signature: Name of the detached manifest signature.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    version: str
    description: str | None = None
    images: dict[Architecture, ReleaseImage]
    gpg_key_id: str = "843938DF228D22F7B3742BC0D94AA3F0EFE21092"
    grub_patches: list[GrubPatch] = Field(default_factory=_default_grub_patches)
    isolinux_menu: str | None = None
    repack_strategy: RepackStrategy
    checksum_manifest: str = "SHA256SUMS"
    checksum_signature: str = "SHA256SUMS.gpg"

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Normalise release names to upper case."""
        v = v.upper()
        if not RELEASE_NAME_PATTERN.match(v):
            raise ValueError(
                f"name must match pattern {RELEASE_NAME_PATTERN.pattern}, got '{v}'"
            )
        return v

    @field_validator("images")
    @classmethod
    def validate_images(
        cls, v: dict[Architecture, ReleaseImage]
    ) -> dict[Architecture, ReleaseImage]:
        """Every release needs an x86 image to fall back to."""
        if Architecture.X86 not in v:
            raise ValueError("images must include an X86 entry")
        return v

    @field_validator("gpg_key_id")
    @classmethod
    def validate_gpg_key_id(cls, v: str) -> str:
        v = v.replace(" ", "").upper()
        if not GPG_KEY_ID_PATTERN.match(v):
            raise ValueError(f"gpg_key_id must be a hex key id, got '{v}'")
        return v

    @property
    def supports_arm(self) -> bool:
        return Architecture.ARM in self.images

    def default_iso_filename(self, architecture: Architecture) -> str:
        """Return the local filename used to cache this release's ISO."""
        return f"{self.name.lower()}-original-{architecture.value}.iso"


__all__ = [
    "AUTOMATED_INSTALL_PARAMETERS",
    "GrubPatch",
    "PRESEED_SEED_PATH",
    "ReleaseImage",
    "ReleaseProfile",
]
