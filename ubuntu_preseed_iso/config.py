"""Runtime settings for ubuntu_preseed_iso.

Values come from UBUNTU_PRESEED_* environment variables (or a .env file)
and fall back to the defaults below. Command-line flags take priority over
both.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_cache_dir() -> Path:
    """Cached ISOs, manifests and keyrings live here by default."""
    return Path.home() / ".cache" / "ubuntu-preseed-iso"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the UBUNTU_PRESEED_
    prefix. CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="UBUNTU_PRESEED_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    cache_dir: Path = Field(
        default_factory=_default_cache_dir,
        description="Directory for cached ISOs, checksum manifests and keyrings",
    )
    output_dir: Path = Field(
        default_factory=Path.cwd,
        description="Directory for the default destination ISO",
    )
    tmp_dir: Path | None = Field(
        default=None,
        description="Parent of the scratch directory (uses system default if not set)",
    )
    catalog_file: Path | None = Field(
        default=None,
        description="YAML file overriding or extending the built-in release catalog",
    )

    # External collaborators
    keyserver: str = Field(
        default="hkp://keyserver.ubuntu.com",
        description="Keyserver used to fetch the Ubuntu signing key",
    )
    isohybrid_mbr: Path = Field(
        default=Path("/usr/lib/ISOLINUX/isohdpfx.bin"),
        description="Isolinux MBR template for hybrid BIOS/UEFI images",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Timeouts (in seconds)
    download_timeout: int = Field(
        default=3600,
        ge=60,
        description="Timeout for ISO downloads",
    )
    request_timeout: int = Field(
        default=60,
        ge=1,
        description="Timeout for checksum manifest and signature downloads",
    )


def get_settings() -> Settings:
    """Load settings from the environment."""
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Serialize settings (loaded from the environment if None) to JSON."""
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "print_settings_json"]
