"""Thin CLI wrapper for ubuntu_preseed_iso.

This module provides the command-line interface using Typer.
All business logic is delegated to the pipeline modules.
"""

import logging
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from ubuntu_preseed_iso import __version__
from ubuntu_preseed_iso.config import Settings, get_settings, print_settings_json
from ubuntu_preseed_iso.errors import PreseedIsoError
from ubuntu_preseed_iso.pipeline import build_context, run_pipeline
from ubuntu_preseed_iso.releases.catalog import build_catalog, list_releases

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="ubuntu-preseed-iso",
    help="Create fully-automated Ubuntu installation media from a preseed file.",
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)
console = Console()
err_console = Console(stderr=True)


def configure_logging(level: str) -> None:
    """Send timestamped log records to stderr."""
    handler = RichHandler(
        console=err_console,
        show_path=False,
        log_time_format="[%Y-%m-%d %H:%M:%S]",
    )
    logging.basicConfig(level=level, format="%(message)s", handlers=[handler], force=True)


def load_settings() -> Settings:
    """Load settings; invalid UBUNTU_PRESEED_* values exit with code 1."""
    try:
        return get_settings()
    except ValidationError as e:
        err_console.print(
            f"Invalid configuration: {e}", style="red", markup=False, soft_wrap=True
        )
        raise typer.Exit(code=1) from None


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"ubuntu-preseed-iso version {__version__}")
        raise typer.Exit()


def list_releases_callback(value: bool) -> None:
    """Print the release catalog and exit."""
    if not value:
        return
    settings = load_settings()
    try:
        catalog = build_catalog(settings.catalog_file)
    except PreseedIsoError as e:
        err_console.print(e.message, style="red", markup=False, soft_wrap=True)
        raise typer.Exit(code=1) from None

    console.print("[bold]Available releases:[/bold]")
    for profile in list_releases(catalog):
        arches = ", ".join(arch.value for arch in profile.images)
        console.print(f"  [green]{profile.name}[/green] ({profile.version})")
        if profile.description:
            console.print(f"    {profile.description}")
        console.print(f"    Architectures: {arches}")
        console.print(f"    Repack strategy: {profile.repack_strategy.value}")
    raise typer.Exit()


def show_config_callback(value: bool) -> None:
    """Print the effective settings as JSON and exit."""
    if value:
        console.print_json(print_settings_json(load_settings()))
        raise typer.Exit()


@app.command()
def main(
    preseed: Annotated[
        Path,
        typer.Option("--preseed", "-p", help="Path to preseed configuration file."),
    ],
    release: Annotated[
        str,
        typer.Option(
            "--release",
            "-r",
            help="Ubuntu release: FOCAL (20.04), IMPISH (21.10), or JAMMY (22.04).",
        ),
    ],
    source: Annotated[
        Path | None,
        typer.Option(
            "--source",
            "-s",
            help="Source ISO file. By default the release ISO is downloaded to the "
            "cache directory and reused on later runs.",
        ),
    ] = None,
    destination: Annotated[
        Path | None,
        typer.Option(
            "--destination",
            "-d",
            help="Destination ISO file. Defaults to ubuntu-preseed-<date>.iso in the "
            "output directory, overwriting any existing file.",
        ),
    ] = None,
    no_verify: Annotated[
        bool,
        typer.Option(
            "--no-verify",
            "-k",
            help="Disable GPG verification of the source ISO file.",
        ),
    ] = False,
    arm: Annotated[
        bool,
        typer.Option("--arm", "-a", help="Use the ARM image where the release has one."),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Print debug info."),
    ] = False,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    releases: Annotated[
        bool | None,
        typer.Option(
            "--list-releases",
            help="List known releases and exit.",
            callback=list_releases_callback,
            is_eager=True,
        ),
    ] = None,
    show_config: Annotated[
        bool | None,
        typer.Option(
            "--show-config",
            help="Show effective configuration as JSON and exit.",
            callback=show_config_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Create fully-automated Ubuntu installation media.

    The source ISO is verified against the signed SHA256SUMS manifest unless
    --no-verify is given, then repackaged with the preseed file and
    unattended-install kernel parameters.
    """
    settings = load_settings()
    configure_logging("DEBUG" if verbose else settings.log_level)
    logger.info("Starting up...")

    try:
        context = build_context(
            release,
            preseed,
            settings,
            source=source,
            destination=destination,
            prefer_arm=arm,
            verify=not no_verify,
        )
        result = run_pipeline(context, settings)
    except PreseedIsoError as e:
        logger.debug("Pipeline failed with %s", e.code)
        err_console.print(e.message, style="red", markup=False, soft_wrap=True)
        raise typer.Exit(code=1) from None

    logger.info("Completed.")
    typer.echo(str(result.destination))


__all__ = ["app", "configure_logging"]
