"""External tool discovery and execution.

This module handles:
- Checking that every tool the selected release needs is installed
- Running external commands with captured output and debug logging
"""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
from pathlib import Path

from ubuntu_preseed_iso.errors import MissingPrerequisiteError
from ubuntu_preseed_iso.types import RepackStrategy

logger = logging.getLogger(__name__)


def required_tools(strategy: RepackStrategy, verify: bool) -> list[str]:
    """Return the executables a run needs.

    Args:
        strategy: Repack recipe of the selected release.
        verify: Whether GPG verification is enabled.

    Returns:
        Executable names in the order they are checked.
    """
    tools = ["xorriso"]
    if verify:
        tools.append("gpg")
    if strategy is RepackStrategy.MBR_EFI_PARTITION_SPLIT:
        tools.append("fdisk")
    return tools


def find_tool(name: str) -> str | None:
    """Locate an executable on PATH (fdisk often lives in /sbin)."""
    return shutil.which(name) or shutil.which(name, path="/sbin:/usr/sbin")


def check_prerequisites(
    strategy: RepackStrategy,
    verify: bool,
    isohybrid_mbr: Path,
) -> None:
    """Fail fast when a required tool is missing.

    Args:
        strategy: Repack recipe of the selected release.
        verify: Whether GPG verification is enabled.
        isohybrid_mbr: MBR template required by the simple-hybrid recipe.

    Raises:
        MissingPrerequisiteError: On the first missing tool or file.
    """
    logger.info("Checking for required utilities...")
    for tool in required_tools(strategy, verify):
        if find_tool(tool) is None:
            raise MissingPrerequisiteError(tool)

    if strategy is RepackStrategy.SIMPLE_HYBRID and not isohybrid_mbr.is_file():
        raise MissingPrerequisiteError(
            "isolinux", hint=f"{isohybrid_mbr} does not exist."
        )
    logger.info("All required utilities are installed.")


def run_command(
    cmd: list[str],
    cwd: Path | None = None,
    timeout: float | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run an external command and capture its output.

    The command is never run through a shell. A non-zero exit status is
    returned to the caller, which decides which error to raise.

    Args:
        cmd: Command as a list of arguments.
        cwd: Working directory for the command.
        timeout: Timeout in seconds (None = no timeout).

    Returns:
        The completed process with text stdout/stderr.

    Raises:
        OSError: If the executable cannot be started.
        subprocess.TimeoutExpired: If the timeout elapses.
    """
    logger.debug("Running: %s%s", shlex.join(cmd), f" (cwd={cwd})" if cwd else "")
    result = subprocess.run(
        cmd,
        cwd=cwd,
        capture_output=True,
        text=True,
        timeout=timeout,
        check=False,
    )
    if result.stdout:
        logger.debug("%s stdout:\n%s", cmd[0], result.stdout.rstrip())
    if result.stderr:
        logger.debug("%s stderr:\n%s", cmd[0], result.stderr.rstrip())
    return result


def describe_failure(result: subprocess.CompletedProcess[str]) -> str:
    """Summarise a failed command for an error message."""
    output = (result.stderr or result.stdout or "").strip()
    last_lines = "\n".join(output.splitlines()[-5:])
    message = f"{result.args[0]} exited with code {result.returncode}"
    return f"{message}: {last_lines}" if last_lines else message


__all__ = [
    "check_prerequisites",
    "describe_failure",
    "find_tool",
    "required_tools",
    "run_command",
]
