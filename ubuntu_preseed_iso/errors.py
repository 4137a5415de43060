"""Error taxonomy for ubuntu_preseed_iso.

Every failure in the pipeline is fatal. Each error carries a stable
``code`` for programmatic handling and a human-readable message that the
CLI prints on stderr before exiting non-zero.
"""

from ubuntu_preseed_iso.types import VerificationFailure


class PreseedIsoError(Exception):
    """Base class for all pipeline errors."""

    default_code = "preseed_iso_error"

    def __init__(self, message: str, code: str | None = None) -> None:
        """Initialize PreseedIsoError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class MissingPrerequisiteError(PreseedIsoError):
    """A required external tool or system file is not installed."""

    default_code = "missing_prerequisite"

    def __init__(self, tool: str, hint: str | None = None) -> None:
        message = f"{tool} is not installed."
        if hint:
            message = f"{message} {hint}"
        super().__init__(message)
        self.tool = tool


class InvalidArgumentsError(PreseedIsoError):
    """Command-line input is missing or unusable."""

    default_code = "invalid_arguments"


class UnknownReleaseError(InvalidArgumentsError):
    """Release identifier is not in the catalog."""

    default_code = "unknown_release"

    def __init__(self, release: str, known: list[str]) -> None:
        super().__init__(
            f"Invalid release version: {release!r}. "
            f"Known releases: {', '.join(known)}"
        )
        self.release = release


class DownloadError(PreseedIsoError):
    """Raised when a download fails."""

    default_code = "download_failed"


class VerificationError(PreseedIsoError):
    """Raised when the source ISO fails signature or digest verification."""

    default_code = "verification_failed"

    def __init__(self, failure: VerificationFailure, message: str) -> None:
        """Initialize VerificationError.

        Args:
            failure: Which check failed.
            message: Error description.
        """
        super().__init__(message)
        self.failure = failure


class ExtractionError(PreseedIsoError):
    """Raised when the source ISO cannot be unpacked."""

    default_code = "extraction_failed"


class PatchNotAppliedError(PreseedIsoError):
    """Raised when an expected boot configuration line was not found."""

    default_code = "patch_not_applied"

    def __init__(self, path: str, expected: str) -> None:
        super().__init__(
            f"Could not find the stock boot parameters in {path}: {expected!r}"
        )
        self.path = path
        self.expected = expected


class RepackagingError(PreseedIsoError):
    """Raised when assembling the new ISO fails."""

    default_code = "repackaging_failed"


__all__ = [
    "DownloadError",
    "ExtractionError",
    "InvalidArgumentsError",
    "MissingPrerequisiteError",
    "PatchNotAppliedError",
    "PreseedIsoError",
    "RepackagingError",
    "UnknownReleaseError",
    "VerificationError",
]
