"""Exception classes for the multipart upload workflow."""


class UploadError(Exception):
    """Base error for multipart upload workflow."""


class SessionCreationError(UploadError):
    """Raised when the provider refuses to open a multipart upload session."""


class PartUploadError(UploadError):
    """Raised when a part upload fails. The session is aborted."""

    def __init__(self, part_number: int, message: str):
        """Initialize PartUploadError.

        Args:
            part_number: Number of the part that failed.
            message: Description of the failure.
        """
        super().__init__(f"Part {part_number} failed: {message}")
        self.part_number = part_number


class CompletionError(UploadError):
    """Raised when the provider fails to stitch the uploaded parts together."""


class AbortError(UploadError):
    """Raised by a session when an abort request fails."""


class EmptyUploadError(UploadError):
    """Raised when a stream ends before delivering any bytes."""


class InvalidDestinationError(UploadError):
    """Raised when a destination URL cannot be mapped to a session."""
