from typing import Optional


class AssetServiceError(Exception):
    """
    Base class for all application-specific exceptions.
    captures the original exception for debugging if needed.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


# --- Request Exceptions (Caller Mistakes) ---


class ValidationError(AssetServiceError):
    """
    Raised when the upload or request input is bad or missing
    (empty name, not a ZIP, no model entry...).
    Always raised before anything is written. Maps to HTTP 400.
    """

    pass


class NotFoundError(AssetServiceError):
    """
    Raised when the metadata record for an asset id does not exist.
    For deletes this means "already deleted". Maps to HTTP 404.
    """

    pass


class BlobNotFoundError(NotFoundError):
    """
    Raised by an AssetStore when a key has no object behind it.
    """

    def __init__(self, key: str, original_error: Optional[Exception] = None):
        super().__init__(f"No object stored at '{key}'", original_error)
        self.key = key


class ConflictError(AssetServiceError):
    """
    Raised when a conditional write loses against a concurrent writer,
    or when a status transition is not allowed (e.g. Ready -> Error).
    Maps to HTTP 409.
    """

    pass


# --- Infrastructure Exceptions (Collaborator Failures) ---


class UpstreamError(AssetServiceError):
    """
    Raised when a collaborator (store, archive reader, renderer) fails.
    State already written is NOT rolled back. Maps to HTTP 500.
    """

    pass


class StorageError(UpstreamError):
    """
    Raised when S3 or Local Disk operations fail.
    """

    pass


class ArchiveError(UpstreamError):
    """
    Raised when a selected archive entry cannot be read (bad CRC, broken deflate stream).
    """

    pass


class RenderError(UpstreamError):
    """
    Raised when the headless renderer fails to produce a thumbnail.
    """

    pass


class RenderTimeoutError(RenderError):
    """
    Raised when the render page never signals completion, or the session ceiling is hit.
    """

    pass


class EscalatedError(AssetServiceError):
    """
    A failure while recording a previous failure (e.g. persisting status=Error).
    Only ever logged. Never retried, never raised to a caller.
    """

    pass
