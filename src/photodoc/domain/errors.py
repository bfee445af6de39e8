"""Error taxonomy for session synchronization."""


class SyncError(Exception):
    """Base class for synchronization failures."""


class AuthenticationMissing(SyncError):
    """Raised when an operation requires an identity and none is present."""

    def __init__(self) -> None:
        super().__init__("User not authenticated")


class TransportFailure(SyncError):
    """Raised when a single blob store call fails."""


class BlobNotFound(TransportFailure):
    """Raised when an expected blob or folder does not exist."""


class LocalIOFailure(SyncError):
    """Raised when reading or writing the local image cache fails."""


class MetadataError(SyncError, ValueError):
    """Raised when a remote metadata document cannot be parsed."""
