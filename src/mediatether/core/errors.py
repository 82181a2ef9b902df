class TetherError(Exception):
    """Base error for all user-facing mediatether exceptions."""


class ConfigurationError(TetherError):
    """Raised when configuration is invalid or incomplete."""


class ProjectNotInitializedError(TetherError):
    """Raised when .tether metadata is missing."""


class UnsupportedTransport(TetherError):
    """Raised when no protocol handler is both available and compatible with a URL."""


class TransportFetchError(TetherError):
    """Raised when a remote listing, probe or download fails."""


class DisallowedMimeType(TetherError):
    """Raised when a resource's mime type is outside the configured allow-list."""


class PersistenceError(TetherError):
    """Raised when a resource record or its bytes cannot be written."""


class IntegrityMismatch(TetherError):
    """Raised when claimed and detected mime types disagree during a cache refresh."""


class ExecutionBudgetExceeded(TetherError):
    """Raised when an import batch runs out of its wall-clock budget."""


class CacheMiss(TetherError):
    """Raised when a proxied resource has no usable cached copy."""


class SyncAlreadyRunning(TetherError):
    """Raised when a source group is already being reconciled."""


class HostingSwitchError(TetherError):
    """Raised when a resource cannot move between embedded and referenced storage."""


class SourceGroupError(TetherError):
    """Raised when source group operations fail."""
