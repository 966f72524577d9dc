"""Custom Exception Hierarchy for ImageLingo.

This module defines specific error types to allow for granular error handling
and better debugging. All custom exceptions inherit from `ImageLingoError`.
"""


class ImageLingoError(Exception):
    """Base exception for all ImageLingo errors."""
    def __init__(self, message: str, original_error: Exception | None = None, context: dict | None = None):
        super().__init__(message)
        self.original_error = original_error
        self.context = context or {}

class ConfigurationError(ImageLingoError, ValueError):
    """Raised when a progress bar or poller is built with invalid settings."""
    pass

class FetchError(ImageLingoError):
    """Raised when a generation record cannot be fetched."""
    pass

class GenerationFailedError(ImageLingoError):
    """Raised when the backend reports a generation as failed."""
    pass

class PollingTimeoutError(ImageLingoError):
    """Raised when a generation does not settle within the polling budget."""
    pass

class StorageError(ImageLingoError):
    """Raised when database operations fail."""
    pass

class InvalidTransitionError(StorageError):
    """Raised when an update would move a generation out of a terminal state."""
    pass
