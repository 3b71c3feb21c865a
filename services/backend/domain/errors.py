"""Lifecycle error taxonomy"""


class LifecycleError(Exception):
    """Base class for errors raised by the report lifecycle"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(LifecycleError):
    status_code = 404


class ValidationError(LifecycleError):
    """Malformed payload, rejected before any write"""

    status_code = 400


class StorageError(LifecycleError):
    """Persistence unavailable or the write failed. Never retried here."""

    status_code = 503


class PermissionDeniedError(LifecycleError, PermissionError):
    status_code = 403
