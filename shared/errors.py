"""
Error taxonomy for resumable uploads.

Transport implementations translate their native failures (HTTP status
codes, socket errors, filesystem errors) into these types so the retry
policy can classify them without knowing which backend produced them.
"""

from typing import Optional


class UploadError(Exception):
    """Base class for every error raised by the upload tool."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ResourceError(UploadError):
    """Local I/O failure while reading the content source. Never retried."""


class NotFoundError(ResourceError):
    """The content source does not exist."""


class AccessError(ResourceError):
    """The content source exists but cannot be opened."""


class RangeError(UploadError, ValueError):
    """A read was requested outside the bounds of the content source."""


class TransientNetworkError(UploadError):
    """Timeouts, dropped connections and other failures worth retrying."""


class ServerBusyError(TransientNetworkError):
    """The service asked us to slow down (429) or failed internally (5xx)."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 retry_after: Optional[float] = None):
        super().__init__(message, status_code)
        self.retry_after = retry_after


class SessionExpiredError(UploadError):
    """The upload ticket is no longer valid; a new one must be issued."""


class ProtocolMismatchError(UploadError):
    """The remote side violated the offset contract (e.g. offset > length)."""


class AuthError(UploadError):
    """Credentials were rejected."""


class QuotaError(UploadError):
    """The account has no room left for this upload."""


class RemoteError(UploadError):
    """Any other unexpected response from the service."""


class RetryExhaustedError(UploadError):
    """Transient failures persisted past the configured retry budget."""

    def __init__(self, message: str, last_error: Exception, attempts: int):
        super().__init__(message, getattr(last_error, 'status_code', None))
        self.last_error = last_error
        self.attempts = attempts


class TransferCancelledError(UploadError):
    """The transfer was cancelled between chunk operations."""

    def __init__(self, message: str, offset: int):
        super().__init__(message)
        self.offset = offset
