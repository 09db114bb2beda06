"""
Resumable, verified chunked uploads of large media files.
"""

from .client import UploadClient
from .content_source import ContentSource
from .engine import ChunkedTransferEngine
from .retry_policy import RetryPolicy
from .verification import VerificationProbe

__all__ = [
    "UploadClient",
    "ContentSource",
    "ChunkedTransferEngine",
    "RetryPolicy",
    "VerificationProbe",
]
