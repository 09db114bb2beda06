"""
Retry classification and exponential backoff for upload steps.
"""

import logging
import random
from typing import Optional

import requests

from shared.config import UploadConfig
from shared.errors import (
    ProtocolMismatchError,
    ServerBusyError,
    SessionExpiredError,
    TransientNetworkError,
)
from shared.models import FailureKind, RetryDecision
from shared import constants

logger = logging.getLogger(__name__)


class RetryPolicy:
    """
    Decides whether a failed step is retried, and after how long.

    Only transient network failures and server-busy responses are retried.
    The resume offset of a retry is always the last offset the server
    confirmed, never the local write cursor.
    """

    def __init__(self, max_retries: int = constants.DEFAULT_MAX_RETRIES,
                 base_delay: float = constants.DEFAULT_BASE_DELAY,
                 max_delay: float = constants.DEFAULT_MAX_DELAY,
                 jitter: float = constants.DEFAULT_JITTER,
                 rng: Optional[random.Random] = None):
        if max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self._rng = rng or random.Random()

    @classmethod
    def from_config(cls, config: UploadConfig) -> 'RetryPolicy':
        return cls(
            max_retries=config.max_retries,
            base_delay=config.base_delay,
            max_delay=config.max_delay,
            jitter=config.jitter,
        )

    @staticmethod
    def classify(error: BaseException) -> FailureKind:
        if isinstance(error, ServerBusyError):
            return FailureKind.SERVER_BUSY
        if isinstance(error, (TransientNetworkError, TimeoutError, ConnectionError,
                              requests.ConnectionError, requests.Timeout)):
            return FailureKind.TRANSIENT_NETWORK
        if isinstance(error, (ProtocolMismatchError, SessionExpiredError)):
            return FailureKind.PROTOCOL_MISMATCH
        return FailureKind.FATAL

    def backoff(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """
        Delay before retry number ``attempt`` (1-based).

        base_delay * 2 ** (attempt - 1), plus up to ``jitter`` of that as
        random extra, never more than max_delay. A server Retry-After hint
        raises the delay to at least the hint.
        """
        delay = min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))
        if self.jitter > 0 and delay > 0:
            delay += self._rng.uniform(0, self.jitter * delay)
        if retry_after is not None:
            delay = max(delay, retry_after)
        return min(self.max_delay, delay)

    def decide(self, error: BaseException, attempt: int,
               confirmed_offset: Optional[int]) -> RetryDecision:
        """
        Decide what to do about a failure.

        Args:
            error: The failure that ended the step
            attempt: How many consecutive failures this is (1 for the first)
            confirmed_offset: Last durable offset reported by the server

        Returns:
            RetryDecision; when the retry budget is spent ``exhausted`` is set
        """
        kind = self.classify(error)
        if not kind.retryable:
            return RetryDecision(should_retry=False, resume_offset=None, delay=0.0, kind=kind)

        if attempt > self.max_retries:
            logger.warning("Giving up after %d retries: %s", self.max_retries, error)
            return RetryDecision(should_retry=False, resume_offset=None, delay=0.0,
                                 kind=kind, exhausted=True)

        delay = self.backoff(attempt, getattr(error, 'retry_after', None))
        return RetryDecision(
            should_retry=True,
            resume_offset=confirmed_offset if confirmed_offset is not None else 0,
            delay=delay,
            kind=kind,
        )
