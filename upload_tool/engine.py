"""
Offset-tracked chunked transfer with verification and resume.

The engine walks a single upload session through

    IDLE -> SENDING -> VERIFYING -> COMPLETED
                 ^          |
                 +- RESUMING <-+        (any state) -> FAILED

A successful send is never taken as proof that bytes are durable: every
attempt sequence ends with a probe of the server's offset, and every retry
restarts from the probed offset rather than from the local cursor.
"""

import logging
import threading
import time
from typing import Callable, List, Optional

from shared.constants import DEFAULT_CHUNK_SIZE
from shared.errors import (
    ProtocolMismatchError,
    RetryExhaustedError,
    TransferCancelledError,
    TransientNetworkError,
)
from shared.models import (
    FailureKind,
    FatalFailure,
    RetryDecision,
    StepResult,
    StepSuccess,
    TransferReport,
    TransferState,
    TransientFailure,
    UploadProgress,
    UploadTicket,
)
from .content_source import ContentSource
from .retry_policy import RetryPolicy
from .transport import UploadTransport
from .verification import VerificationProbe

logger = logging.getLogger(__name__)


class ChunkedTransferEngine:
    """
    Drives one upload session to a verified end or a fatal error.

    An engine owns its cursor exclusively and runs strictly sequentially:
    chunks leave in increasing, non-overlapping offset order. Use one engine
    per concurrent transfer.
    """

    def __init__(self, transport: UploadTransport,
                 policy: Optional[RetryPolicy] = None,
                 chunk_size: int = DEFAULT_CHUNK_SIZE,
                 probe: Optional[VerificationProbe] = None,
                 sleep: Optional[Callable[[float], None]] = None,
                 cancel_event: Optional[threading.Event] = None,
                 progress_callback: Optional[Callable[[UploadProgress], None]] = None):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.transport = transport
        self.policy = policy or RetryPolicy()
        self.chunk_size = chunk_size
        self.probe = probe or VerificationProbe(transport)
        self.cancel_event = cancel_event
        if sleep is None:
            # A set cancel event cuts a backoff short
            sleep = cancel_event.wait if cancel_event is not None else time.sleep
        self._sleep = sleep
        self.progress_callback = progress_callback
        self.state = TransferState.IDLE
        self.history: List[TransferState] = [TransferState.IDLE]

    def _set_state(self, state: TransferState) -> None:
        if state != self.state:
            logger.debug("%s -> %s", self.state.name, state.name)
            self.state = state
            self.history.append(state)

    def _report_progress(self, offset: int, total: int, name: str) -> None:
        if self.progress_callback:
            self.progress_callback(UploadProgress.at(offset, total, name))

    def _check_cancelled(self, confirmed: int) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise TransferCancelledError(
                f"Transfer cancelled; server last confirmed {confirmed} bytes", confirmed
            )

    def _step(self, operation: Callable[[], object]) -> StepResult:
        """Run one network operation and tag its result."""
        try:
            return StepSuccess(operation())
        except Exception as e:
            kind = self.policy.classify(e)
            if kind.retryable:
                return TransientFailure(e, kind)
            return FatalFailure(e, kind)

    def _retry_or_raise(self, failure: TransientFailure, attempt: int,
                        confirmed: int) -> RetryDecision:
        decision = self.policy.decide(failure.error, attempt, confirmed)
        if not decision.should_retry:
            if decision.exhausted:
                raise RetryExhaustedError(
                    f"Gave up after {attempt - 1} retries: {failure.error}",
                    failure.error, attempt,
                ) from failure.error
            raise failure.error

        logger.warning(
            "Retry %d/%d in %.2fs after %s: %s",
            attempt, self.policy.max_retries, decision.delay,
            decision.kind.value, failure.error,
        )
        self._set_state(TransferState.RESUMING)
        self._sleep(decision.delay)
        self._check_cancelled(confirmed)
        return decision

    def transfer(self, ticket: UploadTicket, source: ContentSource,
                 start_offset: int = 0, probe_first: bool = False) -> TransferReport:
        """
        Send ``source`` through ``ticket`` starting at ``start_offset``.

        Args:
            ticket: Session to send to
            source: Content to send; the caller keeps ownership and closes it
            start_offset: Offset already known to be durable (0 for new uploads)
            probe_first: Ask the server for the durable offset before sending;
                start_offset is ignored and the probe is retried like any step

        Returns:
            TransferReport with ``verified`` set; a report is only returned
            once the server confirmed every byte

        Raises:
            RetryExhaustedError: Transient failures outlasted the retry budget
            SessionExpiredError: The ticket died server-side
            ProtocolMismatchError: The server's offset contradicts the content
            ResourceError: The content source could not be read
            TransferCancelledError: The cancel event was set
        """
        total = source.length()
        if start_offset < 0 or start_offset > total:
            raise ProtocolMismatchError(
                f"Start offset {start_offset} is outside the {total} byte source"
            )

        self.state = TransferState.IDLE
        self.history = [TransferState.IDLE]

        offset = start_offset
        confirmed = start_offset
        failures = 0
        incomplete_checks = 0
        retries = 0
        transmitted = 0
        verifications = 0
        needs_probe = probe_first

        try:
            while True:
                self._check_cancelled(confirmed)

                if needs_probe:
                    result = self._step(lambda: self.probe.probe(ticket))
                    verifications += 1
                    if isinstance(result, StepSuccess):
                        remote = result.value
                        if remote > total:
                            raise ProtocolMismatchError(
                                f"Server holds {remote} bytes of a {total} byte source"
                            )
                        if remote != offset:
                            logger.info("Resuming %s at durable offset %d (previously confirmed %d)",
                                        source.name, remote, offset)
                        offset = confirmed = remote
                        needs_probe = False
                        self._report_progress(offset, total, source.name)
                    elif isinstance(result, TransientFailure):
                        failures += 1
                        self._retry_or_raise(result, failures, confirmed)
                        retries += 1
                    elif isinstance(result, FatalFailure):
                        raise result.error
                    else:
                        raise TypeError(f"Unexpected step result {result!r}")
                    continue

                if offset < total:
                    self._set_state(TransferState.SENDING)
                    data = source.read_at(offset, self.chunk_size)
                    chunk_offset = offset
                    result = self._step(
                        lambda: self.transport.send_chunk(ticket, chunk_offset, data, total)
                    )
                    if isinstance(result, StepSuccess):
                        offset += len(data)
                        transmitted += len(data)
                        failures = 0
                        self._report_progress(offset, total, source.name)
                    elif isinstance(result, TransientFailure):
                        failures += 1
                        decision = self._retry_or_raise(result, failures, confirmed)
                        retries += 1
                        # Part of the chunk may have landed; only a probe knows
                        offset = decision.resume_offset
                        needs_probe = True
                    elif isinstance(result, FatalFailure):
                        raise result.error
                    else:
                        raise TypeError(f"Unexpected step result {result!r}")
                    continue

                self._set_state(TransferState.VERIFYING)
                result = self._step(lambda: self.probe.probe(ticket))
                verifications += 1
                if isinstance(result, StepSuccess):
                    remote = result.value
                    if remote == total:
                        confirmed = remote
                        self._set_state(TransferState.COMPLETED)
                        self._report_progress(remote, total, source.name)
                        return TransferReport(
                            final_offset=remote,
                            total_length=total,
                            verified=True,
                            state=self.state,
                            retries=retries,
                            bytes_transmitted=transmitted,
                            verifications=verifications,
                        )
                    if remote > total:
                        raise ProtocolMismatchError(
                            f"Server holds {remote} bytes of a {total} byte source"
                        )
                    # Sent everything but the server kept less
                    incomplete_checks += 1
                    shortfall = TransientFailure(
                        TransientNetworkError(f"Server confirmed {remote} of {total} bytes"),
                        FailureKind.TRANSIENT_NETWORK,
                    )
                    self._retry_or_raise(shortfall, incomplete_checks, remote)
                    retries += 1
                    offset = confirmed = remote
                    self._report_progress(offset, total, source.name)
                elif isinstance(result, TransientFailure):
                    failures += 1
                    self._retry_or_raise(result, failures, confirmed)
                    retries += 1
                elif isinstance(result, FatalFailure):
                    raise result.error
                else:
                    raise TypeError(f"Unexpected step result {result!r}")
        except BaseException:
            self._set_state(TransferState.FAILED)
            raise
