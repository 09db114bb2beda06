"""
Upload client: the library entry point for uploading, resuming and
replacing videos.
"""

import concurrent.futures
import functools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional, Union

from shared.config import UploadConfig
from shared.errors import ProtocolMismatchError
from shared.models import (
    ArtifactIdentity,
    TransferReport,
    TransferState,
    UploadOutcome,
    UploadProgress,
    UploadTicket,
)
from .content_source import ContentSource
from .engine import ChunkedTransferEngine
from .retry_policy import RetryPolicy
from .transport import UploadTransport
from .transport_factory import TransportFactory
from .verification import VerificationProbe

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[UploadProgress], None]
PathProgressCallback = Callable[[str, UploadProgress], None]
TicketCallback = Callable[[UploadTicket, ContentSource], None]


class UploadClient:
    """
    Uploads content through a transport with resumable, verified transfers.

    All settings come from the ``UploadConfig`` passed in; nothing is read
    from global state. A client may run several transfers at once (see
    ``upload_many``); each transfer gets its own engine and cursor.
    """

    def __init__(self, config: UploadConfig,
                 transport: Optional[UploadTransport] = None,
                 sleep: Optional[Callable[[float], None]] = None,
                 cancel_event: Optional[threading.Event] = None,
                 on_ticket: Optional[TicketCallback] = None):
        self.config = config
        self.transport = transport or TransportFactory.create(config)
        self.policy = RetryPolicy.from_config(config)
        self.probe = VerificationProbe(self.transport)
        self.cancel_event = cancel_event
        self.on_ticket = on_ticket
        self._sleep = sleep

    def _engine(self, progress_callback: Optional[ProgressCallback] = None) -> ChunkedTransferEngine:
        return ChunkedTransferEngine(
            self.transport,
            policy=self.policy,
            chunk_size=self.config.chunk_size,
            probe=self.probe,
            sleep=self._sleep,
            cancel_event=self.cancel_event,
            progress_callback=progress_callback,
        )

    def _notify_ticket(self, ticket: UploadTicket, source: ContentSource) -> None:
        if self.on_ticket:
            self.on_ticket(ticket, source)

    def _run(self, ticket: UploadTicket, source: ContentSource, start_offset: int,
             progress_callback: Optional[ProgressCallback],
             probe_first: bool = False) -> UploadOutcome:
        self._notify_ticket(ticket, source)

        report = self._engine(progress_callback).transfer(
            ticket, source, start_offset, probe_first=probe_first
        )

        # Finalize only after the server confirmed every byte
        identity = self.transport.complete_upload(ticket)
        self._notify_ticket(ticket.with_artifact(identity), source)
        return UploadOutcome.assemble(report, identity)

    def upload(self, source: ContentSource,
               progress_callback: Optional[ProgressCallback] = None) -> UploadOutcome:
        """
        Upload ``source`` as a new video.

        Raises:
            AuthError, QuotaError: Ticket issuance was refused
            RetryExhaustedError, SessionExpiredError, ProtocolMismatchError,
            ResourceError, TransferCancelledError: see ChunkedTransferEngine.transfer
        """
        ticket = self.transport.issue_upload_ticket(source.length())
        return self._run(ticket, source, 0, progress_callback)

    def resume_upload(self, ticket: UploadTicket, source: ContentSource,
                      offset: Optional[int] = None,
                      progress_callback: Optional[ProgressCallback] = None) -> UploadOutcome:
        """
        Continue an interrupted upload.

        Args:
            ticket: Ticket of the interrupted session
            source: The same content the ticket was issued for
            offset: Offset known to be durable; probed from the server when None
        """
        total = source.length()
        if ticket.total_length is not None and ticket.total_length != total:
            raise ProtocolMismatchError(
                f"Ticket {ticket.session_id} is for {ticket.total_length} bytes, "
                f"source has {total}"
            )

        if ticket.is_finalized:
            # Nothing to send; report what the server holds
            remote = self.probe.probe(ticket)
            if remote > total:
                raise ProtocolMismatchError(f"Server holds {remote} bytes of a {total} byte source")
            report = TransferReport(
                final_offset=remote,
                total_length=total,
                verified=remote == total,
                state=TransferState.COMPLETED if remote == total else TransferState.FAILED,
                verifications=1,
            )
            identity = ArtifactIdentity(id=ticket.artifact_id, uri=ticket.artifact_uri or "")
            return UploadOutcome.assemble(report, identity)

        if offset is None:
            return self._run(ticket, source, 0, progress_callback, probe_first=True)
        return self._run(ticket, source, offset, progress_callback)

    def replace(self, artifact_id: int, source: ContentSource,
                progress_callback: Optional[ProgressCallback] = None) -> UploadOutcome:
        """Upload ``source`` as the new content of an existing video."""
        ticket = self.transport.issue_replace_ticket(artifact_id, source.length())
        return self._run(ticket, source, 0, progress_callback)

    def upload_file(self, path: Union[str, Path],
                    progress_callback: Optional[ProgressCallback] = None) -> UploadOutcome:
        with ContentSource.open(path) as source:
            return self.upload(source, progress_callback)

    def upload_many(self, paths: Iterable[Union[str, Path]], parallel: Optional[int] = None,
                    progress_callback: Optional[PathProgressCallback] = None
                    ) -> Dict[str, Union[UploadOutcome, Exception]]:
        """
        Upload several files concurrently, one independent transfer each.

        Args:
            paths: Files to upload
            parallel: Worker threads (defaults to config.parallel)
            progress_callback: Called with the path, as a string, and its progress

        Returns:
            Map of path to its outcome, or to the error that ended its transfer
        """
        results: Dict[str, Union[UploadOutcome, Exception]] = {}
        workers = parallel or self.config.parallel

        with ThreadPoolExecutor(max_workers=workers) as executor:
            future_to_path = {}
            for path in paths:
                key = str(path)
                callback = functools.partial(progress_callback, key) if progress_callback else None
                future_to_path[executor.submit(self.upload_file, path, callback)] = key
            for future in concurrent.futures.as_completed(future_to_path):
                path = future_to_path[future]
                try:
                    results[path] = future.result()
                except Exception as e:
                    logger.error("Upload of %s failed: %s", path, e)
                    results[path] = e
        return results

    def verify(self, ticket: UploadTicket, total_length: int) -> bool:
        """True when the server holds exactly ``total_length`` bytes for the ticket."""
        return self.probe.is_complete(ticket, total_length)

    def get_artifact(self, artifact_id: int):
        return self.transport.get_artifact(artifact_id)

    def delete_artifact(self, artifact_id: int) -> bool:
        return self.transport.delete_artifact(artifact_id)

    def close(self) -> None:
        self.transport.close()

    def __enter__(self) -> 'UploadClient':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
