"""
Authoritative checks of how many bytes the destination holds.
"""

import logging

from shared.errors import ProtocolMismatchError
from shared.models import UploadTicket
from .transport import UploadTransport

logger = logging.getLogger(__name__)


class VerificationProbe:
    """
    Asks the destination for the durable offset of a session.

    The engine trusts this value over its own write cursor every time the
    two could disagree. Probing never mutates anything, so it is safe to call
    repeatedly, including after the upload has been finalized.
    """

    def __init__(self, transport: UploadTransport):
        self.transport = transport

    def probe(self, ticket: UploadTicket) -> int:
        """
        Durable offset recorded for ``ticket``.

        Raises:
            SessionExpiredError: The ticket is gone server-side
            TransientNetworkError: The probe itself failed and may be retried
            ProtocolMismatchError: The service reported a nonsensical offset
        """
        offset = self.transport.query_offset(ticket)
        if offset < 0:
            raise ProtocolMismatchError(
                f"Service reported negative offset {offset} for ticket {ticket.session_id}"
            )
        logger.debug("Ticket %s: durable offset %d", ticket.session_id, offset)
        return offset

    def is_complete(self, ticket: UploadTicket, total_length: int) -> bool:
        offset = self.probe(ticket)
        if offset > total_length:
            raise ProtocolMismatchError(
                f"Service holds {offset} bytes but the content is only {total_length}"
            )
        return offset == total_length
