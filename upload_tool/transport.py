"""
Abstract base class for upload destinations.

This module defines the interface every backend must implement so the
transfer engine can drive resumable uploads without knowing whether bytes
go to the Vimeo API or to a local directory.
"""

from abc import ABC, abstractmethod
from typing import Optional

from shared.models import ArtifactIdentity, UploadTicket


class UploadTransport(ABC):
    """
    Network collaborator of the transfer engine.

    Implementations translate their native failures into the types in
    ``shared.errors``: transient failures as ``TransientNetworkError`` (or
    ``ServerBusyError``), invalid tickets as ``SessionExpiredError``,
    offset contract violations as ``ProtocolMismatchError``.
    """

    @abstractmethod
    def issue_upload_ticket(self, total_length: int) -> UploadTicket:
        """
        Open a new upload session.

        Args:
            total_length: Size in bytes of the content that will be sent

        Returns:
            UploadTicket for the new session

        Raises:
            AuthError: Credentials were rejected
            QuotaError: The account cannot take this many bytes
        """
        pass

    @abstractmethod
    def issue_replace_ticket(self, artifact_id: int, total_length: int) -> UploadTicket:
        """
        Open a session whose content replaces an existing artifact.

        Args:
            artifact_id: Id of the hosted video being replaced
            total_length: Size in bytes of the new content

        Returns:
            UploadTicket for the new session
        """
        pass

    @abstractmethod
    def send_chunk(self, ticket: UploadTicket, offset: int, data: bytes,
                   total_length: int) -> None:
        """
        Send ``data`` as the byte range starting at ``offset``.

        Success means the request completed, not that the bytes are
        durable; only ``query_offset`` answers that.
        """
        pass

    @abstractmethod
    def query_offset(self, ticket: UploadTicket) -> int:
        """
        Return how many bytes the destination durably holds for the session.

        Must be free of side effects and safe to call any number of times.
        """
        pass

    @abstractmethod
    def complete_upload(self, ticket: UploadTicket) -> ArtifactIdentity:
        """
        Finalize a fully verified session.

        Returns:
            Identity of the hosted artifact
        """
        pass

    @abstractmethod
    def get_artifact(self, artifact_id: int) -> Optional[ArtifactIdentity]:
        """Look up an artifact, returning None if it does not exist."""
        pass

    @abstractmethod
    def delete_artifact(self, artifact_id: int) -> bool:
        """
        Delete an artifact.

        Returns:
            True if it was deleted, False if it did not exist
        """
        pass

    def close(self) -> None:
        """Release pooled connections. No-op by default."""
