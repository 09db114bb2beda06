from typing import Dict, List, Optional, Tuple

import pytest

from shared.config import UploadConfig
from shared.errors import SessionExpiredError
from shared.models import ArtifactIdentity, Backend, UploadTicket
from upload_tool.retry_policy import RetryPolicy
from upload_tool.transport import UploadTransport


class FakeTransport(UploadTransport):
    """
    Scripted in-memory destination.

    ``send_script`` maps the index of a send_chunk call to
    (error or None, bytes of that chunk the server keeps). ``probe_errors``
    are raised by the next query_offset calls, in order.
    """

    def __init__(self):
        self.sessions: Dict[str, bytearray] = {}
        self.sent: List[Tuple[int, int]] = []
        self.accepted: List[Tuple[int, int]] = []
        self.send_script: Dict[int, Tuple[Optional[Exception], int]] = {}
        self.probe_errors: List[Exception] = []
        self.probe_calls = 0
        self.completed: Dict[str, ArtifactIdentity] = {}
        self.artifacts: Dict[int, ArtifactIdentity] = {}
        self.replaced: List[int] = []
        self.expired = set()
        self.issue_error: Optional[Exception] = None
        self._next_id = 1000

    def _ticket(self, total_length: int) -> UploadTicket:
        session_id = f"ticket-{len(self.sessions) + 1}"
        self.sessions[session_id] = bytearray()
        return UploadTicket(
            session_id=session_id,
            transfer_endpoint=f"https://upload.example.com/{session_id}",
            complete_uri=f"/users/1/uploads/{session_id}",
            total_length=total_length,
        )

    def issue_upload_ticket(self, total_length):
        if self.issue_error:
            raise self.issue_error
        return self._ticket(total_length)

    def issue_replace_ticket(self, artifact_id, total_length):
        self.replaced.append(artifact_id)
        return self._ticket(total_length)

    def send_chunk(self, ticket, offset, data, total_length):
        index = len(self.sent)
        self.sent.append((offset, len(data)))
        if ticket.session_id in self.expired:
            raise SessionExpiredError("gone")

        received = self.sessions[ticket.session_id]
        assert offset <= len(received), "chunk would leave a gap"
        error, kept = self.send_script.pop(index, (None, len(data)))
        del received[offset:]
        received.extend(data[:kept])
        if error is not None:
            raise error
        self.accepted.append((offset, len(data)))

    def query_offset(self, ticket):
        self.probe_calls += 1
        if ticket.session_id in self.expired:
            raise SessionExpiredError("gone")
        if self.probe_errors:
            raise self.probe_errors.pop(0)
        return len(self.sessions[ticket.session_id])

    def complete_upload(self, ticket):
        if ticket.session_id not in self.completed:
            artifact_id = self.replaced[-1] if self.replaced else self._next_id
            self._next_id += 1
            identity = ArtifactIdentity(id=artifact_id, uri=f"/videos/{artifact_id}")
            self.completed[ticket.session_id] = identity
            self.artifacts[artifact_id] = identity
        return self.completed[ticket.session_id]

    def get_artifact(self, artifact_id):
        return self.artifacts.get(artifact_id)

    def delete_artifact(self, artifact_id):
        return self.artifacts.pop(artifact_id, None) is not None


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def sleeps():
    """Records requested delays instead of sleeping."""
    return []


@pytest.fixture
def policy():
    return RetryPolicy(max_retries=3, base_delay=1.0, max_delay=30.0, jitter=0.0)


@pytest.fixture
def content():
    return bytes(i % 251 for i in range(10000))


@pytest.fixture
def config(tmp_path):
    return UploadConfig(
        backend=Backend.LOCAL,
        local_path=str(tmp_path / "store"),
        chunk_size=4096,
        max_retries=3,
        base_delay=1.0,
        max_delay=30.0,
        jitter=0.0,
    )
