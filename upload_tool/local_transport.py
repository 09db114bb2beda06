"""
Local filesystem upload destination.

Implements the UploadTransport interface against a directory, for
self-hosting on a NAS or local drive and for exercising resumable uploads
without network access. Sessions live under ``sessions/`` as a partial file
plus a JSON state file; finalized uploads live under ``videos/``.
"""

import json
import logging
import os
import threading
import uuid
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from shared.errors import ProtocolMismatchError, RemoteError, SessionExpiredError
from shared.models import ArtifactIdentity, UploadTicket
from .transport import UploadTransport

logger = logging.getLogger(__name__)


class LocalTransport(UploadTransport):
    """Storage backend that uses the local filesystem."""

    def __init__(self, base_path: str):
        self.base_path = Path(base_path).expanduser().absolute()
        self.sessions_dir = self.base_path / "sessions"
        self.videos_dir = self.base_path / "videos"
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        self.videos_dir.mkdir(parents=True, exist_ok=True)
        self._id_lock = threading.Lock()

    def _session_paths(self, session_id: str) -> Tuple[Path, Path]:
        """Map a session id to its partial data file and state file."""
        partial = self.sessions_dir / f"{session_id}.partial"
        state = self.sessions_dir / f"{session_id}.json"
        return partial, state

    def _video_path(self, artifact_id: int) -> Path:
        return self.videos_dir / f"{artifact_id}.bin"

    def _read_state(self, session_id: str) -> Dict[str, Any]:
        _, state_path = self._session_paths(session_id)
        if not state_path.exists():
            raise SessionExpiredError(f"Upload session {session_id} does not exist")
        return json.loads(state_path.read_text())

    def _write_state(self, session_id: str, state: Dict[str, Any]) -> None:
        _, state_path = self._session_paths(session_id)
        tmp_path = state_path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(state))
        tmp_path.replace(state_path)

    def _next_artifact_id(self) -> int:
        counter = self.base_path / "next_id"
        with self._id_lock:
            next_id = int(counter.read_text()) if counter.exists() else 1
            counter.write_text(str(next_id + 1))
        return next_id

    def _open_session(self, total_length: int, replaces: Optional[int]) -> UploadTicket:
        session_id = uuid.uuid4().hex
        partial, _ = self._session_paths(session_id)
        partial.touch()
        self._write_state(session_id, {
            "total_length": total_length,
            "replaces": replaces,
            "completed": False,
            "artifact_id": None,
        })
        return UploadTicket(
            session_id=session_id,
            transfer_endpoint=partial.as_uri(),
            complete_uri=f"local://sessions/{session_id}",
            total_length=total_length,
        )

    def issue_upload_ticket(self, total_length: int) -> UploadTicket:
        ticket = self._open_session(total_length, replaces=None)
        logger.info("Opened local session %s for %d bytes", ticket.session_id, total_length)
        return ticket

    def issue_replace_ticket(self, artifact_id: int, total_length: int) -> UploadTicket:
        if not self._video_path(artifact_id).exists():
            raise RemoteError(f"Video {artifact_id} does not exist", 404)
        return self._open_session(total_length, replaces=artifact_id)

    def send_chunk(self, ticket: UploadTicket, offset: int, data: bytes,
                   total_length: int) -> None:
        state = self._read_state(ticket.session_id)
        if state["completed"]:
            raise ProtocolMismatchError(f"Session {ticket.session_id} is already complete")
        if total_length != state["total_length"]:
            raise ProtocolMismatchError(
                f"Session was opened for {state['total_length']} bytes, not {total_length}"
            )
        if offset + len(data) > total_length:
            raise ProtocolMismatchError(
                f"Range {offset}-{offset + len(data) - 1} is outside {total_length} bytes"
            )

        partial, _ = self._session_paths(ticket.session_id)
        try:
            with open(partial, "r+b") as f:
                received = f.seek(0, os.SEEK_END)
                if offset > received:
                    raise ProtocolMismatchError(
                        f"Chunk at {offset} would leave a gap after {received} bytes"
                    )
                # Restarting inside the received range replaces the tail
                f.truncate(offset)
                f.seek(offset)
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise RemoteError(f"Local write failed for session {ticket.session_id}: {e}") from e

    def query_offset(self, ticket: UploadTicket) -> int:
        state = self._read_state(ticket.session_id)
        if state["completed"]:
            return state["total_length"]
        partial, _ = self._session_paths(ticket.session_id)
        return partial.stat().st_size

    def complete_upload(self, ticket: UploadTicket) -> ArtifactIdentity:
        state = self._read_state(ticket.session_id)
        if state["completed"]:
            artifact_id = state["artifact_id"]
            return ArtifactIdentity(id=artifact_id, uri=f"/videos/{artifact_id}")

        partial, _ = self._session_paths(ticket.session_id)
        received = partial.stat().st_size
        if received != state["total_length"]:
            raise ProtocolMismatchError(
                f"Cannot complete session {ticket.session_id}: "
                f"{received} of {state['total_length']} bytes received"
            )

        artifact_id = state["replaces"] or self._next_artifact_id()
        partial.replace(self._video_path(artifact_id))

        state.update(completed=True, artifact_id=artifact_id)
        self._write_state(ticket.session_id, state)
        logger.info("Local session %s stored as video %d", ticket.session_id, artifact_id)
        return ArtifactIdentity(id=artifact_id, uri=f"/videos/{artifact_id}")

    def get_artifact(self, artifact_id: int) -> Optional[ArtifactIdentity]:
        if not self._video_path(artifact_id).exists():
            return None
        return ArtifactIdentity(id=artifact_id, uri=f"/videos/{artifact_id}")

    def delete_artifact(self, artifact_id: int) -> bool:
        path = self._video_path(artifact_id)
        if not path.exists():
            return False
        os.remove(path)
        return True
