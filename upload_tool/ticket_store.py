"""
On-disk record of upload tickets, so an interrupted upload can be resumed
by a later process.
"""

import hashlib
import json
import logging
from pathlib import Path
from typing import Optional, Union

from shared.constants import DEFAULT_STATE_DIR
from shared.models import UploadTicket
from .content_source import ContentSource

logger = logging.getLogger(__name__)


class TicketStore:
    """One JSON state file per uploaded file, keyed by its absolute path."""

    def __init__(self, state_dir: Union[str, Path] = DEFAULT_STATE_DIR):
        self.state_dir = Path(state_dir).expanduser()
        self.state_dir.mkdir(parents=True, exist_ok=True)

    def _state_path(self, file_path: Union[str, Path]) -> Path:
        key = str(Path(file_path).expanduser().absolute())
        digest = hashlib.sha256(key.encode('utf-8')).hexdigest()[:32]
        return self.state_dir / f"{digest}.json"

    def save(self, ticket: UploadTicket, file_path: Union[str, Path]) -> None:
        state_path = self._state_path(file_path)
        record = {
            "file": str(Path(file_path).expanduser().absolute()),
            "ticket": ticket.to_dict(),
        }
        tmp_path = state_path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(record, indent=2))
        tmp_path.replace(state_path)
        logger.debug("Saved ticket %s for %s", ticket.session_id, file_path)

    def load(self, file_path: Union[str, Path]) -> Optional[UploadTicket]:
        state_path = self._state_path(file_path)
        if not state_path.exists():
            return None
        try:
            record = json.loads(state_path.read_text())
            return UploadTicket.from_dict(record["ticket"])
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring corrupt ticket state %s: %s", state_path, e)
            return None

    def remove(self, file_path: Union[str, Path]) -> bool:
        state_path = self._state_path(file_path)
        if not state_path.exists():
            return False
        state_path.unlink()
        return True

    def on_ticket(self, ticket: UploadTicket, source: ContentSource) -> None:
        """UploadClient hook: remember tickets of sources that came from files."""
        if source.path is not None:
            self.save(ticket, source.path)
