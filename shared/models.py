"""
Data models for upload sessions, transfer results and retry decisions.

This module defines the value types passed between the transfer engine,
the transports and the client. Everything here is immutable except the
progress record handed to callbacks.
"""

from dataclasses import dataclass, asdict, replace
from typing import Dict, Optional, Any, Union
from enum import Enum
import json


class Backend(Enum):
    """Supported upload destinations."""
    VIMEO = "vimeo"
    LOCAL = "local"


class FailureKind(Enum):
    """Classification of a failed network step."""
    TRANSIENT_NETWORK = "transient_network"
    SERVER_BUSY = "server_busy"
    PROTOCOL_MISMATCH = "protocol_mismatch"
    FATAL = "fatal"

    @property
    def retryable(self) -> bool:
        return self in (FailureKind.TRANSIENT_NETWORK, FailureKind.SERVER_BUSY)


class TransferState(Enum):
    """States of a single transfer attempt sequence."""
    IDLE = "idle"
    SENDING = "sending"
    VERIFYING = "verifying"
    RESUMING = "resuming"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (TransferState.COMPLETED, TransferState.FAILED)


@dataclass(frozen=True)
class ArtifactIdentity:
    """The hosted video produced by a finalized upload."""
    id: int
    uri: str


@dataclass(frozen=True)
class UploadTicket:
    """
    A negotiated upload session.

    Attributes:
        session_id: Opaque server-assigned ticket id
        transfer_endpoint: URI that chunks are sent to
        complete_uri: URI used to finalize the upload, when the service needs one
        total_length: Size of the content the ticket was issued for
        artifact_id: Id of the hosted video, set once finalized
        artifact_uri: URI of the hosted video, set once finalized
    """
    session_id: str
    transfer_endpoint: str
    complete_uri: Optional[str] = None
    total_length: Optional[int] = None
    artifact_id: Optional[int] = None
    artifact_uri: Optional[str] = None

    @property
    def is_finalized(self) -> bool:
        return self.artifact_id is not None

    def with_artifact(self, identity: ArtifactIdentity) -> 'UploadTicket':
        """Return a copy of this ticket pointing at the finalized artifact."""
        return replace(self, artifact_id=identity.id, artifact_uri=identity.uri)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UploadTicket':
        """Create UploadTicket from dictionary, filtering unknown keys."""
        import dataclasses
        field_names = {f.name for f in dataclasses.fields(cls)}
        filtered_data = {k: v for k, v in data.items() if k in field_names}
        return cls(**filtered_data)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, json_str: str) -> 'UploadTicket':
        return cls.from_dict(json.loads(json_str))


@dataclass
class UploadProgress:
    """Progress information for file uploads."""
    bytes_uploaded: int
    total_bytes: int
    percentage: float
    file_name: str

    @classmethod
    def at(cls, offset: int, total: int, file_name: str) -> 'UploadProgress':
        percentage = (offset / total * 100) if total > 0 else 100.0
        return cls(offset, total, percentage, file_name)

    def __str__(self) -> str:
        return f"{self.file_name}: {self.percentage:.1f}% ({self.bytes_uploaded}/{self.total_bytes} bytes)"


@dataclass(frozen=True)
class RetryDecision:
    """What to do after a failed step. Computed per failure, never stored."""
    should_retry: bool
    resume_offset: Optional[int]
    delay: float
    kind: FailureKind
    exhausted: bool = False


# Tagged results for a single network step of the engine.

@dataclass(frozen=True)
class StepSuccess:
    value: Any = None


@dataclass(frozen=True)
class TransientFailure:
    error: Exception
    kind: FailureKind


@dataclass(frozen=True)
class FatalFailure:
    error: Exception
    kind: FailureKind


StepResult = Union[StepSuccess, TransientFailure, FatalFailure]


@dataclass(frozen=True)
class TransferReport:
    """What the engine observed during one attempt sequence."""
    final_offset: int
    total_length: int
    verified: bool
    state: TransferState
    retries: int = 0
    bytes_transmitted: int = 0
    verifications: int = 0


@dataclass(frozen=True)
class UploadOutcome:
    """
    Final result of an upload.

    ``is_verified_complete`` is only ever true when the service itself
    reported holding every byte; ``all_bytes_written`` only says the local
    cursor reached the end.
    """
    bytes_written: int
    total_length: int
    all_bytes_written: bool
    is_verified_complete: bool
    artifact_id: Optional[int] = None
    artifact_uri: Optional[str] = None
    retries: int = 0
    bytes_transmitted: int = 0
    verifications: int = 0

    def __post_init__(self):
        if self.all_bytes_written != (self.bytes_written == self.total_length):
            raise ValueError("all_bytes_written must match bytes_written == total_length")
        if self.is_verified_complete and not self.all_bytes_written:
            raise ValueError("an outcome cannot be verified complete with bytes missing")

    @classmethod
    def assemble(cls, report: TransferReport,
                 identity: Optional[ArtifactIdentity] = None) -> 'UploadOutcome':
        """Compose the engine report and the finalized artifact into an outcome."""
        return cls(
            bytes_written=report.final_offset,
            total_length=report.total_length,
            all_bytes_written=report.final_offset == report.total_length,
            is_verified_complete=report.verified,
            artifact_id=identity.id if identity else None,
            artifact_uri=identity.uri if identity else None,
            retries=report.retries,
            bytes_transmitted=report.bytes_transmitted,
            verifications=report.verifications,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
