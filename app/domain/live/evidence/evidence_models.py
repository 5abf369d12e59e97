"""Evidence domain models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from app.schemas import ChainOfCustodyLog
from app.schemas.custody import JsonScalar


class EvidenceUploadStatus(str, Enum):
    """Status of the media copy attached to an evidence record.

    - NOT_REQUIRED: parent stream was already archived, its archived_url is the media
    - PENDING: captured from a live stream, recording not copied yet
    - UPLOADED: recording copied under the evidence prefix
    - FAILED: deferred upload attempted and failed
    """

    NOT_REQUIRED = "not_required"
    PENDING = "pending"
    UPLOADED = "uploaded"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


class EvidenceDetails(BaseModel):
    """Caller-supplied facts attached to an evidence save."""

    incident_id: str | None = None
    description: str | None = None
    metadata: dict[str, JsonScalar] = Field(default_factory=dict)


class EvidenceRecord(BaseModel):
    """Snapshot of a stream saved for evidence, with its own custody log."""

    evidence_id: str
    stream_id: str
    streamer_id: str

    # Copied from the stream at capture time
    title: str
    description: str | None = None
    playback_id: str | None = None
    archived_url: str | None = None
    stream_created_at: datetime

    incident_id: str | None = None
    evidence_description: str | None = None
    evidence_metadata: dict[str, JsonScalar] = Field(default_factory=dict)

    custody_log: ChainOfCustodyLog
    custody_hash: str

    # Deferred upload, the only mutable part of the record
    upload_status: EvidenceUploadStatus
    upload_path: str | None = None
    upload_url: str | None = None
    upload_error: str | None = None

    created_at: datetime
    updated_at: datetime


class EvidenceUploadPatch(BaseModel):
    model_config = ConfigDict(extra="forbid")

    upload_status: EvidenceUploadStatus
    upload_path: str | None = None
    upload_url: str | None = None
    upload_error: str | None = None
    updated_at: datetime
