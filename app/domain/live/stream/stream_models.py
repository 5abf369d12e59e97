"""Stream domain models."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.domain.custody import compute_hash
from app.schemas import ChainOfCustodyLog, DeviceInfo, GeoPoint, StreamState


class Stream(BaseModel):
    """One broadcast lifecycle together with its custody log."""

    stream_id: str
    streamer_id: str
    title: str
    description: str | None = None

    status: StreamState = StreamState.PENDING

    custody_log: ChainOfCustodyLog
    custody_hash: str

    # Broadcast provider references
    provider_stream_id: str | None = None
    playback_id: str | None = None
    stream_key: str | None = None

    # Archived media, set when archival completes
    archived_url: str | None = None
    file_path: str | None = None
    file_size: int | None = None

    # Durability checkpoint of the archival pipeline
    archive_started_at: datetime | None = None
    archive_finished_at: datetime | None = None

    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    ended_at: datetime | None = None

    version: int = 1

    @property
    def archive_in_progress(self) -> bool:
        return self.archive_started_at is not None and self.archive_finished_at is None


class StreamPatch(BaseModel):
    """Partial stream update. Only explicitly set fields are written."""

    model_config = ConfigDict(extra="forbid")

    title: str | None = None
    description: str | None = None
    status: StreamState | None = None
    custody_log: ChainOfCustodyLog | None = None
    custody_hash: str | None = None
    provider_stream_id: str | None = None
    playback_id: str | None = None
    stream_key: str | None = None
    archived_url: str | None = None
    file_path: str | None = None
    file_size: int | None = None
    archive_started_at: datetime | None = None
    archive_finished_at: datetime | None = None
    updated_at: datetime | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None

    @classmethod
    def with_log(cls, log: ChainOfCustodyLog, **fields) -> "StreamPatch":
        """Build a patch that writes the log together with its hash."""
        return cls(custody_log=log, custody_hash=compute_hash(log), **fields)

    def changes(self) -> dict:
        return {name: getattr(self, name) for name in self.model_fields_set}


class StreamCreateParams(BaseModel):
    """Parameters for creating a stream."""

    streamer_id: str
    title: str
    description: str | None = None
    device: DeviceInfo | None = None

    @field_validator("streamer_id", "title")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class StreamUpdateParams(BaseModel):
    """Descriptive fields that may change; status is never updated this way."""

    title: str | None = None
    description: str | None = None


class StopBroadcastParams(BaseModel):
    """Parameters for stopping a broadcast."""

    recorded_url: str | None = None
    final_gps: GeoPoint | None = None
    duration_seconds: float | None = Field(default=None, ge=0)
    save_for_evidence: bool = False
    incident_id: str | None = None
    evidence_description: str | None = None


class StreamResponse(BaseModel):
    """Stream response model."""

    stream_id: str
    streamer_id: str
    title: str
    description: str | None = None
    status: StreamState
    playback_id: str | None = None
    archived_url: str | None = None
    file_path: str | None = None
    file_size: int | None = None
    custody_hash: str
    custody_entries: int
    archive_in_progress: bool
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    ended_at: datetime | None = None

    @classmethod
    def from_stream(cls, stream: Stream) -> "StreamResponse":
        return cls(
            **stream.model_dump(
                include=set(cls.model_fields) - {"custody_entries", "archive_in_progress"}
            ),
            custody_entries=len(stream.custody_log.entries),
            archive_in_progress=stream.archive_in_progress,
        )


class BroadcastStartResponse(BaseModel):
    """Response model for starting a broadcast."""

    stream_id: str
    provider_stream_id: str
    playback_id: str
    stream_key: str
    rtmp_url: str


class CustodyReport(BaseModel):
    """Result of re-verifying a stored custody log."""

    stream_id: str
    custody_hash: str
    computed_hash: str
    valid: bool
    entries: int
    events: list[str]


class StartBroadcastParams(BaseModel):
    """Parameters for starting a broadcast."""

    gps: GeoPoint | None = None


class StopBroadcastResponse(BaseModel):
    """Outcome of stopping a broadcast: archived stream or evidence record."""

    stream: StreamResponse
    evidence_id: str | None = None
