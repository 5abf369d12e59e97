"""Chain-of-custody log schema.

Persisted representation::

    {"streamId": "...", "entries": [{"id", "timestamp", "event", "actor", "details"}, ...]}

``details`` is a closed tagged union keyed by ``event``: every event kind has
exactly one payload model, so the canonical serialization (and therefore the
integrity hash) is well defined.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

CUSTODY_LOG_VERSION = "1.0"

JsonScalar = str | int | float | bool | None


class CustodyEvent(str, Enum):
    LOG_CREATED = "log_created"
    STREAM_STARTED = "stream_started"
    STREAM_STOPPED = "stream_stopped"
    ARCHIVE_INITIATED = "archive_initiated"
    ARCHIVE_COMPLETED = "archive_completed"
    ARCHIVE_FAILED = "archive_failed"
    ARCHIVE_RESET = "archive_reset"
    ARCHIVE_OBJECT_REMOVED = "archive_object_removed"
    SAVED_FOR_EVIDENCE = "saved_for_evidence"

    def __str__(self) -> str:
        return self.value


class ArchiveStage(str, Enum):
    """Step of the archival pipeline that failed."""

    CHECKPOINT = "checkpoint"
    FETCH = "fetch"
    UPLOAD = "upload"
    PERSIST = "persist"

    def __str__(self) -> str:
        return self.value


class _Payload(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class GeoPoint(_Payload):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy: float | None = None


class ScreenResolution(_Payload):
    width: int
    height: int


class CameraInfo(_Payload):
    width: int
    height: int
    facing_mode: str
    frame_rate: float


class MicrophoneInfo(_Payload):
    sample_rate: int
    channel_count: int


class DeviceInfo(_Payload):
    """Broadcaster device snapshot captured at stream creation."""

    user_agent: str
    platform: str
    hardware_concurrency: int | None = None
    device_memory: float | None = None
    screen_resolution: ScreenResolution | None = None
    pixel_ratio: float | None = None
    camera: CameraInfo | None = None
    microphone: MicrophoneInfo | None = None


# ==================== PAYLOADS ====================


class LogCreatedDetails(_Payload):
    version: str = CUSTODY_LOG_VERSION
    title: str
    description: str | None = None
    device: DeviceInfo | None = None


class StreamStartedDetails(_Payload):
    provider_stream_id: str
    playback_id: str
    gps: GeoPoint | None = None


class StreamStoppedDetails(_Payload):
    final_gps: GeoPoint | None = None
    duration_seconds: float | None = Field(default=None, ge=0)
    save_for_evidence: bool = False


class ArchiveInitiatedDetails(_Payload):
    source_url: str
    title: str
    description: str | None = None


class ArchiveCompletedDetails(_Payload):
    public_url: str
    file_path: str
    file_size: int = Field(ge=0)
    content_type: str
    sha256: str


class ArchiveFailedDetails(_Payload):
    stage: ArchiveStage
    reason: str
    error: str
    file_path: str | None = None


class ArchiveResetDetails(_Payload):
    reason: str
    stale_since: datetime


class ArchiveObjectRemovedDetails(_Payload):
    file_path: str
    reason: str


class SavedForEvidenceDetails(_Payload):
    evidence_id: str
    incident_id: str | None = None
    description: str | None = None
    metadata: dict[str, JsonScalar] = Field(default_factory=dict)


# ==================== ENTRIES ====================


class _Entry(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    timestamp: datetime
    actor: str


class LogCreatedEntry(_Entry):
    event: Literal["log_created"] = "log_created"
    details: LogCreatedDetails


class StreamStartedEntry(_Entry):
    event: Literal["stream_started"] = "stream_started"
    details: StreamStartedDetails


class StreamStoppedEntry(_Entry):
    event: Literal["stream_stopped"] = "stream_stopped"
    details: StreamStoppedDetails


class ArchiveInitiatedEntry(_Entry):
    event: Literal["archive_initiated"] = "archive_initiated"
    details: ArchiveInitiatedDetails


class ArchiveCompletedEntry(_Entry):
    event: Literal["archive_completed"] = "archive_completed"
    details: ArchiveCompletedDetails


class ArchiveFailedEntry(_Entry):
    event: Literal["archive_failed"] = "archive_failed"
    details: ArchiveFailedDetails


class ArchiveResetEntry(_Entry):
    event: Literal["archive_reset"] = "archive_reset"
    details: ArchiveResetDetails


class ArchiveObjectRemovedEntry(_Entry):
    event: Literal["archive_object_removed"] = "archive_object_removed"
    details: ArchiveObjectRemovedDetails


class SavedForEvidenceEntry(_Entry):
    event: Literal["saved_for_evidence"] = "saved_for_evidence"
    details: SavedForEvidenceDetails


LogEntry = Annotated[
    LogCreatedEntry
    | StreamStartedEntry
    | StreamStoppedEntry
    | ArchiveInitiatedEntry
    | ArchiveCompletedEntry
    | ArchiveFailedEntry
    | ArchiveResetEntry
    | ArchiveObjectRemovedEntry
    | SavedForEvidenceEntry,
    Field(discriminator="event"),
]

# Entry model and payload model per event kind
ENTRY_TYPES: dict[CustodyEvent, tuple[type[_Entry], type[_Payload]]] = {
    CustodyEvent.LOG_CREATED: (LogCreatedEntry, LogCreatedDetails),
    CustodyEvent.STREAM_STARTED: (StreamStartedEntry, StreamStartedDetails),
    CustodyEvent.STREAM_STOPPED: (StreamStoppedEntry, StreamStoppedDetails),
    CustodyEvent.ARCHIVE_INITIATED: (ArchiveInitiatedEntry, ArchiveInitiatedDetails),
    CustodyEvent.ARCHIVE_COMPLETED: (ArchiveCompletedEntry, ArchiveCompletedDetails),
    CustodyEvent.ARCHIVE_FAILED: (ArchiveFailedEntry, ArchiveFailedDetails),
    CustodyEvent.ARCHIVE_RESET: (ArchiveResetEntry, ArchiveResetDetails),
    CustodyEvent.ARCHIVE_OBJECT_REMOVED: (
        ArchiveObjectRemovedEntry,
        ArchiveObjectRemovedDetails,
    ),
    CustodyEvent.SAVED_FOR_EVIDENCE: (SavedForEvidenceEntry, SavedForEvidenceDetails),
}


class ChainOfCustodyLog(BaseModel):
    """Append-only custody trail for one stream. Build it with app.domain.custody."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    stream_id: str = Field(alias="streamId")
    entries: tuple[LogEntry, ...]

    @property
    def last_entry(self) -> LogEntry:
        return self.entries[-1]

    def events(self) -> list[str]:
        return [entry.event for entry in self.entries]


__all__ = [
    "ENTRY_TYPES",
    "ArchiveCompletedDetails",
    "ArchiveFailedDetails",
    "ArchiveInitiatedDetails",
    "ArchiveObjectRemovedDetails",
    "ArchiveResetDetails",
    "ArchiveStage",
    "CUSTODY_LOG_VERSION",
    "CameraInfo",
    "ChainOfCustodyLog",
    "CustodyEvent",
    "DeviceInfo",
    "GeoPoint",
    "JsonScalar",
    "LogCreatedDetails",
    "LogEntry",
    "MicrophoneInfo",
    "SavedForEvidenceDetails",
    "ScreenResolution",
    "StreamStartedDetails",
    "StreamStoppedDetails",
]
