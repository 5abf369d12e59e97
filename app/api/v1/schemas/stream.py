from datetime import datetime

from pydantic import BaseModel, Field, field_serializer

from app.domain.live.evidence.evidence_models import EvidenceRecord, EvidenceUploadStatus
from app.domain.live.stream.stream_models import StreamResponse
from app.schemas import DeviceInfo, GeoPoint
from app.schemas.custody import JsonScalar

from .serializers import serialize_optional_utc_datetime, serialize_utc_datetime


class CreateStreamIn(BaseModel):
    title: str = Field(description="Title of the stream")
    description: str | None = Field(default=None, description="Description of the stream")
    device: DeviceInfo | None = Field(
        default=None, description="Broadcaster device snapshot recorded in the custody log"
    )


class StreamIdIn(BaseModel):
    stream_id: str = Field(description="Unique identifier of the stream")


class StartBroadcastIn(StreamIdIn):
    gps: GeoPoint | None = Field(default=None, description="Location at broadcast start")


class StopBroadcastIn(StreamIdIn):
    recorded_url: str | None = Field(
        default=None, description="URL of the recorded asset, required unless saving for evidence"
    )
    final_gps: GeoPoint | None = Field(default=None, description="Location at broadcast end")
    duration_seconds: float | None = Field(default=None, ge=0)
    save_for_evidence: bool = Field(default=False, description="Save as evidence instead of archiving")
    incident_id: str | None = None
    evidence_description: str | None = None


class ArchiveStreamIn(StreamIdIn):
    recorded_url: str = Field(description="URL of the recorded asset to archive")


class SaveForEvidenceIn(StreamIdIn):
    incident_id: str | None = Field(default=None, description="External incident reference")
    description: str | None = Field(default=None, description="Why the stream is evidence")
    metadata: dict[str, JsonScalar] = Field(default_factory=dict)


class UpdateStreamIn(StreamIdIn):
    title: str | None = Field(default=None, description="Title of the stream")
    description: str | None = Field(default=None, description="Description of the stream")


class CompleteEvidenceUploadIn(BaseModel):
    evidence_id: str = Field(description="Unique identifier of the evidence record")
    recorded_url: str = Field(description="URL of the recorded asset to copy")


class StreamOut(StreamResponse):
    @field_serializer("created_at", "updated_at")
    def serialize_datetime(self, dt: datetime) -> str:
        return serialize_utc_datetime(dt)

    @field_serializer("started_at", "ended_at")
    def serialize_optional_datetime(self, dt: datetime | None) -> str | None:
        return serialize_optional_utc_datetime(dt)

    @classmethod
    def from_response(cls, response: StreamResponse) -> "StreamOut":
        return cls(**response.model_dump())


class ListStreamsOut(BaseModel):
    streams: list[StreamOut]


class StopBroadcastOut(BaseModel):
    stream: StreamOut
    evidence_id: str | None = None


class EvidenceOut(BaseModel):
    evidence_id: str
    stream_id: str
    streamer_id: str
    title: str
    description: str | None = None
    playback_id: str | None = None
    archived_url: str | None = None
    incident_id: str | None = None
    evidence_description: str | None = None
    evidence_metadata: dict[str, JsonScalar] = Field(default_factory=dict)
    custody_hash: str
    custody_events: list[str]
    upload_status: EvidenceUploadStatus
    upload_url: str | None = None
    upload_error: str | None = None
    stream_created_at: datetime
    created_at: datetime
    updated_at: datetime

    @field_serializer("stream_created_at", "created_at", "updated_at")
    def serialize_datetime(self, dt: datetime) -> str:
        return serialize_utc_datetime(dt)

    @classmethod
    def from_record(cls, record: EvidenceRecord) -> "EvidenceOut":
        return cls(
            **record.model_dump(
                include=set(cls.model_fields) - {"custody_events"},
            ),
            custody_events=record.custody_log.events(),
        )


class ListEvidenceOut(BaseModel):
    evidence: list[EvidenceOut]
