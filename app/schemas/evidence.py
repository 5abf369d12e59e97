"""Evidence ODM schema."""

from datetime import datetime
from typing import Any

from beanie import Document, Indexed
from pydantic import Field, field_validator

from .schema_utils import parse_mongo_datetime


class EvidenceDocument(Document):
    """Evidence record document. Only the upload_* fields change after insert."""

    evidence_id: Indexed(str, unique=True)  # type: ignore[valid-type]
    stream_id: Indexed(str)  # type: ignore[valid-type]
    streamer_id: str

    title: str
    description: str | None = None
    playback_id: str | None = None
    archived_url: str | None = None
    stream_created_at: datetime

    incident_id: str | None = None
    evidence_description: str | None = None
    evidence_metadata: dict[str, Any] = Field(default_factory=dict)

    custody_log: str
    custody_hash: str

    upload_status: str
    upload_path: str | None = None
    upload_url: str | None = None
    upload_error: str | None = None

    created_at: datetime
    updated_at: datetime

    @field_validator("stream_created_at", "created_at", "updated_at", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        return parse_mongo_datetime(v)

    class Settings:
        name = "evidence"
        indexes = [
            [("evidence_id", 1)],
            [("stream_id", 1), ("created_at", -1)],
        ]
