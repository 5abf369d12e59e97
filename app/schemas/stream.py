"""Stream ODM schema."""

from datetime import datetime
from typing import Any

from beanie import Document, Indexed
from pydantic import field_validator
from pymongo import IndexModel

from .schema_utils import parse_mongo_datetime
from .stream_state import StreamState


class StreamDocument(Document):
    """Stream document model.

    The custody log is stored as its canonical JSON text so the stored bytes are
    exactly the bytes that were hashed into ``custody_hash``.
    """

    stream_id: Indexed(str, unique=True)  # type: ignore[valid-type]
    streamer_id: Indexed(str)  # type: ignore[valid-type]

    title: str
    description: str | None = None
    status: StreamState = StreamState.PENDING

    custody_log: str
    custody_hash: str

    provider_stream_id: str | None = None
    playback_id: str | None = None
    stream_key: str | None = None

    archived_url: str | None = None
    file_path: str | None = None
    file_size: int | None = None

    archive_started_at: datetime | None = None
    archive_finished_at: datetime | None = None

    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    ended_at: datetime | None = None

    # Version control for optimistic locking
    version: int = 1

    @field_validator(
        "created_at",
        "updated_at",
        "started_at",
        "ended_at",
        "archive_started_at",
        "archive_finished_at",
        mode="before",
    )
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        """Parse MongoDB Extended JSON datetime format."""
        return parse_mongo_datetime(v)

    class Settings:
        name = "stream"
        indexes = [
            [("stream_id", 1)],  # unique handled by Indexed
            [("streamer_id", 1)],
            IndexModel([("status", 1), ("updated_at", -1)], name="status_updated_at"),
            IndexModel(
                [("archive_started_at", 1)],
                partialFilterExpression={"archive_finished_at": None},
                name="archive_unfinished_partial",
            ),
        ]
