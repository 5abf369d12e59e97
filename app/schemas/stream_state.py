"""Common enums used across schemas."""

from enum import Enum


class StreamState(str, Enum):
    """Stream lifecycle states.

    State Transition Flow:

    PENDING → LIVE → COMPLETED → ARCHIVED
                ↓  ↘
             FAILED  ARCHIVED

    State Descriptions:
    - PENDING: Stream created, broadcast not started yet. Set by create_stream().
    - LIVE: Broadcast ingest created at the provider. Set by start_broadcast().
    - COMPLETED: Recording archived to object storage. Set by the archival pipeline.
    - FAILED: Recording download or upload failed. Set by the archival pipeline.
    - ARCHIVED: Saved for evidence. Set by evidence capture (from LIVE or COMPLETED).

    Terminal states: COMPLETED, FAILED, ARCHIVED (COMPLETED still admits the
    evidence-save edge to ARCHIVED).
    """

    PENDING = "pending"
    LIVE = "live"
    COMPLETED = "completed"
    FAILED = "failed"
    ARCHIVED = "archived"

    def __str__(self) -> str:
        return self.value


__all__ = ["StreamState"]
