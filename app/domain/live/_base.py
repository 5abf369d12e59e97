"""Base service for stream record operations."""

from loguru import logger

from app.domain.live.stream.stream_models import Stream, StreamPatch
from app.domain.live.stream.stream_state_machine import StreamStateMachine
from app.domain.utils.clock import utc_now
from app.schemas import StreamState
from app.services.record_store import RecordStore
from app.utils.app_errors import NotFoundError


class BaseService:
    """Shared stream lookup and version-checked writes.

    Every status change goes through ``update_stream_state`` so the transition
    table is consulted before anything is written.
    """

    def __init__(self, store: RecordStore):
        self.store = store

    async def _get_stream_by_id(self, stream_id: str) -> Stream:
        """
        Retrieve a stream by stream_id.

        Raises:
            NotFoundError: If no stream has this id
        """
        stream = await self.store.get_stream(stream_id)
        if stream is None:
            raise NotFoundError(f"Stream not found: {stream_id}")
        return stream

    async def _write(self, stream: Stream, patch: StreamPatch) -> Stream:
        """Apply a patch against the version of ``stream`` we last read."""
        changes = {**patch.changes(), "updated_at": utc_now()}
        return await self.store.update_stream(
            stream.stream_id,
            StreamPatch(**changes),
            expected_version=stream.version,
        )

    async def update_stream_state(
        self,
        stream: Stream,
        new_state: StreamState,
        patch: StreamPatch | None = None,
    ) -> Stream:
        """
        Update stream state with validation and lifecycle timestamps.

        Args:
            stream: Stream as last read from the store
            new_state: Target state to transition to
            patch: Additional fields written in the same update

        Returns:
            Updated stream

        Raises:
            StateConflictError: If the transition is not in the table or the
                record changed since it was read
        """
        StreamStateMachine.ensure_transition(stream.status, new_state)

        now = utc_now()
        changes = patch.changes() if patch else {}
        changes["status"] = new_state
        if new_state == StreamState.LIVE and not stream.started_at:
            changes["started_at"] = now
        elif StreamStateMachine.is_terminal(new_state) and not stream.ended_at:
            changes.setdefault("ended_at", now)

        updated = await self._write(stream, StreamPatch(**changes))
        logger.info(f"Stream {stream.stream_id} state updated: {stream.status} -> {new_state}")
        return updated
