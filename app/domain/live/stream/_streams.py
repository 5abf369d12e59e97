"""Stream record operations."""

from loguru import logger

from app.domain.custody import compute_hash, create_custody_log
from app.domain.live._base import BaseService
from app.domain.utils.clock import utc_now
from app.domain.utils.idgen import new_stream_id
from app.schemas import StreamState
from app.schemas.custody import LogCreatedDetails
from app.utils.app_errors import ValidationError

from .stream_models import (
    CustodyReport,
    Stream,
    StreamCreateParams,
    StreamPatch,
    StreamResponse,
    StreamUpdateParams,
)


class StreamOperations(BaseService):
    """Stream-related operations."""

    async def create_stream(self, params: StreamCreateParams) -> StreamResponse:
        """Create a pending stream whose custody log holds one log_created entry."""
        stream_id = new_stream_id()
        now = utc_now()
        log = create_custody_log(
            stream_id,
            params.streamer_id,
            LogCreatedDetails(
                title=params.title,
                description=params.description,
                device=params.device,
            ),
            now=now,
        )
        stream = Stream(
            stream_id=stream_id,
            streamer_id=params.streamer_id,
            title=params.title,
            description=params.description,
            status=StreamState.PENDING,
            custody_log=log,
            custody_hash=compute_hash(log),
            created_at=now,
            updated_at=now,
        )
        stream = await self.store.insert_stream(stream)
        logger.info(f"Created stream {stream_id} for streamer {params.streamer_id}")
        return StreamResponse.from_stream(stream)

    async def get_stream(self, stream_id: str) -> StreamResponse:
        return StreamResponse.from_stream(await self._get_stream_by_id(stream_id))

    async def list_streams(
        self, status: StreamState | None = None, limit: int = 100
    ) -> list[StreamResponse]:
        streams = await self.store.list_streams(status=status, limit=limit)
        return [StreamResponse.from_stream(s) for s in streams]

    async def update_stream(self, stream_id: str, params: StreamUpdateParams) -> StreamResponse:
        """Update descriptive fields. The custody log and status are untouched."""
        updates = params.model_dump(exclude_unset=True)
        if "title" in updates and not (updates["title"] or "").strip():
            raise ValidationError("title must not be blank")

        stream = await self._get_stream_by_id(stream_id)
        if not updates:
            return StreamResponse.from_stream(stream)

        stream = await self._write(stream, StreamPatch(**updates))
        logger.info(f"Updated stream {stream_id}: {sorted(updates)}")
        return StreamResponse.from_stream(stream)

    async def verify_custody(self, stream_id: str) -> CustodyReport:
        """
        Re-verify the stored custody log of a stream.

        The record store already rejects a tampered log on load with
        CustodyIntegrityError; this recomputes the hash for the report.
        """
        stream = await self._get_stream_by_id(stream_id)
        computed = compute_hash(stream.custody_log)
        return CustodyReport(
            stream_id=stream_id,
            custody_hash=stream.custody_hash,
            computed_hash=computed,
            valid=computed == stream.custody_hash,
            entries=len(stream.custody_log.entries),
            events=stream.custody_log.events(),
        )
