"""Stream domain service."""

from pydantic import ValidationError as PydanticValidationError

from app.app_config import AppEnvironConfig, get_app_environ_config
from app.domain.live.archive.archival_pipeline import ArchivalPipeline, ArchiveRequest
from app.domain.live.evidence.evidence_capture import EvidenceCapture
from app.domain.live.evidence.evidence_models import EvidenceDetails, EvidenceRecord
from app.domain.live.stream_guard import StreamGuard
from app.schemas import StreamState
from app.services.integrations.mux_service import BroadcastProvider
from app.services.integrations.recording_fetcher import RecordingSource
from app.services.integrations.s3_storage import ObjectStorage
from app.services.record_store import RecordStore
from app.utils.app_errors import ValidationError

from ._broadcast import BroadcastOperations
from ._streams import StreamOperations
from .stream_models import (
    BroadcastStartResponse,
    CustodyReport,
    StartBroadcastParams,
    StopBroadcastParams,
    StopBroadcastResponse,
    StreamCreateParams,
    StreamResponse,
    StreamUpdateParams,
)


class StreamService:
    """Entry point for stream lifecycle, archival and evidence operations."""

    def __init__(
        self,
        store: RecordStore,
        provider: BroadcastProvider,
        fetcher: RecordingSource,
        storage: ObjectStorage,
        guard: StreamGuard,
        cfg: AppEnvironConfig | None = None,
    ):
        cfg = cfg or get_app_environ_config()
        self.pipeline = ArchivalPipeline(store, fetcher, storage, guard, cfg)
        self.evidence = EvidenceCapture(store, fetcher, storage, guard, cfg)
        self._streams = StreamOperations(store)
        self._broadcast = BroadcastOperations(
            store, provider, guard, self.pipeline, self.evidence
        )

    # ==================== STREAMS ====================

    async def create_stream(self, params: StreamCreateParams) -> StreamResponse:
        """Create a new pending stream."""
        return await self._streams.create_stream(params=params)

    async def get_stream(self, stream_id: str) -> StreamResponse:
        """Get a single stream by stream_id.

        Raises NotFoundError if the stream does not exist.
        """
        return await self._streams.get_stream(stream_id=stream_id)

    async def list_streams(
        self, status: StreamState | None = None, limit: int = 100
    ) -> list[StreamResponse]:
        return await self._streams.list_streams(status=status, limit=limit)

    async def update_stream(self, stream_id: str, params: StreamUpdateParams) -> StreamResponse:
        """Update title/description. Status only changes through lifecycle operations."""
        return await self._streams.update_stream(stream_id=stream_id, params=params)

    async def verify_custody(self, stream_id: str) -> CustodyReport:
        """Recompute the custody hash of a stream.

        Raises CustodyIntegrityError if the stored log fails verification.
        """
        return await self._streams.verify_custody(stream_id=stream_id)

    # ==================== BROADCAST ====================

    async def start_broadcast(
        self, stream_id: str, actor: str, params: StartBroadcastParams
    ) -> BroadcastStartResponse:
        return await self._broadcast.start_broadcast(stream_id, actor, params)

    async def stop_broadcast(
        self, stream_id: str, actor: str, params: StopBroadcastParams
    ) -> StopBroadcastResponse:
        return await self._broadcast.stop_broadcast(stream_id, actor, params)

    # ==================== ARCHIVE / EVIDENCE ====================

    async def archive_stream(self, stream_id: str, actor: str, recorded_url: str) -> StreamResponse:
        """Run the archival pipeline for a live stream."""
        try:
            request = ArchiveRequest(stream_id=stream_id, recorded_url=recorded_url, actor=actor)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid archive request: {exc}") from exc
        stream = await self.pipeline.archive(request)
        return StreamResponse.from_stream(stream)

    async def save_for_evidence(
        self, stream_id: str, actor: str | None, details: EvidenceDetails
    ) -> EvidenceRecord:
        return await self.evidence.save_for_evidence(stream_id, actor, details)

    async def get_evidence(self, evidence_id: str) -> EvidenceRecord:
        return await self.evidence.get_evidence(evidence_id)

    async def list_evidence(self, stream_id: str) -> list[EvidenceRecord]:
        return await self.evidence.list_evidence(stream_id)

    async def complete_evidence_upload(self, evidence_id: str, recorded_url: str) -> EvidenceRecord:
        return await self.evidence.complete_deferred_upload(evidence_id, recorded_url)
