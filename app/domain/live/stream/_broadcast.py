"""Broadcast start/stop operations."""

from loguru import logger

from app.domain.custody import append_entry
from app.domain.live._base import BaseService
from app.domain.live.archive.archival_pipeline import ArchivalPipeline
from app.domain.live.evidence.evidence_capture import EvidenceCapture
from app.domain.live.evidence.evidence_models import EvidenceDetails
from app.domain.live.stream_guard import StreamGuard
from app.domain.utils.clock import utc_now
from app.schemas import CustodyEvent, StreamState
from app.schemas.custody import StreamStartedDetails, StreamStoppedDetails
from app.services.integrations.mux_service import BroadcastProvider
from app.services.record_store import RecordStore
from app.utils.app_errors import BroadcastProviderError, StateConflictError

from .stream_models import (
    BroadcastStartResponse,
    StartBroadcastParams,
    StopBroadcastParams,
    StopBroadcastResponse,
    StreamPatch,
    StreamResponse,
)
from .stream_state_machine import StreamStateMachine


class BroadcastOperations(BaseService):
    """Operations that talk to the broadcast provider."""

    def __init__(
        self,
        store: RecordStore,
        provider: BroadcastProvider,
        guard: StreamGuard,
        pipeline: ArchivalPipeline,
        evidence: EvidenceCapture,
    ):
        super().__init__(store)
        self._provider = provider
        self._guard = guard
        self._pipeline = pipeline
        self._evidence = evidence

    async def start_broadcast(
        self,
        stream_id: str,
        actor: str,
        params: StartBroadcastParams,
    ) -> BroadcastStartResponse:
        """
        Create a provider live ingest and move the stream pending -> live.

        Raises:
            NotFoundError: Unknown stream
            StateConflictError: Stream busy or not pending
            BroadcastProviderError: Provider request failed (stream stays pending)
        """
        async with self._guard.hold(stream_id):
            stream = await self._get_stream_by_id(stream_id)
            StreamStateMachine.ensure_transition(stream.status, StreamState.LIVE)

            ingest = await self._provider.create_live_ingest(passthrough=stream_id)

            log = append_entry(
                stream.custody_log,
                CustodyEvent.STREAM_STARTED,
                actor,
                StreamStartedDetails(
                    provider_stream_id=ingest.provider_stream_id,
                    playback_id=ingest.playback_id,
                    gps=params.gps,
                ),
            )
            await self.update_stream_state(
                stream,
                StreamState.LIVE,
                StreamPatch.with_log(
                    log,
                    provider_stream_id=ingest.provider_stream_id,
                    playback_id=ingest.playback_id,
                    stream_key=ingest.stream_key,
                ),
            )

        logger.info(f"Broadcast started for stream {stream_id} ({ingest.provider_stream_id})")
        return BroadcastStartResponse(
            stream_id=stream_id,
            provider_stream_id=ingest.provider_stream_id,
            playback_id=ingest.playback_id,
            stream_key=ingest.stream_key,
            rtmp_url=ingest.rtmp_url,
        )

    async def stop_broadcast(
        self,
        stream_id: str,
        actor: str,
        params: StopBroadcastParams,
    ) -> StopBroadcastResponse:
        """
        Stop a live broadcast, then archive it or save it for evidence.

        With ``save_for_evidence`` the stream goes live -> archived and an
        evidence record is created; otherwise the archival pipeline runs
        against ``recorded_url``. Every precondition of that follow-up step is
        checked before stream_stopped is written or the provider is signalled.

        Raises:
            ValidationError: recorded_url missing or not http(s) for a plain archive
            StateConflictError: Stream busy, not live or with an open archive checkpoint
            NotFoundError / FetchError / StorageError / PersistenceError:
                from the archival or evidence step
        """
        async with self._guard.hold(stream_id):
            stream = await self._get_stream_by_id(stream_id)

            target = StreamState.ARCHIVED if params.save_for_evidence else StreamState.COMPLETED
            if stream.status != StreamState.LIVE:
                raise StateConflictError(
                    f"Cannot stop stream {stream_id}: status is {stream.status}",
                    current=str(stream.status),
                    attempted=str(target),
                )
            StreamStateMachine.ensure_transition(stream.status, target)

            recorded_url = None
            if params.save_for_evidence:
                self._evidence.ensure_can_save(stream)
            else:
                recorded_url = self._pipeline.ensure_can_archive(stream, params.recorded_url)

            log = append_entry(
                stream.custody_log,
                CustodyEvent.STREAM_STOPPED,
                actor,
                StreamStoppedDetails(
                    final_gps=params.final_gps,
                    duration_seconds=params.duration_seconds,
                    save_for_evidence=params.save_for_evidence,
                ),
            )
            stream = await self._write(stream, StreamPatch.with_log(log, ended_at=utc_now()))

            if stream.provider_stream_id:
                try:
                    await self._provider.signal_complete(stream.provider_stream_id)
                except BroadcastProviderError as e:
                    # Continue: the recording is archived from recorded_url either way
                    logger.warning(f"Failed to signal provider completion for {stream_id}: {e}")

            if params.save_for_evidence:
                record = await self._evidence.save_held(
                    stream,
                    actor,
                    EvidenceDetails(
                        incident_id=params.incident_id,
                        description=params.evidence_description,
                    ),
                )
                stream = await self._get_stream_by_id(stream_id)
                return StopBroadcastResponse(
                    stream=StreamResponse.from_stream(stream),
                    evidence_id=record.evidence_id,
                )

            stream = await self._pipeline.archive_held(stream, recorded_url, actor)
            return StopBroadcastResponse(stream=StreamResponse.from_stream(stream))
