"""Evidence capture operations."""

from loguru import logger

from app.app_config import AppEnvironConfig, get_app_environ_config
from app.domain.custody import append_entry, compute_hash
from app.domain.live._base import BaseService
from app.domain.live.archive.archival_pipeline import check_recorded_url
from app.domain.live.stream.stream_models import Stream, StreamPatch
from app.domain.live.stream.stream_state_machine import StreamStateMachine
from app.domain.live.stream_guard import StreamGuard
from app.domain.utils.clock import utc_now
from app.domain.utils.idgen import new_evidence_id
from app.schemas import CustodyEvent, StreamState
from app.schemas.custody import SavedForEvidenceDetails
from app.services.integrations.recording_fetcher import RecordingSource
from app.services.integrations.s3_storage import ObjectStorage
from app.services.record_store import RecordStore
from app.utils.app_errors import (
    AppError,
    AppErrorCode,
    EvidenceInconsistencyError,
    HttpStatusCode,
    NotFoundError,
    StateConflictError,
    ValidationError,
)

from .evidence_models import (
    EvidenceDetails,
    EvidenceRecord,
    EvidenceUploadPatch,
    EvidenceUploadStatus,
)


class EvidenceCapture(BaseService):
    """Snapshots a stream into an evidence record with its own custody log."""

    def __init__(
        self,
        store: RecordStore,
        fetcher: RecordingSource,
        storage: ObjectStorage,
        guard: StreamGuard,
        cfg: AppEnvironConfig | None = None,
    ):
        super().__init__(store)
        self._fetcher = fetcher
        self._storage = storage
        self._guard = guard
        self._cfg = cfg or get_app_environ_config()

    async def save_for_evidence(
        self,
        stream_id: str,
        actor: str | None,
        details: EvidenceDetails,
    ) -> EvidenceRecord:
        """
        Save a live or completed stream for evidence.

        Args:
            stream_id: Stream to capture
            actor: Who requested the save (defaults to the streamer)
            details: Incident id, description and free-form metadata

        Returns:
            The created EvidenceRecord

        Raises:
            NotFoundError: Unknown stream, no record is created
            StateConflictError: Stream busy or not in live/completed
            PersistenceError: Evidence insert failed, no record is created
            EvidenceInconsistencyError: Record was created but the stream
                could not be moved to archived
        """
        async with self._guard.hold(stream_id):
            stream = await self._get_stream_by_id(stream_id)
            return await self.save_held(stream, actor, details)

    def ensure_can_save(self, stream: Stream) -> None:
        """Raise StateConflictError unless the stream may move to archived now."""
        StreamStateMachine.ensure_transition(stream.status, StreamState.ARCHIVED)
        if stream.archive_in_progress:
            raise StateConflictError(
                f"Archive in progress for stream {stream.stream_id}, retry after it finishes",
                current=str(stream.status),
                attempted=str(StreamState.ARCHIVED),
            )

    async def save_held(
        self,
        stream: Stream,
        actor: str | None,
        details: EvidenceDetails,
    ) -> EvidenceRecord:
        """Capture a stream whose guard the caller already holds."""
        actor = actor or stream.streamer_id
        self.ensure_can_save(stream)

        evidence_id = new_evidence_id()
        log = append_entry(
            stream.custody_log,
            CustodyEvent.SAVED_FOR_EVIDENCE,
            actor,
            SavedForEvidenceDetails(
                evidence_id=evidence_id,
                incident_id=details.incident_id,
                description=details.description,
                metadata=details.metadata,
            ),
        )

        now = utc_now()
        record = EvidenceRecord(
            evidence_id=evidence_id,
            stream_id=stream.stream_id,
            streamer_id=stream.streamer_id,
            title=stream.title,
            description=stream.description,
            playback_id=stream.playback_id,
            archived_url=stream.archived_url,
            stream_created_at=stream.created_at,
            incident_id=details.incident_id,
            evidence_description=details.description,
            evidence_metadata=details.metadata,
            custody_log=log,
            custody_hash=compute_hash(log),
            upload_status=(
                EvidenceUploadStatus.NOT_REQUIRED
                if stream.archived_url
                else EvidenceUploadStatus.PENDING
            ),
            created_at=now,
            updated_at=now,
        )

        # Insert failure propagates as PersistenceError, nothing was created
        record = await self.store.insert_evidence(record)
        logger.info(f"Evidence {evidence_id} created for stream {stream.stream_id}")

        try:
            await self.update_stream_state(stream, StreamState.ARCHIVED, StreamPatch.with_log(log))
        except AppError as exc:
            logger.error(
                f"Evidence {evidence_id} retained but stream {stream.stream_id} "
                f"was not archived: {exc}"
            )
            raise EvidenceInconsistencyError(
                f"Evidence {evidence_id} was saved but stream {stream.stream_id} "
                f"could not be marked archived: {exc.errmesg}",
                evidence_id=evidence_id,
                stream_id=stream.stream_id,
            ) from exc

        return record

    def upload_path(self, record: EvidenceRecord) -> str:
        return f"{self._cfg.S3_EVIDENCE_PREFIX}/{record.streamer_id}/{record.evidence_id}.mp4"

    async def complete_deferred_upload(self, evidence_id: str, recorded_url: str) -> EvidenceRecord:
        """
        Copy the recording of an evidence record captured while live.

        Raises:
            NotFoundError: Unknown evidence id
            StateConflictError: Nothing to upload or an upload is running
            ValidationError: recorded_url blank or not http(s)
            FetchError / StorageError: Copy failed, upload_status becomes failed
            AppError: Unexpected copy failure (E_INTERNAL_ERROR), upload_status becomes failed
        """
        try:
            recorded_url = check_recorded_url(recorded_url)
        except ValueError as exc:
            raise ValidationError(f"Invalid recorded_url: {exc}") from exc

        async with self._guard.hold(f"evidence:{evidence_id}"):
            record = await self.get_evidence(evidence_id)
            if record.upload_status in (
                EvidenceUploadStatus.NOT_REQUIRED,
                EvidenceUploadStatus.UPLOADED,
            ):
                raise StateConflictError(
                    f"Evidence {evidence_id} has no pending upload (status={record.upload_status})",
                    current=str(record.upload_status),
                    attempted=str(EvidenceUploadStatus.UPLOADED),
                )

            path = self.upload_path(record)
            bucket = self._cfg.S3_ARCHIVE_BUCKET
            try:
                media = await self._fetcher.fetch(recorded_url)
                await self._storage.put_object(
                    bucket, path, media.content, self._cfg.ARCHIVE_CONTENT_TYPE
                )
            except AppError as exc:
                await self._mark_upload_failed(evidence_id, path, exc.errmesg)
                raise
            except Exception as exc:
                await self._mark_upload_failed(evidence_id, path, str(exc))
                raise AppError(
                    errcode=AppErrorCode.E_INTERNAL_ERROR,
                    errmesg=f"Upload of evidence {evidence_id} media failed: {exc}",
                    status_code=HttpStatusCode.INTERNAL_ERROR,
                ) from exc

            updated = await self.store.update_evidence_upload(
                evidence_id,
                EvidenceUploadPatch(
                    upload_status=EvidenceUploadStatus.UPLOADED,
                    upload_path=path,
                    upload_url=self._storage.get_public_url(bucket, path),
                    updated_at=utc_now(),
                ),
            )
            logger.info(f"Evidence {evidence_id} media uploaded to {path} ({media.size} bytes)")
            return updated

    async def _mark_upload_failed(self, evidence_id: str, path: str, error: str) -> None:
        try:
            await self.store.update_evidence_upload(
                evidence_id,
                EvidenceUploadPatch(
                    upload_status=EvidenceUploadStatus.FAILED,
                    upload_path=path,
                    upload_error=error,
                    updated_at=utc_now(),
                ),
            )
        except AppError:
            logger.exception(f"Could not record upload failure for evidence {evidence_id}")

    async def get_evidence(self, evidence_id: str) -> EvidenceRecord:
        record = await self.store.get_evidence(evidence_id)
        if record is None:
            raise NotFoundError(
                f"Evidence not found: {evidence_id}", AppErrorCode.E_EVIDENCE_NOT_FOUND
            )
        return record

    async def list_evidence(self, stream_id: str) -> list[EvidenceRecord]:
        await self._get_stream_by_id(stream_id)
        return await self.store.list_evidence(stream_id)
