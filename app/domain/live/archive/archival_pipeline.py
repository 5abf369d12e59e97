"""Archival pipeline: live stream -> durable media object + custody trail.

Steps, in order:

1. checkpoint: append ``archive_initiated`` and persist ``archive_started_at``
   before any I/O, so a crash mid-pipeline leaves a visible marker
2. fetch: download the recorded asset
3. upload: write it to ``{prefix}/{streamer_id}/{stream_id}.mp4`` (overwrite)
4. persist: append ``archive_completed`` and move the stream to ``completed``

Any failure after the checkpoint makes exactly one attempt to append
``archive_failed`` and move the stream to ``failed``, then the original error
is raised. Uploaded objects are never deleted here; see ArchiveReconciler.
"""

import hashlib

from loguru import logger
from pydantic import BaseModel, field_validator

from app.app_config import AppEnvironConfig, get_app_environ_config
from app.domain.custody import append_entry
from app.domain.live._base import BaseService
from app.domain.live.stream.stream_models import Stream, StreamPatch
from app.domain.live.stream.stream_state_machine import StreamStateMachine
from app.domain.live.stream_guard import StreamGuard
from app.domain.utils.clock import utc_now
from app.schemas import ArchiveStage, ChainOfCustodyLog, CustodyEvent, StreamState
from app.schemas.custody import (
    ArchiveCompletedDetails,
    ArchiveFailedDetails,
    ArchiveInitiatedDetails,
)
from app.services.integrations.recording_fetcher import RecordingSource
from app.services.integrations.s3_storage import ObjectStorage
from app.services.record_store import RecordStore
from app.utils.app_errors import (
    AppError,
    AppErrorCode,
    HttpStatusCode,
    PersistenceError,
    StateConflictError,
    ValidationError,
)

_STAGE_REASONS = {
    ArchiveStage.CHECKPOINT: "Failed to record archive checkpoint",
    ArchiveStage.FETCH: "Download failed",
    ArchiveStage.UPLOAD: "Storage upload failed",
    ArchiveStage.PERSIST: "Database update failed after upload",
}


def check_recorded_url(url: str | None) -> str:
    """Strip a recording URL and require http(s). Raises ValueError."""
    url = (url or "").strip()
    if not url:
        raise ValueError("must not be blank")
    if not url.startswith(("http://", "https://")):
        raise ValueError("must be an http(s) URL")
    return url


class ArchiveRequest(BaseModel):
    """Input of one archival run."""

    stream_id: str
    recorded_url: str
    actor: str

    @field_validator("stream_id", "actor")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("recorded_url")
    @classmethod
    def _http_url(cls, v: str) -> str:
        return check_recorded_url(v)


class ArchivalPipeline(BaseService):
    """Runs the archival steps for one stream at a time."""

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

    def object_path(self, stream: Stream) -> str:
        """Deterministic storage key, so a retried upload overwrites."""
        return f"{self._cfg.S3_ARCHIVE_PREFIX}/{stream.streamer_id}/{stream.stream_id}.mp4"

    async def archive(self, request: ArchiveRequest) -> Stream:
        """
        Archive a live stream's recording.

        Raises:
            NotFoundError: Unknown stream
            StateConflictError: Stream busy, already archiving or not live
            FetchError / StorageError: Download or upload failed (stream is failed)
            PersistenceError: Final record update failed (object may be orphaned)
        """
        async with self._guard.hold(request.stream_id):
            stream = await self._get_stream_by_id(request.stream_id)
            return await self.archive_held(stream, request.recorded_url, request.actor)

    def ensure_can_archive(self, stream: Stream, recorded_url: str | None) -> str:
        """
        Check every precondition of an archival run without touching the record.

        Returns:
            The stripped recorded_url

        Raises:
            ValidationError: recorded_url blank or not http(s)
            StateConflictError: Stream not live or an archive checkpoint is open
        """
        try:
            url = check_recorded_url(recorded_url)
        except ValueError as exc:
            raise ValidationError(f"Invalid recorded_url: {exc}") from exc

        StreamStateMachine.ensure_transition(stream.status, StreamState.COMPLETED)
        if stream.archive_in_progress:
            raise StateConflictError(
                f"Archive already in progress for stream {stream.stream_id} "
                f"(started at {stream.archive_started_at.isoformat()})",
                current=str(stream.status),
                attempted=str(StreamState.COMPLETED),
            )
        return url

    async def archive_held(self, stream: Stream, recorded_url: str, actor: str) -> Stream:
        """Run the pipeline for a stream whose guard the caller already holds."""
        recorded_url = self.ensure_can_archive(stream, recorded_url)

        logger.info(f"Archiving stream {stream.stream_id} from {recorded_url}")

        log = append_entry(
            stream.custody_log,
            CustodyEvent.ARCHIVE_INITIATED,
            actor,
            ArchiveInitiatedDetails(
                source_url=recorded_url,
                title=stream.title,
                description=stream.description,
            ),
        )
        try:
            stream = await self._write(
                stream,
                StreamPatch.with_log(log, archive_started_at=utc_now(), archive_finished_at=None),
            )
        except PersistenceError as exc:
            await self._record_failure(stream, log, actor, ArchiveStage.CHECKPOINT, exc)
            raise

        stage = ArchiveStage.FETCH
        file_path: str | None = None
        try:
            media = await self._fetcher.fetch(recorded_url)
            logger.info(f"Fetched {media.size} bytes for stream {stream.stream_id}")

            stage = ArchiveStage.UPLOAD
            file_path = self.object_path(stream)
            content_type = self._cfg.ARCHIVE_CONTENT_TYPE
            await self._storage.put_object(
                self._cfg.S3_ARCHIVE_BUCKET, file_path, media.content, content_type
            )

            stage = ArchiveStage.PERSIST
            public_url = self._storage.get_public_url(self._cfg.S3_ARCHIVE_BUCKET, file_path)
            completed_log = append_entry(
                log,
                CustodyEvent.ARCHIVE_COMPLETED,
                actor,
                ArchiveCompletedDetails(
                    public_url=public_url,
                    file_path=file_path,
                    file_size=media.size,
                    content_type=content_type,
                    sha256=hashlib.sha256(media.content).hexdigest(),
                ),
            )
            stream = await self.update_stream_state(
                stream,
                StreamState.COMPLETED,
                StreamPatch.with_log(
                    completed_log,
                    archived_url=public_url,
                    file_path=file_path,
                    file_size=media.size,
                    archive_finished_at=utc_now(),
                ),
            )
        except StateConflictError:
            # Another writer moved the record; it now owns the outcome
            raise
        except AppError as exc:
            await self._record_failure(stream, log, actor, stage, exc, file_path=file_path)
            raise
        except Exception as exc:
            await self._record_failure(stream, log, actor, stage, exc, file_path=file_path)
            raise AppError(
                errcode=AppErrorCode.E_INTERNAL_ERROR,
                errmesg=f"Archival of stream {stream.stream_id} failed at {stage}: {exc}",
                status_code=HttpStatusCode.INTERNAL_ERROR,
            ) from exc

        logger.info(f"Stream {stream.stream_id} archived to {stream.archived_url}")
        return stream

    async def _record_failure(
        self,
        stream: Stream,
        log: ChainOfCustodyLog,
        actor: str,
        stage: ArchiveStage,
        exc: Exception,
        *,
        file_path: str | None = None,
    ) -> None:
        """Single attempt to mark the stream failed. Never raises."""
        error = exc.errmesg if isinstance(exc, AppError) else str(exc)
        reason = f"{_STAGE_REASONS[stage]}: {error}"
        logger.warning(f"Archival of stream {stream.stream_id} failed at {stage}: {error}")

        try:
            failed_log = append_entry(
                log,
                CustodyEvent.ARCHIVE_FAILED,
                actor,
                ArchiveFailedDetails(stage=stage, reason=reason, error=error, file_path=file_path),
            )
            await self.update_stream_state(
                stream,
                StreamState.FAILED,
                StreamPatch.with_log(failed_log, archive_finished_at=utc_now()),
            )
        except Exception:
            logger.exception(
                f"Could not record archive failure for stream {stream.stream_id} "
                f"(stage={stage}); record left for the reconciler"
            )
