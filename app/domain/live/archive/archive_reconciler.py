"""Recovery for archival runs that did not finish cleanly.

Two leftovers are possible:

- a stalled checkpoint: ``archive_started_at`` set, ``archive_finished_at``
  unset, because the process died or the failure record could not be written
- an orphaned object: the upload succeeded but the final record update did
  not, so the stream is ``failed`` with a ``persist``-stage failure entry
"""

from dataclasses import dataclass, field
from datetime import timedelta

from loguru import logger

from app.app_config import AppEnvironConfig, get_app_environ_config
from app.domain.custody import append_entry
from app.domain.live._base import BaseService
from app.domain.live.stream.stream_models import Stream, StreamPatch
from app.domain.live.stream_guard import StreamGuard
from app.domain.utils.clock import utc_now
from app.schemas import ArchiveStage, CustodyEvent, StreamState
from app.schemas.custody import ArchiveObjectRemovedDetails, ArchiveResetDetails
from app.services.integrations.s3_storage import ObjectStorage
from app.services.record_store import RecordStore
from app.utils.app_errors import AppError, StateConflictError

SYSTEM_ACTOR = "system:archive-reconciler"


def orphaned_object_path(stream: Stream) -> str | None:
    """File path left behind by a persist-stage failure, if not yet removed."""
    if stream.status != StreamState.FAILED:
        return None
    for entry in reversed(stream.custody_log.entries):
        if entry.event == CustodyEvent.ARCHIVE_OBJECT_REMOVED:
            return None
        if entry.event == CustodyEvent.ARCHIVE_FAILED:
            if entry.details.stage == ArchiveStage.PERSIST:
                return entry.details.file_path
            return None
    return None


@dataclass
class ReconcileReport:
    reset: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)


class ArchiveReconciler(BaseService):
    def __init__(
        self,
        store: RecordStore,
        storage: ObjectStorage,
        guard: StreamGuard,
        cfg: AppEnvironConfig | None = None,
    ):
        super().__init__(store)
        self._storage = storage
        self._guard = guard
        self._cfg = cfg or get_app_environ_config()

    async def find_stalled(self, older_than_seconds: float | None = None) -> list[Stream]:
        """Streams whose archive checkpoint is older than the stall threshold."""
        seconds = (
            older_than_seconds
            if older_than_seconds is not None
            else self._cfg.ARCHIVE_STALL_SECONDS
        )
        return await self.store.find_stalled_archives(utc_now() - timedelta(seconds=seconds))

    async def reset_stalled(
        self,
        stream_id: str,
        actor: str = SYSTEM_ACTOR,
        reason: str = "Archive checkpoint stalled",
    ) -> Stream:
        """
        Clear an unfinished archive checkpoint so archival can be retried.

        Status is left unchanged.

        Raises:
            StateConflictError: Stream busy or has no unfinished checkpoint
        """
        async with self._guard.hold(stream_id):
            stream = await self._get_stream_by_id(stream_id)
            if not stream.archive_in_progress:
                raise StateConflictError(
                    f"Stream {stream_id} has no unfinished archive checkpoint",
                    current=str(stream.status),
                )

            log = append_entry(
                stream.custody_log,
                CustodyEvent.ARCHIVE_RESET,
                actor,
                ArchiveResetDetails(reason=reason, stale_since=stream.archive_started_at),
            )
            stream = await self._write(
                stream,
                StreamPatch.with_log(log, archive_started_at=None, archive_finished_at=None),
            )

        logger.info(f"Reset stalled archive checkpoint of stream {stream_id}")
        return stream

    async def remove_orphaned_object(self, stream_id: str, actor: str = SYSTEM_ACTOR) -> Stream:
        """
        Delete an object uploaded by a run whose final record update failed.

        Raises:
            StateConflictError: Stream busy or has no orphaned object
            StorageError: Delete failed, log left unchanged
        """
        async with self._guard.hold(stream_id):
            stream = await self._get_stream_by_id(stream_id)
            file_path = orphaned_object_path(stream)
            if not file_path:
                raise StateConflictError(
                    f"Stream {stream_id} has no orphaned archive object",
                    current=str(stream.status),
                )

            await self._storage.delete_object(self._cfg.S3_ARCHIVE_BUCKET, file_path)

            log = append_entry(
                stream.custody_log,
                CustodyEvent.ARCHIVE_OBJECT_REMOVED,
                actor,
                ArchiveObjectRemovedDetails(
                    file_path=file_path,
                    reason="Uploaded object had no completed archive record",
                ),
            )
            stream = await self._write(stream, StreamPatch.with_log(log))

        logger.info(f"Removed orphaned archive object {file_path} of stream {stream_id}")
        return stream

    async def run_once(self, actor: str = SYSTEM_ACTOR, limit: int = 100) -> ReconcileReport:
        """Reset every stalled checkpoint and remove every orphaned object."""
        report = ReconcileReport()

        for stream in await self.find_stalled():
            try:
                await self.reset_stalled(stream.stream_id, actor)
                report.reset.append(stream.stream_id)
            except AppError as e:
                logger.warning(f"Could not reset stream {stream.stream_id}: {e}")
                report.errors[stream.stream_id] = e.errmesg

        for stream in await self.store.list_streams(status=StreamState.FAILED, limit=limit):
            if not orphaned_object_path(stream):
                continue
            try:
                await self.remove_orphaned_object(stream.stream_id, actor)
                report.removed.append(stream.stream_id)
            except AppError as e:
                logger.warning(f"Could not remove orphan of stream {stream.stream_id}: {e}")
                report.errors[stream.stream_id] = e.errmesg

        logger.info(
            f"Archive reconcile done: reset={len(report.reset)} "
            f"removed={len(report.removed)} errors={len(report.errors)}"
        )
        return report
