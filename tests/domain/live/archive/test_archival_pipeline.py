"""Tests for the archival pipeline."""

import asyncio
import hashlib

import pytest

from app.domain.live.archive.archive_reconciler import ArchiveReconciler
from app.domain.live.stream.stream_domain import StreamService
from app.domain.live.stream_guard import LocalStreamGuard
from app.schemas import ArchiveStage, CustodyEvent, StreamState
from app.utils.app_errors import (
    AppError,
    AppErrorCode,
    FetchError,
    NotFoundError,
    PersistenceError,
    StateConflictError,
    StorageError,
    ValidationError,
)
from tests.fixtures.memory_store import RECORDED_URL, STREAMER_ID

ACTOR = "u.officer"


async def _stream(stream_service: StreamService, stream_id: str):
    return await stream_service.pipeline._get_stream_by_id(stream_id)


class TestArchiveSuccess:
    async def test_archive_moves_stream_to_completed(
        self, stream_service: StreamService, live_stream_id: str, storage
    ):
        result = await stream_service.archive_stream(live_stream_id, ACTOR, RECORDED_URL)

        assert result.status == StreamState.COMPLETED
        assert result.file_size == 10
        assert result.file_path == f"archives/{STREAMER_ID}/{live_stream_id}.mp4"
        assert result.archived_url == f"https://storage.test/test-bucket/{result.file_path}"
        assert result.archive_in_progress is False
        assert storage.objects[("test-bucket", result.file_path)] == (b"0123456789", "video/mp4")

    async def test_archive_appends_initiated_then_completed(
        self, stream_service: StreamService, live_stream_id: str
    ):
        await stream_service.archive_stream(live_stream_id, ACTOR, RECORDED_URL)
        stream = await _stream(stream_service, live_stream_id)

        assert stream.custody_log.events()[-2:] == ["archive_initiated", "archive_completed"]
        completed = stream.custody_log.last_entry
        assert completed.actor == ACTOR
        assert completed.details.file_size == 10
        assert completed.details.sha256 == hashlib.sha256(b"0123456789").hexdigest()
        assert completed.details.public_url == stream.archived_url

    async def test_archive_records_checkpoint_window(
        self, stream_service: StreamService, live_stream_id: str
    ):
        await stream_service.archive_stream(live_stream_id, ACTOR, RECORDED_URL)
        stream = await _stream(stream_service, live_stream_id)

        assert stream.archive_started_at is not None
        assert stream.archive_finished_at >= stream.archive_started_at
        assert stream.ended_at is not None

    async def test_stored_hash_matches_log_after_archive(
        self, stream_service: StreamService, live_stream_id: str
    ):
        await stream_service.archive_stream(live_stream_id, ACTOR, RECORDED_URL)
        report = await stream_service.verify_custody(live_stream_id)
        assert report.valid is True


class TestArchiveRejected:
    async def test_pending_stream_cannot_be_archived(
        self, stream_service: StreamService, pending_stream_id: str, fetcher
    ):
        with pytest.raises(StateConflictError):
            await stream_service.archive_stream(pending_stream_id, ACTOR, RECORDED_URL)
        assert fetcher.calls == []

    async def test_completed_stream_cannot_be_archived_again(
        self, stream_service: StreamService, live_stream_id: str
    ):
        await stream_service.archive_stream(live_stream_id, ACTOR, RECORDED_URL)
        with pytest.raises(StateConflictError):
            await stream_service.archive_stream(live_stream_id, ACTOR, RECORDED_URL)

    @pytest.mark.parametrize("url", ["", "   ", "ftp://recordings.test/a.mp4"])
    async def test_invalid_recorded_url(
        self, stream_service: StreamService, live_stream_id: str, store, url: str
    ):
        with pytest.raises(ValidationError):
            await stream_service.archive_stream(live_stream_id, ACTOR, url)
        assert store.raw_stream(live_stream_id)["status"] == StreamState.LIVE

    async def test_unknown_stream(self, stream_service: StreamService):
        with pytest.raises(NotFoundError):
            await stream_service.archive_stream("st_missing", ACTOR, RECORDED_URL)


class TestArchiveFailure:
    async def test_fetch_404_marks_stream_failed(
        self, stream_service: StreamService, live_stream_id: str, storage
    ):
        missing = "https://recordings.test/asset/missing.mp4"
        with pytest.raises(FetchError):
            await stream_service.archive_stream(live_stream_id, ACTOR, missing)

        stream = await _stream(stream_service, live_stream_id)
        assert stream.status == StreamState.FAILED
        assert stream.custody_log.events()[-2:] == ["archive_initiated", "archive_failed"]
        failed = stream.custody_log.last_entry.details
        assert failed.stage == ArchiveStage.FETCH
        assert "404" in failed.reason
        assert failed.reason.startswith("Download failed")
        assert failed.file_path is None
        assert stream.archive_in_progress is False
        assert storage.put_calls == []

    async def test_upload_failure_marks_stream_failed(
        self, stream_service: StreamService, live_stream_id: str, storage
    ):
        storage.put_error = StorageError("S3 upload failed: SlowDown")

        with pytest.raises(StorageError):
            await stream_service.archive_stream(live_stream_id, ACTOR, RECORDED_URL)

        stream = await _stream(stream_service, live_stream_id)
        assert stream.status == StreamState.FAILED
        assert stream.custody_log.last_entry.details.stage == ArchiveStage.UPLOAD
        assert stream.archived_url is None

    async def test_persist_failure_records_orphaned_path(
        self, stream_service: StreamService, live_stream_id: str, store, storage
    ):
        store.fail_update(when=lambda p: p.status == StreamState.COMPLETED)

        with pytest.raises(PersistenceError):
            await stream_service.archive_stream(live_stream_id, ACTOR, RECORDED_URL)

        stream = await _stream(stream_service, live_stream_id)
        assert stream.status == StreamState.FAILED
        failed = stream.custody_log.last_entry.details
        assert failed.stage == ArchiveStage.PERSIST
        assert failed.file_path == f"archives/{STREAMER_ID}/{live_stream_id}.mp4"
        assert ("test-bucket", failed.file_path) in storage.objects

    async def test_checkpoint_failure_stops_before_fetch(
        self, stream_service: StreamService, live_stream_id: str, store, fetcher
    ):
        store.fail_update(when=lambda p: p.status is None and p.archive_started_at is not None)

        with pytest.raises(PersistenceError):
            await stream_service.archive_stream(live_stream_id, ACTOR, RECORDED_URL)

        assert fetcher.calls == []
        stream = await _stream(stream_service, live_stream_id)
        assert stream.status == StreamState.FAILED
        assert stream.custody_log.last_entry.details.stage == ArchiveStage.CHECKPOINT

    async def test_failure_record_that_cannot_be_written_leaves_checkpoint(
        self, stream_service: StreamService, live_stream_id: str, store
    ):
        store.fail_update(when=lambda p: p.status == StreamState.FAILED)

        with pytest.raises(FetchError):
            await stream_service.archive_stream(
                live_stream_id, ACTOR, "https://recordings.test/asset/missing.mp4"
            )

        stream = await _stream(stream_service, live_stream_id)
        assert stream.status == StreamState.LIVE
        assert stream.archive_in_progress is True
        assert stream.custody_log.last_entry.event == CustodyEvent.ARCHIVE_INITIATED

    async def test_unexpected_error_is_wrapped(
        self, stream_service: StreamService, live_stream_id: str, storage, monkeypatch
    ):
        async def boom(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(storage, "put_object", boom)

        with pytest.raises(AppError) as exc_info:
            await stream_service.archive_stream(live_stream_id, ACTOR, RECORDED_URL)

        assert exc_info.value.errcode == AppErrorCode.E_INTERNAL_ERROR
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        stream = await _stream(stream_service, live_stream_id)
        assert stream.status == StreamState.FAILED
        assert stream.custody_log.last_entry.details.error == "disk on fire"


class TestArchiveConcurrency:
    async def test_second_archive_is_rejected_while_first_runs(
        self, stream_service: StreamService, live_stream_id: str, fetcher
    ):
        fetcher.gate = asyncio.Event()
        first = asyncio.create_task(
            stream_service.archive_stream(live_stream_id, ACTOR, RECORDED_URL)
        )
        await fetcher.entered.wait()

        with pytest.raises(StateConflictError) as exc_info:
            await stream_service.archive_stream(live_stream_id, ACTOR, RECORDED_URL)
        assert exc_info.value.errcode == AppErrorCode.E_STREAM_BUSY

        fetcher.gate.set()
        result = await first
        assert result.status == StreamState.COMPLETED
        assert len(fetcher.calls) == 1

    async def test_unfinished_checkpoint_blocks_new_run(
        self, stream_service: StreamService, live_stream_id: str, store
    ):
        store.fail_update(when=lambda p: p.status is not None, times=2)
        with pytest.raises(PersistenceError):
            await stream_service.archive_stream(live_stream_id, ACTOR, RECORDED_URL)

        with pytest.raises(StateConflictError, match="already in progress"):
            await stream_service.archive_stream(live_stream_id, ACTOR, RECORDED_URL)


class TestArchiveRetry:
    async def test_retry_after_reset_overwrites_same_object(
        self, stream_service: StreamService, live_stream_id: str, store, storage, test_config
    ):
        store.fail_update(when=lambda p: p.status is not None, times=2)
        with pytest.raises(PersistenceError):
            await stream_service.archive_stream(live_stream_id, ACTOR, RECORDED_URL)
        first_path = storage.put_calls[0][1]

        reconciler = ArchiveReconciler(store, storage, LocalStreamGuard(), test_config)
        await reconciler.reset_stalled(live_stream_id)

        result = await stream_service.archive_stream(live_stream_id, ACTOR, RECORDED_URL)

        assert result.status == StreamState.COMPLETED
        assert result.file_path == first_path
        assert [p for _, p in storage.put_calls] == [first_path, first_path]
        assert len(storage.objects) == 1

        stream = await _stream(stream_service, live_stream_id)
        assert stream.custody_log.events()[-4:] == [
            "archive_initiated",
            "archive_reset",
            "archive_initiated",
            "archive_completed",
        ]
