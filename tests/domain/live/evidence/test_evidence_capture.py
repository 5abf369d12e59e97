"""Tests for evidence capture."""

import pytest

from app.domain.live.evidence.evidence_models import EvidenceDetails, EvidenceUploadStatus
from app.domain.live.stream.stream_domain import StreamService
from app.schemas import CustodyEvent, StreamState
from app.utils.app_errors import (
    AppError,
    AppErrorCode,
    EvidenceInconsistencyError,
    FetchError,
    NotFoundError,
    PersistenceError,
    StateConflictError,
    StorageError,
    ValidationError,
)
from tests.fixtures.memory_store import RECORDED_URL, STREAMER_ID

DETAILS = EvidenceDetails(
    incident_id="INC-2026-0042",
    description="Officer conduct during traffic stop",
    metadata={"precinct": 12, "priority": "high"},
)


class TestSaveForEvidence:
    async def test_save_live_stream(self, stream_service: StreamService, live_stream_id: str):
        record = await stream_service.save_for_evidence(live_stream_id, "u.lawyer", DETAILS)

        assert record.stream_id == live_stream_id
        assert record.streamer_id == STREAMER_ID
        assert record.title == "Traffic stop"
        assert record.incident_id == "INC-2026-0042"
        assert record.evidence_metadata == {"precinct": 12, "priority": "high"}
        assert record.upload_status == EvidenceUploadStatus.PENDING
        assert record.custody_log.last_entry.event == CustodyEvent.SAVED_FOR_EVIDENCE
        assert record.custody_log.last_entry.details.evidence_id == record.evidence_id

        stream = await stream_service.get_stream(live_stream_id)
        assert stream.status == StreamState.ARCHIVED
        assert stream.custody_hash == record.custody_hash

    async def test_actor_defaults_to_streamer(
        self, stream_service: StreamService, live_stream_id: str
    ):
        record = await stream_service.save_for_evidence(live_stream_id, None, DETAILS)
        assert record.custody_log.last_entry.actor == STREAMER_ID

    async def test_save_completed_stream_needs_no_upload(
        self, stream_service: StreamService, live_stream_id: str
    ):
        archived = await stream_service.archive_stream(live_stream_id, "u.officer", RECORDED_URL)

        record = await stream_service.save_for_evidence(live_stream_id, "u.lawyer", DETAILS)

        assert record.upload_status == EvidenceUploadStatus.NOT_REQUIRED
        assert record.archived_url == archived.archived_url
        assert record.custody_log.events()[-3:] == [
            "archive_initiated",
            "archive_completed",
            "saved_for_evidence",
        ]

    async def test_unknown_stream_creates_nothing(self, stream_service: StreamService, store):
        with pytest.raises(NotFoundError):
            await stream_service.save_for_evidence("st_missing", "u.lawyer", DETAILS)
        assert store.evidence_count == 0

    async def test_pending_stream_is_rejected(
        self, stream_service: StreamService, pending_stream_id: str, store
    ):
        with pytest.raises(StateConflictError):
            await stream_service.save_for_evidence(pending_stream_id, "u.lawyer", DETAILS)
        assert store.evidence_count == 0

    async def test_archived_stream_is_rejected(
        self, stream_service: StreamService, live_stream_id: str, store
    ):
        await stream_service.save_for_evidence(live_stream_id, "u.lawyer", DETAILS)
        with pytest.raises(StateConflictError):
            await stream_service.save_for_evidence(live_stream_id, "u.lawyer", DETAILS)
        assert store.evidence_count == 1

    async def test_stream_with_running_archive_is_rejected(
        self, stream_service: StreamService, live_stream_id: str, store
    ):
        store.fail_update(when=lambda p: p.status is not None, times=2)
        with pytest.raises(PersistenceError):
            await stream_service.archive_stream(live_stream_id, "u.officer", RECORDED_URL)

        with pytest.raises(StateConflictError, match="Archive in progress"):
            await stream_service.save_for_evidence(live_stream_id, "u.lawyer", DETAILS)
        assert store.evidence_count == 0

    async def test_insert_failure_leaves_stream_untouched(
        self, stream_service: StreamService, live_stream_id: str, store
    ):
        store.fail_insert_evidence = True
        before = store.raw_stream(live_stream_id)

        with pytest.raises(PersistenceError):
            await stream_service.save_for_evidence(live_stream_id, "u.lawyer", DETAILS)

        assert store.evidence_count == 0
        assert store.raw_stream(live_stream_id) == before

    async def test_stream_update_failure_keeps_evidence(
        self, stream_service: StreamService, live_stream_id: str, store
    ):
        store.fail_update(when=lambda p: p.status == StreamState.ARCHIVED)

        with pytest.raises(EvidenceInconsistencyError) as exc_info:
            await stream_service.save_for_evidence(live_stream_id, "u.lawyer", DETAILS)

        err = exc_info.value
        assert err.errcode == AppErrorCode.E_EVIDENCE_INCONSISTENT
        assert err.stream_id == live_stream_id
        assert store.evidence_count == 1
        record = await stream_service.get_evidence(err.evidence_id)
        assert record.stream_id == live_stream_id
        assert store.raw_stream(live_stream_id)["status"] == StreamState.LIVE


class TestEvidenceQueries:
    async def test_get_unknown_evidence(self, stream_service: StreamService):
        with pytest.raises(NotFoundError) as exc_info:
            await stream_service.get_evidence("ev_missing")
        assert exc_info.value.errcode == AppErrorCode.E_EVIDENCE_NOT_FOUND

    async def test_list_evidence_for_stream(
        self, stream_service: StreamService, live_stream_id: str
    ):
        record = await stream_service.save_for_evidence(live_stream_id, "u.lawyer", DETAILS)
        records = await stream_service.list_evidence(live_stream_id)
        assert [r.evidence_id for r in records] == [record.evidence_id]

    async def test_list_evidence_for_unknown_stream(self, stream_service: StreamService):
        with pytest.raises(NotFoundError):
            await stream_service.list_evidence("st_missing")


class TestDeferredUpload:
    async def test_upload_copies_recording(
        self, stream_service: StreamService, live_stream_id: str, storage
    ):
        record = await stream_service.save_for_evidence(live_stream_id, "u.lawyer", DETAILS)

        updated = await stream_service.complete_evidence_upload(record.evidence_id, RECORDED_URL)

        path = f"evidence/{STREAMER_ID}/{record.evidence_id}.mp4"
        assert updated.upload_status == EvidenceUploadStatus.UPLOADED
        assert updated.upload_path == path
        assert updated.upload_url == f"https://storage.test/test-bucket/{path}"
        assert ("test-bucket", path) in storage.objects
        assert updated.custody_hash == record.custody_hash

    async def test_upload_failure_marks_record_failed(
        self, stream_service: StreamService, live_stream_id: str
    ):
        record = await stream_service.save_for_evidence(live_stream_id, "u.lawyer", DETAILS)

        with pytest.raises(FetchError):
            await stream_service.complete_evidence_upload(
                record.evidence_id, "https://recordings.test/asset/missing.mp4"
            )

        failed = await stream_service.get_evidence(record.evidence_id)
        assert failed.upload_status == EvidenceUploadStatus.FAILED
        assert "404" in failed.upload_error

    async def test_unexpected_upload_error_marks_record_failed(
        self, stream_service: StreamService, live_stream_id: str, storage, monkeypatch
    ):
        record = await stream_service.save_for_evidence(live_stream_id, "u.lawyer", DETAILS)

        async def boom(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(storage, "put_object", boom)

        with pytest.raises(AppError) as exc_info:
            await stream_service.complete_evidence_upload(record.evidence_id, RECORDED_URL)

        assert exc_info.value.errcode == AppErrorCode.E_INTERNAL_ERROR
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        failed = await stream_service.get_evidence(record.evidence_id)
        assert failed.upload_status == EvidenceUploadStatus.FAILED
        assert failed.upload_error == "disk on fire"

    @pytest.mark.parametrize("url", ["   ", "ftp://recordings.test/a.mp4"])
    async def test_invalid_recorded_url_is_rejected(
        self, stream_service: StreamService, live_stream_id: str, fetcher, url: str
    ):
        record = await stream_service.save_for_evidence(live_stream_id, "u.lawyer", DETAILS)

        with pytest.raises(ValidationError):
            await stream_service.complete_evidence_upload(record.evidence_id, url)

        assert fetcher.calls == []
        unchanged = await stream_service.get_evidence(record.evidence_id)
        assert unchanged.upload_status == EvidenceUploadStatus.PENDING

    async def test_failed_upload_can_be_retried(
        self, stream_service: StreamService, live_stream_id: str, storage
    ):
        record = await stream_service.save_for_evidence(live_stream_id, "u.lawyer", DETAILS)
        storage.put_error = StorageError("S3 upload failed: SlowDown")
        with pytest.raises(StorageError):
            await stream_service.complete_evidence_upload(record.evidence_id, RECORDED_URL)

        storage.put_error = None
        updated = await stream_service.complete_evidence_upload(record.evidence_id, RECORDED_URL)
        assert updated.upload_status == EvidenceUploadStatus.UPLOADED
        assert updated.upload_error is None

    async def test_archived_media_needs_no_upload(
        self, stream_service: StreamService, live_stream_id: str
    ):
        await stream_service.archive_stream(live_stream_id, "u.officer", RECORDED_URL)
        record = await stream_service.save_for_evidence(live_stream_id, "u.lawyer", DETAILS)

        with pytest.raises(StateConflictError):
            await stream_service.complete_evidence_upload(record.evidence_id, RECORDED_URL)
