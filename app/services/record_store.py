"""Record store for streams and evidence records.

``RecordStore`` is the narrow interface the domain layer depends on.
``BeanieRecordStore`` implements it on MongoDB through the Beanie ODM. Every
call is atomic at the single-document level; stream updates are
compare-and-set on the ``version`` field so check-then-act sequences in the
domain layer cannot interleave with another writer.
"""

from datetime import datetime
from typing import Any, Protocol

from beanie.odm.operators.update.general import Set
from loguru import logger
from pymongo.errors import DuplicateKeyError, PyMongoError

from app.domain.custody import load_verified, serialize_log
from app.domain.live.evidence.evidence_models import (
    EvidenceRecord,
    EvidenceUploadPatch,
)
from app.domain.live.stream.stream_models import Stream, StreamPatch
from app.domain.utils.clock import ensure_utc
from app.schemas import StreamState
from app.schemas.evidence import EvidenceDocument
from app.schemas.stream import StreamDocument
from app.utils.app_errors import (
    AppErrorCode,
    NotFoundError,
    PersistenceError,
    StateConflictError,
)


class RecordStore(Protocol):
    async def insert_stream(self, stream: Stream) -> Stream: ...

    async def get_stream(self, stream_id: str) -> Stream | None: ...

    async def update_stream(
        self, stream_id: str, patch: StreamPatch, *, expected_version: int
    ) -> Stream:
        """Apply ``patch`` if the stored version equals ``expected_version``.

        Raises:
            NotFoundError: stream does not exist
            StateConflictError: stored version differs (concurrent writer)
            PersistenceError: backend write failed
        """
        ...

    async def list_streams(
        self, *, status: StreamState | None = None, limit: int = 100
    ) -> list[Stream]: ...

    async def find_stalled_archives(self, started_before: datetime) -> list[Stream]: ...

    async def insert_evidence(self, record: EvidenceRecord) -> EvidenceRecord: ...

    async def get_evidence(self, evidence_id: str) -> EvidenceRecord | None: ...

    async def list_evidence(self, stream_id: str) -> list[EvidenceRecord]: ...

    async def update_evidence_upload(
        self, evidence_id: str, patch: EvidenceUploadPatch
    ) -> EvidenceRecord: ...


def _utc_or_none(value: datetime | None) -> datetime | None:
    return ensure_utc(value) if value is not None else None


def stream_to_document(stream: Stream) -> StreamDocument:
    data = stream.model_dump(exclude={"custody_log"})
    return StreamDocument(**data, custody_log=serialize_log(stream.custody_log))


def document_to_stream(doc: StreamDocument) -> Stream:
    data = doc.model_dump(exclude={"id", "revision_id", "custody_log"})
    for field in (
        "created_at",
        "updated_at",
        "started_at",
        "ended_at",
        "archive_started_at",
        "archive_finished_at",
    ):
        data[field] = _utc_or_none(data.get(field))
    return Stream(**data, custody_log=load_verified(doc.custody_log, doc.custody_hash))


def evidence_to_document(record: EvidenceRecord) -> EvidenceDocument:
    data = record.model_dump(mode="json", exclude={"custody_log"})
    data["stream_created_at"] = record.stream_created_at
    data["created_at"] = record.created_at
    data["updated_at"] = record.updated_at
    return EvidenceDocument(**data, custody_log=serialize_log(record.custody_log))


def document_to_evidence(doc: EvidenceDocument) -> EvidenceRecord:
    data = doc.model_dump(exclude={"id", "revision_id", "custody_log"})
    for field in ("stream_created_at", "created_at", "updated_at"):
        data[field] = ensure_utc(data[field])
    return EvidenceRecord(**data, custody_log=load_verified(doc.custody_log, doc.custody_hash))


def _patch_fields(patch: StreamPatch) -> dict[str, Any]:
    fields = patch.changes()
    if "custody_log" in fields:
        fields["custody_log"] = serialize_log(fields["custody_log"])
    return fields


class BeanieRecordStore:
    """MongoDB record store (requires init_beanie_odm to have run)."""

    async def insert_stream(self, stream: Stream) -> Stream:
        try:
            await stream_to_document(stream).insert()
        except DuplicateKeyError as exc:
            raise StateConflictError(f"Stream already exists: {stream.stream_id}") from exc
        except PyMongoError as exc:
            raise PersistenceError(f"Failed to insert stream {stream.stream_id}: {exc}") from exc
        logger.debug(f"Stream {stream.stream_id} inserted")
        return stream

    async def _find_stream_document(self, stream_id: str) -> StreamDocument | None:
        try:
            return await StreamDocument.find_one(StreamDocument.stream_id == stream_id)
        except PyMongoError as exc:
            raise PersistenceError(f"Failed to load stream {stream_id}: {exc}") from exc

    async def get_stream(self, stream_id: str) -> Stream | None:
        doc = await self._find_stream_document(stream_id)
        return document_to_stream(doc) if doc else None

    async def update_stream(
        self, stream_id: str, patch: StreamPatch, *, expected_version: int
    ) -> Stream:
        fields = _patch_fields(patch)
        fields["version"] = expected_version + 1

        try:
            result = await StreamDocument.find(
                StreamDocument.stream_id == stream_id,
                StreamDocument.version == expected_version,
            ).update(Set(fields))  # type: ignore[arg-type]
        except PyMongoError as exc:
            raise PersistenceError(f"Failed to update stream {stream_id}: {exc}") from exc

        if not result or result.modified_count == 0:
            current = await self._find_stream_document(stream_id)
            if current is None:
                raise NotFoundError(f"Stream not found: {stream_id}")
            error_msg = (
                f"Version conflict on stream {stream_id}: "
                f"expected version {expected_version}, current version {current.version}, "
                f"status={current.status}"
            )
            logger.warning(error_msg)
            raise StateConflictError(
                error_msg,
                current=str(current.status),
                errcode=AppErrorCode.E_STREAM_VERSION_CONFLICT,
            )

        logger.debug(
            f"Stream {stream_id} updated (version {expected_version} -> {expected_version + 1})"
        )
        updated = await self.get_stream(stream_id)
        if updated is None:
            raise NotFoundError(f"Stream not found after update: {stream_id}")
        return updated

    async def list_streams(
        self, *, status: StreamState | None = None, limit: int = 100
    ) -> list[Stream]:
        query = StreamDocument.find(StreamDocument.status == status) if status else StreamDocument.find()
        try:
            docs = await query.sort("-updated_at").limit(limit).to_list()
        except PyMongoError as exc:
            raise PersistenceError(f"Failed to list streams: {exc}") from exc
        return [document_to_stream(doc) for doc in docs]

    async def find_stalled_archives(self, started_before: datetime) -> list[Stream]:
        try:
            docs = await StreamDocument.find(
                {
                    "archive_started_at": {"$ne": None, "$lt": started_before},
                    "archive_finished_at": None,
                }
            ).to_list()
        except PyMongoError as exc:
            raise PersistenceError(f"Failed to query stalled archives: {exc}") from exc
        return [document_to_stream(doc) for doc in docs]

    async def insert_evidence(self, record: EvidenceRecord) -> EvidenceRecord:
        try:
            await evidence_to_document(record).insert()
        except PyMongoError as exc:
            raise PersistenceError(
                f"Failed to insert evidence {record.evidence_id}: {exc}"
            ) from exc
        logger.debug(f"Evidence {record.evidence_id} inserted for stream {record.stream_id}")
        return record

    async def _find_evidence_document(self, evidence_id: str) -> EvidenceDocument | None:
        try:
            return await EvidenceDocument.find_one(EvidenceDocument.evidence_id == evidence_id)
        except PyMongoError as exc:
            raise PersistenceError(f"Failed to load evidence {evidence_id}: {exc}") from exc

    async def get_evidence(self, evidence_id: str) -> EvidenceRecord | None:
        doc = await self._find_evidence_document(evidence_id)
        return document_to_evidence(doc) if doc else None

    async def list_evidence(self, stream_id: str) -> list[EvidenceRecord]:
        try:
            docs = (
                await EvidenceDocument.find(EvidenceDocument.stream_id == stream_id)
                .sort("-created_at")
                .to_list()
            )
        except PyMongoError as exc:
            raise PersistenceError(f"Failed to list evidence for {stream_id}: {exc}") from exc
        return [document_to_evidence(doc) for doc in docs]

    async def update_evidence_upload(
        self, evidence_id: str, patch: EvidenceUploadPatch
    ) -> EvidenceRecord:
        fields = patch.model_dump()
        fields["upload_status"] = patch.upload_status.value
        try:
            result = await EvidenceDocument.find(
                EvidenceDocument.evidence_id == evidence_id
            ).update(Set(fields))  # type: ignore[arg-type]
        except PyMongoError as exc:
            raise PersistenceError(f"Failed to update evidence {evidence_id}: {exc}") from exc

        if not result or result.matched_count == 0:
            raise NotFoundError(
                f"Evidence not found: {evidence_id}", AppErrorCode.E_EVIDENCE_NOT_FOUND
            )
        updated = await self.get_evidence(evidence_id)
        if updated is None:
            raise NotFoundError(
                f"Evidence not found after update: {evidence_id}",
                AppErrorCode.E_EVIDENCE_NOT_FOUND,
            )
        return updated
