"""Tests for chain-of-custody log operations."""

from datetime import datetime, timedelta, timezone

import orjson
import pytest

from app.domain.custody import (
    append_entry,
    check_chain,
    compute_hash,
    create_custody_log,
    load_verified,
    parse_log,
    serialize_log,
    verify,
)
from app.schemas import ArchiveStage, ChainOfCustodyLog, CustodyEvent
from app.schemas.custody import (
    ArchiveFailedDetails,
    ArchiveInitiatedDetails,
    DeviceInfo,
    LogCreatedDetails,
    StreamStoppedDetails,
)
from app.utils.app_errors import CustodyIntegrityError, ValidationError

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def log() -> ChainOfCustodyLog:
    return create_custody_log(
        "st_1",
        "u.alice",
        LogCreatedDetails(title="Traffic stop", device=DeviceInfo(user_agent="ua", platform="ios")),
        now=T0,
    )


def _initiated(url: str = "https://rec.test/a.mp4") -> ArchiveInitiatedDetails:
    return ArchiveInitiatedDetails(source_url=url, title="Traffic stop")


class TestCreate:
    def test_create_has_single_log_created_entry(self, log: ChainOfCustodyLog):
        assert log.stream_id == "st_1"
        assert log.events() == ["log_created"]
        assert log.entries[0].actor == "u.alice"
        assert log.entries[0].details.version == "1.0"
        assert log.entries[0].timestamp == T0

    def test_create_accepts_mapping_details(self):
        log = create_custody_log("st_1", "u.alice", {"title": "From a dict"})
        assert log.entries[0].details.title == "From a dict"

    @pytest.mark.parametrize("stream_id,actor", [("", "u.alice"), ("  ", "u.alice"), ("st_1", "")])
    def test_create_rejects_blank_stream_id_or_actor(self, stream_id: str, actor: str):
        with pytest.raises(ValidationError):
            create_custody_log(stream_id, actor, LogCreatedDetails(title="t"))

    def test_create_rejects_details_of_wrong_event(self):
        with pytest.raises(ValidationError):
            create_custody_log("st_1", "u.alice", _initiated())

    def test_create_rejects_unknown_detail_fields(self):
        with pytest.raises(ValidationError):
            create_custody_log("st_1", "u.alice", {"title": "t", "unexpected": 1})


class TestAppend:
    def test_append_returns_new_log_and_keeps_original(self, log: ChainOfCustodyLog):
        appended = append_entry(log, CustodyEvent.ARCHIVE_INITIATED, "u.alice", _initiated())

        assert len(log.entries) == 1
        assert len(appended.entries) == 2
        assert appended.entries[0] == log.entries[0]
        assert appended.last_entry.event == "archive_initiated"

    def test_append_accepts_event_string(self, log: ChainOfCustodyLog):
        appended = append_entry(log, "stream_stopped", "u.alice", StreamStoppedDetails())
        assert appended.events() == ["log_created", "stream_stopped"]

    def test_append_rejects_unknown_event(self, log: ChainOfCustodyLog):
        with pytest.raises(ValidationError, match="Unknown custody event"):
            append_entry(log, "archive_exploded", "u.alice", {})

    def test_append_rejects_second_log_created(self, log: ChainOfCustodyLog):
        with pytest.raises(ValidationError):
            append_entry(log, CustodyEvent.LOG_CREATED, "u.alice", {"title": "again"})

    def test_append_rejects_blank_actor(self, log: ChainOfCustodyLog):
        with pytest.raises(ValidationError):
            append_entry(log, CustodyEvent.ARCHIVE_INITIATED, " ", _initiated())

    def test_append_rejects_mismatched_details(self, log: ChainOfCustodyLog):
        with pytest.raises(ValidationError):
            append_entry(log, CustodyEvent.ARCHIVE_FAILED, "u.alice", _initiated())

    def test_append_clamps_timestamp_that_goes_backwards(self, log: ChainOfCustodyLog):
        appended = append_entry(
            log,
            CustodyEvent.ARCHIVE_INITIATED,
            "u.alice",
            _initiated(),
            now=T0 - timedelta(minutes=5),
        )
        assert appended.last_entry.timestamp == T0

    def test_entry_ids_are_unique(self, log: ChainOfCustodyLog):
        for _ in range(5):
            log = append_entry(log, CustodyEvent.ARCHIVE_INITIATED, "u.alice", _initiated())
        ids = [e.id for e in log.entries]
        assert len(set(ids)) == len(ids)

    def test_appending_always_changes_the_hash(self, log: ChainOfCustodyLog):
        hashes = {compute_hash(log)}
        for _ in range(3):
            log = append_entry(log, CustodyEvent.ARCHIVE_INITIATED, "u.alice", _initiated())
            hashes.add(compute_hash(log))
        assert len(hashes) == 4


class TestHash:
    def test_verify_accepts_own_hash(self, log: ChainOfCustodyLog):
        assert verify(log, compute_hash(log)) is True

    def test_verify_rejects_missing_hash(self, log: ChainOfCustodyLog):
        assert verify(log, None) is False
        assert verify(log, "") is False

    def test_hash_is_independent_of_key_order(self, log: ChainOfCustodyLog):
        data = orjson.loads(serialize_log(log))
        reordered = {"entries": data["entries"], "streamId": data["streamId"]}
        reordered["entries"][0] = dict(reversed(list(reordered["entries"][0].items())))

        assert compute_hash(ChainOfCustodyLog.model_validate(reordered)) == compute_hash(log)

    def test_tampered_detail_fails_verification(self, log: ChainOfCustodyLog):
        log = append_entry(
            log,
            CustodyEvent.ARCHIVE_FAILED,
            "u.alice",
            ArchiveFailedDetails(stage=ArchiveStage.FETCH, reason="Download failed: 404", error="404"),
        )
        expected = compute_hash(log)

        data = orjson.loads(serialize_log(log))
        data["entries"][1]["details"]["reason"] = "Download ok"
        tampered = ChainOfCustodyLog.model_validate(data)

        assert verify(tampered, expected) is False

    def test_reordered_entries_fail_verification(self, log: ChainOfCustodyLog):
        log = append_entry(log, CustodyEvent.ARCHIVE_INITIATED, "u.alice", _initiated("a"))
        log = append_entry(log, CustodyEvent.ARCHIVE_INITIATED, "u.alice", _initiated("b"))
        expected = compute_hash(log)

        swapped = ChainOfCustodyLog(
            stream_id=log.stream_id,
            entries=(log.entries[0], log.entries[2], log.entries[1]),
        )
        assert verify(swapped, expected) is False

    def test_persisted_text_uses_camel_case_stream_id(self, log: ChainOfCustodyLog):
        data = orjson.loads(serialize_log(log))
        assert data["streamId"] == "st_1"
        assert set(data["entries"][0]) == {"id", "timestamp", "event", "actor", "details"}


class TestLoad:
    def test_load_verified_round_trips(self, log: ChainOfCustodyLog):
        log = append_entry(log, CustodyEvent.ARCHIVE_INITIATED, "u.alice", _initiated())
        loaded = load_verified(serialize_log(log), compute_hash(log))
        assert loaded == log

    def test_load_verified_rejects_hash_mismatch(self, log: ChainOfCustodyLog):
        text = serialize_log(log).replace("Traffic stop", "Nothing happened")
        with pytest.raises(CustodyIntegrityError, match="hash mismatch"):
            load_verified(text, compute_hash(log))

    def test_parse_log_rejects_garbage(self):
        with pytest.raises(CustodyIntegrityError):
            parse_log("{not json")

    def test_parse_log_rejects_unknown_event(self, log: ChainOfCustodyLog):
        data = orjson.loads(serialize_log(log))
        data["entries"][0]["event"] = "free_text"
        with pytest.raises(CustodyIntegrityError):
            parse_log(orjson.dumps(data))

    def test_check_chain_rejects_log_not_starting_with_log_created(
        self, log: ChainOfCustodyLog
    ):
        log = append_entry(log, CustodyEvent.ARCHIVE_INITIATED, "u.alice", _initiated())
        headless = ChainOfCustodyLog(stream_id=log.stream_id, entries=log.entries[1:])
        with pytest.raises(CustodyIntegrityError):
            check_chain(headless)

    def test_check_chain_rejects_timestamps_going_backwards(self, log: ChainOfCustodyLog):
        log = append_entry(
            log,
            CustodyEvent.ARCHIVE_INITIATED,
            "u.alice",
            _initiated(),
            now=T0 + timedelta(minutes=1),
        )
        earlier = log.entries[1].model_copy(update={"timestamp": T0 - timedelta(minutes=1)})
        broken = ChainOfCustodyLog(stream_id=log.stream_id, entries=(log.entries[0], earlier))
        with pytest.raises(CustodyIntegrityError):
            check_chain(broken)
