"""Chain-of-custody log operations.

The log is an immutable value: ``append_entry`` returns a new log whose entries
are the old entries plus one. The integrity hash is SHA-256 over the canonical
JSON form (sorted keys, no whitespace, UTF-8), so it depends only on entry
contents and order and can be re-verified by anyone holding the stored log.
"""

import hashlib
import hmac
from collections.abc import Mapping
from datetime import datetime
from typing import Any

import orjson
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from app.domain.utils.clock import ensure_utc, utc_now
from app.domain.utils.idgen import new_log_entry_id
from app.schemas.custody import (
    ENTRY_TYPES,
    ChainOfCustodyLog,
    CustodyEvent,
    LogCreatedDetails,
    LogEntry,
)
from app.utils.app_errors import CustodyIntegrityError, ValidationError


def _coerce_event(event: CustodyEvent | str) -> CustodyEvent:
    try:
        return CustodyEvent(event)
    except ValueError:
        raise ValidationError(f"Unknown custody event: {event!r}") from None


def _build_entry(
    event: CustodyEvent | str,
    actor: str,
    details: BaseModel | Mapping[str, Any],
    timestamp: datetime,
) -> LogEntry:
    event = _coerce_event(event)
    if not actor or not actor.strip():
        raise ValidationError("Custody log actor is required")

    entry_cls, details_cls = ENTRY_TYPES[event]
    if isinstance(details, BaseModel):
        if not isinstance(details, details_cls):
            raise ValidationError(
                f"Event {event} expects {details_cls.__name__}, got {type(details).__name__}"
            )
        payload = details
    else:
        try:
            payload = details_cls.model_validate(dict(details))
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid details for event {event}: {exc}") from exc

    return entry_cls(
        id=new_log_entry_id(),
        timestamp=timestamp,
        actor=actor,
        details=payload,
    )


def create_custody_log(
    stream_id: str,
    actor: str,
    details: LogCreatedDetails | Mapping[str, Any],
    *,
    now: datetime | None = None,
) -> ChainOfCustodyLog:
    """Create a log holding exactly one ``log_created`` entry."""
    if not stream_id or not stream_id.strip():
        raise ValidationError("Custody log stream_id is required")

    entry = _build_entry(
        CustodyEvent.LOG_CREATED, actor, details, ensure_utc(now or utc_now())
    )
    return ChainOfCustodyLog(stream_id=stream_id, entries=(entry,))


def append_entry(
    log: ChainOfCustodyLog,
    event: CustodyEvent | str,
    actor: str,
    details: BaseModel | Mapping[str, Any],
    *,
    now: datetime | None = None,
) -> ChainOfCustodyLog:
    """Return a new log with one additional entry; ``log`` is left untouched.

    Timestamps never go backwards: if the clock reads earlier than the last
    entry, the new entry reuses the last entry's timestamp.
    """
    if _coerce_event(event) == CustodyEvent.LOG_CREATED:
        raise ValidationError("log_created can only be the first entry of a custody log")

    timestamp = ensure_utc(now or utc_now())
    last_timestamp = log.entries[-1].timestamp
    if timestamp < last_timestamp:
        timestamp = last_timestamp

    entry = _build_entry(event, actor, details, timestamp)
    return ChainOfCustodyLog(stream_id=log.stream_id, entries=(*log.entries, entry))


def canonical_bytes(log: ChainOfCustodyLog) -> bytes:
    return orjson.dumps(
        log.model_dump(mode="json", by_alias=True),
        option=orjson.OPT_SORT_KEYS,
    )


def compute_hash(log: ChainOfCustodyLog) -> str:
    """SHA-256 hex digest of the canonical serialization."""
    return hashlib.sha256(canonical_bytes(log)).hexdigest()


def verify(log: ChainOfCustodyLog, expected_hash: str | None) -> bool:
    if not expected_hash:
        return False
    return hmac.compare_digest(compute_hash(log), expected_hash.lower())


def serialize_log(log: ChainOfCustodyLog) -> str:
    """Persisted text form (the exact bytes that are hashed)."""
    return canonical_bytes(log).decode("utf-8")


def parse_log(text: str | bytes) -> ChainOfCustodyLog:
    try:
        return ChainOfCustodyLog.model_validate(orjson.loads(text))
    except (orjson.JSONDecodeError, PydanticValidationError) as exc:
        raise CustodyIntegrityError(f"Unreadable custody log: {exc}") from exc


def check_chain(log: ChainOfCustodyLog) -> None:
    """Validate structural invariants of a log loaded from storage.

    Raises:
        CustodyIntegrityError: if the first entry is not log_created, ids repeat,
            or timestamps go backwards
    """
    if not log.entries:
        raise CustodyIntegrityError(f"Custody log for {log.stream_id} has no entries")
    if log.entries[0].event != CustodyEvent.LOG_CREATED.value:
        raise CustodyIntegrityError(
            f"Custody log for {log.stream_id} starts with {log.entries[0].event}"
        )

    seen: set[str] = set()
    previous: datetime | None = None
    for index, entry in enumerate(log.entries):
        if index > 0 and entry.event == CustodyEvent.LOG_CREATED.value:
            raise CustodyIntegrityError(f"Duplicate log_created at position {index}")
        if entry.id in seen:
            raise CustodyIntegrityError(f"Duplicate custody entry id {entry.id}")
        seen.add(entry.id)
        if previous is not None and entry.timestamp < previous:
            raise CustodyIntegrityError(
                f"Custody entry {entry.id} is older than its predecessor"
            )
        previous = entry.timestamp


def load_verified(text: str, expected_hash: str) -> ChainOfCustodyLog:
    """Parse a persisted log and check it against its recorded hash."""
    log = parse_log(text)
    if not verify(log, expected_hash):
        raise CustodyIntegrityError(
            f"Custody log hash mismatch for stream {log.stream_id}"
        )
    check_chain(log)
    return log
