from ulid import ULID


def new_ulid(prefix: str | None = None) -> str:
    value = str(ULID()).lower()
    return f"{prefix}{value}" if prefix else value


def new_stream_id() -> str:
    return new_ulid("st_")


def new_evidence_id() -> str:
    return new_ulid("ev_")


def new_log_entry_id() -> str:
    return new_ulid("le_")
