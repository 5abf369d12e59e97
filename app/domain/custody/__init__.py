from .custody_log import (
    append_entry,
    check_chain,
    compute_hash,
    create_custody_log,
    load_verified,
    parse_log,
    serialize_log,
    verify,
)

__all__ = [
    "append_entry",
    "check_chain",
    "compute_hash",
    "create_custody_log",
    "load_verified",
    "parse_log",
    "serialize_log",
    "verify",
]
