"""Schemas: custody log models and Beanie ODM documents."""

from .custody import (
    ArchiveStage,
    ChainOfCustodyLog,
    CustodyEvent,
    DeviceInfo,
    GeoPoint,
    LogEntry,
)
from .stream_state import StreamState

__all__ = [
    "ArchiveStage",
    "ChainOfCustodyLog",
    "CustodyEvent",
    "DeviceInfo",
    "GeoPoint",
    "LogEntry",
    "StreamState",
]
