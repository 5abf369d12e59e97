"""Application error types.

Every error raised by the domain layer is an ``AppError`` so the API layer can
render it as an ``ApiFailure`` envelope. The subclasses form the archival
error taxonomy:

- ValidationError: bad input, never retried
- TransientNetworkError (FetchError, StorageError): eligible for caller retry
- StateConflictError: illegal lifecycle transition or concurrent operation
- PersistenceError (EvidenceInconsistencyError): record store write failed
- NotFoundError: referenced stream/evidence missing
- CustodyIntegrityError: persisted custody log does not match its hash
"""

import inspect
from enum import Enum, IntEnum
from uuid import uuid4


class AppErrorCode(str, Enum):
    E_INTERNAL_ERROR = "E_INTERNAL_ERROR"
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_UNAUTHORIZED = "E_UNAUTHORIZED"
    E_STREAM_NOT_FOUND = "E_STREAM_NOT_FOUND"
    E_EVIDENCE_NOT_FOUND = "E_EVIDENCE_NOT_FOUND"
    E_STATE_CONFLICT = "E_STATE_CONFLICT"
    E_STREAM_BUSY = "E_STREAM_BUSY"
    E_STREAM_VERSION_CONFLICT = "E_STREAM_VERSION_CONFLICT"
    E_FETCH_FAILED = "E_FETCH_FAILED"
    E_FETCH_TIMEOUT = "E_FETCH_TIMEOUT"
    E_STORAGE_FAILED = "E_STORAGE_FAILED"
    E_STORAGE_TIMEOUT = "E_STORAGE_TIMEOUT"
    E_PERSISTENCE_FAILED = "E_PERSISTENCE_FAILED"
    E_EVIDENCE_INCONSISTENT = "E_EVIDENCE_INCONSISTENT"
    E_CUSTODY_TAMPERED = "E_CUSTODY_TAMPERED"
    E_BROADCAST_PROVIDER = "E_BROADCAST_PROVIDER"

    def __str__(self) -> str:
        return self.value


class HttpStatusCode(IntEnum):
    OK = 200
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    NOT_FOUND = 404
    CONFLICT = 409
    INTERNAL_ERROR = 500
    BAD_GATEWAY = 502
    GATEWAY_TIMEOUT = 504


class AppError(Exception):
    """Base application error rendered as an ApiFailure by the API layer."""

    def __init__(
        self,
        errcode: AppErrorCode = AppErrorCode.E_INTERNAL_ERROR,
        errmesg: str = "We are sorry, an error occurred.",
        status_code: int = HttpStatusCode.INTERNAL_ERROR,
    ) -> None:
        super().__init__(errmesg)
        self.errcode = errcode
        self.errmesg = errmesg
        self.status_code = int(status_code)
        self.erresid = uuid4().hex[:10]
        self.caller_info = _caller_info()

    def __str__(self) -> str:
        return f"{self.errcode}: {self.errmesg}"


def _caller_info() -> str:
    # Skip AppError.__init__ frames (including subclass constructors)
    for frame_info in inspect.stack()[2:]:
        if "self" in frame_info.frame.f_locals and isinstance(
            frame_info.frame.f_locals["self"], AppError
        ):
            continue
        module = inspect.getmodule(frame_info.frame)
        module_name = module.__name__ if module else frame_info.filename
        return f"{module_name}:{frame_info.function}:{frame_info.lineno}"
    return "unknown"


class ValidationError(AppError):
    def __init__(self, errmesg: str) -> None:
        super().__init__(AppErrorCode.E_INVALID_REQUEST, errmesg, HttpStatusCode.BAD_REQUEST)


class NotFoundError(AppError):
    def __init__(
        self, errmesg: str, errcode: AppErrorCode = AppErrorCode.E_STREAM_NOT_FOUND
    ) -> None:
        super().__init__(errcode, errmesg, HttpStatusCode.NOT_FOUND)


class StateConflictError(AppError):
    """Raised for a transition outside the lifecycle table or a busy stream."""

    def __init__(
        self,
        errmesg: str,
        *,
        current: str | None = None,
        attempted: str | None = None,
        errcode: AppErrorCode = AppErrorCode.E_STATE_CONFLICT,
    ) -> None:
        super().__init__(errcode, errmesg, HttpStatusCode.CONFLICT)
        self.current = current
        self.attempted = attempted


class TransientNetworkError(AppError):
    """Network failure talking to an external service; the caller may retry."""

    def __init__(
        self,
        errcode: AppErrorCode,
        errmesg: str,
        *,
        timed_out: bool = False,
    ) -> None:
        status = HttpStatusCode.GATEWAY_TIMEOUT if timed_out else HttpStatusCode.BAD_GATEWAY
        super().__init__(errcode, errmesg, status)
        self.timed_out = timed_out


class FetchError(TransientNetworkError):
    def __init__(
        self, errmesg: str, *, status: int | None = None, timed_out: bool = False
    ) -> None:
        errcode = AppErrorCode.E_FETCH_TIMEOUT if timed_out else AppErrorCode.E_FETCH_FAILED
        super().__init__(errcode, errmesg, timed_out=timed_out)
        self.status = status


class StorageError(TransientNetworkError):
    def __init__(self, errmesg: str, *, timed_out: bool = False) -> None:
        errcode = AppErrorCode.E_STORAGE_TIMEOUT if timed_out else AppErrorCode.E_STORAGE_FAILED
        super().__init__(errcode, errmesg, timed_out=timed_out)


class PersistenceError(AppError):
    def __init__(
        self,
        errmesg: str,
        errcode: AppErrorCode = AppErrorCode.E_PERSISTENCE_FAILED,
    ) -> None:
        super().__init__(errcode, errmesg, HttpStatusCode.INTERNAL_ERROR)


class EvidenceInconsistencyError(PersistenceError):
    """Evidence record was written but the parent stream update failed."""

    def __init__(self, errmesg: str, *, evidence_id: str, stream_id: str) -> None:
        super().__init__(errmesg, AppErrorCode.E_EVIDENCE_INCONSISTENT)
        self.evidence_id = evidence_id
        self.stream_id = stream_id


class CustodyIntegrityError(AppError):
    def __init__(self, errmesg: str) -> None:
        super().__init__(AppErrorCode.E_CUSTODY_TAMPERED, errmesg, HttpStatusCode.CONFLICT)


class BroadcastProviderError(AppError):
    def __init__(self, errmesg: str) -> None:
        super().__init__(
            AppErrorCode.E_BROADCAST_PROVIDER, errmesg, HttpStatusCode.BAD_GATEWAY
        )


__all__ = [
    "AppError",
    "AppErrorCode",
    "BroadcastProviderError",
    "CustodyIntegrityError",
    "EvidenceInconsistencyError",
    "FetchError",
    "HttpStatusCode",
    "NotFoundError",
    "PersistenceError",
    "StateConflictError",
    "StorageError",
    "TransientNetworkError",
    "ValidationError",
]
