from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, ORJSONResponse
from loguru import logger

from app.utils.app_errors import AppError, AppErrorCode, EvidenceInconsistencyError

from .utils import ApiFailure, api_failure, make_response


class EvidenceInconsistencyFailure(ApiFailure):
    evidence_id: str
    stream_id: str


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """
    Custom exception handler for AppError.
    Converts AppError to ApiFailure and returns via make_response.
    """
    # Log with the caller info captured when AppError was raised
    log_msg = f"{exc.errcode} {exc.erresid} msg={exc.errmesg} caller={exc.caller_info}"
    if exc.status_code >= 500:
        logger.error(log_msg)
    else:
        logger.warning(log_msg)

    if isinstance(exc, EvidenceInconsistencyError):
        failure: ApiFailure = EvidenceInconsistencyFailure(
            errcode=str(exc.errcode),
            errmesg=exc.errmesg,
            erresid=exc.erresid,
            evidence_id=exc.evidence_id,
            stream_id=exc.stream_id,
        )
    else:
        failure = ApiFailure(errcode=str(exc.errcode), errmesg=exc.errmesg, erresid=exc.erresid)
    return make_response(failure, status_code=exc.status_code)


async def app_validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()

    logger.warning(
        "Validation error: path={} method={} errors={}",
        request.url.path,
        request.method,
        errors,
    )

    failure = api_failure(AppErrorCode.E_INVALID_REQUEST.value, errmesg=str(errors))

    return ORJSONResponse(status_code=422, content=failure.model_dump())
