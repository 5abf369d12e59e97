import time
import traceback
import uuid
from contextlib import asynccontextmanager
from os import environ

import logfire
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from granian import Granian
from loguru import logger
from motor.motor_asyncio import AsyncIOMotorClient
from redis.asyncio import Redis
from starlette.middleware.base import BaseHTTPMiddleware

from app.api import health
from app.api.admin import archive as admin_archive
from app.api.errors import app_error_handler, app_validation_exception_handler
from app.api.utils import api_failure, init_logger
from app.api.v1.routers import stream
from app.app_config import get_app_environ_config
from app.schemas.init import init_beanie_odm
from app.services.service_factory import build_services
from app.utils.app_errors import AppError, AppErrorCode

cfg = get_app_environ_config()


class HTTPLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore
        start_time = time.time()
        request_id = str(uuid.uuid4())[:8]

        # Log the incoming request
        logger.info(f"[{request_id}] {request.method} {request.url.path}")

        try:
            # Process the request
            response = await call_next(request)

            # Calculate request duration
            process_time = (time.time() - start_time) * 1000

            # Log the response
            logger.info(
                f"[{request_id}] {request.method} {request.url.path} - "
                f"Status: {response.status_code} - "
                f"Duration: {process_time:.2f}ms"
            )

            return response

        except Exception as exc:
            process_time = (time.time() - start_time) * 1000

            logger.error(
                f"[{request_id}] Unhandled exception in {request.method} {request.url.path} - "
                f"Duration: {process_time:.2f}ms - "
                f"Error: {type(exc).__name__}: {exc}\n"
                f"Traceback:\n{traceback.format_exc()}"
            )

            failure = api_failure(
                errcode=AppErrorCode.E_INTERNAL_ERROR.value,
                errmesg=f"Internal server error (request_id: {request_id})",
            )
            return ORJSONResponse(
                status_code=500,
                content=failure.model_dump(),
            )


@asynccontextmanager
async def lifespan(server: FastAPI):
    init_logger()

    logger.info("Application startup...")

    mongo_client = AsyncIOMotorClient(cfg.MONGO_URL)
    await init_beanie_odm(mongo_client, cfg.MONGO_DATABASE)
    logger.info(f"Beanie initialized on database {cfg.MONGO_DATABASE}")

    redis_client = Redis.from_url(cfg.REDIS_URL) if cfg.STREAM_GUARD_BACKEND == "redis" else None

    server.state.stream_service, server.state.archive_reconciler = build_services(
        cfg, redis_client
    )

    if cfg.LOGFIRE_ENABLE:
        logger.info("Logfire initializing")

        logfire.configure(
            token=cfg.LOGFIRE_TOKEN,
            service_name="witness-live",
            service_version=environ.get("BUILD_COMMIT") or "dev",
        )

        logger.info("Logfire instrument fastapi")
        logfire.instrument_fastapi(server, capture_headers=True)

        logger.info("Logfire instrument mongo")
        logfire.instrument_pymongo(capture_statement=cfg.DEBUG)

        logger.info("Logfire instrument httpx")
        logfire.instrument_httpx()

    yield

    logger.info("Application shutdown...")

    if redis_client is not None:
        await redis_client.aclose()
    mongo_client.close()


app = FastAPI(
    version="1.0",
    title="Witness Live API",
    docs_url=None if not cfg.DEBUG else "/docs",
    redoc_url=None,
    openapi_url=None if not cfg.DEBUG else "/openapi.json",
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
)

app.add_middleware(HTTPLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,  # type: ignore
    allow_origins=cfg.API_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(RequestValidationError, app_validation_exception_handler)  # type: ignore
app.add_exception_handler(AppError, app_error_handler)  # type: ignore

app.include_router(health.router)
app.include_router(stream.router, prefix="/api/v1")
app.include_router(admin_archive.router)


def build_granian_kwargs():
    kwargs = {
        "interface": "asgi",
        "address": cfg.API_HOST,
        "port": cfg.API_PORT,
        "workers": cfg.API_WORKERS,
        "reload": cfg.DEBUG,
    }

    return kwargs


if __name__ == "__main__":
    granian_kwargs = build_granian_kwargs()
    Granian("app.main:app", **granian_kwargs).serve()
