from typing import Annotated

from fastapi import Depends, Header, Request
from loguru import logger
from pydantic import BaseModel

from app.domain.live.archive.archive_reconciler import ArchiveReconciler
from app.domain.live.stream.stream_domain import StreamService
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode


class Actor(BaseModel):
    actor_id: str


async def get_current_actor(x_actor_id: str | None = Header(default=None)) -> Actor:
    # Identity is asserted by the gateway in front of this service
    if not x_actor_id or not x_actor_id.strip():
        raise AppError(
            errcode=AppErrorCode.E_UNAUTHORIZED,
            errmesg="Missing X-Actor-Id header",
            status_code=HttpStatusCode.UNAUTHORIZED,
        )
    logger.debug("Request actor: {}", x_actor_id)
    return Actor(actor_id=x_actor_id.strip())


CurrentActor = Annotated[Actor, Depends(get_current_actor)]


def get_stream_service(request: Request) -> StreamService:
    return request.app.state.stream_service


def get_archive_reconciler(request: Request) -> ArchiveReconciler:
    return request.app.state.archive_reconciler
