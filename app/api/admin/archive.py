from dataclasses import asdict

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.api.utils import ApiSuccess, verify_api_key
from app.api.v1.dependency import get_archive_reconciler
from app.api.v1.schemas.stream import StreamOut
from app.domain.live.archive.archive_reconciler import ArchiveReconciler
from app.domain.live.stream.stream_models import StreamResponse

router = APIRouter(prefix="/admin/archive", dependencies=[Depends(verify_api_key)])


class ReconcileStreamIn(BaseModel):
    stream_id: str = Field(..., description="Unique identifier of the stream")
    actor: str | None = Field(default=None, description="Operator performing the action")


@router.get("/stalled", response_model=ApiSuccess)
async def list_stalled(
    older_than_seconds: float | None = Query(None, ge=0),
    reconciler: ArchiveReconciler = Depends(get_archive_reconciler),
):
    streams = await reconciler.find_stalled(older_than_seconds)
    return ApiSuccess(
        results=[StreamOut.from_response(StreamResponse.from_stream(s)) for s in streams]
    )


@router.post("/reset_stalled", response_model=ApiSuccess)
async def reset_stalled(
    body: ReconcileStreamIn,
    reconciler: ArchiveReconciler = Depends(get_archive_reconciler),
):
    kwargs = {"actor": body.actor} if body.actor else {}
    stream = await reconciler.reset_stalled(body.stream_id, **kwargs)
    return ApiSuccess(results=StreamOut.from_response(StreamResponse.from_stream(stream)))


@router.post("/remove_orphaned_object", response_model=ApiSuccess)
async def remove_orphaned_object(
    body: ReconcileStreamIn,
    reconciler: ArchiveReconciler = Depends(get_archive_reconciler),
):
    kwargs = {"actor": body.actor} if body.actor else {}
    stream = await reconciler.remove_orphaned_object(body.stream_id, **kwargs)
    return ApiSuccess(results=StreamOut.from_response(StreamResponse.from_stream(stream)))


@router.post("/reconcile", response_model=ApiSuccess)
async def reconcile(reconciler: ArchiveReconciler = Depends(get_archive_reconciler)):
    report = await reconciler.run_once()
    return ApiSuccess(results=asdict(report))
