from fastapi import APIRouter, Depends, Query

from app.api.v1.dependency import CurrentActor, get_stream_service
from app.api.v1.schemas.base import ApiOut
from app.api.v1.schemas.stream import (
    ArchiveStreamIn,
    CompleteEvidenceUploadIn,
    CreateStreamIn,
    EvidenceOut,
    ListEvidenceOut,
    ListStreamsOut,
    SaveForEvidenceIn,
    StartBroadcastIn,
    StopBroadcastIn,
    StopBroadcastOut,
    StreamOut,
    UpdateStreamIn,
)
from app.domain.live.evidence.evidence_models import EvidenceDetails
from app.domain.live.stream.stream_domain import StreamService
from app.domain.live.stream.stream_models import (
    BroadcastStartResponse,
    CustodyReport,
    StartBroadcastParams,
    StopBroadcastParams,
    StreamCreateParams,
    StreamUpdateParams,
)
from app.schemas import StreamState

router = APIRouter(prefix="/stream")


@router.post("/create_stream")
async def create_stream(
    body: CreateStreamIn,
    actor: CurrentActor,
    service: StreamService = Depends(get_stream_service),
) -> ApiOut[StreamOut]:
    """Create a pending stream owned by the calling streamer."""
    params = StreamCreateParams(
        streamer_id=actor.actor_id,
        title=body.title,
        description=body.description,
        device=body.device,
    )
    result = await service.create_stream(params)
    return ApiOut[StreamOut](results=StreamOut.from_response(result))


@router.post("/start_broadcast")
async def start_broadcast(
    body: StartBroadcastIn,
    actor: CurrentActor,
    service: StreamService = Depends(get_stream_service),
) -> ApiOut[BroadcastStartResponse]:
    result = await service.start_broadcast(
        body.stream_id, actor.actor_id, StartBroadcastParams(gps=body.gps)
    )
    return ApiOut[BroadcastStartResponse](results=result)


@router.post("/stop_broadcast")
async def stop_broadcast(
    body: StopBroadcastIn,
    actor: CurrentActor,
    service: StreamService = Depends(get_stream_service),
) -> ApiOut[StopBroadcastOut]:
    """Stop a live broadcast, then archive it or save it for evidence."""
    params = StopBroadcastParams(**body.model_dump(exclude={"stream_id"}))
    result = await service.stop_broadcast(body.stream_id, actor.actor_id, params)
    return ApiOut[StopBroadcastOut](
        results=StopBroadcastOut(
            stream=StreamOut.from_response(result.stream),
            evidence_id=result.evidence_id,
        )
    )


@router.post("/archive_stream")
async def archive_stream(
    body: ArchiveStreamIn,
    actor: CurrentActor,
    service: StreamService = Depends(get_stream_service),
) -> ApiOut[StreamOut]:
    result = await service.archive_stream(body.stream_id, actor.actor_id, body.recorded_url)
    return ApiOut[StreamOut](results=StreamOut.from_response(result))


@router.post("/save_for_evidence")
async def save_for_evidence(
    body: SaveForEvidenceIn,
    actor: CurrentActor,
    service: StreamService = Depends(get_stream_service),
) -> ApiOut[EvidenceOut]:
    details = EvidenceDetails(
        incident_id=body.incident_id,
        description=body.description,
        metadata=body.metadata,
    )
    record = await service.save_for_evidence(body.stream_id, actor.actor_id, details)
    return ApiOut[EvidenceOut](results=EvidenceOut.from_record(record))


@router.get("/get_stream")
async def get_stream(
    _: CurrentActor,
    stream_id: str = Query(..., description="Unique identifier of the stream"),
    service: StreamService = Depends(get_stream_service),
) -> ApiOut[StreamOut]:
    result = await service.get_stream(stream_id)
    return ApiOut[StreamOut](results=StreamOut.from_response(result))


@router.get("/list_streams")
async def list_streams(
    _: CurrentActor,
    service: StreamService = Depends(get_stream_service),
    status: StreamState | None = Query(None, description="Filter by status"),
    limit: int = Query(20, ge=1, le=100, description="Number of items to return"),
) -> ApiOut[ListStreamsOut]:
    result = await service.list_streams(status=status, limit=limit)
    return ApiOut[ListStreamsOut](
        results=ListStreamsOut(streams=[StreamOut.from_response(s) for s in result])
    )


@router.post("/update_stream")
async def update_stream(
    body: UpdateStreamIn,
    _: CurrentActor,
    service: StreamService = Depends(get_stream_service),
) -> ApiOut[StreamOut]:
    """Update title/description only."""
    params = StreamUpdateParams(**body.model_dump(exclude={"stream_id"}, exclude_unset=True))
    result = await service.update_stream(body.stream_id, params)
    return ApiOut[StreamOut](results=StreamOut.from_response(result))


@router.get("/verify_custody")
async def verify_custody(
    _: CurrentActor,
    stream_id: str = Query(..., description="Unique identifier of the stream"),
    service: StreamService = Depends(get_stream_service),
) -> ApiOut[CustodyReport]:
    result = await service.verify_custody(stream_id)
    return ApiOut[CustodyReport](results=result)


@router.get("/get_evidence")
async def get_evidence(
    _: CurrentActor,
    evidence_id: str = Query(..., description="Unique identifier of the evidence record"),
    service: StreamService = Depends(get_stream_service),
) -> ApiOut[EvidenceOut]:
    record = await service.get_evidence(evidence_id)
    return ApiOut[EvidenceOut](results=EvidenceOut.from_record(record))


@router.get("/list_evidence")
async def list_evidence(
    _: CurrentActor,
    stream_id: str = Query(..., description="Unique identifier of the stream"),
    service: StreamService = Depends(get_stream_service),
) -> ApiOut[ListEvidenceOut]:
    records = await service.list_evidence(stream_id)
    return ApiOut[ListEvidenceOut](
        results=ListEvidenceOut(evidence=[EvidenceOut.from_record(r) for r in records])
    )


@router.post("/complete_evidence_upload")
async def complete_evidence_upload(
    body: CompleteEvidenceUploadIn,
    _: CurrentActor,
    service: StreamService = Depends(get_stream_service),
) -> ApiOut[EvidenceOut]:
    """Copy the recording of evidence captured while the stream was live."""
    record = await service.complete_evidence_upload(body.evidence_id, body.recorded_url)
    return ApiOut[EvidenceOut](results=EvidenceOut.from_record(record))
