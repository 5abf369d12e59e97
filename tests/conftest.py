import warnings

import pytest
import pytest_asyncio

from app.app_config import AppEnvironConfig, get_app_environ_config
from app.domain.live.stream.stream_domain import StreamService
from app.domain.live.stream.stream_models import StartBroadcastParams, StreamCreateParams
from app.domain.live.stream_guard import LocalStreamGuard

# Ignore warnings from third-party drivers
warnings.filterwarnings("ignore", category=DeprecationWarning, module="motor.*")

from tests.fixtures.memory_store import (  # noqa: E402
    RECORDED_URL,
    STREAMER_ID,
    FakeBroadcastProvider,
    FakeObjectStorage,
    FakeRecordingSource,
    InMemoryRecordStore,
)
from tests.fixtures.mongo_fixtures import *  # noqa: E402, F403


@pytest.fixture
def test_config() -> AppEnvironConfig:
    return get_app_environ_config().model_copy(
        update={
            "DEMO_MODE": True,
            "S3_ARCHIVE_BUCKET": "test-bucket",
            "S3_ARCHIVE_PREFIX": "archives",
            "S3_EVIDENCE_PREFIX": "evidence",
            "S3_PUBLIC_BASE_URL": None,
            "AWS_REGION": "us-east-1",
            "ARCHIVE_CONTENT_TYPE": "video/mp4",
            "ARCHIVE_STALL_SECONDS": 60.0,
        }
    )


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def storage() -> FakeObjectStorage:
    return FakeObjectStorage()


@pytest.fixture
def fetcher() -> FakeRecordingSource:
    source = FakeRecordingSource()
    source.media[RECORDED_URL] = b"0123456789"
    return source


@pytest.fixture
def provider() -> FakeBroadcastProvider:
    return FakeBroadcastProvider()


@pytest.fixture
def guard() -> LocalStreamGuard:
    return LocalStreamGuard()


@pytest.fixture
def stream_service(store, provider, fetcher, storage, guard, test_config) -> StreamService:
    return StreamService(
        store=store,
        provider=provider,
        fetcher=fetcher,
        storage=storage,
        guard=guard,
        cfg=test_config,
    )


@pytest_asyncio.fixture
async def pending_stream_id(stream_service: StreamService) -> str:
    result = await stream_service.create_stream(
        StreamCreateParams(streamer_id=STREAMER_ID, title="Traffic stop", description="Main St")
    )
    return result.stream_id


@pytest_asyncio.fixture
async def live_stream_id(stream_service: StreamService, pending_stream_id: str) -> str:
    await stream_service.start_broadcast(pending_stream_id, STREAMER_ID, StartBroadcastParams())
    return pending_stream_id
