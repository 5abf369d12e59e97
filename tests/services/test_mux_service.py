from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from mux_python.rest import ApiException

from app.services.integrations.mux_service import MuxService
from app.utils.app_errors import BroadcastProviderError, ValidationError


class TestMuxService:
    async def test_demo_mode_returns_stub_ingest(self, test_config):
        ingest = await MuxService(test_config).create_live_ingest(passthrough="st_1")

        assert ingest.provider_stream_id == "ls_demo_001"
        assert ingest.rtmp_url == test_config.MUX_RTMP_INGEST_BASE_URL

    async def test_demo_mode_signal_complete_is_noop(self, test_config):
        await MuxService(test_config).signal_complete("ls_demo_001")

    async def test_create_live_ingest_maps_response(self, test_config):
        cfg = test_config.model_copy(update={"DEMO_MODE": False})
        mux = MuxService(cfg)
        live_api = MagicMock()
        live_api.create_live_stream.return_value = SimpleNamespace(
            data=SimpleNamespace(
                id="ls_abc",
                stream_key="sk_abc",
                playback_ids=[SimpleNamespace(id="pb_abc")],
            )
        )
        mux._live_api = live_api

        ingest = await mux.create_live_ingest(passthrough="st_1")

        assert (ingest.provider_stream_id, ingest.stream_key, ingest.playback_id) == (
            "ls_abc",
            "sk_abc",
            "pb_abc",
        )
        request = live_api.create_live_stream.call_args.args[0]
        assert request.passthrough == "st_1"

    async def test_api_error_becomes_provider_error(self, test_config):
        cfg = test_config.model_copy(update={"DEMO_MODE": False})
        mux = MuxService(cfg)
        live_api = MagicMock()
        live_api.signal_live_stream_complete.side_effect = ApiException(
            status=500, reason="Internal Server Error"
        )
        mux._live_api = live_api

        with pytest.raises(BroadcastProviderError, match="Internal Server Error"):
            await mux.signal_complete("ls_abc")

    async def test_missing_credentials(self, test_config):
        cfg = test_config.model_copy(
            update={"DEMO_MODE": False, "MUX_TOKEN_ID": None, "MUX_TOKEN_SECRET": None}
        )
        with pytest.raises(ValidationError):
            await MuxService(cfg).create_live_ingest()
