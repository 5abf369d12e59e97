"""Mux broadcast provider.

Thin wrapper around the `mux-python` package, consumed only at broadcast start
(create the live ingest) and stop (signal completion).

Usage:
    from app.services.integrations.mux_service import MuxService

    mux = MuxService()
    ingest = await mux.create_live_ingest(passthrough="st_123")
    await mux.signal_complete(ingest.provider_stream_id)
"""

from __future__ import annotations

import asyncio
from typing import Protocol

import mux_python
from loguru import logger
from mux_python.rest import ApiException
from pydantic import BaseModel

from app.app_config import AppEnvironConfig, get_app_environ_config
from app.utils.app_errors import BroadcastProviderError, ValidationError


class LiveIngest(BaseModel):
    """Provider references for one live broadcast."""

    provider_stream_id: str
    stream_key: str
    playback_id: str
    rtmp_url: str


class BroadcastProvider(Protocol):
    async def create_live_ingest(self, passthrough: str | None = None) -> LiveIngest: ...

    async def signal_complete(self, provider_stream_id: str) -> None: ...


class MuxService:
    """Service wrapper for Mux Video API (mux-python package)."""

    def __init__(self, cfg: AppEnvironConfig | None = None) -> None:
        self._cfg = cfg or get_app_environ_config()
        self._demo_mode = self._cfg.DEMO_MODE
        self._live_api: mux_python.LiveStreamsApi | None = None
        logger.info("MuxService initialized")

    def _get_live_api(self) -> mux_python.LiveStreamsApi:
        if self._live_api is None:
            token_id = self._cfg.MUX_TOKEN_ID
            token_secret = self._cfg.MUX_TOKEN_SECRET
            if not token_id or not token_secret:
                logger.error("MUX_TOKEN_ID or MUX_TOKEN_SECRET not configured")
                raise ValidationError(
                    "Streaming provider credentials must be configured. "
                    "Set them in env.local or environment variables."
                )

            configuration = mux_python.Configuration()
            configuration.username = token_id
            configuration.password = token_secret
            self._live_api = mux_python.LiveStreamsApi(mux_python.ApiClient(configuration))
            logger.info("Mux LiveStreamsApi client created")
        return self._live_api

    async def create_live_ingest(self, passthrough: str | None = None) -> LiveIngest:
        """Create a Mux live stream that records an asset when the broadcast ends.

        Raises:
            BroadcastProviderError: Mux API request failed
        """
        if self._demo_mode:
            logger.info("MuxService DEMO_MODE=true: returning stubbed live ingest")
            return LiveIngest(
                provider_stream_id="ls_demo_001",
                stream_key="sk_demo_redacted",
                playback_id="pb_demo_001",
                rtmp_url=self._cfg.MUX_RTMP_INGEST_BASE_URL,
            )

        live_api = self._get_live_api()
        create_request = mux_python.CreateLiveStreamRequest(
            playback_policy=["public"],
            new_asset_settings=mux_python.CreateAssetRequest(
                playback_policy=["public"],
                mp4_support="standard",
            ),
            passthrough=passthrough,
        )

        try:
            response = await asyncio.to_thread(live_api.create_live_stream, create_request)
        except ApiException as exc:
            logger.error(f"Mux create_live_stream failed: status={exc.status} reason={exc.reason}")
            raise BroadcastProviderError(f"Failed to create live ingest: {exc.reason}") from exc

        data = response.data  # type: ignore[attr-defined]
        playback_ids = data.playback_ids or []
        if not playback_ids:
            raise BroadcastProviderError(f"Live stream {data.id} has no playback id")

        logger.info(f"Mux live stream created: {data.id}")
        return LiveIngest(
            provider_stream_id=data.id,
            stream_key=data.stream_key,
            playback_id=playback_ids[0].id,
            rtmp_url=self._cfg.MUX_RTMP_INGEST_BASE_URL,
        )

    async def signal_complete(self, provider_stream_id: str) -> None:
        """Tell Mux the broadcast is over so the recorded asset is finalized."""
        if self._demo_mode:
            logger.info("MuxService DEMO_MODE=true: stubbed signal_complete (no-op)")
            return

        live_api = self._get_live_api()
        try:
            await asyncio.to_thread(live_api.signal_live_stream_complete, provider_stream_id)
        except ApiException as exc:
            logger.error(
                f"Mux signal_live_stream_complete failed for {provider_stream_id}: "
                f"status={exc.status} reason={exc.reason}"
            )
            raise BroadcastProviderError(
                f"Failed to signal completion for {provider_stream_id}: {exc.reason}"
            ) from exc
        logger.info(f"Mux live stream {provider_stream_id} signalled complete")
