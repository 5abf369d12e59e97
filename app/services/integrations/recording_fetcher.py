"""Download recorded broadcast media over HTTP."""

from dataclasses import dataclass
from typing import Protocol

import httpx
from loguru import logger

from app.app_config import get_app_environ_config
from app.utils.app_errors import FetchError


@dataclass(frozen=True)
class FetchedMedia:
    url: str
    content: bytes
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)


class RecordingSource(Protocol):
    async def fetch(self, url: str) -> FetchedMedia: ...


class RecordingFetcher:
    """GET a recorded asset with a bounded timeout.

    Every failure surfaces as FetchError: non-2xx status, transport error, or
    timeout (``timed_out=True``).
    """

    def __init__(
        self,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        seconds = timeout_seconds or get_app_environ_config().ARCHIVE_FETCH_TIMEOUT_SECONDS
        self._timeout = httpx.Timeout(seconds, connect=min(seconds, 10.0))
        self._transport = transport

    async def fetch(self, url: str) -> FetchedMedia:
        logger.info(f"Downloading recording from {url}")
        try:
            async with httpx.AsyncClient(
                http2=self._transport is None,
                timeout=self._timeout,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                response = await client.get(url)
        except httpx.TimeoutException as exc:
            logger.warning(f"Timed out downloading {url}: {exc!r}")
            raise FetchError(f"Failed to download stream: timed out ({exc!r})", timed_out=True) from exc
        except httpx.HTTPError as exc:
            logger.warning(f"Network error downloading {url}: {exc!r}")
            raise FetchError(f"Failed to download stream: {exc!r}") from exc

        if not response.is_success:
            logger.warning(f"Download of {url} returned {response.status_code}")
            raise FetchError(
                f"Failed to download stream: {response.status_code} {response.reason_phrase}",
                status=response.status_code,
            )

        media = FetchedMedia(
            url=url,
            content=response.content,
            content_type=response.headers.get("content-type"),
        )
        logger.info(f"Downloaded {media.size} bytes from {url}")
        return media
