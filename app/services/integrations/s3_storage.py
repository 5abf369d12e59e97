"""AWS S3 object storage service.

Thin wrapper around aioboto3 used by the archival pipeline and evidence
capture to store recorded media.

Usage:
    from app.services.integrations.s3_storage import S3Service

    storage = S3Service()
    await storage.put_object(
        bucket="archived-streams",
        path="archives/user-1/st_123.mp4",
        data=b"...",
        content_type="video/mp4",
    )
    url = storage.get_public_url("archived-streams", "archives/user-1/st_123.mp4")
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Protocol

import aioboto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from app.app_config import AppEnvironConfig, get_app_environ_config
from app.utils.app_errors import StorageError, ValidationError


class ObjectStorage(Protocol):
    async def put_object(
        self, bucket: str, path: str, data: bytes, content_type: str
    ) -> None: ...

    def get_public_url(self, bucket: str, path: str) -> str: ...

    async def delete_object(self, bucket: str, path: str) -> None: ...


class S3Service:
    """Service wrapper for AWS S3 operations.

    ``put_object`` overwrites an existing key, so retried uploads to the same
    path replace the object instead of duplicating it.
    """

    def __init__(self, cfg: AppEnvironConfig | None = None) -> None:
        self._cfg = cfg or get_app_environ_config()
        self._session: aioboto3.Session | None = None
        self._demo_mode = self._cfg.DEMO_MODE
        self._timeout = self._cfg.ARCHIVE_UPLOAD_TIMEOUT_SECONDS
        logger.info("S3Service initialized")

    def _get_session(self) -> aioboto3.Session:
        """Get or create aioboto3 session."""
        if self._session is None:
            if not self._cfg.AWS_ACCESS_KEY_ID or not self._cfg.AWS_SECRET_ACCESS_KEY:
                raise ValidationError("AWS credentials not configured")

            self._session = aioboto3.Session(
                aws_access_key_id=self._cfg.AWS_ACCESS_KEY_ID,
                aws_secret_access_key=self._cfg.AWS_SECRET_ACCESS_KEY,
                region_name=self._cfg.AWS_REGION,
            )
            logger.info(f"S3 session created for region: {self._cfg.AWS_REGION}")

        return self._session

    @asynccontextmanager
    async def _get_client(self) -> AsyncIterator:  # type: ignore[misc]
        """Get async S3 client context manager."""
        session = self._get_session()
        boto_config = BotoConfig(
            connect_timeout=min(self._timeout, 30),
            read_timeout=self._timeout,
            retries={"max_attempts": 1},
        )
        async with session.client("s3", config=boto_config) as client:  # type: ignore[attr-defined]
            yield client

    async def put_object(self, bucket: str, path: str, data: bytes, content_type: str) -> None:
        """Upload bytes to ``bucket/path``, replacing any existing object.

        Raises:
            StorageError: upload failed or exceeded the upload timeout
        """
        if self._demo_mode:
            logger.info(f"S3Service DEMO_MODE=true: stubbed upload {bucket}/{path} ({len(data)} bytes)")
            return

        try:
            async with self._get_client() as client:
                await asyncio.wait_for(
                    client.put_object(
                        Bucket=bucket,
                        Key=path,
                        Body=data,
                        ContentType=content_type,
                    ),
                    timeout=self._timeout,
                )
        except asyncio.TimeoutError as exc:
            logger.error(f"Timed out uploading {bucket}/{path} after {self._timeout}s")
            raise StorageError(
                f"Upload of {path} timed out after {self._timeout}s", timed_out=True
            ) from exc
        except (ClientError, BotoCoreError) as exc:
            logger.error(f"Failed to upload {bucket}/{path}: {exc}")
            raise StorageError(f"Storage upload failed: {exc}") from exc

        logger.info(f"Uploaded object: {bucket}/{path} ({len(data)} bytes)")

    def get_public_url(self, bucket: str, path: str) -> str:
        if self._cfg.S3_PUBLIC_BASE_URL:
            return f"{self._cfg.S3_PUBLIC_BASE_URL.rstrip('/')}/{path}"
        return f"https://{bucket}.s3.{self._cfg.AWS_REGION}.amazonaws.com/{path}"

    async def delete_object(self, bucket: str, path: str) -> None:
        """Delete ``bucket/path``. Used by reconciliation, never by the happy path."""
        if self._demo_mode:
            logger.info(f"S3Service DEMO_MODE=true: stubbed delete {bucket}/{path} (no-op)")
            return

        try:
            async with self._get_client() as client:
                await client.delete_object(Bucket=bucket, Key=path)
        except (ClientError, BotoCoreError) as exc:
            logger.error(f"Failed to delete {bucket}/{path}: {exc}")
            raise StorageError(f"Storage delete failed: {exc}") from exc

        logger.info(f"Deleted object: {bucket}/{path}")
