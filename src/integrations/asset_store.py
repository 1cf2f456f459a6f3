"""
S3 image store.

Images are downloaded over HTTP as forward-only streams and archived under
``<grouping id>/<unique id>`` in the image bucket, which is served publicly
from ``public_asset_url_prefix``.
"""

from __future__ import annotations

import asyncio
import uuid

from typing import Any, BinaryIO

import httpx

from botocore.exceptions import BotoCoreError, ClientError

from core.constants import IMAGE_CONTENT_TYPE, PRIVATE_CHAT_GROUP, Settings
from models.error_models import AssetStoreError
from utils.logger import ChatLogger

DOWNLOAD_CHUNK_SIZE = 64 * 1024


class HTTPImageStream:
    """Blocking, file-like view of a streamed httpx response.

    Reads happen on worker threads; the response is released on ``close``.
    """

    def __init__(self, response: httpx.Response, chunk_size: int = DOWNLOAD_CHUNK_SIZE):
        self._response = response
        self._chunks = response.iter_bytes(chunk_size)
        self._leftover = b""
        self.closed = False

    def read(self, size: int = -1, /) -> bytes:
        if self.closed:
            raise ValueError("I/O operation on closed stream")

        try:
            if size is None or size < 0:
                data = self._leftover + b"".join(self._chunks)
                self._leftover = b""
                return data

            while not self._leftover:
                try:
                    self._leftover = next(self._chunks)
                except StopIteration:
                    return b""
        except httpx.HTTPError as e:
            raise OSError(f"image download interrupted: {e}") from e

        data, self._leftover = self._leftover[:size], self._leftover[size:]
        return data

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._response.close()


class S3AssetStore:
    """Implements the AssetStore protocol with httpx downloads and S3 uploads."""

    def __init__(
        self,
        settings: Settings,
        logger: ChatLogger,
        http_client: httpx.Client,
        s3_client: Any = None,
    ):
        self.settings = settings
        self.logger = logger
        self.http_client = http_client
        self._client: Any = s3_client

    def _get_client(self) -> Any:
        """Lazy-initialize boto3 client."""
        if self._client is None:
            import boto3

            client_kwargs: dict[str, Any] = {
                "service_name": "s3",
                "region_name": self.settings.aws_region,
            }
            if self.settings.s3_endpoint:
                client_kwargs["endpoint_url"] = self.settings.s3_endpoint

            self._client = boto3.client(**client_kwargs)
        return self._client

    @property
    def bucket(self) -> str:
        return self.settings.image_bucket

    def public_url(self, key: str) -> str:
        return f"{self.settings.public_asset_url_prefix}{key}"

    async def fetch_by_url(self, url: str) -> tuple[HTTPImageStream, int | None]:
        """Open a streaming download of ``url``.

        Returns:
            Tuple of (stream, declared length or None when unknown)
        """
        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(
                None, lambda: self.http_client.send(self.http_client.build_request("GET", url), stream=True)
            )
        except httpx.HTTPError as e:
            raise AssetStoreError(f"failed to request image from URL: {e}") from e

        if response.status_code != httpx.codes.OK:
            response.close()
            raise AssetStoreError(f"unexpected response status: {response.status_code}")

        length: int | None = None
        content_length = response.headers.get("content-length")
        if content_length and content_length.isdigit() and "content-encoding" not in response.headers:
            length = int(content_length)

        return HTTPImageStream(response), length

    async def store(self, grouping_id: str, stream: BinaryIO, length: int | None) -> str:
        """Upload ``stream`` and return its key.

        ``upload_fileobj`` only ever calls ``read``, so a forward-only stream
        of unknown length is fine; large images go up as multipart uploads.
        """
        key = f"{grouping_id or PRIVATE_CHAT_GROUP}/{uuid.uuid4().hex}"
        client = self._get_client()
        loop = asyncio.get_running_loop()

        try:
            await loop.run_in_executor(
                None,
                lambda: client.upload_fileobj(
                    stream,
                    self.bucket,
                    key,
                    ExtraArgs={"ContentType": IMAGE_CONTENT_TYPE},
                ),
            )
        except (BotoCoreError, ClientError, OSError) as e:
            raise AssetStoreError(f"failed to write image to S3: {e}") from e

        self.logger.debug(f"Uploaded to S3: {key}", image_length=length)
        return key
