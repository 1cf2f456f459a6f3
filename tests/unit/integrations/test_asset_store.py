"""Tests for the S3 asset store and streaming image downloads."""

from __future__ import annotations

import io

from collections.abc import Generator
from unittest.mock import MagicMock

import httpx
import pytest

from botocore.exceptions import ClientError

from core.constants import Settings
from integrations.asset_store import HTTPImageStream, S3AssetStore
from models.error_models import AssetStoreError
from utils.observability import Observability

IMAGE = bytes(range(256)) * 1000


def _handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/image.png":
        return httpx.Response(200, content=IMAGE, headers={"content-type": "image/png"})
    if request.url.path == "/forbidden.png":
        return httpx.Response(403, content=b"denied")
    raise httpx.ConnectError("connection refused", request=request)


@pytest.fixture
def http_client() -> Generator[httpx.Client, None, None]:
    client = httpx.Client(transport=httpx.MockTransport(_handler))
    yield client
    client.close()


@pytest.fixture
def s3_client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def store(settings: Settings, obs: Observability, http_client: httpx.Client, s3_client: MagicMock) -> S3AssetStore:
    return S3AssetStore(settings, obs.logger, http_client, s3_client=s3_client)


class TestFetchByUrl:
    """Tests for streaming downloads."""

    @pytest.mark.asyncio
    async def test_stream_and_length(self, store: S3AssetStore) -> None:
        stream, length = await store.fetch_by_url("https://images.example.com/image.png")
        try:
            data = stream.read()
        finally:
            stream.close()

        assert data == IMAGE
        assert length == len(IMAGE)

    @pytest.mark.asyncio
    async def test_sized_reads(self, store: S3AssetStore) -> None:
        stream, _ = await store.fetch_by_url("https://images.example.com/image.png")

        chunks = []
        while chunk := stream.read(1000):
            assert len(chunk) <= 1000
            chunks.append(chunk)
        stream.close()

        assert b"".join(chunks) == IMAGE

    @pytest.mark.asyncio
    async def test_non_200_status(self, store: S3AssetStore) -> None:
        with pytest.raises(AssetStoreError, match="403"):
            await store.fetch_by_url("https://images.example.com/forbidden.png")

    @pytest.mark.asyncio
    async def test_transport_error(self, store: S3AssetStore) -> None:
        with pytest.raises(AssetStoreError, match="failed to request image"):
            await store.fetch_by_url("https://images.example.com/down.png")


class TestHTTPImageStream:
    """Tests for the file-like response wrapper."""

    def test_read_after_close(self) -> None:
        response = httpx.Response(200, content=b"abc")
        stream = HTTPImageStream(response)
        stream.close()

        with pytest.raises(ValueError):
            stream.read(1)

    def test_close_is_idempotent(self) -> None:
        response = MagicMock()
        stream = HTTPImageStream(response)

        stream.close()
        stream.close()

        response.close.assert_called_once()


class TestStore:
    """Tests for S3 uploads."""

    @pytest.mark.asyncio
    async def test_upload_key_and_content_type(
        self, store: S3AssetStore, s3_client: MagicMock, settings: Settings
    ) -> None:
        stream = io.BytesIO(b"png")

        key = await store.store("guild-1", stream, 3)

        args = s3_client.upload_fileobj.call_args
        assert args.args[0] is stream
        assert args.args[1] == settings.image_bucket
        assert args.args[2] == key
        assert args.kwargs["ExtraArgs"] == {"ContentType": "image/png"}
        assert key.startswith("guild-1/")

    @pytest.mark.asyncio
    async def test_private_chat_grouping(self, store: S3AssetStore) -> None:
        key = await store.store("", io.BytesIO(b"png"), None)

        assert key.startswith("private-chat/")

    @pytest.mark.asyncio
    async def test_keys_are_unique(self, store: S3AssetStore) -> None:
        first = await store.store("g", io.BytesIO(b"a"), 1)
        second = await store.store("g", io.BytesIO(b"b"), 1)

        assert first != second

    @pytest.mark.asyncio
    async def test_upload_failure(self, store: S3AssetStore, s3_client: MagicMock) -> None:
        s3_client.upload_fileobj.side_effect = ClientError({"Error": {"Code": "AccessDenied"}}, "PutObject")

        with pytest.raises(AssetStoreError, match="failed to write image to S3"):
            await store.store("g", io.BytesIO(b"a"), 1)

    @pytest.mark.asyncio
    async def test_source_read_failure(self, store: S3AssetStore, s3_client: MagicMock) -> None:
        s3_client.upload_fileobj.side_effect = OSError("shared source failed")

        with pytest.raises(AssetStoreError):
            await store.store("g", io.BytesIO(b"a"), 1)

    def test_public_url(self, store: S3AssetStore, settings: Settings) -> None:
        assert store.public_url("g/abc") == f"{settings.public_asset_url_prefix}g/abc"
