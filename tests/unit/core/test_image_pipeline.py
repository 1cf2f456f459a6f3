"""Tests for context scans and dual image delivery."""

from __future__ import annotations

import asyncio
import io
import os

import pytest

from core.image_pipeline import (
    ImagePipeline,
    compose_edit_prompt,
    compose_generate_prompt,
    find_last_image_url,
    find_original_prompt,
)
from models.conversation import Turn
from models.error_models import UploadError
from utils.observability import Observability

from fakes import ASSET_PREFIX, FakeAssetStore, FakeChatClient, FakeContextStore


def _turns(*pairs: tuple[str, str]) -> list[Turn]:
    return [Turn(source_identity=source, content=content, timestamp=i) for i, (source, content) in enumerate(pairs)]


async def _wait_for_archives(pipeline: ImagePipeline) -> None:
    while pipeline.pending_archives:
        await asyncio.sleep(0.01)


class TestContextScans:
    """Tests for the backward and forward context scans."""

    def test_last_image_url_returns_most_recent(self) -> None:
        context = _turns(
            ("u", "hi"),
            ("Bot", f"{ASSET_PREFIX}a.png"),
            ("Bot", "ok"),
            ("Bot", f"{ASSET_PREFIX}b.png"),
        )

        assert find_last_image_url(context, ASSET_PREFIX) == f"{ASSET_PREFIX}b.png"

    def test_last_image_url_not_found(self) -> None:
        context = _turns(("u", "hi"), ("Bot", "hello"))

        assert find_last_image_url(context, ASSET_PREFIX) is None

    def test_last_image_url_ignores_user_turns(self) -> None:
        context = _turns(("Bot", f"{ASSET_PREFIX}a.png"), ("alice (42) on g", f"{ASSET_PREFIX}fake.png"))

        assert find_last_image_url(context, ASSET_PREFIX) == f"{ASSET_PREFIX}a.png"

    def test_last_image_url_empty_context(self) -> None:
        assert find_last_image_url([], ASSET_PREFIX) is None

    def test_original_prompt_is_first_user_turn(self) -> None:
        context = _turns(("Bot", "x"), ("u1", "p1"), ("u2", "p2"))

        assert find_original_prompt(context) == "p1"

    def test_original_prompt_none_without_user_turns(self) -> None:
        assert find_original_prompt(_turns(("Bot", "x"))) is None


class TestPromptComposition:
    """Tests for edit and generate prompt composition."""

    def test_edit_prompt_with_seed(self) -> None:
        context = _turns(("u", "a cat"))

        assert compose_edit_prompt(context, "make it blue") == "Original prompt: a cat. Modification: make it blue"

    def test_edit_prompt_without_seed(self) -> None:
        assert compose_edit_prompt([], "make it blue") == "make it blue"

    def test_generate_prompt_with_seed(self) -> None:
        context = _turns(("u", "a cat"))

        assert compose_generate_prompt(context, "in space") == "Original image prompt: a cat. Modification: in space"

    def test_generate_prompt_without_seed(self) -> None:
        assert compose_generate_prompt([], "a cat") == "a cat"


class TestImagePipelineDeliver:
    """Tests for streaming one image to the chat and the asset store."""

    @pytest.mark.asyncio
    async def test_both_sinks_receive_identical_bytes(
        self, chat: FakeChatClient, assets: FakeAssetStore, context_store: FakeContextStore, obs: Observability
    ) -> None:
        """N bytes in, exactly N identical bytes at both sinks."""
        payload = os.urandom(300_000)
        pipeline = ImagePipeline(chat, assets, context_store, obs, buffer_bytes=16 * 1024)

        await pipeline.deliver(
            "thread-1", io.BytesIO(payload), len(payload), grouping_id="guild-1", caption="a picture", reply_to="m1"
        )
        await _wait_for_archives(pipeline)

        assert chat.files[0]["data"] == payload
        assert list(assets.stored.values()) == [payload]
        assert chat.files[0]["caption"] == "a picture"
        assert chat.files[0]["reply_to"] == "m1"
        assert chat.files[0]["filename"] == "danbot-drawing.png"

    @pytest.mark.asyncio
    async def test_archived_url_is_appended_to_thread(
        self, chat: FakeChatClient, assets: FakeAssetStore, context_store: FakeContextStore, obs: Observability
    ) -> None:
        pipeline = ImagePipeline(chat, assets, context_store, obs)

        await pipeline.deliver("thread-1", io.BytesIO(b"png"), 3, grouping_id="guild-1", caption="c")
        await _wait_for_archives(pipeline)

        turn = context_store.threads["thread-1"][-1]
        assert turn.source_identity == "Bot"
        assert turn.content == f"{ASSET_PREFIX}guild-1/0"

    @pytest.mark.asyncio
    async def test_returns_before_archive_completes(
        self, chat: FakeChatClient, assets: FakeAssetStore, context_store: FakeContextStore, obs: Observability
    ) -> None:
        """The caller never waits for the background upload to start."""
        assets.store_gate = asyncio.Event()
        pipeline = ImagePipeline(chat, assets, context_store, obs)

        await pipeline.deliver("thread-1", io.BytesIO(b"abc"), 3, grouping_id="g", caption="c")

        assert chat.files[0]["data"] == b"abc"
        assert pipeline.pending_archives == 1
        assert not assets.stored

        assets.store_gate.set()
        await _wait_for_archives(pipeline)
        assert list(assets.stored.values()) == [b"abc"]

    @pytest.mark.asyncio
    async def test_archive_failure_does_not_affect_chat_upload(
        self, chat: FakeChatClient, assets: FakeAssetStore, context_store: FakeContextStore, obs: Observability
    ) -> None:
        assets.fail_store = True
        pipeline = ImagePipeline(chat, assets, context_store, obs)

        await pipeline.deliver("thread-1", io.BytesIO(b"image-bytes"), 11, grouping_id="g", caption="c")
        await _wait_for_archives(pipeline)

        assert chat.files[0]["data"] == b"image-bytes"
        assert "thread-1" not in context_store.threads
        failed = obs.metrics.registry.get_sample_value("danbot_image_archives_total", {"outcome": "failed"})
        assert failed == 1.0

    @pytest.mark.asyncio
    async def test_chat_upload_failure_raises_upload_error(
        self, chat: FakeChatClient, assets: FakeAssetStore, context_store: FakeContextStore, obs: Observability
    ) -> None:
        chat.fail_send_file = True
        pipeline = ImagePipeline(chat, assets, context_store, obs)

        with pytest.raises(UploadError):
            await pipeline.deliver("thread-1", io.BytesIO(b"abc"), 3, grouping_id="g", caption="c")

        # The archive copy still lands
        await _wait_for_archives(pipeline)
        assert list(assets.stored.values()) == [b"abc"]

    @pytest.mark.asyncio
    async def test_saturated_uploads_wait_for_a_slot(
        self, chat: FakeChatClient, assets: FakeAssetStore, context_store: FakeContextStore, obs: Observability
    ) -> None:
        """Every image is archived; at most max_background_uploads run at once."""
        assets.store_gate = asyncio.Event()
        pipeline = ImagePipeline(chat, assets, context_store, obs, max_background_uploads=1)

        await pipeline.deliver("t", io.BytesIO(b"first"), 5, grouping_id="g", caption="c")
        await pipeline.deliver("t", io.BytesIO(b"second"), 6, grouping_id="g", caption="c")

        assert [f["data"] for f in chat.files] == [b"first", b"second"]
        assert pipeline.pending_archives == 2
        assert assets.active_stores == 1

        assets.store_gate.set()
        await _wait_for_archives(pipeline)

        assert sorted(assets.stored.values()) == [b"first", b"second"]
        assert assets.max_active_stores == 1
        assert [turn.content for turn in context_store.threads["t"]] == [
            f"{ASSET_PREFIX}g/0",
            f"{ASSET_PREFIX}g/1",
        ]
        stored = obs.metrics.registry.get_sample_value("danbot_image_archives_total", {"outcome": "stored"})
        assert stored == 2.0
