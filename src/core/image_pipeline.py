"""
Image delivery pipeline.

A generated image is downloaded once and streamed to two places at the same
time: the chat (the caller waits for this upload) and the asset store (a
background task the caller never waits for). When the archive copy lands, its
public URL is appended to the conversation so later edits can find it.

The two uploads share a ``ByteFanout`` and are backpressure-coupled: once the
archive upload lags by more than ``buffer_bytes`` the chat upload waits for
it. With the default buffer a whole image fits, so this only shows up when
the archive stalls on a large image.
"""

from __future__ import annotations

import asyncio

from collections.abc import Sequence

from core.constants import BOT_SOURCE_IDENTITY, IMAGE_CONTENT_TYPE, IMAGE_FILENAME
from models.conversation import Role, Turn
from models.error_models import ContextStoreError, UploadError
from models.protocols import AssetStore, ChatClient, ContextStore, ImageStream
from utils.byte_fanout import DEFAULT_MAX_BUFFERED, ByteFanout, FanoutReader
from utils.observability import Observability

# ============================================================================
# Context scans
# ============================================================================


def find_last_image_url(context: Sequence[Turn], url_prefix: str) -> str | None:
    """Most recent assistant turn that is a stored image URL, scanning backward."""
    for turn in reversed(context):
        if turn.role is Role.ASSISTANT and turn.content.startswith(url_prefix):
            return turn.content
    return None


def find_original_prompt(context: Sequence[Turn]) -> str | None:
    """First user turn of the conversation (the seed prompt), scanning forward."""
    for turn in context:
        if turn.role is Role.USER:
            return turn.content
    return None


def compose_edit_prompt(context: Sequence[Turn], modification: str) -> str:
    if original := find_original_prompt(context):
        return f"Original prompt: {original}. Modification: {modification}"
    return modification


def compose_generate_prompt(context: Sequence[Turn], prompt: str) -> str:
    if original := find_original_prompt(context):
        return f"Original image prompt: {original}. Modification: {prompt}"
    return prompt


# ============================================================================
# Dual delivery
# ============================================================================


class ImagePipeline:
    """Streams one image to the chat and to the asset store concurrently."""

    # Store background task references to prevent garbage collection
    _background_tasks: set[asyncio.Task[None]]

    def __init__(
        self,
        chat: ChatClient,
        assets: AssetStore,
        context_store: ContextStore,
        obs: Observability,
        max_background_uploads: int = 8,
        buffer_bytes: int = DEFAULT_MAX_BUFFERED,
    ):
        self.chat = chat
        self.assets = assets
        self.context_store = context_store
        self.obs = obs
        self.buffer_bytes = buffer_bytes
        self._upload_slots = asyncio.Semaphore(max_background_uploads)
        self._background_tasks = set()

    @property
    def pending_archives(self) -> int:
        return len(self._background_tasks)

    async def deliver(
        self,
        destination: str,
        stream: ImageStream,
        length: int | None,
        *,
        grouping_id: str,
        caption: str,
        reply_to: str | None = None,
    ) -> None:
        """Upload ``stream`` to ``destination`` and archive it in the background.

        Returns as soon as the chat upload completes. The archive task may
        still be running and is not awaited.

        Raises:
            UploadError: The chat upload failed
        """
        logger = self.obs.logger
        fanout = ByteFanout(stream, readers=2, max_buffered=self.buffer_bytes)
        chat_reader, archive_reader = fanout.readers

        # The archive task waits for an upload slot; the fan-out buffer holds
        # what the chat upload reads ahead in the meantime
        task = asyncio.create_task(
            self._archive(archive_reader, length, grouping_id, destination),
            name=f"image_archive_{destination}",
        )
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

        try:
            await self.chat.send_file(
                destination,
                chat_reader,
                filename=IMAGE_FILENAME,
                content_type=IMAGE_CONTENT_TYPE,
                caption=caption,
                reply_to=reply_to,
            )
        except Exception as e:
            raise UploadError(f"failed to send embedded image to discord: {e}") from e
        finally:
            chat_reader.close()

        self.obs.metrics.image_bytes_total.labels(sink="chat").inc(chat_reader.bytes_read)
        logger.debug(f"Delivered image ({chat_reader.bytes_read} bytes)", image_length=length)

    async def _archive(self, reader: FanoutReader, length: int | None, grouping_id: str, thread_id: str) -> None:
        """Store the image and record its URL. Failures are logged, never raised."""
        logger = self.obs.logger
        metrics = self.obs.metrics
        try:
            async with self._upload_slots:
                metrics.background_uploads_active.inc()
                try:
                    key = await self.assets.store(grouping_id, reader, length)
                finally:
                    metrics.background_uploads_active.dec()
        except Exception as e:
            metrics.image_archives_total.labels(outcome="failed").inc()
            logger.error(f"Failed to store a copy of the image: {e}", thread_id=thread_id)
            return
        finally:
            reader.close()

        metrics.image_archives_total.labels(outcome="stored").inc()
        metrics.image_bytes_total.labels(sink="archive").inc(reader.bytes_read)
        image_url = self.assets.public_url(key)
        logger.info(f"Archived image at {image_url}", thread_id=thread_id)

        try:
            await self.context_store.append_turn(thread_id, BOT_SOURCE_IDENTITY, image_url)
        except ContextStoreError as e:
            metrics.context_failures_total.labels(operation="append").inc()
            logger.error(f"Failed to record archived image in thread context: {e}", thread_id=thread_id)
