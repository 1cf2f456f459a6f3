"""
Dispatch orchestration.

One ``Dispatcher.dispatch`` call runs per qualifying inbound message, each in
its own task. It resolves the thread, routes the text, runs the matching
handler and is the only place that tells the user about failures.
"""

from __future__ import annotations

import asyncio
import time

from core.constants import (
    BOT_SOURCE_IDENTITY,
    IMAGE_CAPTION_EDITED,
    IMAGE_CAPTION_GENERATED,
    IMAGE_FAILURE_NOTICE,
    TEXT_FAILURE_NOTICE,
    THREAD_FAILURE_NOTICE,
    USER_TURN_PREFIX,
    Settings,
)
from core.completion import CompletionRetryPolicy
from core.image_pipeline import (
    ImagePipeline,
    compose_edit_prompt,
    compose_generate_prompt,
    find_last_image_url,
)
from core.prompts import render_base_prompt
from core.router import ConversationRouter
from core.thread_manager import ThreadManager
from models.conversation import (
    ImageEdit,
    ImageGenerate,
    InboundMessage,
    PromptMessage,
    RequestEnvelope,
    TextCompletion,
    intent_name,
)
from models.error_models import (
    AssetStoreError,
    ChatPlatformError,
    CompletionBackendError,
    ContextStoreError,
    DispatchError,
    ErrorCode,
    ImageSourceNotFoundError,
)
from models.protocols import AssetStore, ChatClient, CompletionBackend, ContextStore
from utils.dispatch_context import DispatchContext, generate_dispatch_id, set_dispatch_context, update_dispatch_context
from utils.observability import Observability

IMAGE_RESPONSE_FORMAT = "url"


def strip_self_mentions(text: str, user_id: str) -> str:
    """Remove the bot's own mention tokens (plain and nickname form) and trim."""
    return text.replace(f"<@{user_id}>", "").replace(f"<@!{user_id}>", "").strip()


class Dispatcher:
    """Sequences thread resolution, routing and the intent handlers."""

    # Store dispatch task references to prevent garbage collection
    _tasks: set[asyncio.Task[None]]

    def __init__(
        self,
        *,
        chat: ChatClient,
        backend: CompletionBackend,
        context_store: ContextStore,
        assets: AssetStore,
        base_prompt: tuple[PromptMessage, ...],
        settings: Settings,
        obs: Observability,
        router: ConversationRouter | None = None,
    ):
        self.chat = chat
        self.backend = backend
        self.context_store = context_store
        self.assets = assets
        self.base_prompt = base_prompt
        self.settings = settings
        self.obs = obs
        self.router = router or ConversationRouter()
        self.threads = ThreadManager(
            chat, context_store, obs, auto_archive_minutes=settings.thread_auto_archive_minutes
        )
        self.completions = CompletionRetryPolicy(
            backend,
            obs,
            max_attempts=settings.completion_max_attempts,
            initial_backoff=settings.completion_initial_backoff,
            backoff_multiplier=settings.completion_backoff_multiplier,
        )
        self.images = ImagePipeline(
            chat,
            assets,
            context_store,
            obs,
            max_background_uploads=settings.max_background_uploads,
            buffer_bytes=settings.fanout_buffer_bytes,
        )
        self._tasks = set()

    # ========================================================================
    # Entry points
    # ========================================================================

    def should_handle(self, message: InboundMessage) -> bool:
        """Only messages that mention the bot and were not written by it."""
        bot_id = self.chat.current_user_id
        if not bot_id or message.author_id == bot_id:
            return False
        return bot_id in message.mention_ids

    def submit(self, message: InboundMessage) -> asyncio.Task[None] | None:
        """Start a dispatch task for ``message`` if it qualifies."""
        if not self.should_handle(message):
            return None
        task = asyncio.create_task(self.dispatch(message), name=f"dispatch_{message.message_id}")
        self._tasks.add(task)
        task.add_done_callback(self._on_dispatch_done)
        return task

    def _on_dispatch_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        if (error := task.exception()) is not None:
            self.obs.logger.error(f"Unexpected error in {task.get_name()}: {error!r}", exc_info=False)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight dispatches, used on shutdown."""
        if self._tasks:
            await asyncio.wait(set(self._tasks), timeout=timeout)

    async def dispatch(self, message: InboundMessage) -> None:
        """Handle one message end to end. Never raises for dispatch failures."""
        set_dispatch_context(
            DispatchContext(
                dispatch_id=generate_dispatch_id(),
                guild_id=message.guild_id,
                channel_id=message.channel_id,
                user_id=message.author_id,
            )
        )
        logger = self.obs.logger
        metrics = self.obs.metrics
        started = time.monotonic()
        logger.info("Processing message")

        try:
            resolution = await self.threads.resolve(message)
        except DispatchError as e:
            metrics.dispatches_total.labels(intent="unresolved", outcome="error").inc()
            metrics.dispatch_errors_total.labels(code=e.code.value).inc()
            logger.error(f"Failed to load or create thread context: {e}", error_code=e.code.value)
            await self._send_notice(message.channel_id, THREAD_FAILURE_NOTICE.format(error=e))
            return

        sanitized = strip_self_mentions(message.content, self.chat.current_user_id)
        await self._typing(resolution.destination)

        envelope = RequestEnvelope(
            message=message,
            destination=resolution.destination,
            context=resolution.context,
            sanitized_text=sanitized,
            intent=self.router.route(sanitized),
        )
        intent = intent_name(envelope.intent)
        update_dispatch_context(intent=intent, channel_id=envelope.destination)

        try:
            await self._handle(envelope)
        except DispatchError as e:
            metrics.dispatches_total.labels(intent=intent, outcome="error").inc()
            metrics.dispatch_errors_total.labels(code=e.code.value).inc()
            logger.error(f"Failed to handle {intent}: {e}", error_code=e.code.value)
            await self._notify_failure(envelope, e)
        except Exception as e:
            code = ErrorCode.INTERNAL_UNEXPECTED.value
            metrics.dispatches_total.labels(intent=intent, outcome="error").inc()
            metrics.dispatch_errors_total.labels(code=code).inc()
            logger.error(f"Unexpected error handling {intent}: {e!r}", exc_info=True, error_code=code)
            await self._send_notice(envelope.destination, TEXT_FAILURE_NOTICE)
        else:
            metrics.dispatches_total.labels(intent=intent, outcome="success").inc()
            logger.info(f"Handled {intent}")
        finally:
            metrics.dispatch_duration_seconds.labels(intent=intent).observe(time.monotonic() - started)

    async def _handle(self, envelope: RequestEnvelope) -> None:
        match envelope.intent:
            case ImageEdit(prompt=prompt):
                await self.handle_image_edit(envelope, prompt)
            case ImageGenerate(prompt=prompt):
                await self.handle_image_generate(envelope, prompt)
            case TextCompletion(prompt=prompt):
                await self.handle_completion(envelope, prompt)

    async def _typing(self, destination: str) -> None:
        try:
            await self.chat.trigger_typing(destination)
        except ChatPlatformError as e:
            self.obs.logger.debug(f"Typing indicator failed: {e}")

    async def _notify_failure(self, envelope: RequestEnvelope, error: DispatchError) -> None:
        if isinstance(envelope.intent, TextCompletion):
            notice = TEXT_FAILURE_NOTICE
        else:
            notice = IMAGE_FAILURE_NOTICE.format(error=error)
        await self._send_notice(envelope.destination, notice)

    async def _send_notice(self, destination: str, notice: str) -> None:
        try:
            await self.chat.send_text(destination, notice)
        except ChatPlatformError as e:
            self.obs.logger.error(f"Failed to notify discord channel of the error: {e}")

    # ========================================================================
    # Handlers
    # ========================================================================

    async def handle_completion(self, envelope: RequestEnvelope, prompt: str) -> None:
        """Answer with a text completion and record both turns."""
        started = time.monotonic()
        messages = [
            *render_base_prompt(self.base_prompt),
            *(turn.to_message() for turn in envelope.context),
            {"role": "user", "content": prompt},
        ]

        result = await self.completions.complete(self.settings.completion_model, messages)

        # Recorded independently; a failed append never blocks the answer
        await self._record(envelope.destination, envelope.message.author_label, USER_TURN_PREFIX + prompt)
        await self._record(envelope.destination, BOT_SOURCE_IDENTITY, result.text)

        try:
            await self.chat.send_text(envelope.destination, result.text)
        except ChatPlatformError as e:
            raise ChatPlatformError(f"failed to respond to discord channel: {e}") from e

        self.obs.logger.log_conversation_turn(
            user_input=prompt,
            response=result.text,
            duration_ms=(time.monotonic() - started) * 1000,
            attempts=result.attempts,
            thread_id=envelope.destination,
        )

    async def handle_image_generate(self, envelope: RequestEnvelope, prompt: str) -> None:
        """Draw a new image, extending the thread's seed prompt when there is one."""
        prompt = compose_generate_prompt(envelope.context, prompt)
        await self._record(envelope.destination, envelope.message.author_label, prompt)

        try:
            urls = await self.backend.generate_image(
                prompt,
                size=self.settings.image_size,
                response_format=IMAGE_RESPONSE_FORMAT,
                count=1,
                model=self.settings.image_model,
                user=envelope.message.author_id,
            )
        except CompletionBackendError as e:
            raise CompletionBackendError(f"failed to get image from openai: {e}") from e

        await self._deliver_image(envelope, urls, IMAGE_CAPTION_GENERATED)

    async def handle_image_edit(self, envelope: RequestEnvelope, modification: str) -> None:
        """Edit the most recent archived image of the conversation."""
        source_url = find_last_image_url(envelope.context, self.settings.public_asset_url_prefix)
        if source_url is None:
            raise ImageSourceNotFoundError()

        source_image = await self._download(source_url)
        prompt = compose_edit_prompt(envelope.context, modification)
        await self._record(envelope.destination, envelope.message.author_label, prompt)

        try:
            urls = await self.backend.edit_image(
                source_image,
                prompt,
                size=self.settings.image_size,
                response_format=IMAGE_RESPONSE_FORMAT,
                model=self.settings.image_edit_model,
            )
        except CompletionBackendError as e:
            raise CompletionBackendError(f"failed to edit image via openai: {e}") from e

        await self._deliver_image(envelope, urls, IMAGE_CAPTION_EDITED)

    # ========================================================================
    # Helpers
    # ========================================================================

    async def _deliver_image(self, envelope: RequestEnvelope, urls: list[str], caption: str) -> None:
        if not urls:
            raise CompletionBackendError("image backend returned no images")

        try:
            stream, length = await self.assets.fetch_by_url(urls[0])
        except AssetStoreError as e:
            raise AssetStoreError(f"failed to retrieve generated image: {e}") from e

        self.obs.logger.debug(f"Retrieved image ({length} bytes)", image_length=length)
        await self.images.deliver(
            envelope.destination,
            stream,
            length,
            grouping_id=envelope.grouping_id,
            caption=caption,
            reply_to=envelope.message.message_id,
        )

    async def _download(self, url: str) -> bytes:
        try:
            stream, _ = await self.assets.fetch_by_url(url)
        except AssetStoreError as e:
            raise AssetStoreError(f"failed to download image for editing: {e}") from e
        try:
            return await asyncio.to_thread(stream.read)
        except OSError as e:
            raise AssetStoreError(f"failed to download image for editing: {e}") from e
        finally:
            stream.close()

    async def _record(self, thread_id: str, source_identity: str, content: str) -> None:
        try:
            await self.context_store.append_turn(thread_id, source_identity, content)
        except ContextStoreError as e:
            self.obs.metrics.context_failures_total.labels(operation="append").inc()
            self.obs.logger.warning(f"Non-fatal error updating thread context: {e}", thread_id=thread_id)
