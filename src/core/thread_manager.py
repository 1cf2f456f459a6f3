"""
Thread lifecycle resolution.

Decides where a response goes and which prior turns it is answered with:
reuse the thread a message was posted in, create one when the thread marker
asks for it, and load the thread's conversation log.
"""

from __future__ import annotations

from core.constants import THREAD_NAME_TEMPLATE, THREAD_REQUEST_MARKER
from models.conversation import InboundMessage, ThreadResolution, Turn
from models.error_models import ChatPlatformError, ContextStoreError, ThreadCreationError
from models.protocols import ChatClient, ContextStore
from utils.observability import Observability


class ThreadManager:
    """Resolves the response destination and prior context of a message."""

    def __init__(
        self,
        chat: ChatClient,
        context_store: ContextStore,
        obs: Observability,
        auto_archive_minutes: int = 60,
        thread_marker: str = THREAD_REQUEST_MARKER,
    ):
        self.chat = chat
        self.context_store = context_store
        self.obs = obs
        self.auto_archive_minutes = auto_archive_minutes
        self.thread_marker = thread_marker

    async def resolve(self, message: InboundMessage) -> ThreadResolution:
        """Resolve destination and context for ``message``.

        Steps run strictly in order; context loading depends on the resolved
        destination.

        Raises:
            ThreadCreationError: A thread was requested and could not be created
        """
        logger = self.obs.logger
        destination = message.channel_id
        threaded = False
        created = False

        if self.chat.is_thread(message.channel_id):
            threaded = True
        elif self.thread_marker in message.content:
            name = THREAD_NAME_TEMPLATE.format(username=message.author_name)
            try:
                destination = await self.chat.create_thread(
                    message.channel_id, message.message_id, name, self.auto_archive_minutes
                )
            except ChatPlatformError as e:
                raise ThreadCreationError(f"failed to create discord conversation thread: {e}") from e
            threaded = True
            created = True
            logger.info(f"Created conversation thread {destination}", thread_id=destination)

        if not threaded:
            return ThreadResolution(destination=destination)

        context: tuple[Turn, ...] = ()
        load_error: Exception | None = None
        try:
            context = tuple(await self.context_store.get_thread(destination))
        except ContextStoreError as e:
            # Non-fatal: continue with an empty context
            load_error = e
            self.obs.metrics.context_failures_total.labels(operation="load").inc()
            logger.warning(f"Failed to load thread conversation context: {e}", thread_id=destination)

        logger.debug(f"Loaded thread context ({len(context)} turns)", thread_id=destination)
        return ThreadResolution(
            destination=destination,
            context=context,
            threaded=True,
            created=created,
            load_error=load_error,
        )
