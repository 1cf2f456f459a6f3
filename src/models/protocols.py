"""
Structural interfaces of the external collaborators.

The dispatch pipeline only ever talks to these protocols; concrete adapters
live in ``integrations`` and tests substitute fakes.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import BinaryIO, Protocol

from models.conversation import Turn


class ChatClient(Protocol):
    """Protocol for the chat platform connection."""

    @property
    def current_user_id(self) -> str:
        """Platform id of the bot account."""
        ...

    def is_thread(self, channel_id: str) -> bool:
        """Whether the channel is a platform thread (from cached platform state)."""
        ...

    async def send_text(self, destination: str, text: str) -> None: ...

    async def send_file(
        self,
        destination: str,
        stream: BinaryIO,
        *,
        filename: str,
        content_type: str,
        caption: str = "",
        reply_to: str | None = None,
    ) -> None:
        """Upload a file, reading ``stream`` until EOF.

        Args:
            destination: Channel or thread id
            stream: Forward-only binary stream
            filename: Attachment file name
            content_type: MIME type of the attachment
            caption: Message text posted with the file
            reply_to: Message id to reply to
        """
        ...

    async def create_thread(self, channel_id: str, message_id: str, name: str, auto_archive_minutes: int) -> str:
        """Start a thread on ``message_id`` and return the new thread id."""
        ...

    async def trigger_typing(self, destination: str) -> None: ...


class CompletionBackend(Protocol):
    """Protocol for the text and image AI backend."""

    async def complete(self, model: str, messages: Sequence[dict[str, str]]) -> str:
        """Return the text of the first choice (may be empty)."""
        ...

    async def generate_image(
        self, prompt: str, *, size: str, response_format: str, count: int, model: str, user: str
    ) -> list[str]: ...

    async def edit_image(
        self, image: bytes, prompt: str, *, size: str, response_format: str, model: str
    ) -> list[str]: ...


class ContextStore(Protocol):
    """Protocol for the append-only per-thread turn log."""

    async def get_thread(self, thread_id: str) -> list[Turn]:
        """Return the thread's turns ordered by timestamp."""
        ...

    async def append_turn(self, thread_id: str, source_identity: str, content: str) -> None: ...


class ImageStream(Protocol):
    """Readable, closable byte stream returned by ``AssetStore.fetch_by_url``."""

    def read(self, size: int = -1, /) -> bytes: ...

    def close(self) -> None: ...


class AssetStore(Protocol):
    """Protocol for durable image storage."""

    async def fetch_by_url(self, url: str) -> tuple[ImageStream, int | None]:
        """Open a download stream. Returns the stream and its declared length."""
        ...

    async def store(self, grouping_id: str, stream: BinaryIO, length: int | None) -> str:
        """Persist ``stream`` and return the asset key."""
        ...

    def public_url(self, key: str) -> str: ...
