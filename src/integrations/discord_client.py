"""
Discord integration.

``DiscordChatClient`` implements the ChatClient protocol on top of a
``discord.Client``; ``DanBot`` is the gateway client that turns
"message received" events into dispatch tasks.
"""

from __future__ import annotations

import io

from typing import TYPE_CHECKING, Any, BinaryIO

import discord

from core.constants import DISCORD_MESSAGE_LIMIT, SHUTDOWN_NOTICE
from models.conversation import InboundMessage
from models.error_models import ChatPlatformError
from utils.logger import ChatLogger

if TYPE_CHECKING:
    from core.dispatcher import Dispatcher


def split_message(text: str, limit: int = DISCORD_MESSAGE_LIMIT) -> list[str]:
    """Split ``text`` into messages of at most ``limit`` characters.

    Cuts on line boundaries where possible; a single line longer than the
    limit is hard-split.
    """
    if len(text) <= limit:
        return [text] if text else []

    parts: list[str] = []
    current = ""
    for line in text.splitlines(keepends=True):
        while len(line) > limit:
            if current:
                parts.append(current)
                current = ""
            parts.append(line[:limit])
            line = line[limit:]
        if len(current) + len(line) > limit:
            parts.append(current)
            current = ""
        current += line
    if current:
        parts.append(current)

    return [part for part in (p.rstrip("\n") for p in parts) if part.strip()]


class ForwardOnlyFile(io.RawIOBase):
    """Adapts a forward-only stream to what ``discord.File`` expects.

    ``discord.File`` requires a seekable IOBase and rewinds it before
    retrying a request. Seeking to the current position is allowed, any
    other seek raises ``io.UnsupportedOperation`` so a retry fails instead
    of sending a truncated image.
    """

    def __init__(self, stream: BinaryIO):
        super().__init__()
        self._stream = stream
        self._position = 0

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def tell(self) -> int:
        return self._position

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        if whence == io.SEEK_SET:
            target = offset
        elif whence == io.SEEK_CUR:
            target = self._position + offset
        else:
            raise io.UnsupportedOperation("stream length is unknown")
        if target != self._position:
            raise io.UnsupportedOperation("stream can only be read forward")
        return self._position

    def readinto(self, buffer: Any) -> int:
        data = self._stream.read(len(buffer))
        size = len(data)
        buffer[:size] = data
        self._position += size
        return size


class DiscordChatClient:
    """ChatClient implementation over discord.py."""

    def __init__(self, client: discord.Client, logger: ChatLogger):
        self.client = client
        self.logger = logger

    @property
    def current_user_id(self) -> str:
        return str(self.client.user.id) if self.client.user else ""

    def is_thread(self, channel_id: str) -> bool:
        return isinstance(self.client.get_channel(int(channel_id)), discord.Thread)

    async def _resolve_channel(self, channel_id: str) -> Any:
        channel = self.client.get_channel(int(channel_id))
        if channel is not None:
            return channel
        try:
            return await self.client.fetch_channel(int(channel_id))
        except discord.HTTPException as e:
            raise ChatPlatformError(f"failed to resolve channel {channel_id}: {e}") from e

    async def send_text(self, destination: str, text: str) -> None:
        channel = await self._resolve_channel(destination)
        try:
            for part in split_message(text):
                await channel.send(part)
        except discord.HTTPException as e:
            raise ChatPlatformError(f"failed to send message: {e}") from e

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
        # discord.py always uploads attachments as application/octet-stream;
        # clients derive the type from the file name
        channel = await self._resolve_channel(destination)
        reference = None
        if reply_to:
            reference = discord.MessageReference(
                message_id=int(reply_to), channel_id=int(destination), fail_if_not_exists=False
            )

        file = discord.File(ForwardOnlyFile(stream), filename=filename)
        try:
            await channel.send(content=caption or None, file=file, reference=reference)
        except discord.HTTPException as e:
            raise ChatPlatformError(f"failed to upload {filename} ({content_type}): {e}") from e

    async def create_thread(self, channel_id: str, message_id: str, name: str, auto_archive_minutes: int) -> str:
        channel = await self._resolve_channel(channel_id)
        if not hasattr(channel, "get_partial_message"):
            raise ChatPlatformError(f"channel {channel_id} does not support threads")

        message = channel.get_partial_message(int(message_id))
        try:
            thread = await message.create_thread(name=name[:100], auto_archive_duration=auto_archive_minutes)
        except discord.HTTPException as e:
            raise ChatPlatformError(f"failed to create thread: {e}") from e
        return str(thread.id)

    async def trigger_typing(self, destination: str) -> None:
        channel = await self._resolve_channel(destination)
        try:
            await channel.typing()
        except discord.HTTPException as e:
            raise ChatPlatformError(f"failed to trigger typing: {e}") from e


def to_inbound_message(message: discord.Message) -> InboundMessage:
    """Reduce a discord.py message to the fields a dispatch uses."""
    return InboundMessage(
        message_id=str(message.id),
        author_id=str(message.author.id),
        author_name=message.author.name,
        channel_id=str(message.channel.id),
        guild_id=str(message.guild.id) if message.guild else "",
        content=message.content,
        mention_ids=tuple(str(user.id) for user in message.mentions),
    )


class DanBot(discord.Client):
    """Gateway client. Each qualifying message becomes its own dispatch task."""

    def __init__(self, logger: ChatLogger, **options: Any):
        intents = discord.Intents.default()
        intents.message_content = True
        super().__init__(intents=intents, **options)
        self.logger = logger
        self.dispatcher: Dispatcher | None = None

    async def on_ready(self) -> None:
        self.logger.info(f"Connected as {self.user}", guilds=len(self.guilds))

    async def on_message(self, message: discord.Message) -> None:
        if self.dispatcher is None:
            return
        self.dispatcher.submit(to_inbound_message(message))

    async def announce_shutdown(self, channel_id: str | None) -> None:
        """Tell the configured channel the bot is going away. Best effort."""
        if not channel_id or self.is_closed():
            return
        chat = DiscordChatClient(self, self.logger)
        try:
            await chat.send_text(channel_id, SHUTDOWN_NOTICE)
        except ChatPlatformError as e:
            self.logger.warning(f"Failed to announce shutdown: {e}")
