"""
Conversation models for danbot.
Turns, inbound messages, routing decisions and the per-dispatch request envelope.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.constants import BOT_SOURCE_IDENTITY


class Role(str, Enum):
    """Chat roles understood by the completion backend."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class Turn(BaseModel):
    """One recorded conversation unit.

    The role is never stored; it is derived from ``source_identity`` so that a
    turn written by the assistant is always attributed to it on read-back.
    """

    model_config = ConfigDict(frozen=True)

    source_identity: str
    content: str
    timestamp: int = Field(default=0, description="Unix time in milliseconds")

    @property
    def role(self) -> Role:
        return Role.ASSISTANT if self.source_identity == BOT_SOURCE_IDENTITY else Role.USER

    def to_message(self) -> dict[str, str]:
        """Render as a chat completion message."""
        return {"role": self.role.value, "content": self.content}


class PromptMessage(BaseModel):
    """One entry of the base prompt file."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v

    def to_message(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True, slots=True)
class InboundMessage:
    """A "message received" event, reduced to what a dispatch needs.

    Attributes:
        message_id: Platform id of the message (reply and thread seed target)
        author_id: Platform id of the author
        author_name: Display/user name of the author
        channel_id: Channel (or thread) the message was posted in
        guild_id: Guild the message belongs to, empty for direct messages
        content: Raw message text, mentions included
        mention_ids: Ids of every user mentioned in the message
    """

    message_id: str
    author_id: str
    author_name: str
    channel_id: str
    guild_id: str
    content: str
    mention_ids: tuple[str, ...] = ()

    @property
    def author_label(self) -> str:
        """Source identity recorded for this author's turns."""
        return f"{self.author_name} ({self.author_id}) on {self.guild_id}"


# ============================================================================
# Routing decisions (closed set)
# ============================================================================


@dataclass(frozen=True, slots=True)
class ImageEdit:
    """Modify the most recent image of the conversation."""

    prompt: str


@dataclass(frozen=True, slots=True)
class ImageGenerate:
    """Draw a new image."""

    prompt: str


@dataclass(frozen=True, slots=True)
class TextCompletion:
    """Answer with a text completion."""

    prompt: str


Intent = ImageEdit | ImageGenerate | TextCompletion


def intent_name(intent: Intent) -> str:
    """Stable label used in logs and metrics."""
    match intent:
        case ImageEdit():
            return "image_edit"
        case ImageGenerate():
            return "image_generate"
        case TextCompletion():
            return "text_completion"


# ============================================================================
# Thread resolution and dispatch envelope
# ============================================================================


@dataclass(frozen=True, slots=True)
class ThreadResolution:
    """Outcome of thread resolution.

    Attributes:
        destination: Channel or thread id that receives the response
        context: Snapshot of prior turns (empty outside threads)
        threaded: Whether the destination is a platform thread
        created: Whether the thread was created for this message
        load_error: Non-fatal context load failure, if any
    """

    destination: str
    context: tuple[Turn, ...] = ()
    threaded: bool = False
    created: bool = False
    load_error: Exception | None = None


@dataclass(slots=True)
class RequestEnvelope:
    """Per-dispatch state. Owned by exactly one dispatch task."""

    message: InboundMessage
    destination: str
    context: tuple[Turn, ...]
    sanitized_text: str
    intent: Intent

    @property
    def grouping_id(self) -> str:
        return self.message.guild_id
