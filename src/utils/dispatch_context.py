"""
Dispatch-scoped context for log enrichment.

Each dispatch runs in its own asyncio task, and tasks copy the current
context on creation, so values set here never leak between dispatches.
"""

from __future__ import annotations

import secrets
import time

from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any

_dispatch_context: ContextVar[DispatchContext | None] = ContextVar("dispatch_context", default=None)

DISPATCH_ID_PREFIX = "dsp_"


@dataclass
class DispatchContext:
    """Metadata of the message currently being dispatched."""

    dispatch_id: str
    start_time: float = field(default_factory=time.monotonic)
    guild_id: str = ""
    channel_id: str = ""
    user_id: str = ""
    intent: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.start_time) * 1000

    def to_log_context(self) -> dict[str, Any]:
        """Get context dict for logging."""
        ctx: dict[str, Any] = {
            "dispatch_id": self.dispatch_id,
            "elapsed_ms": round(self.elapsed_ms, 2),
        }
        if self.guild_id:
            ctx["guild"] = self.guild_id
        if self.channel_id:
            ctx["channel"] = self.channel_id
        if self.user_id:
            ctx["user"] = self.user_id
        if self.intent:
            ctx["intent"] = self.intent
        ctx.update(self.extra)
        return ctx


def generate_dispatch_id(prefix: str = DISPATCH_ID_PREFIX) -> str:
    """Generate a unique dispatch ID, e.g. ``dsp_a1b2c3d4e5f6a7b8``."""
    return f"{prefix}{secrets.token_hex(8)}"


def get_dispatch_context() -> DispatchContext | None:
    """Get the current dispatch context, or None outside of a dispatch."""
    return _dispatch_context.get()


def set_dispatch_context(context: DispatchContext) -> None:
    _dispatch_context.set(context)


def clear_dispatch_context() -> None:
    _dispatch_context.set(None)


def update_dispatch_context(**kwargs: Any) -> None:
    """Update fields in the current dispatch context.

    Common usage:
        update_dispatch_context(intent="image_edit", channel_id="123")
    """
    ctx = get_dispatch_context()
    if ctx:
        for key, value in kwargs.items():
            if hasattr(ctx, key):
                setattr(ctx, key, value)
            else:
                ctx.extra[key] = value
