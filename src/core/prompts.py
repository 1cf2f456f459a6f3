"""
Base prompt loading for danbot.

The base prompt is a JSON document of system-role messages that is prepended
to every completion request:

    {"Prompt": [{"role": "system", "content": "You are danbot..."}]}
"""

from __future__ import annotations

import json

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from models.conversation import PromptMessage


class BasePromptError(RuntimeError):
    """The base prompt file is missing or malformed."""


class _PromptFile(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: list[PromptMessage] = Field(alias="Prompt")


def load_base_prompt(path: Path) -> tuple[PromptMessage, ...]:
    """Read and validate the base prompt once at startup.

    Raises:
        BasePromptError: If the file cannot be read or parsed
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise BasePromptError(f"Failed to read initial prompt {path}: {e}") from e

    try:
        parsed = _PromptFile.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as e:
        raise BasePromptError(f"Failed to parse initial prompt {path}: {e}") from e

    return tuple(parsed.prompt)


def render_base_prompt(base_prompt: tuple[PromptMessage, ...]) -> list[dict[str, str]]:
    """Base prompt as chat completion messages."""
    return [message.to_message() for message in base_prompt]
