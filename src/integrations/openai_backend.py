"""
OpenAI completion backend.
Chat completions, image generation and image edits over the AsyncOpenAI client.
"""

from __future__ import annotations

import asyncio

from collections.abc import Sequence
from typing import Any, cast

import openai

from openai import AsyncOpenAI

from models.error_models import CompletionBackendError
from utils.logger import ChatLogger


class OpenAIBackend:
    """Implements the CompletionBackend protocol with the OpenAI API."""

    def __init__(self, client: AsyncOpenAI, logger: ChatLogger):
        self.client = client
        self.logger = logger

    async def complete(self, model: str, messages: Sequence[dict[str, str]]) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=model,
                messages=cast(Any, list(messages)),
            )
        except openai.OpenAIError as e:
            raise CompletionBackendError(str(e)) from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def generate_image(
        self, prompt: str, *, size: str, response_format: str, count: int, model: str, user: str
    ) -> list[str]:
        try:
            response = await self.client.images.generate(
                prompt=prompt,
                model=model,
                n=count,
                size=cast(Any, size),
                response_format=cast(Any, response_format),
                user=user,
            )
        except openai.OpenAIError as e:
            raise CompletionBackendError(str(e)) from e

        return [image.url for image in response.data or [] if image.url]

    async def edit_image(
        self, image: bytes, prompt: str, *, size: str, response_format: str, model: str
    ) -> list[str]:
        try:
            response = await self.client.images.edit(
                image=("image.png", image, "image/png"),
                prompt=prompt,
                model=model,
                n=1,
                size=cast(Any, size),
                response_format=cast(Any, response_format),
            )
        except openai.OpenAIError as e:
            raise CompletionBackendError(str(e)) from e

        return [item.url for item in response.data or [] if item.url]

    async def warmup(self, model: str, timeout: float = 2.0) -> None:
        """Send a tiny completion to verify the credentials at startup.

        Raises:
            CompletionBackendError: The request failed or timed out
        """
        try:
            await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=model,
                    messages=[{"role": "user", "content": "are you alive?"}],
                    max_tokens=5,
                ),
                timeout=timeout,
            )
        except (openai.OpenAIError, asyncio.TimeoutError) as e:
            raise CompletionBackendError(f"OpenAI client failed warmup request: {e!r}") from e
        self.logger.info("OpenAI warmup request succeeded")
