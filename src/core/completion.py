"""
Text completion with retry.

Completions fail surprisingly often, either with a transport error or with a
well-formed but empty answer. Both are retried the same way.
"""

from __future__ import annotations

import asyncio

from collections.abc import Sequence
from dataclasses import dataclass

from models.error_models import CompletionBackendError, CompletionRetriesExhaustedError, EmptyCompletionError
from models.protocols import CompletionBackend
from utils.observability import Observability


@dataclass(frozen=True, slots=True)
class CompletionResult:
    text: str
    attempts: int


class CompletionRetryPolicy:
    """Retries a completion with exponential backoff."""

    def __init__(
        self,
        backend: CompletionBackend,
        obs: Observability,
        max_attempts: int = 3,
        initial_backoff: float = 0.1,
        backoff_multiplier: float = 2.0,
    ):
        """Initialize the retry policy.

        Args:
            backend: Completion backend to call
            obs: Observability context for attempt logging and metrics
            max_attempts: Total attempts, the first call included
            initial_backoff: Delay before the first retry in seconds
            backoff_multiplier: Multiplier applied to the delay after each retry
        """
        self.backend = backend
        self.obs = obs
        self.max_attempts = max_attempts
        self.initial_backoff = initial_backoff
        self.backoff_multiplier = backoff_multiplier

    async def complete(self, model: str, messages: Sequence[dict[str, str]]) -> CompletionResult:
        """Return the first non-empty completion.

        Raises:
            CompletionRetriesExhaustedError: Every attempt failed or was empty
        """
        logger = self.obs.logger
        attempts_metric = self.obs.metrics.completion_attempts_total
        backoff = self.initial_backoff
        last_error: CompletionBackendError | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                text = await self.backend.complete(model, messages)
                if not text:
                    raise EmptyCompletionError("received an empty response from the completion backend")
            except EmptyCompletionError as e:
                last_error = e
                attempts_metric.labels(attempt=str(attempt), outcome="empty").inc()
                logger.warning(f"Empty completion (attempt {attempt}/{self.max_attempts})", attempt=attempt)
            except CompletionBackendError as e:
                last_error = e
                attempts_metric.labels(attempt=str(attempt), outcome="error").inc()
                logger.error(
                    f"Failed to retrieve completion (attempt {attempt}/{self.max_attempts}): {e}", attempt=attempt
                )
            else:
                attempts_metric.labels(attempt=str(attempt), outcome="success").inc()
                return CompletionResult(text=text, attempts=attempt)

            if attempt < self.max_attempts:
                await asyncio.sleep(backoff)
                backoff *= self.backoff_multiplier

        raise CompletionRetriesExhaustedError(self.max_attempts, last_error) from last_error
