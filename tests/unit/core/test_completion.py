"""Tests for the completion retry policy."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from core.completion import CompletionResult, CompletionRetryPolicy
from models.error_models import CompletionBackendError, CompletionRetriesExhaustedError, EmptyCompletionError
from utils.observability import Observability

from fakes import FakeBackend

MESSAGES = [{"role": "user", "content": "hi"}]


class TestCompletionRetryPolicy:
    """Tests for retry, backoff and empty-response handling."""

    @pytest.mark.asyncio
    async def test_first_attempt_success(self, backend: FakeBackend, obs: Observability) -> None:
        backend.completions = ["hello"]
        policy = CompletionRetryPolicy(backend, obs, initial_backoff=0)

        result = await policy.complete("gpt-3.5-turbo", MESSAGES)

        assert result.text == "hello"
        assert result.attempts == 1
        assert backend.complete_calls == [("gpt-3.5-turbo", MESSAGES)]

    @pytest.mark.asyncio
    async def test_two_failures_then_success(self, backend: FakeBackend, obs: Observability) -> None:
        backend.completions = [CompletionBackendError("boom"), CompletionBackendError("boom"), "finally"]
        policy = CompletionRetryPolicy(backend, obs, initial_backoff=0)

        result = await policy.complete("m", MESSAGES)

        assert result.text == "finally"
        assert result.attempts == 3

    @pytest.mark.asyncio
    async def test_three_empty_responses_exhaust_retries(self, backend: FakeBackend, obs: Observability) -> None:
        backend.completions = ["", "", ""]
        policy = CompletionRetryPolicy(backend, obs, initial_backoff=0)

        with pytest.raises(CompletionRetriesExhaustedError) as exc_info:
            await policy.complete("m", MESSAGES)

        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_error, EmptyCompletionError)
        assert len(backend.complete_calls) == 3

    @pytest.mark.asyncio
    async def test_empty_then_success(self, backend: FakeBackend, obs: Observability) -> None:
        backend.completions = ["", "ok"]
        policy = CompletionRetryPolicy(backend, obs, initial_backoff=0)

        result = await policy.complete("m", MESSAGES)

        assert result == CompletionResult(text="ok", attempts=2)

    @pytest.mark.asyncio
    async def test_exhausted_error_chains_last_failure(self, backend: FakeBackend, obs: Observability) -> None:
        last = CompletionBackendError("last")
        backend.completions = [CompletionBackendError("first"), last]
        policy = CompletionRetryPolicy(backend, obs, max_attempts=2, initial_backoff=0)

        with pytest.raises(CompletionRetriesExhaustedError) as exc_info:
            await policy.complete("m", MESSAGES)

        assert exc_info.value.__cause__ is last

    @pytest.mark.asyncio
    async def test_exponential_backoff_between_attempts(self, backend: FakeBackend, obs: Observability) -> None:
        backend.completions = ["", "", ""]
        policy = CompletionRetryPolicy(backend, obs, initial_backoff=0.5, backoff_multiplier=2.0)

        with patch("core.completion.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            with pytest.raises(CompletionRetriesExhaustedError):
                await policy.complete("m", MESSAGES)

        # No sleep after the final attempt
        assert [call.args[0] for call in mock_sleep.await_args_list] == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_attempt_metrics(self, backend: FakeBackend, obs: Observability) -> None:
        backend.completions = ["", CompletionBackendError("x"), "ok"]
        policy = CompletionRetryPolicy(backend, obs, initial_backoff=0)

        await policy.complete("m", MESSAGES)

        registry = obs.metrics.registry
        sample = "danbot_completion_attempts_total"
        assert registry.get_sample_value(sample, {"attempt": "1", "outcome": "empty"}) == 1.0
        assert registry.get_sample_value(sample, {"attempt": "2", "outcome": "error"}) == 1.0
        assert registry.get_sample_value(sample, {"attempt": "3", "outcome": "success"}) == 1.0
