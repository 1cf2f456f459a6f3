"""Shared test fixtures for the danbot test suite.

Provides in-memory fakes for every external collaborator (chat platform,
completion backend, context store, asset store) and a test observability
context that never writes log files.
"""

from __future__ import annotations

from collections.abc import Generator
from typing import Any

import pytest

from core.constants import Settings, clear_settings_cache
from models.conversation import InboundMessage, PromptMessage, Role
from utils.dispatch_context import clear_dispatch_context
from utils.logger import ChatLogger
from utils.metrics import BotMetrics
from utils.observability import Observability

from fakes import ASSET_PREFIX, BOT_ID, FakeAssetStore, FakeBackend, FakeChatClient, FakeContextStore

# ============================================================================
# Test Isolation
# ============================================================================


@pytest.fixture(autouse=True)
def isolate_state() -> Generator[None, None, None]:
    """Reset cached settings and dispatch context around every test."""
    clear_settings_cache()
    clear_dispatch_context()
    yield
    clear_settings_cache()
    clear_dispatch_context()


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def obs() -> Observability:
    """Observability context logging to the console only, with a private registry."""
    return Observability(logger=ChatLogger(name="danbot.test", log_dir=None), metrics=BotMetrics())


@pytest.fixture
def settings() -> Settings:
    return Settings(
        app_env="test",
        public_asset_url_prefix=ASSET_PREFIX,
        completion_initial_backoff=0.0,
    )


@pytest.fixture
def chat() -> FakeChatClient:
    return FakeChatClient()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def context_store() -> FakeContextStore:
    return FakeContextStore()


@pytest.fixture
def assets() -> FakeAssetStore:
    return FakeAssetStore()


@pytest.fixture
def base_prompt() -> tuple[PromptMessage, ...]:
    return (PromptMessage(role=Role.SYSTEM, content="You are danbot."),)


@pytest.fixture
def make_message() -> Any:
    """Factory for inbound messages that mention the bot by default."""

    def _make(
        content: str = f"<@{BOT_ID}> hello",
        *,
        channel_id: str = "chan-1",
        guild_id: str = "guild-1",
        author_id: str = "42",
        author_name: str = "alice",
        message_id: str = "msg-1",
        mention_ids: tuple[str, ...] = (BOT_ID,),
    ) -> InboundMessage:
        return InboundMessage(
            message_id=message_id,
            author_id=author_id,
            author_name=author_name,
            channel_id=channel_id,
            guild_id=guild_id,
            content=content,
            mention_ids=mention_ids,
        )

    return _make
