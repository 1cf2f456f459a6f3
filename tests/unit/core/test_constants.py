"""Tests for constants module.

Tests settings loading, validation and constant values.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from pydantic import ValidationError

from core.constants import (
    DISCORD_MESSAGE_LIMIT,
    IMAGE_EDIT_MARKERS,
    IMAGE_GENERATE_MARKERS,
    THREAD_REQUEST_MARKER,
    Settings,
    clear_settings_cache,
    get_settings,
)


class TestConstants:
    """Tests for module constants."""

    def test_markers_defined(self) -> None:
        assert THREAD_REQUEST_MARKER == "🧵"
        assert "✏️" in IMAGE_EDIT_MARKERS
        assert "🎨" in IMAGE_GENERATE_MARKERS
        assert "draw me a picture of" in IMAGE_GENERATE_MARKERS

    def test_edit_and_generate_markers_disjoint(self) -> None:
        assert not set(IMAGE_EDIT_MARKERS) & set(IMAGE_GENERATE_MARKERS)

    def test_discord_limit(self) -> None:
        assert DISCORD_MESSAGE_LIMIT == 2000


class TestSettings:
    """Tests for Settings validation."""

    def test_test_env_needs_no_credentials(self) -> None:
        settings = Settings(app_env="test")

        assert settings.app_env == "test"
        assert settings.completion_max_attempts == 3
        assert settings.thread_auto_archive_minutes == 60

    def test_credentials_required_outside_test(self) -> None:
        with pytest.raises(ValidationError, match="discord_token is required"):
            Settings(app_env="production", discord_token=None, openai_auth_token="sk-" + "x" * 20)

    def test_openai_token_required_outside_test(self) -> None:
        with pytest.raises(ValidationError, match="openai_auth_token is required"):
            Settings(app_env="development", discord_token="discord-token", openai_auth_token=None)

    def test_short_openai_token_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Invalid OpenAI API key format"):
            Settings(app_env="test", openai_auth_token="short")

    def test_asset_prefix_gets_trailing_slash(self) -> None:
        settings = Settings(app_env="test", public_asset_url_prefix="https://cdn.example.com/images")

        assert settings.public_asset_url_prefix == "https://cdn.example.com/images/"

    def test_asset_prefix_must_be_http(self) -> None:
        with pytest.raises(ValidationError):
            Settings(app_env="test", public_asset_url_prefix="s3://bucket/")

    def test_archive_duration_restricted(self) -> None:
        with pytest.raises(ValidationError):
            Settings(app_env="test", thread_auto_archive_minutes=30)

    def test_positive_limits(self) -> None:
        with pytest.raises(ValidationError):
            Settings(app_env="test", max_background_uploads=0)

    def test_invalid_app_env(self) -> None:
        with pytest.raises(ValidationError):
            Settings(app_env="staging")

    def test_env_prefix(self) -> None:
        with patch.dict("os.environ", {"BOT_COMPLETION_MODEL": "gpt-4o-mini", "BOT_APP_ENV": "test"}):
            settings = Settings()

        assert settings.completion_model == "gpt-4o-mini"
        assert settings.app_env == "test"


class TestGetSettings:
    """Tests for the cached settings accessor."""

    def test_cached_instance(self) -> None:
        with patch.dict("os.environ", {"APP_ENV": "test"}):
            first = get_settings()
            second = get_settings()

        assert first is second

    def test_clear_cache(self) -> None:
        with patch.dict("os.environ", {"APP_ENV": "test"}):
            first = get_settings()
            clear_settings_cache()
            second = get_settings()

        assert first is not second
