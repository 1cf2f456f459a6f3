"""
Constants and configuration for danbot.
Centralizes markers, platform limits and configuration values.
Includes Pydantic validation for environment variables.
"""

from __future__ import annotations

import os
import threading

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import (
    DotEnvSettingsSource,
    PydanticBaseSettingsSource,
)

# ============================================================================
# Project Paths
# ============================================================================

#: Project root directory (parent of src/)
PROJECT_ROOT = Path(__file__).parent.parent.parent

#: Default location of the base prompt definition
DEFAULT_BASE_PROMPT_PATH = PROJECT_ROOT / "prompts" / "danbo.json"

#: Directory for rotating JSON log files
LOG_DIR = PROJECT_ROOT / "logs"

# ============================================================================
# Conversation Markers
# ============================================================================

#: Requests a dedicated platform thread for the conversation
THREAD_REQUEST_MARKER = "🧵"

#: Requests an edit of the most recent image in the thread
IMAGE_EDIT_MARKERS: tuple[str, ...] = ("✏️",)

#: Requests a freshly generated image
IMAGE_GENERATE_MARKERS: tuple[str, ...] = ("🎨", "draw me a picture of")

#: Source identity used for every assistant-authored turn
BOT_SOURCE_IDENTITY = "Bot"

#: Prefix applied to recorded user turns of text conversations
USER_TURN_PREFIX = "User: "

#: Grouping id used for images requested outside of a guild
PRIVATE_CHAT_GROUP = "private-chat"

# ============================================================================
# Platform Limits and Presentation
# ============================================================================

#: Maximum characters Discord accepts in a single message
DISCORD_MESSAGE_LIMIT = 2000

#: File name and content type of uploaded drawings
IMAGE_FILENAME = "danbot-drawing.png"
IMAGE_CONTENT_TYPE = "image/png"

IMAGE_CAPTION_GENERATED = "a picture I drawed"
IMAGE_CAPTION_EDITED = "an edited picture I drawed"

#: Thread name template (formatted with the requesting user's name)
THREAD_NAME_TEMPLATE = "Conversation with {username}"

#: Failure notices sent back to the chat
IMAGE_FAILURE_NOTICE = "I messed that one up and threw it away. Sorry. ({error})"
TEXT_FAILURE_NOTICE = "Whoops something went wrong processing that"
THREAD_FAILURE_NOTICE = "I couldn't start a thread for that one. ({error})"
SHUTDOWN_NOTICE = "Here I go, shutting down again!"

# ============================================================================
# Logging
# ============================================================================

LOG_MAX_SIZE = 10 * 1024 * 1024
LOG_BACKUP_COUNT_CONVERSATIONS = 5
LOG_BACKUP_COUNT_ERRORS = 3
LOG_PREVIEW_LENGTH = 120

# ============================================================================
# Environment Configuration
# ============================================================================

Environment = Literal["development", "production", "test"]

_ENV_DIR = PROJECT_ROOT


def _get_env_files() -> list[Path]:
    """Determine which .env files to load based on APP_ENV.

    Load order (later files override earlier - pydantic-settings last-wins):
    1. .env (base defaults) - lowest priority
    2. .env.{environment} (environment-specific overrides)
    3. .env.local (local developer overrides, gitignored) - highest priority

    Returns:
        List of Path objects for env files that exist.
    """
    env_name = os.getenv("APP_ENV", "development").lower()
    if env_name not in ("development", "production", "test"):
        env_name = "development"

    candidates = [
        _ENV_DIR / ".env",
        _ENV_DIR / f".env.{env_name}",
        _ENV_DIR / ".env.local",
    ]
    return [p for p in candidates if p.exists()]


def _reload_dotenv_into_environ() -> None:
    """Load the dotenv chain into os.environ before Settings() is built."""
    from dotenv import load_dotenv

    for env_file in _get_env_files():
        load_dotenv(env_file, override=True)


class Settings(BaseSettings):
    """Environment settings with validation and environment-specific file support.

    Configuration priority (highest to lowest):
    1. Values passed to Settings() constructor
    2. Environment variables prefixed with ``BOT_``
    3. .env.local > .env.{APP_ENV} > .env (dotenv files, last wins)

    Validates at startup to fail fast on configuration errors.
    """

    # Environment identification
    app_env: Environment = Field(
        default="development",
        validation_alias=AliasChoices("app_env", "BOT_APP_ENV", "APP_ENV"),
        description="Application environment (also selects the .env.{APP_ENV} file)",
    )

    # Chat platform
    discord_token: str | None = Field(default=None, description="Discord bot token")
    shutdown_channel_id: str | None = Field(
        default=None, description="Channel that receives a notice when the bot shuts down"
    )
    thread_auto_archive_minutes: int = Field(default=60, description="Auto-archive duration for created threads")

    # Completion backend
    openai_auth_token: str | None = Field(default=None, description="OpenAI API key")
    openai_base_url: str | None = Field(default=None, description="Optional OpenAI-compatible endpoint")
    completion_model: str = Field(default="gpt-3.5-turbo", description="Chat completion model")
    image_model: str = Field(default="dall-e-3", description="Image generation model")
    image_edit_model: str = Field(default="dall-e-2", description="Image edit model")
    image_size: str = Field(default="1024x1024", description="Requested image dimensions")
    warmup_timeout: float = Field(default=2.0, description="Timeout of the startup warm-up request (seconds)")

    # Retry policy for text completions
    completion_max_attempts: int = Field(default=3, description="Attempts per text completion")
    completion_initial_backoff: float = Field(default=0.1, description="Delay before the first retry (seconds)")
    completion_backoff_multiplier: float = Field(default=2.0, description="Backoff multiplier between retries")

    # Storage
    aws_region: str = Field(default="us-east-1", description="AWS region for DynamoDB and S3")
    conversation_table: str = Field(default="danbot-conversations", description="DynamoDB table of thread turns")
    dynamodb_endpoint: str | None = Field(default=None, description="Optional DynamoDB endpoint (local testing)")
    context_history_limit: int = Field(default=100, description="Maximum turns loaded per thread")
    image_bucket: str = Field(default="danbot-images", description="S3 bucket for generated images")
    s3_endpoint: str | None = Field(default=None, description="Optional S3 endpoint (MinIO)")
    public_asset_url_prefix: str = Field(
        default="https://sillybullshit.click/", description="Public URL prefix that serves the image bucket"
    )
    base_prompt_path: Path = Field(default=DEFAULT_BASE_PROMPT_PATH, description="Base prompt JSON file")

    # Image pipeline
    max_background_uploads: int = Field(default=8, description="Concurrent background image archive uploads")
    fanout_buffer_bytes: int = Field(
        default=8 * 1024 * 1024, description="Bytes a slow sink may lag behind the faster one"
    )
    image_fetch_timeout: float = Field(default=60.0, description="Timeout for image downloads (seconds)")

    # Debug, logging and metrics
    debug: bool = Field(default=False, description="Enable debug logging")
    json_logs: bool = Field(default=False, description="Emit console logs as JSON")
    enable_content_logging: bool = Field(default=False, description="Include message previews in logs")
    http_request_logging: bool = Field(default=False, description="Enable HTTP request/response logging")
    metrics_port: int | None = Field(default=None, description="Expose Prometheus metrics on this port")

    model_config = SettingsConfigDict(
        env_prefix="BOT_",
        populate_by_name=True,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Environment variables override dotenv files; dotenv files are resolved per APP_ENV."""
        dotenv_source = DotEnvSettingsSource(
            settings_cls,
            env_file=_get_env_files(),
            env_file_encoding="utf-8",
        )
        return (init_settings, env_settings, dotenv_source)

    @field_validator("app_env", mode="before")
    @classmethod
    def validate_app_env(cls, v: str | None) -> str:
        """Validate and normalize APP_ENV value."""
        if v is None:
            return "development"
        normalized = str(v).lower()
        if normalized not in ("development", "production", "test"):
            raise ValueError(f"app_env must be 'development', 'production', or 'test', got '{v}'")
        return normalized

    @field_validator("openai_auth_token")
    @classmethod
    def validate_openai_auth_token(cls, v: str | None) -> str | None:
        """Basic validation of OpenAI API key format."""
        if v is not None and len(v) < 10:
            raise ValueError("Invalid OpenAI API key format")
        return v

    @field_validator("public_asset_url_prefix")
    @classmethod
    def ensure_prefix_format(cls, v: str) -> str:
        """Asset keys are appended directly, so the prefix must end with a slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("public_asset_url_prefix must be an http(s) URL")
        return v if v.endswith("/") else v + "/"

    @field_validator("completion_max_attempts", "max_background_uploads", "fanout_buffer_bytes")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator("thread_auto_archive_minutes")
    @classmethod
    def validate_archive_duration(cls, v: int) -> int:
        """Discord only accepts a fixed set of auto-archive durations."""
        if v not in (60, 1440, 4320, 10080):
            raise ValueError("thread_auto_archive_minutes must be one of 60, 1440, 4320, 10080")
        return v

    @model_validator(mode="after")
    def validate_credentials(self) -> Settings:
        """Tokens are only mandatory outside of the test environment."""
        if self.app_env == "test":
            return self
        if not self.discord_token:
            raise ValueError(
                "Configuration Error: discord_token is required.\n"
                "Set BOT_DISCORD_TOKEN in your .env file or environment."
            )
        if not self.openai_auth_token:
            raise ValueError(
                "Configuration Error: openai_auth_token is required.\n"
                "Set BOT_OPENAI_AUTH_TOKEN in your .env file or environment."
            )
        return self


# ============================================================================
# Settings Management
# ============================================================================


class _SettingsManager:
    """Thread-safe settings cache.

    Uses a class to avoid global statement warnings from linters.
    """

    __slots__ = ("_instance", "_lock")

    def __init__(self) -> None:
        self._instance: Settings | None = None
        self._lock = threading.Lock()

    def get(self) -> Settings:
        if self._instance is not None:
            return self._instance

        with self._lock:
            # Double-check after acquiring lock
            if self._instance is not None:
                return self._instance

            _reload_dotenv_into_environ()
            self._instance = Settings()
            return self._instance

    def clear(self) -> None:
        with self._lock:
            self._instance = None


# Module-level singleton manager
_settings_manager = _SettingsManager()


def get_settings() -> Settings:
    """Get the validated, cached settings instance.

    Raises:
        ValueError: If required configuration is missing or invalid.
    """
    return _settings_manager.get()


def clear_settings_cache() -> None:
    """Clear cached settings instance.

    Primarily useful for testing to ensure fresh settings on each test.
    """
    _settings_manager.clear()
