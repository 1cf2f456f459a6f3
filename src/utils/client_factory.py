"""
Client factory utilities.
Centralizes AsyncOpenAI and httpx client creation with consistent configuration.
"""

from __future__ import annotations

from typing import Any

import httpx

from openai import AsyncOpenAI

from utils.http_logger import create_logging_client
from utils.logger import ChatLogger

# Image generation can take well over 30 seconds on busy days
DEFAULT_CONNECT_TIMEOUT = 30.0
DEFAULT_READ_TIMEOUT = 120.0
DEFAULT_WRITE_TIMEOUT = 30.0
DEFAULT_POOL_TIMEOUT = 30.0


def _timeout(read_timeout: float | None) -> httpx.Timeout:
    return httpx.Timeout(
        connect=DEFAULT_CONNECT_TIMEOUT,
        read=read_timeout if read_timeout is not None else DEFAULT_READ_TIMEOUT,
        write=DEFAULT_WRITE_TIMEOUT,
        pool=DEFAULT_POOL_TIMEOUT,
    )


def create_http_client(
    logger: ChatLogger | None = None,
    enable_logging: bool = False,
    read_timeout: float | None = None,
) -> httpx.AsyncClient:
    """Create the async HTTP client used by the OpenAI SDK.

    Args:
        logger: Logger receiving request/response records when logging is enabled
        enable_logging: Enable HTTP request/response logging
        read_timeout: Read timeout in seconds

    Returns:
        Configured httpx.AsyncClient
    """
    timeout = _timeout(read_timeout)

    if enable_logging and logger is not None:
        return create_logging_client(logger, enabled=True, timeout=timeout)

    return httpx.AsyncClient(timeout=timeout)


def create_download_client(read_timeout: float | None = None) -> httpx.Client:
    """Create the blocking HTTP client used for streaming image downloads.

    Image streams are consumed from worker threads (the chat upload and the
    archive upload), so the download client is synchronous.
    """
    return httpx.Client(timeout=_timeout(read_timeout), follow_redirects=True)


def create_openai_client(
    api_key: str,
    base_url: str | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> AsyncOpenAI:
    """Create AsyncOpenAI client with consistent configuration.

    Retries are disabled at the SDK level; the completion retry policy owns them.

    Args:
        api_key: OpenAI API key
        base_url: Optional base URL for compatible endpoints
        http_client: Optional httpx client (e.g. with request logging)

    Returns:
        Configured AsyncOpenAI client
    """
    kwargs: dict[str, Any] = {"api_key": api_key, "http_client": http_client, "max_retries": 0}
    if base_url:
        kwargs["base_url"] = base_url
    return AsyncOpenAI(**kwargs)
