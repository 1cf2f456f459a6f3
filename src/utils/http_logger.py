"""
HTTP request/response logging for debugging backend and image download issues.

Captures request metadata and JSON payloads using httpx event hooks.
"""

from __future__ import annotations

import json

from typing import Any

import httpx

from utils.logger import ChatLogger


class HTTPLogger:
    """Logs HTTP requests and responses for debugging."""

    def __init__(self, logger: ChatLogger, enabled: bool = True):
        self.logger = logger
        self.enabled = enabled
        self._request_data: dict[Any, dict[str, Any]] = {}

    async def log_request(self, request: httpx.Request) -> None:
        if not self.enabled:
            return

        try:
            body_json = self._decode_body(request)
            self._request_data[id(request)] = {
                "method": request.method,
                "url": str(request.url),
            }
            self.logger.info(
                f"HTTP Request: {request.method} {request.url}",
                http_request=True,
                headers=self._sanitize_headers(dict(request.headers)),
                payload=body_json,
            )
        except Exception as e:
            self.logger.error(f"Error logging HTTP request: {e}", exc_info=True)

    async def log_response(self, response: httpx.Response) -> None:
        """Log HTTP response.

        Streaming bodies (image downloads) are never read here, that would
        consume the stream before its real reader gets it.
        """
        if not self.enabled:
            return

        try:
            request_data = self._request_data.pop(id(response.request), {})
            self.logger.info(
                f"HTTP Response: {response.status_code} "
                f"{request_data.get('method', 'UNKNOWN')} {request_data.get('url', 'UNKNOWN')}",
                http_response=True,
                status_code=response.status_code,
                content_length=response.headers.get("content-length"),
            )
        except Exception as e:
            self.logger.error(f"Error logging HTTP response: {e}", exc_info=True)

    def _decode_body(self, request: httpx.Request) -> dict[str, Any]:
        content_type = request.headers.get("content-type", "")
        if "application/json" not in content_type:
            return {"_note": f"body not captured ({content_type or 'no content type'})"}
        try:
            body_str = request.content.decode("utf-8") if request.content else ""
        except httpx.RequestNotRead:
            return {"_note": "streaming request - body not captured"}
        try:
            return json.loads(body_str) if body_str else {}
        except json.JSONDecodeError as e:
            return {"_error": f"Invalid JSON: {e!s}"}

    def _sanitize_headers(self, headers: dict[str, str]) -> dict[str, str]:
        """Remove sensitive data from headers, keeping the last 4 characters."""
        sanitized = headers.copy()
        sensitive_keys = {"authorization", "api-key", "x-api-key"}

        for actual_key in list(sanitized):
            if actual_key.lower() in sensitive_keys:
                value = sanitized[actual_key]
                sanitized[actual_key] = f"***{value[-4:]}" if len(value) > 4 else "***"

        return sanitized


def create_logging_client(
    logger: ChatLogger,
    enabled: bool = True,
    timeout: httpx.Timeout | None = None,
) -> httpx.AsyncClient:
    """Create an httpx client with request/response logging event hooks."""
    http_logger = HTTPLogger(logger, enabled=enabled)

    event_hooks: dict[str, list[Any]] = {
        "request": [http_logger.log_request],
        "response": [http_logger.log_response],
    }

    return httpx.AsyncClient(event_hooks=event_hooks, timeout=timeout)
