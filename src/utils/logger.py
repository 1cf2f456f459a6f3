"""
Logging setup for danbot using Python's standard logging
with JSON formatting for structured logs.

Log destinations:
- Console (stderr): Human-readable format, or JSON when json_logs is enabled
- logs/conversations.jsonl: JSON format for conversation history
- logs/errors.jsonl: JSON format for error tracking
"""

from __future__ import annotations

import logging
import logging.handlers
import re
import sys

from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pythonjsonlogger import json as jsonlogger

from core.constants import (
    LOG_BACKUP_COUNT_CONVERSATIONS,
    LOG_BACKUP_COUNT_ERRORS,
    LOG_DIR,
    LOG_MAX_SIZE,
    LOG_PREVIEW_LENGTH,
)
from utils.dispatch_context import get_dispatch_context

# PII Redaction patterns
REDACTION_PATTERNS = [
    (r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b", "[EMAIL]"),
    (r"\b(?:\d{4}[- ]?){3}\d{4}\b", "[CARD]"),
    (r"\b(sk-|pk-|api[-_]?key[-_]?)[A-Za-z0-9]{20,}\b", "[API_KEY]"),
    (r"\b(password|secret|token)\s*[:=]\s*\S+", "[REDACTED]"),
]


@dataclass
class ConversationTurn:
    """Structured representation of a user prompt and the bot's answer for logging."""

    user_input: str
    response: str
    intent: str = "text_completion"
    duration_ms: float | None = None
    attempts: int | None = None
    thread_id: str = ""
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())


class ConversationFilter(logging.Filter):
    """Filter to allow all INFO level logs for conversations"""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.INFO


class ErrorFilter(logging.Filter):
    """Filter to only allow ERROR and CRITICAL logs"""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


class ColoredConsoleFormatter(logging.Formatter):
    """
    Custom formatter that adds colors to log levels and standardizes format.
    Format: HH:MM:SS [LEVEL] logger_name - message
    """

    GREY = "\x1b[38;20m"
    GREEN = "\x1b[32;20m"
    YELLOW = "\x1b[33;20m"
    RED = "\x1b[31;20m"
    BOLD_RED = "\x1b[31;1m"
    RESET = "\x1b[0m"

    def format(self, record: logging.LogRecord) -> str:
        level_fmt = f"[{record.levelname}]"

        if record.levelno == logging.DEBUG:
            level_fmt = f"{self.GREY}{level_fmt}{self.RESET}"
        elif record.levelno == logging.INFO:
            level_fmt = f"{self.GREEN}{level_fmt}{self.RESET}"
        elif record.levelno == logging.WARNING:
            level_fmt = f"{self.YELLOW}{level_fmt}{self.RESET}"
        elif record.levelno == logging.ERROR:
            level_fmt = f"{self.RED}{level_fmt}{self.RESET}"
        elif record.levelno == logging.CRITICAL:
            level_fmt = f"{self.BOLD_RED}{level_fmt}{self.RESET}"

        record.asctime = self.formatTime(record, "%H:%M:%S")
        message = f"{record.asctime} {level_fmt} {record.name} - {record.getMessage()}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


def configure_discord_logging(debug: bool = False) -> None:
    """Route discord.py's loggers through the same console format as ours."""
    formatter = ColoredConsoleFormatter()

    discord_logger = logging.getLogger("discord")
    discord_logger.handlers = []
    discord_logger.setLevel(logging.DEBUG if debug else logging.INFO)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    discord_logger.addHandler(handler)
    discord_logger.propagate = False

    # The gateway logs every heartbeat at DEBUG
    logging.getLogger("discord.gateway").setLevel(logging.INFO)


def setup_logging(
    name: str = "danbot",
    debug: bool = False,
    json_logs: bool = False,
    log_dir: Path | None = LOG_DIR,
) -> logging.Logger:
    """
    Set up logging with multiple handlers.

    Args:
        name: Logger name
        debug: Enable debug logging on the console
        json_logs: Emit console records as JSON (for log shippers)
        log_dir: Directory for rotating JSON files, None disables file logging

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)  # Capture all, filter at handler level
    logger.handlers = []
    logger.propagate = False

    # --- Console Handler ---
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if debug else logging.INFO)
    if json_logs:
        console_handler.setFormatter(
            jsonlogger.JsonFormatter("%(timestamp)s %(levelname)s %(name)s %(message)s", timestamp=True)
        )
    else:
        console_handler.setFormatter(ColoredConsoleFormatter())
    logger.addHandler(console_handler)

    if log_dir is None:
        return logger

    log_dir.mkdir(parents=True, exist_ok=True)

    # --- Conversation Log Handler (JSON) ---
    conv_handler = logging.handlers.RotatingFileHandler(
        log_dir / "conversations.jsonl",
        maxBytes=LOG_MAX_SIZE,
        backupCount=LOG_BACKUP_COUNT_CONVERSATIONS,
        encoding="utf-8",
    )
    conv_handler.setLevel(logging.INFO)
    conv_handler.addFilter(ConversationFilter())
    conv_handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(timestamp)s %(levelname)s %(message)s %(dispatch_id)s %(intent)s %(attempts)s",
            timestamp=True,
        )
    )
    logger.addHandler(conv_handler)

    # --- Error Log Handler (JSON) ---
    error_handler = logging.handlers.RotatingFileHandler(
        log_dir / "errors.jsonl",
        maxBytes=LOG_MAX_SIZE,
        backupCount=LOG_BACKUP_COUNT_ERRORS,
        encoding="utf-8",
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.addFilter(ErrorFilter())
    error_handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(timestamp)s %(levelname)s %(name)s %(message)s",
            timestamp=True,
        )
    )
    logger.addHandler(error_handler)

    return logger


class ChatLogger:
    """
    High-level logging interface for danbot.
    Wraps standard Python logging with convenience methods.
    """

    def __init__(
        self,
        name: str = "danbot",
        debug: bool = False,
        json_logs: bool = False,
        content_logging: bool = False,
        log_dir: Path | None = LOG_DIR,
    ):
        self.logger = setup_logging(name, debug=debug, json_logs=json_logs, log_dir=log_dir)
        self.content_logging = content_logging

    def _enrich_context(self, kwargs: dict[str, Any]) -> dict[str, Any]:
        """Enrich log arguments with the current dispatch context."""
        if ctx := get_dispatch_context():
            for key, value in ctx.to_log_context().items():
                kwargs.setdefault(key, value)
        return kwargs

    def debug(self, message: str, **kwargs: Any) -> None:
        self.logger.debug(message, extra=self._enrich_context(kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        self.logger.info(message, extra=self._enrich_context(kwargs))

    def warning(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        self.logger.warning(message, extra=self._enrich_context(kwargs), exc_info=exc_info)

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        """Error level logging with optional exception info"""
        self.logger.error(message, extra=self._enrich_context(kwargs), exc_info=exc_info)

    def _redact_content(self, text: str) -> str:
        """Redact PII from text using defined patterns."""
        if not text:
            return text

        redacted = text
        for pattern, replacement in REDACTION_PATTERNS:
            redacted = re.sub(pattern, replacement, redacted)
        return redacted

    def _preview(self, text: str) -> str:
        if not self.content_logging:
            return "[HIDDEN]"
        preview = self._redact_content(text[:LOG_PREVIEW_LENGTH].replace("\n", " "))
        if len(text) > LOG_PREVIEW_LENGTH:
            preview += "..."
        return preview

    def log_conversation_turn(
        self,
        user_input: str,
        response: str,
        intent: str = "text_completion",
        duration_ms: float | None = None,
        attempts: int | None = None,
        thread_id: str = "",
    ) -> None:
        """
        Log a prompt/answer pair. Content is only included when content logging is enabled.
        """
        turn = ConversationTurn(
            user_input=user_input,
            response=response,
            intent=intent,
            duration_ms=duration_ms,
            attempts=attempts,
            thread_id=thread_id,
        )

        msg_parts = [f"User: {self._preview(turn.user_input)} → Bot: {self._preview(turn.response)}"]
        if turn.attempts and turn.attempts > 1:
            msg_parts.append(f"[{turn.attempts} attempts]")
        if turn.duration_ms:
            msg_parts.append(f"[{turn.duration_ms:.0f}ms]")

        extra_data: dict[str, Any] = {
            "conversation_turn": True,
            "timestamp": turn.timestamp,
            "intent": turn.intent,
            "thread_id": turn.thread_id,
            "chars_input": len(turn.user_input),
            "chars_response": len(turn.response),
            "content_logging": self.content_logging,
        }
        if turn.duration_ms is not None:
            extra_data["ms"] = int(turn.duration_ms)
        if turn.attempts is not None:
            extra_data["attempts"] = turn.attempts

        self.logger.info(" ".join(msg_parts), extra=self._enrich_context(extra_data))
