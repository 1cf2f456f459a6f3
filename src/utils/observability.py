"""
Observability context for danbot.

Built once at startup and handed to every component explicitly, instead of
components reaching for a process-wide logger or tracer.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from core.constants import LOG_DIR, Settings
from utils.logger import ChatLogger, configure_discord_logging
from utils.metrics import BotMetrics


@dataclass(frozen=True, slots=True)
class Observability:
    """Logger and metrics shared by the components of one bot instance."""

    logger: ChatLogger
    metrics: BotMetrics

    @classmethod
    def from_settings(cls, settings: Settings, log_dir: Path | None = LOG_DIR) -> Observability:
        configure_discord_logging(debug=settings.debug)
        logger = ChatLogger(
            debug=settings.debug,
            json_logs=settings.json_logs,
            content_logging=settings.enable_content_logging,
            log_dir=log_dir,
        )
        return cls(logger=logger, metrics=BotMetrics())
