"""Application state management for danbot.

AppState holds everything bootstrap builds. It is passed explicitly to the
lifecycle functions in ``main`` rather than living in module-level globals.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from core.constants import Settings
from core.dispatcher import Dispatcher
from integrations.discord_client import DanBot
from utils.observability import Observability


@dataclass
class AppState:
    """Application state container.

    Attributes:
        settings: Validated settings
        obs: Logger and metrics shared by every component
        bot: Discord gateway client
        dispatcher: Message dispatcher wired to the bot
        http_client: Async client used by the OpenAI SDK
        download_client: Blocking client used for image downloads
    """

    settings: Settings
    obs: Observability
    bot: DanBot
    dispatcher: Dispatcher
    http_client: httpx.AsyncClient
    download_client: httpx.Client

    async def aclose(self) -> None:
        """Release HTTP connection pools."""
        await self.http_client.aclose()
        self.download_client.close()
