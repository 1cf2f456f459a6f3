"""Application initialization for danbot.

Handles every step required before the Discord client connects: settings
validation, observability, client creation, the OpenAI warm-up request,
base prompt loading and dispatcher wiring.
"""

from __future__ import annotations

import sys

from app.state import AppState
from core.constants import get_settings
from core.dispatcher import Dispatcher
from core.prompts import BasePromptError, load_base_prompt
from integrations.asset_store import S3AssetStore
from integrations.context_store import DynamoContextStore
from integrations.discord_client import DanBot, DiscordChatClient
from integrations.openai_backend import OpenAIBackend
from models.error_models import CompletionBackendError
from utils.client_factory import create_download_client, create_http_client, create_openai_client
from utils.observability import Observability


async def initialize_application() -> AppState:
    """Initialize danbot and return populated state.

    1. Load and validate settings
    2. Set up logging and metrics
    3. Create the OpenAI client and verify it with a warm-up request
    4. Load the base prompt
    5. Build the stores, the Discord client and the dispatcher

    Returns:
        AppState: Fully initialized application state

    Raises:
        SystemExit: Configuration is invalid, the warm-up request failed or
            the base prompt could not be loaded
    """
    try:
        settings = get_settings()
    except ValueError as e:
        sys.stderr.write(f"Error: Configuration validation failed: {e}\n")
        sys.stderr.write("Please check your .env file has required variables:\n")
        sys.stderr.write("BOT_DISCORD_TOKEN\n")
        sys.stderr.write("BOT_OPENAI_AUTH_TOKEN\n")
        sys.exit(1)

    obs = Observability.from_settings(settings)
    logger = obs.logger
    logger.info(f"Settings loaded ({settings.app_env}), completion model: {settings.completion_model}")

    if settings.metrics_port:
        obs.metrics.serve(settings.metrics_port)
        logger.info(f"Metrics exposed on port {settings.metrics_port}")

    http_client = create_http_client(logger, enable_logging=settings.http_request_logging)
    if settings.http_request_logging:
        logger.info("HTTP request/response logging enabled")
    openai_client = create_openai_client(
        settings.openai_auth_token or "", base_url=settings.openai_base_url, http_client=http_client
    )
    backend = OpenAIBackend(openai_client, logger)

    try:
        await backend.warmup(settings.completion_model, timeout=settings.warmup_timeout)
    except CompletionBackendError as e:
        logger.error(f"Unable to initialize OpenAI client: {e}")
        await http_client.aclose()
        sys.exit(1)

    try:
        base_prompt = load_base_prompt(settings.base_prompt_path)
    except BasePromptError as e:
        logger.error(f"Unable to load base prompt: {e}")
        await http_client.aclose()
        sys.exit(1)
    logger.info(f"Base prompt loaded ({len(base_prompt)} messages)")

    download_client = create_download_client(read_timeout=settings.image_fetch_timeout)
    context_store = DynamoContextStore(settings, logger)
    assets = S3AssetStore(settings, logger, download_client)

    bot = DanBot(logger)
    dispatcher = Dispatcher(
        chat=DiscordChatClient(bot, logger),
        backend=backend,
        context_store=context_store,
        assets=assets,
        base_prompt=base_prompt,
        settings=settings,
        obs=obs,
    )
    bot.dispatcher = dispatcher
    logger.info("Dispatcher initialized")

    return AppState(
        settings=settings,
        obs=obs,
        bot=bot,
        dispatcher=dispatcher,
        http_client=http_client,
        download_client=download_client,
    )
