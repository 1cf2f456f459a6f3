"""
danbot - Discord chat and drawing bot backed by OpenAI

Main entry point - orchestrates the application lifecycle through the bootstrap module.
"""

from __future__ import annotations

import asyncio
import signal

from contextlib import suppress

import discord

from app.bootstrap import initialize_application

# In-flight dispatches get this long to finish once shutdown starts
SHUTDOWN_DRAIN_TIMEOUT = 10.0


async def main() -> None:
    """Main entry point for danbot.

    Phases:
    1. Bootstrap: settings, observability, clients, base prompt, dispatcher
    2. Run: connect to Discord until the connection ends or SIGINT/SIGTERM arrives
    3. Cleanup: announce shutdown, drain dispatches, close clients
    """
    # ============================================================================
    # BOOTSTRAP PHASE
    # ============================================================================
    app_state = await initialize_application()
    logger = app_state.obs.logger

    # ============================================================================
    # RUN PHASE
    # ============================================================================
    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on every platform (Windows)
        with suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_requested.set)

    bot_task = asyncio.create_task(app_state.bot.start(app_state.settings.discord_token or ""), name="discord_client")
    stop_task = asyncio.create_task(stop_requested.wait(), name="stop_signal")
    logger.info("Bot is now running. Press CTRL-C to exit.")

    await asyncio.wait({bot_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)

    # ============================================================================
    # CLEANUP PHASE
    # ============================================================================
    if bot_task.done():
        if (error := bot_task.exception()) is not None:
            if isinstance(error, discord.LoginFailure):
                logger.error(f"Error creating Discord session: {error}")
            else:
                logger.error(f"Discord client stopped unexpectedly: {error!r}")
    else:
        logger.info("Shutdown signal received")
        await app_state.bot.announce_shutdown(app_state.settings.shutdown_channel_id)

    stop_task.cancel()
    await app_state.dispatcher.drain(timeout=SHUTDOWN_DRAIN_TIMEOUT)
    await app_state.bot.close()
    if not bot_task.done():
        with suppress(asyncio.CancelledError):
            await bot_task
    await app_state.aclose()

    logger.info("danbot shutdown complete")


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
