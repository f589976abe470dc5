# nftdice/core/system_services.py
"""
System services management for nftdice.
Bot polling, API runner lifecycle and graceful shutdown.
"""
import asyncio
import logging
import signal
from typing import Dict, Any, Optional
from aiogram import Bot, Dispatcher
from aiogram.exceptions import TelegramAPIError
from aiohttp import web

logger = logging.getLogger(__name__)


async def get_bot_info(bot: Bot) -> Dict[str, Any]:
    """
    Get bot information from Telegram.

    Returns:
        Dict with bot info (id, username, first_name), empty on API error
    """
    try:
        me = await bot.get_me()
        return {
            "id": me.id,
            "username": me.username,
            "first_name": me.first_name,
        }
    except TelegramAPIError as e:
        logger.error(f"Failed to get bot info: {e}")
        return {}


async def start_bot_polling(bot: Bot, dp: Dispatcher) -> None:
    """Start bot polling."""
    try:
        logger.info("Starting bot polling...")
        await dp.start_polling(
            bot,
            allowed_updates=dp.resolve_used_update_types(),
            handle_signals=False
        )
    except Exception as e:
        logger.error(f"Error during polling: {e}", exc_info=True)
        raise


# ═══════════════════════════════════════════════════════════════════════════
# GRACEFUL SHUTDOWN
# ═══════════════════════════════════════════════════════════════════════════

async def shutdown(
        signal_type: signal.Signals,
        stop_event: asyncio.Event,
        runner: Optional[web.AppRunner] = None,
        bot: Optional[Bot] = None,
        dp: Optional[Dispatcher] = None
) -> None:
    """
    Cleanup tasks on shutdown.

    Args:
        signal_type: Signal that triggered shutdown
        stop_event: Set once everything is closed
        runner: API server runner
        bot: Bot instance (None when running API only)
        dp: Dispatcher instance
    """
    logger.info(f"Received exit signal {signal_type.name}...")

    if dp is not None:
        logger.info("Stopping bot polling...")
        await dp.stop_polling()

    if bot is not None and bot.session:
        logger.info("Closing bot session...")
        await bot.session.close()

    if runner is not None:
        logger.info("Stopping API server...")
        await runner.cleanup()

    stop_event.set()
    logger.info("✓ Shutdown complete")


def setup_signal_handlers(
        loop: asyncio.AbstractEventLoop,
        stop_event: asyncio.Event,
        runner: Optional[web.AppRunner] = None,
        bot: Optional[Bot] = None,
        dp: Optional[Dispatcher] = None
) -> None:
    """Setup signal handlers for graceful shutdown."""
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(
                sig,
                lambda s=sig: asyncio.create_task(shutdown(s, stop_event, runner, bot, dp))
            )
        except NotImplementedError:
            # Signal handlers not available on Windows
            logger.warning(f"Signal handler for {sig} not available on this platform")


__all__ = [
    'get_bot_info',
    'start_bot_polling',
    'shutdown',
    'setup_signal_handlers',
]
