# nftdice/nftdice.py
"""
nftdice - Main entry point.
NFT shop + dice game ledger: mini-app HTTP API and Telegram bot on aiogram 3.x.
"""
import asyncio
import logging
import sys
from aiogram import Bot, Dispatcher

from config import Config
from core.db import setup_database
from core.system_services import get_bot_info, start_bot_polling, setup_signal_handlers
from models.listeners import register_all_listeners
from api.server import start_api_server

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler('nftdice.log')
    ]
)
logging.getLogger('aiogram').setLevel(logging.WARNING)
logging.getLogger('aiohttp.access').setLevel(logging.WARNING)
logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


async def initialize():
    """
    Load configuration, prepare the database and create the bot.

    Returns:
        Tuple[Optional[Bot], Optional[Dispatcher]]: None, None when API_TOKEN is not set
    """
    try:
        logger.info("=" * 60)
        logger.info("NFTDICE INITIALIZATION")
        logger.info("=" * 60)

        # ═══════════════════════════════════════════════════════════════════════
        # STEP 1: Load configuration from .env
        # ═══════════════════════════════════════════════════════════════════════
        logger.info("📋 Loading configuration from .env...")
        Config.initialize_from_env()
        await Config.validate_critical_keys()
        logger.info("✓ Configuration loaded")

        # ═══════════════════════════════════════════════════════════════════════
        # STEP 2: Setup database and model listeners
        # ═══════════════════════════════════════════════════════════════════════
        logger.info("💾 Setting up database...")
        setup_database()
        register_all_listeners()
        logger.info("✓ Database ready")

        # ═══════════════════════════════════════════════════════════════════════
        # STEP 3: Initialize bot and dispatcher
        # ═══════════════════════════════════════════════════════════════════════
        api_token = Config.get(Config.API_TOKEN)
        if not api_token:
            logger.info("ℹ️ No API_TOKEN provided, skipping bot init")
            return None, None

        from handlers import register_all_handlers

        bot = Bot(token=api_token)
        dp = Dispatcher()

        bot_info = await get_bot_info(bot)
        bot_username = bot_info.get('username', 'unknown')
        Config.set(Config.BOT_USERNAME, bot_username)
        logger.info(f"🤖 Bot initialized: @{bot_username}")

        logger.info("🎯 Registering handlers...")
        register_all_handlers(dp, bot)
        logger.info("✓ Handlers registered")

        return bot, dp

    except Exception as e:
        logger.critical(f"❌ Initialization failed: {e}", exc_info=True)
        raise


async def main():
    """Main entry point."""
    try:
        bot, dp = await initialize()

        # ═══════════════════════════════════════════════════════════════════════
        # STEP 4: Start mini-app API
        # ═══════════════════════════════════════════════════════════════════════
        runner = await start_api_server()

        Config.set(Config.SYSTEM_READY, True)
        logger.info("=" * 60)
        logger.info("✅ INITIALIZATION COMPLETE")
        logger.info("=" * 60)

        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        setup_signal_handlers(loop, stop_event, runner, bot, dp)

        if bot is not None:
            logger.info("🔄 Starting bot polling...")
            await start_bot_polling(bot, dp)

        await stop_event.wait()

    except KeyboardInterrupt:
        logger.info("⚠️ Stopped by user")
    except Exception as e:
        logger.critical(f"❌ Fatal error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        logger.info("👋 Shutdown complete")


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Stopped")


if __name__ == '__main__':
    run()
