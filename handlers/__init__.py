# nftdice/handlers/__init__.py
"""
Handlers initialization.
"""
import logging
from aiogram import Dispatcher, Bot

from handlers.start import start_router
from handlers.payments import payments_router
from handlers.dice import dice_router

logger = logging.getLogger(__name__)


def register_all_handlers(dp: Dispatcher, bot: Bot):
    """Register all handlers."""
    dp.include_router(start_router)
    dp.include_router(payments_router)
    dp.include_router(dice_router)

    logger.info("All handlers registered")
