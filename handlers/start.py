# nftdice/handlers/start.py
"""
Start command handler.
Registers the user on first contact and binds the referral payload.
"""
import logging
from aiogram import Router
from aiogram.filters import CommandStart
from aiogram.types import Message, InlineKeyboardMarkup, InlineKeyboardButton, WebAppInfo

from config import Config
from ledger_system import operations
from ledger_system.errors import LedgerError

logger = logging.getLogger(__name__)

start_router = Router(name="start_router")


def extract_start_payload(text: str):
    """'/start ref_ab12cd34' -> 'ref_ab12cd34'; no payload -> None."""
    if not text:
        return None
    parts = text.split(maxsplit=1)
    if len(parts) < 2:
        return None
    return parts[1].strip().replace('/', '') or None


def build_webapp_keyboard(payload) -> InlineKeyboardMarkup:
    """Single button opening the mini-app, forwarding the start payload."""
    url = Config.get(Config.WEBAPP_URL, "")
    if payload:
        url = f"{url}?startapp={payload}"
    return InlineKeyboardMarkup(inline_keyboard=[[
        InlineKeyboardButton(text="🚀 Open NFT App", web_app=WebAppInfo(url=url))
    ]])


@start_router.message(CommandStart())
async def cmd_start(message: Message):
    """
    Handle /start command with optional referral payload.

    Supported payloads:
    - ref_<hex>: referral code
    - <digits> / ref_<digits>: legacy referrer id
    """
    logger.info(f"Start command from user {message.from_user.id}")

    start_payload = extract_start_payload(message.text)

    try:
        snapshot, is_new, bind_result = await operations.register_account(
            message.from_user.id,
            username=message.from_user.username,
            start_code=start_payload,
        )
    except LedgerError as e:
        logger.error(f"User registration failed: {e}")
        await message.answer("⚠️ Service temporarily unavailable. Please try again later.")
        return

    if is_new:
        logger.info(
            f"New user registered: {message.from_user.id} "
            f"(referrer: {snapshot['referrerId']}, bind: {bind_result.reason if bind_result else '-'})"
        )

    if Config.get(Config.WEBAPP_URL):
        await message.answer("Welcome! Tap below to enter.", reply_markup=build_webapp_keyboard(start_payload))
    else:
        await message.answer(
            f"Welcome! Your referral code: {snapshot['referralCode']}"
        )
