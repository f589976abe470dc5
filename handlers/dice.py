# nftdice/handlers/dice.py
"""
Dice and balance commands.
"""
import logging
from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message

from ledger_system import operations
from ledger_system.errors import AccountNotFoundError, InsufficientAttemptsError, LedgerError

logger = logging.getLogger(__name__)

dice_router = Router(name="dice_router")


def format_balance(snapshot: dict) -> str:
    nft = snapshot["nftBalance"]
    dice = snapshot["diceBalance"]
    stats = snapshot["referralStats"]

    lines = [
        f"🖼 NFT: {nft['total']} (available {nft['available']}, locked {nft['locked']})",
        f"🎲 Dice attempts: {dice['available']}",
        f"👥 Referrals: {stats['level1']} / {stats['level2']} / {stats['level3']}",
    ]
    for detail in nft["lockedDetails"]:
        lines.append(f"🔒 {detail['amount']} until {detail['unlockAt']:%Y-%m-%d %H:%M} UTC")
    for currency, amount in stats["bonusBalance"].items():
        if amount:
            lines.append(f"💰 {currency} rewards: {format(amount.normalize(), 'f')}")
    return "\n".join(lines)


@dice_router.message(Command("roll"))
async def cmd_roll(message: Message):
    try:
        face_value = await operations.roll_dice(message.from_user.id)
    except AccountNotFoundError:
        await message.answer("Send /start first.")
        return
    except InsufficientAttemptsError:
        await message.answer("🎲 No dice attempts left.")
        return
    except LedgerError as e:
        logger.error(f"Roll failed for {message.from_user.id}: {e}")
        await message.answer("⚠️ Service temporarily unavailable. Please try again later.")
        return

    await message.answer(f"🎲 You rolled {face_value} and won {face_value} NFT!")


@dice_router.message(Command("balance"))
async def cmd_balance(message: Message):
    try:
        snapshot = await operations.get_account_snapshot(message.from_user.id)
    except AccountNotFoundError:
        await message.answer("Send /start first.")
        return

    await message.answer(format_balance(snapshot))
