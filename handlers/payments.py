# nftdice/handlers/payments.py
"""
Telegram Stars payments.

Invoice payload format: "<kind>:<quantity>", e.g. "nft:3" or "dice:1".
The settlement idempotency token is telegram_payment_charge_id, so a
redelivered successful_payment update is applied once.
"""
import logging
from aiogram import Router, F
from aiogram.types import Message, PreCheckoutQuery

from ledger_system import operations
from ledger_system.config.currencies import Currency, ProductKind, parse_kind, unit_price
from ledger_system.errors import LedgerError, ValidationError

logger = logging.getLogger(__name__)

payments_router = Router(name="payments_router")

STARS_CURRENCY_CODE = "XTR"
MAX_QUANTITY = 1000


def parse_invoice_payload(payload: str):
    """
    Parse "<kind>:<quantity>".

    Returns:
        (ProductKind, quantity)

    Raises:
        ValidationError: Malformed payload
    """
    try:
        raw_kind, raw_quantity = payload.split(":", 1)
        kind = parse_kind(raw_kind)
        quantity = int(raw_quantity)
    except (AttributeError, ValueError):
        raise ValidationError(f"Invalid invoice payload: {payload!r}")

    if not 0 < quantity <= MAX_QUANTITY:
        raise ValidationError(f"Invalid quantity in invoice payload: {payload!r}")
    return kind, quantity


def build_invoice_payload(kind: ProductKind, quantity: int) -> str:
    return f"{kind.value}:{quantity}"


def expected_stars_total(kind: ProductKind, quantity: int) -> int:
    return int(unit_price(kind, Currency.STARS) * quantity)


@payments_router.pre_checkout_query()
async def process_pre_checkout(query: PreCheckoutQuery):
    """Confirm only well-formed Stars invoices priced from the price table."""
    try:
        kind, quantity = parse_invoice_payload(query.invoice_payload)
    except ValidationError as e:
        logger.warning(f"Pre-checkout rejected for {query.from_user.id}: {e}")
        await query.answer(ok=False, error_message="Invalid order")
        return

    if query.currency != STARS_CURRENCY_CODE or query.total_amount != expected_stars_total(kind, quantity):
        logger.warning(
            f"Pre-checkout price mismatch for {query.from_user.id}: "
            f"{query.total_amount} {query.currency} for {quantity} {kind.value}"
        )
        await query.answer(ok=False, error_message="Price has changed, please try again")
        return

    await query.answer(ok=True)


@payments_router.message(F.successful_payment)
async def process_successful_payment(message: Message):
    payment = message.successful_payment
    user_id = message.from_user.id

    try:
        kind, quantity = parse_invoice_payload(payment.invoice_payload)
        applied = await operations.settle_purchase(
            user_id,
            kind,
            quantity,
            Currency.STARS,
            payment.telegram_payment_charge_id,
        )
    except LedgerError as e:
        logger.error(
            f"Stars payment {payment.telegram_payment_charge_id} from {user_id} not settled: {e}",
            exc_info=True
        )
        await message.answer("⚠️ Payment received but not credited yet. Support has been notified.")
        return

    if applied:
        await message.answer(
            f"✅ Payment received: {quantity} {kind.value}. "
            f"Stars purchases unlock after the vesting period."
        )
    else:
        logger.info(f"Repeated payment update {payment.telegram_payment_charge_id} ignored")
