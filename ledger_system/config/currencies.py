"""
Currencies, products and the static price table.

Every currency has exactly one reward column on Account; CURRENCY_CONFIG is the
only place that mapping lives.
"""
from enum import Enum
from decimal import Decimal, ROUND_DOWN
from typing import Dict, Any
import logging

logger = logging.getLogger(__name__)


class Currency(Enum):
    """Payment currencies."""
    STARS = "STARS"  # in-app point currency, integer denominated
    TON = "TON"
    USDT = "USDT"


class ProductKind(Enum):
    """What a purchase buys."""
    NFT = "nft"
    DICE = "dice"


class EntryKind(Enum):
    """LedgerEntry.kind values."""
    PURCHASE = "purchase"
    WIN = "win"
    REFERRAL_REWARD = "referral_reward"
    WITHDRAW = "withdraw"


class AssetType(Enum):
    """LedgerEntry.assetType values."""
    NFT = "nft"
    DICE = "dice"
    CURRENCY = "currency"


class GrantSource(Enum):
    """How a vesting grant was acquired."""
    SHOP = "shop"
    DICE = "dice"


# ═══════════════════════════════════════════════════════════════════════════
# CURRENCY → ACCOUNT FIELD
# ═══════════════════════════════════════════════════════════════════════════

CURRENCY_CONFIG: Dict[Currency, Dict[str, Any]] = {
    Currency.STARS: {
        "rewardField": "refRewardsStars",
        "quantum": Decimal("1"),
        "isPointCurrency": True,
    },
    Currency.TON: {
        "rewardField": "refRewardsTon",
        "quantum": Decimal("0.000000001"),
        "isPointCurrency": False,
    },
    Currency.USDT: {
        "rewardField": "refRewardsUsdt",
        "quantum": Decimal("0.01"),
        "isPointCurrency": False,
    },
}

_missing = set(Currency) - set(CURRENCY_CONFIG)
if _missing:
    raise RuntimeError(f"CURRENCY_CONFIG is missing {sorted(c.value for c in _missing)}")


# ═══════════════════════════════════════════════════════════════════════════
# PRICES & REFERRAL LEVELS
# ═══════════════════════════════════════════════════════════════════════════

PRICE_TABLE: Dict[ProductKind, Dict[Currency, Decimal]] = {
    ProductKind.NFT: {
        Currency.STARS: Decimal("2000"),
        Currency.TON: Decimal("0.011"),
        Currency.USDT: Decimal("36.6"),
    },
    ProductKind.DICE: {
        Currency.STARS: Decimal("6666"),
        Currency.TON: Decimal("0.036"),
        Currency.USDT: Decimal("121"),
    },
}

# level → share of the wallet-paid total
REFERRAL_LEVELS: Dict[int, Decimal] = {
    1: Decimal("0.07"),
    2: Decimal("0.05"),
    3: Decimal("0.03"),
}

MAX_REFERRAL_DEPTH = len(REFERRAL_LEVELS)


def is_point_currency(currency: Currency) -> bool:
    return CURRENCY_CONFIG[currency]["isPointCurrency"]


def reward_field(currency: Currency) -> str:
    return CURRENCY_CONFIG[currency]["rewardField"]


def unit_price(kind: ProductKind, currency: Currency) -> Decimal:
    return PRICE_TABLE[kind][currency]


def quantize_amount(amount: Decimal, currency: Currency) -> Decimal:
    """
    Round an amount down to the storage precision of currency.

    STARS truncates to whole units, TON keeps 9 places, USDT keeps 2.
    """
    quantized = amount.quantize(CURRENCY_CONFIG[currency]["quantum"], rounding=ROUND_DOWN)
    if is_point_currency(currency):
        return Decimal(int(quantized))
    return quantized


def parse_currency(raw) -> Currency:
    """Currency from "stars"/"TON"/Currency; raises ValueError."""
    if isinstance(raw, Currency):
        return raw
    if not isinstance(raw, str):
        raise ValueError(f"Unknown currency: {raw!r}")
    return Currency(raw.strip().upper())


def parse_kind(raw) -> ProductKind:
    """ProductKind from "nft"/"DICE"/ProductKind; raises ValueError."""
    if isinstance(raw, ProductKind):
        return raw
    if not isinstance(raw, str):
        raise ValueError(f"Unknown product kind: {raw!r}")
    return ProductKind(raw.strip().lower())
