# ledger_system/services/settlement_service.py
"""
Purchase settlement - applies a confirmed purchase exactly once.

One call = balance deltas + vesting grant + journal entry + referral rewards,
all in the caller's transaction.
"""
from decimal import Decimal
from sqlalchemy.orm import Session
import logging

from models.ledger_entry import LedgerEntry
from ledger_system.config.currencies import (
    AssetType,
    Currency,
    EntryKind,
    GrantSource,
    ProductKind,
    is_point_currency,
    parse_currency,
    parse_kind,
    unit_price,
)
from ledger_system.errors import IntegrityViolationError, ValidationError
from ledger_system.services.account_service import AccountService, validate_account_id
from ledger_system.services.reward_service import RewardService

logger = logging.getLogger(__name__)


def _fmt(amount: Decimal) -> str:
    return format(Decimal(amount).normalize(), "f")


class SettlementRequest:
    """Validated settlement input."""

    def __init__(self, account_id, kind, quantity, currency, idempotency_token, use_reward_balance=False):
        self.account_id = validate_account_id(account_id)

        try:
            self.kind: ProductKind = parse_kind(kind)
        except ValueError:
            raise ValidationError(f"Unknown product kind: {kind!r}")

        try:
            self.currency: Currency = parse_currency(currency)
        except ValueError:
            raise ValidationError(f"Unknown currency: {currency!r}")

        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(f"Quantity must be a positive integer, got {quantity!r}")
        self.quantity: int = quantity

        if not isinstance(idempotency_token, str) or not idempotency_token.strip():
            raise ValidationError("Idempotency token is required")
        self.token: str = idempotency_token.strip()

        self.use_reward_balance = bool(use_reward_balance)

    @property
    def total_paid(self) -> Decimal:
        return unit_price(self.kind, self.currency) * self.quantity


class SettlementService:
    """Orchestrates a purchase settlement."""

    def __init__(self, session: Session):
        self.session = session
        self.accounts = AccountService(session)
        self.rewards = RewardService(session)

    def is_settled(self, token: str) -> bool:
        return self.session.query(LedgerEntry.entryID).filter(
            LedgerEntry.idempotencyToken == token
        ).first() is not None

    async def settle(self, request: SettlementRequest) -> bool:
        """
        Apply a confirmed purchase.

        Returns:
            True if applied now, False if this token was already settled
        """
        account = self.accounts.require(request.account_id)

        # Checked under the account lock: a concurrent replay waits for us
        if self.is_settled(request.token):
            logger.info(f"Duplicate settlement ignored: token={request.token} account={request.account_id}")
            return False

        locked = is_point_currency(request.currency)
        total_paid = request.total_paid

        # 1. Pay part of the price from accumulated referral rewards
        paid_from_rewards = Decimal("0")
        if request.use_reward_balance:
            paid_from_rewards = min(self.accounts.reward_balance(account, request.currency), total_paid)

        if paid_from_rewards > 0:
            if not self.accounts.spend_reward(account.accountID, request.currency, paid_from_rewards):
                raise IntegrityViolationError(
                    f"Reward balance changed under lock for account {account.accountID}"
                )
            self.session.add(LedgerEntry(
                accountID=account.accountID,
                kind=EntryKind.PURCHASE.value,
                assetType=AssetType.CURRENCY.value,
                amount=paid_from_rewards,
                currency=request.currency.value,
                description=f"Spent on {request.kind.value}",
                isLocked=False,
            ))

        paid_from_wallet = total_paid - paid_from_rewards

        # 2. Credit assets
        if request.kind == ProductKind.NFT:
            self.accounts.credit_nft(account.accountID, request.quantity, locked, GrantSource.SHOP)
        else:
            deltas = {"diceAvailable": request.quantity}
            if locked:
                deltas["diceStarsAttempts"] = request.quantity
            self.accounts.apply_delta(account.accountID, deltas)

        # 3. Journal entry carrying the idempotency token
        description = f"Purchase {request.quantity} {request.kind.value} (Wallet: {_fmt(paid_from_wallet)}"
        if paid_from_rewards > 0:
            description += f", Bonus: {_fmt(paid_from_rewards)}"
        description += ")"

        self.session.add(LedgerEntry(
            accountID=account.accountID,
            kind=EntryKind.PURCHASE.value,
            assetType=request.kind.value,
            amount=Decimal(request.quantity),
            currency=request.currency.value,
            description=description,
            isLocked=locked,
            idempotencyToken=request.token,
        ))
        # Surface a concurrent replay of the same token before paying rewards
        self.session.flush()

        # 4. Referral rewards on the wallet-paid part
        if paid_from_wallet > 0:
            await self.rewards.distribute(account.accountID, paid_from_wallet, request.currency)

        logger.info(
            f"Settled {request.quantity} {request.kind.value} for {account.accountID} "
            f"in {request.currency.value} (locked={locked}, token={request.token})"
        )
        return True

