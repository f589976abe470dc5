# ledger_system/services/reward_service.py
"""
Referral reward distribution - pays up to three upline levels a fixed share
of a confirmed purchase, in the purchase currency.
"""
from decimal import Decimal
from typing import Dict, List
from sqlalchemy.orm import Session
import logging

from models.ledger_entry import LedgerEntry
from ledger_system.config.currencies import (
    AssetType,
    Currency,
    EntryKind,
    MAX_REFERRAL_DEPTH,
    REFERRAL_LEVELS,
    quantize_amount,
)
from ledger_system.services.account_service import AccountService
from ledger_system.utils.chain_walker import ChainWalker

logger = logging.getLogger(__name__)


class RewardService:
    """Fan-out of referral rewards. Runs inside the settlement transaction."""

    def __init__(self, session: Session):
        self.session = session
        self.accounts = AccountService(session)

    def calculate_reward(self, total_paid: Decimal, currency: Currency, level: int) -> Decimal:
        """Level share of total_paid, rounded down to the currency precision."""
        return quantize_amount(total_paid * REFERRAL_LEVELS[level], currency)

    async def distribute(self, buyer_id: int, total_paid: Decimal, currency: Currency) -> List[Dict]:
        """
        Credit rewards to the buyer's upline.

        A missing link ends the walk; a level whose reward rounds to zero is
        skipped without a journal entry.

        Returns:
            List of paid reward records
        """
        rewards: List[Dict] = []

        def pay(recipient_id: int, level: int) -> bool:
            amount = self.calculate_reward(total_paid, currency, level)
            if amount <= 0:
                return True

            self.accounts.add_reward(recipient_id, currency, amount)
            self.session.add(LedgerEntry(
                accountID=recipient_id,
                kind=EntryKind.REFERRAL_REWARD.value,
                assetType=AssetType.CURRENCY.value,
                amount=amount,
                currency=currency.value,
                description=f"Level {level} reward from {buyer_id}",
                isLocked=False,
            ))

            rewards.append({
                "accountId": recipient_id,
                "level": level,
                "amount": amount,
                "currency": currency.value,
            })
            return True

        ChainWalker(self.session).walk_upline(buyer_id, pay, MAX_REFERRAL_DEPTH)

        if rewards:
            logger.info(
                f"Rewards for purchase by {buyer_id}: "
                + ", ".join(f"L{r['level']}={r['amount']} {currency.value} -> {r['accountId']}" for r in rewards)
            )

        return rewards
