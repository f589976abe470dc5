# ledger_system/services/stats_service.py
"""
Administrative statistics computed from the journal.
"""
from decimal import Decimal
from typing import Dict, Any
from sqlalchemy.orm import Session
from sqlalchemy import func, distinct
import logging

from models.account import Account
from models.ledger_entry import LedgerEntry
from ledger_system.config.currencies import (
    AssetType,
    Currency,
    EntryKind,
    ProductKind,
    unit_price,
)

logger = logging.getLogger(__name__)


def _zero_by_currency() -> Dict[str, Decimal]:
    return {currency.value: Decimal("0") for currency in Currency}


class StatsService:

    def __init__(self, session: Session):
        self.session = session

    def _sum_amount(self, *criteria) -> Decimal:
        value = self.session.query(func.coalesce(func.sum(LedgerEntry.amount), 0)).filter(*criteria).scalar()
        return Decimal(str(value or 0))

    def _sum_by_currency(self, *criteria) -> Dict[str, Decimal]:
        totals = _zero_by_currency()
        rows = (
            self.session.query(LedgerEntry.currency, func.sum(LedgerEntry.amount))
            .filter(*criteria)
            .group_by(LedgerEntry.currency)
            .all()
        )
        for currency, amount in rows:
            if currency in totals:
                totals[currency] = Decimal(str(amount or 0))
        return totals

    async def get_admin_stats(self) -> Dict[str, Any]:
        """
        Totals for the admin dashboard.

        revenue is what buyers paid from their wallets: price table value of
        every purchase minus the part covered by referral rewards.
        """
        total_users = self.session.query(func.count(Account.accountID)).scalar() or 0
        active_users = self.session.query(func.count(distinct(LedgerEntry.accountID))).scalar() or 0

        total_nft_sold = self._sum_amount(
            LedgerEntry.kind == EntryKind.PURCHASE.value,
            LedgerEntry.assetType == AssetType.NFT.value,
        )
        total_dice_plays = self.session.query(func.count(LedgerEntry.entryID)).filter(
            LedgerEntry.kind == EntryKind.WIN.value
        ).scalar() or 0
        total_nft_won = self._sum_amount(LedgerEntry.kind == EntryKind.WIN.value)

        bonus_earned = self._sum_by_currency(LedgerEntry.kind == EntryKind.REFERRAL_REWARD.value)
        bonus_spent = self._sum_by_currency(
            LedgerEntry.kind == EntryKind.PURCHASE.value,
            LedgerEntry.assetType == AssetType.CURRENCY.value,
        )

        revenue = _zero_by_currency()
        for kind in ProductKind:
            sold = self._sum_by_currency(
                LedgerEntry.kind == EntryKind.PURCHASE.value,
                LedgerEntry.assetType == kind.value,
            )
            for currency in Currency:
                revenue[currency.value] += unit_price(kind, currency) * sold[currency.value]
        for currency in Currency:
            revenue[currency.value] -= bonus_spent[currency.value]

        return {
            "totalUsers": total_users,
            "activeUsers": active_users,
            "totalNftSold": int(total_nft_sold),
            "totalDicePlays": total_dice_plays,
            "totalNftWonInDice": int(total_nft_won),
            "revenue": revenue,
            "bonusEarned": bonus_earned,
            "bonusSpent": bonus_spent,
        }
