"""
LedgerEntry model - append-only transaction journal.
idempotencyToken is unique when present: the at-most-once guard for
externally confirmed purchases.
"""
from sqlalchemy import Column, BigInteger, Integer, String, Numeric, DateTime, Boolean, ForeignKey
from models.base import Base, _get_current_time


class LedgerEntry(Base):
    __tablename__ = 'ledger_entries'

    entryID = Column(Integer, primary_key=True, autoincrement=True)
    accountID = Column(
        BigInteger,
        ForeignKey('accounts.accountID', ondelete='CASCADE'),
        nullable=False,
        index=True
    )

    kind = Column(String, nullable=False)  # purchase, win, referral_reward, withdraw
    assetType = Column(String, nullable=False)  # nft, dice, currency
    amount = Column(Numeric(18, 9), nullable=False)
    currency = Column(String, nullable=True)  # STARS, TON, USDT
    description = Column(String, nullable=True)
    isLocked = Column(Boolean, nullable=False, default=False)

    idempotencyToken = Column(String, nullable=True, unique=True)

    createdAt = Column(DateTime, default=_get_current_time, index=True)

    def to_dict(self):
        return {
            "id": self.entryID,
            "type": self.kind,
            "assetType": self.assetType,
            "amount": format(self.amount.normalize(), "f") if self.amount is not None else None,
            "currency": self.currency,
            "description": self.description,
            "isLocked": bool(self.isLocked),
            "timestamp": self.createdAt.isoformat() if self.createdAt else None,
        }

    def __repr__(self):
        return f"<LedgerEntry(entryID={self.entryID}, kind={self.kind}, amount={self.amount})>"
