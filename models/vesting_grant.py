"""
VestingGrant model - one time-locked allocation of NFT credits.
Immutable once written; the sum of an account's grants backs Account.nftLocked.
"""
from sqlalchemy import Column, BigInteger, Integer, String, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from models.base import Base, _get_current_time


class VestingGrant(Base):
    __tablename__ = 'vesting_grants'

    grantID = Column(Integer, primary_key=True, autoincrement=True)
    accountID = Column(
        BigInteger,
        ForeignKey('accounts.accountID', ondelete='CASCADE'),
        nullable=False,
        index=True
    )

    amount = Column(Integer, nullable=False)
    unlockAt = Column(DateTime, nullable=False, index=True)
    source = Column(String, nullable=False)  # shop, dice

    createdAt = Column(DateTime, default=_get_current_time)

    __table_args__ = (
        CheckConstraint('amount > 0', name='ck_vesting_grants_amount'),
    )

    account = relationship('Account', back_populates='grants')

    def __repr__(self):
        return f"<VestingGrant(grantID={self.grantID}, amount={self.amount}, unlockAt={self.unlockAt})>"
