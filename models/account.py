"""
Account model - one row per user, balances and referral linkage.
"""
from sqlalchemy import (
    Column, BigInteger, Integer, String, DateTime, ForeignKey, CheckConstraint
)
from sqlalchemy.orm import relationship
from models.base import Base, MinorUnits, _get_current_time

# session.info key: ids of accounts whose balances changed in this unit of work
TOUCHED_ACCOUNTS_KEY = "touched_accounts"


class Account(Base):
    __tablename__ = 'accounts'

    # Telegram user id, supplied by the identity provider
    accountID = Column(BigInteger, primary_key=True, autoincrement=False)
    username = Column(String, nullable=True)

    # Referral linkage
    referralCode = Column(String, nullable=False, unique=True, index=True)
    referrerID = Column(BigInteger, ForeignKey('accounts.accountID'), nullable=True, index=True)

    # NFT credits: nftTotal == nftAvailable + nftLocked
    nftTotal = Column(Integer, nullable=False, default=0)
    nftAvailable = Column(Integer, nullable=False, default=0)
    nftLocked = Column(Integer, nullable=False, default=0)

    # Dice attempts: diceStarsAttempts <= diceAvailable
    diceAvailable = Column(Integer, nullable=False, default=0)
    diceStarsAttempts = Column(Integer, nullable=False, default=0)

    # Accumulated referral rewards, one column per currency
    refRewardsStars = Column(BigInteger, nullable=False, default=0)
    refRewardsTon = Column(MinorUnits(9), nullable=False, default=0)  # nano-TON
    refRewardsUsdt = Column(MinorUnits(2), nullable=False, default=0)  # cents

    createdAt = Column(DateTime, default=_get_current_time)

    __table_args__ = (
        CheckConstraint('"nftAvailable" >= 0', name='ck_accounts_nft_available'),
        CheckConstraint('"nftLocked" >= 0', name='ck_accounts_nft_locked'),
        CheckConstraint('"diceAvailable" >= 0', name='ck_accounts_dice_available'),
        CheckConstraint('"diceStarsAttempts" >= 0', name='ck_accounts_dice_stars'),
        CheckConstraint('"referrerID" IS NULL OR "referrerID" <> "accountID"', name='ck_accounts_no_self_referral'),
    )

    # Relationships
    referrer = relationship('Account', remote_side=[accountID], backref='referrals')
    grants = relationship('VestingGrant', back_populates='account', passive_deletes=True)

    def __repr__(self):
        return (
            f"<Account(accountID={self.accountID}, nft={self.nftAvailable}+{self.nftLocked}, "
            f"dice={self.diceAvailable}/{self.diceStarsAttempts})>"
        )
