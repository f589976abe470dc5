# ledger_system/services/dice_service.py
"""
Dice rolls - spend one attempt, win 1..6 NFT credits.
"""
import random
from decimal import Decimal
from sqlalchemy.orm import Session
import logging

from models.account import Account
from models.ledger_entry import LedgerEntry
from ledger_system.config.currencies import AssetType, EntryKind, GrantSource
from ledger_system.errors import InsufficientAttemptsError
from ledger_system.services.account_service import AccountService

logger = logging.getLogger(__name__)

DICE_FACES = 6

_system_rng = random.SystemRandom()


class DiceService:
    """Atomic roll: decrement attempts and credit the face value."""

    def __init__(self, session: Session, rng=None):
        self.session = session
        self.accounts = AccountService(session)
        self.rng = rng or _system_rng

    def draw(self) -> int:
        return self.rng.randint(1, DICE_FACES)

    async def roll(self, account_id: int) -> int:
        """
        Roll once for account_id.

        An attempt bought with the point currency is spent first and its
        winnings vest like a point-currency purchase.

        Returns:
            Face value (1..6), also the number of credits won

        Raises:
            InsufficientAttemptsError: No attempts left
        """
        account = self.accounts.require(account_id)
        if account.diceAvailable <= 0:
            raise InsufficientAttemptsError(f"Account {account_id} has no dice attempts")

        is_stars_attempt = account.diceStarsAttempts > 0
        face_value = self.draw()

        deltas = {"diceAvailable": -1}
        guards = [Account.diceAvailable > 0]
        if is_stars_attempt:
            deltas["diceStarsAttempts"] = -1
            guards.append(Account.diceStarsAttempts > 0)

        if not self.accounts.apply_delta(account_id, deltas, *guards):
            raise InsufficientAttemptsError(f"Account {account_id} has no dice attempts")

        self.accounts.credit_nft(account_id, face_value, is_stars_attempt, GrantSource.DICE)

        self.session.add(LedgerEntry(
            accountID=account_id,
            kind=EntryKind.WIN.value,
            assetType=AssetType.NFT.value,
            amount=Decimal(face_value),
            description=f"Rolled {face_value}",
            isLocked=is_stars_attempt,
        ))

        logger.info(f"Account {account_id} rolled {face_value} (locked={is_stars_attempt})")
        return face_value
