# ledger_system/services/account_service.py
"""
Account store - create-if-absent, row locks, atomic balance deltas and
read-only aggregates for presentation.
"""
from datetime import timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy import func
import logging

from config import Config
from models.account import Account, TOUCHED_ACCOUNTS_KEY
from models.vesting_grant import VestingGrant
from models.ledger_entry import LedgerEntry
from ledger_system.config.currencies import (
    Currency,
    GrantSource,
    MAX_REFERRAL_DEPTH,
    is_point_currency,
    reward_field,
)
from ledger_system.errors import AccountNotFoundError, IntegrityViolationError, ValidationError
from ledger_system.utils.chain_walker import ChainWalker
from ledger_system.utils.referral_codes import generate_referral_code
from ledger_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)

MAX_HISTORY_LIMIT = 100


def validate_account_id(account_id) -> int:
    """Positive int account id; raises ValidationError."""
    if isinstance(account_id, bool):
        raise ValidationError(f"Invalid account id: {account_id!r}")
    try:
        value = int(account_id)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid account id: {account_id!r}")
    if value <= 0 or str(value) != str(account_id).strip():
        raise ValidationError(f"Invalid account id: {account_id!r}")
    return value


class AccountService:
    """Data access for Account and VestingGrant rows."""

    def __init__(self, session: Session):
        self.session = session

    # ═══════════════════════════════════════════════════════════════════════
    # CREATE / LOCK
    # ═══════════════════════════════════════════════════════════════════════

    async def get_or_create(self, account_id: int, username: Optional[str] = None) -> Tuple[Account, bool]:
        """
        Return (account, is_new). New accounts get a fresh referral code.

        A code collision rolls back only the savepoint and retries with a
        new code, up to REF_CODE_RETRIES times.
        """
        account = self.lock(account_id)
        if account:
            if username and account.username != username:
                account.username = username
            return account, False

        prefix = Config.get(Config.LEGACY_REF_PREFIX, "ref_")
        retries = Config.get(Config.REF_CODE_RETRIES, 10)

        for attempt in range(1, retries + 1):
            code = generate_referral_code(prefix)
            try:
                with self.session.begin_nested():
                    account = Account(
                        accountID=account_id,
                        username=username,
                        referralCode=code,
                        nftTotal=0,
                        nftAvailable=0,
                        nftLocked=0,
                        diceAvailable=0,
                        diceStarsAttempts=0,
                        refRewardsStars=0,
                        refRewardsTon=Decimal("0"),
                        refRewardsUsdt=Decimal("0"),
                    )
                    self.session.add(account)
                    self.session.flush()
            except IntegrityError:
                # Lost a creation race for the same id: use the winner's row
                existing = self.lock(account_id)
                if existing:
                    return existing, False
                logger.warning(f"Referral code collision for {account_id} (attempt {attempt}/{retries})")
                continue

            logger.info(f"Account created: {account_id} code={code}")
            return account, True

        raise IntegrityViolationError(
            f"Could not generate a unique referral code for {account_id} after {retries} attempts"
        )

    def lock(self, account_id: int) -> Optional[Account]:
        """Load account with an exclusive row lock (FOR UPDATE)."""
        return (
            self.session.query(Account)
            .filter(Account.accountID == account_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def require(self, account_id: int) -> Account:
        """Locked account or AccountNotFoundError."""
        account = self.lock(account_id)
        if not account:
            raise AccountNotFoundError(f"Account {account_id} not found")
        return account

    # ═══════════════════════════════════════════════════════════════════════
    # ATOMIC DELTAS
    # ═══════════════════════════════════════════════════════════════════════

    def apply_delta(self, account_id: int, deltas: Dict[str, object], *guards) -> int:
        """
        UPDATE accounts SET col = col + delta ... WHERE accountID = :id AND guards.

        Returns:
            Number of rows changed (0 when a guard did not hold)
        """
        values = {
            getattr(Account, field): getattr(Account, field) + delta
            for field, delta in deltas.items()
        }
        changed = (
            self.session.query(Account)
            .filter(Account.accountID == account_id, *guards)
            .update(values, synchronize_session="fetch")
        )
        if changed:
            self.session.info.setdefault(TOUCHED_ACCOUNTS_KEY, set()).add(account_id)
        return changed

    def credit_nft(self, account_id: int, amount: int, locked: bool, source: GrantSource) -> Optional[VestingGrant]:
        """
        Add amount units to the account.

        Locked credits go to nftLocked and are backed by one new VestingGrant
        that unlocks VESTING_DAYS from now.
        """
        if locked:
            self.apply_delta(account_id, {"nftTotal": amount, "nftLocked": amount})
            days = Config.get(Config.VESTING_DAYS, 21)
            grant = VestingGrant(
                accountID=account_id,
                amount=amount,
                unlockAt=timeMachine.now + timedelta(days=days),
                source=source.value,
            )
            self.session.add(grant)
            return grant

        self.apply_delta(account_id, {"nftTotal": amount, "nftAvailable": amount})
        return None

    def add_reward(self, account_id: int, currency: Currency, amount: Decimal) -> int:
        field = reward_field(currency)
        value = int(amount) if is_point_currency(currency) else amount
        return self.apply_delta(account_id, {field: value})

    def spend_reward(self, account_id: int, currency: Currency, amount: Decimal) -> int:
        """Decrease reward balance; 0 rows when the balance is short."""
        field = reward_field(currency)
        value = int(amount) if is_point_currency(currency) else amount
        column = getattr(Account, field)
        return self.apply_delta(account_id, {field: -value}, column >= value)

    def reward_balance(self, account: Account, currency: Currency) -> Decimal:
        return Decimal(getattr(account, reward_field(currency)) or 0)

    # ═══════════════════════════════════════════════════════════════════════
    # READ MODELS
    # ═══════════════════════════════════════════════════════════════════════

    async def snapshot(self, account_id: int) -> Dict:
        """Balances, vesting schedule and referral stats as a plain dict."""
        account = self.session.query(Account).filter_by(accountID=account_id).first()
        if not account:
            raise AccountNotFoundError(f"Account {account_id} not found")

        locks = (
            self.session.query(VestingGrant.unlockAt, func.sum(VestingGrant.amount))
            .filter(VestingGrant.accountID == account_id)
            .group_by(VestingGrant.unlockAt)
            .order_by(VestingGrant.unlockAt)
            .all()
        )

        levels = ChainWalker(self.session).count_downline_by_level(account_id, MAX_REFERRAL_DEPTH)

        return {
            "id": account.accountID,
            "username": account.username,
            "referralCode": account.referralCode,
            "referrerId": account.referrerID,
            "nftBalance": {
                "total": account.nftTotal,
                "available": account.nftAvailable,
                "locked": account.nftLocked,
                "lockedDetails": [
                    {"amount": int(amount), "unlockAt": unlock_at}
                    for unlock_at, amount in locks
                ],
            },
            "diceBalance": {
                "available": account.diceAvailable,
                "starsAttempts": account.diceStarsAttempts,
            },
            "referralStats": {
                "level1": levels.get(1, 0),
                "level2": levels.get(2, 0),
                "level3": levels.get(3, 0),
                "bonusBalance": {
                    currency.value: self.reward_balance(account, currency)
                    for currency in Currency
                },
            },
            "createdAt": account.createdAt,
        }

    async def list_ledger(self, account_id: int, limit: int = 20, offset: int = 0) -> List[LedgerEntry]:
        """Journal entries, newest first."""
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= MAX_HISTORY_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_HISTORY_LIMIT}")
        if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
            raise ValidationError("offset must be >= 0")

        return (
            self.session.query(LedgerEntry)
            .filter(LedgerEntry.accountID == account_id)
            .order_by(LedgerEntry.createdAt.desc(), LedgerEntry.entryID.desc())
            .limit(limit)
            .offset(offset)
            .all()
        )
