# ledger_system/services/referral_service.py
"""
Referral binding - one-time assignment of an account's upline.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple
from sqlalchemy.orm import Session
from sqlalchemy import func
import logging

from config import Config
from models.account import Account
from ledger_system.services.account_service import AccountService
from ledger_system.utils.chain_walker import ChainWalker
from ledger_system.utils.referral_codes import normalize_code, parse_legacy_id

logger = logging.getLogger(__name__)


class BindMethod(Enum):
    """How a candidate code was resolved."""
    CODE = "code"
    LEGACY_ID = "legacy_id"
    UNMATCHED = "unmatched"


@dataclass
class BindResult:
    bound_to: Optional[int]
    reason: str
    method: BindMethod = BindMethod.UNMATCHED

    @property
    def is_bound(self) -> bool:
        return self.bound_to is not None

    def to_dict(self):
        return {"boundTo": self.bound_to, "reason": self.reason, "method": self.method.value}


class ReferralService:
    """Resolves referral codes and sets Account.referrerID at most once."""

    def __init__(self, session: Session):
        self.session = session
        self.accounts = AccountService(session)

    def resolve(self, code: str) -> Tuple[Optional[int], BindMethod]:
        """
        Resolve a code to an account id.

        Order: case-insensitive referral code match, then legacy id
        ("ref_<digits>" or bare digits). First match wins.
        """
        row = self.session.query(Account.accountID).filter(
            func.lower(Account.referralCode) == code.lower()
        ).first()
        if row:
            return row[0], BindMethod.CODE

        legacy_id = parse_legacy_id(code, Config.get(Config.LEGACY_REF_PREFIX, "ref_"))
        if legacy_id is not None:
            row = self.session.query(Account.accountID).filter(
                Account.accountID == legacy_id
            ).first()
            if row:
                return row[0], BindMethod.LEGACY_ID

        return None, BindMethod.UNMATCHED

    async def bind(self, account_id: int, candidate_code: Optional[str]) -> BindResult:
        """
        Bind account_id to the owner of candidate_code.

        Never raises for expected outcomes; the reason says why nothing
        was bound.
        """
        account = self.accounts.require(account_id)

        if account.referrerID is not None:
            return BindResult(None, "Referrer already set")

        code = normalize_code(candidate_code)
        if code is None:
            return BindResult(None, "No code provided")

        referrer_id, method = self.resolve(code)
        if referrer_id is None:
            logger.info(f"Referral code '{code}' not found (account {account_id})")
            return BindResult(None, f"Code '{code}' not found")

        if referrer_id == account_id:
            logger.warning(f"Account {account_id} tried to refer itself")
            return BindResult(None, "Self-referral", method)

        if ChainWalker(self.session).would_create_cycle(account_id, referrer_id):
            logger.warning(f"Referral cycle rejected: {account_id} -> {referrer_id}")
            return BindResult(None, "Referral cycle", method)

        changed = (
            self.session.query(Account)
            .filter(Account.accountID == account_id, Account.referrerID.is_(None))
            .update({Account.referrerID: referrer_id}, synchronize_session="fetch")
        )
        if not changed:
            return BindResult(None, "Referrer already set")

        logger.info(f"Account {account_id} bound to referrer {referrer_id} ({method.value})")
        return BindResult(referrer_id, f"Success ({method.value})", method)
