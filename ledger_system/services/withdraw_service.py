# ledger_system/services/withdraw_service.py
"""
NFT withdrawal - moves the whole available balance to an external wallet.
Locked credits and their vesting grants are left alone.
"""
from decimal import Decimal
from sqlalchemy.orm import Session
import logging

from models.account import Account
from models.ledger_entry import LedgerEntry
from ledger_system.config.currencies import AssetType, EntryKind
from ledger_system.errors import NothingToWithdrawError, ValidationError
from ledger_system.services.account_service import AccountService
from utils.wallet_validator import validate_ton_address

logger = logging.getLogger(__name__)


def validate_destination(address) -> str:
    """Stripped TON address or ValidationError."""
    if not isinstance(address, str):
        raise ValidationError("Withdrawal address is required")
    result = validate_ton_address(address)
    if not result.is_valid:
        raise ValidationError(f"Invalid TON address: {result.details}")
    return address.strip()


class WithdrawService:

    def __init__(self, session: Session):
        self.session = session
        self.accounts = AccountService(session)

    async def withdraw(self, account_id: int, address: str) -> int:
        """
        Withdraw every available credit of account_id to address.

        Returns:
            Number of credits withdrawn
        """
        account = self.accounts.require(account_id)
        amount = account.nftAvailable
        if amount <= 0:
            raise NothingToWithdrawError(f"Account {account_id} has nothing to withdraw")

        changed = self.accounts.apply_delta(
            account_id,
            {"nftAvailable": -amount, "nftTotal": -amount},
            Account.nftAvailable == amount,
        )
        if not changed:
            raise NothingToWithdrawError(f"Account {account_id} balance changed, retry")

        self.session.add(LedgerEntry(
            accountID=account_id,
            kind=EntryKind.WITHDRAW.value,
            assetType=AssetType.NFT.value,
            amount=Decimal(amount),
            description=f"Withdraw to {address}",
            isLocked=False,
        ))

        logger.info(f"Account {account_id} withdrew {amount} NFT to {address}")
        return amount
