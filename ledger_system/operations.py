# ledger_system/operations.py
"""
Public ledger operations.

Each function is one unit of work with its own session: everything it
changes is committed together or not at all. Callers (bot handlers, HTTP
routes, tests) use only this module.
"""
import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, OperationalError

from core.db import get_db_session_ctx, reset_all_data as wipe_tables
from ledger_system.errors import IntegrityViolationError, StoreUnavailableError
from ledger_system.services.account_service import AccountService, validate_account_id
from ledger_system.services.dice_service import DiceService
from ledger_system.services.referral_service import BindResult, ReferralService
from ledger_system.services.settlement_service import SettlementRequest, SettlementService
from ledger_system.services.stats_service import StatsService
from ledger_system.services.withdraw_service import WithdrawService, validate_destination

logger = logging.getLogger(__name__)


def _store_unavailable(e: OperationalError, operation: str) -> StoreUnavailableError:
    logger.error(f"{operation}: store unavailable: {e}")
    return StoreUnavailableError(f"{operation} failed, store unavailable; safe to retry")


# ═══════════════════════════════════════════════════════════════════════════
# SETTLEMENT / DICE
# ═══════════════════════════════════════════════════════════════════════════

async def settle_purchase(
        account_id,
        kind,
        quantity,
        currency,
        idempotency_token,
        use_reward_balance: bool = False
) -> bool:
    """
    Apply a confirmed purchase.

    Returns:
        True if applied, False if the token was already settled

    Raises:
        ValidationError, AccountNotFoundError, StoreUnavailableError
    """
    request = SettlementRequest(
        account_id, kind, quantity, currency, idempotency_token, use_reward_balance
    )

    try:
        with get_db_session_ctx() as session:
            return await SettlementService(session).settle(request)
    except IntegrityError as e:
        # Concurrent replay inserted the same token first
        with get_db_session_ctx() as session:
            if SettlementService(session).is_settled(request.token):
                logger.info(f"Duplicate settlement lost insert race: token={request.token}")
                return False
        raise IntegrityViolationError(f"Settlement failed: {e.orig}") from e
    except OperationalError as e:
        raise _store_unavailable(e, "settle_purchase") from e


async def roll_dice(account_id, rng=None) -> int:
    """
    Spend one attempt and return the face value.

    Raises:
        InsufficientAttemptsError: No attempts left
    """
    account_id = validate_account_id(account_id)
    try:
        with get_db_session_ctx() as session:
            return await DiceService(session, rng=rng).roll(account_id)
    except OperationalError as e:
        raise _store_unavailable(e, "roll_dice") from e


# ═══════════════════════════════════════════════════════════════════════════
# ACCOUNTS / REFERRALS
# ═══════════════════════════════════════════════════════════════════════════

async def register_account(
        account_id,
        username: Optional[str] = None,
        start_code: Optional[str] = None
) -> Tuple[Dict, bool, Optional[BindResult]]:
    """
    Create the account on first sight and try to bind start_code.

    Returns:
        (snapshot, is_new, bind_result or None when no code was given)
    """
    account_id = validate_account_id(account_id)
    try:
        with get_db_session_ctx() as session:
            accounts = AccountService(session)
            _, is_new = await accounts.get_or_create(account_id, username)

            bind_result = None
            if start_code is not None:
                bind_result = await ReferralService(session).bind(account_id, start_code)

            snapshot = await accounts.snapshot(account_id)
        return snapshot, is_new, bind_result
    except OperationalError as e:
        raise _store_unavailable(e, "register_account") from e


async def bind_referrer(account_id, code: Optional[str]) -> BindResult:
    account_id = validate_account_id(account_id)
    try:
        with get_db_session_ctx() as session:
            return await ReferralService(session).bind(account_id, code)
    except OperationalError as e:
        raise _store_unavailable(e, "bind_referrer") from e


async def get_account_snapshot(account_id) -> Dict:
    account_id = validate_account_id(account_id)
    try:
        with get_db_session_ctx() as session:
            return await AccountService(session).snapshot(account_id)
    except OperationalError as e:
        raise _store_unavailable(e, "get_account_snapshot") from e


async def list_ledger(account_id, limit: int = 20, offset: int = 0) -> List[Dict]:
    """Journal entries as dicts, newest first."""
    account_id = validate_account_id(account_id)
    try:
        with get_db_session_ctx() as session:
            entries = await AccountService(session).list_ledger(account_id, limit, offset)
            return [entry.to_dict() for entry in entries]
    except OperationalError as e:
        raise _store_unavailable(e, "list_ledger") from e


async def withdraw_nfts(account_id, address: str) -> int:
    account_id = validate_account_id(account_id)
    address = validate_destination(address)
    try:
        with get_db_session_ctx() as session:
            return await WithdrawService(session).withdraw(account_id, address)
    except OperationalError as e:
        raise _store_unavailable(e, "withdraw_nfts") from e


# ═══════════════════════════════════════════════════════════════════════════
# ADMIN
# ═══════════════════════════════════════════════════════════════════════════

async def get_admin_stats() -> Dict:
    try:
        with get_db_session_ctx() as session:
            return await StatsService(session).get_admin_stats()
    except OperationalError as e:
        raise _store_unavailable(e, "get_admin_stats") from e


async def reset_all_data() -> int:
    """Destructive: wipe journal, grants and accounts."""
    try:
        with get_db_session_ctx() as session:
            return wipe_tables(session)
    except OperationalError as e:
        raise _store_unavailable(e, "reset_all_data") from e


__all__ = [
    'settle_purchase',
    'roll_dice',
    'register_account',
    'bind_referrer',
    'get_account_snapshot',
    'list_ledger',
    'withdraw_nfts',
    'get_admin_stats',
    'reset_all_data',
]
