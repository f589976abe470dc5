# models/listeners/balance_listeners.py
"""
Balance Event Listeners - verify account invariants before every commit.

Checked for each account touched in the unit of work:
    nftTotal == nftAvailable + nftLocked
    nftLocked == SUM(VestingGrant.amount)
    diceStarsAttempts <= diceAvailable
    no negative counters or reward balances

A violation raises IntegrityViolationError from before_commit, so the
whole unit of work is rolled back by the session context manager.

NOTE: All balance changes MUST go through AccountService.apply_delta.
      Direct account.nftAvailable = X is logged as a warning.
"""
import logging

from sqlalchemy import event, func
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


def _account_violations(row, granted) -> list:
    problems = []
    if row.nftTotal != row.nftAvailable + row.nftLocked:
        problems.append(
            f"nftTotal={row.nftTotal} != available {row.nftAvailable} + locked {row.nftLocked}"
        )
    if row.nftLocked != granted:
        problems.append(f"nftLocked={row.nftLocked} != vesting grants {granted}")
    if row.diceStarsAttempts > row.diceAvailable:
        problems.append(
            f"diceStarsAttempts={row.diceStarsAttempts} > diceAvailable={row.diceAvailable}"
        )
    for field in ("nftAvailable", "nftLocked", "diceAvailable", "diceStarsAttempts",
                  "refRewardsStars", "refRewardsTon", "refRewardsUsdt"):
        if getattr(row, field) < 0:
            problems.append(f"{field} is negative ({getattr(row, field)})")
    return problems


def verify_touched_accounts(session: Session):
    """before_commit hook: re-read touched accounts and check invariants."""
    from models.account import Account, TOUCHED_ACCOUNTS_KEY
    from models.vesting_grant import VestingGrant
    from ledger_system.errors import IntegrityViolationError

    touched = session.info.pop(TOUCHED_ACCOUNTS_KEY, None)
    if not touched:
        return

    granted = dict(
        session.query(VestingGrant.accountID, func.sum(VestingGrant.amount))
        .filter(VestingGrant.accountID.in_(touched))
        .group_by(VestingGrant.accountID)
        .all()
    )

    rows = session.query(
        Account.accountID,
        Account.nftTotal,
        Account.nftAvailable,
        Account.nftLocked,
        Account.diceAvailable,
        Account.diceStarsAttempts,
        Account.refRewardsStars,
        Account.refRewardsTon,
        Account.refRewardsUsdt,
    ).filter(Account.accountID.in_(touched)).all()

    for row in rows:
        problems = _account_violations(row, int(granted.get(row.accountID) or 0))
        if problems:
            message = f"Account {row.accountID} invariant violated: {'; '.join(problems)}"
            logger.critical(message)
            raise IntegrityViolationError(message)


def clear_touched_accounts(session: Session, previous_transaction=None):
    from models.account import TOUCHED_ACCOUNTS_KEY
    session.info.pop(TOUCHED_ACCOUNTS_KEY, None)


def register_balance_listeners():
    """
    Register commit-time invariant checks.

    Called once during application startup from models/listeners/__init__.py
    """
    event.listen(Session, 'before_commit', verify_touched_accounts)
    event.listen(Session, 'after_rollback', clear_touched_accounts)


def register_balance_protection():
    """Log warnings when Account balance columns are assigned directly."""
    from models.account import Account

    def warn_direct_set(target, value, oldvalue, initiator):
        if isinstance(oldvalue, int) and value != oldvalue:
            import traceback
            stack = ''.join(traceback.format_stack()[-5:-1])

            logger.warning(
                f"DIRECT {initiator.key} modification detected! "
                f"account={target.accountID}, {oldvalue} → {value}\n"
                f"Stack:\n{stack}"
            )

    for attribute in (Account.nftTotal, Account.nftAvailable, Account.nftLocked,
                      Account.diceAvailable, Account.diceStarsAttempts):
        event.listen(attribute, 'set', warn_direct_set)
