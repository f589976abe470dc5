# ledger_system/utils/chain_walker.py
"""
Safe referral chain walking utilities.
Prevents infinite loops and truncates at missing links.
"""
from typing import Callable, Dict, List, Optional
from sqlalchemy.orm import Session
import logging

from models.account import Account

logger = logging.getLogger(__name__)


class ChainWalker:
    """
    Safe utilities for walking referral upline/downline chains.

    Works on ids rather than loaded objects, so every step reads the
    referrer column as committed in the current transaction.
    """

    def __init__(self, session: Session):
        self.session = session

    def _referrer_of(self, account_id: int) -> Optional[int]:
        return self.session.query(Account.referrerID).filter(
            Account.accountID == account_id
        ).scalar()

    def _exists(self, account_id: int) -> bool:
        return self.session.query(Account.accountID).filter(
            Account.accountID == account_id
        ).first() is not None

    def walk_upline(
            self,
            start_id: int,
            callback: Callable[[int, int], bool],
            max_depth: int = 3
    ) -> int:
        """
        Walk up the referrer chain, calling callback for each ancestor.

        Args:
            start_id: Account whose ancestors are visited (not itself)
            callback: Function(account_id, level) -> continue_walking (bool)
            max_depth: Number of levels to visit at most

        Returns:
            Number of ancestors processed

        Example:
            def pay(account_id, level):
                print(f"Level {level}: {account_id}")
                return True

            walker.walk_upline(buyer_id, pay)
        """
        current_id = start_id
        level = 1
        processed = 0
        visited = {start_id}

        while level <= max_depth:
            upline_id = self._referrer_of(current_id)
            if upline_id is None:
                break

            # Check for cycles
            if upline_id in visited:
                logger.error(f"Cycle detected at account {upline_id} (walk from {start_id})")
                break

            if not self._exists(upline_id):
                logger.warning(
                    f"Upline not found: accountID={upline_id} for account {current_id}"
                )
                break

            visited.add(upline_id)

            should_continue = callback(upline_id, level)
            processed += 1

            if not should_continue:
                break

            current_id = upline_id
            level += 1

        return processed

    def get_upline_chain(self, start_id: int, max_depth: int = 3) -> List[int]:
        """Ancestor ids, nearest first."""
        chain: List[int] = []

        def collect(account_id: int, level: int) -> bool:
            chain.append(account_id)
            return True

        self.walk_upline(start_id, collect, max_depth)
        return chain

    def would_create_cycle(self, account_id: int, referrer_id: int, max_depth: int = 50) -> bool:
        """True if account_id already sits in referrer_id's upline (or is it)."""
        if account_id == referrer_id:
            return True
        return account_id in self.get_upline_chain(referrer_id, max_depth)

    def count_downline_by_level(self, root_id: int, max_depth: int = 3) -> Dict[int, int]:
        """
        Count referrals per level below root_id.

        Returns:
            {1: direct referrals, 2: their referrals, ...}
        """
        counts: Dict[int, int] = {}
        visited = {root_id}
        frontier = [root_id]

        for level in range(1, max_depth + 1):
            if not frontier:
                counts[level] = 0
                continue

            rows = self.session.query(Account.accountID).filter(
                Account.referrerID.in_(frontier)
            ).all()
            next_frontier = [r[0] for r in rows if r[0] not in visited]
            visited.update(next_frontier)

            counts[level] = len(next_frontier)
            frontier = next_frontier

        return counts

