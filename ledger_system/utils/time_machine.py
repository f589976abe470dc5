# nftdice/ledger_system/utils/time_machine.py
"""
Time source for the ledger.

All timestamps are naive UTC. In test mode the clock is frozen at a virtual
time, which makes vesting unlock dates deterministic.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

logger = logging.getLogger(__name__)


class TimeMachine:
    """Real or virtual "now"."""

    def __init__(self):
        self._virtualTime: Optional[datetime] = None
        self._isTestMode = False

    @property
    def now(self) -> datetime:
        if self._isTestMode and self._virtualTime is not None:
            return self._virtualTime
        return datetime.now(timezone.utc).replace(tzinfo=None)

    @property
    def isTestMode(self) -> bool:
        return self._isTestMode

    def setTime(self, moment: datetime) -> None:
        """Freeze the clock at moment (converted to naive UTC)."""
        if moment.tzinfo is not None:
            moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
        self._virtualTime = moment
        self._isTestMode = True
        logger.info(f"Virtual time set: {moment.isoformat()}")

    def advance(self, **delta) -> datetime:
        """Move the frozen clock forward, e.g. advance(days=21)."""
        self.setTime(self.now + timedelta(**delta))
        return self._virtualTime

    def resetToRealTime(self) -> None:
        self._virtualTime = None
        self._isTestMode = False
        logger.info("Time machine reset to real time")


timeMachine = TimeMachine()
