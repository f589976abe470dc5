# nftdice/models/base.py
"""
Base model for all database tables.
"""
from decimal import Decimal, ROUND_DOWN

from sqlalchemy import BigInteger
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

Base = declarative_base()


class MinorUnits(TypeDecorator):
    """
    Decimal amount stored as an integer count of minor units.

    MinorUnits(9) keeps TON as nano-TON, MinorUnits(2) keeps USDT as cents.
    Literals compared with or added to the column go through the same
    conversion, so "col = col + :delta" and "col >= :value" are exact
    integer arithmetic on every backend.
    """
    impl = BigInteger
    cache_ok = True

    def __init__(self, places: int):
        super().__init__()
        self.places = places
        self.quantum = Decimal(1).scaleb(-places)

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        amount = Decimal(str(value)) if not isinstance(value, Decimal) else value
        return int(amount.quantize(self.quantum, rounding=ROUND_DOWN).scaleb(self.places))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(int(value)).scaleb(-self.places)

    def coerce_compared_value(self, op, value):
        return self


def _get_current_time():
    """Lazy import to avoid circular dependency."""
    from ledger_system.utils.time_machine import timeMachine
    return timeMachine.now
