"""
Database models for nftdice.
Import all models here so Base.metadata knows every table.
"""

# Base
from models.base import Base

# Ledger models
from models.account import Account
from models.vesting_grant import VestingGrant
from models.ledger_entry import LedgerEntry

# Event listeners
from models.listeners import register_all_listeners

__all__ = [
    'Base',
    'Account',
    'VestingGrant',
    'LedgerEntry',
    'register_all_listeners',
]
