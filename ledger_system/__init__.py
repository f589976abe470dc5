# ledger_system/__init__.py
"""
Ledger System - balances, settlements, dice, referral rewards.
"""

# Operations
from ledger_system.operations import (
    settle_purchase,
    roll_dice,
    register_account,
    bind_referrer,
    get_account_snapshot,
    list_ledger,
    withdraw_nfts,
    get_admin_stats,
    reset_all_data,
)

# Errors
from ledger_system.errors import (
    LedgerError,
    ValidationError,
    AccountNotFoundError,
    InsufficientAttemptsError,
    NothingToWithdrawError,
    StoreUnavailableError,
    IntegrityViolationError,
)

# Configuration
from ledger_system.config.currencies import Currency, ProductKind

# Utilities
from ledger_system.utils.time_machine import timeMachine

__all__ = [
    # Operations
    'settle_purchase',
    'roll_dice',
    'register_account',
    'bind_referrer',
    'get_account_snapshot',
    'list_ledger',
    'withdraw_nfts',
    'get_admin_stats',
    'reset_all_data',

    # Errors
    'LedgerError',
    'ValidationError',
    'AccountNotFoundError',
    'InsufficientAttemptsError',
    'NothingToWithdrawError',
    'StoreUnavailableError',
    'IntegrityViolationError',

    # Config
    'Currency',
    'ProductKind',

    # Utils
    'timeMachine',
]
