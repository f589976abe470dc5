"""
Ledger error taxonomy.

A replayed settlement is not an error: settle() returns False for it.
"""


class LedgerError(Exception):
    """Base class for ledger failures."""
    code = "ledger_error"
    retryable = False

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class ValidationError(LedgerError):
    """Bad input, rejected before touching the store."""
    code = "validation_error"


class AccountNotFoundError(LedgerError):
    code = "account_not_found"


class InsufficientAttemptsError(LedgerError):
    """Roll requested with no dice attempts left."""
    code = "insufficient_attempts"


class NothingToWithdrawError(LedgerError):
    code = "nothing_to_withdraw"


class StoreUnavailableError(LedgerError):
    """Lock timeout or lost connection; the unit of work was rolled back."""
    code = "store_unavailable"
    retryable = True


class IntegrityViolationError(LedgerError):
    """Store constraint or balance invariant broken after bounded retries."""
    code = "integrity_violation"
