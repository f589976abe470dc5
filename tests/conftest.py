# tests/conftest.py
"""
Pytest configuration and shared fixtures for ledger tests.

Every test gets its own SQLite file database (same engine setup as
production: BEGIN IMMEDIATE, foreign keys on).

Run:
    pytest tests/ -v
    pytest tests/test_dice.py -v
"""
import asyncio
from contextlib import contextmanager
from datetime import datetime
from types import SimpleNamespace

import pytest

from config import Config
from core.db import dispose_engine, get_db_session_ctx, get_engine, setup_database
from models import Account, LedgerEntry, VestingGrant
from models.listeners import register_all_listeners
from ledger_system import operations
from ledger_system.utils.time_machine import timeMachine

# =============================================================================
# INITIALIZE CONFIG
# =============================================================================

Config.initialize_from_env()

# =============================================================================
# CONSTANTS
# =============================================================================

ACCOUNT_IDS = {
    'buyer': 1001,
    'level1': 2002,
    'level2': 3003,
    'level3': 4004,
    'level4': 5005,
}

FROZEN_NOW = datetime(2025, 3, 1, 12, 0, 0)

TON_ADDRESS = "0:" + "a1" * 32


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture(scope="session", autouse=True)
def setup_listeners():
    """Register listeners once at test session start."""
    register_all_listeners()


@pytest.fixture(autouse=True)
def database(tmp_path):
    """Fresh database file for each test."""
    saved = Config.get_all()
    Config.set(Config.DATABASE_URL, f"sqlite:///{tmp_path / 'ledger.db'}", source="tests")
    dispose_engine()
    setup_database()
    yield
    dispose_engine()
    Config._config.clear()
    Config._config.update(saved)


@pytest.fixture
def config_override():
    """Set config values for one test (restored by the database fixture)."""

    def _set(key, value):
        Config.set(key, value, source="tests")

    return _set


@pytest.fixture
def frozen_clock():
    """Freeze ledger time at FROZEN_NOW."""
    timeMachine.setTime(FROZEN_NOW)
    yield FROZEN_NOW
    timeMachine.resetToRealTime()


@pytest.fixture
def store_locked(config_override):
    """
    Context manager holding the database write lock in another connection.

    LOCK_TIMEOUT_MS drops to 100 so blocked units of work fail fast.

    Usage:
        with store_locked():
            run(operations.roll_dice(account_id))  # StoreUnavailableError
    """
    config_override(Config.LOCK_TIMEOUT_MS, 100)
    dispose_engine()

    @contextmanager
    def _locked():
        connection = get_engine().connect()
        transaction = connection.begin()
        try:
            yield connection
        finally:
            transaction.rollback()
            connection.close()

    return _locked



# =============================================================================
# ASYNC HELPERS
# =============================================================================

@pytest.fixture
def run():
    """Run a coroutine to completion."""
    return asyncio.run


class FixedRng:
    """Dice rng that always lands on the same face."""

    def __init__(self, value: int):
        self.value = value

    def randint(self, a, b):
        assert a <= self.value <= b
        return self.value


@pytest.fixture
def fixed_rng():
    return FixedRng


# =============================================================================
# ACCOUNT FIXTURES
# =============================================================================

@pytest.fixture
def make_account(run):
    """Register an account, optionally with a start code. Returns its snapshot."""

    def _make(account_id, username=None, start_code=None):
        snapshot, _, _ = run(operations.register_account(account_id, username, start_code))
        return snapshot

    return _make


@pytest.fixture
def referral_chain(make_account):
    """
    buyer -> level1 -> level2 -> level3 (arrow = "was referred by").

    Returns dict of account ids.
    """
    level3 = make_account(ACCOUNT_IDS['level3'], "level3")
    level2 = make_account(ACCOUNT_IDS['level2'], "level2", level3['referralCode'])
    level1 = make_account(ACCOUNT_IDS['level1'], "level1", level2['referralCode'])
    make_account(ACCOUNT_IDS['buyer'], "buyer", level1['referralCode'])
    return dict(ACCOUNT_IDS)


@pytest.fixture
def buy(run):
    """Settle a purchase with an auto-generated token."""
    counter = {'n': 0}

    def _buy(account_id, kind, quantity, currency, token=None, use_reward_balance=False):
        counter['n'] += 1
        token = token or f"test-token-{account_id}-{counter['n']}"
        return run(operations.settle_purchase(
            account_id, kind, quantity, currency, token, use_reward_balance
        ))

    return _buy


# =============================================================================
# STATE READERS (short-lived sessions, never hold the write lock)
# =============================================================================

@pytest.fixture
def account_state():
    """Column values of an account as a dict (None if missing)."""

    def _state(account_id):
        with get_db_session_ctx() as session:
            account = session.query(Account).filter_by(accountID=account_id).first()
            if account is None:
                return None
            return SimpleNamespace(**{
                column.name: getattr(account, column.name)
                for column in Account.__table__.columns
            })

    return _state


@pytest.fixture
def grants_of():
    """[(amount, unlockAt, source), ...] oldest first."""

    def _grants(account_id):
        with get_db_session_ctx() as session:
            rows = session.query(VestingGrant).filter_by(accountID=account_id).order_by(VestingGrant.grantID).all()
            return [(g.amount, g.unlockAt, g.source) for g in rows]

    return _grants


@pytest.fixture
def entries_of():
    """Journal entries of an account as SimpleNamespaces, oldest first."""

    def _entries(account_id, kind=None):
        with get_db_session_ctx() as session:
            query = session.query(LedgerEntry).filter_by(accountID=account_id)
            if kind:
                query = query.filter_by(kind=kind)
            return [
                SimpleNamespace(**{
                    column.name: getattr(entry, column.name)
                    for column in LedgerEntry.__table__.columns
                })
                for entry in query.order_by(LedgerEntry.entryID).all()
            ]

    return _entries
