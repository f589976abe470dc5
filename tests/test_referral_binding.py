# tests/test_referral_binding.py
"""
Tests for referral binding and code resolution.

Run:
    pytest tests/test_referral_binding.py -v
"""
import asyncio
import threading

import pytest

from ledger_system import operations
from ledger_system.errors import AccountNotFoundError
from ledger_system.services.referral_service import BindMethod

from tests.conftest import ACCOUNT_IDS

OWNER = ACCOUNT_IDS['level1']
NEWCOMER = ACCOUNT_IDS['buyer']
OTHER = ACCOUNT_IDS['level2']


@pytest.fixture
def bind(run):
    def _bind(account_id, code):
        return run(operations.bind_referrer(account_id, code))
    return _bind


# =============================================================================
# TEST CLASS: Successful binding
# =============================================================================

class TestBindSuccess:
    """Codes that resolve to another account."""

    def test_bind_by_code(self, make_account, bind, account_state):
        """
        TEST: Newcomer bound to the owner of the referral code.
        """
        owner = make_account(OWNER)
        make_account(NEWCOMER)

        result = bind(NEWCOMER, owner['referralCode'])

        assert result.is_bound
        assert result.bound_to == OWNER
        assert result.method == BindMethod.CODE
        assert result.reason == "Success (code)"
        assert account_state(NEWCOMER).referrerID == OWNER

    def test_code_case_insensitive(self, make_account, bind):
        """
        TEST: Upper-cased code still matches.
        """
        owner = make_account(OWNER)
        make_account(NEWCOMER)

        result = bind(NEWCOMER, owner['referralCode'].upper())

        assert result.bound_to == OWNER

    @pytest.mark.parametrize("template", ["ref_{id}", "{id}", "  ref_{id}  "])
    def test_legacy_id(self, make_account, bind, template):
        """
        TEST: "ref_<id>" and bare "<id>" bind to that account.
        """
        make_account(OWNER)
        make_account(NEWCOMER)

        result = bind(NEWCOMER, template.format(id=OWNER))

        assert result.bound_to == OWNER
        assert result.method == BindMethod.LEGACY_ID

    def test_register_with_start_code(self, make_account, run):
        """
        TEST: register_account binds in the same unit of work.
        """
        owner = make_account(OWNER)

        snapshot, is_new, result = run(operations.register_account(NEWCOMER, "newbie", owner['referralCode']))

        assert is_new is True
        assert result.is_bound
        assert snapshot['referrerId'] == OWNER


# =============================================================================
# TEST CLASS: Rejected binding
# =============================================================================

class TestBindRejected:
    """Nothing is bound; the reason says why."""

    def test_self_referral_by_code(self, make_account, bind, account_state):
        """
        TEST: Own code is rejected.
        """
        me = make_account(NEWCOMER)

        result = bind(NEWCOMER, me['referralCode'])

        assert not result.is_bound
        assert result.reason == "Self-referral"
        assert account_state(NEWCOMER).referrerID is None

    def test_self_referral_by_legacy_id(self, make_account, bind):
        """
        TEST: Own legacy id is rejected.
        """
        make_account(NEWCOMER)

        assert bind(NEWCOMER, f"ref_{NEWCOMER}").reason == "Self-referral"

    def test_bind_only_once(self, make_account, bind, account_state):
        """
        TEST: Second bind with a different code keeps the first referrer.
        """
        first = make_account(OWNER)
        second = make_account(OTHER)
        make_account(NEWCOMER)

        assert bind(NEWCOMER, first['referralCode']).is_bound
        result = bind(NEWCOMER, second['referralCode'])

        assert not result.is_bound
        assert result.reason == "Referrer already set"
        assert account_state(NEWCOMER).referrerID == OWNER

    @pytest.mark.parametrize("code", [None, "", "   ", "none", "undefined", "NULL"])
    def test_placeholder_codes(self, make_account, bind, code):
        """
        TEST: Empty and placeholder values are "No code provided".
        """
        make_account(NEWCOMER)

        assert bind(NEWCOMER, code).reason == "No code provided"

    def test_unknown_code(self, make_account, bind):
        """
        TEST: Unknown code reports the code.
        """
        make_account(NEWCOMER)

        assert bind(NEWCOMER, "ref_zzzz").reason == "Code 'ref_zzzz' not found"

    def test_unknown_legacy_id(self, make_account, bind):
        """
        TEST: Legacy id of a missing account is not found.
        """
        make_account(NEWCOMER)

        assert not bind(NEWCOMER, "ref_999999").is_bound

    def test_cycle_rejected(self, make_account, bind, account_state):
        """
        TEST: A -> B exists; binding B -> A would close a loop.
        """
        a = make_account(OWNER)
        b = make_account(OTHER)
        assert bind(OWNER, b['referralCode']).is_bound

        result = bind(OTHER, a['referralCode'])

        assert result.reason == "Referral cycle"
        assert account_state(OTHER).referrerID is None

    def test_unknown_account(self, bind):
        """
        TEST: Binding for a missing account raises.
        """
        with pytest.raises(AccountNotFoundError):
            bind(NEWCOMER, "ref_abc")

    def test_to_dict(self, make_account, bind):
        """
        TEST: BindResult serializes for the API.
        """
        make_account(NEWCOMER)

        assert bind(NEWCOMER, None).to_dict() == {
            "boundTo": None,
            "reason": "No code provided",
            "method": "unmatched",
        }


# =============================================================================
# TEST CLASS: Concurrent binding
# =============================================================================

class TestConcurrentBind:
    """Racing binds set referrerID at most once."""

    def test_two_codes_race(self, make_account, account_state):
        """
        TEST: Two threads bind the same newcomer to different owners; one wins.
        """
        first = make_account(OWNER)
        second = make_account(OTHER)
        make_account(NEWCOMER)

        barrier = threading.Barrier(2)
        results = []
        lock = threading.Lock()

        def worker(code):
            barrier.wait()
            result = asyncio.run(operations.bind_referrer(NEWCOMER, code))
            with lock:
                results.append(result)

        threads = [
            threading.Thread(target=worker, args=(first['referralCode'],)),
            threading.Thread(target=worker, args=(second['referralCode'],)),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        bound = [r for r in results if r.is_bound]
        assert len(results) == 2
        assert len(bound) == 1
        assert [r.reason for r in results if not r.is_bound] == ["Referrer already set"]
        assert account_state(NEWCOMER).referrerID == bound[0].bound_to
