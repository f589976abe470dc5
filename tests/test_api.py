# tests/test_api.py
"""
Tests for the mini-app HTTP API.

Each test drives a fresh ApiServer through aiohttp's test client.

Run:
    pytest tests/test_api.py -v
"""
from datetime import datetime, timedelta

import pytest
from aiohttp import test_utils

from api.server import ApiServer, RateLimiter

from tests.conftest import ACCOUNT_IDS, TON_ADDRESS

USER = ACCOUNT_IDS['buyer']
ADMIN_TOKEN = "s3cret-admin"
VERIFY_TOKEN = "s3cret-verifier"
VERIFIER = {'X-Payment-Token': VERIFY_TOKEN}


@pytest.fixture
def api(run):
    """
    Run scenario(client) against a fresh server.

    Usage:
        status, body = api(lambda c: call(c, 'get', '/api/health'))
    """

    def _api(scenario):
        async def _run():
            async with test_utils.TestClient(test_utils.TestServer(ApiServer().app)) as client:
                return await scenario(client)
        return run(_run())

    return _api


async def call(client, method, path, **kwargs):
    response = await getattr(client, method)(path, **kwargs)
    return response.status, await response.json()


# =============================================================================
# TEST CLASS: Public routes
# =============================================================================

class TestPublicRoutes:

    def test_health(self, api):
        """
        TEST: Health check answers ok.
        """
        assert api(lambda c: call(c, 'get', '/api/health')) == (200, {'status': 'ok'})

    def test_unknown_route(self, api):
        """
        TEST: Undefined route is a JSON 404.
        """
        status, body = api(lambda c: call(c, 'get', '/api/nope'))

        assert status == 404
        assert body == {'error': 'Not Found'}

    def test_rate_limit(self, api, config_override):
        """
        TEST: Requests above the window limit get 429; health is exempt.
        """
        config_override("API_RATE_LIMIT_REQUESTS", 2)

        async def scenario(client):
            statuses = []
            for _ in range(3):
                statuses.append((await client.get('/api/history?id=1')).status)
            statuses.append((await client.get('/api/health')).status)
            return statuses

        assert api(scenario) == [200, 200, 429, 200]


# =============================================================================
# TEST CLASS: Account flow
# =============================================================================

class TestAccountFlow:
    """auth -> payment -> roll -> history -> withdraw."""

    def test_auth_new_user_with_referral(self, api, make_account):
        """
        TEST: First auth creates the account and binds startParam.
        """
        owner = make_account(ACCOUNT_IDS['level1'])

        status, body = api(lambda c: call(c, 'post', '/api/auth', json={
            'id': USER, 'username': 'alice', 'startParam': owner['referralCode'],
        }))

        assert status == 200
        assert body['isNewUser'] is True
        assert body['referrerId'] == ACCOUNT_IDS['level1']
        assert body['referralDebug'] == "Success (code)"
        assert body['referralStats']['bonusBalance'] == {'STARS': '0', 'TON': '0', 'USDT': '0'}

    def test_auth_without_id(self, api):
        """
        TEST: Missing id is 400 with a machine-readable code.
        """
        status, body = api(lambda c: call(c, 'post', '/api/auth', json={}))

        assert status == 400
        assert body['code'] == 'validation_error'
        assert body['retryable'] is False

    def test_invalid_json(self, api):
        """
        TEST: Malformed body is 400.
        """
        status, _ = api(lambda c: call(c, 'post', '/api/auth', data=b'{not json',
                                       headers={'Content-Type': 'application/json'}))

        assert status == 400

    def test_full_flow(self, api, make_account, config_override):
        """
        TEST: Pay for dice, roll, read history, withdraw.
        """
        config_override("PAYMENT_VERIFY_TOKEN", VERIFY_TOKEN)
        make_account(USER)

        async def scenario(client):
            results = {}
            results['pay'] = await call(client, 'post', '/api/payment/verify', json={
                'id': USER, 'type': 'dice', 'amount': 1, 'currency': 'TON', 'token': 'tx-1',
            }, headers=VERIFIER)
            results['replay'] = await call(client, 'post', '/api/payment/verify', json={
                'id': USER, 'type': 'dice', 'amount': 1, 'currency': 'TON', 'token': 'tx-1',
            }, headers=VERIFIER)
            results['roll'] = await call(client, 'post', '/api/roll', json={'id': USER})
            results['roll_again'] = await call(client, 'post', '/api/roll', json={'id': USER})
            results['history'] = await call(client, 'get', f'/api/history?id={USER}&limit=10')
            results['withdraw'] = await call(client, 'post', '/api/withdraw', json={
                'id': USER, 'address': TON_ADDRESS,
            })
            results['withdraw_again'] = await call(client, 'post', '/api/withdraw', json={
                'id': USER, 'address': TON_ADDRESS,
            })
            return results

        results = api(scenario)

        assert results['pay'] == (200, {'ok': True, 'applied': True})
        assert results['replay'] == (200, {'ok': True, 'applied': False})

        status, body = results['roll']
        assert status == 200
        face = body['roll']
        assert 1 <= face <= 6

        status, body = results['roll_again']
        assert status == 409
        assert body['code'] == 'insufficient_attempts'

        status, history = results['history']
        assert status == 200
        assert [e['type'] for e in history] == ['win', 'purchase']

        assert results['withdraw'] == (200, {'ok': True, 'withdrawn': face})
        assert results['withdraw_again'][0] == 409

    def test_payment_validation(self, api, make_account, config_override):
        """
        TEST: Missing token or bad currency is 400.
        """
        config_override("PAYMENT_VERIFY_TOKEN", VERIFY_TOKEN)
        make_account(USER)

        status, _ = api(lambda c: call(c, 'post', '/api/payment/verify', json={
            'id': USER, 'type': 'nft', 'amount': 1, 'currency': 'TON',
        }, headers=VERIFIER))
        assert status == 400

        status, _ = api(lambda c: call(c, 'post', '/api/payment/verify', json={
            'id': USER, 'type': 'nft', 'amount': 1, 'currency': 'EUR', 'token': 't',
        }, headers=VERIFIER))
        assert status == 400

    def test_unknown_account_is_404(self, api):
        """
        TEST: Rolling for a missing account is 404.
        """
        status, body = api(lambda c: call(c, 'post', '/api/roll', json={'id': USER}))

        assert status == 404
        assert body['code'] == 'account_not_found'

    def test_store_unavailable_is_503(self, api, make_account, store_locked):
        """
        TEST: Lock timeout maps to 503 with retryable=true.
        """
        make_account(USER)

        with store_locked():
            status, body = api(lambda c: call(c, 'post', '/api/roll', json={'id': USER}))

        assert status == 503
        assert body['code'] == 'store_unavailable'
        assert body['retryable'] is True

    def test_history_bad_params(self, api, make_account):

        """
        TEST: Non-integer or out-of-range paging is 400.
        """
        make_account(USER)

        assert api(lambda c: call(c, 'get', f'/api/history?id={USER}&limit=abc'))[0] == 400
        assert api(lambda c: call(c, 'get', f'/api/history?id={USER}&limit=500'))[0] == 400
        assert api(lambda c: call(c, 'get', '/api/history'))[0] == 400


# =============================================================================
# TEST CLASS: Payment verifier
# =============================================================================

class TestPaymentVerifier:
    """X-Payment-Token protects /api/payment/verify."""

    PAYMENT = {'id': USER, 'type': 'nft', 'amount': 5, 'currency': 'USDT', 'token': 'forged'}

    @pytest.mark.parametrize("configured,headers", [
        (None, {}),
        (None, {'X-Payment-Token': ''}),
        (VERIFY_TOKEN, {}),
        (VERIFY_TOKEN, {'X-Payment-Token': 'guess'}),
    ])
    def test_forbidden(self, api, make_account, config_override, account_state, entries_of,
                       configured, headers):
        """
        TEST: Missing, wrong or unconfigured verifier token is 403 and credits nothing.
        """
        config_override("PAYMENT_VERIFY_TOKEN", configured)
        make_account(USER)

        status, body = api(lambda c: call(c, 'post', '/api/payment/verify',
                                          json=self.PAYMENT, headers=headers))

        assert (status, body) == (403, {'error': 'Forbidden'})
        assert account_state(USER).nftAvailable == 0
        assert entries_of(USER) == []

    def test_verifier_credits(self, api, make_account, config_override, account_state):
        """
        TEST: Correct verifier token settles the payment.
        """
        config_override("PAYMENT_VERIFY_TOKEN", VERIFY_TOKEN)
        make_account(USER)

        status, body = api(lambda c: call(c, 'post', '/api/payment/verify',
                                          json=self.PAYMENT, headers=VERIFIER))

        assert (status, body) == (200, {'ok': True, 'applied': True})
        assert account_state(USER).nftAvailable == 5


# =============================================================================
# TEST CLASS: Admin routes
# =============================================================================

class TestAdminRoutes:
    """X-Admin-Token protected endpoints."""

    def test_forbidden_without_configured_token(self, api, config_override):
        """
        TEST: No ADMIN_API_TOKEN configured -> every admin call is 403.
        """
        config_override("ADMIN_API_TOKEN", None)

        status, _ = api(lambda c: call(c, 'post', '/api/debug/reset', headers={'X-Admin-Token': ''}))

        assert status == 403

    def test_forbidden_with_wrong_token(self, api, config_override):
        """
        TEST: Wrong header -> 403.
        """
        config_override("ADMIN_API_TOKEN", ADMIN_TOKEN)

        status, _ = api(lambda c: call(c, 'get', '/api/admin/stats', headers={'X-Admin-Token': 'nope'}))

        assert status == 403

    def test_stats_and_reset(self, api, config_override, make_account, buy):
        """
        TEST: Correct token reads stats and wipes data.
        """
        config_override("ADMIN_API_TOKEN", ADMIN_TOKEN)
        make_account(USER)
        buy(USER, "nft", 1, "USDT")
        headers = {'X-Admin-Token': ADMIN_TOKEN}

        async def scenario(client):
            stats = await call(client, 'get', '/api/admin/stats', headers=headers)
            reset = await call(client, 'post', '/api/debug/reset', headers=headers)
            after = await call(client, 'get', '/api/admin/stats', headers=headers)
            return stats, reset, after

        stats, reset, after = api(scenario)

        assert stats[0] == 200
        assert stats[1]['totalUsers'] == 1
        assert stats[1]['revenue']['USDT'] == '36.6'
        assert reset == (200, {'ok': True, 'deleted': 2})
        assert after[1]['totalUsers'] == 0


# =============================================================================
# TEST CLASS: Rate limiter bookkeeping
# =============================================================================

class TestRateLimiter:
    """Per-client history stays bounded."""

    def test_window_limit(self):
        """
        TEST: Third request inside the window is refused.
        """
        limiter = RateLimiter(max_requests=2, time_window=60)

        assert [limiter.is_allowed("1.1.1.1") for _ in range(3)] == [True, True, False]
        assert limiter.is_allowed("2.2.2.2")

    def test_many_clients_are_pruned(self):
        """
        TEST: Thousands of one-off client ids do not accumulate.
        """
        limiter = RateLimiter(max_requests=1, time_window=0, max_clients=100)

        for i in range(10000):
            limiter.is_allowed(f"client-{i}")

        assert len(limiter.requests) < 100

    def test_prune_keeps_active_clients(self):
        """
        TEST: Only clients with no request inside the window are dropped.
        """
        limiter = RateLimiter(max_requests=5, time_window=60)
        limiter.is_allowed("active")
        limiter.requests["idle"] = [datetime.now() - timedelta(minutes=5)]

        assert limiter.prune() == 1
        assert list(limiter.requests) == ["active"]

    def test_cleanup_task_follows_app_lifecycle(self, run):
        """
        TEST: Cleanup loop starts with the app and is cancelled on shutdown.
        """
        server = ApiServer()

        async def scenario():
            async with test_utils.TestClient(test_utils.TestServer(server.app)):
                running = server.cleanup_task is not None and not server.cleanup_task.done()
            return running, server.cleanup_task.cancelled()

        assert run(scenario()) == (True, True)
