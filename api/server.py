# nftdice/api/server.py
"""
HTTP API for the Telegram mini-app.
Thin JSON wrapper around ledger_system.operations.
"""
import asyncio
import hmac
import json
import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from functools import partial

from aiohttp import web

from config import Config
from ledger_system import operations
from ledger_system.errors import (
    AccountNotFoundError,
    InsufficientAttemptsError,
    IntegrityViolationError,
    LedgerError,
    NothingToWithdrawError,
    StoreUnavailableError,
    ValidationError,
)

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ValidationError: 400,
    AccountNotFoundError: 404,
    InsufficientAttemptsError: 409,
    NothingToWithdrawError: 409,
    IntegrityViolationError: 500,
    StoreUnavailableError: 503,
}


def _json_default(value):
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


json_dumps = partial(json.dumps, default=_json_default)


def json_response(data, status: int = 200) -> web.Response:
    return web.json_response(data, status=status, dumps=json_dumps)


def status_for(error: LedgerError) -> int:
    for error_type, status in ERROR_STATUS.items():
        if isinstance(error, error_type):
            return status
    return 500


class RateLimiter:
    """Simple per-client sliding window"""

    def __init__(self, max_requests: int = 60, time_window: int = 60, max_clients: int = 10000):
        self.max_requests = max_requests
        self.time_window = time_window  # seconds
        self.max_clients = max_clients
        self.requests = {}

    def is_allowed(self, client_id: str) -> bool:
        """Check if request is allowed for given client"""
        now = datetime.now()
        cutoff_time = now - timedelta(seconds=self.time_window)

        recent = [
            req_time for req_time in self.requests.get(client_id, [])
            if req_time > cutoff_time
        ]

        if len(recent) >= self.max_requests:
            self.requests[client_id] = recent
            return False

        recent.append(now)
        self.requests[client_id] = recent

        if len(self.requests) >= self.max_clients:
            self.prune(now)
        return True

    def prune(self, now: datetime = None) -> int:
        """Drop clients with no request inside the window. Returns how many."""
        cutoff_time = (now or datetime.now()) - timedelta(seconds=self.time_window)

        stale = [
            client_id for client_id, timestamps in self.requests.items()
            if all(ts <= cutoff_time for ts in timestamps)
        ]
        for client_id in stale:
            del self.requests[client_id]

        if stale:
            logger.debug(f"Cleaned up {len(stale)} old rate limit entries")
        return len(stale)

    async def cleanup_loop(self, interval: float = 300):
        """Periodic cleanup of old entries"""
        while True:
            await asyncio.sleep(interval)
            self.prune()


class ApiServer:
    """aiohttp application serving the mini-app endpoints"""

    PUBLIC_PATHS = {'/api/health'}

    def __init__(self):
        self.app = web.Application()

        self.rate_limiter = RateLimiter(
            max_requests=int(Config.get(Config.API_RATE_LIMIT_REQUESTS, 60)),
            time_window=int(Config.get(Config.API_RATE_LIMIT_WINDOW, 60))
        )

        self.setup_routes()
        self.setup_middleware()

        self.cleanup_task = None
        self.app.on_startup.append(self.start_background_tasks)
        self.app.on_cleanup.append(self.stop_background_tasks)

    async def start_background_tasks(self, app: web.Application):
        self.cleanup_task = asyncio.create_task(self.rate_limiter.cleanup_loop())

    async def stop_background_tasks(self, app: web.Application):
        if self.cleanup_task:
            self.cleanup_task.cancel()
            try:
                await self.cleanup_task
            except asyncio.CancelledError:
                pass


    def setup_routes(self):
        self.app.router.add_get('/api/health', self.handle_health)
        self.app.router.add_post('/api/auth', self.handle_auth)
        self.app.router.add_post('/api/roll', self.handle_roll)
        self.app.router.add_post('/api/payment/verify', self.handle_payment_verify)
        self.app.router.add_get('/api/history', self.handle_history)
        self.app.router.add_post('/api/withdraw', self.handle_withdraw)
        self.app.router.add_get('/api/admin/stats', self.handle_admin_stats)
        self.app.router.add_post('/api/debug/reset', self.handle_reset)

        # Catch-all for undefined routes
        self.app.router.add_route('*', '/{path:.*}', self.handle_not_found)

    def setup_middleware(self):
        """Rate limiting and LedgerError → JSON status mapping"""

        @web.middleware
        async def error_middleware(request, handler):
            client_ip = self.get_client_ip(request)
            logger.debug(f"Request from {client_ip}: {request.method} {request.path}")

            if request.path not in self.PUBLIC_PATHS and not self.rate_limiter.is_allowed(client_ip):
                logger.warning(f"Rate limit exceeded for IP: {client_ip}")
                return json_response({'error': 'Too Many Requests'}, status=429)

            try:
                return await handler(request)
            except LedgerError as e:
                status = status_for(e)
                if status >= 500:
                    logger.error(f"{request.path} failed: {e.message}")
                return json_response(
                    {'error': e.message, 'code': e.code, 'retryable': e.retryable},
                    status=status
                )
            except web.HTTPException:
                raise
            except Exception as e:
                logger.error(f"Error processing {request.path}: {e}", exc_info=True)
                return json_response({'error': 'Internal Server Error'}, status=500)

        self.app.middlewares.append(error_middleware)

    # ═══════════════════════════════════════════════════════════════════════
    # HELPERS
    # ═══════════════════════════════════════════════════════════════════════

    def get_client_ip(self, request: web.Request) -> str:
        """Get real client IP from request"""
        if 'X-Forwarded-For' in request.headers:
            return request.headers['X-Forwarded-For'].split(',')[0].strip()
        if 'X-Real-IP' in request.headers:
            return request.headers['X-Real-IP']
        return request.remote or '127.0.0.1'

    async def read_json(self, request: web.Request) -> dict:
        try:
            data = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise ValidationError("Invalid JSON")
        if not isinstance(data, dict):
            raise ValidationError("JSON object expected")
        return data

    @staticmethod
    def int_param(value, name: str, default=None) -> int:
        if value is None or value == "":
            if default is None:
                raise ValidationError(f"{name} is required")
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{name} must be an integer")

    @staticmethod
    def token_matches(config_key: str, provided: str) -> bool:
        expected = Config.get(config_key)
        if not expected:
            return False
        return hmac.compare_digest(expected.encode(), provided.encode())

    def is_admin_request(self, request: web.Request) -> bool:
        return self.token_matches(Config.ADMIN_API_TOKEN, request.headers.get('X-Admin-Token', ''))

    def is_payment_verifier(self, request: web.Request) -> bool:
        return self.token_matches(Config.PAYMENT_VERIFY_TOKEN, request.headers.get('X-Payment-Token', ''))

    # ═══════════════════════════════════════════════════════════════════════
    # HANDLERS
    # ═══════════════════════════════════════════════════════════════════════

    async def handle_not_found(self, request: web.Request) -> web.Response:
        """Handle undefined routes"""
        return json_response({'error': 'Not Found'}, status=404)

    async def handle_health(self, request: web.Request) -> web.Response:
        return json_response({'status': 'ok'})

    async def handle_auth(self, request: web.Request) -> web.Response:
        """First contact from the mini-app: register, bind start param, return snapshot."""
        data = await self.read_json(request)
        if not data.get('id'):
            raise ValidationError("No ID provided")

        snapshot, is_new, bind_result = await operations.register_account(
            data['id'],
            username=data.get('username'),
            start_code=data.get('startParam'),
        )

        referral_debug = bind_result.reason if bind_result else "No code provided"

        return json_response({**snapshot, 'isNewUser': is_new, 'referralDebug': referral_debug})

    async def handle_roll(self, request: web.Request) -> web.Response:
        data = await self.read_json(request)
        face_value = await operations.roll_dice(data.get('id'))
        return json_response({'roll': face_value})

    async def handle_payment_verify(self, request: web.Request) -> web.Response:
        """
        Settle a payment confirmed by the trusted verifier (X-Payment-Token).

        Body: {id, type, amount|quantity, currency, token, useRewardBalance?}
        Replays of a token answer 200 with applied=false.
        """
        if not self.is_payment_verifier(request):
            logger.warning(f"Rejected payment verify from {self.get_client_ip(request)}")
            return json_response({'error': 'Forbidden'}, status=403)

        data = await self.read_json(request)
        quantity = data.get('quantity', data.get('amount'))

        applied = await operations.settle_purchase(
            data.get('id'),
            data.get('type'),
            quantity,
            data.get('currency'),
            data.get('token'),
            use_reward_balance=bool(data.get('useRewardBalance', False)),
        )
        return json_response({'ok': True, 'applied': applied})

    async def handle_history(self, request: web.Request) -> web.Response:
        account_id = self.int_param(request.query.get('id'), 'id')
        limit = self.int_param(
            request.query.get('limit'), 'limit', Config.get(Config.HISTORY_PAGE_LIMIT, 20)
        )
        offset = self.int_param(request.query.get('offset'), 'offset', 0)

        entries = await operations.list_ledger(account_id, limit, offset)
        return json_response(entries)

    async def handle_withdraw(self, request: web.Request) -> web.Response:
        data = await self.read_json(request)
        withdrawn = await operations.withdraw_nfts(data.get('id'), data.get('address'))
        return json_response({'ok': True, 'withdrawn': withdrawn})

    async def handle_admin_stats(self, request: web.Request) -> web.Response:
        if not self.is_admin_request(request):
            return json_response({'error': 'Forbidden'}, status=403)
        return json_response(await operations.get_admin_stats())

    async def handle_reset(self, request: web.Request) -> web.Response:
        if not self.is_admin_request(request):
            logger.warning(f"Rejected reset from {self.get_client_ip(request)}")
            return json_response({'error': 'Forbidden'}, status=403)

        deleted = await operations.reset_all_data()
        return json_response({'ok': True, 'deleted': deleted})

    async def start(self, host: str = '0.0.0.0', port: int = 8080):
        if host == '0.0.0.0':
            logger.warning("⚠️ API server listening on all interfaces!")

        runner = web.AppRunner(self.app)
        await runner.setup()
        site = web.TCPSite(runner, host, port)
        await site.start()

        logger.info(f"API server started on {host}:{port}")
        return runner


async def start_api_server():
    """Start the mini-app API server."""
    try:
        server = ApiServer()

        host = Config.get(Config.API_HOST, '0.0.0.0')
        port = Config.get(Config.API_PORT, 8080)

        return await server.start(host=host, port=int(port) if port else 8080)
    except Exception as e:
        logger.critical(f"Unexpected error starting API server: {e}", exc_info=True)
        raise
