"""aiohttp pass-through server for the dashboard UI.

Each ``/api/coinone/*`` POST takes ``accessToken``/``secretKey`` from the
JSON body or, when absent, from the encrypted cookie session filled by
``POST /api/credentials``. The handler builds a per-request signing
client around those credentials, calls one account operation and
returns ``{"success": true, "data": ...}`` or
``{"success": false, "error": {...}}``.

Requests already in flight keep retrying if the browser goes away;
there is no cancellation beyond the per-attempt timeout.
"""
import os
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from aiohttp import web
from aiohttp_session import get_session
from aiohttp_session import setup as session_setup
from aiohttp_session.cookie_storage import EncryptedCookieStorage
from cryptography import fernet

from .async_account import AsyncAccountClient
from .async_signing_client import AsyncSigningClient
from .async_transport import AsyncRetryingTransport
from .config import DeskConfig
from .credentials import CredentialStore, Credentials, InMemoryCredentialStore, validate_credentials
from .errors import (
    CurrencyNotFound,
    InvalidCredentialFormat,
    NotConfigured,
    RequestValidationError,
    TradeDeskError,
)
from .logging_setup import logger, setup_logging
from .operations import clamp_page_size, history_window
from .signing import NonceGenerator
from .signing_client import BaseSigningClient

CREDENTIAL_FIELDS = ("accessToken", "secretKey")

_ERROR_STATUS = (
    (RequestValidationError, 400),
    (InvalidCredentialFormat, 400),
    (NotConfigured, 401),
    (CurrencyNotFound, 404),
)


def error_status(error: TradeDeskError) -> int:
    for error_type, status in _ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 502


def _failure(error: Dict[str, Any], status: int) -> web.Response:
    return web.json_response({"success": False, "error": error}, status=status)


def _bad_request(message: str) -> web.Response:
    return _failure({"type": "BadRequest", "message": message}, 400)


class SessionCredentialStore(CredentialStore):
    """Credential store backed by the aiohttp session mapping."""

    KEY = "credentials"

    def __init__(self, session):
        self.session = session

    def get(self) -> Optional[Credentials]:
        data = self.session.get(self.KEY)
        if not data:
            return None
        return validate_credentials(data.get("access_token"), data.get("secret_key"))

    def set(self, credentials: Credentials) -> bool:
        self.session[self.KEY] = validate_credentials(*credentials)._asdict()
        return True

    def clear(self) -> bool:
        self.session.pop(self.KEY, None)
        return True


Action = Callable[[AsyncAccountClient, Dict[str, Any]], Awaitable[Any]]


class DashboardServer:
    def __init__(
        self,
        config: Optional[DeskConfig] = None,
        *,
        transport: Optional[AsyncRetryingTransport] = None,
        nonces: Optional[NonceGenerator] = None,
    ):
        self.config = config or DeskConfig.default()
        self.transport = transport
        self._owns_transport = transport is None
        # one generator for every request so v2 nonces keep increasing
        self.nonces = nonces or NonceGenerator()
        self.app = web.Application()
        self._setup_routes()

    def _setup_routes(self):
        self.app.router.add_get("/health", self.handle_health)
        self.app.router.add_get("/api/credentials", self.handle_credentials_status)
        self.app.router.add_post("/api/credentials", self.handle_credentials_set)
        self.app.router.add_delete("/api/credentials", self.handle_credentials_clear)
        self.app.router.add_post("/api/coinone/test-connection", self.handle_test_connection)
        self.app.router.add_post("/api/coinone/balance", self.handle_balance)
        self.app.router.add_post("/api/coinone/user-info", self.handle_user_info)
        self.app.router.add_post("/api/coinone/deposit-address", self.handle_deposit_address)
        self.app.router.add_post("/api/coinone/withdrawal-addresses", self.handle_withdrawal_addresses)
        self.app.router.add_post("/api/coinone/withdraw", self.handle_withdraw)
        self.app.router.add_post("/api/coinone/order", self.handle_order)
        self.app.router.add_post("/api/coinone/active-orders", self.handle_active_orders)
        self.app.router.add_post("/api/coinone/transaction-history", self.handle_transaction_history)
        self.app.on_startup.append(self._on_startup)
        self.app.on_cleanup.append(self._on_cleanup)

        session_key = self.config.server.session_key or os.environ.get("TD_SESSION_KEY")
        if not session_key:
            # sessions do not survive a restart without a configured key
            session_key = fernet.Fernet.generate_key()
        elif isinstance(session_key, str):
            session_key = session_key.encode()
        session_setup(self.app, EncryptedCookieStorage(fernet.Fernet(session_key)))

    async def _on_startup(self, app: web.Application):
        if self.transport is None:
            exchange = self.config.exchange
            self.transport = AsyncRetryingTransport(
                timeout=exchange.timeout, max_attempts=exchange.max_attempts, backoff_base=exchange.backoff_base
            )
        if self._owns_transport:
            await self.transport.__aenter__()
        logger.info(f"Dashboard server started | exchange={self.config.exchange.base_url}")

    async def _on_cleanup(self, app: web.Application):
        if self._owns_transport and self.transport is not None:
            await self.transport.close()

    def _account(self, store: CredentialStore) -> AsyncAccountClient:
        client = AsyncSigningClient(
            store,
            transport=self.transport,
            nonces=self.nonces,
            **BaseSigningClient.config_kwargs(self.config.exchange),
        )
        return AsyncAccountClient(client)

    @staticmethod
    async def _read_body(request: web.Request) -> Dict[str, Any]:
        if not request.can_read_body:
            return {}
        body = await request.json()
        if not isinstance(body, dict):
            raise ValueError("request body must be a JSON object")
        return body

    async def _store_for(self, request: web.Request, body: Dict[str, Any]) -> Optional[CredentialStore]:
        access_token, secret_key = (body.get(k) for k in CREDENTIAL_FIELDS)
        if access_token or secret_key:
            if not (isinstance(access_token, str) and isinstance(secret_key, str)):
                return None
            return InMemoryCredentialStore(validate_credentials(access_token, secret_key))
        session_store = SessionCredentialStore(await get_session(request))
        creds = session_store.get()
        return InMemoryCredentialStore(creds) if creds else None

    async def _handle(self, request: web.Request, action: Action) -> web.Response:
        try:
            body = await self._read_body(request)
        except ValueError as e:
            return _bad_request(f"invalid JSON body: {e}")

        try:
            store = await self._store_for(request, body)
            if store is None:
                return _bad_request("missing API credentials")
            params = {k: v for k, v in body.items() if k not in CREDENTIAL_FIELDS}
            data = await action(self._account(store), params)
        except TradeDeskError as e:
            logger.warning(f"Request failed | path={request.path} error={e.to_dict()}")
            return _failure(e.to_dict(), error_status(e))
        except (TypeError, ValueError) as e:
            return _bad_request(str(e))
        return web.json_response({"success": True, "data": data})

    async def handle_health(self, request: web.Request):
        return web.json_response({"status": "alive", "timestamp": int(time.time())})

    async def handle_credentials_status(self, request: web.Request):
        store = SessionCredentialStore(await get_session(request))
        try:
            configured = store.get() is not None
        except InvalidCredentialFormat:
            store.clear()
            configured = False
        return web.json_response({"success": True, "data": {"has_credentials": configured}})

    async def handle_credentials_set(self, request: web.Request):
        try:
            body = await self._read_body(request)
        except ValueError as e:
            return _bad_request(f"invalid JSON body: {e}")
        access_token, secret_key = (body.get(k) for k in CREDENTIAL_FIELDS)
        if not (access_token and secret_key):
            return _bad_request("missing API credentials")
        store = SessionCredentialStore(await get_session(request))
        try:
            store.set(Credentials(access_token, secret_key))
        except InvalidCredentialFormat as e:
            return _failure(e.to_dict(), 400)
        return web.json_response({"success": True})

    async def handle_credentials_clear(self, request: web.Request):
        SessionCredentialStore(await get_session(request)).clear()
        return web.json_response({"success": True})

    async def handle_test_connection(self, request: web.Request):
        async def action(account: AsyncAccountClient, params):
            if not await account.test_connection():
                raise NotConfigured("credentials rejected by the exchange")
            return {"connected": True}
        return await self._handle(request, action)

    async def handle_balance(self, request: web.Request):
        async def action(account: AsyncAccountClient, params):
            currency = params.get("currency")
            if currency:
                return (await account.get_currency_balance(currency)).model_dump()
            return await account.get_balance()
        return await self._handle(request, action)

    async def handle_user_info(self, request: web.Request):
        return await self._handle(request, lambda account, params: account.get_user_info())

    async def handle_deposit_address(self, request: web.Request):
        return await self._handle(request, lambda account, params: account.get_deposit_address())

    async def handle_withdrawal_addresses(self, request: web.Request):
        return await self._handle(
            request, lambda account, params: account.get_withdrawal_addresses(params.get("currency"))
        )

    async def handle_withdraw(self, request: web.Request):
        return await self._handle(
            request,
            lambda account, params: account.withdraw(
                params.get("currency"), params.get("amount"), params.get("address"), params.get("secondary_address")
            ),
        )

    async def handle_order(self, request: web.Request):
        return await self._handle(request, lambda account, params: account.create_order(params))

    async def handle_active_orders(self, request: web.Request):
        return await self._handle(
            request,
            lambda account, params: account.get_active_orders(
                params.get("quote_currency"), params.get("target_currency"), params.get("order_type")
            ),
        )

    async def handle_transaction_history(self, request: web.Request):
        async def action(account: AsyncAccountClient, params):
            from_ts, to_ts = history_window(params.get("days", 30))
            size = params.get("size", 50)
            currency = params.get("currency")
            result = await account.get_transaction_history(
                from_ts, to_ts, currency, params.get("to_id"), params.get("is_deposit"), size
            )
            return {
                "result": result,
                "query_params": {
                    "currency": currency.upper() if currency else "ALL",
                    "is_deposit": params.get("is_deposit"),
                    "size": clamp_page_size(size),
                    "from_ts": from_ts,
                    "to_ts": to_ts,
                },
            }
        return await self._handle(request, action)

    def run(self):
        web.run_app(self.app, host=self.config.server.host, port=self.config.server.port)


def main():
    config_path = os.environ.get("TD_CONFIG_PATH", "config.yaml")
    config = DeskConfig.from_yaml(config_path) if os.path.exists(config_path) else DeskConfig.default()
    setup_logging(
        config.logging.log_file,
        config.logging.log_level,
        config.logging.enable_console,
        config.logging.serialize,
    )
    DashboardServer(config).run()


if __name__ == "__main__":
    main()
