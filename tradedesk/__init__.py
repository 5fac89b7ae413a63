"""
Trade Desk: account client for a single Coinone exchange account.

Features:
- Authenticated request signing (base64 JSON payload + HMAC-SHA512) with a
  single nonce per request, so the signed bytes are the transmitted bytes
- Random (v2.1) and strictly increasing millisecond (v2) nonces, chosen by a
  fixed endpoint table
- Fetch-with-retry transport: per-attempt timeout, exponential backoff,
  explicit state machine; blocking (requests) and async (aiohttp) variants
- Local validation of orders, withdrawals and history windows before any
  network round trip
- Pluggable credential stores (memory, file with optional Fernet encryption,
  encrypted cookie session)
- Structured logging via loguru
- Configuration-driven (YAML)

Core Modules:
    signing: payload serialization, encoding, HMAC signature, nonces
    transport / async_transport: retrying HTTP execution
    signing_client / async_signing_client: authenticated requests
    operations: request descriptors, endpoint-to-nonce table, validation
    account / async_account: one method per exchange capability
    public: unauthenticated market data
    credentials: credential validation and storage
    errors: error taxonomy
    server: aiohttp pass-through handlers for the dashboard UI

Example:
    >>> from tradedesk.account import AccountClient
    >>> from tradedesk.credentials import load_credentials
    >>>
    >>> account = AccountClient.from_credentials(load_credentials())
    >>> account.get_currency_balance("KRW")
"""

__version__ = "0.1.0"
__all__ = [
    "account",
    "async_account",
    "async_signing_client",
    "async_transport",
    "config",
    "credentials",
    "envelope",
    "errors",
    "models",
    "operations",
    "public",
    "server",
    "signing",
    "signing_client",
    "transport",
]
