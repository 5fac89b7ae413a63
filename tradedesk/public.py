"""Unauthenticated market data: ticker, orderbook, range units.

Plain GETs through the same retrying transport; no signing.
"""
from typing import Any, Dict, Optional

from .config import DEFAULT_BASE_URL, ExchangeConfig
from .envelope import parse_envelope
from .transport import RetryingTransport


class PublicClient:
    def __init__(self, *, base_url: str = DEFAULT_BASE_URL, transport: Optional[RetryingTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.transport = transport or RetryingTransport()

    @classmethod
    def from_config(cls, config: ExchangeConfig) -> "PublicClient":
        transport = RetryingTransport(timeout=config.timeout, max_attempts=config.max_attempts, backoff_base=config.backoff_base)
        return cls(base_url=config.base_url, transport=transport)

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        response = self.transport.send(
            "GET", f"{self.base_url}{path}", headers={"Accept": "application/json"}, params=params
        )
        return parse_envelope(response)

    def get_ticker(self, quote_currency: str, target_currency: str) -> Dict[str, Any]:
        return self._get(f"/public/v2/ticker/{quote_currency}/{target_currency}")

    def get_orderbook(self, quote_currency: str, target_currency: str, size: int = 15) -> Dict[str, Any]:
        return self._get(f"/public/v2/orderbook/{quote_currency}/{target_currency}", params={"size": size})

    def get_range_units(self, quote_currency: str, target_currency: str) -> Dict[str, Any]:
        """Price tick size per price range."""
        return self._get(f"/public/v2/range_units/{quote_currency}/{target_currency}")

    def close(self) -> None:
        self.transport.close()
