from typing import Any, Dict, Mapping, Optional

from .async_transport import AsyncRetryingTransport
from .config import ExchangeConfig
from .credentials import CredentialStore
from .envelope import parse_envelope
from .errors import TradeDeskError
from .signing import NonceStyle
from .signing_client import BaseSigningClient


class AsyncSigningClient(BaseSigningClient):
    """Async signing client on aiohttp.

    Usage:
        async with AsyncSigningClient() as client:
            client.configure(access_token, secret_key)
            envelope = await client.execute_signed("/v2.1/order", fields, NonceStyle.RANDOM)

    A transport passed in by the caller is shared and left open on exit.
    """

    def __init__(self, store: Optional[CredentialStore] = None, *, transport: Optional[AsyncRetryingTransport] = None, **kwargs):
        super().__init__(store, **kwargs)
        self._owns_transport = transport is None
        self.transport = transport or AsyncRetryingTransport(timeout=self.timeout, max_attempts=self.max_attempts)

    @classmethod
    def from_config(cls, config: ExchangeConfig, store: Optional[CredentialStore] = None, **kwargs) -> "AsyncSigningClient":
        transport = kwargs.pop("transport", None)
        owns_transport = transport is None
        if transport is None:
            transport = AsyncRetryingTransport(
                timeout=config.timeout, max_attempts=config.max_attempts, backoff_base=config.backoff_base
            )
        client = cls(store, transport=transport, **cls.config_kwargs(config), **kwargs)
        client._owns_transport = owns_transport
        return client

    async def __aenter__(self):
        if self._owns_transport:
            await self.transport.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._owns_transport:
            await self.transport.close()

    async def execute_signed(
        self,
        endpoint: str,
        fields: Optional[Mapping[str, Any]] = None,
        nonce_style: NonceStyle = NonceStyle.RANDOM,
    ) -> Dict[str, Any]:
        request = self.prepare(endpoint, fields, nonce_style)
        try:
            response = await self.transport.send(
                "POST",
                request.url,
                headers=request.headers,
                data=request.body_bytes,
                timeout=self.timeout,
                max_attempts=self.max_attempts,
            )
            return parse_envelope(response)
        except TradeDeskError as e:
            self._log_failure(endpoint, fields, e)
            raise
