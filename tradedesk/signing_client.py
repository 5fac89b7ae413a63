from typing import Any, Dict, Mapping, Optional

from .config import DEFAULT_BASE_URL, ExchangeConfig
from .credentials import (
    CredentialStore,
    Credentials,
    InMemoryCredentialStore,
    is_valid_key,
    validate_credentials,
)
from .envelope import HttpResponse, parse_envelope
from .errors import NotConfigured, TradeDeskError
from .logging_setup import logger
from .signing import NonceGenerator, NonceStyle, SignedRequest, sign_request
from .transport import DEFAULT_MAX_ATTEMPTS, DEFAULT_TIMEOUT, RetryingTransport


class BaseSigningClient:
    """Credential handling, request signing and response checks shared by
    the blocking and async clients.

    Credentials live behind a CredentialStore. Each call snapshots the
    pair exactly once, before the payload is built; a concurrent
    ``clear()`` either happens before the snapshot (NotConfigured, no
    network I/O) or after it (the call completes with the snapshot).
    """

    def __init__(
        self,
        store: Optional[CredentialStore] = None,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        nonces: Optional[NonceGenerator] = None,
        payload_header: str = "X-SIGNED-PAYLOAD",
        signature_header: str = "X-SIGNATURE",
        user_agent: str = "trade-desk/0.1.0",
    ):
        self.store = store if store is not None else InMemoryCredentialStore()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.nonces = nonces or NonceGenerator()
        self.payload_header = payload_header
        self.signature_header = signature_header
        self.user_agent = user_agent

    @staticmethod
    def config_kwargs(config: ExchangeConfig) -> Dict[str, Any]:
        return {
            "base_url": config.base_url,
            "timeout": config.timeout,
            "max_attempts": config.max_attempts,
            "payload_header": config.payload_header,
            "signature_header": config.signature_header,
            "user_agent": config.user_agent,
        }

    def configure(self, access_token: str, secret_key: str) -> None:
        """Validate and store both keys; on InvalidCredentialFormat nothing changes."""
        self.store.set(validate_credentials(access_token, secret_key))

    def clear(self) -> None:
        self.store.clear()

    def status(self) -> Dict[str, bool]:
        creds = self.store.get()
        return {
            "has_credentials": creds is not None,
            "access_token_valid": creds is not None and is_valid_key(creds.access_token),
            "secret_key_valid": creds is not None and is_valid_key(creds.secret_key),
        }

    def _snapshot(self) -> Credentials:
        creds = self.store.get()
        if creds is None:
            raise NotConfigured("API credentials not configured; call configure() first")
        return creds

    def prepare(self, endpoint: str, fields: Optional[Mapping[str, Any]], nonce_style: NonceStyle) -> SignedRequest:
        """Snapshot credentials, generate the one nonce for this call and sign."""
        creds = self._snapshot()
        path = endpoint if endpoint.startswith("/") else f"/{endpoint}"
        return sign_request(
            creds,
            f"{self.base_url}{path}",
            self.nonces.next(nonce_style),
            fields,
            payload_header=self.payload_header,
            signature_header=self.signature_header,
            extra_headers={"Accept": "application/json", "User-Agent": self.user_agent},
        )

    @staticmethod
    def _log_failure(endpoint: str, fields: Optional[Mapping[str, Any]], error: TradeDeskError) -> None:
        logger.error(
            f"Signed request failed | endpoint={endpoint} error={error.to_dict()} "
            f"fields={sorted((fields or {}).keys())}"
        )


class SigningClient(BaseSigningClient):
    """Blocking signing client.

    Example:
        >>> client = SigningClient()
        >>> client.configure(access_token, secret_key)
        >>> client.execute_signed("/v2.1/account/balance/all", {}, NonceStyle.RANDOM)
    """

    def __init__(self, store: Optional[CredentialStore] = None, *, transport: Optional[RetryingTransport] = None, **kwargs):
        super().__init__(store, **kwargs)
        self.transport = transport or RetryingTransport(timeout=self.timeout, max_attempts=self.max_attempts)

    @classmethod
    def from_config(cls, config: ExchangeConfig, store: Optional[CredentialStore] = None, **kwargs) -> "SigningClient":
        transport = kwargs.pop("transport", None) or RetryingTransport(
            timeout=config.timeout, max_attempts=config.max_attempts, backoff_base=config.backoff_base
        )
        return cls(store, transport=transport, **cls.config_kwargs(config), **kwargs)

    def execute_signed(
        self,
        endpoint: str,
        fields: Optional[Mapping[str, Any]] = None,
        nonce_style: NonceStyle = NonceStyle.RANDOM,
    ) -> Dict[str, Any]:
        request = self.prepare(endpoint, fields, nonce_style)
        try:
            response: HttpResponse = self.transport.send(
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

    def close(self) -> None:
        self.transport.close()
