"""Error taxonomy for the trade desk.

Every failure surfaced by the core is one of these types. They carry
structured attributes only; presentation is left to the caller.

Local (raised before any network I/O, never retried):
    InvalidCredentialFormat, NotConfigured, InvalidOrderParams,
    InvalidTimeRange, CurrencyNotFound

Remote:
    TransportError  - no response after every attempt
    HttpError       - response with a non-2xx status
    MalformedResponse - 2xx but not a JSON envelope
    ExchangeError   - envelope with result != "success"
"""
from typing import Any, Dict, Optional


class TradeDeskError(Exception):
    """Base class for all trade desk errors."""

    def to_dict(self) -> Dict[str, Any]:
        return {"type": type(self).__name__, "message": str(self)}


class InvalidCredentialFormat(TradeDeskError):
    """Access token or secret key is not a UUID-v4 string."""

    def __init__(self, field: str):
        super().__init__(f"{field} must be a UUID-v4 string")
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["field"] = self.field
        return d


class NotConfigured(TradeDeskError):
    """Signing attempted with no stored credentials."""
    pass


class RequestValidationError(TradeDeskError):
    """Request parameters rejected locally."""
    pass


class InvalidOrderParams(RequestValidationError):
    pass


class InvalidTimeRange(RequestValidationError):
    pass


class CurrencyNotFound(TradeDeskError):
    def __init__(self, currency: str):
        super().__init__(f"no balance entry for {currency}")
        self.currency = currency

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["currency"] = self.currency
        return d


class TransportError(TradeDeskError):
    """Raised once every attempt failed at the network layer."""

    def __init__(self, url: str, attempts: int, reason: str = ""):
        super().__init__(f"{url} failed after {attempts} attempt(s): {reason}")
        self.url = url
        self.attempts = attempts
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["attempts"] = self.attempts
        return d


class HttpError(TradeDeskError):
    def __init__(self, status: int, body: str = ""):
        super().__init__(f"HTTP {status}")
        self.status = status
        self.body = body

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["status"] = self.status
        return d


class MalformedResponse(TradeDeskError):
    def __init__(self, reason: str, body: str = ""):
        super().__init__(reason)
        self.body = body


class ExchangeError(TradeDeskError):
    """The exchange answered with ``result != "success"``."""

    def __init__(self, code: Optional[str], message: Optional[str] = None):
        super().__init__(f"{code}: {message or 'unknown error'}")
        self.code = code
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"type": type(self).__name__, "code": self.code, "message": self.message}
