"""
Domain operations: shape request fields and validate them locally.

Every operation produces a RequestDescriptor (endpoint + fields). The
nonce style is not chosen per call; it comes from NONCE_STYLES, a fixed
table keyed by endpoint:

    v2.1 endpoints (balance, address book, withdraw, order,
    active orders, transaction history)  -> random UUID-v4 nonce
    v2 endpoints (user info, deposit address) -> incrementing ms nonce

Validation failures raise before any network round trip:
    InvalidOrderParams, InvalidTimeRange; narrowing a balance set to
    one currency raises CurrencyNotFound.

Examples:
    >>> req = limit_order_request("KRW", "BTC", "BUY", price="50000000", qty="0.001")
    >>> req.endpoint, req.nonce_style
    ('/v2.1/order', <NonceStyle.RANDOM: 'random'>)
"""
import time
from collections import abc
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

from .errors import (
    CurrencyNotFound,
    InvalidOrderParams,
    InvalidTimeRange,
    MalformedResponse,
    RequestValidationError,
)
from .models import CurrencyBalance, records
from .signing import NonceStyle

BALANCE_ALL = "/v2.1/account/balance/all"
USER_INFO = "/v2/account/user_info"
DEPOSIT_ADDRESS = "/v2/account/deposit_address"
WITHDRAWAL_ADDRESS_BOOK = "/v2.1/transaction/coin/withdrawal/address_book"
WITHDRAW = "/v2.1/transaction/coin/withdrawal"
ORDER = "/v2.1/order"
ACTIVE_ORDERS = "/v2.1/order/active_orders"
TRANSACTION_HISTORY = "/v2.1/transaction/coin/history"

NONCE_STYLES: Mapping[str, NonceStyle] = MappingProxyType({
    BALANCE_ALL: NonceStyle.RANDOM,
    WITHDRAWAL_ADDRESS_BOOK: NonceStyle.RANDOM,
    WITHDRAW: NonceStyle.RANDOM,
    ORDER: NonceStyle.RANDOM,
    ACTIVE_ORDERS: NonceStyle.RANDOM,
    TRANSACTION_HISTORY: NonceStyle.RANDOM,
    USER_INFO: NonceStyle.INCREMENTING,
    DEPOSIT_ADDRESS: NonceStyle.INCREMENTING,
})

CURRENCY_PAIRS = MappingProxyType({
    "BTC_KRW": ("KRW", "BTC"),
    "ETH_KRW": ("KRW", "ETH"),
    "XRP_KRW": ("KRW", "XRP"),
    "ADA_KRW": ("KRW", "ADA"),
    "DOT_KRW": ("KRW", "DOT"),
})

DAY_MS = 24 * 60 * 60 * 1000
MAX_HISTORY_RANGE_MS = 90 * DAY_MS
HISTORY_PAGE_MIN, HISTORY_PAGE_MAX, HISTORY_PAGE_DEFAULT = 1, 100, 50

ORDER_TYPES = ("LIMIT", "MARKET", "STOP_LIMIT")
ORDER_SIDES = ("BUY", "SELL")
ORDER_BASE_FIELDS = ("quote_currency", "target_currency", "type", "side")

# (type, side) -> required fields; side None means both sides
_ORDER_REQUIRED: Dict[Tuple[str, Optional[str]], Tuple[str, ...]] = {
    ("LIMIT", None): ("price", "qty"),
    ("MARKET", "BUY"): ("amount",),
    ("MARKET", "SELL"): ("qty",),
    ("STOP_LIMIT", None): ("price", "qty", "trigger_price"),
}
_ORDER_OPTIONAL: Dict[str, Tuple[str, ...]] = {
    "LIMIT": ("post_only", "user_order_id"),
    "MARKET": ("limit_price", "user_order_id"),
    "STOP_LIMIT": ("user_order_id",),
}


@dataclass(frozen=True)
class RequestDescriptor:
    endpoint: str
    fields: Mapping[str, Any] = field(default_factory=dict)

    @property
    def nonce_style(self) -> NonceStyle:
        return NONCE_STYLES[self.endpoint]


def _wire(value: Any) -> Any:
    """Exchange amounts are strings on the wire."""
    if isinstance(value, (Decimal, float)):
        return str(value)
    return value


def _present(value: Any) -> bool:
    return value is not None and value != ""


def _optional(**kwargs: Any) -> Dict[str, Any]:
    return {k: _wire(v) for k, v in kwargs.items() if _present(v)}


def now_ms() -> int:
    return int(time.time() * 1000)


def check_currency(currency: Any) -> str:
    """Currency codes come from JSON bodies too; anything but a non-empty string is rejected."""
    if not isinstance(currency, str) or not currency.strip():
        raise RequestValidationError(f"currency must be a non-empty string, got {currency!r}")
    return currency


# -- account ----------------------------------------------------------------

def balance_request() -> RequestDescriptor:
    return RequestDescriptor(BALANCE_ALL)


def user_info_request() -> RequestDescriptor:
    return RequestDescriptor(USER_INFO)


def deposit_address_request() -> RequestDescriptor:
    return RequestDescriptor(DEPOSIT_ADDRESS)


def find_currency_balance(envelope: Mapping[str, Any], currency: str) -> CurrencyBalance:
    """Pick one currency (case-insensitive) out of a balance-all envelope."""
    wanted = check_currency(currency).lower()
    if "balances" not in envelope:
        raise MalformedResponse("balance response has no 'balances'")
    for balance in records(envelope, "balances", CurrencyBalance):
        if balance.currency.lower() == wanted:
            return balance
    raise CurrencyNotFound(currency)


# -- withdrawals --------------------------------------------------------------

def withdrawal_addresses_request(currency: Optional[str] = None) -> RequestDescriptor:
    return RequestDescriptor(WITHDRAWAL_ADDRESS_BOOK, _optional(currency=currency))


def withdraw_request(
    currency: str,
    amount: Any,
    address: str,
    secondary_address: Optional[str] = None,
) -> RequestDescriptor:
    missing = [name for name, value in (("currency", currency), ("amount", amount), ("address", address)) if not _present(value)]
    if missing:
        raise RequestValidationError(f"withdrawal missing: {', '.join(missing)}")
    fields = {"currency": currency, "amount": _wire(amount), "address": address}
    fields.update(_optional(secondary_address=secondary_address))
    return RequestDescriptor(WITHDRAW, fields)


# -- orders -------------------------------------------------------------------

def validate_order(params: Mapping[str, Any]) -> Dict[str, Any]:
    """Check an order against the required-field table and return the fields to send.

    Only base fields, the fields required for the type/side and the
    optional fields allowed for the type are forwarded. Anything else is
    rejected.
    """
    missing = [k for k in ORDER_BASE_FIELDS if not _present(params.get(k))]
    if missing:
        raise InvalidOrderParams(f"order missing: {', '.join(missing)}")

    order_type = str(params["type"]).upper()
    side = str(params["side"]).upper()
    if order_type not in ORDER_TYPES:
        raise InvalidOrderParams(f"unknown order type {params['type']!r}")
    if side not in ORDER_SIDES:
        raise InvalidOrderParams(f"unknown order side {params['side']!r}")

    required = _ORDER_REQUIRED.get((order_type, side)) or _ORDER_REQUIRED[(order_type, None)]
    missing = [k for k in required if not _present(params.get(k))]
    if missing:
        raise InvalidOrderParams(f"{order_type} {side} order missing: {', '.join(missing)}")

    optional = _ORDER_OPTIONAL[order_type]
    allowed = set(ORDER_BASE_FIELDS) | set(required) | set(optional)
    unexpected = sorted(k for k, v in params.items() if k not in allowed and v is not None)
    if unexpected:
        raise InvalidOrderParams(f"{order_type} {side} order does not take: {', '.join(unexpected)}")

    fields: Dict[str, Any] = {
        "quote_currency": params["quote_currency"],
        "target_currency": params["target_currency"],
        "type": order_type,
        "side": side,
    }
    for k in required:
        fields[k] = _wire(params[k])
    for k in optional:
        if params.get(k) is not None:
            fields[k] = _wire(params[k])
    return fields


def order_request(params: Mapping[str, Any]) -> RequestDescriptor:
    return RequestDescriptor(ORDER, validate_order(params))


def limit_order_request(
    quote_currency: str,
    target_currency: str,
    side: str,
    price: Any,
    qty: Any,
    post_only: bool = False,
    user_order_id: Optional[str] = None,
) -> RequestDescriptor:
    return order_request({
        "quote_currency": quote_currency,
        "target_currency": target_currency,
        "type": "LIMIT",
        "side": side,
        "price": price,
        "qty": qty,
        "post_only": post_only,
        "user_order_id": user_order_id,
    })


def market_buy_request(
    quote_currency: str,
    target_currency: str,
    amount: Any,
    limit_price: Any = None,
    user_order_id: Optional[str] = None,
) -> RequestDescriptor:
    return order_request({
        "quote_currency": quote_currency,
        "target_currency": target_currency,
        "type": "MARKET",
        "side": "BUY",
        "amount": amount,
        "limit_price": limit_price,
        "user_order_id": user_order_id,
    })


def market_sell_request(
    quote_currency: str,
    target_currency: str,
    qty: Any,
    limit_price: Any = None,
    user_order_id: Optional[str] = None,
) -> RequestDescriptor:
    return order_request({
        "quote_currency": quote_currency,
        "target_currency": target_currency,
        "type": "MARKET",
        "side": "SELL",
        "qty": qty,
        "limit_price": limit_price,
        "user_order_id": user_order_id,
    })


def stop_limit_request(
    quote_currency: str,
    target_currency: str,
    side: str,
    price: Any,
    qty: Any,
    trigger_price: Any,
    user_order_id: Optional[str] = None,
) -> RequestDescriptor:
    return order_request({
        "quote_currency": quote_currency,
        "target_currency": target_currency,
        "type": "STOP_LIMIT",
        "side": side,
        "price": price,
        "qty": qty,
        "trigger_price": trigger_price,
        "user_order_id": user_order_id,
    })


def active_orders_request(
    quote_currency: Optional[str] = None,
    target_currency: Optional[str] = None,
    order_type: Union[str, Iterable[str], None] = None,
) -> RequestDescriptor:
    """Only the filters given are sent. A single order type may be passed as a string."""
    fields = _optional(quote_currency=quote_currency, target_currency=target_currency)
    if order_type:
        if isinstance(order_type, str):
            order_type = [order_type]
        valid = isinstance(order_type, abc.Iterable) and not isinstance(order_type, abc.Mapping)
        types = list(order_type) if valid else []
        if not valid or not all(isinstance(t, str) for t in types):
            raise RequestValidationError("order_type must be a string or a list of strings")
        fields["order_type"] = [t.upper() for t in types]
    return RequestDescriptor(ACTIVE_ORDERS, fields)


# -- transaction history ------------------------------------------------------

def clamp_page_size(size: Optional[int]) -> int:
    if size is None:
        return HISTORY_PAGE_DEFAULT
    return min(max(int(size), HISTORY_PAGE_MIN), HISTORY_PAGE_MAX)


def validate_time_range(from_ts: int, to_ts: int, now: Optional[int] = None) -> None:
    now = now_ms() if now is None else now
    if from_ts >= to_ts:
        raise InvalidTimeRange("from_ts must be earlier than to_ts")
    if to_ts - from_ts > MAX_HISTORY_RANGE_MS:
        raise InvalidTimeRange("time range cannot exceed 90 days")
    if from_ts > now or to_ts > now:
        raise InvalidTimeRange("time range cannot be in the future")


def history_window(days: Optional[int] = 30, now: Optional[int] = None) -> Tuple[int, int]:
    """``(from_ts, to_ts)`` covering the last ``days`` days, days clamped to [1, 90]."""
    now = now_ms() if now is None else now
    days = min(max(int(days if days is not None else 30), 1), 90)
    return now - days * DAY_MS, now


def transaction_history_request(
    from_ts: int,
    to_ts: int,
    currency: Optional[str] = None,
    to_id: Optional[str] = None,
    is_deposit: Optional[bool] = None,
    size: Optional[int] = HISTORY_PAGE_DEFAULT,
    now: Optional[int] = None,
) -> RequestDescriptor:
    validate_time_range(from_ts, to_ts, now)
    fields: Dict[str, Any] = {}
    if currency is not None and currency != "":
        fields["currency"] = check_currency(currency).upper()
    fields["to_id"] = to_id or None
    fields["is_deposit"] = is_deposit
    fields["size"] = clamp_page_size(size)
    fields["from_ts"] = from_ts
    fields["to_ts"] = to_ts
    return RequestDescriptor(TRANSACTION_HISTORY, fields)
