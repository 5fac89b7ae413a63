"""Immutable records parsed out of exchange envelopes.

Each record is a snapshot from one call; nothing is cached or merged
across calls. Unknown fields are kept so new exchange fields survive.
"""
from typing import Any, List, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError

from .errors import MalformedResponse


class Record(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow", coerce_numbers_to_str=True)


class CurrencyBalance(Record):
    currency: str
    available: Optional[str] = None
    balance: Optional[str] = None
    locked: Optional[str] = None
    limit: Optional[str] = None
    average_price: Optional[str] = None


class OrderAck(Record):
    order_id: str


class ActiveOrder(Record):
    order_id: str
    type: str
    side: str
    quote_currency: str
    target_currency: str
    price: Optional[str] = None
    original_qty: Optional[str] = None
    remain_qty: Optional[str] = None
    executed_qty: Optional[str] = None
    canceled_qty: Optional[str] = None
    fee: Optional[str] = None
    fee_rate: Optional[str] = None
    average_executed_price: Optional[str] = None
    ordered_at: Optional[int] = None
    is_triggered: Optional[bool] = None
    trigger_price: Optional[str] = None
    triggered_at: Optional[int] = None


class WithdrawalAddress(Record):
    currency: str
    address: str
    secondary_address: Optional[str] = None
    nickname: Optional[str] = None
    created_at: Optional[int] = None


class TransactionRecord(Record):
    id: str
    currency: str
    type: str  # WITHDRAWAL | DEPOSIT
    amount: str
    status: str
    txid: Optional[str] = None
    from_address: Optional[str] = None
    from_secondary_address: Optional[str] = None
    to_address: Optional[str] = None
    to_secondary_address: Optional[str] = None
    confirmations: Optional[int] = None
    fee: Optional[str] = None
    created_at: Optional[int] = None


R = TypeVar("R", bound=Record)


def records(envelope: Mapping[str, Any], key: str, model: Type[R]) -> List[R]:
    """Parse ``envelope[key]`` (a list) into records. A missing key is an empty list."""
    items = envelope.get(key)
    if items is None:
        return []
    if not isinstance(items, list):
        raise MalformedResponse(f"'{key}' is not a list")
    try:
        return [model.model_validate(item) for item in items]
    except ValidationError as e:
        raise MalformedResponse(f"invalid '{key}' entry: {e.error_count()} error(s)")


def order_ack(envelope: Mapping[str, Any]) -> OrderAck:
    try:
        return OrderAck.model_validate(envelope)
    except ValidationError:
        raise MalformedResponse("order response has no order_id")


def active_orders(envelope: Mapping[str, Any]) -> List[ActiveOrder]:
    return records(envelope, "active_orders", ActiveOrder)


def withdrawal_addresses(envelope: Mapping[str, Any]) -> List[WithdrawalAddress]:
    return records(envelope, "withdrawal_addresses", WithdrawalAddress)


def transactions(envelope: Mapping[str, Any]) -> List[TransactionRecord]:
    return records(envelope, "transactions", TransactionRecord)
