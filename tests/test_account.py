import json

import pytest

from tradedesk.account import AccountClient
from tradedesk.errors import (
    CurrencyNotFound,
    HttpError,
    InvalidOrderParams,
    InvalidTimeRange,
    MalformedResponse,
    RequestValidationError,
)
from tradedesk.envelope import HttpResponse
from tradedesk.operations import DAY_MS, now_ms
from tradedesk.signing_client import SigningClient

from conftest import ok_response


@pytest.fixture
def account(store, transport):
    return AccountClient(SigningClient(store, transport=transport, base_url="https://api.example.com"))


def _last_request(transport):
    args, kwargs = transport.send.call_args
    return args[1], json.loads(kwargs["data"])


def test_get_balance(account, transport):
    transport.send.return_value = ok_response(balances=[{"currency": "BTC", "available": "1"}])
    assert account.get_balance()["balances"][0]["currency"] == "BTC"
    url, payload = _last_request(transport)
    assert url == "https://api.example.com/v2.1/account/balance/all"
    assert isinstance(payload["nonce"], str)


def test_get_currency_balance(account, transport):
    transport.send.return_value = ok_response(balances=[{"currency": "KRW", "available": "1000"}])
    assert account.get_currency_balance("krw").available == "1000"
    with pytest.raises(CurrencyNotFound):
        account.get_currency_balance("BTC")


def test_get_currency_balance_rejects_non_string_currency(account, transport):
    with pytest.raises(RequestValidationError):
        account.get_currency_balance(123)
    transport.send.assert_not_called()


def test_user_info_uses_incrementing_nonce(account, transport):
    account.get_user_info()
    url, payload = _last_request(transport)
    assert url.endswith("/v2/account/user_info")
    assert isinstance(payload["nonce"], int)


def test_deposit_address_uses_incrementing_nonce(account, transport):
    account.get_deposit_address()
    url, payload = _last_request(transport)
    assert url.endswith("/v2/account/deposit_address")
    assert isinstance(payload["nonce"], int)


def test_withdrawal_addresses(account, transport):
    account.get_withdrawal_addresses("BTC")
    url, payload = _last_request(transport)
    assert url.endswith("/v2.1/transaction/coin/withdrawal/address_book")
    assert payload["currency"] == "BTC"


def test_withdraw(account, transport):
    account.withdraw("BTC", "0.1", "bc1qaddress")
    url, payload = _last_request(transport)
    assert url.endswith("/v2.1/transaction/coin/withdrawal")
    assert payload["amount"] == "0.1"


def test_create_limit_order(account, transport):
    transport.send.return_value = ok_response(order_id="o-1")
    result = account.create_limit_order("KRW", "BTC", "BUY", "50000000", "0.001")
    assert result["order_id"] == "o-1"
    _, payload = _last_request(transport)
    assert payload["type"] == "LIMIT"
    assert payload["post_only"] is False


def test_create_market_orders(account, transport):
    account.create_market_buy_order("KRW", "BTC", amount="10000")
    assert _last_request(transport)[1]["amount"] == "10000"
    account.create_market_sell_order("KRW", "BTC", qty="0.1")
    assert _last_request(transport)[1]["qty"] == "0.1"


def test_create_stop_limit_order(account, transport):
    account.create_stop_limit_order("KRW", "BTC", "SELL", "1", "2", "3")
    assert _last_request(transport)[1]["trigger_price"] == "3"


def test_invalid_order_sends_nothing(account, transport):
    with pytest.raises(InvalidOrderParams):
        account.create_order({"quote_currency": "KRW", "target_currency": "BTC", "type": "LIMIT", "side": "BUY"})
    transport.send.assert_not_called()


def test_active_orders(account, transport):
    account.get_active_orders("KRW", "BTC")
    url, payload = _last_request(transport)
    assert url.endswith("/v2.1/order/active_orders")
    assert payload["target_currency"] == "BTC"


def test_transaction_history(account, transport):
    to_ts = now_ms() - 1000
    account.get_transaction_history(to_ts - DAY_MS, to_ts, currency="eth", size=500)
    url, payload = _last_request(transport)
    assert url.endswith("/v2.1/transaction/coin/history")
    assert payload["currency"] == "ETH"
    assert payload["size"] == 100


def test_transaction_history_range_validated_locally(account, transport):
    to_ts = now_ms() - 1000
    with pytest.raises(InvalidTimeRange):
        account.get_transaction_history(to_ts - 91 * DAY_MS, to_ts)
    transport.send.assert_not_called()


def test_test_connection(account, transport):
    assert account.test_connection() is True
    transport.send.return_value = HttpResponse(401, "unauthorized")
    assert account.test_connection() is False


def test_get_balance_http_error(account, transport):
    transport.send.return_value = HttpResponse(502, "bad gateway")
    with pytest.raises(HttpError):
        account.get_balance()


def test_from_credentials(credentials, transport):
    account = AccountClient.from_credentials(credentials, transport=transport)
    account.get_balance()
    assert transport.send.call_args[0][1] == "https://api.coinone.co.kr/v2.1/account/balance/all"
    account.close()
    transport.close.assert_called_once()


def test_place_order_returns_ack(account, transport):
    transport.send.return_value = ok_response(order_id="o-9")
    ack = account.place_order({
        "quote_currency": "KRW", "target_currency": "BTC", "type": "MARKET", "side": "BUY", "amount": "5000",
    })
    assert ack.order_id == "o-9"


def test_place_order_without_order_id(account, transport):
    with pytest.raises(MalformedResponse):
        account.place_order({
            "quote_currency": "KRW", "target_currency": "BTC", "type": "MARKET", "side": "SELL", "qty": "0.1",
        })


def test_list_active_orders(account, transport):
    transport.send.return_value = ok_response(active_orders=[{
        "order_id": "a-1",
        "type": "LIMIT",
        "side": "SELL",
        "quote_currency": "KRW",
        "target_currency": "BTC",
        "price": 90000000,
        "remain_qty": "0.01",
    }])
    (order,) = account.list_active_orders("KRW", "BTC", "limit")
    assert order.order_id == "a-1"
    assert order.price == "90000000"
    assert _last_request(transport)[1]["order_type"] == ["LIMIT"]


def test_list_withdrawal_addresses(account, transport):
    transport.send.return_value = ok_response(withdrawal_addresses=[
        {"currency": "BTC", "address": "bc1q", "nickname": "cold"},
        {"currency": "XRP", "address": "r9", "secondary_address": "1001"},
    ])
    book = account.list_withdrawal_addresses()
    assert [entry.currency for entry in book] == ["BTC", "XRP"]
    assert book[1].secondary_address == "1001"


def test_list_transactions(account, transport):
    transport.send.return_value = ok_response(transactions=[{
        "id": "t-1",
        "currency": "ETH",
        "type": "DEPOSIT",
        "amount": "1.5",
        "status": "DEPOSIT_SUCCESS",
        "confirmations": 12,
    }])
    to_ts = now_ms() - 1000
    (tx,) = account.list_transactions(to_ts - DAY_MS, to_ts, currency="eth")
    assert tx.type == "DEPOSIT"
    assert tx.confirmations == 12


def test_list_transactions_empty_page(account, transport):
    to_ts = now_ms() - 1000
    assert account.list_transactions(to_ts - DAY_MS, to_ts) == []
