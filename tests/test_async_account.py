import json
from unittest.mock import AsyncMock

import pytest

from tradedesk.async_account import AsyncAccountClient
from tradedesk.async_signing_client import AsyncSigningClient
from tradedesk.errors import CurrencyNotFound, InvalidOrderParams, RequestValidationError, TransportError
from tradedesk.operations import history_window

from conftest import ok_response


@pytest.fixture
def async_transport():
    fake = AsyncMock()
    fake.send.return_value = ok_response()
    return fake


@pytest.fixture
def account(store, async_transport):
    return AsyncAccountClient(AsyncSigningClient(store, transport=async_transport))


def _last_request(transport):
    args, kwargs = transport.send.call_args
    return args[1], json.loads(kwargs["data"])


@pytest.mark.asyncio
async def test_get_currency_balance(account, async_transport):
    async_transport.send.return_value = ok_response(balances=[{"currency": "BTC", "available": "2"}])
    balance = await account.get_currency_balance("BTC")
    assert balance.available == "2"
    with pytest.raises(CurrencyNotFound):
        await account.get_currency_balance("XRP")


@pytest.mark.asyncio
async def test_get_currency_balance_rejects_non_string_currency(account, async_transport):
    with pytest.raises(RequestValidationError):
        await account.get_currency_balance(123)
    async_transport.send.assert_not_called()


@pytest.mark.asyncio
async def test_user_info_and_deposit_address_use_int_nonce(account, async_transport):
    await account.get_user_info()
    assert isinstance(_last_request(async_transport)[1]["nonce"], int)
    await account.get_deposit_address()
    assert isinstance(_last_request(async_transport)[1]["nonce"], int)


@pytest.mark.asyncio
async def test_orders(account, async_transport):
    await account.create_limit_order("KRW", "BTC", "SELL", "1", "1", post_only=True)
    assert _last_request(async_transport)[1]["post_only"] is True
    await account.create_market_buy_order("KRW", "BTC", "5000")
    await account.create_market_sell_order("KRW", "BTC", "0.1")
    await account.create_stop_limit_order("KRW", "BTC", "BUY", "1", "1", "2")
    assert async_transport.send.call_count == 4


@pytest.mark.asyncio
async def test_invalid_order_sends_nothing(account, async_transport):
    with pytest.raises(InvalidOrderParams):
        await account.create_order({"quote_currency": "KRW", "target_currency": "BTC", "type": "MARKET", "side": "BUY"})
    async_transport.send.assert_not_called()


@pytest.mark.asyncio
async def test_withdraw_and_address_book(account, async_transport):
    await account.get_withdrawal_addresses()
    assert _last_request(async_transport)[0].endswith("/address_book")
    await account.withdraw("BTC", "0.1", "bc1q")
    assert _last_request(async_transport)[1]["address"] == "bc1q"


@pytest.mark.asyncio
async def test_active_orders_and_history(account, async_transport):
    await account.get_active_orders(order_type=["limit"])
    assert _last_request(async_transport)[1]["order_type"] == ["LIMIT"]
    from_ts, to_ts = history_window(7)
    await account.get_transaction_history(from_ts, to_ts, is_deposit=False)
    assert _last_request(async_transport)[1]["is_deposit"] is False


@pytest.mark.asyncio
async def test_test_connection(account, async_transport):
    assert await account.test_connection()
    async_transport.send.side_effect = TransportError("https://x", 3, "down")
    assert not await account.test_connection()


@pytest.mark.asyncio
async def test_context_manager_delegates(account, async_transport):
    async with account as acc:
        assert acc is account
    async_transport.close.assert_not_called()


@pytest.mark.asyncio
async def test_typed_views(account, async_transport):
    async_transport.send.return_value = ok_response(order_id="o-2")
    ack = await account.place_order({
        "quote_currency": "KRW", "target_currency": "BTC", "type": "LIMIT", "side": "BUY", "price": "1", "qty": "1",
    })
    assert ack.order_id == "o-2"

    async_transport.send.return_value = ok_response(active_orders=[{
        "order_id": "a-1", "type": "STOP_LIMIT", "side": "BUY", "quote_currency": "KRW", "target_currency": "ETH",
    }])
    orders = await account.list_active_orders(order_type="stop_limit")
    assert orders[0].type == "STOP_LIMIT"
    assert _last_request(async_transport)[1]["order_type"] == ["STOP_LIMIT"]

    async_transport.send.return_value = ok_response(withdrawal_addresses=[{"currency": "BTC", "address": "bc1q"}])
    assert (await account.list_withdrawal_addresses("BTC"))[0].address == "bc1q"

    async_transport.send.return_value = ok_response(transactions=[{
        "id": "t-1", "currency": "BTC", "type": "WITHDRAWAL", "amount": "0.1", "status": "WITHDRAWAL_SUCCESS",
    }])
    from_ts, to_ts = history_window(7)
    assert (await account.list_transactions(from_ts, to_ts))[0].status == "WITHDRAWAL_SUCCESS"
