"""Read-only walkthrough of the account client.

Shows:
1. Loading configuration and credentials
2. Checking connectivity
3. Reading balances, one currency and all of them
4. Listing active orders and the last week of deposits/withdrawals
5. Validating an order locally without sending it
6. Structured logging
"""
import asyncio
from pathlib import Path

from tradedesk.async_account import AsyncAccountClient
from tradedesk.async_signing_client import AsyncSigningClient
from tradedesk.config import DeskConfig
from tradedesk.credentials import InMemoryCredentialStore, load_credentials
from tradedesk.errors import NotConfigured, TradeDeskError
from tradedesk.logging_setup import logger, setup_logging
from tradedesk.operations import CURRENCY_PAIRS, history_window, limit_order_request


async def main():
    setup_logging(log_file="tradedesk.log", level="INFO", enable_console=True)
    logger.info("=== Trade Desk Demo ===")

    config_file = Path(__file__).parent.parent / "config.yaml"
    if config_file.exists():
        config = DeskConfig.from_yaml(str(config_file))
        logger.info(f"Loaded config from {config_file}")
    else:
        config = DeskConfig.default()
        logger.info("Using default configuration")

    try:
        creds = load_credentials(config.credentials.path, config.credentials.encryption_key)
    except NotConfigured as e:
        logger.error(str(e))
        logger.info("Set environment variables: TD_ACCESS_TOKEN, TD_SECRET_KEY")
        return

    client = AsyncSigningClient.from_config(config.exchange, InMemoryCredentialStore(creds))
    async with AsyncAccountClient(client) as account:
        if not await account.test_connection():
            logger.error("Exchange rejected the credentials")
            return

        try:
            krw = await account.get_currency_balance("KRW")
            logger.info(f"KRW available={krw.available} locked={krw.locked}")

            quote, target = CURRENCY_PAIRS["BTC_KRW"]
            for order in await account.list_active_orders(quote, target):
                logger.info(f"Open {order.side} {order.type} {order.order_id} price={order.price} remain={order.remain_qty}")

            from_ts, to_ts = history_window(7)
            history = await account.list_transactions(from_ts, to_ts, size=20)
            logger.info(f"Transactions in the last 7 days: {len(history)}")

            for entry in await account.list_withdrawal_addresses():
                logger.info(f"Withdrawal address {entry.currency}: {entry.nickname or entry.address}")
        except TradeDeskError as e:
            logger.error(f"Demo request failed: {e.to_dict()}")
            return

    # validated locally, never sent
    request = limit_order_request("KRW", "BTC", "BUY", price="50000000", qty="0.0001")
    logger.info(f"Would send {request.endpoint} with {dict(request.fields)}")
    logger.info("=== Demo Complete ===")


if __name__ == "__main__":
    asyncio.run(main())
