from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from . import models
from . import operations as ops
from .config import ExchangeConfig
from .credentials import CredentialStore, Credentials, InMemoryCredentialStore
from .errors import TradeDeskError
from .logging_setup import logger
from .models import ActiveOrder, CurrencyBalance, OrderAck, TransactionRecord, WithdrawalAddress
from .signing_client import SigningClient


class AccountClient:
    """Blocking account API: one method per exchange capability.

    Methods return the validated response envelope, except
    ``get_currency_balance`` which narrows it to one CurrencyBalance.
    All errors are TradeDeskError subclasses.
    """

    def __init__(self, client: SigningClient):
        self.client = client

    @classmethod
    def from_credentials(cls, credentials: Credentials, config: Optional[ExchangeConfig] = None, **kwargs) -> "AccountClient":
        store = InMemoryCredentialStore(credentials)
        return cls(SigningClient.from_config(config or ExchangeConfig(), store, **kwargs))

    @classmethod
    def from_store(cls, store: CredentialStore, config: Optional[ExchangeConfig] = None, **kwargs) -> "AccountClient":
        return cls(SigningClient.from_config(config or ExchangeConfig(), store, **kwargs))

    def _call(self, request: ops.RequestDescriptor) -> Dict[str, Any]:
        return self.client.execute_signed(request.endpoint, request.fields, request.nonce_style)

    def get_balance(self) -> Dict[str, Any]:
        return self._call(ops.balance_request())

    def get_currency_balance(self, currency: str) -> CurrencyBalance:
        ops.check_currency(currency)
        return ops.find_currency_balance(self.get_balance(), currency)

    def get_user_info(self) -> Dict[str, Any]:
        return self._call(ops.user_info_request())

    def get_deposit_address(self) -> Dict[str, Any]:
        return self._call(ops.deposit_address_request())

    def get_withdrawal_addresses(self, currency: Optional[str] = None) -> Dict[str, Any]:
        return self._call(ops.withdrawal_addresses_request(currency))

    def withdraw(self, currency: str, amount: Any, address: str, secondary_address: Optional[str] = None) -> Dict[str, Any]:
        return self._call(ops.withdraw_request(currency, amount, address, secondary_address))

    def create_order(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        return self._call(ops.order_request(params))

    def create_limit_order(self, quote_currency: str, target_currency: str, side: str, price: Any, qty: Any, post_only: bool = False, user_order_id: Optional[str] = None) -> Dict[str, Any]:
        return self._call(ops.limit_order_request(quote_currency, target_currency, side, price, qty, post_only, user_order_id))

    def create_market_buy_order(self, quote_currency: str, target_currency: str, amount: Any, limit_price: Any = None, user_order_id: Optional[str] = None) -> Dict[str, Any]:
        return self._call(ops.market_buy_request(quote_currency, target_currency, amount, limit_price, user_order_id))

    def create_market_sell_order(self, quote_currency: str, target_currency: str, qty: Any, limit_price: Any = None, user_order_id: Optional[str] = None) -> Dict[str, Any]:
        return self._call(ops.market_sell_request(quote_currency, target_currency, qty, limit_price, user_order_id))

    def create_stop_limit_order(self, quote_currency: str, target_currency: str, side: str, price: Any, qty: Any, trigger_price: Any, user_order_id: Optional[str] = None) -> Dict[str, Any]:
        return self._call(ops.stop_limit_request(quote_currency, target_currency, side, price, qty, trigger_price, user_order_id))

    def get_active_orders(self, quote_currency: Optional[str] = None, target_currency: Optional[str] = None, order_type: Union[str, Iterable[str], None] = None) -> Dict[str, Any]:
        return self._call(ops.active_orders_request(quote_currency, target_currency, order_type))

    def get_transaction_history(
        self,
        from_ts: int,
        to_ts: int,
        currency: Optional[str] = None,
        to_id: Optional[str] = None,
        is_deposit: Optional[bool] = None,
        size: Optional[int] = ops.HISTORY_PAGE_DEFAULT,
    ) -> Dict[str, Any]:
        return self._call(ops.transaction_history_request(from_ts, to_ts, currency, to_id, is_deposit, size))

    # -- typed views ------------------------------------------------------

    def place_order(self, params: Mapping[str, Any]) -> OrderAck:
        """Like ``create_order`` but returns the acknowledged order id as a record."""
        return models.order_ack(self.create_order(params))

    def list_active_orders(
        self,
        quote_currency: Optional[str] = None,
        target_currency: Optional[str] = None,
        order_type: Union[str, Iterable[str], None] = None,
    ) -> List[ActiveOrder]:
        return models.active_orders(self.get_active_orders(quote_currency, target_currency, order_type))

    def list_withdrawal_addresses(self, currency: Optional[str] = None) -> List[WithdrawalAddress]:
        return models.withdrawal_addresses(self.get_withdrawal_addresses(currency))

    def list_transactions(
        self,
        from_ts: int,
        to_ts: int,
        currency: Optional[str] = None,
        to_id: Optional[str] = None,
        is_deposit: Optional[bool] = None,
        size: Optional[int] = ops.HISTORY_PAGE_DEFAULT,
    ) -> List[TransactionRecord]:
        return models.transactions(self.get_transaction_history(from_ts, to_ts, currency, to_id, is_deposit, size))

    def test_connection(self) -> bool:
        """True if a balance call succeeds with the stored credentials."""
        try:
            self.get_balance()
            return True
        except TradeDeskError as e:
            logger.warning(f"Connection test failed | error={e.to_dict()}")
            return False

    def close(self) -> None:
        self.client.close()
