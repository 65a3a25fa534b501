# ============================================================================
# Gemini Link v0.1.0
# Gemini API Client - Public and Private REST Endpoints
# ============================================================================
#
# Purpose: Main client for Gemini REST API interactions
#
# MANDATE:
#   - Explicit context object: no process-wide credential or client
#   - Every API method returns exactly one Outcome
#   - Missing credentials abort synchronously (ConfigurationError)
#   - All prices and amounts are decimal.Decimal
#
# Error Codes:
#   - GEM-SIG-001: Private endpoint called without credentials
#   - GEM-HTTP-003: Response could not be mapped to a record
#
# ============================================================================

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from gemini_link.config import ClientConfig
from gemini_link.errors import ErrorCode, NoCredentialError
from gemini_link.exchange import contracts
from gemini_link.exchange.contracts import (
    Balance,
    DepositAddress,
    OrderBook,
    OrderOption,
    OrderSide,
    OrderStatus,
    OrderType,
    PastTrade,
    Ticker,
    TradeHistoryEntry,
    WithdrawalReceipt,
)
from gemini_link.exchange.hmac_signer import RequestSigner, SignatureAlgorithm
from gemini_link.exchange.http_gateway import INVALID_RESPONSE_REASON, HttpGateway
from gemini_link.exchange.outcome import Failure, Outcome, Success

logger = logging.getLogger(__name__)


class GeminiClient:
    """
    Gemini Exchange API Client.

    Combines an HttpGateway with an optional RequestSigner. Public
    endpoints work without credentials; private endpoints require a
    signer and raise NoCredentialError otherwise.

    Example Usage:
        config = ClientConfig.from_environment()
        with GeminiClient.from_config(config) as client:
            outcome = client.get_ticker("btcusd")
            if outcome.ok:
                print(f"BTC/USD last: {outcome.value.last}")
    """

    def __init__(
        self,
        gateway: HttpGateway,
        signer: Optional[RequestSigner] = None,
        correlation_id: Optional[str] = None,
    ):
        self.gateway = gateway
        self.signer = signer
        self.correlation_id = correlation_id

        logger.info(
            f"[GEM-CLI] Client initialized | "
            f"authenticated={signer is not None} | correlation_id={correlation_id}"
        )

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        correlation_id: Optional[str] = None,
    ) -> "GeminiClient":
        """
        Build a client from configuration.

        A signer is attached only when both API key and secret are set.
        """
        gateway = HttpGateway(
            base_url=config.base_url,
            timeout=config.http_timeout_seconds,
            correlation_id=correlation_id,
        )

        signer = None
        if config.has_credentials:
            signer = RequestSigner(
                config.build_credential_store(correlation_id=correlation_id),
                algorithm=SignatureAlgorithm.from_name(config.signature_algorithm),
                correlation_id=correlation_id,
            )
        else:
            logger.warning(
                f"[GEM-CLI] No credentials - private endpoints unavailable | "
                f"correlation_id={correlation_id}"
            )

        return cls(gateway, signer=signer, correlation_id=correlation_id)

    def is_authenticated(self) -> bool:
        return self.signer is not None

    # ========================================================================
    # Public Endpoints (No Authentication Required)
    # ========================================================================

    def get_symbols(self) -> Outcome:
        """List tradable symbols."""
        return self._decode(self.gateway.get("/v1/symbols"), lambda data: [str(s) for s in data])

    def get_ticker(self, symbol: str) -> Outcome:
        """Fetch bid/ask/last for a symbol as a Ticker."""
        outcome = self.gateway.get(f"/v1/pubticker/{symbol.lower()}")
        return self._decode(outcome, lambda data: Ticker.from_dict(symbol, data))

    def get_last_price(self, symbol: str) -> Outcome:
        return self.get_ticker(symbol).map(lambda ticker: ticker.last)

    def get_order_book(
        self,
        symbol: str,
        limit_bids: Optional[int] = None,
        limit_asks: Optional[int] = None,
    ) -> Outcome:
        params = {}  # type: Dict[str, Any]
        if limit_bids is not None:
            params["limit_bids"] = limit_bids
        if limit_asks is not None:
            params["limit_asks"] = limit_asks
        outcome = self.gateway.get(f"/v1/book/{symbol.lower()}", params=params or None)
        return self._decode(outcome, OrderBook.from_dict)

    def get_trade_history(
        self,
        symbol: str,
        since: Optional[int] = None,
        limit_trades: Optional[int] = None,
    ) -> Outcome:
        """Fetch public trades, newest first."""
        params = {}  # type: Dict[str, Any]
        if since is not None:
            params["since"] = since
        if limit_trades is not None:
            params["limit_trades"] = limit_trades
        outcome = self.gateway.get(f"/v1/trades/{symbol.lower()}", params=params or None)
        return self._decode(outcome, lambda data: [TradeHistoryEntry.from_dict(t) for t in data])

    # ========================================================================
    # Authenticated Endpoints (Signed POST)
    # ========================================================================

    def get_balances(self) -> Outcome:
        return self._private(
            contracts.balances_payload(),
            lambda data: [Balance.from_dict(item) for item in data],
        )

    def new_deposit_address(self, currency: str, label: str = "") -> Outcome:
        return self._private(
            contracts.deposit_address_payload(currency, label),
            DepositAddress.from_dict,
        )

    def withdraw(self, currency: str, address: str, amount: Any) -> Outcome:
        """Withdraw to a whitelisted address. Success value is a WithdrawalReceipt."""
        return self._private(
            contracts.withdrawal_payload(currency, address, amount),
            WithdrawalReceipt.from_dict,
        )

    def place_order(
        self,
        symbol: str,
        amount: Any,
        price: Any,
        side: OrderSide,
        order_type: OrderType = OrderType.EXCHANGE_LIMIT,
        client_order_id: Optional[str] = None,
        options: Optional[List[OrderOption]] = None,
    ) -> Outcome:
        """
        Place a limit order.

        Args:
            symbol: e.g. "btcusd"
            amount: Quantity (Decimal or numeric string)
            price: Limit price (Decimal or numeric string)
            side: OrderSide.BUY or OrderSide.SELL
            order_type: Only "exchange limit" is offered
            client_order_id: Optional caller-supplied identifier
            options: Optional execution options

        Returns:
            Outcome whose Success value is an OrderStatus
        """
        payload = contracts.new_order_payload(
            symbol, amount, price, side,
            order_type=order_type,
            client_order_id=client_order_id,
            options=options,
        )
        return self._private(payload, OrderStatus.from_dict)

    def order_status(self, order_id: int) -> Outcome:
        return self._private(contracts.order_status_payload(order_id), OrderStatus.from_dict)

    def active_orders(self) -> Outcome:
        return self._private(
            contracts.active_orders_payload(),
            lambda data: [OrderStatus.from_dict(item) for item in data],
        )

    def past_trades(self, symbol: str, limit_trades: int = 50, timestamp: int = 0) -> Outcome:
        return self._private(
            contracts.past_trades_payload(symbol, limit_trades, timestamp),
            lambda data: [PastTrade.from_dict(item) for item in data],
        )

    def cancel_order(self, order_id: int) -> Outcome:
        return self._private(contracts.cancel_order_payload(order_id), OrderStatus.from_dict)

    def cancel_session(self) -> Outcome:
        """Cancel all orders opened by this API session."""
        return self._private(contracts.cancel_session_payload(), lambda data: True)

    def cancel_all(self) -> Outcome:
        """Cancel all outstanding orders on the account."""
        return self._private(contracts.cancel_all_payload(), lambda data: True)

    # ========================================================================
    # Internal Methods
    # ========================================================================

    def _private(self, payload: Mapping[str, Any], parse: Callable[[Any], Any]) -> Outcome:
        if self.signer is None:
            logger.error(
                f"[{ErrorCode.NO_CREDENTIAL}] Authentication required | "
                f"request={payload.get('request')} | correlation_id={self.correlation_id}"
            )
            raise NoCredentialError(
                f"Authentication required for {payload.get('request')}"
            )

        signed = self.signer.sign(payload)
        return self._decode(self.gateway.send(signed), parse)

    def _decode(self, outcome: Outcome, parse: Callable[[Any], Any]) -> Outcome:
        if not isinstance(outcome, Success):
            return outcome
        try:
            return Success(parse(outcome.value), outcome.status_code)
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            logger.error(
                f"[{ErrorCode.INVALID_RESPONSE}] Response does not match record | "
                f"error={type(e).__name__}: {e} | correlation_id={self.correlation_id}"
            )
            return Failure(
                INVALID_RESPONSE_REASON,
                f"Unexpected response shape: {type(e).__name__}: {e}",
                status_code=outcome.status_code,
                body=outcome.value,
            )

    def close(self) -> None:
        self.gateway.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
