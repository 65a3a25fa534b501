# ============================================================================
# Gemini Link v0.1.0
# Request Payloads and Response Records
# ============================================================================
#
# Purpose: Field mapping between the REST API and plain Python records
#
# Payload builders return plain dicts whose first field is the endpoint
# path ("request"); the nonce is assigned by RequestSigner. Response
# records parse prices and amounts as decimal.Decimal.
#
# ============================================================================

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from gemini_link.errors import InvalidPayloadError


class OrderSide(Enum):
    BUY = "buy"
    SELL = "sell"


class OrderType(Enum):
    """Only limit orders are offered by the exchange API."""
    EXCHANGE_LIMIT = "exchange limit"


class OrderOption(Enum):
    MAKER_OR_CANCEL = "maker-or-cancel"
    IMMEDIATE_OR_CANCEL = "immediate-or-cancel"
    FILL_OR_KILL = "fill-or-kill"
    AUCTION_ONLY = "auction-only"


def to_decimal(value: Any) -> Decimal:
    """Convert an exchange numeric string to Decimal without float rounding."""
    if isinstance(value, Decimal):
        return value
    if value is None or isinstance(value, bool):
        raise ValueError(f"Not a numeric value: {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Not a numeric value: {value!r}")


def _positive_decimal(name: str, value: Any) -> Decimal:
    try:
        amount = to_decimal(value)
    except ValueError as e:
        raise InvalidPayloadError(f"{name}: {e}")
    if not amount.is_finite() or amount <= 0:
        raise InvalidPayloadError(f"{name} must be a positive finite number, got {value!r}")
    return amount


def _optional_decimal(value: Any) -> Optional[Decimal]:
    return None if value is None else to_decimal(value)


# ============================================================================
# Private Request Payloads
# ============================================================================

def balances_payload() -> Dict[str, Any]:
    return {"request": "/v1/balances"}


def deposit_address_payload(currency: str, label: str = "") -> Dict[str, Any]:
    payload = {"request": f"/v1/deposit/{currency.lower()}/newAddress"}  # type: Dict[str, Any]
    if label:
        payload["label"] = label
    return payload


def withdrawal_payload(currency: str, address: str, amount: Any) -> Dict[str, Any]:
    """
    Raises:
        InvalidPayloadError: If amount is not a positive number
    """
    return {
        "request": f"/v1/withdraw/{currency.lower()}",
        "address": address,
        "amount": str(_positive_decimal("amount", amount)),
    }


def new_order_payload(
    symbol: str,
    amount: Any,
    price: Any,
    side: OrderSide,
    order_type: OrderType = OrderType.EXCHANGE_LIMIT,
    client_order_id: Optional[str] = None,
    options: Optional[List[OrderOption]] = None,
) -> Dict[str, Any]:
    """
    Build a new-order payload.

    Raises:
        InvalidPayloadError: If amount or price is not a positive number
    """
    amount_dec = _positive_decimal("amount", amount)
    price_dec = _positive_decimal("price", price)

    payload = {"request": "/v1/order/new"}  # type: Dict[str, Any]
    if client_order_id:
        payload["client_order_id"] = client_order_id
    payload.update({
        "symbol": symbol.lower(),
        "amount": str(amount_dec),
        "price": str(price_dec),
        "side": side.value,
        "type": order_type.value,
    })
    if options:
        payload["options"] = [option.value for option in options]
    return payload


def order_status_payload(order_id: int) -> Dict[str, Any]:
    return {"request": "/v1/order/status", "order_id": order_id}


def active_orders_payload() -> Dict[str, Any]:
    return {"request": "/v1/orders"}


def past_trades_payload(symbol: str, limit_trades: int = 50, timestamp: int = 0) -> Dict[str, Any]:
    if not 1 <= limit_trades <= 500:
        raise InvalidPayloadError(f"limit_trades must be between 1 and 500, got {limit_trades}")
    return {
        "request": "/v1/mytrades",
        "symbol": symbol.lower(),
        "limit_trades": limit_trades,
        "timestamp": timestamp,
    }


def cancel_order_payload(order_id: int) -> Dict[str, Any]:
    return {"request": "/v1/order/cancel", "order_id": order_id}


def cancel_session_payload() -> Dict[str, Any]:
    return {"request": "/v1/order/cancel/session"}


def cancel_all_payload() -> Dict[str, Any]:
    return {"request": "/v1/order/cancel/all"}


def order_events_payload() -> Dict[str, Any]:
    return {"request": "/v1/order/events"}


# ============================================================================
# Response Records
# ============================================================================

@dataclass
class ErrorEnvelope:
    """{"result": "error", "reason": ..., "message": ...}"""
    result: str
    reason: str
    message: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ErrorEnvelope":
        return cls(
            result=str(data.get("result", "error")),
            reason=str(data["reason"]),
            message=str(data.get("message", "")),
        )


@dataclass
class Ticker:
    symbol: str
    bid: Decimal
    ask: Decimal
    last: Decimal
    volume: Dict[str, Decimal] = field(default_factory=dict)
    timestamp_ms: Optional[int] = None

    @classmethod
    def from_dict(cls, symbol: str, data: Mapping[str, Any]) -> "Ticker":
        raw_volume = dict(data.get("volume") or {})
        timestamp_ms = raw_volume.pop("timestamp", None)
        return cls(
            symbol=symbol.upper(),
            bid=to_decimal(data["bid"]),
            ask=to_decimal(data["ask"]),
            last=to_decimal(data["last"]),
            volume={currency: to_decimal(amount) for currency, amount in raw_volume.items()},
            timestamp_ms=int(timestamp_ms) if timestamp_ms is not None else None,
        )

    @property
    def spread(self) -> Decimal:
        return self.ask - self.bid


@dataclass
class OrderBookEntry:
    price: Decimal
    amount: Decimal

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OrderBookEntry":
        return cls(price=to_decimal(data["price"]), amount=to_decimal(data["amount"]))


@dataclass
class OrderBook:
    bids: List[OrderBookEntry]
    asks: List[OrderBookEntry]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OrderBook":
        return cls(
            bids=[OrderBookEntry.from_dict(entry) for entry in data.get("bids", [])],
            asks=[OrderBookEntry.from_dict(entry) for entry in data.get("asks", [])],
        )


@dataclass
class TradeHistoryEntry:
    """Public trade from /v1/trades/{symbol}."""
    tid: int
    price: Decimal
    amount: Decimal
    timestamp: int
    timestampms: Optional[int]
    exchange: str
    type: str
    broken: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TradeHistoryEntry":
        return cls(
            tid=int(data["tid"]),
            price=to_decimal(data["price"]),
            amount=to_decimal(data["amount"]),
            timestamp=int(data["timestamp"]),
            timestampms=data.get("timestampms"),
            exchange=str(data.get("exchange", "")),
            type=str(data.get("type", "")),
            broken=bool(data.get("broken", False)),
        )


@dataclass
class Balance:
    currency: str
    amount: Decimal
    available: Decimal
    available_for_withdrawal: Decimal

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Balance":
        return cls(
            currency=str(data["currency"]),
            amount=to_decimal(data["amount"]),
            available=to_decimal(data["available"]),
            available_for_withdrawal=to_decimal(data["availableForWithdrawal"]),
        )


@dataclass
class DepositAddress:
    currency: str
    address: str
    label: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DepositAddress":
        return cls(
            currency=str(data["currency"]),
            address=str(data["address"]),
            label=str(data.get("label") or ""),
        )


@dataclass
class WithdrawalReceipt:
    destination: str
    amount: Decimal
    tx_hash: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WithdrawalReceipt":
        return cls(
            destination=str(data["destination"]),
            amount=to_decimal(data["amount"]),
            tx_hash=str(data["txHash"]),
        )


@dataclass
class OrderStatus:
    order_id: str
    symbol: str
    side: str
    type: str
    price: Optional[Decimal]
    avg_execution_price: Optional[Decimal]
    executed_amount: Decimal
    remaining_amount: Decimal
    original_amount: Decimal
    is_live: bool
    is_cancelled: bool
    was_forced: bool = False
    client_order_id: Optional[str] = None
    exchange: str = "gemini"
    options: List[str] = field(default_factory=list)
    timestamp: Optional[int] = None
    timestampms: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OrderStatus":
        return cls(
            order_id=str(data["order_id"]),
            symbol=str(data["symbol"]),
            side=str(data["side"]),
            type=str(data["type"]),
            price=_optional_decimal(data.get("price")),
            avg_execution_price=_optional_decimal(data.get("avg_execution_price")),
            executed_amount=to_decimal(data.get("executed_amount", "0")),
            remaining_amount=to_decimal(data.get("remaining_amount", "0")),
            original_amount=to_decimal(data.get("original_amount", "0")),
            is_live=bool(data.get("is_live", False)),
            is_cancelled=bool(data.get("is_cancelled", False)),
            was_forced=bool(data.get("was_forced", False)),
            client_order_id=data.get("client_order_id"),
            exchange=str(data.get("exchange", "gemini")),
            options=list(data.get("options") or []),
            timestamp=int(data["timestamp"]) if data.get("timestamp") is not None else None,
            timestampms=data.get("timestampms"),
        )


@dataclass
class PastTrade:
    tid: int
    order_id: str
    price: Decimal
    amount: Decimal
    type: str
    aggressor: bool
    fee_currency: str
    fee_amount: Decimal
    timestamp: int
    timestampms: Optional[int] = None
    client_order_id: Optional[str] = None
    is_auction_fill: bool = False
    broken: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PastTrade":
        return cls(
            tid=int(data["tid"]),
            order_id=str(data["order_id"]),
            price=to_decimal(data["price"]),
            amount=to_decimal(data["amount"]),
            type=str(data["type"]),
            aggressor=bool(data.get("aggressor", False)),
            fee_currency=str(data.get("fee_currency", "")),
            fee_amount=to_decimal(data.get("fee_amount", "0")),
            timestamp=int(data["timestamp"]),
            timestampms=data.get("timestampms"),
            client_order_id=data.get("client_order_id"),
            is_auction_fill=bool(data.get("is_auction_fill", False)),
            broken=bool(data.get("break", False)),
        )
