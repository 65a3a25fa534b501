"""
Stream endpoint helpers.

Market data streams are public; the order events stream authenticates
with the same three signed headers as a private REST request, attached
at connect time.
"""

from typing import Any, Dict, Tuple
from urllib.parse import urlencode

from gemini_link.exchange.contracts import order_events_payload
from gemini_link.exchange.hmac_signer import RequestSigner

MARKET_DATA_PATH = "/v1/marketdata/{symbol}"
ORDER_EVENTS_PATH = "/v1/order/events"


def _query_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return [_query_value(item) for item in value]
    return str(value)


def _with_query(url: str, params: Dict[str, Any]) -> str:
    if not params:
        return url
    return f"{url}?{urlencode(params, doseq=True)}"


def market_data_url(base: str, symbol: str, heartbeat: bool = True, **flags: Any) -> str:
    """
    Build a public market data stream URL.

    >>> market_data_url("wss://api.gemini.com", "btcusd")
    'wss://api.gemini.com/v1/marketdata/BTCUSD?heartbeat=true'

    Extra keyword flags (e.g. top_of_book=True, trades=False) are added
    to the query string.
    """
    if not symbol:
        raise ValueError("symbol is required")

    params = {}  # type: Dict[str, Any]
    if heartbeat:
        params["heartbeat"] = "true"
    for name, value in flags.items():
        params[name] = _query_value(value)

    path = MARKET_DATA_PATH.format(symbol=symbol.upper())
    return _with_query(base.rstrip("/") + path, params)


def order_events_request(
    signer: RequestSigner,
    base: str,
    **filters: Any,
) -> Tuple[str, Dict[str, str]]:
    """
    Build the order events stream URL and its signed connect headers.

    Each call consumes a nonce, so call it once per connection attempt.
    Filters such as symbolFilter=["btcusd"] or eventTypeFilter=["fill"]
    become repeated query parameters.

    Raises:
        NoCredentialError: If the signer's store has no credential
    """
    params = {name: _query_value(value) for name, value in filters.items()}
    url = _with_query(base.rstrip("/") + ORDER_EVENTS_PATH, params)
    headers = signer.auth_headers(order_events_payload())
    return url, headers
