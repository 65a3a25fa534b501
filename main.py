#!/usr/bin/env python3
"""
============================================================================
Gemini Link v0.1.0
VWAP Monitor - Example Host Program
============================================================================

Prints a 24 hour volume-weighted average price for one symbol, then keeps
it running from the live market data stream:

    1. Page through /v1/trades/{symbol} for the last 24h (REST, public)
    2. Stream /v1/marketdata/{SYMBOL}?heartbeat=true
    3. Add every executed trade to the running VWAP

The stream is restarted with exponential backoff if it drops. Ctrl+C
stops it cleanly.

USAGE:
    python main.py [symbol]

============================================================================
"""

import asyncio
import logging
import signal
import sys
import time
import uuid
from decimal import Decimal, ROUND_HALF_EVEN
from typing import Any, Iterable, Optional, Tuple

from dotenv import load_dotenv

from gemini_link.config import ClientConfig
from gemini_link.errors import GeminiLinkError
from gemini_link.exchange.client import GeminiClient
from gemini_link.exchange.contracts import to_decimal
from gemini_link.streaming.stream_client import StreamClient, StreamEvent, StreamEventKind
from gemini_link.streaming.supervisor import StreamSupervisor
from gemini_link.streaming.transport import StreamTransport
from gemini_link.streaming.urls import market_data_url

# Load environment variables first
load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger("VWAP")


# =============================================================================
# Constants
# =============================================================================

DEFAULT_SYMBOL = "btcusd"
LOOKBACK_SECONDS = 24 * 60 * 60
TRADES_PAGE_LIMIT = 500
PRICE_QUANTUM = Decimal("0.01")


# =============================================================================
# VWAP Tracker
# =============================================================================

class VwapTracker:
    """Cumulative price * volume and volume, in Decimal."""

    def __init__(self):
        self.pv = Decimal("0")
        self.volume = Decimal("0")
        self.trades = 0

    def add(self, price: Decimal, amount: Decimal) -> None:
        self.pv += price * amount
        self.volume += amount
        self.trades += 1

    @property
    def vwap(self) -> Optional[Decimal]:
        if self.volume == 0:
            return None
        return (self.pv / self.volume).quantize(PRICE_QUANTUM, rounding=ROUND_HALF_EVEN)


def trades_in_update(payload: Any) -> Iterable[Tuple[Decimal, Decimal]]:
    """
    Yield (price, amount) for every executed trade in a market data update.

    Book changes (including the initial book snapshot) are skipped.
    """
    if not isinstance(payload, dict) or payload.get("type") != "update":
        return
    for event in payload.get("events", []):
        if event.get("type") == "trade":
            yield to_decimal(event["price"]), to_decimal(event["amount"])


def backfill(client: GeminiClient, symbol: str, tracker: VwapTracker, start: int, end: int) -> None:
    """
    Add every public trade between `start` and `end` (epoch seconds).

    Pages forward with `since`; trade ids already counted are skipped.

    Raises:
        RemoteRejectionError / TransportFailureError: If a page fails
    """
    since = start
    seen = set()

    while since < end:
        page = client.get_trade_history(symbol, since=since, limit_trades=TRADES_PAGE_LIMIT).unwrap()
        fresh = [trade for trade in page if trade.tid not in seen and not trade.broken]
        if not fresh:
            break

        for trade in fresh:
            seen.add(trade.tid)
            if trade.timestamp <= end:
                tracker.add(trade.price, trade.amount)

        newest = max(trade.timestamp for trade in page)
        if newest <= since or len(page) < TRADES_PAGE_LIMIT:
            break
        since = newest


# =============================================================================
# Stream
# =============================================================================

async def stream_vwap(config: ClientConfig, symbol: str, tracker: VwapTracker, correlation_id: str) -> None:
    async def on_event(event: StreamEvent) -> None:
        if event.kind is StreamEventKind.DATA:
            for price, amount in trades_in_update(event.payload):
                tracker.add(price, amount)
                print(f"Last price {price} | 24h running VWAP {tracker.vwap}")
        elif event.kind is StreamEventKind.SEQUENCE_GAP:
            logger.warning(f"Missed {event.gap.missing} messages | correlation_id={correlation_id}")
        elif event.kind is StreamEventKind.ENDED:
            logger.info(f"Stream ended | reason={event.end_reason.value} | correlation_id={correlation_id}")

    def client_factory() -> StreamClient:
        transport = StreamTransport(
            close_timeout=config.ws_close_timeout_seconds,
            correlation_id=correlation_id,
        )
        return StreamClient(transport, correlation_id=correlation_id)

    supervisor = StreamSupervisor(
        target=lambda: (market_data_url(config.ws_url, symbol), None),
        consumer=on_event,
        client_factory=client_factory,
        correlation_id=correlation_id,
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda: asyncio.ensure_future(supervisor.stop()))
        except NotImplementedError:
            pass

    await supervisor.run()


# =============================================================================
# Entry Point
# =============================================================================

def main() -> int:
    symbol = sys.argv[1].lower() if len(sys.argv) > 1 else DEFAULT_SYMBOL
    correlation_id = f"VWAP-{str(uuid.uuid4())[:8]}"

    try:
        config = ClientConfig.from_environment()
    except GeminiLinkError as e:
        logger.critical(f"Configuration invalid: {e}")
        return 1

    tracker = VwapTracker()
    end = int(time.time())

    logger.info(f"Backfilling 24h trades | symbol={symbol} | correlation_id={correlation_id}")
    with GeminiClient.from_config(config, correlation_id=correlation_id) as client:
        try:
            backfill(client, symbol, tracker, end - LOOKBACK_SECONDS, end)
        except GeminiLinkError as e:
            logger.error(f"Backfill failed: {e} | correlation_id={correlation_id}")
            return 1

    print(f"24h VWAP {tracker.vwap} ({tracker.trades} trades)")

    try:
        asyncio.run(stream_vwap(config, symbol, tracker, correlation_id))
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")

    return 0


if __name__ == "__main__":
    sys.exit(main())
