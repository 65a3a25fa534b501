"""
============================================================================
Stream Supervisor - Caller-Side Reconnect Policy
============================================================================

StreamClient never reconnects. StreamSupervisor is the optional policy a
host can layer on top:

    1. Resolve (url, headers) from the target callable
       (authenticated streams re-sign here, so every attempt has a fresh nonce)
    2. Run a fresh StreamClient until its ENDED event
    3. If the end was not requested, wait an ExponentialBackoff delay
       and go back to 1, up to `max_attempts` runs

The backoff resets after any run that delivered at least one message.
============================================================================
"""

import asyncio
import logging
import uuid
from typing import Callable, Dict, Optional, Tuple

from gemini_link.exchange.backoff import ExponentialBackoff
from gemini_link.streaming.stream_client import (
    EndReason,
    StreamClient,
    StreamConsumer,
)

logger = logging.getLogger(__name__)


# Returns (url, headers) for the next attempt
StreamTarget = Callable[[], Tuple[str, Optional[Dict[str, str]]]]


class StreamSupervisor:
    """
    Restarts a stream after unrequested ends.

    Example Usage:
        supervisor = StreamSupervisor(
            target=lambda: (market_data_url(WS_URL, "btcusd"), None),
            consumer=on_event,
            max_attempts=10,
        )
        task = asyncio.create_task(supervisor.run())
        ...
        await supervisor.stop()
    """

    def __init__(
        self,
        target: StreamTarget,
        consumer: StreamConsumer,
        backoff: Optional[ExponentialBackoff] = None,
        max_attempts: Optional[int] = None,
        client_factory: Optional[Callable[[], StreamClient]] = None,
        correlation_id: Optional[str] = None,
    ):
        if max_attempts is not None and max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

        self.correlation_id = correlation_id or str(uuid.uuid4())
        self._target = target
        self._consumer = consumer
        self._backoff = backoff or ExponentialBackoff()
        self._max_attempts = max_attempts
        self._client_factory = client_factory or (
            lambda: StreamClient(correlation_id=self.correlation_id)
        )

        self._client = None  # type: Optional[StreamClient]
        self._attempts = 0
        self._stopped = asyncio.Event()

    @property
    def attempts(self) -> int:
        """Number of StreamClient runs started so far."""
        return self._attempts

    @property
    def client(self) -> Optional[StreamClient]:
        """The StreamClient of the current (or last) attempt."""
        return self._client

    async def run(self) -> EndReason:
        """
        Keep the stream running until stopped or attempts are exhausted.

        Returns the EndReason of the final run.
        """
        while True:
            if self._stopped.is_set():
                return EndReason.STOPPED

            url, headers = self._target()
            client = self._client_factory()
            self._client = client
            self._attempts += 1

            client.start(url, self._consumer, headers)
            reason = await client.wait()

            if self._stopped.is_set() or reason is EndReason.STOPPED:
                return EndReason.STOPPED

            if client.session.messages_received > 0:
                self._backoff.reset()

            if self._max_attempts is not None and self._attempts >= self._max_attempts:
                logger.error(
                    f"StreamSupervisor giving up after {self._attempts} attempts | "
                    f"last_reason={reason.value} | correlation_id={self.correlation_id}"
                )
                return reason

            delay = self._backoff.get_delay()
            logger.warning(
                f"Stream ended, restarting | reason={reason.value} | "
                f"attempt={self._attempts} | delay={delay:.2f}s | "
                f"correlation_id={self.correlation_id}"
            )

            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=delay)
                return EndReason.STOPPED
            except asyncio.TimeoutError:
                pass

    async def stop(self) -> None:
        """Stop the current client and prevent further restarts."""
        self._stopped.set()
        if self._client is not None:
            await self._client.stop()
