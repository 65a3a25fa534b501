"""
============================================================================
Stream Client - Receive Loop and Consumer Dispatch
============================================================================

Drives one StreamTransport through a FrameReassembler and delivers
StreamEvents to a single async consumer.

STATE MACHINE:
    DISCONNECTED --start()--> CONNECTING --ok--> OPEN --stop()--> CLOSING
         ^                        |                |                 |
         |                   connect fails    peer close /           |
         |                        |           transport error        |
         +------------------------+----------------+-----------------+

    Every run ends with exactly one ENDED event. The client never
    reconnects on its own; see StreamSupervisor for a caller-side policy.

ORDERING:
    Events are awaited one at a time, in the order their messages
    completed reassembly. A SEQUENCE_GAP event is delivered just before
    the message that revealed the gap.

Error Codes:
    - GEM-WS-002: Malformed message (discarded, stream continues)
    - GEM-WS-003: Stream ended
    - GEM-WS-004: Sequence gap
============================================================================
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from gemini_link.errors import (
    AlreadyConnectedError,
    ConnectError,
    ErrorCode,
    FrameSequenceError,
    ProtocolError,
    StreamClosedError,
    StreamError,
)
from gemini_link.streaming.frames import LogicalMessage
from gemini_link.streaming.messages import SEQUENCE_FIELDS, StreamMessage, classify
from gemini_link.streaming.reassembler import FrameReassembler
from gemini_link.streaming.session import ConnectionState, SequenceGap, StreamSession
from gemini_link.streaming.transport import StreamTransport

logger = logging.getLogger(__name__)


DEFAULT_STOP_TIMEOUT_SECONDS = 5.0


# =============================================================================
# Events
# =============================================================================

class StreamEventKind(Enum):
    DATA = "DATA"
    HEARTBEAT = "HEARTBEAT"
    SEQUENCE_GAP = "SEQUENCE_GAP"
    PROTOCOL_ERROR = "PROTOCOL_ERROR"
    CONNECT_ERROR = "CONNECT_ERROR"
    ENDED = "ENDED"


class EndReason(Enum):
    """Why a stream run finished."""
    STOPPED = "STOPPED"
    PEER_CLOSED = "PEER_CLOSED"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"
    CONNECT_FAILED = "CONNECT_FAILED"


@dataclass(frozen=True)
class StreamEvent:
    """
    One notification to the stream consumer.

    Which fields are set depends on `kind`:
        DATA / HEARTBEAT:  message, payload
        SEQUENCE_GAP:      gap, message
        PROTOCOL_ERROR:    error, payload (the discarded bytes)
        CONNECT_ERROR:     error
        ENDED:             end_reason, error (None for a requested stop)
    """
    kind: StreamEventKind
    message: Optional[StreamMessage] = None
    payload: Any = field(default=None, repr=False)
    gap: Optional[SequenceGap] = None
    error: Optional[Exception] = None
    end_reason: Optional[EndReason] = None
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_terminal(self) -> bool:
        return self.kind is StreamEventKind.ENDED


# Consumer type
StreamConsumer = Callable[[StreamEvent], Awaitable[None]]


# =============================================================================
# Stream Client
# =============================================================================

class StreamClient:
    """
    Single-use stream driver: one start(), one ENDED event.

    Example Usage:
        async def on_event(event):
            if event.kind is StreamEventKind.DATA:
                print(event.payload)

        client = StreamClient()
        client.start(market_data_url(WS_URL, "btcusd"), on_event)
        ...
        await client.stop()
    """

    def __init__(
        self,
        transport: Optional[StreamTransport] = None,
        sequence_fields: Sequence[str] = SEQUENCE_FIELDS,
        correlation_id: Optional[str] = None,
    ):
        self.correlation_id = correlation_id or str(uuid.uuid4())
        self._transport = transport or StreamTransport(correlation_id=self.correlation_id)
        self._sequence_fields = tuple(sequence_fields)

        self._session = StreamSession()
        self._violations = []  # type: List[FrameSequenceError]
        self._reassembler = FrameReassembler(on_violation=self._violations.append)

        self._consumer = None  # type: Optional[StreamConsumer]
        self._task = None  # type: Optional[asyncio.Task]
        self._stop_requested = False
        self._end_reason = None  # type: Optional[EndReason]
        self._end_error = None  # type: Optional[Exception]

    @property
    def session(self) -> StreamSession:
        return self._session

    @property
    def state(self) -> ConnectionState:
        return self._session.state

    @property
    def end_reason(self) -> Optional[EndReason]:
        """Set once the ENDED event has been delivered."""
        return self._end_reason

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(
        self,
        url: str,
        consumer: StreamConsumer,
        headers: Optional[Dict[str, str]] = None,
    ) -> asyncio.Task:
        """
        Begin connecting and return the task running the receive loop.

        Must be called from a running event loop.

        Raises:
            AlreadyConnectedError: If this client was already started
        """
        if self._task is not None:
            raise AlreadyConnectedError("StreamClient was already started; create a new one")

        self._consumer = consumer
        self._session = StreamSession(state=ConnectionState.CONNECTING)
        self._task = asyncio.create_task(self._run(url, headers))

        logger.info(
            f"StreamClient started | url={url.split('?')[0]} | "
            f"correlation_id={self.correlation_id}"
        )
        return self._task

    async def stop(self, timeout: float = DEFAULT_STOP_TIMEOUT_SECONDS) -> None:
        """
        Stop the stream from any state.

        Closes the transport out-of-band so a pending receive returns at
        once, then waits up to `timeout` seconds for the loop to deliver
        ENDED. A loop still running after that is cancelled.
        """
        self._stop_requested = True
        task = self._task

        if task is None or task.done():
            await self._transport.close()
            self._session.state = ConnectionState.DISCONNECTED
            return

        self._session.state = ConnectionState.CLOSING
        await self._transport.close()

        # Called from the consumer itself: the loop exits after this event
        if task is asyncio.current_task():
            return

        done, _ = await asyncio.wait({task}, timeout=timeout)
        if not done:
            logger.warning(
                f"StreamClient loop did not exit within {timeout}s, cancelling | "
                f"correlation_id={self.correlation_id}"
            )
            task.cancel()
            await asyncio.wait({task})

    async def wait(self) -> Optional[EndReason]:
        """Wait for the run to finish; return its EndReason."""
        if self._task is not None:
            await asyncio.wait({self._task})
        return self._end_reason

    # =========================================================================
    # Receive Loop
    # =========================================================================

    async def _run(self, url: str, headers: Optional[Dict[str, str]]) -> None:
        reason = EndReason.STOPPED
        try:
            if self._stop_requested:
                return
            try:
                await self._transport.connect(url, headers)
            except ConnectError as e:
                reason = EndReason.CONNECT_FAILED
                self._end_error = e
                await self._dispatch(StreamEvent(kind=StreamEventKind.CONNECT_ERROR, error=e))
                return

            if self._stop_requested:
                return

            self._session.state = ConnectionState.OPEN
            reason = await self._receive_loop()
        except asyncio.CancelledError:
            reason = EndReason.STOPPED
            raise
        except Exception as e:
            reason = EndReason.TRANSPORT_ERROR
            self._end_error = e
            logger.error(
                f"StreamClient receive loop failed | "
                f"error={type(e).__name__}: {e} | correlation_id={self.correlation_id}",
                exc_info=True,
            )
        finally:
            await self._finish(reason)

    async def _receive_loop(self) -> EndReason:
        while not self._stop_requested:
            try:
                frame = await self._transport.receive_frame()
            except StreamClosedError as e:
                if self._stop_requested:
                    return EndReason.STOPPED
                self._end_error = e
                return EndReason.PEER_CLOSED
            except StreamError as e:
                if self._stop_requested:
                    return EndReason.STOPPED
                self._end_error = e
                return EndReason.TRANSPORT_ERROR

            message = self._reassembler.feed(frame)
            await self._drain_violations()
            if message is not None:
                await self._handle(message)

        return EndReason.STOPPED

    async def _handle(self, message: LogicalMessage) -> None:
        try:
            parsed = classify(message, self._sequence_fields)
        except ProtocolError as e:
            logger.warning(
                f"[{ErrorCode.WS_PROTOCOL}] Discarding malformed message | "
                f"bytes={len(message)} | error={e.message} | "
                f"correlation_id={self.correlation_id}"
            )
            await self._dispatch(StreamEvent(
                kind=StreamEventKind.PROTOCOL_ERROR,
                error=e,
                payload=message.raw,
            ))
            return

        session = self._session
        session.messages_received += 1
        if parsed.is_heartbeat:
            session.mark_heartbeat()

        if parsed.sequence is not None:
            gap = session.observe_sequence(parsed.sequence)
            if gap is not None:
                logger.warning(
                    f"[{ErrorCode.WS_SEQUENCE_GAP}] Sequence gap | "
                    f"expected={gap.expected} | received={gap.received} | "
                    f"correlation_id={self.correlation_id}"
                )
                await self._dispatch(StreamEvent(
                    kind=StreamEventKind.SEQUENCE_GAP,
                    message=parsed,
                    gap=gap,
                ))

        kind = StreamEventKind.HEARTBEAT if parsed.is_heartbeat else StreamEventKind.DATA
        await self._dispatch(StreamEvent(kind=kind, message=parsed, payload=parsed.payload))

    async def _drain_violations(self) -> None:
        while self._violations:
            error = self._violations.pop(0)
            await self._dispatch(StreamEvent(
                kind=StreamEventKind.PROTOCOL_ERROR,
                error=error,
                payload=error.raw,
            ))

    async def _finish(self, reason: EndReason) -> None:
        partial = self._reassembler.flush()
        if partial:
            error = FrameSequenceError(
                f"Stream ended inside a message; {len(partial)} bytes incomplete",
                raw=partial,
            )
            logger.warning(
                f"[{ErrorCode.WS_FRAME_SEQUENCE}] {error.message} | "
                f"correlation_id={self.correlation_id}"
            )
            await self._dispatch(StreamEvent(
                kind=StreamEventKind.PROTOCOL_ERROR,
                error=error,
                payload=partial,
            ))

        await self._transport.close()
        self._session.state = ConnectionState.DISCONNECTED
        self._end_reason = reason

        logger.info(
            f"[{ErrorCode.WS_ENDED}] Stream ended | reason={reason.value} | "
            f"messages={self._session.messages_received} | "
            f"gaps={self._session.gaps_detected} | "
            f"correlation_id={self.correlation_id}"
        )

        await self._dispatch(StreamEvent(
            kind=StreamEventKind.ENDED,
            end_reason=reason,
            error=self._end_error if reason is not EndReason.STOPPED else None,
        ))

    async def _dispatch(self, event: StreamEvent) -> None:
        if self._consumer is None:
            return
        try:
            await self._consumer(event)
        except Exception as e:
            # A failing consumer must not take the stream down
            logger.error(
                f"Stream consumer raised | event={event.kind.value} | "
                f"error={type(e).__name__}: {e} | correlation_id={self.correlation_id}",
                exc_info=True,
            )
