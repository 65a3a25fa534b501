"""
============================================================================
Stream Transport - One WebSocket Connection
============================================================================

Owns exactly one logical connection at a time:
    connect(url, headers)  -> open the socket (custom connect-time headers)
    receive_frame()        -> next bounded Frame, or raises a terminal error
    close()                -> idempotent release, safe on every exit path

FRAMING:
    WebSocket fragments are read with `recv_streaming(decode=False)` and
    split into frames of at most FRAME_BUFFER_SIZE bytes. Whether a chunk
    is the last of its message is only known once the fragment iterator
    is exhausted, so the most recent chunk is held back one step.

TERMINAL SIGNALS:
    - StreamClosedError:    peer closed cleanly, or close() was called
    - StreamTransportError: connection failed while open

Error Codes:
    - GEM-WS-001: Connect failure
    - GEM-WS-003: Stream ended
============================================================================
"""

import asyncio
import logging
from collections import deque
from typing import Any, Callable, Deque, Dict, Optional

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException

from gemini_link.errors import (
    AlreadyConnectedError,
    ConnectError,
    ErrorCode,
    NotConnectedError,
    StreamClosedError,
    StreamTransportError,
)
from gemini_link.streaming.frames import FRAME_BUFFER_SIZE, Frame, split_payload
from gemini_link.streaming.session import ConnectionState

logger = logging.getLogger(__name__)


DEFAULT_OPEN_TIMEOUT_SECONDS = 10.0
DEFAULT_CLOSE_TIMEOUT_SECONDS = 5.0
DEFAULT_PING_INTERVAL_SECONDS = 20.0


class StreamTransport:
    """
    WebSocket transport yielding bounded frames.

    Not safe for concurrent receive_frame() calls; close() may be called
    from another task at any time and unblocks a pending receive.
    """

    def __init__(
        self,
        frame_size: int = FRAME_BUFFER_SIZE,
        open_timeout: float = DEFAULT_OPEN_TIMEOUT_SECONDS,
        close_timeout: float = DEFAULT_CLOSE_TIMEOUT_SECONDS,
        ping_interval: Optional[float] = DEFAULT_PING_INTERVAL_SECONDS,
        connector: Optional[Callable[..., Any]] = None,
        correlation_id: Optional[str] = None,
    ):
        if frame_size <= 0:
            raise ValueError(f"frame_size must be positive, got {frame_size}")

        self.frame_size = frame_size
        self.open_timeout = open_timeout
        self.close_timeout = close_timeout
        self.ping_interval = ping_interval
        self.correlation_id = correlation_id
        self._connector = connector or ws_connect

        self._ws = None
        self._state = ConnectionState.DISCONNECTED
        self._closed_locally = False

        # Per-message receive state
        self._fragments = None
        self._held = None  # type: Optional[bytes]
        self._message_started = False
        self._pending = deque()  # type: Deque[Frame]
        self._terminal = None  # type: Optional[Exception]

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is ConnectionState.OPEN

    # =========================================================================
    # Connect
    # =========================================================================

    async def connect(self, url: str, headers: Optional[Dict[str, str]] = None) -> None:
        """
        Open the connection.

        Raises:
            AlreadyConnectedError: If a connection is already open
            ConnectError: If the handshake fails
        """
        if self._state in (ConnectionState.OPEN, ConnectionState.CONNECTING):
            raise AlreadyConnectedError(f"Transport already {self._state.value.lower()}")

        self._state = ConnectionState.CONNECTING
        self._closed_locally = False
        self._reset_receive_state()

        logger.info(
            f"StreamTransport connecting | url={url.split('?')[0]} | "
            f"custom_headers={len(headers or {})} | correlation_id={self.correlation_id}"
        )

        try:
            self._ws = await self._connector(
                url,
                additional_headers=headers,
                max_size=None,
                open_timeout=self.open_timeout,
                close_timeout=self.close_timeout,
                ping_interval=self.ping_interval,
            )
        except (WebSocketException, OSError, asyncio.TimeoutError) as e:
            self._ws = None
            self._state = ConnectionState.DISCONNECTED
            logger.error(
                f"[{ErrorCode.WS_CONNECT_FAIL}] Connection failed | "
                f"error={type(e).__name__}: {e} | correlation_id={self.correlation_id}"
            )
            raise ConnectError(f"Could not connect to {url}: {type(e).__name__}: {e}")

        self._state = ConnectionState.OPEN
        logger.info(f"StreamTransport connected | correlation_id={self.correlation_id}")

    # =========================================================================
    # Receive
    # =========================================================================

    async def receive_frame(self) -> Frame:
        """
        Suspend until the next frame is available.

        Frames already read before the connection ended are delivered
        first; the terminal error is raised after them.

        Raises:
            NotConnectedError: If the transport is not open
            StreamClosedError: If the peer closed or close() was called
            StreamTransportError: If the connection failed
        """
        while not self._pending:
            if self._terminal is not None:
                raise self._terminal
            if self._ws is None:
                if self._closed_locally:
                    raise StreamClosedError("Transport closed locally")
                raise NotConnectedError("Transport is not connected")
            await self._pull_fragment()
        return self._pending.popleft()

    async def _pull_fragment(self) -> None:
        if self._fragments is None:
            self._fragments = self._ws.recv_streaming(decode=False).__aiter__()

        try:
            fragment = await self._fragments.__anext__()
        except StopAsyncIteration:
            self._fragments = None
            self._emit(self._held if self._held is not None else b"", final=True)
            self._held = None
            return
        except ConnectionClosed as e:
            self._end(self._closed_error(e))
            return
        except OSError as e:
            self._end(StreamTransportError(f"Connection failed: {type(e).__name__}: {e}"))
            return

        if isinstance(fragment, str):
            fragment = fragment.encode("utf-8")

        for chunk in split_payload(fragment, self.frame_size):
            if self._held is not None:
                self._emit(self._held, final=False)
            self._held = chunk

    def _end(self, error: Exception) -> None:
        # Bytes already read stay deliverable; the message stays incomplete
        if self._held is not None:
            self._emit(self._held, final=False)
            self._held = None
        self._fragments = None
        self._terminal = error

    def _emit(self, payload: bytes, final: bool) -> None:
        self._pending.append(Frame(
            payload=payload,
            is_final=final,
            starts_message=not self._message_started,
        ))
        self._message_started = not final

    def _closed_error(self, e: ConnectionClosed) -> Exception:
        self._state = ConnectionState.DISCONNECTED
        rcvd = getattr(e, "rcvd", None)
        code = rcvd.code if rcvd is not None else None
        reason = rcvd.reason if rcvd is not None else ""

        if self._closed_locally or isinstance(e, ConnectionClosedOK):
            return StreamClosedError(
                f"Stream closed (code={code}, reason={reason or 'n/a'})",
                code=code,
                reason=reason,
            )
        return StreamTransportError(f"Connection lost: {e}")

    # =========================================================================
    # Send
    # =========================================================================

    async def send_text(self, text: str) -> None:
        """Send one text message (e.g. a subscription request)."""
        if self._ws is None:
            raise NotConnectedError("Transport is not connected")
        try:
            await self._ws.send(text)
        except ConnectionClosed as e:
            raise self._closed_error(e)

    # =========================================================================
    # Close
    # =========================================================================

    async def close(self) -> None:
        """
        Release the connection. Idempotent; never raises for close failures.

        A receive_frame() pending in another task is unblocked with
        StreamClosedError.
        """
        ws = self._ws
        self._closed_locally = True
        if ws is None:
            self._state = ConnectionState.DISCONNECTED
            return

        self._state = ConnectionState.CLOSING
        self._ws = None
        try:
            await ws.close()
        except (WebSocketException, OSError) as e:
            logger.warning(
                f"StreamTransport close error | error={type(e).__name__}: {e} | "
                f"correlation_id={self.correlation_id}"
            )
        finally:
            self._state = ConnectionState.DISCONNECTED
            logger.info(f"StreamTransport closed | correlation_id={self.correlation_id}")

    def _reset_receive_state(self) -> None:
        self._fragments = None
        self._held = None
        self._message_started = False
        self._pending.clear()
        self._terminal = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False
