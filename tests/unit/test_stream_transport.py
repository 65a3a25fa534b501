"""
============================================================================
Unit Tests for StreamTransport
============================================================================

This module tests the WebSocket transport against a fake connection:
- Connect options and custom headers
- Fragment splitting into bounded frames with message flags
- Terminal signals (peer close, connection loss)
- close() unblocking a pending receive

============================================================================
"""

import asyncio
import os
import sys
from typing import Any, Dict, List, Optional

import pytest
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK, InvalidHandshake
from websockets.frames import Close

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from gemini_link.errors import (
    AlreadyConnectedError,
    ConnectError,
    ErrorCode,
    NotConnectedError,
    StreamClosedError,
    StreamTransportError,
)
from gemini_link.streaming.frames import Frame
from gemini_link.streaming.session import ConnectionState
from gemini_link.streaming.transport import StreamTransport


# =============================================================================
# Fakes
# =============================================================================

class FakeWebSocket:
    """
    Scripted connection. Each script entry is a list of fragments making
    one message; an exception instance inside the list is raised at that
    point. When the script runs out, `end` is raised, or the stream
    blocks until close().
    """

    def __init__(self, script: List[List[Any]], end: Optional[Exception] = None):
        self._script = list(script)
        self._end = end
        self._closed = asyncio.Event()
        self.close_calls = 0
        self.sent = []  # type: List[str]

    def recv_streaming(self, decode: Optional[bool] = None):
        return self._stream()

    async def _stream(self):
        if self._script:
            for item in self._script.pop(0):
                if isinstance(item, Exception):
                    raise item
                yield item
            return
        if self._end is not None:
            raise self._end
        await self._closed.wait()
        raise ConnectionClosedOK(Close(1000, ""), Close(1000, ""), True)

    async def send(self, text: str) -> None:
        self.sent.append(text)

    async def close(self) -> None:
        self.close_calls += 1
        self._closed.set()


class FakeConnector:
    def __init__(self, ws: Optional[FakeWebSocket] = None, error: Optional[Exception] = None):
        self.ws = ws
        self.error = error
        self.calls = []  # type: List[Dict[str, Any]]

    async def __call__(self, url: str, **kwargs):
        self.calls.append(dict(kwargs, url=url))
        if self.error is not None:
            raise self.error
        return self.ws


async def open_transport(script, end=None, frame_size: int = 16384):
    ws = FakeWebSocket(script, end=end)
    transport = StreamTransport(frame_size=frame_size, connector=FakeConnector(ws))
    await transport.connect("wss://api.gemini.com/v1/marketdata/BTCUSD")
    return transport, ws


async def drain(transport: StreamTransport, count: int) -> List[Frame]:
    return [await transport.receive_frame() for _ in range(count)]


# =============================================================================
# Connect
# =============================================================================

class TestConnect:

    @pytest.mark.asyncio
    async def test_passes_headers_and_options(self):
        connector = FakeConnector(FakeWebSocket([]))
        transport = StreamTransport(close_timeout=2.0, connector=connector)
        headers = {"X-GEMINI-APIKEY": "mykey"}

        await transport.connect("wss://api.gemini.com/v1/order/events", headers)

        call = connector.calls[0]
        assert call["url"] == "wss://api.gemini.com/v1/order/events"
        assert call["additional_headers"] == headers
        assert call["max_size"] is None
        assert call["close_timeout"] == 2.0
        assert transport.state is ConnectionState.OPEN
        assert transport.is_open

    @pytest.mark.asyncio
    async def test_connect_while_open_rejected(self):
        transport, _ = await open_transport([])

        with pytest.raises(AlreadyConnectedError) as exc_info:
            await transport.connect("wss://api.gemini.com/v1/marketdata/ETHUSD")

        assert exc_info.value.error_code == ErrorCode.WS_STATE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        OSError("connection refused"),
        asyncio.TimeoutError(),
        InvalidHandshake("bad handshake"),
    ])
    async def test_connect_failure_raises_connect_error(self, error):
        transport = StreamTransport(connector=FakeConnector(error=error))

        with pytest.raises(ConnectError) as exc_info:
            await transport.connect("wss://api.gemini.com/v1/marketdata/BTCUSD")

        assert exc_info.value.error_code == ErrorCode.WS_CONNECT_FAIL

        assert transport.state is ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_reconnect_after_close(self):
        connector = FakeConnector(FakeWebSocket([]))
        transport = StreamTransport(connector=connector)
        await transport.connect("wss://example")
        await transport.close()

        connector.ws = FakeWebSocket([[b'{"type":"heartbeat"}']])
        await transport.connect("wss://example")

        assert (await transport.receive_frame()).payload == b'{"type":"heartbeat"}'


# =============================================================================
# Framing
# =============================================================================

class TestFraming:

    @pytest.mark.asyncio
    async def test_single_fragment_message(self):
        transport, _ = await open_transport([[b'{"type":"heartbeat"}']])

        frame = await transport.receive_frame()

        assert frame == Frame(b'{"type":"heartbeat"}', is_final=True, starts_message=True)

    @pytest.mark.asyncio
    async def test_text_fragment_encoded_as_utf8(self):
        transport, _ = await open_transport([['{"type":"update","note":"é"}']])

        frame = await transport.receive_frame()

        assert frame.payload == '{"type":"update","note":"é"}'.encode("utf-8")

    @pytest.mark.asyncio
    async def test_large_fragment_split_into_bounded_frames(self):
        payload = b"x" * 40000
        transport, _ = await open_transport([[payload]])

        frames = await drain(transport, 3)

        assert [len(f.payload) for f in frames] == [16384, 16384, 7232]
        assert [f.starts_message for f in frames] == [True, False, False]
        assert [f.is_final for f in frames] == [False, False, True]
        assert b"".join(f.payload for f in frames) == payload

    @pytest.mark.asyncio
    async def test_fragments_of_one_message(self):
        transport, _ = await open_transport([[b"abcdef", b"gh"]], frame_size=4)

        frames = await drain(transport, 3)

        assert frames == [
            Frame(b"abcd", is_final=False, starts_message=True),
            Frame(b"ef", is_final=False, starts_message=False),
            Frame(b"gh", is_final=True, starts_message=False),
        ]

    @pytest.mark.asyncio
    async def test_consecutive_messages_each_start(self):
        transport, _ = await open_transport([[b"one"], [b"two"]])

        frames = await drain(transport, 2)

        assert all(f.starts_message and f.is_final for f in frames)
        assert [f.payload for f in frames] == [b"one", b"two"]


# =============================================================================
# Terminal Signals
# =============================================================================

class TestTerminalSignals:

    @pytest.mark.asyncio
    async def test_peer_close_after_messages(self):
        end = ConnectionClosedOK(Close(1000, "bye"), Close(1000, "bye"), True)
        transport, _ = await open_transport([[b"one"]], end=end)

        assert (await transport.receive_frame()).payload == b"one"
        with pytest.raises(StreamClosedError) as exc_info:
            await transport.receive_frame()

        assert exc_info.value.code == 1000
        assert exc_info.value.reason == "bye"
        assert transport.state is ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_abnormal_close_is_transport_error(self):
        transport, _ = await open_transport([], end=ConnectionClosedError(None, None))

        with pytest.raises(StreamTransportError):
            await transport.receive_frame()

    @pytest.mark.asyncio
    async def test_bytes_read_before_drop_are_delivered(self):
        transport, _ = await open_transport([[b"partial", ConnectionClosedError(None, None)]])

        frame = await transport.receive_frame()

        assert frame == Frame(b"partial", is_final=False, starts_message=True)
        with pytest.raises(StreamTransportError):
            await transport.receive_frame()
        with pytest.raises(StreamTransportError):
            await transport.receive_frame()

    @pytest.mark.asyncio
    async def test_receive_before_connect(self):
        with pytest.raises(NotConnectedError) as exc_info:
            await StreamTransport().receive_frame()

        assert exc_info.value.error_code == ErrorCode.WS_STATE


# =============================================================================
# Close
# =============================================================================

class TestClose:

    @pytest.mark.asyncio
    async def test_close_unblocks_pending_receive(self):
        transport, ws = await open_transport([])
        pending = asyncio.create_task(transport.receive_frame())
        await asyncio.sleep(0)
        assert not pending.done()

        await transport.close()

        with pytest.raises(StreamClosedError):
            await asyncio.wait_for(pending, timeout=1.0)
        assert ws.close_calls == 1
        assert transport.state is ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        transport, ws = await open_transport([])

        await transport.close()
        await transport.close()

        assert ws.close_calls == 1
        with pytest.raises(StreamClosedError):
            await transport.receive_frame()

    @pytest.mark.asyncio
    async def test_async_context_manager_closes(self):
        transport, ws = await open_transport([])

        async with transport:
            pass

        assert ws.close_calls == 1

    @pytest.mark.asyncio
    async def test_send_text(self):
        transport, ws = await open_transport([])

        await transport.send_text('{"type":"subscribe"}')

        assert ws.sent == ['{"type":"subscribe"}']
