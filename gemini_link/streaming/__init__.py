"""
============================================================================
Gemini Link v0.1.0
Streaming Package - WebSocket Market Data and Order Events
============================================================================

    StreamTransport  -> bounded Frames from one WebSocket connection
    FrameReassembler -> Frames to LogicalMessages
    StreamClient     -> receive loop, sequence tracking, StreamEvents
    StreamSupervisor -> optional caller-side restart policy
============================================================================
"""

from gemini_link.streaming.frames import FRAME_BUFFER_SIZE, Frame, LogicalMessage
from gemini_link.streaming.messages import MessageCategory, StreamMessage, classify
from gemini_link.streaming.reassembler import FrameReassembler
from gemini_link.streaming.session import ConnectionState, SequenceGap, StreamSession
from gemini_link.streaming.stream_client import (
    EndReason,
    StreamClient,
    StreamConsumer,
    StreamEvent,
    StreamEventKind,
)
from gemini_link.streaming.supervisor import StreamSupervisor
from gemini_link.streaming.transport import StreamTransport
from gemini_link.streaming.urls import market_data_url, order_events_request

__all__ = [
    "FRAME_BUFFER_SIZE",
    "Frame",
    "LogicalMessage",
    "MessageCategory",
    "StreamMessage",
    "classify",
    "FrameReassembler",
    "ConnectionState",
    "SequenceGap",
    "StreamSession",
    "EndReason",
    "StreamClient",
    "StreamConsumer",
    "StreamEvent",
    "StreamEventKind",
    "StreamSupervisor",
    "StreamTransport",
    "market_data_url",
    "order_events_request",
]
